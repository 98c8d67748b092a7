from sqlalchemy.orm import relationship
from sqlalchemy import Column, String, ForeignKey, Text, DateTime, func, JSON
from database import Base


class JobListing(Base):
    __tablename__ = "job_listings"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)
    company = Column(String, nullable=False)
    company_url = Column(String, nullable=True)
    location = Column(String, nullable=True)
    work_type = Column(String, nullable=True)
    work_arrangement = Column(String, nullable=True)
    salary = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    description_md = Column(Text, nullable=True)
    skills = Column(JSON, nullable=True)
    benefits = Column(JSON, nullable=True)
    job_insights = Column(JSON, nullable=True)
    applicant_count = Column(String, nullable=True)
    experience_needed = Column(String, nullable=True)

    # Tracking fields; the only columns the dashboard ever writes
    status = Column(String, nullable=True)
    priority = Column(String, nullable=True)
    applied_at = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    posted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    source = Column(String, nullable=True)
    job_url = Column(String, nullable=True)
    apply_url = Column(String, nullable=True)

    saved_by = relationship(
        "SavedJob", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )


class SavedJob(Base):
    __tablename__ = "saved_jobs"

    user_id = Column(String, primary_key=True, index=True)
    job_id = Column(
        String, ForeignKey("job_listings.id", ondelete="CASCADE"), primary_key=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    job = relationship("JobListing", back_populates="saved_by")
