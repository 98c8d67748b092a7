"""create job_listings and saved_jobs

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

SEARCH_DOCUMENT = (
    "to_tsvector('english'::regconfig, "
    "coalesce(title, '') || ' ' || coalesce(company, '') || ' ' || "
    "coalesce(location, '') || ' ' || coalesce(description, ''))"
)


def upgrade() -> None:
    op.create_table(
        "job_listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("company", sa.String(), nullable=False),
        sa.Column("company_url", sa.String(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("work_type", sa.String(), nullable=True),
        sa.Column("work_arrangement", sa.String(), nullable=True),
        sa.Column("salary", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("description_md", sa.Text(), nullable=True),
        sa.Column("skills", sa.JSON(), nullable=True),
        sa.Column("benefits", sa.JSON(), nullable=True),
        sa.Column("job_insights", sa.JSON(), nullable=True),
        sa.Column("applicant_count", sa.String(), nullable=True),
        sa.Column("experience_needed", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("job_url", sa.String(), nullable=True),
        sa.Column("apply_url", sa.String(), nullable=True),
    )
    op.create_index("ix_job_listings_id", "job_listings", ["id"])
    op.create_index("ix_job_listings_posted_at", "job_listings", ["posted_at"])

    op.create_table(
        "saved_jobs",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column(
            "job_id",
            sa.String(),
            sa.ForeignKey("job_listings.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_saved_jobs_user_id", "saved_jobs", ["user_id"])

    if op.get_bind().dialect.name == "postgresql":
        op.execute(
            f"CREATE INDEX ix_job_listings_search ON job_listings USING GIN ({SEARCH_DOCUMENT})"
        )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP INDEX IF EXISTS ix_job_listings_search")
    op.drop_index("ix_saved_jobs_user_id", table_name="saved_jobs")
    op.drop_table("saved_jobs")
    op.drop_index("ix_job_listings_posted_at", table_name="job_listings")
    op.drop_index("ix_job_listings_id", table_name="job_listings")
    op.drop_table("job_listings")
