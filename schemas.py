from datetime import datetime
from typing import Any, List, NewType, Optional

from pydantic import BaseModel, ConfigDict, Field

# Free-text tracking values. Any string is accepted by the backend; suggestion
# lists in `editable` are UI affordances only.
Status = NewType("Status", str)
Priority = NewType("Priority", str)

EDITABLE_FIELDS = ("status", "priority", "applied_at", "last_updated", "notes")


class BackendError(BaseModel):
    message: str
    code: Optional[str] = None


# --- Rows ---
class JobListingRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    company: str
    company_url: Optional[str] = None
    location: Optional[str] = None
    work_type: Optional[str] = None
    work_arrangement: Optional[str] = None
    salary: Optional[str] = None
    description: Optional[str] = None
    description_md: Optional[str] = None
    skills: Optional[List[str]] = None
    benefits: Optional[List[str]] = None
    job_insights: Optional[List[str]] = None
    applicant_count: Optional[str] = None
    experience_needed: Optional[str] = None
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    applied_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    notes: Optional[str] = None
    posted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    source: Optional[str] = None
    job_url: Optional[str] = None
    apply_url: Optional[str] = None


class JobListingUpdate(BaseModel):
    """Patch payload. Only fields that were explicitly set are sent;
    an explicit ``None`` clears the column."""

    model_config = ConfigDict(extra="ignore")

    status: Optional[Status] = None
    priority: Optional[Priority] = None
    applied_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    notes: Optional[str] = None


# --- Queries ---
class JobListFilters(BaseModel):
    search_term: Optional[str] = None
    limit: int = 9
    offset: int = Field(default=0, ge=0)
    saved_only: bool = False
    user_id: Optional[str] = None


# --- Structured results (errors are data, never raised) ---
class JobListingsResult(BaseModel):
    rows: List[JobListingRow] = Field(default_factory=list)
    saved_job_ids: List[str] = Field(default_factory=list)
    has_more: bool = False
    error: Optional[BackendError] = None


class JobListingDetailResult(BaseModel):
    row: Optional[JobListingRow] = None
    is_saved: bool = False
    error: Optional[BackendError] = None


class JobListingUpdateResult(BaseModel):
    row: Optional[JobListingRow] = None
    error: Optional[BackendError] = None


class MutationResult(BaseModel):
    ok: bool = True
    error: Optional[BackendError] = None


class SavedJobIdsResult(BaseModel):
    job_ids: List[str] = Field(default_factory=list)
    error: Optional[BackendError] = None


def error_message(error: Optional[BackendError], fallback: str) -> Optional[str]:
    """Return the message to display for ``error`` (``None`` when there is none)."""
    if error is None:
        return None
    return error.message or fallback


def dump_update(fields: Any) -> dict:
    """Normalise an update payload to the dict of whitelisted, explicitly set keys."""
    if not isinstance(fields, JobListingUpdate):
        allowed = {k: v for k, v in dict(fields or {}).items() if k in EDITABLE_FIELDS}
        fields = JobListingUpdate.model_validate(allowed)
    return fields.model_dump(exclude_unset=True)
