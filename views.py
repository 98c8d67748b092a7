"""View models built from job listing rows.

These are recomputed on every render and never persisted. Construction is
total: any missing optional field maps to a placeholder.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, List, Optional
from urllib.parse import quote

from pydantic import BaseModel

from helpers import (
    Tone,
    format_absolute,
    format_posted_at,
    format_salary,
    get_domain_from_url,
    get_initials,
    get_priority_tone,
    get_status_tone,
    summarise_description,
)
from schemas import JobListingRow

if TYPE_CHECKING:  # pragma: no cover
    from feed import FeedState

PLACEHOLDER = "--"
SOURCE_UNKNOWN = "Source unknown"
NO_DESCRIPTION = "No description provided."

CARD_SKILL_LIMIT = 6
ROW_SKILL_LIMIT = 4

END_OF_RESULTS = "You have reached the end of the results."


class Badge(BaseModel):
    key: str
    label: str


class ToneView(BaseModel):
    label: str
    tone: str

    @classmethod
    def from_tone(cls, tone: Tone) -> "ToneView":
        return cls(label=tone.label, tone=tone.tone)


class JobCardView(BaseModel):
    id: str
    title: str
    company_name: str
    company_initials: str
    company_url: Optional[str] = None
    badges: List[Badge]
    description: str
    skills: List[str]
    extra_skill_count: int
    posted_at: Optional[str] = None
    applied_at: Optional[str] = None
    last_updated: Optional[str] = None
    source: str
    listing_url: Optional[str] = None
    apply_url: Optional[str] = None
    notes: Optional[str] = None
    detail_href: str
    is_saved: bool = False


class JobRowView(BaseModel):
    id: str
    title: str
    company: str
    location: str
    work_type: str
    work_arrangement: str
    experience_needed: str
    salary: str
    skills: str
    status: ToneView
    status_label: str
    priority: ToneView
    priority_label: str
    posted_at: str
    applied_at: str
    last_updated: str
    source: str
    notes: str
    detail_href: str
    is_saved: bool = False


class JobDetailView(BaseModel):
    id: str
    title: str
    company: str
    company_initials: str
    company_url: Optional[str] = None
    location: Optional[str] = None
    work_type: Optional[str] = None
    salary: Optional[str] = None
    posted_at: Optional[str] = None
    applicant_count: Optional[str] = None
    description: str
    description_is_markdown: bool
    skills: List[str]
    benefits: List[str]
    job_insights: List[str]
    status: ToneView
    priority: ToneView
    applied_at: str
    last_updated: str
    notes: Optional[str] = None
    source: str
    listing_url: Optional[str] = None
    apply_href: Optional[str] = None
    is_saved: bool = False
    error_message: Optional[str] = None


class EmptyStateView(BaseModel):
    title: str
    description: str


def detail_href(job_id: str) -> str:
    return f"/dashboard/jobs/{quote(job_id, safe='')}"


def _or_placeholder(value: Optional[str]) -> str:
    return value if value else PLACEHOLDER


def _source(row: JobListingRow) -> str:
    return row.source or get_domain_from_url(row.job_url) or SOURCE_UNKNOWN


def build_job_card(row: JobListingRow, is_saved: bool = False, now: Optional[datetime] = None) -> JobCardView:
    salary = format_salary(row.salary)
    candidates = [
        ("location", row.location),
        ("worktype", row.work_type),
        ("arrangement", row.work_arrangement),
        ("salary", salary),
        ("status", f"Status: {row.status}" if row.status else None),
        ("priority", f"Priority: {row.priority}" if row.priority else None),
    ]
    badges = [Badge(key=f"{row.id}-{key}", label=label) for key, label in candidates if label]
    skills = row.skills or []

    return JobCardView(
        id=row.id,
        title=row.title,
        company_name=row.company,
        company_initials=get_initials(row.company),
        company_url=row.company_url,
        badges=badges,
        description=summarise_description(row.description_md or row.description) or NO_DESCRIPTION,
        skills=skills[:CARD_SKILL_LIMIT],
        extra_skill_count=max(len(skills) - CARD_SKILL_LIMIT, 0),
        posted_at=format_posted_at(row.posted_at, now=now),
        applied_at=format_posted_at(row.applied_at, now=now),
        last_updated=format_posted_at(row.last_updated, now=now),
        source=_source(row),
        listing_url=row.job_url,
        apply_url=row.apply_url,
        notes=row.notes,
        detail_href=detail_href(row.id),
        is_saved=is_saved,
    )


def summarise_skills(skills: Optional[List[str]], limit: int = ROW_SKILL_LIMIT) -> str:
    if not skills:
        return PLACEHOLDER
    summary = ", ".join(skills[:limit])
    if len(skills) > limit:
        summary += f" +{len(skills) - limit}"
    return summary


def build_job_row(row: JobListingRow, is_saved: bool = False, now: Optional[datetime] = None) -> JobRowView:
    status = get_status_tone(row.status)
    priority = get_priority_tone(row.priority)
    notes = row.notes if row.notes and row.notes.strip() else None

    return JobRowView(
        id=row.id,
        title=row.title,
        company=_or_placeholder(row.company),
        location=_or_placeholder(row.location),
        work_type=_or_placeholder(row.work_type),
        work_arrangement=_or_placeholder(row.work_arrangement),
        experience_needed=_or_placeholder(row.experience_needed),
        salary=_or_placeholder(format_salary(row.salary)),
        skills=summarise_skills(row.skills),
        status=ToneView.from_tone(status),
        status_label=status.label if row.status else PLACEHOLDER,
        priority=ToneView.from_tone(priority),
        priority_label=priority.label if row.priority else PLACEHOLDER,
        posted_at=format_posted_at(row.posted_at, now=now) or PLACEHOLDER,
        applied_at=format_absolute(row.applied_at),
        last_updated=format_absolute(row.last_updated),
        source=_or_placeholder(row.source),
        notes=_or_placeholder(notes),
        detail_href=detail_href(row.id),
        is_saved=is_saved,
    )


def build_job_detail(
    row: JobListingRow,
    is_saved: bool = False,
    error_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> JobDetailView:
    markdown = (row.description_md or "").strip()
    plain = (row.description or "").strip()

    return JobDetailView(
        id=row.id,
        title=row.title,
        company=row.company,
        company_initials=get_initials(row.company),
        company_url=row.company_url,
        location=row.location,
        work_type=row.work_type,
        salary=format_salary(row.salary),
        posted_at=format_posted_at(row.posted_at, now=now),
        applicant_count=row.applicant_count,
        description=markdown or plain or NO_DESCRIPTION,
        description_is_markdown=bool(markdown),
        skills=row.skills or [],
        benefits=row.benefits or [],
        job_insights=row.job_insights or [],
        status=ToneView.from_tone(get_status_tone(row.status)),
        priority=ToneView.from_tone(get_priority_tone(row.priority)),
        applied_at=format_absolute(row.applied_at),
        last_updated=format_absolute(row.last_updated),
        notes=row.notes,
        source=get_domain_from_url(row.job_url) or SOURCE_UNKNOWN,
        listing_url=row.job_url,
        apply_href=row.apply_url or row.job_url,
        is_saved=is_saved,
        error_message=error_message,
    )


def build_job_rows(
    rows: Iterable[JobListingRow], saved_job_ids: Iterable[str] = (), now: Optional[datetime] = None
) -> List[JobRowView]:
    saved = set(saved_job_ids)
    return [build_job_row(row, is_saved=row.id in saved, now=now) for row in rows]


# --- Empty states ---
NO_LISTINGS = EmptyStateView(
    title="No job listings available",
    description="Add records to the job_listings table to populate this dashboard.",
)
NO_MATCHES = EmptyStateView(
    title="No matching job listings",
    description="Try a different search term or clear the search.",
)


def empty_state(state: "FeedState") -> Optional[EmptyStateView]:
    """Empty-state panel for the feed, or ``None`` when something else is shown."""
    if state.is_loading or state.rows or state.error:
        return None
    return NO_MATCHES if state.applied_search else NO_LISTINGS


def table_empty_message(is_loading: bool, has_base_rows: bool) -> str:
    if is_loading:
        return "Loading listings..."
    if has_base_rows:
        return "No listings match the selected filters."
    return "No listings available yet."


def show_end_of_results(state: "FeedState") -> bool:
    return not state.has_more and bool(state.rows) and not state.is_loading
