from typing import Any, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, func, literal_column, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import models
import schemas
from helpers import build_search_query, search_tokens

logger = structlog.get_logger(__name__)

_SEARCH_COLUMNS = (
    models.JobListing.title,
    models.JobListing.company,
    models.JobListing.location,
    models.JobListing.description,
)

_TS_CONFIG = literal_column("'english'::regconfig")


def _backend_error(db: Session, exc: Exception, action: str) -> schemas.BackendError:
    db.rollback()
    logger.error("Backend query failed", action=action, error=str(exc))
    message = str(getattr(exc, "orig", None) or exc)
    return schemas.BackendError(message=message, code="database_error")


def _not_found(job_id: str) -> schemas.BackendError:
    return schemas.BackendError(message=f"Job listing {job_id} not found.", code="not_found")


def _escape_like(token: str) -> str:
    return token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_clause(db: Session, text_query: str):
    """Full-text filter for a ``tok:* & tok:*`` query.

    PostgreSQL uses its text search (the migration adds a matching GIN index);
    other dialects fall back to an AND of case-insensitive substring matches.
    """
    if db.get_bind().dialect.name == "postgresql":
        # Must stay identical to the expression indexed by the 0001 migration
        parts = [func.coalesce(column, "") for column in _SEARCH_COLUMNS]
        document = parts[0]
        for part in parts[1:]:
            document = document + " " + part
        return func.to_tsvector(_TS_CONFIG, document).op("@@")(
            func.to_tsquery(_TS_CONFIG, text_query)
        )

    clauses = []
    for token in search_tokens(text_query):
        pattern = f"%{_escape_like(token)}%"
        clauses.append(or_(*(column.ilike(pattern, escape="\\") for column in _SEARCH_COLUMNS)))
    return and_(*clauses)


def _ordered(query):
    return query.order_by(
        models.JobListing.posted_at.desc().nullslast(), models.JobListing.id
    )


# --- Listing ---
def list_jobs(db: Session, filters: Optional[schemas.JobListFilters] = None) -> schemas.JobListingsResult:
    """Fetch one page of listings, newest first.

    Asks for ``limit + 1`` rows so ``has_more`` can be decided without a count.
    """
    filters = filters or schemas.JobListFilters()
    limit = max(filters.limit, 1)
    text_query = build_search_query(filters.search_term)

    if filters.saved_only:
        return _list_saved_jobs(db, filters.user_id, text_query, filters.offset, limit)
    return _list_all_jobs(db, filters.user_id, text_query, filters.offset, limit)


def _list_all_jobs(
    db: Session, user_id: Optional[str], text_query: Optional[str], offset: int, limit: int
) -> schemas.JobListingsResult:
    query = db.query(models.JobListing)
    if text_query:
        query = query.filter(_search_clause(db, text_query))

    try:
        rows = _ordered(query).offset(offset).limit(limit + 1).all()
    except SQLAlchemyError as exc:
        return schemas.JobListingsResult(error=_backend_error(db, exc, "list_jobs"))

    has_more = len(rows) > limit
    rows = rows[:limit]
    result = schemas.JobListingsResult(
        rows=[schemas.JobListingRow.model_validate(row) for row in rows],
        has_more=has_more,
    )

    if not user_id or not rows:
        return result

    try:
        saved = (
            db.query(models.SavedJob.job_id)
            .filter(
                models.SavedJob.user_id == user_id,
                models.SavedJob.job_id.in_([row.id for row in rows]),
            )
            .all()
        )
    except SQLAlchemyError as exc:
        # Rows are still usable; only the saved markers are missing
        result.error = _backend_error(db, exc, "list_jobs.saved_lookup")
        return result

    result.saved_job_ids = [job_id for (job_id,) in saved]
    return result


def _list_saved_jobs(
    db: Session, user_id: Optional[str], text_query: Optional[str], offset: int, limit: int
) -> schemas.JobListingsResult:
    if not user_id:
        return schemas.JobListingsResult()

    query = (
        db.query(models.JobListing)
        .join(models.SavedJob, models.SavedJob.job_id == models.JobListing.id)
        .filter(models.SavedJob.user_id == user_id)
    )
    if text_query:
        query = query.filter(_search_clause(db, text_query))

    try:
        rows = _ordered(query).offset(offset).limit(limit + 1).all()
    except SQLAlchemyError as exc:
        return schemas.JobListingsResult(error=_backend_error(db, exc, "list_saved_jobs"))

    has_more = len(rows) > limit
    rows = rows[:limit]
    return schemas.JobListingsResult(
        rows=[schemas.JobListingRow.model_validate(row) for row in rows],
        saved_job_ids=[row.id for row in rows],
        has_more=has_more,
    )


# --- Detail ---
def get_job_by_id(db: Session, job_id: str, user_id: Optional[str] = None) -> schemas.JobListingDetailResult:
    """Single listing plus whether ``user_id`` saved it. Missing rows are not errors."""
    try:
        job = db.get(models.JobListing, job_id)
    except SQLAlchemyError as exc:
        return schemas.JobListingDetailResult(error=_backend_error(db, exc, "get_job_by_id"))

    if job is None:
        return schemas.JobListingDetailResult()

    row = schemas.JobListingRow.model_validate(job)
    if not user_id:
        return schemas.JobListingDetailResult(row=row)

    try:
        saved = db.get(models.SavedJob, (user_id, job_id))
    except SQLAlchemyError as exc:
        return schemas.JobListingDetailResult(
            row=row, error=_backend_error(db, exc, "get_job_by_id.saved_lookup")
        )

    return schemas.JobListingDetailResult(row=row, is_saved=saved is not None)


def get_saved_job_ids(db: Session, user_id: str) -> schemas.SavedJobIdsResult:
    """Ids of every job ``user_id`` saved, most recently saved first."""
    try:
        rows = (
            db.query(models.SavedJob.job_id)
            .filter(models.SavedJob.user_id == user_id)
            .order_by(models.SavedJob.created_at.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        return schemas.SavedJobIdsResult(error=_backend_error(db, exc, "get_saved_job_ids"))
    return schemas.SavedJobIdsResult(job_ids=[job_id for (job_id,) in rows])


# --- Mutations ---
def update_job(db: Session, job_id: str, fields: Any) -> schemas.JobListingUpdateResult:
    """Patch the tracking fields of a listing.

    Keys outside the editable whitelist and keys that were never set are
    dropped; when nothing is left the database is not touched at all.
    """
    try:
        updates = schemas.dump_update(fields)
    except ValidationError as exc:
        return schemas.JobListingUpdateResult(
            error=schemas.BackendError(message=str(exc), code="invalid")
        )

    if not updates:
        return schemas.JobListingUpdateResult()

    try:
        job = db.get(models.JobListing, job_id)
        if job is None:
            return schemas.JobListingUpdateResult(error=_not_found(job_id))

        for key, value in updates.items():
            setattr(job, key, value)
        db.add(job)
        db.commit()
        db.refresh(job)
    except SQLAlchemyError as exc:
        return schemas.JobListingUpdateResult(error=_backend_error(db, exc, "update_job"))

    logger.info("Job listing updated", job_id=job_id, fields=sorted(updates))
    return schemas.JobListingUpdateResult(row=schemas.JobListingRow.model_validate(job))


def save_job(db: Session, user_id: str, job_id: str) -> schemas.MutationResult:
    """Bookmark a job for a user. Saving an already saved job is a no-op."""
    try:
        if db.get(models.JobListing, job_id) is None:
            return schemas.MutationResult(ok=False, error=_not_found(job_id))
        if db.get(models.SavedJob, (user_id, job_id)) is None:
            db.add(models.SavedJob(user_id=user_id, job_id=job_id))
            db.commit()
    except IntegrityError as exc:
        # Another session saved the same pair between the lookup and the insert
        db.rollback()
        try:
            exists = (
                db.query(models.SavedJob.job_id)
                .filter(models.SavedJob.user_id == user_id, models.SavedJob.job_id == job_id)
                .first()
            )
        except SQLAlchemyError as lookup_exc:
            return schemas.MutationResult(ok=False, error=_backend_error(db, lookup_exc, "save_job"))
        if exists is None:
            return schemas.MutationResult(ok=False, error=_backend_error(db, exc, "save_job"))
    except SQLAlchemyError as exc:
        return schemas.MutationResult(ok=False, error=_backend_error(db, exc, "save_job"))

    logger.info("Job saved", user_id=user_id, job_id=job_id)
    return schemas.MutationResult()


def unsave_job(db: Session, user_id: str, job_id: str) -> schemas.MutationResult:
    """Remove a bookmark. Removing one that does not exist succeeds."""
    try:
        deleted = (
            db.query(models.SavedJob)
            .filter(models.SavedJob.user_id == user_id, models.SavedJob.job_id == job_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        return schemas.MutationResult(ok=False, error=_backend_error(db, exc, "unsave_job"))

    logger.info("Job unsaved", user_id=user_id, job_id=job_id, deleted=deleted)
    return schemas.MutationResult()
