from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from sqlalchemy.orm import Session
import structlog

import crud
import schemas
import views
from auth import get_current_user_id, require_user_id
from database import create_db_and_tables, get_db
from feed import DEFAULT_FETCH_ERROR, FeedState, FeedStatus
from editable import PRIORITY_SUGGESTIONS, STATUS_SUGGESTIONS
from observability import METRICS_NAMESPACE, init_observability, metric_scope
from request_id_middleware import RequestIdMiddleware
from settings import Settings, get_settings


# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

# Create DB tables on startup
create_db_and_tables()

app = FastAPI(
    title="Job Board Dashboard",
    description="Job listing feed, detail pages and tracking updates",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


class FeedResponse(BaseModel):
    jobs: List[views.JobRowView]
    has_more: bool
    error: Optional[str] = None
    empty_state: Optional[views.EmptyStateView] = None
    empty_message: str
    end_of_results: bool


class SavedResponse(BaseModel):
    job_id: str
    saved: bool


class SavedJobsResponse(BaseModel):
    job_ids: List[str]


@metric_scope
async def record_job_mutation(action: str, job_id: str, ok: bool, metrics=None):
    """Publish one CloudWatch embedded metric per tracking mutation."""
    metrics.set_namespace(METRICS_NAMESPACE)
    metrics.put_dimensions({"Action": action})
    metrics.put_metric(action if ok else "job_mutation_failed", 1, "Count")
    metrics.set_property("job_id", job_id)


def _mutation_http_error(error: schemas.BackendError) -> HTTPException:
    if error.code == "not_found":
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job listing not found")
    if error.code == "invalid":
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=error.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)


def _feed_state(result: schemas.JobListingsResult, search: Optional[str]) -> FeedState:
    """Snapshot of a freshly loaded first page, used for server-side rendering."""
    if result.error:
        return FeedState(
            applied_search=search or "",
            status=FeedStatus.ERRORED,
            error=result.error.message or DEFAULT_FETCH_ERROR,
        )
    return FeedState(
        rows=tuple(result.rows),
        saved_job_ids=frozenset(result.saved_job_ids),
        applied_search=search or "",
        has_more=result.has_more,
        status=FeedStatus.READY,
    )


def _list(
    db: Session,
    user_id: Optional[str],
    q: Optional[str],
    limit: Optional[int],
    offset: int,
    saved_only: bool,
    settings: Settings,
) -> schemas.JobListingsResult:
    filters = schemas.JobListFilters(
        search_term=q,
        limit=limit or settings.page_size,
        offset=offset,
        saved_only=saved_only,
        user_id=user_id,
    )
    return crud.list_jobs(db, filters)


@app.get("/", include_in_schema=False)
async def read_root():
    return RedirectResponse(url="/dashboard")


@app.get("/healthz", tags=["Health"])
def healthz():
    return {"status": "ok"}


# --- Job listing API ---
@app.get("/api/jobs", response_model=schemas.JobListingsResult, tags=["Jobs"])
def list_jobs_endpoint(
    q: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    saved_only: bool = False,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Raw page of rows. Query failures come back in ``error`` with no rows."""
    return _list(db, user_id, q, limit, offset, saved_only, settings)


@app.get("/api/feed", response_model=FeedResponse, tags=["Jobs"])
def feed_endpoint(
    q: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    saved_only: bool = False,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Table-ready rows plus the empty-state and end-of-list markers."""
    result = _list(db, user_id, q, limit, offset, saved_only, settings)
    state = _feed_state(result, q)
    return FeedResponse(
        jobs=views.build_job_rows(state.rows, state.saved_job_ids),
        has_more=state.has_more,
        error=state.error,
        empty_state=views.empty_state(state),
        empty_message=views.table_empty_message(state.is_loading, bool(state.rows)),
        end_of_results=views.show_end_of_results(state),
    )


# Job ids are opaque and may contain "/", hence the path converters below
@app.get("/api/jobs/{job_id:path}", response_model=schemas.JobListingDetailResult, tags=["Jobs"])
def get_job_endpoint(
    job_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = crud.get_job_by_id(db, job_id, user_id)
    if result.row is None and result.error is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job listing not found")
    if result.row is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error.message)
    return result


@app.patch("/api/jobs/{job_id:path}", response_model=schemas.JobListingRow, tags=["Jobs"])
async def update_job_endpoint(
    job_id: str,
    update: schemas.JobListingUpdate,
    db: Session = Depends(get_db),
):
    """Patch tracking fields (status, priority, applied_at, last_updated, notes)."""
    result = crud.update_job(db, job_id, update)
    if result.error:
        logger.warning("Job update failed", job_id=job_id, error=result.error.message)
        await record_job_mutation("jobs_updated", job_id, ok=False)
        raise _mutation_http_error(result.error)

    if result.row is None:
        # Nothing to change; answer with the current row
        current = crud.get_job_by_id(db, job_id)
        if current.row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job listing not found")
        return current.row

    await record_job_mutation("jobs_updated", job_id, ok=True)
    return result.row


@app.put("/api/jobs/{job_id:path}/save", response_model=SavedResponse, tags=["Saved jobs"])
async def save_job_endpoint(
    job_id: str,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    result = crud.save_job(db, user_id, job_id)
    await record_job_mutation("jobs_saved", job_id, ok=result.ok)
    if result.error:
        raise _mutation_http_error(result.error)
    return SavedResponse(job_id=job_id, saved=True)


@app.delete("/api/jobs/{job_id:path}/save", response_model=SavedResponse, tags=["Saved jobs"])
async def unsave_job_endpoint(
    job_id: str,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    result = crud.unsave_job(db, user_id, job_id)
    await record_job_mutation("jobs_unsaved", job_id, ok=result.ok)
    if result.error:
        raise _mutation_http_error(result.error)
    return SavedResponse(job_id=job_id, saved=False)


@app.get("/api/saved-jobs", response_model=SavedJobsResponse, tags=["Saved jobs"])
def saved_jobs_endpoint(
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    result = crud.get_saved_job_ids(db, user_id)
    if result.error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error.message)
    return SavedJobsResponse(job_ids=result.job_ids)


# --- Pages ---
@app.get("/dashboard", response_class=HTMLResponse, tags=["Pages"])
def dashboard_page(
    request: Request,
    q: Optional[str] = None,
    saved_only: bool = False,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Server-rendered first page of the feed."""
    result = _list(db, user_id, q, None, 0, saved_only, settings)
    state = _feed_state(result, q)
    saved = state.saved_job_ids
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "cards": [views.build_job_card(row, is_saved=row.id in saved) for row in state.rows],
            "rows": views.build_job_rows(state.rows, saved),
            "state": state,
            "empty_state": views.empty_state(state),
            "empty_message": views.table_empty_message(state.is_loading, bool(state.rows)),
            "end_of_results": views.END_OF_RESULTS if views.show_end_of_results(state) else None,
            "status_suggestions": STATUS_SUGGESTIONS,
            "priority_suggestions": PRIORITY_SUGGESTIONS,
            "is_signed_in": user_id is not None,
        },
    )


@app.get("/dashboard/jobs/{job_id:path}", response_class=HTMLResponse, tags=["Pages"])
def job_detail_page(
    request: Request,
    job_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = crud.get_job_by_id(db, job_id, user_id)
    if result.row is None:
        if result.error is not None:
            logger.warning("Job detail lookup failed", job_id=job_id, error=result.error.message)
        return templates.TemplateResponse(
            request, "not_found.html", {}, status_code=status.HTTP_404_NOT_FOUND
        )

    error_message = schemas.error_message(result.error, "Failed to load saved state.")
    job = views.build_job_detail(result.row, is_saved=result.is_saved, error_message=error_message)
    return templates.TemplateResponse(request, "job_detail.html", {"job": job})


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
