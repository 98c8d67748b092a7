"""Client-side state for the job feed.

All state lives in an immutable ``FeedState`` that only ``reduce`` changes.
``JobFeed`` owns the async side: it debounces search input, issues page
requests to a ``JobBackend``, and dispatches events with the results.

Each refresh takes a new request id. Results tagged with an older id are
dropped by the reducer, so a slow response for a superseded search can never
overwrite the rows of a newer one. Requests themselves are never aborted.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, FrozenSet, List, Optional, Set, Tuple, Union

import structlog

import schemas
from backend import JobBackend
from settings import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_FETCH_ERROR = "Failed to load job listings."
SIGN_IN_TO_SAVE = "Sign in to save jobs."


class FeedStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


@dataclass(frozen=True)
class FeedState:
    rows: Tuple[schemas.JobListingRow, ...] = ()
    saved_job_ids: FrozenSet[str] = frozenset()
    search_input: str = ""
    applied_search: str = ""
    saved_only: bool = False
    has_more: bool = False
    status: FeedStatus = FeedStatus.IDLE
    is_fetching_more: bool = False
    error: Optional[str] = None
    request_id: int = 0

    @property
    def is_loading(self) -> bool:
        return self.status == FeedStatus.LOADING


# --- Events ---
@dataclass(frozen=True)
class SearchInputChanged:
    value: str


@dataclass(frozen=True)
class RefreshStarted:
    request_id: int
    search: str
    saved_only: bool


@dataclass(frozen=True)
class LoadMoreStarted:
    pass


@dataclass(frozen=True)
class PageLoaded:
    request_id: int
    rows: Tuple[schemas.JobListingRow, ...]
    saved_job_ids: FrozenSet[str]
    has_more: bool
    append: bool = False


@dataclass(frozen=True)
class PageFailed:
    request_id: int
    message: str
    append: bool = False


@dataclass(frozen=True)
class RowReplaced:
    row: schemas.JobListingRow


@dataclass(frozen=True)
class SavedChanged:
    job_id: str
    saved: bool


@dataclass(frozen=True)
class ErrorDismissed:
    pass


FeedEvent = Union[
    SearchInputChanged,
    RefreshStarted,
    LoadMoreStarted,
    PageLoaded,
    PageFailed,
    RowReplaced,
    SavedChanged,
    ErrorDismissed,
]


def reduce(state: FeedState, event: FeedEvent) -> FeedState:
    if isinstance(event, SearchInputChanged):
        return replace(state, search_input=event.value)

    if isinstance(event, RefreshStarted):
        return replace(
            state,
            status=FeedStatus.LOADING,
            applied_search=event.search,
            saved_only=event.saved_only,
            request_id=event.request_id,
            is_fetching_more=False,
            error=None,
        )

    if isinstance(event, LoadMoreStarted):
        return replace(state, is_fetching_more=True, error=None)

    if isinstance(event, PageLoaded):
        if event.request_id != state.request_id:
            return state
        if event.append:
            return replace(
                state,
                rows=state.rows + event.rows,
                saved_job_ids=state.saved_job_ids | event.saved_job_ids,
                has_more=event.has_more,
                is_fetching_more=False,
                error=None,
            )
        return replace(
            state,
            rows=event.rows,
            saved_job_ids=event.saved_job_ids,
            has_more=event.has_more,
            status=FeedStatus.READY,
            error=None,
        )

    if isinstance(event, PageFailed):
        if event.request_id != state.request_id:
            return state
        if event.append:
            return replace(state, is_fetching_more=False, error=event.message)
        return replace(
            state,
            rows=(),
            saved_job_ids=frozenset(),
            has_more=False,
            status=FeedStatus.ERRORED,
            error=event.message,
        )

    if isinstance(event, RowReplaced):
        rows = tuple(event.row if row.id == event.row.id else row for row in state.rows)
        return replace(state, rows=rows)

    if isinstance(event, SavedChanged):
        if event.saved:
            return replace(state, saved_job_ids=state.saved_job_ids | {event.job_id})
        return replace(state, saved_job_ids=state.saved_job_ids - {event.job_id})

    if isinstance(event, ErrorDismissed):
        status = FeedStatus.READY if state.status == FeedStatus.ERRORED else state.status
        return replace(state, error=None, status=status)

    raise TypeError(f"Unknown feed event: {event!r}")


Listener = Callable[[FeedState], Any]


class JobFeed:
    """Coordinates one feed instance (search box, list and sentinel)."""

    def __init__(
        self,
        backend: JobBackend,
        user_id: Optional[str] = None,
        page_size: Optional[int] = None,
        debounce_seconds: Optional[float] = None,
        saved_only: bool = False,
    ):
        settings = get_settings()
        self.backend = backend
        self.user_id = user_id
        self.page_size = page_size or settings.page_size
        self.debounce_seconds = (
            settings.search_debounce_ms / 1000 if debounce_seconds is None else debounce_seconds
        )
        self.state = FeedState(saved_only=saved_only)
        self.pending_saves: Set[str] = set()

        self._listeners: List[Listener] = []
        self._request_seq = 0
        self._debounce_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @classmethod
    def from_result(
        cls,
        backend: JobBackend,
        result: schemas.JobListingsResult,
        user_id: Optional[str] = None,
        **kwargs,
    ) -> "JobFeed":
        """Seed a feed with an already fetched first page (server-rendered)."""
        feed = cls(backend, user_id=user_id, **kwargs)
        if result.error:
            message = result.error.message or DEFAULT_FETCH_ERROR
            feed.state = replace(feed.state, status=FeedStatus.ERRORED, error=message)
        else:
            feed.state = replace(
                feed.state,
                rows=tuple(result.rows),
                saved_job_ids=frozenset(result.saved_job_ids),
                has_more=result.has_more,
                status=FeedStatus.READY,
            )
        return feed

    # --- state plumbing ---
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, event: FeedEvent) -> FeedState:
        self.state = reduce(self.state, event)
        for listener in list(self._listeners):
            listener(self.state)
        return self.state

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> None:
        """Wait until no debounce timer or spawned request is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _filters(self, search: str, offset: int) -> schemas.JobListFilters:
        return schemas.JobListFilters(
            search_term=search or None,
            limit=self.page_size,
            offset=offset,
            saved_only=self.state.saved_only,
            user_id=self.user_id,
        )

    def _apply_page(self, request_id: int, result: schemas.JobListingsResult, append: bool) -> None:
        if request_id != self.state.request_id:
            logger.info("Discarding stale feed response", request_id=request_id, current=self.state.request_id)
            return

        if result.error:
            logger.warning("Feed request failed", error=result.error.message, append=append)
            self.dispatch(PageFailed(request_id, result.error.message or DEFAULT_FETCH_ERROR, append=append))
            return

        self.dispatch(
            PageLoaded(
                request_id,
                rows=tuple(result.rows),
                saved_job_ids=frozenset(result.saved_job_ids),
                has_more=result.has_more,
                append=append,
            )
        )

    # --- search ---
    def set_search_input(self, value: str) -> None:
        """Record a keystroke and restart the debounce window."""
        self.dispatch(SearchInputChanged(value))
        if self._debounce_task is not None:
            self._debounce_task.cancel()
        if self._closed:
            return
        self._debounce_task = self._spawn(self._apply_search_after_delay(value))

    def clear_search(self) -> None:
        self.set_search_input("")

    async def _apply_search_after_delay(self, value: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past this point a new keystroke no longer cancels the request
        self._debounce_task = None
        if value != self.state.applied_search:
            await self.refresh(search=value)

    # --- loading ---
    async def refresh(self, search: Optional[str] = None, saved_only: Optional[bool] = None) -> FeedState:
        """Reload from offset 0 with ``search`` (default: the applied search)."""
        search = self.state.applied_search if search is None else search
        saved_only = self.state.saved_only if saved_only is None else saved_only

        self._request_seq += 1
        request_id = self._request_seq
        self.dispatch(RefreshStarted(request_id, search, saved_only))

        result = await self.backend.list_jobs(self._filters(search, offset=0))
        self._apply_page(request_id, result, append=False)
        return self.state

    async def load_more(self) -> bool:
        """Fetch the next page. Returns False when the call was a no-op."""
        state = self.state
        if state.is_fetching_more or state.is_loading or not state.has_more:
            return False

        request_id = state.request_id
        self.dispatch(LoadMoreStarted())
        result = await self.backend.list_jobs(self._filters(state.applied_search, offset=len(state.rows)))
        self._apply_page(request_id, result, append=True)
        return True

    async def on_sentinel_visible(self) -> bool:
        if self._closed or not self.state.has_more:
            return False
        return await self.load_more()

    async def set_saved_only(self, saved_only: bool) -> FeedState:
        if saved_only == self.state.saved_only and self.state.status != FeedStatus.IDLE:
            return self.state
        return await self.refresh(saved_only=saved_only)

    def dismiss_error(self) -> None:
        self.dispatch(ErrorDismissed())

    # --- mutations ---
    async def update_job(self, job_id: str, fields: Any) -> schemas.JobListingUpdateResult:
        """Persist tracking fields; the row is replaced only with the acknowledged version."""
        result = await self.backend.update_job(job_id, fields)
        if result.error:
            logger.warning("Job update failed", job_id=job_id, error=result.error.message)
            return result
        if result.row is not None:
            self.dispatch(RowReplaced(result.row))
        return result

    def is_saved(self, job_id: str) -> bool:
        return job_id in self.state.saved_job_ids

    async def toggle_saved(self, job_id: str) -> schemas.MutationResult:
        if not self.user_id:
            return schemas.MutationResult(
                ok=False, error=schemas.BackendError(message=SIGN_IN_TO_SAVE, code="unauthenticated")
            )
        if job_id in self.pending_saves:
            return schemas.MutationResult(ok=False)

        self.pending_saves.add(job_id)
        try:
            if self.is_saved(job_id):
                return await self._unsave(job_id)
            return await self._save(job_id)
        finally:
            self.pending_saves.discard(job_id)

    async def _save(self, job_id: str) -> schemas.MutationResult:
        self.dispatch(SavedChanged(job_id, True))
        result = await self.backend.save_job(self.user_id, job_id)
        if result.error:
            logger.warning("Save failed, rolling back", job_id=job_id, error=result.error.message)
            self.dispatch(SavedChanged(job_id, False))
        return result

    async def _unsave(self, job_id: str) -> schemas.MutationResult:
        result = await self.backend.unsave_job(self.user_id, job_id)
        if result.error:
            logger.warning("Unsave failed", job_id=job_id, error=result.error.message)
            return result
        if self.state.saved_only:
            # The row has to leave a filtered list; has_more must be re-derived too
            await self.refresh()
        else:
            self.dispatch(SavedChanged(job_id, False))
        return result

    def close(self) -> None:
        """Stop reacting to input and sentinel visibility; in-flight requests still land."""
        self._closed = True
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
