"""Per-field inline editing for the job table.

An ``EditableCell`` models one popover editor: a draft seeded from the
row's current value, a guarded submit that skips the network when nothing
changed, a transient success flag and a persistent inline error.
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import structlog

import schemas
from helpers import (
    format_absolute,
    from_date_input_value,
    get_priority_tone,
    get_status_tone,
    now_input_value,
    parse_datetime,
    to_date_input_value,
)
from settings import get_settings

logger = structlog.get_logger(__name__)

STATUS_SUGGESTIONS = [
    "New",
    "Interested",
    "Applied",
    "Interviewing",
    "Offer",
    "Watching",
    "Rejected",
]

PRIORITY_SUGGESTIONS = ["High", "Medium", "Low"]

TEXT_FIELDS = ("status", "priority", "notes")
DATE_FIELDS = ("applied_at", "last_updated")

_FAILURE_LABELS = {
    "status": "status",
    "priority": "priority",
    "applied_at": "date",
    "last_updated": "date",
    "notes": "notes",
}

UpdateHandler = Callable[[str, Dict[str, Any]], Awaitable[schemas.JobListingUpdateResult]]


class TransientFlag:
    """A flag that switches itself off ``duration`` seconds after ``show()``."""

    def __init__(self, duration: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.duration = get_settings().transient_flag_seconds if duration is None else duration
        self.clock = clock
        self._shown_at: Optional[float] = None

    def show(self) -> None:
        self._shown_at = self.clock()

    def hide(self) -> None:
        self._shown_at = None

    @property
    def is_visible(self) -> bool:
        if self._shown_at is None:
            return False
        return self.clock() - self._shown_at < self.duration


def _same(field: str, left: Any, right: Any) -> bool:
    if field in DATE_FIELDS:
        return parse_datetime(left) == parse_datetime(right)
    return (left or None) == (right or None)


class EditableCell:
    def __init__(
        self,
        job_id: str,
        field: str,
        value: Any,
        on_update: UpdateHandler,
        clock: Callable[[], float] = time.monotonic,
    ):
        if field not in schemas.EDITABLE_FIELDS:
            raise ValueError(f"{field!r} is not an editable field")
        self.job_id = job_id
        self.field = field
        self.value = value
        self.on_update = on_update
        self.success = TransientFlag(clock=clock)

        self.is_open = False
        self.is_saving = False
        self.error_message: Optional[str] = None
        self.draft = self._draft_for(value)

    @classmethod
    def for_row(cls, row: schemas.JobListingRow, field: str, on_update: UpdateHandler, **kwargs) -> "EditableCell":
        return cls(row.id, field, getattr(row, field), on_update, **kwargs)

    def _draft_for(self, value: Any) -> str:
        if self.field in DATE_FIELDS:
            return to_date_input_value(value)
        return value or ""

    def _normalise(self, draft: str) -> Any:
        if self.field in DATE_FIELDS:
            return from_date_input_value(draft) if draft else None
        trimmed = draft.strip()
        return trimmed or None

    # --- display ---
    @property
    def display_value(self) -> str:
        if self.field == "status":
            return get_status_tone(self.value).label if self.value else "--"
        if self.field == "priority":
            return get_priority_tone(self.value).label if self.value else "--"
        if self.field in DATE_FIELDS:
            return format_absolute(self.value)
        return self.value if self.value and self.value.strip() else "--"

    @property
    def success_visible(self) -> bool:
        return self.success.is_visible

    @property
    def suggestions(self) -> List[str]:
        if self.field == "status":
            return list(STATUS_SUGGESTIONS)
        if self.field == "priority":
            return list(PRIORITY_SUGGESTIONS)
        return []

    # --- popover lifecycle ---
    def open(self) -> None:
        if self.is_saving:
            return
        self.is_open = True
        self.success.hide()
        self.error_message = None
        self.draft = self._draft_for(self.value)

    def cancel(self) -> None:
        if self.is_saving:
            return
        self.success.hide()
        self.is_open = False
        self.error_message = None
        self.draft = self._draft_for(self.value)

    def set_draft(self, draft: str) -> None:
        if not self.is_saving:
            self.draft = draft

    def set_now(self, now: Optional[datetime] = None) -> None:
        if self.field in DATE_FIELDS and not self.is_saving:
            self.draft = now_input_value(now)

    def sync(self, value: Any) -> None:
        """Take a fresh value from the row; ignored while the editor is open."""
        self.value = value
        if not self.is_open:
            self.draft = self._draft_for(value)

    # --- persistence ---
    async def submit(self) -> bool:
        return await self._persist(self._normalise(self.draft))

    async def clear(self) -> bool:
        self.draft = ""
        return await self._persist(None)

    async def _persist(self, next_value: Any) -> bool:
        if self.is_saving:
            return False

        if _same(self.field, self.value, next_value):
            self.is_open = False
            self.success.show()
            return True

        self.is_saving = True
        self.error_message = None
        try:
            result = await self.on_update(self.job_id, {self.field: next_value})
        finally:
            self.is_saving = False

        if result.error:
            fallback = f"Failed to update {_FAILURE_LABELS[self.field]}."
            self.error_message = result.error.message or fallback
            logger.info("Inline edit rejected", job_id=self.job_id, field=self.field)
            return False

        acknowledged = getattr(result.row, self.field) if result.row is not None else next_value
        self.value = acknowledged
        self.draft = self._draft_for(acknowledged)
        self.is_open = False
        self.success.show()
        return True


def _unique_labels(labels: Iterable[str]) -> List[str]:
    return sorted(set(labels), key=str.lower)


def status_options(rows: Iterable[schemas.JobListingRow]) -> List[str]:
    """Distinct status labels present in ``rows`` for the column filter."""
    return _unique_labels(get_status_tone(row.status).label for row in rows)


def priority_options(rows: Iterable[schemas.JobListingRow]) -> List[str]:
    return _unique_labels(get_priority_tone(row.priority).label for row in rows)
