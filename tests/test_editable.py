from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

import schemas
from editable import (
    PRIORITY_SUGGESTIONS,
    STATUS_SUGGESTIONS,
    EditableCell,
    TransientFlag,
    priority_options,
    status_options,
)


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_row(job_id="job-1", **fields) -> schemas.JobListingRow:
    values = {"title": "Backend Engineer", "company": "Acme Corp"}
    values.update(fields)
    return schemas.JobListingRow(id=job_id, **values)


def acknowledged(**fields) -> schemas.JobListingUpdateResult:
    return schemas.JobListingUpdateResult(row=make_row(**fields))


def rejected(message="") -> schemas.JobListingUpdateResult:
    return schemas.JobListingUpdateResult(error=schemas.BackendError(message=message))


def test_only_whitelisted_fields_are_editable():
    with pytest.raises(ValueError):
        EditableCell("job-1", "title", "Engineer", AsyncMock())


def test_transient_flag_expires():
    clock = FakeClock()
    flag = TransientFlag(duration=2.0, clock=clock)
    assert flag.is_visible is False

    flag.show()
    clock.advance(1.9)
    assert flag.is_visible is True
    clock.advance(0.2)
    assert flag.is_visible is False


@pytest.mark.asyncio
async def test_unchanged_value_skips_update():
    on_update = AsyncMock()
    cell = EditableCell("job-1", "status", "Applied", on_update)
    cell.open()
    cell.set_draft("  Applied ")

    assert await cell.submit() is True

    on_update.assert_not_awaited()
    assert cell.is_open is False
    assert cell.success_visible is True


@pytest.mark.asyncio
async def test_successful_edit_stores_acknowledged_value():
    clock = FakeClock()
    on_update = AsyncMock(return_value=acknowledged(status="Interviewing"))
    cell = EditableCell.for_row(make_row(status="Applied"), "status", on_update, clock=clock)
    cell.open()
    cell.set_draft("Interviewing")

    assert await cell.submit() is True

    on_update.assert_awaited_once_with("job-1", {"status": "Interviewing"})
    assert cell.value == "Interviewing"
    assert cell.display_value == "Interviewing"
    assert cell.is_open is False
    assert cell.is_saving is False
    assert cell.success_visible is True

    clock.advance(2.5)
    assert cell.success_visible is False


@pytest.mark.asyncio
async def test_failed_edit_keeps_prior_value_and_shows_error():
    on_update = AsyncMock(return_value=rejected())
    cell = EditableCell("job-1", "priority", "Low", on_update)
    cell.open()
    cell.set_draft("High")

    assert await cell.submit() is False

    assert cell.value == "Low"
    assert cell.display_value == "Low"
    assert cell.is_open is True
    assert cell.error_message == "Failed to update priority."
    assert cell.success_visible is False


@pytest.mark.asyncio
async def test_failed_edit_prefers_backend_message():
    on_update = AsyncMock(return_value=rejected("value too long"))
    cell = EditableCell("job-1", "notes", None, on_update)
    cell.open()
    cell.set_draft("x" * 10)

    await cell.submit()

    assert cell.error_message == "value too long"


@pytest.mark.asyncio
async def test_submit_ignored_while_saving():
    on_update = AsyncMock()
    cell = EditableCell("job-1", "notes", "old", on_update)
    cell.set_draft("new")
    cell.is_saving = True

    assert await cell.submit() is False
    on_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_persists_none():
    on_update = AsyncMock(return_value=acknowledged(notes=None))
    cell = EditableCell("job-1", "notes", "Follow up Friday", on_update)

    assert await cell.clear() is True

    on_update.assert_awaited_once_with("job-1", {"notes": None})
    assert cell.value is None
    assert cell.display_value == "--"


@pytest.mark.asyncio
async def test_blank_text_draft_clears_field():
    on_update = AsyncMock(return_value=acknowledged(status=None))
    cell = EditableCell("job-1", "status", "Applied", on_update)
    cell.open()
    cell.set_draft("   ")

    await cell.submit()

    on_update.assert_awaited_once_with("job-1", {"status": None})


@pytest.mark.asyncio
async def test_date_cell_set_now_and_submit():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    on_update = AsyncMock(return_value=acknowledged(applied_at=now))
    cell = EditableCell("job-1", "applied_at", None, on_update)
    cell.open()

    cell.set_now(now)
    assert cell.draft == "2026-10-19T12:00"

    assert await cell.submit() is True
    on_update.assert_awaited_once_with("job-1", {"applied_at": now})
    assert cell.display_value == "Oct 19, 2026, 12:00 PM"


@pytest.mark.asyncio
async def test_date_cell_unchanged_when_draft_matches_stored_value():
    on_update = AsyncMock()
    cell = EditableCell("job-1", "last_updated", "2026-10-09T14:30:00Z", on_update)
    cell.open()
    assert cell.draft == "2026-10-09T14:30"

    await cell.submit()

    on_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_date_cell_failure_message():
    on_update = AsyncMock(return_value=rejected())
    cell = EditableCell("job-1", "last_updated", None, on_update)
    cell.set_draft("2026-10-09T14:30")

    await cell.submit()

    assert cell.error_message == "Failed to update date."


def test_cancel_restores_draft():
    cell = EditableCell("job-1", "notes", "keep me", AsyncMock())
    cell.open()
    cell.set_draft("discard me")

    cell.cancel()

    assert cell.draft == "keep me"
    assert cell.is_open is False


def test_sync_leaves_open_draft_alone():
    cell = EditableCell("job-1", "status", "New", AsyncMock())
    cell.open()
    cell.set_draft("Offer")

    cell.sync("Applied")

    assert cell.value == "Applied"
    assert cell.draft == "Offer"


def test_suggestions():
    assert EditableCell("job-1", "status", None, AsyncMock()).suggestions == STATUS_SUGGESTIONS
    assert EditableCell("job-1", "priority", None, AsyncMock()).suggestions == PRIORITY_SUGGESTIONS
    assert EditableCell("job-1", "notes", None, AsyncMock()).suggestions == []


def test_column_filter_options():
    rows = [make_row("a", status="applied"), make_row("b"), make_row("c", status="Applied", priority="high")]

    assert status_options(rows) == ["Applied", "Untracked"]
    assert priority_options(rows) == ["High", "Unset"]
