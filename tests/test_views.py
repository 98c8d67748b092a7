from datetime import datetime, timedelta, timezone

import schemas
import views
from feed import FeedState, FeedStatus

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_row(job_id="job-1", **fields) -> schemas.JobListingRow:
    values = {"title": "Backend Engineer", "company": "Acme Corp"}
    values.update(fields)
    return schemas.JobListingRow(id=job_id, **values)


def test_job_card_badges_and_skill_overflow():
    row = make_row(
        location="Remote",
        work_type="Full-time",
        salary=" $150k ",
        status="Applied",
        skills=["python", "sql", "aws", "docker", "k8s", "terraform", "go", "rust"],
        posted_at=NOW - timedelta(hours=3),
        job_url="https://www.linkedin.com/jobs/view/1",
    )

    card = views.build_job_card(row, is_saved=True, now=NOW)

    assert [badge.label for badge in card.badges] == ["Remote", "Full-time", "$150k", "Status: Applied"]
    assert card.skills == ["python", "sql", "aws", "docker", "k8s", "terraform"]
    assert card.extra_skill_count == 2
    assert card.company_initials == "AC"
    assert card.posted_at == "3 hours ago"
    assert card.source == "linkedin.com"
    assert card.is_saved is True
    assert card.detail_href == "/dashboard/jobs/job-1"


def test_job_card_placeholders():
    card = views.build_job_card(make_row(description="   "))

    assert card.badges == []
    assert card.description == views.NO_DESCRIPTION
    assert card.source == views.SOURCE_UNKNOWN
    assert card.posted_at is None


def test_job_card_prefers_markdown_description():
    card = views.build_job_card(make_row(description="plain", description_md="**rich**"))
    assert card.description == "**rich**"


def test_job_row_placeholders_for_missing_fields():
    row = views.build_job_row(make_row(notes="   "))

    assert row.location == views.PLACEHOLDER
    assert row.salary == views.PLACEHOLDER
    assert row.skills == views.PLACEHOLDER
    assert row.notes == views.PLACEHOLDER
    assert row.status_label == views.PLACEHOLDER
    assert row.status.label == "Untracked"
    assert row.priority.label == "Unset"
    assert row.applied_at == "--"


def test_job_row_skill_summary():
    row = views.build_job_row(make_row(skills=["a", "b", "c", "d", "e", "f"]))
    assert row.skills == "a, b, c, d +2"


def test_detail_href_quotes_ids():
    assert views.detail_href("a/b c") == "/dashboard/jobs/a%2Fb%20c"


def test_job_detail_apply_link_and_source():
    detail = views.build_job_detail(
        make_row(job_url="https://www.jobs.example.co.uk/post/1", priority="high"),
        is_saved=True,
    )

    assert detail.apply_href == "https://www.jobs.example.co.uk/post/1"
    assert detail.source == "example.co.uk"
    assert detail.priority.tone == "danger"
    assert detail.description == views.NO_DESCRIPTION
    assert detail.description_is_markdown is False


def test_build_job_rows_marks_saved():
    rows = views.build_job_rows([make_row("a"), make_row("b")], saved_job_ids=["b"])
    assert [(row.id, row.is_saved) for row in rows] == [("a", False), ("b", True)]


# --- Empty states ---
def test_empty_state_without_search():
    state = FeedState(status=FeedStatus.READY)
    assert views.empty_state(state) == views.NO_LISTINGS
    assert views.empty_state(state).title == "No job listings available"


def test_empty_state_with_search():
    state = FeedState(status=FeedStatus.READY, applied_search="rust")
    assert views.empty_state(state) == views.NO_MATCHES


def test_empty_state_hidden_while_loading_with_rows_or_error():
    assert views.empty_state(FeedState(status=FeedStatus.LOADING)) is None
    assert views.empty_state(FeedState(status=FeedStatus.READY, rows=(make_row(),))) is None
    assert views.empty_state(FeedState(status=FeedStatus.ERRORED, error="boom")) is None


def test_table_empty_message():
    assert views.table_empty_message(True, False) == "Loading listings..."
    assert views.table_empty_message(False, True) == "No listings match the selected filters."
    assert views.table_empty_message(False, False) == "No listings available yet."


def test_show_end_of_results():
    rows = (make_row(),)
    assert views.show_end_of_results(FeedState(rows=rows, status=FeedStatus.READY)) is True
    assert views.show_end_of_results(FeedState(rows=rows, has_more=True, status=FeedStatus.READY)) is False
    assert views.show_end_of_results(FeedState(status=FeedStatus.READY)) is False
