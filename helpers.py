"""Pure formatting helpers used to turn job listing rows into display values.

Every function here is total: missing or malformed input maps to ``None`` (or
a fixed placeholder) instead of raising, so view construction never fails on
a partially filled row.
"""
import math
import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional, Union
from urllib.parse import urlsplit

DateLike = Union[str, datetime, None]

DATE_INPUT_FORMAT = "%Y-%m-%dT%H:%M"

_SEARCH_STRIP_RE = re.compile(r"['&|!*?:\\]")

COMMON_SECOND_LEVEL_DOMAINS = {"co", "com", "gov", "ac", "edu", "org", "net"}


class Tone(NamedTuple):
    label: str
    tone: str


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: DateLike) -> Optional[datetime]:
    """Parse an ISO timestamp (or pass a datetime through) as an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''} ago"


def format_date(value: datetime) -> str:
    """``Oct 9, 2026``"""
    return f"{value:%b} {value.day}, {value.year}"


def format_posted_at(value: DateLike, now: Optional[datetime] = None) -> Optional[str]:
    """Relative age of a timestamp, falling back to an absolute date after a week.

    Unparseable strings are returned unchanged so the raw value still shows.
    """
    if value is None or value == "":
        return None

    date = parse_datetime(value)
    if date is None:
        return value if isinstance(value, str) else None

    current = _utc(now) if now is not None else datetime.now(timezone.utc)
    diff_seconds = math.floor((current - date).total_seconds())
    diff_minutes = diff_seconds // 60
    diff_hours = diff_minutes // 60
    diff_days = diff_hours // 24

    if diff_seconds < 60:
        return "Just now"
    if diff_minutes < 60:
        return _plural(diff_minutes, "minute")
    if diff_hours < 24:
        return _plural(diff_hours, "hour")
    if diff_days < 7:
        return _plural(diff_days, "day")

    return format_date(date)


def format_absolute(value: DateLike) -> str:
    if value is None or value == "":
        return "--"
    date = parse_datetime(value)
    if date is None:
        return value if isinstance(value, str) else "--"
    return f"{format_date(date)}, {date:%I:%M %p}"


def format_salary(value: Optional[str]) -> Optional[str]:
    return value.strip() if value else None


def get_initials(value: Optional[str]) -> str:
    if not value:
        return "?"

    parts = value.split()
    if not parts:
        return "?"

    if len(parts) == 1:
        return parts[0][:2].upper()

    return (parts[0][0] + parts[-1][0]).upper()


def summarise_description(value: Optional[str], max_length: int = 140) -> str:
    text = " ".join((value or "").split())

    if len(text) <= max_length:
        return text

    return f"{text[: max_length - 3]}..."


def build_search_query(term: Optional[str]) -> Optional[str]:
    """Turn free text into an AND of prefix matches: ``"py dev"`` -> ``"py:* & dev:*"``.

    Characters that carry meaning in tsquery syntax are stripped from each token.
    """
    if not term:
        return None

    tokens = [_SEARCH_STRIP_RE.sub("", piece) for piece in term.split()]
    tokens = [token for token in tokens if token]

    if not tokens:
        return None

    return " & ".join(f"{token}:*" for token in tokens)


def search_tokens(query: Optional[str]) -> list:
    """Tokens of a query built by :func:`build_search_query`, without the prefix marker."""
    if not query:
        return []
    return [piece.strip()[:-2] for piece in query.split("&") if piece.strip()]


def _hostname(value: str) -> Optional[str]:
    try:
        parts = urlsplit(value)
        return parts.hostname
    except ValueError:
        return None


def get_domain_from_url(value: Optional[str]) -> Optional[str]:
    """Registrable-looking domain of a URL, e.g. ``example.co.uk``.

    Scheme-less input is retried as ``https://``. ``www.`` is dropped and the
    host collapses to two labels, or three when the TLD is a two-letter code
    preceded by a short or common second-level label.
    """
    if not value:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    hostname = _hostname(trimmed) if "://" in trimmed else None
    if not hostname:
        hostname = _hostname(f"https://{trimmed}")
    if not hostname:
        return None

    hostname = hostname.lower()
    host = hostname[4:] if hostname.startswith("www.") else hostname
    parts = [part for part in host.split(".") if part]

    if len(parts) <= 2:
        return host

    last = parts[-1]
    second = parts[-2]

    if len(last) == 2 and (second in COMMON_SECOND_LEVEL_DOMAINS or len(second) <= 3):
        return f"{parts[-3]}.{second}.{last}"

    return f"{second}.{last}"


def _capitalise(value: str) -> str:
    return value[:1].upper() + value[1:]


def get_status_tone(value: Optional[str]) -> Tone:
    normalized = (value or "").lower()

    if normalized in ("applied", "interviewing"):
        return Tone(_capitalise(normalized), "info")
    if normalized == "offer":
        return Tone("Offer", "success")
    if normalized == "rejected":
        return Tone("Rejected", "danger")
    if normalized in ("interested", "watching"):
        return Tone(_capitalise(normalized), "warning")
    return Tone(value if value is not None else "Untracked", "muted")


def get_priority_tone(value: Optional[str]) -> Tone:
    normalized = (value or "").lower()

    if normalized == "high":
        return Tone("High", "danger")
    if normalized == "medium":
        return Tone("Medium", "warning")
    if normalized == "low":
        return Tone("Low", "success")
    return Tone(value if value is not None else "Unset", "muted")


# --- date-time input round trip (``<input type="datetime-local">``) ---
def to_date_input_value(value: DateLike) -> str:
    date = parse_datetime(value)
    if date is None:
        return ""
    return date.strftime(DATE_INPUT_FORMAT)


def from_date_input_value(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.strptime(value.strip(), DATE_INPUT_FORMAT)
    except ValueError:
        return parse_datetime(value)
    return parsed.replace(tzinfo=timezone.utc)


def now_input_value(now: Optional[datetime] = None) -> str:
    return to_date_input_value(now or datetime.now(timezone.utc))
