"""Validation of search queries and options."""

from dataclasses import dataclass
from datetime import date, datetime, timezone

from session_recall.errors import InputValidationError

SEARCH_MODES = ("vector", "text", "both")
MIN_QUERY_LENGTH = 2
MIN_LIMIT = 1
MAX_LIMIT = 50
MIN_CONCEPTS = 2
MAX_CONCEPTS = 5


@dataclass
class SearchOptions:
    mode: str = "both"
    limit: int = 10
    after: str | None = None  # YYYY-MM-DD, inclusive
    before: str | None = None  # YYYY-MM-DD, exclusive


@dataclass
class DateRange:
    """Unix-second bounds; start inclusive, end exclusive."""

    start_ts: int | None = None
    end_ts: int | None = None


def parse_date(value: str, field: str) -> date:
    """Parse a YYYY-MM-DD calendar date.

    Raises:
        InputValidationError: If the value is not a valid calendar date
    """
    try:
        return date.fromisoformat(value.strip())
    except (ValueError, AttributeError):
        raise InputValidationError(
            f"Invalid {field} date {value!r}; expected YYYY-MM-DD", field=field
        )


def _start_of_day(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())


def date_range(after: str | None, before: str | None) -> DateRange:
    """Convert after/before calendar dates into timestamp bounds (UTC days)."""
    result = DateRange()
    after_day = parse_date(after, "after") if after else None
    before_day = parse_date(before, "before") if before else None

    if after_day and before_day and after_day >= before_day:
        raise InputValidationError(
            f"'after' ({after}) must be earlier than 'before' ({before})", field="after"
        )

    if after_day:
        result.start_ts = _start_of_day(after_day)
    if before_day:
        result.end_ts = _start_of_day(before_day)
    return result


def validate_query(query: str, field: str = "query") -> str:
    """Strip a query string and enforce the minimum length."""
    if not isinstance(query, str):
        raise InputValidationError(f"{field} must be a string", field=field)
    stripped = query.strip()
    if len(stripped) < MIN_QUERY_LENGTH:
        raise InputValidationError(
            f"{field} must be at least {MIN_QUERY_LENGTH} characters", field=field
        )
    return stripped


def validate_concepts(concepts: list[str]) -> list[str]:
    """Validate a multi-concept query of 2-5 strings."""
    if not MIN_CONCEPTS <= len(concepts) <= MAX_CONCEPTS:
        raise InputValidationError(
            f"Multi-concept search takes {MIN_CONCEPTS}-{MAX_CONCEPTS} concepts, got {len(concepts)}",
            field="query",
        )
    return [validate_query(c, field=f"query[{i}]") for i, c in enumerate(concepts)]


def validate_options(options: SearchOptions) -> DateRange:
    """Check mode and limit, and resolve the date filters.

    Out-of-range limits are rejected rather than clamped.

    Returns:
        The resolved DateRange
    """
    if options.mode not in SEARCH_MODES:
        raise InputValidationError(
            f"Invalid mode {options.mode!r}; expected one of {', '.join(SEARCH_MODES)}",
            field="mode",
        )
    if isinstance(options.limit, bool) or not isinstance(options.limit, int):
        raise InputValidationError("limit must be an integer", field="limit")
    if not MIN_LIMIT <= options.limit <= MAX_LIMIT:
        raise InputValidationError(
            f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}, got {options.limit}",
            field="limit",
        )
    return date_range(options.after, options.before)
