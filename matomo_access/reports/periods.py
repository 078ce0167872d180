"""Previous-period resolution for report comparisons.

Maps a Matomo (period, date) pair onto the date parameter of the
immediately preceding period of identical length.
"""

import calendar
import re
from datetime import UTC, date, datetime, timedelta


_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_LAST_N = re.compile(r"^last(\d+)$", re.IGNORECASE)
_PREVIOUS_N = re.compile(r"^previous(\d+)$", re.IGNORECASE)


DateRange = tuple[date, date]


def _today(now: datetime | date | None) -> date:
    if now is None:
        return datetime.now(UTC).date()
    if isinstance(now, datetime):
        return now.astimezone(UTC).date() if now.tzinfo else now.date()
    return now


def parse_matomo_date(value: str, today: date) -> date | None:
    """Parse a single Matomo date: YYYY-MM-DD, today, or yesterday.

    Args:
        value: Date string.
        today: Reference day for relative keywords.

    Returns:
        The date, or None if not recognized.
    """
    match = _ISO_DATE.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    keyword = value.lower()
    if keyword == "today":
        return today
    if keyword == "yesterday":
        return today - timedelta(days=1)
    return None


def _parse_range(value: str, today: date) -> DateRange | None:
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    start = parse_matomo_date(parts[0], today)
    end = parse_matomo_date(parts[1], today)
    if start is None or end is None or start > end:
        return None
    return start, end


def _parse_count(pattern: re.Pattern[str], value: str) -> int | None:
    match = pattern.match(value)
    if not match:
        return None
    count = int(match.group(1))
    return count if count > 0 else None


def _shift(range_: DateRange, days: int) -> DateRange:
    offset = timedelta(days=days)
    return range_[0] + offset, range_[1] + offset


def _format_range(range_: DateRange) -> str:
    return f"{range_[0].isoformat()},{range_[1].isoformat()}"


def _length_days(range_: DateRange) -> int:
    return (range_[1] - range_[0]).days + 1


def shift_months(value: date, months: int) -> date:
    """Move a date by whole calendar months, clamping to the month's end.

    Args:
        value: Starting date.
        months: Months to add (negative to go back).

    Returns:
        Shifted date; e.g. March 31 minus one month is February 28/29.
    """
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def resolve_previous_period_date(
    period: str,
    date_value: str,
    now: datetime | date | None = None,
) -> str | None:
    """Resolve the date parameter for the preceding comparison period.

    Explicit ranges and ``lastN``/``previousN`` keywords shift back by their
    own length. Single dates shift by the period: one day, seven days, one
    calendar month, or one year.

    Args:
        period: Matomo period (day, week, month, year, range).
        date_value: Matomo date parameter.
        now: Reference time for relative dates (default: current UTC time).

    Returns:
        Previous-period date string, or None when no window can be derived.
    """
    normalized_period = period.strip().lower()
    normalized_date = date_value.strip()
    today = _today(now)

    explicit = _parse_range(normalized_date, today)
    if explicit is not None:
        return _format_range(_shift(explicit, -_length_days(explicit)))

    count = _parse_count(_LAST_N, normalized_date)
    if count is not None:
        last_range = (today - timedelta(days=count - 1), today)
        return _format_range(_shift(last_range, -count))

    count = _parse_count(_PREVIOUS_N, normalized_date)
    if count is not None:
        end = today - timedelta(days=count)
        previous_range = (end - timedelta(days=count - 1), end)
        return _format_range(_shift(previous_range, -count))

    parsed = parse_matomo_date(normalized_date, today)
    if parsed is None:
        return None

    if normalized_period == "week":
        return (parsed - timedelta(days=7)).isoformat()
    if normalized_period == "month":
        return shift_months(parsed, -1).isoformat()
    if normalized_period == "year":
        return shift_months(parsed, -12).isoformat()
    # day, range, and anything else step back one day
    return (parsed - timedelta(days=1)).isoformat()
