"""Current-vs-previous period comparison engine."""

import math
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


COMPARISONS_KEY = "comparisons"


class DeltaDirection(str, Enum):
    """Direction of change between two periods."""

    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


DIRECTION_SYMBOLS: dict[DeltaDirection, str] = {
    DeltaDirection.UP: "▲",
    DeltaDirection.DOWN: "▼",
    DeltaDirection.NEUTRAL: "—",
}


class ComparisonDelta(BaseModel):
    """Change of one numeric field between two periods.

    ``delta_percentage`` is None when the previous value is zero and the
    current one is not; ``delta_formatted`` is then "N/A".
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    current: float | None
    previous: float | None
    absolute_change: float | None
    delta_percentage: float | None
    delta_formatted: str | None
    direction: DeltaDirection
    direction_symbol: str


def to_number(value: Any) -> float | int | None:
    """Return value if it is a finite number (booleans excluded), else None."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value):
        return None
    return value


def _sign(value: float | None) -> int:
    if value is None or value == 0:
        return 0
    return 1 if value > 0 else -1


def resolve_direction(
    current: float | None,
    previous: float | None,
    delta_percentage: float | None,
    absolute_change: float | None,
) -> DeltaDirection:
    """Resolve direction from percentage, then absolute change, then values."""
    sign = _sign(delta_percentage) or _sign(absolute_change)
    if not sign and current is not None and previous is not None:
        sign = _sign(current - previous)
    if sign > 0:
        return DeltaDirection.UP
    if sign < 0:
        return DeltaDirection.DOWN
    return DeltaDirection.NEUTRAL


def compute_comparison_delta(current_value: Any, previous_value: Any) -> ComparisonDelta:
    """Compare one field across periods.

    Args:
        current_value: Current-period value (non-numbers count as absent).
        previous_value: Previous-period value.

    Returns:
        ComparisonDelta for the field.
    """
    current = to_number(current_value)
    previous = to_number(previous_value)

    absolute_change: float | None = None
    delta_percentage: float | None = None
    delta_formatted: str | None = None

    if current is not None and previous is not None:
        absolute_change = current - previous
        if previous != 0:
            raw = (current - previous) / previous * 100
            if math.isfinite(raw):
                delta_percentage = round(raw, 1)
                delta_formatted = f"{delta_percentage:.1f}%"
        elif current == 0:
            delta_percentage = 0.0
            delta_formatted = "0.0%"
        else:
            delta_formatted = "N/A"

    direction = resolve_direction(current, previous, delta_percentage, absolute_change)
    return ComparisonDelta(
        current=current,
        previous=previous,
        absolute_change=absolute_change,
        delta_percentage=delta_percentage,
        delta_formatted=delta_formatted,
        direction=direction,
        direction_symbol=DIRECTION_SYMBOLS[direction],
    )


def build_comparison_map(
    current: Mapping[str, Any], previous: Mapping[str, Any]
) -> dict[str, ComparisonDelta]:
    """Compare every field that is numeric in either record.

    Args:
        current: Current-period record.
        previous: Previous-period record.

    Returns:
        Field name to ComparisonDelta, in first-seen key order.
    """
    comparisons: dict[str, ComparisonDelta] = {}
    for key in [*current.keys(), *previous.keys()]:
        if key in comparisons or key == COMPARISONS_KEY:
            continue
        if to_number(current.get(key)) is None and to_number(previous.get(key)) is None:
            continue
        comparisons[key] = compute_comparison_delta(current.get(key), previous.get(key))
    return comparisons


def _dump(comparisons: dict[str, ComparisonDelta]) -> dict[str, dict[str, Any]]:
    return {key: delta.model_dump(mode="json") for key, delta in comparisons.items()}


def annotate_record(
    current: Mapping[str, Any], previous: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Attach a comparisons map to a record.

    Args:
        current: Current-period record.
        previous: Previous-period record, or None when unavailable.

    Returns:
        Copy of current with a JSON-ready ``comparisons`` entry.
    """
    comparisons = build_comparison_map(current, previous or {})
    return {**current, COMPARISONS_KEY: _dump(comparisons)}


def row_label(row: Mapping[str, Any], index: int) -> str | int | None:
    """Default row identity: the row's label."""
    label = row.get("label")
    return label if isinstance(label, str | int) and not isinstance(label, bool) else None


def annotate_rows(
    current: Sequence[Mapping[str, Any]],
    previous: Sequence[Mapping[str, Any]] | None,
    key: Callable[[Mapping[str, Any], int], str | int | None] | None = row_label,
) -> list[dict[str, Any]]:
    """Attach comparisons to each row, matching previous rows by key.

    Rows without a key match fall back to the previous row at the same
    position.

    Args:
        current: Current-period rows.
        previous: Previous-period rows, or None when unavailable.
        key: Row identity function, or None to match by position only.

    Returns:
        Annotated copies of the current rows.
    """
    previous_rows = list(previous or [])
    by_key: dict[str | int, Mapping[str, Any]] = {}
    if key is not None:
        for index, row in enumerate(previous_rows):
            identifier = key(row, index)
            if identifier is not None:
                by_key[identifier] = row

    annotated: list[dict[str, Any]] = []
    for index, row in enumerate(current):
        identifier = key(row, index) if key is not None else None
        match = by_key.get(identifier) if identifier is not None else None
        if match is None and index < len(previous_rows):
            match = previous_rows[index]
        annotated.append(annotate_record(row, match))
    return annotated
