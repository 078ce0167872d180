"""Canonical report shapes parsed from raw Matomo payloads.

Matomo answers the same report with a bare object, a one-element array,
a map keyed by date, or a plain scalar depending on period and version.
The parsers collapse these into two shapes: a single record or a list of
rows.
"""

import math
import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


ReportShape = Literal["record", "rows"]

_NUMERIC = re.compile(r"^[+-]?(\d[\d,]*)?(\.\d+)?([eE][+-]?\d+)?$")


class RecordPayload(BaseModel):
    """A single summary record, e.g. VisitsSummary.get."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["record"] = "record"
    values: dict[str, Any] = Field(default_factory=dict)


class RowsPayload(BaseModel):
    """A list of labelled rows, e.g. Actions.getPageUrls."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["rows"] = "rows"
    rows: list[dict[str, Any]] = Field(default_factory=list)


ReportPayload = Annotated[RecordPayload | RowsPayload, Field(discriminator="kind")]


def to_finite_number(value: Any) -> float | int | None:
    """Coerce a Matomo value to a finite number.

    Numbers pass through; numeric strings have thousands separators
    stripped ("1,234" -> 1234). Booleans, NaN, infinities, and anything
    else yield None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed or not _NUMERIC.match(trimmed) or not any(c.isdigit() for c in trimmed):
            return None
        normalized = trimmed.replace(",", "")
        try:
            number = float(normalized)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        if number.is_integer() and "." not in normalized and "e" not in normalized.lower():
            return int(normalized)
        return number
    return None


def unwrap_value(raw: Any) -> Any:
    """Unwrap nested single-element arrays down to their first element."""
    while isinstance(raw, list):
        if not raw:
            return None
        raw = raw[0]
    return raw


def coerce_fields(record: dict[str, Any]) -> dict[str, Any]:
    """Convert numeric-looking strings in a record to numbers.

    Non-finite numbers are dropped; other values are kept as-is.
    """
    coerced: dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, float) and not math.isfinite(value):
            continue
        number = to_finite_number(value) if isinstance(value, str) else None
        coerced[key] = number if number is not None else value
    return coerced


def _is_date_keyed(raw: dict[str, Any]) -> bool:
    return bool(raw) and all(
        isinstance(value, dict | list) for value in raw.values()
    )


def _sum_records(records: list[dict[str, Any]]) -> dict[str, Any]:
    totals: dict[str, Any] = {}
    for record in records:
        for key, value in coerce_fields(record).items():
            number = to_finite_number(value)
            if number is None:
                totals.setdefault(key, value)
                continue
            existing = to_finite_number(totals.get(key))
            totals[key] = number if existing is None else existing + number
    return totals


def parse_record(raw: Any, scalar_field: str = "value") -> RecordPayload:
    """Parse a summary report into a single record.

    Args:
        raw: Decoded payload.
        scalar_field: Field name used when Matomo returns a bare number.

    Returns:
        RecordPayload; maps keyed by date are summed field by field.
    """
    value = unwrap_value(raw)

    if isinstance(value, dict):
        if _is_date_keyed(value):
            records = [
                record
                for entry in value.values()
                if isinstance(record := unwrap_value(entry), dict)
            ]
            return RecordPayload(values=_sum_records(records))
        return RecordPayload(values=coerce_fields(value))

    number = to_finite_number(value)
    if number is not None:
        return RecordPayload(values={scalar_field: number})
    return RecordPayload()


def parse_rows(raw: Any) -> RowsPayload:
    """Parse a row report into a list of rows.

    Args:
        raw: Decoded payload (a list, or a map of date to list).

    Returns:
        RowsPayload; non-object rows are skipped, and rows from a map keyed
        by date are merged by label with numeric fields summed.
    """
    if isinstance(raw, list):
        return RowsPayload(
            rows=[coerce_fields(row) for row in raw if isinstance(row, dict)]
        )
    if not isinstance(raw, dict):
        return RowsPayload()

    merged: dict[Any, list[dict[str, Any]]] = {}
    unlabeled: list[dict[str, Any]] = []
    for entry in raw.values():
        for row in entry if isinstance(entry, list) else [entry]:
            if not isinstance(row, dict):
                continue
            label = row.get("label")
            if isinstance(label, str | int) and not isinstance(label, bool):
                merged.setdefault(label, []).append(row)
            else:
                unlabeled.append(coerce_fields(row))

    rows = [_sum_records(group) for group in merged.values()]
    return RowsPayload(rows=rows + unlabeled)


def parse_report(
    shape: ReportShape, raw: Any, scalar_field: str = "value"
) -> RecordPayload | RowsPayload:
    """Parse a raw payload into the requested canonical shape."""
    if shape == "rows":
        return parse_rows(raw)
    return parse_record(raw, scalar_field)
