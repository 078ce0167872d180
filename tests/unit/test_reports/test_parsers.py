"""Unit tests for report payload parsing."""

import pytest

from matomo_access.reports import (
    RecordPayload,
    RowsPayload,
    parse_record,
    parse_report,
    parse_rows,
    to_finite_number,
)


class TestToFiniteNumber:
    """Tests for numeric coercion."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(3, 3), (2.5, 2.5), ("1,234", 1234), ("12.5", 12.5), (" -3 ", -3)],
    )
    def test_numbers(self, value: object, expected: float) -> None:
        """Test numbers and numeric strings are accepted."""
        assert to_finite_number(value) == expected

    @pytest.mark.parametrize(
        "value", [None, True, "", "abc", "12%", float("nan"), float("inf"), [1]]
    )
    def test_non_numbers(self, value: object) -> None:
        """Test everything else yields None."""
        assert to_finite_number(value) is None

    def test_integral_strings_become_ints(self) -> None:
        """Test integral strings keep integer type."""
        assert isinstance(to_finite_number("42"), int)


class TestParseRecord:
    """Tests for summary payloads."""

    def test_single_element_array(self) -> None:
        """Test one-element arrays are unwrapped and fields coerced."""
        payload = parse_record([{"nb_visits": "10", "label": "all"}])

        assert payload == RecordPayload(values={"nb_visits": 10, "label": "all"})

    def test_bare_scalar(self) -> None:
        """Test a bare number is stored under the scalar field."""
        assert parse_record(42, "nb_visits").values == {"nb_visits": 42}
        assert parse_record({"value": 7}).values == {"value": 7}

    def test_date_keyed_map_is_summed(self) -> None:
        """Test per-day records are summed field by field."""
        raw = {
            "2024-03-01": {"nb_visits": 3, "nb_actions": "1,000"},
            "2024-03-02": [{"nb_visits": "4", "nb_actions": 5}],
            "2024-03-03": [],
        }

        payload = parse_record(raw)

        assert payload.values == {"nb_visits": 7, "nb_actions": 1005}

    def test_empty_and_unusable(self) -> None:
        """Test empty or non-numeric payloads give an empty record."""
        assert parse_record([]).values == {}
        assert parse_record("n/a").values == {}

    def test_non_finite_fields_dropped(self) -> None:
        """Test non-finite floats are removed."""
        assert parse_record({"a": float("inf"), "b": 1}).values == {"b": 1}


class TestParseRows:
    """Tests for row payloads."""

    def test_list_skips_non_objects(self) -> None:
        """Test non-object rows are dropped."""
        payload = parse_rows([{"label": "a", "nb_visits": "2"}, "junk", None])

        assert payload.rows == [{"label": "a", "nb_visits": 2}]

    def test_date_keyed_rows_merge_by_label(self) -> None:
        """Test rows from several days are merged by label."""
        raw = {
            "2024-03-01": [{"label": "a", "nb_visits": 2}],
            "2024-03-02": [
                {"label": "a", "nb_visits": "3"},
                {"label": "b", "nb_visits": 1},
            ],
        }

        payload = parse_rows(raw)

        assert payload.rows == [
            {"label": "a", "nb_visits": 5},
            {"label": "b", "nb_visits": 1},
        ]

    def test_scalar_is_empty(self) -> None:
        """Test scalar payloads have no rows."""
        assert parse_rows("oops").rows == []


class TestParseReport:
    """Tests for shape dispatch."""

    def test_dispatch(self) -> None:
        """Test the shape selects the parser."""
        assert isinstance(parse_report("rows", []), RowsPayload)
        assert isinstance(parse_report("record", {}), RecordPayload)
        assert parse_report("rows", []).kind == "rows"
