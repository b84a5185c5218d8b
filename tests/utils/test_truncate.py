"""
Tests for response truncation
"""

import json

import pytest

from x402_agent.utils.truncate import (
    TRUNCATION_MARKER,
    serialized_size,
    truncate_response,
)


def _rows(count):
    return [{"id": i, "name": f"row-{i}", "value": "x" * 20} for i in range(count)]


class TestNoTruncation:
    def test_none_passes_through(self):
        result = truncate_response(None, 10)
        assert result.data is None
        assert result.truncated is False

    def test_small_data_unchanged(self):
        data = {"rows": _rows(2)}
        result = truncate_response(data, 10_000)
        assert result.data is data
        assert result.truncated is False
        assert result.original_size is None

    def test_uses_compact_serialization(self):
        data = {"a": [1, 2, 3]}
        assert serialized_size(data) == len('{"a":[1,2,3]}')

    def test_counts_characters_not_bytes(self):
        data = "é" * 10
        assert truncate_response(data, 12).truncated is False


class TestArrayTruncation:
    def test_keeps_longest_fitting_prefix(self):
        rows = _rows(100)
        result = truncate_response(rows, 500)

        assert result.truncated is True
        kept = len(result.data)
        assert 0 < kept < 100
        assert result.data == rows[:kept]
        assert serialized_size(result.data) <= 500
        assert serialized_size(rows[: kept + 1]) > 500
        assert result.original_size == serialized_size(rows)

    def test_stable_under_re_truncation(self):
        result = truncate_response(_rows(100), 500)
        assert truncate_response(result.data, 500).truncated is False


class TestObjectTruncation:
    def test_truncates_priority_field_and_keeps_siblings(self):
        data = {"rows": _rows(100), "rowCount": 100, "meta": {"source": "odds", "cached": False}}
        result = truncate_response(data, 600)

        assert result.truncated is True
        assert result.data["rowCount"] == 100
        assert result.data["meta"] == {"source": "odds", "cached": False}
        assert result.data["rows"] == data["rows"][: len(result.data["rows"])]
        assert serialized_size(result.data) <= 600
        assert truncate_response(result.data, 600).truncated is False

    def test_priority_order(self):
        data = {"rows": _rows(3), "results": _rows(100)}
        result = truncate_response(data, 800)

        assert result.data["rows"] == data["rows"]
        assert len(result.data["results"]) < 100

    def test_falls_back_to_any_array_field(self):
        data = {"payload": _rows(100), "count": 100}
        result = truncate_response(data, 400)

        assert result.truncated is True
        assert result.data["count"] == 100
        assert 0 < len(result.data["payload"]) < 100
        assert serialized_size(result.data) <= 400

    def test_object_without_arrays_becomes_marker(self):
        data = {"text": "x" * 1000}
        result = truncate_response(data, 200)

        assert result.truncated is True
        assert result.data["_truncated"] is True
        assert str(serialized_size(data)) in result.data["_message"]
        assert result.original_size == serialized_size(data)

    def test_oversized_siblings_become_marker(self):
        data = {"rows": _rows(10), "blob": "y" * 1000}
        result = truncate_response(data, 200)

        assert result.data["_truncated"] is True


class TestStringTruncation:
    def test_appends_marker(self):
        result = truncate_response("a" * 1000, 100)

        assert result.truncated is True
        assert result.data.endswith(TRUNCATION_MARKER)
        assert result.data.startswith("a")
        assert serialized_size(result.data) <= 100
        assert truncate_response(result.data, 100).truncated is False

    def test_accounts_for_escapes(self):
        text = 'say "hi"\n' * 100
        result = truncate_response(text, 120)

        assert serialized_size(result.data) <= 120
        assert json.loads(json.dumps(result.data)) == result.data

    @pytest.mark.parametrize("limit, expected", [(13, "[TRUNCATED]"), (10, ""), (2, "")])
    def test_tiny_limit_stays_within_bound(self, limit, expected):
        result = truncate_response("a" * 100, limit)

        assert result.data == expected
        assert serialized_size(result.data) <= limit
        assert truncate_response(result.data, limit).truncated is False


class TestMarkerFallback:
    @pytest.mark.parametrize("limit", [100, 60, 20, 2])
    def test_marker_shrinks_to_fit(self, limit):
        result = truncate_response({"note": "x" * 500}, limit)

        assert result.truncated is True
        assert serialized_size(result.data) <= limit
        assert truncate_response(result.data, limit).truncated is False

    def test_smallest_marker_keeps_flag(self):
        result = truncate_response({"note": "x" * 500}, 20)
        assert result.data == {"_truncated": True}

    def test_rejects_unusable_limit(self):
        with pytest.raises(ValueError):
            truncate_response("abc", 1)


@pytest.mark.parametrize(
    "data",
    [
        _rows(200),
        {"items": _rows(200), "page": 1},
        "z" * 5000,
        {"nested": {"deep": "w" * 5000}},
    ],
)
def test_output_is_always_serializable(data):
    result = truncate_response(data, 1000)
    assert result.truncated is True
    json.loads(json.dumps(result.data))
