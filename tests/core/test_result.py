"""Tests for QueryResult accessors."""

from taskforge.core.result import QueryResult


class TestQueryResult:
    def test_empty_defaults(self):
        result = QueryResult()
        assert result.rows == []
        assert result.row_count == 0
        assert result.first() is None
        assert result.scalar() is None

    def test_first_and_scalar(self):
        result = QueryResult([{"id": 4, "title": "Install printer"}, {"id": 5, "title": "x"}], 2)
        assert result.first() == {"id": 4, "title": "Install printer"}
        assert result.scalar() == 4

    def test_iterates_rows(self):
        rows = [{"id": 1}, {"id": 2}]
        assert [r["id"] for r in QueryResult(rows, 2)] == [1, 2]

    def test_row_count_independent_of_rows(self):
        # an UPDATE that touched three rows but echoed none
        result = QueryResult([], 3)
        assert result.row_count == 3
        assert result.first() is None
