"""Query engine: predicate building, SQLite rendering and filtered search."""

from datetime import datetime, timezone

import pytest

from filedex.models import SearchFilter
from filedex.query import (Predicate, QueryBuilder, QueryEngine, escape_like,
                           normalize_file_type, render_sqlite)
from tests.conftest import record


def ts(y, m, d):
    return datetime(y, m, d, tzinfo=timezone.utc).timestamp()


@pytest.fixture
def engine(store):
    store.upsert_many([
        record("/a/b/report.pdf", size=500, mtime=ts(2024, 3, 1), root="/a"),
        record("/a/b/Notes.txt", size=20, mtime=ts(2024, 1, 1), root="/a"),
        record("/a/bc/d.txt", size=5_000, mtime=ts(2023, 6, 1), root="/a"),
        record("/x/Legal/lease_2024.pdf", size=80, mtime=ts(2024, 5, 1), root="/x"),
        record("/x/other/100%_done.txt", size=1, mtime=ts(2022, 1, 1), root="/x"),
    ])
    return QueryEngine(store)


def paths(rows):
    return [r.path for r in rows]


class TestBuilder:
    def test_name_predicate_always_present(self):
        preds = QueryBuilder().build(SearchFilter())
        assert preds == [Predicate("name", "contains", "")]

    @pytest.mark.parametrize("raw,expected", [
        (".PDF", "pdf"), ("pdf", "pdf"), ("All", None), ("all", None), ("", None), (None, None),
    ])
    def test_normalize_file_type(self, raw, expected):
        assert normalize_file_type(raw) == expected

    def test_full_filter_renders_and_joined(self):
        f = SearchFilter(query="rep", file_type=".pdf", folders=["/a", "/b"], path_contains="Legal",
                         modified_after=datetime(2024, 1, 1, tzinfo=timezone.utc),
                         modified_before=datetime(2024, 12, 31, tzinfo=timezone.utc),
                         min_size=1, max_size=10)
        where, params = render_sqlite(QueryBuilder().build(f))
        assert where.count(" AND ") == 7
        assert "(path LIKE ? ESCAPE '\\' OR path LIKE ? ESCAPE '\\')" in where
        assert params == ["%rep%", "pdf", "/a%", "/b%", "%Legal%",
                          "2024-01-01T00:00:00+00:00", "2024-12-31T00:00:00+00:00", 1, 10]

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            QueryBuilder().add("name", "regex", "x")

    def test_escape_like(self):
        assert escape_like("100%_a\\b") == "100\\%\\_a\\\\b"


class TestSearch:
    def test_empty_query_returns_everything_newest_first(self, engine):
        rows = engine.search_advanced(SearchFilter())
        assert paths(rows) == [
            "/x/Legal/lease_2024.pdf", "/a/b/report.pdf", "/a/b/Notes.txt",
            "/a/bc/d.txt", "/x/other/100%_done.txt",
        ]

    def test_limit_caps_results(self, engine):
        assert len(engine.search_advanced(SearchFilter(limit=2))) == 2

    def test_name_match_is_case_insensitive_substring(self, engine):
        assert paths(engine.search_advanced(SearchFilter(query="NOTES"))) == ["/a/b/Notes.txt"]

    def test_name_wildcards_match_literally(self, engine):
        assert paths(engine.search_advanced(SearchFilter(query="100%_"))) == ["/x/other/100%_done.txt"]
        assert engine.search_advanced(SearchFilter(query="1_0")) == []

    def test_extension_filter_normalizes_case_and_dot(self, engine):
        rows = engine.search_advanced(SearchFilter(file_type=".PDF"))
        assert sorted(paths(rows)) == ["/a/b/report.pdf", "/x/Legal/lease_2024.pdf"]

    def test_folder_scope_is_raw_prefix(self, engine):
        rows = engine.search_advanced(SearchFilter(folders=["/a/b"]))
        assert sorted(paths(rows)) == ["/a/b/Notes.txt", "/a/b/report.pdf", "/a/bc/d.txt"]

    def test_trailing_separator_gives_segment_exact_scope(self, engine):
        rows = engine.search_advanced(SearchFilter(folders=["/a/b/"]))
        assert sorted(paths(rows)) == ["/a/b/Notes.txt", "/a/b/report.pdf"]

    def test_folder_scope_folds_ascii_case(self, engine):
        rows = engine.search_advanced(SearchFilter(folders=["/X/LEGAL/"]))
        assert paths(rows) == ["/x/Legal/lease_2024.pdf"]

    def test_multiple_scopes_are_ored(self, engine):
        rows = engine.search_advanced(SearchFilter(folders=["/a/bc/", "/x/Legal/"]))
        assert sorted(paths(rows)) == ["/a/bc/d.txt", "/x/Legal/lease_2024.pdf"]

    def test_path_contains(self, engine):
        assert paths(engine.search_advanced(SearchFilter(path_contains="legal"))) == ["/x/Legal/lease_2024.pdf"]

    def test_date_range_is_inclusive(self, engine):
        f = SearchFilter(modified_after=datetime(2024, 1, 1, tzinfo=timezone.utc),
                         modified_before=datetime(2024, 3, 1, tzinfo=timezone.utc))
        assert paths(engine.search_advanced(f)) == ["/a/b/report.pdf", "/a/b/Notes.txt"]

    def test_size_range_is_inclusive(self, engine):
        rows = engine.search_advanced(SearchFilter(min_size=20, max_size=500))
        assert sorted(paths(rows)) == ["/a/b/Notes.txt", "/a/b/report.pdf", "/x/Legal/lease_2024.pdf"]

    def test_simple_search(self, engine):
        rows = engine.search("re", file_type="All", folders=["/a"])
        assert paths(rows) == ["/a/b/report.pdf"]

    def test_count(self, engine):
        assert engine.count(SearchFilter(folders=["/x/"])) == 2

    def test_closed_store_gives_empty_results(self, tmp_path):
        from filedex.db import CatalogStore
        assert QueryEngine(CatalogStore(tmp_path / "c.db")).search_advanced(SearchFilter()) == []
