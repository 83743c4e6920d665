"""Catalog store: upsert semantics, deletion, stats and failure behavior."""

import sqlite3
import threading
from pathlib import Path

from filedex.db import CatalogStore
from tests.conftest import record


class TestUpsert:
    def test_existing_path_is_replaced_not_duplicated(self, store):
        store.upsert(record("/data/a.txt", size=10, mtime=1_600_000_000))
        store.upsert(record("/data/a.txt", size=99, mtime=1_700_000_000))

        rows = store.select()
        assert len(rows) == 1
        assert rows[0].size == 99
        assert rows[0].modified_time.timestamp() == 1_700_000_000

    def test_replace_updates_extension_and_root(self, store):
        store.upsert(record("/data/a.txt", root="/data"))
        r = record("/data/a.txt", root="/other")
        r.extension = "md"
        store.upsert(r)

        (row,) = store.select()
        assert row.extension == "md"
        assert row.folder_root == "/other"

    def test_indexed_time_is_set_at_write(self, store):
        store.upsert(record("/data/a.txt", mtime=1_000_000_000))
        (row,) = store.select()
        assert row.indexed_time is not None
        assert row.indexed_time > row.modified_time

    def test_upsert_many_counts_written_rows(self, store):
        n = store.upsert_many([record(f"/data/f{i}.txt") for i in range(5)])
        assert n == 5
        assert store.stats().count == 5


class TestDelete:
    def test_delete_root_only_touches_that_root(self, store):
        store.upsert_many([record("/r1/x", root="/r1"), record("/r2/y", root="/r2")])
        assert store.delete_root("/r1") == 1
        assert [r.path for r in store.select()] == ["/r2/y"]

    def test_delete_all(self, store):
        store.upsert_many([record("/r1/x", root="/r1"), record("/r2/y", root="/r2")])
        store.delete_all()
        assert store.select() == []


class TestStats:
    def test_count_and_total_size(self, store):
        store.upsert_many([record("/d/a", size=3), record("/d/b", size=4), record("/d/c", size=5)])
        st = store.stats()
        assert (st.count, st.total_size) == (3, 12)

    def test_empty_catalog_is_zero(self, store):
        st = store.stats()
        assert (st.count, st.total_size) == (0, 0)


class TestReads:
    def test_select_orders_and_limits(self, store):
        store.upsert_many([record(f"/d/{i}", mtime=1_600_000_000 + i) for i in range(10)])
        rows = store.select(order_by="modified_time DESC", limit=3)
        assert [r.path for r in rows] == ["/d/9", "/d/8", "/d/7"]

    def test_distinct_paths(self, store):
        store.upsert_many([record("/d/b"), record("/d/a"), record("/d/a")])
        assert store.distinct_paths() == ["/d/a", "/d/b"]

    def test_bad_query_returns_empty_and_store_keeps_working(self, store):
        store.upsert(record("/d/a"))
        assert store.select("no_such_column = ?", ["x"]) == []
        assert store.count("no_such_column = ?", ["x"]) == 0
        assert len(store.select()) == 1


class TestLifecycle:
    def test_schema_is_idempotent(self, store):
        assert store.ensure_schema() is True
        assert store.ensure_schema() is True

    def test_unopenable_store_degrades_to_defaults(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        s = CatalogStore(blocker / "catalog.db").open()
        try:
            assert s.available is False
            assert s.upsert_many([record("/d/a")]) == 0
            assert s.select() == []
            assert s.stats().count == 0
            assert s.distinct_paths() == []
        finally:
            s.close()

    def test_calls_on_closed_store_return_defaults(self, tmp_path: Path):
        s = CatalogStore(tmp_path / "c.db")
        assert s.select() == []
        assert s.delete_all() == 0

    def test_all_operations_run_on_one_thread(self, store, monkeypatch):
        seen = set()
        real = store._select

        def spy(*args):
            seen.add(threading.get_ident())
            return real(*args)

        monkeypatch.setattr(store, "_select", spy)
        threads = [threading.Thread(target=store.select) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(seen) == 1
        assert threading.get_ident() not in seen

    def test_persists_across_reopen(self, tmp_path: Path):
        path = tmp_path / "c.db"
        with CatalogStore(path) as s:
            s.upsert(record("/d/a"))
        with CatalogStore(path) as s:
            assert s.stats().count == 1
        con = sqlite3.connect(str(path))
        idx = {r[1] for r in con.execute("PRAGMA index_list(files)")}
        con.close()
        assert {"idx_name", "idx_extension"} <= idx
