"""Tests for the local cache."""

from __future__ import annotations

from pathlib import Path

import pytest

from teamsync.client.cache import LocalCache


@pytest.fixture
def cache(tmp_path: Path) -> LocalCache:
    """Create a file-backed cache."""
    c = LocalCache(tmp_path / "cache.db")
    yield c
    c.close()


class TestLocalCache:
    """Tests for LocalCache class."""

    def test_get_missing(self, cache: LocalCache) -> None:
        """Missing entries read as None."""
        assert cache.get("1", "tasks") is None

    def test_set_and_get(self, cache: LocalCache) -> None:
        """Should store JSON values."""
        cache.set("1", "tasks", [{"id": 1, "done": False}])
        assert cache.get("1", "tasks") == [{"id": 1, "done": False}]

    def test_set_replaces(self, cache: LocalCache) -> None:
        """Later writes replace earlier ones."""
        cache.set("1", "tasks", [1])
        cache.set("1", "tasks", [])
        assert cache.get("1", "tasks") == []

    def test_scopes_are_separate(self, cache: LocalCache) -> None:
        """Entries are scoped by team."""
        cache.set("1", "tasks", ["a"])
        cache.set("2", "tasks", ["b"])
        assert cache.get("1", "tasks") == ["a"]
        assert cache.get("2", "tasks") == ["b"]
        assert cache.keys("1") == ["tasks"]

    def test_remove_and_clear(self, cache: LocalCache) -> None:
        """Should remove one entry, one scope or everything."""
        cache.set("1", "tasks", [1])
        cache.set("1", "sales", [2])
        cache.set("2", "tasks", [3])

        cache.remove("1", "tasks")
        assert cache.keys("1") == ["sales"]

        cache.clear("1")
        assert cache.keys("1") == []
        assert cache.keys("2") == ["tasks"]

        cache.clear()
        assert cache.keys("2") == []

    def test_survives_restart(self, tmp_path: Path) -> None:
        """Values persist across cache instances."""
        path = tmp_path / "persist.db"
        first = LocalCache(path)
        first.set("1", "leads", [{"id": "l1"}])
        first.close()

        second = LocalCache(path)
        try:
            assert second.get("1", "leads") == [{"id": "l1"}]
        finally:
            second.close()

    def test_corrupt_entry_reads_as_missing(self, cache: LocalCache) -> None:
        """Unreadable entries are treated as absent."""
        cache._conn.execute(
            "INSERT INTO cache_entries (scope, key, value, updated_at) "
            "VALUES ('1', 'tasks', 'not json', 0)"
        )
        assert cache.get("1", "tasks") is None

    def test_in_memory(self) -> None:
        """Should support an in-memory database."""
        cache = LocalCache(":memory:")
        cache.set("1", "tasks", [1])
        assert cache.get("1", "tasks") == [1]
        cache.close()
