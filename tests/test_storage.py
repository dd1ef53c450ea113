"""
Tests for PersistentStore.

Validates that the store:
- Creates a document when none exists
- Survives corrupted files
- Supports nested dot-path access
- Batches writes with defer=True
"""
import json
import os
import tempfile

from mindloop.storage import PersistentStore


class TestLoad:
    """Tests for loading documents."""

    def test_missing_file_is_created(self):
        """A missing document should be created empty on load."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sub", "learning.json")
            store = PersistentStore(path)

            assert store.load()
            assert os.path.exists(path)
            with open(path) as f:
                assert json.load(f) == {}

    def test_corrupted_file_falls_back_to_empty(self):
        """Unparsable JSON should leave an empty in-memory document."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "learning.json")
            with open(path, "w") as f:
                f.write("{not json")

            store = PersistentStore(path)
            assert store.load() is False
            assert store.get_all() == {}
            assert store.get("anything", 7) == 7

    def test_non_object_root_is_rejected(self):
        """A JSON list at the root is treated as corrupt."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "learning.json")
            with open(path, "w") as f:
                json.dump([1, 2, 3], f)

            store = PersistentStore(path)
            assert store.load() is False
            assert store.keys() == []

    def test_lazy_load_on_first_access(self):
        """Reading without an explicit load should load the document."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "learning.json")
            with open(path, "w") as f:
                json.dump({"a": {"b": 2}}, f)

            store = PersistentStore(path)
            assert store.get("a.b") == 2
            assert store.loaded


class TestDotPaths:
    """Tests for nested access."""

    def test_set_creates_intermediate_objects(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = PersistentStore(os.path.join(tmpdir, "s.json"))
            store.set("stats.mining.successes", 3)

            assert store.get("stats.mining.successes") == 3
            assert store.get("stats") == {"mining": {"successes": 3}}

    def test_get_missing_segment_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = PersistentStore(os.path.join(tmpdir, "s.json"))
            store.set("a", 5)

            assert store.get("a.b.c", "fallback") == "fallback"
            assert store.get("x.y") is None

    def test_increment(self):
        """Increment should start from the default and add."""
        with tempfile.TemporaryDirectory() as tmpdir:
            store = PersistentStore(os.path.join(tmpdir, "s.json"))

            assert store.increment("counts.deaths") == 1
            assert store.increment("counts.deaths", 2) == 3
            assert store.increment("counts.score", 0.5, default=10) == 10.5

    def test_increment_replaces_non_numeric(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = PersistentStore(os.path.join(tmpdir, "s.json"))
            store.set("flag", "yes")

            assert store.increment("flag") == 1

    def test_delete(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = PersistentStore(os.path.join(tmpdir, "s.json"))
            store.set("a.b", 1)

            assert store.delete("a.b")
            assert store.get("a.b") is None
            assert not store.delete("a.b")
            assert not store.delete("missing.path")


class TestSaving:
    """Tests for write-through and deferred saves."""

    def test_write_through(self):
        """Every mutator should persist immediately by default."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "s.json")
            PersistentStore(path).set("q.idle.mine", 0.25)

            reloaded = PersistentStore(path)
            assert reloaded.get("q.idle.mine") == 0.25

    def test_deferred_writes_need_explicit_save(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "s.json")
            store = PersistentStore(path)
            store.set("a", 1, defer=True)
            store.set("b", 2, defer=True)

            assert PersistentStore(path).get("a") is None

            assert store.save()
            reloaded = PersistentStore(path)
            assert reloaded.get("a") == 1
            assert reloaded.get("b") == 2

    def test_no_temp_file_left_behind(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "s.json")
            store = PersistentStore(path)
            store.set("a", 1)

            assert os.listdir(tmpdir) == ["s.json"]

    def test_unserializable_value_fails_save(self):
        """A failed write should report False and keep the old file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "s.json")
            store = PersistentStore(path)
            store.set("a", 1)

            store.set("bad", object(), defer=True)
            assert store.save() is False
            assert PersistentStore(path).get("a") == 1

    def test_get_all_is_a_copy(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = PersistentStore(os.path.join(tmpdir, "s.json"))
            store.set("a.b", 1)

            snapshot = store.get_all()
            snapshot["a"]["b"] = 99
            assert store.get("a.b") == 1

    def test_clear(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "s.json")
            store = PersistentStore(path)
            store.set("a", 1)
            store.clear()

            assert PersistentStore(path).get_all() == {}

    def test_delete_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "s.json")
            store = PersistentStore(path)
            store.set("a", 1)

            assert store.delete_file()
            assert not os.path.exists(path)
            assert store.get("a") == 1
