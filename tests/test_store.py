"""CacheStore: per-session files, the index, and crash-safe writes."""

import json
import logging
import os

import pytest

from gules.errors import CacheIOError
from gules.models.activity import decode_activity
from gules.models.cache import INDEX_SCHEMA, SESSION_SCHEMA, SessionCache
from gules.store import CacheStore, session_filename


def cached(session_id, *payloads, cursor=None):
    return SessionCache(
        session_id=session_id,
        records=[decode_activity(p, session_id) for p in payloads],
        next_page_cursor=cursor,
    )


class TestLoadSave:
    def test_missing_session_is_none(self, store):
        assert store.load("nope") is None

    def test_round_trip(self, store, activity, bash):
        payloads = [activity("a1", 1), activity("a2", 2, kind="progressUpdated", artifacts=[bash()])]
        store.save(cached("s1", *payloads, cursor="p2"))

        loaded = store.load("s1")
        assert [r.key for r in loaded.records] == ["a1", "a2"]
        assert [r.to_payload() for r in loaded.records] == payloads
        assert loaded.next_page_cursor == "p2"

    def test_file_layout(self, store, activity):
        store.save(cached("s1", activity("a1", 1)))
        data = json.loads(store.path_for("s1").read_text())
        assert data["schema"] == SESSION_SCHEMA
        assert data["session_id"] == "s1"
        assert data["activities"][0]["id"] == "a1"
        index = json.loads(store.index_path.read_text())
        assert index["schema"] == INDEX_SCHEMA
        assert [e["session_id"] for e in index["sessions"]] == ["s1"]

    def test_created_flag(self, store, activity):
        assert store.save(cached("s1", activity("a1", 1))) is True
        assert store.save(cached("s1", activity("a1", 1), activity("a2", 2))) is False
        assert store.index.get("s1").activity_count == 2

    def test_save_moves_session_to_recent_end(self, store):
        for sid in ("x", "y", "z"):
            store.save(SessionCache(session_id=sid))
        store.save(SessionCache(session_id="x"))
        assert store.index.session_ids() == ["y", "z", "x"]

    def test_unknown_records_survive_storage(self, store):
        raw = {"id": "u1", "createTime": "2025-10-26T00:00:01.000000001Z", "brandNewKind": {"x": [1, None]}}
        store.save(cached("s1", raw))
        assert store.load("s1").records[0].to_payload() == raw

    def test_persists_across_instances(self, cache_config, activity):
        CacheStore(cache_config).save(cached("s1", activity("a1", 1), cursor="next"))
        reopened = CacheStore(cache_config)
        assert reopened.index.session_ids() == ["s1"]
        assert reopened.load("s1").next_page_cursor == "next"


class TestCorruption:
    def test_garbage_file_is_ignored(self, store, activity, caplog):
        store.save(cached("s1", activity("a1", 1)))
        store.path_for("s1").write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="gules.store"):
            assert store.load("s1") is None
        assert "corrupt" in caplog.text

    def test_wrong_schema_is_ignored(self, store, activity, caplog):
        store.save(cached("s1", activity("a1", 1)))
        data = json.loads(store.path_for("s1").read_text())
        data["schema"] = "gules.session/99"
        store.path_for("s1").write_text(json.dumps(data))
        with caplog.at_level(logging.WARNING, logger="gules.store"):
            assert store.load("s1") is None
        assert "unexpected schema" in caplog.text

    def test_file_for_other_session_is_ignored(self, store, activity):
        store.save(cached("s1", activity("a1", 1)))
        data = json.loads(store.path_for("s1").read_text())
        data["session_id"] = "s2"
        store.path_for("s1").write_text(json.dumps(data))
        assert store.load("s1") is None

    def test_corrupt_index_is_rebuilt_in_memory(self, cache_config, activity, caplog):
        first = CacheStore(cache_config)
        first.save(cached("s1", activity("a1", 1)))
        first.save(cached("s2", activity("b1", 1), activity("b2", 2)))
        first.index_path.write_text("][")

        with caplog.at_level(logging.WARNING, logger="gules.store"):
            store = CacheStore(cache_config)
            assert sorted(store.index.session_ids()) == ["s1", "s2"]
        assert store.index.get("s2").activity_count == 2
        assert "rebuilding" in caplog.text
        assert first.index_path.read_text() == "]["

    def test_missing_index_is_rebuilt(self, cache_config, activity, caplog):
        first = CacheStore(cache_config)
        first.save(cached("s1", activity("a1", 1)))
        first.save(cached("s2", activity("b1", 1)))
        first.index_path.unlink()

        with caplog.at_level(logging.WARNING, logger="gules.store"):
            store = CacheStore(cache_config)
            assert store.index.session_ids() == ["s1", "s2"]
        assert "missing" in caplog.text
        assert store.stats().total_activities == 2
        assert store.clear_all().session_count == 2
        assert list(store.sessions_dir.glob("*.json")) == []

    def test_fresh_root_has_empty_index(self, store):
        assert store.index.session_ids() == []


class TestAtomicWrites:
    def test_failed_rename_keeps_previous_file(self, store, activity, monkeypatch):
        store.save(cached("s1", activity("a1", 1)))
        before = store.path_for("s1").read_text()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("gules.store.os.replace", broken_replace)
        with pytest.raises(CacheIOError) as exc_info:
            store.save(cached("s1", activity("a1", 1), activity("a2", 2)))

        assert exc_info.value.code == "cache_io_error"
        assert store.path_for("s1").read_text() == before
        assert not [n for n in os.listdir(store.sessions_dir) if n.endswith(".tmp")]

    def test_failed_first_write_leaves_nothing_tracked(self, store, monkeypatch):
        def broken_replace(src, dst):
            raise OSError("read-only file system")

        monkeypatch.setattr("gules.store.os.replace", broken_replace)
        with pytest.raises(CacheIOError):
            store.save(SessionCache(session_id="s1"))
        assert store.index.session_ids() == []
        assert not store.path_for("s1").exists()


class TestDeleteAndClear:
    def test_delete(self, store, activity):
        store.save(cached("s1", activity("a1", 1)))
        store.save(cached("s2", activity("b1", 1)))
        assert store.delete("s1") is True
        assert store.load("s1") is None
        assert not store.path_for("s1").exists()
        assert store.index.session_ids() == ["s2"]
        assert CacheStore(store.config).index.session_ids() == ["s2"]

    def test_delete_unknown_session(self, store):
        assert store.delete("ghost") is False

    def test_clear_all(self, store, activity):
        store.save(cached("s1", activity("a1", 1)))
        store.save(cached("s2", activity("b1", 1), activity("b2", 2)))

        before = store.clear_all()

        assert before.session_count == 2
        assert before.total_activities == 3
        assert store.stats().session_count == 0
        assert store.load("s1") is None
        assert CacheStore(store.config).index.session_ids() == []

    def test_clear_empty_cache(self, store):
        assert store.clear_all().session_count == 0
        assert not store.root.exists()


class TestStats:
    def test_counts_and_bytes(self, store, activity):
        store.save(cached("s1", activity("a1", 1), activity("a2", 2)))
        store.save(cached("s2", activity("b1", 1)))
        stats = store.stats()
        assert stats.session_count == 2
        assert stats.total_activities == 3
        expected = sum(store.path_for(s).stat().st_size for s in ("s1", "s2"))
        assert stats.total_bytes == expected
        assert stats.max_sessions == 50
        assert stats.cache_dir == str(store.root)

    def test_empty(self, store):
        stats = store.stats()
        assert stats.session_count == 0
        assert stats.total_bytes == 0

    def test_list_sessions_oldest_first(self, store):
        store.save(SessionCache(session_id="a"))
        store.save(SessionCache(session_id="b"))
        assert [e.session_id for e in store.list_sessions()] == ["a", "b"]


class TestSessionFilename:
    def test_plain_id(self):
        assert session_filename("12345678901234") == "12345678901234.json"

    @pytest.mark.parametrize("sid", ["../escape", "a/b", ".hidden", "with space", ""])
    def test_unsafe_ids_are_sanitized(self, sid):
        name = session_filename(sid)
        assert "/" not in name
        assert not name.startswith(".")
        assert name.endswith(".json")

    def test_distinct_ids_get_distinct_names(self):
        assert session_filename("a/b") != session_filename("a_b/")

    def test_hashed_names_cannot_match_a_safe_id(self):
        hashed = session_filename("a/b")
        lookalike = hashed[: -len(".json")].replace("~", "-")
        assert session_filename(lookalike) != hashed
        assert session_filename(hashed[: -len(".json")]) != hashed

    def test_unsafe_id_round_trip(self, store, activity):
        store.save(cached("../escape", activity("a1", 1, session_id="x")))
        path = store.path_for("../escape")
        assert path.parent == store.sessions_dir
        assert store.load("../escape").records[0].key == "a1"
