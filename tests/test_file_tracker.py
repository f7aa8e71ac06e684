"""
Tests for content hashing and file change detection.
"""

import asyncio
import json
import os

import pytest

from dupindex.cache.file_tracker import FileTracker, hash_content, hash_content_sync
from dupindex.types import ChangeType, FileHashEntry


@pytest.fixture
def tracker():
    return FileTracker()


class TestHashing:
    """Tests for the sync and async digest functions."""

    def test_consistent_hashes(self):
        assert hash_content_sync("test content") == hash_content_sync("test content")
        assert asyncio.run(hash_content("test content")) == asyncio.run(hash_content("test content"))

    def test_different_content_different_hash(self):
        samples = ["content1", "content2", "", " ", "content1\n", "ünïcödé"]
        digests = {hash_content_sync(s) for s in samples}
        assert len(digests) == len(samples)

    def test_sync_and_async_agree(self):
        for text in ["", "hello", "export function Foo() {}\n", "ünïcödé"]:
            assert asyncio.run(hash_content(text)) == hash_content_sync(text)

    def test_digest_format(self):
        digest = hash_content_sync("anything")
        assert len(digest) == 16
        int(digest, 16)


class TestEntries:
    """Tests for direct entry access."""

    def test_set_and_get_entry(self, tracker):
        tracker.set_entry("/test.tsx", FileHashEntry("hash1", 12345, ["id1", "id2"]))

        entry = tracker.get_entry("/test.tsx")
        assert entry is not None
        assert entry.content_hash == "hash1"
        assert entry.chunk_ids == ["id1", "id2"]

    def test_get_missing_entry(self, tracker):
        assert tracker.get_entry("/missing.tsx") is None

    def test_entries_are_copied(self, tracker):
        entry = FileHashEntry("hash1", 1.0, ["id1"])
        tracker.set_entry("/a.tsx", entry)
        entry.chunk_ids.append("id2")
        tracker.get_entry("/a.tsx").chunk_ids.append("id3")

        assert tracker.get_entry("/a.tsx").chunk_ids == ["id1"]

    def test_remove_entry(self, tracker):
        tracker.set_entry("/a.tsx", FileHashEntry("h", 1.0, []))

        assert tracker.remove_entry("/a.tsx") is True
        assert tracker.remove_entry("/a.tsx") is False
        assert tracker.get_tracked_files() == []

    def test_get_tracked_files(self, tracker):
        tracker.set_entry("/a.tsx", FileHashEntry("h1", 1.0, []))
        tracker.set_entry("/b.tsx", FileHashEntry("h2", 2.0, []))

        assert sorted(tracker.get_tracked_files()) == ["/a.tsx", "/b.tsx"]
        assert tracker.get_stats() == {"tracked_files": 2}


class TestUpdateFile:
    """Tests for recording indexed files."""

    def test_update_file_records_hash_and_mtime(self, tracker, tmp_path):
        path = tmp_path / "a.tsx"
        path.write_text("content")
        os.utime(path, ns=(1_700_000_000_000_000_000, 1_700_000_000_000_000_000))

        tracker.update_file(str(path), "content", ["c1", "c2"])

        entry = tracker.get_entry(str(path))
        assert entry.content_hash == hash_content_sync("content")
        assert entry.mtime_ms == pytest.approx(1_700_000_000_000.0)
        assert entry.chunk_ids == ["c1", "c2"]

    def test_update_file_overwrites(self, tracker, tmp_path):
        path = tmp_path / "a.tsx"
        path.write_text("v1")
        tracker.update_file(str(path), "v1", ["old"])
        path.write_text("v2")
        tracker.update_file(str(path), "v2", ["new"])

        entry = tracker.get_entry(str(path))
        assert entry.chunk_ids == ["new"]
        assert entry.content_hash == hash_content_sync("v2")

    def test_update_missing_file_raises(self, tracker, tmp_path):
        with pytest.raises(FileNotFoundError):
            tracker.update_file(str(tmp_path / "gone.tsx"), "x", [])
        assert tracker.get_tracked_files() == []


class TestDetectChanges:
    """Tests for change classification."""

    def test_detect_added(self, tracker, tmp_path):
        path = tmp_path / "new.tsx"
        path.write_text("new content")

        changes = tracker.detect_changes([str(path)])

        assert len(changes) == 1
        assert changes[0].type is ChangeType.ADDED
        assert changes[0].path == str(path)
        assert changes[0].new_hash == hash_content_sync("new content")

    def test_detect_modified(self, tracker, tmp_path):
        path = tmp_path / "modified.tsx"
        path.write_text("original content")
        tracker.update_file(str(path), "original content", ["id1"])

        path.write_text("modified content")
        changes = tracker.detect_changes([str(path)])

        assert len(changes) == 1
        assert changes[0].type is ChangeType.MODIFIED
        assert changes[0].old_hash == hash_content_sync("original content")
        assert changes[0].new_hash == hash_content_sync("modified content")

    def test_detect_deleted(self, tracker, tmp_path):
        path = tmp_path / "deleted.tsx"
        tracker.set_entry(str(path), FileHashEntry("old_hash", 12345, ["id1"]))

        changes = tracker.detect_changes([])

        assert len(changes) == 1
        assert changes[0].type is ChangeType.DELETED
        assert changes[0].old_hash == "old_hash"

    def test_unchanged_omitted(self, tracker, tmp_path):
        path = tmp_path / "unchanged.tsx"
        path.write_text("same content")
        tracker.update_file(str(path), "same content", ["id1"])

        assert tracker.detect_changes([str(path)]) == []

    def test_touch_without_edit_is_unchanged(self, tracker, tmp_path):
        """Only content matters; a newer mtime alone is not a modification."""
        path = tmp_path / "touched.tsx"
        path.write_text("same")
        tracker.update_file(str(path), "same", [])
        os.utime(path, (2_000_000_000, 2_000_000_000))

        assert tracker.detect_changes([str(path)]) == []

    def test_hash_read_at_call_time(self, tracker, tmp_path):
        """A stale stored hash is never reused for the comparison."""
        path = tmp_path / "a.tsx"
        path.write_text("one")
        tracker.update_file(str(path), "one", [])

        path.write_text("two")
        assert tracker.detect_changes([str(path)])[0].type is ChangeType.MODIFIED

        path.write_text("one")
        assert tracker.detect_changes([str(path)]) == []

    def test_mixed_scan(self, tracker, tmp_path):
        kept = tmp_path / "kept.tsx"
        edited = tmp_path / "edited.tsx"
        fresh = tmp_path / "fresh.tsx"
        for path in (kept, edited, fresh):
            path.write_text(path.name)
        tracker.update_file(str(kept), "kept.tsx", [])
        tracker.update_file(str(edited), "old text", [])
        tracker.set_entry(str(tmp_path / "gone.tsx"), FileHashEntry("h", 1.0, []))

        changes = tracker.detect_changes([str(kept), str(edited), str(fresh)])

        assert [(c.path, c.type) for c in changes] == [
            (str(tmp_path / "gone.tsx"), ChangeType.DELETED),
            (str(edited), ChangeType.MODIFIED),
            (str(fresh), ChangeType.ADDED),
        ]

    def test_crlf_file_matches_text_mode_content(self, tracker, tmp_path):
        """Windows line endings hash the same as the text-mode read used to index."""
        path = tmp_path / "win.tsx"
        path.write_bytes(b"export function Win() {}\r\nexport const x = 1\r\n")
        tracker.update_file(str(path), path.read_text(encoding="utf-8"), ["c1"])

        assert tracker.detect_changes([str(path)]) == []

    def test_unreadable_tracked_file_is_deleted(self, tracker, tmp_path):
        path = tmp_path / "vanished.tsx"
        tracker.set_entry(str(path), FileHashEntry("h", 1.0, ["id1"]))

        changes = tracker.detect_changes([str(path)])

        assert [(c.path, c.type) for c in changes] == [(str(path), ChangeType.DELETED)]

    def test_unreadable_untracked_file_is_skipped(self, tracker, tmp_path):
        assert tracker.detect_changes([str(tmp_path / "nothing.tsx")]) == []

    def test_duplicate_paths_counted_once(self, tracker, tmp_path):
        path = tmp_path / "a.tsx"
        path.write_text("x")

        changes = tracker.detect_changes([str(path), str(path)])
        assert len(changes) == 1

    def test_detect_does_not_mutate(self, tracker, tmp_path):
        path = tmp_path / "a.tsx"
        path.write_text("x")

        tracker.detect_changes([str(path)])
        assert tracker.get_tracked_files() == []


class TestPersistence:
    """Tests for save and load."""

    def test_save_and_load(self, tracker, tmp_path):
        tracker.set_entry("/a.tsx", FileHashEntry("hash1", 12345, ["id1"]))
        tracker.save(tmp_path / "files")

        loaded = FileTracker()
        loaded.load(tmp_path / "files")

        entry = loaded.get_entry("/a.tsx")
        assert entry.content_hash == "hash1"
        assert entry.mtime_ms == 12345
        assert entry.chunk_ids == ["id1"]

    def test_missing_hash_store(self, tmp_path):
        loaded = FileTracker()
        loaded.load(tmp_path)

        assert loaded.get_tracked_files() == []

    def test_malformed_data_recovers_to_empty(self, tmp_path):
        (tmp_path / FileTracker.HASHES_FILE).write_text("{not valid json")

        loaded = FileTracker()
        loaded.set_entry("/stale.tsx", FileHashEntry("h", 1.0, []))
        loaded.load(tmp_path)

        assert loaded.get_tracked_files() == []

    def test_incompatible_version_recovers_to_empty(self, tmp_path):
        data = {"version": 2, "files": {"/a.tsx": {"content_hash": "h", "mtime_ms": 1, "chunk_ids": []}}}
        (tmp_path / FileTracker.HASHES_FILE).write_text(json.dumps(data))

        loaded = FileTracker()
        loaded.load(tmp_path)

        assert loaded.get_tracked_files() == []

    def test_bad_entry_recovers_to_empty(self, tmp_path):
        data = {"version": 1, "files": {"/a.tsx": {"mtime_ms": 1}}}
        (tmp_path / FileTracker.HASHES_FILE).write_text(json.dumps(data))

        loaded = FileTracker()
        loaded.load(tmp_path)

        assert loaded.get_tracked_files() == []

    def test_detect_after_reload(self, tracker, tmp_path):
        """Tracking survives a save/load cycle for change detection."""
        source = tmp_path / "src.tsx"
        source.write_text("body")
        tracker.update_file(str(source), "body", ["c1"])
        tracker.save(tmp_path / "index")

        loaded = FileTracker()
        loaded.load(tmp_path / "index")

        assert loaded.detect_changes([str(source)]) == []
