"""Tests for queue state persistence across restarts."""

import json
import sqlite3
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from photoqueue.errors import PersistenceError
from photoqueue.sync import MemoryStore, SqliteStore, UploadQueue
from photoqueue.sync.store import deserialize_queue


class TestSqliteStorePersistence:
    """Test the SQLite store across queue close and reopen."""

    def test_queue_persists_across_restart(self):
        """Verify queued items survive store close and reopen."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"

            store1 = SqliteStore(db_path)
            queue1 = UploadQueue(store1)
            artifact_id = queue1.enqueue(b"\xff\xd8jpeg", {"user_id": "u1", "store_id": 7})
            store1.close()

            # Reopen (simulates agent restart)
            store2 = SqliteStore(db_path)
            queue2 = UploadQueue(store2)

            restored = queue2.snapshot()
            assert len(restored) == 1
            assert restored[0].id == artifact_id
            assert restored[0].payload == b"\xff\xd8jpeg"
            assert restored[0].attributes == {"user_id": "u1", "store_id": 7}

            store2.close()

    def test_queue_maintains_order_and_retry_counts(self):
        """Verify order and demotions survive a restart."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"

            store1 = SqliteStore(db_path)
            queue1 = UploadQueue(store1)
            ids = [queue1.enqueue(f"photo-{i}", {"index": i}) for i in range(3)]
            queue1.report_failure(ids[0], "offline")
            expected = queue1.snapshot()
            store1.close()

            store2 = SqliteStore(db_path)
            restored = UploadQueue(store2).snapshot()

            assert restored == expected
            assert [a.id for a in restored] == [ids[1], ids[2], ids[0]]
            assert [a.retry_count for a in restored] == [0, 0, 1]

            store2.close()

    def test_delivered_items_not_restored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"

            store1 = SqliteStore(db_path)
            queue1 = UploadQueue(store1)
            id1 = queue1.enqueue(b"1")
            id2 = queue1.enqueue(b"2")
            queue1.report_success(id1)
            store1.close()

            store2 = SqliteStore(db_path)
            assert [a.id for a in store2.load()] == [id2]
            store2.close()

    def test_empty_database_loads_empty_queue(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SqliteStore(Path(tmpdir) / "nested" / "queue.db")

            assert store.load() == []
            assert store.db_path.parent.exists()

            store.close()

    def test_slots_are_independent(self):
        """Two slots in one database hold separate queues."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"
            photos = SqliteStore(db_path, slot="photo-queue")
            receipts = SqliteStore(db_path, slot="receipts")

            UploadQueue(photos).enqueue(b"photo")

            assert len(photos.load()) == 1
            assert receipts.load() == []

            photos.close()
            receipts.close()

    def test_corrupt_row_loads_empty(self):
        """A hand-damaged state row is treated as an empty queue."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"
            store = SqliteStore(db_path)
            UploadQueue(store).enqueue(b"photo")
            store.close()

            conn = sqlite3.connect(str(db_path))
            with conn:
                conn.execute("UPDATE queue_state SET state_json = ?", ("[{broken",))
            conn.close()

            store = SqliteStore(db_path)
            queue = UploadQueue(store)
            assert queue.size() == 0

            # The next mutation overwrites the bad state
            queue.enqueue(b"fresh")
            assert len(store.load()) == 1
            store.close()

    def test_save_after_close_raises_persistence_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SqliteStore(Path(tmpdir) / "queue.db")
            store.close()

            with pytest.raises(PersistenceError):
                store.save([])


class TestDeserialize:
    """Test parsing of stored queue state."""

    def test_missing_state(self):
        assert deserialize_queue(None) == []
        assert deserialize_queue("") == []

    @pytest.mark.parametrize(
        "state_json",
        [
            "not json",
            '{"id": "a"}',
            '[{"id": "a"}]',
            '[{"id": "a", "payload": "!!", "payload_encoding": "base64", '
            '"attributes": {}, "enqueued_at": "2026-01-24T12:00:00+00:00", "retry_count": 0}]',
            '[{"id": "a", "payload": "x", "payload_encoding": "text", '
            '"attributes": {}, "enqueued_at": "yesterday", "retry_count": 0}]',
            '[{"id": "a", "payload": "x", "payload_encoding": "text", '
            '"attributes": {}, "enqueued_at": "2026-01-24T12:00:00+00:00", "retry_count": -1}]',
            '[{"id": "a", "payload": "x", "payload_encoding": "gzip", '
            '"attributes": {}, "enqueued_at": "2026-01-24T12:00:00+00:00", "retry_count": 0}]',
            '["a"]',
        ],
    )
    def test_malformed_state_loads_empty(self, state_json):
        assert deserialize_queue(state_json) == []

    def test_naive_timestamp_read_as_utc(self):
        state_json = json.dumps(
            [
                {
                    "id": "a",
                    "payload": "x",
                    "payload_encoding": "text",
                    "attributes": {},
                    "enqueued_at": "2026-01-01T00:00:00",
                    "retry_count": 0,
                }
            ]
        )

        artifact = deserialize_queue(state_json)[0]

        assert artifact.enqueued_at == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_duplicate_ids_keep_first(self):
        record = {
            "id": "a",
            "payload": "first",
            "payload_encoding": "text",
            "attributes": {},
            "enqueued_at": "2026-01-24T12:00:00+00:00",
            "retry_count": 0,
        }
        state_json = json.dumps([record, {**record, "payload": "second"}])

        artifacts = deserialize_queue(state_json)

        assert len(artifacts) == 1
        assert artifacts[0].payload == "first"


class TestMemoryStore:
    """Test the in-process store."""

    def test_state_is_plain_json(self):
        store = MemoryStore()
        UploadQueue(store).enqueue("hello", {"user_id": "u1"})

        records = json.loads(store.state_json)

        assert records[0]["payload"] == "hello"
        assert records[0]["payload_encoding"] == "text"
        assert records[0]["attributes"] == {"user_id": "u1"}
        assert records[0]["retry_count"] == 0

    def test_bytes_payload_stored_as_base64(self):
        store = MemoryStore()
        UploadQueue(store).enqueue(b"\x00\xff")

        records = json.loads(store.state_json)

        assert records[0]["payload_encoding"] == "base64"
        assert records[0]["payload"] == "AP8="
