"""
NoteSync — Persistence Gateway Unit Tests
=========================================

What we test:
    ✅ Missing snapshot loads as empty
    ✅ save → load reproduces content and lastUpdated for every note
    ✅ Corrupt snapshot raises PersistenceError; bad entries are skipped
    ✅ Saves overwrite the whole snapshot and leave no temp file behind
    ✅ Write failures are retried, then contained by flush()
    ✅ Disk calls run off the event loop
"""

import asyncio
import json
import time
from datetime import datetime, timezone
from unittest.mock import patch

import aiofiles.os
import pytest

from notesync.exceptions import PersistenceError
from notesync.models.note import Note
from notesync.services.persistence import PersistenceGateway


def _note(note_id: str, content: str, hour: int = 12) -> Note:
    return Note(
        id=note_id,
        content=content,
        last_updated=datetime(2026, 1, 15, hour, 30, 15, 123456, tzinfo=timezone.utc),
    )


class TestLoad:
    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, gateway):
        assert not gateway.path.exists()
        assert await gateway.load() == {}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, gateway):
        gateway.path.parent.mkdir(parents=True, exist_ok=True)
        gateway.path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError, match="could not be read"):
            await gateway.load()

    @pytest.mark.asyncio
    async def test_non_object_top_level_raises(self, gateway):
        gateway.path.parent.mkdir(parents=True, exist_ok=True)
        gateway.path.write_text('["ab12cd"]', encoding="utf-8")

        with pytest.raises(PersistenceError, match="must be an object"):
            await gateway.load()

    @pytest.mark.asyncio
    async def test_bad_entries_are_skipped(self, gateway):
        gateway.path.parent.mkdir(parents=True, exist_ok=True)
        gateway.path.write_text(
            json.dumps({
                "ab12cd": {"content": "ok", "lastUpdated": "2026-01-15T12:00:00+00:00"},
                "BAD": {"content": "wrong id", "lastUpdated": "2026-01-15T12:00:00+00:00"},
                "cd34ef": {"content": 7, "lastUpdated": "2026-01-15T12:00:00+00:00"},
                "ef56gh": {"content": "no stamp"},
                "gh78ij": {"content": "bad stamp", "lastUpdated": "yesterday"},
            }),
            encoding="utf-8",
        )

        notes = await gateway.load()
        assert list(notes) == ["ab12cd"]
        assert notes["ab12cd"].content == "ok"

    @pytest.mark.asyncio
    async def test_naive_timestamp_read_as_utc(self, gateway):
        gateway.path.parent.mkdir(parents=True, exist_ok=True)
        gateway.path.write_text(
            json.dumps({"ab12cd": {"content": "", "lastUpdated": "2026-01-15T12:00:00"}}),
            encoding="utf-8",
        )
        notes = await gateway.load()
        assert notes["ab12cd"].last_updated.tzinfo == timezone.utc


class TestSave:
    @pytest.mark.asyncio
    async def test_round_trip(self, gateway):
        snapshot = {
            "ab12cd": _note("ab12cd", "hello"),
            "zz99zz": _note("zz99zz", "ünïcødé\nmultiline", hour=3),
            "000000": _note("000000", ""),
        }
        await gateway.save(snapshot)
        loaded = await gateway.load()

        assert loaded == snapshot

        # save(load()) writes the same document again
        first_bytes = gateway.path.read_bytes()
        await gateway.save(loaded)
        assert gateway.path.read_bytes() == first_bytes

    @pytest.mark.asyncio
    async def test_layout_is_id_to_content_and_last_updated(self, gateway):
        await gateway.save({"ab12cd": _note("ab12cd", "hello")})
        raw = json.loads(gateway.path.read_text(encoding="utf-8"))
        assert raw == {
            "ab12cd": {"content": "hello", "lastUpdated": "2026-01-15T12:30:15.123456+00:00"}
        }

    @pytest.mark.asyncio
    async def test_save_overwrites_previous_snapshot(self, gateway):
        await gateway.save({"ab12cd": _note("ab12cd", "old")})
        await gateway.save({"zz99zz": _note("zz99zz", "new")})

        loaded = await gateway.load()
        assert list(loaded) == ["zz99zz"]
        assert not gateway.path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_transient_write_error_is_retried(self, gateway):
        real_write = gateway._write_atomic
        calls = []

        async def flaky(payload):
            calls.append(payload)
            if len(calls) == 1:
                raise OSError("disk busy")
            await real_write(payload)

        with patch.object(gateway, "_write_atomic", side_effect=flaky):
            await gateway.save({"ab12cd": _note("ab12cd", "hello")})

        assert len(calls) == 2
        assert (await gateway.load())["ab12cd"].content == "hello"

    @pytest.mark.asyncio
    async def test_persistent_write_error_raises_after_retries(self, gateway):
        with patch.object(gateway, "_write_atomic", side_effect=OSError("read-only fs")) as mock_write:
            with pytest.raises(PersistenceError, match="could not be written"):
                await gateway.save({"ab12cd": _note("ab12cd", "hello")})

        assert mock_write.await_count == gateway.retry_attempts


class TestFlush:
    @pytest.mark.asyncio
    async def test_flush_writes_store_snapshot(self, gateway, store):
        store.update("ab12cd", "hello")
        assert await gateway.flush(store) is True

        loaded = await gateway.load()
        assert loaded["ab12cd"] == store.get("ab12cd")
        assert gateway.last_saved_count == 1

    @pytest.mark.asyncio
    async def test_flush_contains_failures(self, gateway, store):
        store.update("ab12cd", "hello")
        with patch.object(gateway, "_write_atomic", side_effect=OSError("disk full")):
            assert await gateway.flush(store) is False


class TestEventLoopStaysFree:
    @pytest.mark.asyncio
    async def test_slow_fsync_does_not_block_other_tasks(self, gateway):
        def slow_fsync(fd):
            time.sleep(0.3)

        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        with patch("notesync.services.persistence.os.fsync", side_effect=slow_fsync):
            task = asyncio.create_task(ticker())
            await gateway.save({"ab12cd": _note("ab12cd", "hello")})
            task.cancel()

        assert ticks >= 5
        assert (await gateway.load())["ab12cd"].content == "hello"

    @pytest.mark.asyncio
    async def test_replace_goes_through_aiofiles_and_is_retried(self, gateway):
        real_replace = aiofiles.os.replace
        calls = []

        async def flaky_replace(src, dst):
            calls.append(src)
            if len(calls) == 1:
                raise OSError("target busy")
            await real_replace(src, dst)

        with patch("aiofiles.os.replace", side_effect=flaky_replace):
            await gateway.save({"ab12cd": _note("ab12cd", "hello")})

        assert len(calls) == 2
        assert (await gateway.load())["ab12cd"].content == "hello"

    @pytest.mark.asyncio
    async def test_missing_directory_is_created(self, tmp_path):
        nested = PersistenceGateway(tmp_path / "a" / "b" / "notes.json", retry_min_wait=0, retry_max_wait=0)
        await nested.save({"ab12cd": _note("ab12cd", "deep")})
        assert (await nested.load())["ab12cd"].content == "deep"
