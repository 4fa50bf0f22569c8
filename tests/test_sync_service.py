"""
NoteSync — Sync Service Unit Tests
==================================

What we test:
    ✅ fetch creates lazily and is idempotent
    ✅ update → fetch returns the new content with a later lastUpdated
    ✅ update broadcasts to every other subscriber, never back to the origin
    ✅ update persists; a failing save does not fail the update
    ✅ rejected updates touch nothing (no note, no broadcast, no save)
    ✅ concurrent updates to one note are broadcast in acceptance order
    ✅ a subscriber that stops reading never holds up later writers
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from notesync.exceptions import InvalidIdentifierError, InvalidPayloadError
from notesync.services.subscriptions import Subscriber


class TestFetch:
    def test_fetch_unseen_returns_empty(self, sync_service):
        note = sync_service.fetch("ab12cd")
        assert note.content == ""
        assert sync_service.fetch("ab12cd") == note

    def test_fetch_invalid_id(self, sync_service, store):
        with pytest.raises(InvalidIdentifierError):
            sync_service.fetch("AB")
        assert len(store) == 0


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_then_fetch(self, sync_service):
        t0 = sync_service.fetch("ab12cd").last_updated

        note = await sync_service.update("ab12cd", "hello")

        assert note.content == "hello"
        assert note.last_updated > t0
        assert sync_service.fetch("ab12cd") == note

    @pytest.mark.asyncio
    async def test_broadcast_excludes_origin(self, sync_service, registry, make_subscriber):
        a, inbox_a = make_subscriber()
        b, inbox_b = make_subscriber()
        registry.join("ab12cd", a)
        registry.join("ab12cd", b)

        note = await sync_service.update("ab12cd", "from a", origin=a)

        assert inbox_a == []
        assert len(inbox_b) == 1
        message = inbox_b[0]
        assert message["type"] == "content_update"
        assert message["content"] == "from a"
        assert message["sender"] == a.session_id
        assert message["lastUpdated"].startswith(note.last_updated.strftime("%Y-%m-%dT%H:%M:%S"))

    @pytest.mark.asyncio
    async def test_client_declared_sender_is_echoed(self, sync_service, registry, make_subscriber):
        a, _ = make_subscriber()
        b, inbox_b = make_subscriber()
        registry.join("ab12cd", a)
        registry.join("ab12cd", b)

        await sync_service.update("ab12cd", "x", sender="tab-42", origin=a)
        assert inbox_b[0]["sender"] == "tab-42"

    @pytest.mark.asyncio
    async def test_http_update_reaches_all_subscribers(self, sync_service, registry, make_subscriber):
        a, inbox_a = make_subscriber()
        registry.join("ab12cd", a)

        await sync_service.update("ab12cd", "from http")

        assert inbox_a[0]["content"] == "from http"
        assert inbox_a[0]["sender"] is None

    @pytest.mark.asyncio
    async def test_update_persists(self, sync_service, gateway):
        await sync_service.update("ab12cd", "durable")
        loaded = await gateway.load()
        assert loaded["ab12cd"].content == "durable"

    @pytest.mark.asyncio
    async def test_save_failure_does_not_fail_update(self, sync_service, gateway, registry, make_subscriber):
        b, inbox_b = make_subscriber()
        registry.join("ab12cd", b)

        with patch.object(gateway, "_write_atomic", side_effect=OSError("disk full")):
            note = await sync_service.update("ab12cd", "still accepted")

        assert note.content == "still accepted"
        assert sync_service.fetch("ab12cd").content == "still accepted"
        assert inbox_b[0]["content"] == "still accepted"

    @pytest.mark.asyncio
    async def test_non_text_content_rejected(self, sync_service, registry, gateway, make_subscriber):
        before = sync_service.fetch("ab12cd")
        b, inbox_b = make_subscriber()
        registry.join("ab12cd", b)

        with patch.object(gateway, "flush", new_callable=AsyncMock) as mock_flush:
            with pytest.raises(InvalidPayloadError):
                await sync_service.update("ab12cd", {"not": "text"})

        assert sync_service.fetch("ab12cd") == before
        assert inbox_b == []
        mock_flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_id_rejected(self, sync_service, store):
        with pytest.raises(InvalidIdentifierError):
            await sync_service.update("AB", "hello")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_same_note_updates_broadcast_in_order(self, sync_service, registry, make_subscriber):
        watcher, inbox = make_subscriber()
        registry.join("ab12cd", watcher)

        contents = [f"v{i}" for i in range(10)]
        await asyncio.gather(*(sync_service.update("ab12cd", c) for c in contents))

        # the note lock is FIFO, so acceptance order is submission order
        received = [m["content"] for m in inbox]
        assert received == contents
        assert sync_service.fetch("ab12cd").content == contents[-1]


class TestCreate:
    def test_create_returns_unused_id(self, sync_service, store):
        existing = sync_service.fetch("ab12cd")
        created = sync_service.create()
        assert created.id != existing.id
        assert created.id in store


class TestStalledSubscriber:
    @pytest.mark.asyncio
    async def test_stalled_subscriber_does_not_block_later_updates(
        self, sync_service, registry, store, make_subscriber
    ):
        async def never_returns(message):
            await asyncio.Event().wait()

        stalled = Subscriber(never_returns)
        healthy, inbox = make_subscriber()
        registry.join("ab12cd", stalled)
        registry.join("ab12cd", healthy)

        first = asyncio.create_task(sync_service.update("ab12cd", "one"))
        # let the first update take the note lock and start broadcasting
        await asyncio.sleep(0)
        await asyncio.wait_for(sync_service.update("ab12cd", "two"), timeout=2)

        assert first.done()
        assert [m["content"] for m in inbox] == ["one", "two"]
        assert stalled.is_open is False
        assert store.is_locked("ab12cd") is False
