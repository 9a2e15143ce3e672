"""Unit tests for the hydration coordinator."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.leanamp.crm.events import ChangeChannel
from src.leanamp.crm.hydration import HydrationCoordinator, HydrationState
from src.leanamp.crm.remote import RemoteSyncClient
from src.leanamp.crm.store import LocalStore

CRM_ENDPOINT = "http://crm.test/api/crm-records"


@pytest.fixture
def channel():
    return ChangeChannel()


@pytest.fixture
def push():
    return MagicMock()


@pytest.fixture
def store(durable, push, channel):
    return LocalStore(durable, push=push, channel=channel)


@pytest.fixture
def remote(server, credentials):
    return RemoteSyncClient(CRM_ENDPOINT, credentials, transport=server.transport)


@pytest.fixture
def coordinator(store, remote):
    return HydrationCoordinator(store, remote)


class TestHydrate:
    async def test_overwrites_local_with_remote(self, coordinator, store, server, record_factory):
        store.save([record_factory(id=1)], sync=False)
        server.snapshot = [record_factory(id=2).to_wire(), record_factory(id=3).to_wire()]

        assert await coordinator.hydrate() is True

        assert [r.id for r in store.load()] == [2, 3]

    async def test_does_not_echo_push(self, coordinator, server, push, record_factory):
        server.snapshot = [record_factory().to_wire()]
        await coordinator.hydrate()
        push.assert_not_called()
        assert server.puts == []

    async def test_notifies_views(self, coordinator, channel, server, record_factory):
        events = []
        channel.subscribe(events.append)
        server.snapshot = [record_factory().to_wire()]

        await coordinator.hydrate()

        assert [(e.source, e.record_count) for e in events] == [("hydration", 1)]

    async def test_empty_remote_snapshot_clears_local(self, coordinator, store, record_factory):
        store.save([record_factory()], sync=False)
        assert await coordinator.hydrate() is True
        assert store.load() == []

    async def test_failure_leaves_local_untouched(self, coordinator, store, server, record_factory):
        existing = [record_factory(id=1)]
        store.save(existing, sync=False)
        server.status_code = 500

        assert await coordinator.hydrate() is False

        assert store.load() == existing

    async def test_invalid_payload_leaves_local_untouched(
        self, coordinator, store, server, record_factory
    ):
        existing = [record_factory(id=1)]
        store.save(existing, sync=False)
        server.snapshot = {"value": []}

        assert await coordinator.hydrate() is False

        assert store.load() == existing

    async def test_unauthenticated_is_noop(self, store, server, no_credentials):
        remote = RemoteSyncClient(CRM_ENDPOINT, no_credentials, transport=server.transport)
        coordinator = HydrationCoordinator(store, remote)

        assert await coordinator.hydrate() is False

        assert server.requests == []
        assert coordinator.fetches == 0


class TestDeduplication:
    async def test_concurrent_calls_share_one_fetch(self, coordinator, server, record_factory):
        server.snapshot = [record_factory().to_wire()]
        server.gate = asyncio.Event()

        first = coordinator.hydrate()
        second = coordinator.hydrate()
        await asyncio.sleep(0)
        assert coordinator.state is HydrationState.PULLING

        server.gate.set()
        results = await asyncio.gather(first, second)

        assert first is second
        assert results == [True, True]
        assert len(server.gets) == 1
        assert coordinator.state is HydrationState.IDLE

    async def test_marker_cleared_after_completion(self, coordinator, server):
        await coordinator.hydrate()
        await coordinator.hydrate()

        assert len(server.gets) == 2
        assert coordinator.fetches == 2

    async def test_finished_task_is_never_reused(self, coordinator, server):
        """A completed pull still held as in-flight starts a fresh one."""
        finished = asyncio.ensure_future(asyncio.sleep(0, result=False))
        await finished
        coordinator._inflight = finished

        task = coordinator.hydrate()

        assert task is not finished
        assert await task is True
        assert len(server.gets) == 1

    async def test_marker_cleared_after_failure(self, store):
        remote = MagicMock(spec=RemoteSyncClient)
        remote.is_authenticated.return_value = True
        remote.pull = AsyncMock(side_effect=[None, []])
        coordinator = HydrationCoordinator(store, remote)

        assert await coordinator.hydrate() is False
        assert await coordinator.hydrate() is True

        assert remote.pull.await_count == 2
