"""Unit tests for PushScheduler (serialized, latest-wins pushes)."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.leanamp.crm.remote import RemoteSyncClient
from src.leanamp.crm.sync import PushScheduler

CRM_ENDPOINT = "http://crm.test/api/crm-records"


@pytest.fixture
def remote(server, credentials):
    return RemoteSyncClient(CRM_ENDPOINT, credentials, transport=server.transport)


@pytest.fixture
def scheduler(remote):
    return PushScheduler(remote)


class TestSubmit:
    async def test_submit_does_not_block(self, scheduler, server, record_factory):
        server.put_gate = asyncio.Event()

        scheduler.submit([record_factory()])

        assert scheduler.busy
        server.put_gate.set()
        await scheduler.flush()
        assert len(server.puts) == 1
        assert scheduler.pushed == 1

    async def test_overlapping_submits_converge_on_latest(
        self, scheduler, server, record_factory
    ):
        """While a push is in flight only the newest pending collection survives."""
        server.put_gate = asyncio.Event()
        first = [record_factory(id=1)]
        second = [record_factory(id=1), record_factory(id=2)]
        third = [record_factory(id=3)]

        scheduler.submit(first)
        await asyncio.sleep(0)
        scheduler.submit(second)
        scheduler.submit(third)
        server.put_gate.set()
        await scheduler.flush()

        bodies = [json.loads(r.content) for r in server.puts]
        assert [[item["id"] for item in body] for body in bodies] == [[1], [3]]
        assert [item["id"] for item in server.snapshot] == [3]
        assert scheduler.superseded == 1

    async def test_at_most_one_push_in_flight(self, record_factory):
        in_flight = 0
        peak = 0

        async def slow_push(records):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return True

        remote = MagicMock(spec=RemoteSyncClient)
        remote.is_authenticated.return_value = True
        remote.push = AsyncMock(side_effect=slow_push)
        scheduler = PushScheduler(remote)

        for i in range(5):
            scheduler.submit([record_factory(id=i)])
            await asyncio.sleep(0.003)
        await scheduler.flush()

        assert peak == 1
        last_pushed = remote.push.await_args_list[-1].args[0]
        assert [r.id for r in last_pushed] == [4]

    async def test_failed_push_is_dropped(self, scheduler, server, record_factory):
        server.status_code = 502

        scheduler.submit([record_factory()])
        await scheduler.flush()

        assert scheduler.failed == 1
        assert len(server.puts) == 1

    async def test_unauthenticated_submit_is_noop(self, server, no_credentials, record_factory):
        remote = RemoteSyncClient(CRM_ENDPOINT, no_credentials, transport=server.transport)
        scheduler = PushScheduler(remote)

        scheduler.submit([record_factory()])
        await scheduler.flush()

        assert not scheduler.busy
        assert server.requests == []

    async def test_new_drain_after_idle(self, scheduler, server, record_factory):
        scheduler.submit([record_factory(id=1)])
        await scheduler.flush()
        scheduler.submit([record_factory(id=2)])
        await scheduler.flush()

        assert len(server.puts) == 2


class TestNoEventLoop:
    def test_submit_without_loop_drops_push(self, remote, record_factory):
        scheduler = PushScheduler(remote)

        scheduler.submit([record_factory()])

        assert not scheduler.busy
        assert scheduler.pushed == 0
