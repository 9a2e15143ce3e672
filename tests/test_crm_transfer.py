"""Unit tests for the navigation transfer buffer."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from src.leanamp.crm.store import LocalStore
from src.leanamp.crm.transfer import NavigationTransferBuffer

TRANSFER_KEY = "leanampCrmTransfer"


@pytest.fixture
def push():
    return MagicMock()


@pytest.fixture
def store(durable, push):
    return LocalStore(durable, push=push)


@pytest.fixture
def buffer(volatile, store):
    return NavigationTransferBuffer(volatile, store)


class TestStash:
    def test_stash_serializes_records(self, buffer, volatile, record_factory):
        records = [record_factory(), record_factory()]

        assert buffer.stash(records) is True

        assert len(json.loads(volatile.get(TRANSFER_KEY))) == 2
        assert buffer.pending()

    def test_stash_failure_is_logged_not_raised(self, store, record_factory):
        broken = MagicMock()
        broken.set.side_effect = OSError("quota exceeded")
        buffer = NavigationTransferBuffer(broken, store)

        assert buffer.stash([record_factory()]) is False


class TestConsumeOnce:
    def test_consume_writes_store_and_pushes(self, buffer, store, push, record_factory):
        records = [record_factory(id=1), record_factory(id=2)]
        buffer.stash(records)

        assert buffer.consume_once() is True

        assert store.load() == records
        push.assert_called_once_with(records)
        assert not buffer.pending()

    def test_second_consume_is_noop(self, buffer, store, push, record_factory):
        buffer.stash([record_factory()])
        buffer.consume_once()
        store.save([], sync=False)
        push.reset_mock()

        assert buffer.consume_once() is False

        assert store.load() == []
        push.assert_not_called()

    def test_absent_payload_is_ignored(self, buffer, push):
        assert buffer.consume_once() is False
        push.assert_not_called()

    def test_non_array_payload_is_discarded(self, buffer, volatile, store, record_factory):
        existing = [record_factory()]
        store.save(existing, sync=False)
        volatile.set(TRANSFER_KEY, json.dumps({"id": 1}))

        assert buffer.consume_once() is False

        assert store.load() == existing
        assert volatile.get(TRANSFER_KEY) is None

    def test_corrupt_payload_is_discarded(self, buffer, volatile):
        volatile.set(TRANSFER_KEY, "[{broken")

        assert buffer.consume_once() is False
        assert volatile.get(TRANSFER_KEY) is None

    def test_buffer_cleared_even_if_store_write_fails(self, volatile, record_factory):
        failing_store = MagicMock(spec=LocalStore)
        failing_store.save.side_effect = OSError("disk full")
        buffer = NavigationTransferBuffer(volatile, failing_store)
        buffer.stash([record_factory()])

        assert buffer.consume_once() is False
        assert buffer.consume_once() is False

        failing_store.save.assert_called_once()
