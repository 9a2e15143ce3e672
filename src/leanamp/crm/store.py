"""Local-first CRM record store.

The store keeps the whole collection as one JSON array under a single key in
a durable KeyValueStore. There is no partial-update API at the storage layer:
every mutation loads the full collection, changes it in memory and writes it
back (last writer wins for the whole collection).

After each write the store hands the collection to its push hook (normally
PushScheduler.submit) and publishes a ChangeEvent so views can refresh.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from src.leanamp.core.storage import KeyValueStore
from src.leanamp.crm.events import ChangeChannel, ChangeEvent, ChangeSource
from src.leanamp.crm.schemas import (
    CRMRecord,
    apply_updates,
    dump_records,
    stage_rank,
)

logger = structlog.get_logger(__name__)

PushHook = Callable[[list[CRMRecord]], None]

DEFAULT_STORAGE_KEY = "leanampCrmRecords"


def sort_records(records: Sequence[CRMRecord]) -> list[CRMRecord]:
    """Order by stage ascending, then most recently touched first."""
    by_recency = sorted(records, key=lambda record: record.sort_timestamp, reverse=True)
    return sorted(by_recency, key=lambda record: stage_rank(record.stage))


class LocalStore:
    """Durable, authoritative collection of CRM records.

    Args:
        storage: Durable key-value substrate.
        key: Storage key holding the JSON array.
        push: Called with the saved collection after every syncing write.
        channel: Receives a ChangeEvent after every write.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        key: str = DEFAULT_STORAGE_KEY,
        push: PushHook | None = None,
        channel: ChangeChannel | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._key = key
        self._push = push
        self._channel = channel
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return self._key

    def set_push_hook(self, push: PushHook | None) -> None:
        self._push = push

    def now(self) -> datetime:
        return self._clock()

    def load(self) -> list[CRMRecord]:
        """Read the persisted collection.

        A value that cannot be decoded as a JSON array is deleted and an empty
        collection returned. Individual entries that fail validation are
        skipped and the rest kept. Failures are logged, never raised.
        """
        try:
            raw = self._storage.get(self._key)
            if not raw:
                return []
            payload = json.loads(raw)
            if not isinstance(payload, list):
                raise ValueError("CRM payload must be an array")
        except ValueError as exc:
            logger.warning("crm.store_reset", key=self._key, error=str(exc))
            self._storage.delete(self._key)
            return []

        records: list[CRMRecord] = []
        for index, entry in enumerate(payload):
            try:
                records.append(CRMRecord.model_validate(entry))
            except ValidationError as exc:
                logger.warning(
                    "crm.store_record_skipped",
                    key=self._key,
                    index=index,
                    error=str(exc),
                )
        return records

    def save(
        self,
        records: Sequence[CRMRecord],
        *,
        sync: bool = True,
        source: ChangeSource = "local",
    ) -> None:
        """Replace the persisted collection.

        Args:
            records: The full collection to persist.
            sync: Hand the collection to the push hook after writing.
            source: Origin reported in the ChangeEvent.
        """
        collection = list(records)
        self._storage.set(self._key, dump_records(collection))
        logger.debug("crm.store_saved", key=self._key, count=len(collection), source=source)

        if sync and self._push is not None:
            self._push(collection)

        if self._channel is not None:
            self._channel.publish(
                ChangeEvent(key=self._key, source=source, record_count=len(collection))
            )

    def sorted_records(self) -> list[CRMRecord]:
        return sort_records(self.load())

    def get_record(self, record_id: int) -> CRMRecord | None:
        for record in self.load():
            if record.id == record_id:
                return record
        return None

    def next_id(self, records: Sequence[CRMRecord]) -> int:
        """Millisecond creation timestamp, bumped until unique in records."""
        taken = {record.id for record in records}
        candidate = int(time.time() * 1000)
        while candidate in taken:
            candidate += 1
        return candidate

    def add_record(self, record: CRMRecord) -> None:
        records = self.load()
        records.append(record)
        self.save(records)

    def update_record(self, record_id: int, updates: Mapping[str, Any]) -> bool:
        """Apply field updates to one record and refresh its updatedAt.

        Returns:
            False if no record has record_id, True otherwise.
        """
        records = self.load()
        for index, record in enumerate(records):
            if record.id == record_id:
                records[index] = apply_updates(record, updates, self.now())
                self.save(records)
                return True
        return False

    def remove_record(self, record_id: int) -> bool:
        """Delete one record. An absent id leaves the store untouched."""
        records = self.load()
        remaining = [record for record in records if record.id != record_id]
        if len(remaining) == len(records):
            return False
        self.save(remaining)
        return True
