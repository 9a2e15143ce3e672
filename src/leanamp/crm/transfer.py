"""Navigation transfer buffer.

Hands the collection across a page transition that does not share the local
store's persistence scope. The payload sits in the session-scoped volatile
store and is consumed at most once: the key is deleted before the payload is
parsed, so a bad payload or a failed write is never retried.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

import structlog

from src.leanamp.core.storage import KeyValueStore
from src.leanamp.crm.schemas import CRMRecord, dump_records, parse_records
from src.leanamp.crm.store import LocalStore

logger = structlog.get_logger(__name__)

DEFAULT_TRANSFER_KEY = "leanampCrmTransfer"


class NavigationTransferBuffer:
    """One-shot handoff slot between the volatile store and the local store.

    Args:
        session_storage: Volatile, session-scoped key-value store.
        store: Local store that receives a consumed payload.
        key: Session storage key for the payload.
    """

    def __init__(
        self,
        session_storage: KeyValueStore,
        store: LocalStore,
        key: str = DEFAULT_TRANSFER_KEY,
    ) -> None:
        self._session = session_storage
        self._store = store
        self._key = key

    def stash(self, records: Sequence[CRMRecord]) -> bool:
        """Serialize records into the buffer. Failures are logged."""
        try:
            self._session.set(self._key, dump_records(records))
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("crm.transfer_stash_failed", key=self._key, error=str(exc))
            return False
        logger.debug("crm.transfer_stashed", key=self._key, count=len(records))
        return True

    def pending(self) -> bool:
        return bool(self._session.get(self._key))

    def consume_once(self) -> bool:
        """Move a stashed collection into the local store.

        Returns:
            True if a valid payload was written to the local store.
        """
        payload = self._session.get(self._key)
        if not payload:
            return False
        self._session.delete(self._key)

        try:
            records = parse_records(json.loads(payload))
        except ValueError as exc:
            logger.warning("crm.transfer_invalid", key=self._key, error=str(exc))
            return False

        try:
            self._store.save(records, source="transfer")
        except OSError as exc:
            logger.warning("crm.transfer_write_failed", key=self._key, error=str(exc))
            return False

        logger.info("crm.transfer_consumed", key=self._key, count=len(records))
        return True
