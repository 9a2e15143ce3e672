"""Pull the remote snapshot into the local store, at most once at a time.

State machine: IDLE -> PULLING -> IDLE. A hydrate() call made while a pull is
in flight joins it and receives the same task. There is no retry, backoff or
queued pull; the in-flight marker is cleared when the pull finishes so the
next call starts fresh.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import structlog

from src.leanamp.crm.remote import RemoteSyncClient
from src.leanamp.crm.store import LocalStore

logger = structlog.get_logger(__name__)


class HydrationState(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"


class HydrationCoordinator:
    """Deduplicates concurrent "pull remote into local" operations.

    Args:
        store: Local store overwritten on a successful pull.
        remote: Client used to fetch the snapshot.
    """

    def __init__(self, store: LocalStore, remote: RemoteSyncClient) -> None:
        self._store = store
        self._remote = remote
        self._inflight: asyncio.Task[bool] | None = None
        self.fetches = 0

    @property
    def state(self) -> HydrationState:
        if self._inflight is not None and not self._inflight.done():
            return HydrationState.PULLING
        return HydrationState.IDLE

    def hydrate(self) -> asyncio.Task[bool]:
        """Start a pull, or return the one already in flight.

        Must be called from a running event loop. The task resolves to True
        when the local store was overwritten with the remote snapshot.
        """
        if self._inflight is not None and not self._inflight.done():
            return self._inflight

        task = asyncio.get_running_loop().create_task(self._run())
        task.add_done_callback(self._clear)
        self._inflight = task
        return task

    def _clear(self, task: asyncio.Task[bool]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _run(self) -> bool:
        if not self._remote.is_authenticated():
            logger.debug("crm.hydration_skipped_unauthenticated")
            return False

        self.fetches += 1
        records = await self._remote.pull()
        if records is None:
            return False

        try:
            self._store.save(records, sync=False, source="hydration")
        except OSError as exc:
            logger.warning("crm.hydration_write_failed", error=str(exc))
            return False

        logger.info("crm.hydration_complete", count=len(records))
        return True
