"""Serialized outbound sync of the full collection.

Local writes never wait on the network. Each write hands the new collection to
PushScheduler.submit, which returns immediately. A single drain task pushes
one snapshot at a time; while a push is in flight only the most recent
submitted collection is kept, older pending ones are superseded. The remote
snapshot therefore always converges on the last local write instead of on
whichever overlapping request happened to land last.

Failed pushes are logged by the client and dropped; nothing is retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from src.leanamp.crm.remote import RemoteSyncClient
from src.leanamp.crm.schemas import CRMRecord

logger = structlog.get_logger(__name__)


class PushScheduler:
    """One push in flight, one pending slot, latest wins.

    Args:
        remote: Client used to push snapshots.
    """

    def __init__(self, remote: RemoteSyncClient) -> None:
        self._remote = remote
        self._pending: list[CRMRecord] | None = None
        self._task: asyncio.Task[None] | None = None
        self.pushed = 0
        self.failed = 0
        self.superseded = 0

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, records: Sequence[CRMRecord]) -> None:
        """Queue records for pushing without blocking the caller.

        Must be called from a running event loop; otherwise the push is
        dropped and logged.
        """
        if not self._remote.is_authenticated():
            logger.debug("crm.push_skipped_unauthenticated")
            return

        if self._pending is not None:
            self.superseded += 1
        self._pending = list(records)

        if self.busy:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("crm.push_dropped_no_event_loop", count=len(self._pending))
            self._pending = None
            return
        self._task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            batch, self._pending = self._pending, None
            if await self._remote.push(batch):
                self.pushed += 1
            else:
                self.failed += 1

    async def flush(self) -> None:
        """Wait until every submitted collection has been pushed or dropped."""
        while self.busy:
            task = self._task
            assert task is not None
            await asyncio.shield(task)
