"""CRM session: the application context the views work against.

One CRMSession owns the local store, remote client, push scheduler, transfer
buffer, hydration coordinator and change channel for a browsing session.
Views attach a refresh callback on open and detach it on close; there is no
module-level state.

Typical lifecycle:

    session = CRMSession.create(settings, credentials)
    await session.start()            # consume handoff, hydrate from remote
    sub = session.attach_view(refresh_dashboard)
    session.create_record(RecordCreate(company="Acme", project_name="Retrofit"))
    ...
    await session.close()            # detach views, flush pending pushes
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import date
from functools import partial
from pathlib import Path
from typing import Any

import httpx
import structlog

from src.leanamp.config import Settings
from src.leanamp.core.security import CredentialProvider, resolve_current_user
from src.leanamp.core.storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from src.leanamp.crm.errors import EmptyStoreError, ImportValidationError, RecordValidationError
from src.leanamp.crm.events import ChangeChannel, ChangeListener, Subscription
from src.leanamp.crm.hydration import HydrationCoordinator
from src.leanamp.crm.metrics import PipelineMetrics, compute_metrics, get_upcoming
from src.leanamp.crm.remote import RemoteSyncClient
from src.leanamp.crm.schemas import (
    STAGE_ORDER,
    UNASSIGNED,
    CRMRecord,
    RecordCreate,
    Stage,
    dump_records,
    parse_records,
)
from src.leanamp.crm.store import LocalStore
from src.leanamp.crm.sync import PushScheduler
from src.leanamp.crm.transfer import NavigationTransferBuffer

logger = structlog.get_logger(__name__)

# (field, label) pairs that must be filled before a submission is saved
REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("project_name", "Project Name"),
    ("company", "Customer / Company"),
)


class CRMSession:
    """Explicit session context wiring the CRM core together.

    Args:
        store: Local store (already wired to pushes and channel).
        remote: Remote snapshot client.
        pushes: Push scheduler fed by the store.
        transfer: Navigation transfer buffer.
        hydration: Hydration coordinator.
        channel: Change channel views subscribe to.
        resolve_user: Returns the name stamped into assignedTo; called on
            every submission so a later login is picked up.
        export_prefix: File name prefix for exports.
    """

    stages: tuple[Stage, ...] = STAGE_ORDER

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteSyncClient,
        pushes: PushScheduler,
        transfer: NavigationTransferBuffer,
        hydration: HydrationCoordinator,
        channel: ChangeChannel,
        resolve_user: Callable[[], str] | None = None,
        export_prefix: str = "leanamp-crm",
    ) -> None:
        self.store = store
        self.remote = remote
        self.pushes = pushes
        self.transfer = transfer
        self.hydration = hydration
        self.channel = channel
        self._resolve_user = resolve_user or (lambda: UNASSIGNED)
        self.export_prefix = export_prefix
        self._views: list[Subscription] = []

    @property
    def current_user(self) -> str:
        """Name of the signed-in user, resolved on each access."""
        return self._resolve_user()

    @classmethod
    def create(
        cls,
        settings: Settings,
        credentials: CredentialProvider,
        durable: KeyValueStore | None = None,
        volatile: KeyValueStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CRMSession:
        """Build a session from settings.

        Args:
            settings: Application settings.
            credentials: Bearer token source for remote calls.
            durable: Durable store; defaults to files under CRM_DATA_DIR.
            volatile: Session-scoped store; defaults to an in-memory store.
            transport: Optional httpx transport for the remote client.
        """
        durable = durable if durable is not None else FileKeyValueStore(Path(settings.CRM_DATA_DIR))
        volatile = volatile if volatile is not None else MemoryKeyValueStore()

        channel = ChangeChannel()
        remote = RemoteSyncClient(
            endpoint=settings.crm_endpoint,
            credentials=credentials,
            timeout=settings.CRM_REQUEST_TIMEOUT,
            transport=transport,
        )
        pushes = PushScheduler(remote)
        store = LocalStore(
            durable,
            key=settings.CRM_STORAGE_KEY,
            push=pushes.submit,
            channel=channel,
        )
        transfer = NavigationTransferBuffer(volatile, store, key=settings.CRM_TRANSFER_KEY)
        hydration = HydrationCoordinator(store, remote)
        resolve_user = partial(
            resolve_current_user,
            credentials,
            durable,
            key=settings.CURRENT_USER_KEY,
            fallback=UNASSIGNED,
        )

        return cls(
            store=store,
            remote=remote,
            pushes=pushes,
            transfer=transfer,
            hydration=hydration,
            channel=channel,
            resolve_user=resolve_user,
            export_prefix=settings.CRM_EXPORT_PREFIX,
        )

    # ── Lifecycle ──────────────────────────────────────────────────────────

    async def start(self) -> bool:
        """Consume a pending navigation handoff, then hydrate from remote.

        Returns:
            True if the local store was overwritten by the remote snapshot.
        """
        self.transfer.consume_once()
        return await self.hydration.hydrate()

    async def close(self) -> None:
        for subscription in list(self._views):
            subscription.cancel()
        self._views.clear()
        await self.pushes.flush()

    def attach_view(self, refresh: ChangeListener) -> Subscription:
        """Subscribe a view's refresh callback to store changes."""
        subscription = self.channel.subscribe(refresh)
        self._views.append(subscription)
        return subscription

    def detach_view(self, subscription: Subscription) -> None:
        subscription.cancel()
        if subscription in self._views:
            self._views.remove(subscription)

    # ── Reads ──────────────────────────────────────────────────────────────

    def records(self) -> list[CRMRecord]:
        """All records in display order."""
        return self.store.sorted_records()

    def metrics(self, today: date | None = None) -> PipelineMetrics:
        return compute_metrics(self.store.load(), today)

    def upcoming(self, limit: int = 4) -> list[CRMRecord]:
        return get_upcoming(self.store.load(), limit)

    # ── Mutations ──────────────────────────────────────────────────────────

    def create_record(self, data: RecordCreate) -> CRMRecord:
        """Validate a submission and append it as a new record.

        Raises:
            RecordValidationError: A required field is blank.
        """
        for field, label in REQUIRED_FIELDS:
            if not getattr(data, field):
                raise RecordValidationError(field, label)

        records = self.store.load()
        now = self.store.now()
        record = CRMRecord(
            id=self.store.next_id(records),
            created_at=now,
            updated_at=now,
            assigned_to=self.current_user,
            **data.model_dump(),
        )
        records.append(record)
        self.store.save(records)
        logger.info("crm.record_created", record_id=record.id, stage=record.stage.value)
        return record

    def change_stage(self, record_id: int, stage: Stage | str) -> bool:
        return self.store.update_record(record_id, {"stage": Stage(stage)})

    def update_record(self, record_id: int, updates: Mapping[str, Any]) -> bool:
        return self.store.update_record(record_id, updates)

    def remove_record(self, record_id: int) -> bool:
        removed = self.store.remove_record(record_id)
        if removed:
            logger.info("crm.record_removed", record_id=record_id)
        return removed

    # ── Import / export ────────────────────────────────────────────────────

    def import_records(self, payload: str | bytes) -> int:
        """Replace the collection with a JSON array of records.

        Returns:
            Number of records imported.

        Raises:
            ImportValidationError: Payload is not a JSON array of valid
                records. The existing collection is left unchanged.
        """
        try:
            decoded = json.loads(payload)
        except ValueError as exc:
            raise ImportValidationError(f"CRM file is not valid JSON: {exc}") from exc
        if not isinstance(decoded, list):
            raise ImportValidationError("CRM file must be an array")
        try:
            records = parse_records(decoded)
        except ValueError as exc:
            raise ImportValidationError(f"CRM file contains invalid records: {exc}") from exc

        self.store.save(records, source="import")
        logger.info("crm.records_imported", count=len(records))
        return len(records)

    def export_records(self) -> str:
        """Pretty-printed JSON array of the stored collection.

        Raises:
            EmptyStoreError: There is nothing to export.
        """
        records = self.store.load()
        if not records:
            raise EmptyStoreError("CRM is empty. Nothing to export.")
        return dump_records(records, indent=2)

    def export_filename(self, today: date | None = None) -> str:
        today = today or date.today()
        return f"{self.export_prefix}-{today.isoformat()}.json"

    # ── Navigation ─────────────────────────────────────────────────────────

    def prepare_navigation(self, next_step: Callable[[], None] | None = None) -> bool:
        """Stash the collection for the next page, then run next_step."""
        stashed = self.transfer.stash(self.store.load())
        if next_step is not None:
            next_step()
        return stashed
