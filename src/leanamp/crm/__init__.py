"""Local-first CRM record store with best-effort remote sync.

Provides:
- LocalStore: durable, authoritative record collection (whole-collection writes)
- NavigationTransferBuffer: one-shot handoff across page transitions
- RemoteSyncClient: bearer-authenticated mirror of the remote snapshot endpoint
- PushScheduler: serialized, latest-wins outbound pushes
- HydrationCoordinator: deduplicated pull of the remote snapshot into local
- ChangeChannel: pub/sub notifying attached views of store writes
- CRMSession: application context wiring all of the above

Architecture: the local store is always primary. The remote mirror is
eventually consistent with it, and only overwrites it during hydration.
"""

from src.leanamp.crm.errors import (
    CRMError,
    EmptyStoreError,
    ImportValidationError,
    RecordValidationError,
    RemoteSyncError,
)
from src.leanamp.crm.events import ChangeChannel, ChangeEvent, Subscription
from src.leanamp.crm.hydration import HydrationCoordinator, HydrationState
from src.leanamp.crm.remote import RemoteSyncClient
from src.leanamp.crm.schemas import STAGE_ORDER, CRMRecord, RecordCreate, Stage
from src.leanamp.crm.session import CRMSession
from src.leanamp.crm.store import LocalStore, sort_records
from src.leanamp.crm.sync import PushScheduler
from src.leanamp.crm.transfer import NavigationTransferBuffer

__all__ = [
    "CRMError",
    "CRMRecord",
    "CRMSession",
    "ChangeChannel",
    "ChangeEvent",
    "EmptyStoreError",
    "HydrationCoordinator",
    "HydrationState",
    "ImportValidationError",
    "LocalStore",
    "NavigationTransferBuffer",
    "PushScheduler",
    "RecordCreate",
    "RecordValidationError",
    "RemoteSyncClient",
    "RemoteSyncError",
    "STAGE_ORDER",
    "Stage",
    "Subscription",
    "sort_records",
]
