"""CRM exception hierarchy.

Only user-initiated actions (submission, import, export) raise to the caller.
RemoteSyncError never leaves the remote client.
"""

from __future__ import annotations


class CRMError(Exception):
    """Base class for CRM errors."""


class RecordValidationError(CRMError):
    """A submitted record is missing required fields."""

    def __init__(self, field: str, label: str) -> None:
        self.field = field
        self.label = label
        super().__init__(f"Please fill {label} before saving.")


class ImportValidationError(CRMError):
    """An import payload is not a JSON array of CRM records."""


class EmptyStoreError(CRMError):
    """Export was requested on an empty store."""


class RemoteSyncError(CRMError):
    """The remote snapshot endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(body or f"CRM request failed ({status_code})")
