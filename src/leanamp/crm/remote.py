"""Async HTTP client for the remote CRM snapshot endpoint.

The endpoint (`/api/crm-records` on the Express proxy) stores the whole
collection as a single SharePoint list item:
- GET returns the current snapshot as a JSON array
- PUT with a JSON array body replaces it
- Non-2xx responses carry an error body

Every operation is gated on the CredentialProvider. Without a token the call
is a silent no-op and no request is built. Failures are logged and swallowed;
nothing here is retried.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from src.leanamp.core.security import CredentialProvider
from src.leanamp.crm.errors import RemoteSyncError
from src.leanamp.crm.schemas import CRMRecord, parse_records

logger = structlog.get_logger(__name__)


class AuthenticationRequired(Exception):
    """Raised internally when a request is attempted without a token."""


class RemoteSyncClient:
    """Mirrors the full local collection to and from the snapshot endpoint.

    Args:
        endpoint: Absolute URL of the snapshot endpoint.
        credentials: Bearer token source; no token means no requests.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        endpoint: str,
        credentials: CredentialProvider,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._credentials = credentials
        self._timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def is_authenticated(self) -> bool:
        return bool(self._credentials.get_token())

    def _auth_headers(self) -> dict[str, str]:
        token = self._credentials.get_token()
        if not token:
            raise AuthenticationRequired("Authentication required")
        return {"Authorization": f"Bearer {token}"}

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with the configured timeout."""
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _request(self, method: str, body: Any = None) -> Any:
        """Send one authenticated request and decode the JSON response.

        Raises:
            AuthenticationRequired: No token; nothing was sent.
            RemoteSyncError: Non-2xx response.
            httpx.HTTPError: Transport failure.
            ValueError: Response body is not JSON.
        """
        headers = self._auth_headers()
        if body is not None:
            headers["Content-Type"] = "application/json"

        async with self._client() as client:
            response = await client.request(method, self._endpoint, json=body, headers=headers)

        if not response.is_success:
            raise RemoteSyncError(response.status_code, response.text)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def push(self, records: Sequence[CRMRecord]) -> bool:
        """Replace the remote snapshot with records.

        Returns:
            True if the endpoint accepted the snapshot. False when
            unauthenticated or on any failure (logged, never raised).
        """
        if not self.is_authenticated():
            logger.debug("crm.push_skipped_unauthenticated")
            return False

        payload = [record.to_wire() for record in records]
        try:
            await self._request("PUT", payload)
        except AuthenticationRequired:
            logger.debug("crm.push_skipped_unauthenticated")
            return False
        except RemoteSyncError as exc:
            logger.error(
                "crm.push_failed",
                status_code=exc.status_code,
                error=exc.body,
            )
            return False
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("crm.push_failed", error=str(exc))
            return False

        logger.info("crm.push_complete", count=len(payload))
        return True

    async def pull(self) -> list[CRMRecord] | None:
        """Fetch the remote snapshot.

        Returns:
            The remote collection, or None when unauthenticated, on failure,
            or when the body is not an array of valid records.
        """
        if not self.is_authenticated():
            logger.debug("crm.pull_skipped_unauthenticated")
            return None

        try:
            payload = await self._request("GET")
        except AuthenticationRequired:
            logger.debug("crm.pull_skipped_unauthenticated")
            return None
        except RemoteSyncError as exc:
            logger.warning(
                "crm.pull_failed",
                status_code=exc.status_code,
                error=exc.body,
            )
            return None
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("crm.pull_failed", error=str(exc))
            return None

        try:
            records = parse_records(payload)
        except ValueError as exc:
            logger.warning("crm.pull_invalid_payload", error=str(exc))
            return None

        logger.info("crm.pull_complete", count=len(records))
        return records
