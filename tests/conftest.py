"""Shared fixtures for CRM tests.

Provides:
- In-memory durable and volatile key-value stores
- Settings pointing at a fake snapshot endpoint
- SnapshotServer: httpx.MockTransport-backed fake of /api/crm-records
  that records every request and can be paused or forced to fail
- record_factory for CRMRecord instances with sensible defaults
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from src.leanamp.config import Settings
from src.leanamp.core.security import StaticCredentials
from src.leanamp.core.storage import MemoryKeyValueStore
from src.leanamp.crm.schemas import CRMRecord


class SnapshotServer:
    """Fake remote snapshot endpoint.

    Attributes:
        snapshot: Current remote collection (list of wire dicts).
        requests: Every request received, in order.
        status_code: Forced status for all responses when set.
        gate: When set, GET waits on this event before answering.
    """

    def __init__(self, snapshot: list[Any] | None = None) -> None:
        self.snapshot: Any = snapshot if snapshot is not None else []
        self.requests: list[httpx.Request] = []
        self.status_code: int | None = None
        self.error_body = "Graph request failed: 503 Service Unavailable"
        self.gate: asyncio.Event | None = None
        self.put_gate: asyncio.Event | None = None
        self.transport = httpx.MockTransport(self.handle)

    @property
    def gets(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    @property
    def puts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET" and self.gate is not None:
            await self.gate.wait()
        if request.method == "PUT" and self.put_gate is not None:
            await self.put_gate.wait()
        if self.status_code is not None:
            return httpx.Response(self.status_code, json={"error": self.error_body})
        if request.method == "GET":
            return httpx.Response(200, json=self.snapshot)
        if request.method == "PUT":
            self.snapshot = json.loads(request.content)
            return httpx.Response(200, json=self.snapshot)
        return httpx.Response(405, json={"error": "Method not allowed"})


@pytest.fixture
def durable() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def volatile() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def server() -> SnapshotServer:
    return SnapshotServer()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        CRM_API_BASE_URL="http://crm.test",
        CRM_API_PATH="/api/crm-records",
        CRM_DATA_DIR=str(tmp_path / "crm"),
    )


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials("test-token")


@pytest.fixture
def no_credentials() -> StaticCredentials:
    return StaticCredentials(None)


@pytest.fixture
def record_factory() -> Callable[..., CRMRecord]:
    """Build CRMRecords; ids auto-increment unless given."""
    counter = {"next": 1000}

    def _make(**overrides: Any) -> CRMRecord:
        counter["next"] += 1
        defaults: dict[str, Any] = {
            "id": counter["next"],
            "name": "Dana Reyes",
            "company": "Acme Foods",
            "email": "dana@acme.test",
            "stage": "Prospect",
            "value": 12000,
            "projectName": "Cold storage retrofit",
            "createdAt": datetime(2026, 1, 10, tzinfo=timezone.utc),
            "updatedAt": datetime(2026, 1, 10, tzinfo=timezone.utc),
            "assignedTo": "Sam",
        }
        defaults.update(overrides)
        return CRMRecord.model_validate(defaults)

    return _make
