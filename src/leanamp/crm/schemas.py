"""Pydantic schemas for CRM records.

Defines the structured types shared by the store, the remote client and the
session:
- Stage enum with the fixed pipeline order and per-stage weights
- CRMRecord: one persisted contact/deal, camelCase on the wire
- RecordCreate: submission payload for a new record
- Helpers: coerce_amount, apply_updates, parse_records, dump_records

Records are deliberately lenient on input (the same payload shapes come back
from imports, the remote snapshot and older local copies): free text is
stringified, bad amounts become 0 and unparseable dates become absent.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# ── Stages ──────────────────────────────────────────────────────────────────


class Stage(str, Enum):
    """Pipeline stages in their fixed display order."""

    PROSPECT = "Prospect"
    QUALIFIED = "Qualified"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)

STAGE_WEIGHTS: dict[Stage, float] = {
    Stage.PROSPECT: 0.2,
    Stage.QUALIFIED: 0.35,
    Stage.PROPOSAL: 0.55,
    Stage.NEGOTIATION: 0.75,
    Stage.CLOSED_WON: 1.0,
    Stage.CLOSED_LOST: 0.0,
}

DEFAULT_STAGE_WEIGHT = 0.1

UNASSIGNED = "Unassigned"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def stage_rank(stage: Stage | str) -> int:
    """Position of a stage in STAGE_ORDER."""
    return STAGE_ORDER.index(Stage(stage))


# ── Coercion helpers ────────────────────────────────────────────────────────


def coerce_amount(raw: Any) -> float:
    """Parse a monetary amount; anything invalid or negative becomes 0."""
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        amount = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def _coerce_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw.strip()[:10])
        except ValueError:
            return None
    return None


def _coerce_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    raise ValueError("expected text")


_TEXT_FIELDS = (
    "name",
    "company",
    "email",
    "phone",
    "project_name",
    "project_address",
    "next_action",
    "notes",
)


# ── Records ─────────────────────────────────────────────────────────────────


class CRMRecord(BaseModel):
    """A persisted CRM entry (contact/deal).

    Unknown keys are kept so payloads written by newer clients survive a
    round-trip through this one.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    name: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    stage: Stage = Stage.PROSPECT
    value: float = 0.0
    project_name: str = Field(default="", alias="projectName")
    project_address: str = Field(default="", alias="projectAddress")
    next_action: str = Field(default="", alias="nextAction")
    next_date: date | None = Field(default=None, alias="nextDate")
    notes: str = ""
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    assigned_to: str = Field(default=UNASSIGNED, alias="assignedTo")
    calc_snapshot: Any | None = Field(default=None, alias="calcSnapshot")

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _coerce_text(v)

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("next_date", mode="before")
    @classmethod
    def _next_date(cls, v: Any) -> date | None:
        return _coerce_date(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _blank_timestamp(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware_timestamp(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _assigned(cls, v: Any) -> str:
        text = _coerce_text(v).strip()
        return text or UNASSIGNED

    @property
    def sort_timestamp(self) -> datetime:
        """updatedAt, falling back to createdAt, then the epoch."""
        return self.updated_at or self.created_at or EPOCH

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


class RecordCreate(BaseModel):
    """Form submission for a new record. Text fields are trimmed."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    stage: Stage = Stage.PROSPECT
    value: float = 0.0
    project_name: str = Field(default="", alias="projectName")
    project_address: str = Field(default="", alias="projectAddress")
    next_action: str = Field(default="", alias="nextAction")
    next_date: date | None = Field(default=None, alias="nextDate")
    notes: str = ""
    calc_snapshot: Any | None = Field(default=None, alias="calcSnapshot")

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("next_date", mode="before")
    @classmethod
    def _next_date(cls, v: Any) -> date | None:
        return _coerce_date(v)


_RECORD_LIST = TypeAdapter(list[CRMRecord])

_WIRE_NAMES: dict[str, str] = {
    name: (field.alias or name) for name, field in CRMRecord.model_fields.items()
}


def parse_records(payload: Any) -> list[CRMRecord]:
    """Validate a decoded JSON payload as a list of records.

    Raises:
        ValueError: If payload is not a list or any entry is invalid
            (pydantic's ValidationError is a ValueError).
    """
    if not isinstance(payload, list):
        raise ValueError("CRM payload must be an array")
    return _RECORD_LIST.validate_python(payload)


def dump_records(records: Iterable[CRMRecord], indent: int | None = None) -> str:
    """Serialize records to a JSON array string."""
    return json.dumps([record.to_wire() for record in records], indent=indent)


def apply_updates(record: CRMRecord, updates: Mapping[str, Any], now: datetime) -> CRMRecord:
    """Return a copy of record with updates applied and updatedAt refreshed.

    Keys may be field names or wire names. The id is immutable and ignored.
    """
    data = record.model_dump(by_alias=True)
    for key, value in updates.items():
        wire = _WIRE_NAMES.get(key, key)
        if wire == "id":
            continue
        data[wire] = value.strip() if isinstance(value, str) else value
    data["updatedAt"] = now
    return CRMRecord.model_validate(data)
