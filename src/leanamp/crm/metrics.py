"""Pipeline queries over a record collection.

Pure functions feeding the dashboard and quote views: headline metrics,
upcoming touches, per-stage counts, autocomplete suggestions and the
type-to-autofill lookup.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from pydantic import BaseModel

from src.leanamp.crm.schemas import (
    DEFAULT_STAGE_WEIGHT,
    STAGE_ORDER,
    STAGE_WEIGHTS,
    CRMRecord,
    Stage,
)

NEXT_TOUCH_WINDOW_DAYS = 7

SUGGESTION_FIELDS = ("name", "company", "project_name", "project_address", "email", "phone")


class PipelineMetrics(BaseModel):
    """Headline numbers for the pipeline widgets."""

    active: int = 0
    pipeline: float = 0.0
    weighted: float = 0.0
    won: int = 0
    lost: int = 0
    next_touches: int = 0


def compute_metrics(records: Sequence[CRMRecord], today: date | None = None) -> PipelineMetrics:
    """Summarize the pipeline.

    Active deals and pipeline value exclude Closed Lost. Weighted value uses
    the per-stage weights. A next touch counts when its date falls between
    today and NEXT_TOUCH_WINDOW_DAYS days out, inclusive.
    """
    today = today or date.today()
    open_records = [record for record in records if record.stage != Stage.CLOSED_LOST]

    next_touches = 0
    for record in records:
        if record.next_date is None:
            continue
        if 0 <= (record.next_date - today).days <= NEXT_TOUCH_WINDOW_DAYS:
            next_touches += 1

    return PipelineMetrics(
        active=len(open_records),
        pipeline=sum(record.value for record in open_records),
        weighted=sum(
            record.value * STAGE_WEIGHTS.get(record.stage, DEFAULT_STAGE_WEIGHT)
            for record in records
        ),
        won=sum(1 for record in records if record.stage == Stage.CLOSED_WON),
        lost=sum(1 for record in records if record.stage == Stage.CLOSED_LOST),
        next_touches=next_touches,
    )


def get_upcoming(records: Sequence[CRMRecord], limit: int = 4) -> list[CRMRecord]:
    """Records with a next touch date, soonest first."""
    scheduled = [record for record in records if record.next_date is not None]
    scheduled.sort(key=lambda record: record.next_date)
    return scheduled[:limit]


def stage_breakdown(records: Sequence[CRMRecord]) -> dict[Stage, int]:
    """Record count per stage, in stage order (zero-filled)."""
    counts = {stage: 0 for stage in STAGE_ORDER}
    for record in records:
        counts[record.stage] += 1
    return counts


def suggestion_values(records: Sequence[CRMRecord], field: str) -> list[str]:
    """Unique trimmed non-empty values of field, first occurrence order."""
    if field not in SUGGESTION_FIELDS:
        raise ValueError(f"No suggestions for field '{field}'")
    seen: dict[str, None] = {}
    for record in records:
        value = getattr(record, field).strip()
        if value:
            seen.setdefault(value)
    return list(seen)


def find_record(records: Sequence[CRMRecord], field: str, query: str) -> CRMRecord | None:
    """First record whose field contains query, case-insensitively."""
    if field not in SUGGESTION_FIELDS:
        raise ValueError(f"Cannot look up records by '{field}'")
    needle = query.strip().lower()
    if not needle:
        return None
    for record in records:
        if needle in getattr(record, field).lower():
            return record
    return None
