"""Shared test helpers: record builders and a scripted upstream."""

import asyncio
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session

from factline.models.upstream_models import (
    FetchResult,
    MetricDefinitionRecord,
    OccurrenceRecord,
    SampleRecord,
)
from factline.store import repository


# ── Record builders ──


def definition(
    id: int = 5,
    name: str = "attendance",
    translated: str = "Attendance",
    type: str = "number",
    unit: Optional[str] = "people",
    sort_key: int = 0,
) -> MetricDefinitionRecord:
    return MetricDefinitionRecord(
        id=id,
        name=name,
        name_translated=translated,
        type=type,
        unit=unit,
        sort_key=sort_key,
    )


def occurrence(id: int, name: str, start: datetime) -> OccurrenceRecord:
    return OccurrenceRecord(id=id, name=name, start_date=start)


def sample(occurrence_id: int, metric_id: int, value) -> SampleRecord:
    return SampleRecord(
        occurrence_id=occurrence_id,
        metric_id=metric_id,
        value=value,
        modified_date="2024-03-01T00:00:00Z",
    )


def write(session: Session, definitions=(), occurrences=(), samples=()) -> None:
    """Apply a payload the way a sync pass does: definitions, occurrences, samples."""
    for d in definitions:
        repository.upsert_metric_definition(session, d)
    labels = {}
    for o in occurrences:
        repository.upsert_occurrence(session, o)
        labels[o.id] = o.name
    for s in samples:
        repository.upsert_sample(session, s, labels.get(s.occurrence_id))
    repository.commit_or_raise(session)


# ── Scripted upstream ──


class FakeEndpoints:
    """Stands in for ChurchToolsEndpoints in sync tests."""

    def __init__(
        self,
        definitions: Optional[List[MetricDefinitionRecord]] = None,
        fetched: Optional[FetchResult] = None,
        gate: Optional[asyncio.Event] = None,
        definitions_error: Optional[Exception] = None,
    ):
        self.definitions = definitions if definitions is not None else [definition()]
        self.fetched = fetched or FetchResult()
        self.gate = gate
        self.definitions_error = definitions_error
        self.definition_calls = 0
        self.auth_checks = 0
        self.range_calls: List[tuple] = []
        self.year_calls: List[int] = []

    async def ensure_authenticated(self):
        self.auth_checks += 1

    async def fetch_metric_definitions(self):
        self.definition_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.definitions_error is not None:
            raise self.definitions_error
        return self.definitions

    async def fetch_range(self, date_from, date_to):
        self.range_calls.append((date_from, date_to))
        return self.fetched

    async def fetch_year(self, year, delay_ms=None):
        self.year_calls.append(year)
        return self.fetched
