"""Factline — Store Repository.

Idempotent upserts and the read queries behind every aggregation.
All functions take an open SQLModel session; callers own commit.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import extract, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from factline.models.store_models import (
    MetricDefinition,
    MetricKind,
    MetricSample,
    Occurrence,
)
from factline.models.upstream_models import (
    MetricDefinitionRecord,
    OccurrenceRecord,
    SampleRecord,
    to_utc,
)
from factline.core.logging import get_logger

logger = get_logger("store")


class StoreWriteError(Exception):
    """A write or commit failed; the current sync pass must abort."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _year_bounds(year: int) -> Tuple[datetime, datetime]:
    """Half-open [Jan 1 year, Jan 1 year+1)."""
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


def _numeric_samples(metric_id: int, labels: Optional[Sequence[str]]):
    """Shared WHERE clause: numeric samples of one metric, optionally label-filtered."""
    clauses = [
        MetricSample.metric_id == metric_id,
        MetricSample.value.is_not(None),  # type: ignore[union-attr]
    ]
    if labels:
        clauses.append(MetricSample.label.in_(list(labels)))  # type: ignore[union-attr]
    return clauses


# ─────────────────────────────────────────────
# WRITES
# ─────────────────────────────────────────────


def upsert_metric_definition(
    session: Session, record: MetricDefinitionRecord
) -> MetricDefinition:
    """Insert or replace a metric definition by upstream id."""
    existing = session.get(MetricDefinition, record.id)
    if existing:
        existing.name = record.name
        existing.name_translated = record.name_translated
        existing.kind = record.kind
        existing.unit = record.unit
        existing.sort_key = record.sort_key
        existing.created_at = _now()
        session.add(existing)
        return existing

    definition = MetricDefinition(
        id=record.id,
        name=record.name,
        name_translated=record.name_translated,
        kind=record.kind,
        unit=record.unit,
        sort_key=record.sort_key,
    )
    session.add(definition)
    return definition


def upsert_occurrence(session: Session, record: OccurrenceRecord) -> Occurrence:
    """Insert or replace an occurrence by upstream id."""
    existing = session.get(Occurrence, record.id)
    if existing:
        existing.name = record.name
        existing.start_date = record.start_date
        existing.end_date = record.end_date
        existing.calendar_id = record.calendar_id
        existing.created_at = _now()
        session.add(existing)
        return existing

    occurrence = Occurrence(
        id=record.id,
        name=record.name,
        start_date=record.start_date,
        end_date=record.end_date,
        calendar_id=record.calendar_id,
    )
    session.add(occurrence)
    return occurrence


def upsert_sample(
    session: Session, record: SampleRecord, label: Optional[str] = None
) -> MetricSample:
    """Insert or replace the single sample for (occurrence_id, metric_id).

    Numeric values land in ``value``, anything else in ``value_text``;
    the other column is cleared so a type change never leaves both set.
    """
    numeric = record.is_numeric
    value = float(record.value) if numeric else None
    value_text = None if numeric else str(record.value)

    existing = session.exec(
        select(MetricSample).where(
            MetricSample.occurrence_id == record.occurrence_id,
            MetricSample.metric_id == record.metric_id,
        )
    ).first()

    if existing:
        existing.label = label
        existing.value = value
        existing.value_text = value_text
        existing.modified_date = record.modified_date
        existing.created_at = _now()
        session.add(existing)
        return existing

    sample = MetricSample(
        occurrence_id=record.occurrence_id,
        metric_id=record.metric_id,
        label=label,
        value=value,
        value_text=value_text,
        modified_date=record.modified_date,
    )
    session.add(sample)
    return sample


def commit_or_raise(session: Session) -> None:
    """Commit, translating driver errors into StoreWriteError."""
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Store commit failed: {e}")
        raise StoreWriteError(str(e)) from e


# ─────────────────────────────────────────────
# READS
# ─────────────────────────────────────────────


def list_numeric_metrics(session: Session) -> List[MetricDefinition]:
    return list(
        session.exec(
            select(MetricDefinition)
            .where(MetricDefinition.kind == MetricKind.NUMERIC)
            .order_by(MetricDefinition.sort_key, MetricDefinition.id)
        ).all()
    )


def get_metric_definition(session: Session, metric_id: int) -> Optional[MetricDefinition]:
    return session.get(MetricDefinition, metric_id)


def list_category_labels(session: Session) -> List[str]:
    """Distinct occurrence labels observed across samples, sorted."""
    return list(
        session.exec(
            select(MetricSample.label)
            .where(MetricSample.label.is_not(None))  # type: ignore[union-attr]
            .distinct()
            .order_by(MetricSample.label)
        ).all()
    )


def list_samples(
    session: Session,
    metric_id: int,
    start: datetime,
    end: datetime,
    labels: Optional[Sequence[str]] = None,
) -> List[Tuple[float, datetime]]:
    """(value, occurrence start) for numeric samples with start in [start, end]."""
    rows = session.exec(
        select(MetricSample.value, Occurrence.start_date)
        .join(Occurrence, Occurrence.id == MetricSample.occurrence_id)
        .where(
            *_numeric_samples(metric_id, labels),
            Occurrence.start_date >= to_utc(start),
            Occurrence.start_date <= to_utc(end),
        )
        .order_by(Occurrence.start_date, Occurrence.id)
    ).all()
    return [(float(value), to_utc(start_date)) for value, start_date in rows]


def monthly_sums(
    session: Session,
    metric_id: int,
    start: datetime,
    end: datetime,
    labels: Optional[Sequence[str]] = None,
) -> List[Tuple[int, int, float, int]]:
    """(year, month, sum, count) per calendar month of occurrence start."""
    year_col = extract("year", Occurrence.start_date)
    month_col = extract("month", Occurrence.start_date)
    rows = session.exec(
        select(
            year_col,
            month_col,
            func.sum(MetricSample.value),
            func.count(MetricSample.id),
        )
        .join(Occurrence, Occurrence.id == MetricSample.occurrence_id)
        .where(
            *_numeric_samples(metric_id, labels),
            Occurrence.start_date >= to_utc(start),
            Occurrence.start_date <= to_utc(end),
        )
        .group_by(year_col, month_col)
        .order_by(year_col, month_col)
    ).all()
    return [(int(y), int(m), float(total), int(count)) for y, m, total, count in rows]


def _yearly(
    session: Session,
    aggregate,
    metric_id: int,
    year: int,
    labels: Optional[Sequence[str]],
) -> Tuple[float, int]:
    year_start, next_year = _year_bounds(year)
    value, count = session.exec(
        select(aggregate(MetricSample.value), func.count(MetricSample.id))
        .join(Occurrence, Occurrence.id == MetricSample.occurrence_id)
        .where(
            *_numeric_samples(metric_id, labels),
            Occurrence.start_date >= year_start,
            Occurrence.start_date < next_year,
        )
    ).one()
    return (float(value) if value is not None else 0.0), int(count)


def yearly_sum(
    session: Session,
    metric_id: int,
    year: int,
    labels: Optional[Sequence[str]] = None,
) -> Tuple[float, int]:
    """(sum, count) over one calendar year."""
    return _yearly(session, func.sum, metric_id, year, labels)


def yearly_mean(
    session: Session,
    metric_id: int,
    year: int,
    labels: Optional[Sequence[str]] = None,
) -> Tuple[float, int]:
    """(mean, count) over one calendar year."""
    return _yearly(session, func.avg, metric_id, year, labels)


def get_sync_watermark(session: Session) -> Optional[datetime]:
    """Latest occurrence write time, or None before the first sync."""
    watermark = session.exec(select(func.max(Occurrence.created_at))).one()
    return to_utc(watermark) if watermark is not None else None
