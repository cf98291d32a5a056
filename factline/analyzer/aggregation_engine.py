"""Factline — Aggregation Engine.

Turns stored per-occurrence samples into Grafana series:
raw points, monthly sums, yearly sums and yearly means.
Only samples with a numeric value take part.
"""

from calendar import timegm
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from sqlmodel import Session

from factline.models.datasource_models import TimeSeries
from factline.models.upstream_models import to_utc
from factline.store import repository
from factline.core.logging import get_logger

logger = get_logger("analyzer.aggregation")

Point = Tuple[float, int]  # (value, epoch_ms)


class AggregationKind(str, Enum):
    RAW = "raw"
    MONTHLY = "monthly"
    YEARLY_SUM = "yearly_sum"
    YEARLY_MEAN = "yearly_mean"


KIND_TITLES = {
    AggregationKind.RAW: "Raw Data",
    AggregationKind.MONTHLY: "Monthly Sum",
    AggregationKind.YEARLY_SUM: "Yearly Sum",
    AggregationKind.YEARLY_MEAN: "Yearly Mean",
}


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the epoch; naive datetimes are read as UTC."""
    return timegm(moment.utctimetuple()) * 1000 + moment.microsecond // 1000


def normalize_filter(labels: Optional[Sequence[str]]) -> List[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: List[str] = []
    for label in labels or []:
        if label and label not in seen:
            seen.append(label)
    return seen


def compose_label(
    display_name: str,
    kind: AggregationKind,
    unit: Optional[str] = None,
    labels: Optional[Sequence[str]] = None,
) -> str:
    """e.g. ``Attendance - Monthly Sum (people) [X, Y]``."""
    label = f"{display_name} - {KIND_TITLES[kind]}"
    if unit:
        label += f" ({unit})"
    if labels:
        label += f" [{', '.join(labels)}]"
    return label


# ── Per-kind series ──


def raw_points(
    session: Session,
    metric_id: int,
    start: datetime,
    end: datetime,
    labels: Optional[Sequence[str]] = None,
) -> List[Point]:
    rows = repository.list_samples(session, metric_id, start, end, labels)
    points = [(value, epoch_ms(started)) for value, started in rows]
    points.sort(key=lambda p: p[1])
    return points


def monthly_points(
    session: Session,
    metric_id: int,
    start: datetime,
    end: datetime,
    labels: Optional[Sequence[str]] = None,
) -> List[Point]:
    rows = repository.monthly_sums(session, metric_id, start, end, labels)
    return [
        (total, epoch_ms(datetime(year, month, 1, tzinfo=timezone.utc)))
        for year, month, total, count in rows
        if count > 0
    ]


def yearly_points(
    session: Session,
    kind: AggregationKind,
    metric_id: int,
    start: datetime,
    end: datetime,
    labels: Optional[Sequence[str]] = None,
) -> List[Point]:
    """One point per calendar year in [start.year, end.year] that has samples.

    Years without a matching sample are omitted, not reported as zero.
    """
    aggregate = (
        repository.yearly_sum if kind == AggregationKind.YEARLY_SUM else repository.yearly_mean
    )
    points: List[Point] = []
    for year in range(start.year, end.year + 1):
        value, count = aggregate(session, metric_id, year, labels)
        if count > 0:
            points.append((value, epoch_ms(datetime(year, 1, 1, tzinfo=timezone.utc))))
    return points


def compute_series(
    session: Session,
    metric_id: int,
    kind: AggregationKind,
    start: datetime,
    end: datetime,
    labels: Optional[Sequence[str]] = None,
) -> TimeSeries:
    """Aggregate one metric over [start, end] and label the result."""
    labels = normalize_filter(labels)
    start, end = to_utc(start), to_utc(end)

    if kind == AggregationKind.RAW:
        datapoints = raw_points(session, metric_id, start, end, labels)
    elif kind == AggregationKind.MONTHLY:
        datapoints = monthly_points(session, metric_id, start, end, labels)
    else:
        datapoints = yearly_points(session, kind, metric_id, start, end, labels)

    definition = repository.get_metric_definition(session, metric_id)
    display_name = definition.name_translated if definition else f"Metric {metric_id}"
    unit = definition.unit if definition else None

    logger.debug(
        f"{kind.value} for metric {metric_id}: {len(datapoints)} points",
        extra={"metric_id": metric_id},
    )
    return TimeSeries(
        target=compose_label(display_name, kind, unit, labels),
        datapoints=datapoints,
        unit=unit,
    )
