"""Factline — Grafana Datasource Façade.

Discovery lists every numeric metric four times (one entry per
aggregation kind); query resolves composite target keys of the form
``fact_<metricId>_<kind>`` into aggregated series.
"""

import re
from typing import List, Optional, Tuple

from sqlmodel import Session

from factline.analyzer.aggregation_engine import (
    KIND_TITLES,
    AggregationKind,
    compute_series,
)
from factline.models.datasource_models import (
    DiscoveryEntry,
    PayloadOption,
    QueryRequest,
    QueryTarget,
    TargetPayload,
    TimeSeries,
)
from factline.store import repository
from factline.core.logging import get_logger

logger = get_logger("analyzer.datasource")

TARGET_PREFIX = "fact"
FILTER_PAYLOAD = "category filter"

TARGET_PATTERN = re.compile(
    rf"{TARGET_PREFIX}_([0-9]+)_({'|'.join(k.value for k in AggregationKind)})"
)


def target_key(metric_id: int, kind: AggregationKind) -> str:
    return f"{TARGET_PREFIX}_{metric_id}_{kind.value}"


def parse_target(key: str) -> Optional[Tuple[int, AggregationKind]]:
    """(metric_id, kind) for a well-formed key, otherwise None."""
    match = TARGET_PATTERN.fullmatch(key or "")
    if not match:
        return None
    return int(match.group(1)), AggregationKind(match.group(2))


def _target_filter(target: QueryTarget) -> List[str]:
    if target.filter:
        return target.filter
    if target.payload:
        labels = target.payload.get(FILTER_PAYLOAD)
        if isinstance(labels, list):
            return [str(label) for label in labels]
    return []


def build_discovery(session: Session) -> List[DiscoveryEntry]:
    """Four selectable targets per numeric metric, each with a category filter."""
    metrics = repository.list_numeric_metrics(session)
    options = [
        PayloadOption(label=label, value=label)
        for label in repository.list_category_labels(session)
    ]
    payload = TargetPayload(
        name=FILTER_PAYLOAD,
        label="Filter by category",
        type="multi-select",
        placeholder="Select categories to filter (optional)",
        options=options,
    )

    entries: List[DiscoveryEntry] = []
    for metric in metrics:
        display = metric.name_translated
        if metric.unit:
            display = f"{display} ({metric.unit})"
        for kind in AggregationKind:
            entries.append(
                DiscoveryEntry(
                    label=f"{display} - {KIND_TITLES[kind]}",
                    value=target_key(metric.id, kind),
                    payloads=[payload],
                )
            )
    return entries


def run_query(session: Session, request: QueryRequest) -> List[TimeSeries]:
    """One series per well-formed target that produced data."""
    start, end = request.range.from_, request.range.to
    results: List[TimeSeries] = []

    for target in request.targets:
        parsed = parse_target(target.target)
        if parsed is None:
            logger.debug(f"Skipping unrecognised target {target.target!r}")
            continue

        metric_id, kind = parsed
        series = compute_series(
            session, metric_id, kind, start, end, _target_filter(target)
        )
        if series.datapoints:
            results.append(series)

    return results
