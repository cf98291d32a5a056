"""Factline — ChurchTools Raw → Typed Record Transformer.

Validates loosely-typed upstream JSON into the records in
``factline.models.upstream_models``. Malformed rows are dropped and
counted rather than passed on half-filled.
"""

from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from factline.models.upstream_models import (
    MetricDefinitionRecord,
    OccurrenceRecord,
    SampleRecord,
)
from factline.core.logging import get_logger

logger = get_logger("churchtools.transformer")

RecordT = TypeVar("RecordT", bound=BaseModel)


def _validate_all(raw: Any, model: Type[RecordT], what: str) -> List[RecordT]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(f"Expected a list of {what}, got {type(raw).__name__}")
        return []

    records: List[RecordT] = []
    skipped = 0
    for row in raw:
        if not isinstance(row, dict):
            skipped += 1
            continue
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            skipped += 1
            logger.debug(f"Skipping malformed {what} {row.get('id', '?')}: {e}")

    if skipped:
        logger.warning(f"Skipped {skipped} malformed {what} of {len(raw)}")
    return records


def transform_metric_definitions(master_data: Any) -> List[MetricDefinitionRecord]:
    """Extract fact definitions from the /event/masterdata payload."""
    facts = master_data.get("facts") if isinstance(master_data, dict) else None
    return _validate_all(facts, MetricDefinitionRecord, "metric definitions")


def transform_occurrences(raw: Any) -> List[OccurrenceRecord]:
    return _validate_all(raw, OccurrenceRecord, "occurrences")


def transform_samples(raw: Any) -> List[SampleRecord]:
    return _validate_all(raw, SampleRecord, "samples")
