"""Factline — Store Models (mirrored upstream records).

Three tables mirror the upstream hierarchy: metric definitions,
occurrences, and one sample per (occurrence, metric) pair.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricKind:
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"


class MetricDefinition(SQLModel, table=True):
    """A metric tracked across occurrences (upstream "fact")."""

    __tablename__ = "metric_definitions"

    id: int = Field(primary_key=True, description="Upstream fact ID")
    name: str
    name_translated: str = Field(description="Display name")
    kind: str = Field(index=True, description="numeric | categorical")
    unit: Optional[str] = None
    sort_key: int = Field(default=0)
    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))


class Occurrence(SQLModel, table=True):
    """A dated upstream event that samples hang off.

    ``created_at`` is reset on every upsert; its maximum is the sync watermark.
    """

    __tablename__ = "occurrences"

    id: int = Field(primary_key=True, description="Upstream event ID")
    name: str
    start_date: datetime = Field(
        index=True, sa_type=DateTime(timezone=True), description="UTC"
    )
    end_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    calendar_id: Optional[int] = None
    created_at: datetime = Field(
        default_factory=_utcnow, index=True, sa_type=DateTime(timezone=True)
    )


class MetricSample(SQLModel, table=True):
    """Value of one metric for one occurrence.

    Unique constraint on (occurrence_id, metric_id) backs the
    replace-on-write upsert.
    Exactly one of ``value`` / ``value_text`` is set.
    """

    __tablename__ = "metric_samples"
    __table_args__ = (
        UniqueConstraint("occurrence_id", "metric_id", name="uq_metric_sample"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    occurrence_id: int = Field(index=True)
    metric_id: int = Field(index=True)
    label: Optional[str] = Field(
        default=None, index=True, description="Occurrence name cached at write time"
    )
    value: Optional[float] = None
    value_text: Optional[str] = None
    modified_date: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))
