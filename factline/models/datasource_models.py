"""Factline — Grafana JSON Datasource Schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from factline.models.upstream_models import to_utc


# ─────────────────────────────────────────────
# QUERY REQUEST
# ─────────────────────────────────────────────


class QueryTarget(BaseModel):
    """One requested series."""

    model_config = ConfigDict(extra="ignore")

    target: str = ""
    refId: Optional[str] = None
    filter: Optional[List[str]] = None
    payload: Optional[Dict[str, Any]] = None


class QueryRange(BaseModel):
    """Shared time range for every target in a request."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_: datetime = Field(alias="from")
    to: datetime

    @field_validator("from_", "to")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return to_utc(v)


class QueryRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    targets: List[QueryTarget] = []
    range: QueryRange
    intervalMs: Optional[int] = None
    maxDataPoints: Optional[int] = None


# ─────────────────────────────────────────────
# QUERY RESPONSE
# ─────────────────────────────────────────────


class TimeSeries(BaseModel):
    """One aggregated series: ``datapoints`` are ``[value, epoch_ms]`` pairs."""

    target: str
    datapoints: List[Tuple[float, int]] = []
    unit: Optional[str] = None


# ─────────────────────────────────────────────
# DISCOVERY
# ─────────────────────────────────────────────


class PayloadOption(BaseModel):
    label: str
    value: str


class TargetPayload(BaseModel):
    """A selectable filter Grafana renders under a metric."""

    name: str
    label: str = ""
    type: str = "multi-select"
    placeholder: str = ""
    options: List[PayloadOption] = []


class DiscoveryEntry(BaseModel):
    label: str
    value: str
    payloads: List[TargetPayload] = []
