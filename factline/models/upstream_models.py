"""Factline — Upstream Record Schemas.

Strongly-typed views of the loosely-typed ChurchTools JSON. The
transformer validates raw dicts into these before anything touches the
store.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator

from factline.models.store_models import MetricKind


def to_utc(value: datetime) -> datetime:
    """Normalise to tz-aware UTC; naive inputs are taken as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MetricDefinitionRecord(BaseModel):
    """Upstream fact definition (from /event/masterdata)."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    name_translated: str = Field(alias="nameTranslated")
    type: Literal["number", "select"]
    unit: Optional[str] = None
    sort_key: int = Field(default=0, alias="sortKey")

    @property
    def kind(self) -> str:
        return MetricKind.NUMERIC if self.type == "number" else MetricKind.CATEGORICAL

    @field_validator("unit")
    @classmethod
    def _blank_unit_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class OccurrenceRecord(BaseModel):
    """Upstream event."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    start_date: datetime = Field(alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    calendar_id: Optional[int] = Field(default=None, alias="calendarId")

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v) if v is not None else None


class SampleRecord(BaseModel):
    """Upstream value of one fact for one event."""

    model_config = ConfigDict(populate_by_name=True)

    occurrence_id: int = Field(alias="eventId")
    metric_id: int = Field(alias="factId")
    # Strict so "12" stays text and true/false never becomes 1/0
    value: Union[StrictInt, StrictFloat, str]
    modified_date: Optional[str] = Field(default=None, alias="modifiedDate")

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.value, (int, float))


class FetchResult(BaseModel):
    """Occurrences plus every sample fetched for them."""

    occurrences: List[OccurrenceRecord] = []
    samples: List[SampleRecord] = []
