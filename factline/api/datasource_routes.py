"""Factline — Grafana JSON Datasource Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from factline.database import get_session
from factline.analyzer.datasource import build_discovery, run_query
from factline.models.datasource_models import DiscoveryEntry, QueryRequest, TimeSeries
from factline.store import repository
from factline.core.logging import get_logger

logger = get_logger("api.datasource")

router = APIRouter(tags=["Datasource"])

TAG_KEY = "category"


class TagValuesRequest(BaseModel):
    key: Optional[str] = None


# Read endpoints are plain ``def``: they run in the threadpool, alongside any sync pass.


@router.get("/")
def datasource_root():
    """Grafana's "Save & test" probe."""
    return {"message": "Factline Grafana JSON Datasource"}


@router.post("/metrics", response_model=List[DiscoveryEntry])
def list_metrics(session: Session = Depends(get_session)):
    """Every numeric metric, once per aggregation kind."""
    try:
        return build_discovery(session)
    except Exception as e:
        logger.error(f"Discovery failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch metrics")


@router.post(
    "/query", response_model=List[TimeSeries], response_model_exclude_none=True
)
def query(request: QueryRequest, session: Session = Depends(get_session)):
    """Aggregated series for each recognised target that has data."""
    try:
        return run_query(session, request)
    except Exception as e:
        logger.error(f"Query failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to query data")


@router.post("/annotations")
def annotations():
    return []


@router.post("/tag-keys")
def tag_keys():
    return [{"type": "string", "text": TAG_KEY}]


@router.post("/tag-values")
def tag_values(body: TagValuesRequest, session: Session = Depends(get_session)):
    if body.key != TAG_KEY:
        return []
    return [{"text": label} for label in repository.list_category_labels(session)]
