"""Manual refresh trigger."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from link_engine.api.deps import get_link_engine
from link_engine.service import LinkEngine

router = APIRouter(prefix="/api/refresh", tags=["refresh"])


class SkippedBrand(BaseModel):
    brand_id: str
    reason: str


class FailedBrand(BaseModel):
    brand_id: str
    error: str


class RefreshResponse(BaseModel):
    triggered: List[str]
    skipped: List[SkippedBrand]
    failed: List[FailedBrand]


@router.post("/stale", response_model=RefreshResponse)
async def refresh_stale(engine: LinkEngine = Depends(get_link_engine)):
    """Run one stale-catalog refresh tick now."""
    report = await engine.refresher.run()
    return report.to_dict()
