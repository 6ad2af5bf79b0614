"""Ingestion callback routes for the site crawler."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from link_engine.api.deps import get_link_engine
from link_engine.api.routes.brands import ImportJobResponse
from link_engine.db.brands import BrandNotFoundError, ImportJobNotFoundError
from link_engine.ingest.catalog import DiscoveredLink, ImportJobClosedError
from link_engine.service import LinkEngine

router = APIRouter(prefix="/api/imports", tags=["imports"])


class DiscoveredLinks(BaseModel):
    links: List[DiscoveredLink]


@router.get("/{job_id}", response_model=ImportJobResponse)
async def get_import(job_id: str, engine: LinkEngine = Depends(get_link_engine)):
    """Get import job progress."""
    job = await engine.brands.get_import_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job


@router.post("/{job_id}/links", response_model=ImportJobResponse)
async def report_links(
    job_id: str, payload: DiscoveredLinks, engine: LinkEngine = Depends(get_link_engine)
):
    """Complete an import job with the links the crawler discovered."""
    try:
        return await engine.ingestor.ingest(job_id, payload.links)
    except (ImportJobNotFoundError, BrandNotFoundError):
        raise HTTPException(status_code=404, detail="Import job not found")
    except ImportJobClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
