"""Brand link index, link preference and import routes."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError

from link_engine.api.deps import get_link_engine
from link_engine.db.brands import BrandNotFoundError, ImportInProgressError
from link_engine.db.link_index import LINK_FILTERS, DuplicateLinkError, LinkNotFoundError
from link_engine.db.models import LinkType
from link_engine.ingest.dispatcher import MissingDomainError
from link_engine.resolve.types import LinkPreferences
from link_engine.resolve.urls import absolutize, canonicalize_url
from link_engine.service import LinkEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/brands", tags=["brands"])


class LinkResponse(BaseModel):
    id: str
    url: str
    link_type: str
    title: Optional[str]
    is_healthy: bool
    use_count: int
    source: str
    user_confirmed: bool
    last_verified_at: Optional[datetime]
    last_used_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class LinkListResponse(BaseModel):
    links: List[LinkResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class LinkCreate(BaseModel):
    url: str
    title: str
    link_type: LinkType = LinkType.OTHER


class ImportCreate(BaseModel):
    sitemap_url: Optional[str] = None


class ImportJobResponse(BaseModel):
    id: str
    brand_id: str
    sitemap_url: str
    status: str
    urls_found: int
    urls_processed: int
    urls_failed: int
    product_urls_count: int
    collection_urls_count: int
    error_message: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


async def _require_brand(engine: LinkEngine, brand_id: str):
    brand = await engine.brands.get_brand(brand_id)
    if brand is None:
        raise HTTPException(status_code=404, detail="Brand not found")
    return brand


@router.get("/{brand_id}/links", response_model=LinkListResponse)
async def list_links(
    brand_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    link_filter: str = Query("all", alias="filter"),
    search: str = Query(""),
    engine: LinkEngine = Depends(get_link_engine),
):
    """List a brand's catalogued links."""
    if link_filter not in LINK_FILTERS:
        raise HTTPException(status_code=400, detail=f"filter must be one of {', '.join(LINK_FILTERS)}")
    await _require_brand(engine, brand_id)

    entries, total, total_pages = await engine.links.list_page(
        brand_id, page=page, limit=limit, link_filter=link_filter, search=search.strip()
    )
    return LinkListResponse(
        links=entries, total=total, page=page, limit=limit, total_pages=total_pages
    )


@router.post("/{brand_id}/links", response_model=LinkResponse, status_code=201)
async def add_link(
    brand_id: str, link_data: LinkCreate, engine: LinkEngine = Depends(get_link_engine)
):
    """Add an operator-confirmed link to the brand's catalog."""
    brand = await _require_brand(engine, brand_id)

    url = link_data.url.strip()
    if brand.domain:
        url = absolutize(url, brand.domain)
    url = canonicalize_url(url)
    if not url.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="url must be an absolute http(s) URL")

    embedding = None
    try:
        embedding = await engine.embed_text(f"{link_data.title} {link_data.link_type.value}")
    except Exception as e:
        logger.warning(f"Storing {url} without embedding: {e}")

    try:
        return await engine.links.add_link(
            brand_id, url, link_data.title.strip(), link_data.link_type.value, embedding
        )
    except DuplicateLinkError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/{brand_id}/links/{link_id}", status_code=204)
async def delete_link(
    brand_id: str, link_id: str, engine: LinkEngine = Depends(get_link_engine)
):
    """Remove a link from the brand's catalog."""
    try:
        await engine.links.remove(brand_id, link_id)
    except LinkNotFoundError:
        raise HTTPException(status_code=404, detail="Link not found")
    return None


@router.get("/{brand_id}/link-preferences", response_model=Dict[str, Any])
async def get_link_preferences(brand_id: str, engine: LinkEngine = Depends(get_link_engine)):
    """Get the brand's link preferences."""
    brand = await _require_brand(engine, brand_id)
    return brand.link_preferences or {}


@router.patch("/{brand_id}/link-preferences", response_model=Dict[str, Any])
async def update_link_preferences(
    brand_id: str,
    changes: Dict[str, Any],
    engine: LinkEngine = Depends(get_link_engine),
):
    """Merge changes into the brand's link preferences."""
    brand = await _require_brand(engine, brand_id)

    try:
        LinkPreferences.model_validate({**(brand.link_preferences or {}), **changes})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    try:
        return await engine.brands.update_link_preferences(brand_id, changes)
    except BrandNotFoundError:
        raise HTTPException(status_code=404, detail="Brand not found")


@router.post("/{brand_id}/imports", response_model=ImportJobResponse, status_code=202)
async def start_import(
    brand_id: str,
    import_data: Optional[ImportCreate] = None,
    engine: LinkEngine = Depends(get_link_engine),
):
    """Start a sitemap import for the brand."""
    sitemap_url = import_data.sitemap_url if import_data else None
    try:
        return await engine.dispatcher.start_import(brand_id, sitemap_url)
    except BrandNotFoundError:
        raise HTTPException(status_code=404, detail="Brand not found")
    except MissingDomainError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImportInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
