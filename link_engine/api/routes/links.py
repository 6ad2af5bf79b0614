"""Link resolution routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from link_engine.api.deps import get_link_engine
from link_engine.resolve.types import MatchResult, ResolutionRequest
from link_engine.service import LinkEngine

router = APIRouter(prefix="/api/links", tags=["links"])


class NavigationRequest(BaseModel):
    label: str
    brand_id: Optional[str] = None
    brand_domain: Optional[str] = None
    discovered_urls: List[str] = Field(default_factory=list)


class NavigationResponse(BaseModel):
    url: Optional[str] = None


@router.post("/resolve", response_model=MatchResult)
async def resolve_link(
    request: ResolutionRequest, engine: LinkEngine = Depends(get_link_engine)
):
    """Resolve the destination URL for an email slice."""
    return await engine.resolve(request)


@router.post("/navigation", response_model=NavigationResponse)
async def resolve_navigation(
    request: NavigationRequest, engine: LinkEngine = Depends(get_link_engine)
):
    """
    Match a footer/menu label to an evergreen page on the brand's site.

    Without explicit discovered_urls the brand's healthy catalog is used.
    """
    domain = request.brand_domain
    urls = list(request.discovered_urls)

    if request.brand_id and (not domain or not urls):
        brand = await engine.brands.get_brand(request.brand_id)
        if brand is None:
            raise HTTPException(status_code=404, detail="Brand not found")
        domain = domain or brand.domain
        if not urls:
            urls = [entry.url for entry in await engine.links.get(brand.id)]

    if not domain:
        raise HTTPException(status_code=400, detail="brand_domain or brand_id with a domain is required")

    url = await engine.resolve_navigation(request.label, urls, domain)
    return NavigationResponse(url=url)
