"""Route tests with the engine wired to SQLite and fake collaborators."""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from link_engine.api.deps import get_link_engine
from link_engine.db.brands import BrandStore
from link_engine.db.link_index import LinkRecord
from link_engine.db.models import Base, Brand
from link_engine.ingest.dispatcher import IngestionDispatcher
from link_engine.main import app
from link_engine.service import LinkEngine

from fakes import FakeClassifier, FakeEmbedder, FakeVerifier, PickingClassifier


@pytest.fixture
def engine(tmp_path):
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)

    async def create_tables():
        async with db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    crawler = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(202)))
    link_engine = LinkEngine(
        factory,
        classify=FakeClassifier(),
        embed=FakeEmbedder(),
        embed_batch=FakeEmbedder().batch,
        verifier=FakeVerifier(),
        dispatcher=IngestionDispatcher(
            BrandStore(factory), client=crawler, dispatch_url="https://crawler.local/jobs"
        ),
    )
    app.dependency_overrides[get_link_engine] = lambda: link_engine

    yield link_engine

    app.dependency_overrides.clear()


@pytest.fixture
def client(engine):
    return TestClient(app)


def seed_brand(engine: LinkEngine, domain="brand.com", links=(), **preferences) -> str:
    async def _seed():
        async with engine.brands._session_factory() as db:
            brand = Brand(domain=domain, link_preferences=preferences)
            db.add(brand)
            await db.commit()
            brand_id = brand.id
        if links:
            await engine.links.upsert_batch(brand_id, list(links))
        return brand_id

    return asyncio.run(_seed())


CATALOG = [
    LinkRecord(url="https://brand.com/products/cruz-snow-jacket", link_type="product", title="Cruz Snow Jacket"),
    LinkRecord(url="https://brand.com/collections/sale", link_type="collection", title="Sale"),
    LinkRecord(url="https://brand.com/pages/faq", link_type="page", title="FAQ"),
]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_resolve_small_catalog(client, engine):
    brand_id = seed_brand(engine, links=CATALOG)
    engine.resolver._classify = PickingClassifier("cruz-snow-jacket")

    response = client.post(
        "/api/links/resolve",
        json={"brand_id": brand_id, "slice_description": "Cruz Snow Jacket hero image"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "index_list_match"
    assert body["url"] == "https://brand.com/products/cruz-snow-jacket"
    assert body["confidence"] == 0.9


def test_resolve_generic_cta_default(client, engine):
    brand_id = seed_brand(engine, default_destination_url="https://brand.com/collections/all")

    response = client.post(
        "/api/links/resolve",
        json={
            "brand_id": brand_id,
            "slice_description": "SHOP NOW",
            "is_generic_cta": True,
            "campaign_context": {"primary_focus": "spring"},
        },
    )

    assert response.json()["source"] == "brand_default"
    assert response.json()["confidence"] == 1.0


def test_resolve_unknown_brand(client):
    response = client.post("/api/links/resolve", json={"brand_id": "missing", "slice_description": "x"})
    assert response.status_code == 200
    assert response.json()["source"] == "no_index"
    assert response.json()["url"] is None


def test_navigation_uses_catalog(client, engine):
    brand_id = seed_brand(engine, links=CATALOG)

    response = client.post("/api/links/navigation", json={"label": "SALE — up to 50% OFF", "brand_id": brand_id})
    assert response.json() == {"url": "https://brand.com/collections/sale"}

    response = client.post(
        "/api/links/navigation",
        json={"label": "Sale", "brand_domain": "brand.com", "discovered_urls": ["https://brand.com/products/sale"]},
    )
    assert response.json() == {"url": None}


def test_navigation_requires_domain(client):
    response = client.post("/api/links/navigation", json={"label": "Sale"})
    assert response.status_code == 400


def test_link_admin(client, engine):
    brand_id = seed_brand(engine, links=CATALOG)

    response = client.get(f"/api/brands/{brand_id}/links", params={"filter": "products"})
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = client.post(
        f"/api/brands/{brand_id}/links",
        json={"url": "https://brand.com/pages/stores", "title": "Store Locator", "link_type": "page"},
    )
    assert response.status_code == 201
    link_id = response.json()["id"]
    assert response.json()["user_confirmed"] is True

    duplicate = client.post(
        f"/api/brands/{brand_id}/links",
        json={"url": "https://brand.com/pages/stores?utm_source=x", "title": "Stores", "link_type": "page"},
    )
    assert duplicate.status_code == 409

    assert client.delete(f"/api/brands/{brand_id}/links/{link_id}").status_code == 204
    assert client.delete(f"/api/brands/{brand_id}/links/{link_id}").status_code == 404

    assert client.get(f"/api/brands/{brand_id}/links", params={"filter": "bogus"}).status_code == 400
    assert client.get("/api/brands/missing/links").status_code == 404


def test_link_preferences(client, engine):
    brand_id = seed_brand(engine, default_destination_url="https://brand.com/")

    response = client.patch(
        f"/api/brands/{brand_id}/link-preferences",
        json={"rules": [{"name": "sale", "destination_url": "https://brand.com/collections/sale"}]},
    )
    assert response.status_code == 200

    prefs = client.get(f"/api/brands/{brand_id}/link-preferences").json()
    assert prefs["default_destination_url"] == "https://brand.com/"
    assert prefs["rules"][0]["name"] == "sale"

    invalid = client.patch(f"/api/brands/{brand_id}/link-preferences", json={"rules": [{"name": "x"}]})
    assert invalid.status_code == 422


def test_import_flow(client, engine):
    brand_id = seed_brand(engine)

    response = client.post(f"/api/brands/{brand_id}/imports")
    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "pending"

    assert client.post(f"/api/brands/{brand_id}/imports").status_code == 409

    response = client.post(
        f"/api/imports/{job['id']}/links",
        json={"links": [{"url": "/collections/sale"}, {"url": "/products/cruz-jacket", "title": "Cruz Jacket"}]},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "complete"
    assert response.json()["urls_processed"] == 2

    assert client.post(f"/api/imports/{job['id']}/links", json={"links": []}).status_code == 409
    assert client.get(f"/api/imports/{job['id']}").json()["status"] == "complete"
    assert client.post("/api/imports/missing/links", json={"links": []}).status_code == 404


def test_import_without_domain(client, engine):
    brand_id = seed_brand(engine, domain=None)
    assert client.post(f"/api/brands/{brand_id}/imports").status_code == 400


def test_refresh_stale(client, engine):
    brand_id = seed_brand(engine)
    no_domain = seed_brand(engine, domain=None)
    engine.refresher.stagger_seconds = 0

    response = client.post("/api/refresh/stale")

    assert response.status_code == 200
    body = response.json()
    assert body["triggered"] == [brand_id]
    assert body["skipped"] == [{"brand_id": no_domain, "reason": "No domain configured"}]
