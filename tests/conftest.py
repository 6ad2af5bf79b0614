"""Shared fixtures: SQLite-backed stores and fake collaborators."""

from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from link_engine.db.brands import BrandStore
from link_engine.db.link_index import LinkIndexStore
from link_engine.db.models import Base, Brand

from fakes import FakeVerifier


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'links.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def link_store(session_factory) -> LinkIndexStore:
    return LinkIndexStore(session_factory)


@pytest.fixture
def brand_store(session_factory) -> BrandStore:
    return BrandStore(session_factory)


@pytest.fixture
def make_brand(session_factory):
    async def _make(domain: Optional[str] = "brand.com", **fields) -> Brand:
        brand = Brand(domain=domain, link_preferences=fields.pop("link_preferences", {}), **fields)
        async with session_factory() as db:
            db.add(brand)
            await db.commit()
            await db.refresh(brand)
        return brand

    return _make


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()
