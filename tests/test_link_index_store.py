"""Tests for the link index store against SQLite."""

from datetime import timedelta

import pytest

from link_engine.db.link_index import DuplicateLinkError, LinkNotFoundError, LinkRecord
from link_engine.db.models import ImportStatus, LinkSource
from link_engine.db.brands import BrandNotFoundError, ImportInProgressError


class TestLinkIndexStore:
    async def test_upsert_canonicalizes_and_preserves_usage(self, link_store, make_brand):
        brand = await make_brand()
        written = await link_store.upsert_batch(
            brand.id,
            [
                LinkRecord(url="https://brand.com/products/a?utm_source=x", link_type="product", title="A"),
                LinkRecord(url="https://brand.com/products/a", link_type="product", title="A again"),
                LinkRecord(url="https://brand.com/collections/b", link_type="collection", embedding=[1.0, 0.0]),
            ],
        )
        assert written == 2

        entries = {e.url: e for e in await link_store.get(brand.id)}
        assert set(entries) == {"https://brand.com/products/a", "https://brand.com/collections/b"}
        await link_store.record_usage(entries["https://brand.com/products/a"].id)

        await link_store.upsert_batch(
            brand.id,
            [
                LinkRecord(url="https://brand.com/products/a", link_type="product", title="A v2"),
                LinkRecord(url="https://brand.com/collections/b", link_type="collection", title="B"),
            ],
        )
        entries = {e.url: e for e in await link_store.get(brand.id)}
        assert entries["https://brand.com/products/a"].use_count == 1
        assert entries["https://brand.com/products/a"].title == "A v2"
        # Existing embedding kept when the new record has none
        assert entries["https://brand.com/collections/b"].embedding == [1.0, 0.0]

    async def test_get_excludes_unhealthy(self, link_store, make_brand):
        brand = await make_brand()
        await link_store.upsert_batch(
            brand.id, [LinkRecord(url="https://brand.com/a"), LinkRecord(url="https://brand.com/b")]
        )
        entries = await link_store.get(brand.id)
        await link_store.set_health(entries[0].id, False)

        assert len(await link_store.get(brand.id)) == 1
        assert len(await link_store.get(brand.id, healthy_only=False)) == 2

    async def test_set_health_unknown_entry(self, link_store):
        with pytest.raises(LinkNotFoundError):
            await link_store.set_health("missing", True)

    async def test_vector_search_orders_and_breaks_ties_by_usage(self, link_store, make_brand):
        brand = await make_brand()
        other = await make_brand(domain="other.com")
        await link_store.upsert_batch(
            brand.id,
            [
                LinkRecord(url="https://brand.com/exact", embedding=[1.0, 0.0]),
                LinkRecord(url="https://brand.com/tie-unused", embedding=[0.0, 1.0]),
                LinkRecord(url="https://brand.com/tie-used", embedding=[0.0, 2.0]),
                LinkRecord(url="https://brand.com/opposite", embedding=[-1.0, 0.0]),
                LinkRecord(url="https://brand.com/no-embedding"),
                LinkRecord(url="https://brand.com/wrong-dim", embedding=[1.0, 0.0, 0.0]),
            ],
        )
        await link_store.upsert_batch(other.id, [LinkRecord(url="https://other.com/x", embedding=[1.0, 0.0])])

        by_url = {e.url: e for e in await link_store.get(brand.id)}
        await link_store.record_usage(by_url["https://brand.com/tie-used"].id)

        results = await link_store.vector_search(brand.id, [1.0, 0.0], k=3)

        assert [r.url for r in results] == [
            "https://brand.com/exact",
            "https://brand.com/tie-used",
            "https://brand.com/tie-unused",
        ]
        assert results[0].similarity == pytest.approx(1.0)
        assert results[1].similarity == pytest.approx(0.0)

    async def test_vector_search_skips_unhealthy(self, link_store, make_brand):
        brand = await make_brand()
        await link_store.upsert_batch(brand.id, [LinkRecord(url="https://brand.com/a", embedding=[1.0, 0.0])])
        entry = (await link_store.get(brand.id))[0]
        await link_store.set_health(entry.id, False)
        assert await link_store.vector_search(brand.id, [1.0, 0.0], k=5) == []

    async def test_record_verification_needs_consecutive_failures(self, link_store, make_brand):
        brand = await make_brand()
        await link_store.upsert_batch(brand.id, [LinkRecord(url="https://brand.com/a")])
        entry_id = (await link_store.get(brand.id))[0].id

        async def state():
            entry = (await link_store.get(brand.id, healthy_only=False))[0]
            return entry.is_healthy, entry.verification_failures

        await link_store.record_verification(entry_id, False, max_failures=3)
        await link_store.record_verification(entry_id, False, max_failures=3)
        assert await state() == (True, 2)

        await link_store.record_verification(entry_id, True, max_failures=3)
        assert await state() == (True, 0)

        for _ in range(3):
            await link_store.record_verification(entry_id, False, max_failures=3)
        assert await state() == (False, 3)

    async def test_list_page_filters_and_paginates(self, link_store, make_brand):
        brand = await make_brand()
        await link_store.upsert_batch(
            brand.id,
            [LinkRecord(url=f"https://brand.com/products/p{i}", link_type="product", title=f"Jacket {i}") for i in range(5)]
            + [LinkRecord(url="https://brand.com/collections/sale", link_type="collection", title="Sale")],
        )

        entries, total, pages = await link_store.list_page(brand.id, page=2, limit=2, link_filter="products")
        assert (len(entries), total, pages) == (2, 5, 3)

        entries, total, _ = await link_store.list_page(brand.id, search="SALE")
        assert total == 1
        assert entries[0].link_type == "collection"

        _, total, _ = await link_store.list_page(brand.id, link_filter="unhealthy")
        assert total == 0

        with pytest.raises(ValueError):
            await link_store.list_page(brand.id, link_filter="bogus")

    async def test_add_and_remove_link(self, link_store, make_brand):
        brand = await make_brand()
        entry = await link_store.add_link(
            brand.id, "https://brand.com/pages/stores?utm_medium=x", "Stores", "page"
        )
        assert entry.url == "https://brand.com/pages/stores"
        assert entry.source == LinkSource.USER_ADDED.value
        assert entry.user_confirmed

        with pytest.raises(DuplicateLinkError):
            await link_store.add_link(brand.id, "https://brand.com/pages/stores", "Stores", "page")

        await link_store.remove(brand.id, entry.id)
        assert await link_store.get(brand.id) == []
        with pytest.raises(LinkNotFoundError):
            await link_store.remove(brand.id, entry.id)

    async def test_embedding_backfill(self, link_store, make_brand):
        brand = await make_brand()
        await link_store.upsert_batch(
            brand.id,
            [LinkRecord(url="https://brand.com/a"), LinkRecord(url="https://brand.com/b", embedding=[1.0])],
        )
        missing = await link_store.entries_missing_embeddings(brand.id)
        assert [e.url for e in missing] == ["https://brand.com/a"]

        await link_store.set_embeddings({missing[0].id: [0.5]})
        assert await link_store.entries_missing_embeddings(brand.id) == []


class TestBrandStore:
    async def test_update_link_preferences_merges(self, brand_store, make_brand):
        brand = await make_brand(link_preferences={"default_destination_url": "https://brand.com/"})
        prefs = await brand_store.update_link_preferences(
            brand.id, {"rules": [{"name": "sale", "destination_url": "https://brand.com/collections/sale"}]}
        )
        assert prefs["default_destination_url"] == "https://brand.com/"
        assert prefs["rules"][0]["name"] == "sale"

        reloaded = await brand_store.get_brand(brand.id)
        assert reloaded.link_preferences == prefs

        with pytest.raises(BrandNotFoundError):
            await brand_store.update_link_preferences("missing", {})

    async def test_list_stale_brands(self, brand_store, make_brand):
        never = await make_brand()
        fresh = await make_brand()
        old = await make_brand()
        await brand_store.mark_ingested(fresh.id)
        await brand_store.mark_ingested(old.id, when=fresh.created_at - timedelta(days=30))

        stale = {b.id for b in await brand_store.list_stale_brands(timedelta(days=7))}
        assert stale == {never.id, old.id}
        assert {b.id for b in await brand_store.list_ingested_brands()} == {fresh.id, old.id}

    async def test_one_active_import_per_brand(self, brand_store, make_brand):
        brand = await make_brand()
        job = await brand_store.create_import_job(brand.id, "https://brand.com")
        assert job.status == ImportStatus.PENDING.value

        with pytest.raises(ImportInProgressError):
            await brand_store.create_import_job(brand.id, "https://brand.com")

        await brand_store.update_import_job(job.id, status=ImportStatus.COMPLETE.value)
        second = await brand_store.create_import_job(brand.id, "https://brand.com/sitemap.xml")
        assert second.id != job.id
