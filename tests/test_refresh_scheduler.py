"""Tests for stale-catalog refresh and the weekly health audit."""

from datetime import datetime, timedelta

import httpx

from link_engine.db.link_index import LinkRecord
from link_engine.db.models import ImportStatus
from link_engine.ingest.dispatcher import IngestionDispatcher
from link_engine.worker.health_audit import HealthAuditor
from link_engine.worker.refresh import RefreshScheduler
from link_engine.worker.scheduler import setup_scheduler

from fakes import FakeVerifier


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


def make_dispatcher(brand_store, fail_domains=()):
    def handler(request: httpx.Request) -> httpx.Response:
        body = request.content.decode()
        if any(d in body for d in fail_domains):
            return httpx.Response(503)
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IngestionDispatcher(brand_store, client=client, dispatch_url="https://crawler.local/jobs")


class TestRefreshScheduler:
    async def test_triggers_stale_and_never_ingested(self, brand_store, make_brand):
        never = await make_brand(domain="never.com")
        stale = await make_brand(domain="stale.com")
        fresh = await make_brand(domain="fresh.com")
        await brand_store.mark_ingested(stale.id, when=datetime.utcnow() - timedelta(days=8))
        await brand_store.mark_ingested(fresh.id, when=datetime.utcnow() - timedelta(days=1))

        sleep = RecordingSleep()
        scheduler = RefreshScheduler(brand_store, make_dispatcher(brand_store), sleep=sleep)

        triggered = await scheduler.trigger_stale_refresh()

        assert set(triggered) == {never.id, stale.id}
        # Staggered between dispatches, not after the last one
        assert sleep.calls == [2.0]

        job = await brand_store.get_active_job(stale.id)
        assert job.status == ImportStatus.PENDING.value
        assert job.sitemap_url == "https://stale.com"

    async def test_skips_brands_without_domain(self, brand_store, make_brand):
        no_domain = await make_brand(domain=None)
        scheduler = RefreshScheduler(brand_store, make_dispatcher(brand_store), sleep=RecordingSleep())

        report = await scheduler.run()

        assert report.triggered == []
        assert report.skipped == [(no_domain.id, "No domain configured")]
        assert await brand_store.get_active_job(no_domain.id) is None

    async def test_skips_brands_with_import_in_progress(self, brand_store, make_brand):
        brand = await make_brand()
        await brand_store.create_import_job(brand.id, "https://brand.com")
        scheduler = RefreshScheduler(brand_store, make_dispatcher(brand_store), sleep=RecordingSleep())

        report = await scheduler.run()

        assert report.triggered == []
        assert report.skipped == [(brand.id, "Import already in progress")]

    async def test_abandoned_import_is_failed_and_replaced(self, brand_store, make_brand):
        brand = await make_brand()
        month_ago = datetime.utcnow() - timedelta(days=30)
        await brand_store.mark_ingested(brand.id, when=month_ago)
        stuck = await brand_store.create_import_job(brand.id, "https://brand.com")
        await brand_store.update_import_job(stuck.id, started_at=month_ago, updated_at=month_ago)
        scheduler = RefreshScheduler(brand_store, make_dispatcher(brand_store), sleep=RecordingSleep())

        report = await scheduler.run()

        assert report.triggered == [brand.id]
        assert report.skipped == []
        stuck = await brand_store.get_import_job(stuck.id)
        assert stuck.status == ImportStatus.FAILED.value
        assert stuck.error_message.startswith("Abandoned")
        assert stuck.completed_at is not None
        fresh = await brand_store.get_active_job(brand.id)
        assert fresh.id != stuck.id
        assert fresh.status == ImportStatus.PENDING.value

    async def test_failed_dispatch_reported_and_job_failed(self, brand_store, make_brand):
        ok = await make_brand(domain="ok.com")
        broken = await make_brand(domain="broken.com")
        scheduler = RefreshScheduler(
            brand_store,
            make_dispatcher(brand_store, fail_domains=("broken.com",)),
            sleep=RecordingSleep(),
        )

        report = await scheduler.run()

        assert report.triggered == [ok.id]
        assert [b for b, _ in report.failed] == [broken.id]
        assert await brand_store.get_active_job(broken.id) is None

    async def test_no_stale_brands(self, brand_store, make_brand):
        brand = await make_brand()
        await brand_store.mark_ingested(brand.id)
        sleep = RecordingSleep()
        scheduler = RefreshScheduler(brand_store, make_dispatcher(brand_store), sleep=sleep)

        assert await scheduler.trigger_stale_refresh() == []
        assert sleep.calls == []


class TestHealthAuditor:
    async def test_audit_persists_verdicts(self, brand_store, link_store, make_brand):
        brand = await make_brand()
        await link_store.upsert_batch(
            brand.id,
            [LinkRecord(url="https://brand.com/live"), LinkRecord(url="https://brand.com/dead")],
        )
        verifier = FakeVerifier(dead={"https://brand.com/dead"})
        auditor = HealthAuditor(brand_store, link_store, verifier, concurrency=2, max_failures=1)

        summary = await auditor.audit_brand(brand.id)

        assert (summary.checked, summary.healthy, summary.failed) == (2, 1, 1)
        assert [e.url for e in await link_store.get(brand.id)] == ["https://brand.com/live"]
        assert all("brand.com" in trusted for _, trusted in verifier.calls)

    async def test_verifier_error_does_not_lose_other_verdicts(
        self, brand_store, link_store, make_brand
    ):
        brand = await make_brand()
        await link_store.upsert_batch(
            brand.id,
            [LinkRecord(url="https://brand.com/live"), LinkRecord(url="https://brand.com/loop")],
        )

        class FlakyVerifier(FakeVerifier):
            async def verify(self, url, trusted_hosts):
                if url.endswith("/loop"):
                    raise RuntimeError("verifier crashed")
                return await super().verify(url, trusted_hosts)

        auditor = HealthAuditor(brand_store, link_store, FlakyVerifier(), concurrency=2, max_failures=1)

        summary = await auditor.audit_brand(brand.id)

        assert (summary.checked, summary.healthy, summary.errors) == (1, 1, 1)
        assert len(await link_store.get(brand.id)) == 2


def test_setup_scheduler_registers_jobs():
    scheduler = setup_scheduler()
    job_ids = {job.id for job in scheduler.get_jobs()}
    assert {"stale_catalog_refresh", "link_health_audit"} <= job_ids
