import asyncio

import httpx
import pytest
from fastapi import FastAPI

from conftest import FakePrintfulClient, RecordingSleep, add_variants, fake_fetch, fixed_detector
from mockup_generator import MockupPipeline
from mockup_service import MockupService, PipelineBusyError
from mockups import get_mockup_service, router
from print_area import PrintArea
from printful import MockupResult
from storage import TemplateStore


class BlockingPrintfulClient(FakePrintfulClient):
    """Holds every render until `release` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = asyncio.Event()

    async def wait_for_task(self, task_key):
        await self.release.wait()
        return await super().wait_for_task(task_key)


def build_service(session_maker, client):
    def factory():
        return MockupPipeline(
            client=client,
            session_maker=session_maker,
            template_store=TemplateStore(rehost=False),
            detector=fixed_detector(PrintArea(x=0.1, y=0.1, width=0.5, height=0.5)),
            fetch_image=fake_fetch,
            sleep=RecordingSleep(),
            artwork_url="https://cdn/marker.png",
            cooldown_seconds=0,
        )
    return MockupService(session_maker=session_maker, pipeline_factory=factory)


@pytest.fixture
def make_api():
    def _make(service):
        app = FastAPI()
        app.include_router(router, prefix="/api")
        app.dependency_overrides[get_mockup_service] = lambda: service
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return _make


async def test_status_is_null_before_any_run(session_maker, make_api):
    async with make_api(build_service(session_maker, FakePrintfulClient())) as api:
        response = await api.get("/api/mockups/status")

    assert response.status_code == 200
    assert response.json() is None


async def test_status_of_unknown_job_is_404(session_maker, make_api):
    async with make_api(build_service(session_maker, FakePrintfulClient())) as api:
        response = await api.get("/api/mockups/status", params={"job_id": "missing"})

    assert response.status_code == 404


async def test_generate_runs_in_background_and_reports_progress(session_maker, make_api):
    await add_variants(session_maker, {"id": 10, "product_id": 1}, {"id": 11, "product_id": 1})
    client = FakePrintfulClient(mockups={
        1: [MockupResult(variant_ids=[10, 11], image_url="https://cdn/render.png")],
    })
    service = build_service(session_maker, client)

    async with make_api(service) as api:
        assert (await api.get("/api/mockups/pending")).json() == {"pending": 2}

        response = await api.post("/api/mockups/generate")
        assert response.status_code == 202
        job_id = response.json()["job_id"]

        await service.wait()

        body = (await api.get("/api/mockups/status", params={"job_id": job_id})).json()
        latest = (await api.get("/api/mockups/status")).json()
        pending = (await api.get("/api/mockups/pending")).json()

    assert body["status"] == "completed"
    assert body["processed_count"] == 2
    assert body["failed_count"] == 0
    assert body["items_remaining"] == 0
    assert body["estimated_remaining_seconds"] == 0.0
    assert latest["id"] == job_id
    assert pending == {"pending": 0}


async def test_second_run_is_rejected_while_one_is_active(session_maker, make_api):
    await add_variants(session_maker, {"id": 10, "product_id": 1})
    client = BlockingPrintfulClient(mockups={
        1: [MockupResult(variant_ids=[10], image_url="https://cdn/10.png")],
    })
    service = build_service(session_maker, client)

    async with make_api(service) as api:
        first = await api.post("/api/mockups/generate")
        second = await api.post("/api/mockups/generate")

        client.release.set()
        await service.wait()

    assert first.status_code == 202
    assert second.status_code == 409


async def test_cancel_when_idle_reports_false(session_maker, make_api):
    async with make_api(build_service(session_maker, FakePrintfulClient())) as api:
        response = await api.post("/api/mockups/cancel")

    assert response.status_code == 200
    assert response.json() == {"cancelled": False}


async def test_cancel_active_run(session_maker, make_api):
    await add_variants(session_maker, {"id": 10, "product_id": 1}, {"id": 20, "product_id": 2})
    client = BlockingPrintfulClient(mockups={
        1: [MockupResult(variant_ids=[10], image_url="https://cdn/10.png")],
        2: [MockupResult(variant_ids=[20], image_url="https://cdn/20.png")],
    })
    service = build_service(session_maker, client)

    async with make_api(service) as api:
        job_id = (await api.post("/api/mockups/generate")).json()["job_id"]
        while not client.submitted:
            await asyncio.sleep(0)
        cancelled = (await api.post("/api/mockups/cancel")).json()

        client.release.set()
        await service.wait()

        body = (await api.get("/api/mockups/status", params={"job_id": job_id})).json()

    assert cancelled == {"cancelled": True}
    assert body["status"] == "cancelled"
    assert [s[0] for s in client.submitted] == [1]


async def test_overlapping_starts_launch_a_single_run(session_maker):
    await add_variants(session_maker, {"id": 10, "product_id": 1})
    client = BlockingPrintfulClient(mockups={
        1: [MockupResult(variant_ids=[10], image_url="https://cdn/10.png")],
    })
    service = build_service(session_maker, client)

    results = await asyncio.gather(service.start_run(), service.start_run(), return_exceptions=True)
    client.release.set()
    await service.wait()

    job_ids = [r for r in results if isinstance(r, str)]
    rejected = [r for r in results if isinstance(r, PipelineBusyError)]
    assert len(job_ids) == 1
    assert len(rejected) == 1
    assert [s[:2] for s in client.submitted] == [(1, [10])]
