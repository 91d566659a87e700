# mockup_generator.py
"""
Mockup template generation pipeline.

One run of `MockupPipeline`:

1.  Discovers variants whose template is missing or known to be invalid,
    resolving missing product ids through the Printful catalog.
2.  Groups the variants by product so a single Printful task renders the
    whole group.
3.  For each group, strictly one at a time: submits the magenta marker
    artwork, waits for the render, and for every variant locates the marker
    in its rendered template and stores `{template_url, print_area}`.
4.  Updates the generation job after every variant so a polling client sees
    live counters, and sleeps for the Printful cooldown between groups.

Groups are never processed concurrently: Printful rate-limits mockup task
creation per account, and parallel submissions only earn throttling errors.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

import store
from db import async_session_maker
from print_area import (
    FALLBACK_PRINT_AREA,
    PrintArea,
    PrintAreaDetectionError,
    detect_print_area,
)
from printful import MockupResult, PrintfulError, PrintfulMockupClient, find_image_url
from progress import ErrorEntry
from settings import settings
from storage import TemplateStorageError, TemplateStore, download_image
from store import WorkItem

log = logging.getLogger(__name__)


class RunSummary(BaseModel):
    job_id: str
    processed_count: int
    errors: List[ErrorEntry]


def group_by_product(items: List[WorkItem]) -> Dict[int, List[int]]:
    """Partitions work items by product, keeping discovery order for both groups and variants."""
    groups: Dict[int, List[int]] = {}
    seen = set()
    for item in items:
        if item.product_id is None or item.variant_id in seen:
            continue
        seen.add(item.variant_id)
        groups.setdefault(item.product_id, []).append(item.variant_id)
    return groups


class MockupPipeline:
    """Drives one sequential, rate-limited mockup generation run."""

    def __init__(
        self,
        client: Optional[PrintfulMockupClient] = None,
        session_maker=None,
        template_store: Optional[TemplateStore] = None,
        detector: Callable[[bytes], PrintArea] = detect_print_area,
        fetch_image: Callable[[str], Awaitable[bytes]] = download_image,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        placement: Optional[str] = None,
        artwork_url: Optional[str] = None,
        cooldown_seconds: Optional[float] = None,
        error_log_limit: Optional[int] = None,
    ):
        self.client = client or PrintfulMockupClient()
        self.session_maker = session_maker or async_session_maker
        self.template_store = template_store or TemplateStore()
        self.detector = detector
        self.fetch_image = fetch_image
        self.sleep = sleep
        self.placement = placement or settings.MOCKUP_PLACEMENT
        self.artwork_url = artwork_url or settings.MOCKUP_MARKER_ARTWORK_URL
        self.cooldown_seconds = (
            settings.MOCKUP_GROUP_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self.error_log_limit = (
            settings.MOCKUP_ERROR_LOG_LIMIT if error_log_limit is None else error_log_limit
        )
        self._cancel_requested = False
        self._errors: List[ErrorEntry] = []
        self._processed = 0

    def cancel(self) -> None:
        """Asks the run to stop before its next group."""
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    # ===================================================================
    # Run
    # ===================================================================

    async def run(self, job_id: Optional[str] = None) -> RunSummary:
        """
        Executes one pipeline pass.

        A job record is created unless `job_id` names one created by the
        caller (the service layer does this so it can hand the id back before
        discovery finishes).
        """
        self._errors = []
        self._processed = 0

        if job_id is None:
            async with self.session_maker() as db:
                job_id = (await store.create_job(db)).id

        try:
            items = await self._discover()
            groups = group_by_product(items)
            total = sum(len(variant_ids) for variant_ids in groups.values())

            async with self.session_maker() as db:
                await store.start_job(db, job_id, total)
            log.info(f"🚀 Mockup job {job_id}: {total} variants in {len(groups)} product groups.")

            stopped_early = False
            for index, (product_id, variant_ids) in enumerate(groups.items()):
                if self._cancel_requested:
                    log.warning(f"Mockup job {job_id} cancelled before product {product_id}.")
                    stopped_early = True
                    break

                await self._process_group(job_id, product_id, variant_ids)

                if index < len(groups) - 1:
                    log.info(f"Waiting {self.cooldown_seconds:.0f}s to respect Printful rate limits...")
                    await self.sleep(self.cooldown_seconds)

            async with self.session_maker() as db:
                job = await store.finish_job(db, job_id, cancelled=stopped_early)
            log.info(
                f"✅ Mockup job {job_id} {job.status}: "
                f"{job.processed_count} processed, {job.failed_count} failed."
            )
        except Exception as e:
            log.error(f"Mockup job {job_id} crashed: {e}", exc_info=True)
            async with self.session_maker() as db:
                await store.fail_job(db, job_id, f"Pipeline crashed: {e}")
            raise

        return RunSummary(job_id=job_id, processed_count=self._processed, errors=list(self._errors))

    # ===================================================================
    # Discovery
    # ===================================================================

    async def _discover(self) -> List[WorkItem]:
        async with self.session_maker() as db:
            items = await store.discover_work_items(db)

        resolved: List[WorkItem] = []
        for item in items:
            if item.product_id is None:
                try:
                    product_id = await self.client.get_variant_product_id(item.variant_id)
                except PrintfulError as e:
                    log.warning(f"Skipping variant {item.variant_id}: product lookup failed ({e}).")
                    continue
                item = item.model_copy(update={"product_id": product_id})
                await self._remember_product_id(item.variant_id, product_id)
            resolved.append(item)

        skipped = len(items) - len(resolved)
        log.info(f"Discovered {len(items)} variants needing mockups ({skipped} skipped).")
        return resolved

    async def _remember_product_id(self, variant_id: int, product_id: int) -> None:
        # Best effort: the next run can repeat the lookup.
        try:
            async with self.session_maker() as db:
                await store.set_variant_product_id(db, variant_id, product_id)
        except SQLAlchemyError as e:
            log.warning(f"Could not save product {product_id} for variant {variant_id}: {e}")

    # ===================================================================
    # Groups & variants
    # ===================================================================

    async def _process_group(self, job_id: str, product_id: int, variant_ids: List[int]) -> None:
        log.info(f"Processing product {product_id} variants: {', '.join(map(str, variant_ids))}")
        try:
            task_key = await self.client.create_task(
                product_id, variant_ids, self.placement, self.artwork_url
            )
            task = await self.client.wait_for_task(task_key)
        except PrintfulError as e:
            message = f"Mockup task failed for product {product_id}: {e}"
            log.error(message)
            for variant_id in variant_ids:
                await self._record(job_id, variant_id, succeeded=False, message=message)
            return

        for variant_id in variant_ids:
            await self._resolve_variant(job_id, variant_id, task.mockups)

    async def _resolve_variant(self, job_id: str, variant_id: int, mockups: List[MockupResult]) -> None:
        image_url = find_image_url(mockups, variant_id)
        if not image_url:
            await self._record(
                job_id, variant_id, succeeded=False,
                message=f"No mockup URL returned for variant {variant_id}",
            )
            return

        detection_error = None
        try:
            image_bytes = await self.fetch_image(image_url)
            print_area = await asyncio.to_thread(self.detector, image_bytes)
        except (PrintAreaDetectionError, TemplateStorageError) as e:
            detection_error = str(e)
            print_area = FALLBACK_PRINT_AREA
            log.warning(f"Variant {variant_id}: {e}. Using the default print area.")

        template_url = await self.template_store.persist(image_url, variant_id)
        try:
            async with self.session_maker() as db:
                await store.save_variant_mockup(db, variant_id, template_url, print_area.model_dump())
        except (SQLAlchemyError, LookupError) as e:
            log.error(f"Failed to save mockup for variant {variant_id}: {e}")
            await self._record(
                job_id, variant_id, succeeded=False,
                message=f"Could not save mockup for variant {variant_id}: {e}",
            )
            return

        if detection_error:
            await self._record(
                job_id, variant_id, succeeded=False,
                message=f"Print area detection failed, default area used: {detection_error}",
            )
        else:
            log.info(f"Variant {variant_id}: template saved. Print area: {print_area.model_dump()}")
            await self._record(job_id, variant_id, succeeded=True)

    async def _record(
        self, job_id: str, variant_id: int, succeeded: bool, message: Optional[str] = None
    ) -> None:
        if succeeded:
            self._processed += 1
        else:
            self._errors.append(ErrorEntry(item_id=variant_id, message=message or "Unknown error"))

        async with self.session_maker() as db:
            await store.record_outcome(
                db, job_id,
                succeeded=succeeded,
                item_id=variant_id,
                message=message,
                error_log_limit=self.error_log_limit,
            )
