# store.py
"""
Data access for product variants and generation jobs.

Every function takes the session it should use and commits its own writes;
the pipeline opens a short-lived session per unit of work so a polling
reader always sees the latest counters.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import GenerationJob, JobStatus, JOB_TYPE_MOCKUP_GENERATION, ProductVariant
from progress import append_error
from settings import settings

log = logging.getLogger(__name__)


class WorkItem(BaseModel):
    """A variant that still needs a mockup template."""
    variant_id: int
    product_id: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _needs_mockup_clause(patterns: Optional[Sequence[str]]):
    if patterns is None:
        patterns = settings.MOCKUP_INVALID_URL_PATTERNS
    conditions = [ProductVariant.mockup_template_url.is_(None)]
    conditions.extend(ProductVariant.mockup_template_url.ilike(p) for p in patterns)
    return or_(*conditions)


# ===================================================================
# Variants
# ===================================================================

async def discover_work_items(
    db: AsyncSession, patterns: Optional[Sequence[str]] = None
) -> List[WorkItem]:
    """Variants with a missing or known-invalid template URL, in id order."""
    q = (
        select(ProductVariant.id, ProductVariant.product_id)
        .where(ProductVariant.id > 0, _needs_mockup_clause(patterns))
        .order_by(ProductVariant.id)
    )
    rows = (await db.execute(q)).all()
    return [
        WorkItem(variant_id=variant_id, product_id=product_id if product_id and product_id > 0 else None)
        for variant_id, product_id in rows
    ]


async def count_pending(db: AsyncSession, patterns: Optional[Sequence[str]] = None) -> int:
    q = (
        select(func.count())
        .select_from(ProductVariant)
        .where(ProductVariant.id > 0, _needs_mockup_clause(patterns))
    )
    return int((await db.execute(q)).scalar_one())


async def set_variant_product_id(db: AsyncSession, variant_id: int, product_id: int) -> None:
    variant = await db.get(ProductVariant, variant_id)
    if variant is None:
        return
    variant.product_id = product_id
    await db.commit()


async def save_variant_mockup(
    db: AsyncSession, variant_id: int, template_url: str, print_area: Dict[str, float]
) -> None:
    variant = await db.get(ProductVariant, variant_id)
    if variant is None:
        raise LookupError(f"Variant {variant_id} no longer exists")
    variant.mockup_template_url = template_url
    variant.mockup_print_area = dict(print_area)
    await db.commit()


# ===================================================================
# Generation jobs
# ===================================================================

async def create_job(db: AsyncSession) -> GenerationJob:
    now = _utcnow()
    job = GenerationJob(
        job_type=JOB_TYPE_MOCKUP_GENERATION,
        status=JobStatus.PENDING,
        total_items=0,
        processed_count=0,
        failed_count=0,
        error_log=[],
        started_at=now,
        last_updated_at=now,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


async def start_job(db: AsyncSession, job_id: str, total_items: int) -> GenerationJob:
    """Moves a job to `processing` once the work set is known."""
    job = await _require_job(db, job_id)
    now = _utcnow()
    job.status = JobStatus.PROCESSING
    job.total_items = total_items
    job.started_at = now
    job.last_updated_at = now
    await db.commit()
    return job


async def record_outcome(
    db: AsyncSession,
    job_id: str,
    *,
    succeeded: bool,
    item_id: Optional[int] = None,
    message: Optional[str] = None,
    error_log_limit: Optional[int] = None,
) -> GenerationJob:
    """Counts one resolved variant and, for failures, appends to the error ring."""
    job = await _require_job(db, job_id)
    if succeeded:
        job.processed_count += 1
    else:
        job.failed_count += 1
    if message is not None and item_id is not None:
        limit = settings.MOCKUP_ERROR_LOG_LIMIT if error_log_limit is None else error_log_limit
        # Reassign so the JSON column is flagged dirty.
        job.error_log = append_error(job.error_log, item_id, message, limit)
    job.last_updated_at = _utcnow()
    await db.commit()
    return job


async def finish_job(db: AsyncSession, job_id: str, cancelled: bool = False) -> GenerationJob:
    """Sets the terminal status: failed only when nothing succeeded."""
    job = await _require_job(db, job_id)
    if cancelled:
        job.status = JobStatus.CANCELLED
    elif job.failed_count > 0 and job.processed_count == 0:
        job.status = JobStatus.FAILED
    else:
        job.status = JobStatus.COMPLETED
    now = _utcnow()
    job.completed_at = now
    job.last_updated_at = now
    await db.commit()
    return job


async def fail_job(db: AsyncSession, job_id: str, message: str) -> None:
    """Marks a run that crashed outside the per-group error handling."""
    job = await db.get(GenerationJob, job_id)
    if job is None:
        return
    now = _utcnow()
    job.status = JobStatus.FAILED
    job.error_log = append_error(job.error_log, 0, message, settings.MOCKUP_ERROR_LOG_LIMIT)
    job.completed_at = now
    job.last_updated_at = now
    await db.commit()


async def get_job(db: AsyncSession, job_id: str) -> Optional[GenerationJob]:
    return await db.get(GenerationJob, job_id)


async def get_latest_job(db: AsyncSession) -> Optional[GenerationJob]:
    q = (
        select(GenerationJob)
        .where(GenerationJob.job_type == JOB_TYPE_MOCKUP_GENERATION)
        .order_by(GenerationJob.started_at.desc())
        .limit(1)
    )
    return (await db.execute(q)).scalars().first()


async def _require_job(db: AsyncSession, job_id: str) -> GenerationJob:
    job = await db.get(GenerationJob, job_id)
    if job is None:
        raise LookupError(f"Generation job {job_id} not found")
    return job
