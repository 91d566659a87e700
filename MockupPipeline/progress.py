# progress.py
"""
Progress and ETA for a generation job.

Nothing here is stored: the estimate is recomputed from the job's counters
and timestamps on every read, so it reflects the latest elapsed time even
while the pipeline is sleeping between groups.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorEntry(BaseModel):
    item_id: int
    message: str


class ProgressEstimate(BaseModel):
    items_remaining: int
    average_time_per_item: Optional[float] = None  # Seconds
    estimated_remaining_seconds: Optional[float] = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def estimate_progress(
    started_at: datetime,
    total_items: int,
    processed_count: int,
    failed_count: int,
    now: Optional[datetime] = None,
) -> ProgressEstimate:
    now = _as_utc(now or datetime.now(timezone.utc))
    remaining = max(total_items - processed_count - failed_count, 0)

    if processed_count <= 0:
        return ProgressEstimate(items_remaining=remaining)

    elapsed = max((now - _as_utc(started_at)).total_seconds(), 0.0)
    average = elapsed / processed_count
    return ProgressEstimate(
        items_remaining=remaining,
        average_time_per_item=average,
        estimated_remaining_seconds=max(average * remaining, 0.0),
    )


def append_error(
    error_log: Optional[List[Dict[str, Any]]], item_id: int, message: str, limit: int
) -> List[Dict[str, Any]]:
    """Returns a new log with the entry appended, keeping only the last `limit`."""
    entries = list(error_log or [])
    entries.append(ErrorEntry(item_id=item_id, message=message).model_dump())
    if limit <= 0:
        return []
    return entries[-limit:]
