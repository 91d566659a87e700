from datetime import datetime, timedelta, timezone

import pytest

from progress import append_error, estimate_progress

STARTED = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_no_estimate_before_first_success():
    estimate = estimate_progress(STARTED, total_items=10, processed_count=0, failed_count=3,
                                 now=STARTED + timedelta(seconds=30))

    assert estimate.items_remaining == 7
    assert estimate.average_time_per_item is None
    assert estimate.estimated_remaining_seconds is None


def test_average_and_remaining_time():
    estimate = estimate_progress(STARTED, total_items=10, processed_count=4, failed_count=1,
                                 now=STARTED + timedelta(seconds=120))

    assert estimate.average_time_per_item == pytest.approx(30.0)
    assert estimate.items_remaining == 5
    assert estimate.estimated_remaining_seconds == pytest.approx(150.0)


def test_remaining_is_clamped_at_zero():
    estimate = estimate_progress(STARTED, total_items=2, processed_count=2, failed_count=1,
                                 now=STARTED + timedelta(seconds=10))

    assert estimate.items_remaining == 0
    assert estimate.estimated_remaining_seconds == 0.0


def test_naive_timestamps_are_treated_as_utc():
    naive_start = STARTED.replace(tzinfo=None)
    estimate = estimate_progress(naive_start, total_items=3, processed_count=1, failed_count=0,
                                 now=STARTED + timedelta(seconds=20))

    assert estimate.average_time_per_item == pytest.approx(20.0)
    assert estimate.estimated_remaining_seconds == pytest.approx(40.0)


def test_error_log_keeps_most_recent_entries():
    log = []
    for item_id in range(1, 13):
        log = append_error(log, item_id, f"error {item_id}", limit=10)

    assert len(log) == 10
    assert log[0] == {"item_id": 3, "message": "error 3"}
    assert log[-1] == {"item_id": 12, "message": "error 12"}


def test_append_error_does_not_mutate_input():
    original = [{"item_id": 1, "message": "first"}]
    updated = append_error(original, 2, "second", limit=10)

    assert original == [{"item_id": 1, "message": "first"}]
    assert len(updated) == 2
