from __future__ import annotations

import threading
import time

import pytest

from lotscout.engine.source_scheduler import SourceScheduler, batched


def test_batched_splits_in_order() -> None:
    assert [list(batch) for batch in batched([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
    with pytest.raises(ValueError):
        list(batched([1], 0))


def test_scheduler_never_exceeds_concurrency(sample_source_config) -> None:
    sources = [sample_source_config(source_name=f"S{index}") for index in range(5)]
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def crawl(source):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.02)
        with lock:
            state["active"] -= 1
        return source.source_name

    outcomes = SourceScheduler(crawl, max_concurrent=2).run(sources)

    assert state["peak"] <= 2
    assert [outcome.result for outcome in outcomes] == ["S0", "S1", "S2", "S3", "S4"]


def test_one_failing_source_does_not_stop_the_rest(sample_source_config) -> None:
    sources = [sample_source_config(source_name=name) for name in ("Good", "Broken", "Other")]

    def crawl(source):
        if source.source_name == "Broken":
            raise RuntimeError("entry page unreachable")
        return source.source_name.lower()

    outcomes = SourceScheduler(crawl, max_concurrent=5).run(sources)

    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert str(outcomes[1].error) == "entry page unreachable"
    assert outcomes[2].result == "other"


def test_scheduler_rejects_zero_concurrency() -> None:
    with pytest.raises(ValueError):
        SourceScheduler(lambda source: source, max_concurrent=0)
