import threading

import pytest

from tunnelhunter.core.stats import StatsAggregator


def test_increment_and_get():
    stats = StatsAggregator(["live"])
    assert stats.get("live") == 0
    assert stats.increment("live") == 1
    assert stats.increment("notfound", 3) == 3
    assert stats.get("notfound") == 3
    assert stats.total() == 4


def test_snapshot_is_an_immutable_copy():
    stats = StatsAggregator()
    stats.increment("live")
    snap = stats.snapshot()
    stats.increment("live")

    assert snap["live"] == 1
    assert stats.get("live") == 2
    with pytest.raises(TypeError):
        snap["live"] = 5


def test_concurrent_increments_are_not_lost():
    stats = StatsAggregator()
    threads_count, per_thread = 16, 2000
    barrier = threading.Barrier(threads_count)

    def hammer():
        barrier.wait()
        for _ in range(per_thread):
            stats.increment("notfound")

    threads = [threading.Thread(target=hammer) for _ in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert stats.get("notfound") == threads_count * per_thread
