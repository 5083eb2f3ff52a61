import queue
import threading

import pytest

from tunnelhunter.core import generator
from tunnelhunter.core.generator import (
    SPACE_SIZE,
    CandidateProducer,
    format_candidate,
    generate,
    parse_candidate,
    pass_length,
)


@pytest.mark.parametrize("value", [0, 1, 0xABCDEF, 0x7FFFFFFF, SPACE_SIZE - 1])
def test_format_parse_round_trip(value):
    text = format_candidate(value)
    assert len(text) == 8
    assert text == text.lower()
    assert parse_candidate(text) == value


def test_format_zero_pads():
    assert format_candidate(1) == "00000001"
    assert format_candidate(0xDEADBEEF) == "deadbeef"


@pytest.mark.parametrize("value", [-1, SPACE_SIZE])
def test_format_rejects_out_of_range(value):
    with pytest.raises(ValueError):
        format_candidate(value)


@pytest.mark.parametrize("text", [
    "0x123456", "+1234567", "1_234567", " 1234567", "DEADBEEF", "1234567", "123456789", "0000000g",
])
def test_parse_rejects_non_canonical(text):
    with pytest.raises(ValueError):
        parse_candidate(text)


@pytest.mark.parametrize("step,expected", [
    (1, SPACE_SIZE),
    (2, SPACE_SIZE // 2),
    (3, 1431655766),
    (SPACE_SIZE - 1, 2),
])
def test_pass_length_is_ceiling(step, expected):
    assert pass_length(step) == expected


def test_pass_length_rejects_zero_step():
    with pytest.raises(ValueError):
        pass_length(0)


def test_generate_sequential():
    assert list(generate(0, 1, limit=3)) == ["00000000", "00000001", "00000002"]


def test_generate_wraps_modulo_space():
    values = list(generate(SPACE_SIZE - 2, 1, limit=4))
    assert values == ["fffffffe", "ffffffff", "00000000", "00000001"]


def test_generate_stride_with_offset():
    assert list(generate(5, 16, limit=3)) == ["00000005", "00000015", "00000025"]


def test_full_pass_is_distinct_for_large_stride(monkeypatch):
    # Shrink the space so a complete pass can be checked exhaustively.
    monkeypatch.setattr(generator, "SPACE_SIZE", 1000)
    for step in (1, 3, 7, 999):
        for start in (0, 17, 998):
            values = [parse_candidate(c) for c in generate(start, step)]
            assert len(values) == -(-1000 // step)
            assert len(set(values)) == len(values)
            assert all(0 <= v < 1000 for v in values)


def test_partitioned_runs_do_not_overlap(monkeypatch):
    monkeypatch.setattr(generator, "SPACE_SIZE", 64)
    step = 4
    seen = []
    for run in range(step):
        seen.extend(generate(run, step))
    assert sorted(parse_candidate(c) for c in seen) == list(range(64))


def test_producer_sends_one_sentinel_per_consumer():
    out = queue.Queue()
    sentinel = object()
    producer = CandidateProducer(iter(["a", "b"]), out, 3, sentinel, threading.Event())
    producer.start()
    producer.join(timeout=5)

    items = [out.get_nowait() for _ in range(out.qsize())]
    assert items[:2] == ["a", "b"]
    assert items[2:] == [sentinel] * 3
    assert producer.produced == 2


def test_producer_stops_early_on_stop_event():
    out = queue.Queue(maxsize=1)
    sentinel = object()
    stop = threading.Event()
    producer = CandidateProducer(generate(0, 1), out, 1, sentinel, stop)
    producer.start()
    assert out.get(timeout=5) == "00000000"
    stop.set()

    drained = []
    while True:
        item = out.get(timeout=5)
        if item is sentinel:
            break
        drained.append(item)
    producer.join(timeout=5)
    assert producer.produced <= 3
    assert len(drained) <= 2
