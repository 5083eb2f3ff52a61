"""
Candidate identifier generation.

Candidates are 32-bit integers rendered as eight lowercase hex digits. A run
walks ``start, start + step, start + 2*step, ...`` modulo 2**32 until one full
pass is done, so independent runs with the same ``step`` and distinct
``start`` offsets partition the space without overlap.
"""

import logging
import queue
import random
import re
import threading
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

SPACE_SIZE = 1 << 32
CANDIDATE_WIDTH = 8
_CANDIDATE_RE = re.compile(r"[0-9a-f]{8}")


def format_candidate(value: int) -> str:
    """Render an integer in [0, 2**32) as an 8-digit hex identifier."""
    if not 0 <= value < SPACE_SIZE:
        raise ValueError(f"candidate out of range: {value}")
    return f"{value:08x}"


def parse_candidate(candidate: str) -> int:
    """Inverse of ``format_candidate``."""
    if not _CANDIDATE_RE.fullmatch(candidate):
        raise ValueError(f"candidate must be {CANDIDATE_WIDTH} hex digits: {candidate!r}")
    return int(candidate, 16)


def pass_length(step: int) -> int:
    """Number of candidates in one stride-partitioned pass."""
    if step < 1:
        raise ValueError("step must be >= 1")
    return -(-SPACE_SIZE // step)


def random_start() -> int:
    return random.randrange(SPACE_SIZE)


def generate(start: int = 0, step: int = 1, limit: Optional[int] = None) -> Iterator[str]:
    """Lazily yield candidates for one pass over the space.

    ``limit`` caps the number of candidates and is mostly useful for tests and
    short sample runs.
    """
    count = pass_length(step)
    if limit is not None:
        count = min(count, limit)
    base = start % SPACE_SIZE
    for i in range(count):
        yield format_candidate((base + i * step) % SPACE_SIZE)


class CandidateProducer:
    """Feeds candidates into the shared queue from its own thread.

    After the last candidate (or once the stop event is set) it enqueues one
    end-of-stream sentinel per consumer.
    """

    def __init__(self, candidates: Iterator[str], out_queue: "queue.Queue",
                 consumers: int, sentinel: object, stop_event: threading.Event):
        self.candidates = candidates
        self.out_queue = out_queue
        self.consumers = consumers
        self.sentinel = sentinel
        self._stop = stop_event
        self._thread: Optional[threading.Thread] = None
        self.produced = 0

    def start(self):
        self._thread = threading.Thread(
            target=self._run, name="tunnelhunter-generator", daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None):
        if self._thread:
            self._thread.join(timeout=timeout)

    def _put(self, item) -> bool:
        # Poll so a stop request is noticed while blocked on a full queue.
        while not self._stop.is_set():
            try:
                self.out_queue.put(item, timeout=0.25)
                return True
            except queue.Full:
                continue
        return False

    def _run(self):
        try:
            for candidate in self.candidates:
                if not self._put(candidate):
                    logger.info(f"Generation stopped early after {self.produced} candidates")
                    break
                self.produced += 1
            else:
                logger.info(f"Host creation complete ({self.produced} candidates)")
        finally:
            for _ in range(self.consumers):
                # Sentinels always go through, even after a stop request.
                self.out_queue.put(self.sentinel)
