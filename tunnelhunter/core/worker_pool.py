"""
Probe worker pool.

    generator --(candidate queue)--> N x ProbeWorker --(live queue)--> dispatcher

Each worker is optionally pinned to one egress address. Workers exit when
they receive the end-of-stream sentinel; the pool closes the live queue only
after every worker thread has returned, so nothing is ever sent after the
close marker.
"""

import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Sequence

from .models import Outcome, ProbeResult
from .stats import StatsAggregator

logger = logging.getLogger(__name__)


class ProbeWorker:
    """Consumes candidates, probes them and forwards live hits."""

    def __init__(self, index: int, prober, pool: "ProbeWorkerPool",
                 egress_address: Optional[str] = None):
        self.name = f"probe-{index}"
        self.logger = logging.getLogger(f"tunnelhunter.worker.{self.name}")
        self.prober = prober
        self.pool = pool
        self.egress_address = egress_address
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run_loop, name=f"tunnelhunter-{self.name}", daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None):
        if self._thread:
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _probe(self, candidate: str) -> ProbeResult:
        try:
            return self.prober.probe(candidate)
        except Exception as exc:
            # A broken probe must not take the worker (and its share of the
            # candidate stream) down with it.
            self.logger.exception(f"[{self.name}] Unexpected probe failure for {candidate}")
            return ProbeResult(candidate, Outcome.ERROR, error=str(exc))

    def _run_loop(self):
        pool = self.pool
        try:
            while True:
                candidate = pool.candidates.get()
                if candidate is pool.sentinel:
                    break

                result = self._probe(candidate)
                pool.stats.increment(result.outcome.value)

                if result.outcome is Outcome.ERROR:
                    self.logger.debug(f"[{self.name}] {candidate} gave up after "
                                      f"{result.attempts} attempt(s): {result.error}")
                elif result.is_live:
                    self.logger.warning(
                        f"Found a host that was up! {candidate} "
                        f"(status={result.status_code}, length={result.content_length})"
                    )
                    # Blocks while the dispatcher is busy.
                    pool.live_hits.put(candidate)
        finally:
            pool._worker_done()


class ProbeWorkerPool:
    """Runs ``threads`` workers per egress address (or ``threads`` in total)."""

    def __init__(self, prober_factory: Callable[[Optional[str]], object],
                 stats: StatsAggregator, candidates: "queue.Queue",
                 live_hits: "queue.Queue", sentinel: object, threads: int = 1,
                 egress_addresses: Optional[Sequence[Optional[str]]] = None):
        if threads < 1:
            raise ValueError("threads must be >= 1")
        self.stats = stats
        self.candidates = candidates
        self.live_hits = live_hits
        self.sentinel = sentinel

        addresses: List[Optional[str]] = list(egress_addresses or []) or [None]
        self.workers: List[ProbeWorker] = []
        for address in addresses:
            for _ in range(threads):
                index = len(self.workers)
                self.workers.append(ProbeWorker(index, prober_factory(address), self, address))

        self._remaining = len(self.workers)
        self._remaining_lock = threading.Lock()
        self._all_done = threading.Event()
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def size(self) -> int:
        return len(self.workers)

    @property
    def active(self) -> int:
        with self._remaining_lock:
            return self._remaining

    @property
    def closed(self) -> bool:
        return self._closed

    def _worker_done(self):
        with self._remaining_lock:
            self._remaining -= 1
            if self._remaining == 0:
                self._all_done.set()

    def start(self):
        started = time.monotonic()
        for worker in self.workers:
            worker.start()
        logger.info(f"Started {self.size} probe workers in {time.monotonic() - started:.2f}s")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until all workers have returned, then close the live queue.

        Returns False if ``timeout`` elapsed first; the live queue stays open
        in that case.
        """
        if not self._all_done.wait(timeout=timeout):
            return False
        for worker in self.workers:
            worker.join()
        self._close_live_hits()
        return True

    def _close_live_hits(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.live_hits.put(self.sentinel)
