"""
Scan orchestrator - wires the enumeration pipeline together.

Shutdown runs front to back: the generator ends the candidate stream, the
workers drain and return, the pool closes the live-hit queue, and the
dispatcher finishes the renders still queued.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, TextIO

from .core.config import ScannerConfig
from .core.errors import ConfigError
from .core.generator import CandidateProducer, generate, pass_length, random_start
from .core.models import Outcome, RenderStatus
from .core.stats import StatsAggregator
from .core.utils import ensure_directory
from .core.worker_pool import ProbeWorkerPool
from .network.egress import resolve_egress_addresses
from .network.prober import load_signatures, prober_factory
from .render.dispatcher import RenderDispatcher, SubprocessRenderer
from .ui.status import StatusReporter

# Marks end-of-stream on both pipeline queues.
END_OF_STREAM = object()


@dataclass
class ScanSummary:
    """Final figures of a finished run."""
    start: int
    step: int
    workers: int
    produced: int
    probes: Dict[str, int] = field(default_factory=dict)
    renders: Dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0
    interrupted: bool = False

    @property
    def total_probes(self) -> int:
        return sum(self.probes.values())


class ScanOrchestrator:
    """Runs one pass over the candidate space.

    ``prober_factory``, ``renderer`` and ``egress_addresses`` are resolved from
    the config when not supplied.
    """

    def __init__(self, config: ScannerConfig,
                 prober_factory: Optional[Callable[[Optional[str]], object]] = None,
                 renderer=None,
                 egress_addresses: Optional[Sequence[str]] = None,
                 stop_event: Optional[threading.Event] = None,
                 status_stream: Optional[TextIO] = None,
                 candidates: Optional[Sequence[str]] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.stop_event = stop_event or threading.Event()
        self.status_stream = status_stream
        self._prober_factory = prober_factory
        self._renderer = renderer
        self._egress = egress_addresses
        self._candidates = candidates

        self.probe_stats = StatsAggregator([o.value for o in Outcome])
        self.render_stats = StatsAggregator([s.value for s in RenderStatus])

    # -- setup --

    def _resolve_start(self) -> int:
        if self.config.get("randomize"):
            self.config.set("start", random_start())
        return int(self.config.get("start"))

    def _resolve_egress(self) -> List[str]:
        if self._egress is not None:
            return list(self._egress)
        if not self.config.get("egress_enabled"):
            return []
        addresses = resolve_egress_addresses()
        if addresses:
            self.logger.info(f"Using {len(addresses)} egress address(es): {', '.join(addresses)}")
        else:
            self.logger.info("No public egress addresses found, using the default route")
        return addresses

    def _build_prober_factory(self):
        if self._prober_factory is not None:
            return self._prober_factory
        signatures = load_signatures(self.config.get("signatures_file"))
        return prober_factory(self.config, signatures)

    def _build_renderer(self):
        if self._renderer is not None or not self.config.get("render_enabled"):
            return self._renderer
        try:
            output_dir = ensure_directory(self.config.get("render_output_dir"))
        except OSError as e:
            raise ConfigError(f"Cannot create render output directory: {e}") from e
        return SubprocessRenderer(
            self.config.get("renderer_command"),
            output_dir,
            timeout=self.config.get("render_timeout"),
            service_domain=self.config.get("service_domain"),
            scheme=self.config.get("scheme"),
            port=self.config.get("port"),
        )

    # -- run --

    def run(self) -> ScanSummary:
        started = time.monotonic()
        start = self._resolve_start()
        step = int(self.config.get("step"))
        threads = int(self.config.get("threads"))
        egress = self._resolve_egress()
        factory = self._build_prober_factory()
        renderer = self._build_renderer()

        if self._candidates is not None:
            candidates = iter(self._candidates)
            planned = len(self._candidates)
        else:
            limit = self.config.get("limit")
            candidates = generate(start, step, limit)
            planned = min(pass_length(step), limit) if limit is not None else pass_length(step)
        self.logger.info(f"Beginning scan from {start} (step {step}, {planned} candidates)")

        workers = threads * max(1, len(egress))
        queue_size = int(self.config.get("candidate_queue_size") or 0) or workers
        candidate_queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        live_queue: "queue.Queue" = queue.Queue(maxsize=1)

        pool = ProbeWorkerPool(
            factory, self.probe_stats, candidate_queue, live_queue, END_OF_STREAM,
            threads=threads, egress_addresses=egress,
        )
        producer = CandidateProducer(candidates, candidate_queue, pool.size, END_OF_STREAM, self.stop_event)
        dispatcher = RenderDispatcher(renderer, live_queue, END_OF_STREAM,
                                      stats=self.render_stats, stop_event=self.stop_event)
        reporter = None
        if self.status_stream is not None:
            reporter = StatusReporter(self.probe_stats, self.config.get("status_interval"),
                                      render_stats=self.render_stats, stream=self.status_stream)
            reporter.start()

        dispatcher.start()
        pool.start()
        producer.start()

        try:
            pool.wait()
            self.logger.info("All hosts processed, waiting for renders to complete...")
            dispatcher.wait()
            producer.join()
        finally:
            if reporter:
                reporter.stop()

        summary = ScanSummary(
            start=start,
            step=step,
            workers=pool.size,
            produced=producer.produced,
            probes=dict(self.probe_stats.snapshot()),
            renders=dict(self.render_stats.snapshot()),
            elapsed=time.monotonic() - started,
            interrupted=self.stop_event.is_set(),
        )
        self.logger.info(
            f"Scan finished in {summary.elapsed:.1f}s: {summary.total_probes} probes "
            f"{summary.probes}, renders {summary.renders}"
        )
        return summary
