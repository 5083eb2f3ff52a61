"""
Single-line live progress display.

Once per interval the reporter snapshots the probe counters, derives the
request rate from the change in total, and redraws one carriage-return
line on stderr.
"""

import logging
import shutil
import sys
import threading
import time
from typing import Mapping, Optional, TextIO

from ..core.models import Outcome
from ..core.stats import StatsAggregator

logger = logging.getLogger(__name__)

HEADER = " Not Found | Tunnel Down | Expired | Live  | Error | -- Speed -- "


def _safe_write(stream, text: str):
    """Write text to stream, replacing unencodable chars."""
    try:
        stream.write(text)
        stream.flush()
    except UnicodeEncodeError:
        stream.write(text.encode("ascii", errors="replace").decode("ascii"))
        stream.flush()


def probe_total(snapshot: Mapping[str, int]) -> int:
    return sum(snapshot.values())


def render_line(snapshot: Mapping[str, int], rate: int,
                renders: Optional[Mapping[str, int]] = None, color: bool = True) -> str:
    """Format the status line (without the leading carriage return)."""
    live = snapshot.get(Outcome.LIVE.value, 0)
    live_field = f"{live:05d}"
    if color and live:
        live_field = f"\033[33m{live_field}\033[0m"
    line = (
        f" {snapshot.get(Outcome.NOT_FOUND.value, 0):09d} | "
        f"{snapshot.get(Outcome.TUNNEL_DOWN.value, 0):011d} | "
        f"{snapshot.get(Outcome.EXPIRED.value, 0):07d} | "
        f"{live_field} | "
        f"{snapshot.get(Outcome.ERROR.value, 0):05d} | "
        f"-- {rate}r/s --"
    )
    if renders:
        shots = renders.get("rendered", 0)
        failed = sum(v for k, v in renders.items() if k != "rendered")
        line += f" shots:{shots}/{shots + failed}"
    return line


class StatusReporter:
    """Background thread redrawing the status line at a fixed cadence."""

    def __init__(self, stats: StatsAggregator, interval: float = 1.0,
                 render_stats: Optional[StatsAggregator] = None,
                 stream: Optional[TextIO] = None, color: bool = True):
        self.stats = stats
        self.render_stats = render_stats
        self.interval = interval
        self.stream = stream or sys.stderr
        self.color = color
        self._previous_total = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        _safe_write(self.stream, HEADER + "\n")
        self._thread = threading.Thread(target=self._loop, daemon=True, name="tunnelhunter-status")
        self._thread.start()

    def stop(self):
        """Draw a final line and end the thread."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.interval + 1)
        self.tick()
        _safe_write(self.stream, "\n")

    def tick(self) -> str:
        """Take one snapshot and redraw; returns the rendered line."""
        snapshot = self.stats.snapshot()
        total = probe_total(snapshot)
        rate = total - self._previous_total
        self._previous_total = total
        renders = self.render_stats.snapshot() if self.render_stats else None
        line = render_line(snapshot, rate, renders, color=self.color)

        cols = shutil.get_terminal_size((120, 24)).columns
        pad = max(0, cols - len(line) - 2)
        _safe_write(self.stream, "\r" + line + " " * pad)
        return line

    def _loop(self):
        next_tick = time.monotonic()
        while not self._stop.is_set():
            try:
                self.tick()
            except (OSError, ValueError) as exc:
                logger.debug(f"Status redraw failed: {exc}")
            next_tick += self.interval
            self._stop.wait(max(0.0, next_tick - time.monotonic()))
