"""
Snapshot rendering of live hits.

The renderer is an external program called as
``<command...> <output-dir> <scheme> <host> <port>`` which prints one JSON
object (``url``, ``file`` and usually ``hash``) on success. Every invocation
runs under a hard deadline; the process group is killed if it overruns.
"""

import json
import logging
import os
import queue
import signal
import subprocess
import sys
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..core.models import RenderOutcome, RenderStatus
from ..core.stats import StatsAggregator

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"


def _parse_document(stdout: bytes) -> Optional[Dict[str, Any]]:
    """Decode renderer output; tolerates log noise before the final JSON line."""
    text = stdout.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    candidates = [text]
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) > 1:
        candidates.append(lines[-1])
    for chunk in candidates:
        try:
            document = json.loads(chunk)
        except ValueError:
            continue
        if isinstance(document, dict):
            return document
    return None


def _is_complete(document: Dict[str, Any]) -> bool:
    return bool(document.get("url")) and bool(document.get("file") or document.get("filename"))


class SubprocessRenderer:
    """Runs the external screenshot tool for one host at a time."""

    def __init__(self, command: Sequence[str], output_dir: str, timeout: float = 30.0,
                 service_domain: str = "ngrok.io", scheme: str = "http", port: int = 80):
        if not command:
            raise ValueError("renderer command must not be empty")
        self.command = list(command)
        self.output_dir = output_dir
        self.timeout = timeout
        self.service_domain = service_domain.strip(".")
        self.scheme = scheme
        self.port = port

    def hostname(self, candidate: str) -> str:
        return f"{candidate}.{self.service_domain}"

    def target_url(self, candidate: str) -> str:
        default_port = 443 if self.scheme == "https" else 80
        port = "" if self.port == default_port else f":{self.port}"
        return f"{self.scheme}://{self.hostname(candidate)}{port}/"

    def argv(self, candidate: str) -> List[str]:
        return self.command + [self.output_dir, self.scheme, self.hostname(candidate), str(self.port)]

    def _kill(self, process: subprocess.Popen):
        """Forcefully end the renderer and anything it spawned, then reap it."""
        if process.poll() is None:
            try:
                if _POSIX:
                    os.killpg(process.pid, signal.SIGKILL)
                else:
                    process.kill()
            except (ProcessLookupError, PermissionError):
                process.kill()
        try:
            process.communicate(timeout=2)
        except subprocess.TimeoutExpired:
            # A stray grandchild still holds the pipes open; stop reading.
            for stream in (process.stdout, process.stderr):
                if stream:
                    stream.close()
            process.wait(timeout=1)

    def render(self, candidate: str) -> RenderOutcome:
        url = self.target_url(candidate)
        started = time.monotonic()

        def outcome(status: RenderStatus, error: str = "", document=None) -> RenderOutcome:
            return RenderOutcome(candidate, url, status, document or {}, error,
                                 time.monotonic() - started)

        try:
            process = subprocess.Popen(
                self.argv(candidate),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=_POSIX,
                creationflags=subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0,
            )
        except OSError as e:
            return outcome(RenderStatus.FAILED, f"launch failed: {e}")

        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            self._kill(process)
            return outcome(RenderStatus.TIMEOUT, f"no result after {self.timeout:.0f}s")
        finally:
            if process.poll() is None:
                self._kill(process)

        if process.returncode != 0:
            detail = (stderr or b"").decode("utf-8", errors="replace").strip().splitlines()
            reason = detail[-1] if detail else ""
            return outcome(RenderStatus.FAILED, f"exit status {process.returncode} {reason}".strip())

        document = _parse_document(stdout or b"")
        if document is None or not _is_complete(document):
            return outcome(RenderStatus.MALFORMED, "invalid JSON returned from renderer")
        return outcome(RenderStatus.OK, document=document)


class RenderDispatcher:
    """Single consumer of the live-hit queue."""

    def __init__(self, renderer, live_hits: "queue.Queue", sentinel: object,
                 stats: Optional[StatsAggregator] = None,
                 stop_event: Optional[threading.Event] = None,
                 on_outcome: Optional[Callable[[RenderOutcome], None]] = None):
        self.renderer = renderer
        self.live_hits = live_hits
        self.sentinel = sentinel
        self.stats = stats or StatsAggregator([s.value for s in RenderStatus])
        self._stop = stop_event or threading.Event()
        self.on_outcome = on_outcome
        self.received = 0
        self.skipped = 0
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def start(self):
        self._thread = threading.Thread(
            target=self._run, name="tunnelhunter-render", daemon=True
        )
        self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout=timeout)

    def _handle(self, candidate: str):
        if self.renderer is None:
            return
        if self._stop.is_set():
            self.skipped += 1
            logger.info(f"Shutdown requested, not rendering {candidate}")
            return

        logger.info(f"Rendering {candidate}")
        try:
            result = self.renderer.render(candidate)
        except Exception as exc:
            logger.exception(f"Renderer crashed on {candidate}")
            result = RenderOutcome(candidate, "", RenderStatus.FAILED, error=str(exc))

        self.stats.increment(result.status.value)
        if result.ok:
            logger.info(f"Snapshot saved for {result.url}: {result.filename}")
        elif result.status is RenderStatus.TIMEOUT:
            logger.warning(f"Killed stalled renderer for {candidate}: {result.error}")
        else:
            logger.warning(f"No snapshot taken for {candidate}: {result.error}")

        if self.on_outcome:
            self.on_outcome(result)

    def _run(self):
        try:
            while True:
                candidate = self.live_hits.get()
                if candidate is self.sentinel:
                    break
                self.received += 1
                self._handle(candidate)
        finally:
            self._done.set()
