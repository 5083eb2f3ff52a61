"""
Core data models and structures for TunnelHunter.

This module contains the small value types passed between the pipeline
stages: probe outcomes, response signatures and render results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Outcome(Enum):
    """Classification of a single probe."""
    NOT_FOUND = "notfound"
    TUNNEL_DOWN = "tunneldown"
    EXPIRED = "expired"
    LIVE = "live"
    ERROR = "error"

    @property
    def is_negative(self) -> bool:
        return self in (Outcome.NOT_FOUND, Outcome.TUNNEL_DOWN, Outcome.EXPIRED)


class RenderStatus(Enum):
    """How a single render invocation ended."""
    OK = "rendered"
    TIMEOUT = "timeout"
    FAILED = "failed"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Signature:
    """A known negative response from the tunnel service.

    Every field that is set must match; unset fields are ignored.
    """
    outcome: Outcome
    status_code: Optional[int] = None
    content_length: Optional[int] = None
    body_contains: Optional[str] = None

    def matches(self, status_code: int, content_length: int, body: str = "") -> bool:
        if self.status_code is not None and status_code != self.status_code:
            return False
        if self.content_length is not None and content_length != self.content_length:
            return False
        if self.body_contains is not None and self.body_contains not in (body or ""):
            return False
        return True


@dataclass
class ProbeResult:
    """Outcome of one HTTP probe."""
    candidate: str
    outcome: Outcome
    status_code: Optional[int] = None
    content_length: int = -1
    error: str = ""
    attempts: int = 1

    @property
    def is_live(self) -> bool:
        return self.outcome is Outcome.LIVE


@dataclass
class RenderOutcome:
    """Result of running the external renderer for one live hit."""
    candidate: str
    target_url: str
    status: RenderStatus
    document: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is RenderStatus.OK

    @property
    def url(self) -> Optional[str]:
        return self.document.get("url")

    @property
    def filename(self) -> Optional[str]:
        return self.document.get("file") or self.document.get("filename")
