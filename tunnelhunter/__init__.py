"""
TunnelHunter - tunnel hostname enumeration and snapshot pipeline.

Walks the 32-bit space of short hex tunnel identifiers, probes each as a
subdomain of the tunnel service, and hands live hosts to an external
screenshot renderer.
"""

__version__ = "1.0.0"
__author__ = "TunnelHunter Project"

from .core.config import ScannerConfig
from .core.models import Outcome, ProbeResult, RenderOutcome, RenderStatus
from .core.stats import StatsAggregator
from .orchestrator import ScanOrchestrator, ScanSummary

__all__ = [
    "ScannerConfig",
    "Outcome",
    "ProbeResult",
    "RenderOutcome",
    "RenderStatus",
    "StatsAggregator",
    "ScanOrchestrator",
    "ScanSummary",
]
