"""
Core module initialization.

This module provides access to core functionality including
configuration, models, candidate generation and the probe worker pool.
"""

from .config import ScannerConfig
from .errors import ConfigError, EgressDiscoveryError, SignatureError, TunnelHunterError
from .generator import format_candidate, generate, parse_candidate, pass_length
from .models import Outcome, ProbeResult, RenderOutcome, RenderStatus, Signature
from .stats import StatsAggregator
from .worker_pool import ProbeWorkerPool

__all__ = [
    "ScannerConfig",
    "ConfigError",
    "EgressDiscoveryError",
    "SignatureError",
    "TunnelHunterError",
    "format_candidate",
    "generate",
    "parse_candidate",
    "pass_length",
    "Outcome",
    "ProbeResult",
    "RenderOutcome",
    "RenderStatus",
    "Signature",
    "StatsAggregator",
    "ProbeWorkerPool",
]
