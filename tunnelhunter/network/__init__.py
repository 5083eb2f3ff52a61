"""
Network module initialization.

This module provides egress address discovery and the HTTP prober.
"""

from .egress import is_egress_candidate, resolve_egress_addresses
from .prober import DEFAULT_SIGNATURES, HTTPProber, classify, load_signatures
