"""
Core configuration management for TunnelHunter.

This module handles configuration loading, validation, and management
including environment variables, an optional env file and CLI overrides.
"""

import logging
import os
import re
import shlex
from typing import Any, Dict, List, Optional

from .generator import SPACE_SIZE


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ScannerConfig:
    """Central configuration manager for a scan run."""

    def __init__(self, env_file: Optional[str] = None):
        self.env_file = env_file or os.getenv("TUNNELHUNTER_ENV_FILE", "tunnelhunter.env")
        self._config: Dict[str, Any] = {}
        self._load_default_config()
        self._load_env_file()
        self._load_from_environment()

    def _load_default_config(self):
        """Load default configuration values."""
        runtime_dir = os.getenv("TUNNELHUNTER_RUNTIME_DIR", os.path.join(os.getcwd(), "runtime"))

        self._config = {
            # Enumeration
            "start": 0,
            "step": 1,
            "randomize": False,
            "limit": None,

            # Probe workers
            "threads": 1,
            "egress_enabled": True,
            "candidate_queue_size": 0,

            # Target service
            "service_domain": "ngrok.io",
            "scheme": "http",
            "port": 80,
            "probe_method": "HEAD",
            "connect_timeout": 2.0,
            "tls_timeout": 5.0,
            "probe_retries": 1,
            "signatures_file": "",

            # Renderer
            "render_enabled": True,
            "renderer_command": ["node", "./http-screenshotter.js"],
            "render_output_dir": os.path.join(runtime_dir, "images"),
            "render_timeout": 30.0,

            # Output
            "runtime_dir": runtime_dir,
            "status_interval": 1.0,
            "log_file": os.path.join(runtime_dir, "tunnelhunter.log"),
        }

    def _load_env_file(self):
        """Load configuration from environment file."""
        try:
            if not self.env_file or not os.path.exists(self.env_file):
                return

            with open(self.env_file, "r", encoding="utf-8") as f:
                for raw_line in f:
                    line = raw_line.strip()
                    if not line or line.startswith("#"):
                        continue

                    key = None
                    value = None

                    # Handle PowerShell environment files
                    if line.lower().startswith("$env:"):
                        m = re.match(r"^\$env:([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.+)$", line)
                        if m:
                            key = m.group(1).strip()
                            value = m.group(2).strip()
                    elif "=" in line:
                        left, right = line.split("=", 1)
                        key = left.strip()
                        value = right.strip()

                    if key and value is not None:
                        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                            value = value[1:-1]
                        os.environ.setdefault(key, value)
        except OSError as e:
            logging.getLogger(__name__).warning(f"Failed to load env file: {e}")

    def _load_from_environment(self):
        """Override configuration with environment variables."""
        env_mappings = {
            "TUNNELHUNTER_START": ("start", int),
            "TUNNELHUNTER_STEP": ("step", int),
            "TUNNELHUNTER_RANDOM": ("randomize", _as_bool),
            "TUNNELHUNTER_LIMIT": ("limit", int),
            "TUNNELHUNTER_THREADS": ("threads", int),
            "TUNNELHUNTER_EGRESS": ("egress_enabled", _as_bool),
            "TUNNELHUNTER_QUEUE_SIZE": ("candidate_queue_size", int),
            "TUNNELHUNTER_DOMAIN": ("service_domain", str),
            "TUNNELHUNTER_SCHEME": ("scheme", lambda x: x.strip().lower()),
            "TUNNELHUNTER_PORT": ("port", int),
            "TUNNELHUNTER_PROBE_METHOD": ("probe_method", lambda x: x.strip().upper()),
            "TUNNELHUNTER_CONNECT_TIMEOUT": ("connect_timeout", float),
            "TUNNELHUNTER_TLS_TIMEOUT": ("tls_timeout", float),
            "TUNNELHUNTER_PROBE_RETRIES": ("probe_retries", int),
            "TUNNELHUNTER_SIGNATURES_FILE": ("signatures_file", str),
            "TUNNELHUNTER_RENDER": ("render_enabled", _as_bool),
            "TUNNELHUNTER_RENDERER": ("renderer_command", shlex.split),
            "TUNNELHUNTER_IMAGES_DIR": ("render_output_dir", str),
            "TUNNELHUNTER_RENDER_TIMEOUT": ("render_timeout", float),
            "TUNNELHUNTER_STATUS_INTERVAL": ("status_interval", float),
            "TUNNELHUNTER_LOG_FILE": ("log_file", str),
        }

        for env_key, (config_key, converter) in env_mappings.items():
            if env_key in os.environ:
                try:
                    self._config[config_key] = converter(os.environ[env_key])
                except (ValueError, TypeError):
                    logging.getLogger(__name__).warning(
                        f"Invalid value for {env_key}: {os.environ[env_key]}"
                    )

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value."""
        self._config[key] = value

    def update(self, config_dict: Dict[str, Any]):
        """Update multiple configuration values, skipping ``None`` overrides."""
        self._config.update({k: v for k, v in config_dict.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary."""
        return self._config.copy()

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        int_fields = [
            ("start", 0, SPACE_SIZE - 1),
            ("step", 1, SPACE_SIZE - 1),
            ("threads", 1, 1024),
            ("probe_retries", 0, 10),
            ("port", 1, 65535),
            ("candidate_queue_size", 0, 1_000_000),
        ]
        for name, min_val, max_val in int_fields:
            value = self.get(name)
            if isinstance(value, bool) or not isinstance(value, int) or value < min_val or value > max_val:
                errors.append(f"{name} must be between {min_val} and {max_val}")

        for name in ("connect_timeout", "tls_timeout", "render_timeout", "status_interval"):
            value = self.get(name)
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{name} must be a positive number")

        limit = self.get("limit")
        if limit is not None and (not isinstance(limit, int) or limit < 0):
            errors.append("limit must be a non-negative integer")

        if self.get("probe_method") not in ("HEAD", "GET"):
            errors.append("probe_method must be HEAD or GET")
        if self.get("scheme") not in ("http", "https"):
            errors.append("scheme must be http or https")
        if not str(self.get("service_domain") or "").strip("."):
            errors.append("service_domain must not be empty")
        if self.get("render_enabled") and not self.get("renderer_command"):
            errors.append("renderer_command must not be empty when rendering is enabled")

        return errors
