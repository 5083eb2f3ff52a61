"""
HTTP probing of candidate tunnel hostnames.

Each probe uses a fresh ``requests.Session`` so the source address chosen for
the connection is predictable, and the session is closed straight after so
no idle sockets pile up over billions of iterations.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
import urllib3
import yaml
from requests.adapters import HTTPAdapter

from ..core.errors import SignatureError
from ..core.models import Outcome, ProbeResult, Signature

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)

PROBE_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
BODY_SNIFF_BYTES = 4096

# Observed error pages of the tunnel service. These drift over time, which is
# why a YAML file can replace the table (see ``load_signatures``).
DEFAULT_SIGNATURES: List[Signature] = [
    Signature(Outcome.NOT_FOUND, status_code=404, content_length=34),
    Signature(Outcome.TUNNEL_DOWN, status_code=502, content_length=1590),
    Signature(Outcome.EXPIRED, body_contains="This tunnel expired "),
]

_SIGNATURE_KEYS = {"label", "status", "length", "body_contains"}


def classify(status_code: int, content_length: int, signatures: Sequence[Signature],
             body: str = "") -> Outcome:
    """Map a response onto an outcome; anything unrecognised is live."""
    for signature in signatures:
        if signature.matches(status_code, content_length, body):
            return signature.outcome
    return Outcome.LIVE


def parse_signatures(document: Any) -> List[Signature]:
    """Build a signature table from a parsed YAML document."""
    if not isinstance(document, dict) or not isinstance(document.get("signatures"), list):
        raise SignatureError("signature file must contain a 'signatures' list")

    signatures = []
    for index, entry in enumerate(document["signatures"]):
        if not isinstance(entry, dict):
            raise SignatureError(f"signature #{index} is not a mapping")
        unknown = set(entry) - _SIGNATURE_KEYS
        if unknown:
            raise SignatureError(f"signature #{index} has unknown keys: {sorted(unknown)}")
        try:
            outcome = Outcome(entry.get("label"))
        except ValueError:
            raise SignatureError(f"signature #{index} has unknown label {entry.get('label')!r}")
        if not outcome.is_negative:
            raise SignatureError(f"signature #{index} must describe a negative outcome, not {outcome.value}")
        try:
            signature = Signature(
                outcome,
                status_code=int(entry["status"]) if entry.get("status") is not None else None,
                content_length=int(entry["length"]) if entry.get("length") is not None else None,
                body_contains=str(entry["body_contains"]) if entry.get("body_contains") else None,
            )
        except (TypeError, ValueError) as e:
            raise SignatureError(f"signature #{index} is invalid: {e}")
        if signature.status_code is None and signature.content_length is None and signature.body_contains is None:
            raise SignatureError(f"signature #{index} matches every response")
        signatures.append(signature)
    return signatures


def load_signatures(path: Optional[str] = None) -> List[Signature]:
    """Load the classification table from ``path`` or return the defaults."""
    if not path:
        return list(DEFAULT_SIGNATURES)
    if not os.path.exists(path):
        raise SignatureError(f"signature file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise SignatureError(f"cannot read signature file {path}: {e}")
    signatures = parse_signatures(document)
    logger.info(f"Loaded {len(signatures)} response signatures from {path} "
                f"(version {document.get('version', 'unversioned')})")
    return signatures


class SourceAddressAdapter(HTTPAdapter):
    """HTTPAdapter that binds outgoing connections to one local address."""

    def __init__(self, source_address: str, **kwargs):
        self.source_address = source_address
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["source_address"] = (self.source_address, 0)
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


class HTTPProber:
    """Issues one lightweight request per candidate and classifies it."""

    def __init__(self, service_domain: str = "ngrok.io", scheme: str = "http", port: int = 80,
                 method: str = "HEAD", connect_timeout: float = 2.0, tls_timeout: float = 5.0,
                 retries: int = 1, signatures: Optional[Sequence[Signature]] = None,
                 egress_address: Optional[str] = None):
        self.service_domain = service_domain.strip(".")
        self.scheme = scheme
        self.port = port
        self.method = method.upper()
        # urllib3 applies the read timeout to the TLS handshake as well.
        self.timeout = (connect_timeout, tls_timeout)
        self.retries = retries
        self.signatures = list(signatures) if signatures is not None else list(DEFAULT_SIGNATURES)
        self.egress_address = egress_address

    def hostname(self, candidate: str) -> str:
        return f"{candidate}.{self.service_domain}"

    def url_for(self, candidate: str) -> str:
        default_port = 443 if self.scheme == "https" else 80
        port = "" if self.port == default_port else f":{self.port}"
        return f"{self.scheme}://{self.hostname(candidate)}{port}/"

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        # Proxies from the environment would bypass the source address binding.
        session.trust_env = False
        if self.egress_address:
            adapter = SourceAddressAdapter(self.egress_address, pool_connections=1, pool_maxsize=1, max_retries=0)
        else:
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=1, max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _request_once(self, candidate: str) -> ProbeResult:
        headers = {"User-Agent": PROBE_USER_AGENT, "Connection": "close"}
        with self._create_session() as session:
            response = session.request(
                self.method, self.url_for(candidate), headers=headers,
                timeout=self.timeout, allow_redirects=False, verify=False, stream=True,
            )
            try:
                body = ""
                if self.method == "GET":
                    chunk = next(response.iter_content(BODY_SNIFF_BYTES), b"")
                    body = chunk.decode("utf-8", errors="ignore")
                length = _content_length(response.headers)
                outcome = classify(response.status_code, length, self.signatures, body)
                return ProbeResult(candidate, outcome, response.status_code, length)
            finally:
                response.close()

    def probe(self, candidate: str) -> ProbeResult:
        """Probe ``candidate``, retrying network errors before giving up."""
        last_error = ""
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                result = self._request_once(candidate)
                result.attempts = attempt
                return result
            except requests.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.debug(f"Probe {candidate} attempt {attempt}/{attempts} failed: {last_error}")
        return ProbeResult(candidate, Outcome.ERROR, error=last_error, attempts=attempts)


def _content_length(headers) -> int:
    try:
        return int(headers.get("Content-Length", -1))
    except (TypeError, ValueError):
        return -1


def prober_factory(config, signatures: Sequence[Signature]) -> Callable[[Optional[str]], HTTPProber]:
    """Return a callable building one ``HTTPProber`` per worker from config."""
    settings: Dict[str, Any] = {
        "service_domain": config.get("service_domain"),
        "scheme": config.get("scheme"),
        "port": config.get("port"),
        "method": config.get("probe_method"),
        "connect_timeout": config.get("connect_timeout"),
        "tls_timeout": config.get("tls_timeout"),
        "retries": config.get("probe_retries"),
        "signatures": signatures,
    }

    def build(egress_address: Optional[str] = None) -> HTTPProber:
        return HTTPProber(egress_address=egress_address, **settings)

    return build
