import requests
import pytest

from tunnelhunter.core.config import ScannerConfig
from tunnelhunter.core.models import Outcome
from tunnelhunter.network.prober import (
    DEFAULT_SIGNATURES,
    HTTPProber,
    SourceAddressAdapter,
    prober_factory,
)


class FakeResponse:
    def __init__(self, status_code, headers=None, body=b""):
        self.status_code = status_code
        self.headers = headers or {}
        self.body = body
        self.closed = False

    def iter_content(self, chunk_size):
        yield self.body[:chunk_size]

    def close(self):
        self.closed = True


@pytest.fixture
def recorder(monkeypatch):
    calls = {"requests": [], "closed_sessions": 0, "responses": []}
    real_close = requests.Session.close

    def fake_close(self):
        calls["closed_sessions"] += 1
        real_close(self)

    monkeypatch.setattr(requests.Session, "close", fake_close)
    return calls


def _install(monkeypatch, recorder, outcomes):
    outcomes = list(outcomes)

    def fake_request(self, method, url, **kwargs):
        recorder["requests"].append((method, url, kwargs))
        item = outcomes.pop(0)
        if isinstance(item, Exception):
            raise item
        recorder["responses"].append(item)
        return item

    monkeypatch.setattr(requests.Session, "request", fake_request)


def test_head_probe_classifies_not_found(monkeypatch, recorder):
    _install(monkeypatch, recorder, [FakeResponse(404, {"Content-Length": "34"})])
    result = HTTPProber().probe("0000abcd")

    assert result.outcome is Outcome.NOT_FOUND
    assert result.status_code == 404
    assert result.content_length == 34
    method, url, kwargs = recorder["requests"][0]
    assert method == "HEAD"
    assert url == "http://0000abcd.ngrok.io/"
    assert kwargs["timeout"] == (2.0, 5.0)
    assert kwargs["allow_redirects"] is False
    assert kwargs["headers"]["Connection"] == "close"
    assert recorder["responses"][0].closed
    assert recorder["closed_sessions"] == 1


def test_unknown_response_is_live(monkeypatch, recorder):
    _install(monkeypatch, recorder, [FakeResponse(200, {"Content-Length": "500"})])
    result = HTTPProber().probe("00000001")
    assert result.is_live
    assert result.content_length == 500


def test_missing_content_length_is_minus_one(monkeypatch, recorder):
    _install(monkeypatch, recorder, [FakeResponse(200, {})])
    assert HTTPProber().probe("00000001").content_length == -1


def test_get_probe_reads_body_for_expired_marker(monkeypatch, recorder):
    page = b"<h1>This tunnel expired 2 days ago</h1>"
    _install(monkeypatch, recorder, [FakeResponse(200, {"Content-Length": str(len(page))}, page)])
    result = HTTPProber(method="GET").probe("00000002")
    assert result.outcome is Outcome.EXPIRED
    assert recorder["requests"][0][0] == "GET"


def test_network_error_is_retried_then_classified(monkeypatch, recorder):
    _install(monkeypatch, recorder, [
        requests.ConnectTimeout("slow"),
        requests.ConnectionError("refused"),
    ])
    result = HTTPProber(retries=1).probe("00000003")

    assert result.outcome is Outcome.ERROR
    assert result.attempts == 2
    assert "ConnectionError" in result.error
    assert recorder["closed_sessions"] == 2


def test_retry_recovers(monkeypatch, recorder):
    _install(monkeypatch, recorder, [
        requests.ConnectionError("reset"),
        FakeResponse(502, {"Content-Length": "1590"}),
    ])
    result = HTTPProber(retries=2).probe("00000004")
    assert result.outcome is Outcome.TUNNEL_DOWN
    assert result.attempts == 2


def test_url_includes_non_default_port():
    prober = HTTPProber(service_domain="tunnel.example.", scheme="https", port=8443)
    assert prober.url_for("deadbeef") == "https://deadbeef.tunnel.example:8443/"
    assert HTTPProber(scheme="https", port=443).url_for("deadbeef") == "https://deadbeef.ngrok.io/"


def test_source_address_adapter_binds_pool():
    adapter = SourceAddressAdapter("203.0.113.9")
    assert adapter.poolmanager.connection_pool_kw["source_address"] == ("203.0.113.9", 0)


def test_egress_prober_mounts_bound_adapter():
    session = HTTPProber(egress_address="203.0.113.9")._create_session()
    try:
        assert isinstance(session.get_adapter("http://x.ngrok.io/"), SourceAddressAdapter)
    finally:
        session.close()


def test_factory_uses_config(monkeypatch):
    monkeypatch.setenv("TUNNELHUNTER_DOMAIN", "tunnels.test")
    monkeypatch.setenv("TUNNELHUNTER_PROBE_RETRIES", "3")
    config = ScannerConfig(env_file="")
    build = prober_factory(config, DEFAULT_SIGNATURES)

    prober = build("198.51.100.1")
    assert prober.egress_address == "198.51.100.1"
    assert prober.retries == 3
    assert prober.hostname("00000000") == "00000000.tunnels.test"
    assert build(None).egress_address is None


def test_session_ignores_environment_proxies(monkeypatch):
    monkeypatch.setenv("HTTP_PROXY", "http://proxy.invalid:3128")
    monkeypatch.setenv("HTTPS_PROXY", "http://proxy.invalid:3128")
    session = HTTPProber(egress_address="203.0.113.9")._create_session()
    try:
        assert session.trust_env is False
        settings = session.merge_environment_settings("http://x.ngrok.io/", {}, None, None, None)
        assert not settings["proxies"]
    finally:
        session.close()
