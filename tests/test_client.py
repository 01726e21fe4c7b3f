"""
Tests for harvester/client.py and utils/http.py

Covers the bearer credential, status handling, transport error wrapping and
the streaming fetch, all against the in-memory FakeSession.
"""
import sys
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import DATASET_URL, ROOT, FakeResponse, FakeSession, results_page
from harvester.client import CedaClient
from harvester.errors import ConfigError, FetchError
from utils.http import DEFAULT_HEADERS, SessionManager


# ── Construction ──────────────────────────────────────────────────────────────

class TestConstruction:
    def test_bearer_header_on_injected_session(self):
        session = FakeSession()
        CedaClient("abc123", session=session)
        assert session.headers["Authorization"] == "Bearer abc123"

    def test_bearer_header_on_managed_session(self):
        client = CedaClient("abc123")
        try:
            assert client.session.headers["Authorization"] == "Bearer abc123"
            assert client.session.headers["User-Agent"] == DEFAULT_HEADERS["User-Agent"]
        finally:
            client.close()

    def test_empty_token_rejected(self):
        with pytest.raises(ConfigError):
            CedaClient("", session=FakeSession())

    def test_empty_version_rejected(self):
        with pytest.raises(ConfigError):
            CedaClient("abc123", "", session=FakeSession())

    def test_repr_masks_token(self):
        client = CedaClient("super-secret", session=FakeSession())
        assert "super-secret" not in repr(client)
        assert "***" in repr(client)


# ── URLs ──────────────────────────────────────────────────────────────────────

class TestUrls:
    def test_dataset_url(self, make_client):
        assert make_client().dataset_url == DATASET_URL

    def test_dataset_url_default_root(self):
        client = CedaClient("t", "202308", session=FakeSession())
        assert client.dataset_url == (
            "https://data.ceda.ac.uk/badc/ukmo-midas-open/data/"
            "uk-hourly-weather-obs/dataset-version-202308/")

    def test_url_for_relative_link(self, make_client):
        assert make_client().url_for("/badc/x/y.csv") == f"{ROOT}/badc/x/y.csv"

    def test_url_for_keeps_query(self, make_client):
        assert make_client().url_for("/badc/y.csv?download=1") == f"{ROOT}/badc/y.csv?download=1"

    def test_url_for_absolute_link(self, make_client):
        assert make_client().url_for("https://other.test/a") == "https://other.test/a"


# ── fetch_document ────────────────────────────────────────────────────────────

class TestFetchDocument:
    def test_parses_html(self, make_client):
        url = f"{ROOT}/page"
        client = make_client({url: results_page(("/badc/a", "A"))})
        doc = client.fetch_document(url)
        assert doc.select_one("#results a")["href"] == "/badc/a"

    def test_passes_timeout(self, make_client):
        url = f"{ROOT}/page"
        session = FakeSession({url: "<html></html>"})
        client = make_client(session, timeout=7)
        client.fetch_document(url)
        _, kwargs = session.calls[0]
        assert kwargs["timeout"] == 7

    def test_non_2xx_raises(self, make_client):
        client = make_client()
        with pytest.raises(FetchError) as exc_info:
            client.fetch_document(f"{ROOT}/missing")
        assert exc_info.value.status_code == 404
        assert "HTTP 404" in str(exc_info.value)

    def test_server_error_raises(self, make_client):
        url = f"{ROOT}/boom"
        client = make_client({url: FakeResponse(status_code=503)})
        with pytest.raises(FetchError) as exc_info:
            client.fetch_document(url)
        assert exc_info.value.status_code == 503

    def test_transport_error_wrapped(self, make_client):
        url = f"{ROOT}/down"
        cause = requests.ConnectionError("name resolution failed")
        client = make_client({url: cause})
        with pytest.raises(FetchError) as exc_info:
            client.fetch_document(url)
        assert exc_info.value.status_code is None
        assert exc_info.value.__cause__ is cause

    def test_timeout_wrapped(self, make_client):
        url = f"{ROOT}/slow"
        client = make_client({url: requests.Timeout("read timed out")})
        with pytest.raises(FetchError, match="read timed out"):
            client.fetch_document(url)


# ── fetch_stream ──────────────────────────────────────────────────────────────

class TestFetchStream:
    def test_streams_chunks(self, make_client):
        url = f"{ROOT}/file.csv"
        resp = FakeResponse(chunks=[b"a,b\n", b"1,2\n"])
        session = FakeSession({url: resp})
        client = make_client(session)
        with client.fetch_stream(url) as chunks:
            assert b"".join(chunks) == b"a,b\n1,2\n"
        assert resp.closed
        _, kwargs = session.calls[0]
        assert kwargs["stream"] is True

    def test_bad_status_closes_response(self, make_client):
        url = f"{ROOT}/file.csv"
        resp = FakeResponse(status_code=500)
        client = make_client({url: resp})
        with pytest.raises(FetchError):
            with client.fetch_stream(url):
                pass
        assert resp.closed

    def test_transport_error_wrapped(self, make_client):
        url = f"{ROOT}/file.csv"
        client = make_client({url: requests.ConnectionError("refused")})
        with pytest.raises(FetchError):
            with client.fetch_stream(url):
                pass


# ── SessionManager ────────────────────────────────────────────────────────────

class TestSessionManager:
    def test_session_cached(self):
        sm = SessionManager()
        assert sm.session is sm.session
        sm.close()

    def test_headers_merged(self):
        sm = SessionManager(headers={"Authorization": "Bearer x"})
        assert sm.session.headers["Authorization"] == "Bearer x"
        assert sm.session.headers["Accept"] == DEFAULT_HEADERS["Accept"]
        sm.close()

    def test_no_adapter_retries(self):
        sm = SessionManager()
        adapter = sm.session.get_adapter("https://data.ceda.ac.uk/")
        assert adapter.max_retries.total == 0
        sm.close()

    def test_close_resets_session(self):
        sm = SessionManager()
        _ = sm.session
        sm.close()
        assert sm._session is None

    def test_context_manager(self):
        with SessionManager() as sm:
            session = sm.session
        assert session is not None
        assert sm._session is None
