"""
Pytest fixtures for the CEDA harvester tests.

Provides an in-memory fake of ``requests.Session`` that serves a catalog
keyed by URL, HTML builders for the two page shapes the catalog uses, and a
layout helper that wires counties, stations, qc folders and files together.
No test touches the network.
"""
import sys
import threading
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from harvester.client import BASE_PATH, CedaClient


ROOT = "https://ceda.test"
VERSION = "202407"
DATASET_LINK = f"{BASE_PATH}/dataset-version-{VERSION}"
DATASET_URL = f"{ROOT}{DATASET_LINK}/"


# ── Fake transport ────────────────────────────────────────────────────────────

class FakeResponse:
    """Stand-in for ``requests.Response``.

    ``fail_after`` raises a ConnectionError from iter_content once that many
    chunks have been yielded, to simulate a dropped connection mid-body.
    """

    def __init__(self, status_code=200, body=b"", chunks=None, fail_after=None):
        self.status_code = status_code
        self.chunks = list(chunks) if chunks is not None else [body]
        self.fail_after = fail_after
        self.closed = False

    @property
    def text(self):
        return b"".join(self.chunks).decode("utf-8")

    def iter_content(self, chunk_size=1):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise requests.ConnectionError("connection reset by peer")
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """Serves canned responses by URL; unknown URLs get a 404.

    Routes map a URL to an HTML string, a FakeResponse, or an exception
    instance to raise.  Every call is recorded with its keyword arguments.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.headers = {}
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url, **kwargs):
        with self._lock:
            self.calls.append((url, kwargs))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(status_code=404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, str):
            return FakeResponse(body=route.encode("utf-8"))
        return route

    def count(self, url):
        with self._lock:
            return sum(1 for called, _ in self.calls if called == url)

    def close(self):
        self.closed = True


# ── Page builders ─────────────────────────────────────────────────────────────

def results_page(*anchors):
    """Listing page with anchors inside ``#results``; anchors are (href, text)."""
    links = "".join(f'<li><a href="{href}">{text}</a></li>' for href, text in anchors)
    return (
        "<html><body>"
        '<nav><a href="/badc/nav-only">Home</a></nav>'
        f'<div id="results"><ul>{links}</ul></div>'
        "</body></html>"
    )


def station_table_page(*hrefs):
    """County page listing stations in the main content table."""
    rows = "".join(
        f'<tr><td><a href="{href}">{href.rsplit("/", 1)[-1]}</a></td></tr>'
        for href in hrefs
    )
    return (
        "<html><body>"
        '<div id="results"><a href="/badc/not-a-station">ignored</a></div>'
        '<div id="content-main"><div class="row"><div>'
        f"<table>{rows}</table>"
        "</div></div></div>"
        "</body></html>"
    )


def build_catalog(layout, qc_folder="qc-version-1"):
    """Routes for a full catalog described as ``{county: {station: [files]}}``.

    Each station page links both a qc-version-0 folder and *qc_folder*; file
    links carry a ``?download=1`` query.  The dataset root also lists the
    change-log folder, which the county stage must drop.
    """
    routes = {}
    county_anchors = []
    for county, stations in layout.items():
        county_link = f"{DATASET_LINK}/{county}"
        county_anchors.append((county_link, county))
        station_links = []
        for station, files in stations.items():
            station_link = f"{county_link}/{station}"
            station_links.append(station_link)
            folder_link = f"{station_link}/{qc_folder}"
            routes[ROOT + station_link] = results_page(
                (f"{station_link}/qc-version-0", "qc-version-0"),
                (folder_link, qc_folder),
            )
            file_anchors = []
            for name in files:
                file_link = f"{folder_link}/{name}?download=1"
                file_anchors.append((file_link, name))
                routes[ROOT + file_link] = FakeResponse(
                    chunks=[b"ob_time,air_temperature\n", f"{name}\n".encode()])
            routes[ROOT + folder_link] = results_page(*file_anchors)
        routes[ROOT + county_link] = station_table_page(*station_links)
    county_anchors.append(
        (f"{DATASET_LINK}/change_log_station_files", "change_log_station_files"))
    routes[DATASET_URL] = results_page(*county_anchors)
    return routes


def data_filename(county, station_id, station, year):
    return (f"midas-open_uk-hourly-weather-obs_dv-{VERSION}_{county}_"
            f"{station_id}_{station}_qcv-1_{year}.csv")


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def fake_session():
    return FakeSession()


@pytest.fixture()
def make_client():
    """Factory building a CedaClient over a FakeSession with the given routes."""
    def _make(routes=None, **kwargs):
        session = routes if isinstance(routes, FakeSession) else FakeSession(routes)
        return CedaClient("test-token", VERSION, root=ROOT, session=session, **kwargs)
    return _make


@pytest.fixture()
def two_county_layout():
    """Two counties, one station each, a capability file and two data files."""
    return {
        "antrim": {
            "01448_portglenone": [
                f"midas-open_uk-hourly-weather-obs_dv-{VERSION}_antrim_01448_"
                f"portglenone_capability.csv",
                data_filename("antrim", "01448", "portglenone", 1994),
                data_filename("antrim", "01448", "portglenone", 1995),
            ],
        },
        "devon": {
            "01336_plymouth": [
                f"midas-open_uk-hourly-weather-obs_dv-{VERSION}_devon_01336_"
                f"plymouth_capability.csv",
                data_filename("devon", "01336", "plymouth", 2001),
                data_filename("devon", "01336", "plymouth", 2002),
            ],
        },
    }
