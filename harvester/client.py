"""
HTTP transport for the CEDA catalog.

CedaClient wraps one pooled requests.Session carrying the bearer credential.
It holds no mutable state after construction, so a single instance is shared
by every worker thread of every stage.
"""

import logging
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from harvester.errors import ConfigError, FetchError
from utils.http import SessionManager

logger = logging.getLogger(__name__)

# ---- Configuration ----

ROOT_URL = "https://data.ceda.ac.uk"
BASE_PATH = "/badc/ukmo-midas-open/data/uk-hourly-weather-obs"
DEFAULT_DATASET_VERSION = "202407"
DEFAULT_TIMEOUT = 30
CHUNK_SIZE = 65536

PARSER = "lxml"


class CedaClient:
    """Authenticated, read-only client for the MIDAS Open catalog.

    Args:
        access_token: Bearer credential attached to every request.
        dataset_version: Dataset version path segment, e.g. "202407".
        root: Scheme and host of the catalog.
        base_path: Path of the dataset collection below the root.
        timeout: Per-request timeout in seconds.
        session: Pre-built session (tests inject a fake here).
        pool_maxsize: Connection pool size; match the worker count.
    """

    def __init__(self, access_token: str,
                 dataset_version: str = DEFAULT_DATASET_VERSION, *,
                 root: str = ROOT_URL, base_path: str = BASE_PATH,
                 timeout: float = DEFAULT_TIMEOUT,
                 session: requests.Session | None = None,
                 pool_maxsize: int = 20):
        if not access_token:
            raise ConfigError("An access token is required to query the catalog")
        if not dataset_version:
            raise ConfigError("A dataset version is required")

        self.dataset_version = dataset_version
        self.root = root.rstrip("/")
        self.base_path = "/" + base_path.strip("/")
        self.timeout = timeout

        auth = {"Authorization": f"Bearer {access_token}"}
        if session is None:
            self._sessions = SessionManager(headers=auth,
                                            pool_connections=4,
                                            pool_maxsize=pool_maxsize)
            session = self._sessions.session
        else:
            self._sessions = None
            session.headers.update(auth)
        self.session = session

    def __repr__(self) -> str:
        return (f"CedaClient(root={self.root!r}, "
                f"dataset_version={self.dataset_version!r}, token=***)")

    @property
    def dataset_url(self) -> str:
        """URL of the dataset-version root page listing the counties."""
        return f"{self.root}{self.base_path}/dataset-version-{self.dataset_version}/"

    def url_for(self, link: str) -> str:
        """Resolve a catalog link (usually a root-relative path) to a URL."""
        return urljoin(self.root + "/", link)

    def fetch_document(self, url: str) -> BeautifulSoup:
        """GET a catalog page and parse it.

        Raises:
            FetchError: on network failure or a non-2xx status.
        """
        logger.debug("GET %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            raise FetchError(url, "bad status", status_code=resp.status_code)

        return BeautifulSoup(resp.text, PARSER)

    @contextmanager
    def fetch_stream(self, url: str,
                     chunk_size: int = CHUNK_SIZE) -> Iterator[Iterator[bytes]]:
        """GET a file and yield an iterator over its body chunks.

        The body is never held in memory as a whole; the response is closed
        when the ``with`` block exits.  Errors raised while iterating are
        ``requests`` exceptions and are the caller's to handle.

        Raises:
            FetchError: on network failure or a non-2xx status.
        """
        logger.debug("GET (stream) %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout, stream=True)
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        try:
            if not 200 <= resp.status_code < 300:
                raise FetchError(url, "bad status", status_code=resp.status_code)
            yield resp.iter_content(chunk_size=chunk_size)
        finally:
            resp.close()

    def close(self) -> None:
        """Release pooled connections owned by this client."""
        if self._sessions is not None:
            self._sessions.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
