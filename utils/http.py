"""HTTP session utilities for the CEDA harvester.

Provides a SessionManager that builds one pooled ``requests.Session`` with a
fixed set of default headers.  Retries are disabled at the adapter level: a
failed request surfaces immediately to the caller, which decides what to do
with it.
"""

from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter


USER_AGENT = "ceda-harvester/1.0 (+https://data.ceda.ac.uk)"

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,text/csv;q=0.9,*/*;q=0.8",
}


class SessionManager:
    """Manages an HTTP session with connection pooling and default headers."""

    def __init__(self, headers: Optional[Dict[str, str]] = None,
                 pool_connections: int = 10, pool_maxsize: int = 20):
        """Initialize session manager.

        Args:
            headers: Extra headers sent with every request (merged over
                     DEFAULT_HEADERS)
            pool_connections: Number of connection pools to cache
            pool_maxsize: Maximum number of connections per pool; should be
                          at least the number of worker threads
        """
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self.pool_connections = pool_connections
        self.pool_maxsize = pool_maxsize
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        """Get or create the pooled HTTP session.

        Returns:
            requests.Session object
        """
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(self.headers)

            adapter = HTTPAdapter(
                max_retries=0,
                pool_connections=self.pool_connections,
                pool_maxsize=self.pool_maxsize,
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

        return self._session

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
