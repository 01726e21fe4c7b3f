"""
Exception hierarchy for the CEDA harvester.

Fetch, selection and download errors are scoped to a single work item and are
aggregated by the orchestrator; StageError is raised only when every item of a
stage failed, and ConfigError aborts the run before any network activity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from harvester.orchestrator import StageResult


class HarvestError(Exception):
    """Base class for all harvester errors."""


class ConfigError(HarvestError):
    """Missing credential or invalid configuration value."""


class FetchError(HarvestError):
    """Network failure, non-2xx status, or unparsable catalog page."""

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else reason
        super().__init__(f"Failed to fetch {url}: {detail}")


class SelectionError(HarvestError):
    """A required link could not be picked out of a catalog page."""

    def __init__(self, link: str, message: str):
        self.link = link
        super().__init__(f"{link}: {message}")


class QCVersionNotFound(SelectionError):
    """The station page has no folder matching the preferred QC version."""

    def __init__(self, link: str, wanted: tuple[str, ...]):
        self.wanted = wanted
        super().__init__(link, f"no folder matching {' or '.join(wanted)}")


class DownloadError(HarvestError):
    """Streaming a data file to disk failed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to download {url}: {reason}")


class StageError(HarvestError):
    """Every item of a stage failed."""

    def __init__(self, result: "StageResult"):
        self.result = result
        first = result.errors[0].error if result.errors else "no detail"
        super().__init__(
            f"Stage '{result.name}' failed for all {result.total} item(s); "
            f"first error: {first}"
        )
