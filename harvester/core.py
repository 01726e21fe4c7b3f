"""
Core harvest orchestration for the CEDA harvester.

Contains the resolution pipeline (counties -> stations -> data folder ->
data files), the download stage with its atomic file writes, the run
summary, and the CLI entry point (main).
"""

import argparse
import json
import logging
import os
import signal
import sys
import tempfile
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlsplit

import requests

from harvester.catalog import (
    LINK_PREFIX,
    discover_county_links,
    discover_data_file_links,
    discover_data_folder_link,
    discover_station_links,
)
from harvester.client import CedaClient
from harvester.datastore import DataStore
from harvester.errors import ConfigError, DownloadError, FetchError, StageError
from harvester.orchestrator import DEFAULT_WORKERS, StageResult, run_stage
from pipeline.logging import PipelineLogger, StageReport
from utils.common import elapsed, format_bytes, sanitize_filename
from utils.config import HarvestConfig
from utils.progress import ProgressTracker, SilentProgressTracker, TerminalProgressTracker

logger = logging.getLogger(__name__)

# ---- Configuration ----

FILE_EXTENSION = ".csv"
FAILURE_LOG_NAME = "failed_downloads.json"
RESOLUTION_STAGES = ("counties", "stations", "data-folder", "data-files")
DOWNLOAD_STAGE = "download"

TrackerFactory = Callable[[int, str], ProgressTracker]


# ---- Download helpers ----

def derive_filename(url: str, extension: str = FILE_EXTENSION) -> str:
    """Local filename for a catalog file URL.

    Takes the final segment of the URL path (the query string never counts)
    and cuts it just after the first occurrence of *extension*, dropping
    anything the catalog appended to the name.
    """
    name = urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
    pos = name.find(extension)
    if pos != -1:
        name = name[:pos + len(extension)]
    return sanitize_filename(name)


def _stream_to_file(client: CedaClient, url: str, dest_path: Path,
                    stop_event: threading.Event | None = None) -> int:
    """Stream *url* into *dest_path* through a temporary sibling file.

    The temporary file is renamed into place only once the body has been
    written completely; on any failure it is removed, so *dest_path* either
    does not exist or holds a complete file.

    Returns:
        Number of bytes written.
    """
    tmp_path = None
    written = 0
    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest_path.name}.", suffix=".part",
                                        dir=dest_path.parent)
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "wb") as fh, client.fetch_stream(url) as chunks:
            for chunk in chunks:
                if stop_event is not None and stop_event.is_set():
                    raise DownloadError(url, "interrupted")
                if chunk:
                    fh.write(chunk)
                    written += len(chunk)
        os.replace(tmp_path, dest_path)
    except FetchError as exc:
        detail = (f"HTTP {exc.status_code}" if exc.status_code is not None
                  else exc.reason)
        raise DownloadError(url, detail) from exc
    except (requests.RequestException, OSError) as exc:
        raise DownloadError(url, str(exc)) from exc
    finally:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
    return written


def download_file(client: CedaClient, link: str, dest_dir: Path, *,
                  tracker: ProgressTracker | None = None,
                  stop_event: threading.Event | None = None) -> str:
    """Download one catalog file into *dest_dir*, skipping it if already present.

    The tracker, when given, is marked exactly once per call: skipped,
    completed, or failed.

    Returns:
        "skip" if the file already existed, "ok" if it was fetched.

    Raises:
        DownloadError: if the fetch or the write failed.
    """
    url = client.url_for(link)
    fname = derive_filename(url)
    dest_path = Path(dest_dir) / fname

    if dest_path.exists():
        logger.debug("[SKIP] %s", fname)
        if tracker:
            tracker.mark_skipped()
        return "skip"

    try:
        size = _stream_to_file(client, url, dest_path, stop_event)
    except DownloadError as exc:
        logger.debug("[FAIL] %s: %s", fname, exc.reason)
        if tracker:
            tracker.mark_failed()
        raise

    logger.debug("[OK] %s (%s)", fname, format_bytes(size))
    if tracker:
        tracker.mark_completed()
    return "ok"


@dataclass
class DownloadSummary:
    """Outcome of the download stage."""

    result: StageResult
    downloaded: int = 0
    skipped: int = 0

    @property
    def failed(self) -> int:
        return self.result.failed

    @property
    def attempted(self) -> int:
        return self.result.total


def _write_failure_log(path: Path, result: StageResult,
                       client: CedaClient) -> None:
    """Record failed downloads as JSON, or remove a stale log from an earlier run."""
    if not result.errors:
        path.unlink(missing_ok=True)
        return
    stamp = datetime.now(timezone.utc).isoformat()
    entries = [
        {
            "url": client.url_for(err.item),
            "filename": derive_filename(err.item),
            "error": str(err.error),
            "timestamp": stamp,
        }
        for err in result.errors
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(entries, indent=2), encoding="utf-8")
    logger.info("Failure log: %s", path)


def download_all(client: CedaClient, links: list[str], store: DataStore, *,
                 workers: int = DEFAULT_WORKERS,
                 tracker: ProgressTracker | None = None,
                 stop_event: threading.Event | None = None,
                 failure_log: Path | None = None) -> DownloadSummary:
    """Download every resolved file link into the data store.

    Capability descriptors go to the capability directory, everything else
    to the raw data directory.  A failure for one file never stops its
    siblings.

    Raises:
        StageError: if there were links and every download failed.
    """
    def _download(link: str) -> str:
        return download_file(client, link, store.dir_for(derive_filename(link)),
                             tracker=tracker, stop_event=stop_event)

    try:
        result = run_stage(DOWNLOAD_STAGE, links, _download,
                           workers=workers, stop_event=stop_event)
    except StageError as exc:
        if failure_log is not None:
            _write_failure_log(failure_log, exc.result, client)
        raise

    if failure_log is not None:
        _write_failure_log(failure_log, result, client)
    return DownloadSummary(
        result=result,
        downloaded=result.successes.count("ok"),
        skipped=result.successes.count("skip"),
    )


# ---- Harvest pipeline ----

@dataclass
class HarvestSummary:
    """Per-stage results of a full run plus download counts."""

    stages: dict[str, StageResult] = field(default_factory=dict)
    download: DownloadSummary | None = None
    start_time: float = field(default_factory=time.time)

    def print_summary(self) -> None:
        print(f"\n{'=' * 70}")
        print("  Harvest Complete")
        print(f"{'=' * 70}")
        for name in RESOLUTION_STAGES:
            result = self.stages.get(name)
            if result is not None:
                print(f"  {name:<12} {result.succeeded:>6} resolved  "
                      f"{result.failed:>5} failed  -> {len(result.successes)} link(s)")
        if self.download is not None:
            print(f"  Downloaded: {self.download.downloaded}")
            print(f"  Skipped:    {self.download.skipped}")
            print(f"  Failed:     {self.download.failed}")
        print(f"  Elapsed:    {elapsed(self.start_time)}")


def _default_tracker(quiet: bool) -> TrackerFactory:
    if quiet:
        return lambda total, label: SilentProgressTracker(total, label)
    return lambda total, label: TerminalProgressTracker(
        total, label, show_every_n=max(1, total // 20))


class Harvester:
    """Runs the resolution stages and the download stage against one client.

    Args:
        client:          Shared, read-only catalog client.
        store:           Local data store receiving the files.
        workers:         Concurrency limit for every stage.
        qc_fallback:     Accept qc-version-0 folders when qc-version-1 is absent.
        link_prefix:     Path prefix that county links must start with.
        limit:           Only harvest the first N counties (None = all).
        tracker_factory: Builds a progress tracker per stage.
        pipeline_logger: Optional per-stage log files and summary.json.
        stop_event:      Set to abandon the run between / inside stages.
    """

    def __init__(self, client: CedaClient, store: DataStore, *,
                 workers: int = DEFAULT_WORKERS, qc_fallback: bool = False,
                 link_prefix: str = LINK_PREFIX, limit: int | None = None,
                 tracker_factory: TrackerFactory | None = None,
                 pipeline_logger: PipelineLogger | None = None,
                 stop_event: threading.Event | None = None):
        self.client = client
        self.store = store
        self.workers = workers
        self.qc_fallback = qc_fallback
        self.link_prefix = link_prefix
        self.limit = limit
        self.tracker_factory = tracker_factory or _default_tracker(quiet=True)
        self.pipeline_logger = pipeline_logger
        self.stop_event = stop_event or threading.Event()
        self.summary = HarvestSummary()

    def _start(self, name: str) -> StageReport | None:
        if self.pipeline_logger is None:
            return None
        return self.pipeline_logger.start_stage(name)

    def _finish(self, name: str, report: StageReport | None,
                result: StageResult | None, status: str | None = None) -> None:
        if report is None:
            return
        if result is not None:
            report.items_total = result.total
            report.items_processed = result.succeeded
            for err in result.errors:
                report.add_error(str(err))
            report.metrics["outputs"] = len(result.successes)
        if status:
            report.status = status
        logger.info("[%s] %s", name, report.console_summary())
        self.pipeline_logger.finish_stage(name, report)

    def _run_stage(self, name: str, items: list, resolve: Callable) -> StageResult:
        tracker = self.tracker_factory(len(items), name)
        report = self._start(name)
        try:
            result = run_stage(name, items, resolve, workers=self.workers,
                               tracker=tracker, stop_event=self.stop_event)
        except StageError as exc:
            self._finish(name, report, exc.result, status="failed")
            self.summary.stages[name] = exc.result
            raise
        except KeyboardInterrupt:
            self._finish(name, report, None, status="interrupted")
            raise
        except Exception:
            self._finish(name, report, None, status="failed")
            raise
        finally:
            tracker.finish()
        self._finish(name, report, result)
        self.summary.stages[name] = result
        return result

    def resolve_catalog(self) -> list[str]:
        """Run the four resolution stages and return every resolved file link."""
        client = self.client

        counties = self._run_stage(
            "counties", [client.dataset_url],
            lambda _root: discover_county_links(client, self.link_prefix),
        ).successes
        if self.limit is not None:
            counties = counties[:self.limit]

        stations = self._run_stage(
            "stations", counties,
            lambda link: discover_station_links(client, link),
        ).successes

        folders = self._run_stage(
            "data-folder", stations,
            lambda link: discover_data_folder_link(client, link, self.qc_fallback),
        ).successes

        return self._run_stage(
            "data-files", folders,
            lambda link: discover_data_file_links(client, link),
        ).successes

    def download(self, links: list[str]) -> DownloadSummary:
        """Download the resolved links into the data store."""
        tracker = self.tracker_factory(len(links), DOWNLOAD_STAGE)
        report = self._start(DOWNLOAD_STAGE)
        try:
            summary = download_all(
                self.client, links, self.store,
                workers=self.workers, tracker=tracker,
                stop_event=self.stop_event,
                failure_log=self.store.root / FAILURE_LOG_NAME,
            )
        except StageError as exc:
            self._finish(DOWNLOAD_STAGE, report, exc.result, status="failed")
            self.summary.download = DownloadSummary(result=exc.result)
            raise
        except KeyboardInterrupt:
            self._finish(DOWNLOAD_STAGE, report, None, status="interrupted")
            raise
        except Exception:
            self._finish(DOWNLOAD_STAGE, report, None, status="failed")
            raise
        finally:
            tracker.finish()

        if report is not None:
            report.items_skipped = summary.skipped
            report.metrics["downloaded"] = summary.downloaded
        self._finish(DOWNLOAD_STAGE, report, summary.result)
        self.summary.download = summary
        return summary

    def run(self) -> HarvestSummary:
        """Resolve the whole catalog, then download every resolved file."""
        links = self.resolve_catalog()
        self.download(links)
        return self.summary


# ---- Local inventory ----

def list_files(store: DataStore) -> None:
    """Print the properties of every harvested data file."""
    files = store.list_data_files()
    for props in files:
        print(f"  {props.county_name:<20} {props.station_id:05d} "
              f"{props.station_name:<30} {props.qcv:<6} {props.year}")
    print(f"\nTotal: {len(files)} data file(s) in {store.rawdata_dir()}")


# ---- Main ----

def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ceda-harvest",
        description="Harvest MIDAS Open hourly weather observations from CEDA.",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log every request and file at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    def _harvest_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--output", type=Path, default=None,
                       help="Data store root (default: $DATA_DIR or CEDA_Data)")
        p.add_argument("--version", dest="dataset_version", default=None,
                       help="Dataset version, e.g. 202407 "
                            "(default: $CEDA_DATASET_VERSION or 202407)")
        p.add_argument("--workers", type=int, default=None,
                       help="Concurrent requests per stage (default: $CEDA_WORKERS or 8)")
        p.add_argument("--timeout", type=int, default=None,
                       help="Per-request timeout in seconds (default: $CEDA_TIMEOUT or 30)")
        p.add_argument("--qc-fallback", action="store_true", dest="qc_fallback",
                       help="Use qc-version-0 folders when qc-version-1 is missing")
        p.add_argument("--limit", type=int, default=None,
                       help="Only harvest the first N counties")
        p.add_argument("--logs-dir", type=Path, default=Path("logs/harvest"),
                       help="Where per-stage logs are written (default: logs/harvest)")
        p.add_argument("--quiet", "-q", action="store_true",
                       help="Suppress progress bars")

    _harvest_options(sub.add_parser("update", help="Resolve the catalog and download data files"))
    _harvest_options(sub.add_parser("list", help="Resolve the catalog and print file URLs only"))

    files = sub.add_parser("files", help="List harvested data files")
    files.add_argument("--output", type=Path, default=None,
                       help="Data store root (default: $DATA_DIR or CEDA_Data)")

    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> HarvestConfig:
    config = HarvestConfig.from_env()
    if args.output is not None:
        config.data_dir = args.output
    if args.command == "files":
        return config
    if args.dataset_version:
        config.dataset_version = args.dataset_version
    if args.workers is not None:
        config.workers = args.workers
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.qc_fallback:
        config.qc_fallback = True
    return config.validate()


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and run the requested command.

    Exit codes: 0 success (individual item failures included), 1 a whole
    stage failed, 2 configuration error, 130 interrupted.
    """
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        force=True,
    )
    # Requests' own connection chatter is noise even at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    try:
        config = _load_config(args)
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    store = DataStore(config.data_dir)
    if args.command == "files":
        list_files(store)
        return 0

    # SIGTERM behaves like Ctrl+C: stages stop and partial files are removed.
    signal.signal(signal.SIGTERM, signal.default_int_handler)

    pl = PipelineLogger(logs_dir=args.logs_dir)
    pl.args_dict = {
        "command": args.command,
        "limit": args.limit,
        **config.to_dict(),
    }
    config.save_json(pl.run_dir / "config.json")

    print(f"Harvesting dataset version {config.dataset_version} -> "
          f"{store.root.resolve()}")
    print(f"  Workers: {config.workers}  |  Timeout: {config.timeout}s  |  "
          f"QC fallback: {'on' if config.qc_fallback else 'off'}\n")

    with CedaClient(config.access_token, config.dataset_version,
                    root=config.root_url, timeout=config.timeout,
                    pool_maxsize=config.workers) as client:
        harvester = Harvester(
            client, store,
            workers=config.workers,
            qc_fallback=config.qc_fallback,
            limit=args.limit,
            tracker_factory=_default_tracker(args.quiet),
            pipeline_logger=pl,
        )
        try:
            if args.command == "list":
                links = harvester.resolve_catalog()
                for link in links:
                    print(client.url_for(link))
                print(f"\nTotal: {len(links)} file(s)")
            else:
                harvester.run().print_summary()
        except StageError as exc:
            logger.error("ERROR: %s", exc)
            harvester.summary.print_summary()
            return 1
        except KeyboardInterrupt:
            harvester.stop_event.set()
            print("\nInterrupted -- partial downloads were discarded.", file=sys.stderr)
            return 130
        finally:
            print(f"  Logs:       {pl.write_summary().parent}")

    return 0
