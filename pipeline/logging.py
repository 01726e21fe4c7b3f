"""
Harvest logging: per-stage log files and structured resolve/download accounting.

Provides:
  - PipelineLogger: manages a ``logs/harvest/`` directory with one log file per
    stage per run, plus a ``summary.json`` for the whole run.
  - StageReport: what a stage resolved, what it skipped, and what failed.

Usage inside harvester.core::

    pl = PipelineLogger()                   # creates logs/harvest/<run_id>/
    report = pl.start_stage("stations")     # opens stations.log handler
    ...                                      # stage code logs normally
    pl.finish_stage("stations", report)     # detaches handler, records report
    pl.write_summary()                      # writes <run_id>/summary.json
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Error lines repeated in a stage log footer; the full list is in summary.json.
MAX_FOOTER_ERRORS = 20


# ── Data structures ───────────────────────────────────────────────────────────


@dataclass
class StageReport:
    """Accounting for one harvest stage."""

    stage_name: str
    status: str = "not_started"               # started | completed | failed | interrupted
    elapsed_seconds: float = 0.0
    items_total: int = 0
    items_processed: int = 0
    items_skipped: int = 0
    items_errored: int = 0
    errors: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    detail: str = ""

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.items_errored += 1

    def console_summary(self) -> str:
        """e.g. ``8/10 ok | 3 skipped | 1 failed | downloaded: 5``"""
        counts = [
            (self.items_total, f"{self.items_processed:,}/{self.items_total:,} ok"),
            (self.items_skipped, f"{self.items_skipped:,} skipped"),
            (self.items_errored, f"{self.items_errored:,} failed"),
            (self.detail, self.detail),
        ]
        parts = [text for present, text in counts if present]
        parts += [f"{key}: {val:,}" for key, val in self.metrics.items()
                  if isinstance(val, int)]
        return " | ".join(parts) or "no activity"

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["elapsed_seconds"] = round(self.elapsed_seconds, 2)
        for optional in ("detail", "errors"):
            if not d[optional]:
                del d[optional]
        return d


def _stage_footer(report: StageReport) -> str:
    lines = [
        "",
        "=" * 60,
        f"STAGE SUMMARY: {report.stage_name}",
        f"  Status:    {report.status}",
        f"  Elapsed:   {report.elapsed_seconds:.1f}s",
        f"  Total:     {report.items_total}",
        f"  Processed: {report.items_processed}",
        f"  Skipped:   {report.items_skipped}",
        f"  Errors:    {report.items_errored}",
    ]
    if report.errors:
        lines.append("  Error details:")
        lines += [f"    - {err}" for err in report.errors[:MAX_FOOTER_ERRORS]]
        extra = len(report.errors) - MAX_FOOTER_ERRORS
        if extra > 0:
            lines.append(f"    ... and {extra} more")
    lines.append("=" * 60)
    return "\n".join(lines) + "\n"


# ── PipelineLogger ────────────────────────────────────────────────────────────


class PipelineLogger:
    """Manages per-run, per-stage log files under ``logs/harvest/``.

    Creates a directory like::

        logs/harvest/2026-02-22T14-30-00/
            counties.log
            stations.log
            data-folder.log
            data-files.log
            download.log
            summary.json
    """

    def __init__(self, logs_dir: Path | str = "logs/harvest") -> None:
        self.logs_root = Path(logs_dir)
        self.run_id = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        self.run_dir = self.logs_root / self.run_id
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self._stage_handlers: dict[str, logging.FileHandler] = {}
        self._stage_start_times: dict[str, float] = {}
        self._reports: dict[str, StageReport] = {}

        self.pipeline_start = time.monotonic()
        self.args_dict: dict[str, Any] = {}

    # ── stage lifecycle ───────────────────────────────────────────────────

    def start_stage(self, stage_name: str) -> StageReport:
        """Open a log file for *stage_name* and attach it to the root logger."""
        log_path = self.run_dir / f"{stage_name}.log"
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s  %(levelname)-7s  %(threadName)s  %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        ))
        logging.getLogger().addHandler(handler)
        self._stage_handlers[stage_name] = handler
        self._stage_start_times[stage_name] = time.monotonic()

        report = StageReport(stage_name=stage_name, status="started")
        self._reports[stage_name] = report
        return report

    def finish_stage(self, stage_name: str, report: StageReport | None = None) -> None:
        """Detach the log handler for *stage_name* and finalise the report."""
        t0 = self._stage_start_times.pop(stage_name, self.pipeline_start)
        elapsed = time.monotonic() - t0

        if report is None:
            report = self._reports.get(stage_name, StageReport(stage_name=stage_name))
        report.elapsed_seconds = elapsed
        if report.status == "started":
            report.status = "completed"
        self._reports[stage_name] = report

        handler = self._stage_handlers.pop(stage_name, None)
        if handler:
            handler.stream.write(_stage_footer(report))
            handler.close()
            logging.getLogger().removeHandler(handler)

    # ── summary output ────────────────────────────────────────────────────

    def write_summary(self) -> Path:
        """Write a JSON summary of the entire run to the run directory."""
        total_elapsed = time.monotonic() - self.pipeline_start
        summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_elapsed_seconds": round(total_elapsed, 2),
            "args": self.args_dict,
            "stages": {name: rpt.to_dict() for name, rpt in self._reports.items()},
        }
        path = self.summary_path
        with open(path, "w") as f:
            json.dump(summary, f, indent=2, default=str)
        return path

    def get_reports(self) -> dict[str, StageReport]:
        return dict(self._reports)

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.json"
