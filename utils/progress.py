"""Progress tracking for harvest stages.

ProgressTracker keeps the completed / skipped / failed counters of one stage
and redraws through ``update()``; TerminalProgressTracker prints a bar line,
SilentProgressTracker prints nothing.

Worker threads mark items concurrently, so every counter change and every
redraw happens under the tracker's lock.
"""

import threading
import time
from abc import ABC, abstractmethod

from utils.common import format_duration


class ProgressTracker(ABC):
    """Counts the outcome of each item of one stage.

    Args:
        total_items: Number of items the stage will process.
        label: Stage name shown next to the bar.
    """

    def __init__(self, total_items: int, label: str = ""):
        self.total_items = total_items
        self.label = label
        self.completed = 0
        self.skipped = 0
        self.failed = 0
        self.start_time = time.time()
        self._lock = threading.Lock()

    @property
    def processed(self) -> int:
        return self.completed + self.skipped + self.failed

    @property
    def remaining(self) -> int:
        return self.total_items - self.processed

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def progress_fraction(self) -> float:
        """Share of items processed, capped at 1.0; 0.0 for an empty stage."""
        if not self.total_items:
            return 0.0
        return min(1.0, self.processed / self.total_items)

    @property
    def progress_percent(self) -> int:
        return int(self.progress_fraction * 100)

    def snapshot(self) -> dict[str, int]:
        """Copy of the counters taken under the lock."""
        with self._lock:
            return {
                "total": self.total_items,
                "completed": self.completed,
                "skipped": self.skipped,
                "failed": self.failed,
            }

    def _mark(self, counter: str, count: int) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + count)
            self.update()

    def mark_completed(self, count: int = 1) -> None:
        self._mark("completed", count)

    def mark_skipped(self, count: int = 1) -> None:
        """Count items that needed no work (file already on disk)."""
        self._mark("skipped", count)

    def mark_failed(self, count: int = 1) -> None:
        self._mark("failed", count)

    @abstractmethod
    def update(self) -> None:
        """Redraw after a counter change; the lock is held."""

    @abstractmethod
    def finish(self) -> None:
        """Report the final counts once the stage is over."""


class TerminalProgressTracker(ProgressTracker):
    """Prints a progress line to stdout every ``show_every_n`` items.

    The last item always produces a line, so a stage never ends on a stale
    percentage.
    """

    def __init__(self, total_items: int, label: str = "", show_every_n: int = 10):
        super().__init__(total_items, label)
        self.show_every_n = show_every_n
        self.last_shown = 0

    def _format_bar(self, width: int = 30) -> str:
        filled = int(self.progress_fraction * width)
        return f"[{'=' * filled}>{' ' * max(0, width - filled - 1)}]"

    def update(self) -> None:
        done = self.processed
        if done - self.last_shown < self.show_every_n and done < self.total_items:
            return
        self.last_shown = done
        # stations   [===============>              ]  50% (5/10) [skipped: 0, failed: 1] - 0m 12s
        print(f"  {self.label:<10} {self._format_bar()} {self.progress_percent:3d}% "
              f"({done}/{self.total_items}) "
              f"[skipped: {self.skipped}, failed: {self.failed}] - "
              f"{format_duration(self.elapsed_seconds)}", flush=True)

    def finish(self) -> None:
        print(f"  {self.label}: completed {self.completed}, skipped {self.skipped}, "
              f"failed {self.failed} ({format_duration(self.elapsed_seconds)})",
              flush=True)


class SilentProgressTracker(ProgressTracker):
    """Counts without printing; used for ``--quiet`` runs and in tests."""

    def update(self) -> None:
        pass

    def finish(self) -> None:
        pass
