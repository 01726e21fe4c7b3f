"""
Bounded fan-out of one pipeline stage across a thread pool.

run_stage() applies a resolve function to every input item on at most
``workers`` threads, waits for all of them, and partitions the outcome into
flattened successes and per-item errors.  A stage is only reported as failed
(StageError) when it had work and none of it succeeded.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from harvester.errors import HarvestError, StageError
from utils.progress import ProgressTracker

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 8
MAX_WORKERS = 64


@dataclass
class ItemError:
    """One input item that could not be resolved."""

    item: Any
    error: HarvestError

    def __str__(self) -> str:
        return str(self.error)


@dataclass
class StageResult:
    """Everything one stage produced.

    ``successes`` holds the flattened outputs in completion order, which is
    not the input order.  Duplicates are kept.
    """

    name: str
    total: int = 0
    successes: list = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)
    succeeded: int = 0

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def all_failed(self) -> bool:
        return self.total > 0 and self.succeeded == 0

    def summary(self) -> str:
        return (f"{self.name}: {self.succeeded}/{self.total} resolved, "
                f"{self.failed} failed, {len(self.successes)} output(s)")


def _flatten(value: Any) -> list:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def run_stage(name: str, items: Iterable, resolve: Callable[[Any], Any], *,
              workers: int = DEFAULT_WORKERS,
              tracker: ProgressTracker | None = None,
              stop_event: threading.Event | None = None) -> StageResult:
    """Resolve every item concurrently and collect the results.

    Args:
        name:       Stage label used in logs and errors.
        items:      Inputs produced by the previous stage.
        resolve:    Called once per item; returns a single output or a
                    list of outputs.  HarvestError subclasses are recorded
                    against the item; any other exception aborts the stage.
        workers:    Upper bound on concurrently running units.
        tracker:    Optional progress tracker, marked once per item.
        stop_event: When set, units that have not started yet are skipped
                    and the stage stops as soon as the pool drains.

    Returns:
        StageResult with flattened successes and per-item errors.

    Raises:
        StageError: if there was at least one item and all of them failed.
    """
    items = list(items)
    result = StageResult(name=name, total=len(items))
    if not items:
        logger.info("[%s] nothing to resolve", name)
        return result

    workers = max(1, min(workers, MAX_WORKERS, len(items)))
    stop_event = stop_event or threading.Event()
    logger.info("[%s] resolving %d item(s) on %d worker(s)", name, len(items), workers)

    def _unit(item):
        if stop_event.is_set():
            return None
        return resolve(item)

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"stage-{name}")
    try:
        futures = {pool.submit(_unit, item): item for item in items}
        for future in as_completed(futures):
            item = futures[future]
            try:
                value = future.result()
            except HarvestError as exc:
                logger.warning("[%s] %s", name, exc)
                result.errors.append(ItemError(item, exc))
                if tracker:
                    tracker.mark_failed()
                continue

            if value is None and stop_event.is_set():
                continue
            result.succeeded += 1
            result.successes.extend(_flatten(value))
            if tracker:
                tracker.mark_completed()
    except BaseException:
        stop_event.set()
        pool.shutdown(wait=True, cancel_futures=True)
        raise
    pool.shutdown(wait=True)

    if stop_event.is_set():
        raise KeyboardInterrupt(f"stage '{name}' interrupted")

    logger.info("[%s] %s", name, result.summary())
    if result.all_failed:
        raise StageError(result)
    return result
