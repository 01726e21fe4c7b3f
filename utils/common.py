"""Common helpers for formatting sizes and durations and for naming local files."""

import time

_UNITS = ("KB", "MB", "GB", "TB")

# Characters that cannot appear in a filename on at least one supported OS.
_INVALID_FILENAME_CHARS = str.maketrans({ch: "_" for ch in '<>:"/\\|?*'})


def format_bytes(b: int) -> str:
    """Human-readable size: ``512 KB``, ``1.5 MB``, ``2.34 GB``.

    Sizes below one megabyte are whole kilobytes.
    """
    value = b / 1024
    for unit in _UNITS:
        if value < 1024 or unit == _UNITS[-1]:
            break
        value /= 1024
    precision = {"KB": 0, "MB": 1}.get(unit, 2)
    return f"{value:.{precision}f} {unit}"


def format_duration(seconds: float) -> str:
    """``0m 30s``, ``2m 15s``, ``1h 05m 30s``."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"


def elapsed(start_time: float) -> str:
    """Time since *start_time* (a ``time.time()`` value), formatted by format_duration."""
    return format_duration(time.time() - start_time)


def sanitize_filename(name: str) -> str:
    """Drop any URL query string and replace characters invalid in filenames."""
    name = name.split("?", 1)[0]
    return name.translate(_INVALID_FILENAME_CHARS)
