"""Shared utilities for the CEDA harvester."""

# Common utilities
from utils.common import format_bytes, format_duration, elapsed, sanitize_filename

# HTTP utilities
from utils.http import SessionManager, DEFAULT_HEADERS, USER_AGENT

# Progress tracking
from utils.progress import (
    ProgressTracker,
    TerminalProgressTracker,
    SilentProgressTracker,
)

# Configuration
from utils.config import Config, HarvestConfig

__all__ = [
    # Common
    "format_bytes",
    "format_duration",
    "elapsed",
    "sanitize_filename",
    # HTTP
    "SessionManager",
    "DEFAULT_HEADERS",
    "USER_AGENT",
    # Progress
    "ProgressTracker",
    "TerminalProgressTracker",
    "SilentProgressTracker",
    # Configuration
    "Config",
    "HarvestConfig",
]
