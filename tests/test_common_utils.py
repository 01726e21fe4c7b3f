"""
Tests for utils/common.py

Verifies format_bytes, format_duration, elapsed and sanitize_filename.
"""
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.common import format_bytes, format_duration, elapsed, sanitize_filename


# ── format_bytes ──────────────────────────────────────────────────────────────

class TestFormatBytes:
    def test_kilobytes(self):
        assert format_bytes(512 * 1024) == "512 KB"

    def test_megabytes(self):
        assert format_bytes(1536 * 1024) == "1.5 MB"

    def test_gigabytes(self):
        assert format_bytes(2 * 1024 * 1024 * 1024) == "2.00 GB"

    def test_zero(self):
        assert format_bytes(0) == "0 KB"


# ── elapsed ───────────────────────────────────────────────────────────────────

class TestFormatDuration:
    def test_under_a_minute(self):
        assert format_duration(59.9) == "0m 59s"

    def test_minutes(self):
        assert format_duration(135) == "2m 15s"

    def test_hours(self):
        assert format_duration(3930) == "1h 05m 30s"


class TestElapsed:
    def test_seconds(self):
        with patch("utils.common.time.time", return_value=1000.0 + 30):
            assert elapsed(1000.0) == "0m 30s"

    def test_hours(self):
        with patch("utils.common.time.time", return_value=1000.0 + 3930):
            assert elapsed(1000.0) == "1h 05m 30s"


# ── sanitize_filename ────────────────────────────────────────────────────────

class TestSanitizeFilename:
    def test_strips_query_params(self):
        assert sanitize_filename("station_1994.csv?download=1") == "station_1994.csv"

    def test_replaces_special_chars(self):
        result = sanitize_filename('file<>:"\\|*name.csv')
        for ch in '<>:"\\|*':
            assert ch not in result

    def test_normal_filename_unchanged(self):
        name = "midas-open_uk-hourly-weather-obs_dv-202407_antrim_01448_portglenone_qcv-1_1994.csv"
        assert sanitize_filename(name) == name

    def test_empty_string(self):
        assert sanitize_filename("") == ""


# ── package exports ──────────────────────────────────────────────────────────

class TestUtilsExports:
    def test_all_unique_and_importable(self):
        import utils

        assert len(utils.__all__) == len(set(utils.__all__))
        for name in utils.__all__:
            assert hasattr(utils, name), name
