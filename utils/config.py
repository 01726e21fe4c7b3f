"""Configuration management utilities for the CEDA harvester.

Provides:
- Config: small base class with dict/JSON helpers
- HarvestConfig: harvest settings loaded from environment variables (and a
  ``.env`` file, if present)

The access token is required; everything else has a default so a bare
``CEDA_ACCESS_TOKEN=... ceda-harvest update`` works out of the box.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import find_dotenv, load_dotenv


class Config:
    """Base configuration class."""

    #: Attributes that must never be written out in clear text.
    SECRET_FIELDS: frozenset = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary, masking secret fields.

        Returns:
            Dictionary of all public config attributes
        """
        return {
            k: ("***" if k in self.SECRET_FIELDS and v else v)
            for k, v in self.__dict__.items()
            if not k.startswith("_")
        }

    def save_json(self, path: Path) -> None:
        """Save configuration (secrets masked) to a JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"{type(self).__name__}({fields})"


def _env_int(env: Mapping[str, str], name: str, default: int,
             low: int, high: int) -> int:
    # harvester imports utils at package load; resolve the error class lazily
    from harvester.errors import ConfigError

    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if not low <= value <= high:
        raise ConfigError(f"{name} must be between {low} and {high}, got {value}")
    return value


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class HarvestConfig(Config):
    """Harvest settings loaded from environment variables.

    Environment variables:
        CEDA_ACCESS_TOKEN: Bearer token for data.ceda.ac.uk (required)
        CEDA_DATASET_VERSION: Dataset version path segment (default: 202407)
        CEDA_ROOT_URL: Catalog host (default: https://data.ceda.ac.uk)
        DATA_DIR: Root of the local data store (default: CEDA_Data)
        CEDA_WORKERS: Concurrent requests per stage, 1-64 (default: 8)
        CEDA_TIMEOUT: Per-request timeout in seconds, 1-600 (default: 30)
        CEDA_QC_FALLBACK: Accept qc-version-0 folders when qc-version-1 is
                          missing (default: false)
    """

    SECRET_FIELDS = frozenset({"access_token"})

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        super().__init__()
        env = os.environ if env is None else env
        self.access_token = env.get("CEDA_ACCESS_TOKEN", "").strip()
        self.dataset_version = env.get("CEDA_DATASET_VERSION", "202407").strip()
        self.root_url = env.get("CEDA_ROOT_URL", "https://data.ceda.ac.uk").strip()
        self.data_dir = Path(env.get("DATA_DIR", "CEDA_Data"))
        self.workers = _env_int(env, "CEDA_WORKERS", 8, 1, 64)
        self.timeout = _env_int(env, "CEDA_TIMEOUT", 30, 1, 600)
        self.qc_fallback = _env_bool(env, "CEDA_QC_FALLBACK", False)

    def validate(self) -> "HarvestConfig":
        """Raise ConfigError unless the config can drive a harvest."""
        from harvester.errors import ConfigError

        if not self.access_token:
            raise ConfigError("CEDA_ACCESS_TOKEN must be set")
        if not self.dataset_version:
            raise ConfigError("CEDA_DATASET_VERSION must not be empty")
        if not self.root_url.startswith(("http://", "https://")):
            raise ConfigError(f"CEDA_ROOT_URL is not an http(s) URL: {self.root_url!r}")
        if not 1 <= self.workers <= 64:
            raise ConfigError(f"workers must be between 1 and 64, got {self.workers}")
        if not 1 <= self.timeout <= 600:
            raise ConfigError(f"timeout must be between 1 and 600, got {self.timeout}")
        return self

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "HarvestConfig":
        """Load ``.env`` (without overriding real env vars) and build a config.

        Without *dotenv_path*, the nearest ``.env`` at or above the working
        directory is used.
        """
        load_dotenv(dotenv_path=dotenv_path or find_dotenv(usecwd=True), override=False)
        return cls()
