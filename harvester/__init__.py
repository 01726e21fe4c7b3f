"""
CEDA MIDAS Open Harvester Package.

Walks the MIDAS Open hourly weather observation catalog on data.ceda.ac.uk
(dataset version -> counties -> stations -> qc-version folder -> files) and
mirrors every capability and data file into a local data store.

Re-exports the public names so callers can do ``from harvester import X``.
"""

# ---- Errors ----
from harvester.errors import (
    ConfigError,
    DownloadError,
    FetchError,
    HarvestError,
    QCVersionNotFound,
    SelectionError,
    StageError,
)

# ---- Transport ----
from harvester.client import CedaClient

# ---- Catalog resolution ----
from harvester.catalog import (
    discover_county_links,
    discover_data_file_links,
    discover_data_folder_link,
    discover_station_links,
    extract_anchors,
    extract_links,
    select_qc_folder,
)

# ---- Orchestration ----
from harvester.orchestrator import ItemError, StageResult, run_stage

# ---- Data store ----
from harvester.datastore import DataStore, FileProperties

# ---- Download and CLI ----
from harvester.core import (
    DownloadSummary,
    Harvester,
    HarvestSummary,
    derive_filename,
    download_all,
    download_file,
    list_files,
    main,
)

__all__ = [
    # Errors
    "ConfigError",
    "DownloadError",
    "FetchError",
    "HarvestError",
    "QCVersionNotFound",
    "SelectionError",
    "StageError",
    # Transport
    "CedaClient",
    # Catalog
    "discover_county_links",
    "discover_data_file_links",
    "discover_data_folder_link",
    "discover_station_links",
    "extract_anchors",
    "extract_links",
    "select_qc_folder",
    # Orchestration
    "ItemError",
    "StageResult",
    "run_stage",
    # Data store
    "DataStore",
    "FileProperties",
    # Download and CLI
    "DownloadSummary",
    "Harvester",
    "HarvestSummary",
    "derive_filename",
    "download_all",
    "download_file",
    "list_files",
    "main",
]
