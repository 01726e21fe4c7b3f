"""
Local data store layout for harvested MIDAS Open files.

    <root>/raw/capability   station capability descriptors
    <root>/raw/data         hourly observation files
    <root>/db               database files written by downstream tools

Directories are created the first time they are asked for.
"""

from dataclasses import dataclass
from pathlib import Path


class DataStore:
    """Represents the harvest output tree on the local filesystem."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _ensure(self, relative: str) -> Path:
        path = self.root / relative
        path.mkdir(parents=True, exist_ok=True)
        return path

    def capability_dir(self) -> Path:
        """Path to where the capability descriptors are stored."""
        return self._ensure("raw/capability")

    def rawdata_dir(self) -> Path:
        """Path to where the observation data files are stored."""
        return self._ensure("raw/data")

    def db_dir(self) -> Path:
        """Path to where the database is stored."""
        return self._ensure("db")

    def dir_for(self, filename: str) -> Path:
        """Destination directory for a downloaded file."""
        if "capability" in filename:
            return self.capability_dir()
        return self.rawdata_dir()

    def list_data_files(self) -> list["FileProperties"]:
        """FileProperties of every CSV in the raw data directory, sorted by name.

        Files whose names do not follow the MIDAS naming scheme are left out.
        """
        found = []
        for path in sorted(self.rawdata_dir().glob("*.csv")):
            try:
                found.append(FileProperties.from_path(path))
            except ValueError:
                continue
        return found


@dataclass(frozen=True)
class FileProperties:
    """Properties of a data file, read from its filename.

    ``midas-open_uk-hourly-weather-obs_dv-202407_antrim_01448_portglenone_qcv-1_1994.csv``
    """

    path: Path
    collection_name: str
    title: str
    dataset_version: str
    county_name: str
    station_id: int
    station_name: str
    qcv: str
    year: int

    @classmethod
    def from_path(cls, path: Path | str) -> "FileProperties":
        """Parse a data file path.

        Raises:
            ValueError: if the name does not have the eight expected fields
                        or the station id / year are not numeric.
        """
        path = Path(path)
        parts = path.stem.split("_")
        if len(parts) != 8:
            raise ValueError(f"Unexpected data filename: {path.name}")
        collection, title, version, county, station_id, station, qcv, year = parts
        return cls(
            path=path,
            collection_name=collection,
            title=title,
            dataset_version=version,
            county_name=county,
            station_id=int(station_id),
            station_name=station,
            qcv=qcv,
            year=int(year),
        )
