"""Static station catalog loader."""

import json
import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd
import requests

from .models import RouteDirection, Station

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "name", "latitude", "longitude", "northboundOrder", "southboundOrder")


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    if value is None or pd.isna(value):
        return False
    return bool(value)


def _parse_landmarks(value) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split("|") if part.strip())
    if isinstance(value, (list, tuple)):
        return tuple(str(part) for part in value)
    # NaN from an empty CSV cell
    return ()


def station_from_record(record: Dict) -> Station:
    """
    Build a Station from a catalog record.

    Args:
        record: Mapping with the catalog's camelCase field names.

    Returns:
        Station object.

    Raises:
        ValueError: If a required field is missing or malformed.
    """
    missing = [name for name in REQUIRED_FIELDS if name not in record or record[name] is None]
    if missing:
        raise ValueError(f"Station record {record.get('id', '?')} is missing fields: {', '.join(missing)}")

    full_name = record.get("fullName")
    if full_name is not None and not isinstance(full_name, str):
        full_name = None  # NaN from an empty CSV cell

    try:
        return Station(
            id=str(record["id"]),
            name=str(record["name"]),
            lat=float(record["latitude"]),
            lng=float(record["longitude"]),
            north_order=int(record["northboundOrder"]),
            south_order=int(record["southboundOrder"]),
            is_terminal=_parse_bool(record.get("isTerminal", False)),
            full_name=full_name,
            landmarks=_parse_landmarks(record.get("landmarks")),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed station record {record.get('id', '?')}: {e}") from e


class StationCatalog:
    """Loads and indexes the route's stations. Loaded once, read-only afterwards."""

    def __init__(self, stations: Optional[Iterable[Station]] = None):
        self.stations: Dict[str, Station] = {}
        self.stations_by_name: Dict[str, List[str]] = {}  # name -> [station ids]
        if stations is not None:
            self._index(list(stations))

    def load_from_json(self, path: str) -> None:
        """Load a catalog file shaped like {"stations": [...]}."""
        logger.info(f"Loading station catalog from {path}")
        with open(path, "r", encoding="utf-8") as f:
            self._load_document(json.load(f))

    def load_from_url(self, url: str, timeout: float = 10.0) -> None:
        """Download and load a JSON catalog."""
        logger.info(f"Downloading station catalog from {url}")
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
            self._load_document(response.json())
        except requests.RequestException as e:
            logger.error(f"Failed to download station catalog: {e}")
            raise

    def load_from_csv(self, path: str) -> None:
        """Load a catalog table with the JSON field names as columns."""
        logger.info(f"Loading station catalog from {path}")
        frame = pd.read_csv(path, dtype={"id": str, "name": str})
        missing = [name for name in REQUIRED_FIELDS if name not in frame.columns]
        if missing:
            raise ValueError(f"Station table {path} is missing columns: {', '.join(missing)}")
        records = frame.to_dict(orient="records")
        self._index([station_from_record(record) for record in records])

    def _load_document(self, document: Dict) -> None:
        if not isinstance(document, dict) or not isinstance(document.get("stations"), list):
            raise ValueError("Station catalog must be an object with a 'stations' list")
        self._index([station_from_record(record) for record in document["stations"]])

    def _index(self, stations: List[Station]) -> None:
        """Validate and index stations, replacing anything loaded before."""
        seen_ids = set()
        for station in stations:
            if station.id in seen_ids:
                raise ValueError(f"Duplicate station id {station.id}")
            seen_ids.add(station.id)

        for direction in RouteDirection:
            ranks = [station.order(direction) for station in stations]
            if len(set(ranks)) != len(ranks):
                raise ValueError(f"Duplicate {direction.value} order ranks in station catalog")

        self.clear()
        for station in stations:
            self.stations[station.id] = station
            self.stations_by_name.setdefault(station.name, []).append(station.id)
        logger.info(f"Loaded {len(self.stations)} stations")

    def get_station(self, station_id: str) -> Station:
        """Get station by id."""
        if station_id not in self.stations:
            raise ValueError(f"Station {station_id} not found")
        return self.stations[station_id]

    def find_stations_by_name(self, name: str) -> List[Station]:
        """Find stations by name (case-insensitive partial match)."""
        results = []
        name_lower = name.lower()

        for station_name, station_ids in self.stations_by_name.items():
            if name_lower in station_name.lower():
                for station_id in station_ids:
                    results.append(self.stations[station_id])

        return results

    def all_stations(self) -> List[Station]:
        return list(self.stations.values())

    def stations_by_direction(self, direction: RouteDirection) -> List[Station]:
        """All stations sorted by their rank in the given direction."""
        return sorted(self.stations.values(), key=lambda s: s.order(direction))

    def stations_after(self, station: Station, direction: RouteDirection) -> List[Station]:
        """Stations that come after the given one in the given direction."""
        current_order = station.order(direction)
        return [s for s in self.stations_by_direction(direction) if s.order(direction) > current_order]

    def __len__(self) -> int:
        return len(self.stations)

    def clear(self) -> None:
        """Clear all loaded data."""
        self.stations.clear()
        self.stations_by_name.clear()
