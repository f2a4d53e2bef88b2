"""
Whole-store snapshots as a portable JSON document.

The export document has one array per collection plus `exportDate` and an
integer `version`. Imports validate the complete payload before touching any
stored data, then replace everything in a single transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Callable, Dict, List, Mapping

from .errors import ImportFormatError
from .models import Exercise, Mesocycle, TrainingSession, UserProfile, Workout, utc_now
from .repository import (
    EXERCISES,
    MESOCYCLES,
    TABLES,
    TRAINING_SESSIONS,
    USER_PROFILES,
    WORKOUTS,
    EntityStore,
)

LOGGER = logging.getLogger(__name__)

EXPORT_VERSION = 2

# Document key for each collection, in import order.
COLLECTIONS: Dict[str, str] = {
    "userProfiles": USER_PROFILES,
    "exercises": EXERCISES,
    "workouts": WORKOUTS,
    "trainingSessions": TRAINING_SESSIONS,
    "mesocycles": MESOCYCLES,
}

# Model used to check and normalize each collection's records on import.
RECORD_MODELS: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
    USER_PROFILES: UserProfile.from_dict,
    EXERCISES: Exercise.from_dict,
    WORKOUTS: Workout.from_dict,
    TRAINING_SESSIONS: TrainingSession.from_dict,
    MESOCYCLES: Mesocycle.from_dict,
}


def export_data(store: EntityStore) -> str:
    """Serialize every collection; records keep their stored field names."""
    payload: Dict[str, Any] = {}
    with store.db.read() as tx:
        for key, table in COLLECTIONS.items():
            payload[key] = tx.table(table).to_list(order_by="created_at")
    payload["exportDate"] = utc_now().isoformat().replace("+00:00", "Z")
    payload["version"] = EXPORT_VERSION
    return json.dumps(payload, indent=2)


def _normalize_record(key: str, index: int, item: Any, table: str) -> Dict[str, Any]:
    if not isinstance(item, dict) or not isinstance(item.get("id"), str) or not item["id"]:
        raise ImportFormatError(
            f"Import data has invalid format: {key}[{index}] must be an object with a string id."
        )
    try:
        return RECORD_MODELS[table](item).to_dict()
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ImportFormatError(f"Import data has invalid format: {key}[{index}]: {exc}") from exc


def _parse_payload(text: str) -> Dict[str, List[Dict[str, Any]]]:
    """Check the whole document and return normalized records per table."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ImportFormatError(f"Failed to parse import data: invalid JSON ({exc}).") from exc
    if not isinstance(data, dict):
        raise ImportFormatError("Import data has invalid format: expected an object.")

    collections: Dict[str, List[Dict[str, Any]]] = {}
    for key, table in COLLECTIONS.items():
        if key not in data:
            collections[table] = []
            continue
        items = data[key]
        if not isinstance(items, list):
            raise ImportFormatError(f"Import data has invalid format: {key} must be an array.")
        collections[table] = [_normalize_record(key, index, item, table) for index, item in enumerate(items)]
    return collections


def import_data(store: EntityStore, text: str) -> Dict[str, int]:
    """
    Replace all stored data with an exported document.

    Raises `ImportFormatError` without modifying the store when the payload
    is malformed. Returns the number of records imported per collection.
    """
    collections = _parse_payload(text)
    counts: Dict[str, int] = {}
    try:
        with store.db.transaction() as tx:
            for table in TABLES:
                tx.table(table).clear()
            for table, docs in collections.items():
                counts[table] = tx.table(table).bulk_add(docs)
    except sqlite3.IntegrityError as exc:
        raise ImportFormatError(f"Import data has invalid format: {exc}.") from exc
    LOGGER.info("Imported %s records.", sum(counts.values()))
    return counts


def export_to_file(store: EntityStore, path: Path | str) -> Path:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile("w", dir=target.parent, delete=False, encoding="utf-8") as tmp:
        tmp.write(export_data(store) + "\n")
        temp_path = Path(tmp.name)
    temp_path.replace(target)
    return target


def import_from_file(store: EntityStore, path: Path | str) -> Dict[str, int]:
    source = Path(path).expanduser()
    return import_data(store, source.read_text(encoding="utf-8"))
