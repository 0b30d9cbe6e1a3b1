"""Process-durable boolean flags kept in a small JSON file."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Union

LOGGER = logging.getLogger(__name__)

ZONE_CREATED_FLAG = "isZoneCreated"


class FlagStore:
    """Key/value store of booleans backed by a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, bool]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            LOGGER.warning("Resetting unreadable flag file %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: bool = False) -> bool:
        with self._lock:
            return bool(self._load().get(key, default))

    def set(self, key: str, value: bool) -> None:
        with self._lock:
            data = self._load()
            data[key] = bool(value)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self._path)
        LOGGER.debug("Flag %s set to %s", key, value)
