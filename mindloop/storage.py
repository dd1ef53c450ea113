"""
Whole-document JSON persistence with dot-path access.

A PersistentStore holds one nested JSON document per learner. Reads and
writes address nested fields with dot-separated keys
(e.g. ``"learning_params.exploration_rate"``). Every mutator saves the
whole document immediately unless called with ``defer=True``, so callers
can batch several field writes into one save.

Corrupted documents are not fatal: the store logs a warning and starts
from an empty in-memory document.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import PersistenceError

logger = logging.getLogger(__name__)

_MISSING = object()


class PersistentStore:
    """
    Nested key/value document persisted as a single JSON file.

    Example:
        >>> store = PersistentStore("./data/agent_learning.json")
        >>> store.set("stats.mining.successes", 3)
        >>> store.get("stats.mining.successes")
        3
        >>> store.increment("stats.mining.successes", defer=True)
        >>> store.save()
    """

    def __init__(self, path: str):
        """
        Initialize the store.

        The document is loaded lazily on first access.

        Args:
            path: Location of the JSON document
        """
        self.path = Path(path)
        self.data: Dict[str, Any] = {}
        self.loaded = False

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """
        Load the document from disk.

        Creates and persists an empty document when none exists. A file that
        cannot be read or parsed leaves an empty in-memory document.

        Returns:
            True if a usable document is in memory
        """
        if not self.path.exists():
            self.data = {}
            self.loaded = True
            self.save()
            logger.info(f"Created new data store at {self.path}")
            return True

        try:
            self.data = self._read()
            self.loaded = True
            logger.info(f"Data loaded from {self.path}")
            return True
        except PersistenceError as e:
            logger.warning(f"Failed to load data store, starting empty: {e}")
            self.data = {}
            self.loaded = True
            return False

    def save(self) -> bool:
        """
        Rewrite the entire document to disk.

        Returns:
            True if the write succeeded
        """
        try:
            self._write(self.data)
        except PersistenceError as e:
            logger.error(f"Failed to save data store: {e}")
            return False
        logger.debug(f"Data saved to {self.path}")
        return True

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(str(self.path), str(e)) from e
        if not isinstance(data, dict):
            raise PersistenceError(str(self.path), "document root is not an object")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(str(self.path), str(e)) from e

    def _ensure_loaded(self) -> None:
        if not self.loaded:
            self.load()

    # ------------------------------------------------------------------
    # Dot-path access
    # ------------------------------------------------------------------

    def _walk(self, key: str, create: bool) -> Tuple[Optional[Dict[str, Any]], str]:
        parts = key.split(".")
        node: Any = self.data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if not create:
                    return None, parts[-1]
                child = {}
                node[part] = child
            node = child
        return node, parts[-1]

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read a value.

        Args:
            key: Dot-separated path
            default: Returned when any segment of the path is missing

        Returns:
            The stored value or ``default``
        """
        self._ensure_loaded()
        parent, last = self._walk(key, create=False)
        if parent is None:
            return default
        value = parent.get(last, _MISSING)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any, defer: bool = False) -> bool:
        """Write a value, creating intermediate objects as needed."""
        self._ensure_loaded()
        parent, last = self._walk(key, create=True)
        parent[last] = value
        if not defer:
            self.save()
        return True

    def increment(
        self,
        key: str,
        amount: float = 1,
        default: float = 0,
        defer: bool = False,
    ) -> float:
        """
        Add to a numeric value.

        Non-numeric existing values are replaced by ``default + amount``.

        Returns:
            The new value
        """
        current = self.get(key, default)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            current = default
        new_value = current + amount
        self.set(key, new_value, defer=defer)
        return new_value

    def delete(self, key: str, defer: bool = False) -> bool:
        """
        Remove a value.

        Returns:
            False if the key did not exist
        """
        self._ensure_loaded()
        parent, last = self._walk(key, create=False)
        if parent is None or last not in parent:
            return False
        del parent[last]
        if not defer:
            self.save()
        return True

    def get_all(self) -> Dict[str, Any]:
        """Return a deep copy of the whole document."""
        self._ensure_loaded()
        return copy.deepcopy(self.data)

    def keys(self) -> List[str]:
        self._ensure_loaded()
        return list(self.data.keys())

    def clear(self, defer: bool = False) -> bool:
        """Drop every value in the document."""
        self.data = {}
        self.loaded = True
        if not defer:
            self.save()
        return True

    def delete_file(self) -> bool:
        """Remove the backing file. In-memory data is kept."""
        try:
            if self.path.exists():
                os.remove(self.path)
            return True
        except OSError as e:
            logger.warning(f"Failed to delete data store {self.path}: {e}")
            return False
