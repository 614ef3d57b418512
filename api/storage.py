"""
Persistence layer for the bookstore collections.

Each collection lives in its own JSON document of the form
``{"<collection>": [...]}`` and is rewritten wholesale on every save.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]


class StorageError(Exception):
    """Raised when a collection cannot be loaded or saved."""


class CollectionStorage(ABC):
    """Loads and saves one named collection of JSON records."""

    def __init__(self, collection: str):
        self.collection = collection

    @abstractmethod
    def load(self) -> List[Record]:
        """Return every record of the collection."""

    @abstractmethod
    def save(self, records: List[Record]) -> None:
        """Replace the stored collection with ``records``."""


class JsonFileStorage(CollectionStorage):
    """Collection stored as a pretty-printed JSON file."""

    def __init__(self, path, collection: str):
        super().__init__(collection)
        self.path = Path(path)

    def load(self) -> List[Record]:
        """
        Load the collection from disk.

        A missing file is an empty collection. Malformed content raises
        StorageError.
        """
        if not self.path.exists():
            logger.warning("Data file not found, starting empty", path=str(self.path), collection=self.collection)
            return []

        try:
            with self.path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to read data file", path=str(self.path), error=str(e))
            raise StorageError(f"Cannot read {self.path}: {e}") from e

        if not isinstance(document, dict) or not isinstance(document.get(self.collection), list):
            raise StorageError(f"{self.path} has no '{self.collection}' list")

        records = document[self.collection]
        logger.info("Collection loaded", path=str(self.path), collection=self.collection, count=len(records))
        return records

    def save(self, records: List[Record]) -> None:
        """Atomically rewrite the whole file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({self.collection: records}, f, indent=2, ensure_ascii=False, allow_nan=False)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error("Failed to write data file", path=str(self.path), error=str(e))
            raise StorageError(f"Cannot write {self.path}: {e}") from e

        logger.debug("Collection saved", path=str(self.path), collection=self.collection, count=len(records))


class InMemoryStorage(CollectionStorage):
    """Collection kept in memory, for tests and ephemeral runs."""

    def __init__(self, collection: str, records: Optional[List[Record]] = None):
        super().__init__(collection)
        self.records: List[Record] = json.loads(json.dumps(records or []))
        self.save_count = 0

    def load(self) -> List[Record]:
        return json.loads(json.dumps(self.records))

    def save(self, records: List[Record]) -> None:
        # Detached copy of the caller's records
        try:
            self.records = json.loads(json.dumps(records, allow_nan=False))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot store {self.collection}: {e}") from e
        self.save_count += 1
