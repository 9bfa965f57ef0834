"""JSON-file persistence for engine state"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from oversight.errors import StorageError

logger = logging.getLogger(__name__)


class EngineStore:
    """Reads and writes the engine's durable state.

    One JSON document per concern. Load failures are reported as "no data";
    save failures are logged and swallowed so the in-memory model is never
    rolled back. There is no file locking: two engines sharing a storage
    directory will overwrite each other's updates.
    """

    VERIFICATION_FILE = "verification-memory.json"
    RANKINGS_FILE = "agent-rankings.json"
    STATS_FILE = "engine-stats.json"

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """Get path to a state document"""
        return self.storage_dir / name

    def load(self, name: str) -> dict[str, Any]:
        """Load a state document, or an empty dict if missing or unreadable"""
        try:
            return self.read(name)
        except FileNotFoundError:
            logger.info("No existing %s found, starting fresh", name)
        except StorageError as e:
            logger.warning("Ignoring unreadable state: %s", e)
        return {}

    def read(self, name: str) -> dict[str, Any]:
        """Read a state document, raising on malformed content"""
        filepath = self.path_for(name)
        try:
            with open(filepath, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {filepath}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Malformed state in {filepath}: expected an object")
        return data

    def save(self, name: str, payload: dict[str, Any]) -> bool:
        """Write a state document; returns False if the write failed"""
        filepath = self.path_for(name)
        document = dict(payload)
        document["last_updated"] = datetime.now().isoformat()
        try:
            with open(filepath, "w") as f:
                json.dump(document, f, indent=2, default=str)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not persist %s: %s", filepath, e)
            return False
        return True
