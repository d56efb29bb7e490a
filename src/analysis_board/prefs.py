import logging
from pathlib import Path

import msgspec

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Boolean display toggles persisted by key in a JSON file.

    Without a file the store only lives in memory.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._values: dict[str, bool] = {}
        if path is not None and path.exists():
            try:
                self._values = msgspec.json.decode(path.read_bytes(), type=dict[str, bool])
            except msgspec.DecodeError:
                logger.warning(f"Ignoring unreadable preferences file {path}")

    def get(self, key: str, default: bool) -> bool:
        return self._values.get(key, default)

    def set(self, key: str, value: bool) -> None:
        self._values[key] = value
        if self.path is not None:
            self.path.write_bytes(msgspec.json.encode(self._values))


class StoredBooleanProp:
    """Read with a default, write through to the store."""

    def __init__(self, store: PreferenceStore, key: str, default: bool) -> None:
        self.store = store
        self.key = key
        self.default = default

    def __call__(self) -> bool:
        return self.store.get(self.key, self.default)

    def set(self, value: bool) -> None:
        self.store.set(self.key, value)
