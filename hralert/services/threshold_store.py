"""
Persistent alert threshold.

The threshold is a simple local preference: best-effort persistence, no
validation on write, and a default applied at read time whenever nothing has
been stored yet.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

THRESHOLD_KEY = "HeartRateThreshold"
DEFAULT_THRESHOLD_BPM = 110.0


class KeyValueStore(Protocol):
    """Persistent key-value preferences."""

    def get_double(self, key: str) -> float | None: ...

    def set_double(self, key: str, value: float) -> None: ...


class InMemoryKeyValueStore:
    """Process-local preferences, lost on restart."""

    def __init__(self, initial: dict[str, float] | None = None) -> None:
        self._values: dict[str, float] = dict(initial or {})

    def get_double(self, key: str) -> float | None:
        return self._values.get(key)

    def set_double(self, key: str, value: float) -> None:
        self._values[key] = value


class JsonFileKeyValueStore:
    """
    Preferences kept in a small JSON document.

    Writes go to a temporary file in the same directory which then replaces the
    original, so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, float]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"Preferences file {self.path} does not contain a JSON object")
        return data

    def get_double(self, key: str) -> float | None:
        value = self._read().get(key)
        return None if value is None else float(value)

    def set_double(self, key: str, value: float) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class ThresholdStore:
    """Reads and writes the alert threshold through a key-value backend."""

    def __init__(
        self,
        backend: KeyValueStore,
        default: float = DEFAULT_THRESHOLD_BPM,
        key: str = THRESHOLD_KEY,
    ) -> None:
        self.backend = backend
        self.default = default
        self.key = key
        self.logger = logger.bind(component="threshold_store", key=key)

    def get(self) -> float:
        try:
            value = self.backend.get_double(self.key)
        except Exception as e:
            self.logger.warning("threshold_read_failed", error=str(e))
            return self.default
        # 0.0 is what an unset platform preference reads back as
        if value is None or value == 0:
            return self.default
        return float(value)

    def set(self, value: float) -> None:
        try:
            self.backend.set_double(self.key, float(value))
        except Exception as e:
            self.logger.warning("threshold_write_failed", error=str(e), value=value)
            return
        self.logger.debug("threshold_saved", value=value)
