from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

RAW_KEYS: Tuple[str, ...] = (
    "global",
    "topCoins",
    "bitcoinChart",
    "trending",
    "categories",
    "coinbaseSpot",
    "krakenTicker",
    "binancePrice",
)
DERIVED_KEY = "derived"
STORAGE_KEYS: Tuple[str, ...] = RAW_KEYS + (DERIVED_KEY,)


class SnapshotStore(Protocol):
    """Storage contract: one JSON blob per logical key, each write a full replacement."""

    def write(self, key: str, data: Any) -> None: ...

    def read(self, key: str) -> Optional[Any]: ...

    def read_all(self, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]: ...

    def delete_all(self) -> int: ...


def _check_key(key: str) -> str:
    if key not in STORAGE_KEYS:
        raise ValueError(f"Unknown storage key: {key!r}")
    return key


class JsonFileSnapshotStore:
    """Directory of ``<key>.json`` files for local runs."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / f"{_check_key(key)}.json"

    def write(self, key: str, data: Any) -> None:
        path = self.path_for(key)
        body = json.dumps(data, separators=(",", ":"), default=str)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(body)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Persisted %s (%s bytes) to %s", key, len(body), path)

    def read(self, key: str) -> Optional[Any]:
        """Read JSON defensively; missing or corrupted files read as ``None``."""
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Snapshot file unreadable at %s: %s", path, exc)
            return None

    def read_all(self, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        selected = STORAGE_KEYS if keys is None else tuple(keys)
        found: Dict[str, Any] = {}
        for key in selected:
            value = self.read(key)
            if value is not None:
                found[key] = value
        return found

    def delete_all(self) -> int:
        removed = 0
        for key in STORAGE_KEYS:
            path = self.root / f"{key}.json"
            if path.exists():
                path.unlink()
                removed += 1
        logger.info("Deleted %s snapshot files from %s", removed, self.root)
        return removed
