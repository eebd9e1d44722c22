"""
Local persistence — a key-value store partitioned by network.

Each key is one JSON file ({network: value}) under the data directory.
Writes are atomic (write to temp file, then rename) so a crash never leaves
a half-written identity or order list behind.
"""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from core.config import network_name

logger = logging.getLogger("walletd.store")


class JsonStore:
    """Network-keyed JSON store with an in-memory cache."""

    def __init__(self, data_dir: str | Path = "data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, dict[str, Any]] = {}

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def _load(self, key: str) -> dict[str, Any]:
        if key in self._cache:
            return self._cache[key]
        path = self._path(key)
        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to load {path}: {e} — starting empty")
                data = {}
        self._cache[key] = data
        return data

    def get(self, key: str, network: str, default: Any = None) -> Any:
        """Return a copy of the stored value so callers cannot mutate the cache."""
        value = self._load(key).get(network_name(network), default)
        return copy.deepcopy(value)

    def set(self, key: str, network: str, value: Any):
        data = self._load(key)
        data[network_name(network)] = copy.deepcopy(value)
        self._save(key, data)

    def delete(self, key: str, network: str):
        data = self._load(key)
        if network_name(network) in data:
            del data[network_name(network)]
            self._save(key, data)

    def _save(self, key: str, data: dict[str, Any]):
        path = self._path(key)
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=str(self.data_dir), suffix=".tmp", prefix=f"{key}_"
        )
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, str(path))
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            logger.error(f"Failed to save {path}: {e}")
            raise


class TokenStore:
    """Long-lived pairing tokens. A stored token means the network is paired."""

    KEY = "api_tokens"

    def __init__(self, store: JsonStore):
        self._store = store

    def get_token(self, network: str) -> Optional[str]:
        return self._store.get(self.KEY, network) or None

    def set_token(self, network: str, token: str):
        self._store.set(self.KEY, network, token)

    def clear_token(self, network: str):
        self._store.delete(self.KEY, network)

    def is_paired(self, network: str) -> bool:
        return bool(self.get_token(network))
