"""Per-run price-history cache with optional parquet persistence."""

import hashlib
import threading
import time
from pathlib import Path

import pandas as pd

from etf_frontier.config import SETTINGS


class PriceCache:
    """In-memory cache of price series for one optimization run.

    When *cache_dir* is given, series are also written as parquet files and
    reused across runs until they are older than the configured TTL.
    """

    def __init__(self, cache_dir: Path | None = None, ttl_hours: float | None = None):
        self._memory: dict[str, pd.Series] = {}
        self._lock = threading.Lock()
        self.cache_dir = cache_dir
        if self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        if ttl_hours is None:
            ttl_config = SETTINGS.get("cache", {}).get("ttl_hours", {})
            ttl_hours = ttl_config.get("price_historical", 24)
        self.ttl_seconds = ttl_hours * 3600

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, key: str) -> bool:
        return key in self._memory

    def _key_path(self, key: str) -> Path:
        hashed = hashlib.md5(key.encode()).hexdigest()
        return self.cache_dir / f"{hashed}.parquet"

    def get_series(self, key: str) -> pd.Series | None:
        """Return the cached series for *key*, or None on a miss."""
        with self._lock:
            if key in self._memory:
                return self._memory[key]
        if self.cache_dir is None:
            return None
        path = self._key_path(key)
        if not path.exists():
            return None
        if time.time() - path.stat().st_mtime > self.ttl_seconds:
            path.unlink()
            return None
        series = pd.read_parquet(path).iloc[:, 0]
        with self._lock:
            self._memory[key] = series
        return series

    def set_series(self, key: str, series: pd.Series) -> None:
        """Store *series* in memory and, if enabled, on disk."""
        with self._lock:
            self._memory[key] = series
        if self.cache_dir is not None:
            series.to_frame(name="close").to_parquet(self._key_path(key))

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
