"""PersistCache File Engine - File-Based Persistence Engine.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Any, List, Mapping, Optional

from persistcache_core.protocol.serializer import Serializer, get_serializer
from persistcache_core.store.backend import StorageEngine
from persistcache_core.store.queue import WriteQueue
from persistcache_core.ttl import Millis, expiry_from_millis, is_expired
from persistcache_core.types import PersistedRecord

logger = logging.getLogger(__name__)

DEFAULT_DIR = ".persistcache/storage"


class FileEngine(StorageEngine):
    """File-based persistence engine.

    Persists each record to its own file for durability across restarts.
    Uses a sharded directory structure keyed by a hash of the record key.

    Features:
    - Sharded directories (256 shards, created on demand)
    - Atomic writes (temp file + rename)
    - Configurable serialization
    - Expired records pruned on load

    Options:
        dir: Base directory (default ``.persistcache/storage``)
        prefix: Sub-directory of ``dir`` for this cache
        serializer: ``pickle`` (default), ``json`` or ``msgpack``

    Example:
        engine = FileEngine({"dir": "/var/cache/myapp", "prefix": "users"})
        records = await engine.load()
        await engine.set("key", "data", 60_000)
    """

    TEMP_SUFFIX = ".tmp"

    def __init__(self, options=None, coordinator=None):
        super().__init__(options, coordinator)
        self.base_path = Path(self.location)
        self.serializer: Serializer = get_serializer(self.options.get("serializer"))
        self._queue = WriteQueue(f"file:{self.base_path}")

    @classmethod
    def location_for(cls, options: Mapping[str, Any]) -> str:
        base = Path(options.get("dir") or DEFAULT_DIR)
        prefix = options.get("prefix")
        if prefix:
            base = base / prefix
        return str(base.resolve())

    def _get_path(self, key: str) -> Path:
        """Get file path for key, sharded on the first hash byte."""
        filename = hashlib.sha256(key.encode()).hexdigest()
        return self.base_path / filename[:2] / filename

    def _record_files(self) -> List[Path]:
        if not self.base_path.exists():
            return []
        files = []
        for shard_dir in self.base_path.iterdir():
            if shard_dir.is_dir():
                files.extend(
                    f for f in shard_dir.iterdir()
                    if f.is_file() and f.suffix != self.TEMP_SUFFIX
                )
        return files

    def _read(self, path: Path) -> Optional[PersistedRecord]:
        if not path.exists():
            return None
        return self.serializer.decode(path.read_bytes())

    def _write(self, record: PersistedRecord) -> None:
        path = self._get_path(record.key)
        temp_path = path.with_suffix(self.TEMP_SUFFIX)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.serializer.encode(record)
        try:
            with open(temp_path, "wb") as f:
                f.write(data)
            os.replace(temp_path, path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _load_sync(self) -> List[PersistedRecord]:
        self.base_path.mkdir(parents=True, exist_ok=True)
        records = []
        removed = 0

        for file_path in self._record_files():
            try:
                record = self._read(file_path)
            except Exception as e:
                logger.error(f"Skipping unreadable record {file_path}: {e}")
                self._stats.record_error(str(e))
                continue
            if record is None:
                continue
            if is_expired(record.expires_at):
                file_path.unlink()
                removed += 1
                continue
            records.append(record)

        if removed:
            logger.debug(f"Removed {removed} expired records from {self.base_path}")
        return records

    def _delete_sync(self, key: str) -> None:
        path = self._get_path(key)
        if path.exists():
            path.unlink()
            self._stats.deletes += 1

    def _ttl_sync(self, key: str, ttl: Optional[Millis]) -> None:
        record = self._read(self._get_path(key))
        if record is None:
            return
        self._write(record._replace(expires_at=expiry_from_millis(ttl)))

    def _flush_sync(self) -> int:
        count = 0
        for file_path in self._record_files():
            file_path.unlink()
            count += 1
        return count

    async def load(self) -> List[PersistedRecord]:
        records = await self._queue.run_blocking(self._load_sync)
        self._stats.reads += len(records)
        logger.debug(f"Loaded {len(records)} records from {self.base_path}")
        return records

    async def set(self, key: str, value: Any, ttl: Optional[Millis] = None) -> Any:
        record = PersistedRecord(key, value, expiry_from_millis(ttl))
        await self._queue.run_blocking(self._write, record)
        self._stats.writes += 1
        return value

    async def delete(self, key: str) -> None:
        await self._queue.run_blocking(self._delete_sync, key)

    async def ttl(self, key: str, ttl: Optional[Millis] = None) -> None:
        await self._queue.run_blocking(self._ttl_sync, key, ttl)

    async def flush(self) -> None:
        count = await self._queue.run_blocking(self._flush_sync)
        logger.debug(f"Flushed {count} records from {self.base_path}")

    async def close(self) -> None:
        # Wait for queued writes to land
        await self._queue.run(lambda: None)

    def disk_usage(self) -> int:
        """Get total disk usage in bytes."""
        return sum(f.stat().st_size for f in self._record_files())

    def __repr__(self) -> str:
        return f"FileEngine(path={self.base_path})"


__all__ = ["FileEngine", "DEFAULT_DIR"]
