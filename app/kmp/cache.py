from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class FileCache:
    """Tiny JSON-on-disk TTL cache. Values must be JSON serialisable."""

    directory: Path
    default_ttl: int = 3600
    clock: Callable[[], float] = field(default=time.time)

    def _file(self, key: str) -> Path:
        return self.directory / (hashlib.md5(key.encode("utf-8")).hexdigest() + ".cache")

    def get(self, key: str) -> Any:
        p = self._file(key)
        if not p.exists():
            return None
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
            expires_at = float(data["expires_at"])
        except (OSError, ValueError, KeyError, TypeError):
            p.unlink(missing_ok=True)
            return None
        if expires_at < self.clock():
            p.unlink(missing_ok=True)
            return None
        return data.get("value")

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"value": value, "expires_at": self.clock() + ttl}, f)
        os.replace(tmp, self._file(key))

    def remember(self, key: str, callback: Callable[[], Any], ttl: int | None = None) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = callback()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def forget(self, key: str) -> None:
        self._file(key).unlink(missing_ok=True)

    def flush(self) -> None:
        if not self.directory.exists():
            return
        for p in self.directory.iterdir():
            if p.is_file():
                p.unlink(missing_ok=True)


def cache_from_config(config: dict) -> FileCache:
    root = config.get("CACHE_DIR") or os.path.join(os.getcwd(), "var", "cache")
    return FileCache(directory=Path(root))
