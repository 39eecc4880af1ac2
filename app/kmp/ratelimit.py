from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import wraps
from pathlib import Path
from typing import Any

from flask import current_app, jsonify, request

from app.kmp.ip import client_ip


@dataclass
class RateLimiter:
    """
    Fixed-window attempt counter persisted as one small JSON file per key.

    No cross-process locking: two workers hitting the same key at once can lose an increment.
    """

    directory: Path
    max_attempts: int = 5
    decay_minutes: int = 15
    clock: Callable[[], float] = field(default=time.time)

    @property
    def decay_seconds(self) -> int:
        return self.decay_minutes * 60

    @staticmethod
    def key_for(ip: str, path: str) -> str:
        return "rate_limit:" + hashlib.md5(f"{ip}:{path}".encode("utf-8")).hexdigest()

    def _file(self, key: str) -> Path:
        # ":" is not portable in filenames
        return self.directory / key.replace(":", "_")

    def attempts(self, key: str) -> int:
        p = self._file(key)
        if not p.exists():
            return 0
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
            attempts = int(data["attempts"])
            expires_at = float(data["expires_at"])
        except (OSError, ValueError, KeyError, TypeError):
            p.unlink(missing_ok=True)
            return 0
        if expires_at < self.clock():
            p.unlink(missing_ok=True)
            return 0
        return attempts

    def hit(self, key: str) -> int:
        attempts = self.attempts(key) + 1
        payload = {"attempts": attempts, "expires_at": self.clock() + self.decay_seconds}
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        os.replace(tmp, self._file(key))
        return attempts

    def too_many(self, key: str) -> bool:
        return self.attempts(key) >= self.max_attempts

    def clear(self, key: str) -> None:
        self._file(key).unlink(missing_ok=True)


def limiter_for(name: str) -> RateLimiter:
    max_attempts, decay_minutes = current_app.config["RATE_LIMITS"][name]
    return RateLimiter(
        directory=Path(current_app.config["RATE_LIMIT_DIR"]) / name,
        max_attempts=max_attempts,
        decay_minutes=decay_minutes,
    )


def too_many_attempts_response(limiter: RateLimiter):
    resp = jsonify({"error": "Too many attempts. Please try again later.", "retry_after": limiter.decay_seconds})
    resp.status_code = 429
    resp.headers["Retry-After"] = str(limiter.decay_seconds)
    return resp


def rate_limit(name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Count POSTs per client IP + path against the `RATE_LIMITS[name]` budget; 429 once spent.
    GETs pass through untouched so the form can still render.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            if request.method != "POST":
                return fn(*args, **kwargs)
            limiter = limiter_for(name)
            key = RateLimiter.key_for(client_ip(request), request.path)
            if limiter.too_many(key):
                current_app.logger.warning("Rate limit hit: %s path=%s", name, request.path)
                return too_many_attempts_response(limiter)
            limiter.hit(key)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
