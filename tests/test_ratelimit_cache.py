"""Tests for the file-backed rate limiter and cache."""
import json

from app.kmp.cache import FileCache
from app.kmp.ratelimit import RateLimiter


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_key_is_stable_per_ip_and_path():
    k = RateLimiter.key_for("10.0.0.1", "/login")
    assert k.startswith("rate_limit:")
    assert k == RateLimiter.key_for("10.0.0.1", "/login")
    assert k != RateLimiter.key_for("10.0.0.2", "/login")
    assert k != RateLimiter.key_for("10.0.0.1", "/register")


def test_limiter_counts_until_budget_spent(tmp_path):
    limiter = RateLimiter(directory=tmp_path, max_attempts=3, decay_minutes=15, clock=Clock())
    key = RateLimiter.key_for("10.0.0.1", "/login")

    assert limiter.attempts(key) == 0
    assert [limiter.hit(key) for _ in range(3)] == [1, 2, 3]
    assert limiter.too_many(key)


def test_limiter_window_expires(tmp_path):
    clock = Clock()
    limiter = RateLimiter(directory=tmp_path, max_attempts=2, decay_minutes=15, clock=clock)
    key = RateLimiter.key_for("10.0.0.1", "/login")
    limiter.hit(key)
    limiter.hit(key)
    assert limiter.too_many(key)

    clock.now += 15 * 60 + 1
    assert limiter.attempts(key) == 0
    assert not limiter.too_many(key)


def test_limiter_clear_and_file_naming(tmp_path):
    limiter = RateLimiter(directory=tmp_path, clock=Clock())
    key = RateLimiter.key_for("10.0.0.1", "/login")
    limiter.hit(key)

    files = [p.name for p in tmp_path.iterdir()]
    assert files == [key.replace(":", "_")]

    limiter.clear(key)
    assert limiter.attempts(key) == 0
    assert list(tmp_path.iterdir()) == []


def test_limiter_treats_corrupt_file_as_empty(tmp_path):
    limiter = RateLimiter(directory=tmp_path, clock=Clock())
    key = RateLimiter.key_for("10.0.0.1", "/login")
    (tmp_path / key.replace(":", "_")).write_text("{not json", encoding="utf-8")
    assert limiter.attempts(key) == 0
    assert limiter.hit(key) == 1


def test_cache_set_get_and_expiry(tmp_path):
    clock = Clock()
    cache = FileCache(directory=tmp_path, default_ttl=60, clock=clock)
    cache.set("testimonials", [{"name": "Helen"}])
    assert cache.get("testimonials") == [{"name": "Helen"}]

    clock.now += 61
    assert cache.get("testimonials") is None
    assert list(tmp_path.glob("*.cache")) == []


def test_cache_remember_calls_once(tmp_path):
    cache = FileCache(directory=tmp_path, clock=Clock())
    calls = []

    def load():
        calls.append(1)
        return {"n": len(calls)}

    assert cache.remember("k", load) == {"n": 1}
    assert cache.remember("k", load) == {"n": 1}
    assert len(calls) == 1


def test_cache_remember_does_not_store_none(tmp_path):
    cache = FileCache(directory=tmp_path, clock=Clock())
    assert cache.remember("k", lambda: None) is None
    assert list(tmp_path.glob("*.cache")) == []


def test_cache_forget_and_flush(tmp_path):
    cache = FileCache(directory=tmp_path, clock=Clock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.forget("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.flush()
    assert cache.get("b") is None
    FileCache(directory=tmp_path / "missing").flush()


def test_cache_file_format(tmp_path):
    cache = FileCache(directory=tmp_path, clock=Clock(100.0))
    cache.set("a", "value", ttl=10)
    [p] = tmp_path.glob("*.cache")
    assert json.loads(p.read_text(encoding="utf-8")) == {"value": "value", "expires_at": 110.0}
