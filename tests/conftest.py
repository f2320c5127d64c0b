"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import clawproxy`
works consistently in all tests, and provides an in-memory Redis stand-in
for the subscription / usage store.
"""

import sys
from pathlib import Path
from typing import Any, Dict

import pytest


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))


class FakeRedis:
    """
    Minimal async Redis replacement used for tests.
    Supports the hash commands used by the billing gateway.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def hgetall(self, key: str):
        self._check()
        return {k: str(v) for k, v in self._data.get(key, {}).items()}

    async def hset(self, key: str, mapping: Dict[str, Any]):
        self._check()
        self._data.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def hincrby(self, key: str, field: str, amount: int = 1):
        self._check()
        bucket = self._data.setdefault(key, {})
        bucket[field] = int(bucket.get(field, 0)) + amount
        return bucket[field]

    async def hincrbyfloat(self, key: str, field: str, amount: float = 1.0):
        self._check()
        bucket = self._data.setdefault(key, {})
        bucket[field] = float(bucket.get(field, 0.0)) + amount
        return bucket[field]


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
