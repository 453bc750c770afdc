from datetime import datetime

import redis

from core.config import settings


class _FakeRedis:
    """In-process stand-in used when TESTING is set."""

    def __init__(self):
        self._store = {}
        self._exp = {}

    def _cleanup(self, key):
        exp = self._exp.get(key)
        if exp is not None and datetime.utcnow().timestamp() > exp:
            self._store.pop(key, None)
            self._exp.pop(key, None)

    def setex(self, key, ttl, value):
        self._store[key] = value
        self._exp[key] = datetime.utcnow().timestamp() + int(ttl)

    def get(self, key):
        self._cleanup(key)
        return self._store.get(key)

    def exists(self, key):
        self._cleanup(key)
        return 1 if key in self._store else 0

    def incr(self, key):
        self._cleanup(key)
        value = int(self._store.get(key, 0)) + 1
        self._store[key] = str(value)
        return value

    def expire(self, key, ttl):
        if key not in self._store:
            return False
        self._exp[key] = datetime.utcnow().timestamp() + int(ttl)
        return True

    def ttl(self, key):
        self._cleanup(key)
        if key not in self._store:
            return -2
        if key not in self._exp:
            return -1
        remain = int(self._exp[key] - datetime.utcnow().timestamp())
        return max(remain, 0)

    def delete(self, key):
        self._store.pop(key, None)
        self._exp.pop(key, None)

    def flushall(self):
        self._store.clear()
        self._exp.clear()


redis_client = _FakeRedis() if settings.TESTING else redis.from_url(settings.REDIS_URL, decode_responses=True)
