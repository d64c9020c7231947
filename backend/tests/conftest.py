import fnmatch
import threading
from collections import defaultdict

import httpx
import pytest
import redis
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from backend.app.integrations.fipe import FipeClient
from backend.app.models import Base
from backend.app.utils.redis_cache import CatalogCache

FIPE_BASE = "https://fipe.test/api/v1"


class FakeRedis:
    """In-process stand-in for the redis commands the cache and queue use."""

    def __init__(self):
        self._lock = threading.RLock()
        self.strings = {}
        self.lists = defaultdict(list)
        self.hashes = defaultdict(dict)
        self.ttls = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("connection refused")

    # strings
    def get(self, key):
        with self._lock:
            self._check()
            return self.strings.get(key)

    def setex(self, key, ttl, value):
        with self._lock:
            self._check()
            self.strings[key] = value
            self.ttls[key] = ttl
            return True

    def incr(self, key):
        with self._lock:
            self._check()
            value = int(self.strings.get(key) or 0) + 1
            self.strings[key] = str(value)
            return value

    def delete(self, *keys):
        with self._lock:
            self._check()
            deleted = 0
            for key in keys:
                for store in (self.strings, self.lists, self.hashes):
                    if key in store:
                        del store[key]
                        deleted += 1
                self.ttls.pop(key, None)
            return deleted

    def scan_iter(self, match=None, count=None):
        with self._lock:
            self._check()
            keys = list(self.strings) + [k for k, v in self.lists.items() if v] + list(self.hashes)
        for key in keys:
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def ping(self):
        with self._lock:
            self._check()
            return True

    # lists, index 0 is the left end
    def lpush(self, name, *values):
        with self._lock:
            self._check()
            for v in values:
                self.lists[name].insert(0, v)
            return len(self.lists[name])

    def lmove(self, src, dst, wherefrom="LEFT", whereto="RIGHT"):
        with self._lock:
            self._check()
            items = self.lists.get(src)
            if not items:
                return None
            value = items.pop(0) if wherefrom == "LEFT" else items.pop()
            if whereto == "LEFT":
                self.lists[dst].insert(0, value)
            else:
                self.lists[dst].append(value)
            return value

    def lrem(self, name, count, value):
        with self._lock:
            self._check()
            items = self.lists.get(name, [])
            removed = 0
            for i, v in enumerate(list(items)):
                if v == value and (count == 0 or removed < abs(count)):
                    items.remove(v)
                    removed += 1
            return removed

    def llen(self, name):
        with self._lock:
            self._check()
            return len(self.lists.get(name, []))

    def lrange(self, name, start, end):
        with self._lock:
            items = self.lists.get(name, [])
            return list(items[start:] if end == -1 else items[start:end + 1])

    # hashes
    def hincrby(self, name, key, amount=1):
        with self._lock:
            self._check()
            h = self.hashes[name]
            h[key] = int(h.get(key, 0)) + amount
            return h[key]

    def hdel(self, name, *keys):
        with self._lock:
            self._check()
            h = self.hashes.get(name, {})
            return sum(1 for k in keys if h.pop(k, None) is not None)


class FakeFipe:
    """Canned FIPE API behind an httpx.MockTransport."""

    def __init__(self):
        self.brands = {"carros": [], "motos": [], "caminhoes": []}
        self.models = {}
        self.failures = {}
        self.requests = []

    def add_brand(self, vehicle_type, code, name, models=()):
        self.brands[vehicle_type].append({"codigo": code, "nome": name})
        self.models[str(code)] = [{"codigo": c, "nome": n} for c, n in models]

    def fail(self, path, times, status_code=503):
        self.failures[path] = [times, status_code]

    def handler(self, request):
        path = request.url.path[len("/api/v1"):]
        self.requests.append(path)
        if path in self.failures and self.failures[path][0] > 0:
            self.failures[path][0] -= 1
            return httpx.Response(self.failures[path][1], json={"error": "unavailable"})
        parts = path.strip("/").split("/")
        if len(parts) == 2 and parts[1] == "marcas" and parts[0] in self.brands:
            return httpx.Response(200, json=self.brands[parts[0]])
        if len(parts) == 4 and parts[1] == "marcas" and parts[3] == "modelos":
            if parts[2] not in self.models:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"modelos": self.models[parts[2]], "anos": []})
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'catalog.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CatalogCache(fake_redis, prefix="fipe:cache")


@pytest.fixture
def fipe():
    return FakeFipe()


@pytest.fixture
def fipe_client(fipe):
    client = FipeClient(
        FIPE_BASE,
        max_retries=2,
        backoff=0,
        transport=httpx.MockTransport(fipe.handler),
    )
    yield client
    client.close()
