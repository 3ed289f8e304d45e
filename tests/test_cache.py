from datetime import datetime, timedelta, timezone

import pytest
import redis

from taxappeal.core.cache import (
    LocalMemo,
    PropertyCache,
    RedisCacheStore,
    SQLiteCacheStore,
    is_valid,
)
from taxappeal.core.errors import CacheUnavailable
from taxappeal.data.base import AddressIdentity, DataSource, PropertyRecord

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
TTL = timedelta(days=30)
HOME = AddressIdentity("12 Elm St", "Springfield", "IL", "62704")


def make_record(identity=HOME, source=DataSource.RENTCAST, **values):
    values.setdefault("assessed_value", 410000)
    return PropertyRecord(
        street=identity.street,
        city=identity.city,
        state=identity.state,
        zip_code=identity.zip_code,
        data_source=source,
        **values,
    )


def test_is_valid_is_closed_open():
    assert is_valid(NOW, TTL, now=NOW)
    assert is_valid(NOW, TTL, now=NOW + TTL - timedelta(microseconds=1))
    assert not is_valid(NOW, TTL, now=NOW + TTL)
    assert not is_valid(NOW, TTL, now=NOW + TTL + timedelta(seconds=1))


def test_identity_key_normalizes_case_and_whitespace():
    other = AddressIdentity("  12   ELM st", "SPRINGFIELD ", "il", "62704")
    assert other.key == HOME.key
    assert AddressIdentity("12 Elm St", "Shelbyville", "IL", "62704").key != HOME.key


def test_sqlite_put_get_roundtrip_and_upsert(store):
    store.put(HOME, make_record(), DataSource.RENTCAST, now=NOW)
    entry = store.get(AddressIdentity("12 elm st", "springfield", "il", "62704"))
    assert entry.data_source is DataSource.RENTCAST
    assert entry.payload.assessed_value == 410000
    assert entry.written_at == NOW

    later = NOW + timedelta(days=3)
    store.put(HOME, make_record(source=DataSource.ATTOM, assessed_value=399000), DataSource.ATTOM, now=later)
    entry = store.get(HOME)
    assert entry.data_source is DataSource.ATTOM
    assert entry.payload.assessed_value == 399000
    assert entry.written_at == later
    assert store.statistics(TTL, now=later)["total_entries"] == 1


def test_sqlite_sweep_and_statistics(store):
    fresh = AddressIdentity("1 Fresh Rd", "Springfield")
    stale = AddressIdentity("2 Stale Rd", "Springfield")
    boundary = AddressIdentity("3 Boundary Rd", "Springfield")
    store.put(fresh, make_record(fresh), DataSource.RENTCAST, now=NOW - timedelta(days=1))
    store.put(stale, make_record(stale), DataSource.SYNTHETIC, now=NOW - timedelta(days=45))
    store.put(boundary, make_record(boundary), DataSource.ATTOM, now=NOW - TTL)

    assert store.statistics(TTL, now=NOW) == {"total_entries": 3, "valid_entries": 1, "expired_entries": 2}
    assert store.sweep_expired(TTL, now=NOW) == 2
    assert store.sweep_expired(TTL, now=NOW) == 0
    assert store.get(fresh) is not None
    assert store.get(stale) is None


def test_sqlite_unreachable_path_raises_cache_unavailable(tmp_path):
    broken = SQLiteCacheStore(str(tmp_path / "missing-dir" / "cache.sqlite3"))
    with pytest.raises(CacheUnavailable):
        broken.get(HOME)


def test_property_cache_reads_through_memo_then_store(store):
    cache = PropertyCache(store, LocalMemo(), ttl=TTL)
    store.put(HOME, make_record(), DataSource.RENTCAST, now=NOW)

    entry = cache.get(HOME, now=NOW + timedelta(days=1))
    assert entry is not None
    assert len(cache.memo) == 1

    # Memo can be dropped at any time without changing the answer.
    cache.clear_memo()
    assert cache.get(HOME, now=NOW + timedelta(days=1)).payload == entry.payload


def test_property_cache_never_serves_stale_entries(store):
    cache = PropertyCache(store, LocalMemo(), ttl=TTL)
    cache.put(HOME, make_record(), now=NOW)
    assert cache.get(HOME, now=NOW + TTL) is None


def test_property_cache_memo_miss_consults_store(store):
    writer = PropertyCache(store, LocalMemo(), ttl=TTL)
    reader = PropertyCache(store, LocalMemo(), ttl=TTL)
    writer.put(HOME, make_record(), now=NOW)
    assert reader.get(HOME, now=NOW).data_source is DataSource.RENTCAST


class FakeRedis:
    """Just enough of redis.Redis for the store (strings + one sorted set)."""

    def __init__(self, fail=False):
        self.strings = {}
        self.zsets = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis down")

    @staticmethod
    def _bound(value):
        if value in ("-inf", "+inf"):
            return (float(value), False)
        if isinstance(value, str) and value.startswith("("):
            return (float(value[1:]), True)
        return (float(value), False)

    def _in_range(self, score, lo, hi):
        lo_v, lo_x = self._bound(lo)
        hi_v, hi_x = self._bound(hi)
        above = score > lo_v if lo_x else score >= lo_v
        below = score < hi_v if hi_x else score <= hi_v
        return above and below

    def get(self, key):
        self._check()
        return self.strings.get(key)

    def set(self, key, value):
        self._check()
        self.strings[key] = value

    def delete(self, *keys):
        self._check()
        for key in keys:
            self.strings.pop(key, None)
            self.zsets.pop(key, None)

    def zadd(self, name, mapping):
        self._check()
        self.zsets.setdefault(name, {}).update(mapping)

    def zrem(self, name, *members):
        self._check()
        for member in members:
            self.zsets.get(name, {}).pop(member, None)

    def zcard(self, name):
        self._check()
        return len(self.zsets.get(name, {}))

    def zcount(self, name, lo, hi):
        self._check()
        return sum(1 for s in self.zsets.get(name, {}).values() if self._in_range(s, lo, hi))

    def zrangebyscore(self, name, lo, hi):
        self._check()
        return [m for m, s in self.zsets.get(name, {}).items() if self._in_range(s, lo, hi)]

    def zrange(self, name, start, end):
        self._check()
        return list(self.zsets.get(name, {}))

    def pipeline(self):
        parent = self

        class Pipeline:
            def __init__(self):
                self.ops = []

            def __getattr__(self, attr):
                def queue(*args, **kwargs):
                    self.ops.append((attr, args, kwargs))
                    return self
                return queue

            def execute(self):
                return [getattr(parent, name)(*args, **kwargs) for name, args, kwargs in self.ops]

        return Pipeline()


def test_redis_store_matches_sqlite_semantics():
    store = RedisCacheStore(FakeRedis())
    old = AddressIdentity("2 Stale Rd", "Springfield")
    store.put(HOME, make_record(), DataSource.RENTCAST, now=NOW)
    store.put(old, make_record(old), DataSource.SYNTHETIC, now=NOW - timedelta(days=31))

    assert store.get(HOME).payload.assessed_value == 410000
    assert store.statistics(TTL, now=NOW) == {"total_entries": 2, "valid_entries": 1, "expired_entries": 1}
    assert store.sweep_expired(TTL, now=NOW) == 1
    assert store.get(old) is None
    store.clear()
    assert store.statistics(TTL, now=NOW)["total_entries"] == 0


def test_redis_errors_become_cache_unavailable():
    store = RedisCacheStore(FakeRedis(fail=True))
    with pytest.raises(CacheUnavailable) as info:
        store.get(HOME)
    assert info.value.operation == "get"
    with pytest.raises(CacheUnavailable):
        store.put(HOME, make_record(), DataSource.RENTCAST)
