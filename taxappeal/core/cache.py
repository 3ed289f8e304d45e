"""
Two-layer property cache.

The durable store (SQLite by default, Redis when CACHE_BACKEND=redis) holds one
entry per normalized address. A per-process TTLCache memo shadows recent reads;
it only saves round trips and can be dropped at any time.
"""
import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import redis
from cachetools import TTLCache

from .config import settings
from .errors import CacheUnavailable
from .metrics import CACHE_LOOKUPS
from ..data.base import AddressIdentity, DataSource, PropertyRecord

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def is_valid(written_at: datetime, ttl: timedelta, now: Optional[datetime] = None) -> bool:
    """Fresh on [written_at, written_at + ttl); stale from the boundary on."""
    now = now or utcnow()
    return (now - written_at) < ttl

@dataclass(frozen=True)
class CacheEntry:
    identity: AddressIdentity
    data_source: DataSource
    payload: PropertyRecord
    written_at: datetime

def _encode(identity: AddressIdentity, payload: PropertyRecord, written_at: datetime) -> str:
    return json.dumps(
        {
            "identity": {
                "street": identity.street,
                "city": identity.city,
                "state": identity.state,
                "zip_code": identity.zip_code,
            },
            "data_source": payload.data_source.value,
            "payload": payload.to_dict(),
            "written_at": written_at.timestamp(),
        },
        separators=(",", ":"),
        default=str,
    )

def _decode(raw: str) -> CacheEntry:
    doc = json.loads(raw)
    return CacheEntry(
        identity=AddressIdentity(**doc["identity"]),
        data_source=DataSource(doc["data_source"]),
        payload=PropertyRecord.from_dict(doc["payload"]),
        written_at=datetime.fromtimestamp(doc["written_at"], timezone.utc),
    )

# ----- Durable stores -----

class CacheStore(Protocol):
    def get(self, identity: AddressIdentity) -> Optional[CacheEntry]: ...
    def put(self, identity: AddressIdentity, payload: PropertyRecord, data_source: DataSource,
            now: Optional[datetime] = None) -> CacheEntry: ...
    def sweep_expired(self, ttl: timedelta, now: Optional[datetime] = None) -> int: ...
    def statistics(self, ttl: timedelta, now: Optional[datetime] = None) -> dict: ...
    def clear(self) -> None: ...

class SQLiteCacheStore(CacheStore):
    """
    Single-table store. The connection is opened lazily so an unreachable
    database surfaces as CacheUnavailable on use, not at startup.
    """
    def __init__(self, path: str):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self.path, check_same_thread=False)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS property_data_cache (
                    cache_key TEXT PRIMARY KEY,
                    entry TEXT NOT NULL,
                    data_source TEXT NOT NULL,
                    written_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_property_data_cache_written_at "
                "ON property_data_cache(written_at)"
            )
            conn.commit()
            self._conn = conn
        return self._conn

    def _run(self, operation: str, sql: str, params: tuple = ()):
        with self._lock:
            try:
                conn = self._connection()
                cur = conn.execute(sql, params)
                rows = cur.fetchall()
                conn.commit()
                return rows, cur.rowcount
            except sqlite3.Error as exc:
                raise CacheUnavailable(operation, exc) from exc

    def get(self, identity: AddressIdentity) -> Optional[CacheEntry]:
        rows, _ = self._run(
            "get", "SELECT entry FROM property_data_cache WHERE cache_key = ?", (identity.key,)
        )
        return _decode(rows[0][0]) if rows else None

    def put(self, identity, payload, data_source, now=None) -> CacheEntry:
        written_at = now or utcnow()
        self._run(
            "put",
            "INSERT OR REPLACE INTO property_data_cache (cache_key, entry, data_source, written_at) "
            "VALUES (?, ?, ?, ?)",
            (identity.key, _encode(identity, payload, written_at), DataSource(data_source).value,
             written_at.timestamp()),
        )
        return CacheEntry(identity, DataSource(data_source), payload, written_at)

    def sweep_expired(self, ttl, now=None) -> int:
        cutoff = ((now or utcnow()) - ttl).timestamp()
        _, removed = self._run(
            "sweep", "DELETE FROM property_data_cache WHERE written_at <= ?", (cutoff,)
        )
        return max(removed, 0)

    def statistics(self, ttl, now=None) -> dict:
        cutoff = ((now or utcnow()) - ttl).timestamp()
        rows, _ = self._run(
            "statistics",
            "SELECT COUNT(*), COALESCE(SUM(CASE WHEN written_at > ? THEN 1 ELSE 0 END), 0) "
            "FROM property_data_cache",
            (cutoff,),
        )
        total, valid = rows[0]
        return {"total_entries": total, "valid_entries": valid, "expired_entries": total - valid}

    def clear(self) -> None:
        self._run("clear", "DELETE FROM property_data_cache")

class RedisCacheStore(CacheStore):
    """
    One JSON string per address plus a sorted set of write times, which makes
    sweep and statistics range queries instead of key scans.
    """
    ENTRY_PREFIX = "property:entry:"
    WRITTEN_INDEX = "property:written"

    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def _entry_key(self, cache_key: str) -> str:
        return f"{self.ENTRY_PREFIX}{cache_key}"

    def get(self, identity: AddressIdentity) -> Optional[CacheEntry]:
        try:
            raw = self.client.get(self._entry_key(identity.key))
        except redis.RedisError as exc:
            raise CacheUnavailable("get", exc) from exc
        return _decode(raw) if raw else None

    def put(self, identity, payload, data_source, now=None) -> CacheEntry:
        written_at = now or utcnow()
        try:
            pipe = self.client.pipeline()
            pipe.set(self._entry_key(identity.key), _encode(identity, payload, written_at))
            pipe.zadd(self.WRITTEN_INDEX, {identity.key: written_at.timestamp()})
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable("put", exc) from exc
        return CacheEntry(identity, DataSource(data_source), payload, written_at)

    def sweep_expired(self, ttl, now=None) -> int:
        cutoff = ((now or utcnow()) - ttl).timestamp()
        try:
            keys = self.client.zrangebyscore(self.WRITTEN_INDEX, "-inf", cutoff)
            if not keys:
                return 0
            pipe = self.client.pipeline()
            pipe.delete(*[self._entry_key(k) for k in keys])
            pipe.zrem(self.WRITTEN_INDEX, *keys)
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable("sweep", exc) from exc
        return len(keys)

    def statistics(self, ttl, now=None) -> dict:
        cutoff = ((now or utcnow()) - ttl).timestamp()
        try:
            total = int(self.client.zcard(self.WRITTEN_INDEX))
            valid = int(self.client.zcount(self.WRITTEN_INDEX, f"({cutoff}", "+inf"))
        except redis.RedisError as exc:
            raise CacheUnavailable("statistics", exc) from exc
        return {"total_entries": total, "valid_entries": valid, "expired_entries": total - valid}

    def clear(self) -> None:
        try:
            keys = self.client.zrange(self.WRITTEN_INDEX, 0, -1)
            pipe = self.client.pipeline()
            if keys:
                pipe.delete(*[self._entry_key(k) for k in keys])
            pipe.delete(self.WRITTEN_INDEX)
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable("clear", exc) from exc

# ----- Process-local memo -----

class LocalMemo:
    """Best-effort shadow of recently read entries. Never authoritative."""
    def __init__(self, maxsize: int = 1024, ttl_seconds: int = 300):
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds)

    def get(self, cache_key: str) -> Optional[CacheEntry]:
        return self._entries.get(cache_key)

    def put(self, entry: CacheEntry) -> None:
        self._entries[entry.identity.key] = entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

class PropertyCache:
    """
    Memo in front of a durable store. Reads return fresh entries only;
    writes go through both layers.
    """
    def __init__(self, store: CacheStore, memo: Optional[LocalMemo] = None,
                 ttl: timedelta = timedelta(days=30)):
        self.store = store
        self.memo = memo if memo is not None else LocalMemo()
        self.ttl = ttl

    def get(self, identity: AddressIdentity, now: Optional[datetime] = None) -> Optional[CacheEntry]:
        key = identity.key
        entry = self.memo.get(key)
        if entry is not None and is_valid(entry.written_at, self.ttl, now):
            CACHE_LOOKUPS.labels(layer="memo", result="hit").inc()
            return entry
        CACHE_LOOKUPS.labels(layer="memo", result="miss").inc()

        entry = self.store.get(identity)
        if entry is None or not is_valid(entry.written_at, self.ttl, now):
            CACHE_LOOKUPS.labels(layer="store", result="miss").inc()
            return None
        CACHE_LOOKUPS.labels(layer="store", result="hit").inc()
        self.memo.put(entry)
        return entry

    def put(self, identity: AddressIdentity, record: PropertyRecord,
            now: Optional[datetime] = None) -> CacheEntry:
        entry = CacheEntry(identity, record.data_source, record, now or utcnow())
        self.memo.put(entry)
        self.store.put(identity, record, record.data_source, now=entry.written_at)
        return entry

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        return self.store.sweep_expired(self.ttl, now)

    def statistics(self, now: Optional[datetime] = None) -> dict:
        return self.store.statistics(self.ttl, now)

    def clear_memo(self) -> None:
        self.memo.clear()

def cache_store() -> CacheStore:
    """
    Factory picks sqlite or redis based on env flags.
    """
    if settings.CACHE_BACKEND == "redis":
        return RedisCacheStore.from_url(settings.REDIS_URL)
    return SQLiteCacheStore(settings.CACHE_DB_PATH)

def property_cache() -> PropertyCache:
    return PropertyCache(
        cache_store(),
        LocalMemo(settings.MEMO_MAXSIZE, settings.MEMO_TTL_SECONDS),
        ttl=timedelta(days=settings.PROPERTY_CACHE_DAYS),
    )
