import asyncio
import os
import socket
from datetime import timedelta

import pytest

from taxappeal.core.cache import LocalMemo, PropertyCache, SQLiteCacheStore
from taxappeal.data.base import AdapterError, DataSource, PartialRecord


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0] if isinstance(address, tuple) else address
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)


@pytest.fixture
def store(tmp_path):
    return SQLiteCacheStore(str(tmp_path / "property_cache.sqlite3"))


@pytest.fixture
def cache(store):
    return PropertyCache(store, LocalMemo(maxsize=16, ttl_seconds=300), ttl=timedelta(days=30))


def run(coro):
    return asyncio.run(coro)


class FakeProvider:
    """Scripted provider that counts calls."""

    def __init__(self, source, outcome=None, configured=True):
        self.source = source
        self.outcome = outcome if outcome is not None else PartialRecord.empty(source)
        self._configured = configured
        self.calls = 0

    @property
    def configured(self):
        return self._configured

    async def resolve(self, identity):
        self.calls += 1
        return self.outcome


def record_from(source, **values):
    return PartialRecord(source=source, values=values, missing=[])


def error_from(source, status=500, body="upstream exploded"):
    return AdapterError(source, f"{source.value} returned {status}: {body}", status, body)


@pytest.fixture
def rentcast_record():
    return record_from(
        DataSource.RENTCAST,
        assessed_value=512000,
        square_feet=1850,
        bedrooms=3,
        bathrooms=2,
        property_type="Single Family",
    )


@pytest.fixture
def attom_record():
    return record_from(
        DataSource.ATTOM,
        assessed_value=498000,
        market_value_estimate=530000,
        year_built=1978,
    )
