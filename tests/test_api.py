import pytest
from fastapi.testclient import TestClient

from taxappeal.core.cache import LocalMemo, PropertyCache, SQLiteCacheStore
from taxappeal.core.config import settings
from taxappeal.data.base import DataSource
from taxappeal.main import app
from taxappeal.routers.property import service_dep
from taxappeal.services.fusion_service import FusionService

from conftest import FakeProvider


@pytest.fixture
def providers(rentcast_record):
    return [
        FakeProvider(DataSource.RENTCAST, rentcast_record),
        FakeProvider(DataSource.ATTOM, configured=False),
    ]


@pytest.fixture
def client(cache, providers):
    svc = FusionService(providers, cache)
    app.dependency_overrides[service_dep] = lambda: svc
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-Id"]


def test_property_lookup_then_cached_with_etag(client, providers):
    r = client.get("/v1/property", params={"address": "12 Elm St, Springfield, IL 62704"})
    assert r.status_code == 200
    body = r.json()
    assert body["data_source"] == "rentcast"
    assert body["assessed_value"] == 512000
    assert body["zip_code"] == "62704"
    assert body["from_cache"] is False
    etag = r.headers["ETag"]

    r = client.get(
        "/v1/property",
        params={"street": "12 elm st", "city": "springfield", "state": "il", "zip_code": "62704"},
    )
    assert r.json()["from_cache"] is True
    assert providers[0].calls == 1

    r = client.get(
        "/v1/property",
        params={"address": "12 Elm St, Springfield, IL 62704"},
        headers={"If-None-Match": etag},
    )
    assert r.status_code == 304


def test_property_requires_an_address(client):
    assert client.get("/v1/property").status_code == 400


def test_assessment_from_supplied_details(client):
    r = client.post(
        "/v1/assessment",
        json={
            "property": {"assessed_value": 600000, "square_feet": 1200, "property_type": "Yurt"},
            "corrections": {"recent_renovations": False},
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert body["estimated_market_value"] == 540000
    assert body["viability"] == "medium"
    assert body["confidence"] == 60


def test_assessment_resolves_address_when_no_details(client, providers):
    r = client.post(
        "/v1/assessment",
        json={"address": "12 Elm St, Springfield, IL 62704", "corrections": {"condition": "poor"}},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["data_source"] == "rentcast"
    assert body["current_assessment"] == 512000
    assert "Property condition (poor) not reflected in assessment" in body["reasons"]


def test_assessment_without_assessed_value_is_rejected(client):
    r = client.post("/v1/assessment", json={"property": {"square_feet": 1500}})
    assert r.status_code == 400
    assert "assessed value" in r.json()["detail"]


def test_assessment_needs_property_or_address(client):
    assert client.post("/v1/assessment", json={}).status_code == 400


def test_assessment_rejects_unknown_condition(client):
    r = client.post(
        "/v1/assessment",
        json={"property": {"assessed_value": 500000}, "corrections": {"condition": "sparkling"}},
    )
    assert r.status_code == 422


def test_admin_cache_stats_and_sweep(client):
    client.get("/v1/property", params={"address": "12 Elm St, Springfield, IL 62704"})

    r = client.get("/v1/admin/cache")
    assert r.status_code == 200
    body = r.json()
    assert body["total_entries"] == 1
    assert body["valid_entries"] == 1
    assert body["cache_ttl_days"] == settings.PROPERTY_CACHE_DAYS

    r = client.delete("/v1/admin/cache")
    assert r.status_code == 200
    assert r.json() == {"removed": 0}


def test_api_key_guard(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret")
    assert client.get("/v1/admin/cache").status_code == 401
    assert client.get("/v1/admin/cache", headers={"x-api-key": "s3cret"}).status_code == 200


def test_admin_reports_unavailable_cache(tmp_path, providers):
    broken = PropertyCache(SQLiteCacheStore(str(tmp_path / "gone" / "cache.sqlite3")), LocalMemo())
    app.dependency_overrides[service_dep] = lambda: FusionService(providers, broken)
    try:
        client = TestClient(app)
        assert client.get("/v1/admin/cache").status_code == 503
        assert client.delete("/v1/admin/cache").status_code == 503
        # lookups still work without the durable layer
        r = client.get("/v1/property", params={"address": "12 Elm St, Springfield, IL 62704"})
        assert r.status_code == 200
    finally:
        app.dependency_overrides.clear()


def test_metrics_count_provider_outcomes(client):
    client.get("/v1/property", params={"address": "12 Elm St, Springfield, IL 62704"})
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert 'property_provider_outcomes_total{outcome="record",provider="rentcast"}' in r.text
    assert 'path="/v1/property"' in r.text


def test_assessment_accepts_string_overrides(client):
    r = client.post(
        "/v1/assessment",
        json={
            "property": {"assessed_value": 600000},
            "corrections": {"overrides": {"square_feet": "1200", "last_sale_price": "n/a"}},
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert body["estimated_market_value"] == 540000
    assert body["confidence"] == 60
