import csv
import io
import re

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGenerativeClient
from dataset_search.api.csv_export import CSV_COLUMNS
from dataset_search.api.main import app
from dataset_search.api.rate_limit import limiter
from dataset_search.api.routes import get_search_engine
from dataset_search.config.search_config import RATE_LIMIT_CONFIG
from dataset_search.ingestion.database import CatalogDatabase
from dataset_search.search.search_engine import SearchEngine


@pytest.fixture
def build_engine(executor, lexicon, raising_index):
    def factory(database):
        return SearchEngine(
            database=database,
            vector_index=raising_index,
            generative_client=FakeGenerativeClient(configured=False),
            lexicon=lexicon,
            executor=executor,
        )
    return factory


@pytest.fixture
def client():
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.reset()


@pytest.fixture
def catalog_client(client, catalog_db, build_engine):
    engine = build_engine(catalog_db)
    app.dependency_overrides[get_search_engine] = lambda: engine
    return client


def test_search_returns_json_page(catalog_client):
    response = catalog_client.get("/api/v1/search", params={"q": "argo"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert (body["page"], body["size"]) == (1, 20)
    result = body["results"][0]
    assert result["id"] == "argo-salinity"
    assert result["time"] == {"start": "2010-01-01T00:00:00", "end": "2020-12-31T00:00:00"}
    assert result["distributions"] == [
        {"url": "https://example.org/thredds/argo", "format": "NetCDF", "service": "THREDDS"}
    ]
    assert "variablesDetailed" not in result


def test_search_include_full(catalog_client):
    response = catalog_client.get("/api/v1/search", params={"q": "argo", "include": "full"})

    result = response.json()["results"][0]
    assert [v["name"] for v in result["variablesDetailed"]] == ["sea_water_salinity", "sea_water_temperature"]
    assert result["distributionsDetailed"][0]["accessService"] == "THREDDS"


def test_search_filters_from_query_string(catalog_client):
    response = catalog_client.get("/api/v1/search", params={"bbox": "-130,30,-115,45", "sort": "recency"})

    assert [r["id"] for r in response.json()["results"]] == ["sst-california", "chl-global", "argo-salinity"]


def test_search_as_csv(catalog_client):
    response = catalog_client.get("/api/v1/search", params={"q": "argo", "output": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert re.fullmatch(
        r'attachment; filename="dataset-search-\d{4}-\d{2}-\d{2}-\d{2}-\d{2}\.csv"',
        response.headers["content-disposition"],
    )
    assert "\r\n" in response.text

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == CSV_COLUMNS
    row = dict(zip(rows[0], rows[1]))
    assert row["id"] == "argo-salinity"
    assert row["variables"] == "sea_water_salinity; sea_water_temperature"
    assert row["services"] == "THREDDS"
    assert row["bbox"] == "-140.0,20.0,-110.0,50.0"
    assert row["doi"] == ""


def test_accept_header_selects_csv(catalog_client):
    response = catalog_client.get("/api/v1/search", params={"q": "argo"}, headers={"Accept": "text/csv"})

    assert response.headers["content-type"].startswith("text/csv")


@pytest.mark.parametrize("params", [
    {"bbox": "1,2,3"},
    {"polygon": "0 0; 1 1"},
    {"start": "not-a-date"},
    {"sort": "popularity"},
])
def test_malformed_parameters_are_rejected(catalog_client, params):
    response = catalog_client.get("/api/v1/search", params=params)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "BAD_REQUEST"


def test_unusable_catalog_is_503(client, tmp_path, build_engine):
    engine = build_engine(CatalogDatabase(str(tmp_path / "empty.db")))
    app.dependency_overrides[get_search_engine] = lambda: engine

    response = client.get("/api/v1/search", params={"q": "sst"})
    health = client.get("/api/v1/health")

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "STORAGE_UNAVAILABLE"
    assert health.json()["status"] == "unhealthy"
    engine.close()


def test_uninitialized_engine_is_503(client):
    assert client.get("/api/v1/search", params={"q": "sst"}).status_code == 503


def test_rate_limit(catalog_client, monkeypatch):
    monkeypatch.setitem(RATE_LIMIT_CONFIG, "limit", "2/minute")

    statuses = [catalog_client.get("/api/v1/search", params={"q": "argo"}).status_code for _ in range(2)]
    limited = catalog_client.get("/api/v1/search", params={"q": "argo"})

    assert statuses == [200, 200]
    assert limited.status_code == 429
    body = limited.json()
    assert body["code"] == "RATE_LIMITED"
    assert body["error"] == "Too many requests"
    assert 1 <= int(limited.headers["retry-after"]) <= 60
    assert catalog_client.get("/").status_code == 200
    assert catalog_client.get("/api/v1/health").status_code == 200


def test_rate_limit_keys_on_forwarded_client(catalog_client, monkeypatch):
    monkeypatch.setitem(RATE_LIMIT_CONFIG, "limit", "1/minute")

    def get(ip):
        return catalog_client.get(
            "/api/v1/search", params={"q": "argo"}, headers={"X-Forwarded-For": f"{ip}, 10.0.0.1"}
        ).status_code

    assert [get("192.0.2.1"), get("192.0.2.1"), get("192.0.2.2")] == [200, 429, 200]


def test_facets_are_rate_limited(catalog_client, monkeypatch):
    monkeypatch.setitem(RATE_LIMIT_CONFIG, "limit", "1/minute")

    assert catalog_client.get("/api/v1/stats/facets").status_code == 200
    assert catalog_client.get("/api/v1/stats/facets").status_code == 429


def test_dataset_detail(catalog_client):
    response = catalog_client.get("/api/v1/datasets/sst-california")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "sst-california"
    assert body["doi"] == "10.1234/sst-cal"
    assert body["temporal_extent"] == {"start": "2015-01-01T00:00:00", "end": None}
    assert body["spatial_extent"] == {"bbox": [-125.0, 32.0, -117.0, 42.0]}
    assert body["variables"][0]["units"] == "degree_C"
    assert body["distributions"][0]["access_service"] == "ERDDAP"
    assert body["platforms"] == ["satellite"]


def test_unknown_dataset_is_404(catalog_client):
    response = catalog_client.get("/api/v1/datasets/no-such-dataset")

    assert response.status_code == 404
    assert response.json() == {
        "error": "Dataset not found",
        "code": "NOT_FOUND",
        "details": {"id": "no-such-dataset"},
    }


@pytest.mark.parametrize("params, expected", [
    ({"type": "publisher", "prefix": "NOAA"}, ["noaa", "noaa fisheries"]),
    ({"type": "platform"}, ["argo float", "satellite"]),
    ({"type": "variable", "prefix": "sea_water_s"}, ["sea_water_salinity"]),
])
def test_suggest(catalog_client, params, expected):
    response = catalog_client.get("/api/v1/suggest", params=params)

    assert response.status_code == 200
    assert response.json() == {"type": params["type"], "items": expected}


def test_variable_suggestions_put_ocean_names_first(catalog_client):
    items = catalog_client.get("/api/v1/suggest", params={"type": "variable"}).json()["items"]

    assert len(items) == 10
    assert items[:4] == ["alkenone", "chlorophyll_concentration", "current_direction", "current_speed"]
    assert not {"dissolved_oxygen", "turbidity", "water_level"} & set(items)


def test_suggest_rejects_unknown_type(catalog_client):
    response = catalog_client.get("/api/v1/suggest", params={"type": "instrument"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "BAD_REQUEST"


def test_facets(catalog_client):
    response = catalog_client.get("/api/v1/stats/facets", params={"limit": 1})

    assert response.status_code == 200
    assert response.json()["formats"] == [{"value": "NetCDF", "count": 4}]
    assert catalog_client.get("/api/v1/stats/facets", params={"limit": 0}).status_code == 422


def test_health(catalog_client):
    body = catalog_client.get("/api/v1/health").json()

    assert body["status"] == "healthy"
    assert body["database"] == "ok"
    assert body["embedder"] == "raising"
    assert body["indexed_records"] == 0
    assert body["enrichment_configured"] is False
    assert isinstance(body["uptime_seconds"], int)


def test_unknown_path(client):
    response = client.get("/api/v1/nothing-here")

    assert response.status_code == 404
    assert response.json() == {
        "error": "Resource not found",
        "code": "NOT_FOUND",
        "details": {"path": "/api/v1/nothing-here"},
    }


def test_root_lists_endpoints(client):
    body = client.get("/").json()

    assert body["endpoints"]["dataset"]["path"] == "/api/v1/datasets/{id}"
    assert body["endpoints"]["suggest"]["path"] == "/api/v1/suggest"
    assert body["rate_limit"] == RATE_LIMIT_CONFIG["limit"]
