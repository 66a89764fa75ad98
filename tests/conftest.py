"""
Shared fixtures: a small on-disk catalog and stand-in collaborators.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from dataset_search.indexing.embedder import SyntheticEmbedder
from dataset_search.indexing.indexing_service import IndexingService
from dataset_search.indexing.vector_index import VectorIndex
from dataset_search.ingestion.database import init_database
from dataset_search.ingestion.record_loader import RecordLoader
from dataset_search.search.term_expander import Lexicon
from dataset_search.config.search_config import TERMS_CONFIG


CATALOG_RECORDS = [
    {
        "id": "sst-california",
        "title": "Sea Surface Temperature near California",
        "abstract": "Daily sea surface temperature analysis for the California Current System.",
        "publisher": "NOAA",
        "license": "CC-BY-4.0",
        "doi": "10.1234/sst-cal",
        "source_system": "erddap",
        "temporal_extent": {"start": "2015-01-01", "end": None},
        "spatial_extent": {"bbox": [-125.0, 32.0, -117.0, 42.0]},
        "variables": [
            {"name": "sea_surface_temperature", "standard_name": "sea_surface_temperature",
             "units": "degree_C", "long_name": "Sea Surface Temperature"},
        ],
        "distributions": [
            {"url": "https://example.org/erddap/griddap/sst_cal", "access_service": "ERDDAP", "format": "NetCDF"},
        ],
        "platforms": ["satellite"],
        "keywords": ["oceans", "temperature"],
        "updated_at": "2024-03-01T00:00:00Z",
    },
    {
        "id": "chl-global",
        "title": "Global Chlorophyll-a Concentration",
        "abstract": "Ocean color chlorophyll concentration derived from satellite radiometry.",
        "publisher": "NASA",
        "license": "Public Domain",
        "temporal_extent": {"start": "2002-07-01", "end": "2022-12-31"},
        "spatial_extent": {"bbox": [-180.0, -90.0, 180.0, 90.0]},
        "variables": [
            {"name": "chlor_a", "long_name": "Chlorophyll Concentration", "units": "mg m-3"},
        ],
        "distributions": [
            {"url": "https://example.org/opendap/chl", "access_service": "OPeNDAP", "format": "NetCDF"},
        ],
        "platforms": ["satellite"],
        "updated_at": "2023-01-15",
    },
    {
        "id": "argo-salinity",
        "title": "Argo Float Salinity Profiles",
        "abstract": "Temperature and salinity profiles collected by Argo floats in the North Pacific.",
        "publisher": "Scripps Institution of Oceanography",
        "temporal_extent": {"start": "2010-01-01", "end": "2020-12-31"},
        "spatial_extent": {"bbox": [-140.0, 20.0, -110.0, 50.0]},
        "variables": [
            {"name": "sea_water_salinity", "standard_name": "sea_water_salinity", "units": "psu"},
            {"name": "sea_water_temperature", "standard_name": "sea_water_temperature", "units": "degree_C"},
        ],
        "distributions": [
            {"url": "https://example.org/thredds/argo", "access_service": "THREDDS", "format": "NetCDF"},
        ],
        "platforms": ["argo float"],
        "updated_at": "2021-06-01",
    },
    {
        "id": "sst-climatology",
        "title": "Sea Surface Temperature Climatology",
        "abstract": "Monthly sea surface temperature climatology without a published footprint.",
        "publisher": "University of Somewhere",
        "temporal_extent": {"start": "1981-01-01", "end": "2010-12-31"},
        "variables": [
            {"name": "sst", "long_name": "sea surface temperature"},
        ],
        "distributions": [
            {"url": "https://example.org/files/sst_clim.csv", "access_service": "HTTP", "format": "CSV"},
        ],
        "updated_at": "2012-05-05",
    },
    {
        "id": "atlantic-winds",
        "title": "Atlantic Ocean Surface Winds",
        "abstract": "Wind speed and direction over the North Atlantic from scatterometers.",
        "publisher": "Copernicus Marine Service",
        "temporal_extent": {"start": "2007-01-01", "end": "2019-12-31"},
        "spatial_extent": {"bbox": [-80.0, 0.0, 0.0, 60.0]},
        "variables": [
            {"name": "eastward_wind", "units": "m s-1"},
            {"name": "northward_wind", "units": "m s-1"},
        ],
        "distributions": [
            {"url": "https://example.org/erddap/winds", "access_service": "ERDDAP", "format": "NetCDF"},
        ],
        "updated_at": "2020-02-02",
    },
    {
        "id": "atlantic-fishing",
        "title": "Atlantic Commercial Fishing Effort",
        "abstract": "Logbook records of commercial fishing effort and catch off New England.",
        "publisher": "NOAA Fisheries",
        "temporal_extent": {"start": "2000-01-01", "end": "2018-12-31"},
        "spatial_extent": {"bbox": [-75.0, 35.0, -60.0, 45.0]},
        "variables": [
            {"name": "effort_hours"},
            {"name": "catch_weight", "units": "kg"},
        ],
        "distributions": [
            {"url": "https://example.org/files/effort.csv", "access_service": "HTTP", "format": "CSV"},
        ],
        "updated_at": "2019-03-03",
    },
]


class RaisingEmbedder:
    """Embedding function that always fails."""

    name = "raising"

    def embed(self, text):
        raise RuntimeError("embedding service unavailable")

    def embed_batch(self, texts):
        raise RuntimeError("embedding service unavailable")


class SwitchableEmbedder:
    """Synthetic vectors until ``fail`` is set, then raises."""

    name = "switchable"

    def __init__(self):
        self.synthetic = SyntheticEmbedder()
        self.fail = False

    def embed(self, text):
        return self.embed_batch([text])[0]

    def embed_batch(self, texts):
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        return self.synthetic.embed_batch(texts)


class FakeGenerativeClient:
    """Generative client returning a canned reply and counting prompts."""

    def __init__(self, reply="", configured=True):
        self.reply = reply
        self.configured = configured
        self.prompts = []

    async def complete(self, prompt):
        self.prompts.append(prompt)
        return self.reply


@pytest.fixture
def catalog_db(tmp_path):
    """Catalog database seeded with CATALOG_RECORDS (nothing indexed)."""
    database = init_database(str(tmp_path / "catalog.db"))
    RecordLoader(database).load_dicts(CATALOG_RECORDS)
    yield database
    database.close()


@pytest.fixture
def vector_index():
    """Empty in-memory index over synthetic vectors."""
    index = VectorIndex(embedder=SyntheticEmbedder())
    index.create()
    yield index
    index.close()


@pytest.fixture
def raising_index():
    """Index whose embedding function always fails; never holds records."""
    index = VectorIndex(embedder=RaisingEmbedder())
    index.create()
    yield index
    index.close()


@pytest.fixture
def indexed_catalog(catalog_db, vector_index):
    """Seeded catalog with every record in the synthetic vector index."""
    IndexingService(catalog_db, vector_index).backfill()
    return catalog_db, vector_index


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture(scope="session")
def lexicon():
    return Lexicon.load(TERMS_CONFIG)
