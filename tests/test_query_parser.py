import pytest

from dataset_search.search.query_parser import QueryParser


@pytest.fixture
def parser():
    return QueryParser()


def test_defaults(parser):
    query = parser.parse({})

    assert query.q == ""
    assert query.page == 1
    assert query.size == 20
    assert query.sort == "relevance"
    assert query.variables == []
    assert query.bbox is None


def test_full_parameter_set(parser):
    query = parser.parse({
        "q": "  sea surface temperature ",
        "bbox": "-130, 30, -115, 45",
        "time_start": "2015",
        "time_end": "2020-06-30T00:00:00Z",
        "variables": "sea_surface_temperature, sst",
        "format": "NetCDF",
        "publisher": "NOAA",
        "service": "ERDDAP",
        "license": "CC-BY-4.0",
        "platform": "satellite",
        "page": "2",
        "size": "50",
        "sort": "recency",
        "include": "vars",
    })

    assert query.q == "sea surface temperature"
    assert query.bbox == (-130.0, 30.0, -115.0, 45.0)
    assert query.time_start == "2015"
    assert query.variables == ["sea_surface_temperature", "sst"]
    assert (query.page, query.size, query.sort, query.include) == (2, 50, "recency", "vars")


def test_page_and_size_are_clamped(parser):
    query = parser.parse({"page": "0", "size": "500"})
    assert (query.page, query.size) == (1, 100)

    query = parser.parse({"page": "-3", "size": "0"})
    assert query.page == 1
    assert 1 <= query.size <= 100


def test_variables_as_json(parser):
    assert parser.parse({"variables": '["chlor_a", "nitrate"]'}).variables == ["chlor_a", "nitrate"]


def test_polygon_formats(parser):
    from_text = parser.parse({"polygon": "-130 30; -115 30; -115 45; -130 45"})
    from_json = parser.parse({"polygon": "[[-130, 30], [-115, 30], [-115, 45], [-130, 45]]"})

    assert from_text.polygon == from_json.polygon
    assert from_text.spatial_bbox() == (-130.0, 30.0, -115.0, 45.0)


@pytest.mark.parametrize("params", [
    {"bbox": "1,2,3"},
    {"bbox": "a,b,c,d"},
    {"bbox": "10,0,5,5"},
    {"polygon": "0 0; 1 1; 2 2"},
    {"polygon": "[[0, 0], [1]]"},
    {"polygon": "[not json"},
    {"variables": '["chlor_a"'},
    {"time_start": "yesterday"},
    {"page": "two"},
    {"sort": "popularity"},
    {"include": "everything"},
    {"q": "x" * 1001},
])
def test_malformed_parameters(parser, params):
    with pytest.raises(ValueError):
        parser.parse(params)
