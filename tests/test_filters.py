from dataset_search.common.models import SearchQuery
from dataset_search.search.filters import SearchFilters


def matching_ids(database, clause, params):
    rows = database.connect().execute(
        f"SELECT d.id FROM datasets d WHERE {clause} ORDER BY d.id", params
    ).fetchall()
    return [row["id"] for row in rows]


def test_no_filters():
    assert SearchFilters.build_where_clause(SearchQuery()) == ("1=1", [])


def test_bbox_excludes_records_without_extent(catalog_db):
    clause, params = SearchFilters.build_where_clause(SearchQuery(bbox=(-130, 30, -115, 45)))

    assert params == [-130.0, -115.0, 30.0, 45.0]
    assert matching_ids(catalog_db, clause, params) == ["argo-salinity", "chl-global", "sst-california"]


def test_polygon_is_reduced_to_its_box(catalog_db):
    polygon = [(-130, 30), (-115, 30), (-115, 45), (-130, 45), (-130, 30)]
    from_polygon = SearchFilters.build_where_clause(SearchQuery(polygon=polygon))
    from_bbox = SearchFilters.build_where_clause(SearchQuery(bbox=(-130, 30, -115, 45)))

    assert from_polygon == from_bbox


def test_temporal_overlap_treats_null_bounds_as_open(catalog_db):
    clause, params = SearchFilters.build_where_clause(SearchQuery(time_start="2021", time_end="2023-06"))

    assert params == ["2021-01-01T00:00:00", "2023-06-01T00:00:00"]
    assert matching_ids(catalog_db, clause, params) == ["chl-global", "sst-california"]


def test_publisher_is_case_insensitive(catalog_db):
    clause, params = SearchFilters.build_where_clause(SearchQuery(publisher="noaa"))

    assert matching_ids(catalog_db, clause, params) == ["sst-california"]


def test_format_and_service_membership(catalog_db):
    clause, params = SearchFilters.build_where_clause(SearchQuery(format="netcdf", service="erddap"))

    assert "ERDDAP" in params
    assert matching_ids(catalog_db, clause, params) == ["atlantic-winds", "sst-california"]


def test_unparseable_time_bound_is_ignored():
    clause, params = SearchFilters.build_where_clause(SearchQuery(time_start="last tuesday"))

    assert (clause, params) == ("1=1", [])


def test_text_clause_requires_every_word(catalog_db):
    clause, params = SearchFilters.build_text_clause("argo salinity")

    assert matching_ids(catalog_db, clause, params) == ["argo-salinity"]


def test_text_clause_searches_nested_fields(catalog_db):
    by_variable = SearchFilters.build_text_clause("hours")
    by_service = SearchFilters.build_text_clause("thredds")

    assert matching_ids(catalog_db, *by_variable) == ["atlantic-fishing"]
    assert matching_ids(catalog_db, *by_service) == ["argo-salinity"]


def test_text_clause_without_words():
    assert SearchFilters.build_text_clause("   ") is None
    assert SearchFilters.build_text_clause("%%") is None
