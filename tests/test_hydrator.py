from datetime import datetime

from dataset_search.common.models import Record
from dataset_search.search.hydrator import Hydrator, paginate, sort_by_recency


class FlakyDatabase:
    """Delegates to a real catalog but fails any batch containing ``bad``."""

    def __init__(self, database):
        self.database = database
        self.batches = []

    def fetch_records(self, ids):
        self.batches.append(list(ids))
        if "bad" in ids:
            raise RuntimeError("batch lost")
        return self.database.fetch_records(ids)


async def test_failed_batch_is_dropped(catalog_db, executor):
    database = FlakyDatabase(catalog_db)
    hydrator = Hydrator(database, executor, config={"batch_size": 2})

    records = await hydrator.hydrate(["sst-california", "chl-global", "argo-salinity", "bad", "atlantic-winds"])

    assert [r.id for r in records] == ["sst-california", "chl-global", "atlantic-winds"]
    assert len(database.batches) == 3


async def test_known_records_are_not_fetched_again(catalog_db, executor):
    database = FlakyDatabase(catalog_db)
    known = catalog_db.fetch_records(["argo-salinity"])
    hydrator = Hydrator(database, executor)

    records = await hydrator.hydrate(["argo-salinity", "chl-global", "gone"], known=known)

    assert [r.id for r in records] == ["argo-salinity", "chl-global"]
    assert database.batches == [["chl-global", "gone"]]


def test_recency_sort_is_stable_and_puts_undated_last():
    records = [
        Record(id="undated", title="a"),
        Record(id="old", title="b", updated_at=datetime(2001, 1, 1)),
        Record(id="new-1", title="c", updated_at=datetime(2020, 1, 1)),
        Record(id="new-2", title="d", updated_at=datetime(2020, 1, 1)),
    ]

    assert [r.id for r in sort_by_recency(records)] == ["new-1", "new-2", "old", "undated"]


def test_pages_partition_the_ranking(catalog_db):
    records = list(catalog_db.fetch_records(catalog_db.all_ids()).values())

    pages = [paginate(records, len(records), page, 4) for page in (1, 2, 3)]

    assert [p["total"] for p in pages] == [6, 6, 6]
    assert [len(p["results"]) for p in pages] == [4, 2, 0]
    assert [r["id"] for p in pages for r in p["results"]] == [r.id for r in records]


def test_page_envelope_includes_details_on_request(catalog_db):
    records = list(catalog_db.fetch_records(["argo-salinity"]).values())

    plain = paginate(records, 1, 1, 10)
    detailed = paginate(records, 1, 1, 10, include="full")

    assert set(plain) == {"total", "page", "size", "results"}
    assert "variablesDetailed" not in plain["results"][0]
    assert len(detailed["results"][0]["variablesDetailed"]) == 2
