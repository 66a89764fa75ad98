from datetime import datetime

import pytest

from dataset_search.common.models import AccessService, Distribution, RankedCandidate, Record, Variable
from dataset_search.config.search_config import RERANKING_CONFIG
from dataset_search.search.reranker import SIGNAL_ORDER, ReRanker, RerankContext, position_window

NOW = datetime(2025, 1, 1)


def single_signal_config(name, weight=1.0):
    weights = {signal: 0.0 for signal in SIGNAL_ORDER}
    weights[name] = weight
    return dict(RERANKING_CONFIG, weights=weights)


def plain(record_id, **kwargs):
    return Record(id=record_id, title=kwargs.pop("title", f"Dataset {record_id}"), **kwargs)


def test_no_signal_keeps_fusion_order():
    records = [plain(str(i)) for i in range(5)]

    ranked = ReRanker(single_signal_config("text_match", 0.0), now=lambda: NOW).rerank(records)

    assert [r.id for r, _ in ranked] == ["0", "1", "2", "3", "4"]


def test_single_signal_moves_at_most_two_places():
    records = [plain(str(i)) for i in range(10)]
    records[6] = plain("6", title="Kelp Forest Survey")
    records[8] = plain("8", title="Kelp Forest Survey")

    ranked = ReRanker(single_signal_config("text_match"), now=lambda: NOW).rerank(
        records, query_text="kelp forest"
    )

    assert [r.id for r, _ in ranked] == ["0", "1", "2", "3", "4", "6", "5", "8", "7", "9"]


@pytest.mark.parametrize("index", range(0, 300, 7))
def test_window_bounds_a_three_place_jump(index):
    leader = 1.0 / (1 + index)
    challenger = 1.0 / (4 + index) + position_window(index + 3)

    assert challenger < leader


def test_weights_above_one_are_clamped():
    reranker = ReRanker(single_signal_config("openness", weight=50.0))

    assert reranker.weights["openness"] == 1.0


def test_service_quality_prefers_interactive_services():
    http = plain("http", distributions=[Distribution("u", AccessService.HTTP, "CSV")])
    erddap = plain("erddap", distributions=[Distribution("u", AccessService.ERDDAP, "NetCDF")])

    ranked = ReRanker(single_signal_config("service_quality"), now=lambda: NOW).rerank([http, erddap])
    signals = {r.id: c.signals["service_quality"] for r, c in ranked}

    assert signals["erddap"] == pytest.approx(1.0 * position_window(1))
    assert signals["http"] == pytest.approx(0.1 * position_window(0))
    assert [r.id for r, _ in ranked] == ["http", "erddap"]


def test_variable_relevance_levels():
    reranker = ReRanker(now=lambda: NOW)
    sst = RerankContext("", ["sea_surface_temperature"], NOW)
    chlorophyll = RerankContext("", ["chlorophyll"], NOW)

    exact = plain("a", variables=[Variable("sea_surface_temperature")])
    cluster = plain("b", variables=[Variable("sst_anomaly")])
    partial = plain("c", variables=[Variable("chlorophyll_concentration")])
    unrelated = plain("d", variables=[Variable("chlor_a")])

    assert reranker._variable_relevance(exact, sst) == 1.0
    assert reranker._variable_relevance(cluster, sst) == 0.6
    assert reranker._variable_relevance(partial, chlorophyll) == 0.3
    assert reranker._variable_relevance(unrelated, sst) == 0.0
    assert reranker._variable_relevance(exact, RerankContext("", [], NOW)) == 0.0


def test_recency_decays_over_eight_years():
    reranker = ReRanker(now=lambda: NOW)
    context = RerankContext("", [], NOW)

    ongoing = plain("a", time_start=datetime(2010, 1, 1))
    recent = plain("b", time_start=datetime(2010, 1, 1), time_end=datetime(2025, 1, 1))
    old = plain("c", time_start=datetime(1990, 1, 1), time_end=datetime(2000, 1, 1))
    undated = plain("d")

    assert reranker._recency(ongoing, context) == 1.0
    assert reranker._recency(recent, context) == pytest.approx(1.0)
    assert reranker._recency(old, context) < 0
    assert reranker._recency(undated, context) == 0.0


def test_publisher_trust_tiers():
    reranker = ReRanker(now=lambda: NOW)
    context = RerankContext("", [], NOW)

    assert reranker._publisher_trust(plain("a", publisher="NOAA NCEI"), context) == 1.0
    assert reranker._publisher_trust(plain("b", publisher="Woods Hole Oceanographic"), context) == 0.7
    assert reranker._publisher_trust(plain("c", publisher="SCCOOS"), context) == 0.5
    assert reranker._publisher_trust(plain("d", publisher="State University"), context) == 0.3
    assert reranker._publisher_trust(plain("e", publisher="Anon"), context) == 0.0
    # "esa" must not match inside other words
    assert reranker._publisher_trust(plain("f", publisher="Mesa Labs"), context) == 0.0


def test_openness_and_completeness():
    reranker = ReRanker(now=lambda: NOW)
    context = RerankContext("", [], NOW)

    open_record = plain("a", doi="10.1/x", license="CC-BY-4.0")
    assert reranker._openness(open_record, context) == 1.0
    assert reranker._openness(plain("b", license="proprietary"), context) == 0.0

    complete = plain(
        "c",
        bbox=(0.0, 0.0, 1.0, 1.0),
        time_start=datetime(2000, 1, 1),
        variables=[Variable(f"v{i}") for i in range(6)],
        distributions=[Distribution("u1"), Distribution("u2")],
    )
    assert reranker._completeness(complete, context) == 1.0
    assert reranker._completeness(plain("d"), context) == 0.0


def test_text_match_prefers_phrase_over_word_overlap():
    reranker = ReRanker(now=lambda: NOW)
    context = RerankContext("sea surface temperature", [], NOW)

    phrase = plain("a", title="Sea Surface Temperature near California")
    in_abstract = plain("b", title="Ocean data", abstract="Daily sea-surface temperature fields")
    words = plain("c", title="Temperature of the sea")

    assert reranker._text_match(phrase, context) == 1.0
    assert reranker._text_match(in_abstract, context) == 0.7
    assert reranker._text_match(words, context) == pytest.approx(0.5 * 2 / 3)


def test_signals_are_recorded_and_ranks_carried():
    records = [plain("a", doi="10.1/x"), plain("b")]
    candidates = {
        "a": RankedCandidate("a", 0.03, lexical_rank=0, semantic_rank=None),
        "b": RankedCandidate("b", 0.02, lexical_rank=None, semantic_rank=0),
    }

    ranked = ReRanker(now=lambda: NOW).rerank(records, candidates=candidates)

    by_id = {r.id: c for r, c in ranked}
    assert set(by_id["a"].signals) == set(SIGNAL_ORDER)
    assert by_id["a"].lexical_rank == 0
    assert by_id["b"].semantic_rank == 0
