import asyncio

import pytest

from dataset_search.ai.text_generation import NOT_CONFIGURED_MESSAGE
from dataset_search.search.term_expander import ExpandedQuery, Lexicon, TermExpander

from conftest import FakeGenerativeClient


def test_fishing_in_the_atlantic(lexicon):
    result = TermExpander(lexicon).expand_lexicon("Fishing in the Atlantic")

    assert "fisheries" in result.matched_concepts
    assert "bycatch" in result.synonyms
    assert "cpue" in result.suggested_variables
    assert "fisheries commercial" in result.expanded_terms
    assert "commercial fisheries" in result.expanded_terms
    assert "north atlantic" in result.location_variants
    assert result.confidence >= 0.75
    assert result.original_query == "Fishing in the Atlantic"
    assert result.expanded_terms[0] == "Fishing in the Atlantic"


def test_temporal_hints(lexicon):
    result = TermExpander(lexicon).expand_lexicon("seasonal temperature trend")

    assert "temporal_coverage" in result.temporal_hints
    assert "time_series" in result.temporal_hints
    assert "temperature" in result.matched_concepts


def test_short_words_do_not_match_by_containment():
    lexicon = Lexicon.from_dict({
        "concepts": {"salinity": {"synonyms": ["salt"], "related": [], "contexts": []}},
    })
    expander = TermExpander(lexicon)

    assert expander.expand_lexicon("sal").matched_concepts == []
    assert expander.expand_lexicon("salty water").matched_concepts == ["salinity"]


def test_empty_query():
    result = TermExpander(Lexicon()).expand_lexicon("   ")

    assert result.original_query == ""
    assert result.expanded_terms == []
    assert result.confidence == 0.5


def test_confidence_is_capped(lexicon):
    result = TermExpander(lexicon).expand_lexicon(
        "recent seasonal temperature salinity chlorophyll oxygen wind current atlantic pacific"
    )
    assert result.confidence == 1.0


def test_semantic_text_appends_a_few_terms():
    expanded = ExpandedQuery(
        original_query="sst",
        synonyms=["temp", "thermal", "heat", "warming"],
        suggested_variables=["sea_surface_temperature"],
    )
    assert expanded.semantic_text() == "sst temp thermal heat sea surface temperature"


async def test_low_confidence_query_is_enriched():
    reply = '```json\n{"expanded_terms": ["kelp canopy"], "variables": ["kelp_biomass"], ' \
            '"locations": ["channel islands"], "confidence": 0.9}\n```'
    client = FakeGenerativeClient(reply)

    result = await TermExpander(Lexicon(), client).expand("kelp forests")

    assert len(client.prompts) == 1
    assert result.enriched
    assert "kelp canopy" in result.expanded_terms
    assert "kelp_biomass" in result.suggested_variables
    assert "channel islands" in result.location_variants
    assert result.confidence == 0.9


async def test_confident_query_skips_enrichment(lexicon):
    client = FakeGenerativeClient('{"expanded_terms": ["unused"]}')

    result = await TermExpander(lexicon, client).expand("recent fishing in the atlantic")

    assert client.prompts == []
    assert not result.enriched


@pytest.mark.parametrize("reply", [
    NOT_CONFIGURED_MESSAGE,
    "definitely not json",
    '{"expanded_terms": "not a list"}',
    "[1, 2, 3]",
])
async def test_bad_enrichment_keeps_lexicon_result(reply):
    expander = TermExpander(Lexicon(), FakeGenerativeClient(reply))

    result = await expander.expand("kelp forests")

    assert not result.enriched
    assert result.expanded_terms == ["kelp forests"]


async def test_unconfigured_client_is_not_called():
    client = FakeGenerativeClient("{}", configured=False)

    await TermExpander(Lexicon(), client).expand("kelp forests")

    assert client.prompts == []


async def test_enrichment_timeout_keeps_lexicon_result():
    class SlowClient:
        configured = True

        async def complete(self, prompt):
            await asyncio.sleep(5)
            return "{}"

    expander = TermExpander(
        Lexicon(),
        SlowClient(),
        config={
            "base_confidence": 0.5,
            "concept_increment": 0.1,
            "location_increment": 0.15,
            "temporal_increment": 0.1,
            "enrichment_threshold": 0.7,
            "enrichment_timeout_seconds": 0.05,
            "min_containment_length": 4,
        },
    )

    result = await expander.expand("kelp forests")

    assert not result.enriched
    assert result.original_query == "kelp forests"


async def test_raising_client_never_propagates():
    class BrokenClient:
        configured = True

        async def complete(self, prompt):
            raise RuntimeError("boom")

    result = await TermExpander(Lexicon(), BrokenClient()).expand("kelp forests")

    assert result.original_query == "kelp forests"
    assert not result.enriched
