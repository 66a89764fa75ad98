from dataset_search.ai.text_generation import NOT_CONFIGURED_MESSAGE, GenerativeClient, is_not_configured
from dataset_search.config.search_config import GENERATIVE_CONFIG


def test_not_configured_detection():
    assert is_not_configured(NOT_CONFIGURED_MESSAGE)
    assert is_not_configured("")
    assert is_not_configured(None)
    assert not is_not_configured('{"expanded_terms": []}')


async def test_client_without_key_returns_sentinel():
    client = GenerativeClient(dict(GENERATIVE_CONFIG, api_key=""))

    assert client.configured is False
    assert await client.complete("anything") == NOT_CONFIGURED_MESSAGE


async def test_transport_failure_returns_sentinel():
    client = GenerativeClient(dict(
        GENERATIVE_CONFIG,
        api_key="test-key",
        endpoint="http://127.0.0.1:9/{model}:generateContent",
        timeout_seconds=2.0,
    ))

    assert client.configured is True
    assert await client.complete("anything") == NOT_CONFIGURED_MESSAGE
