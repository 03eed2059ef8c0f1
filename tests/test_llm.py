from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from circles.llm import OpenAIClassifier


def _client(output_text):
    client = MagicMock()
    client.responses.create = AsyncMock(return_value=SimpleNamespace(output_text=output_text))
    return client


@pytest.mark.asyncio
async def test_complete_sends_prompt_and_returns_text():
    client = _client('{"circles": []}')
    classifier = OpenAIClassifier(model="test-model", client=client, default_max_output_tokens=512)

    text = await classifier.complete("group these members")

    assert text == '{"circles": []}'
    client.responses.create.assert_awaited_once_with(
        model="test-model",
        input=[{"role": "user", "content": "group these members"}],
        max_output_tokens=512,
    )


@pytest.mark.asyncio
async def test_complete_honours_output_budget():
    client = _client("ok")
    classifier = OpenAIClassifier(model="test-model", client=client)

    await classifier.complete("rank", max_output_tokens=64)

    assert client.responses.create.await_args.kwargs["max_output_tokens"] == 64


@pytest.mark.asyncio
@pytest.mark.parametrize("output_text", ["", "   ", None])
async def test_empty_output_raises(output_text):
    classifier = OpenAIClassifier(model="test-model", client=_client(output_text))
    with pytest.raises(ValueError):
        await classifier.complete("anything")


@pytest.mark.asyncio
async def test_provider_errors_propagate():
    client = MagicMock()
    client.responses.create = AsyncMock(side_effect=RuntimeError("quota exceeded"))
    classifier = OpenAIClassifier(model="test-model", client=client)

    with pytest.raises(RuntimeError):
        await classifier.complete("anything")
