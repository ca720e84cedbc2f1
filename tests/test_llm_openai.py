"""Tests for the OpenAI-compatible backends, against a mocked HTTP transport."""

import json

import httpx
import pytest

from hypergraph_reasoning.llm.base import EmbeddingError, GenerationError
from hypergraph_reasoning.llm.openai_backend import OpenAIEmbedder, OpenAIGenerator, build_client
from hypergraph_reasoning.models import KeywordsResponse


def chat_payload(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def embedding_payload(vectors):
    # Reversed on purpose: items must be reordered by their index
    data = [
        {"object": "embedding", "index": i, "embedding": vector}
        for i, vector in reversed(list(enumerate(vectors)))
    ]
    return {
        "object": "list",
        "data": data,
        "model": "test-embed",
        "usage": {"prompt_tokens": 1, "total_tokens": 1},
    }


def make_client(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return build_client("sk-test", "http://llm.test/v1", max_retries=0, http_client=http_client)


class TestGenerator:
    @pytest.mark.asyncio
    async def test_generate(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=chat_payload("  Hello.  "))

        generator = OpenAIGenerator(make_client(handler), model="m1", temperature=0.3)
        assert await generator.generate("sys", "user") == "Hello."
        body = requests[0]
        assert body["model"] == "m1"
        assert body["temperature"] == pytest.approx(0.3)
        assert body["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "user"},
        ]
        assert "response_format" not in body

    @pytest.mark.asyncio
    async def test_overrides(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=chat_payload("ok"))

        generator = OpenAIGenerator(make_client(handler), model="m1")
        await generator.generate("sys", "user", model="m2", temperature=0.0)
        assert requests[0]["model"] == "m2"
        assert requests[0]["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_structured_uses_json_mode(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=chat_payload('{"keywords": ["silk"]}'))

        generator = OpenAIGenerator(make_client(handler))
        result = await generator.generate_structured("sys", "user", KeywordsResponse)
        assert result.keywords == ["silk"]
        assert requests[0]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_structured_rejects_invalid_json(self):
        generator = OpenAIGenerator(make_client(lambda request: httpx.Response(200, json=chat_payload("nope"))))
        with pytest.raises(GenerationError):
            await generator.generate_structured("sys", "user", KeywordsResponse)

    @pytest.mark.asyncio
    async def test_http_error(self):
        generator = OpenAIGenerator(make_client(lambda request: httpx.Response(500, json={"error": {"message": "boom"}})))
        with pytest.raises(GenerationError, match="Chat completion failed"):
            await generator.generate("sys", "user")

    @pytest.mark.asyncio
    async def test_empty_content(self):
        generator = OpenAIGenerator(make_client(lambda request: httpx.Response(200, json=chat_payload(""))))
        with pytest.raises(GenerationError, match="empty"):
            await generator.generate("sys", "user")


class TestEmbedder:
    @pytest.mark.asyncio
    async def test_embed_orders_by_index(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=embedding_payload([[1.0, 0.0], [0.0, 1.0]]))

        embedder = OpenAIEmbedder(make_client(handler), model="e1")
        assert await embedder.embed(["a", "b"]) == [[1.0, 0.0], [0.0, 1.0]]
        assert requests[0]["model"] == "e1"
        assert requests[0]["input"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self):
        def handler(request):
            raise AssertionError("unexpected request")

        assert await OpenAIEmbedder(make_client(handler)).embed([]) == []

    @pytest.mark.asyncio
    async def test_count_mismatch(self):
        embedder = OpenAIEmbedder(make_client(lambda request: httpx.Response(200, json=embedding_payload([[1.0]]))))
        with pytest.raises(EmbeddingError, match="Expected 2"):
            await embedder.embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_http_error(self):
        embedder = OpenAIEmbedder(make_client(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}})))
        with pytest.raises(EmbeddingError):
            await embedder.embed(["a"])


class TestBuildClient:
    def test_missing_key_uses_placeholder(self):
        client = build_client(None, "http://localhost:11434/v1")
        assert client.api_key == "not-needed"
        assert str(client.base_url).startswith("http://localhost:11434/v1")
