"""Tests for the embedding gateways."""
import json

import httpx
import numpy as np
import pytest

from conftest import RecordingTransport
from courserag.errors import EmbeddingServiceError
from courserag.rag.embeddings import (
    SEARCH_DOCUMENT,
    SEARCH_QUERY,
    CohereEmbeddingGateway,
    PseudoEmbeddingGateway,
)


def _cohere(handler, **kwargs):
    transport = RecordingTransport(handler)
    gateway = CohereEmbeddingGateway(
        api_key="cohere-key",
        dimension=4,
        base_url="https://cohere.test",
        retry_wait=0,
        transport=transport,
        **kwargs,
    )
    return gateway, transport


def _echo_vectors(request: httpx.Request) -> httpx.Response:
    texts = json.loads(request.content)["texts"]
    return httpx.Response(200, json={"embeddings": [[float(len(t)), 0.0, 0.0, 1.0] for t in texts]})


@pytest.mark.asyncio
async def test_cohere_embeds_in_sequential_batches():
    gateway, transport = _cohere(_echo_vectors, batch_size=2)

    vectors = await gateway.embed(["a", "bb", "ccc", "dddd", "eeeee"])

    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert [len(body["texts"]) for body in transport.json_bodies()] == [2, 2, 1]

    request = transport.requests[0]
    assert request.url == "https://cohere.test/v1/embed"
    assert request.headers["Authorization"] == "Bearer cohere-key"
    assert transport.json_bodies()[0]["input_type"] == SEARCH_DOCUMENT
    assert transport.json_bodies()[0]["model"] == "embed-english-v3.0"


@pytest.mark.asyncio
async def test_query_embedding_uses_search_query_input_type():
    gateway, transport = _cohere(_echo_vectors)

    vector = await gateway.embed_query("what is ROS")

    assert vector == [11.0, 0.0, 0.0, 1.0]
    assert transport.json_bodies()[0]["input_type"] == SEARCH_QUERY


@pytest.mark.asyncio
async def test_typed_embeddings_response_is_accepted():
    gateway, _ = _cohere(lambda r: httpx.Response(200, json={"embeddings": {"float": [[0.1, 0.2, 0.3, 0.4]]}}))

    assert await gateway.embed(["x"]) == [[0.1, 0.2, 0.3, 0.4]]


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    gateway, transport = _cohere(_echo_vectors)

    assert await gateway.embed([]) == []
    assert transport.requests == []


@pytest.mark.asyncio
async def test_dimension_mismatch_raises():
    gateway, _ = _cohere(lambda r: httpx.Response(200, json={"embeddings": [[1.0, 2.0]]}))

    with pytest.raises(EmbeddingServiceError, match="dimension"):
        await gateway.embed(["x"])


@pytest.mark.asyncio
async def test_count_mismatch_raises():
    gateway, _ = _cohere(lambda r: httpx.Response(200, json={"embeddings": []}))

    with pytest.raises(EmbeddingServiceError):
        await gateway.embed(["x"])


@pytest.mark.asyncio
async def test_transient_errors_are_retried_then_succeed():
    responses = iter([httpx.Response(503), httpx.Response(429)])

    def handler(request):
        response = next(responses, None)
        return response if response is not None else _echo_vectors(request)

    gateway, transport = _cohere(handler, retry_attempts=3)

    vectors = await gateway.embed(["abc"])

    assert vectors == [[3.0, 0.0, 0.0, 1.0]]
    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_exhausted_retries_surface_retryable_error():
    gateway, transport = _cohere(lambda r: httpx.Response(502), retry_attempts=2)

    with pytest.raises(EmbeddingServiceError) as exc_info:
        await gateway.embed(["abc"])

    assert exc_info.value.retryable is True
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    gateway, transport = _cohere(lambda r: httpx.Response(401, json={"message": "invalid api token"}), retry_attempts=3)

    with pytest.raises(EmbeddingServiceError) as exc_info:
        await gateway.embed(["abc"])

    assert exc_info.value.retryable is False
    assert len(transport.requests) == 1


def test_cohere_requires_api_key(monkeypatch):
    monkeypatch.setattr("courserag.config.COHERE_API_KEY", None)

    with pytest.raises(ValueError):
        CohereEmbeddingGateway(api_key=None)


@pytest.mark.asyncio
async def test_pseudo_embeddings_are_deterministic_and_normalized():
    gateway = PseudoEmbeddingGateway(dimension=16)

    first, second, other = await gateway.embed(["ROS 2 nodes", "ROS 2 nodes", "Gazebo"])

    assert first == second
    assert first != other
    assert len(first) == 16
    assert np.linalg.norm(first) == pytest.approx(1.0)
    assert gateway.semantic is False


def test_pseudo_embedding_of_empty_text_is_zero_vector():
    assert PseudoEmbeddingGateway(dimension=8).embed_text("") == [0.0] * 8


def test_pseudo_embedding_fold_without_normalization():
    gateway = PseudoEmbeddingGateway(dimension=2, normalize=False)

    # "ab": index 0 folds 'a' (97), index 1 folds 'b' (98), scaled to [-1, 1]
    vector = gateway.embed_text("ab")

    assert vector == pytest.approx([97 / 504.5 - 1.0, 98 / 504.5 - 1.0])
