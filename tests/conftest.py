"""Shared fixtures for unit and API tests."""
import json
from types import SimpleNamespace
from typing import List

import httpx
import pytest
import pytest_asyncio

from courserag.errors import EmbeddingServiceError
from courserag.llm_client import GenerationClient
from courserag.rag.embeddings import SEARCH_DOCUMENT, PseudoEmbeddingGateway
from courserag.rag.models import Chunk, Document, IndexedPoint
from courserag.rag.store_faiss import FAISSVectorStore

DIMENSION = 32
COLLECTION = "test_content"


class SemanticPseudoEmbedder(PseudoEmbeddingGateway):
    """Pseudo vectors flagged as semantic so the vector path is exercised."""

    semantic = True


class FailingEmbedder(PseudoEmbeddingGateway):
    semantic = True

    def __init__(self, dimension: int = DIMENSION):
        super().__init__(dimension=dimension)
        self.calls = 0

    async def embed(self, texts: List[str], input_type: str = SEARCH_DOCUMENT):
        self.calls += 1
        raise EmbeddingServiceError("embedding service down", retryable=True)


def chat_completion(text: str) -> dict:
    """OpenAI-style chat completion body."""
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def json_bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


def make_generator(reply: str = "Generated answer", status_code: int = 200, api_key: str = "test-key"):
    """GenerationClient answering every request with ``reply`` (or an error status)."""

    def handler(request: httpx.Request) -> httpx.Response:
        if status_code != 200:
            return httpx.Response(status_code, json={"error": {"message": "upstream failure"}})
        return httpx.Response(200, json=chat_completion(reply))

    transport = RecordingTransport(handler)
    client = GenerationClient(api_key=api_key, retry_attempts=1, retry_wait=0, transport=transport)
    return client, transport


def make_point(point_id: str, content: str, source: str = "/docs/module/doc.md", module: str = "module", vector=None):
    vector = vector or PseudoEmbeddingGateway(dimension=DIMENSION).embed_text(content)
    return IndexedPoint(
        id=point_id,
        vector=vector,
        payload={"content": content, "source": source, "module": module},
    )


@pytest.fixture
def embedder():
    return PseudoEmbeddingGateway(dimension=DIMENSION)


@pytest.fixture
def semantic_embedder():
    return SemanticPseudoEmbedder(dimension=DIMENSION)


@pytest.fixture
def vector_store():
    """In-process FAISS store without persistence."""
    return FAISSVectorStore()


@pytest_asyncio.fixture
async def populated_store(vector_store, embedder):
    """FAISS store holding a few course passages."""
    await vector_store.ensure_collection(COLLECTION, DIMENSION, "Cosine")
    documents = [
        Document(
            id="module1-ros2/intro.md",
            content="ROS 2 is a framework for building robot software with nodes and topics.",
            source_ref="/docs/module1-ros2/intro.md",
            group_tag="module1-ros2",
        ),
        Document(
            id="module2-simulation/gazebo.md",
            content="Gazebo simulates robots in realistic physics environments.",
            source_ref="/docs/module2-simulation/gazebo.md",
            group_tag="module2-simulation",
        ),
        Document(
            id="module3-isaac/perception.md",
            content="Isaac Sim provides perception pipelines for humanoid robots.",
            source_ref="/docs/module3-isaac/perception.md",
            group_tag="module3-isaac",
        ),
    ]
    points = [
        IndexedPoint.from_chunk(
            Chunk(text=doc.content, ordinal=0, parent_document_id=doc.id),
            doc,
            embedder.embed_text(doc.content),
        )
        for doc in documents
    ]
    await vector_store.upsert_batch(COLLECTION, points)
    return vector_store


class FakeCollection:
    """Just enough of an async Mongo collection for the profile store."""

    def __init__(self):
        self.documents: List[dict] = []

    @staticmethod
    def _matches(document: dict, query: dict) -> bool:
        return all(document.get(key) == value for key, value in query.items())

    async def find_one(self, query: dict):
        for document in self.documents:
            if self._matches(document, query):
                return dict(document)
        return None

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        for document in self.documents:
            if self._matches(document, query):
                document.update(update["$set"])
                return SimpleNamespace(matched_count=1, upserted_id=None)
        if upsert:
            self.documents.append({**query, **update["$set"]})
            return SimpleNamespace(matched_count=0, upserted_id=len(self.documents))
        return SimpleNamespace(matched_count=0, upserted_id=None)

    async def insert_one(self, document: dict):
        self.documents.append(dict(document))
        return SimpleNamespace(inserted_id=len(self.documents))


class FakeDatabase(dict):
    def __missing__(self, name):
        collection = self[name] = FakeCollection()
        return collection


@pytest.fixture
def fake_db():
    return FakeDatabase()
