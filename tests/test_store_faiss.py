"""Tests for the in-process FAISS vector store."""
import pytest

from conftest import DIMENSION, make_point
from courserag.errors import RetrievalServiceError
from courserag.rag.store_faiss import FAISSVectorStore


@pytest.mark.asyncio
async def test_ensure_collection_is_idempotent(vector_store):
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")
    await vector_store.upsert_batch("docs", [make_point("p1", "ROS 2 basics")])

    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")

    assert list(vector_store.collections) == ["docs"]
    assert vector_store.get_stats()["docs"]["vector_count"] == 1


@pytest.mark.asyncio
async def test_ensure_collection_rejects_dimension_change(vector_store):
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")

    with pytest.raises(RetrievalServiceError):
        await vector_store.ensure_collection("docs", DIMENSION * 2, "Cosine")


@pytest.mark.asyncio
async def test_unknown_distance_rejected(vector_store):
    with pytest.raises(ValueError):
        await vector_store.ensure_collection("docs", DIMENSION, "Manhattan")


@pytest.mark.asyncio
async def test_upsert_same_id_overwrites(vector_store):
    """Upserting a point id twice leaves exactly one point with the latest payload."""
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")

    await vector_store.upsert_batch("docs", [make_point("p1", "old content")])
    await vector_store.upsert_batch("docs", [make_point("p1", "new content")])

    points = await vector_store.scroll_all("docs", 10)
    assert [p.id for p in points] == ["p1"]
    assert points[0].payload["content"] == "new content"
    assert vector_store.get_stats()["docs"]["vector_count"] == 1


@pytest.mark.asyncio
async def test_duplicate_ids_within_batch_keep_last(vector_store):
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")

    await vector_store.upsert_batch(
        "docs",
        [make_point("p1", "first"), make_point("p2", "other"), make_point("p1", "second")],
    )

    points = {p.id: p.payload["content"] for p in await vector_store.scroll_all("docs", 10)}
    assert points == {"p1": "second", "p2": "other"}
    assert vector_store.get_stats()["docs"]["vector_count"] == 2


@pytest.mark.asyncio
async def test_query_ranks_identical_vector_first(vector_store):
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")
    await vector_store.upsert_batch(
        "docs",
        [make_point("ros", "ROS 2 nodes and topics"), make_point("gazebo", "Gazebo physics simulation")],
    )

    query = make_point("q", "Gazebo physics simulation").vector
    hits = await vector_store.query("docs", query, 5)

    assert [h.id for h in hits] == ["gazebo", "ros"]
    assert hits[0].score == pytest.approx(1.0, abs=1e-5)
    assert hits[0].payload["content"] == "Gazebo physics simulation"


@pytest.mark.asyncio
async def test_euclid_scores_are_inverse_distance(vector_store):
    await vector_store.ensure_collection("docs", 2, "Euclid")
    await vector_store.upsert_batch(
        "docs",
        [make_point("near", "a", vector=[0.0, 0.0]), make_point("far", "b", vector=[3.0, 4.0])],
    )

    hits = await vector_store.query("docs", [0.0, 0.0], 2)

    assert [h.id for h in hits] == ["near", "far"]
    assert hits[0].score == pytest.approx(1.0)
    assert hits[1].score == pytest.approx(1.0 / 6.0)


@pytest.mark.asyncio
async def test_query_on_empty_collection_returns_nothing(vector_store):
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")

    assert await vector_store.query("docs", [0.1] * DIMENSION, 3) == []


@pytest.mark.asyncio
async def test_missing_collection_and_bad_dimension_raise(vector_store):
    with pytest.raises(RetrievalServiceError):
        await vector_store.scroll_all("missing", 10)

    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")
    with pytest.raises(RetrievalServiceError):
        await vector_store.upsert_batch("docs", [make_point("p1", "x", vector=[1.0, 2.0])])


@pytest.mark.asyncio
async def test_scroll_respects_limit_and_insertion_order(vector_store):
    await vector_store.ensure_collection("docs", DIMENSION, "Cosine")
    await vector_store.upsert_batch("docs", [make_point(f"p{i}", f"passage {i}") for i in range(5)])

    points = await vector_store.scroll_all("docs", 3)

    assert [p.id for p in points] == ["p0", "p1", "p2"]


@pytest.mark.asyncio
async def test_collection_persists_to_index_dir(tmp_path):
    store = FAISSVectorStore(index_dir=tmp_path)
    await store.ensure_collection("docs", DIMENSION, "Cosine")
    await store.upsert_batch("docs", [make_point("p1", "ROS 2"), make_point("p2", "Gazebo")])
    await store.upsert_batch("docs", [make_point("p3", "Isaac Sim")])

    # Upserts stay in memory until the run is flushed
    assert not (tmp_path / "docs.index").exists()

    await store.flush("docs")
    assert (tmp_path / "docs.index").exists()

    reopened = FAISSVectorStore(index_dir=tmp_path)
    await reopened.ensure_collection("docs", DIMENSION, "Cosine")

    points = await reopened.scroll_all("docs", 10)
    assert [p.id for p in points] == ["p1", "p2", "p3"]

    hits = await reopened.query("docs", make_point("q", "Gazebo").vector, 1)
    assert hits[0].id == "p2"


@pytest.mark.asyncio
async def test_collection_exists_does_not_create(tmp_path):
    store = FAISSVectorStore(index_dir=tmp_path)

    assert await store.collection_exists("docs") is False
    assert store.collections == {}

    await store.ensure_collection("docs", DIMENSION, "Cosine")
    await store.upsert_batch("docs", [make_point("p1", "ROS 2")])
    await store.flush("docs")

    # A fresh store finds the saved collection on disk
    reopened = FAISSVectorStore(index_dir=tmp_path)
    assert await reopened.collection_exists("docs") is True
    assert reopened.get_stats()["docs"]["vector_count"] == 1
