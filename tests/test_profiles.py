"""Tests for the profile store and the user profile API."""
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from conftest import COLLECTION, make_generator
from courserag import config
from courserag.errors import InternalError
from courserag.main import create_app
from courserag.profiles.store import (
    ANALYTICS,
    DEFAULT_CONTENT_PREFERENCES,
    PREFERENCES,
    USERS,
    ProfileStore,
    StoreStatus,
)
from courserag.services import build_services


def _client(embedder, vector_store, profiles):
    services = build_services(
        embedder=embedder,
        vector_store=vector_store,
        generator=make_generator()[0],
        profiles=profiles,
        collection=COLLECTION,
    )
    return create_app(services).test_client()


@pytest.fixture
def user_id(fake_db):
    oid = ObjectId()
    fake_db[USERS].documents.append({
        "_id": oid,
        "name": "Ada",
        "email": "ada@example.com",
        "softwareExperience": "advanced",
        "createdAt": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    })
    return str(oid)


@pytest.fixture
def mock_client(embedder, vector_store, monkeypatch):
    monkeypatch.setattr(config, "MONGODB_URL", None)
    return _client(embedder, vector_store, ProfileStore())


@pytest.fixture
def db_client(embedder, vector_store, fake_db):
    return _client(embedder, vector_store, ProfileStore.from_database(fake_db))


@pytest.mark.asyncio
async def test_unconfigured_store_stays_in_mock_mode(monkeypatch):
    monkeypatch.setattr(config, "MONGODB_URL", None)
    store = ProfileStore()

    assert await store.connect() is False
    assert store.available is False
    assert (await store.get_profile("abc")).status is StoreStatus.UNAVAILABLE
    assert (await store.record_event(ANALYTICS, {"event": "x"})).status is StoreStatus.UNAVAILABLE


@pytest.mark.asyncio
async def test_store_reads_profile_by_object_id(fake_db, user_id):
    store = ProfileStore.from_database(fake_db)

    result = await store.get_profile(user_id)

    assert result.status is StoreStatus.OK
    assert result.value["id"] == user_id
    assert result.value["name"] == "Ada"
    assert result.value["softwareExperience"] == "advanced"
    assert result.value["hardwareExperience"] == ""
    assert result.value["preferredLanguage"] == "english"
    assert result.value["createdAt"] == "2024-01-02T03:04:05+00:00"
    assert result.value["lastActive"]

    assert (await store.get_profile(str(ObjectId()))).status is StoreStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_store_records_events_with_timestamp(fake_db):
    store = ProfileStore.from_database(fake_db)

    result = await store.record_event(ANALYTICS, {"event": "page_view", "data": {"page": "/docs"}})

    assert result.status is StoreStatus.OK
    [record] = fake_db[ANALYTICS].documents
    assert record["event"] == "page_view"
    assert "timestamp" in record


@pytest.mark.asyncio
async def test_store_errors_become_internal_errors(fake_db):
    class DownCollection:
        async def find_one(self, query):
            raise ServerSelectionTimeoutError("no servers")

    fake_db[USERS] = DownCollection()
    store = ProfileStore.from_database(fake_db)

    with pytest.raises(InternalError) as exc_info:
        await store.get_profile("abc")

    assert exc_info.value.message == "Internal server error"
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_mock_mode_profile(mock_client):
    response = await mock_client.get("/api/user/user-42")

    assert response.status_code == 200
    data = await response.get_json()
    assert data["id"] == "user-42"
    assert data["name"] == "Guest User"
    assert data["preferredLanguage"] == "english"


@pytest.mark.asyncio
async def test_mock_mode_writes_report_success(mock_client):
    profile = await mock_client.put("/api/user/profile", json={"preferences": {"theme": "dark"}})
    assert profile.status_code == 200
    assert await profile.get_json() == {
        "success": True,
        "message": "Profile updated successfully (mock mode)",
        "preferences": {"theme": "dark"},
    }

    background = await mock_client.post("/api/user/background", json={"softwareExperience": "beginner"})
    assert (await background.get_json())["message"] == "Background information saved successfully (mock mode)"

    prefs = await mock_client.post(
        "/api/user/preferences", json={"contentId": "intro", "preferences": {"language": "urdu"}}
    )
    assert await prefs.get_json() == {
        "success": True,
        "message": "Preferences saved for content intro (mock mode)",
        "contentId": "intro",
        "preferences": {"language": "urdu"},
    }

    defaults = await mock_client.get("/api/user/preferences/intro")
    assert await defaults.get_json() == DEFAULT_CONTENT_PREFERENCES


@pytest.mark.asyncio
async def test_preferences_require_content_id(mock_client):
    response = await mock_client.post("/api/user/preferences", json={"preferences": {}})

    assert response.status_code == 400
    assert await response.get_json() == {"error": "contentId is required"}


@pytest.mark.asyncio
async def test_get_profile_from_database(db_client, user_id):
    found = await db_client.get(f"/api/user/{user_id}")
    assert found.status_code == 200
    assert (await found.get_json())["email"] == "ada@example.com"

    missing = await db_client.get(f"/api/user/{ObjectId()}")
    assert missing.status_code == 404
    assert await missing.get_json() == {"error": "User not found"}


@pytest.mark.asyncio
async def test_update_profile_and_background(db_client, fake_db, user_id):
    response = await db_client.put(
        "/api/user/profile", json={"userId": user_id, "preferences": {"theme": "dark"}}
    )
    assert response.status_code == 200
    assert (await response.get_json())["message"] == "Profile updated successfully"

    response = await db_client.post(
        "/api/user/background",
        json={"userId": user_id, "hardwareExperience": "arduino", "learningGoals": "Build a humanoid"},
    )
    assert response.status_code == 200

    [user] = fake_db[USERS].documents
    assert user["preferences"] == {"theme": "dark"}
    assert "lastUpdated" in user
    assert user["hardwareExperience"] == "arduino"
    assert user["learningGoals"] == "Build a humanoid"
    assert user["softwareExperience"] == "advanced"


@pytest.mark.asyncio
async def test_update_profile_errors(db_client):
    no_user = await db_client.put("/api/user/profile", json={"preferences": {}})
    assert no_user.status_code == 400
    assert await no_user.get_json() == {"error": "userId is required"}

    unknown = await db_client.put("/api/user/profile", json={"userId": "nobody", "preferences": {}})
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_content_preferences_round_trip(db_client, fake_db):
    defaults = await db_client.get("/api/user/preferences/intro", query_string={"userId": "u1"})
    assert await defaults.get_json() == DEFAULT_CONTENT_PREFERENCES

    saved = await db_client.post(
        "/api/user/preferences",
        json={"userId": "u1", "contentId": "intro", "preferences": {"difficultyLevel": "advanced"}},
    )
    assert (await saved.get_json())["message"] == "Preferences saved for content intro"

    merged = await db_client.get("/api/user/preferences/intro", query_string={"userId": "u1"})
    assert await merged.get_json() == {**DEFAULT_CONTENT_PREFERENCES, "difficultyLevel": "advanced"}

    # Preferences are kept per user
    other = await db_client.get("/api/user/preferences/intro", query_string={"userId": "u2"})
    assert await other.get_json() == DEFAULT_CONTENT_PREFERENCES
    assert len(fake_db[PREFERENCES].documents) == 1


@pytest.mark.asyncio
async def test_database_failure_is_500(embedder, vector_store, fake_db):
    class DownCollection:
        async def insert_one(self, document):
            raise ServerSelectionTimeoutError("no servers")

    fake_db[ANALYTICS] = DownCollection()
    client = _client(embedder, vector_store, ProfileStore.from_database(fake_db))

    response = await client.post("/api/analytics", json={"event": "page_view"})

    assert response.status_code == 500
    assert await response.get_json() == {"error": "Internal server error"}
