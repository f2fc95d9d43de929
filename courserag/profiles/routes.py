"""User profile HTTP API.

When the profile store is unavailable every endpoint still answers 200 with
synthetic data and a "(mock mode)" message so the course site keeps working.
"""
from datetime import datetime, timezone

import structlog
from quart import Blueprint, current_app, jsonify, request

from courserag.errors import NotFoundError, ValidationError
from courserag.profiles.store import DEFAULT_CONTENT_PREFERENCES, ProfileStore, StoreStatus
from courserag.schemas import BackgroundInfo, PreferencesRequest, ProfileUpdate, parse_body

logger = structlog.get_logger()

bp = Blueprint("profiles", __name__, url_prefix="/api/user")

ANONYMOUS_USER = "anonymous"
MOCK_SUFFIX = " (mock mode)"


def _store() -> ProfileStore:
    return current_app.extensions["courserag"].profiles


def mock_profile(user_id: str) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": user_id,
        "name": "Guest User",
        "email": "guest@example.com",
        "softwareExperience": "beginner",
        "hardwareExperience": "none",
        "roboticsBackground": "none",
        "learningGoals": "Learn robotics",
        "preferredLanguage": "english",
        "createdAt": now,
        "lastActive": now,
    }


def _require_user_id(user_id):
    if not user_id:
        raise ValidationError("userId is required")
    return user_id


@bp.route("/<user_id>", methods=["GET"])
async def get_user(user_id: str):
    """Get a user profile by id."""
    result = await _store().get_profile(user_id)

    if result.status is StoreStatus.UNAVAILABLE:
        return jsonify(mock_profile(user_id))
    if result.status is StoreStatus.NOT_FOUND:
        raise NotFoundError("User not found")

    return jsonify(result.value)


@bp.route("/profile", methods=["PUT"])
async def update_profile():
    """Update a user's general preferences.

    Expects JSON body: {"userId": "...", "preferences": {...}}
    """
    body = parse_body(ProfileUpdate, await request.get_json(silent=True))
    store = _store()

    if not store.available:
        return jsonify({
            "success": True,
            "message": "Profile updated successfully" + MOCK_SUFFIX,
            "preferences": body.preferences,
        })

    user_id = _require_user_id(body.user_id)
    result = await store.update_preferences(user_id, body.preferences or {})
    if result.status is StoreStatus.NOT_FOUND:
        raise NotFoundError("User not found")

    return jsonify({
        "success": True,
        "message": "Profile updated successfully",
        "preferences": body.preferences,
    })


@bp.route("/background", methods=["POST"])
async def save_background():
    """Save a user's background questionnaire."""
    body = parse_body(BackgroundInfo, await request.get_json(silent=True))
    store = _store()

    if not store.available:
        return jsonify({
            "success": True,
            "message": "Background information saved successfully" + MOCK_SUFFIX,
        })

    user_id = _require_user_id(body.user_id)
    result = await store.save_background(user_id, body.fields_to_store())
    if result.status is StoreStatus.NOT_FOUND:
        raise NotFoundError("User not found")

    return jsonify({"success": True, "message": "Background information saved successfully"})


@bp.route("/preferences/<content_id>", methods=["GET"])
async def get_content_preferences(content_id: str):
    """Preferences for one piece of content; defaults when none are stored.

    The user is taken from the ``userId`` query parameter.
    """
    user_id = request.args.get("userId") or ANONYMOUS_USER
    result = await _store().get_content_preferences(user_id, content_id)

    if result.status is StoreStatus.OK:
        return jsonify(result.value)
    return jsonify(dict(DEFAULT_CONTENT_PREFERENCES))


@bp.route("/preferences", methods=["POST"])
async def save_content_preferences():
    """Save preferences for one piece of content.

    Expects JSON body: {"userId"?: "...", "contentId": "...", "preferences": {...}}
    """
    body = parse_body(PreferencesRequest, await request.get_json(silent=True))
    if not body.content_id:
        raise ValidationError("contentId is required")

    result = await _store().save_content_preferences(
        body.user_id or ANONYMOUS_USER, body.content_id, body.preferences or {}
    )

    message = f"Preferences saved for content {body.content_id}"
    if result.status is StoreStatus.UNAVAILABLE:
        message += MOCK_SUFFIX

    logger.info("content_preferences_saved", content_id=body.content_id, persisted=result.status is StoreStatus.OK)

    return jsonify({
        "success": True,
        "message": message,
        "contentId": body.content_id,
        "preferences": body.preferences,
    })
