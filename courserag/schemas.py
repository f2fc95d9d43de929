"""Request body models for the HTTP API."""
from typing import Any, Dict, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from courserag.errors import ValidationError

M = TypeVar("M", bound=BaseModel)


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class QueryRequest(_Body):
    """Body of /api/rag and /api/retrieve."""
    query: Optional[str] = None


class AnalyticsEvent(_Body):
    event: Optional[str] = None
    data: Any = None


class FeedbackRequest(_Body):
    message_id: Optional[Union[str, int]] = Field(None, alias="messageId")
    feedback: Optional[str] = None
    message_text: Optional[str] = Field(None, alias="messageText")


class IndexContentRequest(_Body):
    """Optional body of /api/index-content."""
    source: Literal["directory", "sitemap"] = "directory"
    sitemap_url: Optional[str] = Field(None, alias="sitemapUrl")
    max_urls: Optional[int] = Field(None, alias="maxUrls", ge=1)


class ProfileUpdate(_Body):
    user_id: Optional[str] = Field(None, alias="userId")
    preferences: Optional[Dict[str, Any]] = None


class BackgroundInfo(_Body):
    user_id: Optional[str] = Field(None, alias="userId")
    software_experience: Optional[str] = Field(None, alias="softwareExperience")
    hardware_experience: Optional[str] = Field(None, alias="hardwareExperience")
    robotics_background: Optional[str] = Field(None, alias="roboticsBackground")
    learning_goals: Optional[str] = Field(None, alias="learningGoals")
    preferred_language: Optional[str] = Field(None, alias="preferredLanguage")

    def fields_to_store(self) -> Dict[str, Any]:
        """Background fields keyed the way user documents store them.

        Fields missing from the request are left untouched.
        """
        return self.model_dump(by_alias=True, exclude={"user_id"}, exclude_none=True)


class PreferencesRequest(_Body):
    user_id: Optional[str] = Field(None, alias="userId")
    content_id: Optional[str] = Field(None, alias="contentId")
    preferences: Optional[Dict[str, Any]] = None


def parse_body(model: Type[M], data: Any, message: str = "Invalid request body") -> M:
    """Validate a JSON body against a request model.

    Args:
        model: Pydantic model class
        data: Decoded JSON body (None when the body was empty or not JSON)
        message: Public error message on failure

    Returns:
        Validated model instance

    Raises:
        ValidationError: If the body is not an object or fails validation
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(message)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(message) from e
