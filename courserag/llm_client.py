"""Generation client for OpenAI-compatible chat completion APIs."""
from typing import Dict, List, Optional

import httpx
import structlog

from courserag import config
from courserag.errors import GenerationServiceError
from courserag.http_client import is_transient, request_with_retry

logger = structlog.get_logger()


class GenerationClient:
    """Async client for a ``/chat/completions`` endpoint (OpenRouter by default)."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
        top_p: float = None,
        timeout: float = 60.0,
        retry_attempts: int = None,
        retry_wait: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the generation client.

        Args:
            api_key: API key (defaults to config.GENERATION_API_KEY)
            base_url: API base URL (defaults to config.GENERATION_BASE_URL)
            model: Model to use (defaults to config.GENERATION_MODEL)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            top_p: Nucleus sampling parameter
            timeout: Request timeout in seconds
            retry_attempts: Attempts for transient failures
            retry_wait: Backoff between attempts in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else config.GENERATION_API_KEY
        self.base_url = (base_url or config.GENERATION_BASE_URL).rstrip("/")
        self.model = model or config.GENERATION_MODEL
        self.temperature = config.GENERATION_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or config.GENERATION_MAX_TOKENS
        self.top_p = config.GENERATION_TOP_P if top_p is None else top_p
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def chat(self, messages: List[Dict[str, str]]) -> str:
        """Send a chat completion request and return the assistant text.

        Args:
            messages: List of message dicts with 'role' and 'content'

        Returns:
            The generated text

        Raises:
            GenerationServiceError: If not configured, on API errors, or on
                an empty completion
        """
        if not self.configured:
            raise GenerationServiceError("Generation service is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
        }

        logger.info("generation_request", model=self.model, message_count=len(messages))

        try:
            response = await request_with_retry(
                "POST",
                f"{self.base_url}/chat/completions",
                service="generation",
                timeout=self.timeout,
                attempts=self.retry_attempts,
                initial_wait=self.retry_wait,
                max_wait=self.retry_wait,
                transport=self.transport,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(
                "generation_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise GenerationServiceError(
                f"Generation request failed: {e}", retryable=is_transient(e)
            ) from e
        except ValueError as e:
            raise GenerationServiceError(f"Generation service returned invalid JSON: {e}") from e

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationServiceError("Generation response missing completion text") from e

        if not text or not text.strip():
            raise GenerationServiceError("Empty response from generation model")

        logger.info("generation_response", model=self.model, response_length=len(text))

        return text
