"""Tests for the shared outbound HTTP helper."""
import warnings

import httpx
import pytest

from conftest import RecordingTransport
from courserag.http_client import is_transient, request_with_retry


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    replies = iter([httpx.Response(503), httpx.Response(200, json={"ok": True})])
    transport = RecordingTransport(lambda r: next(replies))

    response = await request_with_retry(
        "GET", "https://svc.test/ping", service="test", initial_wait=0, max_wait=0, transport=transport
    )

    assert response.json() == {"ok": True}
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    transport = RecordingTransport(lambda r: httpx.Response(404))

    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await request_with_retry("GET", "https://svc.test/missing", service="test", transport=transport)

    assert is_transient(exc_info.value) is False
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_backoff_settings_raise_no_deprecation_warnings():
    transport = httpx.MockTransport(lambda r: httpx.Response(200))

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        await request_with_retry(
            "GET", "https://svc.test/ping", service="test", initial_wait=0.5, max_wait=2, transport=transport
        )

    assert [w for w in caught if issubclass(w.category, DeprecationWarning)] == []
