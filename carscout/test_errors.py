"""
Tests for error classification and the HTTP capability's error translation.
"""
import asyncio

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from carscout.errors import (
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    HttpError,
    TransientNetworkError,
    classify_error,
    compute_backoff_seconds,
    is_transient,
)
from carscout.transport import HttpClient
from carscout.two_factor import generate_code


def test_typed_errors_carry_their_kind():
    assert classify_error(ConfigurationError("x")) is ErrorKind.CONFIGURATION
    assert classify_error(TransientNetworkError("x")) is ErrorKind.TRANSIENT
    assert classify_error(AuthenticationError("x")) is ErrorKind.AUTHENTICATION
    assert classify_error(AuthenticationError("x", credential_related=True)) is ErrorKind.CREDENTIAL


def test_library_errors_are_classified():
    assert classify_error(asyncio.TimeoutError()) is ErrorKind.TRANSIENT
    assert classify_error(httpx.ConnectError("boom")) is ErrorKind.TRANSIENT
    assert classify_error(PlaywrightError("net::ERR_CONNECTION_RESET at https://x")) is ErrorKind.TRANSIENT
    assert classify_error(PlaywrightError("Element is not attached")) is ErrorKind.UNKNOWN
    assert classify_error(KeyError("x")) is ErrorKind.UNKNOWN
    assert not is_transient(ValueError("x"))


def test_backoff_is_exponential_and_capped():
    assert [compute_backoff_seconds(n) for n in (1, 2, 3, 4)] == [1, 2, 4, 8]
    assert compute_backoff_seconds(10) == 30
    assert compute_backoff_seconds(3, cap=3) == 3


def make_client(handler):
    return HttpClient(transport=httpx.MockTransport(handler))


def test_http_client_decodes_json():
    def handler(request):
        return httpx.Response(200, json={"ok": True})

    async def run():
        client = make_client(handler)
        try:
            return await client.get("https://example.test/api")
        finally:
            await client.close()

    response = asyncio.run(run())
    assert response.status_code == 200
    assert response.data == {"ok": True}


@pytest.mark.parametrize("status", [429, 500, 503])
def test_retryable_status_raises_transient(status):
    async def run():
        client = make_client(lambda request: httpx.Response(status))
        try:
            await client.get("https://example.test/")
        finally:
            await client.close()

    with pytest.raises(TransientNetworkError) as info:
        asyncio.run(run())
    assert info.value.status_code == status


def test_client_error_status_raises_http_error_with_headers():
    def handler(request):
        return httpx.Response(403, headers={"set-cookie": "session=abc; Path=/"})

    async def run():
        client = make_client(handler)
        try:
            await client.get("https://example.test/")
        finally:
            await client.close()

    with pytest.raises(HttpError) as info:
        asyncio.run(run())
    assert info.value.status_code == 403
    assert "session=abc" in info.value.headers.get("set-cookie")
    assert classify_error(info.value) is ErrorKind.UNKNOWN


def test_connection_failure_is_translated():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        client = make_client(handler)
        try:
            await client.get("https://example.test/")
        finally:
            await client.close()

    with pytest.raises(TransientNetworkError):
        asyncio.run(run())


def test_generate_code_is_six_digits():
    code = generate_code("JBSWY3DPEHPK3PXP")
    assert len(code) == 6 and code.isdigit()


@pytest.mark.parametrize("secret", ["", "   ", "not-base32!!"])
def test_generate_code_rejects_bad_secrets(secret):
    with pytest.raises(ValueError):
        generate_code(secret)
