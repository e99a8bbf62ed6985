"""Tests for post-deployment liveness checks."""

import httpx
import pytest

from storebuilder.services.domain_verifier import DomainVerifier


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.mark.asyncio
async def test_live_on_first_attempt():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    sleep = RecordingSleep()
    verifier = DomainVerifier(transport=httpx.MockTransport(handler), sleep=sleep, user_agent="test-agent")

    assert await verifier.verify_live("shop.example.com") is True
    assert len(requests) == 1
    assert requests[0].method == "HEAD"
    assert requests[0].url.scheme == "https"
    assert requests[0].url.host == "shop.example.com"
    assert requests[0].headers["user-agent"] == "test-agent"
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_retries_until_success():
    statuses = iter([503, 502, 200])
    sleep = RecordingSleep()
    verifier = DomainVerifier(
        transport=httpx.MockTransport(lambda request: httpx.Response(next(statuses))),
        sleep=sleep,
    )

    assert await verifier.verify_live("shop.example.com", max_attempts=3, interval_ms=1500) is True
    assert sleep.calls == [1.5, 1.5]


@pytest.mark.asyncio
async def test_gives_up_without_sleeping_after_last_attempt():
    sleep = RecordingSleep()
    verifier = DomainVerifier(
        transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        sleep=sleep,
    )

    assert await verifier.verify_live("shop.example.com", max_attempts=3, interval_ms=2000) is False
    assert sleep.calls == [2.0, 2.0]


@pytest.mark.asyncio
async def test_network_errors_count_as_failed_attempts():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(204)

    verifier = DomainVerifier(transport=httpx.MockTransport(handler), sleep=RecordingSleep())

    assert await verifier.verify_live("shop.example.com", max_attempts=2) is True
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_follows_redirects():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            return httpx.Response(301, headers={"Location": "https://shop.example.com/home"})
        return httpx.Response(200)

    verifier = DomainVerifier(transport=httpx.MockTransport(handler), sleep=RecordingSleep())

    assert await verifier.verify_live("shop.example.com", max_attempts=1) is True
