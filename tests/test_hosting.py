"""Tests for hosting CLI integration and cache purging."""

import httpx
import pytest

from storebuilder.services.hosting import CachePurger, HostingPlatform, HostingPlatformError

from .fakes import DEPLOYMENT_URL, FakeExecutor


@pytest.mark.asyncio
async def test_ensure_domain_adds_unknown_domain():
    executor = FakeExecutor()
    executor.script("vercel", "domains", "inspect", exit_code=1, stderr="Error: Domain not found")
    hosting = HostingPlatform(executor)

    assert await hosting.ensure_domain("shop.example.com") is True
    assert executor.argvs[-1] == ("vercel", "domains", "add", "shop.example.com")


@pytest.mark.asyncio
async def test_ensure_domain_skips_registered_domain():
    executor = FakeExecutor()
    hosting = HostingPlatform(executor)

    assert await hosting.ensure_domain("shop.example.com") is False
    assert not executor.ran("vercel", "domains", "add")


@pytest.mark.asyncio
async def test_ensure_domain_tolerates_already_assigned():
    executor = FakeExecutor()
    executor.script("vercel", "domains", "inspect", exit_code=1, stderr="Domain not found")
    executor.script("vercel", "domains", "add", exit_code=1, stderr="Domain is already assigned to this project")
    hosting = HostingPlatform(executor)

    assert await hosting.ensure_domain("shop.example.com") is False


@pytest.mark.asyncio
async def test_inspect_failure_is_an_error():
    executor = FakeExecutor()
    executor.script("vercel", "domains", "inspect", exit_code=1, stderr="Error: not authorized")
    hosting = HostingPlatform(executor)

    with pytest.raises(HostingPlatformError, match="not authorized"):
        await hosting.ensure_domain("shop.example.com")


@pytest.mark.asyncio
async def test_deploy_production_parses_deployment_url():
    executor = FakeExecutor()
    executor.script("vercel", "--prod", "--yes", stdout=f"Inspect: https://vercel.com/x\nProduction: {DEPLOYMENT_URL}\n")
    hosting = HostingPlatform(executor, deploy_timeout=120)

    assert await hosting.deploy_production() == DEPLOYMENT_URL
    assert executor.commands[-1].timeout == 120


@pytest.mark.asyncio
async def test_deploy_without_url_in_output_fails():
    executor = FakeExecutor()
    executor.script("vercel", "--prod", "--yes", stdout="Deployment queued")
    hosting = HostingPlatform(executor)

    with pytest.raises(HostingPlatformError, match="Deployment URL not found"):
        await hosting.deploy_production()


@pytest.mark.asyncio
async def test_deploy_timeout_is_reported():
    executor = FakeExecutor()
    executor.script("vercel", "--prod", "--yes", exit_code=-9, timed_out=True)
    hosting = HostingPlatform(executor)

    with pytest.raises(HostingPlatformError, match="timed out"):
        await hosting.deploy_production()


@pytest.mark.asyncio
async def test_token_and_scope_are_appended():
    executor = FakeExecutor()
    hosting = HostingPlatform(executor, token="secret", scope="team-a")

    await hosting.create_alias(DEPLOYMENT_URL, "shop.example.com")

    assert executor.argvs[-1] == (
        "vercel", "alias", DEPLOYMENT_URL, "shop.example.com",
        "--token", "secret", "--scope", "team-a",
    )


@pytest.mark.asyncio
async def test_remove_alias_and_domain_confirm_non_interactively():
    executor = FakeExecutor()
    hosting = HostingPlatform(executor)

    await hosting.remove_alias("shop.example.com")
    await hosting.remove_domain("shop.example.com")

    assert executor.argvs == [
        ("vercel", "alias", "rm", "shop.example.com", "--yes"),
        ("vercel", "domains", "rm", "shop.example.com", "--yes"),
    ]


@pytest.mark.asyncio
async def test_cache_purge_sends_purge_requests():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(404 if request.url.path == "/*" else 200)

    purger = CachePurger(transport=httpx.MockTransport(handler))

    assert await purger.purge("shop.example.com") == 2
    assert seen == [("PURGE", "/"), ("PURGE", "/index.html"), ("PURGE", "/*")]


@pytest.mark.asyncio
async def test_cache_purge_survives_network_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    purger = CachePurger(transport=httpx.MockTransport(handler))

    assert await purger.purge("shop.example.com") == 0
