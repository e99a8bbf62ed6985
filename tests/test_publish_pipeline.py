"""Tests for the publish pipeline stage sequence."""

import pytest

from storebuilder.models.store import Store
from storebuilder.services.domain_verifier import DomainVerifier
from storebuilder.services.hosting import HostingPlatform
from storebuilder.services.publish_pipeline import PipelineStageError, PublishPipeline
from storebuilder.services.version_control import GitRepository

from .fakes import DEPLOYMENT_URL, FakeExecutor, no_sleep, script_successful_publish, static_transport


def make_store() -> Store:
    return Store(name="Nordic Goods", domain="shop.example.com", country="SE", language="sv", currency="SEK")


def make_pipeline(executor: FakeExecutor, verifier_status: int = 200) -> PublishPipeline:
    vcs = GitRepository(executor=executor, repository_path="/srv/sites", stores_path="stores")
    hosting = HostingPlatform(executor)
    verifier = DomainVerifier(transport=static_transport(verifier_status), sleep=no_sleep)
    return PublishPipeline(vcs=vcs, hosting=hosting, verifier=verifier, verify_attempts=2, verify_interval_ms=10)


@pytest.mark.asyncio
async def test_publish_runs_stages_in_order():
    executor = script_successful_publish(FakeExecutor())
    events = []

    result = await make_pipeline(executor).publish(make_store(), events.append)

    assert result.url == "https://shop.example.com"
    assert result.deployment_url == DEPLOYMENT_URL
    assert result.is_live is True
    assert result.committed is True

    assert [(e["step"], e["progress"]) for e in events] == [
        ("version_control", 20),
        ("domain", 40),
        ("deploy", 60),
        ("alias", 80),
        ("verify", 90),
        ("done", 100),
    ]

    commit_index = executor.argvs.index(("git", "commit", "-m", "Deploy store: Nordic Goods (shop.example.com)"))
    deploy_index = executor.argvs.index(("vercel", "--prod", "--yes"))
    alias_index = executor.argvs.index(("vercel", "alias", DEPLOYMENT_URL, "shop.example.com"))
    assert commit_index < deploy_index < alias_index


@pytest.mark.asyncio
async def test_async_progress_callback_is_awaited():
    executor = script_successful_publish(FakeExecutor())
    events = []

    async def on_progress(event):
        events.append(event["step"])

    await make_pipeline(executor).publish(make_store(), on_progress)

    assert events[-1] == "done"


@pytest.mark.asyncio
async def test_unreachable_domain_still_succeeds_but_not_live():
    executor = script_successful_publish(FakeExecutor())
    events = []

    result = await make_pipeline(executor, verifier_status=503).publish(make_store(), events.append)

    assert result.is_live is False
    assert events[-1]["progress"] == 100


@pytest.mark.asyncio
async def test_deploy_failure_aborts_before_alias():
    executor = script_successful_publish(FakeExecutor())
    executor.script("vercel", "--prod", "--yes", exit_code=1, stderr="Error: build failed")

    with pytest.raises(PipelineStageError) as exc_info:
        await make_pipeline(executor).publish(make_store())

    assert exc_info.value.stage == "deploy"
    assert "build failed" in exc_info.value.message
    assert not executor.ran("vercel", "alias")


@pytest.mark.asyncio
async def test_version_control_failure_is_tagged():
    executor = script_successful_publish(FakeExecutor())
    executor.script("git", "add", exit_code=128, stderr="fatal: not a git repository")

    with pytest.raises(PipelineStageError) as exc_info:
        await make_pipeline(executor).publish(make_store())

    assert exc_info.value.stage == "version_control"
    assert exc_info.value.to_dict() == {"stage": "version_control", "message": exc_info.value.message}
    assert not executor.ran("vercel")


@pytest.mark.asyncio
async def test_alias_failure_is_tagged():
    executor = script_successful_publish(FakeExecutor())
    executor.script("vercel", "alias", exit_code=1, stderr="alias rejected")

    with pytest.raises(PipelineStageError) as exc_info:
        await make_pipeline(executor).publish(make_store())

    assert exc_info.value.stage == "alias"
