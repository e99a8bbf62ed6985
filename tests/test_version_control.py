"""Tests for git operations on generated sites."""

import asyncio
import shutil

import pytest

from storebuilder.services.command_executor import (
    Command,
    CommandExecutionError,
    SubprocessExecutor,
    run_checked,
)
from storebuilder.services.version_control import GitRepository, VersionControlError

from .fakes import FakeExecutor


def make_repository(executor: FakeExecutor, **options) -> GitRepository:
    return GitRepository(executor=executor, repository_path="/srv/sites", stores_path="stores", **options)


@pytest.mark.asyncio
async def test_commit_and_push_stages_commits_and_pushes():
    executor = FakeExecutor()
    executor.script("git", "diff", "--cached", "--name-only", stdout="stores/shop.example.com/index.html\n")
    repo = make_repository(executor)

    committed = await repo.commit_and_push("Deploy store: Shop", repo.store_path("shop.example.com"))

    assert committed is True
    assert executor.argvs == [
        ("git", "add", "--all", "--", "stores/shop.example.com"),
        ("git", "diff", "--cached", "--name-only"),
        ("git", "commit", "-m", "Deploy store: Shop"),
        ("git", "remote", "get-url", "origin"),
        ("git", "push", "origin", "main"),
    ]
    assert all(command.cwd == "/srv/sites" for command in executor.commands)


@pytest.mark.asyncio
async def test_nothing_to_commit_skips_commit_and_push():
    executor = FakeExecutor()
    repo = make_repository(executor)

    assert await repo.commit_and_push("Deploy") is False
    assert not executor.ran("git", "commit")
    assert not executor.ran("git", "push")


@pytest.mark.asyncio
async def test_author_identity_is_passed_per_command():
    executor = FakeExecutor()
    repo = make_repository(executor, author_name="Store Builder", author_email="deploy@example.com")

    await repo.has_remote()

    assert executor.argvs[0] == (
        "git", "-c", "user.name=Store Builder", "-c", "user.email=deploy@example.com",
        "remote", "get-url", "origin",
    )


@pytest.mark.asyncio
async def test_push_without_remote_is_skipped():
    executor = FakeExecutor()
    executor.script("git", "remote", "get-url", exit_code=2, stderr="error: No such remote 'origin'")
    repo = make_repository(executor)

    await repo.push()

    assert not executor.ran("git", "push")


@pytest.mark.asyncio
async def test_push_retries_with_upstream():
    executor = FakeExecutor()
    executor.script("git", "push", "origin", exit_code=1, stderr="no upstream branch")
    repo = make_repository(executor)

    await repo.push()

    assert executor.ran("git", "push", "--set-upstream", "origin", "main")


@pytest.mark.asyncio
async def test_failed_commit_raises_version_control_error():
    executor = FakeExecutor()
    executor.script("git", "diff", "--cached", "--name-only", stdout="stores/a/index.html\n")
    executor.script("git", "commit", exit_code=128, stderr="fatal: unable to write new index file")
    repo = make_repository(executor)

    with pytest.raises(VersionControlError, match="unable to write"):
        await repo.commit_and_push("Deploy")


@pytest.mark.asyncio
async def test_missing_git_binary_raises_version_control_error():
    executor = FakeExecutor()
    executor.script("git", "add", raises=CommandExecutionError(None, None, "Unable to start git"))
    repo = make_repository(executor)

    with pytest.raises(VersionControlError):
        await repo.commit_and_push("Deploy")


@pytest.mark.asyncio
async def test_remove_store_removes_commits_and_pushes():
    executor = FakeExecutor()
    executor.script("git", "ls-files", stdout="stores/shop.example.com/index.html\n")
    repo = make_repository(executor)

    assert await repo.remove_store("shop.example.com") is True
    assert executor.ran("git", "rm", "-r", "--quiet", "--", "stores/shop.example.com")
    assert executor.ran("git", "commit", "-m", "Remove store: shop.example.com")
    assert executor.ran("git", "push", "origin", "main")


@pytest.mark.asyncio
async def test_remove_store_without_tracked_files_is_a_no_op():
    executor = FakeExecutor()
    repo = make_repository(executor)

    assert await repo.remove_store("shop.example.com") is False
    assert not executor.ran("git", "rm")


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@requires_git
@pytest.mark.asyncio
async def test_concurrent_commits_for_different_stores_do_not_collide(tmp_path):
    executor = SubprocessExecutor(default_timeout=30)
    await run_checked(executor, Command.of("git", "init", "--quiet", str(tmp_path)))
    lock = asyncio.Lock()
    repos = [
        GitRepository(
            executor=executor,
            repository_path=str(tmp_path),
            stores_path="stores",
            author_name="Store Builder",
            author_email="deploy@example.com",
            lock=lock,
        )
        for _ in range(2)
    ]

    domains = []
    for round_number in range(5):
        pair = [f"a{round_number}.example.com", f"b{round_number}.example.com"]
        for domain in pair:
            site = tmp_path / "stores" / domain
            site.mkdir(parents=True)
            (site / "index.html").write_text(f"<h1>{domain}</h1>")

        results = await asyncio.gather(*(
            repo.commit_and_push(f"Deploy store: {domain}", repo.store_path(domain))
            for repo, domain in zip(repos, pair)
        ))

        assert results == [True, True]
        domains += pair

    # Each store's files landed in its own commit
    for domain in domains:
        log = await run_checked(executor, Command.of(
            "git", "log", "--format=%s", "--", f"stores/{domain}", cwd=str(tmp_path),
        ))
        assert log.stdout.splitlines() == [f"Deploy store: {domain}"]


@pytest.mark.asyncio
async def test_repositories_sharing_a_lock_run_one_sequence_at_a_time():
    active = 0
    overlaps = []

    class SlowExecutor(FakeExecutor):
        async def run(self, command):
            nonlocal active
            active += 1
            overlaps.append(active)
            await asyncio.sleep(0)
            active -= 1
            return await super().run(command)

    executor = SlowExecutor()
    executor.script("git", "diff", "--cached", "--name-only", stdout="stores/a/index.html\n")
    executor.script("git", "ls-files", stdout="stores/b/index.html\n")
    lock = asyncio.Lock()
    first = make_repository(executor, lock=lock)
    second = make_repository(executor, lock=lock)

    await asyncio.gather(
        first.commit_and_push("Deploy store: a", first.store_path("a")),
        second.remove_store("b"),
    )

    assert max(overlaps) == 1
    commands = [argv[1] for argv in executor.argvs]
    assert commands == [
        "add", "diff", "commit", "remote", "push",
        "ls-files", "rm", "commit", "remote", "push",
    ]
