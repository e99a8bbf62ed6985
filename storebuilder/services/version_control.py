"""Git operations for generated store sites."""

import asyncio
import logging
import os
from typing import List, Optional

from storebuilder.core.settings import Settings
from storebuilder.services.command_executor import (
    Command,
    CommandExecutionError,
    CommandExecutor,
    CommandResult,
    run_checked,
)

logger = logging.getLogger(__name__)


class VersionControlError(Exception):
    """Raised when a git operation required by a workflow fails."""
    pass


class GitRepository:
    """
    Thin wrapper around the ``git`` CLI for the repository holding the sites.

    Every call goes through a :class:`CommandExecutor`; nothing here touches
    the working tree directly. All stores share one index, so each
    stage-commit-push and each remove-commit-push sequence holds
    ``lock``. Share the lock between instances pointing at the same
    repository.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        repository_path: str,
        stores_path: str,
        remote: str = "origin",
        branch: str = "main",
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
        timeout: Optional[float] = 60.0,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.executor = executor
        self.repository_path = repository_path
        self.stores_path = stores_path.strip("/") or "."
        self.remote = remote
        self.branch = branch
        self.author_name = author_name
        self.author_email = author_email
        self.timeout = timeout
        self.lock = lock or asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        executor: CommandExecutor,
        lock: Optional[asyncio.Lock] = None,
    ) -> "GitRepository":
        repository_path = os.path.abspath(settings.git_repository_path)
        stores_path = os.path.relpath(os.path.abspath(settings.stores_root), repository_path)
        return cls(
            executor=executor,
            repository_path=repository_path,
            stores_path=stores_path.replace(os.sep, "/"),
            remote=settings.git_remote,
            branch=settings.git_branch,
            author_name=settings.git_author_name,
            author_email=settings.git_author_email,
            timeout=settings.git_timeout_seconds,
            lock=lock,
        )

    def _git(self, *args: str, timeout: Optional[float] = None) -> Command:
        identity: List[str] = []
        if self.author_name:
            identity += ["-c", f"user.name={self.author_name}"]
        if self.author_email:
            identity += ["-c", f"user.email={self.author_email}"]
        return Command.of(
            "git",
            *identity,
            *args,
            timeout=timeout if timeout is not None else self.timeout,
            cwd=self.repository_path,
        )

    def store_path(self, domain: str) -> str:
        """Repository-relative path of a store's site directory."""
        return f"{self.stores_path}/{domain}"

    async def _run(self, *args: str) -> CommandResult:
        try:
            return await run_checked(self.executor, self._git(*args))
        except CommandExecutionError as e:
            raise VersionControlError(str(e)) from e

    async def has_remote(self) -> bool:
        result = await self.executor.run(self._git("remote", "get-url", self.remote))
        return result.ok

    async def has_staged_changes(self) -> bool:
        result = await self._run("diff", "--cached", "--name-only")
        return bool(result.stdout.strip())

    async def commit_and_push(self, message: str, path: Optional[str] = None) -> bool:
        """
        Stage ``path`` (the whole stores tree by default), commit and push.

        Args:
            message: Commit message
            path: Repository-relative path to stage

        Returns:
            bool: False when there was nothing to commit

        Raises:
            VersionControlError: If staging, committing or pushing fails
        """
        async with self.lock:
            await self._run("add", "--all", "--", path or f"{self.stores_path}/")

            if not await self.has_staged_changes():
                logger.info("No changes to commit")
                return False

            await self._run("commit", "-m", message)
            logger.info(f"Committed: {message}")

            await self.push()
            return True

    async def push(self) -> None:
        """Push the current branch, setting the upstream on first push."""
        if not await self.has_remote():
            logger.warning(f"Git remote '{self.remote}' is not configured, skipping push")
            return

        result = await self.executor.run(self._git("push", self.remote, self.branch))
        if result.ok:
            logger.info(f"Pushed to {self.remote}/{self.branch}")
            return

        logger.warning(f"Push failed, retrying with upstream: {result.stderr.strip()}")
        await self._run("push", "--set-upstream", self.remote, self.branch)
        logger.info(f"Pushed to {self.remote}/{self.branch} with upstream set")

    async def tracked_files(self, path: str) -> List[str]:
        result = await self._run("ls-files", "--", path)
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def remove_store(self, domain: str) -> bool:
        """
        Remove a store's tracked files and record the removal.

        Returns:
            bool: False when git had no files for the store
        """
        path = self.store_path(domain)
        async with self.lock:
            if not await self.tracked_files(path):
                logger.info(f"No tracked files for {domain}, nothing to remove from git")
                return False

            await self._run("rm", "-r", "--quiet", "--", path)
            await self._run("commit", "-m", f"Remove store: {domain}")
            logger.info(f"Removed {path} from git")

            await self.push()
            return True
