"""Hosting platform integration (Vercel CLI) and edge cache purging."""

import logging
import re
from typing import List, Optional

import httpx

from storebuilder.core.settings import Settings
from storebuilder.services.command_executor import (
    Command,
    CommandExecutionError,
    CommandExecutor,
    CommandResult,
)

logger = logging.getLogger(__name__)

DEPLOYMENT_URL_PATTERN = re.compile(r"https://[^\s]+\.vercel\.app")


class HostingPlatformError(Exception):
    """Raised when the hosting platform rejects or fails an operation."""

    def __init__(self, message: str, result: Optional[CommandResult] = None):
        super().__init__(message)
        self.result = result


class HostingPlatform:
    """
    Domain, deployment and alias management through the hosting CLI.

    Each operation carries its own timeout; a timeout is reported as a
    :class:`HostingPlatformError` like any other failure.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        cli: str = "vercel",
        cwd: Optional[str] = None,
        token: Optional[str] = None,
        scope: Optional[str] = None,
        deploy_timeout: float = 300.0,
        domain_timeout: float = 15.0,
        inspect_timeout: float = 10.0,
        alias_timeout: float = 30.0,
    ):
        self.executor = executor
        self.cli = cli
        self.cwd = cwd
        self.token = token
        self.scope = scope
        self.deploy_timeout = deploy_timeout
        self.domain_timeout = domain_timeout
        self.inspect_timeout = inspect_timeout
        self.alias_timeout = alias_timeout

    @classmethod
    def from_settings(cls, settings: Settings, executor: CommandExecutor) -> "HostingPlatform":
        return cls(
            executor=executor,
            cli=settings.hosting_cli,
            cwd=settings.git_repository_path,
            token=settings.hosting_token,
            scope=settings.hosting_scope,
            deploy_timeout=settings.hosting_deploy_timeout_seconds,
            domain_timeout=settings.hosting_domain_timeout_seconds,
            inspect_timeout=settings.hosting_inspect_timeout_seconds,
            alias_timeout=settings.hosting_alias_timeout_seconds,
        )

    def _command(self, *args: str, timeout: float) -> Command:
        extra: List[str] = []
        if self.token:
            extra += ["--token", self.token]
        if self.scope:
            extra += ["--scope", self.scope]
        return Command.of(self.cli, *args, *extra, timeout=timeout, cwd=self.cwd)

    async def _run(self, *args: str, timeout: float) -> CommandResult:
        command = self._command(*args, timeout=timeout)
        try:
            return await self.executor.run(command)
        except CommandExecutionError as e:
            raise HostingPlatformError(str(e)) from e

    def _fail(self, action: str, result: CommandResult) -> HostingPlatformError:
        if result.timed_out:
            return HostingPlatformError(f"{action} timed out", result)
        detail = result.output.strip() or f"exit code {result.exit_code}"
        return HostingPlatformError(f"{action} failed: {detail}", result)

    async def domain_registered(self, domain: str) -> bool:
        """
        Check whether the hosting project already knows ``domain``.

        Raises:
            HostingPlatformError: If the inspection fails for any reason other than "not found"
        """
        result = await self._run("domains", "inspect", domain, timeout=self.inspect_timeout)
        if result.ok:
            return True
        if "not found" in result.output.lower():
            return False
        raise self._fail(f"Inspecting domain {domain}", result)

    async def ensure_domain(self, domain: str) -> bool:
        """
        Register ``domain`` with the project unless it already is.

        Returns:
            bool: True when the domain was added by this call
        """
        if await self.domain_registered(domain):
            logger.info(f"Domain {domain} already registered with hosting platform")
            return False

        result = await self._run("domains", "add", domain, timeout=self.domain_timeout)
        if result.ok:
            logger.info(f"Domain {domain} added to hosting project")
            return True

        output = result.output.lower()
        if "already assigned" in output or "already added" in output:
            logger.info(f"Domain {domain} was already connected to the project")
            return False
        raise self._fail(f"Adding domain {domain}", result)

    async def deploy_production(self) -> str:
        """
        Trigger a production deployment.

        Returns:
            str: Deployment URL parsed from the CLI output
        """
        result = await self._run("--prod", "--yes", timeout=self.deploy_timeout)
        if not result.ok:
            raise self._fail("Production deployment", result)

        match = DEPLOYMENT_URL_PATTERN.search(result.output)
        if not match:
            raise HostingPlatformError("Deployment URL not found in hosting output", result)
        url = match.group(0)
        logger.info(f"Production deployment created: {url}")
        return url

    async def create_alias(self, deployment_url: str, domain: str) -> None:
        result = await self._run("alias", deployment_url, domain, timeout=self.alias_timeout)
        if not result.ok:
            raise self._fail(f"Aliasing {domain}", result)
        logger.info(f"Aliased {domain} -> {deployment_url}")

    async def remove_alias(self, domain: str) -> None:
        result = await self._run("alias", "rm", domain, "--yes", timeout=self.domain_timeout)
        if not result.ok:
            raise self._fail(f"Removing alias {domain}", result)
        logger.info(f"Removed alias {domain}")

    async def remove_domain(self, domain: str) -> None:
        result = await self._run("domains", "rm", domain, "--yes", timeout=self.domain_timeout)
        if not result.ok:
            raise self._fail(f"Removing domain {domain}", result)
        logger.info(f"Removed domain {domain} from hosting project")


class CachePurger:
    """Send ``PURGE`` requests for a domain's well-known paths."""

    PATHS = ("/", "/index.html", "/*")

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def purge(self, domain: str) -> int:
        """
        Purge edge caches for ``domain``.

        Returns:
            int: Number of paths the edge acknowledged
        """
        purged = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for path in self.PATHS:
                url = f"https://{domain}{path}"
                try:
                    response = await client.request("PURGE", url, headers={"Cache-Control": "no-cache"})
                except httpx.HTTPError as e:
                    logger.warning(f"Cache purge failed for {url}: {e}")
                    continue
                if response.status_code < 400:
                    purged += 1
                else:
                    logger.debug(f"Cache purge for {url} returned {response.status_code}")
        logger.info(f"Purged {purged}/{len(self.PATHS)} cached paths for {domain}")
        return purged
