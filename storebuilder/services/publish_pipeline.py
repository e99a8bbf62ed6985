"""Publish a generated store site: version control, hosting, alias, verification."""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from storebuilder.models.store import Store
from storebuilder.services.domain_verifier import DomainVerifier
from storebuilder.services.hosting import HostingPlatform
from storebuilder.services.version_control import GitRepository

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class PipelineStageError(Exception):
    """Raised when a publish stage fails; ``stage`` names the failing stage."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "message": self.message}


@dataclass
class PublishResult:
    """Outcome of a successful pipeline run."""
    url: str
    is_live: bool
    deployment_url: str
    committed: bool = True


async def emit_progress(callback: Optional[ProgressCallback], event: Dict[str, Any]) -> None:
    """Invoke a progress callback that may be sync or async."""
    if callback is None:
        return
    result = callback(event)
    if inspect.isawaitable(result):
        await result


class PublishPipeline:
    """
    Drive a generated site to a public URL.

    Stages run strictly in order and the first failure aborts the run:

    - ``version_control``: commit and push the site directory
    - ``domain``: register the domain with the hosting project if needed
    - ``deploy``: trigger a production deployment
    - ``alias``: point the domain at that deployment
    - ``verify``: poll the domain until it answers

    The pipeline never touches store status fields; the caller owns them.
    """

    STAGE_VERSION_CONTROL = "version_control"
    STAGE_DOMAIN = "domain"
    STAGE_DEPLOY = "deploy"
    STAGE_ALIAS = "alias"
    STAGE_VERIFY = "verify"

    def __init__(
        self,
        vcs: GitRepository,
        hosting: HostingPlatform,
        verifier: DomainVerifier,
        verify_attempts: int = 3,
        verify_interval_ms: int = 2000,
    ):
        self.vcs = vcs
        self.hosting = hosting
        self.verifier = verifier
        self.verify_attempts = verify_attempts
        self.verify_interval_ms = verify_interval_ms

    async def publish(self, store: Store, on_progress: Optional[ProgressCallback] = None) -> PublishResult:
        """
        Publish ``store``'s generated directory.

        Args:
            store: Store whose files were generated
            on_progress: Receives ``{"step", "message", "progress"}`` per stage

        Returns:
            PublishResult: Public URL, liveness and hosting deployment URL

        Raises:
            PipelineStageError: Tagged with the stage that failed
        """
        domain = store.domain
        logger.info(f"Publishing store {store.name} ({domain})")

        async def report(step: str, message: str, progress: int) -> None:
            await emit_progress(on_progress, {"step": step, "message": message, "progress": progress})

        await report(self.STAGE_VERSION_CONTROL, "Committing site files", 20)
        committed = await self._run_stage(
            self.STAGE_VERSION_CONTROL,
            self.vcs.commit_and_push(
                f"Deploy store: {store.name} ({domain})",
                self.vcs.store_path(domain),
            ),
        )

        await report(self.STAGE_DOMAIN, f"Connecting domain {domain}", 40)
        await self._run_stage(self.STAGE_DOMAIN, self.hosting.ensure_domain(domain))

        await report(self.STAGE_DEPLOY, "Deploying to production", 60)
        deployment_url = await self._run_stage(self.STAGE_DEPLOY, self.hosting.deploy_production())

        await report(self.STAGE_ALIAS, f"Assigning {domain} to deployment", 80)
        await self._run_stage(self.STAGE_ALIAS, self.hosting.create_alias(deployment_url, domain))

        await report(self.STAGE_VERIFY, f"Verifying https://{domain}", 90)
        is_live = await self._run_stage(
            self.STAGE_VERIFY,
            self.verifier.verify_live(domain, self.verify_attempts, self.verify_interval_ms),
        )

        message = "Store is live" if is_live else "Deployed; domain not reachable yet"
        await report("done", message, 100)

        logger.info(f"Published {domain} (live={is_live}, deployment={deployment_url})")
        return PublishResult(
            url=f"https://{domain}",
            is_live=is_live,
            deployment_url=deployment_url,
            committed=bool(committed),
        )

    async def _run_stage(self, stage: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except PipelineStageError:
            raise
        except Exception as e:
            logger.error(f"Publish stage '{stage}' failed: {e}")
            raise PipelineStageError(stage, str(e), e) from e
