"""Store lifecycle orchestration: create, redeploy, publish drafts and tear down.

The orchestrator composes subdomain allocation, page materialization, site
generation and the publish pipeline, and is the only component that writes the
store status fields.
"""

import asyncio
import logging
import os
import uuid as uuid_lib
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storebuilder.core.settings import Settings, get_settings
from storebuilder.models.base import utc_now
from storebuilder.models.store import Store
from storebuilder.models.store_page import StorePage
from storebuilder.models.store_setting import StoreSetting
from storebuilder.services.default_pages import load_enabled_pages, materialize_default_pages
from storebuilder.services.hosting import CachePurger, HostingPlatform
from storebuilder.services.identifier_allocator import IdentifierAllocator
from storebuilder.services.publish_pipeline import (
    ProgressCallback,
    PublishPipeline,
    PublishResult,
    emit_progress,
)
from storebuilder.services.site_generator import StaticSiteGenerator
from storebuilder.services.version_control import GitRepository
from storebuilder.utils.validators import DomainValidator, ValidationError, validate_store_config

logger = logging.getLogger(__name__)

# Attributes a caller may set when creating a store
STORE_CONFIG_FIELDS = (
    "name", "domain", "subdomain", "country", "language", "currency", "timezone",
    "shopify_domain", "shopify_access_token", "shopify_shop_name", "shopify_connected",
    "theme_id", "template", "logo_url", "primary_color", "secondary_color",
    "meta_title", "meta_description", "favicon_url",
    "shipping_info", "shipping_time", "return_policy", "return_period",
    "support_email", "support_phone", "business_address", "business_orgnr",
    "gdpr_compliant", "cookie_consent", "selected_pages", "selected_products",
)

MAX_INSERT_ATTEMPTS = 3
# Statuses a successful redeploy promotes to active
RECOVERABLE_STATUSES = ("setup", "failed")


class StoreServiceError(Exception):
    """Base exception for store service errors."""
    pass


class StoreNotFoundError(StoreServiceError):
    """Raised when a store cannot be found."""
    pass


class StoreValidationError(StoreServiceError):
    """Raised when store configuration validation fails."""

    def __init__(
        self,
        message: str,
        validation_errors: List[ValidationError] = None,
        missing_fields: List[str] = None,
    ):
        super().__init__(message)
        self.validation_errors = validation_errors or []
        self.missing_fields = missing_fields or []


class StoreConflictError(StoreServiceError):
    """Raised when a unique store attribute is already in use."""

    code = "STORE_CONFLICT"

    def __init__(self, message: str, field: str, value: str):
        super().__init__(message)
        self.field = field
        self.value = value


class DomainConflictError(StoreConflictError):
    code = "DOMAIN_CONFLICT"


class SubdomainConflictError(StoreConflictError):
    code = "SUBDOMAIN_CONFLICT"


class FilesystemConflictError(StoreConflictError):
    code = "FILESYSTEM_CONFLICT"


class StoreStateError(StoreServiceError):
    """Raised when an operation is not valid for the store's current status."""
    pass


@dataclass
class CreateResult:
    """
    Outcome of :meth:`StoreLifecycleOrchestrator.create`.

    The store always exists once a result is returned. ``pipeline_error`` is
    set when the best-effort deployment phase failed.
    """
    store: Store
    pipeline_error: Optional[Exception] = None
    publish: Optional[PublishResult] = None

    @property
    def deployed(self) -> bool:
        return self.pipeline_error is None and self.publish is not None


@dataclass
class DeployResult:
    """Outcome of a redeploy or draft publish."""
    already_deployed: bool
    url: str
    is_live: Optional[bool] = None
    deployment_url: Optional[str] = None


@dataclass
class TeardownReport:
    """Per-step outcome of a store deletion."""
    uuid: str
    domain: str
    steps: Dict[str, str] = field(default_factory=dict)
    fallback_used: bool = False

    @property
    def failed_steps(self) -> List[str]:
        return [name for name, outcome in self.steps.items() if outcome.startswith("failed")]


class StoreLocks:
    """
    One asyncio lock per store so workflows for a store never overlap, plus
    one lock per git repository shared by every store publishing into it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._repository_locks: Dict[str, asyncio.Lock] = {}

    def get(self, store_uuid: Any) -> asyncio.Lock:
        key = str(store_uuid)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def discard(self, store_uuid: Any) -> None:
        self._locks.pop(str(store_uuid), None)

    def repository(self, path: str) -> asyncio.Lock:
        key = os.path.abspath(path)
        lock = self._repository_locks.get(key)
        if lock is None:
            lock = self._repository_locks[key] = asyncio.Lock()
        return lock


def normalize_store_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known fields, strip strings and canonicalize case-insensitive values."""
    data = {}
    for key in STORE_CONFIG_FIELDS:
        if key not in config:
            continue
        value = config[key]
        if isinstance(value, str):
            value = value.strip()
            if value == "" and key not in ("name",):
                value = None
        # Unset values fall back to column defaults
        if value is None:
            continue
        data[key] = value

    if data.get("domain"):
        data["domain"] = DomainValidator.normalize(data["domain"])
    if data.get("subdomain"):
        data["subdomain"] = data["subdomain"].lower()
    if data.get("country"):
        data["country"] = data["country"].upper()
    if data.get("currency"):
        data["currency"] = data["currency"].upper()
    if data.get("language"):
        data["language"] = data["language"].lower()
    if isinstance(data.get("selected_pages"), str):
        data["selected_pages"] = [p.strip() for p in data["selected_pages"].split(",") if p.strip()]
    return data


class StoreLifecycleOrchestrator:
    """
    Store lifecycle workflows.

    - create: validate, check conflicts, allocate a subdomain, insert, then
      best-effort generate and publish
    - redeploy: regenerate and publish, skipping work when already deployed
    - publish_draft: promote a draft store and deploy it
    - delete: ordered best-effort teardown with a minimal fallback

    Workflows for the same store are serialized through :class:`StoreLocks`.
    """

    def __init__(
        self,
        session: AsyncSession,
        allocator: IdentifierAllocator,
        generator: StaticSiteGenerator,
        pipeline: PublishPipeline,
        vcs: GitRepository,
        hosting: HostingPlatform,
        cache_purger: Optional[CachePurger] = None,
        locks: Optional[StoreLocks] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            session: Async database session owned by the caller
            allocator: Process-wide subdomain allocator
            generator: Static site generator writing under the stores root
            pipeline: Publish pipeline for generated sites
            vcs: Git repository used directly during teardown
            hosting: Hosting platform used directly during teardown
            cache_purger: Edge cache purger used during teardown
            locks: Process-wide per-store locks
            settings: Application settings
        """
        self.db = session
        self.allocator = allocator
        self.generator = generator
        self.pipeline = pipeline
        self.vcs = vcs
        self.hosting = hosting
        self.cache_purger = cache_purger
        self.locks = locks or StoreLocks()
        self.settings = settings or get_settings()

    # Lookups

    async def find_by_uuid(self, store_uuid: uuid_lib.UUID) -> Optional[Store]:
        result = await self.db.execute(select(Store).where(Store.uuid == store_uuid))
        return result.scalar_one_or_none()

    async def get_store(self, store_uuid: uuid_lib.UUID) -> Store:
        """
        Get a store by its external UUID.

        Raises:
            StoreNotFoundError: If no store has this UUID
        """
        store = await self.find_by_uuid(store_uuid)
        if store is None:
            raise StoreNotFoundError(f"Store {store_uuid} not found")
        return store

    async def find_by_domain(self, host: str) -> Optional[Store]:
        """Find a store whose domain or subdomain matches ``host``, ignoring case."""
        value = host.lower()
        result = await self.db.execute(
            select(Store).where(
                (func.lower(Store.domain) == value) | (func.lower(Store.subdomain) == value)
            )
        )
        return result.scalars().first()

    async def list_stores(
        self,
        status: Optional[str] = None,
        deployment_status: Optional[str] = None,
        limit: int = 25,
        offset: int = 0,
    ) -> Tuple[List[Store], int]:
        """List stores, newest first, with the total count for pagination."""
        query = select(Store)
        count_query = select(func.count(Store.id))
        if status:
            query = query.where(Store.status == status)
            count_query = count_query.where(Store.status == status)
        if deployment_status:
            query = query.where(Store.deployment_status == deployment_status)
            count_query = count_query.where(Store.deployment_status == deployment_status)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(Store.created_at.desc(), Store.id.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def _domain_taken(self, domain: str) -> bool:
        result = await self.db.execute(
            select(Store.id).where(func.lower(Store.domain) == domain.lower()).limit(1)
        )
        return result.first() is not None

    async def _subdomain_taken(self, subdomain: str) -> bool:
        result = await self.db.execute(
            select(Store.id).where(func.lower(Store.subdomain) == subdomain.lower()).limit(1)
        )
        return result.first() is not None

    # Create

    async def create(
        self,
        config: Dict[str, Any],
        on_progress: Optional[ProgressCallback] = None,
        draft: bool = False,
    ) -> CreateResult:
        """
        Create a store and, unless it is a draft, deploy it.

        Validation and conflict checks happen before anything is written. Once
        the record is inserted, page materialization, file generation and
        publishing are best-effort: their failure is recorded on the store and
        returned in the result instead of being raised.

        Args:
            config: Store attributes; name, country, language and currency are required
            on_progress: Receives progress updates during the deployment phase
            draft: Insert as a draft and skip deployment

        Returns:
            CreateResult: The stored store and the deployment error, if any

        Raises:
            StoreValidationError: If required fields are missing or malformed
            DomainConflictError: If the domain belongs to another store
            FilesystemConflictError: If a site directory already exists for the domain
            SubdomainConflictError: If a supplied subdomain is taken
        """
        data = normalize_store_config(config)
        logger.info(f"Creating new store: {data.get('name')}")

        validation = validate_store_config(data)
        if not validation.is_valid:
            missing = validation.missing_fields
            message = (
                f"Missing required fields: {', '.join(missing)}" if missing
                else "Store validation failed"
            )
            raise StoreValidationError(message, validation.errors, missing)

        explicit_domain = data.pop("domain", None)
        explicit_subdomain = data.pop("subdomain", None)

        if explicit_domain:
            await self._check_domain_available(explicit_domain)
        if explicit_subdomain and await self._subdomain_taken(explicit_subdomain):
            raise SubdomainConflictError(
                f"Subdomain '{explicit_subdomain}' is already in use", "subdomain", explicit_subdomain
            )

        store = await self._insert_store(data, explicit_domain, explicit_subdomain, draft)

        if draft:
            logger.info(f"Store {store.name} saved as draft")
            return CreateResult(store=store)

        async with self.locks.get(store.uuid):
            try:
                await materialize_default_pages(self.db, store)
                result = await self._run_deployment(store, on_progress, regenerate_pages=False)
                store.status = "active"
                await self.db.commit()
                return CreateResult(store=store, publish=result)
            except Exception as e:
                logger.error(f"Deployment of new store {store.domain} failed: {e}")
                await self._mark_failed(store)
                return CreateResult(store=store, pipeline_error=e)

    async def _check_domain_available(self, domain: str) -> None:
        if await self._domain_taken(domain):
            raise DomainConflictError(f"Domain '{domain}' is already in use", "domain", domain)
        if self.generator.site_dir(domain).exists():
            raise FilesystemConflictError(
                f"A site directory already exists for '{domain}'", "domain", domain
            )

    async def _insert_store(
        self,
        data: Dict[str, Any],
        explicit_domain: Optional[str],
        explicit_subdomain: Optional[str],
        draft: bool,
    ) -> Store:
        """
        Insert the store, re-allocating the subdomain on a uniqueness violation.

        The unique constraints are authoritative: pre-checks only make the
        common case cheap.
        """
        base_name = data["name"]
        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            subdomain = explicit_subdomain
            if subdomain is None:
                subdomain = await self.allocator.allocate(base_name, self._subdomain_taken)
                # Double-check immediately before the insert
                if await self._subdomain_taken(subdomain):
                    logger.warning(f"Subdomain conflict on final check: {subdomain}")
                    self.allocator.release(subdomain)
                    base_name = f"{data['name']}-alt"
                    continue

            domain = explicit_domain or f"{subdomain}.{self.settings.platform_domain}"
            if not explicit_domain:
                try:
                    await self._check_domain_available(domain)
                except StoreConflictError:
                    self.allocator.release(subdomain)
                    base_name = f"{data['name']}-alt"
                    continue

            store = Store(
                **data,
                domain=domain,
                subdomain=subdomain,
                status="draft" if draft else "setup",
                deployment_status="pending",
            )
            self.db.add(store)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                self.allocator.release(subdomain)
                logger.warning(f"Store insert conflict (attempt {attempt}): {e.orig}")
                if explicit_domain and await self._domain_taken(explicit_domain):
                    raise DomainConflictError(
                        f"Domain '{explicit_domain}' is already in use", "domain", explicit_domain
                    ) from e
                if explicit_subdomain:
                    raise SubdomainConflictError(
                        f"Subdomain '{explicit_subdomain}' is already in use",
                        "subdomain",
                        explicit_subdomain,
                    ) from e
                base_name = f"{data['name']}-alt"
                continue

            self.allocator.release(subdomain)
            logger.info(
                f"Store created: {store.name} (uuid={store.uuid}, domain={store.domain}, "
                f"subdomain={store.subdomain})"
            )
            return store

        raise SubdomainConflictError(
            f"Could not allocate a unique subdomain for '{data['name']}'", "subdomain", data["name"]
        )

    # Deploy

    async def redeploy(
        self,
        store: Store,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DeployResult:
        """
        Regenerate and publish a store.

        A store that is deployed and still has its files on disk is left alone
        unless ``force`` is set. On success a store stuck in ``setup`` or
        ``failed`` becomes ``active``; drafts stay drafts.

        Args:
            store: Store to deploy
            force: Deploy even if the store looks deployed
            on_progress: Receives progress updates

        Returns:
            DeployResult: ``already_deployed`` is True when nothing was done

        Raises:
            PipelineStageError: If a publish stage fails
            SiteGenerationError: If the site cannot be generated
        """
        async with self.locks.get(store.uuid):
            if store.is_deployed and self.generator.exists(store.domain) and not force:
                logger.info(f"Store {store.domain} already deployed, skipping")
                return DeployResult(
                    already_deployed=True,
                    url=store.live_url,
                    deployment_url=store.deployment_url,
                )

            try:
                result = await self._run_deployment(store, on_progress, regenerate_pages=True)
            except Exception:
                await self._mark_failed(store)
                raise

            if store.status in RECOVERABLE_STATUSES:
                logger.info(f"Store {store.domain} recovered from {store.status}, now active")
                store.status = "active"
                await self.db.commit()

            return DeployResult(
                already_deployed=False,
                url=result.url,
                is_live=result.is_live,
                deployment_url=result.deployment_url,
            )

    async def publish_draft(
        self,
        store: Store,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DeployResult:
        """
        Promote a draft store to active and deploy it.

        Raises:
            StoreStateError: If the store is not a draft
            PipelineStageError: If a publish stage fails; the store is marked failed
        """
        if not store.is_draft:
            raise StoreStateError(f"Store {store.domain} is not in draft status")

        logger.info(f"Publishing draft store: {store.name}")
        async with self.locks.get(store.uuid):
            try:
                await materialize_default_pages(self.db, store)
                result = await self._run_deployment(store, on_progress, regenerate_pages=False)
                store.status = "active"
                await self.db.commit()
            except Exception:
                await self._mark_failed(store, status="failed")
                raise

        logger.info(f"Store published successfully: {store.name}")
        return DeployResult(
            already_deployed=False,
            url=result.url,
            is_live=result.is_live,
            deployment_url=result.deployment_url,
        )

    async def _run_deployment(
        self,
        store: Store,
        on_progress: Optional[ProgressCallback],
        regenerate_pages: bool,
    ) -> PublishResult:
        store.deployment_status = "deploying"
        await self.db.commit()

        await emit_progress(on_progress, {
            "step": "generate", "message": "Generating site files", "progress": 10,
        })
        pages = await load_enabled_pages(self.db, store)
        if regenerate_pages and not pages:
            pages = await materialize_default_pages(self.db, store)
        await self.generator.generate(store, pages)
        store.files_generated_at = utc_now()
        await self.db.commit()

        result = await self.pipeline.publish(store, on_progress)

        store.deployment_status = "deployed"
        store.deployment_url = result.deployment_url
        store.deployed_at = utc_now()
        await self.db.commit()
        logger.info(f"Store {store.domain} deployed to {result.url}")
        return result

    async def _mark_failed(self, store: Store, status: Optional[str] = None) -> None:
        try:
            await self.db.rollback()
            await self.db.refresh(store)
            store.deployment_status = "failed"
            if status:
                store.status = status
            await self.db.commit()
        except Exception as e:
            logger.error(f"Failed to record deployment failure for {store.uuid}: {e}")

    # Delete

    async def delete(self, store: Store) -> TeardownReport:
        """
        Tear a store down in order: git, hosting, files, dependent rows, record.

        Every step except the record removal is best-effort. If the sequence
        raises, a minimal fallback removes the files and the record.

        Returns:
            TeardownReport: Outcome of each step

        Raises:
            StoreServiceError: If even the fallback could not remove the store
        """
        store_id, store_uuid, domain = store.id, store.uuid, store.domain
        report = TeardownReport(uuid=str(store_uuid), domain=domain)
        logger.info(f"Deleting store {domain} ({store_uuid})")

        async with self.locks.get(store_uuid):
            try:
                await self._step(report, "version_control", self.vcs.remove_store(domain))
                await self._step(report, "hosting_alias", self.hosting.remove_alias(domain))
                await self._step(report, "hosting_domain", self.hosting.remove_domain(domain))
                if self.cache_purger is not None:
                    await self._step(report, "cache_purge", self.cache_purger.purge(domain))
                await self._step(report, "files", self.generator.remove(domain))
                await self._step(report, "dependent_rows", self._delete_dependents(store_id), rollback=True)
                await self._delete_record(store_id)
                report.steps["record"] = "ok"
            except Exception as e:
                logger.error(f"Teardown of {domain} failed, using fallback: {e}")
                report.fallback_used = True
                try:
                    await self.db.rollback()
                    await self.generator.remove(domain)
                    await self._delete_record(store_id)
                    report.steps["record"] = "ok"
                except Exception as fallback_error:
                    logger.error(f"Fallback teardown of {domain} failed: {fallback_error}")
                    raise StoreServiceError(
                        f"Failed to delete store {domain}: {fallback_error}"
                    ) from fallback_error

        self.locks.discard(store_uuid)
        logger.info(f"Store {domain} deleted (failed steps: {report.failed_steps or 'none'})")
        return report

    async def _step(
        self,
        report: TeardownReport,
        name: str,
        awaitable: Awaitable[Any],
        rollback: bool = False,
    ) -> None:
        try:
            outcome = await awaitable
        except Exception as e:
            logger.warning(f"Teardown step '{name}' failed: {e}")
            report.steps[name] = f"failed: {e}"
            if rollback:
                await self.db.rollback()
            return
        report.steps[name] = "skipped" if outcome is False else "ok"

    async def _delete_dependents(self, store_id: int) -> None:
        await self.db.execute(delete(StorePage).where(StorePage.store_id == store_id))
        await self.db.execute(delete(StoreSetting).where(StoreSetting.store_id == store_id))
        await self.db.commit()

    async def _delete_record(self, store_id: int) -> None:
        await self.db.execute(delete(Store).where(Store.id == store_id))
        await self.db.commit()

    # Maintenance and reporting

    async def suggest_subdomain(self, name: str) -> str:
        return await self.allocator.suggest(name, self._subdomain_taken)

    async def repair_duplicate_subdomains(self) -> Dict[str, int]:
        """
        Re-allocate subdomains shared by several stores, ignoring case.

        The oldest store keeps its subdomain; the others get a new one derived
        from ``<name>-fixed``.

        Returns:
            Dict[str, int]: ``fixed`` stores and ``conflicts`` found
        """
        duplicates = (await self.db.execute(
            select(func.lower(Store.subdomain))
            .where(Store.subdomain.is_not(None))
            .group_by(func.lower(Store.subdomain))
            .having(func.count(Store.id) > 1)
        )).scalars().all()

        if not duplicates:
            logger.info("No duplicate subdomains found")
            return {"fixed": 0, "conflicts": 0}

        fixed = 0
        for subdomain in duplicates:
            result = await self.db.execute(
                select(Store)
                .where(func.lower(Store.subdomain) == subdomain)
                .order_by(Store.created_at.asc(), Store.id.asc())
            )
            for store in list(result.scalars().all())[1:]:
                new_subdomain = await self.allocator.allocate(f"{store.name}-fixed", self._subdomain_taken)
                logger.info(f"Store {store.name}: subdomain {store.subdomain} -> {new_subdomain}")
                store.subdomain = new_subdomain
                await self.db.commit()
                self.allocator.release(new_subdomain)
                fixed += 1

        logger.info(f"Fixed {fixed} subdomain conflicts")
        return {"fixed": fixed, "conflicts": len(duplicates)}

    def deployment_info(self, store: Store) -> Dict[str, Any]:
        """Deployment summary shown to operators."""
        has_files = self.generator.exists(store.domain)
        return {
            "uuid": str(store.uuid),
            "domain": store.domain,
            "subdomain": store.subdomain,
            "status": store.status,
            "deployment_status": store.deployment_status,
            "live_url": store.live_url,
            "deployment_url": store.deployment_url,
            "deployed_at": store.deployed_at,
            "files_generated_at": store.files_generated_at,
            "has_files": has_files,
            "can_deploy": not store.is_deploying,
            "needs_deployment": (not has_files) or store.deployment_status == "failed",
        }
