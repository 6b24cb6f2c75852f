"""
Update checking engine.

Classifies each dependency, fetches all catalogs concurrently behind a
semaphore, then resolves every dependency synchronously in manifest order.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple

import httpx

from .cache_manager import LookupCache
from .catalog import CatalogEntry, ReferenceCatalog
from .classifier import OpaqueReference, SemverRange, classify_specifier
from .cli_config import get_config
from .credentials import NpmConfig, RegistryResolver
from .dependency import Dependency
from .error_handling import ErrorCategory, RegistryError, get_error_handler
from .manifest import ManifestUpdate
from .registry_clients import (
    CatalogFetchResult,
    GitHubClient,
    NPMRegistryClient,
    get_registry_client,
)
from .resolver import Policy, find_new_version, resolve_reference
from .rewriter import update_range
from .structured_logging import (
    get_checker_logger,
    log_resolution,
    log_run_complete,
    log_run_start,
)


@dataclass(frozen=True)
class ResolutionResult:
    """An available update for one dependency."""

    dependency: Dependency
    old: str
    new: str
    info: str = ""
    published_at: Optional[datetime] = None
    old_display: Optional[str] = None
    new_display: Optional[str] = None

    @property
    def name(self) -> str:
        return self.dependency.name

    @property
    def section(self) -> str:
        return self.dependency.section


@dataclass(frozen=True)
class UpdateReport:
    """Results of one check run."""

    total_dependencies: int
    results: List[ResolutionResult]
    duration_ms: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def has_updates(self) -> bool:
        return len(self.results) > 0

    @property
    def manifest_updates(self) -> List[ManifestUpdate]:
        return [(r.section, r.name, r.old, r.new) for r in self.results]


class UpdateChecker:
    """
    Checks manifest dependencies for newer versions.

    Args:
        policy: Update policy, scoped per package
        registry: Registry URL overriding the npm configuration
        max_sockets: Maximum number of simultaneous HTTP requests
        npm_config: npm configuration (loaded from disk when omitted)
        cache: Run-scoped lookup cache
        transport: Optional httpx transport shared by both clients
    """

    def __init__(
        self,
        policy: Policy,
        registry: Optional[str] = None,
        max_sockets: int = 64,
        npm_config: Optional[NpmConfig] = None,
        cache: Optional[LookupCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.policy = policy
        self.max_sockets = max_sockets
        self.npm_config = npm_config if npm_config is not None else NpmConfig.load()
        self.cache = (
            cache if cache is not None else LookupCache(get_config().performance.enable_caching)
        )
        self.resolver = RegistryResolver(self.npm_config, self.cache)
        self.registry = self.resolver.normalize(registry or self.npm_config.registry)
        self.transport = transport
        self._semaphore = None

    @property
    def semaphore(self):
        """Lazy-load semaphore to avoid event loop issues."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_sockets)
        return self._semaphore

    def _registry_client(self) -> NPMRegistryClient:
        return get_registry_client(
            self.registry,
            self.resolver,
            max_connections=self.max_sockets,
            transport=self.transport,
        )

    def _github_client(self) -> GitHubClient:
        return GitHubClient(max_connections=self.max_sockets, transport=self.transport)

    async def _fetch_catalog(
        self, client: NPMRegistryClient, dependency: Dependency
    ) -> CatalogFetchResult:
        async with self.semaphore:
            return await client.fetch_catalog(dependency)

    async def _fetch_references(
        self, client: GitHubClient, reference: OpaqueReference
    ) -> Optional[ReferenceCatalog]:
        async with self.semaphore:
            if reference.is_hash:
                return await client.get_commits(reference.user, reference.repo)
            return await client.get_tags(reference.user, reference.repo)

    async def check(
        self, dependencies: List[Dependency], manifest_path: Optional[str] = None
    ) -> UpdateReport:
        """
        Check dependencies and return the available updates in manifest order.

        Raises:
            RegistryError: If a catalog could not be fetched from the default registry
        """
        logger = get_checker_logger()
        run_id = uuid.uuid4().hex[:12]
        log_run_start(run_id, manifest_path or "", len(dependencies))
        get_error_handler().reset_stats()
        start_time = asyncio.get_running_loop().time()

        classified: List[Tuple[Dependency, Any]] = []
        for dependency in dependencies:
            specifier = classify_specifier(dependency.specifier)
            if specifier is not None:
                classified.append((dependency, specifier))

        async with self._registry_client() as registry_client, self._github_client() as github_client:
            tasks = []
            for dependency, specifier in classified:
                if isinstance(specifier, SemverRange):
                    tasks.append(self._fetch_catalog(registry_client, dependency))
                else:
                    tasks.append(self._fetch_references(github_client, specifier))
            fetched = await asyncio.gather(*tasks, return_exceptions=True)

        # Default-registry failures abort the run, first in manifest order
        for outcome in fetched:
            if isinstance(outcome, CatalogFetchResult) and outcome.fatal:
                raise RegistryError(outcome.error or "Registry error", package=outcome.dependency.name)
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        results: List[ResolutionResult] = []
        errors: List[str] = []

        for (dependency, specifier), outcome in zip(classified, fetched):
            if isinstance(outcome, Exception):
                get_error_handler().error(
                    ErrorCategory.NETWORK,
                    f"Unexpected error fetching {dependency.name}: {outcome}",
                    "checker",
                    "check",
                    exception=outcome,
                )
                errors.append(f"{dependency.name}: {outcome}")
                continue

            if isinstance(specifier, SemverRange):
                if not outcome.ok:
                    logger.warning(
                        "dependency_dropped", package_name=dependency.name, error=outcome.error
                    )
                    errors.append(f"{dependency.name}: {outcome.error}")
                    continue
                result = self._resolve_semver(dependency, outcome.catalog)
            else:
                if outcome is None:
                    errors.append(f"{dependency.name}: unable to list references")
                    continue
                result = self._resolve_reference(dependency, specifier, outcome)

            if result is not None:
                results.append(result)

        duration_ms = int((asyncio.get_running_loop().time() - start_time) * 1000)
        log_run_complete(
            run_id,
            duration_ms,
            len(results),
            len(errors),
            error_stats=get_error_handler().get_error_stats(),
            cache_stats=self.cache.stats.get_stats(),
        )

        return UpdateReport(
            total_dependencies=len(dependencies),
            results=results,
            duration_ms=duration_ms,
            errors=errors,
        )

    def _resolve_semver(
        self, dependency: Dependency, catalog: CatalogEntry
    ) -> Optional[ResolutionResult]:
        effective = self.policy.for_package(dependency.name)
        old = dependency.specifier
        new_version = find_new_version(catalog, old, effective)
        new_range = update_range(old, new_version) if new_version else None

        if not new_range or new_range == old:
            log_resolution(dependency.name, dependency.section, old, None, effective.mode)
            return None

        log_resolution(dependency.name, dependency.section, old, new_range, effective.mode)
        return ResolutionResult(
            dependency=dependency,
            old=old,
            new=new_range,
            info=self.cache.get_or_compute(
                "info",
                (catalog.name, catalog.registry, new_version),
                lambda: catalog.info_url(new_version),
            ),
            published_at=catalog.published_at(new_version),
        )

    def _resolve_reference(
        self,
        dependency: Dependency,
        reference: OpaqueReference,
        catalog: ReferenceCatalog,
    ) -> Optional[ResolutionResult]:
        effective = self.policy.for_package(dependency.name)
        update = resolve_reference(reference, catalog, use_greatest=effective.use_greatest)
        if update is None:
            log_resolution(dependency.name, dependency.section, reference.specifier, None, effective.mode)
            return None

        log_resolution(dependency.name, dependency.section, reference.specifier, update.specifier, effective.mode)
        return ResolutionResult(
            dependency=dependency,
            old=reference.specifier,
            new=update.specifier,
            info=catalog.browse_url,
            published_at=update.date,
            old_display=reference.display_ref,
            new_display=update.display_ref,
        )


def get_update_checker(policy: Policy, **kwargs) -> UpdateChecker:
    """Factory for an UpdateChecker using configured defaults."""
    kwargs.setdefault("max_sockets", get_config().update.max_sockets)
    return UpdateChecker(policy, **kwargs)
