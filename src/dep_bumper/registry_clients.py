"""
Registry clients for fetching version catalogs.

``NPMRegistryClient`` retrieves packuments from the npm registry (or a
scoped/custom registry with a one-time fallback to the default registry) and
``GitHubClient`` lists commits and tags for GitHub-pinned dependencies. Both
use a shared ``httpx.AsyncClient`` managed through ``async with``.
"""

import os
import re
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import httpx

from .catalog import CatalogEntry, ReferenceCatalog
from .cli_config import DEFAULT_REGISTRY, get_config
from .credentials import RegistryAuth, RegistryResolver
from .dependency import Dependency
from .error_handling import RegistryError, log_network_error
from .structured_logging import get_registry_logger, log_registry_fetch

_SCOPED_NAME_RE = re.compile(r"@[a-z0-9][\w\-.]+/[a-z0-9][\w\-.]*", re.IGNORECASE)


@dataclass(frozen=True)
class CatalogFetchResult:
    """
    Outcome of fetching one dependency's catalog.

    ``fatal`` marks failures against the default registry, which abort the run;
    other failures only drop the dependency.
    """

    dependency: Dependency
    catalog: Optional[CatalogEntry] = None
    registry: Optional[str] = None
    error: Optional[str] = None
    fatal: bool = False
    duration_ms: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.catalog is not None and self.error is None


def encode_package_name(name: str) -> str:
    """Scoped names are requested with ``/`` encoded as ``%2f``."""
    if _SCOPED_NAME_RE.search(name):
        return name.replace("/", "%2f")
    return name


class BaseRegistryClient:
    """
    Base class for HTTP clients.

    The httpx.AsyncClient is created on context entry and closed on exit.
    """

    def __init__(
        self,
        timeout: Optional[httpx.Timeout] = None,
        max_connections: int = 64,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: Optional[str] = None,
    ):
        config = get_config()
        self.timeout = timeout or httpx.Timeout(
            config.network.read_timeout, connect=config.network.connect_timeout
        )
        self.max_connections = max_connections
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None
        self._headers = {
            "User-Agent": user_agent or config.network.user_agent,
            "Accept": "application/json",
        }

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers,
            limits=httpx.Limits(max_connections=self.max_connections),
            transport=self.transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self.client is None:
            raise RuntimeError("HTTP client not initialized - use within async context manager")
        return self.client


class NPMRegistryClient(BaseRegistryClient):
    """Client for npm registries with scoped registry and auth support."""

    def __init__(
        self,
        registry: str,
        resolver: RegistryResolver,
        default_registry: str = DEFAULT_REGISTRY,
        retry_default_registry: bool = True,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.resolver = resolver
        self.registry = resolver.normalize(registry)
        self.default_registry = resolver.normalize(default_registry)
        self.retry_default_registry = retry_default_registry

    async def _request(
        self, name: str, registry: str, auth: Optional[RegistryAuth]
    ) -> httpx.Response:
        headers = auth.headers() if auth else None
        url = f"{registry}/{encode_package_name(name)}"
        return await self._require_client().get(url, headers=headers)

    def _decode(self, response: httpx.Response, name: str, registry: str) -> CatalogEntry:
        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid JSON from {registry} for {name}", package=name) from e
        return CatalogEntry.from_packument(data, registry=registry)

    async def fetch_packument(self, name: str) -> Tuple[CatalogEntry, str]:
        """
        Fetch and adapt the packument for ``name``.

        Failures against the default registry raise immediately. Failures
        against any other registry are retried once on the default registry.

        Raises:
            RegistryError: If no registry produced a usable catalog
        """
        auth, registry = self.resolver.resolve(name, self.registry)
        start_time = time.time()

        response: Optional[httpx.Response] = None
        try:
            response = await self._request(name, registry, auth)
        except httpx.HTTPError as e:
            log_network_error(
                f"Request failed for {name}", "registry_clients", "fetch_packument",
                url=registry, exception=e,
            )
            if registry == self.default_registry:
                raise RegistryError(f"Request to {registry} failed for {name}: {e}", package=name) from e

        if response is not None:
            log_registry_fetch(
                name, registry, response.is_success, status_code=response.status_code,
                response_time_ms=(time.time() - start_time) * 1000,
            )
            if response.is_success:
                try:
                    return self._decode(response, name, registry), registry
                except RegistryError:
                    if registry == self.default_registry:
                        raise
            elif registry == self.default_registry:
                raise RegistryError(
                    f"Received {response.status_code} {response.reason_phrase} for {name}",
                    package=name,
                )

        if not self.retry_default_registry or registry == self.default_registry:
            raise RegistryError(f"Unable to fetch {name} from {registry}", package=name)

        get_registry_logger().info(
            "retrying_default_registry", package_name=name, registry=registry
        )
        auth = self.resolver.auth_for(self.default_registry)
        try:
            response = await self._request(name, self.default_registry, auth)
        except httpx.HTTPError as e:
            raise RegistryError(
                f"Request to {self.default_registry} failed for {name}: {e}", package=name
            ) from e

        log_registry_fetch(name, self.default_registry, response.is_success, response.status_code)
        if not response.is_success:
            raise RegistryError(
                f"Received {response.status_code} {response.reason_phrase} for {name}",
                package=name,
            )
        return self._decode(response, name, self.default_registry), self.default_registry

    async def fetch_catalog(self, dependency: Dependency) -> CatalogFetchResult:
        """Fetch a catalog, capturing any failure in the returned result."""
        start_time = time.time()
        try:
            catalog, registry = await self.fetch_packument(dependency.name)
        except RegistryError as e:
            _auth, registry = self.resolver.resolve(dependency.name, self.registry)
            return CatalogFetchResult(
                dependency=dependency,
                registry=registry,
                error=str(e),
                fatal=registry == self.default_registry,
                duration_ms=int((time.time() - start_time) * 1000),
            )

        return CatalogFetchResult(
            dependency=dependency,
            catalog=catalog,
            registry=registry,
            duration_ms=int((time.time() - start_time) * 1000),
        )


class GitHubClient(BaseRegistryClient):
    """Lists commits and tags of GitHub repositories."""

    def __init__(self, api_url: Optional[str] = None, token: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = (api_url or get_config().network.github_api_url).rstrip("/")
        token = token if token is not None else os.environ.get("GITHUB_TOKEN")
        self._headers["Accept"] = "application/vnd.github+json"
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    async def _get_json(self, path: str) -> Optional[Any]:
        url = f"{self.api_url}{path}"
        try:
            response = await self._require_client().get(url)
        except httpx.HTTPError as e:
            log_network_error(
                "GitHub request failed", "registry_clients", "_get_json", url=url, exception=e
            )
            return None

        if not response.is_success:
            log_network_error(
                "GitHub request returned an error status", "registry_clients", "_get_json",
                url=url, status_code=response.status_code,
            )
            return None

        try:
            return response.json()
        except ValueError as e:
            log_network_error(
                "Invalid JSON from GitHub", "registry_clients", "_get_json", url=url, exception=e
            )
            return None

    async def get_commits(self, user: str, repo: str) -> Optional[ReferenceCatalog]:
        data = await self._get_json(f"/repos/{user}/{repo}/commits")
        return None if data is None else ReferenceCatalog.from_commits(user, repo, data)

    async def get_tags(self, user: str, repo: str) -> Optional[ReferenceCatalog]:
        data = await self._get_json(f"/repos/{user}/{repo}/git/refs/tags")
        return None if data is None else ReferenceCatalog.from_tags(user, repo, data)


def get_registry_client(
    registry: str, resolver: RegistryResolver, **kwargs
) -> NPMRegistryClient:
    """Factory for the npm registry client using configured defaults."""
    config = get_config()
    kwargs.setdefault("default_registry", config.network.default_registry)
    kwargs.setdefault("retry_default_registry", config.update.retry_default_registry)
    return NPMRegistryClient(registry, resolver, **kwargs)
