"""
Registry and auth resolution from npm configuration.

Reads ``.npmrc`` files and ``npm_config_*`` environment variables the way
npm does, then answers two questions per package: which registry serves it
and which credentials to send there.
"""

import base64
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from .cache_manager import LookupCache
from .cli_config import DEFAULT_REGISTRY
from .error_handling import log_credential_error

_SCOPE_RE = re.compile(r"@[a-z0-9][\w\-.]+")
_ENV_REF_RE = re.compile(r"(\\*)\$\{([^}]+)\}")
_ENV_PREFIX = "npm_config_"


def normalize_registry_url(url: str) -> str:
    """Drop a single trailing slash so registry URLs compare equal."""
    return url[:-1] if url.endswith("/") else url


@dataclass(frozen=True)
class RegistryAuth:
    """Credentials for one registry, sent as an Authorization header."""

    token: str = field(repr=False)
    type: str = "Bearer"

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"{self.type} {self.token}"}


def _expand_env(value: str, env: Mapping[str, str]) -> str:
    def replace(match: "re.Match") -> str:
        escapes, name = match.group(1), match.group(2)
        if len(escapes) % 2:
            return escapes[:-1] + "${" + name + "}"
        if name not in env:
            log_credential_error(
                "Environment variable referenced in .npmrc is not set",
                "credentials",
                "_expand_env",
                credential_type=name,
            )
            return escapes
        return escapes + env[name]

    return _ENV_REF_RE.sub(replace, value)


def parse_npmrc(text: str, env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Parse ``.npmrc`` content into a flat key/value mapping.

    Comments (``#`` and ``;``) and section headers are skipped, surrounding
    quotes are removed and ``${VAR}`` references are expanded from ``env``.
    """
    env = os.environ if env is None else env
    values: Dict[str, str] = {}

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", ";", "[")):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = _expand_env(key.strip(), env)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key] = _expand_env(value, env)

    return values


def _read_npmrc(path: Path, env: Mapping[str, str]) -> Dict[str, str]:
    try:
        return parse_npmrc(path.read_text(encoding="utf-8"), env)
    except (OSError, UnicodeDecodeError) as e:
        log_credential_error(
            "Could not read npm configuration file",
            "credentials",
            "_read_npmrc",
            credential_type="npmrc",
            exception=e,
        )
        return {}


class NpmConfig:
    """Merged npm configuration: user file, project files, then environment."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})

    @classmethod
    def load(
        cls, cwd: Optional[Path] = None, env: Optional[Mapping[str, str]] = None
    ) -> "NpmConfig":
        env = os.environ if env is None else env
        values: Dict[str, str] = {}

        userconfig = env.get("NPM_CONFIG_USERCONFIG") or env.get("npm_config_userconfig")
        user_path = Path(userconfig) if userconfig else Path.home() / ".npmrc"
        if user_path.is_file():
            values.update(_read_npmrc(user_path, env))

        # Nearer project files override farther ones
        start = (cwd or Path.cwd()).resolve()
        project_files: List[Path] = [
            directory / ".npmrc"
            for directory in [start, *start.parents]
            if (directory / ".npmrc").is_file() and directory / ".npmrc" != user_path
        ]
        for path in reversed(project_files):
            values.update(_read_npmrc(path, env))

        for key, value in env.items():
            if key.lower().startswith(_ENV_PREFIX) and value:
                name = key[len(_ENV_PREFIX):]
                if name.lower() in ("userconfig", "globalconfig"):
                    continue
                values[name.lower() if ":" not in name else name] = value

        return cls(values)

    @property
    def registry(self) -> str:
        return self.values.get("registry") or DEFAULT_REGISTRY

    def scope_registry(self, scope: str) -> str:
        """Registry URL for ``@scope``, falling back to the main registry."""
        return self.values.get(f"{scope}:registry") or self.registry

    def auth_for(self, registry_url: str) -> Optional[RegistryAuth]:
        """
        Find credentials for ``registry_url``.

        Looks for ``//host/path/:_authToken``, ``:_auth`` and
        ``:username``/``:_password`` keys from the full registry path up to
        the host, like npm's nerf-dart matching.
        """
        parsed = urlparse(registry_url if "://" in registry_url else f"https://{registry_url}")
        if not parsed.hostname:
            return None

        host = parsed.netloc.rsplit("@", 1)[-1]
        segments = [s for s in parsed.path.split("/") if s]
        for depth in range(len(segments), -1, -1):
            path = "/".join(segments[:depth])
            prefix = f"//{host}/{path + '/' if path else ''}"
            auth = self._auth_at(prefix)
            if auth is not None:
                return auth

        if normalize_registry_url(registry_url) == normalize_registry_url(self.registry):
            if self.values.get("_authToken"):
                return RegistryAuth(self.values["_authToken"], "Bearer")
            if self.values.get("_auth"):
                return RegistryAuth(self.values["_auth"], "Basic")
        return None

    def _auth_at(self, prefix: str) -> Optional[RegistryAuth]:
        token = self.values.get(f"{prefix}:_authToken")
        if token:
            return RegistryAuth(token, "Bearer")

        basic = self.values.get(f"{prefix}:_auth")
        if basic:
            return RegistryAuth(basic, "Basic")

        username = self.values.get(f"{prefix}:username")
        password = self.values.get(f"{prefix}:_password")
        if username and password:
            try:
                decoded = base64.b64decode(password).decode("utf-8")
            except ValueError as e:
                log_credential_error(
                    "Invalid base64 _password in npm configuration",
                    "credentials",
                    "_auth_at",
                    credential_type="_password",
                    exception=e,
                )
                return None
            token = base64.b64encode(f"{username}:{decoded}".encode()).decode("ascii")
            return RegistryAuth(token, "Basic")

        return None


def package_scope(name: str) -> Optional[str]:
    if not name.startswith("@"):
        return None
    match = _SCOPE_RE.match(name)
    return match.group(0) if match else None


class RegistryResolver:
    """
    Chooses registry and credentials per package, memoized for the run.

    Scoped packages go to their scope's registry only when that registry
    differs from the main one and has a token; everything else uses the
    main registry with its own credentials.
    """

    def __init__(self, npm_config: NpmConfig, cache: Optional[LookupCache] = None):
        self.npm_config = npm_config
        self.cache = cache if cache is not None else LookupCache()

    def normalize(self, url: str) -> str:
        return self.cache.get_or_compute("url", url, lambda: normalize_registry_url(url))

    def auth_for(self, registry: str) -> Optional[RegistryAuth]:
        return self.cache.get_or_compute(
            "auth", registry, lambda: self.npm_config.auth_for(registry)
        )

    def resolve(self, name: str, registry: str) -> Tuple[Optional[RegistryAuth], str]:
        scope = package_scope(name)
        if scope is not None:
            scope_url = self.cache.get_or_compute(
                "scope", scope, lambda: self.normalize(self.npm_config.scope_registry(scope))
            )
            if scope_url != registry:
                scope_auth = self.auth_for(scope_url)
                if scope_auth is not None:
                    return scope_auth, scope_url

        return self.auth_for(registry), registry
