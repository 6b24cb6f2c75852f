"""
Version catalogs: the data the resolution engine works on.

Adapts npm registry packuments and GitHub commit/tag listings into plain,
validated records, and derives the INFO link shown next to each update.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import semantic_version

from .error_handling import RegistryError
from .semver_utils import parse_version

GITHUB_PACKAGES_REGISTRY = "https://npm.pkg.github.com"

_HOSTED_URL_RE = re.compile(
    r"^(?:git\+)?(?:(?:https?|git|ssh|git\+ssh)://)?(?:[^@/]+@)?"
    r"(github\.com|gitlab\.com|bitbucket\.org)[:/]"
    r"([^/]+)/([^/#]+?)(?:\.git)?/?(?:#(.+))?$",
    re.IGNORECASE,
)
_SHORTHAND_RE = re.compile(
    r"^(?:(github|gitlab|bitbucket):)?([^/:@#\s]+)/([^/#\s]+?)(?:\.git)?(?:#(.+))?$",
    re.IGNORECASE,
)
_SHORTHAND_HOSTS = {
    "github": "github.com",
    "gitlab": "gitlab.com",
    "bitbucket": "bitbucket.org",
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 registry timestamp; None when missing or invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class VersionRecord:
    """One published version of a package."""

    version: str
    parsed: semantic_version.Version
    published_at: Optional[datetime] = None
    repository: Any = None
    homepage: Optional[str] = None

    @property
    def prerelease(self) -> bool:
        return bool(self.parsed.prerelease)


@dataclass(frozen=True)
class CatalogEntry:
    """Everything the registry knows about a package, in registry order."""

    name: str
    versions: Dict[str, VersionRecord]
    latest_tag: Optional[str] = None
    has_time: bool = False
    repository: Any = None
    homepage: Optional[str] = None
    registry: Optional[str] = None

    @classmethod
    def from_packument(
        cls, data: Dict[str, Any], registry: Optional[str] = None
    ) -> "CatalogEntry":
        """
        Build a catalog entry from a registry packument.

        Versions that are not valid semver are dropped. Raises RegistryError
        when the packument carries an ``error`` field or is not an object.
        """
        if not isinstance(data, dict):
            raise RegistryError("Registry returned a non-object packument")
        if data.get("error"):
            raise RegistryError(str(data["error"]), package=data.get("name"))

        raw_time = data.get("time")
        has_time = isinstance(raw_time, dict)
        times = raw_time if has_time else {}

        records: Dict[str, VersionRecord] = {}
        for version, meta in (data.get("versions") or {}).items():
            parsed = parse_version(version)
            if parsed is None:
                continue
            meta = meta if isinstance(meta, dict) else {}
            records[version] = VersionRecord(
                version=version,
                parsed=parsed,
                published_at=parse_timestamp(times.get(version)),
                repository=meta.get("repository"),
                homepage=meta.get("homepage"),
            )

        dist_tags = data.get("dist-tags") or {}
        latest = dist_tags.get("latest") if isinstance(dist_tags, dict) else None

        return cls(
            name=data.get("name", ""),
            versions=records,
            latest_tag=latest if parse_version(latest) else None,
            has_time=has_time,
            repository=data.get("repository"),
            homepage=data.get("homepage"),
            registry=registry,
        )

    def published_at(self, version: str) -> Optional[datetime]:
        record = self.versions.get(version)
        return record.published_at if record else None

    def info_url(self, version: Optional[str] = None) -> str:
        """INFO link for ``version``, falling back to package-level metadata."""
        record = self.versions.get(version) if version else None
        if record is not None:
            return info_url(record.repository, record.homepage, self.registry, self.name)
        return info_url(self.repository, self.homepage, self.registry, self.name)


@dataclass(frozen=True)
class RefRecord:
    ref: str
    date: Optional[datetime] = None


@dataclass(frozen=True)
class ReferenceCatalog:
    """Commits (newest first) or tags (source order) of a GitHub repository."""

    user: str
    repo: str
    records: List[RefRecord] = field(default_factory=list)

    @classmethod
    def from_commits(cls, user: str, repo: str, data: Any) -> "ReferenceCatalog":
        records = []
        for entry in data if isinstance(data, list) else []:
            sha = entry.get("sha") if isinstance(entry, dict) else None
            if not sha:
                continue
            commit = entry.get("commit") or {}
            date = (commit.get("committer") or {}).get("date") or (
                commit.get("author") or {}
            ).get("date")
            records.append(RefRecord(ref=sha, date=parse_timestamp(date)))
        return cls(user=user, repo=repo, records=records)

    @classmethod
    def from_tags(cls, user: str, repo: str, data: Any) -> "ReferenceCatalog":
        records = []
        for entry in data if isinstance(data, list) else []:
            ref = entry.get("ref") if isinstance(entry, dict) else None
            if ref:
                records.append(RefRecord(ref=re.sub(r"^refs/tags/", "", ref)))
        return cls(user=user, repo=repo, records=records)

    @property
    def browse_url(self) -> str:
        return f"https://github.com/{self.user}/{self.repo}"


def _browse_url(host: str, user: str, project: str, committish: Optional[str]) -> str:
    base = f"https://{host.lower()}/{user}/{project}"
    if not committish:
        return base
    if host.lower() == "bitbucket.org":
        return f"{base}/src/{committish}"
    return f"{base}/tree/{committish}"


def hosted_browse_url(url: str) -> Optional[str]:
    """Browse URL for a github/gitlab/bitbucket repository URL or shorthand."""
    if not url:
        return None

    match = _HOSTED_URL_RE.match(url.strip())
    if match:
        host, user, project, committish = match.groups()
        return _browse_url(host, user, project, committish)

    match = _SHORTHAND_RE.match(url.strip())
    if match:
        provider, user, project, committish = match.groups()
        host = _SHORTHAND_HOSTS[(provider or "github").lower()]
        return _browse_url(host, user, project, committish)

    return None


def info_url(
    repository: Any, homepage: Optional[str], registry: Optional[str], name: str
) -> str:
    """
    Derive a human-browsable link for a package.

    Packages served by GitHub Packages link to their GitHub repository by
    name. Otherwise the repository field is used (as a hosted-git browse URL
    or, failing that, verbatim when it is an http(s) URL), then homepage.
    """
    if registry == GITHUB_PACKAGES_REGISTRY:
        return f"https://github.com/{name.lstrip('@')}"

    if repository:
        url = repository if isinstance(repository, str) else None
        if isinstance(repository, dict):
            url = repository.get("url")
        if isinstance(url, str):
            browse = hosted_browse_url(url)
            if browse:
                return browse
            if isinstance(repository, dict) and re.match(r"^https?:", url):
                return url

    return homepage if isinstance(homepage, str) else ""
