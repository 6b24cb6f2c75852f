"""
Classification of raw dependency specifiers.

A specifier is either an npm semver range, a GitHub reference pinned to a
commit hash or a version tag, or something we cannot update (file paths,
tarball URLs, dist-tags) which is skipped.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

from .semver_utils import is_valid_range
from .structured_logging import get_resolver_logger

_STRIP_RE = re.compile(r"^(?:.*?://(.*?@)?github\.com[:/]|github:)", re.IGNORECASE)
_PARTS_RE = re.compile(
    r"^([^/]+)/([^/#]+)?.*?([0-9a-f]+|v?[0-9]+\.[0-9]+\.[0-9]+)$", re.IGNORECASE
)
_HASH_RE = re.compile(r"^[0-9a-f]+$", re.IGNORECASE)


@dataclass(frozen=True)
class SemverRange:
    specifier: str


@dataclass(frozen=True)
class OpaqueReference:
    """A GitHub repository reference pinned to a commit or a tag."""

    specifier: str
    user: str
    repo: str
    ref: str

    @property
    def is_hash(self) -> bool:
        return bool(_HASH_RE.match(self.ref))

    @property
    def display_ref(self) -> str:
        return self.ref[:7] if self.is_hash else self.ref


Specifier = Union[SemverRange, OpaqueReference]


def is_hash_ref(ref: str) -> bool:
    return bool(_HASH_RE.match(ref))


def parse_reference(specifier: str) -> Optional[OpaqueReference]:
    """Parse a GitHub URL or shorthand into an OpaqueReference, or None."""
    stripped = _STRIP_RE.sub("", specifier, count=1)
    match = _PARTS_RE.match(stripped)
    if not match:
        return None

    user, repo, ref = match.groups()
    if not user or not repo or not ref:
        return None

    if repo.lower().endswith(".git"):
        repo = repo[:-4]

    return OpaqueReference(specifier=specifier, user=user, repo=repo, ref=ref)


def classify_specifier(specifier: str) -> Optional[Specifier]:
    """
    Classify a raw specifier string.

    Returns a SemverRange when the string is a valid npm range, an
    OpaqueReference for recognised GitHub references, and None otherwise.
    """
    if is_valid_range(specifier):
        return SemverRange(specifier)

    reference = parse_reference(specifier)
    if reference is None:
        get_resolver_logger().debug(
            "specifier_skipped", specifier=specifier, reason="unrecognized"
        )
    return reference
