"""
SemVer helpers shared by the classifier and the resolution engine.

Wraps ``semantic_version`` with the npm-flavoured operations the engine
needs: loose coercion of a range to its anchor version, range validation and
the diff class between two versions.
"""

import re
from typing import Optional, Tuple

import semantic_version

DIFF_CLASSES = (
    "patch",
    "minor",
    "major",
    "prepatch",
    "preminor",
    "premajor",
    "prerelease",
)

_COERCE_RE = re.compile(
    r"(?:^|[^\d])(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?(?:$|[^\d])"
)
_RANGE_PRERELEASE_RE = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+-.+")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|~|\^)\s+")
_HYPHEN_RANGE_RE = re.compile(r"^([0-9A-Za-z.+-]+)\s+-\s+([0-9A-Za-z.+-]+)$")


def parse_version(value: Optional[str]) -> Optional[semantic_version.Version]:
    """Parse a strict semver string, dropping build metadata. None if invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        version = semantic_version.Version(value.strip())
    except ValueError:
        return None
    if version.build:
        version = semantic_version.Version(
            major=version.major,
            minor=version.minor,
            patch=version.patch,
            prerelease=version.prerelease,
        )
    return version


def is_valid_version(value: Optional[str]) -> bool:
    return parse_version(value) is not None


def _collapse_operators(value: str) -> str:
    # npm allows whitespace between a comparator and its version
    return _OPERATOR_SPACE_RE.sub(r"\1", value.strip())


def normalize_range(value: str) -> str:
    """
    Rewrite npm range syntax into a form ``SimpleSpec`` accepts.

    Hyphen ranges become ``>=A,<=B`` and x-ranges (``1.x``, ``1.2.*``, a bare
    major) become comparator pairs. Anything else is returned collapsed but
    otherwise unchanged.
    """
    spec = _collapse_operators(value)

    match = _HYPHEN_RANGE_RE.match(spec)
    if match:
        return f">={match.group(1)},<={match.group(2)}"

    lowered = spec.replace("*", "x").lower()
    match = re.match(r"^(\d+)\.(\d+)\.x$", lowered)
    if match:
        major, minor = int(match.group(1)), int(match.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    match = re.match(r"^(\d+)(?:\.x)?(?:\.x)?$", lowered)
    if match:
        major = int(match.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec


def is_valid_range(value: str) -> bool:
    """
    True when ``value`` parses as an npm range expression.

    ``NpmSpec`` is tried first; forms it rejects are normalized and retried
    with ``SimpleSpec``.
    """
    spec = _collapse_operators(value) or "*"
    try:
        semantic_version.NpmSpec(spec)
        return True
    except ValueError:
        pass
    try:
        semantic_version.SimpleSpec(normalize_range(spec))
    except ValueError:
        return False
    return True


def coerce(value: Optional[str]) -> Optional[semantic_version.Version]:
    """
    Extract the first ``X[.Y[.Z]]`` run from a string as a release version.

    Missing minor/patch parts default to 0; any prerelease suffix is ignored.
    Returns None when the string contains no number at all.
    """
    if not value:
        return None
    match = _COERCE_RE.search(value)
    if not match:
        return None
    major, minor, patch = match.groups()
    return semantic_version.Version(
        major=int(major), minor=int(minor or 0), patch=int(patch or 0)
    )


def release_triple(version: semantic_version.Version) -> Tuple[int, int, int]:
    return (version.major, version.minor, version.patch)


def is_range_prerelease(value: str) -> bool:
    """True when a range carries a prerelease anchor such as ``^1.2.3-beta``."""
    return bool(_RANGE_PRERELEASE_RE.search(value or ""))


def is_version_prerelease(value: Optional[str]) -> bool:
    version = parse_version(value)
    return bool(version and version.prerelease)


def diff_class(
    old: semantic_version.Version, new: semantic_version.Version
) -> Optional[str]:
    """
    Classify the change between two versions.

    Returns None when the versions are equal. When either side is a
    prerelease the numeric class is prefixed with ``pre``; if only the
    prerelease identifiers differ the result is ``prerelease``.
    """
    if old == new:
        return None

    has_pre = bool(old.prerelease or new.prerelease)
    prefix = "pre" if has_pre else ""

    for key in ("major", "minor", "patch"):
        if getattr(old, key) != getattr(new, key):
            return prefix + key

    return "prerelease" if has_pre else ""
