"""
Version resolution engine.

Given the current range of a dependency, its version catalog and the
effective update policy, pick the version to upgrade to. The engine is pure
and synchronous: all network access happens before it is called.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple, Union

import semantic_version

from .catalog import CatalogEntry, ReferenceCatalog, VersionRecord
from .classifier import OpaqueReference, is_hash_ref
from .semver_utils import (
    coerce,
    diff_class,
    is_range_prerelease,
    parse_version,
    release_triple,
)


@dataclass(frozen=True)
class AllPackages:
    def applies_to(self, name: str) -> bool:
        return True


@dataclass(frozen=True)
class NoPackages:
    def applies_to(self, name: str) -> bool:
        return False


@dataclass(frozen=True)
class SpecificPackages:
    names: FrozenSet[str]

    def applies_to(self, name: str) -> bool:
        return name in self.names


PackageSelection = Union[AllPackages, NoPackages, SpecificPackages]


def parse_selection(value: Union[None, bool, str, Iterable[str]]) -> PackageSelection:
    """
    Build a PackageSelection from a command-line value.

    ``True`` or an empty string selects every package, a comma separated
    string or an iterable selects the named packages, anything falsy
    selects none.
    """
    if value is True or value == "":
        return AllPackages()
    if not value:
        return NoPackages()
    if isinstance(value, str):
        names = [name for name in value.split(",") if name]
    else:
        names = [name for item in value for name in str(item).split(",") if name]
    return SpecificPackages(frozenset(names)) if names else NoPackages()


class SemverCeiling(Enum):
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def classes(self) -> Tuple[str, ...]:
        if self is SemverCeiling.PATCH:
            return ("patch",)
        if self is SemverCeiling.MINOR:
            return ("patch", "minor")
        return ("patch", "minor", "major")


@dataclass(frozen=True)
class Policy:
    """Update policy for one invocation, each switch scoped by package."""

    prerelease: PackageSelection = NoPackages()
    greatest: PackageSelection = NoPackages()
    release_only: PackageSelection = NoPackages()
    allow_downgrade: PackageSelection = NoPackages()
    patch: PackageSelection = NoPackages()
    minor: PackageSelection = NoPackages()

    def for_package(self, name: str) -> "EffectivePolicy":
        if self.patch.applies_to(name):
            ceiling = SemverCeiling.PATCH
        elif self.minor.applies_to(name):
            ceiling = SemverCeiling.MINOR
        else:
            ceiling = SemverCeiling.MAJOR

        return EffectivePolicy(
            use_prerelease=self.prerelease.applies_to(name),
            use_greatest=self.greatest.applies_to(name),
            release_only=self.release_only.applies_to(name),
            allow_downgrade=self.allow_downgrade.applies_to(name),
            ceiling=ceiling,
        )


@dataclass(frozen=True)
class EffectivePolicy:
    use_prerelease: bool = False
    use_greatest: bool = False
    release_only: bool = False
    allow_downgrade: bool = False
    ceiling: SemverCeiling = SemverCeiling.MAJOR

    @property
    def mode(self) -> str:
        return "greatest" if self.use_greatest else "latest"

    def accepted_classes(self, use_pre: bool) -> List[str]:
        classes = list(self.ceiling.classes)
        if use_pre:
            classes.append("prerelease")
            classes.extend("pre" + name for name in self.ceiling.classes)
        return classes


def _base_version(range_: str) -> semantic_version.Version:
    return coerce(range_) or semantic_version.Version("0.0.0")


def find_version(
    catalog: CatalogEntry, range_: str, policy: EffectivePolicy
) -> Optional[str]:
    """
    Pick the best catalog candidate for ``range_`` before dist-tag reconciliation.

    Returns None when no catalog version qualifies.
    """
    base = _base_version(range_)
    use_pre = is_range_prerelease(range_) or policy.use_prerelease
    accepted = policy.accepted_classes(use_pre)
    by_greatest = policy.use_greatest or not catalog.has_time

    best: Optional[VersionRecord] = None
    best_date = None

    for record in catalog.versions.values():
        if record.prerelease and (not use_pre or policy.release_only):
            continue

        if diff_class(base, record.parsed) not in accepted:
            continue

        if by_greatest:
            # Never step below the anchor; a prerelease of the anchor itself counts
            if release_triple(record.parsed) < release_triple(base):
                continue
            if best is None or record.parsed > best.parsed:
                best = record
        else:
            date = record.published_at
            if date is None or date.timestamp() < 0:
                continue
            if best_date is None or date > best_date:
                best = record
                best_date = date

    if best is None:
        return None
    return best.version


def find_new_version(
    catalog: CatalogEntry, range_: str, policy: EffectivePolicy
) -> Optional[str]:
    """
    Resolve the version ``range_`` should move to, or None for no change.

    In greatest mode the best qualifying candidate wins outright. Otherwise
    the candidate is reconciled against the registry's ``latest`` dist-tag,
    which is preferred unless it falls outside the semver ceiling, would be
    a prerelease under release-only, or would be an unrequested downgrade.
    """
    if range_.strip() == "*":
        return "*"

    version = find_version(catalog, range_, policy)
    if policy.use_greatest:
        return version

    latest_tag = catalog.latest_tag
    if latest_tag is None:
        return version

    base = _base_version(range_)
    # With no qualifying candidate only the latest tag can still be proposed
    candidate = parse_version(version) if version else base
    latest = parse_version(latest_tag)

    old_is_pre = is_range_prerelease(range_)
    new_is_pre = bool(candidate.prerelease)
    latest_is_pre = bool(latest.prerelease)
    is_greater = candidate > base

    if (not policy.release_only and policy.use_prerelease) or (old_is_pre and new_is_pre):
        return version

    # release-only may step down from a prerelease track to a release
    if policy.release_only and not is_greater and old_is_pre and not new_is_pre:
        return version

    if old_is_pre and not new_is_pre:
        return version if is_greater else None

    latest_diff = diff_class(base, latest)
    if latest_diff and latest_diff != "prerelease":
        if _strip_pre(latest_diff) not in policy.ceiling.classes:
            return version

    if policy.release_only and latest_is_pre:
        return version

    if latest < base and not latest_is_pre:
        return latest_tag if policy.allow_downgrade else None

    return latest_tag


def _strip_pre(name: str) -> str:
    return name[3:] if name.startswith("pre") else name


@dataclass(frozen=True)
class ReferenceUpdate:
    """New reference for a GitHub-pinned dependency."""

    specifier: str
    ref: str
    date: Optional[datetime] = None

    @property
    def display_ref(self) -> str:
        return self.ref[:7] if is_hash_ref(self.ref) else self.ref


def _replace_ref(specifier: str, old_ref: str, new_ref: str) -> str:
    # The ref is always the trailing part of the specifier
    index = specifier.rfind(old_ref)
    return specifier[:index] + new_ref + specifier[index + len(old_ref):]


def _bare_tag(tag: str) -> Optional[semantic_version.Version]:
    return parse_version(tag[1:] if tag.startswith("v") else tag)


def resolve_reference(
    reference: OpaqueReference,
    catalog: ReferenceCatalog,
    use_greatest: bool = False,
) -> Optional[ReferenceUpdate]:
    """
    Resolve the next reference for a commit- or tag-pinned dependency.

    Commit pins move to the newest commit, abbreviated to the length of the
    old hash. Tag pins move to the last listed tag, or to the greatest tag in
    greatest mode; tags that are not semver are ignored.
    """
    old_ref = reference.ref

    if reference.is_hash:
        if not catalog.records:
            return None
        newest = catalog.records[0]
        new_ref = newest.ref[: len(old_ref)]
        if new_ref == old_ref:
            return None
        return ReferenceUpdate(
            specifier=_replace_ref(reference.specifier, old_ref, new_ref),
            ref=new_ref,
            date=newest.date,
        )

    old_version = _bare_tag(old_ref)
    if old_version is None or not catalog.records:
        return None

    if not use_greatest:
        new_tag = catalog.records[-1].ref
        new_version = _bare_tag(new_tag)
        if new_version is None:
            return None
    else:
        new_tag, new_version = old_ref, old_version
        for record in catalog.records:
            tag_version = _bare_tag(record.ref)
            if tag_version is not None and tag_version > new_version:
                new_tag, new_version = record.ref, tag_version

    if new_version == old_version:
        return None

    return ReferenceUpdate(
        specifier=_replace_ref(reference.specifier, old_ref, new_tag), ref=new_tag
    )
