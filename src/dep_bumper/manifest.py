"""
package.json discovery, loading and in-place patching.

Patching is textual: only the ``"name": "old"`` pairs that changed are
rewritten, inside their own section object, so formatting, key order and
unrelated fields survive byte for byte.
"""

import json
import platform
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .cli_config import DEFAULT_DEPENDENCY_TYPES
from .dependency import Dependency
from .error_handling import (
    ErrorCategory,
    ManifestError,
    ManifestWriteError,
    get_error_handler,
    log_manifest_error,
)
from .structured_logging import get_manifest_logger

MANIFEST_NAME = "package.json"

# (section, name, old specifier, new specifier)
ManifestUpdate = Tuple[str, str, str, str]


def locate_manifest(file: Optional[str] = None, cwd: Optional[Path] = None) -> Path:
    """
    Resolve the manifest to operate on.

    ``file`` may name a package.json file or a module directory. Without it,
    package.json is searched from ``cwd`` upwards.

    Raises:
        ManifestError: If no manifest can be located
    """
    if file:
        path = Path(file)
        if not path.exists():
            raise ManifestError(f"Unable to open {file}: no such file or directory")
        if path.is_file():
            return path
        if path.is_dir():
            return path / MANIFEST_NAME
        raise ManifestError(f"{file} is neither a file nor directory")

    start = (cwd or Path.cwd()).resolve()
    for directory in [start, *start.parents]:
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate

    raise ManifestError(f"Unable to find {MANIFEST_NAME} in {start} or any of its parents")


def _validate_file_path(path: Path) -> Path:
    if not path.exists():
        raise ManifestError(f"Unable to open {MANIFEST_NAME}: {path} does not exist")
    if not path.is_file():
        raise ManifestError(f"Unable to open {MANIFEST_NAME}: {path} is not a file")
    return path


def read_manifest(path: Path) -> Tuple[str, Dict[str, Any]]:
    """
    Read and parse a manifest, returning its raw text and decoded object.

    Raises:
        ManifestError: If the file cannot be read or is not a JSON object
    """
    validated_path = _validate_file_path(path)

    try:
        with open(validated_path, encoding="utf-8", newline="") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        log_manifest_error(
            f"Unable to read manifest: {e}", "manifest", "read_manifest",
            file_path=str(path), exception=e,
        )
        raise ManifestError(f"Unable to open {MANIFEST_NAME}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        log_manifest_error(
            f"Invalid JSON format in manifest: {e}", "manifest", "read_manifest",
            file_path=str(path), exception=e,
        )
        raise ManifestError(f"Error parsing {MANIFEST_NAME}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"{MANIFEST_NAME} must contain a JSON object")

    return text, data


def collect_dependencies(
    data: Dict[str, Any],
    dependency_types: Optional[Sequence[str]] = None,
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
) -> List[Dependency]:
    """
    Collect dependencies from the selected sections, in manifest order.

    Raises:
        ManifestError: If nothing is left to check
    """
    include_set = set(include) if include else None
    exclude_set = set(exclude) if exclude else None
    dependencies: List[Dependency] = []

    for section in dependency_types or DEFAULT_DEPENDENCY_TYPES:
        entries = data.get(section)
        if not isinstance(entries, dict):
            continue

        for name, specifier in entries.items():
            if include_set is not None and name not in include_set:
                continue
            if exclude_set is not None and name in exclude_set:
                continue
            if not isinstance(specifier, str):
                get_error_handler().warning(
                    ErrorCategory.MANIFEST,
                    f"Ignoring non-string specifier for {name} in {section}",
                    "manifest",
                    "collect_dependencies",
                    details={"section": section, "package": name[:100]},
                )
                continue
            dependencies.append(Dependency(name=name, specifier=specifier, section=section))

    if not dependencies:
        if include_set is not None or exclude_set is not None:
            raise ManifestError("No packages match the given filters")
        raise ManifestError("No packages found")

    get_manifest_logger().debug("dependencies_collected", count=len(dependencies))
    return dependencies


def _string_end(text: str, start: int) -> int:
    """Index of the closing quote of the JSON string opening at ``start``."""
    i = start + 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i
        i += 1
    raise ManifestError("Unterminated string in manifest")


def section_spans(text: str) -> Dict[str, Tuple[int, int]]:
    """
    Map each top-level key whose value is an object to its ``{...}`` span.

    Duplicate keys resolve to the last occurrence, like the JSON decoder.
    """
    spans: Dict[str, Tuple[int, int]] = {}
    depth = 0
    last_key: Optional[str] = None
    pending_key: Optional[str] = None
    current: Optional[str] = None
    value_start = 0
    i = 0

    while i < len(text):
        ch = text[i]
        if ch == '"':
            end = _string_end(text, i)
            if depth == 1:
                last_key = json.loads(text[i : end + 1])
            i = end + 1
            continue

        if ch == ":" and depth == 1:
            pending_key = last_key
        elif ch == "," and depth == 1:
            pending_key = None
        elif ch in "{[":
            depth += 1
            if depth == 2 and ch == "{" and pending_key is not None:
                current, value_start = pending_key, i
            pending_key = None
        elif ch in "}]":
            if depth == 2 and current is not None:
                spans[current] = (value_start, i + 1)
                current = None
            depth -= 1
        i += 1

    return spans


def _replace_pair(segment: str, name: str, old: str, new: str) -> str:
    pattern = re.compile(
        '"' + re.escape(name) + r'"(\s*:\s*)"' + re.escape(old) + '"'
    )
    return pattern.sub(lambda m: f'"{name}"{m.group(1)}"{new}"', segment)


def patch_manifest(text: str, updates: Iterable[ManifestUpdate]) -> str:
    """
    Rewrite ``"name": "old"`` pairs to ``"name": "new"`` within their sections.

    The separator between key and value is preserved, as is every byte
    outside the matched pairs.
    """
    by_section: Dict[str, List[Tuple[str, str, str]]] = {}
    for section, name, old, new in updates:
        by_section.setdefault(section, []).append((name, old, new))

    spans = section_spans(text)
    # Patch from the end so earlier spans keep their offsets
    ordered = sorted(
        (section for section in by_section if section in spans),
        key=lambda section: spans[section][0],
        reverse=True,
    )

    for section in ordered:
        start, end = spans[section]
        segment = text[start:end]
        for name, old, new in by_section[section]:
            segment = _replace_pair(segment, name, old, new)
        text = text[:start] + segment + text[end:]

    return text


def write_manifest(path: Path, content: str) -> None:
    """
    Write the updated manifest.

    On Windows the file is truncated and rewritten in place to preserve its
    metadata.

    Raises:
        ManifestWriteError: If the file cannot be written
    """
    try:
        if platform.system() == "Windows":
            with open(path, "r+", encoding="utf-8", newline="") as f:
                f.truncate(0)
                f.write(content)
        else:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
    except OSError as e:
        get_error_handler().error(
            ErrorCategory.FILESYSTEM,
            f"Error writing manifest: {e}",
            "manifest",
            "write_manifest",
            exception=e,
            details={"file_path": path.name},
        )
        raise ManifestWriteError(f"Error writing {path}: {e}") from e

    get_manifest_logger().info("manifest_written", manifest_path=str(path))
