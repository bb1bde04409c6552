"""Requirement extraction from Cargo manifests and the resolved metadata graph.

Produces a mapping of crate name to the ordered list of declared
VersionRequirements. Entries sourced from a local path or a git repository
carry no meaningful version constraint and are skipped, as are entries whose
requirement text does not parse. Transitive crates get no entry here; the
classifier synthesizes a caret requirement for them from the resolved version.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import VersionRequirement
from versioning.parser import parse_requirement

logger = logging.getLogger(__name__)

RequirementMap = Dict[str, List[VersionRequirement]]


def _load_toml(text: str) -> Dict[str, Any]:
    try:
        import tomllib as toml  # type: ignore
    except Exception:  # pylint: disable=broad-exception-caught
        import tomli as toml  # type: ignore
    return toml.loads(text) or {}


def _add(requirements: RequirementMap, name: str, raw: Optional[str], origin: str) -> None:
    req = parse_requirement(name, raw, origin)
    if req is None:
        if is_debug_enabled(logger):
            logger.debug(
                "Skipping unparseable requirement",
                extra=extra_context(
                    event="parse_skip",
                    component="requirements",
                    target=name,
                    requirement=raw,
                    origin=origin,
                ),
            )
        return
    bucket = requirements.setdefault(name, [])
    if req not in bucket:
        bucket.append(req)


def _manifest_entry(name: str, entry: Any, workspace_deps: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return (crate name, requirement text) for one manifest dependency entry.

    A None requirement means the entry is skipped.
    """
    if isinstance(entry, str):
        return name, entry
    if not isinstance(entry, dict):
        return name, None
    crate = entry.get("package") or name
    if entry.get("workspace") is True:
        inherited = workspace_deps.get(name)
        if inherited is None:
            return crate, None
        _, raw = _manifest_entry(name, inherited, {})
        if isinstance(inherited, dict) and inherited.get("package"):
            crate = inherited["package"]
        return crate, raw
    if "path" in entry or "git" in entry:
        return crate, None
    version = entry.get("version")
    return crate, version if isinstance(version, str) else None


def _dependency_tables(manifest: Dict[str, Any]) -> Iterable[Tuple[str, Dict[str, Any]]]:
    for section in Constants.MANIFEST_DEPENDENCY_SECTIONS:
        table = manifest.get(section)
        if isinstance(table, dict):
            yield section, table
    targets = manifest.get("target")
    if isinstance(targets, dict):
        for cfg, target_table in targets.items():
            if not isinstance(target_table, dict):
                continue
            for section in Constants.MANIFEST_DEPENDENCY_SECTIONS:
                table = target_table.get(section)
                if isinstance(table, dict):
                    yield f"target.{cfg}.{section}", table


def extract_manifest_requirements(manifest_text: str) -> RequirementMap:
    """Extract declared requirements from Cargo.toml text.

    Args:
        manifest_text: Contents of a Cargo.toml file.

    Returns:
        Mapping of crate name to declared requirements, in declaration order.
        An unreadable manifest yields an empty mapping.
    """
    try:
        manifest = _load_toml(manifest_text)
    except (ValueError, TypeError) as e:
        logger.warning("Failed to parse manifest (invalid TOML): %s", e)
        return {}

    requirements: RequirementMap = {}
    workspace = manifest.get("workspace")
    workspace_deps = workspace.get("dependencies") if isinstance(workspace, dict) else None
    if not isinstance(workspace_deps, dict):
        workspace_deps = {}

    for section, table in _dependency_tables(manifest):
        for name, entry in table.items():
            crate, raw = _manifest_entry(name, entry, workspace_deps)
            if crate and raw is not None:
                _add(requirements, crate, raw, f"manifest:{section}")

    for name, entry in workspace_deps.items():
        crate, raw = _manifest_entry(name, entry, {})
        if crate and raw is not None:
            _add(requirements, crate, raw, "manifest:workspace.dependencies")

    return requirements


def extract_graph_requirements(metadata: Dict[str, Any]) -> RequirementMap:
    """Extract declared requirements of workspace members from cargo metadata.

    Args:
        metadata: Parsed ``cargo metadata --format-version 1`` document.

    Returns:
        Mapping of crate name to declared requirements.
    """
    requirements: RequirementMap = {}
    members = set(metadata.get("workspace_members") or [])
    for pkg in metadata.get("packages") or []:
        if not isinstance(pkg, dict) or pkg.get("id") not in members:
            continue
        for dep in pkg.get("dependencies") or []:
            if not isinstance(dep, dict):
                continue
            source = dep.get("source")
            if not dep.get("name") or not source or str(source).startswith("git+"):
                continue
            kind = dep.get("kind") or "normal"
            _add(requirements, dep["name"], dep.get("req"), f"metadata:{kind}")
    return requirements


def merge_requirements(*maps: RequirementMap) -> RequirementMap:
    """Combine requirement maps, keeping first-seen order and dropping duplicates."""
    merged: RequirementMap = {}
    for mapping in maps:
        for name, reqs in mapping.items():
            bucket = merged.setdefault(name, [])
            for req in reqs:
                if req not in bucket:
                    bucket.append(req)
    return merged
