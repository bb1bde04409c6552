"""Closure resolution: externally-sourced crates reachable from the build roots.

Two inputs are supported:
  - the structured graph from ``cargo metadata`` (packages + resolve nodes),
  - the textual rendering from ``cargo tree`` as a fallback.

Only crates with an external source are part of the closure. Workspace
members and local path crates are never included, although the traversal
walks through path crates so their own registry dependencies are found.

The two inputs differ on non-default sources. The structured graph includes
every package with a non-null ``source``, so git and alternate-registry
crates are part of its closure. Tree lines carry only an annotation, and
any annotation other than ``(*)`` or ``(proc-macro)`` excludes the line, so
the tree closure holds default-registry crates only.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import PackageId

logger = logging.getLogger(__name__)

_TREE_DECORATION = " \t│├└─|`-"
_TREE_LINE_RE = re.compile(r"^(?P<name>[A-Za-z0-9_][A-Za-z0-9_\-]*) v(?P<version>\S+)(?P<rest>.*)$")
_ANNOTATION_RE = re.compile(r"\(([^()]*)\)")


class ClosureError(ValueError):
    """Raised when the metadata document has no usable dependency graph."""


def _node_edges(node: Dict[str, Any], include_dev: bool) -> List[str]:
    """Outgoing package ids of a resolve node."""
    deps = node.get("deps")
    if isinstance(deps, list):
        edges = []
        for dep in deps:
            if not isinstance(dep, dict) or not dep.get("pkg"):
                continue
            kinds = [k.get("kind") for k in dep.get("dep_kinds") or [] if isinstance(k, dict)]
            if not include_dev and kinds and all(kind == "dev" for kind in kinds):
                continue
            edges.append(dep["pkg"])
        return edges
    # cargo releases before dep_kinds only expose the flat id list
    return [d for d in node.get("dependencies") or [] if isinstance(d, str)]


def resolve_graph_closure(
    metadata: Dict[str, Any],
    roots: Optional[Iterable[str]] = None,
    include_dev: bool = True,
) -> Set[PackageId]:
    """Walk the resolve graph from the roots and collect external packages.

    Args:
        metadata: Parsed ``cargo metadata --format-version 1`` document.
        roots: Root package ids; defaults to the workspace members.
        include_dev: Follow edges that exist only as dev-dependencies.

    Returns:
        Set of PackageIds reachable from the roots that have a source.

    Raises:
        ClosureError: If the document carries no resolve graph.
    """
    resolve = metadata.get("resolve")
    if not isinstance(resolve, dict) or not isinstance(resolve.get("nodes"), list):
        raise ClosureError("cargo metadata output has no resolve graph (was --no-deps used?)")

    packages = {p["id"]: p for p in metadata.get("packages") or [] if isinstance(p, dict) and "id" in p}
    nodes = {n["id"]: n for n in resolve["nodes"] if isinstance(n, dict) and "id" in n}
    root_ids = list(roots) if roots is not None else list(metadata.get("workspace_members") or [])
    if not root_ids and resolve.get("root"):
        root_ids = [resolve["root"]]

    closure: Set[PackageId] = set()
    visited: Set[str] = set()
    stack = list(root_ids)
    while stack:
        pkg_id = stack.pop()
        if pkg_id in visited:
            continue
        visited.add(pkg_id)
        pkg = packages.get(pkg_id)
        if pkg is not None and pkg.get("source") and pkg_id not in root_ids:
            closure.add(PackageId(name=pkg["name"], version=str(pkg["version"])))
        node = nodes.get(pkg_id)
        if node is not None:
            stack.extend(edge for edge in _node_edges(node, include_dev) if edge not in visited)

    if is_debug_enabled(logger):
        logger.debug(
            "Resolved closure from metadata graph",
            extra=extra_context(
                event="closure_resolved",
                component="closure",
                action="graph",
                count=len(closure),
                visited=len(visited),
                roots=len(root_ids),
            ),
        )
    return closure


def _is_external(annotations: List[str]) -> bool:
    """Whether a tree line's annotations describe a default-registry crate."""
    for note in annotations:
        note = note.strip()
        if note in Constants.TREE_BENIGN_ANNOTATIONS:
            continue
        # "registry `name`" marks an alternate registry; anything else is a path or git source
        return False
    return True


def parse_tree_closure(tree_text: str) -> Set[PackageId]:
    """Derive the closure from ``cargo tree`` output.

    The first crate line is the project itself and is excluded. Crates from
    alternate registries, local paths, or git sources are excluded. When a
    name occurs several times, the last occurrence wins.
    """
    by_name: Dict[str, PackageId] = {}
    root_seen = False
    skipped = 0
    for line in tree_text.splitlines():
        text = line.strip().lstrip(_TREE_DECORATION)
        if not text:
            continue
        match = _TREE_LINE_RE.match(text)
        if not match:
            skipped += 1
            continue
        if not root_seen:
            root_seen = True
            continue
        if not _is_external(_ANNOTATION_RE.findall(match.group("rest"))):
            continue
        by_name[match.group("name")] = PackageId(name=match.group("name"), version=match.group("version"))

    if is_debug_enabled(logger):
        logger.debug(
            "Resolved closure from tree output",
            extra=extra_context(
                event="closure_resolved",
                component="closure",
                action="tree",
                count=len(by_name),
                skipped=skipped,
            ),
        )
    return set(by_name.values())
