"""Build metadata sources.

A MetadataSource acquires build metadata once (by running cargo or reading a
saved file) and answers two questions over it: the closure of required
packages and the declared version requirements. Two variants exist:

  - StructuredGraphSource: ``cargo metadata --format-version 1`` JSON,
  - TextualTreeSource: ``cargo tree`` output plus the Cargo.toml manifest.

select_source() picks the variant by availability.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from constants import Constants, MetadataModes
from common.logging_utils import Timer, extra_context, is_debug_enabled
from analysis.closure import ClosureError, parse_tree_closure, resolve_graph_closure
from analysis.requirements import RequirementMap, extract_graph_requirements, extract_manifest_requirements
from versioning.models import PackageId

logger = logging.getLogger(__name__)

_STDERR_TAIL_LINES = 5


class MetadataError(RuntimeError):
    """Raised when build metadata cannot be obtained or understood."""


@dataclass
class CargoInvocation:
    """How cargo is invoked for a project."""

    manifest_path: str
    cargo_bin: str = "cargo"
    timeout: int = 300
    filter_platform: Optional[str] = None
    include_dev: bool = True
    offline: bool = False
    locked: bool = False

    @classmethod
    def from_constants(cls, manifest_path: Optional[str] = None) -> "CargoInvocation":
        """Build an invocation from the current (possibly overridden) Constants."""
        return cls(
            manifest_path=manifest_path or Constants.CARGO_TOML_FILE,
            cargo_bin=Constants.CARGO_BIN,
            timeout=int(Constants.METADATA_TIMEOUT_SEC),
            filter_platform=Constants.FILTER_PLATFORM,
            include_dev=bool(Constants.INCLUDE_DEV_DEPENDENCIES),
            offline=bool(Constants.CARGO_OFFLINE),
            locked=bool(Constants.CARGO_LOCKED),
        )

    def common_flags(self) -> List[str]:
        flags = ["--manifest-path", self.manifest_path]
        if self.offline:
            flags.append("--offline")
        if self.locked:
            flags.append("--locked")
        return flags

    def metadata_command(self) -> List[str]:
        cmd = [self.cargo_bin, "metadata", "--format-version", Constants.METADATA_FORMAT_VERSION]
        if self.filter_platform:
            cmd += ["--filter-platform", self.filter_platform]
        return cmd + self.common_flags()

    def tree_command(self) -> List[str]:
        cmd = [self.cargo_bin, "tree", "--prefix", "indent", "--target", self.filter_platform or "all"]
        if not self.include_dev:
            cmd += ["--edges", "no-dev"]
        return cmd + self.common_flags()


def run_cargo(cmd: List[str], timeout: int) -> str:
    """Run a cargo command and return its stdout.

    Raises:
        MetadataError: If cargo is missing, times out, or exits non-zero.
    """
    printable = " ".join(cmd)
    with Timer() as t:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise MetadataError(f"Could not run '{printable}': {cmd[0]} not found") from e
        except subprocess.TimeoutExpired as e:
            raise MetadataError(f"'{printable}' timed out after {timeout} seconds") from e
        except OSError as e:
            raise MetadataError(f"Could not run '{printable}': {e}") from e

    if is_debug_enabled(logger):
        logger.debug(
            "cargo finished",
            extra=extra_context(
                event="subprocess_exit",
                component="metadata",
                action=cmd[1] if len(cmd) > 1 else cmd[0],
                status_code=result.returncode,
                duration_ms=t.duration_ms(),
            ),
        )
    if result.returncode != 0:
        tail = "\n".join((result.stderr or "").strip().splitlines()[-_STDERR_TAIL_LINES:])
        raise MetadataError(f"'{printable}' failed with exit status {result.returncode}: {tail}")
    return result.stdout


def _read_file(path: str, what: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except (OSError, UnicodeDecodeError) as e:
        raise MetadataError(f"Could not read {what} {path}: {e}") from e


class MetadataSource:
    """Base class for build metadata sources."""

    kind = "base"

    def __init__(self, invocation: CargoInvocation, saved_path: Optional[str] = None):
        self.invocation = invocation
        self.saved_path = saved_path
        self._loaded = False

    def load(self) -> "MetadataSource":
        """Acquire metadata once; later calls are no-ops."""
        if not self._loaded:
            self._fetch()
            self._loaded = True
        return self

    def _fetch(self) -> None:
        raise NotImplementedError

    def closure(self) -> Set[PackageId]:
        """Externally-sourced packages reachable from the build roots."""
        raise NotImplementedError

    def requirements(self) -> RequirementMap:
        """Declared version requirements, by crate name."""
        raise NotImplementedError


class StructuredGraphSource(MetadataSource):
    """Metadata from ``cargo metadata`` JSON (or a saved copy of it)."""

    kind = MetadataModes.METADATA.value

    def __init__(self, invocation: CargoInvocation, saved_path: Optional[str] = None):
        super().__init__(invocation, saved_path)
        self.metadata: Dict[str, Any] = {}

    def _fetch(self) -> None:
        if self.saved_path:
            text = _read_file(self.saved_path, "metadata file")
            origin = self.saved_path
        else:
            text = run_cargo(self.invocation.metadata_command(), self.invocation.timeout)
            origin = "cargo metadata"
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MetadataError(f"Invalid JSON from {origin}: {e}") from e
        if not isinstance(data, dict):
            raise MetadataError(f"Unexpected metadata document from {origin}")
        resolve = data.get("resolve")
        if not isinstance(resolve, dict) or not isinstance(resolve.get("nodes"), list):
            # checked here so auto mode can still fall back to cargo tree
            raise MetadataError(f"Metadata from {origin} has no resolve graph (was --no-deps used?)")
        self.metadata = data

    def closure(self) -> Set[PackageId]:
        self.load()
        try:
            return resolve_graph_closure(self.metadata, include_dev=self.invocation.include_dev)
        except ClosureError as e:
            raise MetadataError(str(e)) from e

    def requirements(self) -> RequirementMap:
        self.load()
        return extract_graph_requirements(self.metadata)


class TextualTreeSource(MetadataSource):
    """Metadata from ``cargo tree`` output, with requirements read from Cargo.toml."""

    kind = MetadataModes.TREE.value

    def __init__(self, invocation: CargoInvocation, saved_path: Optional[str] = None):
        super().__init__(invocation, saved_path)
        self.tree_text = ""

    def _fetch(self) -> None:
        if self.saved_path:
            self.tree_text = _read_file(self.saved_path, "tree file")
        else:
            self.tree_text = run_cargo(self.invocation.tree_command(), self.invocation.timeout)

    def closure(self) -> Set[PackageId]:
        self.load()
        return parse_tree_closure(self.tree_text)

    def requirements(self) -> RequirementMap:
        try:
            with open(self.invocation.manifest_path, "r", encoding="utf-8") as fh:
                manifest_text = fh.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "Could not read manifest %s (%s); using synthesized requirements only",
                self.invocation.manifest_path,
                e,
            )
            return {}
        return extract_manifest_requirements(manifest_text)


def select_source(
    invocation: CargoInvocation,
    mode: str = MetadataModes.AUTO.value,
    metadata_file: Optional[str] = None,
    tree_file: Optional[str] = None,
) -> MetadataSource:
    """Pick and load a metadata source.

    Saved files win over running cargo. In auto mode the structured graph is
    tried first and the textual tree is used when it cannot be obtained.

    Raises:
        MetadataError: If no source could be loaded.
    """
    if metadata_file:
        return StructuredGraphSource(invocation, metadata_file).load()
    if tree_file:
        return TextualTreeSource(invocation, tree_file).load()
    if mode == MetadataModes.TREE.value:
        return TextualTreeSource(invocation).load()
    if mode == MetadataModes.METADATA.value:
        return StructuredGraphSource(invocation).load()

    try:
        return StructuredGraphSource(invocation).load()
    except MetadataError as e:
        logger.warning("Structured metadata unavailable (%s); falling back to cargo tree", e)
    return TextualTreeSource(invocation).load()
