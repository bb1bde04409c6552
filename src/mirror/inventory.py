"""Offline mirror inventory: the flat listing of artifact filenames.

The listing is plain UTF-8 text with one ``<name>-<version>.<ext>`` token per
line. Lines that do not follow the convention are kept in the raw set so
they survive a merge, but they never satisfy a requirement.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

import semantic_version

from versioning.models import VersionRequirement, parse_version
from versioning.parser import parse_artifact_filename

logger = logging.getLogger(__name__)


class InventoryFileError(OSError):
    """Raised when the inventory file cannot be read or written."""


@dataclass
class Inventory:
    """Current mirror contents."""

    entries: Set[str] = field(default_factory=set)
    versions: Dict[str, List[semantic_version.Version]] = field(default_factory=dict)
    extension: Optional[str] = None

    def available(self, name: str) -> List[semantic_version.Version]:
        """Versions of ``name`` in the mirror, ascending."""
        return list(self.versions.get(name, []))

    def latest(self, name: str) -> Optional[semantic_version.Version]:
        """Highest available version of ``name`` by semver precedence."""
        available = self.versions.get(name)
        return available[-1] if available else None

    def find_satisfying(
        self, name: str, requirements: Sequence[VersionRequirement]
    ) -> Optional[semantic_version.Version]:
        """Highest available version satisfying every requirement, or None."""
        for version in reversed(self.versions.get(name, [])):
            if all(req.matches(version) for req in requirements):
                return version
        return None

    @property
    def unparsed(self) -> List[str]:
        """Raw entries that do not follow the artifact filename convention."""
        return sorted(e for e in self.entries if parse_artifact_filename(e, self.extension) is None)


def parse_inventory(text: str, extension: Optional[str] = None) -> Inventory:
    """Parse listing text into an Inventory.

    Args:
        text: Inventory file contents.
        extension: Artifact extension (defaults to Constants.ARTIFACT_EXTENSION).
    """
    inventory = Inventory(extension=extension)
    for line in text.splitlines():
        entry = line.strip()
        if not entry:
            continue
        inventory.entries.add(entry)

    for entry in inventory.entries:
        package = parse_artifact_filename(entry, extension)
        if package is None:
            logger.debug("Inventory entry does not parse as an artifact: %s", entry)
            continue
        version = parse_version(package.version)
        inventory.versions.setdefault(package.name, []).append(version)

    for versions in inventory.versions.values():
        versions.sort()
    return inventory


def read_inventory(path: str, extension: Optional[str] = None) -> Inventory:
    """Read and parse the inventory file.

    Raises:
        InventoryFileError: If the file cannot be read.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as e:
        raise InventoryFileError(f"Could not read inventory file {path}: {e}") from e
    return parse_inventory(text, extension)
