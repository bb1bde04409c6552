"""Parsing utilities for artifact filenames and Cargo version requirements."""

import re
from typing import Optional

import semantic_version

from constants import Constants
from .models import PackageId, VersionRequirement, parse_version

# Longest operators first so ">=" is not read as ">" followed by "=1.0".
_CLAUSE_RE = re.compile(r"^(?P<op>\^|~|==|=|>=|<=|>|<)?\s*(?P<version>\S+)$")
_WILDCARD_RE = re.compile(r"(^|\.)[*xX](\.|$)")
# Crate names never contain a dot, so a split inside a version is never a valid name.
_CRATE_NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_-]*$")


def _extension(extension: Optional[str]) -> str:
    ext = extension if extension is not None else Constants.ARTIFACT_EXTENSION
    return "." + ext.lstrip(".")


def format_artifact_filename(package: PackageId, extension: Optional[str] = None) -> str:
    """Render a PackageId as ``<name>-<version>.<ext>``."""
    return f"{package.name}-{package.version}{_extension(extension)}"


def parse_artifact_filename(filename: str, extension: Optional[str] = None) -> Optional[PackageId]:
    """Parse ``<name>-<version>.<ext>`` back into a PackageId.

    The split happens at the last dash whose left-hand side is a valid crate
    name and whose right-hand side is a valid semantic version, so dashed
    names (``async-trait-0.1.80``) and pre-release versions that contain
    dashes or look like versions themselves (``foo-1.0.0-0.3.7``) are handled.

    Returns:
        PackageId, or None when the text does not follow the convention.
    """
    ext = _extension(extension)
    text = filename.strip()
    if not text.endswith(ext):
        return None
    stem = text[: -len(ext)]
    idx = stem.rfind("-")
    while idx > 0:
        version = stem[idx + 1:]
        if _CRATE_NAME_RE.match(stem[:idx]) and parse_version(version) is not None:
            return PackageId(name=stem[:idx], version=version)
        idx = stem.rfind("-", 0, idx)
    return None


def normalize_cargo_requirement(raw: str) -> str:
    """Translate Cargo requirement syntax into a SimpleSpec expression.

    Cargo reads a bare version as a caret requirement while SimpleSpec reads
    it as an exact pin, and Cargo allows whitespace around operators and
    commas. Wildcards without an operator are left for SimpleSpec.

    Raises:
        ValueError: If a clause is empty or malformed.
    """
    clauses = []
    for part in raw.split(","):
        part = part.strip()
        match = _CLAUSE_RE.match(part)
        if not part or not match:
            raise ValueError(f"Invalid requirement clause {part!r} in {raw!r}")
        op = match.group("op") or ""
        version = match.group("version")
        if not op and not _WILDCARD_RE.search(version):
            op = "^"
        clauses.append(f"{op}{version}")
    return ",".join(clauses)


def parse_requirement(name: str, raw: Optional[str], origin: str) -> Optional[VersionRequirement]:
    """Build a VersionRequirement from a declared requirement string.

    Returns:
        VersionRequirement, or None when the text cannot be parsed.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        spec = semantic_version.SimpleSpec(normalize_cargo_requirement(raw))
    except ValueError:
        return None
    return VersionRequirement(name=name, raw=raw.strip(), spec=spec, origin=origin)
