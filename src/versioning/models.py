"""Data models for versioning and package requirements."""

from dataclasses import dataclass, field
from typing import Optional

import semantic_version


def parse_version(text: Optional[str]) -> Optional[semantic_version.Version]:
    """Parse a strict semantic version, returning None when invalid."""
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        return semantic_version.Version(text.strip())
    except ValueError:
        return None


@dataclass(frozen=True, order=True)
class PackageId:
    """A resolved package: identity is the (name, version) pair."""
    name: str
    version: str  # kept verbatim so unparseable versions can still be reported

    @property
    def semver(self) -> Optional[semantic_version.Version]:
        """Parsed version, or None when the version text is not valid semver."""
        return parse_version(self.version)

    def __str__(self) -> str:
        return f"{self.name} v{self.version}"


@dataclass(frozen=True)
class VersionRequirement:
    """A semantic-version constraint attached to a dependency name."""
    name: str
    raw: str  # requirement text as declared (or synthesized)
    spec: semantic_version.SimpleSpec = field(compare=False, repr=False)
    origin: str  # "manifest:<section>" | "metadata:<kind>" | "synthesized"

    def matches(self, version: semantic_version.Version) -> bool:
        """Return True when the version satisfies this requirement."""
        return self.spec.match(version)

    @classmethod
    def compatible_with(cls, name: str, version: semantic_version.Version) -> "VersionRequirement":
        """Caret requirement derived from a resolved version.

        Accepts any version with the same leading non-zero component that is
        no smaller than ``version``. Build metadata is dropped because it does
        not take part in precedence.
        """
        base = f"{version.major}.{version.minor}.{version.patch}"
        if version.prerelease:
            base = f"{base}-{'.'.join(version.prerelease)}"
        raw = f"^{base}"
        return cls(name=name, raw=raw, spec=semantic_version.SimpleSpec(raw), origin="synthesized")
