"""Gap classification: which required crates the mirror cannot satisfy, and how risky each gap is.

For every crate in the closure the applicable requirement is determined
(declared requirements the resolved version itself satisfies, otherwise a
synthesized caret requirement). If no mirrored version satisfies it, the gap
is placed on a severity ladder. The ladder is an ordered table of mutually
exclusive rules; the first rule that matches decides the category.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import semantic_version

from common.logging_utils import extra_context, is_debug_enabled
from mirror.inventory import Inventory
from versioning.models import PackageId, VersionRequirement
from versioning.parser import format_artifact_filename

logger = logging.getLogger(__name__)


class GapCategory(Enum):
    """Risk category of an unsatisfied requirement."""
    NEW_DEPENDENCY = "new_dependency"
    DOWNGRADE = "downgrade"
    MAJOR_UPGRADE = "major_upgrade"
    MINOR_PATCH_UPGRADE = "minor_patch_upgrade"
    UNPARSEABLE = "unparseable"

    @property
    def requires_approval(self) -> bool:
        return self is not GapCategory.MINOR_PATCH_UPGRADE

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    GapCategory.NEW_DEPENDENCY: "new dependency",
    GapCategory.DOWNGRADE: "downgrade",
    GapCategory.MAJOR_UPGRADE: "major upgrade",
    GapCategory.MINOR_PATCH_UPGRADE: "minor/patch upgrade",
    GapCategory.UNPARSEABLE: "unparseable version",
}


@dataclass(frozen=True)
class GapEntry:
    """One required crate the mirror cannot currently satisfy."""
    name: str
    required_version: str
    category: GapCategory
    reason: str
    requirement: Optional[str] = None  # applicable requirement text(s), comma joined
    latest: Optional[str] = None  # highest mirrored version, when the name is known

    @property
    def requires_approval(self) -> bool:
        return self.category.requires_approval

    @property
    def package(self) -> PackageId:
        return PackageId(name=self.name, version=self.required_version)

    def artifact(self, extension: Optional[str] = None) -> str:
        """Artifact filename for the required version."""
        return format_artifact_filename(self.package, extension)


@dataclass(frozen=True)
class GapContext:
    """Inputs the severity ladder rules are evaluated against."""
    package: PackageId
    version: Optional[semantic_version.Version]
    latest: Optional[semantic_version.Version]
    zero_major_minor_is_breaking: bool = False


def _is_unparseable(ctx: GapContext) -> bool:
    return ctx.version is None


def _is_new(ctx: GapContext) -> bool:
    return ctx.latest is None


def _is_downgrade(ctx: GapContext) -> bool:
    return ctx.version < ctx.latest


def _is_major_step(ctx: GapContext) -> bool:
    if ctx.version.major != ctx.latest.major:
        return True
    return (
        ctx.zero_major_minor_is_breaking
        and ctx.version.major == 0
        and ctx.version.minor != ctx.latest.minor
    )


def _is_minor_patch_step(ctx: GapContext) -> bool:
    version, latest = ctx.version, ctx.latest
    return (version.minor, version.patch, version.prerelease) != (latest.minor, latest.patch, latest.prerelease)


# Evaluated top to bottom. The rules are mutually exclusive given the order:
# each later rule may assume every earlier one returned False.
SEVERITY_LADDER: Tuple[Tuple[GapCategory, Callable[[GapContext], bool]], ...] = (
    (GapCategory.UNPARSEABLE, _is_unparseable),
    (GapCategory.NEW_DEPENDENCY, _is_new),
    (GapCategory.DOWNGRADE, _is_downgrade),
    (GapCategory.MAJOR_UPGRADE, _is_major_step),
    (GapCategory.MINOR_PATCH_UPGRADE, _is_minor_patch_step),
)


def _reason(category: GapCategory, latest: Optional[semantic_version.Version]) -> str:
    if category is GapCategory.UNPARSEABLE:
        return "unable to parse version"
    if category is GapCategory.NEW_DEPENDENCY:
        return "new dependency"
    return f"{category.label} from {latest}"


def categorize(ctx: GapContext) -> GapCategory:
    """Walk the severity ladder for an unsatisfied requirement.

    Raises:
        AssertionError: If no rule matches, i.e. the required version equals
            the latest mirrored version yet was reported as unsatisfied.
    """
    for category, rule in SEVERITY_LADDER:
        if rule(ctx):
            return category
    raise AssertionError(
        f"{ctx.package} matches the latest mirrored version {ctx.latest} but was not satisfied"
    )


def applicable_requirements(
    package: PackageId,
    version: semantic_version.Version,
    declared: Sequence[VersionRequirement],
) -> List[VersionRequirement]:
    """Declared requirements that resolved to this version, else a synthesized caret."""
    matching = [req for req in declared if req.matches(version)]
    if matching:
        return matching
    return [VersionRequirement.compatible_with(package.name, version)]


def classify_package(
    package: PackageId,
    inventory: Inventory,
    declared: Sequence[VersionRequirement] = (),
    zero_major_minor_is_breaking: bool = False,
) -> Optional[GapEntry]:
    """Classify one required package against the inventory.

    Returns:
        GapEntry when the mirror cannot satisfy the package, otherwise None.
    """
    version = package.semver
    latest = inventory.latest(package.name)
    ctx = GapContext(
        package=package,
        version=version,
        latest=latest,
        zero_major_minor_is_breaking=zero_major_minor_is_breaking,
    )
    requirement_text = None
    if version is not None:
        applicable = applicable_requirements(package, version, declared)
        requirement_text = ", ".join(req.raw for req in applicable)
        if latest is not None and inventory.find_satisfying(package.name, applicable) is not None:
            return None

    category = categorize(ctx)
    return GapEntry(
        name=package.name,
        required_version=package.version,
        category=category,
        reason=_reason(category, latest),
        requirement=requirement_text,
        latest=str(latest) if latest is not None else None,
    )


def classify_closure(
    closure: Iterable[PackageId],
    requirements: Dict[str, List[VersionRequirement]],
    inventory: Inventory,
    zero_major_minor_is_breaking: bool = False,
) -> Tuple[List[PackageId], List[GapEntry]]:
    """Classify every package of the closure.

    Returns:
        (satisfied packages, gap entries), both ordered by name then version.
    """
    satisfied: List[PackageId] = []
    gaps: List[GapEntry] = []
    for package in sorted(set(closure)):
        gap = classify_package(
            package,
            inventory,
            requirements.get(package.name, ()),
            zero_major_minor_is_breaking=zero_major_minor_is_breaking,
        )
        if gap is None:
            satisfied.append(package)
            continue
        gaps.append(gap)
        if is_debug_enabled(logger):
            logger.debug(
                "Gap classified",
                extra=extra_context(
                    event="gap_classified",
                    component="gap_classifier",
                    target=str(package),
                    outcome=gap.category.value,
                    requirement=gap.requirement,
                ),
            )
    return satisfied, gaps


def partition(gaps: Iterable[GapEntry]) -> Tuple[List[GapEntry], List[GapEntry]]:
    """Split gaps into (requires approval, safe)."""
    needs_approval, safe = [], []
    for gap in gaps:
        (needs_approval if gap.requires_approval else safe).append(gap)
    return needs_approval, safe
