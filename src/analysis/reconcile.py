"""Reconciliation pass: join closure, requirements and inventory into one report."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from buildmeta.source import MetadataSource
from mirror.inventory import Inventory
from versioning.models import PackageId, VersionRequirement
from .gap_classifier import GapCategory, GapEntry, classify_closure, partition

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    satisfied: List[PackageId] = field(default_factory=list)
    gaps: List[GapEntry] = field(default_factory=list)
    source_kind: str = ""

    @property
    def closure_size(self) -> int:
        return len(self.satisfied) + len(self.gaps)

    @property
    def requires_approval(self) -> List[GapEntry]:
        return partition(self.gaps)[0]

    @property
    def safe(self) -> List[GapEntry]:
        return partition(self.gaps)[1]

    def counts_by_category(self) -> Dict[GapCategory, int]:
        """Gap counts for every category, zero included, in ladder order."""
        counts = Counter(gap.category for gap in self.gaps)
        return {category: counts.get(category, 0) for category in GapCategory}

    def unapproved(self, approved: Iterable[str] = (), approve_all: bool = False) -> List[GapEntry]:
        """Approval-required gaps not covered by the given approvals."""
        if approve_all:
            return []
        names = set(approved)
        return [gap for gap in self.requires_approval if gap.name not in names]


def reconcile(
    closure: Iterable[PackageId],
    requirements: Dict[str, List[VersionRequirement]],
    inventory: Inventory,
    zero_major_minor_is_breaking: bool = False,
) -> ReconcileReport:
    """Classify a closure against an inventory."""
    closure_set: Set[PackageId] = set(closure)
    satisfied, gaps = classify_closure(
        closure_set,
        requirements,
        inventory,
        zero_major_minor_is_breaking=zero_major_minor_is_breaking,
    )
    logger.info(
        "Reconciled %d crates: %d satisfied, %d missing",
        len(closure_set),
        len(satisfied),
        len(gaps),
    )
    return ReconcileReport(satisfied=satisfied, gaps=gaps)


def reconcile_source(
    source: MetadataSource,
    inventory: Inventory,
    zero_major_minor_is_breaking: bool = False,
) -> ReconcileReport:
    """Run a reconciliation pass over a loaded metadata source.

    Raises:
        MetadataError: If the source cannot produce a closure.
    """
    report = reconcile(
        source.closure(),
        source.requirements(),
        inventory,
        zero_major_minor_is_breaking=zero_major_minor_is_breaking,
    )
    report.source_kind = source.kind
    return report
