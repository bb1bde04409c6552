"""Human-readable decision report and JSON/CSV export."""

from __future__ import annotations

import csv
import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Optional

from constants import Constants, ExitCodes
from .gap_classifier import GapCategory, GapEntry
from .reconcile import ReconcileReport

_MARKERS = {
    GapCategory.NEW_DEPENDENCY: "WARNING: NEW dependency, requires approval",
    GapCategory.DOWNGRADE: "WARNING: DOWNGRADE from {latest}, requires approval",
    GapCategory.MAJOR_UPGRADE: "WARNING: MAJOR version upgrade from {latest}, requires approval",
    GapCategory.MINOR_PATCH_UPGRADE: "minor/patch upgrade from {latest}",
    GapCategory.UNPARSEABLE: "WARNING: Could not parse version",
}


def _gap_line(gap: GapEntry, extension: Optional[str]) -> str:
    marker = _MARKERS[gap.category].format(latest=gap.latest)
    return f"  {gap.artifact(extension)} [{marker}]"


def render_report(
    report: ReconcileReport,
    approved: Iterable[str] = (),
    approve_all: bool = False,
    extension: Optional[str] = None,
) -> str:
    """Render the report as text.

    Output depends only on the report contents, so the same inputs always
    produce the same text.
    """
    approved_names = set(approved)
    lines: List[str] = [
        f"Checked {report.closure_size} crate(s): "
        f"{len(report.satisfied)} satisfied by the mirror, {len(report.gaps)} missing."
    ]
    if not report.gaps:
        lines.append("All dependencies are already present in the registry file.")
        return "\n".join(lines) + "\n"

    lines.append(f"Found {len(report.gaps)} missing crates:")
    lines.extend(_gap_line(gap, extension) for gap in report.gaps)

    lines.append("")
    lines.append("Missing crates by category:")
    for category, count in report.counts_by_category().items():
        lines.append(f"  {category.label}: {count}")

    needs_approval = report.requires_approval
    safe = report.safe
    if needs_approval:
        lines.append("")
        lines.append(f" {len(needs_approval)} crate(s) require approval:")
        lines.append("   (major version upgrades, downgrades, new dependencies, or unparseable versions)")
    if safe:
        lines.append("")
        lines.append(f" {len(safe)} crate(s) are minor/patch upgrades (no approval needed)")

    if needs_approval:
        lines.append("")
        lines.append(Constants.REPORT_RULE)
        lines.append("CRATES REQUIRING APPROVAL:")
        lines.append(Constants.REPORT_RULE)
        for gap in needs_approval:
            suffix = " [approved]" if approve_all or gap.name in approved_names else ""
            lines.append(f"  - {gap.artifact(extension)} ({gap.reason}){suffix}")
        lines.append(Constants.REPORT_RULE)
    return "\n".join(lines) + "\n"


def report_as_dict(report: ReconcileReport, extension: Optional[str] = None) -> Dict[str, Any]:
    """Serializable view of the report."""
    return {
        "source": report.source_kind or None,
        "summary": {
            "closure": report.closure_size,
            "satisfied": len(report.satisfied),
            "missing": len(report.gaps),
            "requiresApproval": len(report.requires_approval),
            "byCategory": {c.value: n for c, n in report.counts_by_category().items()},
        },
        "gaps": [
            {
                "name": gap.name,
                "requiredVersion": gap.required_version,
                "artifact": gap.artifact(extension),
                "category": gap.category.value,
                "reason": gap.reason,
                "requirement": gap.requirement,
                "latest": gap.latest,
                "requiresApproval": gap.requires_approval,
            }
            for gap in report.gaps
        ],
    }


def export_json(report: ReconcileReport, path: str, extension: Optional[str] = None) -> None:
    """Exports the report to a JSON file.

    Args:
        report: Reconciliation report.
        path: File path to export the JSON.
    """
    try:
        with open(path, "w", encoding="utf-8") as file:
            json.dump(report_as_dict(report, extension), file, ensure_ascii=False, indent=4)
        logging.info("JSON file has been successfully exported at: %s", path)
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)


def export_csv(report: ReconcileReport, path: str, extension: Optional[str] = None) -> None:
    """Exports the gap entries to a CSV file.

    Args:
        report: Reconciliation report.
        path: File path to export the CSV.
    """
    headers = [
        "Crate Name",
        "Required Version",
        "Artifact",
        "Category",
        "Reason",
        "Requirement",
        "Latest In Mirror",
        "Requires Approval",
    ]
    rows = [headers]

    def _nv(v):
        return "" if v is None else v

    for gap in report.gaps:
        rows.append([
            gap.name,
            gap.required_version,
            gap.artifact(extension),
            gap.category.value,
            gap.reason,
            _nv(gap.requirement),
            _nv(gap.latest),
            gap.requires_approval,
        ])
    try:
        with open(path, "w", newline="", encoding="utf-8") as file:
            export = csv.writer(file)
            export.writerows(rows)
        logging.info("CSV file has been successfully exported at: %s", path)
    except (OSError, csv.Error) as e:
        logging.error("CSV file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
