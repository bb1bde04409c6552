"""Mirror merger: append accepted artifacts to the inventory listing.

The merge is an append-only set union rendered in plain lexicographic order.
Writing back is a read-modify-write of a shared file, so it runs under an
exclusive lock on a sidecar ``<inventory>.lock`` file (where ``fcntl`` is
available), re-reads the inventory under that lock, and replaces the file
atomically, keeping its permission bits. The sidecar is removed on release.
"""
from __future__ import annotations

import logging
import os
import shutil
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence

from common.logging_utils import Timer, extra_context, is_debug_enabled
from analysis.gap_classifier import GapEntry
from .inventory import InventoryFileError, read_inventory

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX platforms write without a lock
    fcntl = None  # type: ignore

logger = logging.getLogger(__name__)


def accepted_artifacts(
    gaps: Sequence[GapEntry],
    approved: Iterable[str] = (),
    approve_all: bool = False,
    extension: Optional[str] = None,
) -> List[str]:
    """Select the artifact filenames to merge.

    Safe (minor/patch) gaps are always accepted. Gaps that require approval
    are accepted only when their crate name is approved or ``approve_all``.
    """
    approved_names = set(approved)
    accepted = []
    for gap in gaps:
        if gap.requires_approval and not (approve_all or gap.name in approved_names):
            continue
        accepted.append(gap.artifact(extension))
    return sorted(set(accepted))


def merge_inventory(existing: Iterable[str], accepted: Iterable[str]) -> List[str]:
    """Union of existing entries and accepted filenames, sorted.

    Existing entries pass through as opaque strings, including ones that do
    not parse as artifacts. Nothing is ever removed.
    """
    merged = {e for e in existing if e}
    merged.update(a.strip() for a in accepted if a and a.strip())
    return sorted(merged)


def render_inventory(entries: Iterable[str]) -> str:
    """Render entries one per line with a trailing newline."""
    return "".join(f"{entry}\n" for entry in entries)


@contextmanager
def _locked(path: str) -> Iterator[None]:
    lock_path = f"{path}.lock"
    if fcntl is None:
        yield
        return
    while True:
        lock_fd = open(lock_path, "a", encoding="utf-8")  # pylint: disable=consider-using-with
        fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX)
        try:
            on_disk = os.stat(lock_path)
        except FileNotFoundError:
            on_disk = None
        if on_disk is not None and os.path.samestat(on_disk, os.fstat(lock_fd.fileno())):
            break
        # the previous holder removed the file while we waited; lock a fresh one
        lock_fd.close()
    try:
        yield
    finally:
        try:
            # removed while still held, so a waiter sees the inode change and retries
            os.unlink(lock_path)
        finally:
            fcntl.flock(lock_fd.fileno(), fcntl.LOCK_UN)
            lock_fd.close()


def _atomic_write_text(path: str, text: str) -> None:
    tmp = f"{path}.tmp.crategap"
    try:
        with open(tmp, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def write_merged_inventory(path: str, accepted: Iterable[str], extension: Optional[str] = None) -> List[str]:
    """Merge accepted filenames into the inventory file in place.

    Args:
        path: Inventory file path.
        accepted: Artifact filenames to add.
        extension: Artifact extension used when re-reading the file.

    Returns:
        The filenames that were not present before the merge, sorted.

    Raises:
        InventoryFileError: If the file cannot be read, locked, or written.
    """
    accepted = list(accepted)
    try:
        # a symlinked listing is updated at its target and stays a symlink
        target = os.path.realpath(path)
        with Timer() as t, _locked(target):
            current = read_inventory(target, extension)
            merged = merge_inventory(current.entries, accepted)
            _atomic_write_text(target, render_inventory(merged))
    except InventoryFileError:
        raise
    except OSError as e:
        raise InventoryFileError(f"Failed to write inventory file {path}: {e}") from e

    added = sorted(set(merged) - current.entries)
    if is_debug_enabled(logger):
        logger.debug(
            "Inventory merged",
            extra=extra_context(
                event="inventory_write",
                component="merger",
                target=path,
                count=len(merged),
                added=len(added),
                duration_ms=t.duration_ms(),
            ),
        )
    return added
