"""
Cleanup — apply a removal plan to the image on disk.

Removal failures are logged and collected, never fatal: a partially
trimmed image is still more useful than an aborted run.
"""
import logging
import os
from typing import AbstractSet, List, Set, Tuple

from tint.core.rootfs import RootFS, SymlinkLoopError

logger = logging.getLogger(__name__)


def remove_files(rootfs: RootFS, paths: List[str]) -> Tuple[List[str], List[str]]:
    """
    Unlink every image path in *paths*.

    Returns (removed, failed).
    """
    removed: List[str] = []
    failed: List[str] = []
    for p in paths:
        try:
            os.unlink(rootfs.host(p))
            removed.append(p)
        except OSError as e:
            logger.error("Unable to remove file %s: %s", p, e)
            failed.append(p)
    return removed, failed


def broken_symlinks(rootfs: RootFS, removed: AbstractSet[str] = frozenset()) -> List[str]:
    """
    Symlinks that do not resolve once *removed* is gone.

    With an empty *removed* this is the state of the disk right now; a dry
    run passes its plan to see what the sweep would take.
    """
    broken: List[str] = []
    for p in rootfs.walk("/", rootfs.skip_prefixes()):
        if p in removed or not rootfs.is_symlink(p):
            continue
        try:
            chain = rootfs.chain(p)
        except SymlinkLoopError:
            broken.append(p)
            continue
        if not rootfs.lexists(chain[-1]) or any(c in removed for c in chain[1:]):
            broken.append(p)
    return broken


def remove_broken_symlinks(rootfs: RootFS) -> List[str]:
    """Sweep symlinks that no longer resolve inside the image."""
    swept: List[str] = []
    for p in broken_symlinks(rootfs):
        logger.debug("Removing broken symlink: %s", p)
        try:
            os.unlink(rootfs.host(p))
            swept.append(p)
        except OSError as e:
            logger.error("Unable to remove symlink %s: %s", p, e)
    return swept


def remove_dirs(rootfs: RootFS, dirs: List[str]) -> List[str]:
    """Remove directories in the given (children first) order."""
    removed: List[str] = []
    for d in dirs:
        try:
            os.rmdir(rootfs.host(d))
            removed.append(d)
        except OSError as e:
            logger.error("Unable to remove directory %s: %s", d, e)
    return removed


def write_lockfile(rootfs: RootFS) -> None:
    """Create the empty marker that says the image is already tinted."""
    rootfs.host(rootfs.lockfile).touch()


def apply_plan(
    rootfs: RootFS,
    paths: List[str],
    keep_dirs: Set[str],
    all_empty: bool,
) -> Tuple[List[str], List[str], List[str]]:
    """
    Remove *paths*, sweep broken symlinks and empty directories, lock.

    Returns (removed, removed_dirs, failed).
    """
    removed, failed = remove_files(rootfs, paths)
    removed.extend(remove_broken_symlinks(rootfs))

    dirs = rootfs.plan_dirs(set(removed), keep_dirs=keep_dirs, all_empty=all_empty)
    removed_dirs = remove_dirs(rootfs, dirs)

    write_lockfile(rootfs)
    return removed, removed_dirs, failed
