"""
RootFS — access an unpacked image tree without chrooting into it.

Responsibilities:
  - Map image paths (absolute, as seen inside the image) onto the host.
  - Resolve symlinks against the image root, never the host root.
  - Expand Unix globs inside the image.
  - Dissect the image into kept and removable entries.

All paths handed out by this module are image paths.
"""
import errno
import glob
import logging
import os
import posixpath
from collections import deque
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# Pseudo filesystems mounted at runtime; their content is never image data
PSEUDO_DIRS: Tuple[str, ...] = ("/proc", "/sys", "/dev", "/run")
TMP_DIRS: Tuple[str, ...] = ("/tmp", "/var/tmp")

# Mount points that must survive even when emptied
PRESERVED_DIRS: Tuple[str, ...] = PSEUDO_DIRS + TMP_DIRS

DEFAULT_LOCKFILE = "/.tinted.lock"

# Same limit as the kernel's path walk (ELOOP)
MAX_SYMLINKS = 40


class SymlinkLoopError(OSError):
    """Raised when resolving a path meets too many symlinks."""


def normalize(path: str) -> str:
    """Lexically normalize *path* into an absolute image path."""
    return posixpath.normpath("/" + path.lstrip("/"))


def is_under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


class RootFS:
    """
    An image root directory on the host.

    Parameters
    ----------
    root : Path
        Host directory holding the unpacked image.
    keep_pds : bool
        Leave pseudo-filesystem directories (/proc, /sys, /dev, /run) alone.
    keep_tmp : bool
        Leave /tmp and /var/tmp content alone.
    keep_tree : list of str
        Image subtrees that are never dissected.
    lockfile : str
        Image path of the "already tinted" marker.
    """

    def __init__(
        self,
        root: Path,
        keep_pds: bool = True,
        keep_tmp: bool = False,
        keep_tree: Optional[Iterable[str]] = None,
        lockfile: str = DEFAULT_LOCKFILE,
    ):
        self.root = Path(root).resolve()
        self.keep_pds = keep_pds
        self.keep_tmp = keep_tmp
        self.keep_tree = [normalize(p) for p in (keep_tree or [])]
        self.lockfile = normalize(lockfile)

    def __repr__(self) -> str:
        return f"RootFS({str(self.root)!r})"

    # -- path mapping ----------------------------------------------------------

    def host(self, image_path: str) -> Path:
        rel = normalize(image_path).lstrip("/")
        return self.root / rel if rel else self.root

    def image(self, host_path: Path) -> str:
        rel = Path(host_path).relative_to(self.root)
        return normalize(rel.as_posix())

    def lexists(self, image_path: str) -> bool:
        return os.path.lexists(self.host(image_path))

    def is_symlink(self, image_path: str) -> bool:
        return self.host(image_path).is_symlink()

    def is_dir(self, image_path: str) -> bool:
        """Directory test that follows symlinks inside the image."""
        try:
            real = self.resolve(image_path)
        except SymlinkLoopError:
            return False
        h = self.host(real)
        return h.is_dir() and not h.is_symlink()

    def exists(self, image_path: str) -> bool:
        """Existence test that follows symlinks inside the image."""
        try:
            return self.lexists(self.resolve(image_path))
        except SymlinkLoopError:
            return False

    def readlink(self, image_path: str) -> str:
        """Target of the symlink at *image_path*, as an absolute image path."""
        image_path = normalize(image_path)
        target = os.readlink(self.host(image_path))
        if not target.startswith("/"):
            target = posixpath.join(posixpath.dirname(image_path), target)
        return normalize(target)

    # -- symlink resolution ----------------------------------------------------

    def chain(self, image_path: str) -> List[str]:
        """
        Return every path involved in resolving *image_path*.

        That is each symlink met on the way (leaf or ancestor directory),
        followed by the final real path.  A path without symlinks yields
        a single-element list.  Missing components resolve lexically.
        """
        image_path = normalize(image_path)
        pending = deque(p for p in image_path.split("/") if p)
        resolved = "/"
        links: List[str] = []
        hops = 0

        while pending:
            part = pending.popleft()
            if part in ("", "."):
                continue
            if part == "..":
                resolved = posixpath.dirname(resolved)
                continue

            candidate = posixpath.join(resolved, part)
            host = self.host(candidate)
            if host.is_symlink():
                hops += 1
                if hops > MAX_SYMLINKS:
                    raise SymlinkLoopError(
                        errno.ELOOP, "Too many levels of symbolic links", image_path
                    )
                if candidate not in links:
                    links.append(candidate)
                target = os.readlink(host)
                if target.startswith("/"):
                    resolved = "/"
                pending.extendleft(reversed([p for p in target.split("/") if p]))
            else:
                resolved = candidate

        return links + [resolved]

    def resolve(self, image_path: str) -> str:
        return self.chain(image_path)[-1]

    def canonical(self, image_path: str) -> str:
        """
        Spell *image_path* through its real parent directory.

        The leaf itself is not followed, so a symlink stays a symlink:
        ``/bin/sh`` with ``/bin -> usr/bin`` becomes ``/usr/bin/sh``.
        """
        image_path = normalize(image_path)
        if image_path == "/":
            return image_path
        parent = self.resolve(posixpath.dirname(image_path))
        return posixpath.join(parent, posixpath.basename(image_path))

    # -- traversal -------------------------------------------------------------

    def _skipped(self, image_path: str, skip: Iterable[str]) -> bool:
        return any(is_under(image_path, s) for s in skip)

    def skip_prefixes(self) -> List[str]:
        """Image subtrees excluded from dissection."""
        skip = list(self.keep_tree)
        if self.keep_pds:
            skip.extend(PSEUDO_DIRS)
        if self.keep_tmp:
            skip.extend(TMP_DIRS)
        return skip

    def walk(self, image_dir: str = "/", skip: Iterable[str] = ()) -> Iterator[str]:
        """Yield every non-directory entry under *image_dir*, symlinks unfollowed."""
        skip = list(skip)
        image_dir = normalize(image_dir)
        try:
            entries = sorted(os.scandir(self.host(image_dir)), key=lambda e: e.name)
        except FileNotFoundError:
            return
        except NotADirectoryError:
            yield image_dir
            return

        for entry in entries:
            path = posixpath.join(image_dir, entry.name)
            if self._skipped(path, skip):
                continue
            if entry.is_dir(follow_symlinks=False):
                yield from self.walk(path, skip)
            else:
                yield path

    # -- globbing --------------------------------------------------------------

    def match(self, pattern: str) -> Tuple[Set[str], Set[str]]:
        """
        Expand a Unix glob inside the image.

        ``**`` matches recursively and hidden entries are included.
        Matched directories expand to every entry below them.

        Returns (files, directories).
        """
        if not pattern.startswith("/"):
            logger.warning("Ignoring relative glob %r: image paths are absolute", pattern)
            return set(), set()

        files: Set[str] = set()
        dirs: Set[str] = set()
        rel = pattern.lstrip("/")
        if not rel:
            return files, dirs

        for hit in glob.glob(rel, root_dir=self.root, recursive=True, include_hidden=True):
            path = normalize(hit)
            host = self.host(path)
            if host.is_dir() and not host.is_symlink():
                dirs.add(path)
                for sub in self.walk(path):
                    files.add(sub)
                for dirpath, dirnames, _ in os.walk(host):
                    for d in dirnames:
                        dirs.add(self.image(Path(dirpath) / d))
            else:
                files.add(path)

        return files, dirs

    def glob(self, pattern: str) -> Set[str]:
        return self.match(pattern)[0]

    # -- dissection ------------------------------------------------------------

    def dissect(self, keep: Set[str]) -> List[str]:
        """
        Return every entry of the image that is not in *keep*, sorted.

        Directories are never returned; they are handled by ``plan_dirs``.
        """
        out = [
            p
            for p in self.walk("/", self.skip_prefixes())
            if p != self.lockfile and p not in keep
        ]
        logger.debug("Dissected %s: %d removable entries", self.root, len(out))
        return out

    def plan_dirs(
        self,
        removed: Set[str],
        keep_dirs: Optional[Set[str]] = None,
        all_empty: bool = False,
    ) -> List[str]:
        """
        Directories left empty once *removed* is gone, children first.

        A directory qualifies when it would hold nothing and either it lost
        content to *removed* or *all_empty* is set (pre-existing empty
        directories go too).  The image root, mount points, skipped
        subtrees and *keep_dirs* are never listed.
        """
        keep_dirs = keep_dirs or set()
        skip = self.skip_prefixes()
        planned: List[str] = []

        # Ancestors of removed entries; works before and after deletion
        touched: Set[str] = set()
        for p in removed:
            d = posixpath.dirname(p)
            while d != "/" and d not in touched:
                touched.add(d)
                d = posixpath.dirname(d)

        def visit(image_dir: str) -> bool:
            empty = True
            with os.scandir(self.host(image_dir)) as entries:
                for entry in entries:
                    path = posixpath.join(image_dir, entry.name)
                    if self._skipped(path, skip):
                        empty = False
                    elif entry.is_dir(follow_symlinks=False):
                        if (
                            visit(path)
                            and (all_empty or path in touched)
                            and path not in keep_dirs
                            and path not in PRESERVED_DIRS
                        ):
                            planned.append(path)
                        else:
                            empty = False
                    elif path not in removed:
                        empty = False
            return empty

        visit("/")
        return planned

    def size_of(self, image_path: str) -> int:
        try:
            return os.lstat(self.host(image_path)).st_size
        except OSError:
            return 0
