"""
Dpkg database — read package ownership and dependencies inside an image.

The database is read straight from ``/var/lib/dpkg`` of the image rather
than by running dpkg, so the host needs no Debian tooling and nothing from
the image is executed.
"""
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from tint.core.rootfs import RootFS, SymlinkLoopError, normalize
from tint.policy.profile import Autodeps

logger = logging.getLogger(__name__)

DPKG_STATUS = "/var/lib/dpkg/status"
DPKG_INFO = "/var/lib/dpkg/info"

DEPENDS_FIELDS: Tuple[str, ...] = ("Pre-Depends", "Depends")
RECOMMENDS_FIELDS: Tuple[str, ...] = ("Pre-Depends", "Depends", "Recommends")

# "libc6 (>= 2.34)", "python3:any", "foo [amd64]"
_QUALIFIER_RE = re.compile(r"\s*(\(.*?\)|\[.*?\]|<.*?>)\s*")


class PackageNotFoundError(LookupError):
    """Raised when a package is not installed in the image."""


@dataclass
class DebPackage:
    """One installed package stanza from the dpkg status file."""

    name: str
    architecture: str = ""
    version: str = ""
    relations: Dict[str, List[List[str]]] = field(default_factory=dict)
    provides: List[str] = field(default_factory=list)


def parse_relation(value: str) -> List[List[str]]:
    """
    Parse a dependency field into groups of alternatives.

    ``"libc6 (>= 2.34), foo | bar:any"`` → ``[["libc6"], ["foo", "bar"]]``
    """
    groups: List[List[str]] = []
    for group in value.split(","):
        alternatives = []
        for alt in group.split("|"):
            alt = _QUALIFIER_RE.sub(" ", alt).strip()
            alt = alt.split(":", 1)[0].strip()
            if alt:
                alternatives.append(alt)
        if alternatives:
            groups.append(alternatives)
    return groups


def parse_stanzas(text: str) -> Iterable[Dict[str, str]]:
    """Yield deb822 stanzas as {field: value}; continuation lines are joined."""
    stanza: Dict[str, str] = {}
    last: Optional[str] = None
    for line in text.splitlines():
        if not line.strip():
            if stanza:
                yield stanza
            stanza, last = {}, None
        elif line[0] in " \t":
            if last is not None:
                stanza[last] += "\n" + line.strip()
        elif ":" in line:
            key, _, value = line.partition(":")
            last = key.strip()
            stanza[last] = value.strip()
    if stanza:
        yield stanza


class DpkgDatabase:
    """
    Lazily loaded view of an image's dpkg database.

    Usage::

        db = DpkgDatabase(rootfs)
        owner = db.owner("/usr/bin/bash")
        files = db.contents(owner)
    """

    def __init__(self, rootfs: RootFS):
        self.rootfs = rootfs
        self._packages: Optional[Dict[str, DebPackage]] = None
        self._owners: Optional[Dict[str, str]] = None

    # -- status ----------------------------------------------------------------

    def packages(self) -> Dict[str, DebPackage]:
        """Installed packages by name."""
        if self._packages is not None:
            return self._packages

        self._packages = {}
        status = self.rootfs.host(DPKG_STATUS)
        if not status.is_file():
            logger.debug("No dpkg status in %s", self.rootfs.root)
            return self._packages

        for stanza in parse_stanzas(status.read_text(encoding="utf-8", errors="replace")):
            name = stanza.get("Package")
            if not name or not stanza.get("Status", "").endswith(" installed"):
                continue
            pkg = DebPackage(
                name=name,
                architecture=stanza.get("Architecture", ""),
                version=stanza.get("Version", ""),
                relations={
                    f: parse_relation(stanza[f]) for f in RECOMMENDS_FIELDS if f in stanza
                },
                provides=[g[0] for g in parse_relation(stanza.get("Provides", ""))],
            )
            self._packages[name] = pkg

        logger.debug("Loaded %d installed packages", len(self._packages))
        return self._packages

    def is_installed(self, name: str) -> bool:
        return name in self.packages()

    def _providers(self, virtual: str) -> List[str]:
        return sorted(p.name for p in self.packages().values() if virtual in p.provides)

    # -- file lists ------------------------------------------------------------

    def _list_path(self, name: str) -> Optional[str]:
        pkg = self.packages().get(name)
        candidates = [f"{DPKG_INFO}/{name}.list"]
        if pkg is not None and pkg.architecture:
            candidates.insert(0, f"{DPKG_INFO}/{name}:{pkg.architecture}.list")
        for c in candidates:
            if self.rootfs.host(c).is_file():
                return c
        return None

    def _read_list(self, list_path: str) -> List[str]:
        text = self.rootfs.host(list_path).read_text(encoding="utf-8", errors="replace")
        return [normalize(line) for line in text.splitlines() if line.strip() and line != "/."]

    def owners(self) -> Dict[str, str]:
        """Index of image path → owning package name."""
        if self._owners is not None:
            return self._owners

        self._owners = {}
        info = self.rootfs.host(DPKG_INFO)
        if not info.is_dir():
            return self._owners

        for list_file in sorted(info.glob("*.list")):
            name = package_of_list(list_file.name)
            for path in self._read_list(f"{DPKG_INFO}/{list_file.name}"):
                self._owners.setdefault(path, name)
        return self._owners

    def owner(self, image_path: str) -> Optional[str]:
        """
        Package owning *image_path*.

        Tries the path itself, every path on its symlink chain, and the
        merged-/usr alias (/bin/x ↔ /usr/bin/x).
        """
        image_path = normalize(image_path)
        try:
            candidates = [image_path] + self.rootfs.chain(image_path)
        except SymlinkLoopError:
            candidates = [image_path]

        for c in list(candidates):
            if c.startswith("/usr/"):
                candidates.append(c[len("/usr"):])
            else:
                candidates.append("/usr" + c)

        index = self.owners()
        for c in candidates:
            if c in index:
                return index[c]
        return None

    def contents(self, name: str) -> Set[str]:
        """
        Non-directory files shipped by package *name*.

        Raises
        ------
        PackageNotFoundError
            If *name* is not installed in the image.
        """
        if not self.is_installed(name):
            raise PackageNotFoundError(f"Package not installed: {name}")

        list_path = self._list_path(name)
        if list_path is None:
            logger.warning("Package %s has no file list", name)
            return set()

        files = set()
        for path in self._read_list(list_path):
            host = self.rootfs.host(path)
            if host.is_dir() and not host.is_symlink():
                continue
            if not self.rootfs.lexists(path):
                continue
            files.add(path)
        return files

    # -- dependencies ----------------------------------------------------------

    def _pick(self, alternatives: List[str]) -> Optional[str]:
        """First installed alternative; virtual names resolve through Provides."""
        for alt in alternatives:
            if self.is_installed(alt):
                return alt
            providers = self._providers(alt)
            if providers:
                return providers[0]
        return None

    def closure(self, name: str, fields: Tuple[str, ...] = DEPENDS_FIELDS) -> List[str]:
        """Package *name* and its transitive dependencies through *fields*."""
        if not self.is_installed(name):
            raise PackageNotFoundError(f"Package not installed: {name}")

        seen = [name]
        pending = [name]
        while pending:
            pkg = self.packages()[pending.pop()]
            for f in fields:
                for group in pkg.relations.get(f, []):
                    dep = self._pick(group)
                    if dep is None:
                        logger.debug("%s: unsatisfied %s %s", pkg.name, f, " | ".join(group))
                        continue
                    if dep not in seen:
                        seen.append(dep)
                        pending.append(dep)
        return seen


class PackageScanner:
    """
    Paths kept for a target because of the package that ships it.

    The *autodeps* mode decides how far dependencies are followed:
    ``free`` follows Pre-Depends, Depends and Recommends; ``clean`` only
    Pre-Depends and Depends; ``tight`` keeps the owning package alone;
    ``undef`` disables package tracing.
    """

    def __init__(self, db: DpkgDatabase, autodeps: Autodeps = Autodeps.FREE):
        self.db = db
        self.autodeps = autodeps

    def packages_for(self, target: str) -> List[str]:
        if self.autodeps == Autodeps.UNDEF:
            return []

        owner = self.db.owner(target)
        if owner is None:
            logger.debug("%s is not owned by any package", target)
            return []
        if not self.db.is_installed(owner):
            logger.debug("Owner %s of %s is not installed", owner, target)
            return []

        if self.autodeps == Autodeps.TIGHT:
            return [owner]
        if self.autodeps == Autodeps.CLEAN:
            return self.db.closure(owner, DEPENDS_FIELDS)
        return self.db.closure(owner, RECOMMENDS_FIELDS)

    def scan(self, target: str) -> Set[str]:
        paths: Set[str] = set()
        for name in self.packages_for(target):
            logger.debug("Keeping content of package %s for %s", name, target)
            paths.update(self.db.contents(name))
        return paths


def package_of_list(list_name: str) -> str:
    """``libc6:amd64.list`` → ``libc6``."""
    return posixpath.basename(list_name).rsplit(".list", 1)[0].split(":", 1)[0]
