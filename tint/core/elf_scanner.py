"""
ELF scanner — dynamic link closure of a target inside an image.

Responsibilities:
  - Read PT_INTERP, DT_NEEDED, DT_RPATH and DT_RUNPATH with pyelftools.
  - Resolve each needed library the way ld.so would, but inside the image.
  - Follow ``#!`` interpreters of scripts.
  - Return image paths including every symlink on the way.

The scanner never executes anything from the image (no ldd).
"""
import logging
import posixpath
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSegment
from elftools.elf.elffile import ELFFile
from elftools.elf.segments import InterpSegment

from tint.core.rootfs import RootFS, SymlinkLoopError, normalize

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"

MULTIARCH_TRIPLETS: Tuple[str, ...] = (
    "x86_64-linux-gnu",
    "i386-linux-gnu",
    "aarch64-linux-gnu",
    "arm-linux-gnueabihf",
    "powerpc64le-linux-gnu",
    "s390x-linux-gnu",
    "riscv64-linux-gnu",
)

DEFAULT_LIB_DIRS: Tuple[str, ...] = ("/lib64", "/usr/lib64", "/lib", "/usr/lib")

# Searched when a script is started through /usr/bin/env
ENV_PATH: Tuple[str, ...] = (
    "/usr/local/sbin",
    "/usr/local/bin",
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
)


@dataclass(frozen=True)
class ElfDeps:
    """Dynamic-linking facts of a single ELF object."""

    path: str
    elf_class: int            # 32 or 64
    machine: str              # e.g. "EM_X86_64"
    interp: Optional[str] = None
    needed: List[str] = field(default_factory=list)
    rpath: List[str] = field(default_factory=list)
    runpath: List[str] = field(default_factory=list)


def _split_paths(value: str) -> List[str]:
    return [p for p in value.split(":") if p]


def read_elf_deps(rootfs: RootFS, image_path: str) -> ElfDeps:
    """
    Read dynamic-linking facts of the ELF object at *image_path*.

    Raises
    ------
    ELFError
        If the file is not a valid ELF object.
    """
    with open(rootfs.host(image_path), "rb") as f:
        elffile = ELFFile(f)

        interp = None
        needed: List[str] = []
        rpath: List[str] = []
        runpath: List[str] = []

        for segment in elffile.iter_segments():
            if isinstance(segment, InterpSegment):
                interp = segment.get_interp_name()
            elif isinstance(segment, DynamicSegment):
                for tag in segment.iter_tags():
                    d_tag = tag.entry.d_tag
                    if d_tag == "DT_NEEDED":
                        needed.append(tag.needed)
                    elif d_tag == "DT_RPATH":
                        rpath.extend(_split_paths(tag.rpath))
                    elif d_tag == "DT_RUNPATH":
                        runpath.extend(_split_paths(tag.runpath))

        return ElfDeps(
            path=image_path,
            elf_class=elffile.elfclass,
            machine=elffile.header.e_machine,
            interp=interp,
            needed=needed,
            rpath=rpath,
            runpath=runpath,
        )


def _elf_identity(rootfs: RootFS, image_path: str) -> Optional[Tuple[int, str]]:
    """(class, machine) of an ELF file, or None when it is not one."""
    try:
        with open(rootfs.host(image_path), "rb") as f:
            elffile = ELFFile(f)
            return elffile.elfclass, elffile.header.e_machine
    except (OSError, ELFError):
        return None


def read_ld_so_conf(rootfs: RootFS, conf: str = "/etc/ld.so.conf") -> List[str]:
    """Library directories listed in the image's ld.so.conf, includes expanded."""
    dirs: List[str] = []
    seen: Set[str] = set()

    def parse(path: str) -> None:
        if path in seen:
            return
        seen.add(path)
        try:
            text = rootfs.host(rootfs.resolve(path)).read_text(encoding="utf-8", errors="replace")
        except (OSError, SymlinkLoopError):
            return

        for line in text.splitlines():
            line = line.split("#", 1)[0].strip()
            if not line:
                continue
            if line.startswith("include"):
                for pattern in line.split()[1:]:
                    if not pattern.startswith("/"):
                        pattern = posixpath.join(posixpath.dirname(path), pattern)
                    for hit in sorted(rootfs.glob(pattern)):
                        parse(hit)
            else:
                for entry in line.replace(",", " ").split():
                    if entry.startswith("/") and entry not in dirs:
                        dirs.append(normalize(entry))

    parse(conf)
    return dirs


class ElfScanner:
    """
    Compute the set of image paths a target needs at run time.

    Usage::

        paths = ElfScanner(rootfs).scan("/usr/bin/bash")

    Library directories from ld.so.conf are read once per scanner.
    """

    def __init__(self, rootfs: RootFS):
        self.rootfs = rootfs
        self._conf_dirs: Optional[List[str]] = None

    @property
    def conf_dirs(self) -> List[str]:
        if self._conf_dirs is None:
            self._conf_dirs = read_ld_so_conf(self.rootfs)
        return self._conf_dirs

    def default_dirs(self) -> List[str]:
        dirs: List[str] = []
        for triplet in MULTIARCH_TRIPLETS:
            dirs.append(f"/lib/{triplet}")
            dirs.append(f"/usr/lib/{triplet}")
        dirs.extend(DEFAULT_LIB_DIRS)
        return dirs

    # -- library lookup ---------------------------------------------------------

    @staticmethod
    def _expand_origin(dirs: List[str], origin: str) -> List[str]:
        out = []
        for d in dirs:
            d = d.replace("${ORIGIN}", origin).replace("$ORIGIN", origin)
            if d.startswith("/"):
                out.append(normalize(d))
        return out

    def search_dirs(self, deps: ElfDeps) -> List[str]:
        """ld.so search order for libraries needed by *deps*."""
        origin = posixpath.dirname(deps.path)
        dirs: List[str] = []
        if not deps.runpath:
            dirs.extend(self._expand_origin(deps.rpath, origin))
        dirs.extend(self._expand_origin(deps.runpath, origin))
        dirs.extend(self.conf_dirs)
        dirs.extend(self.default_dirs())

        ordered: List[str] = []
        for d in dirs:
            if d not in ordered:
                ordered.append(d)
        return ordered

    def find_library(self, name: str, deps: ElfDeps) -> Optional[str]:
        """Locate *name* for the loading object *deps*, matching class and machine."""
        if "/" in name:
            candidates = [normalize(name)]
        else:
            candidates = [posixpath.join(d, name) for d in self.search_dirs(deps)]

        for candidate in candidates:
            if not self.rootfs.exists(candidate):
                continue
            try:
                real = self.rootfs.resolve(candidate)
            except SymlinkLoopError:
                continue
            if _elf_identity(self.rootfs, real) == (deps.elf_class, deps.machine):
                return candidate
        return None

    # -- scripts ----------------------------------------------------------------

    def _shebang(self, image_path: str) -> List[str]:
        """Interpreters of a ``#!`` script (env and its program), or []."""
        try:
            with open(self.rootfs.host(image_path), "rb") as f:
                head = f.readline(512)
        except OSError:
            return []
        if not head.startswith(b"#!"):
            return []

        words = head[2:].decode("utf-8", errors="replace").split()
        if not words:
            return []
        interp = words[0]
        if posixpath.basename(interp) != "env" or len(words) < 2:
            return [interp]

        program = next((w for w in words[1:] if not w.startswith("-")), None)
        if program is None:
            return [interp]
        if program.startswith("/"):
            return [interp, program]
        for d in ENV_PATH:
            candidate = posixpath.join(d, program)
            if self.rootfs.exists(candidate):
                return [interp, candidate]
        logger.warning("Interpreter %r of %s not found in image", program, image_path)
        return [interp]

    # -- public API -------------------------------------------------------------

    def _with_chain(self, image_path: str, out: Set[str]) -> Optional[str]:
        """Add *image_path* and its symlink chain to *out*; return the real path."""
        try:
            chain = self.rootfs.chain(image_path)
        except SymlinkLoopError as e:
            logger.warning("Skipping %s: %s", image_path, e)
            return None
        out.update(chain)
        return chain[-1]

    def scan(self, target: str) -> Set[str]:
        """Return *target* plus every file it needs to be started."""
        target = normalize(target)
        paths: Set[str] = set()

        queue = deque([target])
        visited: Set[str] = set()

        while queue:
            current = queue.popleft()
            if not self.rootfs.exists(current):
                logger.warning("%s does not exist in %s", current, self.rootfs.root)
                continue

            real = self._with_chain(current, paths)
            if real is None or real in visited:
                continue
            visited.add(real)
            if self.rootfs.is_dir(real):
                continue

            interpreters = self._shebang(real)
            if interpreters:
                logger.debug("%s is a script run by %s", current, " ".join(interpreters))
                queue.extend(normalize(i) for i in interpreters)
                continue

            try:
                with open(self.rootfs.host(real), "rb") as f:
                    if f.read(4) != ELF_MAGIC:
                        continue
                deps = read_elf_deps(self.rootfs, real)
            except (ELFError, OSError) as e:
                logger.warning("Cannot parse ELF %s: %s", real, e)
                continue

            if deps.interp:
                queue.append(normalize(deps.interp))

            for name in deps.needed:
                lib = self.find_library(name, deps)
                if lib is None:
                    logger.warning("Library %s needed by %s not found", name, current)
                    continue
                queue.append(lib)

        return paths
