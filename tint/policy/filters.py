"""
Filters — drop data that survived automatic examination but is not needed.

Each filter answers ``matches(path)`` for one family of profile tags and
``apply`` removes matching paths from a keep set.  Filters only ever
remove; protected paths (the profile targets) are never dropped.

The ``dir`` tag is not a path filter: it widens the empty-directory sweep
(see ``RootFS.plan_dirs``).
"""
import logging
import posixpath
from typing import AbstractSet, FrozenSet, List, Set

from tint.policy import patterns as pt
from tint.policy.profile import Autodeps, Profile

logger = logging.getLogger(__name__)


class DataFilter:
    """Base class: keep every path that does not match."""

    name = "data"

    def active(self) -> bool:
        return True

    def matches(self, path: str) -> bool:
        raise NotImplementedError

    def apply(self, paths: AbstractSet[str], protected: AbstractSet[str] = frozenset()) -> Set[str]:
        if not self.active():
            return set(paths)

        kept = {p for p in paths if p in protected or not self.matches(p)}
        dropped = len(paths) - len(kept)
        if dropped:
            logger.debug("%s filter dropped %d paths", self.name, dropped)
        return kept


# ── Text data: l10n, i18n, doc, man, log ─────────────────────────────────────

def is_l10n(path: str) -> bool:
    return pt.has_prefix(path, pt.L10N_DIR_PREFIXES) or pt.has_suffix(path, pt.L10N_F_EXT)


def is_i18n(path: str) -> bool:
    return pt.has_prefix(path, pt.I18N_DIR_PREFIXES) or any(
        part in path for part in pt.I18N_DIR_PARTS
    )


def is_doc(path: str) -> bool:
    if pt.has_prefix(path, pt.DOC_DIR_PREFIXES):
        return True
    fname = posixpath.basename(path)
    if fname in pt.DOC_STUB_FILES:
        return True
    return pt.has_suffix(fname, pt.DOC_F_EXT) or pt.has_suffix(fname, pt.DOC_FP_EXT)


def is_man(path: str) -> bool:
    return pt.has_prefix(path, pt.MAN_DIR_PREFIXES)


def is_log(path: str) -> bool:
    return pt.has_prefix(path, pt.LOG_DIR_PREFIXES) or bool(pt.LOG_F_RE.search(path))


class TextDataFilter(DataFilter):
    """Localisation, internationalisation, documentation, manpages and logs."""

    name = "text"

    def __init__(self, profile: Profile):
        self.checks = []
        if profile.filter_l10n():
            self.checks.append(is_l10n)
        if profile.filter_i18n():
            self.checks.append(is_i18n)
        if profile.filter_doc():
            self.checks.append(is_doc)
        if profile.filter_man():
            self.checks.append(is_man)
        if profile.filter_log():
            self.checks.append(is_log)

    def active(self) -> bool:
        return bool(self.checks)

    def matches(self, path: str) -> bool:
        return any(check(path) for check in self.checks)


# ── Resources and junk ───────────────────────────────────────────────────────

def is_archive(path: str) -> bool:
    return pt.has_suffix(path, pt.ARC_F_EXT)


def is_image(path: str) -> bool:
    return pt.has_suffix(path.lower(), pt.IMG_F_EXT)


def is_dev_junk(path: str) -> bool:
    """Headers, sources, static archives and packaging leftovers."""
    return pt.has_prefix(path, pt.JUNK_DIR_PREFIXES) or pt.has_suffix(path, pt.H_SRC_F_EXT)


class ResourcesDataFilter(DataFilter):
    """
    Archives and pictures; headers and sources with ``junk``.

    ``tight`` autodeps removes archives and pictures even without ``junk``.
    """

    name = "resources"

    def __init__(self, profile: Profile, autodeps: Autodeps = Autodeps.FREE):
        junk = profile.filter_junk()
        self.remove_archives = junk or autodeps == Autodeps.TIGHT
        self.remove_images = junk or autodeps == Autodeps.TIGHT
        self.remove_dev = junk

        if self.remove_archives:
            logger.debug("Removing archives")
        if self.remove_images:
            logger.debug("Removing images, pictures, and vector graphics")

    def active(self) -> bool:
        return self.remove_archives or self.remove_images or self.remove_dev

    def matches(self, path: str) -> bool:
        if self.remove_archives and is_archive(path):
            return True
        if self.remove_images and is_image(path):
            return True
        return self.remove_dev and is_dev_junk(path)


def build_filters(profile: Profile, autodeps: Autodeps) -> List[DataFilter]:
    """Filters in application order."""
    return [TextDataFilter(profile), ResourcesDataFilter(profile, autodeps)]


def apply_filters(
    paths: AbstractSet[str],
    profile: Profile,
    autodeps: Autodeps = Autodeps.FREE,
    protected: FrozenSet[str] = frozenset(),
) -> Set[str]:
    kept = set(paths)
    for f in build_filters(profile, autodeps):
        kept = f.apply(kept, protected)
    return kept


# ── Listing hints ────────────────────────────────────────────────────────────

def is_potential_junk(fname: str) -> bool:
    """Whether a file name looks like something a filter would remove."""
    suffixes = pt.DOC_F_EXT + pt.ARC_F_EXT + pt.H_SRC_F_EXT + pt.DOC_FP_EXT
    if pt.has_suffix(fname, suffixes):
        return True
    if fname in pt.DOC_STUB_FILES:
        return True

    # Potentially a doc stub file that doesn't look like a known one
    return any(c.isalpha() for c in fname) and fname == fname.upper()

