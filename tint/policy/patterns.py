"""
Canonical path-pattern lists — single source of truth for data categories.

Both the filters and the dry-run listing import from here so the notion of
"documentation" or "junk" can never diverge between what is removed and
what is flagged on screen.
"""
from __future__ import annotations

import re

PATTERN_LIST_VERSION = "1.0"

# ── Localisation (l10n) ───────────────────────────────────────────────

L10N_DIR_PREFIXES: tuple[str, ...] = (
    "/usr/share/locale/",
    "/usr/share/locale-langpack/",
    "/usr/local/share/locale/",
)

L10N_F_EXT: tuple[str, ...] = (".mo", ".qm")

# ── Internationalisation (i18n) ───────────────────────────────────────

I18N_DIR_PREFIXES: tuple[str, ...] = (
    "/usr/share/i18n/",
    "/usr/lib/locale/",
)

# gconv charset modules live under any lib dir, e.g. /usr/lib/x86_64-linux-gnu/gconv/
I18N_DIR_PARTS: tuple[str, ...] = ("/gconv/",)

# ── Documentation (doc) ───────────────────────────────────────────────

DOC_DIR_PREFIXES: tuple[str, ...] = (
    "/usr/share/doc/",
    "/usr/share/doc-base/",
    "/usr/share/info/",
    "/usr/share/gtk-doc/",
    "/usr/share/help/",
    "/usr/local/share/doc/",
)

DOC_F_EXT: tuple[str, ...] = (
    ".md",
    ".rst",
    ".txt",
    ".html",
    ".htm",
    ".pdf",
    ".doc",
    ".docx",
    ".odt",
    ".rtf",
    ".tex",
    ".info",
    ".info.gz",
)

# Extensions of packed documentation, e.g. changelog.Debian.gz
DOC_FP_EXT: tuple[str, ...] = (
    "changelog.gz",
    "changelog.Debian.gz",
    "NEWS.gz",
    "NEWS.Debian.gz",
    "README.gz",
    "README.Debian.gz",
)

DOC_STUB_FILES: frozenset[str] = frozenset({
    "README",
    "LICENSE",
    "LICENCE",
    "COPYING",
    "COPYRIGHT",
    "AUTHORS",
    "CONTRIBUTORS",
    "CREDITS",
    "NEWS",
    "CHANGES",
    "ChangeLog",
    "CHANGELOG",
    "HISTORY",
    "THANKS",
    "TODO",
    "INSTALL",
    "NOTICE",
    "copyright",
    "changelog",
})

# ── Manpages (man) ────────────────────────────────────────────────────

MAN_DIR_PREFIXES: tuple[str, ...] = (
    "/usr/share/man/",
    "/usr/man/",
    "/usr/local/share/man/",
    "/usr/local/man/",
)

# ── Logging (log) ─────────────────────────────────────────────────────

LOG_DIR_PREFIXES: tuple[str, ...] = ("/var/log/",)

LOG_F_RE = re.compile(r"\.log(\.\d+)?(\.(gz|xz|bz2))?$")

# ── Junk (junk) ───────────────────────────────────────────────────────

ARC_F_EXT: tuple[str, ...] = (
    ".tar",
    ".tar.gz",
    ".tgz",
    ".tar.bz2",
    ".tbz2",
    ".tar.xz",
    ".txz",
    ".tar.zst",
    ".zip",
    ".7z",
    ".rar",
    ".cpio",
    ".deb",
    ".rpm",
)

# Pictures, not disk images
IMG_F_EXT: tuple[str, ...] = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".bmp",
    ".ico",
    ".xpm",
    ".xbm",
    ".svg",
    ".svgz",
    ".tif",
    ".tiff",
    ".webp",
)

H_SRC_F_EXT: tuple[str, ...] = (
    ".h",
    ".hh",
    ".hpp",
    ".hxx",
    ".c",
    ".cc",
    ".cpp",
    ".cxx",
    ".a",
    ".la",
    ".pc",
)

JUNK_DIR_PREFIXES: tuple[str, ...] = (
    "/usr/share/bug/",
    "/usr/share/lintian/",
    "/usr/share/linda/",
    "/usr/include/",
    "/usr/local/include/",
)


def has_prefix(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path.startswith(p) for p in prefixes)


def has_suffix(path: str, suffixes: tuple[str, ...]) -> bool:
    return any(path.endswith(s) for s in suffixes)


def is_shared_object(fname: str) -> bool:
    """``libfoo.so`` and ``libfoo.so.1.2`` are shared objects."""
    return fname.endswith(".so") or ".so." in fname
