"""
Verdict — structured ACCEPT / WARN / REJECT decisions for profile documents.

``gate_profile`` is the schema gate: it runs on the raw decoded YAML so
that every problem is reported at once instead of stopping at the first.
Any reject reason makes the document unusable; warnings are advisory.
"""
from enum import Enum, unique
from typing import Any, List, Optional, Tuple

from tint.core.rootfs import RootFS
from tint.policy.profile import FILTER_VOCABULARY

TOP_LEVEL_KEYS = ("targets", "packages", "config")
CONFIG_KEYS = ("filters", "prune", "keep")


# ── Verdict enum ──────────────────────────────────────────────────────────────

@unique
class Verdict(str, Enum):
    ACCEPT = "ACCEPT"
    WARN = "WARN"
    REJECT = "REJECT"


# ── Profile-level reject reasons ─────────────────────────────────────────────

@unique
class ProfileRejectReason(str, Enum):
    NOT_YAML = "NOT_YAML"
    NOT_A_MAPPING = "NOT_A_MAPPING"
    TARGETS_MISSING = "TARGETS_MISSING"
    TARGETS_EMPTY = "TARGETS_EMPTY"
    TARGET_NOT_ABSOLUTE = "TARGET_NOT_ABSOLUTE"
    BAD_FIELD_TYPE = "BAD_FIELD_TYPE"
    UNKNOWN_FILTER = "UNKNOWN_FILTER"
    BAD_GLOB = "BAD_GLOB"


@unique
class ProfileWarnReason(str, Enum):
    UNKNOWN_KEY = "UNKNOWN_KEY"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    KEEP_PRUNE_OVERLAP = "KEEP_PRUNE_OVERLAP"
    RELATIVE_GLOB = "RELATIVE_GLOB"
    TARGET_NOT_FOUND = "TARGET_NOT_FOUND"


# ── Glob syntax ──────────────────────────────────────────────────────────────

def is_valid_glob(pattern: str) -> bool:
    """
    Check Unix glob syntax: non-empty, no NUL, every ``[`` class closed.

    A ``]`` directly after ``[`` or ``[!`` is a literal member of the class.
    """
    if not pattern or "\x00" in pattern:
        return False

    i = 0
    n = len(pattern)
    while i < n:
        if pattern[i] == "[":
            j = i + 1
            if j < n and pattern[j] == "!":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 1
            if j >= n:
                return False
            i = j
        i += 1
    return True


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _duplicates(values: List[str]) -> bool:
    return len(set(values)) != len(values)


# ── Profile gate ─────────────────────────────────────────────────────────────

def gate_profile(
    data: Any,
    rootfs: Optional[RootFS] = None,
) -> Tuple[Verdict, List[str]]:
    """
    Evaluate a decoded profile document.

    When *rootfs* is given, targets are additionally checked for existence
    inside the image.

    Returns (Verdict, list_of_reason_strings).
    """
    if not isinstance(data, dict):
        return Verdict.REJECT, [ProfileRejectReason.NOT_A_MAPPING.value]

    rejects: List[str] = []
    warns: List[str] = []

    def reject(reason: ProfileRejectReason) -> None:
        if reason.value not in rejects:
            rejects.append(reason.value)

    def warn(reason: ProfileWarnReason) -> None:
        if reason.value not in warns:
            warns.append(reason.value)

    if any(k not in TOP_LEVEL_KEYS for k in data):
        warn(ProfileWarnReason.UNKNOWN_KEY)

    # ── targets (required) ───────────────────────────────────────────
    targets = data.get("targets")
    if "targets" not in data or targets is None:
        reject(ProfileRejectReason.TARGETS_MISSING)
    elif not _is_str_list(targets):
        reject(ProfileRejectReason.BAD_FIELD_TYPE)
    elif not targets:
        reject(ProfileRejectReason.TARGETS_EMPTY)
    else:
        if any(not t.startswith("/") for t in targets):
            reject(ProfileRejectReason.TARGET_NOT_ABSOLUTE)
        if _duplicates(targets):
            warn(ProfileWarnReason.DUPLICATE_ENTRY)
        if rootfs is not None and any(
            t.startswith("/") and not rootfs.lexists(t) for t in targets
        ):
            warn(ProfileWarnReason.TARGET_NOT_FOUND)

    # ── packages (optional) ──────────────────────────────────────────
    packages = data.get("packages")
    if packages is not None:
        if not _is_str_list(packages):
            reject(ProfileRejectReason.BAD_FIELD_TYPE)
        elif _duplicates(packages):
            warn(ProfileWarnReason.DUPLICATE_ENTRY)

    # ── config (optional) ────────────────────────────────────────────
    config = data.get("config")
    if config is None:
        config = {}
    if not isinstance(config, dict):
        reject(ProfileRejectReason.BAD_FIELD_TYPE)
        config = {}

    if any(k not in CONFIG_KEYS for k in config):
        warn(ProfileWarnReason.UNKNOWN_KEY)

    filters = config.get("filters")
    if filters is not None:
        if not _is_str_list(filters):
            reject(ProfileRejectReason.BAD_FIELD_TYPE)
        else:
            if any(f not in FILTER_VOCABULARY for f in filters):
                reject(ProfileRejectReason.UNKNOWN_FILTER)
            if _duplicates(filters):
                warn(ProfileWarnReason.DUPLICATE_ENTRY)

    globs = {}
    for key in ("prune", "keep"):
        patterns = config.get(key)
        if patterns is None:
            globs[key] = []
            continue
        if not _is_str_list(patterns):
            reject(ProfileRejectReason.BAD_FIELD_TYPE)
            globs[key] = []
            continue
        globs[key] = patterns
        for pattern in patterns:
            if not is_valid_glob(pattern):
                reject(ProfileRejectReason.BAD_GLOB)
            elif not pattern.startswith("/"):
                warn(ProfileWarnReason.RELATIVE_GLOB)
        if _duplicates(patterns):
            warn(ProfileWarnReason.DUPLICATE_ENTRY)

    if set(globs["prune"]) & set(globs["keep"]):
        warn(ProfileWarnReason.KEEP_PRUNE_OVERLAP)

    if rejects:
        return Verdict.REJECT, rejects
    if warns:
        return Verdict.WARN, warns
    return Verdict.ACCEPT, []
