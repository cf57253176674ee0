"""
Loader — read, gate and convert YAML profile documents.

Every document passes ``gate_profile`` before a ``Profile`` is built, so a
profile object in hand is always schema-valid.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml

from tint.core.rootfs import RootFS
from tint.policy.profile import FilterTag, Profile
from tint.policy.verdict import ProfileRejectReason, Verdict, gate_profile

logger = logging.getLogger(__name__)


class ProfileError(ValueError):
    """Raised when a profile document is rejected."""

    def __init__(self, source: str, reasons: List[str]):
        self.source = source
        self.reasons = reasons
        super().__init__(f"Invalid profile {source}: {', '.join(reasons)}")


def decode_profile(text: str | bytes) -> Tuple[Any, Optional[str]]:
    """
    Decode YAML *text*.  Bytes are decoded by the YAML reader, so bad
    UTF-8 is a YAML error like any other.

    Returns (document, None) or (None, NOT_YAML reason) when it does not parse.
    """
    try:
        return yaml.safe_load(text), None
    except yaml.YAMLError as e:
        logger.debug("YAML error: %s", e)
        return None, ProfileRejectReason.NOT_YAML.value


def check_profile(
    text: str | bytes,
    rootfs: RootFS | None = None,
) -> Tuple[Verdict, List[str]]:
    """Gate raw YAML text: parse failure is a REJECT like any schema error."""
    data, error = decode_profile(text)
    if error is not None:
        return Verdict.REJECT, [error]
    return gate_profile(data, rootfs)


def _unique(values) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(values or []))


def build_profile(data: dict, source: str = "<memory>") -> Profile:
    """Convert a gated document into a Profile; duplicates collapse in order."""
    config = data.get("config") or {}
    return Profile(
        targets=_unique(data["targets"]),
        packages=_unique(data.get("packages")),
        filters=frozenset(FilterTag(f) for f in config.get("filters") or []),
        prune=_unique(config.get("prune")),
        keep=_unique(config.get("keep")),
        source=source,
    )


def parse_profile(
    text: str | bytes,
    source: str = "<memory>",
    rootfs: RootFS | None = None,
) -> Profile:
    """
    Parse a profile from YAML *text*.

    Raises
    ------
    ProfileError
        If the document is rejected by the gate.
    """
    data, error = decode_profile(text)
    if error is not None:
        raise ProfileError(source, [error])

    verdict, reasons = gate_profile(data, rootfs)
    if verdict == Verdict.REJECT:
        raise ProfileError(source, reasons)
    if verdict == Verdict.WARN:
        logger.warning("Profile %s: %s", source, ", ".join(reasons))

    return build_profile(data, source)


def load_profile(path: Path | str, rootfs: RootFS | None = None) -> Profile:
    """
    Load a profile from a YAML file.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ProfileError
        If the document is rejected by the gate.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Profile not found: {path}")

    with open(p, "rb") as f:
        text = f.read()

    return parse_profile(text, source=str(p), rootfs=rootfs)
