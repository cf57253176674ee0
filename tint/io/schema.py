"""
Schema — Pydantic models for tint JSON outputs.

One output per run:
  tint_report.json — what was kept, what was (or would be) removed.

Runtime contract fields (present in every output):
  package_name, tool_version, schema_version, profile_id.
"""
from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, Field

from tint import PACKAGE_NAME, SCHEMA_VERSION, TOOL_VERSION


class ProfileCheck(BaseModel):
    """Gate result for a single profile document."""

    source: str
    verdict: str             # ACCEPT | WARN | REJECT
    reasons: List[str] = Field(default_factory=list)


class PathCounts(BaseModel):
    kept: int = 0
    removed: int = 0
    removed_dirs: int = 0


class ByteCounts(BaseModel):
    kept: int = 0
    removed: int = 0


class TintReport(BaseModel):
    """Run summary — tint_report.json."""

    package_name: str = PACKAGE_NAME
    tool_version: str = TOOL_VERSION
    schema_version: str = SCHEMA_VERSION
    profile_id: str

    root: str
    dry_run: bool = True
    autodeps: str
    filters: List[str] = Field(default_factory=list)

    targets: List[str] = Field(default_factory=list)
    packages: List[str] = Field(default_factory=list)

    counts: PathCounts = Field(default_factory=PathCounts)
    sizes: ByteCounts = Field(default_factory=ByteCounts)

    kept: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    removed_dirs: List[str] = Field(default_factory=list)

    # Entries that could not be removed when applying
    failed: List[str] = Field(default_factory=list)

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
