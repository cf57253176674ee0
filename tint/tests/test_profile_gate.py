"""
test_profile_gate — schema gate for profile documents.

The gate runs on decoded YAML and must report every problem at once:
  - structural problems REJECT (missing/empty targets, bad types, unknown
    filters, broken globs),
  - suspicious but usable documents WARN,
  - rejects win over warnings.
"""
import pytest
import yaml

from tint.core.rootfs import RootFS
from tint.policy.verdict import (
    ProfileRejectReason,
    ProfileWarnReason,
    Verdict,
    gate_profile,
    is_valid_glob,
)


class TestAccept:
    """Well-formed documents."""

    def test_example_profile_accepted(self, example_profile):
        data = yaml.safe_load(example_profile.read_text())
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.ACCEPT
        assert reasons == []

    def test_targets_only(self):
        verdict, reasons = gate_profile({"targets": ["/usr/bin/tool"]})
        assert verdict == Verdict.ACCEPT

    def test_null_sections_allowed(self):
        """An empty YAML key decodes to None and means 'not given'."""
        data = {"targets": ["/usr/bin/tool"], "packages": None, "config": None}
        verdict, _ = gate_profile(data)
        assert verdict == Verdict.ACCEPT


class TestReject:
    """Documents that cannot be used."""

    @pytest.mark.parametrize("data", [None, [], "targets", 42])
    def test_not_a_mapping(self, data):
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.REJECT
        assert reasons == [ProfileRejectReason.NOT_A_MAPPING.value]

    def test_targets_missing(self):
        verdict, reasons = gate_profile({"packages": ["bash"]})
        assert verdict == Verdict.REJECT
        assert ProfileRejectReason.TARGETS_MISSING.value in reasons

    def test_targets_empty(self):
        verdict, reasons = gate_profile({"targets": []})
        assert verdict == Verdict.REJECT
        assert reasons == [ProfileRejectReason.TARGETS_EMPTY.value]

    def test_relative_target(self):
        verdict, reasons = gate_profile({"targets": ["usr/bin/bash"]})
        assert verdict == Verdict.REJECT
        assert ProfileRejectReason.TARGET_NOT_ABSOLUTE.value in reasons

    @pytest.mark.parametrize("data", [
        {"targets": "/usr/bin/bash"},
        {"targets": ["/usr/bin/bash", 3]},
        {"targets": ["/usr/bin/bash"], "packages": "bash"},
        {"targets": ["/usr/bin/bash"], "config": ["doc"]},
        {"targets": ["/usr/bin/bash"], "config": {"filters": "doc"}},
        {"targets": ["/usr/bin/bash"], "config": {"keep": {"/etc": 1}}},
    ])
    def test_bad_field_type(self, data):
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.REJECT
        assert ProfileRejectReason.BAD_FIELD_TYPE.value in reasons

    def test_unknown_filter(self):
        data = {"targets": ["/usr/bin/bash"], "config": {"filters": ["doc", "pictures"]}}
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.REJECT
        assert reasons == [ProfileRejectReason.UNKNOWN_FILTER.value]

    @pytest.mark.parametrize("pattern", ["", "/usr/share/[abc", "/usr/[!"])
    def test_bad_glob(self, pattern):
        data = {"targets": ["/usr/bin/bash"], "config": {"prune": [pattern]}}
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.REJECT
        assert ProfileRejectReason.BAD_GLOB.value in reasons

    def test_all_reasons_reported(self):
        """Several problems are reported together, each only once."""
        data = {
            "targets": [],
            "config": {"filters": ["nope", "other"], "keep": ["/a/[", "/b/["]},
        }
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.REJECT
        assert sorted(reasons) == sorted([
            ProfileRejectReason.TARGETS_EMPTY.value,
            ProfileRejectReason.UNKNOWN_FILTER.value,
            ProfileRejectReason.BAD_GLOB.value,
        ])

    def test_reject_hides_warnings(self):
        data = {"targets": [], "extra": True}
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.REJECT
        assert ProfileWarnReason.UNKNOWN_KEY.value not in reasons


class TestWarn:
    """Usable documents with advisory findings."""

    def test_unknown_top_level_key(self):
        verdict, reasons = gate_profile({"targets": ["/usr/bin/bash"], "extra": 1})
        assert verdict == Verdict.WARN
        assert reasons == [ProfileWarnReason.UNKNOWN_KEY.value]

    def test_unknown_config_key(self):
        data = {"targets": ["/usr/bin/bash"], "config": {"filter": ["doc"]}}
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.WARN
        assert reasons == [ProfileWarnReason.UNKNOWN_KEY.value]

    def test_duplicate_entries(self):
        data = {"targets": ["/usr/bin/bash", "/usr/bin/bash"]}
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.WARN
        assert reasons == [ProfileWarnReason.DUPLICATE_ENTRY.value]

    def test_keep_prune_overlap(self):
        data = {
            "targets": ["/usr/bin/bash"],
            "config": {"keep": ["/etc/*"], "prune": ["/etc/*"]},
        }
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.WARN
        assert reasons == [ProfileWarnReason.KEEP_PRUNE_OVERLAP.value]

    def test_relative_glob(self):
        data = {"targets": ["/usr/bin/bash"], "config": {"keep": ["etc/*"]}}
        verdict, reasons = gate_profile(data)
        assert verdict == Verdict.WARN
        assert reasons == [ProfileWarnReason.RELATIVE_GLOB.value]

    def test_target_not_found_in_image(self, image):
        data = {"targets": ["/usr/bin/tool", "/usr/bin/missing"]}
        verdict, reasons = gate_profile(data, RootFS(image))
        assert verdict == Verdict.WARN
        assert reasons == [ProfileWarnReason.TARGET_NOT_FOUND.value]

    def test_target_found_in_image(self, image):
        """Targets reached through a symlinked directory count as present."""
        data = {"targets": ["/usr/bin/tool", "/bin/sh"]}
        verdict, _ = gate_profile(data, RootFS(image))
        assert verdict == Verdict.ACCEPT


class TestGlobSyntax:
    """is_valid_glob bracket handling."""

    @pytest.mark.parametrize("pattern", [
        "/etc/*",
        "/usr/**/*.so",
        "/usr/lib/lib?.so",
        "/var/[!l]*",
        "/opt/[]]",
        "/opt/[!]]x",
    ])
    def test_valid(self, pattern):
        assert is_valid_glob(pattern)

    @pytest.mark.parametrize("pattern", [
        "",
        "/opt/[",
        "/opt/[!",
        "/opt/[]",
        "/opt/a\x00b",
    ])
    def test_invalid(self, pattern):
        assert not is_valid_glob(pattern)
