"""
test_api — HTTP endpoints for profile checks and dry-run plans.
"""
from app.config import settings
from tint import TOOL_VERSION

PROFILE = """\
targets:
  - /usr/bin/hello
config:
  filters: [doc]
  keep: [/etc/*]
"""


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["service"] == "tint-api"
        assert resp.json()["tool_version"] == TOOL_VERSION

    def test_no_root_endpoint(self, client):
        assert client.get("/").status_code == 404


class TestCheck:
    """POST /profiles/check"""

    def test_accept(self, client):
        resp = client.post("/profiles/check", json={"profile": PROFILE})
        assert resp.status_code == 200
        assert resp.json() == {"source": "<request>", "verdict": "ACCEPT", "reasons": []}

    def test_reject_is_not_an_http_error(self, client):
        resp = client.post("/profiles/check", json={"profile": "targets: []\n"})
        assert resp.status_code == 200
        assert resp.json()["verdict"] == "REJECT"
        assert resp.json()["reasons"] == ["TARGETS_EMPTY"]

    def test_target_checked_against_root(self, client, api_image):
        resp = client.post(
            "/profiles/check",
            json={"profile": "targets: [/usr/bin/nope]\n", "root": str(api_image)},
        )
        assert resp.json()["verdict"] == "WARN"
        assert resp.json()["reasons"] == ["TARGET_NOT_FOUND"]

    def test_missing_body_field(self, client):
        assert client.post("/profiles/check", json={}).status_code == 422


class TestPlan:
    """POST /profiles/plan"""

    def test_plan(self, client, api_image):
        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE, "root": str(api_image)},
        )
        assert resp.status_code == 200

        report = resp.json()
        assert report["dry_run"] is True
        assert set(report["kept"]) == {
            "/bin",
            "/usr/bin/hello",
            "/usr/bin/sh",
            "/etc/hello.conf",
        }
        assert set(report["removed"]) == {"/usr/bin/unused", "/usr/share/doc/hello/README"}
        assert (api_image / "usr" / "bin" / "unused").exists()

    def test_unknown_root(self, client, tmp_path):
        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE, "root": str(tmp_path / "nope")},
        )
        assert resp.status_code == 404

    def test_invalid_profile(self, client, api_image):
        resp = client.post(
            "/profiles/plan",
            json={"profile": "targets: [relative]\n", "root": str(api_image)},
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["reasons"] == ["TARGET_NOT_ABSOLUTE"]

    def test_missing_package(self, client, api_image):
        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE + "packages: [nope]\n", "root": str(api_image)},
        )
        assert resp.status_code == 404

    def test_bad_autodeps(self, client, api_image):
        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE, "root": str(api_image), "autodeps": "loose"},
        )
        assert resp.status_code == 422

    def test_already_tinted(self, client, api_image):
        (api_image / ".tinted.lock").touch()
        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE, "root": str(api_image)},
        )
        assert resp.status_code == 409


class TestAllowedRoots:
    """Image roots the API may read."""

    def test_root_outside_allowed(self, client, api_image, tmp_path, monkeypatch):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.setattr(settings, "ALLOWED_ROOTS", [str(elsewhere)])

        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE, "root": str(api_image)},
        )
        assert resp.status_code == 403

        resp = client.post(
            "/profiles/check",
            json={"profile": PROFILE, "root": str(api_image)},
        )
        assert resp.status_code == 403

    def test_root_inside_allowed(self, client, api_image, monkeypatch):
        monkeypatch.setattr(settings, "ALLOWED_ROOTS", [str(api_image.parent)])

        resp = client.post(
            "/profiles/plan",
            json={"profile": PROFILE, "root": str(api_image)},
        )
        assert resp.status_code == 200
        assert "/usr/bin/hello" in resp.json()["kept"]
