"""
API test fixtures: a small image root and a test client.
"""
import os

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def api_image(tmp_path):
    """Image root with a script target, its shell and some removable data."""
    root = tmp_path / "image"
    files = {
        "usr/bin/hello": "#!/bin/sh\necho hello\n",
        "usr/bin/sh": "shell\n",
        "usr/bin/unused": "unused\n",
        "usr/share/doc/hello/README": "readme\n",
        "etc/hello.conf": "greeting=hi\n",
    }
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content)
    os.symlink("usr/bin", root / "bin")
    return root
