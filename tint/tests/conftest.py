"""
Shared pytest fixtures for tint tests.

``image`` builds a small Debian-like image tree in tmp_path: a script
target, a merged-/usr layout, a dpkg database and data of every filter
category.  It needs no compiler.

``elf_image`` compiles a shared library and two executables with gcc and
lays them out inside an image root.  Tests using it are skipped when gcc
is missing or does not produce ELF binaries.
"""
import os
import platform
import shutil
import subprocess
import tempfile
import textwrap
from pathlib import Path

import pytest

from tint.core.rootfs import RootFS

EXAMPLE_PROFILE = Path(__file__).resolve().parents[2] / "profiles" / "example.yaml"


# ── Fake image ───────────────────────────────────────────────────────────────

DPKG_STATUS = textwrap.dedent("""\
    Package: tool
    Status: install ok installed
    Architecture: all
    Version: 1.2-1
    Pre-Depends: sh
    Depends: tool-data (>= 1.0)
    Recommends: tool-extras
    Description: demo tool
     with a multi-line
     description

    Package: tool-data
    Status: install ok installed
    Architecture: amd64
    Version: 1.2-1

    Package: tool-extras
    Status: install ok installed
    Architecture: all
    Version: 1.2-1
    Depends: missing-pkg | tool-data

    Package: dash
    Status: install ok installed
    Architecture: amd64
    Version: 0.5
    Provides: sh

    Package: old-tool
    Status: deinstall ok config-files
    Architecture: all
    Version: 0.1
""")

PACKAGE_LISTS = {
    "tool.list": [
        "/.",
        "/usr",
        "/usr/bin",
        "/usr/bin/tool",
        "/usr/share/doc/tool",
        "/usr/share/doc/tool/README",
        "/usr/share/doc/tool/copyright",
        "/usr/share/man/man1/tool.1.gz",
        "/usr/share/locale/de/LC_MESSAGES/tool.mo",
        "/usr/share/bug/tool/control",
        "/usr/include/tool.h",
        "/var/log/tool.log",
    ],
    "tool-data:amd64.list": [
        "/usr/share/tool",
        "/usr/share/tool/data.dat",
        "/usr/share/tool/logo.png",
        "/usr/share/tool/bundle.tar.gz",
        "/usr/share/i18n/charmaps/UTF-8.gz",
    ],
    "tool-extras.list": [
        "/usr/share/tool-extras/extra.dat",
    ],
    "dash:amd64.list": [
        "/bin/sh",
    ],
}


def _write(root: Path, image_path: str, content: str = "", mode: int = 0o644) -> Path:
    p = root / image_path.lstrip("/")
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content)
    p.chmod(mode)
    return p


def _link(root: Path, image_path: str, target: str) -> None:
    p = root / image_path.lstrip("/")
    p.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(target, p)


@pytest.fixture
def image(tmp_path) -> Path:
    """A minimal Debian-like image root with a script target /usr/bin/tool."""
    root = tmp_path / "image"
    root.mkdir()

    # merged /usr
    (root / "usr" / "bin").mkdir(parents=True)
    _link(root, "/bin", "usr/bin")

    _write(root, "/usr/bin/tool", "#!/bin/sh -e\necho tool\n", 0o755)
    _write(root, "/usr/bin/sh", "not really a shell\n", 0o755)
    _write(root, "/usr/bin/other", "other\n", 0o755)
    _write(root, "/usr/bin/unrelated", "unrelated\n", 0o755)

    _write(root, "/usr/share/doc/tool/README", "readme\n")
    _write(root, "/usr/share/doc/tool/copyright", "copyright\n")
    _write(root, "/usr/share/man/man1/tool.1.gz", "man\n")
    _write(root, "/usr/share/locale/de/LC_MESSAGES/tool.mo", "mo\n")
    _write(root, "/usr/share/bug/tool/control", "bug\n")
    _write(root, "/usr/include/tool.h", "int tool(void);\n")
    _write(root, "/var/log/tool.log", "log line\n")

    _write(root, "/usr/share/tool/data.dat", "data\n")
    _write(root, "/usr/share/tool/logo.png", "png\n")
    _write(root, "/usr/share/tool/bundle.tar.gz", "tgz\n")
    _write(root, "/usr/share/i18n/charmaps/UTF-8.gz", "charmap\n")
    _write(root, "/usr/share/tool-extras/extra.dat", "extra\n")

    _write(root, "/etc/tool.conf", "verbose=1\n")
    _link(root, "/etc/alternatives/editor", "/usr/bin/other")

    _write(root, "/proc/1/status", "pseudo\n")
    _write(root, "/tmp/scratch", "scratch\n")
    (root / "opt" / "empty").mkdir(parents=True)

    _write(root, "/var/lib/dpkg/status", DPKG_STATUS)
    for name, lines in PACKAGE_LISTS.items():
        _write(root, f"/var/lib/dpkg/info/{name}", "\n".join(lines) + "\n")

    return root


@pytest.fixture
def example_profile() -> Path:
    """The annotated profile shipped with the project."""
    return EXAMPLE_PROFILE


@pytest.fixture
def rootfs(image) -> RootFS:
    return RootFS(image)


@pytest.fixture
def write_profile(tmp_path):
    """Write YAML text to a profile file and return its path."""
    def _write_profile(text: str, name: str = "profile.yaml") -> Path:
        p = tmp_path / name
        p.write_text(textwrap.dedent(text))
        return p
    return _write_profile


# ── ELF image (gcc) ──────────────────────────────────────────────────────────

LIB_C = textwrap.dedent("""\
    int demo_value(void) {
        return 42;
    }
""")

MAIN_C = textwrap.dedent("""\
    int demo_value(void);

    int main(void) {
        return demo_value() == 42 ? 0 : 1;
    }
""")


def _gcc_produces_elf() -> bool:
    """gcc is in PATH and emits ELF (not PE on native Windows)."""
    if shutil.which("gcc") is None or platform.system() == "Windows":
        return False

    with tempfile.TemporaryDirectory() as tmpdir:
        src = Path(tmpdir) / "test.c"
        out = Path(tmpdir) / "test_out"
        src.write_text("int main() { return 0; }")
        try:
            subprocess.run(
                ["gcc", str(src), "-o", str(out)],
                check=True,
                capture_output=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return out.exists() and out.read_bytes()[:4] == b"\x7fELF"


def _gcc(*args: str) -> None:
    subprocess.run(["gcc", *args], check=True, capture_output=True, timeout=30)


@pytest.fixture(scope="session")
def gcc_ok():
    """Skip tests if gcc is not available or doesn't produce ELF binaries."""
    if not _gcc_produces_elf():
        pytest.skip("gcc producing ELF binaries is required for ELF scanner tests")


@pytest.fixture(scope="session")
def elf_image(tmp_path_factory, gcc_ok) -> Path:
    """
    Image root with compiled ELF objects::

        /usr/lib/libdemo.so.1 -> libdemo.so.1.0
        /usr/lib/libdemo.so.1.0          (SONAME libdemo.so.1)
        /usr/bin/demo                    (NEEDED libdemo.so.1)
        /opt/demo/lib/libdemo.so.1.0     (private copy)
        /opt/demo/lib/libdemo.so.1 -> libdemo.so.1.0
        /opt/demo/bin/app                (RUNPATH $ORIGIN/../lib)
        /usr/bin/run-demo                (#!/usr/bin/env demo)
    """
    build = tmp_path_factory.mktemp("elf_build")
    root = tmp_path_factory.mktemp("elf_image")

    (build / "lib.c").write_text(LIB_C)
    (build / "main.c").write_text(MAIN_C)

    lib = build / "libdemo.so.1.0"
    _gcc("-shared", "-fPIC", "-Wl,-soname,libdemo.so.1", str(build / "lib.c"), "-o", str(lib))
    os.symlink("libdemo.so.1.0", build / "libdemo.so")

    for libdir in ("usr/lib", "opt/demo/lib"):
        d = root / libdir
        d.mkdir(parents=True)
        shutil.copy(lib, d / "libdemo.so.1.0")
        os.symlink("libdemo.so.1.0", d / "libdemo.so.1")

    (root / "usr" / "bin").mkdir(parents=True)
    _gcc(str(build / "main.c"), "-L", str(build), "-ldemo", "-o", str(root / "usr" / "bin" / "demo"))

    (root / "opt" / "demo" / "bin").mkdir(parents=True)
    _gcc(
        str(build / "main.c"),
        "-L", str(build),
        "-ldemo",
        "-Wl,--enable-new-dtags,-rpath,$ORIGIN/../lib",
        "-o", str(root / "opt" / "demo" / "bin" / "app"),
    )

    _write(root, "/usr/bin/env", "env stub\n", 0o755)
    _write(root, "/usr/bin/run-demo", "#!/usr/bin/env demo\n", 0o755)

    return root
