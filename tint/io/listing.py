"""
Listing — dry-run display of what survives in the image.

Preserved files are grouped by directory and painted by kind so the user
can review the result before applying it:

  - symlinks:          name ⮕ target
  - executables:       bold green
  - shared objects:    green
  - potential junk:    red, flagged with ⚠
"""
import os
import posixpath
import stat
from typing import List, Optional

from rich.console import Console
from rich.filesize import decimal
from rich.markup import escape

from tint.core.rootfs import RootFS
from tint.policy.filters import is_potential_junk
from tint.policy.patterns import is_shared_object

DIR_RULE = "──┬──┄┄╌╌ ╌  ╌"


class ContentFormatter:
    """Render the preserved part of an image on a rich console."""

    def __init__(
        self,
        rootfs: RootFS,
        kept: List[str],
        removed: Optional[List[str]] = None,
        console: Optional[Console] = None,
    ):
        self.rootfs = rootfs
        self.kept = sorted(kept)
        self.removed = sorted(removed or [])
        self.console = console or Console(highlight=False)

    def _line(self, path: str) -> str:
        fname = escape(posixpath.basename(path))
        host = self.rootfs.host(path)

        try:
            st = os.lstat(host)
        except OSError:
            return f"[red]{fname}[/] [dim](missing)[/]"

        if stat.S_ISLNK(st.st_mode):
            target = escape(os.readlink(host))
            return f"[bold bright_cyan]{fname}[/] [dim yellow]⮕[/] [cyan]{target}[/]"
        if st.st_mode & 0o111:
            return f"[bold bright_green]{fname}[/]"
        if is_shared_object(posixpath.basename(path)):
            return f"[green]{fname}[/]"
        if is_potential_junk(posixpath.basename(path)):
            return f"[bold bright_red]⚠️[/]  [bright_red]{fname}[/]"
        return fname

    def format(self) -> None:
        last_dir = None
        total = len(self.kept)

        for i, path in enumerate(self.kept):
            dname = posixpath.dirname(path)
            if dname != last_dir:
                last_dir = dname
                self.console.print()
                self.console.print(f"[bold bright_blue]{escape(dname)}[/]")
                self.console.print(f"[blue]{DIR_RULE}[/]")

            is_last = i == total - 1 or posixpath.dirname(self.kept[i + 1]) != dname
            leaf = "  ╰─" if is_last else "  ├─"
            self.console.print(f"[blue]{leaf}[/] {self._line(path)}")

        kept_size = sum(self.rootfs.size_of(p) for p in self.kept)
        removed_size = sum(self.rootfs.size_of(p) for p in self.removed)

        self.console.print()
        self.console.print(f"Preserved {total} files, taking space: {decimal(kept_size)}")
        self.console.print(
            f"Removing {len(self.removed)} files, freeing: {decimal(removed_size)}"
        )
        self.console.print()
