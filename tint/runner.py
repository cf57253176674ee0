"""
Tint runner — top-level orchestration: profile + image → trimmed image.

This module ties the scanners, filters, and IO together into the
``TintProcessor`` pipeline and the ``tint`` command line.  The same
processor backs the HTTP API (dry runs only).
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Set, Tuple

from rich.console import Console

from tint.config import Settings, settings as default_settings
from tint.core.cleanup import apply_plan, broken_symlinks
from tint.core.dpkg import DpkgDatabase, PackageNotFoundError, PackageScanner
from tint.core.elf_scanner import ElfScanner
from tint.core.rootfs import RootFS, SymlinkLoopError, normalize
from tint.io.listing import ContentFormatter
from tint.io.loader import ProfileError, check_profile, load_profile
from tint.io.schema import ByteCounts, PathCounts, TintReport
from tint.io.writer import write_report
from tint.policy.filters import apply_filters
from tint.policy.profile import Autodeps, Profile
from tint.policy.verdict import Verdict

logger = logging.getLogger(__name__)


class AlreadyTintedError(RuntimeError):
    """Raised when the image carries the lock file of a previous run."""


class TintProcessor:
    """
    Main processing of a profile against an image root.

    Usage::

        report = (
            TintProcessor(Path("/srv/image"))
            .set_profile(load_profile("profile.yaml"))
            .set_dry_run(False)
            .set_autodeps("clean")
            .start()
        )

    Dry run is the default: nothing is written to the image.
    """

    def __init__(self, root: Path, settings: Optional[Settings] = None):
        settings = settings or default_settings
        self.profile: Optional[Profile] = None
        self.rootfs = RootFS(
            root,
            keep_pds=settings.KEEP_PDS,
            keep_tmp=settings.KEEP_TMP,
            lockfile=settings.LOCKFILE,
        )
        self.dry_run = True
        self.autodeps = Autodeps.parse(settings.AUTODEPS)
        self.console: Optional[Console] = None

    def set_profile(self, profile: Profile) -> "TintProcessor":
        self.profile = profile
        return self

    def set_dry_run(self, dry_run: bool) -> "TintProcessor":
        """Set dry-run flag (no actual writes on the target image)."""
        self.dry_run = dry_run
        return self

    def set_autodeps(self, mode: str) -> "TintProcessor":
        self.autodeps = Autodeps.parse(mode)
        return self

    def set_console(self, console: Optional[Console]) -> "TintProcessor":
        """Render the dry-run listing on *console*; None disables it."""
        self.console = console
        return self

    # -- pipeline ---------------------------------------------------------------

    def _symlink_closure(self, paths: Set[str]) -> Set[str]:
        out: Set[str] = set()
        for p in paths:
            try:
                out.update(self.rootfs.chain(p))
            except SymlinkLoopError as e:
                logger.warning("Symlink loop at %s: %s", p, e)
                out.add(p)
        return out

    def _canonical(self, path: str) -> bool:
        """
        Existing non-directory path whose parent has no symlink on the way.

        Symlinks to directories count as entries; real directories are
        handled by the empty-directory sweep instead.
        """
        if path == "/" or not self.rootfs.lexists(path):
            return False
        if self.rootfs.is_dir(path) and not self.rootfs.is_symlink(path):
            return False
        try:
            return self.rootfs.canonical(path) == path
        except SymlinkLoopError:
            return False

    def _spellings(self, paths: Set[str]) -> Set[str]:
        """*paths* plus their canonical spellings."""
        out = set(paths)
        for p in paths:
            try:
                out.add(self.rootfs.canonical(p))
            except SymlinkLoopError as e:
                logger.warning("Symlink loop at %s: %s", p, e)
        return out

    def collect(self) -> Tuple[Set[str], Set[str]]:
        """
        Compute what stays in the image.

        Returns (kept_paths, kept_dirs).  Directories are only reported
        when a keep glob matched them, so they survive the empty sweep.
        """
        profile = self.profile
        if profile is None:
            raise ValueError("No profile set")

        elf = ElfScanner(self.rootfs)
        db = DpkgDatabase(self.rootfs)
        pscan = PackageScanner(db, self.autodeps)

        targets = frozenset(normalize(t) for t in profile.targets)
        paths: Set[str] = set()

        for target in profile.targets:
            logger.debug("Find binary dependencies for %s", target)
            paths |= elf.scan(target)

            logger.debug("Find package dependencies for %s", target)
            paths |= pscan.scan(target)

            paths.add(normalize(target))

        # Content of profile packages is kept whole, then filtered below
        # so that only the parts relevant to the runtime stay.
        for name in profile.packages:
            logger.debug('Getting content of package "%s"', name)
            paths |= db.contents(name)

        logger.debug("Filtering data")
        paths = apply_filters(paths, profile, self.autodeps, protected=targets)

        keep_dirs: Set[str] = set()
        for pattern in profile.keep:
            files, dirs = self.rootfs.match(pattern)
            logger.debug("Keep %s: %d paths", pattern, len(files))
            paths |= files
            keep_dirs |= dirs

        paths = self._symlink_closure(paths)

        for pattern in profile.prune:
            files, dirs = self.rootfs.match(pattern)
            logger.debug("Prune %s: %d paths", pattern, len(files))
            # A hit through a symlinked directory also prunes the real entry
            paths -= self._spellings(files)
            keep_dirs -= self._spellings(dirs)

        return {p for p in paths if self._canonical(p)}, keep_dirs

    def start(self, output_dir: Optional[Path] = None) -> TintReport:
        """
        Run the pipeline.

        Raises
        ------
        AlreadyTintedError
            If the image was already processed.
        PackageNotFoundError
            If a profile package is not installed in the image.
        """
        if self.profile is None:
            raise ValueError("No profile set")
        if self.rootfs.lexists(self.rootfs.lockfile):
            raise AlreadyTintedError(
                f"This container seems already tinted: {self.rootfs.root}"
            )

        kept, keep_dirs = self.collect()

        logger.debug("Scanning existing rootfs")
        removable = self.rootfs.dissect(kept)
        # Kept links whose targets go are swept on apply
        dangling = broken_symlinks(self.rootfs, set(removable))
        removed_size = sum(self.rootfs.size_of(p) for p in removable + dangling)

        if self.dry_run:
            removed, failed = removable + dangling, []
            removed_dirs = self.rootfs.plan_dirs(
                set(removed),
                keep_dirs=keep_dirs,
                all_empty=self.profile.filter_dir(),
            )
        else:
            removed, removed_dirs, failed = apply_plan(
                self.rootfs,
                removable,
                keep_dirs=keep_dirs,
                all_empty=self.profile.filter_dir(),
            )
            logger.info(
                "Removed %d files and %d directories from %s",
                len(removed), len(removed_dirs), self.rootfs.root,
            )

        kept_list = sorted(kept - set(removed))
        if self.dry_run and self.console is not None:
            ContentFormatter(self.rootfs, kept_list, removed, self.console).format()

        report = TintReport(
            profile_id=self.profile.profile_id,
            root=str(self.rootfs.root),
            dry_run=self.dry_run,
            autodeps=self.autodeps.value,
            filters=self.profile.active_filters(),
            targets=list(self.profile.targets),
            packages=list(self.profile.packages),
            counts=PathCounts(
                kept=len(kept_list),
                removed=len(removed),
                removed_dirs=len(removed_dirs),
            ),
            sizes=ByteCounts(
                kept=sum(self.rootfs.size_of(p) for p in kept_list),
                removed=removed_size,
            ),
            kept=kept_list,
            removed=sorted(removed),
            removed_dirs=removed_dirs,
            failed=failed,
        )

        if output_dir:
            write_report(report, output_dir)

        return report


# ── Public API ───────────────────────────────────────────────────────────────

def run_tint(
    profile_path: Path,
    root: Path,
    dry_run: bool = True,
    autodeps: Optional[str] = None,
    output_dir: Optional[Path] = None,
    console: Optional[Console] = None,
    settings: Optional[Settings] = None,
) -> TintReport:
    """
    Load *profile_path* and run it against the image at *root*.

    Parameters
    ----------
    profile_path : Path
        YAML profile.
    root : Path
        Image root directory.
    dry_run : bool
        When True (default) only report what would be removed.
    autodeps : str, optional
        free, clean or tight; defaults to the configured mode.
    output_dir : Path, optional
        Directory to write tint_report.json.
    console : Console, optional
        Where to render the dry-run listing.
    """
    processor = TintProcessor(root, settings)
    profile = load_profile(profile_path, processor.rootfs)
    processor.set_profile(profile).set_dry_run(dry_run).set_console(console)
    if autodeps is not None:
        processor.set_autodeps(autodeps)
    return processor.start(output_dir)


# ── CLI ──────────────────────────────────────────────────────────────────────

def _cmd_check(args) -> int:
    path = Path(args.profile)
    if not path.is_file():
        logger.error("Profile not found: %s", path)
        return 1

    rootfs = RootFS(Path(args.root)) if args.root else None
    verdict, reasons = check_profile(path.read_bytes(), rootfs)

    print(f"{path}: {verdict.value}")
    for reason in reasons:
        print(f"  - {reason}")
    return 1 if verdict == Verdict.REJECT else 0


def _cmd_run(args) -> int:
    try:
        report = run_tint(
            profile_path=Path(args.profile),
            root=Path(args.root or default_settings.ROOT),
            dry_run=not args.apply,
            autodeps=args.autodeps,
            output_dir=args.output_dir,
            console=None if args.quiet else Console(highlight=False),
        )
    except (FileNotFoundError, ProfileError, PackageNotFoundError, AlreadyTintedError) as e:
        logger.error("%s", e)
        return 1

    if report.dry_run:
        print(f"Dry run: {report.counts.removed} files would be removed")
    else:
        print(f"Removed {report.counts.removed} files, "
              f"{report.counts.removed_dirs} directories "
              f"({len(report.failed)} failures)")

    if args.output_dir:
        print(f"Report written to: {args.output_dir}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tint",
        description="tint — trim an image down to what its target binaries need",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    # Also accepted after the subcommand; SUPPRESS keeps a leading -v
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable verbose logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", parents=[common], help="Validate a profile document")
    check.add_argument("profile", help="Path to the YAML profile")
    check.add_argument(
        "-r", "--root",
        default=None,
        help="Image root; also checks that targets exist in it",
    )
    check.set_defaults(func=_cmd_check)

    run = sub.add_parser("run", parents=[common], help="Trim an image (dry run unless --apply)")
    run.add_argument("profile", help="Path to the YAML profile")
    run.add_argument(
        "-r", "--root",
        default=None,
        help="Image root directory (default: TINT_ROOT or /)",
    )
    run.add_argument(
        "--apply",
        action="store_true",
        help="Actually remove files from the image",
    )
    run.add_argument(
        "-a", "--autodeps",
        default=None,
        help="Package dependency mode: free, clean or tight",
    )
    run.add_argument(
        "-o", "--output-dir",
        type=Path,
        default=None,
        help="Directory to write tint_report.json",
    )
    run.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Do not print the dry-run listing",
    )
    run.set_defaults(func=_cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else default_settings.LOG_LEVEL,
        format=default_settings.LOG_FORMAT,
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
