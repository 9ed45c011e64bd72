"""Local copy engine: shutil/os based tree copy honoring the rsync-style contract.

Used where rsync is not installed. ``shutil.copy2`` carries permissions,
timestamps and extended attributes (POSIX ACLs live in xattrs on Linux);
ownership is restored when running as root. Hard links inside one transfer
are recreated as hard links.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path

from fsbackup.core.fileutil import join_under, remove_path
from fsbackup.providers.copy.base import CopyMode, CopyResult, EngineInfo

log = logging.getLogger(__name__)

_IS_ROOT = hasattr(os, "geteuid") and os.geteuid() == 0


def is_excluded(rel: str, patterns: list[str]) -> bool:
    """Match a root-relative path (``/a/b``) against exclusion globs.

    Patterns starting with ``/`` are anchored at the transfer root; others
    match the final path component or any trailing sub-path.
    """
    name = rel.rsplit("/", 1)[-1]
    for pattern in patterns:
        if pattern.startswith("/"):
            if fnmatch.fnmatchcase(rel, pattern.rstrip("/")):
                return True
        elif fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(rel, "*/" + pattern):
            return True
    return False


def _kind(path: Path) -> str:
    mode = path.lstat().st_mode
    if stat.S_ISLNK(mode):
        return "link"
    if stat.S_ISDIR(mode):
        return "dir"
    return "file"


@dataclass
class _Transfer:
    excludes: list[str]
    delete: bool = False
    reference: Path | None = None
    links: dict[tuple[int, int], Path] = field(default_factory=dict)
    files_copied: int = 0
    files_linked: int = 0
    errors: list[str] = field(default_factory=list)


class LocalCopyEngine:
    """Copy trees with the standard library, no external binaries."""

    def __init__(self, preserve_owner: bool = _IS_ROOT) -> None:
        self._preserve_owner = preserve_owner

    @property
    def name(self) -> str:
        return "local"

    @property
    def info(self) -> EngineInfo:
        xattrs = hasattr(os, "listxattr")
        return EngineInfo(
            display_name="Local copy",
            preserves_acls=xattrs,
            preserves_xattrs=xattrs,
            preserves_hard_links=True,
        )

    def is_available(self) -> bool:
        return True

    def run(
        self,
        source: Path,
        dest: Path,
        mode: CopyMode,
        excludes: list[str] | None = None,
        reference: Path | None = None,
    ) -> CopyResult:
        start = time.monotonic()
        log.info("local %s: %s -> %s", mode.value, source, dest)

        if not source.is_dir():
            return CopyResult(
                success=False,
                mode=mode,
                returncode=1,
                errors=[f"Source directory not found: {source}"],
                duration_seconds=time.monotonic() - start,
            )
        if mode is CopyMode.LINK_REFERENCE and reference is None:
            raise ValueError("LINK_REFERENCE mode requires a reference tree")

        patterns = list(excludes or [])

        if mode is CopyMode.DRY_RUN_DELETIONS:
            deletions: list[str] = []
            try:
                if dest.is_dir():
                    self._report_deletions(source, dest, "", patterns, deletions)
            except OSError as e:
                log.warning("Local dry run aborted: %s", e)
                return CopyResult(
                    success=False,
                    mode=mode,
                    returncode=1,
                    errors=[f"Cannot compare {source} with {dest}: {e}"],
                    duration_seconds=time.monotonic() - start,
                )
            return CopyResult(
                success=True,
                mode=mode,
                deletions=deletions,
                duration_seconds=time.monotonic() - start,
            )

        transfer = _Transfer(
            excludes=patterns,
            delete=mode is CopyMode.COPY_DELETE,
            reference=reference if mode is CopyMode.LINK_REFERENCE else None,
        )
        try:
            self._sync_dir(source, dest, "", transfer)
        except OSError as e:
            transfer.errors.append(f"Transfer aborted at {dest}: {e}")
            log.warning("Local copy aborted: %s", e)

        success = not transfer.errors
        return CopyResult(
            success=success,
            mode=mode,
            returncode=0 if success else 1,
            partial=not success and (transfer.files_copied + transfer.files_linked) > 0,
            files_copied=transfer.files_copied,
            errors=transfer.errors,
            duration_seconds=time.monotonic() - start,
        )

    # --- copy ---

    def _sync_dir(self, src: Path, dst: Path, rel: str, t: _Transfer) -> None:
        if os.path.lexists(dst) and _kind(dst) != "dir":
            remove_path(dst)
        dst.mkdir(parents=not rel, exist_ok=True)

        kept: set[str] = set()
        with os.scandir(src) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            entry_rel = f"{rel}/{entry.name}"
            if is_excluded(entry_rel, t.excludes):
                continue
            kept.add(entry.name)
            s = Path(entry.path)
            d = dst / entry.name
            try:
                if entry.is_dir(follow_symlinks=False):
                    self._sync_dir(s, d, entry_rel, t)
                elif entry.is_symlink():
                    self._copy_symlink(s, d)
                elif entry.is_file(follow_symlinks=False):
                    self._copy_file(s, d, entry_rel, t)
                else:
                    log.debug("Skipping special file: %s", s)
            except OSError as e:
                t.errors.append(f"Failed to copy {entry_rel}: {e}")
                log.warning("Copy error: %s: %s", entry_rel, e)

        if t.delete:
            self._delete_extraneous(dst, rel, kept, t)

        shutil.copystat(src, dst, follow_symlinks=False)
        self._chown(src, dst)

    def _copy_symlink(self, src: Path, dst: Path) -> None:
        if os.path.lexists(dst):
            remove_path(dst)
        os.symlink(os.readlink(src), dst)
        self._chown(src, dst)

    def _copy_file(self, src: Path, dst: Path, rel: str, t: _Transfer) -> None:
        st = src.lstat()
        key = (st.st_dev, st.st_ino)

        if t.reference is None and self._unchanged(st, dst):
            if st.st_nlink > 1:
                t.links.setdefault(key, dst)
            return

        # Never write through an existing file: it may be a hard link into another snapshot
        if os.path.lexists(dst):
            remove_path(dst)

        if st.st_nlink > 1 and key in t.links:
            os.link(t.links[key], dst)
            t.files_linked += 1
            return

        ref = join_under(t.reference, rel) if t.reference is not None else None
        if ref is not None and self._unchanged(st, ref):
            os.link(ref, dst)
            t.files_linked += 1
        else:
            shutil.copy2(src, dst, follow_symlinks=False)
            self._chown(src, dst)
            t.files_copied += 1

        if st.st_nlink > 1:
            t.links[key] = dst

    @staticmethod
    def _unchanged(st: os.stat_result, ref: Path) -> bool:
        """rsync-style quick check: same type, size, mtime (seconds) and mode."""
        try:
            ref_st = ref.lstat()
        except FileNotFoundError:
            return False
        return (
            stat.S_ISREG(ref_st.st_mode)
            and ref_st.st_size == st.st_size
            and int(ref_st.st_mtime) == int(st.st_mtime)
            and ref_st.st_mode == st.st_mode
        )

    def _chown(self, src: Path, dst: Path) -> None:
        if not self._preserve_owner:
            return
        st = src.lstat()
        os.chown(dst, st.st_uid, st.st_gid, follow_symlinks=False)

    def _delete_extraneous(self, dst: Path, rel: str, kept: set[str], t: _Transfer) -> None:
        with os.scandir(dst) as it:
            names = sorted(e.name for e in it)
        for name in names:
            entry_rel = f"{rel}/{name}"
            if name in kept or is_excluded(entry_rel, t.excludes):
                continue
            try:
                remove_path(dst / name)
                log.debug("Deleted %s", entry_rel)
            except OSError as e:
                t.errors.append(f"Failed to delete {entry_rel}: {e}")

    # --- dry run ---

    def _report_deletions(
        self, src: Path, dst: Path, rel: str, patterns: list[str], out: list[str],
    ) -> None:
        with os.scandir(dst) as it:
            names = sorted(e.name for e in it)
        for name in names:
            entry_rel = f"{rel}/{name}"
            if is_excluded(entry_rel, patterns):
                continue
            s = src / name
            d = dst / name
            if not os.path.lexists(s) or _kind(s) != _kind(d):
                self._report_subtree(d, entry_rel, out)
            elif _kind(d) == "dir":
                self._report_deletions(s, d, entry_rel, patterns, out)

    def _report_subtree(self, path: Path, rel: str, out: list[str]) -> None:
        """Report a doomed entry, children before their directory like rsync."""
        if _kind(path) == "dir":
            with os.scandir(path) as it:
                names = sorted(e.name for e in it)
            for name in names:
                self._report_subtree(path / name, f"{rel}/{name}", out)
        out.append(rel)
