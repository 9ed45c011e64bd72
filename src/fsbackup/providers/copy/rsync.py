"""rsync copy engine: archive mode with ACLs, xattrs and hard links."""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import subprocess
import time
from pathlib import Path

from fsbackup.core.config import RsyncOptions
from fsbackup.providers.copy.base import CopyMode, CopyResult, EngineInfo

log = logging.getLogger(__name__)

# rsync exit codes for "some files/attrs were not transferred" and "source files vanished"
_PARTIAL_CODES = {23, 24}

# Itemized deletions: "*deleting" padded to the 11-char change field, a space, then the name
_DELETING_PREFIX = "*deleting"
_ITEMIZE_WIDTH = 12

# Non-printable bytes in names are written as \#ooo (octal)
_ESCAPE_RE = re.compile(rb"\\#([0-7]{3})")


def unescape_name(name: str) -> str:
    """Undo rsync's \\#ooo escaping and return the name as a filesystem str."""
    raw = _ESCAPE_RE.sub(lambda m: bytes([int(m.group(1), 8)]), os.fsencode(name))
    return os.fsdecode(raw)


def parse_deletions(output: str) -> list[str]:
    """Extract would-be-deleted paths from itemized (``-i``) rsync output.

    Only lines whose change field is ``*deleting`` count, so a transferred
    file that happens to be named ``deleting x`` is never mistaken for one.
    Returns root-relative paths with a leading ``/`` and no trailing slash.
    """
    deletions = []
    for line in output.splitlines():
        if not line.startswith(_DELETING_PREFIX):
            continue
        rel = unescape_name(line[_ITEMIZE_WIDTH:]).rstrip("/")
        if rel:
            deletions.append("/" + rel.lstrip("/"))
    return deletions


class RsyncEngine:
    """Shell out to rsync for every transfer."""

    def __init__(self, options: RsyncOptions | None = None) -> None:
        self._options = options or RsyncOptions()

    @property
    def name(self) -> str:
        return "rsync"

    @property
    def info(self) -> EngineInfo:
        return EngineInfo(
            display_name="rsync",
            preserves_acls=True,
            preserves_xattrs=True,
            preserves_hard_links=True,
        )

    def is_available(self) -> bool:
        if shutil.which(self._options.binary) is None:
            return False
        return not self._options.sudo or shutil.which("sudo") is not None

    def build_command(
        self,
        source: Path,
        dest: Path,
        mode: CopyMode,
        excludes: list[str] | None = None,
        reference: Path | None = None,
    ) -> list[str]:
        """Build the rsync argv for one transfer."""
        cmd = ["sudo"] if self._options.sudo else []
        cmd += [self._options.binary, "-aAXH"]
        if self._options.numeric_ids:
            cmd.append("--numeric-ids")

        if mode is CopyMode.COPY_DELETE:
            cmd.append("--delete")
        elif mode is CopyMode.DRY_RUN_DELETIONS:
            cmd += ["--dry-run", "--itemize-changes", "--delete"]
        elif mode is CopyMode.LINK_REFERENCE:
            if reference is None:
                raise ValueError("LINK_REFERENCE mode requires a reference tree")
            cmd.append(f"--link-dest={reference}")

        cmd.extend(self._options.extra_args)
        cmd.extend(f"--exclude={pattern}" for pattern in excludes or [])

        # Trailing slash: copy the contents of source, not the directory itself
        cmd.append(str(source).rstrip("/") + "/")
        cmd.append(str(dest))
        return cmd

    def run(
        self,
        source: Path,
        dest: Path,
        mode: CopyMode,
        excludes: list[str] | None = None,
        reference: Path | None = None,
    ) -> CopyResult:
        """Run rsync and translate its exit status into a CopyResult."""
        start = time.monotonic()
        cmd = self.build_command(source, dest, mode, excludes, reference)
        log.info("rsync %s: %s -> %s", mode.value, source, dest)
        log.debug("Running: %s", shlex.join(cmd))

        try:
            proc = subprocess.run(
                cmd, capture_output=True, text=True, errors="surrogateescape", check=False,
            )
        except OSError as e:
            return CopyResult(
                success=False,
                mode=mode,
                returncode=127,
                errors=[f"Cannot run {self._options.binary}: {e}"],
                duration_seconds=time.monotonic() - start,
            )

        for line in proc.stdout.splitlines():
            log.debug("rsync: %s", line)

        errors = [line for line in proc.stderr.splitlines() if line.strip()]
        if proc.returncode != 0:
            log.warning("rsync exited with code %d", proc.returncode)

        return CopyResult(
            success=proc.returncode == 0,
            mode=mode,
            returncode=proc.returncode,
            partial=proc.returncode in _PARTIAL_CODES,
            deletions=parse_deletions(proc.stdout) if mode is CopyMode.DRY_RUN_DELETIONS else [],
            errors=errors,
            duration_seconds=time.monotonic() - start,
        )
