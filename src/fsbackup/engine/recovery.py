"""Recovery procedure generator: a standalone recovery.sh inside each snapshot.

The scripts depend on nothing but bash and rsync, so a snapshot can be
restored from removable media without fs-backup installed. An incremental's
script embeds the absolute path of its base full at generation time.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from fsbackup.core.fileutil import SCRIPT_MODE, atomic_write
from fsbackup.core.models import LEDGER_NAME, RECOVERY_SCRIPT_NAME, Snapshot

log = logging.getLogger(__name__)

_RSYNC = "rsync -aAXH --numeric-ids"

_HEADER = """\
#!/bin/bash
# Recovery procedure for {name}.
# Run it from a Live-CD/USB environment with root privileges.
# DO NOT RUN IT ON THE LIVE (RUNNING) SYSTEM BEING RESTORED!
#
# Usage: {script} [TARGET]   (TARGET defaults to /)

set -euo pipefail

RECOVERY_TARGET="${{1:-/}}"
SNAPSHOT_DIR="$(cd "$(dirname "$0")" && pwd)"
"""

_MANUAL_STEPS = """\
echo "Recovery complete. Recreate the virtual filesystem mount points:"
echo "  mkdir -p /dev /proc /sys /tmp /run /mnt /media"
echo "Then reinstall the bootloader (e.g. grub-install and update-grub)."
"""


def _exclude_args(excludes: list[str]) -> str:
    patterns = [f"/{RECOVERY_SCRIPT_NAME}", f"/{LEDGER_NAME}", *excludes]
    return " ".join(shlex.quote(f"--exclude={p}") for p in patterns)


def render_full_script(snapshot: Snapshot, excludes: list[str]) -> str:
    """Delete-sync restore of a full snapshot onto the target."""
    return (
        _HEADER.format(name=snapshot.name, script=RECOVERY_SCRIPT_NAME)
        + f"""
echo "!!! WARNING: SYSTEM RECOVERY IS STARTING !!!"
echo "Source:      $SNAPSHOT_DIR"
echo "Destination: $RECOVERY_TARGET"
read -r -p "Press Enter to continue or Ctrl+C to cancel..."

# --delete removes files in the destination that are not in the backup.
{_RSYNC} --delete \\
    {_exclude_args(excludes)} \\
    "$SNAPSHOT_DIR/" "$RECOVERY_TARGET"

"""
        + _MANUAL_STEPS
    )


def render_incremental_script(snapshot: Snapshot, base: Snapshot, excludes: list[str]) -> str:
    """Restore the base full, overlay the incremental, then replay its ledger."""
    return (
        _HEADER.format(name=snapshot.name, script=RECOVERY_SCRIPT_NAME)
        + f"""FULL_BACKUP_DIR={shlex.quote(str(base.path))}

if [ ! -d "$FULL_BACKUP_DIR" ]; then
    echo "Base full backup not found: $FULL_BACKUP_DIR" >&2
    exit 1
fi

echo "!!! WARNING: RESTORING FROM AN INCREMENTAL BACKUP !!!"
echo "The base full backup is restored first, then the changes are applied."
echo "Base:        $FULL_BACKUP_DIR"
echo "Increment:   $SNAPSHOT_DIR"
echo "Destination: $RECOVERY_TARGET"
read -r -p "Press Enter to continue or Ctrl+C to cancel..."

echo "-> Step 1/3: Restoring the base full backup..."
{_RSYNC} --delete \\
    {_exclude_args(excludes)} \\
    "$FULL_BACKUP_DIR/" "$RECOVERY_TARGET"

echo "-> Step 2/3: Applying changes from the incremental backup..."
{_RSYNC} \\
    {_exclude_args(excludes)} \\
    "$SNAPSHOT_DIR/" "$RECOVERY_TARGET"

echo "-> Step 3/3: Deleting files that were removed from the source..."
if [ -f "$SNAPSHOT_DIR/{LEDGER_NAME}" ]; then
    while IFS= read -r file_to_delete; do
        [ -n "$file_to_delete" ] || continue
        target_path="${{RECOVERY_TARGET%/}}$file_to_delete"
        if [ -e "$target_path" ] || [ -L "$target_path" ]; then
            echo "Deleting: $target_path"
            rm -rf -- "$target_path"
        fi
    done < "$SNAPSHOT_DIR/{LEDGER_NAME}"
fi

"""
        + _MANUAL_STEPS
    )


def write_recovery_script(
    snapshot: Snapshot, excludes: list[str], base: Snapshot | None = None,
) -> Path:
    """Generate recovery.sh for ``snapshot``. ``base`` is required for incrementals."""
    if snapshot.is_full:
        content = render_full_script(snapshot, excludes)
    else:
        if base is None:
            raise ValueError(f"Incremental snapshot {snapshot.name} needs its base full")
        content = render_incremental_script(snapshot, base, excludes)

    path = snapshot.recovery_script_path
    atomic_write(path, content, mode=SCRIPT_MODE)
    log.info("Wrote recovery procedure %s", path)
    return path
