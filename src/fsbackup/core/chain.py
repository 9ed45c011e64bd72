"""Chain resolver: which full snapshot and incrementals reconstruct a given date."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from fsbackup.core.catalog import list_fulls, list_incrementals
from fsbackup.core.errors import ChainNotFoundError
from fsbackup.core.models import BackupChain, end_of_day

log = logging.getLogger(__name__)


def resolve(root: Path, target_date: date) -> BackupChain:
    """Resolve the backup chain for ``target_date``.

    The base is the newest full dated on or before ``target_date``. The
    incrementals are those created between the base's creation instant and
    the end of ``target_date`` (both inclusive), in ascending creation order,
    which is the order they must be replayed in.

    Raises:
        ChainNotFoundError: No full snapshot is dated on or before the target.
    """
    candidates = [f for f in list_fulls(root) if f.day <= target_date]
    if not candidates:
        raise ChainNotFoundError(
            f"No full backup in {root} is dated on or before {target_date:%Y-%m-%d}",
            target_date,
        )
    base = max(candidates, key=lambda s: s.created_at)

    upper = end_of_day(target_date)
    incrementals = [
        inc for inc in list_incrementals(root)
        if base.created_at <= inc.created_at <= upper
    ]
    incrementals.sort(key=lambda s: s.created_at)

    log.debug(
        "Resolved %s: base=%s, incrementals=%s",
        target_date, base.name, [i.name for i in incrementals],
    )
    return BackupChain(base=base, incrementals=incrementals, target_date=target_date)
