"""
Matching of resources to Icarus operations.

Icarus keeps one record per node for every operation plus a single
coordinator record (globalRequest=true) describing the whole cluster job.
Only coordinator records are matched.
"""
import re
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, TypeVar

import structlog

from backup_operator.models.operation import Backup, Restore, OperationRecord

logger = structlog.get_logger(__name__)

Op = TypeVar("Op", bound=OperationRecord)


_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> Optional[datetime]:
    """
    Parse an RFC3339 timestamp such as ``2024-01-02T00:00:00Z``.

    Fractional seconds of any precision are accepted and truncated to
    microseconds. Returns None instead of raising on invalid input.
    """
    match = _RFC3339.match(value.strip()) if value else None
    if match is None:
        return None

    date_part, time_part, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        offset = "+00:00"
    if fraction:
        time_part = f"{time_part}.{fraction[:6].ljust(6, '0')}"
    try:
        return datetime.fromisoformat(f"{date_part}T{time_part}{offset}")
    except ValueError:
        return None


def select_latest(candidates: Sequence[Op]) -> Optional[Op]:
    """
    Pick the most recently created operation.

    Candidates whose creation time cannot be parsed are skipped. Operations
    created at the same instant are ordered by id so that the choice does
    not depend on the order Icarus listed them in. When no candidate has a
    parseable creation time, the first one is returned.
    """
    if not candidates:
        return None

    latest: Optional[Tuple[datetime, str, Op]] = None
    for candidate in candidates:
        created = parse_rfc3339(candidate.creation_time)
        if created is None:
            logger.warning(
                "operation_creation_time_unparseable",
                operation_id=candidate.id,
                snapshot_tag=candidate.snapshot_tag,
                creation_time=candidate.creation_time,
                message="Skipping operation when looking for the most recent one",
            )
            continue
        if latest is None or (created, candidate.id) > (latest[0], latest[1]):
            latest = (created, candidate.id, candidate)

    if latest is None:
        logger.warning(
            "no_parseable_creation_time",
            candidates=len(candidates),
            operation_id=candidates[0].id,
            message="Falling back to the first matching operation",
        )
        return candidates[0]

    return latest[2]


def backup_matches_tag(backup: Backup, tag: str) -> bool:
    """
    Whether a backup record belongs to a tag.

    Icarus appends the schema version to snapshot names of incremental
    backups, so ``{tag}-{schemaVersion}`` anywhere in the record tag counts.
    """
    return backup.snapshot_tag == tag or f"{tag}-{backup.schema_version}" in backup.snapshot_tag


def find_related_backup(backups: Sequence[Backup], tag: str) -> Optional[Backup]:
    """Coordinator backup record for a snapshot tag, None if there is none."""
    related: List[Backup] = [
        backup for backup in backups
        if backup.global_request and backup_matches_tag(backup, tag)
    ]
    if len(related) <= 1:
        return related[0] if related else None

    # Several records share the tag after a failed backup was retried
    return select_latest(related)


def find_related_restore(restores: Sequence[Restore], tag: str) -> Optional[Restore]:
    """Coordinator restore record for a snapshot tag, None if there is none."""
    related: List[Restore] = [
        restore for restore in restores
        if restore.global_request and restore.snapshot_tag == tag
    ]
    if len(related) <= 1:
        return related[0] if related else None

    return select_latest(related)
