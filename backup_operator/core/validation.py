"""
Resource spec validation.

A spec that fails these checks can never turn into a valid Icarus request,
so the reconcilers reject it before talking to Icarus at all.
"""
import re
from typing import List

from backup_operator.core.storage import validate_storage_location
from backup_operator.exceptions import InvalidSpecError
from backup_operator.models.resources import CassandraBackup, CassandraRestore

DURATION_UNITS = (
    "days",
    "hours",
    "microseconds",
    "milliseconds",
    "minutes",
    "nanoseconds",
    "seconds",
)

_AMOUNT = re.compile(r"[+-]?[0-9]+")


def validate_duration(duration: str) -> None:
    """
    Check a backup duration of the form ``"<amount> <unit>"``, e.g. ``"2 hours"``.

    An empty duration is valid and means no limit.

    Raises:
        InvalidSpecError: If the duration does not match the format
    """
    if not duration:
        return

    parts = duration.split(" ")
    if (
        len(parts) != 2
        or not _AMOUNT.fullmatch(parts[0])
        or parts[1].strip().lower() not in DURATION_UNITS
    ):
        raise InvalidSpecError(
            f"duration {duration!r} should be in format \"amount unit\", where amount "
            f"is an integer value and unit is one of {list(DURATION_UNITS)}",
            details={"duration": duration},
        )


def _raise_if_any(kind: str, namespace: str, name: str, errors: List[str]) -> None:
    if errors:
        raise InvalidSpecError(
            f"{kind} {namespace}/{name} is invalid: {'; '.join(errors)}",
            details={"errors": errors},
        )


def validate_backup_spec(backup: CassandraBackup) -> None:
    """
    Raises:
        InvalidSpecError: Listing every problem found in .spec
    """
    errors = []
    for check, value in (
        (validate_storage_location, backup.spec.storage_location),
        (validate_duration, backup.spec.duration),
    ):
        try:
            check(value)
        except InvalidSpecError as e:
            errors.append(e.message)
    _raise_if_any(backup.KIND, backup.namespace, backup.name, errors)


def validate_restore_spec(restore: CassandraRestore) -> None:
    """
    A restore either names a CassandraBackup or carries its own storage
    location, snapshot tag and secret.

    Raises:
        InvalidSpecError: Listing every problem found in .spec
    """
    spec = restore.spec
    errors = []
    if not spec.cassandra_backup:
        if not (spec.storage_location and spec.snapshot_tag and spec.secret_name):
            errors.append(
                ".spec.storageLocation, .spec.snapshotTag and .spec.secretName "
                "should be set if .spec.cassandraBackup is not set"
            )
        else:
            try:
                validate_storage_location(spec.storage_location)
            except InvalidSpecError as e:
                errors.append(e.message)
    _raise_if_any(restore.KIND, restore.namespace, restore.name, errors)
