"""
Tests for resource spec validation.
"""
import pytest

from backup_operator.core.validation import validate_backup_spec, validate_duration, validate_restore_spec
from backup_operator.exceptions import InvalidSpecError
from tests.factories import SECRET, backup_resource, restore_resource


@pytest.mark.parametrize("duration", ["", "2 hours", "30 minutes", "1 Days", "-5 seconds", "+10 milliseconds"])
def test_valid_duration(duration):
    validate_duration(duration)


@pytest.mark.parametrize(
    "duration",
    ["1h", "2hours", "2  hours", "two hours", "1.5 hours", "3 weeks", "1 hours extra", " 2 hours"],
)
def test_invalid_duration(duration):
    with pytest.raises(InvalidSpecError, match="amount unit"):
        validate_duration(duration)


def test_valid_backup_spec():
    validate_backup_spec(backup_resource(duration="12 hours"))


def test_backup_spec_reports_every_problem():
    backup = backup_resource(storageLocation="bucket", duration="1h")

    with pytest.raises(InvalidSpecError) as exc_info:
        validate_backup_spec(backup)

    assert len(exc_info.value.details["errors"]) == 2


def test_restore_from_linked_backup_needs_nothing_else():
    validate_restore_spec(restore_resource(cassandraBackup="nightly-backup"))


def test_standalone_restore_needs_location_tag_and_secret():
    with pytest.raises(InvalidSpecError, match="should be set"):
        validate_restore_spec(restore_resource(storageLocation="s3://backups", secretName=SECRET))


def test_standalone_restore_location_is_checked():
    restore = restore_resource(storageLocation="backups", snapshotTag="weekly", secretName=SECRET)

    with pytest.raises(InvalidSpecError, match="protocol"):
        validate_restore_spec(restore)
