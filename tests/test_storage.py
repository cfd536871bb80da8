"""
Tests for storage provider detection and credential validation.
"""
import pytest

from backup_operator.core.storage import (
    StorageProvider,
    storage_provider,
    validate_storage_location,
    validate_storage_secret,
)
from backup_operator.exceptions import InvalidSpecError, InvalidStorageSecretError


@pytest.mark.parametrize(
    "location,provider",
    [
        ("s3://bucket/path", StorageProvider.S3),
        ("gcp://bucket", StorageProvider.GCP),
        ("azure://container", StorageProvider.AZURE),
        ("minio://bucket", StorageProvider.MINIO),
        ("ceph://bucket", StorageProvider.CEPH),
        ("oracle://bucket", StorageProvider.ORACLE),
        ("file:///var/backups", None),
        ("", None),
    ],
)
def test_storage_provider(location, provider):
    assert storage_provider(location) == provider


class TestS3Compatible:
    def test_full_credentials(self):
        validate_storage_secret(
            "creds",
            {"awsaccesskeyid": b"id", "awssecretaccesskey": b"key", "awsregion": b"eu-west-1"},
            StorageProvider.S3,
        )

    def test_keys_without_region(self):
        with pytest.raises(InvalidStorageSecretError, match="awsregion"):
            validate_storage_secret(
                "creds",
                {"awsaccesskeyid": b"id", "awssecretaccesskey": b"key"},
                StorageProvider.MINIO,
            )

    def test_endpoint_without_region(self):
        with pytest.raises(InvalidStorageSecretError, match="awsendpoint"):
            validate_storage_secret("creds", {"awsendpoint": b"http://minio:9000"}, StorageProvider.CEPH)

    def test_environment_credentials_are_allowed(self):
        validate_storage_secret("creds", {}, StorageProvider.S3)

    def test_empty_values_count_as_missing(self):
        validate_storage_secret(
            "creds",
            {"awsaccesskeyid": b"", "awssecretaccesskey": b"key"},
            StorageProvider.ORACLE,
        )


def test_gcp_requires_key():
    validate_storage_secret("creds", {"gcp": b"{}"}, StorageProvider.GCP)
    with pytest.raises(InvalidStorageSecretError, match="gcp"):
        validate_storage_secret("creds", {}, StorageProvider.GCP)


@pytest.mark.parametrize("missing", ["azurestorageaccount", "azurestoragekey"])
def test_azure_requires_account_and_key(missing):
    data = {"azurestorageaccount": b"account", "azurestoragekey": b"key"}
    del data[missing]
    with pytest.raises(InvalidStorageSecretError, match=missing):
        validate_storage_secret("creds", data, StorageProvider.AZURE)


@pytest.mark.parametrize("location,provider", [
    ("s3://bucket/path", StorageProvider.S3),
    ("ceph://bucket", StorageProvider.CEPH),
    ("azure://container", StorageProvider.AZURE),
])
def test_valid_storage_location(location, provider):
    assert validate_storage_location(location) == provider


@pytest.mark.parametrize("location,match", [
    ("my-bucket/backups", "protocol://backup/location"),
    ("", "protocol://backup/location"),
    ("file:///var/backups", "not supported"),
    ("S3://bucket", "not supported"),
])
def test_malformed_storage_location(location, match):
    with pytest.raises(InvalidSpecError, match=match):
        validate_storage_location(location)
