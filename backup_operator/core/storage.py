"""
Storage provider detection and credential validation.

Icarus reads cloud storage credentials from a Kubernetes secret. The keys it
needs depend on the provider encoded in the storage location scheme, e.g.
``s3://bucket`` or ``gcp://bucket``.
"""
from enum import Enum
from typing import Mapping, Optional

from backup_operator.config.logging import get_logger
from backup_operator.exceptions import InvalidSpecError, InvalidStorageSecretError

logger = get_logger(__name__)


class StorageProvider(str, Enum):
    """Storage providers supported by Icarus."""
    S3 = "s3"
    GCP = "gcp"
    AZURE = "azure"
    MINIO = "minio"
    CEPH = "ceph"
    ORACLE = "oracle"


# Providers speaking the S3 protocol share the aws* secret keys
S3_COMPATIBLE = {
    StorageProvider.S3,
    StorageProvider.MINIO,
    StorageProvider.ORACLE,
    StorageProvider.CEPH,
}


def storage_provider(storage_location: str) -> Optional[StorageProvider]:
    """Detect the provider from the scheme of a storage location."""
    for provider in StorageProvider:
        if storage_location.startswith(f"{provider.value}://"):
            return provider
    return None


def validate_storage_location(storage_location: str) -> StorageProvider:
    """
    Check that a storage location reads ``protocol://backup/location`` with a
    protocol Icarus supports.

    Returns:
        The provider of the location

    Raises:
        InvalidSpecError: If the protocol is missing or not supported
    """
    protocol, separator, _ = storage_location.partition("://")
    if not separator:
        raise InvalidSpecError(
            f"storage location {storage_location!r} should be in format 'protocol://backup/location'",
            details={"storage_location": storage_location},
        )

    try:
        return StorageProvider(protocol)
    except ValueError:
        supported = [provider.value for provider in StorageProvider]
        raise InvalidSpecError(
            f"protocol {protocol!r} is not supported, should be one of {supported}",
            details={"storage_location": storage_location},
        ) from None


def validate_storage_secret(
    secret_name: str,
    data: Mapping[str, bytes],
    provider: StorageProvider,
) -> None:
    """
    Check that a storage credentials secret fits the storage provider.

    Args:
        secret_name: Secret name, used in messages
        data: Decoded secret data
        provider: Provider of the storage location

    Raises:
        InvalidStorageSecretError: If a key required by the provider is missing
    """
    def has(key: str) -> bool:
        return len(data.get(key) or b"") > 0

    if provider in S3_COMPATIBLE:
        if not has("awssecretaccesskey") or not has("awsaccesskeyid"):
            logger.info(
                "storage_secret_uses_environment_credentials",
                secret=secret_name,
                message="AWS keys not set, Icarus will use AWS compatible env vars",
            )

        if has("awssecretaccesskey") and has("awsaccesskeyid") and not has("awsregion"):
            raise InvalidStorageSecretError(
                f"there is no 'awsregion' property while you have set both "
                f"'awssecretaccesskey' and 'awsaccesskeyid' in {secret_name} secret",
                details={"secret": secret_name, "provider": provider.value},
            )

        if has("awsendpoint") and not has("awsregion"):
            raise InvalidStorageSecretError(
                f"'awsendpoint' is specified but 'awsregion' is not set in {secret_name} secret",
                details={"secret": secret_name, "provider": provider.value},
            )

    if provider == StorageProvider.GCP and not has("gcp"):
        raise InvalidStorageSecretError(
            f"storage provider is GCP but key 'gcp' for secret {secret_name} is not set",
            details={"secret": secret_name, "provider": provider.value},
        )

    if provider == StorageProvider.AZURE:
        for key in ("azurestorageaccount", "azurestoragekey"):
            if not has(key):
                raise InvalidStorageSecretError(
                    f"'{key}' key for secret {secret_name} is not set",
                    details={"secret": secret_name, "provider": provider.value},
                )
