"""
Icarus request construction.

Builds the request that should be submitted for a CassandraBackup or
CassandraRestore, and rebuilds the request implied by an operation Icarus
already ran. Comparing the two tells whether the user changed the
configuration since the operation was submitted.

Every function here is pure: the same inputs always produce equal requests
and inputs are never modified.
"""
from typing import Any, Dict, List, Optional

from backup_operator.core.storage import validate_storage_location
from backup_operator.exceptions import InvalidSpecError
from backup_operator.models.operation import (
    Backup,
    BackupRequest,
    DataRate,
    Restore,
    RestoreImport,
    RestoreRequest,
    Retry,
)
from backup_operator.models.resources import (
    CassandraBackup,
    CassandraCluster,
    CassandraRestore,
)

CASSANDRA_DATA_DIR = "/var/lib/cassandra/data"
DOWNLOADED_SSTABLES_DIR = "file:///var/lib/cassandra/downloadedsstables"

DEFAULT_CONCURRENT_CONNECTIONS = 10
DEFAULT_TIMEOUT_HOURS = 5
DEFAULT_METADATA_DIRECTIVE = "COPY"
DEFAULT_RETRY_INTERVAL = 10
DEFAULT_RETRY_STRATEGY = "LINEAR"
DEFAULT_RETRY_MAX_ATTEMPTS = 3

RESTORATION_STRATEGY_HARDLINKS = "HARDLINKS"
RESTORATION_PHASE_INIT = "INIT"
IMPORT_TYPE = "import"


def storage_path(storage_location: str, cluster: CassandraCluster) -> str:
    """
    Icarus storage path of a cluster: ``{location}/{cluster}/{firstDC}/1``.

    Raises:
        InvalidSpecError: If the location is malformed or the cluster has no DCs
    """
    if not storage_location:
        raise InvalidSpecError(
            "storage location is not set",
            details={"cluster": cluster.name},
        )
    validate_storage_location(storage_location)
    dc_name = cluster.first_dc
    if dc_name is None:
        raise InvalidSpecError(
            f"CassandraCluster {cluster.namespace}/{cluster.name} has no datacenters",
            details={"cluster": cluster.name},
        )

    if not storage_location.endswith("/"):
        storage_location += "/"
    return f"{storage_location}{cluster.name}/{dc_name}/1"


def _defaulted_retry(retry: Retry) -> Retry:
    return Retry(
        interval=retry.interval or DEFAULT_RETRY_INTERVAL,
        strategy=retry.strategy or DEFAULT_RETRY_STRATEGY,
        max_attempts=retry.max_attempts or DEFAULT_RETRY_MAX_ATTEMPTS,
        enabled=retry.enabled,
    )


def build_backup_request(cluster: CassandraCluster, backup: CassandraBackup) -> BackupRequest:
    """Build the backup request for a CassandraBackup, applying defaults to unset tunables."""
    spec = backup.spec

    bandwidth = None
    if spec.bandwidth is not None and spec.bandwidth.value > 0:
        bandwidth = DataRate(value=spec.bandwidth.value, unit=spec.bandwidth.unit)

    return BackupRequest(
        type="backup",
        storage_location=storage_path(spec.storage_location, cluster),
        data_dirs=[CASSANDRA_DATA_DIR],
        global_request=True,
        snapshot_tag=backup.effective_tag,
        k8s_namespace=backup.namespace,
        k8s_secret_name=spec.secret_name,
        duration=spec.duration,
        bandwidth=bandwidth,
        concurrent_connections=spec.concurrent_connections or DEFAULT_CONCURRENT_CONNECTIONS,
        dc=spec.dc,
        entities=spec.entities,
        timeout=spec.timeout or DEFAULT_TIMEOUT_HOURS,
        metadata_directive=spec.metadata_directive or DEFAULT_METADATA_DIRECTIVE,
        insecure=spec.insecure,
        create_missing_bucket=spec.create_missing_bucket,
        skip_refreshing=spec.skip_refreshing,
        skip_bucket_verification=spec.skip_bucket_verification,
        retry=_defaulted_retry(spec.retry),
    )


def restore_snapshot_tag(restore: CassandraRestore, backup: Optional[CassandraBackup]) -> str:
    """
    Snapshot tag a restore reads from.

    Raises:
        InvalidSpecError: If neither the restore nor a linked backup names one
    """
    if restore.spec.snapshot_tag:
        return restore.spec.snapshot_tag
    if backup is None:
        raise InvalidSpecError(
            "No snapshotTag specified. It should be in the CassandraRestore spec (.spec.snapshotTag) "
            "or a CassandraBackup should be specified (.spec.cassandraBackup)",
            details={"restore": restore.name},
        )
    return backup.effective_tag


def restore_secret_name(restore: CassandraRestore, backup: Optional[CassandraBackup]) -> str:
    """Storage credentials secret of a restore, falling back to the linked backup's."""
    if restore.spec.secret_name or backup is None:
        return restore.spec.secret_name
    return backup.spec.secret_name


def restore_storage_location(restore: CassandraRestore, backup: Optional[CassandraBackup]) -> str:
    """Storage location of a restore, falling back to the linked backup's."""
    if restore.spec.storage_location or backup is None:
        return restore.spec.storage_location
    return backup.spec.storage_location


def build_restore_request(
    cluster: CassandraCluster,
    restore: CassandraRestore,
    backup: Optional[CassandraBackup] = None,
) -> RestoreRequest:
    """Build the restore request for a CassandraRestore and its optional linked backup."""
    spec = restore.spec
    import_spec = spec.import_

    return RestoreRequest(
        type="restore",
        dc=spec.dc,
        storage_location=storage_path(restore_storage_location(restore, backup), cluster),
        snapshot_tag=restore_snapshot_tag(restore, backup),
        data_dirs=[CASSANDRA_DATA_DIR],
        global_request=True,
        restoration_strategy_type=RESTORATION_STRATEGY_HARDLINKS,
        restoration_phase=RESTORATION_PHASE_INIT,
        import_=RestoreImport(
            type=IMPORT_TYPE,
            source_dir=DOWNLOADED_SSTABLES_DIR,
            keep_level=import_spec.keep_level,
            no_verify=import_spec.no_verify,
            no_verify_tokens=import_spec.no_verify_tokens,
            no_invalidate_caches=import_spec.no_invalidate_caches,
            quick=import_spec.quick,
            extended_verify=import_spec.extended_verify,
            keep_repaired=import_spec.keep_repaired,
        ),
        k8s_namespace=restore.namespace,
        k8s_secret_name=restore_secret_name(restore, backup),
        entities=spec.entities,
        single_phase=False,
        retry=_defaulted_retry(spec.retry),
        concurrent_connections=spec.concurrent_connections or DEFAULT_CONCURRENT_CONNECTIONS,
        skip_bucket_verification=spec.skip_bucket_verification,
        timeout=spec.timeout or DEFAULT_TIMEOUT_HOURS,
        no_delete_downloads=spec.no_delete_downloads,
        no_delete_truncates=spec.no_delete_truncates,
        no_download_data=spec.no_download_data,
        insecure=spec.insecure,
        rename=dict(spec.rename) if spec.rename is not None else {},
        resolve_host_id_from_topology=spec.resolve_host_id_from_topology,
        exact_schema_version=spec.exact_schema_version,
        schema_version=spec.schema_version,
    )


def reconstruct_backup_request(backup: Backup) -> BackupRequest:
    """Rebuild the request an Icarus backup record was created from."""
    return BackupRequest(
        type="backup",
        storage_location=backup.storage_location,
        data_dirs=list(backup.data_dirs),
        global_request=True,
        snapshot_tag=backup.snapshot_tag,
        k8s_namespace=backup.k8s_namespace,
        k8s_secret_name=backup.k8s_secret_name,
        duration=backup.duration,
        bandwidth=backup.bandwidth,
        concurrent_connections=backup.concurrent_connections,
        dc=backup.dc,
        entities=backup.entities,
        timeout=backup.timeout,
        metadata_directive=backup.metadata_directive,
        insecure=backup.insecure,
        create_missing_bucket=backup.create_missing_bucket,
        skip_refreshing=backup.skip_refreshing,
        skip_bucket_verification=backup.skip_bucket_verification,
        retry=backup.retry,
    )


def reconstruct_restore_request(restore: Restore) -> RestoreRequest:
    """Rebuild the request an Icarus restore record was created from."""
    return RestoreRequest(
        type="restore",
        storage_location=restore.storage_location,
        snapshot_tag=restore.snapshot_tag,
        data_dirs=list(restore.data_dirs),
        global_request=True,
        restoration_strategy_type=restore.restoration_strategy_type,
        restoration_phase=restore.restoration_phase,
        import_=restore.import_,
        k8s_namespace=restore.k8s_namespace,
        k8s_secret_name=restore.k8s_secret_name,
        concurrent_connections=restore.concurrent_connections,
        entities=restore.entities,
        no_delete_truncates=restore.no_delete_truncates,
        no_delete_downloads=restore.no_delete_downloads,
        no_download_data=restore.no_download_data,
        timeout=restore.timeout,
        resolve_host_id_from_topology=restore.resolve_host_id_from_topology,
        insecure=restore.insecure,
        skip_bucket_verification=restore.skip_bucket_verification,
        retry=restore.retry,
        rename=dict(restore.rename) if restore.rename is not None else {},
        single_phase=restore.single_phase,
        dc=restore.dc,
        schema_version=restore.schema_version,
        exact_schema_version=restore.exact_schema_version,
    )


def _backup_config(req: BackupRequest) -> Dict[str, Any]:
    # Snapshot tag is the identity of a backup, not part of its configuration
    return {
        "type": req.type,
        "storageLocation": req.storage_location,
        "dataDirs": req.data_dirs,
        "globalRequest": req.global_request,
        "k8sNamespace": req.k8s_namespace,
        "k8sSecretName": req.k8s_secret_name,
        "duration": req.duration,
        "bandwidth": req.bandwidth,
        "concurrentConnections": req.concurrent_connections,
        "dc": req.dc,
        "entities": req.entities,
        "timeout": req.timeout,
        "metadataDirective": req.metadata_directive,
        "insecure": req.insecure,
        "createMissingBucket": req.create_missing_bucket,
        "skipRefreshing": req.skip_refreshing,
        "skipBucketVerification": req.skip_bucket_verification,
        "retry": req.retry,
    }


def _restore_config(req: RestoreRequest) -> Dict[str, Any]:
    # Snapshot tag is the identity of a restore, not part of its configuration
    return {
        "type": req.type,
        "storageLocation": req.storage_location,
        "dataDirs": req.data_dirs,
        "globalRequest": req.global_request,
        "restorationStrategyType": req.restoration_strategy_type,
        "restorationPhase": req.restoration_phase,
        "import": req.import_,
        "k8sNamespace": req.k8s_namespace,
        "k8sSecretName": req.k8s_secret_name,
        "concurrentConnections": req.concurrent_connections,
        "entities": req.entities,
        "noDeleteTruncates": req.no_delete_truncates,
        "noDeleteDownloads": req.no_delete_downloads,
        "noDownloadData": req.no_download_data,
        "timeout": req.timeout,
        "resolveHostIdFromTopology": req.resolve_host_id_from_topology,
        "insecure": req.insecure,
        "skipBucketVerification": req.skip_bucket_verification,
        "retry": req.retry,
        "rename": req.rename,
        "singlePhase": req.single_phase,
        "dc": req.dc,
        "schemaVersion": req.schema_version,
        "exactSchemaVersion": req.exact_schema_version,
    }


def _diff(old: Dict[str, Any], new: Dict[str, Any]) -> List[str]:
    return [field for field, value in old.items() if new[field] != value]


def backup_requests_equal(old: BackupRequest, new: BackupRequest) -> bool:
    """Compare two backup requests on everything but the snapshot tag."""
    return _backup_config(old) == _backup_config(new)


def backup_request_diff(old: BackupRequest, new: BackupRequest) -> List[str]:
    """Wire names of the configuration fields that differ."""
    return _diff(_backup_config(old), _backup_config(new))


def restore_requests_equal(old: RestoreRequest, new: RestoreRequest) -> bool:
    """Compare two restore requests on everything but the snapshot tag."""
    return _restore_config(old) == _restore_config(new)


def restore_request_diff(old: RestoreRequest, new: RestoreRequest) -> List[str]:
    """Wire names of the configuration fields that differ."""
    return _diff(_restore_config(old), _restore_config(new))
