"""
CassandraBackup reconciler.

Submits a backup to Icarus for every CassandraBackup, follows the operation
and mirrors its progress into the resource status.
"""
from structlog.contextvars import bound_contextvars

from backup_operator.config.logging import get_logger
from backup_operator.core import request_builder
from backup_operator.core.matcher import find_related_backup
from backup_operator.core.storage import validate_storage_location
from backup_operator.core.validation import validate_backup_spec
from backup_operator.models.operation import OperationState
from backup_operator.models.resources import CassandraBackup, CassandraCluster
from backup_operator.reconcilers.common import (
    EventSink,
    OperationKind,
    ReconcileResult,
    check_storage_credentials,
    guarded,
    ready_cluster,
    reconcile_failed,
    sync_status,
)
from backup_operator.services.icarus_client import IcarusClient, IcarusClientFactory

logger = get_logger(__name__)


class BackupReconciler:
    """Reconciles CassandraBackup resources against Icarus backup operations."""

    def __init__(self, kube, icarus: IcarusClientFactory, events: EventSink, retry_delay: float):
        """
        Args:
            kube: KubeClient, or anything with the same reads and update_status
            icarus: Builds the client of a cluster's coordinator pod
            events: Records events on the resource
            retry_delay: Seconds until a resource is looked at again
        """
        self.kube = kube
        self.icarus = icarus
        self.events = events
        self.retry_delay = retry_delay

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        with bound_contextvars(kind=CassandraBackup.KIND, namespace=namespace, name=name):
            return await guarded(self._reconcile(namespace, name), self.retry_delay)

    async def _reconcile(self, namespace: str, name: str) -> ReconcileResult:
        backup = await self.kube.get_backup(namespace, name)
        if backup is None:
            logger.debug("backup_gone")
            return ReconcileResult()

        validate_backup_spec(backup)
        cluster = await ready_cluster(self.kube, self.events, backup)
        await check_storage_credentials(
            self.kube,
            self.events,
            backup,
            backup.spec.secret_name,
            validate_storage_location(backup.spec.storage_location),
        )

        icarus = self.icarus.for_cluster(cluster.name, cluster.namespace, cluster.first_dc)
        return await self.reconcile_backup(icarus, cluster, backup)

    async def reconcile_backup(
        self,
        icarus: IcarusClient,
        cluster: CassandraCluster,
        backup: CassandraBackup,
    ) -> ReconcileResult:
        """
        Drive one backup against the operations Icarus knows about.

        A new backup is submitted when Icarus has no operation for the tag,
        or has one but the resource never tracked it (e.g. an incremental
        backup reusing a tag). Completed backups keep being polled.
        """
        existing = await icarus.backups()
        tag = backup.effective_tag
        related = find_related_backup(existing, tag)

        if backup.status.state == OperationState.FAILED:
            if related is None:
                logger.info(
                    "failed_backup_without_record",
                    snapshot_tag=tag,
                    message="Recreate the CassandraBackup resource to start a new backup attempt",
                )
                return ReconcileResult()

            resubmitted = await reconcile_failed(
                self._operation_kind(icarus, cluster, backup),
                backup,
                related,
                self.kube,
                self.events,
            )
            if resubmitted:
                return ReconcileResult(requeue_after=self.retry_delay)
            return ReconcileResult()

        if related is None or not backup.status.state:
            related = await icarus.backup(request_builder.build_backup_request(cluster, backup))
            logger.info(
                "backup_request_sent",
                operation_id=related.id,
                snapshot_tag=tag,
            )

        await sync_status(backup, related, self.kube)
        return ReconcileResult(requeue_after=self.retry_delay)

    @staticmethod
    def _operation_kind(
        icarus: IcarusClient,
        cluster: CassandraCluster,
        backup: CassandraBackup,
    ) -> OperationKind:
        return OperationKind(
            name="backup",
            submit=icarus.backup,
            build_request=lambda: request_builder.build_backup_request(cluster, backup),
            reconstruct_request=request_builder.reconstruct_backup_request,
            requests_equal=request_builder.backup_requests_equal,
            request_diff=request_builder.backup_request_diff,
        )
