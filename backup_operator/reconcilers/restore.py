"""
CassandraRestore reconciler.

Unlike backups, a restore overwrites live data, so a restore is submitted
at most once per configuration and a completed restore is never looked at
again.
"""
from typing import Optional

from structlog.contextvars import bound_contextvars

from backup_operator.config.logging import get_logger
from backup_operator.core import request_builder
from backup_operator.core.matcher import find_related_restore
from backup_operator.core.storage import validate_storage_location
from backup_operator.core.validation import validate_restore_spec
from backup_operator.exceptions import ResourceNotFoundError
from backup_operator.models.operation import OperationState
from backup_operator.models.resources import (
    CassandraBackup,
    CassandraCluster,
    CassandraRestore,
)
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
from backup_operator.services import events as ev
from backup_operator.services.icarus_client import IcarusClient, IcarusClientFactory

logger = get_logger(__name__)


class RestoreReconciler:
    """Reconciles CassandraRestore resources against Icarus restore operations."""

    def __init__(self, kube, icarus: IcarusClientFactory, events: EventSink, retry_delay: float):
        self.kube = kube
        self.icarus = icarus
        self.events = events
        self.retry_delay = retry_delay

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        with bound_contextvars(kind=CassandraRestore.KIND, namespace=namespace, name=name):
            return await guarded(self._reconcile(namespace, name), self.retry_delay)

    async def _reconcile(self, namespace: str, name: str) -> ReconcileResult:
        restore = await self.kube.get_restore(namespace, name)
        if restore is None:
            logger.debug("restore_gone")
            return ReconcileResult()

        if restore.status.state == OperationState.COMPLETED:
            logger.debug("restore_completed")
            return ReconcileResult()

        validate_restore_spec(restore)
        cluster = await ready_cluster(self.kube, self.events, restore)
        backup = await self._linked_backup(restore)

        location = request_builder.restore_storage_location(restore, backup)
        await check_storage_credentials(
            self.kube,
            self.events,
            restore,
            request_builder.restore_secret_name(restore, backup),
            validate_storage_location(location),
        )

        icarus = self.icarus.for_cluster(cluster.name, cluster.namespace, cluster.first_dc)
        return await self.reconcile_restore(icarus, cluster, restore, backup)

    async def _linked_backup(self, restore: CassandraRestore) -> Optional[CassandraBackup]:
        backup_name = restore.spec.cassandra_backup
        if not backup_name:
            return None

        backup = await self.kube.get_backup(restore.namespace, backup_name)
        if backup is None:
            await self.events.warning(
                restore,
                ev.REASON_BACKUP_NOT_FOUND,
                f"Restore failed. CassandraBackup {backup_name} not found",
            )
            raise ResourceNotFoundError(CassandraBackup.KIND, restore.namespace, backup_name)
        return backup

    async def reconcile_restore(
        self,
        icarus: IcarusClient,
        cluster: CassandraCluster,
        restore: CassandraRestore,
        backup: Optional[CassandraBackup],
    ) -> ReconcileResult:
        """
        Drive one restore against the operations Icarus knows about.

        Icarus does not return the created restore, so after a submission the
        status is only tracked from the next pass on.
        """
        tag = request_builder.restore_snapshot_tag(restore, backup)
        existing = await icarus.restores()
        related = find_related_restore(existing, tag)

        if restore.status.state == OperationState.FAILED:
            if related is None:
                logger.info(
                    "failed_restore_without_record",
                    snapshot_tag=tag,
                    message="Recreate the CassandraRestore resource to start a new restore attempt",
                )
                return ReconcileResult()

            resubmitted = await reconcile_failed(
                self._operation_kind(icarus, cluster, restore, backup),
                restore,
                related,
                self.kube,
                self.events,
            )
            if resubmitted:
                return ReconcileResult(requeue_after=self.retry_delay)
            return ReconcileResult()

        if related is None:
            await icarus.restore(request_builder.build_restore_request(cluster, restore, backup))
            logger.info("restore_request_sent", snapshot_tag=tag)
            return ReconcileResult(requeue_after=self.retry_delay)

        await sync_status(restore, related, self.kube)
        return ReconcileResult(requeue_after=self.retry_delay)

    @staticmethod
    def _operation_kind(
        icarus: IcarusClient,
        cluster: CassandraCluster,
        restore: CassandraRestore,
        backup: Optional[CassandraBackup],
    ) -> OperationKind:
        return OperationKind(
            name="restore",
            submit=icarus.restore,
            build_request=lambda: request_builder.build_restore_request(cluster, restore, backup),
            reconstruct_request=request_builder.reconstruct_restore_request,
            requests_equal=request_builder.restore_requests_equal,
            request_diff=request_builder.restore_request_diff,
        )
