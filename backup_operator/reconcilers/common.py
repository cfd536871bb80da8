"""
Routines shared by the backup and restore reconcilers.

Both flows track one Icarus operation per resource, mirror its progress
into the resource status and, once it failed, only resubmit after the user
changed the configuration. What differs between backups and restores is
passed in as an OperationKind rather than expressed through inheritance.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Protocol, TypeVar, Union

from backup_operator.config.logging import get_logger
from backup_operator.core.status import project_status
from backup_operator.core.storage import StorageProvider, validate_storage_secret
from backup_operator.exceptions import (
    ClusterNotReadyError,
    ConflictError,
    InvalidSpecError,
    InvalidStorageSecretError,
    ResourceNotFoundError,
    TransientError,
)
from backup_operator.models.operation import OperationRecord
from backup_operator.models.resources import (
    CassandraBackup,
    CassandraCluster,
    CassandraRestore,
    OperationStatus,
)
from backup_operator.services import events as ev

logger = get_logger(__name__)

Intent = Union[CassandraBackup, CassandraRestore]
Req = TypeVar("Req")
Op = TypeVar("Op", bound=OperationRecord)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one pass, telling the controller when to run it again."""
    requeue: bool = False
    requeue_after: Optional[float] = None


class StatusWriter(Protocol):
    async def update_status(self, intent: Intent, status: OperationStatus) -> None:
        ...


class EventSink(Protocol):
    async def warning(self, intent: Intent, reason: str, message: str) -> None:
        ...

    async def normal(self, intent: Intent, reason: str, message: str) -> None:
        ...


@dataclass(frozen=True)
class OperationKind(Generic[Req, Op]):
    """
    Capabilities of one kind of Icarus operation for one pass.

    Attributes:
        name: "backup" or "restore", used in logs and messages
        submit: Sends a request; returns the created operation when Icarus
            reports it back, None otherwise
        build_request: Request the current resource spec translates to
        reconstruct_request: Request an existing operation was created from
        requests_equal: Configuration equality, ignoring the snapshot tag
        request_diff: Names of the differing configuration fields
    """
    name: str
    submit: Callable[[Req], Awaitable[Optional[Op]]]
    build_request: Callable[[], Req]
    reconstruct_request: Callable[[Op], Req]
    requests_equal: Callable[[Req, Req], bool]
    request_diff: Callable[[Req, Req], List[str]]


async def sync_status(
    intent: Intent,
    operation: OperationRecord,
    writer: StatusWriter,
    current: Optional[OperationStatus] = None,
) -> bool:
    """
    Mirror an operation onto the status of a resource.

    The status is written only when the projection differs from ``current``,
    which defaults to the status read with the resource.

    Returns:
        True if the status was written
    """
    if current is None:
        current = intent.status

    new_status, changed = project_status(current, operation)
    if not changed:
        return False

    logger.info(
        "status_updating",
        operation_id=operation.id,
        old_state=current.state,
        new_state=new_status.state,
        old_progress=current.progress,
        new_progress=new_status.progress,
        errors=len(new_status.errors),
    )
    await writer.update_status(intent, new_status)
    return True


async def reconcile_failed(
    kind: OperationKind,
    intent: Intent,
    operation: OperationRecord,
    writer: StatusWriter,
    events: EventSink,
) -> bool:
    """
    Handle a resource whose tracked operation failed.

    A new operation is submitted only if the configuration changed since
    the failed one was submitted. The status is then reset and tracking
    starts over with the new operation. An unchanged configuration is
    assumed to be the reason for the failure and is left for the user to fix.

    Returns:
        True if a new operation was submitted
    """
    new_request = kind.build_request()
    failed_request = kind.reconstruct_request(operation)

    if kind.requests_equal(failed_request, new_request):
        message = (
            f"{kind.name.capitalize()} {intent.namespace}/{intent.name} has failed. "
            f"Assuming configuration error. Apply the fixed {intent.KIND} "
            f"configuration to trigger a new retry"
        )
        logger.info("configuration_error_suspected", operation_id=operation.id)
        await events.warning(intent, ev.REASON_CONFIGURATION_ERROR, message)
        return False

    logger.info(
        "configuration_change_detected",
        operation_id=operation.id,
        changed_fields=kind.request_diff(failed_request, new_request),
    )
    submitted = await kind.submit(new_request)

    reset = OperationStatus()
    if submitted is None:
        # Icarus does not report the created operation, the next pass picks it up
        await writer.update_status(intent, reset)
    else:
        await sync_status(intent, submitted, writer, current=reset)

    await events.normal(
        intent,
        ev.REASON_RESUBMITTED,
        f"Configuration changed, a new {kind.name} request was sent",
    )
    return True


async def ready_cluster(
    kube,
    events: EventSink,
    intent: Intent,
) -> CassandraCluster:
    """
    Get the CassandraCluster a resource refers to.

    Raises:
        ResourceNotFoundError: The cluster does not exist
        ClusterNotReadyError: The cluster is not ready yet
        InvalidSpecError: The cluster declares no datacenter
    """
    cluster_name = intent.spec.cassandra_cluster
    cluster = await kube.get_cluster(intent.namespace, cluster_name)
    if cluster is None:
        await events.warning(
            intent,
            ev.REASON_CLUSTER_NOT_FOUND,
            f"CassandraCluster {cluster_name} not found",
        )
        raise ResourceNotFoundError("CassandraCluster", intent.namespace, cluster_name)

    if not cluster.ready:
        raise ClusterNotReadyError(
            f"CassandraCluster {cluster.namespace}/{cluster.name} is not ready",
            details={"cluster": cluster.name},
        )

    if cluster.first_dc is None:
        raise InvalidSpecError(
            f"CassandraCluster {cluster.namespace}/{cluster.name} has no datacenters",
            details={"cluster": cluster.name},
        )
    return cluster


async def check_storage_credentials(
    kube,
    events: EventSink,
    intent: Intent,
    secret_name: str,
    provider: Optional[StorageProvider],
) -> None:
    """
    Make sure the storage credentials secret exists and fits the provider.

    Raises:
        InvalidSpecError: No secret is configured
        ResourceNotFoundError: The secret does not exist
        InvalidStorageSecretError: The secret lacks keys the provider needs
    """
    if not secret_name:
        raise InvalidSpecError(
            f"{intent.KIND} {intent.namespace}/{intent.name} has no storage credentials secret",
            details={"name": intent.name},
        )

    data = await kube.get_secret(intent.namespace, secret_name)
    if data is None:
        await events.warning(
            intent,
            ev.REASON_SECRET_NOT_FOUND,
            f"Storage credentials secret {secret_name!r} not found",
        )
        raise ResourceNotFoundError("Secret", intent.namespace, secret_name)

    try:
        validate_storage_secret(secret_name, data, provider)
    except InvalidStorageSecretError as e:
        await events.warning(
            intent,
            ev.REASON_SECRET_INVALID,
            f"Storage credentials secret {secret_name!r} is invalid: {e.message}",
        )
        raise


async def guarded(pass_: Awaitable[ReconcileResult], retry_delay: float) -> ReconcileResult:
    """
    Run a reconciliation pass, turning expected failures into requeues.

    Conflicts re-run the pass at once. Transient conditions re-run it after
    ``retry_delay``. Everything else propagates to the controller.
    """
    try:
        return await pass_
    except ConflictError as e:
        logger.info("conflict_occurred_retrying", error=e.message)
        return ReconcileResult(requeue=True)
    except TransientError as e:
        logger.warning(
            "reconcile_deferred",
            error=e.message,
            error_type=type(e).__name__,
            retry_in_seconds=retry_delay,
        )
        return ReconcileResult(requeue_after=retry_delay)
