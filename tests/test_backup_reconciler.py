"""
Tests for the CassandraBackup reconciler.
"""
import pytest

from backup_operator.core.request_builder import build_backup_request
from backup_operator.exceptions import IcarusConnectionError, IcarusError, InvalidSpecError
from backup_operator.models.resources import OperationStatus
from backup_operator.reconcilers.common import ReconcileResult
from backup_operator.services import events as ev
from tests.factories import (
    CLUSTER,
    DC,
    NAMESPACE,
    RETRY_DELAY,
    SECRET,
    backup_resource,
    cluster_resource,
)

pytestmark = pytest.mark.asyncio

FAILED_STATUS = {
    "state": "FAILED",
    "progress": 40,
    "errors": [{"source": "node-1", "message": "access denied"}],
}


def add_failed_record(icarus, cluster, backup):
    return icarus.record_backup(
        build_backup_request(cluster, backup),
        state="FAILED",
        progress=0.4,
        errors=[{"source": "node-1", "message": "access denied"}],
    )


async def test_first_submission(backup_reconciler, kube, icarus, icarus_factory):
    backup = kube.add(backup_resource("weekly-backup", snapshotTag="weekly"))

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert len(icarus.backup_requests) == 1
    assert icarus.backup_requests[0].snapshot_tag == "weekly"
    assert icarus_factory.clusters == [(CLUSTER, NAMESPACE, DC)]
    assert kube.status_of(backup) == OperationStatus(state="PENDING", progress=0)
    assert len(kube.status_writes) == 1
    assert result == ReconcileResult(requeue_after=RETRY_DELAY)


async def test_second_pass_is_idempotent(backup_reconciler, kube, icarus):
    kube.add(backup_resource("weekly-backup", snapshotTag="weekly"))

    await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")
    await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert len(icarus.backup_requests) == 1
    assert len(kube.status_writes) == 1


async def test_progress_is_tracked(backup_reconciler, kube, icarus, cluster):
    backup = kube.add(backup_resource(status={"state": "RUNNING", "progress": 10}))
    icarus.record_backup(build_backup_request(cluster, backup), state="RUNNING", progress=0.25)

    result = await backup_reconciler.reconcile(NAMESPACE, backup.name)

    assert icarus.backup_requests == []
    assert kube.status_of(backup) == OperationStatus(state="RUNNING", progress=25)
    assert result.requeue_after == RETRY_DELAY


async def test_completed_backup_keeps_polling(backup_reconciler, kube, icarus, cluster):
    backup = kube.add(backup_resource(status={"state": "COMPLETED", "progress": 100}))
    icarus.record_backup(build_backup_request(cluster, backup), state="COMPLETED", progress=1.0)

    result = await backup_reconciler.reconcile(NAMESPACE, backup.name)

    assert icarus.backup_requests == []
    assert kube.status_writes == []
    assert result.requeue_after == RETRY_DELAY


async def test_existing_tag_without_status_submits_again(backup_reconciler, kube, icarus, cluster):
    backup = kube.add(backup_resource(snapshotTag="incremental"))
    icarus.record_backup(build_backup_request(cluster, backup), state="COMPLETED", progress=1.0)

    await backup_reconciler.reconcile(NAMESPACE, backup.name)

    assert len(icarus.backup_requests) == 1
    assert kube.status_of(backup).state == "PENDING"


async def test_failed_with_changed_config_resubmits(backup_reconciler, kube, icarus, events, cluster):
    original = backup_resource("weekly-backup", snapshotTag="weekly")
    add_failed_record(icarus, cluster, original)
    backup = kube.add(backup_resource(
        "weekly-backup",
        snapshotTag="weekly",
        storageLocation="s3://fixed-bucket",
        status=FAILED_STATUS,
    ))

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert len(icarus.backup_requests) == 1
    assert icarus.backup_requests[0].storage_location == "s3://fixed-bucket/test-cluster/dc1/1"
    # reset and re-projection land in a single write
    assert len(kube.status_writes) == 1
    assert kube.status_of(backup) == OperationStatus(state="PENDING", progress=0, errors=[])
    assert ev.REASON_RESUBMITTED in events.reasons()
    assert result.requeue_after == RETRY_DELAY


async def test_resubmitted_backup_is_tracked_next_pass(backup_reconciler, kube, icarus, cluster):
    original = backup_resource("weekly-backup", snapshotTag="weekly")
    add_failed_record(icarus, cluster, original)
    kube.add(backup_resource("weekly-backup", snapshotTag="weekly", storageLocation="s3://fixed", status=FAILED_STATUS))

    await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")
    icarus.backup_records[-1] = icarus.backup_records[-1].model_copy(update={"state": "RUNNING", "progress": 0.3})
    await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert len(icarus.backup_requests) == 1
    assert kube.status_writes[-1][2] == OperationStatus(state="RUNNING", progress=30)


async def test_failed_with_unchanged_config_waits_for_user(backup_reconciler, kube, icarus, events, cluster):
    backup = kube.add(backup_resource("weekly-backup", snapshotTag="weekly", status=FAILED_STATUS))
    add_failed_record(icarus, cluster, backup)

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert icarus.backup_requests == []
    assert kube.status_writes == []
    assert kube.status_of(backup).state == "FAILED"
    assert events.reasons() == [ev.REASON_CONFIGURATION_ERROR]
    assert result == ReconcileResult()


async def test_failed_without_record(backup_reconciler, kube, icarus):
    kube.add(backup_resource(status=FAILED_STATUS))

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert icarus.backup_requests == []
    assert kube.status_writes == []
    assert result == ReconcileResult()


async def test_deleted_backup(backup_reconciler, icarus):
    result = await backup_reconciler.reconcile(NAMESPACE, "missing")

    assert result == ReconcileResult()
    assert icarus.backup_requests == []


async def test_missing_cluster(backup_reconciler, kube, icarus, events):
    kube.add(backup_resource(cassandraCluster="other-cluster"))

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert result == ReconcileResult(requeue_after=RETRY_DELAY)
    assert events.reasons() == [ev.REASON_CLUSTER_NOT_FOUND]
    assert icarus.backup_requests == []


async def test_cluster_not_ready(backup_reconciler, kube, icarus, events):
    kube.add(cluster_resource(ready=False))
    kube.add(backup_resource())

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert result == ReconcileResult(requeue_after=RETRY_DELAY)
    assert events.recorded == []
    assert icarus.backup_requests == []


async def test_missing_secret(backup_reconciler, kube, icarus, events):
    del kube.secrets[(NAMESPACE, SECRET)]
    kube.add(backup_resource())

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert result == ReconcileResult(requeue_after=RETRY_DELAY)
    assert events.reasons() == [ev.REASON_SECRET_NOT_FOUND]
    assert icarus.backup_requests == []


async def test_invalid_secret(backup_reconciler, kube, icarus, events):
    kube.secrets[(NAMESPACE, SECRET)] = {"awsaccesskeyid": b"id", "awssecretaccesskey": b"key"}
    kube.add(backup_resource())

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert result == ReconcileResult(requeue_after=RETRY_DELAY)
    assert events.reasons() == [ev.REASON_SECRET_INVALID]
    assert icarus.backup_requests == []


async def test_icarus_unreachable_is_retried(backup_reconciler, kube, icarus):
    kube.add(backup_resource())
    icarus.error = IcarusConnectionError("connection refused")

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert result == ReconcileResult(requeue_after=RETRY_DELAY)
    assert kube.status_writes == []


async def test_icarus_rejection_propagates(backup_reconciler, kube, icarus):
    kube.add(backup_resource())
    icarus.error = IcarusError("backup request failed", status_code=500, body="boom")

    with pytest.raises(IcarusError):
        await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")


async def test_status_conflict_requeues_immediately(backup_reconciler, kube):
    kube.add(backup_resource())
    kube.conflict_on_write = True

    result = await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert result == ReconcileResult(requeue=True)


@pytest.mark.parametrize("spec", [
    {"storageLocation": "my-bucket/backups"},
    {"storageLocation": "nfs://backups"},
    {"duration": "1h"},
])
async def test_invalid_spec_is_never_submitted(backup_reconciler, kube, icarus, icarus_factory, spec):
    kube.add(backup_resource(**spec))

    with pytest.raises(InvalidSpecError):
        await backup_reconciler.reconcile(NAMESPACE, "weekly-backup")

    assert icarus_factory.clusters == []
    assert icarus.backup_requests == []
    assert kube.status_writes == []
