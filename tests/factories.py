"""
In-memory stand-ins for the Kubernetes API and Icarus, and resource builders.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from backup_operator.exceptions import ConflictError
from backup_operator.models.operation import Backup, BackupRequest, Restore, RestoreRequest
from backup_operator.models.resources import (
    CassandraBackup,
    CassandraCluster,
    CassandraRestore,
    OperationStatus,
)

NAMESPACE = "test-ns"
CLUSTER = "test-cluster"
DC = "dc1"
SECRET = "storage-credentials"
RETRY_DELAY = 10.0

S3_SECRET = {
    "awsaccesskeyid": b"AKIA",
    "awssecretaccesskey": b"secret",
    "awsregion": b"us-east-1",
}


class FakeKube:
    """Holds resources in dicts and records status writes."""

    def __init__(self):
        self.clusters: Dict[Tuple[str, str], CassandraCluster] = {}
        self.backups: Dict[Tuple[str, str], CassandraBackup] = {}
        self.restores: Dict[Tuple[str, str], CassandraRestore] = {}
        self.secrets: Dict[Tuple[str, str], Dict[str, bytes]] = {}
        self.status_writes: List[Tuple[str, str, OperationStatus]] = []
        self.conflict_on_write = False

    def add(self, resource):
        store = {
            CassandraCluster.KIND: self.clusters,
            CassandraBackup.KIND: self.backups,
            CassandraRestore.KIND: self.restores,
        }[resource.KIND]
        store[(resource.namespace, resource.name)] = resource
        return resource

    @staticmethod
    def _copy(resource):
        return resource.model_copy(deep=True) if resource is not None else None

    async def get_cluster(self, namespace: str, name: str) -> Optional[CassandraCluster]:
        return self._copy(self.clusters.get((namespace, name)))

    async def get_backup(self, namespace: str, name: str) -> Optional[CassandraBackup]:
        return self._copy(self.backups.get((namespace, name)))

    async def get_restore(self, namespace: str, name: str) -> Optional[CassandraRestore]:
        return self._copy(self.restores.get((namespace, name)))

    async def get_secret(self, namespace: str, name: str) -> Optional[Dict[str, bytes]]:
        data = self.secrets.get((namespace, name))
        return dict(data) if data is not None else None

    async def update_status(self, intent, status: OperationStatus) -> None:
        if self.conflict_on_write:
            raise ConflictError(f"{intent.KIND} {intent.namespace}/{intent.name} was modified concurrently")
        self.status_writes.append((intent.KIND, intent.name, status))
        store = self.backups if intent.KIND == CassandraBackup.KIND else self.restores
        store[(intent.namespace, intent.name)].status = status.model_copy(deep=True)
        intent.status = status

    def status_of(self, resource) -> OperationStatus:
        store = self.backups if resource.KIND == CassandraBackup.KIND else self.restores
        return store[(resource.namespace, resource.name)].status


class FakeIcarus:
    """Icarus coordinator keeping submitted operations in memory."""

    def __init__(self):
        self.backup_records: List[Backup] = []
        self.restore_records: List[Restore] = []
        self.backup_requests: List[BackupRequest] = []
        self.restore_requests: List[RestoreRequest] = []
        self.error: Optional[Exception] = None
        self._created = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _next_creation_time(self) -> str:
        self._created += timedelta(minutes=1)
        return self._created.strftime("%Y-%m-%dT%H:%M:%SZ")

    def _raise_if_failing(self):
        if self.error is not None:
            raise self.error

    def record_backup(self, request: BackupRequest, **fields) -> Backup:
        record = Backup.model_validate({
            **request.model_dump(by_alias=True),
            "id": f"backup-{len(self.backup_records) + 1}",
            "creationTime": self._next_creation_time(),
            "state": "PENDING",
            "progress": 0.0,
            **fields,
        })
        self.backup_records.append(record)
        return record

    def record_restore(self, request: RestoreRequest, **fields) -> Restore:
        record = Restore.model_validate({
            **request.model_dump(by_alias=True),
            "id": f"restore-{len(self.restore_records) + 1}",
            "creationTime": self._next_creation_time(),
            "state": "PENDING",
            "progress": 0.0,
            **fields,
        })
        self.restore_records.append(record)
        return record

    async def backups(self) -> List[Backup]:
        self._raise_if_failing()
        return list(self.backup_records)

    async def backup(self, request: BackupRequest) -> Backup:
        self._raise_if_failing()
        self.backup_requests.append(request)
        return self.record_backup(request)

    async def restores(self) -> List[Restore]:
        self._raise_if_failing()
        return list(self.restore_records)

    async def restore(self, request: RestoreRequest) -> None:
        self._raise_if_failing()
        self.restore_requests.append(request)
        self.record_restore(request)


class FakeIcarusFactory:
    def __init__(self, icarus: FakeIcarus):
        self.icarus = icarus
        self.clusters: List[Tuple[str, str, str]] = []

    def for_cluster(self, cluster_name: str, namespace: str, dc_name: str) -> FakeIcarus:
        self.clusters.append((cluster_name, namespace, dc_name))
        return self.icarus


class FakeEvents:
    def __init__(self):
        self.recorded: List[Tuple[str, str, str, str]] = []

    async def warning(self, intent, reason: str, message: str) -> None:
        self.recorded.append(("Warning", intent.name, reason, message))

    async def normal(self, intent, reason: str, message: str) -> None:
        self.recorded.append(("Normal", intent.name, reason, message))

    def reasons(self) -> List[str]:
        return [reason for _, _, reason, _ in self.recorded]


def cluster_resource(name: str = CLUSTER, ready: bool = True, dcs=(DC,)) -> CassandraCluster:
    return CassandraCluster.model_validate({
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": {"dcs": [{"name": dc, "replicas": 3} for dc in dcs]},
        "status": {"ready": ready},
    })


def backup_resource(name: str = "weekly-backup", status: Optional[dict] = None, **spec) -> CassandraBackup:
    return CassandraBackup.model_validate({
        "metadata": {"name": name, "namespace": NAMESPACE, "uid": f"uid-{name}", "resourceVersion": "1"},
        "spec": {
            "cassandraCluster": CLUSTER,
            "storageLocation": "s3://backups",
            "secretName": SECRET,
            **spec,
        },
        "status": status,
    })


def restore_resource(name: str = "restore", status: Optional[dict] = None, **spec) -> CassandraRestore:
    return CassandraRestore.model_validate({
        "metadata": {"name": name, "namespace": NAMESPACE, "uid": f"uid-{name}", "resourceVersion": "1"},
        "spec": {
            "cassandraCluster": CLUSTER,
            **spec,
        },
        "status": status,
    })
