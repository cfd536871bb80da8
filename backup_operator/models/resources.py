"""
Custom resource models.

Parsed from the dicts returned by the Kubernetes CustomObjectsApi. Only the
fields the reconcilers read are modelled; everything else is ignored.
"""
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backup_operator.models.operation import DataRate, OperationError, Retry


class ResourceModel(BaseModel):
    """Base model using the camelCase names of the Kubernetes API."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ObjectMeta(ResourceModel):
    name: str
    namespace: str = "default"
    uid: str = ""
    resource_version: str = ""


class OperationStatus(ResourceModel):
    """
    Status subresource shared by CassandraBackup and CassandraRestore.

    An empty state means the operator has not tracked any Icarus operation
    for the resource yet.
    """

    state: str = ""
    progress: int = 0
    errors: List[OperationError] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def null_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for the status subresource, omitting empty fields."""
        status: Dict[str, Any] = {}
        if self.state:
            status["state"] = self.state
        if self.progress:
            status["progress"] = self.progress
        if self.errors:
            status["errors"] = [
                error.model_dump(by_alias=True, exclude_defaults=True)
                for error in self.errors
            ]
        return status


class DC(ResourceModel):
    name: str
    replicas: Optional[int] = None


class CassandraClusterSpec(ResourceModel):
    dcs: List[DC] = Field(default_factory=list)


class CassandraClusterStatus(ResourceModel):
    ready: bool = False


class CassandraCluster(ResourceModel):
    KIND: ClassVar[str] = "CassandraCluster"
    PLURAL: ClassVar[str] = "cassandraclusters"

    metadata: ObjectMeta
    spec: CassandraClusterSpec = Field(default_factory=CassandraClusterSpec)
    status: CassandraClusterStatus = Field(default_factory=CassandraClusterStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def ready(self) -> bool:
        return self.status.ready

    @property
    def first_dc(self) -> Optional[str]:
        """Name of the first datacenter, None if the cluster declares none."""
        return self.spec.dcs[0].name if self.spec.dcs else None


class CassandraBackupSpec(ResourceModel):
    cassandra_cluster: str
    storage_location: str = ""
    secret_name: str = ""
    snapshot_tag: str = ""
    duration: str = ""
    bandwidth: Optional[DataRate] = None
    concurrent_connections: int = 0
    dc: str = ""
    entities: str = ""
    timeout: int = 0
    metadata_directive: str = ""
    insecure: bool = False
    create_missing_bucket: bool = False
    skip_bucket_verification: bool = False
    skip_refreshing: bool = False
    retry: Retry = Field(default_factory=Retry)


class CassandraBackup(ResourceModel):
    KIND: ClassVar[str] = "CassandraBackup"
    PLURAL: ClassVar[str] = "cassandrabackups"

    metadata: ObjectMeta
    spec: CassandraBackupSpec
    status: OperationStatus = Field(default_factory=OperationStatus)

    @field_validator("status", mode="before")
    @classmethod
    def null_as_empty_status(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def effective_tag(self) -> str:
        """Snapshot tag identifying the backup, defaulting to the resource name."""
        return self.spec.snapshot_tag or self.metadata.name


class RestoreImportSpec(ResourceModel):
    keep_level: bool = False
    no_verify: bool = False
    no_verify_tokens: bool = False
    no_invalidate_caches: bool = False
    quick: bool = False
    extended_verify: bool = False
    keep_repaired: bool = False


class CassandraRestoreSpec(ResourceModel):
    cassandra_cluster: str
    cassandra_backup: str = ""
    storage_location: str = ""
    snapshot_tag: str = ""
    secret_name: str = ""
    concurrent_connections: int = 0
    dc: str = ""
    entities: str = ""
    no_delete_truncates: bool = False
    no_delete_downloads: bool = False
    no_download_data: bool = False
    import_: RestoreImportSpec = Field(default_factory=RestoreImportSpec, alias="import")
    timeout: int = 0
    resolve_host_id_from_topology: bool = False
    insecure: bool = False
    skip_bucket_verification: bool = False
    retry: Retry = Field(default_factory=Retry)
    rename: Optional[Dict[str, str]] = None
    schema_version: str = ""
    exact_schema_version: bool = False


class CassandraRestore(ResourceModel):
    KIND: ClassVar[str] = "CassandraRestore"
    PLURAL: ClassVar[str] = "cassandrarestores"

    metadata: ObjectMeta
    spec: CassandraRestoreSpec
    status: OperationStatus = Field(default_factory=OperationStatus)

    @field_validator("status", mode="before")
    @classmethod
    def null_as_empty_status(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace
