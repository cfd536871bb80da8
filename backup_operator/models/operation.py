"""
Icarus operation models.

Icarus is the sidecar running next to every Cassandra node that executes
backup and restore jobs. These models mirror its JSON contract:

- Backup / Restore: operation records returned by GET /operations
- BackupRequest / RestoreRequest: bodies sent with POST /operations
"""
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class OperationState(str, Enum):
    """Lifecycle state of an Icarus operation."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class IcarusModel(BaseModel):
    """Base model using Icarus' camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class OperationError(IcarusModel):
    """An error reported by one node taking part in an operation."""
    source: str = ""
    message: str = ""


class Retry(IcarusModel):
    """Upload/download retry policy applied by Icarus."""
    interval: int = 0
    strategy: str = ""
    max_attempts: int = 0
    enabled: bool = False


class DataRate(IcarusModel):
    """Bandwidth limit, e.g. 10 MBPS."""
    value: int = 0
    unit: str = ""


class RestoreImport(IcarusModel):
    """Options handed to Cassandra's SSTable import during restore."""
    type: str = ""
    source_dir: str = ""
    keep_level: bool = False
    no_verify: bool = False
    no_verify_tokens: bool = False
    no_invalidate_caches: bool = False
    quick: bool = False
    extended_verify: bool = False
    keep_repaired: bool = False


class OperationRecord(IcarusModel):
    """Fields shared by every operation record Icarus reports."""

    id: str = ""
    creation_time: str = ""
    state: str = ""
    errors: List[OperationError] = Field(default_factory=list)
    progress: float = 0.0
    start_time: str = ""
    type: str = ""
    global_request: bool = False
    snapshot_tag: str = ""
    schema_version: str = ""

    storage_location: str = ""
    data_dirs: List[str] = Field(default_factory=list)
    k8s_namespace: str = Field(default="", alias="k8sNamespace")
    k8s_secret_name: str = Field(default="", alias="k8sSecretName")
    concurrent_connections: int = 0
    dc: str = ""
    entities: str = ""
    timeout: int = 0
    insecure: bool = False
    skip_bucket_verification: bool = False
    retry: Retry = Field(default_factory=Retry)

    @field_validator("errors", "data_dirs", mode="before")
    @classmethod
    def null_as_empty_list(cls, v: Any) -> Any:
        # Icarus serialises empty collections as null
        return [] if v is None else v

    @field_validator("retry", mode="before")
    @classmethod
    def null_as_default_retry(cls, v: Any) -> Any:
        return {} if v is None else v


class Backup(OperationRecord):
    """A backup operation as reported by Icarus."""

    duration: str = ""
    bandwidth: Optional[DataRate] = None
    metadata_directive: str = ""
    create_missing_bucket: bool = False
    skip_refreshing: bool = False
    upload_cluster_topology: bool = False


class Restore(OperationRecord):
    """A restore operation as reported by Icarus."""

    cassandra_config_directory: str = ""
    restore_system_keyspace: bool = False
    restoration_strategy_type: str = ""
    restoration_phase: str = ""
    import_: RestoreImport = Field(default_factory=RestoreImport, alias="import")
    no_delete_truncates: bool = False
    no_delete_downloads: bool = False
    no_download_data: bool = False
    exact_schema_version: bool = False
    resolve_host_id_from_topology: bool = False
    single_phase: bool = False
    rename: Optional[Dict[str, str]] = None

    @field_validator("import_", mode="before")
    @classmethod
    def null_as_default_import(cls, v: Any) -> Any:
        return {} if v is None else v


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == 0 or value is False or value == {} or value == []


class _Request(IcarusModel):
    """Base for request bodies. Requests are immutable once built."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    # Wire names left out of the body when they hold a zero value
    OMIT_EMPTY: ClassVar[FrozenSet[str]] = frozenset()
    IMPORT_OMIT_EMPTY: ClassVar[FrozenSet[str]] = frozenset()

    def to_payload(self) -> Dict[str, Any]:
        """Serialise to the JSON body expected by POST /operations."""
        payload = self.model_dump(by_alias=True)
        for key in self.OMIT_EMPTY:
            if key in payload and _is_empty(payload[key]):
                del payload[key]
        nested = payload.get("import")
        if isinstance(nested, dict):
            for key in self.IMPORT_OMIT_EMPTY:
                if _is_empty(nested.get(key)):
                    nested.pop(key, None)
        return payload


class BackupRequest(_Request):
    """Body of a backup submission."""

    OMIT_EMPTY: ClassVar[FrozenSet[str]] = frozenset({
        "k8sNamespace",
        "k8sSecretName",
        "duration",
        "bandwidth",
        "concurrentConnections",
        "dc",
        "entities",
        "timeout",
        "metadataDirective",
    })

    type: str = "backup"
    storage_location: str = ""
    data_dirs: List[str] = Field(default_factory=list)
    global_request: bool = False
    snapshot_tag: str = ""
    k8s_namespace: str = Field(default="", alias="k8sNamespace")
    k8s_secret_name: str = Field(default="", alias="k8sSecretName")
    duration: str = ""
    bandwidth: Optional[DataRate] = None
    concurrent_connections: int = 0
    dc: str = ""
    entities: str = ""
    timeout: int = 0
    metadata_directive: str = ""
    insecure: bool = False
    create_missing_bucket: bool = False
    skip_refreshing: bool = False
    skip_bucket_verification: bool = False
    retry: Retry = Field(default_factory=Retry)


class RestoreRequest(_Request):
    """Body of a restore submission."""

    OMIT_EMPTY: ClassVar[FrozenSet[str]] = frozenset({
        "k8sNamespace",
        "k8sSecretName",
        "concurrentConnections",
        "entities",
        "noDeleteTruncates",
        "noDeleteDownloads",
        "noDownloadData",
        "timeout",
        "resolveHostIdFromTopology",
        "insecure",
        "skipBucketVerification",
        "rename",
        "singlePhase",
        "dc",
        "schemaVersion",
        "exactSchemaVersion",
    })
    IMPORT_OMIT_EMPTY: ClassVar[FrozenSet[str]] = frozenset({
        "keepLevel",
        "noVerify",
        "noVerifyTokens",
        "noInvalidateCaches",
        "quick",
        "extendedVerify",
        "keepRepaired",
    })

    type: str = "restore"
    storage_location: str = ""
    snapshot_tag: str = ""
    data_dirs: List[str] = Field(default_factory=list)
    global_request: bool = False
    restoration_strategy_type: str = ""
    restoration_phase: str = ""
    import_: RestoreImport = Field(default_factory=RestoreImport, alias="import")
    k8s_namespace: str = Field(default="", alias="k8sNamespace")
    k8s_secret_name: str = Field(default="", alias="k8sSecretName")
    concurrent_connections: int = 0
    entities: str = ""
    no_delete_truncates: bool = False
    no_delete_downloads: bool = False
    no_download_data: bool = False
    timeout: int = 0
    resolve_host_id_from_topology: bool = False
    insecure: bool = False
    skip_bucket_verification: bool = False
    retry: Retry = Field(default_factory=Retry)
    rename: Dict[str, str] = Field(default_factory=dict)
    single_phase: bool = False
    dc: str = ""
    schema_version: str = ""
    exact_schema_version: bool = False
