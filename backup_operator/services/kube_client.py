"""
Kubernetes access for the operator.

Reads CassandraBackup, CassandraRestore and CassandraCluster custom resources
and storage credential secrets, and writes the status subresource of
backups and restores.
"""
import base64
from typing import AsyncIterator, Dict, List, Optional, Tuple, Type, TypeVar, Union

from kubernetes_asyncio import client, config, watch
from kubernetes_asyncio.client.rest import ApiException

from backup_operator.config.logging import get_logger
from backup_operator.exceptions import ConflictError, KubernetesError
from backup_operator.models.resources import (
    CassandraBackup,
    CassandraCluster,
    CassandraRestore,
    OperationStatus,
)
from backup_operator.utils.retry import retry_k8s_read

logger = get_logger(__name__)

ResourceKey = Tuple[str, str]
Intent = Union[CassandraBackup, CassandraRestore]
R = TypeVar("R", CassandraBackup, CassandraRestore, CassandraCluster)


async def create_api_client(kubeconfig_path: Optional[str] = None) -> client.ApiClient:
    """
    Build a Kubernetes API client.

    Uses the given kubeconfig file, or the in-cluster service account
    when no path is configured.
    """
    if kubeconfig_path:
        await config.load_kube_config(config_file=kubeconfig_path)
        logger.info("kubeconfig_loaded", path=kubeconfig_path)
    else:
        config.load_incluster_config()
        logger.info("incluster_config_loaded")
    return client.ApiClient()


class KubeClient:
    """Typed access to the resources the reconcilers read and write."""

    def __init__(self, api_client: client.ApiClient, group: str, version: str):
        self.api_client = api_client
        self.group = group
        self.version = version
        self.custom_api = client.CustomObjectsApi(api_client)
        self.core_api = client.CoreV1Api(api_client)

    async def close(self) -> None:
        await self.api_client.close()

    @retry_k8s_read()
    async def _get_custom_object(self, plural: str, namespace: str, name: str) -> dict:
        return await self.custom_api.get_namespaced_custom_object(
            group=self.group,
            version=self.version,
            namespace=namespace,
            plural=plural,
            name=name,
        )

    async def _get(self, model: Type[R], namespace: str, name: str) -> Optional[R]:
        try:
            obj = await self._get_custom_object(model.PLURAL, namespace, name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesError(
                f"failed to get {model.KIND} {namespace}/{name}: {e.reason}",
                status=e.status,
            ) from e
        return model.model_validate(obj)

    async def get_backup(self, namespace: str, name: str) -> Optional[CassandraBackup]:
        return await self._get(CassandraBackup, namespace, name)

    async def get_restore(self, namespace: str, name: str) -> Optional[CassandraRestore]:
        return await self._get(CassandraRestore, namespace, name)

    async def get_cluster(self, namespace: str, name: str) -> Optional[CassandraCluster]:
        return await self._get(CassandraCluster, namespace, name)

    @retry_k8s_read()
    async def _read_secret(self, namespace: str, name: str) -> client.V1Secret:
        return await self.core_api.read_namespaced_secret(name=name, namespace=namespace)

    async def get_secret(self, namespace: str, name: str) -> Optional[Dict[str, bytes]]:
        """Decoded data of a secret, None if the secret does not exist."""
        try:
            secret = await self._read_secret(namespace, name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesError(
                f"failed to get secret {namespace}/{name}: {e.reason}",
                status=e.status,
            ) from e
        return {key: base64.b64decode(value) for key, value in (secret.data or {}).items()}

    @retry_k8s_read()
    async def list_keys(self, plural: str, namespace: str) -> List[ResourceKey]:
        """Keys of all resources of a kind in a namespace."""
        result = await self.custom_api.list_namespaced_custom_object(
            group=self.group,
            version=self.version,
            namespace=namespace,
            plural=plural,
        )
        return [
            (item["metadata"]["namespace"], item["metadata"]["name"])
            for item in result.get("items", [])
        ]

    async def watch_keys(self, plural: str, namespace: str, timeout_seconds: int = 300) -> AsyncIterator[ResourceKey]:
        """
        Yield the key of every resource that changes until the watch times out.

        Deletions are not reported, the reconcilers notice them on their own.
        """
        w = watch.Watch()
        try:
            async for event in w.stream(
                self.custom_api.list_namespaced_custom_object,
                group=self.group,
                version=self.version,
                namespace=namespace,
                plural=plural,
                timeout_seconds=timeout_seconds,
            ):
                if event.get("type") == "DELETED":
                    continue
                metadata = event["object"].get("metadata", {})
                yield metadata.get("namespace", namespace), metadata["name"]
        finally:
            w.stop()
            await w.close()

    async def update_status(self, intent: Intent, status: OperationStatus) -> None:
        """
        Replace the status subresource of a backup or restore.

        The resourceVersion read with the resource is sent along, so the
        write fails if somebody else updated the resource in the meantime.

        Raises:
            ConflictError: The resource changed since it was read
            KubernetesError: Any other API failure
        """
        body = {
            "apiVersion": f"{self.group}/{self.version}",
            "kind": intent.KIND,
            "metadata": {
                "name": intent.name,
                "namespace": intent.namespace,
                "resourceVersion": intent.metadata.resource_version,
            },
            "status": status.to_dict(),
        }
        try:
            updated = await self.custom_api.replace_namespaced_custom_object_status(
                group=self.group,
                version=self.version,
                namespace=intent.namespace,
                plural=intent.PLURAL,
                name=intent.name,
                body=body,
            )
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"{intent.KIND} {intent.namespace}/{intent.name} was modified concurrently",
                    details={"resource_version": intent.metadata.resource_version},
                ) from e
            raise KubernetesError(
                f"failed to update status of {intent.KIND} {intent.namespace}/{intent.name}: {e.reason}",
                status=e.status,
            ) from e

        intent.status = status
        intent.metadata.resource_version = updated.get("metadata", {}).get(
            "resourceVersion", intent.metadata.resource_version
        )
