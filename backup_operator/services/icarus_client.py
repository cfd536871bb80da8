"""
Icarus HTTP client.

Icarus runs as a sidecar on every Cassandra pod and executes backup and
restore operations. Only the coordinator pod (first pod of the first DC)
keeps the cluster-wide records, so every call goes to that pod.

The client never retries: a failed call is reported to the reconciler,
which re-triggers the whole pass later.
"""
from typing import List, Optional, Type, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from backup_operator.config.logging import get_logger
from backup_operator.exceptions import IcarusConnectionError, IcarusError
from backup_operator.models.operation import (
    Backup,
    BackupRequest,
    Restore,
    RestoreRequest,
)

logger = get_logger(__name__)

T = TypeVar("T")

OPERATIONS_PATH = "/operations"


class IcarusClient:
    """Client for the Icarus operations API of one coordinator pod."""

    def __init__(self, base_url: str, http_client: httpx.AsyncClient):
        """
        Args:
            base_url: Coordinator URL, e.g. http://pod.svc:4567
            http_client: Shared client owned by IcarusClientFactory
        """
        self.base_url = base_url.rstrip("/")
        self._http = http_client

    async def backup(self, request: BackupRequest) -> Backup:
        """Submit a backup. Icarus answers 201 with the created operation."""
        request = request.model_copy(update={"type": "backup"})
        response = await self._send("POST", json=request.to_payload())
        if response.status_code != httpx.codes.CREATED:
            raise self._unexpected_status("backup request failed", response)

        backup = self._decode(response, Backup)
        logger.debug(
            "icarus_backup_submitted",
            url=self.base_url,
            operation_id=backup.id,
            snapshot_tag=backup.snapshot_tag,
        )
        return backup

    async def backups(self) -> List[Backup]:
        """List backup operations known to the coordinator."""
        response = await self._send("GET", params={"type": "backup"})
        if response.status_code != httpx.codes.OK:
            raise self._unexpected_status("listing backups failed", response)
        return self._decode(response, List[Backup])

    async def restore(self, request: RestoreRequest) -> None:
        """Submit a restore. Icarus answers 201, the body is not used."""
        request = request.model_copy(update={"type": "restore"})
        response = await self._send("POST", json=request.to_payload())
        if response.status_code != httpx.codes.CREATED:
            raise self._unexpected_status("restore request failed", response)

        logger.debug(
            "icarus_restore_submitted",
            url=self.base_url,
            snapshot_tag=request.snapshot_tag,
        )

    async def restores(self) -> List[Restore]:
        """List restore operations known to the coordinator."""
        response = await self._send("GET", params={"type": "restore"})
        if response.status_code != httpx.codes.OK:
            raise self._unexpected_status("listing restores failed", response)
        return self._decode(response, List[Restore])

    async def _send(
        self,
        method: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{OPERATIONS_PATH}"
        try:
            return await self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        except httpx.TransportError as e:
            logger.warning(
                "icarus_unreachable",
                method=method,
                url=url,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise IcarusConnectionError(
                f"{method} {url} failed: {e}",
                details={"url": url},
            ) from e

    @staticmethod
    def _unexpected_status(message: str, response: httpx.Response) -> IcarusError:
        return IcarusError(
            f"{message}: code: {response.status_code}, body: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    @staticmethod
    def _decode(response: httpx.Response, model: Type[T]) -> T:
        try:
            return TypeAdapter(model).validate_json(response.content)
        except ValidationError as e:
            raise IcarusError(
                f"invalid response from Icarus: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e


class IcarusClientFactory:
    """
    Builds Icarus clients for CassandraClusters.

    Owns the underlying httpx client; close it with aclose() on shutdown.
    """

    def __init__(
        self,
        port: int,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.port = port
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=50,
            ),
        )

    def coordinator_url(self, cluster_name: str, namespace: str, dc_name: str) -> str:
        """URL of the Icarus sidecar on the first pod of a DC."""
        svc = f"{cluster_name}-cassandra-{dc_name}"
        return f"http://{svc}-0.{svc}.{namespace}.svc.cluster.local:{self.port}"

    def for_cluster(self, cluster_name: str, namespace: str, dc_name: str) -> IcarusClient:
        return IcarusClient(self.coordinator_url(cluster_name, namespace, dc_name), self._http)

    async def aclose(self) -> None:
        await self._http.aclose()
