"""
Kubernetes events attached to CassandraBackup and CassandraRestore resources.

Events are best effort: a failure to record one is logged and otherwise
ignored so that it never changes the outcome of a reconciliation pass.
"""
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Tuple, Union

from kubernetes_asyncio import client
from kubernetes_asyncio.client.rest import ApiException

from backup_operator.config.logging import get_logger
from backup_operator.models.resources import CassandraBackup, CassandraRestore

logger = get_logger(__name__)

COMPONENT = "cassandra-backup-operator"

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

REASON_CLUSTER_NOT_FOUND = "CassandraClusterNotFound"
REASON_BACKUP_NOT_FOUND = "CassandraBackupNotFound"
REASON_SECRET_NOT_FOUND = "StorageCredentialsSecretNotFound"
REASON_SECRET_INVALID = "StorageCredentialsSecretInvalid"
REASON_CONFIGURATION_ERROR = "ConfigurationErrorSuspected"
REASON_RESUBMITTED = "OperationResubmitted"

Intent = Union[CassandraBackup, CassandraRestore]

# Events remembered for aggregation, oldest are forgotten first
MAX_TRACKED_EVENTS = 1024

EventKey = Tuple[str, str, str, str]


class EventRecorder:
    """
    Creates core/v1 Events for backup and restore resources.

    An event repeating one already recorded for the same resource is not
    created again: the existing Event gets its count and lastTimestamp
    bumped instead.
    """

    def __init__(self, api_client: client.ApiClient, api_version: str):
        """
        Args:
            api_client: Shared Kubernetes API client
            api_version: group/version of the custom resources, e.g. db.ibm.com/v1alpha1
        """
        self.core_api = client.CoreV1Api(api_client)
        self.api_version = api_version
        self._recorded: "OrderedDict[EventKey, Tuple[str, int]]" = OrderedDict()

    async def warning(self, intent: Intent, reason: str, message: str) -> None:
        await self._record(intent, EVENT_TYPE_WARNING, reason, message)

    async def normal(self, intent: Intent, reason: str, message: str) -> None:
        await self._record(intent, EVENT_TYPE_NORMAL, reason, message)

    async def _record(self, intent: Intent, event_type: str, reason: str, message: str) -> None:
        key = (intent.metadata.uid or f"{intent.namespace}/{intent.name}", event_type, reason, message)
        now = datetime.now(timezone.utc).isoformat()

        try:
            if key in self._recorded:
                event_name, count = await self._bump(intent, key, now)
            else:
                event_name, count = await self._create(intent, event_type, reason, message, now), 1
        except ApiException as e:
            logger.warning(
                "event_record_failed",
                kind=intent.KIND,
                namespace=intent.namespace,
                name=intent.name,
                reason=reason,
                status_code=e.status,
                error=e.reason,
            )
            return

        self._recorded[key] = (event_name, count)
        self._recorded.move_to_end(key)
        while len(self._recorded) > MAX_TRACKED_EVENTS:
            self._recorded.popitem(last=False)

        logger.debug(
            "event_recorded",
            kind=intent.KIND,
            name=intent.name,
            type=event_type,
            reason=reason,
            count=count,
        )

    async def _create(self, intent: Intent, event_type: str, reason: str, message: str, now: str) -> str:
        body = {
            "metadata": {
                "generateName": f"{intent.name}.",
                "namespace": intent.namespace,
            },
            "involvedObject": {
                "apiVersion": self.api_version,
                "kind": intent.KIND,
                "name": intent.name,
                "namespace": intent.namespace,
                "uid": intent.metadata.uid,
                "resourceVersion": intent.metadata.resource_version,
            },
            "reason": reason,
            "message": message,
            "type": event_type,
            "source": {"component": COMPONENT},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        created = await self.core_api.create_namespaced_event(namespace=intent.namespace, body=body)
        return created.metadata.name

    async def _bump(self, intent: Intent, key: EventKey, now: str) -> Tuple[str, int]:
        event_name, count = self._recorded[key]
        try:
            await self.core_api.patch_namespaced_event(
                name=event_name,
                namespace=intent.namespace,
                body={"count": count + 1, "lastTimestamp": now},
            )
        except ApiException as e:
            if e.status != 404:
                raise
            # Expired or deleted, start over with a fresh Event
            del self._recorded[key]
            _, event_type, reason, message = key
            return await self._create(intent, event_type, reason, message, now), 1
        return event_name, count + 1
