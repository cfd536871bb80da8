"""
Exception hierarchy for the backup operator.

Errors are grouped by how the controller reacts to them:

- TransientError: re-trigger the resource after the fixed retry delay
- ConflictError: re-trigger immediately, the local decision is stale
- everything else: the pass failed, the controller applies backoff
"""
from typing import Any, Dict, Optional


class OperatorError(Exception):
    """Base exception for the backup operator."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(OperatorError):
    """Raised for conditions that resolve by retrying later."""


class IcarusConnectionError(TransientError):
    """Raised when Icarus cannot be reached or the call was interrupted."""


class ResourceNotFoundError(TransientError):
    """Raised when a linked resource (cluster, backup, secret) does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(
            message=f"{kind} {namespace}/{name} not found",
            details={"kind": kind, "namespace": namespace, "name": name},
        )
        self.kind = kind
        self.namespace = namespace
        self.name = name


class ClusterNotReadyError(TransientError):
    """Raised when the linked CassandraCluster is not ready yet."""


class InvalidStorageSecretError(TransientError):
    """Raised when storage credentials do not match the storage provider."""


class ConflictError(OperatorError):
    """Raised when a write lost an optimistic concurrency race (HTTP 409)."""


class IcarusError(OperatorError):
    """Raised when Icarus answers with an unexpected status or an unreadable body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        super().__init__(
            message=message,
            details={"status_code": status_code, "body": body},
        )
        self.status_code = status_code
        self.body = body


class InvalidSpecError(OperatorError):
    """Raised when a resource spec cannot be turned into an Icarus request."""


class KubernetesError(OperatorError):
    """Raised when a Kubernetes API call fails for a non-retryable reason."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message=message, details={"status": status})
        self.status = status
