"""
Projection of Icarus operation progress onto resource status.
"""
import math
from typing import Tuple

from backup_operator.models.operation import OperationRecord, OperationState
from backup_operator.models.resources import OperationStatus


def project_status(current: OperationStatus, operation: OperationRecord) -> Tuple[OperationStatus, bool]:
    """
    Compute the status a resource should have for an Icarus operation.

    Progress is always recomputed. State and errors move together and only
    when the state changed; errors are replaced only when the operation
    failed and are otherwise kept as they were.

    Args:
        current: Status currently stored on the resource (not modified)
        operation: Icarus operation tracked by the resource

    Returns:
        Tuple of the new status and whether it differs from the current one
    """
    progress = min(max(math.floor(operation.progress * 100), 0), 100)
    state = current.state
    errors = list(current.errors)

    if operation.state != current.state:
        state = operation.state
        if operation.state == OperationState.FAILED:
            errors = [error.model_copy() for error in operation.errors]

    new_status = OperationStatus(state=state, progress=progress, errors=errors)
    return new_status, new_status != current
