"""
Exceptions raised by the Pathfinder Node Operator
"""

from typing import Optional


class OperatorError(Exception):
    """Base class for operator errors"""


class ClusterAPIError(OperatorError):
    """
    A call against the cluster object store failed

    Covers transport failures, conflicts and unexpected API responses.
    The reconciliation pass is aborted and retried by the runtime.
    """

    def __init__(self, action: str, kind: str, name: str,
                 reason: str = '', status: Optional[int] = None):
        self.action = action
        self.kind = kind
        self.name = name
        self.reason = reason
        self.status = status
        detail = f" ({status})" if status is not None else ''
        super().__init__(f"Failed to {action} {kind} {name}{detail}: {reason}")


class RecreationInProgress(OperatorError):
    """
    The node pod is being deleted so it can be recreated

    Not a fault: the engine turns it into a regular requeue.
    """

    def __init__(self, pod_name: str):
        self.pod_name = pod_name
        super().__init__(f"Pod {pod_name} is being recreated")


class InvalidSpecError(OperatorError):
    """The StarknetNode spec is missing required fields"""
