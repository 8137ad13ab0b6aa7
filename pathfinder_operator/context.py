"""
Dependencies threaded through every reconciliation operation
"""

import logging
from dataclasses import dataclass

import kopf

from pathfinder_operator.kube import ClusterClient
from pathfinder_operator.models import NodeResource

logger = logging.getLogger(__name__)


class EventRecorder:
    """
    Posts Kubernetes events on a StarknetNode

    Events are queued by kopf and written asynchronously, so recording
    never fails a reconciliation pass.
    """

    def normal(self, node: NodeResource, reason: str, message: str) -> None:
        logger.debug(f"Event {reason} on {node.namespace}/{node.name}: {message}")
        kopf.event(dict(node.body), type='Normal', reason=reason, message=message)

    def warning(self, node: NodeResource, reason: str, message: str) -> None:
        logger.debug(f"Warning {reason} on {node.namespace}/{node.name}: {message}")
        kopf.event(dict(node.body), type='Warning', reason=reason, message=message)


@dataclass
class Context:
    client: ClusterClient
    recorder: EventRecorder
