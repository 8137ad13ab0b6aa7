"""
Pathfinder Node Operator for Kubernetes

This operator runs Starknet pathfinder nodes by watching for StarknetNode
custom resources and converging each one to a storage claim, an optional
snapshot restore job and the node pod.

Run it with ``kopf run -m pathfinder_operator.handlers``.
"""

__version__ = "0.1.0"

# Import main components for easier access
from pathfinder_operator.config import OperatorConfig
from pathfinder_operator.drift import Diff, compare_values
from pathfinder_operator.lifecycle import Phase, decide
from pathfinder_operator.reconciler import Requeue, reconcile
from pathfinder_operator.templates import ManifestTemplates

__all__ = [
    'Diff',
    'compare_values',
    'decide',
    'ManifestTemplates',
    'OperatorConfig',
    'Phase',
    'reconcile',
    'Requeue',
]
