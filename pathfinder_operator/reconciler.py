"""
Reconciliation pass for a single StarknetNode

A pass derives everything from the resource and the live cluster state,
so it is safe to run redundantly and from any starting point.
"""

import logging
from dataclasses import dataclass

from pathfinder_operator.config import get_config
from pathfinder_operator.context import Context
from pathfinder_operator.errors import RecreationInProgress
from pathfinder_operator.lifecycle import Observation, decide
from pathfinder_operator.models import NodeResource
from pathfinder_operator.resources import ensure_job_cleanup, get_or_create_pod, get_or_create_pvc
from pathfinder_operator.snapshot import needs_restore, restore_snapshot
from pathfinder_operator.status import apply_status, ensure_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requeue:
    """Run the next pass for this resource after ``after`` seconds"""
    after: float


async def reconcile(node: NodeResource, ctx: Context) -> Requeue:
    """
    Drive the cluster towards the state described by ``node``

    1. Initialize the status
    2. Ensure the storage claim and its size
    3. Restore the snapshot if one is configured and not yet restored;
       the pod waits until the restore job completes
    4. Clean up a leftover restore job, then ensure the pod

    Raises:
        ClusterAPIError: If any call against the cluster fails
    """
    config = get_config().reconcile

    node = await ensure_status(node, ctx)

    pvc = await get_or_create_pvc(node, ctx)

    if needs_restore(node):
        await restore_snapshot(node, pvc, ctx)
        return Requeue(config.requeue_seconds)

    await ensure_job_cleanup(node, ctx)

    status = node.current_status
    decision = decide(Observation(
        phase=status.phase,
        snapshot_configured=node.spec.snapshot is not None,
        snapshot_restored=status.snapshot_restored,
    ))
    node = await apply_status(node, ctx, decision.phase, decision.snapshot_restored)

    try:
        await get_or_create_pod(node, pvc, ctx)
    except RecreationInProgress as e:
        logger.info(f"{e}, requeueing {node.namespace}/{node.name}")
        return Requeue(config.recreate_requeue_seconds)

    # TODO: Expose the RPC port through a Service once head tracking drives the Ready phase
    return Requeue(config.requeue_seconds)
