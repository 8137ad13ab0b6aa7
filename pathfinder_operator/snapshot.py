"""
Snapshot restore orchestration

A node configured with a snapshot gets its storage claim populated by a
one-shot restore job before the node pod is allowed to start. Completion
is latched in ``status.snapshotRestored`` and never re-evaluated.
"""

import logging
from typing import Any, Dict, Mapping

from pathfinder_operator.context import Context
from pathfinder_operator.lifecycle import Decision, Observation, decide
from pathfinder_operator.models import NodeResource
from pathfinder_operator.resources import get_or_create_job
from pathfinder_operator.status import apply_status

logger = logging.getLogger(__name__)


def needs_restore(node: NodeResource) -> bool:
    """A restore is needed until one has completed for this node"""
    return node.spec.snapshot is not None and not node.current_status.snapshot_restored


def _has_condition(job: Mapping[str, Any], condition_type: str) -> bool:
    conditions = (job.get('status') or {}).get('conditions') or []
    return any(
        c.get('type') == condition_type and c.get('status') == 'True'
        for c in conditions
    )


def is_job_finished(job: Mapping[str, Any]) -> bool:
    return _has_condition(job, 'Complete')


def is_job_failed(job: Mapping[str, Any]) -> bool:
    return _has_condition(job, 'Failed')


async def restore_snapshot(node: NodeResource, pvc: Dict[str, Any],
                           ctx: Context) -> Decision:
    """
    Drive the restore job and record its progress in the node status

    Returns the decision taken, with the updated status applied.
    """
    job = await get_or_create_job(node, pvc, ctx)
    finished = is_job_finished(job)

    if not finished and is_job_failed(job):
        # No failure policy yet: the node stays in DownloadingSnapshot
        logger.warning(
            f"Snapshot job {job['metadata']['name']} failed, "
            f"{node.namespace}/{node.name} will not progress until it is removed"
        )

    status = node.current_status
    decision = decide(Observation(
        phase=status.phase,
        snapshot_configured=node.spec.snapshot is not None,
        snapshot_restored=status.snapshot_restored,
        job_complete=finished,
    ))

    await apply_status(node, ctx, decision.phase, decision.snapshot_restored)

    if decision.latched:
        logger.info(f"Snapshot restored for {node.namespace}/{node.name}")
        ctx.recorder.normal(node, 'SnapshotFinished', f"Snapshot finished for `{node.name}`")

    return decision
