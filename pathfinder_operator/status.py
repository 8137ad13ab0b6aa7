"""
Writes to the status subresource of a StarknetNode

All writes are server-side applies under the operator's field manager.
Each apply carries every status field the operator owns, so that an
owned field is never dropped and fields owned by other writers (such as
``head``) survive.
"""

import logging

from pathfinder_operator.context import Context
from pathfinder_operator.lifecycle import Phase
from pathfinder_operator.models import NodeResource, NodeStatus
from pathfinder_operator.templates import ManifestTemplates

logger = logging.getLogger(__name__)


async def ensure_status(node: NodeResource, ctx: Context) -> NodeResource:
    """Initialize the status of a node seen for the first time"""
    if node.status is not None:
        return node

    logger.info(f"Initializing status of {node.namespace}/{node.name}")
    return await _apply(node, ctx, Phase.PENDING, False)


async def apply_status(node: NodeResource, ctx: Context, phase: Phase,
                       snapshot_restored: bool) -> NodeResource:
    """
    Set the phase and restore flag, skipping the write when nothing changes

    The restore flag is monotone: a False never overrides a True.
    """
    current = node.current_status
    snapshot_restored = snapshot_restored or current.snapshot_restored

    if node.status is not None and current.phase is phase \
            and current.snapshot_restored == snapshot_restored:
        return node

    logger.info(f"{node.namespace}/{node.name}: {current.phase.value} -> {phase.value}")
    return await _apply(node, ctx, phase, snapshot_restored)


async def _apply(node: NodeResource, ctx: Context, phase: Phase,
                 snapshot_restored: bool) -> NodeResource:
    body = ManifestTemplates.status_apply(node, phase, snapshot_restored)
    await ctx.client.apply_status(node.namespace, node.name, body)
    return node.with_status(NodeStatus(
        phase=phase,
        snapshot_restored=snapshot_restored,
        head=node.current_status.head,
    ))
