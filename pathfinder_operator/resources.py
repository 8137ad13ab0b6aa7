"""
Get-or-create-or-patch for the objects owned by a StarknetNode

Each role has its own update rule:
- storage claim: created once, afterwards only the requested size is patched
- restore job: created once per restore, handed to the TTL controller when done
- pod: created once, deleted and recreated when its definition drifts
"""

import logging
from typing import Any, Dict, Optional

import kopf

from pathfinder_operator.config import get_config
from pathfinder_operator.context import Context
from pathfinder_operator.drift import compare_values
from pathfinder_operator.errors import RecreationInProgress
from pathfinder_operator.models import NodeResource
from pathfinder_operator.templates import (
    ManifestTemplates,
    POD_SUFFIX,
    RESTORE_JOB_SUFFIX,
    STORAGE_SUFFIX,
)

logger = logging.getLogger(__name__)


async def _create_owned(node: NodeResource, ctx: Context, manifest: Dict[str, Any]) -> Dict[str, Any]:
    kopf.adopt(manifest, owner=dict(node.body))  # Set owner reference for garbage collection
    return await ctx.client.create(manifest['kind'], node.namespace, manifest)


async def get_or_create_pvc(node: NodeResource, ctx: Context) -> Dict[str, Any]:
    """
    Ensure the data storage claim exists and requests the configured size
    """
    name = node.prefixed_name(STORAGE_SUFFIX)

    pvc = await ctx.client.get('PersistentVolumeClaim', node.namespace, name)
    if pvc is None:
        logger.info(f"Creating storage claim {name}")
        pvc = await _create_owned(node, ctx, ManifestTemplates.pvc_manifest(node))
        ctx.recorder.normal(node, 'Storage', f"Created storage for node `{node.name}`: {name}")

    # Only the size can change once bound, the class is immutable
    pvc = await ctx.client.merge_patch(
        'PersistentVolumeClaim', node.namespace, name, ManifestTemplates.pvc_size_patch(node)
    )
    logger.debug(f"Patched size of {name} to {node.spec.storage.size}")

    return pvc


async def get_job(node: NodeResource, ctx: Context) -> Optional[Dict[str, Any]]:
    return await ctx.client.get('Job', node.namespace, node.prefixed_name(RESTORE_JOB_SUFFIX))


async def get_or_create_job(node: NodeResource, pvc: Dict[str, Any], ctx: Context) -> Dict[str, Any]:
    """
    Ensure the snapshot restore job exists
    """
    job = await get_job(node, ctx)
    if job is not None:
        return job

    name = node.prefixed_name(RESTORE_JOB_SUFFIX)
    logger.info(f"Creating snapshot job ({name}) for {node.name}")

    manifest = ManifestTemplates.restore_job_manifest(node, pvc['metadata']['name'])
    job = await _create_owned(node, ctx, manifest)

    ctx.recorder.normal(
        node, 'SnapshotRestoreStarted',
        f"Started snapshot restore for `{node.name}`: {name}",
    )
    return job


async def ensure_job_cleanup(node: NodeResource, ctx: Context) -> bool:
    """
    Hand a leftover restore job over to the cluster's TTL controller

    The job is never deleted directly. Returns True when a patch was sent.
    """
    job = await get_job(node, ctx)
    if job is None:
        return False

    ttl = get_config().reconcile.job_ttl_seconds
    if (job.get('spec') or {}).get('ttlSecondsAfterFinished') == ttl:
        return False

    name = job['metadata']['name']
    logger.info(f"Marking job {name} for cleanup (ttl={ttl}s)")
    await ctx.client.apply('Job', node.namespace, name, ManifestTemplates.job_ttl_apply(node, ttl))
    return True


async def get_or_create_pod(node: NodeResource, pvc: Dict[str, Any], ctx: Context) -> Dict[str, Any]:
    """
    Ensure the node pod exists and matches its rendered definition

    Raises:
        RecreationInProgress: If the pod is terminating, or was just deleted
            because it drifted from its definition
    """
    name = node.prefixed_name(POD_SUFFIX)
    desired = ManifestTemplates.pod_manifest(node, pvc['metadata']['name'])

    pod = await ctx.client.get('Pod', node.namespace, name)
    if pod is None:
        pod = await _create_owned(node, ctx, desired)
        logger.info(f"Created pod {name}")
        ctx.recorder.normal(node, 'Pod', f"Created pod for `{node.name}`: {name}")
        return pod

    if (pod.get('metadata') or {}).get('deletionTimestamp'):
        raise RecreationInProgress(name)

    diff = compare_values(
        ManifestTemplates.pod_fingerprint(pod, declared=desired),
        ManifestTemplates.pod_fingerprint(desired),
    )
    if diff.non_empty():
        logger.info(f"Recreating Pod {name} because of diff:\n{diff}")
        await ctx.client.delete('Pod', node.namespace, name)
        ctx.recorder.normal(node, 'RecreatingPod', f"Pod {name} drifted from its definition")
        raise RecreationInProgress(name)

    return pod
