import asyncio
import logging
from typing import Any, Mapping, Optional

import kopf

from pathfinder_operator.config import get_config
from pathfinder_operator.context import Context, EventRecorder
from pathfinder_operator.errors import ClusterAPIError, InvalidSpecError
from pathfinder_operator.kube import ClusterClient
from pathfinder_operator.models import NodeResource
from pathfinder_operator.reconciler import Requeue, reconcile

RESOURCE = get_config().resource
RECONCILE = get_config().reconcile
MANAGED = {'app.kubernetes.io/managed-by': get_config().name}


@kopf.on.startup()
async def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, logger, **_):
    """
    Configure operator on startup
    """
    config = get_config()

    # Keep kopf's own bookkeeping out of the status subresource
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=RESOURCE.group)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=RESOURCE.group)
    settings.posting.level = getattr(logging, config.log_level.upper(), logging.INFO)
    settings.execution.max_workers = config.max_workers

    client = ClusterClient.from_config(RESOURCE, config.field_manager)
    try:
        await client.list_nodes(limit=1)
    except ClusterAPIError as e:
        logger.error(f"CRD is not queryable; {e}. Is the CRD installed?")
        logger.info("Installation: python -m pathfinder_operator.crd | kubectl apply -f -")
        raise kopf.PermanentError(f"{RESOURCE.plural}.{RESOURCE.group} is not installed")

    memo.context = Context(client=client, recorder=EventRecorder())
    # Shared by every per-object memo, so node and child events serialize on one lock
    memo.node_locks = {}

    logger.info(f"Starting {config.name} v{config.version}")
    logger.info(f"Watching namespace: {config.namespace or 'all namespaces'}")


async def run_pass(namespace: str, name: str, memo: kopf.Memo, logger) -> Requeue:
    """
    Run one reconciliation pass and map its errors onto kopf's retry policy

    Passes for the same node never overlap, whichever event triggered them.
    """
    ctx: Context = memo.context
    lock = memo.node_locks.setdefault((namespace, name), asyncio.Lock())

    async with lock:
        # Work from the latest stored version, not the one that triggered us
        fresh = await ctx.client.get_node(namespace, name)
        if fresh is None:
            logger.info(f"{namespace}/{name} is gone, skipping")
            return Requeue(RECONCILE.requeue_seconds)

        try:
            node = NodeResource.from_body(fresh)
        except InvalidSpecError as e:
            raise kopf.PermanentError(f"Invalid spec: {e}")

        try:
            requeue = await reconcile(node, ctx)
        except ClusterAPIError as e:
            logger.error(f"Error reconciling object {node.name}: {e}")
            ctx.recorder.warning(node, 'ReconcileFailed', str(e))
            raise kopf.TemporaryError(str(e), delay=RECONCILE.error_retry_seconds)

    logger.debug(f"Next pass for {node.name} in {requeue.after}s")
    return requeue


async def next_pass_delay(namespace: str, name: str, memo: kopf.Memo, logger) -> float:
    """
    Run a pass and return how long to wait before the next one
    """
    try:
        requeue = await run_pass(namespace, name, memo, logger)
    except kopf.TemporaryError as e:
        return e.delay
    except kopf.PermanentError as e:
        logger.error(f"Cannot reconcile {namespace}/{name}: {e}")
        return RECONCILE.requeue_seconds
    return requeue.after


def controller_of(body: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """
    The StarknetNode owner reference of a child object, if it has one
    """
    for ref in body.get('metadata', {}).get('ownerReferences') or []:
        if ref.get('controller') and ref.get('kind') == RESOURCE.kind \
                and ref.get('apiVersion') == RESOURCE.api_version:
            return ref
    return None


@kopf.on.resume(RESOURCE.group, RESOURCE.version, RESOURCE.plural)
@kopf.on.create(RESOURCE.group, RESOURCE.version, RESOURCE.plural)
@kopf.on.update(RESOURCE.group, RESOURCE.version, RESOURCE.plural)
async def reconcile_node(name, namespace, memo, logger, **kwargs):
    """
    Handler called when a StarknetNode is created, changed, or found on startup
    """
    await run_pass(namespace, name, memo, logger)


@kopf.daemon(RESOURCE.group, RESOURCE.version, RESOURCE.plural)
async def requeue_node(name, namespace, memo, logger, stopped, **kwargs):
    """
    Keep a StarknetNode converging, waiting as long as each pass asks for
    """
    while not stopped:
        delay = await next_pass_delay(namespace, name, memo, logger)
        await asyncio.sleep(delay)


@kopf.on.event('pods', labels=MANAGED)
@kopf.on.event('batch', 'v1', 'jobs', labels=MANAGED)
async def owned_changed(body, namespace, memo, logger, **kwargs):
    """
    Handler called when a pod or restore job owned by a StarknetNode changes
    """
    owner = controller_of(body)
    if owner is None:
        return
    await next_pass_delay(namespace, owner['name'], memo, logger)


@kopf.on.delete(RESOURCE.group, RESOURCE.version, RESOURCE.plural, optional=True)
def delete_node(name, namespace, memo, logger, **kwargs):
    """
    Handler called when a StarknetNode is deleted
    Storage, job and pod are removed by the garbage collector through their owner references
    """
    memo.node_locks.pop((namespace, name), None)
    logger.info(f"StarknetNode {namespace}/{name} deleted - owned objects will be cleaned up automatically")
