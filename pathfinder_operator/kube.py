"""
Asynchronous access to the Kubernetes object store

Every blocking client call runs in a worker thread, and every object
comes back as a plain camelCase dict so that manifests, live objects and
patches share one representation.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from pathfinder_operator.config import ResourceConfig
from pathfinder_operator.errors import ClusterAPIError

logger = logging.getLogger(__name__)

APPLY_PATCH = 'application/apply-patch+yaml'
MERGE_PATCH = 'application/merge-patch+json'

_k8s_loaded = False


def load_kube_config() -> None:
    """Load kubeconfig exactly once, preferring the in-cluster service account."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _k8s_loaded = True


class ClusterClient:
    """
    The subset of the Kubernetes API the reconciler needs

    Supported kinds: PersistentVolumeClaim, Job and Pod, plus the status
    subresource of the StarknetNode custom resource.
    """

    def __init__(self, resource: ResourceConfig, field_manager: str,
                 api_client: Optional[client.ApiClient] = None):
        self.resource = resource
        self.field_manager = field_manager
        self.api_client = api_client or client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.batch = client.BatchV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)

        self._kinds = {
            'PersistentVolumeClaim': {
                'read': self.core.read_namespaced_persistent_volume_claim,
                'create': self.core.create_namespaced_persistent_volume_claim,
                'patch': self.core.patch_namespaced_persistent_volume_claim,
                'delete': self.core.delete_namespaced_persistent_volume_claim,
            },
            'Job': {
                'read': self.batch.read_namespaced_job,
                'create': self.batch.create_namespaced_job,
                'patch': self.batch.patch_namespaced_job,
                'delete': self.batch.delete_namespaced_job,
            },
            'Pod': {
                'read': self.core.read_namespaced_pod,
                'create': self.core.create_namespaced_pod,
                'patch': self.core.patch_namespaced_pod,
                'delete': self.core.delete_namespaced_pod,
            },
        }

    @classmethod
    def from_config(cls, resource: ResourceConfig, field_manager: str) -> 'ClusterClient':
        load_kube_config()
        return cls(resource, field_manager)

    def _method(self, kind: str, verb: str) -> Callable[..., Any]:
        try:
            return self._kinds[kind][verb]
        except KeyError:
            raise ValueError(f"Unsupported kind: {kind}") from None

    async def _call(self, action: str, kind: str, obj_name: str,
                    fn: Callable[..., Any], /, *args, **kwargs) -> Any:
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as e:
            raise ClusterAPIError(action, kind, obj_name, e.reason or '', e.status) from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterAPIError(action, kind, obj_name, str(e)) from e
        return self.api_client.sanitize_for_serialization(result)

    async def get(self, kind: str, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """Read an object, returning None when it does not exist"""
        try:
            return await self._call('read', kind, name, self._method(kind, 'read'),
                                    name=name, namespace=namespace)
        except ClusterAPIError as e:
            if e.status == 404:
                return None
            raise

    async def create(self, kind: str, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        name = body['metadata']['name']
        return await self._call('create', kind, name, self._method(kind, 'create'),
                                namespace=namespace, body=body,
                                field_manager=self.field_manager)

    async def merge_patch(self, kind: str, namespace: str, name: str,
                          body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call('patch', kind, name, self._method(kind, 'patch'),
                                name=name, namespace=namespace, body=body,
                                _content_type=MERGE_PATCH)

    async def apply(self, kind: str, namespace: str, name: str,
                    body: Dict[str, Any]) -> Dict[str, Any]:
        """Server-side apply, taking ownership of the fields present in ``body``"""
        return await self._call('apply', kind, name, self._method(kind, 'patch'),
                                name=name, namespace=namespace, body=body,
                                field_manager=self.field_manager, force=True,
                                _content_type=APPLY_PATCH)

    async def delete(self, kind: str, namespace: str, name: str) -> None:
        await self._call('delete', kind, name, self._method(kind, 'delete'),
                         name=name, namespace=namespace)

    async def get_node(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._call(
                'read', self.resource.kind, name,
                self.custom.get_namespaced_custom_object,
                self.resource.group, self.resource.version, namespace,
                self.resource.plural, name,
            )
        except ClusterAPIError as e:
            if e.status == 404:
                return None
            raise

    async def apply_status(self, namespace: str, name: str,
                           body: Dict[str, Any]) -> Dict[str, Any]:
        """Server-side apply on the status subresource of a StarknetNode"""
        return await self._call(
            'apply status of', self.resource.kind, name,
            self.custom.patch_namespaced_custom_object_status,
            self.resource.group, self.resource.version, namespace,
            self.resource.plural, name, body,
            field_manager=self.field_manager, force=True,
            _content_type=APPLY_PATCH,
        )

    async def list_nodes(self, limit: int = 1) -> Dict[str, Any]:
        """List StarknetNodes cluster-wide; used to check the CRD is installed"""
        return await self._call(
            'list', self.resource.kind, '*',
            self.custom.list_cluster_custom_object,
            self.resource.group, self.resource.version, self.resource.plural,
            limit=limit,
        )
