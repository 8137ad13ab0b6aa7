"""
Test configuration and fixtures for pytest.

Provides an in-memory cluster implementing the ClusterClient surface,
an event recorder that keeps what it was given, and StarknetNode bodies.
"""

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from pathfinder_operator.config import OperatorConfig, set_config
from pathfinder_operator.context import Context
from pathfinder_operator.errors import ClusterAPIError
from pathfinder_operator.models import NodeResource

NAMESPACE = 'default'
NODE_KIND = 'StarknetNode'
API_VERSION = 'pathfinder.runelabs.xyz/v1alpha1'


def _merge(target: Dict[str, Any], patch: Dict[str, Any]) -> None:
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _pod_server_defaults(pod: Dict[str, Any]) -> None:
    """Fields the API server and kubelet add to every pod"""
    spec = pod['spec']
    spec.setdefault('restartPolicy', 'Always')
    spec.setdefault('dnsPolicy', 'ClusterFirst')
    spec.setdefault('serviceAccountName', 'default')
    spec.setdefault('terminationGracePeriodSeconds', 30)
    spec['nodeName'] = 'worker-1'
    for container in spec['containers']:
        container.setdefault('terminationMessagePath', '/dev/termination-log')
        container.setdefault('terminationMessagePolicy', 'File')
        container.setdefault('resources', {})
    pod['status'] = {'phase': 'Running', 'podIP': '10.0.0.12'}


class FakeCluster:
    """
    In-memory object store with the operations of ClusterClient

    Every mutating call is recorded in ``writes`` as ``(verb, kind, name)``.
    """

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.writes: List[Tuple[str, str, str]] = []
        self.failures: Dict[Tuple[str, str], ClusterAPIError] = {}
        self._counter = 0

    def fail_on(self, verb: str, kind: str, status: int = 500) -> None:
        self.failures[(verb, kind)] = ClusterAPIError(verb, kind, '*', 'Internal error', status)

    def _check(self, verb: str, kind: str) -> None:
        if (verb, kind) in self.failures:
            raise self.failures[(verb, kind)]

    def put(self, body: Dict[str, Any]) -> None:
        """Store an object directly, as a user or another controller would"""
        metadata = body['metadata']
        key = (body['kind'], metadata.get('namespace', NAMESPACE), metadata['name'])
        self.objects[key] = copy.deepcopy(body)

    def find(self, kind: str, name: str, namespace: str = NAMESPACE) -> Optional[Dict[str, Any]]:
        return self.objects.get((kind, namespace, name))

    def names(self, kind: str) -> List[str]:
        return sorted(name for (k, _, name) in self.objects if k == kind)

    def clear_writes(self) -> None:
        self.writes.clear()

    async def get(self, kind: str, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        self._check('get', kind)
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    async def create(self, kind: str, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self._check('create', kind)
        name = body['metadata']['name']
        if (kind, namespace, name) in self.objects:
            raise ClusterAPIError('create', kind, name, 'AlreadyExists', 409)

        self._counter += 1
        obj = copy.deepcopy(body)
        obj['metadata'].update({
            'uid': f'uid-{self._counter}',
            'resourceVersion': str(self._counter),
            'creationTimestamp': '2026-10-19T12:00:00Z',
            'managedFields': [{'manager': 'pathfinder-operator', 'operation': 'Update'}],
        })
        if kind == 'Pod':
            _pod_server_defaults(obj)
        self.objects[(kind, namespace, name)] = obj
        self.writes.append(('create', kind, name))
        return copy.deepcopy(obj)

    async def merge_patch(self, kind: str, namespace: str, name: str,
                          body: Dict[str, Any]) -> Dict[str, Any]:
        self._check('merge_patch', kind)
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise ClusterAPIError('patch', kind, name, 'NotFound', 404)
        _merge(obj, body)
        self.writes.append(('merge_patch', kind, name))
        return copy.deepcopy(obj)

    async def apply(self, kind: str, namespace: str, name: str,
                    body: Dict[str, Any]) -> Dict[str, Any]:
        self._check('apply', kind)
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise ClusterAPIError('apply', kind, name, 'NotFound', 404)
        _merge(obj, {key: value for key, value in body.items() if key not in ('apiVersion', 'kind', 'metadata')})
        self.writes.append(('apply', kind, name))
        return copy.deepcopy(obj)

    async def delete(self, kind: str, namespace: str, name: str) -> None:
        self._check('delete', kind)
        if self.objects.pop((kind, namespace, name), None) is None:
            raise ClusterAPIError('delete', kind, name, 'NotFound', 404)
        self.writes.append(('delete', kind, name))

    async def get_node(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self.get(NODE_KIND, namespace, name)

    async def apply_status(self, namespace: str, name: str,
                           body: Dict[str, Any]) -> Dict[str, Any]:
        self._check('apply_status', NODE_KIND)
        obj = self.objects.get((NODE_KIND, namespace, name))
        if obj is None:
            raise ClusterAPIError('apply status of', NODE_KIND, name, 'NotFound', 404)
        obj.setdefault('status', {})
        _merge(obj['status'], body['status'])
        self.writes.append(('apply_status', NODE_KIND, name))
        return copy.deepcopy(obj)

    async def list_nodes(self, limit: int = 1) -> Dict[str, Any]:
        self._check('list', NODE_KIND)
        items = [copy.deepcopy(o) for (k, _, _), o in self.objects.items() if k == NODE_KIND]
        return {'items': items[:limit]}

    # Helpers driving the simulated cluster

    def complete_job(self, name: str) -> None:
        self.find('Job', name)['status'] = {
            'succeeded': 1,
            'conditions': [
                {'type': 'SuccessCriteriaMet', 'status': 'True'},
                {'type': 'Complete', 'status': 'True'},
            ]
        }

    def fail_job(self, name: str) -> None:
        self.find('Job', name)['status'] = {
            'failed': 1,
            'conditions': [{'type': 'Failed', 'status': 'True', 'reason': 'BackoffLimitExceeded'}]
        }


class FakeRecorder:
    def __init__(self):
        self.events: List[Tuple[str, str, str]] = []

    def normal(self, node: NodeResource, reason: str, message: str) -> None:
        self.events.append(('Normal', reason, message))

    def warning(self, node: NodeResource, reason: str, message: str) -> None:
        self.events.append(('Warning', reason, message))

    @property
    def reasons(self) -> List[str]:
        return [reason for _, reason, _ in self.events]


def make_node_body(name: str = 'alpha', *, network: str = 'mainnet', size: str = '100Gi',
                   storage_class: Optional[str] = None,
                   snapshot: Optional[Dict[str, Any]] = None,
                   resources: Optional[Dict[str, Any]] = None,
                   image: Optional[str] = None,
                   status: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    storage = {'size': size}
    if storage_class:
        storage['class'] = storage_class

    spec = {
        'network': network,
        'l1RpcSecretRef': {'name': 'l1-rpc', 'key': 'url'},
        'storage': storage,
    }
    if snapshot is not None:
        spec['snapshot'] = snapshot
    if resources is not None:
        spec['resources'] = resources
    if image is not None:
        spec['image'] = image

    body = {
        'apiVersion': API_VERSION,
        'kind': NODE_KIND,
        'metadata': {
            'name': name,
            'namespace': NAMESPACE,
            'uid': f'{name}-uid',
        },
        'spec': spec,
    }
    if status is not None:
        body['status'] = status
    return body


def snapshot_spec(**overrides) -> Dict[str, Any]:
    snapshot = {
        'fileName': 'snap.tar',
        'checksum': 'abc',
        'storage': {'size': '200Gi'},
    }
    snapshot.update(overrides)
    return snapshot


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from the built-in defaults"""
    config = OperatorConfig()
    config.node.log_level = 'info'
    set_config(config)
    yield config


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def ctx(cluster, recorder):
    return Context(client=cluster, recorder=recorder)


@pytest.fixture
def load_node(cluster):
    """Read a node back from the fake cluster, as a new pass would"""
    async def _load(name: str = 'alpha') -> NodeResource:
        return NodeResource.from_body(await cluster.get_node(NAMESPACE, name))
    return _load
