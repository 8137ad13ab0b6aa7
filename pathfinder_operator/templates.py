from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Sequence, Set, Union

from kubernetes.utils import parse_quantity

from pathfinder_operator.config import get_config
from pathfinder_operator.lifecycle import Phase
from pathfinder_operator.models import NodeResource


STORAGE_SUFFIX = 'storage'
RESTORE_JOB_SUFFIX = 'restore-snapshot-job'
POD_SUFFIX = 'node'

DATA_VOLUME = 'pathfinder-data'
SCRATCH_VOLUME = 'snapshot-scratch'
RESTORE_DATA_VOLUME = 'data'


class ManifestTemplates:
    """
    Templates for Kubernetes manifests used by the operator
    """

    @staticmethod
    def labels(node: NodeResource, component: str) -> Dict[str, str]:
        config = get_config()
        return {
            'app.kubernetes.io/name': 'pathfinder',
            'app.kubernetes.io/instance': node.name,
            'app.kubernetes.io/component': component,
            'app.kubernetes.io/managed-by': config.name,
        }

    @staticmethod
    def _metadata(node: NodeResource, suffix: str, component: str) -> Dict[str, Any]:
        return {
            'name': node.prefixed_name(suffix),
            'namespace': node.namespace,
            'labels': ManifestTemplates.labels(node, component),
        }

    @staticmethod
    def _storage_request(size: str, storage_class: Optional[str]) -> Dict[str, Any]:
        spec = {
            'accessModes': ['ReadWriteOnce'],
            'resources': {
                'requests': {
                    'storage': size
                }
            }
        }
        if storage_class:
            spec['storageClassName'] = storage_class
        return spec

    @staticmethod
    def pvc_manifest(node: NodeResource) -> Dict[str, Any]:
        """
        Generate the data storage claim of a node
        """
        storage = node.spec.storage
        return {
            'apiVersion': 'v1',
            'kind': 'PersistentVolumeClaim',
            'metadata': ManifestTemplates._metadata(node, STORAGE_SUFFIX, 'storage'),
            'spec': ManifestTemplates._storage_request(storage.size, storage.storage_class),
        }

    @staticmethod
    def pvc_size_patch(node: NodeResource) -> Dict[str, Any]:
        """
        Merge patch carrying only the requested size (the class is immutable)
        """
        return {
            'spec': {
                'resources': {
                    'requests': {
                        'storage': node.spec.storage.size
                    }
                }
            }
        }

    @staticmethod
    def restore_job_manifest(node: NodeResource, pvc_name: str) -> Dict[str, Any]:
        """
        Generate the one-shot job restoring a database snapshot into the data claim
        """
        config = get_config()
        snapshot = node.spec.snapshot
        if snapshot is None:
            raise ValueError(f"{node.name} has no snapshot configured")

        env = [
            {'name': 'PATHFINDER_NETWORK', 'value': node.spec.network},
            {'name': 'PATHFINDER_FILE_NAME', 'value': snapshot.file_name},
            {'name': 'PATHFINDER_CHECKSUM', 'value': snapshot.checksum},
        ]
        if snapshot.rsync_config:
            env.append({'name': 'PATHFINDER_DOWNLOAD_URL', 'value': snapshot.rsync_config})

        labels = ManifestTemplates.labels(node, 'snapshot-restore')

        return {
            'apiVersion': 'batch/v1',
            'kind': 'Job',
            'metadata': ManifestTemplates._metadata(node, RESTORE_JOB_SUFFIX, 'snapshot-restore'),
            'spec': {
                'template': {
                    'metadata': {
                        'labels': labels
                    },
                    'spec': {
                        # Failures are retried by the reconciliation loop, not by the kubelet
                        'restartPolicy': 'Never',
                        'containers': [{
                            'name': 'snapshot-downloader',
                            'image': snapshot.restore_image or config.images.restore,
                            'env': env,
                            'volumeMounts': [
                                {'name': SCRATCH_VOLUME, 'mountPath': '/scratch'},
                                {'name': RESTORE_DATA_VOLUME, 'mountPath': '/data'},
                            ],
                        }],
                        'volumes': [
                            {
                                'name': SCRATCH_VOLUME,
                                'ephemeral': {
                                    'volumeClaimTemplate': {
                                        'metadata': {
                                            'labels': {
                                                'type': 'pathfinder-snapshot-scratch'
                                            }
                                        },
                                        'spec': ManifestTemplates._storage_request(
                                            snapshot.storage.size,
                                            snapshot.storage.storage_class,
                                        ),
                                    }
                                }
                            },
                            {
                                'name': RESTORE_DATA_VOLUME,
                                'persistentVolumeClaim': {
                                    'claimName': pvc_name
                                }
                            },
                        ]
                    }
                }
            }
        }

    @staticmethod
    def job_ttl_apply(node: NodeResource, ttl_seconds: int) -> Dict[str, Any]:
        """
        Server-side apply body handing a finished job over to the TTL controller
        """
        return {
            'apiVersion': 'batch/v1',
            'kind': 'Job',
            'metadata': {
                'name': node.prefixed_name(RESTORE_JOB_SUFFIX),
                'namespace': node.namespace,
            },
            'spec': {
                'ttlSecondsAfterFinished': ttl_seconds
            }
        }

    @staticmethod
    def pod_manifest(node: NodeResource, pvc_name: str) -> Dict[str, Any]:
        """
        Generate the main pathfinder pod
        """
        config = get_config()
        settings = config.node
        secret = node.spec.l1_rpc_secret_ref

        container = {
            'name': 'pathfinder',
            'image': node.spec.image or config.images.node,
            'imagePullPolicy': config.images.node_pull_policy,
            'env': [
                {'name': 'RUST_LOG', 'value': settings.log_level},
                {'name': 'PATHFINDER_DATA_DIR', 'value': settings.data_dir},
                {'name': 'PATHFINDER_MONITOR_ADDRESS', 'value': f'0.0.0.0:{settings.monitoring_port}'},
                {
                    'name': 'PATHFINDER_ETHEREUM_API_URL',
                    'valueFrom': {
                        'secretKeyRef': {
                            'name': secret.name,
                            'key': secret.key
                        }
                    }
                },
            ],
            'ports': [
                {'name': 'rpc', 'containerPort': settings.rpc_port, 'protocol': 'TCP'},
                {'name': 'monitoring', 'containerPort': settings.monitoring_port, 'protocol': 'TCP'},
            ],
            'volumeMounts': [{
                'name': DATA_VOLUME,
                'mountPath': settings.data_dir
            }],
        }
        if node.spec.resources:
            container['resources'] = dict(node.spec.resources)

        return {
            'apiVersion': 'v1',
            'kind': 'Pod',
            'metadata': ManifestTemplates._metadata(node, POD_SUFFIX, 'node'),
            'spec': {
                # The node never talks to the Kubernetes API
                'automountServiceAccountToken': False,
                'containers': [container],
                'volumes': [{
                    'name': DATA_VOLUME,
                    'persistentVolumeClaim': {
                        'claimName': pvc_name
                    }
                }],
                'securityContext': {
                    'runAsUser': settings.run_as_user,
                    'runAsGroup': settings.run_as_group,
                    'fsGroup': settings.run_as_group,
                },
            }
        }

    @staticmethod
    def pod_fingerprint(pod: Mapping[str, Any],
                        declared: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Project a pod onto the fields the operator renders

        Both the desired manifest and the live pod go through this, so that
        server-populated metadata, status and injected defaults never count
        as drift. ``declared`` is the manifest the pod is compared against:
        resource sections it leaves out are dropped, since a LimitRange may
        fill them in at admission.
        """
        spec = pod.get('spec') or {}
        templates = ((declared or pod).get('spec') or {}).get('containers') or []
        containers = [
            _container_fingerprint(c, _declared_sections(templates[i] if i < len(templates) else c))
            for i, c in enumerate(spec.get('containers') or [])
        ]
        return {
            'automountServiceAccountToken': spec.get('automountServiceAccountToken'),
            'securityContext': _pick(spec.get('securityContext'), ('runAsUser', 'runAsGroup', 'fsGroup')),
            'containers': containers,
            'volumes': [_volume_fingerprint(v) for v in spec.get('volumes') or []],
        }

    @staticmethod
    def status_apply(node: NodeResource, phase: Phase, snapshot_restored: bool) -> Dict[str, Any]:
        """
        Server-side apply body for the fields of ``status`` owned by the operator
        """
        return {
            'apiVersion': node.api_version,
            'kind': node.kind,
            'metadata': {
                'name': node.name,
                'namespace': node.namespace,
            },
            'status': {
                'phase': phase.value,
                'snapshotRestored': snapshot_restored,
            }
        }


def _pick(data: Optional[Mapping[str, Any]], keys: Sequence[str]) -> Dict[str, Any]:
    if not data:
        return {}
    return {key: data[key] for key in keys if data.get(key) is not None}


def _container_fingerprint(container: Mapping[str, Any], sections: Set[str]) -> Dict[str, Any]:
    result = _pick(container, ('name', 'image', 'imagePullPolicy'))
    result['env'] = [_env_fingerprint(e) for e in container.get('env') or []]
    result['ports'] = [
        dict(_pick(p, ('name', 'containerPort')), protocol=p.get('protocol') or 'TCP')
        for p in container.get('ports') or []
    ]
    result['resources'] = _resources_fingerprint(container.get('resources'), sections)
    result['volumeMounts'] = [
        dict(_pick(m, ('name', 'mountPath')), readOnly=bool(m.get('readOnly')))
        for m in container.get('volumeMounts') or []
    ]
    return result


def _env_fingerprint(env: Mapping[str, Any]) -> Dict[str, Any]:
    result = _pick(env, ('name', 'value'))
    secret = (env.get('valueFrom') or {}).get('secretKeyRef')
    if secret:
        result['secretKeyRef'] = _pick(secret, ('name', 'key'))
    return result


def _declared_sections(container: Mapping[str, Any]) -> Set[str]:
    resources = container.get('resources') or {}
    if resources.get('limits'):
        return {'limits', 'requests'}
    return {'requests'} if resources.get('requests') else set()


def _resources_fingerprint(resources: Optional[Mapping[str, Any]], sections: Set[str]) -> Dict[str, Any]:
    resources = resources or {}
    limits = resources.get('limits') or {}
    # The API server defaults missing requests to the matching limits
    rendered = {
        'limits': limits,
        'requests': {**limits, **(resources.get('requests') or {})},
    }
    return {
        section: {name: _quantity(value) for name, value in values.items()}
        for section, values in rendered.items()
        if values and section in sections
    }


def _quantity(value: Any) -> Union[Decimal, Any]:
    # "1000m" and "1" are the same CPU request once the API server canonicalizes them
    try:
        return parse_quantity(value)
    except ValueError:
        return value


def _volume_fingerprint(volume: Mapping[str, Any]) -> Dict[str, Any]:
    result = _pick(volume, ('name',))
    claim = volume.get('persistentVolumeClaim')
    if claim:
        result['persistentVolumeClaim'] = _pick(claim, ('claimName',))
    return result
