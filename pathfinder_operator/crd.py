"""
CustomResourceDefinition of StarknetNode

Print it with ``python -m pathfinder_operator.crd | kubectl apply -f -``.
"""

from typing import Any, Dict

import yaml

from pathfinder_operator.config import get_config
from pathfinder_operator.lifecycle import Phase


def _storage_schema(description: str) -> Dict[str, Any]:
    return {
        'type': 'object',
        'description': description,
        'required': ['size'],
        'properties': {
            'size': {
                'x-kubernetes-int-or-string': True,
                'anyOf': [{'type': 'integer'}, {'type': 'string'}],
                'pattern': r'^(\+|-)?(([0-9]+(\.[0-9]*)?)|(\.[0-9]+))(([KMGTPE]i)|[numkMGTPE]|([eE](\+|-)?(([0-9]+(\.[0-9]*)?)|(\.[0-9]+))))?$',
            },
            'class': {
                'type': 'string',
                'nullable': True,
            },
        },
    }


def _resources_schema() -> Dict[str, Any]:
    quantities = {
        'type': 'object',
        'additionalProperties': {
            'x-kubernetes-int-or-string': True,
            'anyOf': [{'type': 'integer'}, {'type': 'string'}],
        },
    }
    return {
        'type': 'object',
        'description': 'The allocated resources for the node',
        'properties': {
            'limits': quantities,
            'requests': quantities,
        },
    }


def crd_manifest() -> Dict[str, Any]:
    """
    Generate the CRD manifest, including the status subresource and the
    rule keeping the storage class immutable
    """
    resource = get_config().resource

    storage = _storage_schema('Storage of the node data')
    storage['x-kubernetes-validations'] = [{
        'rule': 'has(self.class) == has(oldSelf.class) && (!has(self.class) || self.class == oldSelf.class)',
        'message': 'storage class is immutable',
    }]

    spec_schema = {
        'type': 'object',
        'required': ['network', 'l1RpcSecretRef', 'storage'],
        'properties': {
            'network': {
                'type': 'string',
                'description': 'The network used by the node',
            },
            'image': {
                'type': 'string',
                'description': 'Override of the pathfinder image',
            },
            'snapshot': {
                'type': 'object',
                'description': 'The snapshot of the database, used to accelerate the catch-up process',
                'required': ['fileName', 'checksum', 'storage'],
                'properties': {
                    'fileName': {'type': 'string'},
                    'checksum': {'type': 'string'},
                    'rsyncConfig': {'type': 'string'},
                    'restoreImage': {'type': 'string'},
                    'storage': _storage_schema('Scratch storage used while restoring'),
                },
            },
            'l1RpcSecretRef': {
                'type': 'object',
                'description': 'The secret that contains the RPC URL for L1 interactions',
                'required': ['name', 'key'],
                'properties': {
                    'name': {'type': 'string'},
                    'key': {'type': 'string'},
                },
            },
            'resources': _resources_schema(),
            'storage': storage,
        },
    }

    status_schema = {
        'type': 'object',
        'properties': {
            'phase': {
                'type': 'string',
                'enum': [phase.value for phase in Phase],
            },
            'snapshotRestored': {'type': 'boolean'},
            'head': {'type': 'string', 'nullable': True},
        },
    }

    return {
        'apiVersion': 'apiextensions.k8s.io/v1',
        'kind': 'CustomResourceDefinition',
        'metadata': {
            'name': f'{resource.plural}.{resource.group}',
        },
        'spec': {
            'group': resource.group,
            'scope': 'Namespaced',
            'names': {
                'kind': resource.kind,
                'plural': resource.plural,
                'singular': resource.singular,
            },
            'versions': [{
                'name': resource.version,
                'served': True,
                'storage': True,
                'subresources': {
                    'status': {}
                },
                'additionalPrinterColumns': [
                    {'name': 'Network', 'type': 'string', 'jsonPath': '.spec.network'},
                    {'name': 'Phase', 'type': 'string', 'jsonPath': '.status.phase'},
                    {'name': 'Restored', 'type': 'boolean', 'jsonPath': '.status.snapshotRestored'},
                ],
                'schema': {
                    'openAPIV3Schema': {
                        'type': 'object',
                        'properties': {
                            'spec': spec_schema,
                            'status': status_schema,
                        },
                    }
                },
            }],
        },
    }


if __name__ == '__main__':
    print(yaml.safe_dump(crd_manifest(), sort_keys=False))
