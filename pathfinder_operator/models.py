"""
Typed view over the StarknetNode custom resource
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from pathfinder_operator.errors import InvalidSpecError
from pathfinder_operator.lifecycle import Phase


@dataclass(frozen=True)
class StorageSpec:
    size: str
    storage_class: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str) -> 'StorageSpec':
        if not data or not data.get('size'):
            raise InvalidSpecError(f"{where}.size is required")
        return cls(size=str(data['size']), storage_class=data.get('class'))


@dataclass(frozen=True)
class SnapshotSpec:
    file_name: str
    checksum: str
    storage: StorageSpec
    rsync_config: Optional[str] = None
    restore_image: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SnapshotSpec':
        for key in ('fileName', 'checksum'):
            if not data.get(key):
                raise InvalidSpecError(f"spec.snapshot.{key} is required")
        return cls(
            file_name=data['fileName'],
            checksum=data['checksum'],
            storage=StorageSpec.from_dict(data.get('storage') or {}, 'spec.snapshot.storage'),
            rsync_config=data.get('rsyncConfig'),
            restore_image=data.get('restoreImage'),
        )


@dataclass(frozen=True)
class SecretKeyRef:
    name: str
    key: str


@dataclass(frozen=True)
class NodeSpec:
    network: str
    storage: StorageSpec
    l1_rpc_secret_ref: SecretKeyRef
    resources: Dict[str, Any] = field(default_factory=dict)
    snapshot: Optional[SnapshotSpec] = None
    image: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'NodeSpec':
        if not data.get('network'):
            raise InvalidSpecError("spec.network is required")

        secret = data.get('l1RpcSecretRef') or {}
        if not secret.get('name') or not secret.get('key'):
            raise InvalidSpecError("spec.l1RpcSecretRef requires name and key")

        snapshot = data.get('snapshot')
        return cls(
            network=data['network'],
            storage=StorageSpec.from_dict(data.get('storage') or {}, 'spec.storage'),
            l1_rpc_secret_ref=SecretKeyRef(name=secret['name'], key=secret['key']),
            resources=dict(data.get('resources') or {}),
            snapshot=SnapshotSpec.from_dict(snapshot) if snapshot else None,
            image=data.get('image'),
        )


@dataclass(frozen=True)
class NodeStatus:
    phase: Phase = Phase.PENDING
    snapshot_restored: bool = False
    head: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional['NodeStatus']:
        # kopf reports a missing status as an empty mapping
        if not data or ('phase' not in data and 'snapshotRestored' not in data):
            return None
        try:
            phase = Phase(data.get('phase') or Phase.PENDING.value)
        except ValueError:
            phase = Phase.PENDING
        return cls(
            phase=phase,
            snapshot_restored=bool(data.get('snapshotRestored', False)),
            head=data.get('head'),
        )


@dataclass(frozen=True)
class NodeResource:
    """A StarknetNode as seen at the start of a reconciliation pass"""
    name: str
    namespace: str
    uid: str
    api_version: str
    kind: str
    spec: NodeSpec
    status: Optional[NodeStatus]
    body: Mapping[str, Any] = field(repr=False, compare=False, default_factory=dict)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> 'NodeResource':
        metadata = body.get('metadata', {})
        return cls(
            name=metadata['name'],
            namespace=metadata['namespace'],
            uid=metadata.get('uid', ''),
            api_version=body.get('apiVersion', ''),
            kind=body.get('kind', ''),
            spec=NodeSpec.from_dict(body.get('spec') or {}),
            status=NodeStatus.from_dict(body.get('status')),
            body=body,
        )

    @property
    def current_status(self) -> NodeStatus:
        return self.status or NodeStatus()

    def prefixed_name(self, suffix: str) -> str:
        """Name of a child object owned by this node"""
        return f'{self.name}-{suffix}'

    def with_status(self, status: NodeStatus) -> 'NodeResource':
        return replace(self, status=status)
