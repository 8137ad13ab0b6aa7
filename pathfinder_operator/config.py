"""
Configuration management for the Pathfinder Node Operator
"""

import os
from typing import Optional
from dataclasses import dataclass, field


@dataclass
class ResourceConfig:
    """Identity of the StarknetNode custom resource"""
    group: str = 'pathfinder.runelabs.xyz'
    version: str = 'v1alpha1'
    plural: str = 'starknetnodes'
    singular: str = 'starknetnode'
    kind: str = 'StarknetNode'

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}'


@dataclass
class ImageConfig:
    """Default container images"""
    node: str = 'eqlabs/pathfinder:latest'
    node_pull_policy: str = 'IfNotPresent'
    restore: str = 'ghcr.io/runelabsxyz/pathfinder-snapshotter:latest'


@dataclass
class NodeConfig:
    """Fixed settings of the node pod"""
    data_dir: str = '/usr/share/pathfinder/data'
    rpc_port: int = 9545
    monitoring_port: int = 9000
    run_as_user: int = 1000
    run_as_group: int = 1000
    log_level: str = field(default_factory=lambda: os.getenv('NODE_LOG_LEVEL', 'info'))


@dataclass
class ReconcileConfig:
    """Requeue and retry policy of the reconciliation loop"""
    requeue_seconds: float = 10
    recreate_requeue_seconds: float = 10
    error_retry_seconds: float = 5
    # Time-to-live applied to a finished restore job
    job_ttl_seconds: int = 1


@dataclass
class OperatorConfig:
    """Main operator configuration"""

    # Operator metadata
    name: str = 'pathfinder-operator'
    version: str = '0.1.0'

    # Kubernetes API configuration
    namespace: Optional[str] = None  # None means watch all namespaces

    # Component configurations
    resource: ResourceConfig = field(default_factory=ResourceConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    node: NodeConfig = field(default_factory=NodeConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)

    # Operator behavior
    max_workers: int = 20

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))

    @property
    def field_manager(self) -> str:
        """Field owner used for server-side apply writes"""
        return self.name

    @classmethod
    def from_env(cls) -> 'OperatorConfig':
        """
        Create configuration from environment variables

        Environment variables:
        - OPERATOR_NAMESPACE: Namespace to watch (default: all)
        - LOG_LEVEL: Logging level (default: INFO)
        - PATHFINDER_IMAGE: Node image used when the resource sets none
        - SNAPSHOT_RESTORE_IMAGE: Restore job image used when the resource sets none
        - REQUEUE_SECONDS: Polling interval between passes (default: 10)
        - ERROR_RETRY_SECONDS: Delay before retrying a failed pass (default: 5)
        - MAX_WORKERS: Concurrent reconciliations (default: 20)
        - NODE_LOG_LEVEL: RUST_LOG value for the node container (default: info)
        """
        config = cls()

        # Override from environment
        if namespace := os.getenv('OPERATOR_NAMESPACE'):
            config.namespace = namespace

        if image := os.getenv('PATHFINDER_IMAGE'):
            config.images.node = image

        if image := os.getenv('SNAPSHOT_RESTORE_IMAGE'):
            config.images.restore = image

        if requeue := os.getenv('REQUEUE_SECONDS'):
            try:
                config.reconcile.requeue_seconds = float(requeue)
                config.reconcile.recreate_requeue_seconds = float(requeue)
            except ValueError:
                pass  # Use default if invalid

        if retry := os.getenv('ERROR_RETRY_SECONDS'):
            try:
                config.reconcile.error_retry_seconds = float(retry)
            except ValueError:
                pass

        if workers := os.getenv('MAX_WORKERS'):
            try:
                config.max_workers = int(workers)
            except ValueError:
                pass

        return config

    def validate(self) -> None:
        """
        Validate configuration

        Raises:
            ValueError: If configuration is invalid
        """
        if self.reconcile.requeue_seconds <= 0:
            raise ValueError("Requeue interval must be positive")

        if self.reconcile.recreate_requeue_seconds <= 0:
            raise ValueError("Recreation requeue interval must be positive")

        if self.reconcile.error_retry_seconds <= 0:
            raise ValueError("Error retry delay must be positive")

        if self.reconcile.job_ttl_seconds < 0:
            raise ValueError("Job TTL cannot be negative")

        if self.max_workers < 1:
            raise ValueError("At least one worker is required")


# Global configuration instance
_config: Optional[OperatorConfig] = None


def get_config() -> OperatorConfig:
    """
    Get the global configuration instance (singleton pattern)

    Returns:
        OperatorConfig: The global configuration
    """
    global _config
    if _config is None:
        _config = OperatorConfig.from_env()
        _config.validate()
    return _config


def set_config(config: OperatorConfig) -> None:
    """
    Set the global configuration instance

    Args:
        config: New configuration instance
    """
    global _config
    config.validate()
    _config = config
