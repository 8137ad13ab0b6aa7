"""
Unit tests for OperatorConfig
"""

import pytest

from pathfinder_operator import config as config_module
from pathfinder_operator.config import OperatorConfig, get_config, set_config


def test_defaults():
    config = OperatorConfig()

    assert config.field_manager == 'pathfinder-operator'
    assert config.resource.api_version == 'pathfinder.runelabs.xyz/v1alpha1'
    assert config.reconcile.requeue_seconds == 10
    assert config.reconcile.error_retry_seconds == 5
    assert config.reconcile.job_ttl_seconds == 1
    assert config.node.rpc_port == 9545
    assert config.node.monitoring_port == 9000


def test_from_env(monkeypatch):
    monkeypatch.setenv('OPERATOR_NAMESPACE', 'nodes')
    monkeypatch.setenv('PATHFINDER_IMAGE', 'eqlabs/pathfinder:v0.15')
    monkeypatch.setenv('SNAPSHOT_RESTORE_IMAGE', 'restore:v2')
    monkeypatch.setenv('REQUEUE_SECONDS', '30')
    monkeypatch.setenv('ERROR_RETRY_SECONDS', 'soon')
    monkeypatch.setenv('MAX_WORKERS', '4')
    monkeypatch.setenv('NODE_LOG_LEVEL', 'debug')

    config = OperatorConfig.from_env()

    assert config.namespace == 'nodes'
    assert config.images.node == 'eqlabs/pathfinder:v0.15'
    assert config.images.restore == 'restore:v2'
    assert config.reconcile.requeue_seconds == 30
    assert config.reconcile.recreate_requeue_seconds == 30
    assert config.reconcile.error_retry_seconds == 5
    assert config.max_workers == 4
    assert config.node.log_level == 'debug'


@pytest.mark.parametrize('mutate', [
    lambda c: setattr(c.reconcile, 'requeue_seconds', 0),
    lambda c: setattr(c.reconcile, 'error_retry_seconds', -1),
    lambda c: setattr(c.reconcile, 'job_ttl_seconds', -1),
    lambda c: setattr(c, 'max_workers', 0),
])
def test_validate_rejects(mutate):
    config = OperatorConfig()
    mutate(config)

    with pytest.raises(ValueError):
        config.validate()

    with pytest.raises(ValueError):
        set_config(config)


def test_get_config_is_a_singleton(monkeypatch):
    monkeypatch.setattr(config_module, '_config', None)
    monkeypatch.setenv('MAX_WORKERS', '7')

    first = get_config()

    assert first is get_config()
    assert first.max_workers == 7
