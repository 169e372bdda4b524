"""Unit tests for configuration loading and value types."""

import pytest

from adaptive_resources.core.config import AdaptiveConfig
from adaptive_resources.core.exceptions import (
    ConfigurationLoadError,
    ConfigurationValidationError,
    InvalidAction,
    InvalidMetrics,
)
from adaptive_resources.core.models import ActionType, ResourceAction


def test_defaults():
    config = AdaptiveConfig()

    assert config.prediction_interval == 10000
    assert config.adaptation_threshold == 0.7
    assert config.max_resource_increase == 0.5
    assert config.conservative_mode is False
    assert config.enable_proactive_scaling is True
    assert config.cost_optimization is True
    assert config.max_threads_for('cpu-bound') == 16
    assert config.max_threads_for('unknown') is None
    assert config.resource_limits.max_memory_mb == 8192
    assert config.resource_limits.max_cpu_utilization == 0.9


def test_conservative_mode_halves_scaling_step():
    assert AdaptiveConfig().scaling_step == 0.5
    assert AdaptiveConfig(conservative_mode=True).scaling_step == 0.25


def test_from_yaml(tmp_path):
    path = tmp_path / "adaptive.yaml"
    path.write_text(
        "prediction_interval: 5000\n"
        "adaptation_threshold: 0.8\n"
        "resource_limits:\n"
        "  max_threads:\n"
        "    render: 6\n"
        "  max_memory_mb: 2048\n"
    )

    config = AdaptiveConfig.from_yaml(str(path))

    assert config.prediction_interval == 5000
    assert config.adaptation_threshold == 0.8
    assert config.max_threads_for('render') == 6
    assert config.max_threads_for('cpu-bound') is None
    assert config.resource_limits.max_memory_mb == 2048


def test_invalid_values_are_reported():
    with pytest.raises(ConfigurationValidationError) as exc_info:
        AdaptiveConfig.from_dict({'adaptation_threshold': 1.5, 'history_size': 0})

    assert set(exc_info.value.details['invalid_keys']) == {'adaptation_threshold', 'history_size'}


def test_missing_file_raises_load_error(tmp_path):
    with pytest.raises(ConfigurationLoadError):
        AdaptiveConfig.from_yaml(str(tmp_path / "missing.yaml"))


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert AdaptiveConfig.from_yaml(str(path)) == AdaptiveConfig()


def test_action_from_dict_and_score():
    action = ResourceAction.from_dict({
        'type': 'allocate-memory',
        'target': 'heap',
        'magnitude': 256,
        'priority': 9,
        'estimated_benefit': 0.8,
        'estimated_cost': 0.05,
    })

    assert action.type == ActionType.ALLOCATE_MEMORY
    # cost is floored at 0.1 when scoring
    assert action.composite_score() == pytest.approx(17.0)
    assert action.to_dict()['type'] == 'allocate-memory'

    with pytest.raises(InvalidAction):
        ResourceAction.from_dict({'type': 'scale-threads'})


def test_metrics_validation(make_metrics):
    assert make_metrics(cpu=0.5).validate().cpu_utilization == 0.5
    with pytest.raises(InvalidMetrics):
        make_metrics(network=float('inf')).validate()
    with pytest.raises(InvalidMetrics):
        make_metrics(threads={'io-bound': float('nan')}).validate()
