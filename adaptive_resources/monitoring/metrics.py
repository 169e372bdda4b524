from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

class ControllerMetrics:
    """
    Prometheus instruments describing the controller's own behaviour.
    Each manager registers on its own registry; exposing it is up to the host.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.cycles = Counter(
            'adaptive_cycles',
            'Adaptation cycles by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.actions = Counter(
            'adaptive_actions',
            'Admitted actions by type, source and result',
            ['action_type', 'source', 'result'],
            registry=self.registry
        )
        self.rejections = Counter(
            'adaptive_admission_rejections',
            'Actions rejected by admission control',
            ['action_type'],
            registry=self.registry
        )
        self.cycle_duration = Histogram(
            'adaptive_cycle_duration_seconds',
            'Duration of completed adaptation cycles',
            registry=self.registry
        )
        self.prediction_confidence = Gauge(
            'adaptive_prediction_confidence',
            'Confidence of the latest prediction per horizon',
            ['horizon_ms'],
            registry=self.registry
        )

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})
