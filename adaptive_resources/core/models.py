from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum

from .exceptions import InvalidAction, InvalidMetrics, InvalidPolicy
from .utils import MetricsUtils, TimeUtils

class ActionType(Enum):
    """Kinds of directives the controller can issue to the execution substrate."""
    SCALE_THREADS = "scale-threads"
    ALLOCATE_MEMORY = "allocate-memory"
    TRIGGER_GC = "trigger-gc"
    REDISTRIBUTE_LOAD = "redistribute-load"
    THROTTLE_REQUESTS = "throttle-requests"

class RiskLevel(Enum):
    """Risk classification of a forecast."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_utilization(cls, utilization: float) -> "RiskLevel":
        if utilization >= 0.95:
            return cls.CRITICAL
        if utilization >= 0.85:
            return cls.HIGH
        if utilization >= 0.70:
            return cls.MEDIUM
        return cls.LOW

class ConditionOperator(Enum):
    """Comparison operators for policy conditions."""
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="
    EQUAL = "=="
    TREND_UP = "trend_up"
    TREND_DOWN = "trend_down"

@dataclass(frozen=True)
class SystemMetrics:
    """Point-in-time snapshot of runtime utilization."""
    timestamp: datetime
    cpu_utilization: float
    memory_utilization: float
    network_utilization: float = 0.0
    thread_pool_utilization: Dict[str, float] = field(default_factory=dict)
    queue_sizes: Dict[str, int] = field(default_factory=dict)
    average_task_duration: Dict[str, float] = field(default_factory=dict)
    system_load: float = 0.0

    def validate(self) -> "SystemMetrics":
        """Reject snapshots holding non-finite values; returns self for chaining."""
        scalars = {
            'cpu_utilization': self.cpu_utilization,
            'memory_utilization': self.memory_utilization,
            'network_utilization': self.network_utilization,
            'system_load': self.system_load,
        }
        for name, value in scalars.items():
            if not MetricsUtils.is_finite(value):
                raise InvalidMetrics(f"Non-finite value for {name}", name, value)

        for mapping_name in ('thread_pool_utilization', 'queue_sizes', 'average_task_duration'):
            for pool, value in getattr(self, mapping_name).items():
                if not MetricsUtils.is_finite(value):
                    raise InvalidMetrics(
                        f"Non-finite value for {mapping_name}[{pool}]",
                        f"{mapping_name}.{pool}",
                        value
                    )

        if self.system_load < 0:
            raise InvalidMetrics("System load must be non-negative", 'system_load', self.system_load)
        for pool, size in self.queue_sizes.items():
            if size < 0:
                raise InvalidMetrics("Queue size must be non-negative", f"queue_sizes.{pool}", size)

        return self

@dataclass(frozen=True)
class ResourceAction:
    """A planned or policy-defined directive for the execution substrate."""
    type: ActionType
    target: str
    magnitude: float
    priority: int
    estimated_benefit: float
    estimated_cost: float
    description: str = ""

    def composite_score(self) -> float:
        """Ordering score: priority plus benefit/cost ratio."""
        return self.priority + self.estimated_benefit / max(0.1, self.estimated_cost)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceAction":
        try:
            return cls(
                type=ActionType(data['type']),
                target=str(data['target']),
                magnitude=float(data['magnitude']),
                priority=int(data.get('priority', 5)),
                estimated_benefit=float(data.get('estimated_benefit', 0.5)),
                estimated_cost=float(data.get('estimated_cost', 0.5)),
                description=data.get('description', '')
            )
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidAction(f"Invalid action definition: {str(e)}", data) from e

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['type'] = self.type.value
        return data

@dataclass
class PredictedLoad:
    """Forecast utilization per metric, each clamped to [0, 1]."""
    cpu: float
    memory: float
    threads: Dict[str, float] = field(default_factory=dict)
    network: float = 0.0

    def max_utilization(self) -> float:
        return max([self.cpu, self.memory, self.network, *self.threads.values()])

@dataclass
class ResourcePrediction:
    """Container for a single-horizon forecast."""
    time_horizon_ms: float
    predicted_load: PredictedLoad
    confidence: float
    risk_level: RiskLevel
    recommended_actions: List[ResourceAction] = field(default_factory=list)

@dataclass
class PolicyCondition:
    """Single threshold test of a policy."""
    metric: str
    operator: ConditionOperator
    threshold: float
    time_window_ms: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyCondition":
        return cls(
            metric=data['metric'],
            operator=ConditionOperator(data['operator']),
            threshold=float(data['threshold']),
            time_window_ms=data.get('time_window_ms')
        )

@dataclass
class ResourcePolicy:
    """Declarative rule: when all conditions hold, fire every action."""
    name: str
    conditions: List[PolicyCondition]
    actions: List[ResourceAction]
    cooldown_ms: float = 0.0
    last_applied: Optional[datetime] = None

    def __post_init__(self):
        if self.cooldown_ms < 0:
            raise InvalidPolicy("Cooldown must be non-negative", self.name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourcePolicy":
        name = data.get('name')
        try:
            return cls(
                name=data['name'],
                conditions=[PolicyCondition.from_dict(c) for c in data.get('conditions', [])],
                actions=[ResourceAction.from_dict(a) for a in data.get('actions', [])],
                cooldown_ms=float(data.get('cooldown_ms', 0))
            )
        except InvalidAction as e:
            raise InvalidPolicy(f"Invalid action in policy: {e.message}", name) from e
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidPolicy(f"Invalid policy definition: {str(e)}", name) from e

@dataclass
class ScalingEvent:
    """Audit record of one admitted action."""
    timestamp: datetime
    action: ResourceAction
    prediction: Optional[ResourcePrediction]
    success: bool
    measured_impact: Optional[float] = None
    source: str = "prediction"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': TimeUtils.format_timestamp(self.timestamp),
            'action': self.action.to_dict(),
            'horizon_ms': self.prediction.time_horizon_ms if self.prediction else None,
            'success': self.success,
            'measured_impact': self.measured_impact,
            'source': self.source
        }

@dataclass
class ScalingAnalytics:
    """Aggregate view over the trailing window of scaling events."""
    total_adaptations: int
    success_rate: float
    average_impact: float
    recent_events: List[ScalingEvent]
    resource_savings: float
    performance_gains: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_adaptations': self.total_adaptations,
            'success_rate': self.success_rate,
            'average_impact': self.average_impact,
            'recent_events': [event.to_dict() for event in self.recent_events],
            'resource_savings': self.resource_savings,
            'performance_gains': self.performance_gains
        }
