from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime
import logging

from ..core.config import load_yaml_config
from ..core.exceptions import InvalidPolicy
from ..core.models import (
    ConditionOperator,
    PolicyCondition,
    ResourceAction,
    ResourcePolicy,
    SystemMetrics,
)
from ..core.utils import TimeUtils

EQUALITY_TOLERANCE = 0.01

class PolicyEngine:
    """
    Evaluates declarative threshold policies against current metrics.
    Independent of forecasting; policies fire at most once per cooldown.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or TimeUtils.get_utc_now
        self.logger = logging.getLogger(__name__)

        # dicts keep insertion order, which is the evaluation order
        self._policies: Dict[str, ResourcePolicy] = {}

        self.evaluators = {
            ConditionOperator.GREATER_THAN: lambda x, t: x > t,
            ConditionOperator.LESS_THAN: lambda x, t: x < t,
            ConditionOperator.GREATER_EQUAL: lambda x, t: x >= t,
            ConditionOperator.LESS_EQUAL: lambda x, t: x <= t,
            ConditionOperator.EQUAL: lambda x, t: abs(x - t) < EQUALITY_TOLERANCE,
            # Reserved until a windowed trend evaluator exists
            ConditionOperator.TREND_UP: lambda x, t: False,
            ConditionOperator.TREND_DOWN: lambda x, t: False,
        }

    def update_policy(self, policy: ResourcePolicy):
        """Insert or replace a policy by name, keeping its cooldown state."""
        existing = self._policies.get(policy.name)
        if existing is not None and policy.last_applied is None:
            policy.last_applied = existing.last_applied

        self._policies[policy.name] = policy
        self.logger.info(f"Policy '{policy.name}' registered with {len(policy.conditions)} condition(s)")

    def remove_policy(self, name: str) -> Optional[ResourcePolicy]:
        return self._policies.pop(name, None)

    def get_policy(self, name: str) -> Optional[ResourcePolicy]:
        return self._policies.get(name)

    @property
    def policies(self) -> List[ResourcePolicy]:
        return list(self._policies.values())

    def load_policies(self, path: str) -> List[ResourcePolicy]:
        """Register every policy listed under 'policies' in a YAML file."""
        data = load_yaml_config(path)
        entries = data.get('policies', []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise InvalidPolicy(f"Expected a list of policies in {path}")

        loaded = [ResourcePolicy.from_dict(entry) for entry in entries]
        for policy in loaded:
            self.update_policy(policy)
        return loaded

    def evaluate_policies(
        self,
        current_metrics: SystemMetrics,
        now: Optional[datetime] = None
    ) -> List[ResourceAction]:
        """
        Collect the actions of every eligible policy whose conditions all hold.

        Args:
            current_metrics: Snapshot to test conditions against
            now: Evaluation time, defaults to the engine clock

        Returns:
            Actions of fired policies, in registration order
        """
        return [action for _, action in self.evaluate_policies_by_name(current_metrics, now)]

    def evaluate_policies_by_name(
        self,
        current_metrics: SystemMetrics,
        now: Optional[datetime] = None
    ) -> List[Tuple[str, ResourceAction]]:
        """Same as evaluate_policies, pairing each action with its policy name."""
        now = now or self.clock()
        fired: List[Tuple[str, ResourceAction]] = []

        for policy in self._policies.values():
            if self.in_cooldown(policy, now):
                continue

            if all(self.evaluate_condition(c, current_metrics) for c in policy.conditions):
                fired.extend((policy.name, action) for action in policy.actions)
                policy.last_applied = now
                self.logger.info(f"Policy '{policy.name}' fired with {len(policy.actions)} action(s)")

        return fired

    @staticmethod
    def in_cooldown(policy: ResourcePolicy, now: datetime) -> bool:
        if policy.last_applied is None:
            return False
        return TimeUtils.elapsed_ms(policy.last_applied, now) < policy.cooldown_ms

    def evaluate_condition(self, condition: PolicyCondition, metrics: SystemMetrics) -> bool:
        value = self._extract_metric(condition.metric, metrics)
        if value is None:
            return False

        evaluator = self.evaluators.get(condition.operator)
        if evaluator is None:
            return False
        return evaluator(value, condition.threshold)

    @staticmethod
    def _extract_metric(path: str, metrics: SystemMetrics) -> Optional[float]:
        if path == 'cpu':
            return metrics.cpu_utilization
        if path == 'memory':
            return metrics.memory_utilization
        if path == 'network':
            return metrics.network_utilization
        if path.startswith('threads.'):
            pool = path[len('threads.'):]
            if not pool:
                return None
            return metrics.thread_pool_utilization.get(pool)
        return None
