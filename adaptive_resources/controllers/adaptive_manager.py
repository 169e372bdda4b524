from typing import Callable, Deque, List, Optional
from datetime import datetime, timedelta
from collections import deque
from enum import Enum
import asyncio
import logging
import math
import time

from ..analysis.policy_engine import PolicyEngine
from ..analysis.resource_predictor import ResourcePredictor
from ..core.config import AdaptiveConfig
from ..core.exceptions import InvalidMetrics, MetricsUnavailable
from ..core.models import (
    ActionType,
    ConditionOperator,
    PolicyCondition,
    ResourceAction,
    ResourcePolicy,
    ResourcePrediction,
    ScalingAnalytics,
    ScalingEvent,
    SystemMetrics,
)
from ..core.utils import MetricsUtils, TimeUtils
from ..execution.substrate import ExecutionSubstrate
from ..monitoring.metrics import ControllerMetrics
from ..monitoring.provider import MetricsProvider, PsutilMetricsProvider
from ..monitoring.resource_monitor import ResourceMonitor

PREDICTION_HORIZONS_MS = (60_000, 300_000, 900_000)
HISTORY_WINDOW_MS = 300_000
ANALYTICS_WINDOW = timedelta(hours=24)
RECENT_EVENT_COUNT = 20
BYTES_PER_MB = 1024 * 1024

class ManagerState(Enum):
    """Lifecycle of the adaptation loop."""
    IDLE = "idle"
    ADAPTING = "adapting"
    STOPPED = "stopped"

class AdaptiveResourceManager:
    """
    Predictive resource controller.
    Forecasts load over several horizons, plans ranked actions, admits them
    against configured limits and applies them through the execution
    substrate. A declarative policy pass runs through the same pipeline.
    """

    def __init__(
        self,
        substrate: ExecutionSubstrate,
        config: Optional[AdaptiveConfig] = None,
        provider: Optional[MetricsProvider] = None,
        monitor: Optional[ResourceMonitor] = None,
        predictor: Optional[ResourcePredictor] = None,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional[ControllerMetrics] = None
    ):
        """
        Initialize the adaptive resource manager.

        Args:
            substrate: Runtime that actions are applied to
            config: Controller configuration
            provider: Metrics source, used when no monitor is given
            monitor: Pre-built resource monitor
            predictor: Pre-built predictor
            clock: Optional time source, defaults to UTC now
            metrics: Prometheus instruments for the controller itself
        """
        self.substrate = substrate
        self.config = config or AdaptiveConfig()
        self.clock = clock or TimeUtils.get_utc_now
        self.logger = logging.getLogger(__name__)

        if monitor is None:
            provider = provider or PsutilMetricsProvider(
                pool_stats=getattr(substrate, 'pool_stats', None)
            )
            monitor = ResourceMonitor(provider, self.config.history_size, self.clock)
        self.resource_monitor = monitor

        self.predictor = predictor or ResourcePredictor(self.config)
        self.policy_engine = PolicyEngine(self.clock)
        self.metrics = metrics or ControllerMetrics()

        self.scaling_history: Deque[ScalingEvent] = deque(maxlen=self.config.event_capacity)

        self._is_adapting = False
        self._stopped = False
        self._adaptation_task: Optional[asyncio.Task] = None

        self._initialize_default_policies()
        if self.config.policies_file:
            self.policy_engine.load_policies(self.config.policies_file)

    @property
    def state(self) -> ManagerState:
        if self._stopped:
            return ManagerState.STOPPED
        if self._is_adapting:
            return ManagerState.ADAPTING
        return ManagerState.IDLE

    async def start(self):
        """Schedule the periodic adaptation loop on the running event loop."""
        if self._stopped:
            raise RuntimeError("Cannot start a manager after shutdown")
        if self._adaptation_task is None:
            self.logger.info(
                f"Starting adaptation loop every {self.config.prediction_interval:.0f}ms"
            )
            self._adaptation_task = asyncio.create_task(self._adaptation_loop())

    async def get_current_predictions(self) -> List[ResourcePrediction]:
        """Forecasts for the 1, 5 and 15 minute horizons from a fresh snapshot."""
        if self._stopped:
            return []
        current = await self.resource_monitor.get_current_metrics()
        return self._predict_horizons(current)

    async def optimize_resources(self) -> List[ResourceAction]:
        """
        Run one adaptation cycle.

        Returns:
            Actions that were admitted and applied successfully. Empty when
            another cycle is in progress or the manager has been shut down.
        """
        if self._stopped:
            self.logger.warning("Ignoring adaptation request after shutdown")
            return []
        if self._is_adapting:
            self.logger.debug("Adaptation cycle already running, skipping")
            return []

        self._is_adapting = True
        started = time.perf_counter()
        applied: List[ResourceAction] = []

        try:
            try:
                current = await self.resource_monitor.get_current_metrics()
                predictions = self._predict_horizons(current)
            except (MetricsUnavailable, InvalidMetrics) as e:
                self.logger.error(f"Skipping adaptation cycle: {e.message}")
                self.metrics.cycles.labels(outcome='skipped').inc()
                return []

            if self.config.enable_proactive_scaling:
                applied_targets = set()
                for prediction in predictions:
                    if prediction.confidence < self.config.adaptation_threshold:
                        continue

                    actions = await self.plan_resource_actions(prediction, current)
                    for action in actions:
                        key = (action.type, action.target)
                        # Longer horizons do not repeat what a nearer one already did
                        if self.config.cost_optimization and key in applied_targets:
                            continue
                        if await self._admit_and_apply(action, prediction, 'prediction'):
                            applied.append(action)
                            applied_targets.add(key)

            for policy_name, action in self.policy_engine.evaluate_policies_by_name(current, self.clock()):
                if await self._admit_and_apply(action, None, f"policy:{policy_name}"):
                    applied.append(action)

            self.metrics.cycles.labels(outcome='completed').inc()
            self.metrics.cycle_duration.observe(time.perf_counter() - started)

            if applied:
                self.logger.info(f"Adaptation cycle applied {len(applied)} action(s)")
            return applied

        finally:
            self._is_adapting = False

    def update_policy(self, policy: ResourcePolicy):
        """Insert or replace a reactive policy."""
        self.policy_engine.update_policy(policy)

    async def plan_resource_actions(
        self,
        prediction: ResourcePrediction,
        current_metrics: SystemMetrics
    ) -> List[ResourceAction]:
        """
        Derive candidate actions from a prediction, best first.

        Args:
            prediction: Forecast for one horizon
            current_metrics: Snapshot the forecast was made from

        Returns:
            Candidates sorted by descending composite score
        """
        load = prediction.predicted_load
        step = self.config.scaling_step
        actions: List[ResourceAction] = []

        if load.cpu > 0.8:
            actions.append(ResourceAction(
                type=ActionType.REDISTRIBUTE_LOAD,
                target='cpu-workload',
                magnitude=min(0.3, load.cpu - 0.7),
                priority=8,
                estimated_benefit=0.6,
                estimated_cost=0.2,
                description=(
                    f"Redistribute CPU load to prevent bottleneck "
                    f"(predicted {load.cpu * 100:.1f}% utilization)"
                )
            ))

        max_cpu = self.config.resource_limits.max_cpu_utilization
        if load.cpu > max_cpu:
            actions.append(ResourceAction(
                type=ActionType.THROTTLE_REQUESTS,
                target='requests',
                magnitude=load.cpu - max_cpu,
                priority=5,
                estimated_benefit=0.5,
                estimated_cost=0.3,
                description=(
                    f"Throttle intake while CPU is predicted above "
                    f"{max_cpu * 100:.0f}% ({load.cpu * 100:.1f}%)"
                )
            ))

        if load.memory > 0.85:
            actions.append(ResourceAction(
                type=ActionType.TRIGGER_GC,
                target='memory',
                magnitude=1,
                priority=7,
                estimated_benefit=0.4,
                estimated_cost=0.1,
                description='Trigger garbage collection to free memory before pressure increases'
            ))

            if load.memory > 0.9:
                actions.append(ResourceAction(
                    type=ActionType.ALLOCATE_MEMORY,
                    target='heap',
                    magnitude=min(step, load.memory - 0.8),
                    priority=9,
                    estimated_benefit=0.8,
                    estimated_cost=0.6,
                    description=(
                        f"Allocate additional memory "
                        f"(predicted {load.memory * 100:.1f}% utilization)"
                    )
                ))

        for pool, predicted in load.threads.items():
            current = current_metrics.thread_pool_utilization.get(pool, 0.0)

            # High but stable pools are left alone
            if predicted <= 0.85 or predicted <= current + 0.2:
                continue

            try:
                current_size = await self.substrate.get_pool_size(pool)
            except Exception as e:
                self.logger.warning(f"Cannot read size of pool {pool}: {str(e)}")
                continue

            max_size = self.config.max_threads_for(pool)
            if max_size is None:
                max_size = current_size * 2
            scale_amount = math.ceil(current_size * min(step, (predicted - 0.7) * 2))

            # Empty or capped-at-zero pools have nothing to scale from
            if scale_amount <= 0 or max_size <= 0:
                continue
            if current_size + scale_amount > max_size:
                continue

            actions.append(ResourceAction(
                type=ActionType.SCALE_THREADS,
                target=pool,
                magnitude=scale_amount,
                priority=10 if predicted > 0.95 else 6,
                estimated_benefit=min(0.9, predicted - 0.5),
                estimated_cost=scale_amount / max_size,
                description=(
                    f"Scale {pool} thread pool by {scale_amount} threads "
                    f"(predicted {predicted * 100:.1f}% utilization)"
                )
            ))

        return sorted(actions, key=lambda a: a.composite_score(), reverse=True)

    async def can_apply_action(self, action: ResourceAction) -> bool:
        """Admission check against configured limits. Does not change any state."""
        limits = self.config.resource_limits

        try:
            if action.type == ActionType.SCALE_THREADS:
                current_size = await self.substrate.get_pool_size(action.target)
                max_size = self.config.max_threads_for(action.target)
                if max_size is None:
                    max_size = math.inf
                return current_size + action.magnitude <= max_size

            if action.type == ActionType.ALLOCATE_MEMORY:
                current_memory = await self.resource_monitor.get_current_memory_usage()
                return (
                    current_memory + action.magnitude * BYTES_PER_MB
                    <= limits.max_memory_mb * BYTES_PER_MB
                )

            if action.type in (
                ActionType.TRIGGER_GC,
                ActionType.REDISTRIBUTE_LOAD,
                ActionType.THROTTLE_REQUESTS
            ):
                return True

        except Exception as e:
            self.logger.warning(f"Admission check failed for {action.type.value} on {action.target}: {str(e)}")
            return False

        return False

    async def apply_action(self, action: ResourceAction) -> bool:
        """Dispatch an action to the substrate. Substrate errors become False."""
        try:
            if action.type == ActionType.SCALE_THREADS:
                return await self.substrate.scale_pool(action.target, int(action.magnitude))
            if action.type == ActionType.ALLOCATE_MEMORY:
                return await self.substrate.preallocate_memory(action.magnitude)
            if action.type == ActionType.TRIGGER_GC:
                return await self.substrate.force_gc()
            if action.type == ActionType.REDISTRIBUTE_LOAD:
                return await self.substrate.redistribute(action.target, action.magnitude)
            if action.type == ActionType.THROTTLE_REQUESTS:
                return await self.substrate.throttle(action.magnitude)

            self.logger.error(f"Unsupported action type: {action.type}")
            return False

        except Exception as e:
            self.logger.error(f"Failed to apply action {action.type.value} on {action.target}: {str(e)}")
            return False

    def record_measured_impact(self, event: ScalingEvent, impact: float):
        """Attach the observed improvement of an earlier action."""
        event.measured_impact = MetricsUtils.clamp01(impact)

    def get_scaling_history(self) -> ScalingAnalytics:
        """Analytics over the scaling events of the last 24 hours."""
        recent = self._recent_events()
        count = len(recent)

        success_rate = sum(1 for e in recent if e.success) / count if count else 0.0
        average_impact = sum(e.measured_impact or 0.0 for e in recent) / count if count else 0.0

        return ScalingAnalytics(
            total_adaptations=count,
            success_rate=success_rate,
            average_impact=average_impact,
            recent_events=recent[-RECENT_EVENT_COUNT:],
            resource_savings=self._calculate_resource_savings(recent),
            performance_gains=self._calculate_performance_gains(recent)
        )

    def shutdown(self):
        """Stop scheduling cycles and drop monitor history. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True

        if self._adaptation_task is not None:
            self._adaptation_task.cancel()
            self._adaptation_task = None

        self.resource_monitor.cleanup()
        self.logger.info("Adaptive resource manager stopped")

    async def _adaptation_loop(self):
        interval = self.config.prediction_interval / 1000.0
        while not self._stopped:
            await asyncio.sleep(interval)
            try:
                # Shielded so shutdown never interrupts a cycle midway
                await asyncio.shield(self.optimize_resources())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Resource adaptation failed: {str(e)}")

    def _predict_horizons(self, current: SystemMetrics) -> List[ResourcePrediction]:
        history = self.resource_monitor.get_historical_metrics(HISTORY_WINDOW_MS)
        predictions = [
            self.predictor.predict(current, history, horizon)
            for horizon in PREDICTION_HORIZONS_MS
        ]
        for prediction in predictions:
            self.metrics.prediction_confidence.labels(
                horizon_ms=str(int(prediction.time_horizon_ms))
            ).set(prediction.confidence)
        return predictions

    async def _admit_and_apply(
        self,
        action: ResourceAction,
        prediction: Optional[ResourcePrediction],
        source: str
    ) -> bool:
        if not await self.can_apply_action(action):
            self.logger.debug(f"Admission rejected {action.type.value} on {action.target}")
            self.metrics.rejections.labels(action_type=action.type.value).inc()
            return False

        success = await self.apply_action(action)
        self._record_scaling_event(action, prediction, success, source)
        self.metrics.actions.labels(
            action_type=action.type.value,
            source=source.split(':', 1)[0],
            result='success' if success else 'failure'
        ).inc()
        return success

    def _record_scaling_event(
        self,
        action: ResourceAction,
        prediction: Optional[ResourcePrediction],
        success: bool,
        source: str
    ):
        self.scaling_history.append(ScalingEvent(
            timestamp=self.clock(),
            action=action,
            prediction=prediction,
            success=success,
            source=source
        ))

    def _recent_events(self) -> List[ScalingEvent]:
        now = self.clock()
        return [e for e in self.scaling_history if now - e.timestamp < ANALYTICS_WINDOW]

    @staticmethod
    def _calculate_resource_savings(events: List[ScalingEvent]) -> float:
        # Freed capacity is estimated at 10% of the measured impact
        return sum(
            (e.measured_impact or 0.0) * 0.1
            for e in events
            if e.action.type in (ActionType.TRIGGER_GC, ActionType.REDISTRIBUTE_LOAD)
        )

    @staticmethod
    def _calculate_performance_gains(events: List[ScalingEvent]) -> float:
        total = sum((e.measured_impact or 0.0) * e.action.estimated_benefit for e in events)
        return total / max(1, len(events))

    def _initialize_default_policies(self):
        self.policy_engine.update_policy(ResourcePolicy(
            name='cpu-overload-prevention',
            conditions=[
                PolicyCondition(
                    metric='cpu',
                    operator=ConditionOperator.GREATER_THAN,
                    threshold=0.85,
                    time_window_ms=30_000
                )
            ],
            actions=[
                ResourceAction(
                    type=ActionType.REDISTRIBUTE_LOAD,
                    target='cpu-workload',
                    magnitude=0.2,
                    priority=8,
                    estimated_benefit=0.6,
                    estimated_cost=0.1,
                    description='Redistribute CPU load to prevent overload'
                )
            ],
            cooldown_ms=60_000
        ))

        self.policy_engine.update_policy(ResourcePolicy(
            name='memory-pressure-relief',
            conditions=[
                PolicyCondition(
                    metric='memory',
                    operator=ConditionOperator.GREATER_THAN,
                    threshold=0.9,
                    time_window_ms=15_000
                )
            ],
            actions=[
                ResourceAction(
                    type=ActionType.TRIGGER_GC,
                    target='memory',
                    magnitude=1,
                    priority=9,
                    estimated_benefit=0.5,
                    estimated_cost=0.05,
                    description='Trigger garbage collection to relieve memory pressure'
                )
            ],
            cooldown_ms=30_000
        ))
