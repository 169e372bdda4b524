import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..core.config import AdaptiveConfig
from ..core.exceptions import InvalidMetrics
from ..core.models import (
    ActionType,
    PredictedLoad,
    ResourceAction,
    ResourcePrediction,
    RiskLevel,
    SystemMetrics,
)
from ..core.utils import MetricsUtils

TREND_WINDOW = 10
FULL_HISTORY = 100
MIN_STABILITY = 0.3

@dataclass
class MetricTerms:
    """Per-metric additive terms (trend, pattern or seasonal correction)."""
    cpu: float = 0.0
    memory: float = 0.0
    network: float = 0.0
    threads: Dict[str, float] = field(default_factory=dict)

class ForecastStrategy(ABC):
    """Pluggable additive correction applied on top of the linear trend."""

    @abstractmethod
    def corrections(
        self,
        history: Sequence[SystemMetrics],
        time_horizon_ms: float
    ) -> MetricTerms:
        pass

class ZeroPatternStrategy(ForecastStrategy):
    """Recurring-pattern slot. Contributes nothing until a detector is plugged in."""

    def corrections(self, history, time_horizon_ms):
        return MetricTerms()

class ZeroSeasonalityStrategy(ForecastStrategy):
    """Daily/weekly seasonality slot. Contributes nothing until a detector is plugged in."""

    def corrections(self, history, time_horizon_ms):
        return MetricTerms()

class ResourcePredictor:
    """
    Forecasts utilization at a given horizon from the current snapshot and
    a short trailing history. Deterministic, no I/O.
    """

    def __init__(
        self,
        config: Optional[AdaptiveConfig] = None,
        pattern_strategy: Optional[ForecastStrategy] = None,
        seasonality_strategy: Optional[ForecastStrategy] = None
    ):
        self.config = config or AdaptiveConfig()
        self.pattern_strategy = pattern_strategy or ZeroPatternStrategy()
        self.seasonality_strategy = seasonality_strategy or ZeroSeasonalityStrategy()
        self.logger = logging.getLogger(__name__)

    def predict(
        self,
        current: SystemMetrics,
        history: Sequence[SystemMetrics],
        time_horizon_ms: float
    ) -> ResourcePrediction:
        """
        Forecast utilization time_horizon_ms into the future.

        Args:
            current: Latest snapshot
            history: Trailing samples, oldest first
            time_horizon_ms: Forecast offset in milliseconds

        Returns:
            ResourcePrediction with clamped loads, confidence and risk level
        """
        if not MetricsUtils.is_finite(time_horizon_ms) or time_horizon_ms <= 0:
            raise InvalidMetrics("Time horizon must be a positive number", 'time_horizon_ms', time_horizon_ms)

        current.validate()
        for sample in history:
            sample.validate()

        trends = self.calculate_trends(history)
        patterns = self.pattern_strategy.corrections(history, time_horizon_ms)
        seasonality = self.seasonality_strategy.corrections(history, time_horizon_ms)

        predicted_load = PredictedLoad(
            cpu=self._predict_metric(current.cpu_utilization, trends.cpu, patterns.cpu, seasonality.cpu),
            memory=self._predict_metric(
                current.memory_utilization, trends.memory, patterns.memory, seasonality.memory
            ),
            threads={
                pool: self._predict_metric(
                    utilization,
                    trends.threads.get(pool, 0.0),
                    patterns.threads.get(pool, 0.0),
                    seasonality.threads.get(pool, 0.0)
                )
                for pool, utilization in current.thread_pool_utilization.items()
            },
            network=self._predict_metric(
                current.network_utilization, trends.network, patterns.network, seasonality.network
            )
        )

        confidence = self.calculate_confidence(len(history), trends)

        return ResourcePrediction(
            time_horizon_ms=time_horizon_ms,
            predicted_load=predicted_load,
            confidence=confidence,
            risk_level=RiskLevel.from_utilization(predicted_load.max_utilization()),
            recommended_actions=self._generate_recommendations(predicted_load, confidence)
        )

    def calculate_trends(self, history: Sequence[SystemMetrics]) -> MetricTerms:
        """Mean of the latest window minus mean of the window before it."""
        if len(history) < 2:
            return MetricTerms()

        recent = list(history[-TREND_WINDOW:])
        older = list(history[-2 * TREND_WINDOW:-TREND_WINDOW])

        def trend(extract) -> float:
            recent_avg = MetricsUtils.window_mean(extract(m) for m in recent)
            older_avg = MetricsUtils.window_mean(extract(m) for m in older)
            if older_avg is None:
                return 0.0
            return recent_avg - older_avg

        pools = []
        for sample in history:
            for pool in sample.thread_pool_utilization:
                if pool not in pools:
                    pools.append(pool)

        return MetricTerms(
            cpu=trend(lambda m: m.cpu_utilization),
            memory=trend(lambda m: m.memory_utilization),
            network=trend(lambda m: m.network_utilization),
            threads={
                pool: trend(lambda m, p=pool: m.thread_pool_utilization.get(p, 0.0))
                for pool in pools
            }
        )

    @staticmethod
    def data_quality(history_length: int) -> float:
        return min(1.0, history_length / FULL_HISTORY)

    def calculate_confidence(self, history_length: int, trends: MetricTerms) -> float:
        volatility = abs(trends.cpu) + abs(trends.memory)
        stability = max(MIN_STABILITY, 1.0 - volatility)
        return MetricsUtils.clamp01(self.data_quality(history_length) * stability)

    def _predict_metric(self, current: float, trend: float, pattern: float, seasonality: float) -> float:
        return MetricsUtils.clamp01(current + trend + pattern + seasonality)

    def _generate_recommendations(
        self,
        predicted_load: PredictedLoad,
        confidence: float
    ) -> List[ResourceAction]:
        actions: List[ResourceAction] = []

        if confidence <= self.config.adaptation_threshold:
            return actions

        if predicted_load.cpu > 0.8:
            actions.append(ResourceAction(
                type=ActionType.SCALE_THREADS,
                target='cpu-bound',
                magnitude=2,
                priority=7,
                estimated_benefit=0.6,
                estimated_cost=0.3,
                description='Proactively scale CPU threads based on prediction'
            ))

        if predicted_load.memory > 0.85:
            actions.append(ResourceAction(
                type=ActionType.ALLOCATE_MEMORY,
                target='heap',
                magnitude=512,
                priority=6,
                estimated_benefit=0.5,
                estimated_cost=0.4,
                description='Allocate additional memory based on prediction'
            ))

        return actions
