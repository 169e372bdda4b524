import logging
import math
from typing import Dict, Iterable, Optional
from datetime import datetime, timezone, timedelta

import numpy as np

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

class TimeUtils:
    """Utility class for time-related operations."""

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current UTC timestamp."""
        return datetime.now(timezone.utc)

    @staticmethod
    def format_timestamp(dt: datetime) -> str:
        """Format datetime to ISO 8601 string."""
        return dt.isoformat()

    @staticmethod
    def elapsed_ms(start: datetime, end: datetime) -> float:
        """Milliseconds elapsed between two timestamps."""
        return (end - start).total_seconds() * 1000.0

    @staticmethod
    def ms(milliseconds: float) -> timedelta:
        return timedelta(milliseconds=milliseconds)

class MetricsUtils:
    """Utility class for metrics-related operations."""

    @staticmethod
    def clamp01(value: float) -> float:
        """Clamp a value to the closed unit interval."""
        return float(np.clip(value, 0.0, 1.0))

    @staticmethod
    def window_mean(values: Iterable[float]) -> Optional[float]:
        """Mean of a window, or None for an empty window."""
        data = list(values)
        if not data:
            return None
        return float(np.mean(data))

    @staticmethod
    def is_finite(value: float) -> bool:
        return isinstance(value, (int, float)) and math.isfinite(value)

    @staticmethod
    def all_finite(values: Dict[str, float]) -> bool:
        return all(MetricsUtils.is_finite(v) for v in values.values())

def setup_logging(level: int = logging.INFO, name: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler with the standard format to a logger."""
    target = logging.getLogger(name)
    target.setLevel(level)
    if not target.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        target.addHandler(handler)
    return target
