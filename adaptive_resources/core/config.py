# config.py
from typing import Dict, Optional
import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationLoadError, ConfigurationValidationError

def _default_max_threads() -> Dict[str, int]:
    return {
        'cpu-bound': 16,
        'io-bound': 32,
        'ai-optimized': 8,
        'mixed': 24
    }

class ResourceLimits(BaseModel):
    max_threads: Dict[str, int] = Field(default_factory=_default_max_threads)
    max_memory_mb: float = 8192
    max_cpu_utilization: float = Field(default=0.9, ge=0.0, le=1.0)

class AdaptiveConfig(BaseModel):
    prediction_interval: float = Field(default=10000, gt=0)  # ms
    adaptation_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_resource_increase: float = Field(default=0.5, gt=0.0)
    conservative_mode: bool = False
    enable_proactive_scaling: bool = True
    resource_limits: ResourceLimits = Field(default_factory=ResourceLimits)
    cost_optimization: bool = True
    history_size: int = Field(default=360, gt=0)
    event_capacity: int = Field(default=1000, gt=0)
    policies_file: Optional[str] = None

    @property
    def scaling_step(self) -> float:
        """Largest fractional growth allowed in one scaling action."""
        if self.conservative_mode:
            return self.max_resource_increase / 2
        return self.max_resource_increase

    def max_threads_for(self, pool: str) -> Optional[int]:
        return self.resource_limits.max_threads.get(pool)

    @classmethod
    def from_dict(cls, data: Dict) -> "AdaptiveConfig":
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            invalid_keys = ['.'.join(str(p) for p in err['loc']) for err in e.errors()]
            raise ConfigurationValidationError(
                f"Invalid adaptive configuration: {str(e)}",
                invalid_keys
            ) from e

    @classmethod
    def from_yaml(cls, path: str) -> "AdaptiveConfig":
        return cls.from_dict(load_yaml_config(path))

def load_yaml_config(path: str) -> Dict:
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationLoadError(f"Failed to load configuration: {str(e)}", path) from e
