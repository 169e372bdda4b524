from typing import Optional, Any
from datetime import datetime, timezone

class AdaptiveResourceException(Exception):
    """Base exception class for all adaptive resource controller exceptions."""

    def __init__(self, message: str, error_code: str, details: Optional[dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary format for logging."""
        return {
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
            'type': self.__class__.__name__
        }

# Monitoring Exceptions
class MonitoringException(AdaptiveResourceException):
    """Base class for monitoring-related exceptions."""
    pass

class MetricsUnavailable(MonitoringException):
    """Raised when the metrics provider cannot produce a snapshot."""
    def __init__(self, message: str, source: str):
        super().__init__(
            message=message,
            error_code='METRICS_UNAVAILABLE',
            details={'source': source}
        )

class InvalidMetrics(MonitoringException):
    """Raised when a metrics snapshot holds non-finite or out-of-range values."""
    def __init__(self, message: str, field_name: str, value: Any):
        super().__init__(
            message=message,
            error_code='INVALID_METRICS',
            details={
                'field': field_name,
                'value': str(value)
            }
        )

# Planning Exceptions
class PlanningException(AdaptiveResourceException):
    """Base class for action and policy definition errors."""
    pass

class InvalidAction(PlanningException):
    """Raised when an action definition cannot be parsed."""
    def __init__(self, message: str, action_data: Any):
        super().__init__(
            message=message,
            error_code='INVALID_ACTION',
            details={'action': str(action_data)}
        )

class InvalidPolicy(PlanningException):
    """Raised when a policy definition cannot be parsed."""
    def __init__(self, message: str, policy_name: Optional[str] = None):
        super().__init__(
            message=message,
            error_code='INVALID_POLICY',
            details={'policy_name': policy_name}
        )

# Execution Exceptions
class SubstrateError(AdaptiveResourceException):
    """Raised by execution substrates when a directive cannot be carried out."""
    def __init__(self, message: str, operation: str, target: Optional[str] = None):
        super().__init__(
            message=message,
            error_code='SUBSTRATE_ERROR',
            details={
                'operation': operation,
                'target': target
            }
        )

# Configuration Exceptions
class ConfigurationException(AdaptiveResourceException):
    """Base class for configuration-related exceptions."""
    pass

class ConfigurationLoadError(ConfigurationException):
    """Raised when configuration loading fails."""
    def __init__(self, message: str, config_path: str):
        super().__init__(
            message=message,
            error_code='CONFIG_LOAD_ERROR',
            details={'config_path': config_path}
        )

class ConfigurationValidationError(ConfigurationException):
    """Raised when configuration validation fails."""
    def __init__(self, message: str, invalid_keys: list):
        super().__init__(
            message=message,
            error_code='CONFIG_VALIDATION_ERROR',
            details={'invalid_keys': invalid_keys}
        )
