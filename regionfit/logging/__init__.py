"""
Logging infrastructure for RegionFit.

Provides component loggers, structured event helpers and tracking decorators.
"""

from .logger import (
    RegionFitLogger,
    get_component_logger,
    initialize_logging,
    get_logger_instance,
    log_rule_operation,
    log_experiment_event,
    log_scoring_event,
)

from .decorators import (
    track_rule_operation,
    performance_monitor,
)

__all__ = [
    # Logger
    "RegionFitLogger",
    "get_component_logger",
    "initialize_logging",
    "get_logger_instance",
    "log_rule_operation",
    "log_experiment_event",
    "log_scoring_event",
    # Decorators
    "track_rule_operation",
    "performance_monitor",
]
