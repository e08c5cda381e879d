"""
Logging infrastructure for RegionFit.

Provides structured logging with:
- Component-specific sinks (rules, experiments, scoring)
- Rule lifecycle tracking
- Experiment assignment tracking
- Scoring event tracking
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

COMPONENTS = ("rules", "experiments", "scoring", "maintenance", "events")


class RegionFitLogger:
    """
    Logger setup for RegionFit with per-component file sinks.

    Features:
    - Structured logging with bound context
    - One rotating file per component
    - Separate error log
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        rotation: str = "50 MB",
        retention: str = "2 weeks",
        level: str = "INFO",
        format_string: Optional[str] = None,
        enable_file_logging: bool = True,
        enable_console_logging: bool = True,
    ):
        """
        Initialize the RegionFit logger.

        Args:
            log_dir: Directory for log files
            rotation: When to rotate log files
            retention: How long to keep old logs
            level: Default log level
            format_string: Custom format string
            enable_file_logging: Whether to log to files
            enable_console_logging: Whether to log to console
        """
        self.log_dir = log_dir or Path("logs")
        self.rotation = rotation
        self.retention = retention
        self.level = level
        self.enable_file_logging = enable_file_logging

        self.format_string = format_string or (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

        # Records logged without bind() still need a component for the format
        logger.configure(extra={"component": "system"})
        logger.remove()

        if enable_console_logging:
            logger.add(
                sys.stderr,
                format=self.format_string,
                level=level,
                colorize=True,
            )

        if enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._add_file_handlers()

        self.logger = logger.bind(component="system")

    def _add_file_handlers(self) -> None:
        """Add the main, per-component and error file handlers."""
        logger.add(
            self.log_dir / "regionfit.log",
            format=self.format_string,
            level=self.level,
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
        )

        for component in COMPONENTS:
            logger.add(
                self.log_dir / f"{component}.log",
                format=self.format_string,
                level="DEBUG",
                rotation=self.rotation,
                retention=self.retention,
                compression="zip",
                filter=lambda record, c=component: record["extra"].get("component") == c,
            )

        logger.add(
            self.log_dir / "errors.log",
            format=self.format_string,
            level="ERROR",
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
        )

    def get_logger(self, component: str) -> Any:
        """
        Get a logger bound to a specific component.

        Args:
            component: Component name (e.g., "rules", "experiments", "scoring")

        Returns:
            Logger instance bound to the component
        """
        return logger.bind(component=component)


def get_component_logger(component: str = "system") -> Any:
    """
    Get a component-specific logger.

    Args:
        component: Component name

    Returns:
        Logger instance

    Example:
        >>> log = get_component_logger("rules")
        >>> log.info("Rule created", rule_id="gdpr-compliance-check")
    """
    return logger.bind(component=component)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_rule_operation(logger_instance: Any, operation: str, rule_id: str, **kwargs: Any) -> None:
    """
    Log a rule store operation.

    Args:
        logger_instance: Logger to use
        operation: Operation type (e.g., "create", "update", "delete", "restore")
        rule_id: Rule the operation touched
        **kwargs: Additional context (version, soft, ...)
    """
    logger_instance.info(
        f"Rule {operation}: {rule_id}",
        operation=operation,
        rule_id=rule_id,
        timestamp=_now(),
        **kwargs,
    )


def log_experiment_event(logger_instance: Any, event: str, test_id: str, **kwargs: Any) -> None:
    """
    Log an A/B test event.

    Args:
        logger_instance: Logger to use
        event: Event type (e.g., "created", "applied", "skipped", "conversion")
        test_id: A/B test identifier
        **kwargs: Additional context (variant, rule_id, ...)
    """
    logger_instance.debug(
        f"A/B test {event}: {test_id}",
        event=event,
        test_id=test_id,
        timestamp=_now(),
        **kwargs,
    )


def log_scoring_event(logger_instance: Any, event: str, region: str, **kwargs: Any) -> None:
    """
    Log a scoring event.

    Args:
        logger_instance: Logger to use
        event: Event type (e.g., "evaluated", "merged")
        region: Region the score was computed for
        **kwargs: Additional context
    """
    logger_instance.info(
        f"Scoring {event} for {region}",
        event=event,
        region=region,
        timestamp=_now(),
        **kwargs,
    )


# Global logger instance
_regionfit_logger: Optional[RegionFitLogger] = None


def initialize_logging(
    log_dir: Optional[Path] = None, level: str = "INFO", **kwargs: Any
) -> RegionFitLogger:
    """
    Initialize the RegionFit logging system.

    This should be called once at application startup.

    Args:
        log_dir: Directory for log files
        level: Default log level
        **kwargs: Additional configuration for RegionFitLogger

    Returns:
        Configured RegionFitLogger instance
    """
    global _regionfit_logger
    _regionfit_logger = RegionFitLogger(log_dir=log_dir, level=level, **kwargs)
    return _regionfit_logger


def get_logger_instance() -> Optional[RegionFitLogger]:
    """Get the global logger instance."""
    return _regionfit_logger
