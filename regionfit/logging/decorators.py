"""
Decorators for automatic logging of rule mutations and slow evaluations.

These decorators enable traceability without cluttering business logic.
"""

import functools
import inspect
import time
from datetime import datetime, timezone
from typing import Any, Callable

from .logger import get_component_logger


def track_rule_operation(operation_type: str) -> Callable:
    """
    Decorator to track rule store mutations.

    Logs a start record, then either a completion or an error record, all
    carrying the same operation id.

    Args:
        operation_type: Type of operation (e.g., "create", "update", "delete")

    Example:
        >>> @track_rule_operation("update")
        ... def update_rule(self, rule_id, patch):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_component_logger("rules")

            sig = inspect.signature(func)
            bound_args = sig.bind(*args, **kwargs)
            bound_args.apply_defaults()

            operation_id = datetime.now(timezone.utc).timestamp()
            log.debug(
                f"Rule operation started: {operation_type}",
                operation=operation_type,
                operation_id=operation_id,
                function=func.__name__,
                arguments={
                    k: str(v)[:100] for k, v in bound_args.arguments.items() if k != "self"
                },
            )

            try:
                result = func(*args, **kwargs)
                log.debug(
                    f"Rule operation complete: {operation_type}",
                    operation=operation_type,
                    operation_id=operation_id,
                    function=func.__name__,
                    success=True,
                )
                return result

            except Exception as e:
                log.warning(
                    f"Rule operation failed: {operation_type}",
                    operation=operation_type,
                    operation_id=operation_id,
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                    success=False,
                )
                raise

        return wrapper

    return decorator


def performance_monitor(threshold_ms: float = 1000.0) -> Callable:
    """
    Decorator to monitor function performance.

    Logs warning if execution exceeds threshold.

    Args:
        threshold_ms: Warning threshold in milliseconds

    Example:
        >>> @performance_monitor(threshold_ms=500)
        ... def evaluate(snapshot, region):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_component_logger("scoring")
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                log.debug(
                    f"Function failed: {func.__name__}",
                    function=func.__name__,
                    elapsed_ms=elapsed_ms,
                )
                raise

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if elapsed_ms > threshold_ms:
                log.warning(
                    f"Performance threshold exceeded: {func.__name__}",
                    function=func.__name__,
                    elapsed_ms=elapsed_ms,
                    threshold_ms=threshold_ms,
                )
            else:
                log.debug(
                    f"Function executed: {func.__name__}",
                    function=func.__name__,
                    elapsed_ms=elapsed_ms,
                )
            return result

        return wrapper

    return decorator
