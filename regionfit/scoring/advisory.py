"""
Adapter for an optional external advisory score provider.

The provider is an outside collaborator (typically a remote AI service).
Whatever it does, evaluation only ever sees a ScoreResult or None.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Dict, Optional, Protocol, Union

from loguru import logger

from regionfit.errors import ExternalUnavailableError
from regionfit.scoring.schemas import ScoreResult
from regionfit.scoring.snapshot import ContentSnapshot

AdvisoryPayload = Union[ScoreResult, Dict[str, Any], None]


class AdvisoryProvider(Protocol):
    """Protocol for providers of ScoreResult-shaped advice."""

    def get_score(self, snapshot: ContentSnapshot, region: str) -> AdvisoryPayload:
        """Score the snapshot for the region."""
        ...


def call_provider(
    provider: AdvisoryProvider, snapshot: ContentSnapshot, region: str, timeout: float
) -> Optional[ScoreResult]:
    """
    Run the provider under a timeout.

    Raises:
        ExternalUnavailableError: On timeout, provider failure or a malformed payload
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(provider.get_score, snapshot, region)
    try:
        payload = future.result(timeout=timeout)
    except FuturesTimeoutError:
        raise ExternalUnavailableError(f"Advisory provider timed out after {timeout}s") from None
    except Exception as e:
        raise ExternalUnavailableError(f"Advisory provider failed: {e}") from e
    finally:
        # A timed-out call keeps running in its thread; do not wait for it
        executor.shutdown(wait=False)

    return parse_external_result(payload)


def parse_external_result(payload: AdvisoryPayload) -> Optional[ScoreResult]:
    """
    Turn an advisory payload into a ScoreResult.

    Raises:
        ExternalUnavailableError: If the payload cannot be read as a result
    """
    if payload is None or isinstance(payload, ScoreResult):
        return payload
    try:
        return ScoreResult.from_dict(payload)
    except Exception as e:
        raise ExternalUnavailableError(f"Advisory provider returned an invalid result: {e}") from e


def fetch_external_result(
    provider: Optional[AdvisoryProvider],
    snapshot: ContentSnapshot,
    region: str,
    timeout: float = 10.0,
) -> Optional[ScoreResult]:
    """
    Get the advisory result, treating every failure as absent.

    Returns:
        The provider's result, or None if there is no provider or it failed
    """
    if provider is None:
        return None
    try:
        return call_provider(provider, snapshot, region, timeout)
    except ExternalUnavailableError as e:
        logger.bind(component="scoring").warning(f"Advisory result unavailable: {e}")
        return None
