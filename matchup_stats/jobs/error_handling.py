"""Error handling utilities for collection jobs.

Provides a decorator that isolates per-item failures so that one bad match
or unreachable player never aborts a multi-hour job.

Error Handling Strategy:
- Rate limit errors: wait out the client cooldown and retry the item
- Authentication errors: always re-raise (no further item can succeed)
- Malformed telemetry: record and skip, retrying cannot help
- General errors: retry once if the job's policy allows, then record and skip
"""

import inspect
from functools import wraps
from typing import Any, Callable, Optional

import structlog

from matchup_stats.core.enums import ItemFailurePolicy
from matchup_stats.core.exceptions import MalformedTelemetry
from matchup_stats.core.riot_api.errors import (
    AuthenticationError,
    ForbiddenError,
    RateLimitError,
)

logger = structlog.get_logger(__name__)


def isolate_item_failures(
    *,
    operation: str,
    log_context: Optional[Callable[..., dict[str, Any]]] = None,
):
    """Decorator for job methods that process a single item.

    The decorated coroutine must be a method of an object exposing
    ``options.failure_policy``, ``wait_for_cooldown(error)`` and
    ``record_failure(operation, context, error)``. Failed items return None.

    :param operation: Description of the operation (e.g., "fetch match").
    :param log_context: Optional function extracting context from args for logging.
                        Example: lambda self, match_id: {"match_id": match_id}

    Usage example::

        @isolate_item_failures(
            operation="fetch match",
            log_context=lambda self, match_id: {"match_id": match_id},
        )
        async def _fetch_match(self, match_id: str):
            ...
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError("isolate_item_failures only supports coroutine functions")

        @wraps(func)
        async def async_wrapper(job, *args, **kwargs):
            context = _extract_log_context(log_context, (job, *args), kwargs, func.__name__)
            failed_attempts = 0

            while True:
                try:
                    return await func(job, *args, **kwargs)
                except RateLimitError as error:
                    logger.info(
                        f"Rate limited during {operation}, waiting for cooldown",
                        retry_after=error.retry_after,
                        **context,
                    )
                    await job.wait_for_cooldown(error)
                except (AuthenticationError, ForbiddenError) as error:
                    logger.error(
                        f"Authentication failure during {operation} - job cannot continue",
                        error=str(error),
                        error_type=type(error).__name__,
                        **context,
                    )
                    raise
                except Exception as error:
                    failed_attempts += 1
                    if _should_retry(job, error, failed_attempts):
                        logger.warning(
                            f"Retrying after failure to {operation}",
                            error=str(error),
                            error_type=type(error).__name__,
                            **context,
                        )
                        continue

                    logger.error(
                        f"Failed to {operation}",
                        error=str(error),
                        error_type=type(error).__name__,
                        **context,
                    )
                    job.record_failure(operation, context, error)
                    return None

        return async_wrapper

    return decorator


def _should_retry(job: Any, error: Exception, failed_attempts: int) -> bool:
    if isinstance(error, MalformedTelemetry):
        return False
    return (
        job.options.failure_policy == ItemFailurePolicy.RETRY_ONCE
        and failed_attempts == 1
    )


def _extract_log_context(
    log_context: Optional[Callable], args: tuple, kwargs: dict, func_name: str
) -> dict:
    """Extract logging context from function arguments."""
    if not log_context:
        return {}

    try:
        return log_context(*args, **kwargs)
    except Exception as e:
        logger.warning(
            "Failed to extract log context",
            error=str(e),
            function=func_name,
        )
        return {}
