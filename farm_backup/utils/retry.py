"""
Retry Utilities for Store Operations

Retries store calls that fail with ``TransientStoreError`` using exponential
backoff. Permanent failures propagate on the first attempt.
"""

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import FarmBackupConfig
from ..exceptions import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def call_with_retry(
    operation: Callable[..., Awaitable[T]],
    config: FarmBackupConfig,
    operation_name: str,
    *args: Any,
    **kwargs: Any
) -> T:
    """
    Run an async store operation, retrying transient failures.

    Args:
        operation: Async callable to execute
        config: Configuration holding the retry settings
        operation_name: Human-readable name for logging
        *args: Positional arguments for the operation
        **kwargs: Keyword arguments for the operation

    Returns:
        Result of the operation

    Raises:
        TransientStoreError: If every attempt failed transiently
        Any other exception: Propagated immediately without retry

    Example:
        ```python
        animals = await call_with_retry(
            store.list_documents, config, "list animals", "animals", farm_id
        )
        ```
    """
    if not config.retry_transient_errors or config.max_retries == 0:
        return await operation(*args, **kwargs)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(
            multiplier=config.retry_delay_seconds,
            max=config.retry_max_delay_seconds
        ),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                result = await operation(*args, **kwargs)
    except TransientStoreError as e:
        logger.warning(
            f"Transient error in {operation_name} persisted after "
            f"{config.max_retries + 1} attempts: {e}"
        )
        raise

    return result
