# ==============================================================================
# Retry Configuration
# ==============================================================================
"""
Shared retry configuration for network resilience.

Provides reusable retry decorators with exponential backoff for handling
transient failures talking to the event log (PostgreSQL) and the report
cache (Valkey).

Query retry: 3 attempts over ~3 seconds (interactive dashboard queries)
Light retry: 3 attempts over ~7 seconds (for connection checks)
"""

import logging
from typing import Tuple, Type

import psycopg2
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# ==============================================================================
# Retry Constants
# ==============================================================================

# Query retry configuration: interactive requests cannot wait a minute
# Exponential backoff: 0.5s, 1s = ~1.5s of sleeping
RETRY_ATTEMPTS_QUERY = 3
RETRY_WAIT_MIN_QUERY = 0.5  # seconds
RETRY_WAIT_MAX_QUERY = 4  # seconds

# Light retry configuration: 3 retries over ~7 seconds (for status checks)
RETRY_ATTEMPTS_LIGHT = 3
RETRY_WAIT_MIN = 1  # seconds
RETRY_WAIT_MAX = 32  # seconds (cap for exponential backoff)

# Valkey retry configuration (used by redis-py client)
VALKEY_RETRIES = 3


# ==============================================================================
# Logging Callbacks
# ==============================================================================


def log_retry_attempt(logger: logging.Logger, max_attempts: int):
    """
    Create a callback that logs retry attempts.

    Args:
        logger: Logger instance to use for logging
        max_attempts: Maximum attempts shown in the log line

    Returns:
        Callback function for tenacity's before_sleep parameter
    """

    def _log_retry(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retry attempt %d/%d after error: %s",
            retry_state.attempt_number,
            max_attempts,
            exception,
        )

    return _log_retry


# ==============================================================================
# Retry Decorators
# ==============================================================================


def retry_query(exception_types: Tuple[Type[Exception], ...], logger: logging.Logger):
    """
    Create a retry decorator for event log queries (3 attempts, short waits).

    Args:
        exception_types: Tuple of exception types to retry on
        logger: Logger instance for retry logging

    Returns:
        Tenacity retry decorator

    Example:
        @retry_query(POSTGRES_RETRY_EXCEPTIONS, logger)
        def query_events(self, site_id, start, end):
            ...
    """
    return retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS_QUERY),
        wait=wait_exponential(multiplier=0.5, min=RETRY_WAIT_MIN_QUERY, max=RETRY_WAIT_MAX_QUERY),
        retry=retry_if_exception_type(exception_types),
        before_sleep=log_retry_attempt(logger, RETRY_ATTEMPTS_QUERY),
        reraise=True,
    )


def retry_light(exception_types: Tuple[Type[Exception], ...], logger: logging.Logger):
    """
    Create a light retry decorator (3 attempts, ~7 seconds).

    Use this for connection checks and non-critical operations.

    Args:
        exception_types: Tuple of exception types to retry on
        logger: Logger instance for retry logging

    Returns:
        Tenacity retry decorator
    """
    return retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS_LIGHT),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type(exception_types),
        before_sleep=log_retry_attempt(logger, RETRY_ATTEMPTS_LIGHT),
        reraise=True,
    )


# ==============================================================================
# Exception Types for Common Use Cases
# ==============================================================================

POSTGRES_RETRY_EXCEPTIONS = (
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
)

REDIS_RETRY_EXCEPTIONS = (
    RedisConnectionError,
    RedisTimeoutError,
)
