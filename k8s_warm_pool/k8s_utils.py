"""Kubernetes-specific helpers for thread-safe, retrying and non-blocking API calls."""

import asyncio
import functools
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes.client.exceptions import ApiException

from k8s_warm_pool.const import NOT_FOUND_ERROR_CODE

# Constants for retry logic
K8S_API_MAX_RETRIES = 3
K8S_API_RETRY_DELAY = 0.5  # seconds

# The Kubernetes Python client is not fully thread-safe, especially for concurrent operations
_k8s_api_lock = threading.Lock()

T = TypeVar("T")


def is_not_found(error: BaseException) -> bool:
    """Return True if ``error`` is a Kubernetes 404 response."""
    return isinstance(error, ApiException) and error.status == NOT_FOUND_ERROR_CODE


def retry_k8s_api_call(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = K8S_API_MAX_RETRIES,
    retry_delay: float = K8S_API_RETRY_DELAY,
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> T:
    """Retry Kubernetes API calls with exponential backoff and thread-safety.

    This function wraps Kubernetes API calls with:
    1. Thread-safety via a global lock (Kubernetes client is not thread-safe)
    2. Automatic retry with exponential backoff for transient WebSocket errors
    3. Detailed logging of retry attempts

    Args:
        func: The Kubernetes API function to call
        *args: Positional arguments for the function
        max_retries: Maximum number of retry attempts (default: 3)
        retry_delay: Initial delay between retries in seconds (default: 0.5)
        logger: Logger instance for retry warnings (optional)
        **kwargs: Keyword arguments for the function

    Returns:
        The result of the API call

    Raises:
        ApiException: If the API call fails after all retries

    """
    if logger is None:
        logger = logging.getLogger(__name__)

    last_exception: ApiException | None = None

    for attempt in range(max_retries):
        try:
            with _k8s_api_lock:
                return func(*args, **kwargs)

        except ApiException as e:
            last_exception = e

            # status=0 handshake errors come from the client attempting WebSocket for plain HTTP calls
            is_websocket_error = e.status == 0 and "Handshake status" in str(e.reason)

            if is_websocket_error and attempt < max_retries - 1:
                delay = retry_delay * (2**attempt)
                logger.warning(
                    "Kubernetes API WebSocket error (attempt %d/%d), retrying in %.2fs: %s",
                    attempt + 1,
                    max_retries,
                    delay,
                    str(e.reason)[:100],
                )
                time.sleep(delay)
                continue

            raise

    if last_exception:
        raise last_exception

    msg = "Unexpected state: no result and no exception"
    raise RuntimeError(msg)


async def call_k8s_api(
    func: Callable[..., T],
    *args: Any,
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> T:
    """Run a blocking Kubernetes API call in the default executor.

    The call goes through :func:`retry_k8s_api_call`, so it is serialized
    against other client calls and retried on transient WebSocket errors,
    while the event loop stays free to serve other coroutines.

    Args:
        func: The Kubernetes API function to call
        *args: Positional arguments for the function
        logger: Logger instance for retry warnings (optional)
        **kwargs: Keyword arguments for the function

    Returns:
        The result of the API call

    """
    loop = asyncio.get_running_loop()
    call = functools.partial(retry_k8s_api_call, func, *args, logger=logger, **kwargs)
    return await loop.run_in_executor(None, call)
