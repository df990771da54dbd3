# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""
Retry with exponential backoff.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, Union

T = TypeVar("T")


def retry_operation(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_backoff_s: float = 2.0,
    max_backoff_s: float = 60.0,
    jitter_s: float = 1.0,
    exceptions: Union[Type[Exception], Tuple[Type[Exception], ...]] = Exception,
    operation_name: str = "operation",
    logger: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Retry an operation with exponential backoff.

    Args:
        operation: Callable that returns T
        max_attempts: Maximum number of attempts (default: 3)
        base_backoff_s: Base backoff time in seconds (default: 2.0)
        max_backoff_s: Maximum backoff time in seconds (default: 60.0)
        jitter_s: Random jitter added to backoff in seconds (default: 1.0)
        exceptions: Exception type(s) to catch and retry (default: Exception)
        operation_name: Name for logging
        logger: Logger for retry messages (default: None, no logging)
        sleep: Sleep function (tests pass a no-op)

    Returns:
        Result of the operation

    Example:
        retry_operation(
            lambda: provider.copy_file(src, dst),
            max_attempts=3,
            operation_name="backup Web01.vhd",
            logger=log,
        )
    """
    attempts = max(1, int(max_attempts))
    last_exception: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except exceptions as e:
            last_exception = e

            if attempt >= attempts:
                if logger:
                    logger.log(logging.ERROR, "%s failed after %d attempts: %s", operation_name, attempts, e)
                break

            sleep_time = min(base_backoff_s * (2 ** (attempt - 1)), max_backoff_s)
            if jitter_s > 0:
                sleep_time += random.uniform(0, jitter_s)

            if logger:
                logger.log(
                    logging.WARNING,
                    "%s failed (attempt %d/%d): %s. Retrying in %.2fs...",
                    operation_name,
                    attempt,
                    attempts,
                    e,
                    sleep_time,
                )
            sleep(sleep_time)

    assert last_exception is not None
    raise last_exception
