# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/core/polling.py
"""
Bounded polling.

`poll_until` is the single wait primitive used for both the heartbeat wait and
the registry wait: probe every `interval_s` until `accept(value)` holds or
`timeout_s` has elapsed. Clock and sleep are injectable so tests never sleep.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from .logger import is_tty

T = TypeVar("T")


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    succeeded: bool
    elapsed_s: float
    attempts: int
    value: Optional[T] = None
    last_error: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return not self.succeeded


def poll_until(
    probe: Callable[[], T],
    *,
    interval_s: float,
    timeout_s: float,
    accept: Callable[[T], bool] = bool,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    logger: Optional[Any] = None,
    description: str = "Waiting",
    show_progress: Optional[bool] = None,
) -> PollOutcome[T]:
    """
    Call `probe()` until `accept(result)` is true or the bound is reached.

    A probe that raises counts as "not yet"; the error text is kept in
    `last_error`. The probe always runs at least once, including when
    `timeout_s` is 0.
    """
    if interval_s <= 0:
        raise ValueError("interval_s must be > 0")

    if show_progress is None:
        show_progress = is_tty() and sleep is time.sleep

    t0 = clock()
    attempts = 0
    value: Optional[T] = None
    last_error: Optional[str] = None
    last_seen: Any = object()

    progress: Optional[Progress] = None
    task = None
    if show_progress:
        progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
        )
        progress.start()
        task = progress.add_task(f"⏳ {description}", total=timeout_s or 1)

    try:
        while True:
            attempts += 1
            try:
                value = probe()
                last_error = None
            except Exception as e:
                value = None
                last_error = f"{type(e).__name__}: {e}"

            if logger is not None and (value != last_seen or last_error):
                logger.log(logging.DEBUG, "📡 %s: attempt=%d value=%r error=%s", description, attempts, value, last_error)
                last_seen = value

            elapsed = clock() - t0
            if value is not None and accept(value):
                return PollOutcome(True, elapsed, attempts, value, None)

            if elapsed >= timeout_s:
                return PollOutcome(False, elapsed, attempts, value, last_error)

            sleep(interval_s)
            if progress is not None and task is not None:
                progress.update(task, completed=min(timeout_s, clock() - t0))
    finally:
        if progress is not None:
            progress.stop()
