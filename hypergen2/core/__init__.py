# SPDX-License-Identifier: LGPL-3.0-or-later
# hypergen2/core/__init__.py
from .exceptions import (
    BackupError,
    Fatal,
    Hypergen2Error,
    IrrecoverableConversionError,
    PreconditionError,
)
from .polling import PollOutcome, poll_until

__all__ = [
    "BackupError",
    "Fatal",
    "Hypergen2Error",
    "IrrecoverableConversionError",
    "PreconditionError",
    "PollOutcome",
    "poll_until",
]
