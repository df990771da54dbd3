# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/hyperv/exceptions.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..core.exceptions import Hypergen2Error


@dataclass(eq=False)
class HyperVError(Hypergen2Error):
    """
    Base exception for Hyper-V / failover cluster operations.
    """
    code: int = 70


@dataclass(eq=False)
class PowerShellError(HyperVError):
    """
    A PowerShell invocation failed (non-zero exit, timeout, unparseable JSON).
    """
    code: int = 71


def wrap_hyperv_error(msg: str, exc: Optional[BaseException] = None, code: int = 70, **context: Any) -> HyperVError:
    return HyperVError(code=code, msg=msg, cause=exc, context=context or None)
