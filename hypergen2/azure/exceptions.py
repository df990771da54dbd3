# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/azure/exceptions.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..core.exceptions import Hypergen2Error


@dataclass(eq=False)
class AzureError(Hypergen2Error):
    """
    Base exception for Azure Arc registry operations.

    Inherits exit codes, context tracking, cause chaining and secret
    redaction from Hypergen2Error.
    """

    code: int = 60


@dataclass(eq=False)
class AzureCLIError(AzureError):
    """'az' command failed (non-zero exit, timeout, unparsable output)."""


@dataclass(eq=False)
class AzureAuthError(AzureError):
    """Azure CLI is not logged in, or logged into the wrong tenant."""

    code: int = 61


def wrap_azure_cli_error(msg: str, exc: Optional[BaseException] = None, code: int = 60, **context: Any) -> AzureCLIError:
    return AzureCLIError(code=code, msg=msg, cause=exc, context=context or None)


def wrap_azure_auth_error(msg: str, exc: Optional[BaseException] = None, code: int = 61, **context: Any) -> AzureAuthError:
    return AzureAuthError(code=code, msg=msg, cause=exc, context=context or None)
