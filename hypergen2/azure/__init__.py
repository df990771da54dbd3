# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""Azure Arc registry facade for hypergen2."""

from __future__ import annotations

from .exceptions import AzureAuthError, AzureCLIError, AzureError
from .models import ArcConfig, RegistryBinding
from .registry import ArcRegistryClient, RegistryClient

__all__ = [
    "AzureAuthError",
    "AzureCLIError",
    "AzureError",
    "ArcConfig",
    "RegistryBinding",
    "ArcRegistryClient",
    "RegistryClient",
]
