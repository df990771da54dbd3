# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""Hyper-V resource provider facade for hypergen2."""

from __future__ import annotations

from .models import (
    ClusterMembership,
    ControllerType,
    DiskDescriptor,
    DiskFormat,
    MemoryPolicy,
    NicDescriptor,
    PowerState,
    VmRecord,
    select_boot_disk,
)
from .provider import MUTATING_OPERATIONS, PowerShellResourceProvider, ResourceProvider

__all__ = [
    "ClusterMembership",
    "ControllerType",
    "DiskDescriptor",
    "DiskFormat",
    "MemoryPolicy",
    "NicDescriptor",
    "PowerState",
    "VmRecord",
    "select_boot_disk",
    "MUTATING_OPERATIONS",
    "PowerShellResourceProvider",
    "ResourceProvider",
]
