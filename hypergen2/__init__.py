# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/__init__.py
"""
hypergen2 - Hyper-V generation 1 to generation 2 conversion

Rebuilds BIOS (generation 1) Hyper-V VMs as UEFI (generation 2) VMs on the
same disks, one VM at a time, and reconciles their Azure Arc registration.

Usage as a library:

    from hypergen2 import GenerationConverter, ConversionJob, PowerShellResourceProvider

    provider = PowerShellResourceProvider(logger, computer_name="HV01")
    job = ConversionJob(vm_name="Web01", workdir=Path("D:/hypergen2/work"))
    result = GenerationConverter(logger, provider).convert(job)
"""

__version__ = "0.0.1"

from .hyperv import PowerShellResourceProvider, ResourceProvider
from .azure import ArcRegistryClient, RegistryClient
from .orchestrator import (
    BatchRunner,
    ConversionJob,
    ConversionOptions,
    ConversionResult,
    GenerationConverter,
    JobStatus,
)

__all__ = [
    "__version__",
    "PowerShellResourceProvider",
    "ResourceProvider",
    "ArcRegistryClient",
    "RegistryClient",
    "BatchRunner",
    "ConversionJob",
    "ConversionOptions",
    "ConversionResult",
    "GenerationConverter",
    "JobStatus",
]
