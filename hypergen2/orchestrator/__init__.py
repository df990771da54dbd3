# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""Conversion orchestration: single-VM state machine and batch driver."""

from __future__ import annotations

from .batch_runner import BatchRunner
from .generation_converter import GenerationConverter
from .models import (
    BatchRun,
    ConversionJob,
    ConversionOptions,
    ConversionResult,
    ConversionStage,
    Diagnostic,
    JobStatus,
)

__all__ = [
    "BatchRunner",
    "GenerationConverter",
    "BatchRun",
    "ConversionJob",
    "ConversionOptions",
    "ConversionResult",
    "ConversionStage",
    "Diagnostic",
    "JobStatus",
]
