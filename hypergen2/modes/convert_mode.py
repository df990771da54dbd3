# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/modes/convert_mode.py
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from ..azure.registry import RegistryClient
from ..core.utils import U
from ..hyperv.provider import ResourceProvider
from ..orchestrator.generation_converter import GenerationConverter
from ..orchestrator.models import ConversionJob, ConversionOptions, JobStatus


class ConvertMode:
    """
    cmd=convert: one VM, exit code from the job status
    (0 success, 2 validation failed, 3 backup failed, 1 otherwise).
    """

    def __init__(
        self,
        logger: logging.Logger,
        args: argparse.Namespace,
        provider: ResourceProvider,
        registry: Optional[RegistryClient],
    ):
        self.logger = logger
        self.args = args
        self.provider = provider
        self.registry = registry

    def run(self) -> int:
        options = ConversionOptions.from_args(self.args)
        workdir = Path(getattr(self.args, "workdir", None) or "./hypergen2-work").expanduser().resolve()
        job = ConversionJob.from_options(self.args.vm_name, workdir, options)

        U.banner(self.logger, f"Convert {job.vm_name} to generation 2")
        result = GenerationConverter(self.logger, self.provider, self.registry, options).convert(job)

        for w in result.warnings:
            tail = f" -> {w.guidance}" if w.guidance else ""
            self.logger.warning("⚠️  [%s] %s%s", w.stage.value, w.message, tail)

        if result.status == JobStatus.SUCCESS:
            self.logger.info("✅ %s: SUCCESS (%s)", job.vm_name, U.human_duration(result.duration_s))
        else:
            self.logger.error("💥 %s: %s: %s", job.vm_name, result.status.value, result.error)
        if result.captured_config:
            self.logger.info("🧾 Captured configuration: %s", result.captured_config)
        if result.backup_dir:
            self.logger.info("📦 Disk backup: %s", result.backup_dir)
        return result.status.exit_code
