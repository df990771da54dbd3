# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/modes/batch_mode.py
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from ..azure.registry import RegistryClient
from ..core.utils import U
from ..hyperv.provider import ResourceProvider
from ..orchestrator.batch_runner import BatchRunner
from ..orchestrator.models import ConversionOptions


class BatchMode:
    """cmd=batch: exits 0 once the report is written, whatever the per-VM outcomes."""

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
        a = self.args
        workdir = Path(getattr(a, "workdir", None) or "./hypergen2-work").expanduser().resolve()
        report_dir = Path(a.report_dir).expanduser().resolve() if getattr(a, "report_dir", None) else None

        U.banner(self.logger, "Batch generation 2 conversion")
        BatchRunner(
            self.logger,
            self.provider,
            self.registry,
            ConversionOptions.from_args(a),
            snapshot_root=Path(a.snapshot_dir).expanduser(),
            workdir=workdir,
            report_dir=report_dir,
            vm_names=getattr(a, "vm_names", None),
            select_all=bool(getattr(a, "select_all", False)),
        ).run()
        return 0
