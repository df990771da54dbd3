# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/orchestrator/orchestrator.py

from __future__ import annotations

import argparse
import logging
from typing import Optional

from ..azure.models import ArcConfig
from ..azure.registry import ArcRegistryClient, RegistryClient
from ..core.exceptions import Fatal
from ..core.logger import Log
from ..hyperv.provider import PowerShellResourceProvider, ResourceProvider


class Orchestrator:
    """
    Top-level dispatcher: `cmd` selects the operator mode.
    """

    def __init__(
        self,
        logger: logging.Logger,
        args: argparse.Namespace,
        *,
        provider: Optional[ResourceProvider] = None,
        registry: Optional[RegistryClient] = None,
    ):
        self.logger = logger
        self.args = args
        self._provider = provider
        self._registry = registry

        Log.trace(
            self.logger,
            "🧠 Orchestrator init: cmd=%r workdir=%r",
            getattr(args, "cmd", None),
            getattr(args, "workdir", None),
        )

    @property
    def provider(self) -> ResourceProvider:
        if self._provider is None:
            self._provider = PowerShellResourceProvider(
                self.logger,
                computer_name=getattr(self.args, "hyperv_host", None),
                shell=getattr(self.args, "powershell", None),
            )
        return self._provider

    @property
    def registry(self) -> Optional[RegistryClient]:
        if self._registry is None and not getattr(self.args, "skip_registry", False):
            self._registry = ArcRegistryClient(self.logger, ArcConfig.from_args(self.args))
        return self._registry

    def run(self) -> int:
        cmd = str(getattr(self.args, "cmd", "") or "").strip().lower()
        Log.trace(self.logger, "🧭 dispatch: cmd=%r", cmd)

        if cmd == "convert":
            from ..modes.convert_mode import ConvertMode

            return ConvertMode(self.logger, self.args, self.provider, self.registry).run()
        if cmd == "batch":
            from ..modes.batch_mode import BatchMode

            return BatchMode(self.logger, self.args, self.provider, self.registry).run()
        if cmd == "inventory":
            from ..modes.inventory_mode import InventoryMode

            return InventoryMode(self.logger, self.args, self.provider).run()

        raise Fatal(2, f"Unknown cmd={cmd!r}")
