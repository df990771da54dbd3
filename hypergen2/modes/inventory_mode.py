# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/modes/inventory_mode.py
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from ..core.utils import U
from ..hyperv.provider import ResourceProvider
from ..inventory.snapshot import SnapshotStore


class InventoryMode:
    """
    cmd=inventory: enumerate live VMs and write a timestamped snapshot
    (`<snapshot_dir>/<ts>/inventory.csv` + `vms/<name>.json`).
    """

    def __init__(self, logger: logging.Logger, args: argparse.Namespace, provider: ResourceProvider):
        self.logger = logger
        self.args = args
        self.provider = provider

    def run(self) -> int:
        U.banner(self.logger, "Hyper-V inventory")
        records = self.provider.list_vms()

        wanted = {n.lower() for n in (getattr(self.args, "vm_names", None) or [])}
        if wanted:
            records = [r for r in records if r.name.lower() in wanted]

        snap = SnapshotStore(Path(self.args.snapshot_dir)).write(records)
        gen1 = sum(1 for r in records if r.generation == 1)
        self.logger.info(
            "🗂️  Snapshot %s: %d VM(s), %d generation 1, %d generation 2",
            snap.path,
            len(records),
            gen1,
            len(records) - gen1,
        )
        for r in records:
            if r.generation == 1 and r.checkpoint_count:
                self.logger.warning("⚠️  %s has %d checkpoint(s); it will be skipped until they are removed", r.name, r.checkpoint_count)
        return 0
