# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/orchestrator/batch_runner.py
"""
Sequential batch driver.

Reads the newest inventory snapshot, picks candidates (explicit names,
`--all`, or an interactive selection), runs a live pre-flight for each and
converts the survivors one at a time. A failing job never stops the batch;
every outcome lands in the batch report.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..azure.registry import RegistryClient
from ..core.logger import Log
from ..core.utils import U
from ..hyperv.provider import ResourceProvider
from ..inventory.snapshot import InventoryRow, Snapshot, SnapshotStore
from .generation_converter import GenerationConverter
from .models import BatchRun, ConversionJob, ConversionOptions, ConversionResult, JobStatus
from .report_writer import print_summary, write_batch_report

ALREADY_CONVERTED = "already converted"
NOT_SELECTED = "not selected"


def parse_selection(text: str, count: int) -> List[int]:
    """
    Parse "1,3,5-7" or "all" into zero-based indices (input is 1-based).
    Raises ValueError on anything out of range or malformed.
    """
    s = (text or "").strip().lower()
    if s in ("all", "*"):
        return list(range(count))
    picked: List[int] = []
    for part in s.replace(" ", ",").split(","):
        if not part:
            continue
        if "-" in part:
            lo_s, hi_s = part.split("-", 1)
            lo, hi = int(lo_s), int(hi_s)
            if lo > hi:
                raise ValueError(f"bad range {part!r}")
            nums = range(lo, hi + 1)
        else:
            nums = range(int(part), int(part) + 1)
        for n in nums:
            if n < 1 or n > count:
                raise ValueError(f"{n} is out of range 1-{count}")
            if n - 1 not in picked:
                picked.append(n - 1)
    return picked


class BatchRunner:
    def __init__(
        self,
        logger: logging.Logger,
        provider: ResourceProvider,
        registry: Optional[RegistryClient],
        options: ConversionOptions,
        *,
        snapshot_root: Path,
        workdir: Path,
        report_dir: Optional[Path] = None,
        vm_names: Optional[Sequence[str]] = None,
        select_all: bool = False,
        input_fn: Callable[[str], str] = input,
        console: Optional[Console] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        converter: Optional[GenerationConverter] = None,
    ):
        self.logger = logger
        self.provider = provider
        self.options = options
        self.store = SnapshotStore(Path(snapshot_root))
        self.workdir = Path(workdir)
        self.report_dir = Path(report_dir) if report_dir else self.workdir
        self.vm_names = list(vm_names or [])
        self.select_all = select_all
        self.input_fn = input_fn
        self.console = console or Console(stderr=False)
        self.clock = clock
        self.sleep = sleep
        self.converter = converter or GenerationConverter(
            logger, provider, registry, options, clock=clock, sleep=sleep
        )

    def run(self) -> BatchRun:
        snapshot = self.store.latest()
        self.logger.info("📂 Using snapshot %s", snapshot.path)
        run = BatchRun(snapshot=snapshot.stamp, started_at=U.now_iso())

        candidates = self._select(snapshot.rows(), run)
        ready = self._preflight(candidates, snapshot, run)
        self.logger.info(
            "📋 %d VM(s) ready, %d skipped, %d not found", len(ready), run.skipped_count, len(run.not_found)
        )

        for i, name in enumerate(ready):
            if i:
                self.logger.info("⏸️  Pausing %.0fs before next VM", self.options.inter_vm_pause_s)
                self.sleep(self.options.inter_vm_pause_s)
            self.logger.info("🚀 [%d/%d] %s", i + 1, len(ready), name)
            run.jobs.append(self._run_job(name))

        run.completed_at = U.now_iso()
        write_batch_report(run, self.report_dir, logger=self.logger)
        print_summary(run, self.console)
        self.logger.info(
            "🏁 Batch done: total=%d succeeded=%d failed=%d skipped=%d",
            run.total,
            run.succeeded,
            run.failed,
            run.skipped_count,
        )
        return run

    # ------------------------------------------------------------------

    def _select(self, rows: List[InventoryRow], run: BatchRun) -> List[str]:
        if self.vm_names:
            by_name: Dict[str, InventoryRow] = {r.name.lower(): r for r in rows}
            picked: List[str] = []
            for n in self.vm_names:
                row = by_name.get(n.lower())
                if row is None:
                    run.not_found.append(n)
                    Log.warn(self.logger, f"{n} is not in the snapshot")
                elif row.name not in picked:
                    picked.append(row.name)
            return picked

        candidates: List[InventoryRow] = []
        for r in rows:
            if r.generation == 2:
                run.skip(r.name, ALREADY_CONVERTED)
            else:
                candidates.append(r)
        if not candidates:
            self.logger.info("✅ Nothing to convert: no generation 1 VMs in the snapshot")
            return []
        if self.select_all:
            return [r.name for r in candidates]

        chosen = self._prompt(candidates)
        chosen_names = [candidates[i].name for i in chosen]
        for r in candidates:
            if r.name not in chosen_names:
                run.skip(r.name, NOT_SELECTED)
        return chosen_names

    def _prompt(self, candidates: List[InventoryRow]) -> List[int]:
        table = Table(title="Generation 1 VMs")
        table.add_column("#", justify="right")
        table.add_column("Name", style="bold")
        table.add_column("State")
        table.add_column("Host")
        table.add_column("Memory", justify="right")
        table.add_column("Disks", justify="right")
        table.add_column("Checkpoints")
        for i, r in enumerate(candidates, start=1):
            table.add_row(
                str(i),
                escape(r.name),
                escape(r.state),
                escape(r.host),
                U.human_bytes(r.memory_startup_bytes),
                str(len(r.disk_paths)),
                "yes" if r.checkpoint_exists else "no",
            )
        self.console.print(table)

        while True:
            answer = self.input_fn("Select VMs to convert (e.g. 1,3-4 or 'all'; empty to cancel): ")
            if not (answer or "").strip():
                self.logger.info("Selection cancelled")
                return []
            try:
                return parse_selection(answer, len(candidates))
            except ValueError as e:
                Log.warn(self.logger, f"Invalid selection: {e}")

    def _preflight(self, names: List[str], snapshot: Snapshot, run: BatchRun) -> List[str]:
        ready: List[str] = []
        for name in names:
            reason = self._preflight_one(name, snapshot)
            if reason:
                run.skip(name, reason)
                Log.warn(self.logger, f"Skipping {name}: {reason}")
            else:
                ready.append(name)
        return ready

    def _preflight_one(self, name: str, snapshot: Snapshot) -> Optional[str]:
        try:
            rec = self.provider.get_vm(name)
        except Exception as e:
            return f"pre-flight query failed: {e}"
        if rec is None:
            return "VM not found on host"
        if rec.generation == 2:
            return ALREADY_CONVERTED
        if not rec.is_off:
            return f"not powered off (state={rec.state.value})"
        try:
            checkpoints = self.provider.count_checkpoints(name)
        except Exception as e:
            return f"checkpoint query failed: {e}"
        if checkpoints:
            return f"has {checkpoints} checkpoint(s)"
        if not snapshot.has_config(name):
            return "configuration file missing from snapshot"
        return None

    def _run_job(self, name: str) -> ConversionJob:
        job = ConversionJob.from_options(name, self.workdir, self.options)
        t0 = self.clock()
        try:
            self.converter.convert(job)
        except Exception as e:
            job.result = ConversionResult(
                vm_name=name,
                status=JobStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
                duration_s=self.clock() - t0,
                completed_at=U.now_iso(),
            )
            Log.fail(self.logger, f"{name}: {job.result.error}")
        return job
