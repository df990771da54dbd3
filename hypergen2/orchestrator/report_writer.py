# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/orchestrator/report_writer.py
"""
Batch report artifacts.

    batch-report-<ts>.json   full run (summary, per-VM results, skips)
    batch-report-<ts>.csv    name,status,duration_s,error,completed_at
    batch-skipped-<ts>.csv   name,reason
    batch-report-<ts>.md     operator-facing summary
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.file_ops import atomic_write_text
from ..core.utils import U
from .models import BatchRun, JobStatus

REPORT_COLUMNS = ["name", "status", "duration_s", "error", "completed_at"]
SKIPPED_COLUMNS = ["name", "reason"]

_STATUS_STYLE = {
    JobStatus.SUCCESS: "green",
    JobStatus.VALIDATION_FAILED: "yellow",
    JobStatus.BACKUP_FAILED: "yellow",
    JobStatus.FAILED: "bold red",
}


def _csv(columns: List[str], rows: List[Dict[str, Any]]) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=columns, lineterminator="\n")
    w.writeheader()
    for r in rows:
        w.writerow({k: "" if r.get(k) is None else r.get(k) for k in columns})
    return buf.getvalue()


def report_rows(run: BatchRun) -> List[Dict[str, Any]]:
    rows = []
    for j in run.jobs:
        r = j.result
        rows.append(
            {
                "name": j.vm_name,
                "status": j.status.value,
                "duration_s": f"{r.duration_s:.1f}" if r else "0.0",
                "error": (r.error if r else None) or "",
                "completed_at": r.completed_at if r else "",
            }
        )
    return rows


def render_markdown(run: BatchRun) -> str:
    lines = [
        "# Generation 2 Conversion Report",
        "",
        f"**Snapshot:** {run.snapshot or '-'}",
        f"**Started:** {run.started_at}",
        f"**Completed:** {run.completed_at}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total VMs | {run.total} |",
        f"| Succeeded | {run.succeeded} |",
        f"| Failed | {run.failed} |",
        f"| Skipped | {run.skipped_count} |",
        "",
    ]

    if run.jobs:
        lines += ["## Conversions", "", "| VM | Status | Stage | Duration | Error |", "|------|------|------|------|------|"]
        for j in run.jobs:
            r = j.result
            error_short = ((r.error if r else None) or "-").replace("|", "/")[:120]
            lines.append(
                f"| {j.vm_name} | {j.status.value} | {r.stage.value if r else '-'} | "
                f"{U.human_duration(r.duration_s) if r else '-'} | {error_short} |"
            )
        lines.append("")

    warned = [j for j in run.jobs if j.result and j.result.warnings]
    if warned:
        lines += ["## Warnings", ""]
        for j in warned:
            for w in j.result.warnings:
                tail = f" ({w.guidance})" if w.guidance else ""
                lines.append(f"- **{j.vm_name}** [{w.stage.value}] {w.message}{tail}")
        lines.append("")

    if run.skipped:
        lines += ["## Skipped", "", "| VM | Reason |", "|------|------|"]
        lines += [f"| {s.name} | {s.reason} |" for s in run.skipped]
        lines.append("")

    if run.not_found:
        lines += ["## Not Found in Snapshot", ""]
        lines += [f"- {n}" for n in run.not_found]
        lines.append("")

    return "\n".join(lines)


def write_batch_report(run: BatchRun, report_dir: Path, *, stamp: Optional[str] = None, logger: Optional[logging.Logger] = None) -> Dict[str, Path]:
    stamp = stamp or U.now_ts()
    out = U.ensure_dir(Path(report_dir))
    paths = {
        "json": out / f"batch-report-{stamp}.json",
        "csv": out / f"batch-report-{stamp}.csv",
        "skipped": out / f"batch-skipped-{stamp}.csv",
        "markdown": out / f"batch-report-{stamp}.md",
    }
    atomic_write_text(paths["json"], json.dumps(run.to_dict(), indent=2) + "\n")
    atomic_write_text(paths["csv"], _csv(REPORT_COLUMNS, report_rows(run)))
    atomic_write_text(
        paths["skipped"], _csv(SKIPPED_COLUMNS, [{"name": s.name, "reason": s.reason} for s in run.skipped])
    )
    atomic_write_text(paths["markdown"], render_markdown(run))
    if logger is not None:
        logger.info("🧾 Report saved to %s", paths["json"])
    return paths


def print_summary(run: BatchRun, console: Optional[Console] = None) -> None:
    console = console or Console(stderr=False)

    table = Table(title=f"Conversion summary ({run.succeeded}/{len(run.jobs)} succeeded)")
    table.add_column("VM", style="bold")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Error / reason", overflow="fold")
    for j in run.jobs:
        r = j.result
        style = _STATUS_STYLE.get(j.status, "")
        table.add_row(
            escape(j.vm_name),
            f"[{style}]{j.status.value}[/]" if style else j.status.value,
            U.human_duration(r.duration_s) if r else "-",
            escape((r.error if r else None) or ""),
        )
    for s in run.skipped:
        table.add_row(escape(s.name), "[dim]SKIPPED[/]", "-", escape(s.reason))
    for n in run.not_found:
        table.add_row(escape(n), "[dim]NOT FOUND[/]", "-", "not in snapshot")
    console.print(table)
    console.print(
        f"Total: {run.total}  Succeeded: {run.succeeded}  Failed: {run.failed}  Skipped: {run.skipped_count}"
    )
