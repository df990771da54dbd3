# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/orchestrator/models.py
"""
Conversion job / batch data model.

A ConversionJob carries the per-VM inputs and, once run, its
ConversionResult. A BatchRun aggregates jobs plus the VMs that never reached
the converter (skipped / not found).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..azure.models import RegistryBinding


class ConversionStage(str, Enum):
    # Order matters: each stage is only entered after the previous one.
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    CAPTURED = "CAPTURED"
    BACKED_UP = "BACKED_UP"
    SOURCE_REMOVED = "SOURCE_REMOVED"
    TARGET_CREATED = "TARGET_CREATED"
    TARGET_CONFIGURED = "TARGET_CONFIGURED"
    CLUSTER_REJOINED = "CLUSTER_REJOINED"
    STARTED = "STARTED"
    REGISTRY_RECONCILED = "REGISTRY_RECONCILED"
    COMPLETED = "COMPLETED"

    @property
    def ordinal(self) -> int:
        return list(ConversionStage).index(self)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    VALIDATION_FAILED = "VALIDATION FAILED"
    BACKUP_FAILED = "BACKUP FAILED"
    FAILED = "FAILED"

    @property
    def exit_code(self) -> int:
        return {
            JobStatus.SUCCESS: 0,
            JobStatus.VALIDATION_FAILED: 2,
            JobStatus.BACKUP_FAILED: 3,
        }.get(self, 1)


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal finding attached to a job (warning or guidance)."""

    stage: ConversionStage
    message: str
    guidance: str = ""
    severity: str = "warning"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"stage": self.stage.value, "severity": self.severity, "message": self.message}
        if self.guidance:
            d["guidance"] = self.guidance
        return d


@dataclass
class ConversionOptions:
    backup: bool = True
    acknowledge_no_backup: bool = False
    skip_registry: bool = False

    heartbeat_interval_s: float = 10.0
    heartbeat_timeout_s: float = 300.0
    registry_interval_s: float = 30.0
    registry_timeout_s: float = 600.0

    secure_boot_template: str = "MicrosoftWindows"
    enable_tpm: bool = True
    scsi_slots_per_controller: int = 64

    copy_retries: int = 3
    copy_backoff_s: float = 5.0
    inter_vm_pause_s: float = 10.0

    @classmethod
    def from_args(cls, args: Any) -> "ConversionOptions":
        """Build options from an argparse namespace; missing attributes keep defaults."""
        base = cls()
        kw: Dict[str, Any] = {}
        for name in base.__dataclass_fields__:
            if name == "backup":
                v = getattr(args, "no_backup", None)
                if v is not None:
                    kw["backup"] = not bool(v)
                continue
            v = getattr(args, name, None)
            if v is not None:
                kw[name] = type(getattr(base, name))(v)
        return cls(**kw)


@dataclass
class ConversionResult:
    vm_name: str
    status: JobStatus = JobStatus.PENDING
    stage: ConversionStage = ConversionStage.PENDING
    duration_s: float = 0.0
    error: Optional[str] = None
    started_at: str = ""
    completed_at: str = ""
    warnings: List[Diagnostic] = field(default_factory=list)
    required_step_errors: List[str] = field(default_factory=list)
    backup_dir: Optional[str] = None
    captured_config: Optional[str] = None
    point_of_no_return_passed: bool = False
    new_vm_id: Optional[str] = None
    registry_binding: Optional[RegistryBinding] = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCESS

    def warn(self, stage: ConversionStage, message: str, guidance: str = "") -> Diagnostic:
        d = Diagnostic(stage=stage, message=message, guidance=guidance)
        self.warnings.append(d)
        return d

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vm_name": self.vm_name,
            "status": self.status.value,
            "stage": self.stage.value,
            "duration_s": round(self.duration_s, 3),
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "warnings": [w.to_dict() for w in self.warnings],
            "required_step_errors": list(self.required_step_errors),
            "backup_dir": self.backup_dir,
            "captured_config": self.captured_config,
            "point_of_no_return_passed": self.point_of_no_return_passed,
            "new_vm_id": self.new_vm_id,
            "registry_binding": self.registry_binding.to_dict() if self.registry_binding else None,
        }


@dataclass
class ConversionJob:
    vm_name: str
    workdir: Path
    backup: bool = True
    skip_registry: bool = False
    acknowledge_no_backup: bool = False
    result: Optional[ConversionResult] = None

    @classmethod
    def from_options(cls, vm_name: str, workdir: Path, options: ConversionOptions) -> "ConversionJob":
        return cls(
            vm_name=vm_name,
            workdir=Path(workdir),
            backup=options.backup,
            skip_registry=options.skip_registry,
            acknowledge_no_backup=options.acknowledge_no_backup,
        )

    @property
    def vm_dir(self) -> Path:
        return self.workdir / self.vm_name

    @property
    def status(self) -> JobStatus:
        return self.result.status if self.result else JobStatus.PENDING


@dataclass(frozen=True)
class SkippedVm:
    name: str
    reason: str


@dataclass
class BatchRun:
    snapshot: str = ""
    jobs: List[ConversionJob] = field(default_factory=list)
    skipped: List[SkippedVm] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)
    started_at: str = ""
    completed_at: str = ""

    def skip(self, name: str, reason: str) -> None:
        self.skipped.append(SkippedVm(name=name, reason=reason))

    @property
    def total(self) -> int:
        return len(self.jobs) + len(self.skipped)

    @property
    def succeeded(self) -> int:
        return sum(1 for j in self.jobs if j.status == JobStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for j in self.jobs if j.status != JobStatus.SUCCESS)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot": self.snapshot,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "summary": {
                "total": self.total,
                "succeeded": self.succeeded,
                "failed": self.failed,
                "skipped": self.skipped_count,
                "not_found": len(self.not_found),
            },
            "jobs": [
                j.result.to_dict() if j.result else {"vm_name": j.vm_name, "status": j.status.value}
                for j in self.jobs
            ],
            "skipped": [{"name": s.name, "reason": s.reason} for s in self.skipped],
            "not_found": list(self.not_found),
        }
