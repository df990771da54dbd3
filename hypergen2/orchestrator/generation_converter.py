# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/orchestrator/generation_converter.py
"""
Single-VM generation 1 -> generation 2 conversion.

    VALIDATED -> CAPTURED -> BACKED_UP -> SOURCE_REMOVED -> TARGET_CREATED
      -> TARGET_CONFIGURED -> CLUSTER_REJOINED -> STARTED
      -> REGISTRY_RECONCILED (optional) -> COMPLETED

Nothing before SOURCE_REMOVED mutates the VM definition. Removing the source
definition is the point of no return: later failures are not rolled back,
recovery relies on the disk backup and the captured configuration file.

`convert()` never raises; the outcome is recorded in `job.result`.
"""

from __future__ import annotations

import json
import logging
import ntpath
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..azure.models import RegistryBinding
from ..azure.registry import RegistryClient
from ..core.exceptions import (
    BackupError,
    Hypergen2Error,
    IrrecoverableConversionError,
    PreconditionError,
    wrap_backup,
    wrap_fatal,
    wrap_irrecoverable,
    wrap_precondition,
)
from ..core.file_ops import atomic_write_text
from ..core.logger import Log
from ..core.logging_utils import log_step
from ..core.polling import poll_until
from ..core.retry import retry_operation
from ..core.utils import U
from ..hyperv.models import (
    DiskDescriptor,
    VmRecord,
    plan_adapter_names,
    plan_data_disk_slots,
    primary_nic,
    select_boot_disk,
)
from ..hyperv.provider import PRIMARY_ADAPTER_NAME, ResourceProvider, heartbeat_is_healthy
from ..inventory.snapshot import write_record
from .models import ConversionJob, ConversionOptions, ConversionResult, ConversionStage, JobStatus

CAPTURED_CONFIG_FILE = "captured-config.json"
RESULT_FILE = "conversion-result.json"

S = ConversionStage


class GenerationConverter:
    def __init__(
        self,
        logger: logging.Logger,
        provider: ResourceProvider,
        registry: Optional[RegistryClient] = None,
        options: Optional[ConversionOptions] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.provider = provider
        self.registry = registry
        self.options = options or ConversionOptions()
        self.clock = clock
        self.sleep = sleep

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------

    def convert(self, job: ConversionJob) -> ConversionResult:
        result = ConversionResult(vm_name=job.vm_name, started_at=U.now_iso())
        job.result = result
        log = Log.bind(self.logger, vm=job.vm_name)
        t0 = self.clock()

        Log.step(log, f"Converting {job.vm_name} to generation 2")
        try:
            self._run(job, result, log)
        except PreconditionError as e:
            result.status = JobStatus.VALIDATION_FAILED
            result.error = e.msg
            Log.fail(log, f"Validation failed: {e.msg}")
        except BackupError as e:
            result.status = JobStatus.BACKUP_FAILED
            result.error = e.msg
            Log.fail(log, f"Backup failed, source VM untouched: {e.msg}")
        except IrrecoverableConversionError as e:
            result.status = JobStatus.FAILED
            result.error = e.msg
            log.critical(
                "🚨 IRRECOVERABLE: %s. The original VM definition is gone. Disk backup: %s. Captured configuration: %s",
                e.msg,
                result.backup_dir or "(backup disabled)",
                result.captured_config,
            )
        except Hypergen2Error as e:
            result.status = JobStatus.FAILED
            result.error = e.msg
            Log.fail(log, e.msg)
        except Exception as e:
            result.status = JobStatus.FAILED
            result.error = f"{type(e).__name__}: {e}"
            Log.fail(log, f"Unexpected error at stage {result.stage.value}: {result.error}")
            log.debug("Traceback:", exc_info=True)
        finally:
            result.duration_s = self.clock() - t0
            result.completed_at = U.now_iso()
            self._write_result(job, result, log)

        if result.succeeded:
            Log.ok(log, f"{job.vm_name} converted in {U.human_duration(result.duration_s)}")
        return result

    def _run(self, job: ConversionJob, result: ConversionResult, log: Any) -> None:
        with log_step(log, "Validating"):
            rec = self._validate(job)
        result.stage = S.VALIDATED

        with log_step(log, "Capturing configuration"):
            boot = self._capture(job, rec, result, log)
        result.stage = S.CAPTURED

        with log_step(log, "Backing up disks"):
            disks, boot = self._backup(job, rec, boot, result, log)
        result.stage = S.BACKED_UP

        binding = self._capture_binding(job, result, log)

        with log_step(log, "Removing generation 1 definition"):
            binding_deleted = self._teardown(rec, binding, result, log)
        result.point_of_no_return_passed = True
        result.stage = S.SOURCE_REMOVED

        with log_step(log, "Creating generation 2 VM"):
            self._rebuild(rec, boot, result)
        result.stage = S.TARGET_CREATED

        with log_step(log, "Configuring generation 2 VM"):
            self._configure(rec, disks, boot, result, log)
        result.stage = S.TARGET_CONFIGURED

        self._rejoin_cluster(rec, result, log)
        result.stage = S.CLUSTER_REJOINED

        self._start(rec, result, log)
        result.stage = S.STARTED

        if self._reconcile_registry(job, binding, binding_deleted, result, log):
            result.stage = S.REGISTRY_RECONCILED

        if result.required_step_errors:
            raise wrap_fatal(
                "; ".join(result.required_step_errors), None, 1, stage=result.stage.value
            )
        result.status = JobStatus.SUCCESS
        result.stage = S.COMPLETED

    # ------------------------------------------------------------------
    # stages before the point of no return
    # ------------------------------------------------------------------

    def _validate(self, job: ConversionJob) -> VmRecord:
        name = job.vm_name
        try:
            rec = self.provider.get_vm(name)
        except Exception as e:
            raise wrap_precondition(f"Cannot query VM {name}: {e}", e, vm=name)
        if rec is None:
            raise PreconditionError(msg=f"VM {name} not found")
        if rec.generation == 2:
            raise PreconditionError(msg=f"VM {name} is already generation 2 (already converted)")
        if not rec.is_off:
            raise PreconditionError(msg=f"VM {name} must be Off (state={rec.state.value})")

        try:
            checkpoints = self.provider.count_checkpoints(name)
        except Exception as e:
            raise wrap_precondition(f"Cannot query checkpoints of {name}: {e}", e, vm=name)
        if checkpoints:
            raise PreconditionError(
                msg=f"VM {name} has {checkpoints} checkpoint(s); delete or merge them before converting"
            )
        rec.checkpoint_count = checkpoints

        if not rec.disks:
            raise PreconditionError(msg=f"VM {name} has no virtual hard disks")
        if not job.backup and not job.acknowledge_no_backup:
            raise PreconditionError(
                msg="Backup is disabled but not acknowledged; pass --acknowledge-no-backup to convert without a backup"
            )

        try:
            rec.cluster = self.provider.get_cluster_membership(name)
        except Exception as e:
            raise wrap_precondition(f"Cannot query cluster membership of {name}: {e}", e, vm=name)
        return rec

    def _capture(self, job: ConversionJob, rec: VmRecord, result: ConversionResult, log: Any) -> DiskDescriptor:
        boot, ambiguous = select_boot_disk(rec.disks)
        if ambiguous:
            result.warn(
                S.CAPTURED,
                f"Ambiguous boot disk: no IDE disk attached, using first disk {boot.path}",
                "Verify the boot order of the new VM before relying on it",
            )
            Log.warn(log, f"Ambiguous boot disk, using {boot.path}")
        else:
            log.info("💽 Boot disk: %s (%s)", boot.path, boot.label())

        path = U.ensure_dir(job.vm_dir) / CAPTURED_CONFIG_FILE
        try:
            write_record(path, rec)
        except OSError as e:
            raise wrap_backup(f"Cannot write captured configuration {path}: {e}", e)
        result.captured_config = str(path)
        log.info("🧾 Captured configuration: %s", path)
        return boot

    def _backup(
        self,
        job: ConversionJob,
        rec: VmRecord,
        boot: DiskDescriptor,
        result: ConversionResult,
        log: Any,
    ) -> Tuple[List[DiskDescriptor], DiskDescriptor]:
        opts = self.options
        to_verify: List[str] = []

        try:
            if job.backup:
                backup_dir = job.vm_dir / f"backup-{U.now_ts()}"
                result.backup_dir = str(backup_dir)
                for disk, filename in _backup_names(rec.disks):
                    dest = str(backup_dir / filename)
                    log.info("📦 Backing up %s -> %s", disk.path, dest)
                    retry_operation(
                        lambda src=disk.path, dst=dest: self.provider.copy_file(src, dst),
                        max_attempts=opts.copy_retries,
                        base_backoff_s=opts.copy_backoff_s,
                        operation_name=f"copy {disk.filename}",
                        logger=log,
                        sleep=self.sleep,
                    )
                    to_verify.append(dest)
            else:
                result.warn(
                    S.BACKED_UP,
                    "Disk backup disabled (acknowledged); a failure after the source VM is removed cannot be recovered from a backup",
                )
                Log.warn(log, "Disk backup disabled (acknowledged)")

            disks: List[DiskDescriptor] = []
            for disk in rec.disks:
                if disk.format.is_legacy:
                    new_path = ntpath.splitext(disk.path)[0] + ".vhdx"
                    if self.provider.path_exists(new_path):
                        raise BackupError(msg=f"Refusing to overwrite existing {new_path}")
                    log.info("🔄 Converting %s -> %s", disk.path, new_path)
                    self.provider.convert_disk(disk.path, new_path)
                    to_verify.append(new_path)
                    upgraded = disk.upgraded(new_path)
                    if disk == boot:
                        boot = upgraded
                    disk = upgraded
                disks.append(disk)

            missing = [p for p in to_verify if not self.provider.path_exists(p)]
        except BackupError:
            raise
        except Exception as e:
            raise wrap_backup(f"{e}", e, backup_dir=result.backup_dir)

        if missing:
            raise BackupError(msg=f"Backup verification failed, missing: {', '.join(missing)}")
        return disks, boot

    def _capture_binding(self, job: ConversionJob, result: ConversionResult, log: Any) -> Optional[RegistryBinding]:
        if job.skip_registry:
            log.info("⏭️  Registry handling skipped")
            return None
        if self.registry is None:
            result.warn(S.BACKED_UP, "No registry client configured; registry binding not captured")
            return None
        try:
            binding = self.registry.find_binding(job.vm_name)
        except Exception as e:
            result.warn(S.BACKED_UP, f"Registry lookup failed: {e}")
            Log.warn(log, f"Registry lookup failed: {e}")
            return None
        if binding is None:
            result.warn(S.BACKED_UP, f"No registry binding found for {job.vm_name}")
            Log.warn(log, "No registry binding found")
            return None
        result.registry_binding = binding
        log.info("🔗 Registry binding: %s (%d tag(s))", binding.resource_id, len(binding.tags))
        return binding

    # ------------------------------------------------------------------
    # point of no return
    # ------------------------------------------------------------------

    def _teardown(
        self, rec: VmRecord, binding: Optional[RegistryBinding], result: ConversionResult, log: Any
    ) -> bool:
        """Remove the generation 1 definition. Returns True when the captured binding was deleted."""
        name = rec.name
        binding_deleted = False
        if rec.cluster is not None:
            try:
                self.provider.remove_cluster_role(rec.cluster.group_name)
            except Exception as e:
                result.warn(S.SOURCE_REMOVED, f"Cluster role removal failed: {e}")
                Log.warn(log, f"Cluster role removal failed: {e}")

        if binding is not None and self.registry is not None:
            try:
                self.registry.delete_binding(binding)
                binding_deleted = True
            except Exception as e:
                result.warn(S.SOURCE_REMOVED, f"Registry binding deletion failed: {e}")
                Log.warn(log, f"Registry binding deletion failed: {e}")

        try:
            self.provider.remove_vm(name)
        except Exception as e:
            raise wrap_fatal(f"Removing VM {name} failed, the generation 1 VM is still defined: {e}", e, vm=name)
        log.warning("⚠️  Generation 1 definition of %s removed (disk files kept)", name)
        return binding_deleted

    def _rebuild(self, rec: VmRecord, boot: DiskDescriptor, result: ConversionResult) -> None:
        nic = primary_nic(rec.nics)
        try:
            result.new_vm_id = self.provider.new_vm(
                rec.name,
                generation=2,
                memory_startup_bytes=rec.memory.startup_bytes,
                boot_disk_path=boot.path,
                switch_name=nic.switch_name if nic else None,
            )
        except Exception as e:
            raise wrap_irrecoverable(
                f"Creating generation 2 VM {rec.name} failed: {e}",
                e,
                backup_dir=result.backup_dir,
                captured_config=result.captured_config,
            )

    def _configure(
        self,
        rec: VmRecord,
        disks: List[DiskDescriptor],
        boot: DiskDescriptor,
        result: ConversionResult,
        log: Any,
    ) -> None:
        name = rec.name
        opts = self.options
        req = lambda what, fn: self._required(result, log, what, fn)  # noqa: E731
        best = lambda what, fn, guidance="": self._best_effort(result, log, S.TARGET_CONFIGURED, what, fn, guidance)  # noqa: E731

        req("set processor count", lambda: self.provider.set_processor_count(name, rec.processor_count))
        if rec.memory.dynamic:
            req("set dynamic memory", lambda: self.provider.set_dynamic_memory(name, rec.memory))

        try:
            self.provider.set_secure_boot(name, opts.secure_boot_template)
        except Exception as e:
            result.warn(
                S.TARGET_CONFIGURED,
                f"Secure boot template {opts.secure_boot_template} could not be applied ({e}); secure boot disabled",
            )
            Log.warn(log, f"Secure boot template {opts.secure_boot_template} failed, disabling secure boot")
            best("disable secure boot", lambda: self.provider.set_secure_boot(name, None))

        for disk, controller, location in plan_data_disk_slots(disks, boot, per_controller=opts.scsi_slots_per_controller):
            req(
                f"attach {disk.path} at SCSI {controller}:{location}",
                lambda d=disk, c=controller, l=location: self.provider.add_disk(
                    name, d.path, controller_number=c, controller_location=l
                ),
            )

        adapters = plan_adapter_names(rec.nics)
        if adapters:
            nic, adapter = adapters[0]
            # Only the New-VM adapter exists yet, so addressing it by name is unambiguous.
            if adapter != PRIMARY_ADAPTER_NAME:
                req(
                    f"rename primary adapter to {adapter!r}",
                    lambda: self.provider.rename_nic(name, PRIMARY_ADAPTER_NAME, adapter),
                )
            if nic.vlan_id:
                req(f"set VLAN {nic.vlan_id} on {adapter!r}", lambda: self.provider.set_nic_vlan(name, adapter, nic.vlan_id))
            if nic.has_static_mac:
                best(
                    f"set static MAC {nic.mac_address} on {adapter!r}",
                    lambda: self.provider.set_nic_mac(name, adapter, nic.mac_address),
                    "Guest network configuration bound to the old MAC address may need updating",
                )

        for legacy in (n for n in rec.nics if n.is_legacy):
            result.warn(
                S.TARGET_CONFIGURED,
                f"Legacy network adapter {legacy.name!r} cannot be attached to a generation 2 VM; skipped",
                "Add a synthetic network adapter on the same switch if it is still needed",
            )
            Log.warn(log, f"Skipping legacy network adapter {legacy.name!r}")

        for extra, adapter_name in adapters[1:]:
            req(
                f"add network adapter {adapter_name!r}",
                lambda n=extra, a=adapter_name: self.provider.add_nic(name, n, adapter_name=a),
            )

        best(
            "set automatic start/stop actions",
            lambda: self.provider.set_automatic_actions(
                name,
                start_action=rec.automatic_start_action,
                stop_action=rec.automatic_stop_action,
                start_delay=rec.automatic_start_delay,
            ),
        )
        stamp = f"Converted from generation 1 to generation 2 on {U.now_iso()}"
        notes = f"{rec.notes.rstrip()}\n{stamp}" if rec.notes else stamp
        best("update notes", lambda: self.provider.set_notes(name, notes))
        if opts.enable_tpm:
            best("enable virtual TPM", lambda: self.provider.enable_tpm(name))

    # ------------------------------------------------------------------
    # post-configuration
    # ------------------------------------------------------------------

    def _rejoin_cluster(self, rec: VmRecord, result: ConversionResult, log: Any) -> None:
        if rec.cluster is None:
            return
        self._best_effort(
            result,
            log,
            S.CLUSTER_REJOINED,
            "re-add cluster role",
            lambda: self.provider.add_cluster_role(rec.name),
            f"Run: Add-ClusterVirtualMachineRole -VMName '{rec.name}'",
        )

    def _start(self, rec: VmRecord, result: ConversionResult, log: Any) -> None:
        if not self._required(result, log, "start VM", lambda: self.provider.start_vm(rec.name)):
            return
        opts = self.options
        outcome = poll_until(
            lambda: self.provider.get_heartbeat(rec.name),
            interval_s=opts.heartbeat_interval_s,
            timeout_s=opts.heartbeat_timeout_s,
            accept=heartbeat_is_healthy,
            clock=self.clock,
            sleep=self.sleep,
            logger=log,
            description=f"Heartbeat {rec.name}",
        )
        if outcome.succeeded:
            Log.ok(log, f"Heartbeat {outcome.value} after {outcome.elapsed_s:.0f}s")
            return
        result.warn(
            S.STARTED,
            f"No healthy heartbeat within {opts.heartbeat_timeout_s:.0f}s (last: {outcome.value or outcome.last_error})",
            "Check the VM console: the guest disk must be GPT-partitioned to boot under UEFI "
            "and integration services must be running",
        )
        Log.warn(log, f"Heartbeat not healthy after {outcome.elapsed_s:.0f}s")

    def _reconcile_registry(
        self,
        job: ConversionJob,
        binding: Optional[RegistryBinding],
        binding_deleted: bool,
        result: ConversionResult,
        log: Any,
    ) -> bool:
        if job.skip_registry or self.registry is None:
            return False
        if binding is not None and not binding_deleted:
            # The pre-conversion resource would match the lookup at once.
            result.warn(
                S.REGISTRY_RECONCILED,
                f"Stale registry binding {binding.resource_id} is still present; re-registration not verified",
                f"Delete it (az connectedmachine delete --name {binding.name} --resource-group <rg>), then "
                "re-register inside the guest: azcmagent connect --resource-group <rg> --location <location> "
                "--subscription-id <subscription>",
            )
            Log.warn(log, "Stale registry binding not deleted; manual re-registration required")
            return False
        opts = self.options
        registry = self.registry
        outcome = poll_until(
            lambda: registry.find_binding(job.vm_name),
            interval_s=opts.registry_interval_s,
            timeout_s=opts.registry_timeout_s,
            accept=lambda b: _is_new_registration(b, binding),
            clock=self.clock,
            sleep=self.sleep,
            logger=log,
            description=f"Registry binding {job.vm_name}",
        )
        if not outcome.succeeded:
            result.warn(
                S.REGISTRY_RECONCILED,
                f"No registry binding for {job.vm_name} within {opts.registry_timeout_s:.0f}s",
                "Register the machine manually inside the guest: azcmagent connect "
                "--resource-group <rg> --location <location> --subscription-id <subscription>",
            )
            Log.warn(log, "Registry binding not observed; manual registration required")
            return False

        new_binding = outcome.value
        result.registry_binding = new_binding
        Log.ok(log, f"Registry binding {new_binding.resource_id}")
        if binding is not None and binding.tags:
            self._best_effort(
                result,
                log,
                S.REGISTRY_RECONCILED,
                "re-apply registry tags",
                lambda: registry.apply_tags(new_binding, binding.tags),
            )
        return True

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _required(self, result: ConversionResult, log: Any, what: str, fn: Callable[[], Any]) -> bool:
        try:
            fn()
            return True
        except Exception as e:
            result.required_step_errors.append(f"{what}: {e}")
            Log.fail(log, f"Required step failed: {what}: {e}")
            return False

    def _best_effort(
        self,
        result: ConversionResult,
        log: Any,
        stage: ConversionStage,
        what: str,
        fn: Callable[[], Any],
        guidance: str = "",
    ) -> bool:
        try:
            fn()
            return True
        except Exception as e:
            result.warn(stage, f"{what} failed: {e}", guidance)
            Log.warn(log, f"{what} failed: {e}")
            return False

    def _write_result(self, job: ConversionJob, result: ConversionResult, log: Any) -> None:
        # Nothing is written for a job that never got past validation.
        if result.stage == S.PENDING:
            return
        try:
            path = U.ensure_dir(job.vm_dir) / RESULT_FILE
            atomic_write_text(path, json.dumps(result.to_dict(), indent=2) + "\n")
            log.debug("Result written: %s", path)
        except OSError as e:
            Log.warn(log, f"Cannot write {RESULT_FILE}: {e}")


def _backup_names(disks: List[DiskDescriptor]) -> List[Tuple[DiskDescriptor, str]]:
    """Backup file name per disk; same-named files from different folders get their address prefixed."""
    seen: Dict[str, int] = {}
    for d in disks:
        seen[d.filename.lower()] = seen.get(d.filename.lower(), 0) + 1
    out: List[Tuple[DiskDescriptor, str]] = []
    for d in disks:
        if seen[d.filename.lower()] > 1:
            t, n, l = d.address
            out.append((d, f"{t}{n}-{l}_{d.filename}"))
        else:
            out.append((d, d.filename))
    return out


def _is_new_registration(candidate: Optional[RegistryBinding], captured: Optional[RegistryBinding]) -> bool:
    """A lookup hit counts only when it is not the machine registered before teardown."""
    if candidate is None:
        return False
    if captured is None or not captured.machine_id:
        return True
    return candidate.machine_id != captured.machine_id
