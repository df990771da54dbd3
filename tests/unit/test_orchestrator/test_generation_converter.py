# SPDX-License-Identifier: LGPL-3.0-or-later
"""End-to-end conversion scenarios against in-memory Hyper-V and Arc fakes."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from fakes.fake_clock import FakeClock
from fakes.fake_hyperv import FakeResourceProvider, make_vm
from fakes.fake_registry import FakeRegistry, arc_binding
from hypergen2.azure.exceptions import AzureCLIError
from hypergen2.hyperv.exceptions import PowerShellError
from hypergen2.hyperv.models import (
    ClusterMembership,
    ControllerType,
    DiskDescriptor,
    DiskFormat,
    NicDescriptor,
    PowerState,
)
from hypergen2.orchestrator.generation_converter import GenerationConverter
from hypergen2.orchestrator.models import (
    ConversionJob,
    ConversionOptions,
    ConversionStage,
    JobStatus,
)

LOGGER_NAME = "h2test.converter"
BOOT_VHD = "C:\\VMs\\Web01\\Web01.vhd"
BOOT_VHDX = "C:\\VMs\\Web01\\Web01.vhdx"


def _converter(provider, registry=None, clock=None, **opts):
    clock = clock or FakeClock()
    return GenerationConverter(
        logging.getLogger(LOGGER_NAME),
        provider,
        registry,
        ConversionOptions(**opts),
        clock=clock,
        sleep=clock.sleep,
    )


def _job(tmp_path: Path, name: str = "Web01", **kw) -> ConversionJob:
    return ConversionJob(vm_name=name, workdir=tmp_path, **kw)


def _messages(result):
    return [w.message for w in result.warnings]


@pytest.mark.unit
class TestScenarios:
    def test_gen1_vm_with_legacy_disk_is_rebuilt_as_gen2(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01", env="prod")})

        result = _converter(provider, registry).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert result.stage == ConversionStage.COMPLETED
        assert result.error is None

        vm = provider.vms["Web01"]
        assert vm.generation == 2
        assert vm.state == PowerState.RUNNING
        assert len(vm.disks) == 1
        assert vm.disks[0].path == BOOT_VHDX
        assert vm.disks[0].format == DiskFormat.VHDX
        assert vm.nics[0].vlan_id == 10
        assert vm.nics[0].mac_address == "00155D010203"
        assert vm.processor_count == 4

        # original legacy file kept and backed up
        assert BOOT_VHD in provider.files
        assert str(Path(result.backup_dir) / "Web01.vhd") in provider.files

        assert registry.deleted == ["Web01"]
        assert registry.tagged == [("Web01", {"env": "prod"})]

    def test_checkpoints_abort_before_any_mutation(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.checkpoints["Web01"] = 2
        registry = FakeRegistry({"Web01": arc_binding("Web01")})

        result = _converter(provider, registry).convert(_job(tmp_path))

        assert result.status == JobStatus.VALIDATION_FAILED
        assert "2 checkpoint(s)" in result.error
        assert provider.mutating_calls() == []
        assert registry.calls == []
        assert not (tmp_path / "Web01").exists()
        assert "Web01" in provider.vms

    def test_registry_never_reappears_still_succeeds_with_guidance(self, tmp_path, caplog):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01")}, reappear_after=None)
        clock = FakeClock()

        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            result = _converter(provider, registry, clock).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        timeouts = [w for w in result.warnings if w.stage == ConversionStage.REGISTRY_RECONCILED]
        assert len(timeouts) == 1
        assert "azcmagent connect" in timeouts[0].guidance
        assert clock.now >= 600
        assert any("manual registration" in r.getMessage() for r in caplog.records)


@pytest.mark.unit
class TestValidation:
    def _assert_rejected(self, tmp_path, provider, fragment, **job_kw):
        result = _converter(provider).convert(_job(tmp_path, **job_kw))
        assert result.status == JobStatus.VALIDATION_FAILED
        assert fragment in result.error
        assert provider.mutating_calls() == []
        return result

    def test_missing_vm(self, tmp_path):
        self._assert_rejected(tmp_path, FakeResourceProvider([]), "not found")

    def test_generation_two_is_already_converted(self, tmp_path):
        self._assert_rejected(tmp_path, FakeResourceProvider([make_vm(generation=2)]), "already converted")

    def test_running_vm(self, tmp_path):
        provider = FakeResourceProvider([make_vm(state=PowerState.RUNNING)])
        self._assert_rejected(tmp_path, provider, "must be Off")

    def test_saved_vm_is_not_off(self, tmp_path):
        provider = FakeResourceProvider([make_vm(state=PowerState.SAVED)])
        self._assert_rejected(tmp_path, provider, "must be Off")

    def test_vm_without_disks(self, tmp_path):
        self._assert_rejected(tmp_path, FakeResourceProvider([make_vm(disks=[])]), "no virtual hard disks")

    def test_unacknowledged_no_backup(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        self._assert_rejected(tmp_path, provider, "acknowledge-no-backup", backup=False)

    def test_host_query_error_is_a_precondition_failure(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["get_vm"] = PowerShellError(msg="RPC server is unavailable")
        self._assert_rejected(tmp_path, provider, "Cannot query VM")

    def test_cluster_query_error_is_a_precondition_failure(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["get_cluster_membership"] = PowerShellError(msg="cluster service not running")
        self._assert_rejected(tmp_path, provider, "cluster membership")


@pytest.mark.unit
class TestBackup:
    def test_copy_failure_leaves_source_untouched(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["copy_file"] = OSError("not enough space on the disk")
        clock = FakeClock()

        result = _converter(provider, clock=clock, copy_retries=3).convert(_job(tmp_path))

        assert result.status == JobStatus.BACKUP_FAILED
        assert "not enough space" in result.error
        assert provider.ops().count("copy_file") == 3
        assert len(clock.sleeps) == 2
        assert "remove_vm" not in provider.ops()
        assert "Web01" in provider.vms

    def test_backup_file_missing_after_copy(self, tmp_path):
        class LossyProvider(FakeResourceProvider):
            def copy_file(self, source_path, destination_path):
                self._call("copy_file", source_path, destination_path)

        provider = LossyProvider([make_vm()])
        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.BACKUP_FAILED
        assert "missing" in result.error
        assert "remove_vm" not in provider.ops()

    def test_existing_vhdx_is_never_overwritten(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.files.add(BOOT_VHDX)

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.BACKUP_FAILED
        assert "convert_disk" not in provider.ops()

    def test_acknowledged_no_backup_converts_without_copies(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])

        result = _converter(provider).convert(_job(tmp_path, backup=False, acknowledge_no_backup=True))

        assert result.status == JobStatus.SUCCESS
        assert result.backup_dir is None
        assert "copy_file" not in provider.ops()
        assert any("backup disabled" in m.lower() for m in _messages(result))
        assert (tmp_path / "Web01" / "captured-config.json").is_file()

    def test_same_named_disks_get_distinct_backup_files(self, tmp_path):
        disks = [
            DiskDescriptor(ControllerType.IDE, 0, 0, "C:\\VMs\\A\\disk.vhdx"),
            DiskDescriptor(ControllerType.SCSI, 0, 1, "D:\\VMs\\B\\disk.vhdx"),
        ]
        provider = FakeResourceProvider([make_vm(disks=disks)])

        _converter(provider).convert(_job(tmp_path))

        dests = [c[1][1] for c in provider.calls if c[0] == "copy_file"]
        assert len(set(dests)) == 2

    def test_all_copies_and_conversions_precede_teardown(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        _converter(provider).convert(_job(tmp_path))

        ops = provider.ops()
        removed = ops.index("remove_vm")
        assert ops.index("copy_file") < removed
        assert ops.index("convert_disk") < removed
        assert removed < ops.index("new_vm")


@pytest.mark.unit
class TestPointOfNoReturn:
    def test_remove_failure_keeps_vm_defined(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["remove_vm"] = PowerShellError(msg="access denied")

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.FAILED
        assert result.point_of_no_return_passed is False
        assert "still defined" in result.error
        assert "new_vm" not in provider.ops()

    def test_create_failure_is_irrecoverable_and_logged_loudly(self, tmp_path, caplog):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["new_vm"] = PowerShellError(msg="The file is in use")

        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.FAILED
        assert result.stage == ConversionStage.SOURCE_REMOVED
        assert result.point_of_no_return_passed is True
        assert "Creating generation 2 VM" in result.error
        critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
        assert critical and result.backup_dir in critical[0].getMessage()
        assert "Web01" not in provider.vms

    def test_required_step_failure_continues_then_fails(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["set_processor_count"] = PowerShellError(msg="invalid count")

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.FAILED
        assert "set processor count" in result.error
        assert "start_vm" in provider.ops()
        assert provider.vms["Web01"].state == PowerState.RUNNING

    def test_start_failure_skips_heartbeat_wait(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["start_vm"] = PowerShellError(msg="boot failure")

        result = _converter(provider, skip_registry=True).convert(_job(tmp_path, skip_registry=True))

        assert result.status == JobStatus.FAILED
        assert "start VM" in result.error
        assert "get_heartbeat" not in provider.ops()


@pytest.mark.unit
class TestConfigure:
    def test_data_disks_go_to_scsi_from_location_one(self, tmp_path):
        disks = [
            DiskDescriptor(ControllerType.SCSI, 0, 1, "C:\\VMs\\Web01\\logs.vhdx"),
            DiskDescriptor(ControllerType.IDE, 0, 0, "C:\\VMs\\Web01\\os.vhdx"),
            DiskDescriptor(ControllerType.IDE, 1, 0, "C:\\VMs\\Web01\\data.vhd", DiskFormat.VHD),
        ]
        provider = FakeResourceProvider([make_vm(disks=disks)])

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        new_vm = [c for c in provider.calls if c[0] == "new_vm"][0]
        assert new_vm[1][3] == "C:\\VMs\\Web01\\os.vhdx"
        attached = [(c[1][1], c[1][2], c[1][3]) for c in provider.calls if c[0] == "add_disk"]
        assert attached == [
            ("C:\\VMs\\Web01\\data.vhdx", 0, 1),
            ("C:\\VMs\\Web01\\logs.vhdx", 0, 2),
        ]

    def test_no_ide_disk_warns_about_ambiguous_boot_disk(self, tmp_path):
        disks = [DiskDescriptor(ControllerType.SCSI, 0, 0, "C:\\VMs\\Web01\\first.vhdx")]
        provider = FakeResourceProvider([make_vm(disks=disks)])

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert any("Ambiguous boot disk" in m for m in _messages(result))

    def test_legacy_nics_are_skipped_and_extra_nics_added(self, tmp_path):
        nics = [
            NicDescriptor("Legacy Network Adapter", "vSwitch-Old", is_legacy=True),
            NicDescriptor("Network Adapter", "vSwitch-Prod", "00155D010203", vlan_id=10),
            NicDescriptor("Backup", "vSwitch-Backup", vlan_id=20),
        ]
        provider = FakeResourceProvider([make_vm(nics=nics)])

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        new_vm = [c for c in provider.calls if c[0] == "new_vm"][0]
        assert new_vm[1][4] == "vSwitch-Prod"
        added = [c[1][1].name for c in provider.calls if c[0] == "add_nic"]
        assert added == ["Backup"]
        assert any("Legacy network adapter" in m for m in _messages(result))
        assert all(not n.is_legacy for n in provider.vms["Web01"].nics)

    def test_same_named_adapters_keep_their_own_vlans(self, tmp_path):
        nics = [
            NicDescriptor("Network Adapter", "vSwitch-Prod", vlan_id=10),
            NicDescriptor("Network Adapter", "vSwitch-Backup", vlan_id=20),
        ]
        provider = FakeResourceProvider([make_vm(nics=nics)])

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        got = [(n.name, n.switch_name, n.vlan_id) for n in provider.vms["Web01"].nics]
        assert got == [
            ("Network Adapter", "vSwitch-Prod", 10),
            ("Network Adapter (2)", "vSwitch-Backup", 20),
        ]

    def test_custom_primary_adapter_name_is_restored(self, tmp_path):
        nics = [NicDescriptor("Prod", "vSwitch-Prod", "00155D010203", vlan_id=10)]
        provider = FakeResourceProvider([make_vm(nics=nics)])

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        ops = provider.ops()
        assert ops.index("rename_nic") < ops.index("set_nic_vlan")
        nic = provider.vms["Web01"].nics[0]
        assert (nic.name, nic.vlan_id, nic.mac_address) == ("Prod", 10, "00155D010203")

    def test_mac_failure_is_only_a_warning(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["set_nic_mac"] = PowerShellError(msg="MAC in use")

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert any("static MAC" in m for m in _messages(result))

    def test_secure_boot_falls_back_to_disabled(self, tmp_path):
        class NoTemplateProvider(FakeResourceProvider):
            def set_secure_boot(self, name, template):
                if template:
                    self._call("set_secure_boot", name, template)
                    raise PowerShellError(msg="template not found")
                super().set_secure_boot(name, template)

        provider = NoTemplateProvider([make_vm()])
        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert provider.secure_boot["Web01"] is None
        assert any("secure boot disabled" in m for m in _messages(result))

    def test_dynamic_memory_only_when_originally_enabled(self, tmp_path):
        static = FakeResourceProvider([make_vm()])
        _converter(static).convert(_job(tmp_path))
        assert "set_dynamic_memory" not in static.ops()

        dynamic = FakeResourceProvider([make_vm(dynamic_memory=True)])
        _converter(dynamic).convert(_job(tmp_path / "dyn"))
        assert "set_dynamic_memory" in dynamic.ops()

    def test_notes_keep_original_text(self, tmp_path):
        provider = FakeResourceProvider([make_vm(notes="Owner: web team")])
        _converter(provider).convert(_job(tmp_path))

        notes = provider.vms["Web01"].notes
        assert notes.startswith("Owner: web team")
        assert "Converted from generation 1 to generation 2" in notes

    def test_tpm_can_be_disabled(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        _converter(provider, enable_tpm=False).convert(_job(tmp_path))
        assert "enable_tpm" not in provider.ops()


@pytest.mark.unit
class TestClusterAndStart:
    def test_cluster_role_removed_and_restored(self, tmp_path):
        vm = make_vm(cluster=ClusterMembership("Web01", "HV01", "Offline"))
        provider = FakeResourceProvider([vm])

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        ops = provider.ops()
        assert ops.index("remove_cluster_role") < ops.index("remove_vm")
        assert ops.index("add_cluster_role") > ops.index("new_vm")
        assert "Web01" in provider.cluster_roles

    def test_cluster_rejoin_failure_gives_guidance(self, tmp_path):
        vm = make_vm(cluster=ClusterMembership("Web01", "HV01", "Offline"))
        provider = FakeResourceProvider([vm])
        provider.failures["add_cluster_role"] = PowerShellError(msg="node not reachable")

        result = _converter(provider).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        rejoin = [w for w in result.warnings if w.stage == ConversionStage.CLUSTER_REJOINED]
        assert "Add-ClusterVirtualMachineRole" in rejoin[0].guidance

    def test_heartbeat_timeout_is_a_warning(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.heartbeats["Web01"] = ["NoContact"]
        clock = FakeClock()

        result = _converter(provider, clock=clock, skip_registry=True).convert(_job(tmp_path, skip_registry=True))

        assert result.status == JobStatus.SUCCESS
        assert any("heartbeat" in m for m in _messages(result))
        assert clock.sleeps == [10.0] * 30
        assert result.duration_s == clock.now

    def test_heartbeat_becomes_healthy(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.heartbeats["Web01"] = [None, "NoContact", "OkApplicationsUnknown"]
        clock = FakeClock()

        result = _converter(provider, clock=clock, skip_registry=True).convert(_job(tmp_path, skip_registry=True))

        assert result.status == JobStatus.SUCCESS
        assert result.warnings == []
        assert clock.sleeps == [10.0, 10.0]


@pytest.mark.unit
class TestRegistry:
    def test_skip_registry_never_touches_arc(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01")})

        result = _converter(provider, registry).convert(_job(tmp_path, skip_registry=True))

        assert result.status == JobStatus.SUCCESS
        assert registry.calls == []

    def test_absent_binding_is_a_warning(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({}, reappear_after=None)

        result = _converter(provider, registry, registry_timeout_s=60).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert any("No registry binding found" in m for m in _messages(result))
        assert registry.deleted == []

    def test_lookup_error_is_a_warning(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01")})
        registry.failures["find_binding"] = AzureCLIError(msg="az failed: throttled")

        result = _converter(provider, registry, registry_timeout_s=60).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert any("Registry lookup failed" in m for m in _messages(result))
        assert registry.deleted == []

    def test_delete_failure_does_not_stop_conversion(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01")})
        registry.failures["delete_binding"] = AzureCLIError(msg="forbidden")

        result = _converter(provider, registry).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert provider.vms["Web01"].generation == 2
        assert any("deletion failed" in m for m in _messages(result))

    def test_undeleted_binding_is_not_taken_for_reregistration(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01", env="prod")}, reappear_after=None)
        registry.failures["delete_binding"] = AzureCLIError(msg="forbidden")
        clock = FakeClock()

        result = _converter(provider, registry, clock=clock).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        recon = [w for w in result.warnings if w.stage == ConversionStage.REGISTRY_RECONCILED]
        assert len(recon) == 1
        assert "Stale registry binding" in recon[0].message
        assert "azcmagent connect" in recon[0].guidance
        assert registry.tagged == []
        assert [c[0] for c in registry.calls].count("find_binding") == 1
        assert clock.sleeps == []

    def test_same_machine_still_listed_is_not_reconciled(self, tmp_path):
        class SlowDeleteRegistry(FakeRegistry):
            # Delete accepted but the old resource keeps showing up.
            def delete_binding(self, binding):
                self._call("delete_binding", binding.name)
                self.deleted.append(binding.name)

        provider = FakeResourceProvider([make_vm()])
        registry = SlowDeleteRegistry({"Web01": arc_binding("Web01", env="prod")})
        clock = FakeClock()

        result = _converter(provider, registry, clock=clock, registry_timeout_s=60).convert(_job(tmp_path))

        assert result.status == JobStatus.SUCCESS
        assert registry.deleted == ["Web01"]
        assert registry.tagged == []
        assert clock.sleeps == [30.0, 30.0]
        assert any("No registry binding for Web01 within 60s" in m for m in _messages(result))

    def test_tags_not_applied_when_none_captured(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        registry = FakeRegistry({"Web01": arc_binding("Web01")})

        result = _converter(provider, registry).convert(_job(tmp_path))

        assert result.stage == ConversionStage.COMPLETED
        assert registry.tagged == []


@pytest.mark.unit
class TestArtifacts:
    def test_captured_config_and_result_files(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        result = _converter(provider).convert(_job(tmp_path))

        captured = json.loads((tmp_path / "Web01" / "captured-config.json").read_text(encoding="utf-8"))
        assert captured["vm"]["Name"] == "Web01"
        assert captured["vm"]["Generation"] == 1
        assert captured["disks"][0]["Path"] == BOOT_VHD

        written = json.loads((tmp_path / "Web01" / "conversion-result.json").read_text(encoding="utf-8"))
        assert written["status"] == "SUCCESS"
        assert written["captured_config"] == result.captured_config
        assert written["point_of_no_return_passed"] is True

    def test_failed_result_records_stage(self, tmp_path):
        provider = FakeResourceProvider([make_vm()])
        provider.failures["new_vm"] = PowerShellError(msg="boom")
        _converter(provider).convert(_job(tmp_path))

        written = json.loads((tmp_path / "Web01" / "conversion-result.json").read_text(encoding="utf-8"))
        assert written["status"] == "FAILED"
        assert written["stage"] == "SOURCE_REMOVED"
