# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest

from hypergen2.hyperv.models import (
    ControllerType,
    DiskDescriptor,
    DiskFormat,
    MemoryPolicy,
    NicDescriptor,
    PowerState,
    VmRecord,
    plan_adapter_names,
    plan_data_disk_slots,
    primary_nic,
    select_boot_disk,
)
from hypergen2.hyperv.provider import heartbeat_is_healthy


def _disk(ct, n, loc, path="C:\\VMs\\d.vhdx"):
    return DiskDescriptor(ControllerType(ct), n, loc, path)


@pytest.mark.unit
class TestParsing:
    @pytest.mark.parametrize("raw,expected", [("Off", PowerState.OFF), ("running", PowerState.RUNNING), ("Weird", PowerState.OTHER), (None, PowerState.OTHER)])
    def test_power_state(self, raw, expected):
        assert PowerState.parse(raw) is expected

    def test_controller_type(self):
        assert ControllerType.parse("scsi") is ControllerType.SCSI
        with pytest.raises(ValueError):
            ControllerType.parse("SATA")

    def test_disk_format_falls_back_to_extension(self):
        assert DiskFormat.parse("vhdx") is DiskFormat.VHDX
        assert DiskFormat.parse(None, "C:\\a.VHD") is DiskFormat.VHD
        assert DiskFormat.parse("", "C:\\a.vhdx") is DiskFormat.VHDX
        assert DiskFormat.VHD.is_legacy and not DiskFormat.VHDX.is_legacy


@pytest.mark.unit
class TestVmRecord:
    def test_rejects_bad_generation(self):
        with pytest.raises(ValueError, match="generation"):
            VmRecord("x", "id", 3, PowerState.OFF, 1, MemoryPolicy(1024))

    def test_rejects_duplicate_controller_address(self):
        disks = [_disk("IDE", 0, 0, "C:\\a.vhd"), _disk("IDE", 0, 0, "C:\\b.vhd")]
        with pytest.raises(ValueError, match="IDE 0:0"):
            VmRecord("x", "id", 1, PowerState.OFF, 1, MemoryPolicy(1024), disks=disks)

    def test_disk_helpers(self):
        d = DiskDescriptor(ControllerType.IDE, 1, 0, "C:\\VMs\\Web01\\data.vhd", DiskFormat.VHD)
        assert d.filename == "data.vhd"
        assert d.label() == "IDE 1:0"
        up = d.upgraded("C:\\VMs\\Web01\\data.vhdx")
        assert up.format is DiskFormat.VHDX and up.address == d.address


@pytest.mark.unit
class TestBootDiskSelection:
    def test_lowest_ide_address_wins(self):
        disks = [_disk("SCSI", 0, 0), _disk("IDE", 1, 0), _disk("IDE", 0, 1)]
        boot, ambiguous = select_boot_disk(disks)
        assert boot.address == ("IDE", 0, 1)
        assert ambiguous is False

    @pytest.mark.parametrize("order", [(0, 1, 2), (2, 1, 0), (1, 2, 0)])
    def test_enumeration_order_does_not_matter(self, order):
        disks = [_disk("IDE", 1, 1), _disk("IDE", 0, 0), _disk("SCSI", 0, 0)]
        boot, _ = select_boot_disk([disks[i] for i in order])
        assert boot.address == ("IDE", 0, 0)

    def test_no_ide_is_ambiguous(self):
        disks = [_disk("SCSI", 0, 3), _disk("SCSI", 0, 0)]
        boot, ambiguous = select_boot_disk(disks)
        assert boot.address == ("SCSI", 0, 3)
        assert ambiguous is True

    def test_no_disks(self):
        with pytest.raises(ValueError):
            select_boot_disk([])


@pytest.mark.unit
class TestDataDiskPlan:
    def test_boot_excluded_and_ordered(self):
        boot = _disk("IDE", 0, 0)
        disks = [_disk("SCSI", 0, 0), boot, _disk("IDE", 1, 1), _disk("IDE", 0, 1)]
        plan = [(d.address, c, loc) for d, c, loc in plan_data_disk_slots(disks, boot)]
        assert plan == [
            (("IDE", 0, 1), 0, 1),
            (("IDE", 1, 1), 0, 2),
            (("SCSI", 0, 0), 0, 3),
        ]

    def test_spills_to_next_controller(self):
        boot = _disk("IDE", 0, 0)
        disks = [boot] + [_disk("SCSI", 0, i) for i in range(4)]
        slots = [(c, loc) for _, c, loc in plan_data_disk_slots(disks, boot, per_controller=3)]
        assert slots == [(0, 1), (0, 2), (1, 0), (1, 1)]


@pytest.mark.unit
class TestNicsAndHeartbeat:
    def test_primary_nic_skips_legacy(self):
        nics = [NicDescriptor("Legacy", is_legacy=True), NicDescriptor("Network Adapter", "sw")]
        assert primary_nic(nics).name == "Network Adapter"
        assert primary_nic([NicDescriptor("Legacy", is_legacy=True)]) is None

    def test_adapter_names_are_unique(self):
        nics = [
            NicDescriptor("Network Adapter", "a"),
            NicDescriptor("Legacy Network Adapter", is_legacy=True),
            NicDescriptor("network adapter", "b"),
            NicDescriptor("Network Adapter", "c"),
            NicDescriptor("", "d"),
        ]
        names = [name for _, name in plan_adapter_names(nics)]
        assert names == ["Network Adapter", "network adapter (2)", "Network Adapter (3)", "Network Adapter (4)"]

    def test_static_mac(self):
        assert NicDescriptor("n", mac_address="00155D000001").has_static_mac
        assert not NicDescriptor("n").has_static_mac

    @pytest.mark.parametrize(
        "status,healthy",
        [("OkApplicationsHealthy", True), ("OkApplicationsUnknown", True), ("NoContact", False), ("LostCommunication", False), (None, False), ("", False)],
    )
    def test_heartbeat(self, status, healthy):
        assert heartbeat_is_healthy(status) is healthy
