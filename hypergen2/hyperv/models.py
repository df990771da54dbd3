# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/hyperv/models.py

from __future__ import annotations

import ntpath
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Name New-VM and Add-VMNetworkAdapter give an adapter when none is passed.
DEFAULT_ADAPTER_NAME = "Network Adapter"


class PowerState(str, Enum):
    OFF = "Off"
    RUNNING = "Running"
    SAVED = "Saved"
    PAUSED = "Paused"
    STARTING = "Starting"
    STOPPING = "Stopping"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: Any) -> "PowerState":
        s = str(raw or "").strip().lower()
        for m in cls:
            if m.value.lower() == s:
                return m
        return cls.OTHER


class ControllerType(str, Enum):
    IDE = "IDE"
    SCSI = "SCSI"

    @classmethod
    def parse(cls, raw: Any) -> "ControllerType":
        s = str(raw or "").strip().upper()
        if s == "IDE":
            return cls.IDE
        if s == "SCSI":
            return cls.SCSI
        raise ValueError(f"unknown controller type: {raw!r}")


class DiskFormat(str, Enum):
    VHD = "VHD"     # legacy container
    VHDX = "VHDX"   # modern container

    @classmethod
    def parse(cls, raw: Any, path: str = "") -> "DiskFormat":
        s = str(raw or "").strip().upper()
        if s in ("VHD", "VHDX"):
            return cls(s)
        # Format not reported: fall back to the file extension.
        return cls.VHDX if str(path).lower().endswith(".vhdx") else cls.VHD

    @property
    def is_legacy(self) -> bool:
        return self is DiskFormat.VHD


@dataclass(frozen=True)
class DiskDescriptor:
    controller_type: ControllerType
    controller_number: int
    controller_location: int
    path: str
    format: DiskFormat = DiskFormat.VHDX
    size_bytes: int = 0

    @property
    def address(self) -> Tuple[str, int, int]:
        return (self.controller_type.value, self.controller_number, self.controller_location)

    @property
    def filename(self) -> str:
        # Host paths are Windows paths; ntpath also splits on "/".
        return ntpath.basename(self.path)

    def label(self) -> str:
        return f"{self.controller_type.value} {self.controller_number}:{self.controller_location}"

    def upgraded(self, new_path: str) -> "DiskDescriptor":
        return replace(self, path=new_path, format=DiskFormat.VHDX)


@dataclass(frozen=True)
class NicDescriptor:
    name: str
    switch_name: Optional[str] = None
    mac_address: Optional[str] = None  # None => dynamic MAC
    vlan_id: int = 0                   # 0 => untagged
    is_legacy: bool = False
    ip_addresses: List[str] = field(default_factory=list)

    @property
    def has_static_mac(self) -> bool:
        return bool(self.mac_address)


@dataclass(frozen=True)
class MemoryPolicy:
    startup_bytes: int
    minimum_bytes: int = 0
    maximum_bytes: int = 0
    dynamic: bool = False


@dataclass(frozen=True)
class ClusterMembership:
    group_name: str
    owner_node: str = ""
    state: str = ""


@dataclass
class VmRecord:
    name: str
    vm_id: str
    generation: int
    state: PowerState
    processor_count: int
    memory: MemoryPolicy
    host: str = ""
    disks: List[DiskDescriptor] = field(default_factory=list)
    nics: List[NicDescriptor] = field(default_factory=list)
    automatic_start_action: str = ""
    automatic_stop_action: str = ""
    automatic_start_delay: int = 0
    notes: str = ""
    checkpoint_count: int = 0
    cluster: Optional[ClusterMembership] = None

    def __post_init__(self) -> None:
        if self.generation not in (1, 2):
            raise ValueError(f"{self.name}: generation must be 1 or 2, got {self.generation!r}")
        seen: Dict[Tuple[str, int, int], str] = {}
        for d in self.disks:
            if d.address in seen:
                raise ValueError(
                    f"{self.name}: controller address {d.label()} used by both {seen[d.address]} and {d.path}"
                )
            seen[d.address] = d.path

    @property
    def is_off(self) -> bool:
        return self.state is PowerState.OFF

    @property
    def is_clustered(self) -> bool:
        return self.cluster is not None


def select_boot_disk(disks: List[DiskDescriptor]) -> Tuple[DiskDescriptor, bool]:
    """
    Pick the boot disk: the disk on the lowest IDE (controller, location)
    address. Without any IDE attachment the first disk in enumeration order
    is used and the second value is True (ambiguous choice).
    """
    if not disks:
        raise ValueError("VM has no disks")

    ide = [d for d in disks if d.controller_type is ControllerType.IDE]
    if ide:
        return min(ide, key=lambda d: (d.controller_number, d.controller_location)), False
    return disks[0], True


def primary_nic(nics: List[NicDescriptor]) -> Optional[NicDescriptor]:
    """First non-legacy adapter, or None when every adapter is legacy."""
    for n in nics:
        if not n.is_legacy:
            return n
    return None


def plan_adapter_names(nics: List[NicDescriptor]) -> List[Tuple[NicDescriptor, str]]:
    """
    Name every non-legacy adapter for the new VM, primary first. Hyper-V
    calls each new adapter "Network Adapter", so names repeated on the
    source VM get a " (2)", " (3)" ... suffix. Adapter names are matched
    case-insensitively by the cmdlets.
    """
    seen: set = set()
    plan: List[Tuple[NicDescriptor, str]] = []
    for n in nics:
        if n.is_legacy:
            continue
        base = n.name or DEFAULT_ADAPTER_NAME
        candidate, i = base, 1
        while candidate.lower() in seen:
            i += 1
            candidate = f"{base} ({i})"
        seen.add(candidate.lower())
        plan.append((n, candidate))
    return plan


def _address_sort_key(d: DiskDescriptor) -> Tuple[int, int, int]:
    order = 0 if d.controller_type is ControllerType.IDE else 1
    return (order, d.controller_number, d.controller_location)


def plan_data_disk_slots(
    disks: List[DiskDescriptor], boot: DiskDescriptor, *, per_controller: int = 64
) -> List[Tuple[DiskDescriptor, int, int]]:
    """
    Map every non-boot disk to a SCSI (controller, location) slot on the new
    VM. Slot 0 on controller 0 holds the boot disk; data disks follow in
    ascending original address order.
    """
    others = sorted((d for d in disks if d.address != boot.address), key=_address_sort_key)
    plan: List[Tuple[DiskDescriptor, int, int]] = []
    for i, d in enumerate(others, start=1):
        plan.append((d, i // per_controller, i % per_controller))
    return plan
