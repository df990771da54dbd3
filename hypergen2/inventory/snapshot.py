# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/inventory/snapshot.py
"""
Configuration snapshots.

A snapshot is a timestamped directory:

    <root>/<YYYYmmdd-HHMMSS>/inventory.csv        one row per VM
    <root>/<YYYYmmdd-HHMMSS>/vms/<name>.json      full per-VM record

The per-VM file has three top-level groups (`vm`, `disks`, `nics`) using the
same PascalCase keys Hyper-V cmdlets emit, so the PowerShell provider and the
snapshot reader share one decoder.
"""

from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..core.exceptions import Fatal
from ..core.file_ops import atomic_write_text
from ..core.utils import U
from ..hyperv.models import (
    ClusterMembership,
    ControllerType,
    DiskDescriptor,
    DiskFormat,
    MemoryPolicy,
    NicDescriptor,
    PowerState,
    VmRecord,
)

INVENTORY_FILE = "inventory.csv"
VMS_DIR = "vms"

INVENTORY_COLUMNS = [
    "name",
    "id",
    "generation",
    "state",
    "host",
    "memory_startup_bytes",
    "processor_count",
    "dynamic_memory",
    "disk_paths",
    "nic_switches",
    "checkpoint_exists",
]

_TS_DIR_RE = re.compile(r"^\d{8}-\d{6}$")
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def _as_list(v: Any) -> List[Any]:
    # ConvertTo-Json collapses one-element arrays into a bare object.
    if v is None:
        return []
    if isinstance(v, list):
        return v
    return [v]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _as_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def _none_if_blank(v: Any) -> Optional[str]:
    s = "" if v is None else str(v).strip()
    return s or None


def safe_filename(name: str) -> str:
    return _UNSAFE_RE.sub("_", name.strip()) or "_"


# ---------------------------------------------------------------------------
# Record <-> snapshot dict
# ---------------------------------------------------------------------------

def disk_from_dict(d: Dict[str, Any]) -> DiskDescriptor:
    path = str(d.get("Path") or "")
    return DiskDescriptor(
        controller_type=ControllerType.parse(d.get("ControllerType")),
        controller_number=_as_int(d.get("ControllerNumber")),
        controller_location=_as_int(d.get("ControllerLocation")),
        path=path,
        format=DiskFormat.parse(d.get("VhdFormat"), path),
        size_bytes=_as_int(d.get("Size")),
    )


def nic_from_dict(d: Dict[str, Any]) -> NicDescriptor:
    dynamic = _as_bool(d.get("DynamicMacAddressEnabled", True))
    return NicDescriptor(
        name=str(d.get("Name") or "Network Adapter"),
        switch_name=_none_if_blank(d.get("SwitchName")),
        mac_address=None if dynamic else _none_if_blank(d.get("MacAddress")),
        vlan_id=_as_int(d.get("VlanId")),
        is_legacy=_as_bool(d.get("IsLegacy", False)),
        ip_addresses=[str(x) for x in _as_list(d.get("IPAddresses"))],
    )


def record_from_dict(data: Dict[str, Any]) -> VmRecord:
    vm = data.get("vm") or {}
    cl = vm.get("Cluster")
    cluster = None
    if isinstance(cl, dict) and cl.get("GroupName"):
        cluster = ClusterMembership(
            group_name=str(cl.get("GroupName")),
            owner_node=str(cl.get("OwnerNode") or ""),
            state=str(cl.get("State") or ""),
        )
    return VmRecord(
        name=str(vm.get("Name") or ""),
        vm_id=str(vm.get("Id") or ""),
        generation=_as_int(vm.get("Generation"), default=0),
        state=PowerState.parse(vm.get("State")),
        host=str(vm.get("Host") or ""),
        processor_count=_as_int(vm.get("ProcessorCount"), default=1),
        memory=MemoryPolicy(
            startup_bytes=_as_int(vm.get("MemoryStartup")),
            minimum_bytes=_as_int(vm.get("MemoryMinimum")),
            maximum_bytes=_as_int(vm.get("MemoryMaximum")),
            dynamic=_as_bool(vm.get("DynamicMemoryEnabled", False)),
        ),
        disks=[disk_from_dict(x) for x in _as_list(data.get("disks"))],
        nics=[nic_from_dict(x) for x in _as_list(data.get("nics"))],
        automatic_start_action=str(vm.get("AutomaticStartAction") or ""),
        automatic_stop_action=str(vm.get("AutomaticStopAction") or ""),
        automatic_start_delay=_as_int(vm.get("AutomaticStartDelay")),
        notes=str(vm.get("Notes") or ""),
        checkpoint_count=_as_int(vm.get("CheckpointCount")),
        cluster=cluster,
    )


def record_to_dict(rec: VmRecord) -> Dict[str, Any]:
    vm: Dict[str, Any] = {
        "Name": rec.name,
        "Id": rec.vm_id,
        "Generation": rec.generation,
        "Host": rec.host,
        "State": rec.state.value,
        "ProcessorCount": rec.processor_count,
        "MemoryStartup": rec.memory.startup_bytes,
        "MemoryMinimum": rec.memory.minimum_bytes,
        "MemoryMaximum": rec.memory.maximum_bytes,
        "DynamicMemoryEnabled": rec.memory.dynamic,
        "AutomaticStartAction": rec.automatic_start_action,
        "AutomaticStopAction": rec.automatic_stop_action,
        "AutomaticStartDelay": rec.automatic_start_delay,
        "Notes": rec.notes,
        "CheckpointCount": rec.checkpoint_count,
        "Cluster": None,
    }
    if rec.cluster is not None:
        vm["Cluster"] = {
            "GroupName": rec.cluster.group_name,
            "OwnerNode": rec.cluster.owner_node,
            "State": rec.cluster.state,
        }
    return {
        "vm": vm,
        "disks": [
            {
                "ControllerType": d.controller_type.value,
                "ControllerNumber": d.controller_number,
                "ControllerLocation": d.controller_location,
                "Path": d.path,
                "VhdFormat": d.format.value,
                "Size": d.size_bytes,
            }
            for d in rec.disks
        ],
        "nics": [
            {
                "Name": n.name,
                "SwitchName": n.switch_name,
                "MacAddress": n.mac_address,
                "DynamicMacAddressEnabled": n.mac_address is None,
                "VlanId": n.vlan_id,
                "IsLegacy": n.is_legacy,
                "IPAddresses": list(n.ip_addresses),
            }
            for n in rec.nics
        ],
    }


def write_record(path: Path, rec: VmRecord) -> Path:
    return atomic_write_text(path, json.dumps(record_to_dict(rec), indent=2, sort_keys=False) + "\n")


def read_record(path: Path) -> VmRecord:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise Fatal(2, f"Cannot read VM configuration file {path}: {e}", cause=e) from e
    if not isinstance(data, dict) or "vm" not in data:
        raise Fatal(2, f"VM configuration file {path} has no `vm` group")
    return record_from_dict(data)


# ---------------------------------------------------------------------------
# Inventory CSV
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InventoryRow:
    name: str
    vm_id: str
    generation: int
    state: str
    host: str
    memory_startup_bytes: int
    processor_count: int
    dynamic_memory: bool
    disk_paths: List[str]
    nic_switches: List[str]
    checkpoint_exists: bool

    @classmethod
    def from_record(cls, rec: VmRecord) -> "InventoryRow":
        return cls(
            name=rec.name,
            vm_id=rec.vm_id,
            generation=rec.generation,
            state=rec.state.value,
            host=rec.host,
            memory_startup_bytes=rec.memory.startup_bytes,
            processor_count=rec.processor_count,
            dynamic_memory=rec.memory.dynamic,
            disk_paths=[d.path for d in rec.disks],
            nic_switches=[n.switch_name or "" for n in rec.nics],
            checkpoint_exists=rec.checkpoint_count > 0,
        )

    def to_csv_row(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "id": self.vm_id,
            "generation": str(self.generation),
            "state": self.state,
            "host": self.host,
            "memory_startup_bytes": str(self.memory_startup_bytes),
            "processor_count": str(self.processor_count),
            "dynamic_memory": str(self.dynamic_memory),
            "disk_paths": ";".join(self.disk_paths),
            "nic_switches": ";".join(self.nic_switches),
            "checkpoint_exists": str(self.checkpoint_exists),
        }

    @classmethod
    def from_csv_row(cls, row: Dict[str, str]) -> "InventoryRow":
        def _split(v: Optional[str]) -> List[str]:
            return [x for x in (v or "").split(";") if x]

        return cls(
            name=(row.get("name") or "").strip(),
            vm_id=(row.get("id") or "").strip(),
            generation=_as_int(row.get("generation")),
            state=(row.get("state") or "").strip(),
            host=(row.get("host") or "").strip(),
            memory_startup_bytes=_as_int(row.get("memory_startup_bytes")),
            processor_count=_as_int(row.get("processor_count")),
            dynamic_memory=_as_bool(row.get("dynamic_memory")),
            disk_paths=_split(row.get("disk_paths")),
            nic_switches=_split(row.get("nic_switches")),
            checkpoint_exists=_as_bool(row.get("checkpoint_exists")),
        )


def render_inventory_csv(rows: Iterable[InventoryRow]) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=INVENTORY_COLUMNS, lineterminator="\n")
    w.writeheader()
    for r in rows:
        w.writerow(r.to_csv_row())
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Snapshot directories
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Snapshot:
    path: Path

    @property
    def stamp(self) -> str:
        return self.path.name

    @property
    def inventory_path(self) -> Path:
        return self.path / INVENTORY_FILE

    def config_path(self, vm_name: str) -> Path:
        return self.path / VMS_DIR / f"{safe_filename(vm_name)}.json"

    def has_config(self, vm_name: str) -> bool:
        return self.config_path(vm_name).is_file()

    def load_record(self, vm_name: str) -> VmRecord:
        return read_record(self.config_path(vm_name))

    def rows(self) -> List[InventoryRow]:
        try:
            with open(self.inventory_path, "r", encoding="utf-8", newline="") as f:
                return [InventoryRow.from_csv_row(r) for r in csv.DictReader(f) if (r.get("name") or "").strip()]
        except OSError as e:
            raise Fatal(2, f"Cannot read inventory {self.inventory_path}: {e}", cause=e) from e


class SnapshotStore:
    """
    Snapshot directories under one root. Directory names are timestamps, so
    the lexically greatest one is the most recent.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def list(self) -> List[Snapshot]:
        if not self.root.is_dir():
            return []
        out = [
            Snapshot(p)
            for p in self.root.iterdir()
            if p.is_dir() and _TS_DIR_RE.match(p.name) and (p / INVENTORY_FILE).is_file()
        ]
        return sorted(out, key=lambda s: s.stamp)

    def latest(self) -> Snapshot:
        snaps = self.list()
        if not snaps:
            raise Fatal(2, f"No configuration snapshot found under {self.root} (run cmd=inventory first)")
        return snaps[-1]

    def write(self, records: Iterable[VmRecord], *, stamp: Optional[str] = None) -> Snapshot:
        snap = Snapshot(self.root / (stamp or U.now_ts()))
        U.ensure_dir(snap.path / VMS_DIR)
        rows: List[InventoryRow] = []
        for rec in records:
            write_record(snap.config_path(rec.name), rec)
            rows.append(InventoryRow.from_record(rec))
        atomic_write_text(snap.inventory_path, render_inventory_csv(rows))
        return snap
