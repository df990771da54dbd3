# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/hyperv/provider.py
"""
Resource provider facade: the Hyper-V and failover-cluster surface the
converter depends on.

`ResourceProvider` is the contract; `PowerShellResourceProvider` implements it
with Hyper-V / FailoverClusters cmdlets executed through `run_ps_json`.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional

from ..inventory.snapshot import record_from_dict
from .exceptions import HyperVError
from .models import DEFAULT_ADAPTER_NAME, ClusterMembership, MemoryPolicy, NicDescriptor, VmRecord
from .powershell import find_shell, ps_bool, ps_quote, run_ps_json

# Operations that change host state. Everything else is a read.
MUTATING_OPERATIONS = frozenset(
    {
        "convert_disk",
        "copy_file",
        "remove_vm",
        "new_vm",
        "set_processor_count",
        "set_dynamic_memory",
        "set_secure_boot",
        "add_disk",
        "set_nic_vlan",
        "set_nic_mac",
        "rename_nic",
        "add_nic",
        "set_automatic_actions",
        "set_notes",
        "enable_tpm",
        "start_vm",
        "remove_cluster_role",
        "add_cluster_role",
    }
)

# The adapter New-VM creates from -SwitchName.
PRIMARY_ADAPTER_NAME = DEFAULT_ADAPTER_NAME


def heartbeat_is_healthy(status: Optional[str]) -> bool:
    """Hyper-V heartbeat values: OkApplicationsHealthy, OkApplicationsUnknown, NoContact, LostCommunication, ..."""
    return bool(status) and str(status).strip().lower().startswith("ok")


class ResourceProvider(abc.ABC):
    # --- reads -------------------------------------------------------------

    @abc.abstractmethod
    def get_vm(self, name: str) -> Optional[VmRecord]:
        """Live record for `name`, or None when no such VM exists."""

    @abc.abstractmethod
    def list_vms(self) -> List[VmRecord]: ...

    @abc.abstractmethod
    def count_checkpoints(self, name: str) -> int: ...

    @abc.abstractmethod
    def get_cluster_membership(self, name: str) -> Optional[ClusterMembership]: ...

    @abc.abstractmethod
    def get_heartbeat(self, name: str) -> Optional[str]: ...

    @abc.abstractmethod
    def path_exists(self, path: str) -> bool: ...

    # --- storage -----------------------------------------------------------

    @abc.abstractmethod
    def convert_disk(self, source_path: str, destination_path: str) -> None:
        """Write a VHDX copy of `source_path`; the source file is kept."""

    @abc.abstractmethod
    def copy_file(self, source_path: str, destination_path: str) -> None: ...

    # --- VM lifecycle --------------------------------------------------------

    @abc.abstractmethod
    def remove_vm(self, name: str) -> None:
        """Remove the VM definition; disk files stay on storage."""

    @abc.abstractmethod
    def new_vm(
        self,
        name: str,
        *,
        generation: int,
        memory_startup_bytes: int,
        boot_disk_path: str,
        switch_name: Optional[str],
    ) -> str:
        """Create the VM and return its new id."""

    @abc.abstractmethod
    def set_processor_count(self, name: str, count: int) -> None: ...

    @abc.abstractmethod
    def set_dynamic_memory(self, name: str, memory: MemoryPolicy) -> None: ...

    @abc.abstractmethod
    def set_secure_boot(self, name: str, template: Optional[str]) -> None:
        """Enable secure boot with `template`, or disable it when template is None."""

    @abc.abstractmethod
    def add_disk(self, name: str, path: str, *, controller_number: int, controller_location: int) -> None: ...

    @abc.abstractmethod
    def set_nic_vlan(self, name: str, adapter_name: str, vlan_id: int) -> None: ...

    @abc.abstractmethod
    def set_nic_mac(self, name: str, adapter_name: str, mac_address: str) -> None: ...

    @abc.abstractmethod
    def rename_nic(self, name: str, adapter_name: str, new_name: str) -> None: ...

    @abc.abstractmethod
    def add_nic(self, name: str, nic: NicDescriptor, *, adapter_name: Optional[str] = None) -> None:
        """Attach `nic` as a new adapter called `adapter_name` (default: its own name), VLAN included."""

    @abc.abstractmethod
    def set_automatic_actions(self, name: str, *, start_action: str, stop_action: str, start_delay: int) -> None: ...

    @abc.abstractmethod
    def set_notes(self, name: str, notes: str) -> None: ...

    @abc.abstractmethod
    def enable_tpm(self, name: str) -> None: ...

    @abc.abstractmethod
    def start_vm(self, name: str) -> None: ...

    # --- cluster -------------------------------------------------------------

    @abc.abstractmethod
    def remove_cluster_role(self, name: str) -> None: ...

    @abc.abstractmethod
    def add_cluster_role(self, name: str) -> None: ...


# PowerShell fragment that renders one VM in snapshot-file shape.
_VM_RECORD_PS = r"""
function ConvertTo-H2Record($vm) {
  $disks = @(Get-VMHardDiskDrive -VM $vm | ForEach-Object {
    $fmt = $null; $size = 0
    if ($_.Path) { try { $vhd = Get-VHD -Path $_.Path -ComputerName $vm.ComputerName; $fmt = $vhd.VhdFormat.ToString(); $size = $vhd.Size } catch { } }
    [pscustomobject]@{ ControllerType = $_.ControllerType.ToString(); ControllerNumber = $_.ControllerNumber;
      ControllerLocation = $_.ControllerLocation; Path = $_.Path; VhdFormat = $fmt; Size = $size }
  } | Where-Object { $_.Path })
  $nics = @(Get-VMNetworkAdapter -VM $vm | ForEach-Object {
    $vlan = Get-VMNetworkAdapterVlan -VMNetworkAdapter $_
    [pscustomobject]@{ Name = $_.Name; SwitchName = $_.SwitchName; MacAddress = $_.MacAddress;
      DynamicMacAddressEnabled = $_.DynamicMacAddressEnabled; VlanId = [int]$vlan.AccessVlanId;
      IsLegacy = $_.IsLegacy; IPAddresses = @($_.IPAddresses) }
  })
  $cluster = $null
  if ($vm.IsClustered) {
    $g = Get-ClusterGroup -Name $vm.Name -ErrorAction SilentlyContinue
    if ($g) { $cluster = [pscustomobject]@{ GroupName = $g.Name; OwnerNode = $g.OwnerNode.Name; State = $g.State.ToString() } }
  }
  [pscustomobject]@{
    vm = [pscustomobject]@{ Name = $vm.Name; Id = $vm.Id.ToString(); Generation = $vm.Generation; Host = $vm.ComputerName;
      State = $vm.State.ToString(); ProcessorCount = $vm.ProcessorCount; MemoryStartup = $vm.MemoryStartup;
      MemoryMinimum = $vm.MemoryMinimum; MemoryMaximum = $vm.MemoryMaximum; DynamicMemoryEnabled = $vm.DynamicMemoryEnabled;
      AutomaticStartAction = $vm.AutomaticStartAction.ToString(); AutomaticStopAction = $vm.AutomaticStopAction.ToString();
      AutomaticStartDelay = $vm.AutomaticStartDelay; Notes = $vm.Notes;
      CheckpointCount = @(Get-VMSnapshot -VM $vm).Count; Cluster = $cluster }
    disks = $disks
    nics = $nics
  }
}
"""


class PowerShellResourceProvider(ResourceProvider):
    """
    Hyper-V over PowerShell. `computer_name` targets a remote Hyper-V host;
    None runs against the local host.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        computer_name: Optional[str] = None,
        shell: Optional[str] = None,
        timeout_s: int = 600,
        copy_timeout_s: int = 6 * 3600,
    ):
        self.logger = logger
        self.computer_name = computer_name
        self.shell = find_shell(shell)
        self.timeout_s = timeout_s
        self.copy_timeout_s = copy_timeout_s

    def _target(self) -> str:
        return f" -ComputerName {ps_quote(self.computer_name)}" if self.computer_name else ""

    def _vm(self, name: str) -> str:
        return f"-VMName {ps_quote(name)}{self._target()}"

    def _run(self, script: str, *, timeout_s: Optional[int] = None, retries: int = 3) -> Any:
        return run_ps_json(script, shell=self.shell, timeout_s=timeout_s or self.timeout_s, retries=retries)

    # --- reads -------------------------------------------------------------

    def get_vm(self, name: str) -> Optional[VmRecord]:
        data = self._run(
            _VM_RECORD_PS
            + f"$vm = Get-VM -Name {ps_quote(name)}{self._target()} -ErrorAction SilentlyContinue; "
            "if ($null -ne $vm) { ConvertTo-H2Record $vm }"
        )
        if not data:
            return None
        if isinstance(data, list):
            # Name lookups are wildcard-capable; keep the exact match.
            matches = [d for d in data if str((d.get("vm") or {}).get("Name", "")).lower() == name.lower()]
            if len(matches) != 1:
                raise HyperVError(msg=f"VM name {name!r} is ambiguous ({len(data)} matches)")
            data = matches[0]
        return record_from_dict(data)

    def list_vms(self) -> List[VmRecord]:
        data = self._run(_VM_RECORD_PS + f"Get-VM{self._target()} | ForEach-Object {{ ConvertTo-H2Record $_ }}")
        if not data:
            return []
        items: List[Dict[str, Any]] = data if isinstance(data, list) else [data]
        return [record_from_dict(d) for d in items]

    def count_checkpoints(self, name: str) -> int:
        n = self._run(f"@(Get-VMSnapshot {self._vm(name)}).Count")
        return int(n or 0)

    def get_cluster_membership(self, name: str) -> Optional[ClusterMembership]:
        data = self._run(
            f"$vm = Get-VM -Name {ps_quote(name)}{self._target()}; "
            "if ($vm.IsClustered) { $g = Get-ClusterGroup -Name $vm.Name; "
            "[pscustomobject]@{ GroupName = $g.Name; OwnerNode = $g.OwnerNode.Name; State = $g.State.ToString() } }"
        )
        if not data:
            return None
        return ClusterMembership(
            group_name=str(data.get("GroupName") or name),
            owner_node=str(data.get("OwnerNode") or ""),
            state=str(data.get("State") or ""),
        )

    def get_heartbeat(self, name: str) -> Optional[str]:
        hb = self._run(f"$vm = Get-VM -Name {ps_quote(name)}{self._target()}; if ($vm.Heartbeat) {{ $vm.Heartbeat.ToString() }}", retries=1)
        return str(hb) if hb else None

    def path_exists(self, path: str) -> bool:
        if self.computer_name:
            script = (
                f"Invoke-Command -ComputerName {ps_quote(self.computer_name)} "
                f"-ScriptBlock {{ param($p) Test-Path -LiteralPath $p }} -ArgumentList {ps_quote(path)}"
            )
        else:
            script = f"Test-Path -LiteralPath {ps_quote(path)}"
        return bool(self._run(script))

    # --- storage -----------------------------------------------------------

    def convert_disk(self, source_path: str, destination_path: str) -> None:
        self._run(
            f"Convert-VHD -Path {ps_quote(source_path)} -DestinationPath {ps_quote(destination_path)} "
            f"-VHDType Dynamic{self._target()}",
            timeout_s=self.copy_timeout_s,
            retries=1,
        )

    def copy_file(self, source_path: str, destination_path: str) -> None:
        body = (
            "param($src, $dst) "
            "New-Item -ItemType Directory -Force -Path (Split-Path -Parent $dst) | Out-Null; "
            "Copy-Item -LiteralPath $src -Destination $dst -Force"
        )
        args = f"{ps_quote(source_path)}, {ps_quote(destination_path)}"
        if self.computer_name:
            script = f"Invoke-Command -ComputerName {ps_quote(self.computer_name)} -ScriptBlock {{ {body} }} -ArgumentList {args}"
        else:
            script = f"& {{ {body} }} {ps_quote(source_path)} {ps_quote(destination_path)}"
        self._run(script, timeout_s=self.copy_timeout_s, retries=1)

    # --- VM lifecycle --------------------------------------------------------

    def remove_vm(self, name: str) -> None:
        # Remove-VM never deletes virtual hard disk files.
        self._run(f"Remove-VM -Name {ps_quote(name)}{self._target()} -Force", retries=1)

    def new_vm(
        self,
        name: str,
        *,
        generation: int,
        memory_startup_bytes: int,
        boot_disk_path: str,
        switch_name: Optional[str],
    ) -> str:
        switch = f" -SwitchName {ps_quote(switch_name)}" if switch_name else ""
        vid = self._run(
            f"$vm = New-VM -Name {ps_quote(name)} -Generation {int(generation)} "
            f"-MemoryStartupBytes {int(memory_startup_bytes)} -VHDPath {ps_quote(boot_disk_path)}{switch}{self._target()}; "
            "$vm.Id.ToString()",
            retries=1,
        )
        return str(vid or "")

    def set_processor_count(self, name: str, count: int) -> None:
        self._run(f"Set-VMProcessor {self._vm(name)} -Count {int(count)}")

    def set_dynamic_memory(self, name: str, memory: MemoryPolicy) -> None:
        self._run(
            f"Set-VMMemory {self._vm(name)} -DynamicMemoryEnabled {ps_bool(memory.dynamic)} "
            f"-StartupBytes {int(memory.startup_bytes)} -MinimumBytes {int(memory.minimum_bytes)} "
            f"-MaximumBytes {int(memory.maximum_bytes)}"
        )

    def set_secure_boot(self, name: str, template: Optional[str]) -> None:
        if template:
            self._run(f"Set-VMFirmware {self._vm(name)} -EnableSecureBoot On -SecureBootTemplate {ps_quote(template)}")
        else:
            self._run(f"Set-VMFirmware {self._vm(name)} -EnableSecureBoot Off")

    def add_disk(self, name: str, path: str, *, controller_number: int, controller_location: int) -> None:
        self._run(
            f"Add-VMHardDiskDrive {self._vm(name)} -ControllerType SCSI -ControllerNumber {int(controller_number)} "
            f"-ControllerLocation {int(controller_location)} -Path {ps_quote(path)}"
        )

    def set_nic_vlan(self, name: str, adapter_name: str, vlan_id: int) -> None:
        mode = f"-Access -VlanId {int(vlan_id)}" if vlan_id else "-Untagged"
        self._run(f"Set-VMNetworkAdapterVlan {self._vm(name)} -VMNetworkAdapterName {ps_quote(adapter_name)} {mode}")

    def set_nic_mac(self, name: str, adapter_name: str, mac_address: str) -> None:
        self._run(
            f"Set-VMNetworkAdapter {self._vm(name)} -Name {ps_quote(adapter_name)} -StaticMacAddress {ps_quote(mac_address)}"
        )

    def rename_nic(self, name: str, adapter_name: str, new_name: str) -> None:
        self._run(
            f"Rename-VMNetworkAdapter {self._vm(name)} -Name {ps_quote(adapter_name)} -NewName {ps_quote(new_name)}"
        )

    def add_nic(self, name: str, nic: NicDescriptor, *, adapter_name: Optional[str] = None) -> None:
        switch = f" -SwitchName {ps_quote(nic.switch_name)}" if nic.switch_name else ""
        mac = f" -StaticMacAddress {ps_quote(nic.mac_address)}" if nic.mac_address else ""
        script = f"$a = Add-VMNetworkAdapter {self._vm(name)} -Name {ps_quote(adapter_name or nic.name)}{switch}{mac} -Passthru"
        # VLAN goes through the returned adapter object, never by name.
        if nic.vlan_id:
            script += f"; $a | Set-VMNetworkAdapterVlan -Access -VlanId {int(nic.vlan_id)}"
        self._run(script, retries=1)

    def set_automatic_actions(self, name: str, *, start_action: str, stop_action: str, start_delay: int) -> None:
        parts = [f"Set-VM -Name {ps_quote(name)}{self._target()}"]
        if start_action:
            parts.append(f"-AutomaticStartAction {start_action}")
        if stop_action:
            parts.append(f"-AutomaticStopAction {stop_action}")
        parts.append(f"-AutomaticStartDelay {int(start_delay)}")
        self._run(" ".join(parts))

    def set_notes(self, name: str, notes: str) -> None:
        self._run(f"Set-VM -Name {ps_quote(name)}{self._target()} -Notes {ps_quote(notes)}")

    def enable_tpm(self, name: str) -> None:
        self._run(f"Set-VMKeyProtector {self._vm(name)} -NewLocalKeyProtector; Enable-VMTPM {self._vm(name)}", retries=1)

    def start_vm(self, name: str) -> None:
        self._run(f"Start-VM -Name {ps_quote(name)}{self._target()}", retries=1)

    # --- cluster -------------------------------------------------------------

    def remove_cluster_role(self, name: str) -> None:
        self._run(f"Remove-ClusterGroup -Name {ps_quote(name)} -RemoveResources -Force", retries=1)

    def add_cluster_role(self, name: str) -> None:
        self._run(f"Add-ClusterVirtualMachineRole -VMName {ps_quote(name)}", retries=1)
