# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/cli/help_texts.py
from __future__ import annotations

# Pure help text for the argparse epilog. Keep it copy/paste runnable.

YAML_EXAMPLE = r"""# hypergen2 configuration examples (YAML)
#
# Run:
#   hypergen2 --config convert.yaml
#
# Merge multiple configs (later overrides earlier):
#   hypergen2 --config site.yaml --config batch.yaml
#
# Two-phase parse: --config / logging flags are read first, the merged YAML
# becomes argparse defaults, then the full command line is parsed. CLI flags
# always override YAML.
#
# --------------------------------------------------------------------------------------
# Common keys
# --------------------------------------------------------------------------------------
# workdir: D:/hypergen2/work          # captured configs, backups, results
# hyperv_host: HV01                   # remote Hyper-V host (default: local)
# powershell: pwsh                    # pwsh | powershell.exe
# skip_registry: false                # do not touch Azure Arc at all
# arc:
#   subscription: 00000000-0000-0000-0000-000000000000
#   resource_group: rg-arc-servers
#   tenant: 00000000-0000-0000-0000-000000000000
#
# --------------------------------------------------------------------------------------
# 1) Take an inventory snapshot
# --------------------------------------------------------------------------------------
# cmd: inventory
# snapshot_dir: D:/hypergen2/snapshots
#
# --------------------------------------------------------------------------------------
# 2) Convert one VM
# --------------------------------------------------------------------------------------
# cmd: convert
# vm_name: Web01
# secure_boot_template: MicrosoftWindows   # MicrosoftUEFICertificateAuthority for Linux guests
#
# --------------------------------------------------------------------------------------
# 3) Convert a batch from the newest snapshot
# --------------------------------------------------------------------------------------
# cmd: batch
# snapshot_dir: D:/hypergen2/snapshots
# report_dir: D:/hypergen2/reports
# vm_names: [Web01, Web02, App01]     # omit to choose interactively
# select_all: false                   # or CLI --all
# inter_vm_pause_s: 10
#
# --------------------------------------------------------------------------------------
# Running without a disk backup (not recommended)
# --------------------------------------------------------------------------------------
# no_backup: true
# acknowledge_no_backup: true         # required together with no_backup
"""

FEATURE_SUMMARY = r"""  • Generation 1 (BIOS) -> generation 2 (UEFI) rebuild of Hyper-V VMs
  • Strict pre-flight: VM off, generation 1, no checkpoints, at least one disk
  • Byte-for-byte disk backup + captured configuration before teardown
  • VHD -> VHDX upgrade (original file kept)
  • Processor, memory, disks, NICs, VLANs, static MACs, auto actions, vTPM restored
  • Failover cluster role removed and re-added
  • Azure Arc binding deleted before teardown, re-detected and re-tagged after
  • Sequential batches with per-VM isolation and JSON/CSV/Markdown reports
"""

GUEST_PREREQUISITES = r"""Guest prerequisite:
  The boot disk must already be GPT-partitioned (e.g. `mbr2gpt /convert /allowFullOS`
  inside the guest) or the generation 2 VM will not boot. This tool does not
  touch the guest file system.
"""
