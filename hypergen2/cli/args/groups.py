# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/cli/args/groups.py
from __future__ import annotations

import argparse

from ...orchestrator.models import ConversionOptions

_D = ConversionOptions()


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Global config/logging (two-phase parse relies on these)
    # ------------------------------------------------------------------
    from ... import __version__

    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged normalized config and exit.")
    p.add_argument("--dump-args", action="store_true", help="Print final parsed args and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -v, -vv, -vvv (trace)")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q warnings, -qq errors only.")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON log records on the console.")


def _add_project_control(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Project control: YAML-driven operation (no subcommands)
    # ------------------------------------------------------------------
    p.add_argument(
        "--cmd",
        dest="cmd",
        default=None,
        help="Operation (normally from YAML `cmd:`): convert, batch, inventory",
    )


def _add_targets(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Targets")
    g.add_argument("--vm-name", dest="vm_name", default=None, help="VM to convert (cmd=convert).")
    g.add_argument(
        "--vm",
        dest="vm_names",
        action="append",
        default=None,
        help="Restrict a batch to this VM (repeatable). Without it, candidates are chosen interactively.",
    )
    g.add_argument("--all", dest="select_all", action="store_true", help="Batch: convert every generation 1 VM without prompting.")
    g.add_argument("--workdir", default="./hypergen2-work", help="Captured configurations, disk backups and job results.")
    g.add_argument("--snapshot-dir", dest="snapshot_dir", default=None, help="Root of timestamped inventory snapshots.")
    g.add_argument("--report-dir", dest="report_dir", default=None, help="Batch report directory (default: workdir).")


def _add_safety(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Safety")
    g.add_argument("--no-backup", dest="no_backup", action="store_true", help="Skip the disk backup (dangerous).")
    g.add_argument(
        "--acknowledge-no-backup",
        dest="acknowledge_no_backup",
        action="store_true",
        help="Required with --no-backup: accept that a failed rebuild cannot be restored from a backup.",
    )
    g.add_argument("--skip-registry", dest="skip_registry", action="store_true", help="Do not read, delete or wait for the Azure Arc binding.")


def _add_target_config(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Generation 2 configuration")
    g.add_argument(
        "--secure-boot-template",
        dest="secure_boot_template",
        default=_D.secure_boot_template,
        help="Secure boot template; secure boot is disabled if it cannot be applied.",
    )
    g.add_argument("--no-tpm", dest="enable_tpm", action="store_false", help="Do not enable the virtual TPM.")


def _add_hyperv_knobs(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Hyper-V")
    g.add_argument("--hyperv-host", dest="hyperv_host", default=None, help="Remote Hyper-V host (default: local host).")
    g.add_argument("--powershell", dest="powershell", default=None, help="PowerShell executable (default: pwsh, then powershell.exe).")


def _add_arc_knobs(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Azure Arc")
    g.add_argument("--arc-subscription", dest="arc_subscription", default=None, help="Subscription of the Arc resources.")
    g.add_argument("--arc-resource-group", dest="arc_resource_group", default=None, help="Resource group of the Arc resources.")
    g.add_argument("--arc-location", dest="arc_location", default=None, help="Azure region of the Arc resources.")
    g.add_argument("--arc-tenant", dest="arc_tenant", default=None, help="Expected tenant id of the az login.")


def _add_timing_knobs(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Timing")
    g.add_argument("--heartbeat-interval", dest="heartbeat_interval_s", type=float, default=_D.heartbeat_interval_s, help="Seconds between heartbeat polls.")
    g.add_argument("--heartbeat-timeout", dest="heartbeat_timeout_s", type=float, default=_D.heartbeat_timeout_s, help="Give up waiting for a healthy heartbeat after this many seconds.")
    g.add_argument("--registry-interval", dest="registry_interval_s", type=float, default=_D.registry_interval_s, help="Seconds between Arc registry polls.")
    g.add_argument("--registry-timeout", dest="registry_timeout_s", type=float, default=_D.registry_timeout_s, help="Give up waiting for the Arc binding after this many seconds.")
    g.add_argument("--inter-vm-pause", dest="inter_vm_pause_s", type=float, default=_D.inter_vm_pause_s, help="Batch: pause between VMs.")
    g.add_argument("--copy-retries", dest="copy_retries", type=int, default=_D.copy_retries, help="Attempts per disk backup copy.")
