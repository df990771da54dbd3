# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/cli/args/validators.py
from __future__ import annotations

import argparse
from typing import Any, Dict

from .helpers import _merged_cmd, _merged_get, _require

SUPPORTED_CMDS = ("convert", "batch", "inventory")


def _validate_backup_ack(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    if _merged_get(args, conf, "no_backup") and not _merged_get(args, conf, "acknowledge_no_backup"):
        raise SystemExit(
            "--no-backup requires --acknowledge-no-backup: without a backup a failed rebuild cannot be restored"
        )


def _validate_timing(args: argparse.Namespace) -> None:
    for key in ("heartbeat_interval_s", "registry_interval_s"):
        v = getattr(args, key, None)
        if v is not None and float(v) <= 0:
            raise SystemExit(f"{key} must be > 0")
    for key in ("heartbeat_timeout_s", "registry_timeout_s", "inter_vm_pause_s"):
        v = getattr(args, key, None)
        if v is not None and float(v) < 0:
            raise SystemExit(f"{key} must be >= 0")
    if getattr(args, "copy_retries", 1) is not None and int(getattr(args, "copy_retries", 1)) < 1:
        raise SystemExit("copy_retries must be >= 1")


def _validate_cmd_convert(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    if not _require(_merged_get(args, conf, "vm_name")):
        raise SystemExit("cmd=convert: missing required `vm_name:` (YAML) or CLI --vm-name")
    _validate_backup_ack(args, conf)


def _validate_cmd_batch(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    if not _require(_merged_get(args, conf, "snapshot_dir")):
        raise SystemExit("cmd=batch: missing required `snapshot_dir:` (YAML) or CLI --snapshot-dir")
    _validate_backup_ack(args, conf)


def _validate_cmd_inventory(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    if not _require(_merged_get(args, conf, "snapshot_dir")):
        raise SystemExit("cmd=inventory: missing required `snapshot_dir:` (YAML) or CLI --snapshot-dir")


def validate_args(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    """
    No CLI subcommands: YAML `cmd:` drives the operation, CLI can override.
    """
    cmd = _merged_cmd(args, conf)
    if not _require(cmd):
        raise SystemExit("Missing required YAML key: `cmd:` (or CLI --cmd). Supported: " + ", ".join(SUPPORTED_CMDS))

    validators = {
        "convert": _validate_cmd_convert,
        "batch": _validate_cmd_batch,
        "inventory": _validate_cmd_inventory,
    }
    fn = validators.get(str(cmd).strip().lower())
    if fn is None:
        raise SystemExit(f"Unknown cmd={cmd!r}. Supported: {', '.join(SUPPORTED_CMDS)}")
    _validate_timing(args)
    fn(args, conf)
