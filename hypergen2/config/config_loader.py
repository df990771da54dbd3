# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/config/config_loader.py
"""
YAML/JSON configuration files.

Several `--config` files may be given; later files override earlier ones and
nested mappings are merged key by key. The merged mapping is applied as
argparse defaults, so explicit CLI flags always win.

    cmd: batch
    snapshot_dir: D:/hypergen2/snapshots
    workdir: D:/hypergen2/work
    skip_registry: false
    arc:
      subscription: 00000000-0000-0000-0000-000000000000
      resource_group: rg-arc-servers
"""

from __future__ import annotations

import argparse
import glob
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..core.utils import U

CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


def _deep_merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in over.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _norm_key(k: Any) -> str:
    return str(k).strip().replace("-", "_")


class Config:
    @staticmethod
    def expand_configs(logger: logging.Logger, paths: List[str]) -> List[Path]:
        """Resolve `~`, env vars, globs and directories into an ordered file list."""
        out: List[Path] = []
        for raw in paths:
            s = os.path.expandvars(os.path.expanduser(str(raw)))
            p = Path(s)
            if p.is_dir():
                found = sorted(q for q in p.iterdir() if q.is_file() and q.suffix.lower() in CONFIG_SUFFIXES)
                logger.debug("Config dir %s: %d file(s)", p, len(found))
                out.extend(found)
                continue
            if any(ch in s for ch in "*?["):
                matches = sorted(Path(m) for m in glob.glob(s))
                if not matches:
                    U.die(logger, f"Config pattern matched nothing: {raw}", 1)
                out.extend(matches)
                continue
            if not p.is_file():
                U.die(logger, f"Config file not found: {raw}", 1)
            out.append(p)
        return out

    @staticmethod
    def load_one(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            U.die(logger, f"Cannot read config {path}: {e}", 1)
        try:
            if Path(path).suffix.lower() == ".json":
                data = json.loads(text) if text.strip() else {}
            else:
                data = yaml.safe_load(text) or {}
        except (ValueError, yaml.YAMLError) as e:
            U.die(logger, f"Invalid config {path}: {e}", 1)
        if not isinstance(data, dict):
            U.die(logger, f"Config {path}: top level must be a mapping, got {type(data).__name__}", 1)
        return {_norm_key(k): v for k, v in data.items()}

    @staticmethod
    def load_many(logger: logging.Logger, paths: List[Path]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for p in paths:
            logger.debug("📄 Loading config %s", p)
            merged = _deep_merge(merged, Config.load_one(logger, p))
        return merged

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> Dict[str, Any]:
        """
        Set parser defaults from `conf`. A nested mapping `section: {key: v}`
        maps onto the `section_key` option when one exists. Unknown keys are
        ignored with a debug message. Returns the defaults actually applied.
        """
        dests = {a.dest for a in parser._actions if a.dest and a.dest != argparse.SUPPRESS}
        applied: Dict[str, Any] = {}
        for k, v in conf.items():
            key = _norm_key(k)
            if isinstance(v, dict):
                for sk, sv in v.items():
                    flat = f"{key}_{_norm_key(sk)}"
                    if flat in dests:
                        applied[flat] = sv
                    else:
                        logger.debug("Config key %s.%s has no matching option; ignored", key, sk)
                continue
            if key in dests:
                applied[key] = v
            else:
                logger.debug("Config key %s has no matching option; ignored", key)
        if applied:
            parser.set_defaults(**applied)
        return applied
