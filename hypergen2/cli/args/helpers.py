# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/cli/args/helpers.py
from __future__ import annotations

import argparse
from typing import Any, Dict, Optional


def _require(v: Any) -> bool:
    """True if v is meaningfully present (treats empty/whitespace-only strings as missing)."""
    if v is None:
        return False
    if isinstance(v, str):
        return v.strip() != ""
    return True


def _merged_get(args: argparse.Namespace, conf: Dict[str, Any], key: str) -> Any:
    """
    Prefer CLI override if present (non-empty), else config.
    """
    v = getattr(args, key, None)
    if _require(v):
        return v
    return conf.get(key)


def _merged_cmd(args: argparse.Namespace, conf: Dict[str, Any]) -> Optional[str]:
    v = getattr(args, "cmd", None)
    if _require(v):
        return str(v).strip()
    for key in ("cmd", "command"):
        v = conf.get(key, None)
        if _require(v):
            return str(v).strip()
    return None
