# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/hyperv/powershell.py

from __future__ import annotations

import json
import logging
import random
import shutil
import subprocess
import time
from typing import Any, Optional

from .exceptions import PowerShellError

LOG = logging.getLogger(__name__)

DEFAULT_SHELLS = ("pwsh", "powershell.exe", "powershell")


def ps_quote(value: Any) -> str:
    """Render a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def ps_bool(value: bool) -> str:
    return "$true" if value else "$false"


def _is_transient(stderr: str) -> bool:
    s = (stderr or "").lower()
    return any(
        x in s
        for x in (
            "the operation timed out",
            "rpc server is unavailable",
            "wmi",
            "temporarily unavailable",
            "the device is not ready",
            "try again",
            "being used by another process",
        )
    )


def _backoff_sleep(attempt: int, base: float, cap: float) -> None:
    # exp backoff with jitter
    t = min(cap, base * (2 ** attempt))
    t = t * (0.7 + random.random() * 0.6)
    time.sleep(t)


def find_shell(preferred: Optional[str] = None) -> str:
    if preferred:
        return preferred
    for s in DEFAULT_SHELLS:
        if shutil.which(s):
            return s
    raise PowerShellError(msg="PowerShell not found (tried pwsh, powershell.exe). Install PowerShell or set --powershell.")


def run_ps_json(
    script: str,
    *,
    shell: str = "pwsh",
    timeout_s: int = 300,
    retries: int = 3,
) -> Any:
    """
    Run a PowerShell script whose output is piped to ConvertTo-Json and
    parse the result. Empty output returns None. Retries transient failures.
    """
    wrapped = (
        "$ErrorActionPreference = 'Stop'; "
        "$ProgressPreference = 'SilentlyContinue'; "
        f"& {{ {script} }} | ConvertTo-Json -Depth 8 -Compress"
    )
    cmd = [shell, "-NoProfile", "-NonInteractive", "-Command", wrapped]
    LOG.debug("PowerShell: %s", script)

    last_err = ""
    for attempt in range(max(1, retries)):
        try:
            p = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout_s)
        except FileNotFoundError:
            raise PowerShellError(msg=f"PowerShell executable {shell!r} not found.")
        except subprocess.TimeoutExpired:
            last_err = f"PowerShell timed out after {timeout_s}s"
            if attempt + 1 < retries:
                _backoff_sleep(attempt, 1.0, 15.0)
                continue
            raise PowerShellError(msg=last_err, context={"script": script[:200]})

        if p.returncode == 0:
            out = (p.stdout or "").strip()
            if out == "":
                return None
            try:
                return json.loads(out)
            except ValueError as e:
                raise PowerShellError(msg=f"Failed to parse PowerShell JSON output: {e}", cause=e)

        last_err = (p.stderr or p.stdout or "").strip()
        if attempt + 1 < retries and _is_transient(last_err):
            _backoff_sleep(attempt, 1.0, 15.0)
            continue

        raise PowerShellError(msg=f"PowerShell failed: {last_err}", context={"script": script[:200]})

    raise PowerShellError(msg=f"PowerShell failed: {last_err}", context={"script": script[:200]})
