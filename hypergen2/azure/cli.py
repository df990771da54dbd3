# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/azure/cli.py

from __future__ import annotations

import json
import logging
import random
import subprocess
import time
from typing import Any, Dict, List, Optional

from .exceptions import AzureAuthError, AzureCLIError

LOG = logging.getLogger(__name__)


def _is_transient(stderr: str) -> bool:
    s = (stderr or "").lower()
    return any(
        x in s
        for x in (
            "throttle",
            "too many requests",
            "timeout",
            "timed out",
            "temporarily unavailable",
            "internal server error",
            "gateway timeout",
            "connection reset",
            "connection aborted",
            "rate limit",
            "server busy",
            "retry later",
        )
    )


def _is_not_found(stderr: str) -> bool:
    s = (stderr or "").lower()
    return "resourcenotfound" in s or "was not found" in s or "could not be found" in s


def _backoff_sleep(attempt: int, base: float, cap: float) -> None:
    # exp backoff with jitter
    t = min(cap, base * (2 ** attempt))
    t = t * (0.7 + random.random() * 0.6)
    time.sleep(t)


def run_az_json(args: List[str], *, timeout_s: int = 300, retries: int = 3) -> Any:
    """
    Run 'az <args> --output json --only-show-errors' and parse JSON.
    Retries transient failures.
    """
    cmd = ["az"] + args + ["--output", "json", "--only-show-errors"]
    LOG.debug("az %s", " ".join(args))

    last_err = ""
    for attempt in range(max(1, retries)):
        try:
            p = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout_s)
        except FileNotFoundError:
            raise AzureCLIError(msg="Azure CLI 'az' not found. Install Azure CLI.")
        except subprocess.TimeoutExpired:
            last_err = f"az timed out after {timeout_s}s"
            if attempt + 1 < retries:
                _backoff_sleep(attempt, 1.0, 15.0)
                continue
            raise AzureCLIError(msg=last_err)

        if p.returncode == 0:
            out = (p.stdout or "").strip()
            if out == "":
                return None
            try:
                return json.loads(out)
            except ValueError as e:
                raise AzureCLIError(msg=f"Failed to parse az JSON output: {e}", cause=e)

        last_err = (p.stderr or p.stdout or "").strip()
        if attempt + 1 < retries and _is_transient(last_err):
            _backoff_sleep(attempt, 1.0, 15.0)
            continue

        raise AzureCLIError(
            msg=f"az failed: {' '.join(args)} :: {last_err}",
            context={"not_found": True} if _is_not_found(last_err) else None,
        )

    raise AzureCLIError(msg=f"az failed: {' '.join(args)} :: {last_err}")


def validate_account(subscription: Optional[str], tenant: Optional[str]) -> Dict[str, Any]:
    # Verify logged in
    try:
        acct = run_az_json(["account", "show"], timeout_s=30, retries=2)
    except AzureCLIError as e:
        raise AzureAuthError(msg=f"Azure CLI not logged in or not usable: {e}", cause=e)

    if subscription:
        run_az_json(["account", "set", "--subscription", subscription], timeout_s=60, retries=2)
        acct = run_az_json(["account", "show"], timeout_s=30, retries=2)

    if tenant and str((acct or {}).get("tenantId")) != str(tenant):
        raise AzureAuthError(msg=f"Tenant mismatch: expected {tenant}, got {(acct or {}).get('tenantId')}")

    return acct or {}


def _scope(resource_group: Optional[str], subscription: Optional[str]) -> List[str]:
    args: List[str] = []
    if resource_group:
        args += ["--resource-group", resource_group]
    if subscription:
        args += ["--subscription", subscription]
    return args


def connectedmachine_list(resource_group: Optional[str], *, subscription: Optional[str] = None) -> List[Dict[str, Any]]:
    data = run_az_json(["connectedmachine", "list"] + _scope(resource_group, subscription), timeout_s=180, retries=3)
    return list(data or [])


def connectedmachine_show(
    name: str, resource_group: str, *, subscription: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """Return the Arc machine resource, or None when it does not exist."""
    try:
        return run_az_json(
            ["connectedmachine", "show", "--name", name] + _scope(resource_group, subscription),
            timeout_s=120,
            retries=3,
        )
    except AzureCLIError as e:
        if (e.context or {}).get("not_found"):
            return None
        raise


def connectedmachine_delete(name: str, resource_group: str, *, subscription: Optional[str] = None) -> None:
    run_az_json(
        ["connectedmachine", "delete", "--name", name, "--yes"] + _scope(resource_group, subscription),
        timeout_s=600,
        retries=5,
    )


def tag_update(resource_id: str, tags: Dict[str, str], *, operation: str = "Merge") -> Dict[str, Any]:
    if not tags:
        raise AzureCLIError(msg="tag update requires at least one tag")
    args = ["tag", "update", "--resource-id", resource_id, "--operation", operation, "--tags"]
    args += [f"{k}={v}" for k, v in tags.items()]
    return run_az_json(args, timeout_s=180, retries=5) or {}
