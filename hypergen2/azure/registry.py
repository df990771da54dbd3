# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/azure/registry.py
"""
Registry client facade: the Azure Arc surface the converter depends on.
"""

from __future__ import annotations

import abc
import logging
from typing import Dict, Optional

from ..core.utils import U
from . import cli as az
from .models import ArcConfig, RegistryBinding


class RegistryClient(abc.ABC):
    @abc.abstractmethod
    def find_binding(self, vm_name: str) -> Optional[RegistryBinding]:
        """Registry resource named like the VM, or None when absent."""

    @abc.abstractmethod
    def delete_binding(self, binding: RegistryBinding) -> None: ...

    @abc.abstractmethod
    def apply_tags(self, binding: RegistryBinding, tags: Dict[str, str]) -> None: ...


class ArcRegistryClient(RegistryClient):
    """Arc-enabled servers through `az connectedmachine` and `az tag`."""

    def __init__(self, logger: logging.Logger, arc: ArcConfig):
        self.logger = logger
        self.arc = arc
        self._account_checked = False

    def _ensure_account(self) -> None:
        if self._account_checked:
            return
        acct = az.validate_account(self.arc.subscription, self.arc.tenant)
        self.logger.debug(
            "Azure account: subscription=%s tenant=%s", acct.get("id"), acct.get("tenantId")
        )
        self._account_checked = True

    def find_binding(self, vm_name: str) -> Optional[RegistryBinding]:
        self._ensure_account()
        if self.arc.resource_group:
            data = az.connectedmachine_show(vm_name, self.arc.resource_group, subscription=self.arc.subscription)
        else:
            wanted = vm_name.lower()
            matches = [
                m
                for m in az.connectedmachine_list(None, subscription=self.arc.subscription)
                if str(m.get("name") or "").lower() == wanted
            ]
            if len(matches) > 1:
                self.logger.warning(
                    "Multiple Arc resources named %s; using %s (set --arc-resource-group to disambiguate)",
                    vm_name,
                    matches[0].get("id"),
                )
            data = matches[0] if matches else None
        if not data:
            return None
        return RegistryBinding.from_az(data, captured_at=U.now_iso())

    def delete_binding(self, binding: RegistryBinding) -> None:
        self._ensure_account()
        rg = self.arc.resource_group or _resource_group_from_id(binding.resource_id)
        az.connectedmachine_delete(binding.name, rg, subscription=self.arc.subscription)

    def apply_tags(self, binding: RegistryBinding, tags: Dict[str, str]) -> None:
        if not tags:
            return
        self._ensure_account()
        az.tag_update(binding.resource_id, tags)


def _resource_group_from_id(resource_id: str) -> str:
    parts = [p for p in (resource_id or "").split("/") if p]
    for i, p in enumerate(parts[:-1]):
        if p.lower() == "resourcegroups":
            return parts[i + 1]
    return ""
