# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/azure/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ArcConfig:
    """Where Arc-enabled server resources for this host live."""

    subscription: Optional[str] = None
    resource_group: Optional[str] = None
    location: Optional[str] = None
    tenant: Optional[str] = None

    @classmethod
    def from_args(cls, args: Any) -> "ArcConfig":
        return cls(
            subscription=getattr(args, "arc_subscription", None),
            resource_group=getattr(args, "arc_resource_group", None),
            location=getattr(args, "arc_location", None),
            tenant=getattr(args, "arc_tenant", None),
        )


@dataclass
class RegistryBinding:
    """An Arc connected-machine resource bound to a VM, captured before teardown."""

    resource_id: str
    name: str
    tags: Dict[str, str] = field(default_factory=dict)
    captured_at: str = ""
    # Agent-assigned machine id; changes whenever the machine is registered again.
    machine_id: str = ""

    @classmethod
    def from_az(cls, data: Dict[str, Any], *, captured_at: str = "") -> "RegistryBinding":
        tags = data.get("tags") or {}
        props = data.get("properties") or {}
        return cls(
            resource_id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            tags={str(k): "" if v is None else str(v) for k, v in tags.items()},
            captured_at=captured_at,
            machine_id=str(data.get("vmId") or props.get("vmId") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "name": self.name,
            "tags": dict(self.tags),
            "captured_at": self.captured_at,
            "machine_id": self.machine_id,
        }
