"""Node cordon and machine config pool inspection."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

MASTER_LABEL = "node-role.kubernetes.io/master"
TAINT_EFFECT_NO_SCHEDULE = "NoSchedule"
TAINT_NODE_UNSCHEDULABLE = "node.kubernetes.io/unschedulable"


@dataclass
class Taint:
    key: str
    effect: str
    time_added: datetime | None = None


@dataclass
class Node:
    name: str = ""
    unschedulable: bool = False
    taints: list[Taint] = field(default_factory=list)


@dataclass(frozen=True)
class IsCordonedResult:
    is_cordoned: bool
    added_at: datetime | None


@dataclass(frozen=True)
class UpgradingResult:
    is_upgrading: bool
    updated_count: int
    machine_count: int


class MachineConfigPoolReader(Protocol):
    def get_machine_config_pool(self, name: str) -> Mapping[str, Any]:
        """Return the MachineConfigPool resource with the given name."""


class Machinery:
    """Upgrade-related queries about nodes and machine pools."""

    def is_node_cordoned(self, node: Node) -> IsCordonedResult:
        """Report whether the node is cordoned and when the cordon taint was added."""
        is_cordoned = False
        added_at: datetime | None = None
        if node.unschedulable:
            for taint in node.taints:
                if taint.effect == TAINT_EFFECT_NO_SCHEDULE and taint.key == TAINT_NODE_UNSCHEDULABLE:
                    is_cordoned = True
                    added_at = taint.time_added
        return IsCordonedResult(is_cordoned=is_cordoned, added_at=added_at)

    def is_upgrading(self, client: MachineConfigPoolReader, node_type: str) -> UpgradingResult:
        """Compare the pool's machine count with its updated machine count."""
        pool = client.get_machine_config_pool(node_type)
        status = pool.get("status") or {}
        machine_count = int(status.get("machineCount", 0))
        updated_count = int(status.get("updatedMachineCount", 0))
        return UpgradingResult(
            is_upgrading=machine_count != updated_count,
            updated_count=updated_count,
            machine_count=machine_count,
        )