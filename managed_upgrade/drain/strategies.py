"""Concrete drain strategies and the builder that assembles them."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Protocol

from managed_upgrade.drain.config import NodeDrain
from managed_upgrade.drain.nodedrain import DrainStrategyResult, NodeDrainStrategy, TimedStrategy
from managed_upgrade.drain.predicates import (
    Pod,
    PodDisruptionBudget,
    PodPredicate,
    filter_pods,
    has_finalizers,
    has_no_finalizers,
    is_allowed_namespace,
    is_not_daemon_set,
    is_not_pdb_pod,
    is_on_node,
    is_pdb_pod,
    is_terminating,
)
from managed_upgrade.machinery import Machinery, Node

DEFAULT_POD_DELETE_NAME = "DELETE"
PDB_POD_DELETE_NAME = "PDB-DELETE"
DEFAULT_POD_FINALIZER_REMOVAL_NAME = "DEFAULT-FINALIZER"
PDB_POD_FINALIZER_REMOVAL_NAME = "PDB-FINALIZER"
STUCK_TERMINATING_POD_NAME = "POD-STUCK-TERMINATING"


class PodClient(Protocol):
    def list_pods(self) -> list[Pod]: ...

    def delete_pod(self, pod: Pod, grace_period_seconds: int) -> None: ...

    def update_pod(self, pod: Pod) -> None: ...


class DrainClient(PodClient, Protocol):
    def list_pdbs(self) -> list[PodDisruptionBudget]:
        """Return all PodDisruptionBudgets; raise LookupError when the kind is unknown."""


def _pod_list(client: PodClient, predicates: Iterable[PodPredicate]) -> list[Pod]:
    return filter_pods(client.list_pods(), *predicates)


def _delete_pods(
    client: PodClient, logger: logging.Logger, pods: Sequence[Pod], ignore_already_deleting: bool
) -> DrainStrategyResult:
    deleted: list[str] = []
    for pod in pods:
        if ignore_already_deleting and pod.deletion_timestamp is not None:
            continue
        client.delete_pod(pod, grace_period_seconds=0)
        logger.info("Deleted pod %s/%s", pod.namespace, pod.name)
        deleted.append(pod.name)
    return DrainStrategyResult(
        message=f"deleted {len(deleted)} pod(s): {', '.join(deleted)}",
        has_executed=bool(deleted),
    )


def _remove_finalizers(
    client: PodClient, logger: logging.Logger, pods: Sequence[Pod]
) -> DrainStrategyResult:
    cleared: list[str] = []
    for pod in pods:
        client.update_pod(replace(pod, finalizers=[]))
        logger.info("Removed finalizers from pod %s/%s", pod.namespace, pod.name)
        cleared.append(pod.name)
    return DrainStrategyResult(
        message=f"removed finalizers from {len(cleared)} pod(s): {', '.join(cleared)}",
        has_executed=bool(cleared),
    )


@dataclass
class PodDeletionStrategy:
    """Deletes matching pods on the node that are not already being deleted."""

    client: PodClient
    filters: list[PodPredicate] = field(default_factory=list)

    def _targets(self, node: Node) -> list[Pod]:
        return _pod_list(self.client, [is_on_node(node), *self.filters])

    def execute(self, node: Node, logger: logging.Logger) -> DrainStrategyResult:
        return _delete_pods(self.client, logger, self._targets(node), ignore_already_deleting=True)

    def is_valid(self, node: Node, logger: logging.Logger) -> bool:
        return bool(self._targets(node))


@dataclass
class RemoveFinalizersStrategy:
    """Strips finalizers from matching pods on the node."""

    client: PodClient
    filters: list[PodPredicate] = field(default_factory=list)

    def _targets(self, node: Node) -> list[Pod]:
        return _pod_list(self.client, [is_on_node(node), has_finalizers, *self.filters])

    def execute(self, node: Node, logger: logging.Logger) -> DrainStrategyResult:
        return _remove_finalizers(self.client, logger, self._targets(node))

    def is_valid(self, node: Node, logger: logging.Logger) -> bool:
        return bool(self._targets(node))


@dataclass
class StuckTerminatingStrategy:
    """Force-deletes terminating pods without finalizers on the node."""

    client: PodClient
    filters: list[PodPredicate] = field(default_factory=list)

    def _targets(self, node: Node) -> list[Pod]:
        return _pod_list(
            self.client, [is_on_node(node), has_no_finalizers, is_terminating, *self.filters]
        )

    def execute(self, node: Node, logger: logging.Logger) -> DrainStrategyResult:
        return _delete_pods(self.client, logger, self._targets(node), ignore_already_deleting=False)

    def is_valid(self, node: Node, logger: logging.Logger) -> bool:
        return bool(self._targets(node))


def build_node_drain_strategy(
    client: DrainClient,
    logger: logging.Logger,
    pdb_drain_timeout: timedelta,
    cfg: NodeDrain,
) -> NodeDrainStrategy:
    """Assemble the standard set of timed drain strategies."""
    try:
        pdbs = client.list_pdbs()
    except LookupError:
        logger.info("unable to list PodDisruptionBudgets/v1")
        pdbs = []

    not_pdb = is_not_pdb_pod(pdbs)
    pdb = is_pdb_pod(pdbs)
    allowed = is_allowed_namespace(cfg.ignored_namespace_patterns)
    default_duration = cfg.timeout_duration()
    pdb_duration = pdb_drain_timeout + cfg.expected_drain_duration()

    def default_filters() -> list[PodPredicate]:
        return [is_not_daemon_set, not_pdb, allowed]

    def pdb_filters() -> list[PodPredicate]:
        return [is_not_daemon_set, pdb, allowed]

    timed = [
        TimedStrategy(DEFAULT_POD_DELETE_NAME, "Default pod deletion", default_duration,
                      PodDeletionStrategy(client, default_filters())),
        TimedStrategy(DEFAULT_POD_FINALIZER_REMOVAL_NAME, "Default pod finalizer removal",
                      default_duration, RemoveFinalizersStrategy(client, default_filters())),
        TimedStrategy(STUCK_TERMINATING_POD_NAME, "Pod stuck terminating removal",
                      default_duration, StuckTerminatingStrategy(client, default_filters())),
        TimedStrategy(PDB_POD_DELETE_NAME, "PDB pod deletion", pdb_duration,
                      PodDeletionStrategy(client, pdb_filters())),
        TimedStrategy(PDB_POD_FINALIZER_REMOVAL_NAME, "PDB Pod finalizer removal", pdb_duration,
                      RemoveFinalizersStrategy(client, pdb_filters())),
    ]
    return NodeDrainStrategy(cfg, timed, machinery=Machinery())