"""Pod models and the predicates used to pick pods during a drain."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from managed_upgrade.machinery import Node


@dataclass
class OwnerReference:
    kind: str
    name: str = ""


@dataclass
class Pod:
    name: str = ""
    namespace: str = ""
    node_name: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    owner_references: list[OwnerReference] = field(default_factory=list)
    deletion_timestamp: datetime | None = None


@dataclass
class PodDisruptionBudget:
    name: str = ""
    namespace: str = ""
    match_labels: dict[str, str] = field(default_factory=dict)


PodPredicate = Callable[[Pod], bool]


def filter_pods(pods: Iterable[Pod], *args: PodPredicate) -> list[Pod]:
    """Return the pods that satisfy every predicate in ``args``."""
    return [pod for pod in pods if all(predicate(pod) for predicate in args)]


def contains_match_label(pod: Pod, pdbs: Iterable[PodDisruptionBudget]) -> bool:
    """True when any budget selects the pod through one of its match labels."""
    return any(
        key in pod.labels and pod.labels[key] == value
        for pdb in pdbs
        for key, value in pdb.match_labels.items()
    )


def is_pdb_pod(pdbs: Iterable[PodDisruptionBudget]) -> PodPredicate:
    budgets = list(pdbs)
    return lambda pod: contains_match_label(pod, budgets)


def is_not_pdb_pod(pdbs: Iterable[PodDisruptionBudget]) -> PodPredicate:
    budgets = list(pdbs)
    return lambda pod: not contains_match_label(pod, budgets)


def is_on_node(node: Node) -> PodPredicate:
    return lambda pod: pod.node_name == node.name


def is_daemon_set(pod: Pod) -> bool:
    return any(ref.kind == "DaemonSet" for ref in pod.owner_references)


def is_not_daemon_set(pod: Pod) -> bool:
    return not is_daemon_set(pod)


def has_finalizers(pod: Pod) -> bool:
    return len(pod.finalizers) > 0


def has_no_finalizers(pod: Pod) -> bool:
    return len(pod.finalizers) == 0


def is_terminating(pod: Pod) -> bool:
    return pod.deletion_timestamp is not None


def contains_ignored_namespace(pod: Pod, patterns: Iterable[str]) -> bool:
    """False when the pod's namespace matches any ignore pattern, True otherwise."""
    return not any(re.search(pattern, pod.namespace) for pattern in patterns)


def is_allowed_namespace(patterns: Iterable[str]) -> PodPredicate:
    compiled = list(patterns)
    return lambda pod: contains_ignored_namespace(pod, compiled)