import logging
from datetime import datetime, timedelta, timezone

import pytest

from managed_upgrade.drain.config import NodeDrain
from managed_upgrade.drain.predicates import (
    Pod,
    PodDisruptionBudget,
    has_finalizers,
    has_no_finalizers,
    is_allowed_namespace,
    is_on_node,
    is_terminating,
)
from managed_upgrade.drain.strategies import (
    PodDeletionStrategy,
    RemoveFinalizersStrategy,
    StuckTerminatingStrategy,
    build_node_drain_strategy,
)
from managed_upgrade.machinery import Node

POD_NAMESPACE = "test-namespace"
LOGGER = logging.getLogger("strategy test logger")
NOW = datetime.now(timezone.utc)


class FakeClient:
    def __init__(self, pods, list_error=None, delete_error=None, update_error=None,
                 pdbs=None, pdb_error=None):
        self.pods = pods
        self.list_error = list_error
        self.delete_error = delete_error
        self.update_error = update_error
        self.pdbs = pdbs or []
        self.pdb_error = pdb_error
        self.deleted = []
        self.updated = []

    def list_pods(self):
        if self.list_error:
            raise self.list_error
        return list(self.pods)

    def delete_pod(self, pod, grace_period_seconds):
        if self.delete_error:
            raise self.delete_error
        self.deleted.append((pod.name, grace_period_seconds))

    def update_pod(self, pod):
        if self.update_error:
            raise self.update_error
        self.updated.append(pod)

    def list_pdbs(self):
        if self.pdb_error:
            raise self.pdb_error
        return self.pdbs


@pytest.fixture
def node():
    return Node(name="n1")


# Pod deletion

@pytest.fixture
def delete_pods():
    return [
        Pod(name="pod1", namespace=POD_NAMESPACE, node_name="n1"),
        Pod(name="pod2", namespace=POD_NAMESPACE, node_name="n1", deletion_timestamp=NOW),
        Pod(name="pod3", namespace=POD_NAMESPACE, node_name="n2"),
    ]


def test_pod_delete_deletes_pods_on_node(node, delete_pods):
    client = FakeClient(delete_pods)
    result = PodDeletionStrategy(client, [is_on_node(node)]).execute(node, LOGGER)
    assert result.has_executed is True
    assert client.deleted == [("pod1", 0)]


def test_pod_delete_skips_already_deleting(node):
    pods = [
        Pod(name="p1", node_name="n1", deletion_timestamp=NOW),
        Pod(name="p2", node_name="n2", deletion_timestamp=NOW),
    ]
    client = FakeClient(pods)
    result = PodDeletionStrategy(client, [is_on_node(node)]).execute(node, LOGGER)
    assert result.has_executed is False
    assert client.deleted == []


def test_pod_delete_list_error(node, delete_pods):
    client = FakeClient(delete_pods, list_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        PodDeletionStrategy(client, [is_on_node(node)]).execute(node, LOGGER)


def test_pod_delete_delete_error(node, delete_pods):
    client = FakeClient(delete_pods, delete_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        PodDeletionStrategy(client, [is_on_node(node)]).execute(node, LOGGER)


def test_pod_delete_valid(node, delete_pods):
    assert PodDeletionStrategy(FakeClient(delete_pods), [is_on_node(node)]).is_valid(node, LOGGER) is True


def test_pod_delete_valid_list_error(node, delete_pods):
    client = FakeClient(delete_pods, list_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError):
        PodDeletionStrategy(client, [is_on_node(node)]).is_valid(node, LOGGER)


@pytest.mark.parametrize("patterns, expected", [([POD_NAMESPACE], False), ([], True)])
def test_pod_delete_respects_namespaces(node, delete_pods, patterns, expected):
    strategy = PodDeletionStrategy(FakeClient(delete_pods), [is_on_node(node), is_allowed_namespace(patterns)])
    assert strategy.is_valid(node, LOGGER) is expected


# Finalizer removal

@pytest.fixture
def finalizer_pods():
    return [
        Pod(name="pod1", namespace=POD_NAMESPACE, node_name="n1", finalizers=["finalizer1"]),
        Pod(name="pod2", namespace=POD_NAMESPACE, node_name="dummy", finalizers=["finalizer2"]),
        Pod(name="pod3", namespace=POD_NAMESPACE, node_name="n1"),
    ]


def test_remove_finalizers(node, finalizer_pods):
    client = FakeClient(finalizer_pods)
    result = RemoveFinalizersStrategy(client, [is_on_node(node), has_finalizers]).execute(node, LOGGER)
    assert result.has_executed is True
    assert [p.name for p in client.updated] == ["pod1"]
    assert client.updated[0].finalizers == []


def test_remove_finalizers_nothing_to_do(node):
    client = FakeClient([Pod(name="dummy-pod", node_name="n1")])
    result = RemoveFinalizersStrategy(client, [is_on_node(node), has_finalizers]).execute(node, LOGGER)
    assert result.has_executed is False
    assert client.updated == []


def test_remove_finalizers_list_error(node, finalizer_pods):
    client = FakeClient(finalizer_pods, list_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        RemoveFinalizersStrategy(client, [is_on_node(node)]).execute(node, LOGGER)


def test_remove_finalizers_update_error(node, finalizer_pods):
    client = FakeClient(finalizer_pods, update_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        RemoveFinalizersStrategy(client, [is_on_node(node)]).execute(node, LOGGER)


def test_remove_finalizers_valid(node, finalizer_pods):
    assert RemoveFinalizersStrategy(FakeClient(finalizer_pods)).is_valid(node, LOGGER) is True


def test_remove_finalizers_valid_list_error(node, finalizer_pods):
    client = FakeClient(finalizer_pods, list_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError):
        RemoveFinalizersStrategy(client).is_valid(node, LOGGER)


@pytest.mark.parametrize("patterns, expected", [([POD_NAMESPACE], False), ([], True)])
def test_remove_finalizers_respects_namespaces(node, finalizer_pods, patterns, expected):
    strategy = RemoveFinalizersStrategy(FakeClient(finalizer_pods), [is_allowed_namespace(patterns)])
    assert strategy.is_valid(node, LOGGER) is expected


# Stuck terminating

@pytest.fixture
def terminating_pods():
    return [
        Pod(name="pod1", namespace=POD_NAMESPACE, node_name="n1", deletion_timestamp=NOW),
        Pod(name="pod2", namespace=POD_NAMESPACE, node_name="n1", deletion_timestamp=NOW,
            finalizers=["finalizer2"]),
        Pod(name="pod3", namespace=POD_NAMESPACE, node_name="n2", deletion_timestamp=NOW),
    ]


def stuck(client):
    return StuckTerminatingStrategy(client, [has_no_finalizers, is_terminating])


def test_stuck_terminating_deletes(node, terminating_pods):
    client = FakeClient(terminating_pods)
    result = stuck(client).execute(node, LOGGER)
    assert result.has_executed is True
    assert client.deleted == [("pod1", 0)]


def test_stuck_terminating_nothing_to_do(node):
    client = FakeClient([Pod(name="p1", node_name="n1"), Pod(name="p2", node_name="n1")])
    result = stuck(client).execute(node, LOGGER)
    assert result.has_executed is False
    assert client.deleted == []


def test_stuck_terminating_list_error(node, terminating_pods):
    client = FakeClient(terminating_pods, list_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        stuck(client).execute(node, LOGGER)


def test_stuck_terminating_delete_error(node, terminating_pods):
    client = FakeClient(terminating_pods, delete_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        stuck(client).execute(node, LOGGER)


def test_stuck_terminating_valid(node, terminating_pods):
    assert stuck(FakeClient(terminating_pods)).is_valid(node, LOGGER) is True


def test_stuck_terminating_valid_list_error(node, terminating_pods):
    client = FakeClient(terminating_pods, list_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError):
        stuck(client).is_valid(node, LOGGER)


@pytest.mark.parametrize("patterns, expected", [([POD_NAMESPACE], False), ([], True)])
def test_stuck_terminating_respects_namespaces(node, terminating_pods, patterns, expected):
    strategy = StuckTerminatingStrategy(FakeClient(terminating_pods), [is_allowed_namespace(patterns)])
    assert strategy.is_valid(node, LOGGER) is expected


# Builder

def test_builder_assembles_strategies_in_order():
    cfg = NodeDrain(timeout=15, expected_node_drain_time=8)
    drain = build_node_drain_strategy(FakeClient([]), LOGGER, timedelta(minutes=60), cfg)
    assert [s.name for s in drain.timed_strategies] == [
        "DELETE", "DEFAULT-FINALIZER", "POD-STUCK-TERMINATING", "PDB-DELETE", "PDB-FINALIZER",
    ]
    waits = [s.wait_duration for s in drain.timed_strategies]
    assert waits[:3] == [cfg.timeout_duration()] * 3
    assert waits[3:] == [timedelta(minutes=60) + cfg.expected_drain_duration()] * 2


def test_builder_splits_pdb_and_non_pdb_pods(node):
    pods = [
        Pod(name="guarded", namespace="app", node_name="n1", labels={"app": "a"}),
        Pod(name="free", namespace="app", node_name="n1"),
    ]
    client = FakeClient(pods, pdbs=[PodDisruptionBudget(match_labels={"app": "a"})])
    drain = build_node_drain_strategy(client, LOGGER, timedelta(0), NodeDrain())
    drain.timed_strategies[0].strategy.execute(node, LOGGER)
    drain.timed_strategies[3].strategy.execute(node, LOGGER)
    assert client.deleted == [("free", 0), ("guarded", 0)]


def test_builder_tolerates_missing_pdb_kind():
    client = FakeClient([], pdb_error=LookupError("not found"))
    drain = build_node_drain_strategy(client, LOGGER, timedelta(0), NodeDrain())
    assert len(drain.timed_strategies) == 5


def test_builder_propagates_other_errors():
    client = FakeClient([], pdb_error=RuntimeError("boom"))
    with pytest.raises(RuntimeError, match="boom"):
        build_node_drain_strategy(client, LOGGER, timedelta(0), NodeDrain())