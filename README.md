# managed-upgrade

Building blocks for running managed cluster upgrades: deciding whether a
node is cordoned, draining it with strategies that become due over time,
silencing alerts during maintenance windows, and sending one notification
per upgrade state.

The package has no runtime dependencies. Everything that talks to a cluster,
to Alertmanager or to a notification service is passed in by the caller as
an object with a few plain methods.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## What is inside

- `managed_upgrade.machinery`
  - `Node` and `Taint` describe a node's schedulability.
  - `Machinery.is_node_cordoned(node)` returns an `IsCordonedResult`
    (`is_cordoned`, `added_at`): a node is cordoned when it is unschedulable
    and carries a `NoSchedule` taint with key
    `node.kubernetes.io/unschedulable`; `added_at` is that taint's
    `time_added`.
  - `Machinery.is_upgrading(client, node_type)` reads a machine config pool
    through `client.get_machine_config_pool(name)` and returns an
    `UpgradingResult` (`is_upgrading`, `updated_count`, `machine_count`).
- `managed_upgrade.maintenance`
  - `AlertManagerMaintenance(silencer)` works through an object with
    `filter(*predicates)`, `create(matchers, starts_at, ends_at, creator,
    comment)` and `delete(silence_id)`.
  - `start_control_plane(ends_at, version, ignored_critical_alerts)` creates
    the default control plane silence and, when alerts are listed, a silence
    for those critical alerts, skipping any that already exist.
  - `set_worker(ends_at, version, count)` keeps one worker silence whose
    comment records the number of remaining nodes, replacing an older one.
  - `end_control_plane()`, `end_worker()` and `end_silences(comment)` delete
    the operator's active silences; failed deletions are collected and raised
    together as `MaintenanceError`.
  - `is_active()` tells whether any active silence was created by the
    operator.
  - `create_matcher(key, value, is_regex)` and `create_default_matchers()`
    build `Matcher` values.
- `managed_upgrade.drain.config` – `NodeDrain` with `timeout_duration()`
  and `expected_drain_duration()` (both in minutes, the expected drain time
  defaulting to 8).
- `managed_upgrade.drain.predicates` – the `Pod`, `OwnerReference` and
  `PodDisruptionBudget` models, `filter_pods(pods, *predicates)` and the
  predicates `is_pdb_pod`, `is_not_pdb_pod`, `is_on_node`, `is_daemon_set`,
  `is_not_daemon_set`, `has_finalizers`, `has_no_finalizers`,
  `is_terminating` and `is_allowed_namespace` (namespaces matching any
  regular expression in the ignore list are excluded).
- `managed_upgrade.drain.nodedrain` – `NodeDrainStrategy(cfg,
  timed_strategies)` runs each `TimedStrategy` once its wait has passed since
  the node was cordoned (`execute`), and decides whether the drain has run
  out of time (`has_failed`). A cordoned node with no cordon time raises
  `DrainError`.
- `managed_upgrade.drain.strategies` – `PodDeletionStrategy`,
  `RemoveFinalizersStrategy` and `StuckTerminatingStrategy`, each with
  `execute(node, logger)` and `is_valid(node, logger)`, and
  `build_node_drain_strategy(client, logger, pdb_drain_timeout, cfg)`, which
  assembles the five standard timed strategies (default and PDB pod deletion,
  default and PDB finalizer removal, stuck terminating pod removal).
- `managed_upgrade.eventmanager` – `EventManager(upgrade_config_manager,
  metrics, notifier).notify(state)` sends a notification for a `MuoState`
  unless one was already recorded for that state and version. Descriptions
  for failed and delayed upgrades come from `create_failure_description` and
  `create_delayed_description`, which look at the first condition of the
  upgrade's history whose status is `False`. Errors are raised as
  `NotificationError`; a missing UpgradeConfig
  (`UpgradeConfigNotFoundError`) is not an error.

## Example

```python
from managed_upgrade.drain.config import NodeDrain
from managed_upgrade.drain.predicates import Pod, filter_pods, is_allowed_namespace

cfg = NodeDrain(timeout=45, ignored_namespace_patterns=["^openshift-.*"])
print(cfg.timeout_duration())  # 0:45:00

pods = [Pod(name="a", namespace="openshift-monitoring"), Pod(name="b", namespace="apps")]
print([p.name for p in filter_pods(pods, is_allowed_namespace(cfg.ignored_namespace_patterns))])
# ['b']
```

## What the package does not do

- It has no Kubernetes, Alertmanager or notification client of its own; the
  caller supplies objects that list and change pods, read machine config
  pools, manage silences and send notifications.
- It does not read the operator's environment or load configuration from
  config maps.
- It does not keep or export Prometheus metrics, nor query Prometheus;
  `EventManager` relies on the metrics object it is given.
- It is a library only: there is no command, controller loop or server.

## Running the tests

```
pytest
```