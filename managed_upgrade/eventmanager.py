"""Send upgrade state notifications, once per state and version."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

UPGRADE_PRECHECK_FAILED_DESC = (
    "Cluster upgrade to version {} was cancelled as the cluster did not pass its pre-upgrade "
    "verification checks. Automated upgrades will be retried on their next scheduling cycle. "
    "If you have manually scheduled an upgrade instead, it must now be rescheduled"
)
UPGRADE_PREHEALTHCHECK_FAILED_DESC = (
    "Cluster upgrade to version {} was cancelled during the Pre-Health Check step. Health "
    "alerts are firing in the cluster which could impact the upgrade's operation, so the "
    "upgrade did not proceed. Automated upgrades will be retried on their next scheduling "
    "cycle. If you have manually scheduled an upgrade instead, it must now be rescheduled"
)
UPGRADE_EXTDEPCHECK_FAILED_DESC = (
    "Cluster upgrade to version {} was cancelled during the External Dependency Availability "
    "Check step. A required external dependency of the upgrade was unavailable, so the "
    "upgrade did not proceed. Automated upgrades will be retried on their next scheduling "
    "cycle. If you have manually scheduled an upgrade instead, it must now be rescheduled"
)
UPGRADE_SCALE_FAILED_DESC = (
    "Cluster upgrade to version {} was cancelled during the Scale-Up Worker Node step. A "
    "temporary additional worker node was unable to be created to temporarily house "
    "workloads, so the upgrade did not proceed. Automated upgrades will be retried on their "
    "next scheduling cycle. If you have manually scheduled an upgrade instead, it must now "
    "be rescheduled"
)
UPGRADE_DEFAULT_DELAY_DESC = (
    "Cluster upgrade to version {} is experiencing a delay whilst it performs necessary "
    "pre-upgrade procedures. The upgrade will continue to retry. This is an informational "
    "notification and no action is required"
)
UPGRADE_PREHEALTHCHECK_DELAY_DESC = (
    "Cluster upgrade to version {} is experiencing a delay as health alerts are firing in "
    "the cluster which could impact the upgrade's operation. The upgrade will continue to "
    "retry. This is an informational notification and no action is required by you"
)
UPGRADE_EXTDEPCHECK_DELAY_DESC = (
    "Cluster upgrade to version {} is experiencing a delay as an external dependency of the "
    "upgrade is currently unavailable. The upgrade will continue to retry. This is an "
    "informational notification and no action is required by you"
)
UPGRADE_SCALE_DELAY_DESC = (
    "Cluster upgrade to version {} is experiencing a delay attempting to scale up an "
    "additional worker node. The upgrade will continue to retry. This is an informational "
    "notification and no action is required by you"
)
UPGRADE_SCALE_DELAY_SKIP_DESC = (
    "Cluster upgrade to version {} has experienced an issue during capacity reservation "
    "efforts. This could be caused by cloud service provider quota limitations or temporary "
    "connectivity issues to/from the new worker node. The upgrade will continue without "
    "extra compute. This is an informational notification and no action is required by you"
)

# Upgrade condition types referenced by notification descriptions.
IS_CLUSTER_UPGRADABLE = "IsClusterUpgradable"
UPGRADE_PRE_HEALTH_CHECK = "UpgradePreHealthCheck"
EXT_DEP_AVAILABILITY_CHECK = "ExtDepAvailabilityCheck"
UPGRADE_SCALE_UP_EXTRA_NODES = "UpgradeScaleUpExtraNodes"
COMMENCE_UPGRADE = "CommenceUpgrade"

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"


class MuoState(str, Enum):
    """Upgrade states that can be notified."""

    STARTED = "started"
    DELAYED = "delayed"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UpgradeCondition:
    type: str
    status: str = CONDITION_UNKNOWN
    reason: str = ""
    message: str = ""

    @property
    def is_false(self) -> bool:
        return self.status == CONDITION_FALSE


@dataclass
class UpgradeHistory:
    version: str
    phase: str = ""
    conditions: list[UpgradeCondition] = field(default_factory=list)


@dataclass
class UpgradeConfig:
    name: str
    desired_version: str
    namespace: str = ""
    upgrade_at: str = ""
    history: list[UpgradeHistory] = field(default_factory=list)

    def get_history(self, version: str) -> UpgradeHistory | None:
        """Return the first history entry for ``version``, if any."""
        return next((h for h in self.history if h.version == version), None)


class UpgradeConfigNotFoundError(LookupError):
    """No UpgradeConfig exists on the cluster."""


class NotificationError(RuntimeError):
    """A notification could not be prepared or sent."""


class UpgradeConfigSource(Protocol):
    def get(self) -> UpgradeConfig: ...


class NotificationMetrics(Protocol):
    def is_metric_notification_event_sent_set(self, name: str, event: str, version: str) -> bool: ...

    def update_metric_notification_event_sent(self, name: str, event: str, version: str) -> None: ...


class Notifier(Protocol):
    def notify_state(self, state: MuoState, description: str) -> None: ...


def _first_false_condition(upgrade_config: UpgradeConfig) -> UpgradeCondition | None:
    history = upgrade_config.get_history(upgrade_config.desired_version)
    if history is None:
        return None
    return next((c for c in history.conditions if c.is_false), None)


def create_failure_description(upgrade_config: UpgradeConfig) -> str:
    """Describe a failure based on the first incomplete condition of the upgrade."""
    version = upgrade_config.desired_version
    condition = _first_false_condition(upgrade_config)
    if condition is None:
        return UPGRADE_PRECHECK_FAILED_DESC.format(version)
    if condition.type == IS_CLUSTER_UPGRADABLE:
        return condition.message
    templates = {
        UPGRADE_PRE_HEALTH_CHECK: UPGRADE_PREHEALTHCHECK_FAILED_DESC,
        EXT_DEP_AVAILABILITY_CHECK: UPGRADE_EXTDEPCHECK_FAILED_DESC,
        UPGRADE_SCALE_UP_EXTRA_NODES: UPGRADE_SCALE_FAILED_DESC,
    }
    return templates.get(condition.type, UPGRADE_PRECHECK_FAILED_DESC).format(version)


def create_delayed_description(upgrade_config: UpgradeConfig) -> str:
    """Describe a delay based on the first incomplete condition of the upgrade."""
    version = upgrade_config.desired_version
    condition = _first_false_condition(upgrade_config)
    templates = {
        UPGRADE_PRE_HEALTH_CHECK: UPGRADE_PREHEALTHCHECK_DELAY_DESC,
        EXT_DEP_AVAILABILITY_CHECK: UPGRADE_EXTDEPCHECK_DELAY_DESC,
        UPGRADE_SCALE_UP_EXTRA_NODES: UPGRADE_SCALE_DELAY_DESC,
    }
    template = UPGRADE_DEFAULT_DELAY_DESC
    if condition is not None:
        template = templates.get(condition.type, UPGRADE_DEFAULT_DELAY_DESC)
    return template.format(version)


class EventManager:
    """Sends each state notification for an upgrade at most once."""

    def __init__(
        self,
        upgrade_config_manager: UpgradeConfigSource,
        metrics: NotificationMetrics,
        notifier: Notifier,
    ) -> None:
        self.upgrade_config_manager = upgrade_config_manager
        self.metrics = metrics
        self.notifier = notifier

    def notify(self, state: MuoState | str) -> None:
        """Notify ``state`` for the current UpgradeConfig unless already notified."""
        try:
            upgrade_config = self.upgrade_config_manager.get()
        except UpgradeConfigNotFoundError:
            return
        except Exception as exc:
            raise NotificationError(f"unable to find UpgradeConfig: {exc}") from exc

        state_value = state.value if isinstance(state, MuoState) else str(state)
        version = upgrade_config.desired_version
        try:
            notified = self.metrics.is_metric_notification_event_sent_set(
                upgrade_config.name, state_value, version
            )
        except Exception as exc:
            raise NotificationError(
                f"can't check cluster metric NotificationSent: {exc}"
            ) from exc
        if notified:
            return

        try:
            muo_state = MuoState(state_value)
        except ValueError:
            raise NotificationError(f"state {state_value} not yet implemented") from None

        descriptions = {
            MuoState.STARTED: lambda: f"Cluster is currently being upgraded to version {version}",
            MuoState.DELAYED: lambda: create_delayed_description(upgrade_config),
            MuoState.SKIPPED: lambda: UPGRADE_SCALE_DELAY_SKIP_DESC.format(version),
            MuoState.COMPLETED: lambda: (
                f"Cluster has been successfully upgraded to version {version}"
            ),
            MuoState.FAILED: lambda: create_failure_description(upgrade_config),
        }
        description = descriptions[muo_state]()

        try:
            self.notifier.notify_state(muo_state, description)
        except Exception as exc:
            raise NotificationError(
                f"can't send notification '{muo_state.value}': {exc}"
            ) from exc
        self.metrics.update_metric_notification_event_sent(
            upgrade_config.name, muo_state.value, version
        )