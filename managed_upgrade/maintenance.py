"""Maintenance windows expressed as Alertmanager silences."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

OPERATOR_NAME = "managed-upgrade-operator"
CONTROL_PLANE_SILENCE_COMMENT_ID = "OSD control plane"
WORKER_SILENCE_COMMENT_ID = "OSD worker node"
SILENCE_STATE_ACTIVE = "active"


@dataclass(frozen=True)
class Matcher:
    name: str
    value: str
    is_regex: bool


@dataclass
class Silence:
    """A silence as returned by Alertmanager."""

    id: str
    comment: str
    created_by: str
    state: str = SILENCE_STATE_ACTIVE
    matchers: list[Matcher] = field(default_factory=list)
    starts_at: datetime | None = None
    ends_at: datetime | None = None


SilencePredicate = Callable[[Silence], bool]


class MaintenanceError(RuntimeError):
    """One or more maintenance operations failed."""


class AlertManagerSilencer(Protocol):
    def filter(self, *predicates: SilencePredicate) -> list[Silence]: ...

    def create(
        self,
        matchers: Sequence[Matcher],
        starts_at: datetime,
        ends_at: datetime,
        creator: str,
        comment: str,
    ) -> None: ...

    def delete(self, silence_id: str) -> None: ...


def create_matcher(key: str, value: str, is_regex: bool) -> Matcher:
    return Matcher(name=key, value=value, is_regex=is_regex)


def create_default_matchers() -> list[Matcher]:
    """Matchers silencing non-critical alerts in platform namespaces."""
    return [
        create_matcher("severity", "(warning|info)", True),
        create_matcher("namespace", "(^openshift.*|^kube.*|^redhat.*|^default$)", True),
    ]


def _active(silence: Silence) -> bool:
    return silence.state == SILENCE_STATE_ACTIVE


def _equals_comment(comment: str) -> SilencePredicate:
    return lambda silence: silence.comment == comment


def _contains_comment(comment: str) -> SilencePredicate:
    return lambda silence: comment in silence.comment


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


class AlertManagerMaintenance:
    """Starts and ends maintenance windows through an Alertmanager silencer."""

    def __init__(self, silencer: AlertManagerSilencer, operator_name: str = OPERATOR_NAME) -> None:
        self.silencer = silencer
        self.operator_name = operator_name

    def _created_by_operator(self, silence: Silence) -> bool:
        return silence.created_by == self.operator_name

    def start_control_plane(
        self, ends_at: datetime, version: str, ignored_critical_alerts: Iterable[str]
    ) -> None:
        """Silence alerts for a control plane upgrade to ``version`` until ``ends_at``."""
        ignored = list(ignored_critical_alerts)
        default_comment = (
            f"Silence for {CONTROL_PLANE_SILENCE_COMMENT_ID} upgrade to version {version}"
        )
        default_exists = bool(self.silencer.filter(_equals_comment(default_comment)))

        critical_comment = (
            f"Silence for critical alerts during {CONTROL_PLANE_SILENCE_COMMENT_ID} "
            f"upgrade to version {version}"
        )
        critical_exists = bool(self.silencer.filter(_equals_comment(critical_comment)))

        if default_exists and critical_exists:
            return

        now = datetime.now(timezone.utc)
        end = _utc(ends_at)
        if not default_exists:
            self.silencer.create(
                create_default_matchers(), now, end, self.operator_name, default_comment
            )
        if not critical_exists and ignored:
            regex = "(" + "|".join(ignored) + ")"
            self.silencer.create(
                [create_matcher("alertname", regex, True)],
                now,
                end,
                self.operator_name,
                critical_comment,
            )

    def set_worker(self, ends_at: datetime, version: str, count: int) -> None:
        """Ensure a worker silence exists that records ``count`` remaining nodes."""
        comment = f"Silence for {WORKER_SILENCE_COMMENT_ID} upgrade to version {version}"
        full_comment = f"{comment} with remaining {count} nodes"
        if self.silencer.filter(_equals_comment(full_comment)):
            return

        old_silences = self.silencer.filter(_active, _contains_comment(comment))
        if old_silences:
            self.silencer.delete(old_silences[0].id)
        now = datetime.now(timezone.utc)
        self.silencer.create(
            create_default_matchers(), now, _utc(ends_at), self.operator_name, full_comment
        )

    def end_control_plane(self) -> None:
        self.end_silences(CONTROL_PLANE_SILENCE_COMMENT_ID)

    def end_worker(self) -> None:
        self.end_silences(WORKER_SILENCE_COMMENT_ID)

    def end_silences(self, comment: str) -> None:
        """Delete every active operator silence whose comment contains ``comment``."""
        silences = self.silencer.filter(
            self._created_by_operator, _active, _contains_comment(comment)
        )
        errors: list[Exception] = []
        for silence in silences:
            try:
                self.silencer.delete(silence.id)
            except Exception as exc:  # keep deleting the rest
                errors.append(exc)
        if errors:
            message = "; ".join(str(err) for err in errors)
            raise MaintenanceError(
                f"{len(errors)} error(s) occurred deleting silences: {message}"
            ) from errors[0]

    def is_active(self) -> bool:
        """Return True when any active silence was created by the operator."""
        return bool(self.silencer.filter(_active, self._created_by_operator))