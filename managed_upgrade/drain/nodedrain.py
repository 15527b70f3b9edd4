"""Time-based execution of drain strategies against a cordoned node."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from managed_upgrade.drain.config import NodeDrain
from managed_upgrade.machinery import Machinery, Node


@dataclass
class DrainStrategyResult:
    message: str
    has_executed: bool = False


class DrainError(RuntimeError):
    """A drain could not be carried out."""


class DrainStrategy(Protocol):
    def execute(self, node: Node, logger: logging.Logger) -> DrainStrategyResult: ...

    def is_valid(self, node: Node, logger: logging.Logger) -> bool: ...


@dataclass
class TimedStrategy:
    """A drain strategy that becomes due ``wait_duration`` after the cordon."""

    name: str
    description: str
    wait_duration: timedelta
    strategy: DrainStrategy


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeDrainStrategy:
    """Runs timed drain strategies and decides when a drain has failed."""

    def __init__(
        self,
        cfg: NodeDrain,
        timed_strategies: Sequence[TimedStrategy],
        machinery: Machinery | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.cfg = cfg
        self.timed_strategies = list(timed_strategies)
        self.machinery = machinery or Machinery()
        self._now = now

    def _is_after(self, moment: datetime | None, duration: timedelta) -> bool:
        return moment is not None and moment + duration < self._now()

    def execute(self, node: Node, logger: logging.Logger) -> list[DrainStrategyResult]:
        """Run every strategy whose wait has elapsed since the node was cordoned."""
        cordon = self.machinery.is_node_cordoned(node)
        results: list[DrainStrategyResult] = []
        if not cordon.is_cordoned:
            return results
        if cordon.added_at is None:
            raise DrainError(f"cannot determine drain commencement time for node {node.name}")

        for timed in self.timed_strategies:
            expected = cordon.added_at + timed.wait_duration
            msg = (
                f"drain strategy {timed.name} for node {node.name}, commencing drain at "
                f"{cordon.added_at}, execution expected after {expected}"
            )
            if self._is_after(cordon.added_at, timed.wait_duration):
                logger.info("Executing %s", msg)
                outcome = timed.strategy.execute(node, logger)
                if outcome.has_executed:
                    results.append(
                        DrainStrategyResult(message=f"Executed {msg} . Result: {outcome.message}")
                    )
            else:
                logger.info("Will not yet execute %s", msg)
        return results

    def has_failed(self, node: Node, logger: logging.Logger) -> bool:
        """Decide whether the drain has run past its allowed time."""
        cordon = self.machinery.is_node_cordoned(node)
        added_at = cordon.added_at
        if added_at is None:
            return False

        timeout = self.cfg.timeout_duration()
        if not self.timed_strategies:
            return self._is_after(added_at, timeout)

        ordered = sorted(self.timed_strategies, key=lambda s: s.wait_duration)
        executed = [s for s in ordered if self._is_after(added_at, s.wait_duration)]
        pending = ordered[len(executed):]

        valid_pending = [s for s in pending if s.strategy.is_valid(node, logger)]
        if valid_pending:
            return False

        if executed:
            allowed = executed[-1].wait_duration + self.cfg.expected_drain_duration()
            if allowed > timeout:
                return self._is_after(added_at, allowed)

        return self._is_after(added_at, timeout)