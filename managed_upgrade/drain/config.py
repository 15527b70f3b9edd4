"""Node drain settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

DEFAULT_EXPECTED_NODE_DRAIN_MINUTES = 8


@dataclass
class NodeDrain:
    """Timeouts and namespace exclusions used while draining a node.

    ``timeout`` and ``expected_node_drain_time`` are in minutes.
    """

    disable_drain_strategies: bool = False
    timeout: int = 0
    expected_node_drain_time: int = DEFAULT_EXPECTED_NODE_DRAIN_MINUTES
    ignored_namespace_patterns: list[str] = field(default_factory=list)

    def timeout_duration(self) -> timedelta:
        """The drain timeout as a duration."""
        return timedelta(minutes=self.timeout)

    def expected_drain_duration(self) -> timedelta:
        """The time a drain is expected to take, as a duration."""
        return timedelta(minutes=self.expected_node_drain_time)