"""
Node model for the queueing network simulator.

Defines node configuration (static capacity and distributions) and node
state (the mutable queue and server counters that change during a run).
"""

from __future__ import annotations

import copy
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .distributions import Distribution, positive_sample
from .errors import ConfigurationError
from .events import Event
from .metrics import NodeStats
from .rng import Rng

if TYPE_CHECKING:
    from .network import Connection

logger = logging.getLogger(__name__)

# Unbounded servers, queue capacity or spawn count
INFINITE = math.inf

DEFAULT_QUEUE = 100


def _format_count(value: float) -> str:
    return "inf" if value == INFINITE else str(int(value))


@dataclass(frozen=True)
class NodeConfig:
    """Static configuration for a node.

    Out-of-range capacities are clamped rather than rejected, and every
    clamp is logged as a warning.

    Attributes:
        name: Unique name of the node in its network.
        service: Service time distribution. For a node that generates jobs
            this is also the time between generated jobs.
        max_servers: Concurrent servers (>= 1, or INFINITE). Values <= 0
            are clamped to 1.
        max_queue: Queue capacity including jobs in service. Values below
            ``max_servers`` are raised to ``max_servers``.
        spawn_arrivals: Jobs the node generates by itself. 0 means none,
            INFINITE means no limit; negative values mean INFINITE.
        unavailable: Optional outage distribution sampled after every
            departure (usually an ``UnavailableTime``).
    """

    name: str
    service: Distribution
    max_servers: float = 1
    max_queue: float = DEFAULT_QUEUE
    spawn_arrivals: float = 0
    unavailable: Distribution | None = None

    def __post_init__(self) -> None:
        if self.service is None:
            raise ConfigurationError(f"Node {self.name!r} needs a service distribution")

        # Use object.__setattr__ since dataclass is frozen
        if self.max_servers <= 0:
            logger.warning("Node %r: max_servers=%s clamped to 1", self.name, self.max_servers)
            object.__setattr__(self, "max_servers", 1)
        if self.spawn_arrivals < 0:
            logger.warning(
                "Node %r: spawn_arrivals=%s treated as unbounded", self.name, self.spawn_arrivals
            )
            object.__setattr__(self, "spawn_arrivals", INFINITE)
        if self.max_queue < self.max_servers:
            logger.warning(
                "Node %r: max_queue=%s raised to max_servers=%s",
                self.name,
                self.max_queue,
                self.max_servers,
            )
            object.__setattr__(self, "max_queue", self.max_servers)

    @classmethod
    def source(cls, name: str, distribution: Distribution) -> NodeConfig:
        """Node that generates jobs forever."""
        return cls(name, distribution, spawn_arrivals=INFINITE)

    @classmethod
    def terminal(cls, name: str, spawn_arrivals: int, service: Distribution) -> NodeConfig:
        """Node that generates a fixed number of jobs."""
        return cls(name, service, spawn_arrivals=spawn_arrivals)

    @classmethod
    def queue(
        cls,
        name: str,
        max_servers: float,
        service: Distribution,
        unavailable: Distribution | None = None,
    ) -> NodeConfig:
        """Service station that only receives routed jobs."""
        return cls(name, service, max_servers=max_servers, unavailable=unavailable)

    @property
    def generates_arrivals(self) -> bool:
        return self.spawn_arrivals > 0

    def describe(self) -> str:
        """One-line description, e.g. ``Queue[servers:1, queue:100, spawn:0, ...]``."""
        text = (
            f"{self.name}[servers:{_format_count(self.max_servers)}, "
            f"queue:{_format_count(self.max_queue)}, "
            f"spawn:{_format_count(self.spawn_arrivals)}, {self.service!r}"
        )
        if self.unavailable is not None:
            text += f", u:{self.unavailable!r}"
        return text + "]"


@dataclass
class NodeState:
    """Dynamic state of a node during one simulation run.

    Distributions are deep-copied from the config so stateful samplers
    (Box-Muller) start fresh each run and are never shared between runs.

    Attributes:
        index: Position of the node in the network.
        config: Static configuration for the node.
        children: Outgoing connections used for routing.
        busy: Servers currently serving a job.
        unavailable: Servers currently out of service.
        queue: Arrival times of the jobs at the node, oldest first.
        stats: Statistics accumulated so far.
        pending_arrivals: Arrivals scheduled here but not processed yet.
        dropped: Jobs routed here and discarded because the queue was full.
    """

    index: int
    config: NodeConfig
    children: list[Connection] = field(default_factory=list)
    busy: int = 0
    unavailable: int = 0
    queue: deque[float] = field(default_factory=deque)
    stats: NodeStats = field(default_factory=NodeStats)
    pending_arrivals: int = 0
    dropped: int = 0

    def __post_init__(self) -> None:
        self._service = copy.deepcopy(self.config.service)
        self._unavailable = copy.deepcopy(self.config.unavailable)

    def can_serve(self) -> bool:
        """A server is neither busy nor out of service."""
        return self.config.max_servers > self.busy + self.unavailable

    def has_requests(self) -> bool:
        """Some queued job is not in service yet."""
        return len(self.queue) > self.busy

    def should_spawn_arrival(self) -> bool:
        return self.config.spawn_arrivals > self.stats.num_arrivals

    def is_queue_full(self) -> bool:
        """Queued jobs plus scheduled arrivals have reached capacity."""
        return len(self.queue) + self.pending_arrivals >= self.config.max_queue

    # -- state updates ---------------------------------------------------

    def update_arrival(self, time: float) -> None:
        """Queue a job arriving at ``time``."""
        self.queue.append(time)
        self.stats.update_arrival(time, len(self.queue))
        self.stats.update_times(time, self.busy, self.unavailable, self.config.max_servers)

    def update_departure(self, time: float) -> None:
        """Release the oldest job and the server that served it."""
        arrival_time = self.queue.popleft()
        self.stats.update_departure(time, arrival_time)
        self.stats.update_times(time, self.busy, self.unavailable, self.config.max_servers)
        self.busy -= 1

    def update_available(self, time: float) -> None:
        """End one outage period."""
        self.stats.update_times(time, self.busy, self.unavailable, self.config.max_servers)
        self.unavailable -= 1

    # -- event generation ------------------------------------------------

    def spawn_departure_if_possible(self, time: float, rng: Rng) -> Event | None:
        """Start serving the next queued job if a server is free.

        Returns:
            The departure event, or None if no service can start.
        """
        if self.can_serve() and self.has_requests():
            self.busy += 1
            delay = positive_sample(self._service, rng)
            return Event.departure(self.index, time + delay, time)
        return None

    def spawn_unavailable_if_possible(self, time: float, rng: Rng) -> Event | None:
        """Maybe take a server out of service.

        Draws no uniforms when the node has no outage distribution.

        Returns:
            The event ending the outage, or None if no outage starts.
        """
        delay = positive_sample(self._unavailable, rng)
        if delay > 0:
            self.unavailable += 1
            return Event.becomes_available(self.index, time + delay, time)
        return None

    def spawn_arrival_to_child(self, time: float, rng: Rng) -> Event | None:
        """Pick a child by weight and send the departed job there.

        Draws one uniform only when the node has children. Weights need not
        be normalized.

        Returns:
            Arrival event at the chosen child, or None for an exit node.
        """
        if not self.children:
            return None
        total = sum(child.weight for child in self.children)
        remaining = rng.random() * total
        for child in self.children:
            remaining -= child.weight
            if remaining <= 0:
                return Event.arrival(child.index, time, time)
        # Rounding left a sliver above zero: the last child takes it
        return Event.arrival(self.children[-1].index, time, time)

    def spawn_arrival_if_possible(self, time: float) -> Event | None:
        """Schedule the node's own next job while below its spawn limit."""
        if self.should_spawn_arrival():
            return Event.arrival(self.index, time, time)
        return None

    def __repr__(self) -> str:
        return (
            f"NodeState({self.config.name}, queue={len(self.queue)}, "
            f"busy={self.busy}, unavailable={self.unavailable})"
        )
