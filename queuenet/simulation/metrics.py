"""
Per-node statistics collection for the queueing network simulator.

``NodeStats`` accumulates counters and time sums while a run is in
progress; ``NodeStatsSnapshot`` is the frozen copy handed out in results.
``STATISTICS`` is the fixed, ordered list of statistic names used for
aggregation and export. Reordering it breaks previously exported records.
"""

from dataclasses import dataclass

from .errors import StatisticsError

STATISTICS: tuple[str, ...] = (
    "num_arrivals",
    "num_departures",
    "avg_queue_length",
    "max_queue_length",
    "avg_wait_time",
    "avg_response",
    "busy_time",
    "wait_time",
    "unavailable_time",
    "response_time",
    "last_event_time",
    "throughput",
    "utilization",
    "unavailable",
)


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


@dataclass
class NodeStats:
    """Collects statistics for one node during a simulation run.

    Counters are kept as floats so that snapshots, averages and variances
    share one numeric type.

    Attributes:
        num_arrivals: Jobs that joined the node's queue.
        num_departures: Jobs whose service completed.
        avg_queue_length: Mean queue length seen by arriving jobs
            (the arriving job included).
        max_queue_length: Largest queue length seen by an arriving job.
        busy_time: Time during which at least one server was busy.
        unavailable_time: Time during which every server was out of service.
        response_time: Sum of (departure - arrival) over departed jobs.
        wait_time: ``response_time - busy_time``.
        last_event_time: Time of the last event processed by this node.
        avg_wait_time: ``wait_time / num_departures``.
        avg_response: ``response_time / num_departures``.
        throughput: Departures per unit of simulated time.
        utilization: Fraction of simulated time with a busy server.
        unavailable: Fraction of simulated time fully out of service.
    """

    num_arrivals: float = 0.0
    num_departures: float = 0.0
    avg_queue_length: float = 0.0
    max_queue_length: float = 0.0
    busy_time: float = 0.0
    unavailable_time: float = 0.0
    response_time: float = 0.0
    wait_time: float = 0.0
    last_event_time: float = 0.0

    # Derived, recomputed from the sums above on every timing update
    avg_wait_time: float = 0.0
    avg_response: float = 0.0
    throughput: float = 0.0
    utilization: float = 0.0
    unavailable: float = 0.0

    def update_arrival(self, time: float, queue_length: int) -> None:
        """Record an arrival that left ``queue_length`` jobs at the node.

        Args:
            time: Arrival time.
            queue_length: Queue length including the arriving job.
        """
        total = self.avg_queue_length * self.num_arrivals
        self.num_arrivals += 1
        self.avg_queue_length = (total + queue_length) / self.num_arrivals
        self.max_queue_length = max(self.max_queue_length, float(queue_length))

    def update_departure(self, time: float, arrival_time: float) -> None:
        """Record a departure of the job that arrived at ``arrival_time``."""
        self.num_departures += 1
        self.response_time += time - arrival_time

    def update_times(
        self,
        time: float,
        busy_servers: int,
        unavailable_servers: int,
        max_servers: float,
    ) -> None:
        """Accrue busy/unavailable time since the last event and refresh
        the derived statistics.

        Must be called with the server counts as they were during the
        interval, i.e. before the event changes them.

        Args:
            time: Current simulation time.
            busy_servers: Servers busy since the last event.
            unavailable_servers: Servers out of service since the last event.
            max_servers: Number of servers at the node.
        """
        elapsed = time - self.last_event_time
        if busy_servers > 0:
            self.busy_time += elapsed
        elif unavailable_servers == max_servers:
            self.unavailable_time += elapsed

        self.wait_time = self.response_time - self.busy_time
        self.avg_wait_time = _ratio(self.wait_time, self.num_departures)
        self.avg_response = _ratio(self.response_time, self.num_departures)
        self.throughput = _ratio(self.num_departures, time)
        self.utilization = _ratio(self.busy_time, time)
        self.unavailable = _ratio(self.unavailable_time, time)

        self.last_event_time = time

    def snapshot(self) -> "NodeStatsSnapshot":
        """Create an immutable snapshot of current statistics."""
        return NodeStatsSnapshot(**{name: getattr(self, name) for name in STATISTICS})

    def __repr__(self) -> str:
        return (
            f"NodeStats(arrivals={self.num_arrivals:.0f}, "
            f"departures={self.num_departures:.0f}, "
            f"avg_response={self.avg_response:.4f}, "
            f"utilization={self.utilization:.4f})"
        )


@dataclass(frozen=True)
class NodeStatsSnapshot:
    """Immutable per-node statistics as returned from a finished run.

    Also used for aggregated values (averages, variances, bounds), where
    every field holds the aggregate of that statistic.
    """

    num_arrivals: float
    num_departures: float
    avg_queue_length: float
    max_queue_length: float
    avg_wait_time: float
    avg_response: float
    busy_time: float
    wait_time: float
    unavailable_time: float
    response_time: float
    last_event_time: float
    throughput: float
    utilization: float
    unavailable: float

    def of(self, statistic: str) -> float:
        """Value of the statistic called ``statistic``.

        Raises:
            StatisticsError: If the name is not one of ``STATISTICS``.
        """
        if statistic not in STATISTICS:
            raise StatisticsError(
                f"Unknown statistic {statistic!r}; expected one of {', '.join(STATISTICS)}"
            )
        return getattr(self, statistic)

    def values(self) -> tuple[float, ...]:
        """All statistics in ``STATISTICS`` order."""
        return tuple(getattr(self, name) for name in STATISTICS)

    @classmethod
    def from_values(cls, values) -> "NodeStatsSnapshot":
        """Build a snapshot from values in ``STATISTICS`` order."""
        values = tuple(float(v) for v in values)
        if len(values) != len(STATISTICS):
            raise StatisticsError(
                f"Expected {len(STATISTICS)} statistic values, got {len(values)}"
            )
        return cls(*values)

    def __repr__(self) -> str:
        return (
            f"NodeStatsSnapshot(arrivals={self.num_arrivals:.0f}, "
            f"departures={self.num_departures:.0f}, "
            f"avg_queue={self.avg_queue_length:.4f}, "
            f"avg_response={self.avg_response:.4f}, "
            f"utilization={self.utilization:.4f})"
        )
