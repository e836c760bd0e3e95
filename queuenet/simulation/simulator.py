"""
Discrete-event simulation kernel for queueing networks.

The simulator pops events from the future-event list in time order and
dispatches each one to the state machine of the node it targets. Node
state changes may schedule further events (departures, routed arrivals,
the end of an outage, the next generated job).
"""

import logging
import time as wallclock
from dataclasses import dataclass, field

from .criteria import EndCriterion, should_end, validate_criteria
from .errors import ConfigurationError, SimulationError
from .events import Event, EventQueue, EventType
from .metrics import NodeStatsSnapshot
from .network import Network
from .node import INFINITE, NodeState
from .rng import Rng

logger = logging.getLogger(__name__)


def check_termination(network: Network, criteria: tuple[EndCriterion, ...]) -> None:
    """Fail fast on runs that could never end or reference unknown nodes.

    Raises:
        ConfigurationError: If a criterion names an unknown node, or a node
            generates jobs forever and no criterion is given.
    """
    validate_criteria(criteria, network)
    unbounded = [node.name for node in network if node.spawn_arrivals == INFINITE]
    if unbounded and not criteria:
        raise ConfigurationError(
            f"Nodes {unbounded} generate jobs forever; at least one end criterion is needed"
        )


@dataclass(frozen=True)
class RunResult:
    """Result of one simulation run.

    Attributes:
        seed: Initial seed of the generator used by the run.
        simulation_time: Time of the last processed event.
        elapsed_ms: Wall-clock duration of the run in milliseconds.
        nodes: Final statistics per node name, in network order.
        events_processed: Number of events dispatched.
        end_reason: "no_events", or the criterion that stopped the run.
        event_log: Processed events (only if logging was enabled).
    """

    seed: int
    simulation_time: float
    elapsed_ms: float
    nodes: dict[str, NodeStatsSnapshot]
    events_processed: int = 0
    end_reason: str = "no_events"
    event_log: list[Event] = field(default_factory=list, compare=False, repr=False)

    def node(self, name: str) -> NodeStatsSnapshot:
        return self.nodes[name]

    def __repr__(self) -> str:
        return (
            f"RunResult(seed={self.seed}, time={self.simulation_time:.4f}, "
            f"events={self.events_processed}, nodes={list(self.nodes)})"
        )


class Simulator:
    """Runs one simulation of a network to completion.

    A simulator is single-use: once ``end_simulation`` has produced a
    result its node states are discarded and it refuses further work.

    Args:
        network: Topology to simulate. Not modified.
        rng: Generator owned by this run.
        criteria: End criteria; the run stops when any of them holds.
        log_events: Whether to keep a log of all processed events.

    Raises:
        ConfigurationError: If a criterion names an unknown node, or a node
            generates jobs forever and no criterion is given.
    """

    def __init__(
        self,
        network: Network,
        rng: Rng,
        criteria: tuple[EndCriterion, ...] = (),
        log_events: bool = False,
    ):
        criteria = tuple(criteria)
        check_termination(network, criteria)

        self.network = network
        self.rng = rng
        self.seed = rng.seed
        self.criteria = criteria
        self.log_events = log_events

        self.time = 0.0
        self.events_processed = 0
        self.event_queue = EventQueue()
        self.event_log: list[Event] = []
        self.states: list[NodeState] = network.build_node_states()
        self._by_name = {state.config.name: state for state in self.states}
        self._started = wallclock.perf_counter()
        self._ended = False

        # Initial arrivals for every node that generates jobs
        for state in self.states:
            self.add_to_fel(state.spawn_arrival_if_possible(0.0))

    def node_state(self, name: str) -> NodeState:
        """Current state of the node called ``name``."""
        try:
            return self._by_name[name]
        except KeyError:
            raise ConfigurationError(f"Unknown node {name!r}") from None

    def future_events(self) -> list[Event]:
        """Copy of the pending events in firing order."""
        return self.event_queue.events()

    def add_to_fel(self, event: Event | None) -> None:
        """Schedule ``event``; None is ignored.

        Scheduled arrivals count against the target node's capacity
        until they are processed.
        """
        if event is None:
            return
        if event.event_type == EventType.ARRIVAL:
            self.states[event.node_index].pending_arrivals += 1
        self.event_queue.push(event)

    def has_ended(self) -> bool:
        """True when no events remain or any end criterion holds."""
        return self._end_reason() is not None

    def _end_reason(self) -> str | None:
        if self.event_queue.is_empty():
            return "no_events"
        for criterion in self.criteria:
            if should_end(criterion, self):
                return str(criterion)
        return None

    def process_next_event(self) -> Event:
        """Pop the next event and apply it to its node.

        Returns:
            The processed event.

        Raises:
            SimulationError: If the run is over or no events remain.
        """
        if self._ended:
            raise SimulationError("Simulation has already ended")
        event = self.event_queue.pop()
        if event is None:
            raise SimulationError("No more events to process")

        state = self.states[event.node_index]
        self.time = event.time
        self.events_processed += 1
        if self.log_events:
            self.event_log.append(event)

        if event.event_type == EventType.ARRIVAL:
            state.pending_arrivals -= 1
            state.update_arrival(self.time)
            self.add_to_fel(state.spawn_departure_if_possible(self.time, self.rng))

        elif event.event_type == EventType.DEPARTURE:
            state.update_departure(self.time)
            self.add_to_fel(state.spawn_unavailable_if_possible(self.time, self.rng))
            self.add_to_fel(state.spawn_departure_if_possible(self.time, self.rng))
            self._route(state)
            self.add_to_fel(state.spawn_arrival_if_possible(self.time))

        elif event.event_type == EventType.BECOMES_AVAILABLE:
            state.update_available(self.time)
            self.add_to_fel(state.spawn_departure_if_possible(self.time, self.rng))

        return event

    def _route(self, state: NodeState) -> None:
        """Send the departed job to a child unless its queue is full."""
        arrival = state.spawn_arrival_to_child(self.time, self.rng)
        if arrival is None:
            return
        child = self.states[arrival.node_index]
        if child.is_queue_full():
            child.dropped += 1
            return
        self.add_to_fel(arrival)

    def run(self) -> RunResult:
        """Process events until the run ends and return its result."""
        logger.debug("Run started: seed=%d, nodes=%d", self.seed, len(self.states))
        while not self.has_ended():
            self.process_next_event()
        return self.end_simulation()

    def end_simulation(self) -> RunResult:
        """Finish the run and snapshot every node's statistics.

        Raises:
            SimulationError: If the run was already finished.
        """
        if self._ended:
            raise SimulationError("Simulation has already ended")
        elapsed_ms = (wallclock.perf_counter() - self._started) * 1000.0
        end_reason = self._end_reason() or "stopped"
        self._ended = True

        dropped = sum(state.dropped for state in self.states)
        logger.debug(
            "Run finished: seed=%d, time=%.4f, events=%d, dropped=%d, reason=%s",
            self.seed,
            self.time,
            self.events_processed,
            dropped,
            end_reason,
        )

        nodes = {state.config.name: state.stats.snapshot() for state in self.states}
        self.states = []
        self._by_name = {}
        return RunResult(
            seed=self.seed,
            simulation_time=self.time,
            elapsed_ms=elapsed_ms,
            nodes=nodes,
            events_processed=self.events_processed,
            end_reason=end_reason,
            event_log=self.event_log if self.log_events else [],
        )


def simulate(
    network: Network,
    rng: Rng,
    criteria: tuple[EndCriterion, ...] = (),
) -> RunResult:
    """Run a single simulation of ``network`` with ``rng``."""
    return Simulator(network, rng, criteria).run()
