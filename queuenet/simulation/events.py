"""
Event system for the queueing network simulator.

Provides event types, the event dataclass, and the future-event list that
hands events back in time order.
"""

from dataclasses import dataclass, field
from enum import Enum
import heapq


class EventType(Enum):
    """Types of events that can occur at a node."""

    ARRIVAL = "arrival"  # A job joins the node's queue
    DEPARTURE = "departure"  # A server finishes a job
    BECOMES_AVAILABLE = "becomes_available"  # An outage period ends


@dataclass(frozen=True, order=True)
class Event:
    """A simulation event scheduled to occur at a specific time.

    Events are ordered by time only.

    Attributes:
        time: When the event fires.
        event_type: Type of event (not used for ordering).
        node_index: Index of the target node in the network.
        started_time: When the event was scheduled (not used for ordering).
    """

    time: float
    event_type: EventType = field(compare=False)
    node_index: int = field(compare=False)
    started_time: float = field(default=0.0, compare=False)

    @classmethod
    def arrival(cls, node_index: int, time: float, started_time: float | None = None) -> "Event":
        return cls(time, EventType.ARRIVAL, node_index, time if started_time is None else started_time)

    @classmethod
    def departure(cls, node_index: int, time: float, started_time: float) -> "Event":
        return cls(time, EventType.DEPARTURE, node_index, started_time)

    @classmethod
    def becomes_available(cls, node_index: int, time: float, started_time: float) -> "Event":
        return cls(time, EventType.BECOMES_AVAILABLE, node_index, started_time)

    def __repr__(self) -> str:
        return f"Event({self.time:.4f}, {self.event_type.value}, node={self.node_index})"


class EventQueue:
    """Future-event list: a min-heap of events keyed by time.

    Each pushed event is stamped with an incrementing sequence number, so
    events with equal times come out in the order they were scheduled. This
    keeps runs bit-reproducible.
    """

    def __init__(self) -> None:
        # Heap entries: (event.time, seq, event)
        self._heap: list[tuple[float, int, Event]] = []
        self._counter = 0

    def push(self, event: Event) -> None:
        """Add an event to the queue.

        Args:
            event: Event to schedule.
        """
        seq = self._counter
        self._counter += 1
        heapq.heappush(self._heap, (event.time, seq, event))

    def pop(self) -> Event | None:
        """Remove and return the next event.

        Returns:
            Next event by time, or None if queue is empty.
        """
        if not self._heap:
            return None
        _time, _seq, event = heapq.heappop(self._heap)
        return event

    def peek(self) -> Event | None:
        """Return the next event without removing it."""
        if not self._heap:
            return None
        return self._heap[0][2]

    def events(self) -> list[Event]:
        """Snapshot of the pending events in firing order."""
        return [event for _time, _seq, event in sorted(self._heap)]

    def is_empty(self) -> bool:
        """Check if queue has no pending events."""
        return not self._heap

    def __len__(self) -> int:
        return len(self._heap)

    def __repr__(self) -> str:
        return f"EventQueue({len(self._heap)} events)"
