"""
End criteria for simulation runs.

A run stops as soon as any registered criterion holds (or the future-event
list runs dry). Criteria can be built directly or parsed from the compact
text form ``MaxArrivals:Queue,1000;MaxTime:3600``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from .errors import ConfigurationError, CriteriaParseError

if TYPE_CHECKING:
    from .network import Network
    from .simulator import Simulator


@dataclass(frozen=True)
class MaxArrivals:
    """Stop once ``node`` has seen ``count`` arrivals."""

    node: str
    count: int

    def __str__(self) -> str:
        return f"MaxArrivals:{self.node},{self.count}"


@dataclass(frozen=True)
class MaxDepartures:
    """Stop once ``node`` has completed ``count`` jobs."""

    node: str
    count: int

    def __str__(self) -> str:
        return f"MaxDepartures:{self.node},{self.count}"


@dataclass(frozen=True)
class MaxTime:
    """Stop once simulated time reaches ``seconds``."""

    seconds: float

    def __str__(self) -> str:
        return f"MaxTime:{self.seconds}"


EndCriterion = Union[MaxArrivals, MaxDepartures, MaxTime]


def should_end(criterion: EndCriterion, simulator: Simulator) -> bool:
    """Check ``criterion`` against the current state of ``simulator``."""
    match criterion:
        case MaxArrivals(node=node, count=count):
            return simulator.node_state(node).stats.num_arrivals >= count
        case MaxDepartures(node=node, count=count):
            return simulator.node_state(node).stats.num_departures >= count
        case MaxTime(seconds=seconds):
            return simulator.time >= seconds
    raise TypeError(f"Unsupported end criterion: {criterion!r}")


def validate_criteria(criteria: tuple[EndCriterion, ...], network: Network) -> None:
    """Reject criteria that reference nodes missing from ``network``.

    Raises:
        ConfigurationError: On an unknown node, a non-finite or negative
            time limit, or an unsupported criterion.
    """
    for criterion in criteria:
        match criterion:
            case MaxArrivals(node=node) | MaxDepartures(node=node):
                if not network.has_node(node):
                    raise ConfigurationError(f"End criterion {criterion} references unknown node {node!r}")
            case MaxTime(seconds=seconds):
                if not math.isfinite(seconds) or seconds < 0:
                    raise ConfigurationError(
                        f"End criterion {criterion} needs a finite, non-negative time"
                    )
            case _:
                raise ConfigurationError(f"Unsupported end criterion: {criterion!r}")


def _parse_count(segment: str, text: str) -> int:
    try:
        count = int(text)
    except ValueError:
        raise CriteriaParseError(segment, f"{text!r} is not an integer count") from None
    if count < 0:
        raise CriteriaParseError(segment, f"count must be non-negative, got {count}")
    return count


def _parse_segment(segment: str) -> EndCriterion:
    body = segment.strip()
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1].strip()

    kind, sep, params_text = body.partition(":")
    if not sep or ":" in params_text:
        raise CriteriaParseError(segment, "expected 'Kind:param1,param2'")
    kind = kind.strip()
    params = [param.strip() for param in params_text.split(",")]

    if kind in ("MaxArrivals", "MaxDepartures"):
        if len(params) != 2 or not params[0]:
            raise CriteriaParseError(segment, f"{kind} takes a node name and a count")
        count = _parse_count(segment, params[1])
        if kind == "MaxArrivals":
            return MaxArrivals(params[0], count)
        return MaxDepartures(params[0], count)

    if kind == "MaxTime":
        if len(params) != 1:
            raise CriteriaParseError(segment, "MaxTime takes a single duration")
        try:
            seconds = float(params[0])
        except ValueError:
            raise CriteriaParseError(segment, f"{params[0]!r} is not a number") from None
        if not math.isfinite(seconds) or seconds < 0:
            raise CriteriaParseError(segment, f"duration must be finite and non-negative, got {params[0]!r}")
        return MaxTime(seconds)

    raise CriteriaParseError(segment, f"unknown criterion kind {kind!r}")


def parse_end_criteria(text: str | None) -> tuple[EndCriterion, ...]:
    """Parse ``Kind:p1,p2;Kind:p1`` into criteria.

    Each segment may also be wrapped in square brackets. An empty or None
    string yields no criteria.

    Raises:
        CriteriaParseError: Naming the first malformed segment.
    """
    if text is None or not text.strip():
        return ()
    return tuple(_parse_segment(segment) for segment in text.split(";"))


def format_end_criteria(criteria: tuple[EndCriterion, ...]) -> str:
    """Inverse of ``parse_end_criteria``."""
    return ";".join(str(criterion) for criterion in criteria)
