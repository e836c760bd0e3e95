"""
Discrete-event simulation package for queueing networks.

This package provides the random number streams, distributions, node state
machine and simulation kernel used to run a network of service stations.
"""

from .rng import Rng, RngStreams, lehmer_step, DEFAULT_SEED, MAX_STREAMS
from .distributions import (
    Distribution,
    Constant,
    Exponential,
    Uniform,
    Erlang,
    Normal,
    NormalBoxMuller,
    HyperExponential,
    UnavailableTime,
    positive_sample,
)
from .node import INFINITE, NodeConfig, NodeState
from .network import Connection, Network
from .events import EventType, Event, EventQueue
from .metrics import STATISTICS, NodeStats, NodeStatsSnapshot
from .criteria import (
    EndCriterion,
    MaxArrivals,
    MaxDepartures,
    MaxTime,
    parse_end_criteria,
    format_end_criteria,
)
from .simulator import Simulator, RunResult, simulate
from .errors import (
    ConfigurationError,
    CriteriaParseError,
    RecordFormatError,
    StatisticsError,
    SimulationError,
)

__all__ = [
    # Random numbers
    "Rng",
    "RngStreams",
    "lehmer_step",
    "DEFAULT_SEED",
    "MAX_STREAMS",
    # Distributions
    "Distribution",
    "Constant",
    "Exponential",
    "Uniform",
    "Erlang",
    "Normal",
    "NormalBoxMuller",
    "HyperExponential",
    "UnavailableTime",
    "positive_sample",
    # Node
    "INFINITE",
    "NodeConfig",
    "NodeState",
    # Network
    "Connection",
    "Network",
    # Events
    "EventType",
    "Event",
    "EventQueue",
    # Metrics
    "STATISTICS",
    "NodeStats",
    "NodeStatsSnapshot",
    # End criteria
    "EndCriterion",
    "MaxArrivals",
    "MaxDepartures",
    "MaxTime",
    "parse_end_criteria",
    "format_end_criteria",
    # Simulator
    "Simulator",
    "RunResult",
    "simulate",
    # Errors
    "ConfigurationError",
    "CriteriaParseError",
    "RecordFormatError",
    "StatisticsError",
    "SimulationError",
]
