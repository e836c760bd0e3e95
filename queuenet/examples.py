"""
Ready-made example networks.

``net1`` is a source feeding a single-server queue; ``net2`` is a
three-node chain whose last node suffers random outages. Both are used as
end-to-end references in the test suite.
"""

from .simulation.distributions import (
    Distribution,
    Erlang,
    Exponential,
    HyperExponential,
    NormalBoxMuller,
    Uniform,
    UnavailableTime,
)
from .simulation.network import Network
from .simulation.node import NodeConfig


def net1(spawn: int = 10_000, name: str = "Queue", queue_service: Distribution | None = None) -> Network:
    """Source (exponential, mean 4.5) feeding one single-server queue.

    Args:
        spawn: Jobs generated by the source.
        name: Name of the queue node.
        queue_service: Service distribution of the queue; defaults to a
            Box-Muller normal with mean 3.2 and std 0.6.
    """
    if queue_service is None:
        queue_service = NormalBoxMuller(3.2, 0.6)
    network = Network()
    network.add_node(NodeConfig.terminal("Source", spawn, Exponential(1.0 / 4.5)))
    network.add_node(NodeConfig.queue(name, 1, queue_service))
    network.add_connection(0, 1, 1.0)
    return network


def net2(spawn: int = 10_000, name: str = "Service2", last_service: Distribution | None = None) -> Network:
    """Source -> Service -> last node, the last one with random outages.

    After each departure the last node goes out of service with
    probability 0.1 for an exponential time of rate 10.

    Args:
        spawn: Jobs generated by the source.
        name: Name of the last node.
        last_service: Service distribution of the last node; defaults to
            exponential with rate 3.5.
    """
    if last_service is None:
        last_service = Exponential(3.5)
    network = Network()
    network.add_node(NodeConfig.terminal("Source", spawn, Exponential(1.5)))
    network.add_node(NodeConfig.queue("Service", 1, Exponential(2.0)))
    network.add_node(
        NodeConfig.queue(name, 1, last_service, UnavailableTime(0.1, Exponential(10.0)))
    )
    network.add_connection(0, 1, 1.0)
    network.add_connection(1, 2, 1.0)
    return network


def same_mean_distributions(mean: float) -> dict[str, Distribution]:
    """Service distributions that all have the given mean.

    Handy for comparing how service variability alone changes queueing
    statistics.
    """
    return {
        "NormalBoxMuller": NormalBoxMuller(mean, 0.6),
        "Exponential": Exponential(1.0 / mean),
        "Erlang": Erlang(5, 5.0 / mean),
        "Uniform": Uniform(mean - mean * 0.1, mean + mean * 0.1),
        "HyperExponential": HyperExponential(
            [1.0 / (mean * 0.5), 1.0 / (mean * 1.5)],
            [0.5, 0.5],
        ),
    }
