"""
Tests for node configuration, node state and network topology.
"""

import logging
import math

import pytest

from queuenet.examples import net1, net2
from queuenet.simulation import (
    INFINITE,
    ConfigurationError,
    Constant,
    EventType,
    Exponential,
    Network,
    NodeConfig,
    NormalBoxMuller,
    Rng,
    UnavailableTime,
)


class FixedRng(Rng):
    """Returns the same uniform on every draw."""

    def __init__(self, value: float):
        super().__init__(1)
        self.value = value
        self.draws = 0

    def random(self) -> float:
        self.draws += 1
        return self.value


# =============================================================================
# Node Config Tests
# =============================================================================


class TestNodeConfig:
    def test_defaults(self):
        node = NodeConfig("Queue", Exponential(1.0))
        assert node.max_servers == 1
        assert node.max_queue == 100
        assert node.spawn_arrivals == 0
        assert node.unavailable is None
        assert not node.generates_arrivals

    def test_factories(self):
        source = NodeConfig.source("Source", Exponential(1.0))
        assert source.spawn_arrivals == INFINITE
        assert NodeConfig.terminal("Terminal", 500, Exponential(2.0)).spawn_arrivals == 500
        queue = NodeConfig.queue("Queue", 3, Exponential(2.0), UnavailableTime(0.1, Constant(1.0)))
        assert queue.max_servers == 3
        assert queue.unavailable is not None

    def test_servers_clamped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="queuenet.simulation.node"):
            node = NodeConfig("Queue", Exponential(1.0), max_servers=0)
        assert node.max_servers == 1
        assert "clamped" in caplog.text

    def test_negative_spawn_means_unbounded(self, caplog):
        with caplog.at_level(logging.WARNING, logger="queuenet.simulation.node"):
            node = NodeConfig("Source", Exponential(1.0), spawn_arrivals=-1)
        assert node.spawn_arrivals == INFINITE
        assert "unbounded" in caplog.text

    def test_queue_raised_to_servers(self):
        node = NodeConfig("Queue", Exponential(1.0), max_servers=5, max_queue=2)
        assert node.max_queue == 5

    def test_unbounded_servers(self):
        node = NodeConfig("Delay", Exponential(1.0), max_servers=INFINITE, max_queue=INFINITE)
        assert math.isinf(node.max_servers)

    def test_missing_service(self):
        with pytest.raises(ConfigurationError):
            NodeConfig("Queue", None)

    def test_describe(self):
        node = NodeConfig.queue("Queue", 5, NormalBoxMuller(3.2, 0.6), UnavailableTime(0.1, Exponential(1.0)))
        assert node.describe() == (
            "Queue[servers:5, queue:100, spawn:0, NormalBoxMuller(mean=3.2, std=0.6), "
            "u:UnavailableTime(probability=0.1, distribution=Exponential(rate=1.0))]"
        )
        source = NodeConfig.source("Source", Exponential(1.0))
        assert source.describe() == "Source[servers:1, queue:100, spawn:inf, Exponential(rate=1.0)]"


# =============================================================================
# Network Tests
# =============================================================================


def make_network() -> Network:
    network = Network()
    network.add_node(NodeConfig.source("A", Exponential(1.0)))
    network.add_node(NodeConfig.queue("B", 1, Exponential(2.0)))
    network.add_node(NodeConfig.queue("C", 1, Exponential(2.0)))
    return network


class TestNetwork:
    def test_add_node_returns_index(self):
        network = Network()
        assert network.add_node(NodeConfig("A", Constant(1.0))) == 0
        assert network.add_node(NodeConfig("B", Constant(1.0))) == 1
        assert network.size == 2
        assert len(network) == 2

    def test_duplicate_node(self):
        network = make_network()
        with pytest.raises(ConfigurationError):
            network.add_node(NodeConfig("A", Constant(1.0)))

    def test_lookup(self):
        network = make_network()
        assert network.index_of("C") == 2
        assert network.node(1).name == "B"
        assert network.node_by_name("A").name == "A"
        assert [node.name for node in network] == ["A", "B", "C"]
        with pytest.raises(ConfigurationError):
            network.index_of("Missing")

    def test_connections(self):
        network = make_network()
        network.add_connection(0, 1, 1.0)
        network.add_connection("A", "C", 3.0)
        children = network.children(0)
        assert [(c.index, c.weight) for c in children] == [(1, 1.0), (2, 3.0)]
        assert network.children("B") == []

    def test_connection_replaces_existing_edge(self):
        network = make_network()
        network.add_connection(0, 1, 1.0)
        network.add_connection(0, 1, 4.0)
        assert [(c.index, c.weight) for c in network.children(0)] == [(1, 4.0)]

    def test_children_is_a_copy(self):
        network = make_network()
        network.add_connection(0, 1, 1.0)
        network.children(0).clear()
        assert len(network.children(0)) == 1

    def test_invalid_connections(self):
        network = make_network()
        with pytest.raises(ConfigurationError):
            network.add_connection(0, 1, 0.0)
        with pytest.raises(ConfigurationError):
            network.add_connection(0, 1, -1.0)
        with pytest.raises(ConfigurationError):
            network.add_connection(0, 7, 1.0)
        with pytest.raises(ConfigurationError):
            network.add_connection("A", "Missing", 1.0)

    def test_normalize_weights(self):
        network = make_network()
        network.add_connection(0, 1, 1.0)
        network.add_connection(0, 2, 3.0)
        network.normalize_weights()
        assert [c.weight for c in network.children(0)] == [0.25, 0.75]

    def test_describe_examples(self):
        assert net1().describe() == (
            "Source[servers:1, queue:100, spawn:10000, Exponential(rate=0.2222222222222222)] -> Queue(1.0)\n"
            "Queue[servers:1, queue:100, spawn:0, NormalBoxMuller(mean=3.2, std=0.6)] -"
        )
        assert net2().describe().splitlines()[2] == (
            "Service2[servers:1, queue:100, spawn:0, Exponential(rate=3.5), "
            "u:UnavailableTime(probability=0.1, distribution=Exponential(rate=10.0))] -"
        )


# =============================================================================
# Node State Tests
# =============================================================================


class TestNodeState:
    def test_fresh_state(self):
        state = make_network().build_node_states()[1]
        assert state.index == 1
        assert state.busy == 0
        assert state.unavailable == 0
        assert not state.has_requests()
        assert state.can_serve()
        assert not state.is_queue_full()

    def test_spawn_limit(self):
        network = Network()
        network.add_node(NodeConfig.terminal("T", 2, Constant(1.0)))
        state = network.build_node_states()[0]
        assert state.should_spawn_arrival()
        state.update_arrival(0.0)
        state.update_arrival(0.0)
        assert not state.should_spawn_arrival()
        assert state.spawn_arrival_if_possible(1.0) is None

    def test_queue_full(self):
        network = Network()
        network.add_node(NodeConfig("Q", Constant(1.0), max_queue=2))
        state = network.build_node_states()[0]
        state.update_arrival(0.0)
        assert not state.is_queue_full()
        state.update_arrival(0.0)
        assert state.is_queue_full()

    def test_departure_starts_service(self):
        network = Network()
        network.add_node(NodeConfig("Q", Constant(2.0), max_servers=2))
        state = network.build_node_states()[0]
        rng = FixedRng(0.5)

        state.update_arrival(1.0)
        event = state.spawn_departure_if_possible(1.0, rng)
        assert event.event_type == EventType.DEPARTURE
        assert event.time == 3.0
        assert event.started_time == 1.0
        assert state.busy == 1
        # Only one queued job: no second service
        assert state.spawn_departure_if_possible(1.0, rng) is None

    def test_unavailability_blocks_service(self):
        network = Network()
        network.add_node(NodeConfig("Q", Constant(1.0), unavailable=UnavailableTime(1.0, Constant(4.0))))
        state = network.build_node_states()[0]
        rng = FixedRng(0.5)

        event = state.spawn_unavailable_if_possible(0.0, rng)
        assert event.event_type == EventType.BECOMES_AVAILABLE
        assert event.time == 4.0
        assert state.unavailable == 1
        state.update_arrival(1.0)
        assert not state.can_serve()
        assert state.spawn_departure_if_possible(1.0, rng) is None

    def test_no_unavailability_draws_nothing(self):
        state = make_network().build_node_states()[1]
        rng = FixedRng(0.5)
        assert state.spawn_unavailable_if_possible(0.0, rng) is None
        assert rng.draws == 0

    def test_weighted_routing(self):
        network = make_network()
        network.add_connection(0, 1, 1.0)
        network.add_connection(0, 2, 3.0)
        state = network.build_node_states()[0]

        assert state.spawn_arrival_to_child(5.0, FixedRng(0.2)).node_index == 1
        assert state.spawn_arrival_to_child(5.0, FixedRng(0.5)).node_index == 2
        event = state.spawn_arrival_to_child(5.0, FixedRng(0.99))
        assert event.node_index == 2
        assert event.event_type == EventType.ARRIVAL
        assert event.time == 5.0

    def test_routing_exit_node_draws_nothing(self):
        state = make_network().build_node_states()[2]
        rng = FixedRng(0.5)
        assert state.spawn_arrival_to_child(1.0, rng) is None
        assert rng.draws == 0

    def test_distributions_copied_per_state(self):
        network = Network()
        network.add_node(NodeConfig("Q", NormalBoxMuller(3.2, 0.6)))
        first = network.build_node_states()[0]
        second = network.build_node_states()[0]
        rng = Rng(5)
        first.update_arrival(0.0)
        first.spawn_departure_if_possible(0.0, rng)
        # The first state cached a companion deviate; the second starts clean
        assert first._service._cached is not None
        assert second._service._cached is None
        assert network.node(0).service._cached is None
