"""
Tests for the Monte Carlo runner.

Covers stream assignment, sequential/parallel agreement, failure
propagation and adaptive runs driven by confidence targets.
"""

import pytest

from queuenet.examples import net1
from queuenet.monte_carlo import (
    MonteCarloConfig,
    MonteCarloRunner,
    run_monte_carlo,
    run_until_confident,
)
from queuenet.simulation import (
    ConfigurationError,
    CriteriaParseError,
    Distribution,
    Exponential,
    MaxArrivals,
    Network,
    NodeConfig,
    RngStreams,
)
from queuenet.statistics import ConfidenceTarget

SEED = 12345


class ExplodingDistribution(Distribution):
    """Fails on the first sample."""

    @property
    def mean(self) -> float:
        return 1.0

    def sample(self, rng):
        raise RuntimeError("sampler exploded")


def make_open_network() -> Network:
    network = Network()
    network.add_node(NodeConfig.source("Source", Exponential(1.0 / 4.5)))
    network.add_node(NodeConfig.queue("Queue", 1, Exponential(1.0 / 3.2)))
    network.add_connection(0, 1, 1.0)
    return network


# =============================================================================
# Configuration Tests
# =============================================================================


class TestMonteCarloConfig:
    def test_defaults(self):
        config = MonteCarloConfig()
        assert config.parallel_workers is None
        assert config.batch_size == 10

    def test_invalid(self):
        with pytest.raises(ConfigurationError):
            MonteCarloConfig(parallel_workers=0)
        with pytest.raises(ConfigurationError):
            MonteCarloConfig(batch_size=0)

    def test_workers_capped_by_runs(self):
        config = MonteCarloConfig(parallel_workers=8)
        assert config.workers_for(3) == 3
        assert config.workers_for(100) == 8


# =============================================================================
# Fixed-Count Run Tests
# =============================================================================


class TestFixedRuns:
    def test_run_i_uses_stream_i(self):
        runner = MonteCarloRunner(net1(spawn=100))
        results = runner.run_results(SEED, 3)
        streams = RngStreams(SEED)
        assert [r.seed for r in results] == [streams.stream_seed(i) for i in range(3)]

    def test_runs_are_independent_of_batch(self):
        runner = MonteCarloRunner(net1(spawn=100))
        together = runner.run_results(SEED, 3)
        alone = runner.run_results(SEED, 1, start=2)
        assert alone[0].nodes == together[2].nodes

    def test_sequential_matches_parallel(self):
        runner = MonteCarloRunner(net1(spawn=200), MonteCarloConfig(parallel_workers=2))
        assert runner.run(SEED, 4) == runner.run_parallel(SEED, 4)

    def test_repeatable(self):
        assert run_monte_carlo(net1(spawn=200), 3, seed=SEED) == run_monte_carlo(net1(spawn=200), 3, seed=SEED)

    def test_different_seeds_differ(self):
        a = run_monte_carlo(net1(spawn=200), 2, seed=1)
        b = run_monte_carlo(net1(spawn=200), 2, seed=2)
        assert a != b

    def test_criteria_objects_and_strings(self):
        runner = MonteCarloRunner(make_open_network())
        by_object = runner.run(SEED, 2, MaxArrivals("Queue", 50))
        by_text = runner.run(SEED, 2, "MaxArrivals:Queue,50")
        assert by_object == by_text
        assert list(by_object.samples("Queue", "num_arrivals")) == [50.0, 50.0]

    def test_bad_criteria_text(self):
        with pytest.raises(CriteriaParseError):
            MonteCarloRunner(make_open_network()).run(SEED, 2, "MaxArrivals:Queue")

    def test_unbounded_network_needs_criteria(self):
        with pytest.raises(ConfigurationError):
            MonteCarloRunner(make_open_network()).run(SEED, 2)

    def test_run_count_limits(self):
        runner = MonteCarloRunner(net1(spawn=10))
        with pytest.raises(ConfigurationError):
            runner.run(SEED, 0)
        with pytest.raises(ConfigurationError):
            runner.run(SEED, 257)
        with pytest.raises(ConfigurationError):
            runner.run_results(SEED, 10, start=250)

    def test_failure_propagates(self):
        network = Network()
        network.add_node(NodeConfig.terminal("Broken", 5, ExplodingDistribution()))
        with pytest.raises(RuntimeError, match="sampler exploded"):
            MonteCarloRunner(network).run(SEED, 3)

    def test_parallel_failure_propagates(self):
        network = Network()
        network.add_node(NodeConfig.terminal("Broken", 5, ExplodingDistribution()))
        runner = MonteCarloRunner(network, MonteCarloConfig(parallel_workers=2))
        with pytest.raises(RuntimeError, match="sampler exploded"):
            runner.run_parallel(SEED, 4)


# =============================================================================
# Adaptive Run Tests
# =============================================================================


class TestRunUntilConfident:
    def test_converges(self):
        target = ConfidenceTarget("Queue", "avg_response", 0.95, 0.15)
        result = run_until_confident(net1(spawn=1000), [target], seed=SEED, max_runs=100)

        assert result.converged
        assert result.relative_errors[target] <= 0.15
        assert result.summary.count == result.total_runs
        assert (result.total_runs - 2) % 10 == 0
        assert "Convergence: yes" in result.report()

    def test_deterministic(self):
        target = ConfidenceTarget("Queue", "avg_response", 0.95, 0.15)
        first = run_until_confident(net1(spawn=500), [target], seed=SEED, max_runs=60)
        second = run_until_confident(net1(spawn=500), [target], seed=SEED, max_runs=60)
        assert first.total_runs == second.total_runs
        assert first.relative_errors == second.relative_errors

    def test_stops_at_max_runs(self):
        target = ConfidenceTarget("Queue", "avg_response", 0.95, 1e-9)
        result = run_until_confident(
            net1(spawn=100), [target], seed=SEED, min_runs=2, max_runs=6, batch_size=2
        )
        assert not result.converged
        assert result.total_runs == 6
        assert "Convergence: NO" in result.report()

    def test_invalid_arguments(self):
        runner = MonteCarloRunner(net1(spawn=10))
        target = ConfidenceTarget("Queue", "avg_response")
        with pytest.raises(ConfigurationError):
            runner.run_until_confident(SEED, [])
        with pytest.raises(ConfigurationError):
            runner.run_until_confident(SEED, [ConfidenceTarget("Missing", "avg_response")])
        with pytest.raises(ConfigurationError):
            runner.run_until_confident(SEED, [target], min_runs=5, max_runs=4)
        with pytest.raises(ConfigurationError):
            runner.run_until_confident(SEED, [target], max_runs=300)
