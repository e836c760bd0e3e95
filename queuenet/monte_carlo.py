"""
Monte Carlo runner for queueing network simulations.

Runs many independent simulations of one network from a single seed and
aggregates their results. Run ``i`` always uses stream ``i`` of the seed's
``RngStreams``, so sequential and parallel execution give bit-identical
aggregates.

Supports both fixed-count runs and adaptive runs that keep adding batches
until every confidence target reaches its relative error.
"""

import logging
import os
from collections.abc import Iterable
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field

from .simulation.criteria import EndCriterion, parse_end_criteria
from .simulation.errors import ConfigurationError
from .simulation.network import Network
from .simulation.rng import DEFAULT_SEED, MAX_STREAMS, Rng, RngStreams
from .simulation.simulator import RunResult, Simulator, check_termination
from .statistics import AggregateResult, ConfidenceIndices, ConfidenceTarget, IncrementalSummary

logger = logging.getLogger(__name__)


@dataclass
class MonteCarloConfig:
    """Configuration for Monte Carlo simulation.

    Attributes:
        parallel_workers: Upper bound on worker processes for parallel runs.
            None means ``os.cpu_count()``. The pool never exceeds the number
            of runs in a batch.
        batch_size: Runs per batch between confidence checks in
            ``run_until_confident``.
    """

    parallel_workers: int | None = None
    batch_size: int = 10

    def __post_init__(self) -> None:
        if self.parallel_workers is not None and self.parallel_workers < 1:
            raise ConfigurationError(
                f"parallel_workers must be >= 1, got {self.parallel_workers}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")

    def workers_for(self, num_runs: int) -> int:
        """Pool size for a batch of ``num_runs`` runs."""
        available = self.parallel_workers or os.cpu_count() or 1
        return max(1, min(num_runs, available))


@dataclass
class ConvergenceResult:
    """Result of an adaptive confidence run.

    Attributes:
        summary: Running statistics of every completed run.
        converged: Whether all targets reached their relative error.
        total_runs: Total number of simulation runs executed.
        relative_errors: Final relative error per target.
    """

    summary: IncrementalSummary
    converged: bool
    total_runs: int
    relative_errors: dict[ConfidenceTarget, float] = field(default_factory=dict)

    def report(self) -> str:
        """Generate a text summary of convergence results."""
        lines = [f"Convergence: {'yes' if self.converged else 'NO'} ({self.total_runs} runs)"]
        for target, rel_err in self.relative_errors.items():
            symbol = "+" if rel_err <= target.relative_error else "-"
            stat = self.summary.summary_of(target.node, target.statistic, target.confidence)
            bounds = stat.bounds
            ci = "n/a" if bounds is None else f"[{bounds[0]:.4f}, {bounds[1]:.4f}]"
            lines.append(
                f"  [{symbol}] {target.node}.{target.statistic}: "
                f"mean={stat.average:.4f}, CI={ci}, "
                f"rel={rel_err:.4f} (target {target.relative_error:g})"
            )
        return "\n".join(lines)


def _run_single_simulation(
    network: Network,
    stream_seed: int,
    criteria: tuple[EndCriterion, ...],
) -> RunResult:
    """Run a single simulation (used for parallel execution).

    This is a module-level function to support multiprocessing. Every
    piece of mutable run state is created here, in the worker.
    """
    simulator = Simulator(network, Rng(stream_seed), criteria)
    return simulator.run()


def _coerce_criteria(criteria: Iterable[EndCriterion | str]) -> tuple[EndCriterion, ...]:
    parsed: list[EndCriterion] = []
    for criterion in criteria:
        if isinstance(criterion, str):
            parsed.extend(parse_end_criteria(criterion))
        else:
            parsed.append(criterion)
    return tuple(parsed)


class MonteCarloRunner:
    """Runs multiple simulations of a network and aggregates results.

    Args:
        network: Topology shared read-only by every run.
        config: Monte Carlo configuration.
    """

    def __init__(self, network: Network, config: MonteCarloConfig | None = None):
        self.network = network
        self.config = config or MonteCarloConfig()

    def _prepare(
        self, seed: int | None, start: int, num_runs: int, criteria: Iterable[EndCriterion | str]
    ) -> tuple[list[int], tuple[EndCriterion, ...]]:
        """Validate a batch and return the stream seeds of its runs."""
        if num_runs < 1:
            raise ConfigurationError(f"num_runs must be >= 1, got {num_runs}")
        if start + num_runs > MAX_STREAMS:
            raise ConfigurationError(
                f"At most {MAX_STREAMS} independent runs per seed, requested {start + num_runs}"
            )
        parsed = _coerce_criteria(criteria)
        check_termination(self.network, parsed)
        streams = RngStreams(seed)
        return [streams.stream_seed(i) for i in range(start, start + num_runs)], parsed

    def _run_sequential(
        self, stream_seeds: list[int], criteria: tuple[EndCriterion, ...]
    ) -> list[RunResult]:
        """Run simulations one after another."""
        return [
            _run_single_simulation(self.network, stream_seed, criteria)
            for stream_seed in stream_seeds
        ]

    def _run_parallel(
        self, stream_seeds: list[int], criteria: tuple[EndCriterion, ...]
    ) -> list[RunResult]:
        """Run simulations in parallel using ProcessPoolExecutor.

        Results are gathered in submission order. The first failure cancels
        the runs that have not started and is re-raised.
        """
        workers = self.config.workers_for(len(stream_seeds))
        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_run_single_simulation, self.network, stream_seed, criteria)
                for stream_seed in stream_seeds
            ]
            try:
                return [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def run_results(
        self,
        seed: int | None = DEFAULT_SEED,
        num_runs: int = 1,
        *criteria: EndCriterion | str,
        parallel: bool = False,
        start: int = 0,
    ) -> list[RunResult]:
        """Run ``num_runs`` simulations and return every result in run order.

        Args:
            seed: Top-level seed; run ``i`` uses stream ``start + i``.
            num_runs: Number of runs.
            *criteria: End criteria, as objects or criteria strings.
            parallel: Whether to use a process pool.
            start: Index of the first stream.

        Raises:
            ConfigurationError: On invalid run counts or criteria.
        """
        stream_seeds, parsed = self._prepare(seed, start, num_runs, criteria)
        if parallel:
            results = self._run_parallel(stream_seeds, parsed)
        else:
            results = self._run_sequential(stream_seeds, parsed)
        logger.info(
            "Completed %d runs (streams %d-%d, %s)",
            num_runs,
            start,
            start + num_runs - 1,
            "parallel" if parallel else "sequential",
        )
        return results

    def run(
        self, seed: int | None = DEFAULT_SEED, num_runs: int = 1, *criteria: EndCriterion | str
    ) -> AggregateResult:
        """Run simulations sequentially and aggregate them."""
        return AggregateResult(self.run_results(seed, num_runs, *criteria))

    def run_parallel(
        self, seed: int | None = DEFAULT_SEED, num_runs: int = 1, *criteria: EndCriterion | str
    ) -> AggregateResult:
        """Run simulations on a process pool and aggregate them.

        Gives the same aggregate as ``run`` for the same arguments.
        """
        return AggregateResult(self.run_results(seed, num_runs, *criteria, parallel=True))

    def run_until_confident(
        self,
        seed: int | None,
        targets: Iterable[ConfidenceTarget],
        *criteria: EndCriterion | str,
        min_runs: int = 2,
        max_runs: int = MAX_STREAMS,
        parallel: bool = False,
    ) -> ConvergenceResult:
        """Run simulations in batches until every target is satisfied.

        Runs ``min_runs`` first, then batches of ``config.batch_size``,
        checking the targets after each batch. Stops when all targets are
        within their relative error or ``max_runs`` is reached.

        Args:
            seed: Top-level seed.
            targets: Confidence targets that must all be met.
            *criteria: End criteria for each run.
            min_runs: Runs before the first check.
            max_runs: Safety cap on total runs (at most 256).
            parallel: Whether batches use a process pool.

        Returns:
            ConvergenceResult with the running summary and final errors.
        """
        indices = ConfidenceIndices(targets)
        if not indices.targets:
            raise ConfigurationError("At least one confidence target is needed")
        for target in indices.targets:
            if not self.network.has_node(target.node):
                raise ConfigurationError(f"Confidence target {target} references unknown node")
        if not 1 <= min_runs <= max_runs <= MAX_STREAMS:
            raise ConfigurationError(
                f"Need 1 <= min_runs ({min_runs}) <= max_runs ({max_runs}) <= {MAX_STREAMS}"
            )
        if seed is None:
            seed = RngStreams(None).seed

        summary = IncrementalSummary()
        run_count = 0
        batch = min_runs
        converged = False
        while True:
            summary.update(
                self.run_results(seed, batch, *criteria, parallel=parallel, start=run_count)
            )
            run_count += batch
            converged = indices.is_satisfied(summary)
            logger.info(
                "After %d runs: %s",
                run_count,
                ", ".join(f"{t}={e:.4f}" for t, e in indices.relative_errors(summary).items()),
            )
            if converged or run_count >= max_runs:
                break
            batch = min(self.config.batch_size, max_runs - run_count)

        return ConvergenceResult(
            summary=summary,
            converged=converged,
            total_runs=run_count,
            relative_errors=indices.relative_errors(summary),
        )


def run_monte_carlo(
    network: Network,
    num_runs: int,
    *criteria: EndCriterion | str,
    seed: int | None = DEFAULT_SEED,
    parallel_workers: int | None = None,
    parallel: bool = False,
) -> AggregateResult:
    """Convenience function to run Monte Carlo simulations.

    Args:
        network: Network to simulate.
        num_runs: Number of simulation runs.
        *criteria: End criteria for each run.
        seed: Top-level random seed.
        parallel_workers: Upper bound on worker processes.
        parallel: Whether to run on a process pool.

    Returns:
        AggregateResult over all runs.
    """
    runner = MonteCarloRunner(network, MonteCarloConfig(parallel_workers=parallel_workers))
    if parallel:
        return runner.run_parallel(seed, num_runs, *criteria)
    return runner.run(seed, num_runs, *criteria)


def run_until_confident(
    network: Network,
    targets: Iterable[ConfidenceTarget],
    *criteria: EndCriterion | str,
    seed: int | None = DEFAULT_SEED,
    min_runs: int = 2,
    max_runs: int = MAX_STREAMS,
    batch_size: int = 10,
    parallel_workers: int | None = None,
    parallel: bool = False,
) -> ConvergenceResult:
    """Convenience function to run adaptive Monte Carlo simulations."""
    config = MonteCarloConfig(parallel_workers=parallel_workers, batch_size=batch_size)
    runner = MonteCarloRunner(network, config)
    return runner.run_until_confident(
        seed,
        targets,
        *criteria,
        min_runs=min_runs,
        max_runs=max_runs,
        parallel=parallel,
    )
