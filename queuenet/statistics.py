"""
Aggregation of simulation results across independent runs.

Two styles are provided. ``AggregateResult`` keeps every run's values and
computes means, sample variances and t-distribution confidence intervals
in one pass over the stored samples. ``IncrementalSummary`` folds runs in
one at a time with Welford's update, so memory does not grow with the
number of runs. Both agree to floating-point tolerance on the same data.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
from scipy import stats as scipy_stats

from .simulation.errors import StatisticsError
from .simulation.metrics import STATISTICS, NodeStatsSnapshot
from .simulation.simulator import RunResult

_STAT_INDEX = {name: i for i, name in enumerate(STATISTICS)}


def _stat_index(statistic: str) -> int:
    try:
        return _STAT_INDEX[statistic]
    except KeyError:
        raise StatisticsError(
            f"Unknown statistic {statistic!r}; expected one of {', '.join(STATISTICS)}"
        ) from None


def _check_confidence(confidence: float) -> None:
    if not 0 < confidence < 1:
        raise StatisticsError(f"confidence must be in (0, 1), got {confidence}")


def t_critical(confidence: float, n: int) -> float:
    """Two-sided Student t quantile for ``n`` samples.

    Args:
        confidence: Confidence level, e.g. 0.95.
        n: Number of samples (>= 2).

    Returns:
        ``t_(1 - alpha/2, n - 1)`` with ``alpha = 1 - confidence``.
    """
    _check_confidence(confidence)
    if n < 2:
        raise StatisticsError(f"At least 2 runs are needed for a confidence interval, got {n}")
    alpha = 1.0 - confidence
    return float(scipy_stats.t.ppf(1 - alpha / 2, df=n - 1))


def relative_error(mean: float, error: float) -> float:
    """Confidence half-width as a fraction of ``|mean|``.

    A zero mean gives 0 when the half-width is also zero, else infinity.
    """
    if mean == 0.0:
        return 0.0 if error == 0.0 else float("inf")
    return error / abs(mean)


def _snapshot(row: np.ndarray) -> NodeStatsSnapshot:
    return NodeStatsSnapshot.from_values(row.tolist())


@dataclass(frozen=True)
class StatisticSummary:
    """Summary of one statistic of one node across runs.

    Attributes:
        node: Node name.
        statistic: Statistic name.
        count: Number of runs.
        average: Sample mean.
        std_dev: Sample standard deviation (0 for a single run).
        minimum: Smallest value.
        maximum: Largest value.
        median: Median value (None when the samples were not kept).
        error: Confidence half-width (None with fewer than 2 runs).
        confidence: Confidence level the error refers to.
    """

    node: str
    statistic: str
    count: int
    average: float
    std_dev: float
    minimum: float
    maximum: float
    median: float | None
    error: float | None
    confidence: float

    @property
    def bounds(self) -> tuple[float, float] | None:
        if self.error is None:
            return None
        return (self.average - self.error, self.average + self.error)

    @property
    def relative_error(self) -> float:
        if self.error is None:
            return float("inf")
        return relative_error(self.average, self.error)

    def __repr__(self) -> str:
        err = "n/a" if self.error is None else f"{self.error:.4f}"
        return (
            f"StatisticSummary({self.node}.{self.statistic}, n={self.count}, "
            f"mean={self.average:.4f}, error={err})"
        )


class AggregateResult:
    """Statistics of a batch of runs, computed from the stored samples.

    Args:
        runs: Results of the runs; all must cover the same nodes.

    Raises:
        StatisticsError: If ``runs`` is empty or the runs disagree on nodes.
    """

    def __init__(self, runs: Sequence[RunResult]):
        runs = list(runs)
        if not runs:
            raise StatisticsError("Cannot aggregate zero runs")
        self.node_names = list(runs[0].nodes)
        for run in runs:
            if list(run.nodes) != self.node_names:
                raise StatisticsError(
                    f"Run with seed {run.seed} has nodes {list(run.nodes)}, "
                    f"expected {self.node_names}"
                )
        self.seeds = [run.seed for run in runs]
        self.simulation_times = np.array([run.simulation_time for run in runs])
        self.elapsed_ms = np.array([run.elapsed_ms for run in runs])
        # One (runs x statistics) matrix per node
        self._samples = {
            name: np.array([run.nodes[name].values() for run in runs], dtype=float)
            for name in self.node_names
        }

    @property
    def num_runs(self) -> int:
        return len(self.seeds)

    def _matrix(self, node: str) -> np.ndarray:
        try:
            return self._samples[node]
        except KeyError:
            raise StatisticsError(f"Unknown node {node!r}") from None

    def _require_variance(self) -> None:
        if self.num_runs < 2:
            raise StatisticsError(
                f"At least 2 runs are needed for variance, got {self.num_runs}"
            )

    def samples(self, node: str, statistic: str) -> np.ndarray:
        """Per-run values of one statistic, in run order."""
        return self._matrix(node)[:, _stat_index(statistic)].copy()

    @property
    def average(self) -> dict[str, NodeStatsSnapshot]:
        """Mean of every statistic per node."""
        return {name: _snapshot(np.mean(m, axis=0)) for name, m in self._samples.items()}

    @property
    def variance(self) -> dict[str, NodeStatsSnapshot]:
        """Sample variance (ddof=1) of every statistic per node."""
        self._require_variance()
        return {name: _snapshot(np.var(m, axis=0, ddof=1)) for name, m in self._samples.items()}

    @property
    def std_dev(self) -> dict[str, NodeStatsSnapshot]:
        self._require_variance()
        return {name: _snapshot(np.std(m, axis=0, ddof=1)) for name, m in self._samples.items()}

    @property
    def minimum(self) -> dict[str, NodeStatsSnapshot]:
        return {name: _snapshot(np.min(m, axis=0)) for name, m in self._samples.items()}

    @property
    def maximum(self) -> dict[str, NodeStatsSnapshot]:
        return {name: _snapshot(np.max(m, axis=0)) for name, m in self._samples.items()}

    @property
    def average_time(self) -> float:
        """Mean final simulation time."""
        return float(np.mean(self.simulation_times))

    def error(self, confidence: float = 0.95) -> dict[str, NodeStatsSnapshot]:
        """Confidence half-width of every statistic per node.

        ``t_(1-alpha/2, n-1) * std_dev / sqrt(n)``.
        """
        t_crit = t_critical(confidence, self.num_runs)
        scale = t_crit / math.sqrt(self.num_runs)
        return {
            name: _snapshot(np.std(m, axis=0, ddof=1) * scale)
            for name, m in self._samples.items()
        }

    def bounds(
        self, confidence: float = 0.95
    ) -> tuple[dict[str, NodeStatsSnapshot], dict[str, NodeStatsSnapshot]]:
        """Lower and upper confidence bounds (mean -/+ error) per node."""
        errors = self.error(confidence)
        lower, upper = {}, {}
        for name, m in self._samples.items():
            mean = np.mean(m, axis=0)
            err = np.array(errors[name].values())
            lower[name] = _snapshot(mean - err)
            upper[name] = _snapshot(mean + err)
        return lower, upper

    def summary_of(self, node: str, statistic: str, confidence: float = 0.95) -> StatisticSummary:
        """Full summary of one statistic of one node."""
        values = self.samples(node, statistic)
        n = len(values)
        error = None
        std = 0.0
        if n >= 2:
            std = float(np.std(values, ddof=1))
            error = t_critical(confidence, n) * std / math.sqrt(n)
        else:
            _check_confidence(confidence)
        return StatisticSummary(
            node=node,
            statistic=statistic,
            count=n,
            average=float(np.mean(values)),
            std_dev=std,
            minimum=float(np.min(values)),
            maximum=float(np.max(values)),
            median=float(np.median(values)),
            error=error,
            confidence=confidence,
        )

    def percentile(self, node: str, statistic: str, p: float) -> float:
        """Percentile ``p`` (0-100) of one statistic across runs."""
        return float(np.percentile(self.samples(node, statistic), p))

    def frequency(self, node: str, statistic: str, bins: int = 10) -> tuple[np.ndarray, np.ndarray]:
        """Histogram of one statistic across runs.

        Returns:
            Tuple of (counts, bin_edges) as returned by ``np.histogram``.
        """
        if bins <= 0:
            raise StatisticsError(f"bins must be positive, got {bins}")
        return np.histogram(self.samples(node, statistic), bins=bins)

    def summary(self, confidence: float = 0.95) -> str:
        """Generate a text table of mean and confidence error per node."""
        lines = [f"Aggregate of {self.num_runs} runs (mean simulation time {self.average_time:.4f})"]
        average = self.average
        errors = self.error(confidence) if self.num_runs >= 2 else None
        for name in self.node_names:
            lines.append(f"  {name}:")
            for stat in STATISTICS:
                mean = average[name].of(stat)
                if errors is None:
                    lines.append(f"    {stat:<18} {mean:>14.4f}")
                else:
                    lines.append(f"    {stat:<18} {mean:>14.4f} +/- {errors[name].of(stat):.4f}")
        return "\n".join(lines)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AggregateResult):
            return NotImplemented
        return (
            self.seeds == other.seeds
            and self.node_names == other.node_names
            and np.array_equal(self.simulation_times, other.simulation_times)
            and all(np.array_equal(self._samples[n], other._samples[n]) for n in self.node_names)
        )

    def __repr__(self) -> str:
        return f"AggregateResult(runs={self.num_runs}, nodes={self.node_names})"


class IncrementalSummary:
    """Running per-node statistics updated one run at a time.

    Keeps count, mean, sum of squared deviations, min and max for every
    statistic (Welford's online algorithm) and never stores the runs.
    """

    def __init__(self) -> None:
        self.count = 0
        self.node_names: list[str] = []
        self._mean: dict[str, np.ndarray] = {}
        self._m2: dict[str, np.ndarray] = {}
        self._min: dict[str, np.ndarray] = {}
        self._max: dict[str, np.ndarray] = {}

    def add(self, run: RunResult) -> None:
        """Fold one run into the summary.

        Raises:
            StatisticsError: If the run's nodes differ from earlier runs.
        """
        if self.count == 0:
            self.node_names = list(run.nodes)
            for name in self.node_names:
                zeros = np.zeros(len(STATISTICS))
                self._mean[name] = zeros.copy()
                self._m2[name] = zeros.copy()
                self._min[name] = np.full(len(STATISTICS), np.inf)
                self._max[name] = np.full(len(STATISTICS), -np.inf)
        elif list(run.nodes) != self.node_names:
            raise StatisticsError(
                f"Run with seed {run.seed} has nodes {list(run.nodes)}, expected {self.node_names}"
            )

        self.count += 1
        for name in self.node_names:
            values = np.array(run.nodes[name].values(), dtype=float)
            delta = values - self._mean[name]
            self._mean[name] = self._mean[name] + delta / self.count
            self._m2[name] = self._m2[name] + delta * (values - self._mean[name])
            self._min[name] = np.minimum(self._min[name], values)
            self._max[name] = np.maximum(self._max[name], values)

    def update(self, runs: Iterable[RunResult]) -> None:
        """Fold several runs into the summary."""
        for run in runs:
            self.add(run)

    def _check_node(self, node: str) -> None:
        if self.count == 0:
            raise StatisticsError("No runs have been added")
        if node not in self._mean:
            raise StatisticsError(f"Unknown node {node!r}")

    def _variance(self, node: str) -> np.ndarray:
        self._check_node(node)
        if self.count < 2:
            raise StatisticsError(f"At least 2 runs are needed for variance, got {self.count}")
        return self._m2[node] / (self.count - 1)

    def average(self, node: str) -> NodeStatsSnapshot:
        self._check_node(node)
        return _snapshot(self._mean[node])

    def variance(self, node: str) -> NodeStatsSnapshot:
        """Sample variance (n - 1 denominator) of every statistic."""
        return _snapshot(self._variance(node))

    def std_dev(self, node: str) -> NodeStatsSnapshot:
        return _snapshot(np.sqrt(self._variance(node)))

    def minimum(self, node: str) -> NodeStatsSnapshot:
        self._check_node(node)
        return _snapshot(self._min[node])

    def maximum(self, node: str) -> NodeStatsSnapshot:
        self._check_node(node)
        return _snapshot(self._max[node])

    def error(self, node: str, confidence: float = 0.95) -> NodeStatsSnapshot:
        """Confidence half-width of every statistic of ``node``."""
        std = np.sqrt(self._variance(node))
        return _snapshot(std * t_critical(confidence, self.count) / math.sqrt(self.count))

    def bounds(self, node: str, confidence: float = 0.95) -> tuple[NodeStatsSnapshot, NodeStatsSnapshot]:
        err = np.array(self.error(node, confidence).values())
        return _snapshot(self._mean[node] - err), _snapshot(self._mean[node] + err)

    def summary_of(self, node: str, statistic: str, confidence: float = 0.95) -> StatisticSummary:
        """Summary of one statistic; the median is not available."""
        self._check_node(node)
        index = _stat_index(statistic)
        error = None
        std = 0.0
        if self.count >= 2:
            std = float(math.sqrt(self._variance(node)[index]))
            error = t_critical(confidence, self.count) * std / math.sqrt(self.count)
        else:
            _check_confidence(confidence)
        return StatisticSummary(
            node=node,
            statistic=statistic,
            count=self.count,
            average=float(self._mean[node][index]),
            std_dev=std,
            minimum=float(self._min[node][index]),
            maximum=float(self._max[node][index]),
            median=None,
            error=error,
            confidence=confidence,
        )

    def __repr__(self) -> str:
        return f"IncrementalSummary(runs={self.count}, nodes={self.node_names})"


@dataclass(frozen=True)
class ConfidenceTarget:
    """Required precision for one statistic of one node.

    Attributes:
        node: Node name.
        statistic: Statistic name (one of ``STATISTICS``).
        confidence: Confidence level of the interval, in (0, 1).
        relative_error: Maximum half-width as a fraction of the mean (> 0).
    """

    node: str
    statistic: str
    confidence: float = 0.95
    relative_error: float = 0.05

    def __post_init__(self) -> None:
        _stat_index(self.statistic)
        if not 0 < self.confidence < 1:
            raise ValueError(f"confidence must be in (0, 1), got {self.confidence}")
        if self.relative_error <= 0:
            raise ValueError(f"relative_error must be > 0, got {self.relative_error}")

    def current_error(self, summary: IncrementalSummary | AggregateResult) -> float:
        """Relative error of the target statistic; infinity with < 2 runs."""
        stat = summary.summary_of(self.node, self.statistic, self.confidence)
        return stat.relative_error

    def is_satisfied(self, summary: IncrementalSummary | AggregateResult) -> bool:
        return self.current_error(summary) <= self.relative_error

    def __str__(self) -> str:
        return f"{self.node}.{self.statistic}@{self.confidence:g}<={self.relative_error:g}"


class ConfidenceIndices:
    """A set of confidence targets checked together."""

    def __init__(self, targets: Iterable[ConfidenceTarget] = ()):
        self.targets: list[ConfidenceTarget] = list(targets)

    def add(self, target: ConfidenceTarget) -> None:
        self.targets.append(target)

    def relative_errors(self, summary: IncrementalSummary | AggregateResult) -> dict[ConfidenceTarget, float]:
        """Current relative error of every target."""
        return {target: target.current_error(summary) for target in self.targets}

    def is_satisfied(self, summary: IncrementalSummary | AggregateResult) -> bool:
        """True when every target meets its threshold (never with < 2 runs)."""
        if not self.targets:
            return False
        return all(target.is_satisfied(summary) for target in self.targets)

    def __len__(self) -> int:
        return len(self.targets)

    def __repr__(self) -> str:
        return f"ConfidenceIndices({[str(t) for t in self.targets]})"
