"""
Flat record form of run results, one record per (seed, node).

Records are tuples ordered as ``EXPORT_HEADER``: the run seed, the node
name, then every statistic in ``STATISTICS`` order. They can be handed to
``csv.writer`` as-is. Floats are written with ``repr`` so reading the
records back reproduces every value exactly.
"""

from collections.abc import Iterable, Iterator, Sequence

from .simulation.errors import RecordFormatError, StatisticsError
from .simulation.metrics import STATISTICS, NodeStatsSnapshot
from .simulation.simulator import RunResult

EXPORT_HEADER: tuple[str, ...] = ("seed", "node", *STATISTICS)


def to_records(results: Iterable[RunResult]) -> Iterator[tuple[str, ...]]:
    """Flatten results into string records, nodes in network order."""
    for result in results:
        for name, stats in result.nodes.items():
            yield (str(result.seed), name, *(repr(float(v)) for v in stats.values()))


def _parse_seed(row_index: int, text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise RecordFormatError(row_index, "seed is not an integer", text) from None


def _parse_values(row_index: int, fields: Sequence[str]) -> NodeStatsSnapshot:
    values = []
    for text in fields:
        try:
            values.append(float(text))
        except ValueError:
            raise RecordFormatError(row_index, "statistic is not a number", text) from None
    try:
        return NodeStatsSnapshot.from_values(values)
    except StatisticsError as exc:
        raise RecordFormatError(row_index, str(exc)) from None


def from_records(records: Iterable[Sequence[str]]) -> list[RunResult]:
    """Rebuild run results from records produced by ``to_records``.

    Consecutive records with the same seed form one run. A leading header
    record is skipped. The final simulation time of each run is taken as
    the latest ``last_event_time`` of its nodes; wall-clock time is not
    recorded and comes back as 0.

    Raises:
        RecordFormatError: On a short, long or unparseable record, or a node
            repeated within one run.
    """
    results: list[RunResult] = []
    seed: int | None = None
    nodes: dict[str, NodeStatsSnapshot] = {}

    def flush() -> None:
        if seed is not None:
            final_time = max(stats.last_event_time for stats in nodes.values())
            results.append(RunResult(seed=seed, simulation_time=final_time, elapsed_ms=0.0, nodes=nodes))

    for row_index, record in enumerate(records):
        record = tuple(record)
        if row_index == 0 and record == EXPORT_HEADER:
            continue
        if len(record) != len(EXPORT_HEADER):
            raise RecordFormatError(
                row_index, f"expected {len(EXPORT_HEADER)} fields, got {len(record)}"
            )

        row_seed = _parse_seed(row_index, record[0])
        name = record[1]
        if not name:
            raise RecordFormatError(row_index, "node name is empty", name)
        stats = _parse_values(row_index, record[2:])

        if row_seed != seed:
            flush()
            seed = row_seed
            nodes = {}
        if name in nodes:
            raise RecordFormatError(row_index, f"node {name!r} repeated for seed {seed}", name)
        nodes[name] = stats

    flush()
    return results
