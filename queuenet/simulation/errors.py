"""
Error types raised by the queueing network simulator.

Validation failures subclass ValueError so callers that already guard
constructor arguments with ``except ValueError`` keep working.
"""


class ConfigurationError(ValueError):
    """Invalid network, node, generator or run configuration."""


class CriteriaParseError(ValueError):
    """An end-criteria string could not be parsed.

    Attributes:
        token: The offending segment or token.
    """

    def __init__(self, token: str, reason: str):
        super().__init__(f"Invalid end criteria {token!r}: {reason}")
        self.token = token
        self.reason = reason


class RecordFormatError(ValueError):
    """An exported result record is short or corrupt.

    Attributes:
        row: Zero-based index of the offending row.
        token: The offending field value, if any.
    """

    def __init__(self, row: int, reason: str, token: str | None = None):
        where = f"row {row}" if token is None else f"row {row}, token {token!r}"
        super().__init__(f"Malformed result record ({where}): {reason}")
        self.row = row
        self.token = token


class StatisticsError(ValueError):
    """Aggregated statistics were requested in an invalid way."""


class SimulationError(RuntimeError):
    """A simulation run was driven past its end or reused."""
