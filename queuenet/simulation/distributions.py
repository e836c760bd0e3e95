"""
Probability distributions for service, inter-arrival and outage times.

Every distribution draws its uniforms from an ``Rng`` passed in by the
caller, so the number of draws per sample is part of the contract: it
decides which uniforms later events see and therefore every downstream
event time.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence

from .rng import Rng


class Distribution(ABC):
    """Abstract base class for probability distributions."""

    @abstractmethod
    def sample(self, rng: Rng) -> float:
        """Sample a value from the distribution.

        Args:
            rng: Generator supplying the uniforms.

        Returns:
            A sampled value from the distribution.
        """
        pass

    @property
    @abstractmethod
    def mean(self) -> float:
        """Theoretical mean (expected value) of the distribution."""
        pass


class Constant(Distribution):
    """Deterministic distribution that always returns the same value.

    Draws no uniforms. Useful for tests and fixed service times.

    Args:
        value: The value returned. Must be non-negative.
    """

    def __init__(self, value: float):
        if value < 0:
            raise ValueError(f"Constant value must be non-negative, got {value}")
        self.value = value

    @property
    def mean(self) -> float:
        return self.value

    def sample(self, rng: Rng) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"Constant(value={self.value})"


class Exponential(Distribution):
    """Exponential distribution parameterized by rate.

    Args:
        rate: Events per unit time (1/mean). Must be positive.
    """

    def __init__(self, rate: float):
        if rate <= 0:
            raise ValueError(f"Rate must be positive, got {rate}")
        self.rate = rate

    @property
    def mean(self) -> float:
        return 1.0 / self.rate

    def sample(self, rng: Rng) -> float:
        """Sample time until next event."""
        return -math.log(rng.random()) / self.rate

    def __repr__(self) -> str:
        return f"Exponential(rate={self.rate})"


class Uniform(Distribution):
    """Uniform distribution over [low, high).

    Args:
        low: Minimum value.
        high: Maximum value (must be >= low). The range must contain
            non-negative values.
    """

    def __init__(self, low: float, high: float):
        if low > high:
            raise ValueError(f"low ({low}) must be <= high ({high})")
        # Draws never reach ``high``, so a range ending at 0 needs low == 0
        if high < 0 or (high == 0 and low < 0):
            raise ValueError(f"Uniform range [{low}, {high}) has no non-negative values")
        self.low = low
        self.high = high

    @property
    def mean(self) -> float:
        return (self.low + self.high) / 2.0

    def sample(self, rng: Rng) -> float:
        return self.low + (self.high - self.low) * rng.random()

    def __repr__(self) -> str:
        return f"Uniform(low={self.low}, high={self.high})"


class Erlang(Distribution):
    """Sum of ``k`` independent exponential draws with the same rate.

    Args:
        k: Number of phases. Must be positive.
        rate: Rate of each phase. Must be positive.
    """

    def __init__(self, k: int, rate: float):
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")
        if rate <= 0:
            raise ValueError(f"Rate must be positive, got {rate}")
        self.k = k
        self.rate = rate

    @property
    def mean(self) -> float:
        return self.k / self.rate

    def sample(self, rng: Rng) -> float:
        total = 0.0
        for _ in range(self.k):
            total += -math.log(rng.random()) / self.rate
        return total

    def __repr__(self) -> str:
        return f"Erlang(k={self.k}, rate={self.rate})"


class Normal(Distribution):
    """Normal distribution sampled from a single uniform.

    The same uniform feeds both the radius and the angle of the Box-Muller
    transform, so samples are not truly normal. Kept as-is because existing
    numeric results depend on it; use ``NormalBoxMuller`` for a proper
    normal.

    Args:
        mean: Mean of the distribution.
        std: Standard deviation. Must be positive.
    """

    def __init__(self, mean: float, std: float):
        if std <= 0:
            raise ValueError(f"Standard deviation must be positive, got {std}")
        self._mean = mean
        self.std = std

    @property
    def mean(self) -> float:
        return self._mean

    def sample(self, rng: Rng) -> float:
        u = rng.random()
        return self._mean + self.std * math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * u)

    def __repr__(self) -> str:
        return f"Normal(mean={self._mean}, std={self.std})"


class NormalBoxMuller(Distribution):
    """Normal distribution via the Box-Muller transform.

    Each pair of uniforms yields two independent deviates. The first is
    returned and the second is cached; the next call returns the cached
    value without drawing. An instance therefore carries state and must not
    be shared between runs.

    Args:
        mean: Mean of the distribution.
        std: Standard deviation. Must be positive.
    """

    def __init__(self, mean: float, std: float):
        if std <= 0:
            raise ValueError(f"Standard deviation must be positive, got {std}")
        self._mean = mean
        self.std = std
        self._cached: float | None = None

    @property
    def mean(self) -> float:
        return self._mean

    def sample(self, rng: Rng) -> float:
        if self._cached is not None:
            value = self._cached
            self._cached = None
            return value

        u1 = rng.random()
        u2 = rng.random()
        radius = math.sqrt(-2.0 * math.log(u1))
        angle = 2.0 * math.pi * u2
        self._cached = self._mean + self.std * radius * math.sin(angle)
        return self._mean + self.std * radius * math.cos(angle)

    def reset(self) -> None:
        """Drop the cached companion deviate."""
        self._cached = None

    def __repr__(self) -> str:
        return f"NormalBoxMuller(mean={self._mean}, std={self.std})"


class HyperExponential(Distribution):
    """Mixture of exponentials: branch ``i`` is picked with ``probabilities[i]``.

    Draws one uniform to pick the branch and one for the exponential.

    Args:
        rates: Rate of each branch. All must be positive.
        probabilities: Branch probabilities, summing to 1.
    """

    def __init__(self, rates: Sequence[float], probabilities: Sequence[float]):
        if len(rates) == 0 or len(rates) != len(probabilities):
            raise ValueError(
                f"rates and probabilities must be non-empty and of equal length, "
                f"got {len(rates)} and {len(probabilities)}"
            )
        if any(rate <= 0 for rate in rates):
            raise ValueError(f"All rates must be positive, got {list(rates)}")
        if any(p < 0 for p in probabilities) or not math.isclose(sum(probabilities), 1.0):
            raise ValueError(
                f"Probabilities must be non-negative and sum to 1, got {list(probabilities)}"
            )
        self.rates = tuple(rates)
        self.probabilities = tuple(probabilities)

    @property
    def mean(self) -> float:
        return sum(p / rate for p, rate in zip(self.probabilities, self.rates))

    def sample(self, rng: Rng) -> float:
        u = rng.random()
        rate = self.rates[-1]
        for p, branch_rate in zip(self.probabilities, self.rates):
            u -= p
            if u <= 0:
                rate = branch_rate
                break
        return -math.log(rng.random()) / rate

    def __repr__(self) -> str:
        return f"HyperExponential(rates={list(self.rates)}, probabilities={list(self.probabilities)})"


class UnavailableTime(Distribution):
    """Outage duration that only happens with some probability.

    Draws one uniform; with ``probability`` the result is a positive sample
    of ``distribution``, otherwise 0 (no outage).

    Args:
        probability: Chance of an outage in [0, 1].
        distribution: Duration of an outage when one happens.
    """

    def __init__(self, probability: float, distribution: Distribution):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Probability must be in [0, 1], got {probability}")
        if distribution is None:
            raise ValueError("Outage duration distribution is required")
        self.probability = probability
        self.distribution = distribution

    @property
    def mean(self) -> float:
        return self.probability * self.distribution.mean

    def sample(self, rng: Rng) -> float:
        if rng.random() < self.probability:
            return positive_sample(self.distribution, rng)
        return 0.0

    def __repr__(self) -> str:
        return f"UnavailableTime(probability={self.probability}, distribution={self.distribution!r})"


def positive_sample(distribution: Distribution | None, rng: Rng) -> float:
    """Sample ``distribution`` until the value is non-negative.

    Args:
        distribution: Distribution to sample, or None.
        rng: Generator supplying the uniforms.

    Returns:
        The first non-negative sample, or 0.0 when no distribution is given
        (no uniforms are drawn in that case).
    """
    if distribution is None:
        return 0.0
    value = distribution.sample(rng)
    while value < 0:
        value = distribution.sample(rng)
    return value
