"""
Multiplicative linear congruential (Lehmer) random number generator.

The simulator needs exactly reproducible sequences that do not depend on
the interpreter or on NumPy's bit generators, so uniforms come from the
classic ``48271 * x mod (2^31 - 1)`` recurrence. ``RngStreams`` derives up to
256 non-overlapping generators from one seed by jumping the state ahead
with a precomputed multiplier, one stream per simulation run.
"""

import time

from .errors import ConfigurationError

MODULUS = 2147483647  # 2^31 - 1
MULTIPLIER = 48271
JUMP_MULTIPLIER = 22925  # MULTIPLIER^(8,367,782) mod MODULUS
MAX_STREAMS = 256
DEFAULT_SEED = 123456789

_Q = MODULUS // MULTIPLIER
_R = MODULUS % MULTIPLIER


def lehmer_step(seed: int, multiplier: int = MULTIPLIER) -> int:
    """Advance a Lehmer state by one step without overflowing 32 bits.

    Uses Schrage's factoring of the modulus into ``q * a + r`` so every
    intermediate product fits in a signed 32-bit integer.

    Args:
        seed: Current state in [1, MODULUS - 1].
        multiplier: Multiplier of the recurrence.

    Returns:
        The next state in [1, MODULUS - 1].
    """
    q = MODULUS // multiplier
    r = MODULUS % multiplier
    t = multiplier * (seed % q) - r * (seed // q)
    if t <= 0:
        t += MODULUS
    return t


def _clock_seed() -> int:
    return int(time.time() * 1000) % (MODULUS - 1) + 1


def _check_seed(seed: int) -> int:
    if seed <= 0:
        raise ConfigurationError(f"Seed must be positive, got {seed}")
    reduced = seed % MODULUS
    if reduced == 0:
        raise ConfigurationError(f"Seed must not be a multiple of {MODULUS}, got {seed}")
    return reduced


class Rng:
    """A single Lehmer generator producing uniforms in (0, 1).

    Args:
        seed: Initial state. ``None`` seeds from the wall clock. Values are
              reduced modulo ``MODULUS`` and must not reduce to zero.
    """

    def __init__(self, seed: int | None = DEFAULT_SEED):
        if seed is None:
            seed = _clock_seed()
        self.initial_seed = _check_seed(seed)
        self.seed = self.initial_seed

    def random(self) -> float:
        """Advance the state and return it scaled into (0, 1)."""
        t = MULTIPLIER * (self.seed % _Q) - _R * (self.seed // _Q)
        if t <= 0:
            t += MODULUS
        self.seed = t
        return t / MODULUS

    def reset(self) -> None:
        """Rewind to the seed the generator was created with."""
        self.seed = self.initial_seed

    def __repr__(self) -> str:
        return f"Rng(seed={self.seed})"


class RngStreams:
    """Up to 256 independent generators derived from one seed.

    Stream ``k`` starts at ``seed`` jumped ahead ``k`` times, so its sequence
    only depends on the top-level seed and ``k``, never on how many streams
    are in use.

    Args:
        seed: Seed of stream 0.
    """

    def __init__(self, seed: int | None = DEFAULT_SEED):
        if seed is None:
            seed = _clock_seed()
        self.seed = _check_seed(seed)
        self._starts = [self.seed]
        for _ in range(1, MAX_STREAMS):
            self._starts.append(lehmer_step(self._starts[-1], JUMP_MULTIPLIER))

    def stream_seed(self, index: int) -> int:
        """Initial state of stream ``index``."""
        if not 0 <= index < MAX_STREAMS:
            raise ConfigurationError(
                f"Stream index must be in [0, {MAX_STREAMS}), got {index}"
            )
        return self._starts[index]

    def stream(self, index: int) -> Rng:
        """Fresh generator positioned at the start of stream ``index``."""
        return Rng(self.stream_seed(index))

    def streams(self, count: int) -> list[Rng]:
        """Fresh generators for streams ``0..count-1``."""
        if count > MAX_STREAMS:
            raise ConfigurationError(
                f"At most {MAX_STREAMS} streams are available, requested {count}"
            )
        return [self.stream(i) for i in range(count)]

    def __len__(self) -> int:
        return MAX_STREAMS

    def __repr__(self) -> str:
        return f"RngStreams(seed={self.seed})"
