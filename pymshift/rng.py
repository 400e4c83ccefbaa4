from typing import Optional

import numpy as np


class PhiloxRNG:
    """
    Stateless counter-based random number source.

    Every call to :meth:`generator` builds a fresh ``numpy.random.Generator``
    on a :class:`numpy.random.Philox` bit generator whose counter is set from
    `index`, so the stream it yields depends on ``(key, index)`` only. Workers
    handling disjoint index ranges therefore reproduce the results of a single
    sequential run, in any order, without sharing a generator.

    Parameters
    ----------
    key : int, default=0
        Philox key, in [0, 2**128).
    """

    # the index occupies the upper 128 bits of the 256-bit counter, leaving
    # the lower half for the draws made from a single generator
    _INDEX_SHIFT = 128

    def __init__(self, key: int = 0):
        key = int(key)
        if not 0 <= key < 2**128:
            raise ValueError("`key` must be in [0, 2**128).")
        self.key = key

    def generator(self, index: int) -> np.random.Generator:
        index = int(index)
        if not 0 <= index < 2**128:
            raise ValueError("`index` must be in [0, 2**128).")
        bit_gen = np.random.Philox(key=self.key, counter=index << self._INDEX_SHIFT)
        return np.random.Generator(bit_gen)

    def indices(
        self, count: int, n: int, index: int = 0, p: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Draw `count` integers in [0, n) with replacement.

        If `p` is given, integer i is drawn with probability proportional to
        ``p[i]``; it need not be normalised.
        """
        if n <= 0:
            raise ValueError("`n` must be positive.")
        generator = self.generator(index)
        if p is None:
            return generator.integers(0, n, size=int(count))
        p = np.asarray(p, dtype=float)
        if p.shape != (n,) or np.any(p < 0):
            raise ValueError("`p` must hold n non-negative values.")
        total = p.sum()
        if total <= 0:
            raise ValueError("`p` must have a positive sum.")
        return generator.choice(n, size=int(count), p=p / total)

    def __repr__(self) -> str:
        return f"PhiloxRNG(key={self.key})"


def as_rng(rng: Optional["PhiloxRNG"]) -> Optional[PhiloxRNG]:
    """Accept a PhiloxRNG, an integer key or None."""
    if rng is None or isinstance(rng, PhiloxRNG):
        return rng
    return PhiloxRNG(int(rng))
