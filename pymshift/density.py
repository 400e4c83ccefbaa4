from typing import Optional, Union

import numpy as np

from .data import DataMatrix
from .kernels import Kernel, KernelConfig
from .rng import PhiloxRNG, as_rng
from .spatial import Spatial


def calc_weight(dm: DataMatrix) -> float:
    """
    Total exemplar weight.

    Normally every exemplar weighs 1 and this is the exemplar count, but
    explicit weights (or an ignore column used as weights) change that.
    """
    return float(np.sum(dm.weight))


def calc_norm(
    dm: DataMatrix,
    kernel: Kernel,
    config: KernelConfig,
    weight: float,
) -> float:
    r"""
    Normalising multiplier for :func:`prob`.

    $$ \mathrm{norm} = \frac{c_K \prod_j s_j}{W} $$

    with $c_K$ the kernel's normalising constant, $s_j$ the positional scale
    entries and $W$ the total weight. The product of the scale accounts for
    the change of variables, so that a feature vector given in transformed
    space yields a density in the original space.

    Must be recomputed whenever the kernel configuration, the scale or the
    total weight changes.

    Parameters
    ----------
    dm : DataMatrix
        Exemplar store.
    kernel : Kernel
        Kernel family.
    config : KernelConfig
        Kernel parameters.
    weight : float
        Output of :func:`calc_weight`.

    Returns
    -------
    norm : float
    """
    if weight <= 0:
        raise ValueError("`weight` must be positive.")
    if config.dims != int(dm.positional.sum()):
        raise ValueError("Kernel dimensionality does not match the data.")
    det = float(np.prod(dm.scale[dm.positional]))
    return kernel.norm(config) * det / weight


def _kernel_sum(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    fv: np.ndarray,
    quality: float,
) -> float:
    indices, dist = spatial.range(fv, kernel.range(config, quality))
    if indices.size == 0:
        return 0.0
    w = kernel.weight(dist**2, config) * spatial.weights(indices)
    return float(np.sum(w))


def prob(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    fv: np.ndarray,
    norm: float,
    quality: float,
) -> float:
    """
    Kernel density estimate at a feature vector.

    Parameters
    ----------
    spatial : Spatial
        Index over the exemplars defining the density.
    kernel : Kernel
        Kernel family.
    config : KernelConfig
        Kernel parameters.
    fv : np.ndarray (dims,)
        Point in transformed space.
    norm : float
        Output of :func:`calc_norm`, usually cached.
    quality : float
        In [0, 1], selects the search radius of the kernel.

    Returns
    -------
    p : float
        Density in the original (unscaled) space; 0 when no exemplar is in
        range.
    """
    return norm * _kernel_sum(spatial, kernel, config, fv, quality)


def draw(
    dm: DataMatrix,
    kernel: Kernel,
    config: KernelConfig,
    rng: Union[PhiloxRNG, int],
    index: int,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Deterministically draw a sample from the density.

    An exemplar is chosen in proportion to its weight, then offset by a draw
    from the kernel. Both use ``rng.generator(index)``, so the same
    ``(key, index)`` always gives the same sample.

    Parameters
    ----------
    dm : DataMatrix
        Exemplar store defining the density.
    kernel : Kernel
        Kernel family.
    config : KernelConfig
        Kernel parameters.
    rng : PhiloxRNG or int
        Random source (an int is used as the Philox key).
    index : int
        Sample index.
    out : np.ndarray (dims,), optional
        Output buffer.

    Returns
    -------
    out : np.ndarray (dims,)
        The sample in transformed space. The ignored column, if any, keeps
        the chosen exemplar's value.
    """
    if dm.n == 0:
        raise ValueError("Cannot draw from an empty DataMatrix.")
    if config.dims != int(dm.positional.sum()):
        raise ValueError("Kernel dimensionality does not match the data.")
    if out is None:
        out = np.empty(dm.dims, dtype=float)
    elif out.shape != (dm.dims,):
        raise ValueError(f"`out` must have shape ({dm.dims},).")

    cumulative = np.cumsum(dm.weight)
    total = cumulative[-1]
    if total <= 0:
        raise ValueError("Total exemplar weight must be positive.")

    rng = as_rng(rng)
    if rng is None:
        raise ValueError("`rng` is required to draw.")
    generator = rng.generator(index)
    u = generator.random() * total
    exemplar = min(int(np.searchsorted(cumulative, u, side="right")), dm.n - 1)

    out[:] = dm.features[exemplar]
    out[dm.positional] += kernel.offset(config, generator)
    return out
