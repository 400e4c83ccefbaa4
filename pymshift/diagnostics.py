"""
Monte-Carlo model diagnostics for kernel density estimates.

All estimators use the exemplars of the density itself as the sample, each
term weighted by its exemplar's weight; zero-weight exemplars are not
evaluated since they are not draws from the density. With a positive
`sample_clamp` smaller than the exemplar count, that many exemplars are drawn
with replacement in proportion to weight instead, trading accuracy for speed.
"""

from typing import Tuple, Union

import numpy as np

from .density import prob
from .kernels import Kernel, KernelConfig
from .rng import PhiloxRNG, as_rng
from .spatial import Spatial


def _evaluation_points(
    spatial: Spatial,
    sample_clamp: int,
    rng: Union[PhiloxRNG, int, None],
) -> Tuple[np.ndarray, np.ndarray]:
    """Exemplar indices to evaluate and the weight each one carries."""
    n = spatial.n
    w = spatial.weights(np.arange(n))
    if not np.any(w > 0):
        raise ValueError("At least one exemplar must have positive weight.")
    if 0 < sample_clamp < n:
        rng = as_rng(rng)
        if rng is None:
            raise ValueError("An `rng` is required when `sample_clamp` subsamples.")
        indices = rng.indices(sample_clamp, n, p=w)
        return indices, np.ones(indices.size)
    indices = np.flatnonzero(w > 0)
    return indices, w[indices]


def loo_nll(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    norm: float,
    quality: float,
    limit: float,
    sample_clamp: int = 0,
    rng: Union[PhiloxRNG, int, None] = None,
) -> float:
    r"""
    Leave-one-out negative log-likelihood of the exemplars.

    $$ \mathrm{nll} = -\sum_i w_i \log \max\left(p(\mathbf{x}_i) - p_i(\mathbf{x}_i), \epsilon\right) $$

    where $w_i$ is the weight of exemplar $i$ and $p_i$ its contribution to
    its own density. Useful
    for choosing the kernel, its parameters or the scale.

    Parameters
    ----------
    spatial : Spatial
        Index over the exemplars.
    kernel : Kernel
        Kernel family.
    config : KernelConfig
        Kernel parameters.
    norm : float
        Output of :func:`calc_norm`.
    quality : float
        Search radius selector in [0, 1].
    limit : float
        Floor on each leave-one-out probability, limiting the damage of outliers.
    sample_clamp : int, default=0
        If in (0, n), evaluate this many exemplars drawn with replacement
        in proportion to weight, each counting once.
    rng : PhiloxRNG or int, optional
        Required when subsampling.

    Returns
    -------
    nll : float
        Total negative log-likelihood in nats.

    Note
    ----
    The total weight is not reduced by the weight of the left out exemplar.
    With uneven weights this biases the estimate slightly; correcting it
    would prevent reusing a single cached `norm`.
    """
    if limit <= 0:
        raise ValueError("`limit` must be positive.")
    self_weight = float(kernel.weight(0.0, config))
    indices, weights = _evaluation_points(spatial, sample_clamp, rng)
    total = 0.0
    for i, w in zip(indices, weights):
        p = prob(spatial, kernel, config, spatial.features[i], norm, quality)
        p -= norm * self_weight * float(spatial.weights(i))
        total -= w * np.log(max(p, limit))
    return float(total)


def entropy(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    norm: float,
    quality: float,
    sample_clamp: int = 0,
    rng: Union[PhiloxRNG, int, None] = None,
) -> float:
    r"""
    Entropy of the density, $H \approx -\frac{1}{W}\sum_i w_i \log p(\mathbf{x}_i)$.

    Parameters match :func:`loo_nll`, without `limit`. Returns nats.
    """
    indices, weights = _evaluation_points(spatial, sample_clamp, rng)
    total = 0.0
    for i, w in zip(indices, weights):
        total -= w * np.log(prob(spatial, kernel, config, spatial.features[i], norm, quality))
    return float(total / weights.sum())


def kl_divergence(
    spatial_p: Spatial,
    kernel_p: Kernel,
    config_p: KernelConfig,
    norm_p: float,
    quality_p: float,
    spatial_q: Spatial,
    kernel_q: Kernel,
    config_q: KernelConfig,
    norm_q: float,
    quality_q: float,
    limit: float,
    sample_clamp: int = 0,
    rng: Union[PhiloxRNG, int, None] = None,
) -> float:
    r"""
    Kullback-Leibler divergence $D(P \| Q)$.

    $$ D(P \| Q) \approx \frac{1}{W}\sum_i w_i \log \frac{p(\mathbf{x}_i)}{\max(q(\mathbf{x}_i), \epsilon)} $$

    over the exemplars of P: the average number of extra nats needed to encode
    draws from P with a code built for Q.

    Parameters
    ----------
    spatial_p, kernel_p, config_p, norm_p, quality_p
        Density P, as for :func:`prob`.
    spatial_q, kernel_q, config_q, norm_q, quality_q
        Density Q, as for :func:`prob`.
    limit : float
        Floor on q, avoiding division by zero.
    sample_clamp : int, default=0
        If in (0, n_p), evaluate this many exemplars of P drawn with
        replacement in proportion to weight.
    rng : PhiloxRNG or int, optional
        Required when subsampling.

    Returns
    -------
    kl : float
        Divergence in nats. This estimate can be negative; it is not clamped.
    """
    if limit <= 0:
        raise ValueError("`limit` must be positive.")
    if spatial_p.dims != spatial_q.dims:
        raise ValueError("P and Q must share the same dimensionality.")

    indices, weights = _evaluation_points(spatial_p, sample_clamp, rng)
    total = 0.0
    for i, w in zip(indices, weights):
        fv = spatial_p.features[i]
        p = prob(spatial_p, kernel_p, config_p, fv, norm_p, quality_p)
        q = prob(spatial_q, kernel_q, config_q, fv, norm_q, quality_q)
        total += w * np.log(p / max(q, limit))
    return float(total / weights.sum())
