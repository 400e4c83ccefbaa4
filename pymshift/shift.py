from typing import Callable, Optional

import numpy as np

from .balls import Balls
from .kernels import Kernel, KernelConfig
from .spatial import Spatial

DEFAULT_QUALITY = 0.5
DEFAULT_EPSILON = 1e-3
DEFAULT_ITER_CAP = 1024
DEFAULT_CHECK_STEP = 4
DEFAULT_MERGE_RANGE = 0.5


def _check_convergence_args(epsilon: float, iter_cap: int) -> None:
    if epsilon <= 0:
        raise ValueError("`epsilon` must be positive.")
    if iter_cap <= 0:
        raise ValueError("`iter_cap` must be a positive integer.")


def _check_buffers(spatial: Spatial, fv: np.ndarray, temp: Optional[np.ndarray]) -> np.ndarray:
    spatial.check_fv(fv)
    if not isinstance(fv, np.ndarray) or fv.dtype.kind != "f":
        raise ValueError("`fv` must be a float numpy array, it is updated in place.")
    if temp is None:
        return np.empty_like(fv)
    if not isinstance(temp, np.ndarray) or temp.dtype.kind != "f":
        raise ValueError("`temp` must be a float numpy array.")
    if temp.shape != fv.shape:
        raise ValueError("`temp` must have the same shape as `fv`.")
    return temp


def _shift(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    fv: np.ndarray,
    temp: np.ndarray,
    radius: float,
) -> None:
    """Write the kernel weighted mean of the neighbours of fv into temp."""
    temp[:] = fv
    indices, dist = spatial.range(fv, radius)
    if indices.size == 0:
        return
    w = kernel.weight(dist**2, config) * spatial.weights(indices)
    total = w.sum()
    if total <= 0:
        return
    pos = spatial.positional
    temp[pos] = (w @ spatial.features[indices][:, pos]) / total


def _walk(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    fv: np.ndarray,
    temp: np.ndarray,
    quality: float,
    epsilon: float,
    iter_cap: int,
    check: Optional[Callable[[np.ndarray], Optional[int]]] = None,
    check_step: int = DEFAULT_CHECK_STEP,
):
    """
    Mean shift iteration shared by the mode finders.

    Returns (steps, hit) where hit is the first non-None result of `check`,
    which is called every `check_step` steps.
    """
    radius = kernel.range(config, quality)
    for step in range(1, iter_cap + 1):
        _shift(spatial, kernel, config, fv, temp, radius)
        delta = temp - fv
        if np.sqrt(delta @ delta) < epsilon:
            return step, None
        fv[:] = temp

        if check is not None and step % check_step == 0:
            hit = check(fv)
            if hit is not None:
                return step, hit
    return iter_cap, None


def mode(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    fv: np.ndarray,
    temp: Optional[np.ndarray] = None,
    quality: float = DEFAULT_QUALITY,
    epsilon: float = DEFAULT_EPSILON,
    iter_cap: int = DEFAULT_ITER_CAP,
) -> int:
    """
    Move a feature vector to the mode it converges to under mean shift.

    Each step replaces `fv` with the kernel weighted mean of the exemplars
    within the search radius; it stops once a step is shorter than `epsilon`
    or after `iter_cap` steps. When the data has an ignore column, that column
    weights the exemplars and `fv`'s own entry for it is left untouched.

    Parameters
    ----------
    spatial : Spatial
        Index over the exemplars defining the density.
    kernel : Kernel
        Kernel family.
    config : KernelConfig
        Kernel parameters.
    fv : np.ndarray (dims,)
        Start point in transformed space, updated in place.
    temp : np.ndarray (dims,), optional
        Scratch buffer; allocated if omitted.
    quality : float, default=0.5
        In [0, 1], maps to the kernel's low and high search radius.
    epsilon : float, default=1e-3
        Step length below which the point has converged.
    iter_cap : int, default=1024
        Maximum number of steps.

    Returns
    -------
    steps : int
        Number of steps taken; equal to `iter_cap` if it was hit.
    """
    _check_convergence_args(epsilon, iter_cap)
    temp = _check_buffers(spatial, fv, temp)
    steps, _ = _walk(spatial, kernel, config, fv, temp, quality, epsilon, iter_cap)
    return steps


def mode_merge(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    balls: Balls,
    fv: np.ndarray,
    temp: Optional[np.ndarray] = None,
    quality: float = DEFAULT_QUALITY,
    epsilon: float = DEFAULT_EPSILON,
    iter_cap: int = DEFAULT_ITER_CAP,
    merge_range: float = DEFAULT_MERGE_RANGE,
    check_step: int = DEFAULT_CHECK_STEP,
    ident_dist: Optional[float] = None,
) -> int:
    """
    Find the representative a feature vector converges to, creating it if new.

    Runs the :func:`mode` iteration, checking every `check_step` steps whether
    `fv` is within `merge_range` of an existing representative; if so, that
    index is returned without waiting for convergence. Otherwise, once the walk
    ends, a new representative is inserted at `fv`.

    Parameters
    ----------
    spatial, kernel, config, fv, temp, quality, epsilon, iter_cap
        As for :func:`mode`.
    balls : Balls
        Representatives found so far; grows by at most one.
    merge_range : float, default=0.5
        Distance to a representative's centre at which the walk snaps to it.
    check_step : int, default=4
        Steps between representative checks, which cost more than a step.
    ident_dist : float, optional
        Radius given to a newly inserted representative. Defaults to
        `merge_range`.

    Returns
    -------
    index : int
        Index of the representative reached.
    """
    _check_convergence_args(epsilon, iter_cap)
    if check_step <= 0:
        raise ValueError("`check_step` must be a positive integer.")
    if merge_range < 0:
        raise ValueError("`merge_range` must be non-negative.")
    if balls.dims != spatial.dims:
        raise ValueError("`balls` and `spatial` must share the same dimensionality.")
    temp = _check_buffers(spatial, fv, temp)

    def check(point):
        return balls.within(point, merge_range)

    _, hit = _walk(
        spatial, kernel, config, fv, temp, quality, epsilon, iter_cap, check, check_step
    )
    if hit is not None:
        return hit

    hit = balls.within(fv, merge_range)
    if hit is not None:
        return hit
    return balls.insert(fv, merge_range if ident_dist is None else ident_dist)


def cluster(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    balls: Balls,
    out: Optional[np.ndarray] = None,
    quality: float = DEFAULT_QUALITY,
    epsilon: float = DEFAULT_EPSILON,
    iter_cap: int = DEFAULT_ITER_CAP,
    ident_dist: float = DEFAULT_MERGE_RANGE,
    merge_range: float = DEFAULT_MERGE_RANGE,
    check_step: int = DEFAULT_CHECK_STEP,
    verbose: int = 0,
) -> np.ndarray:
    """
    Cluster every exemplar by the mode it converges to.

    Each exemplar, in index order, is walked with :func:`mode_merge`. After
    the call `balls` holds the modes and `out[i]` the mode index of exemplar
    `i`. If `spatial` ignores a column, `balls` must ignore the same column.

    Parameters
    ----------
    spatial, kernel, config, quality, epsilon, iter_cap, merge_range, check_step
        As for :func:`mode_merge`.
    balls : Balls
        Usually empty; existing representatives are reused.
    out : np.ndarray of int (n,), optional
        Output labels; allocated if omitted.
    ident_dist : float, default=0.5
        Radius of newly discovered representatives.
    verbose : int, default=0
        If positive, print progress every `verbose` exemplars.

    Returns
    -------
    out : np.ndarray of int (n,)
        Representative index of each exemplar.
    """
    if out is None:
        out = np.empty(spatial.n, dtype=np.int64)
    elif out.shape != (spatial.n,):
        raise ValueError(f"`out` must have shape ({spatial.n},).")
    if ident_dist < 0:
        raise ValueError("`ident_dist` must be non-negative.")

    fv = np.empty(spatial.dims, dtype=float)
    temp = np.empty(spatial.dims, dtype=float)
    for i in range(spatial.n):
        fv[:] = spatial.features[i]
        out[i] = mode_merge(
            spatial,
            kernel,
            config,
            balls,
            fv,
            temp,
            quality=quality,
            epsilon=epsilon,
            iter_cap=iter_cap,
            merge_range=merge_range,
            check_step=check_step,
            ident_dist=ident_dist,
        )
        if verbose and (i + 1) % int(verbose) == 0:
            print(f"{i + 1}".ljust(10) + f"{len(balls)}")
    return out


def assign_cluster(
    spatial: Spatial,
    kernel: Kernel,
    config: KernelConfig,
    balls: Balls,
    fv: np.ndarray,
    temp: Optional[np.ndarray] = None,
    quality: float = DEFAULT_QUALITY,
    epsilon: float = DEFAULT_EPSILON,
    iter_cap: int = DEFAULT_ITER_CAP,
    check_step: int = DEFAULT_CHECK_STEP,
) -> int:
    """
    Cluster a new feature vector against an existing clustering.

    Walks `fv` as :func:`mode` does, testing every `check_step` steps and
    once more at the end whether it lies inside a representative (using the
    representatives' own radii). `balls` is never modified.

    Returns
    -------
    index : int
        Index of the containing representative, or -1.
    """
    _check_convergence_args(epsilon, iter_cap)
    if check_step <= 0:
        raise ValueError("`check_step` must be a positive integer.")
    if balls.dims != spatial.dims:
        raise ValueError("`balls` and `spatial` must share the same dimensionality.")
    temp = _check_buffers(spatial, fv, temp)

    _, hit = _walk(
        spatial, kernel, config, fv, temp, quality, epsilon, iter_cap, balls.within, check_step
    )
    if hit is None:
        hit = balls.within(fv)
    return -1 if hit is None else hit
