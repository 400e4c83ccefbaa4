from typing import Optional

import numpy as np
from scipy.linalg import eigh

from .kernels import gaussian
from .shift import DEFAULT_EPSILON, DEFAULT_ITER_CAP, DEFAULT_QUALITY
from .spatial import Spatial


def _buffer(buf: Optional[np.ndarray], shape: tuple, name: str) -> np.ndarray:
    if buf is None:
        return np.empty(shape, dtype=float)
    if buf.shape != shape:
        raise ValueError(f"`{name}` must have shape {shape}, got {buf.shape}.")
    return buf


def _gradient_and_hessian(
    spatial: Spatial,
    x: np.ndarray,
    radius: float,
    grad: np.ndarray,
    hess: Optional[np.ndarray],
) -> float:
    """
    Gradient (and optionally Hessian) of the unnormalised Gaussian KDE at x.

    Returns the total kernel weight of the neighbourhood.
    """
    grad[:] = 0.0
    if hess is not None:
        hess[:] = 0.0

    fv = np.zeros(spatial.dims, dtype=float)
    fv[spatial.positional] = x
    indices, dist = spatial.range(fv, radius)
    if indices.size == 0:
        return 0.0

    w = np.exp(-0.5 * dist**2) * spatial.weights(indices)
    delta = spatial.features[indices][:, spatial.positional] - x
    grad[:] = w @ delta
    if hess is not None:
        hess[:] = (delta * w[:, None]).T @ delta
        hess[np.diag_indices_from(hess)] -= w.sum()
    return float(w.sum())


def _constrained_directions(
    hess: np.ndarray,
    eigen_val: np.ndarray,
    eigen_vec: np.ndarray,
    count: int,
) -> np.ndarray:
    """Eigenvectors of the `count` most negative eigenvalues, as columns."""
    vals, vecs = eigh(hess)
    # ties broken by original position so the selection is reproducible
    order = np.lexsort((np.arange(vals.size), vals))
    eigen_val[:] = vals[order]
    eigen_vec[:] = vecs[:, order]
    return eigen_vec[:, :count]


def manifold(
    spatial: Spatial,
    degrees: int,
    fv: np.ndarray,
    grad: Optional[np.ndarray] = None,
    hess: Optional[np.ndarray] = None,
    eigen_val: Optional[np.ndarray] = None,
    eigen_vec: Optional[np.ndarray] = None,
    quality: float = DEFAULT_QUALITY,
    epsilon: float = DEFAULT_EPSILON,
    iter_cap: int = DEFAULT_ITER_CAP,
    always_hessian: bool = True,
) -> int:
    r"""
    Project a feature vector onto a density ridge with subspace constrained
    mean shift.

    At each step the gradient $\mathbf{g}$ and Hessian $\mathbf{H}$ of the
    KDE are evaluated at the current point. The $d - k$ eigenvectors of
    $\mathbf{H}$ with the most negative eigenvalues, $\mathbf{V}$, span the
    directions across the $k$-dimensional ridge, and the point moves by

    $$ \Delta = \mathbf{V}\mathbf{V}^\top \mathbf{g} / \textstyle\sum_i w_i, $$

    the mean shift vector restricted to those directions. Only the unit
    isotropic Gaussian kernel is supported, hence no kernel argument.

    Parameters
    ----------
    spatial : Spatial
        Index over the exemplars defining the density.
    degrees : int
        Dimensionality $k$ of the manifold: 1 extracts lines, 2 surfaces and
        so on. 0 is plain mean shift, for which :func:`mode` is far cheaper.
    fv : np.ndarray (dims,)
        Start point in transformed space, updated in place.
    grad : np.ndarray (d,), optional
        Gradient buffer, d being the positional dimensionality.
    hess : np.ndarray (d, d), optional
        Hessian buffer.
    eigen_val : np.ndarray (d,), optional
        Eigenvalues of the Hessian, ascending.
    eigen_vec : np.ndarray (d, d), optional
        Matching eigenvectors, as columns.
    quality : float, default=0.5
        Search radius selector in [0, 1].
    epsilon : float, default=1e-3
        Step length below which the point has converged.
    iter_cap : int, default=1024
        Maximum number of steps.
    always_hessian : bool, default=True
        Recompute the Hessian every step. If False it is computed once and
        its directions reused, which is much faster and adequate for clean
        data.

    Returns
    -------
    steps : int
        Number of steps taken.

    Reference
    ---------
    Ozertem, U. & Erdogmus, D. (2011). Locally Defined Principal Curves and
    Surfaces. JMLR 12, 1249-1286.
    """
    spatial.check_fv(fv)
    if not isinstance(fv, np.ndarray) or fv.dtype.kind != "f":
        raise ValueError("`fv` must be a float numpy array, it is updated in place.")
    d = int(spatial.positional.sum())
    degrees = int(degrees)
    if not 0 <= degrees < d:
        raise ValueError(f"`degrees` must be in [0, {d}).")
    if epsilon <= 0:
        raise ValueError("`epsilon` must be positive.")
    if iter_cap <= 0:
        raise ValueError("`iter_cap` must be a positive integer.")

    grad = _buffer(grad, (d,), "grad")
    hess = _buffer(hess, (d, d), "hess")
    eigen_val = _buffer(eigen_val, (d,), "eigen_val")
    eigen_vec = _buffer(eigen_vec, (d, d), "eigen_vec")

    radius = gaussian.range(gaussian.config(d), quality)
    pos = spatial.positional
    x = fv[pos].copy()
    directions = None

    for step in range(1, iter_cap + 1):
        need_hessian = always_hessian or directions is None
        total = _gradient_and_hessian(
            spatial, x, radius, grad, hess if need_hessian else None
        )
        if total <= 0:
            return step
        if need_hessian:
            directions = _constrained_directions(hess, eigen_val, eigen_vec, d - degrees)

        delta = directions @ (directions.T @ grad) / total
        x += delta
        fv[pos] = x
        if np.sqrt(delta @ delta) < epsilon:
            return step
    return iter_cap
