from __future__ import annotations

import warnings
from typing import Optional, Union

import numpy as np
import pandas as pd

from .balls import Balls
from .data import DataMatrix, scale_scott, scale_silverman
from .density import calc_norm, calc_weight, draw, prob
from .diagnostics import entropy, kl_divergence, loo_nll
from .kernels import Kernel, get_kernel
from .manifold import manifold
from .rng import PhiloxRNG
from .shift import assign_cluster, cluster, mode
from .spatial import Spatial

ALLOWED_BANDWIDTH_RULES = {"silverman", "scott"}


class MeanShift:
    """
    Mean shift clustering and kernel density estimation.

    Exemplars are mapped into a transformed space by ``scale = 1 / bandwidth``
    and a kernel density estimate with a unit kernel is built there. Every
    exemplar is walked uphill to its mode; exemplars reaching the same mode
    share a cluster. The fitted model also evaluates densities, draws samples,
    projects points onto density ridges and provides likelihood based
    diagnostics for choosing the bandwidth or kernel.

    Parameters
    ----------
    kernel : str or Kernel, default="gaussian"
        Kernel family, see :mod:`pymshift.kernels`.
    alpha : float or None, default=None
        Shape parameter of the kernel (degrees of freedom for ``student_t``).
    bandwidth : {"silverman", "scott"}, float or array-like, default="silverman"
        Kernel bandwidth in original units, either a rule of thumb, a single
        value or one value per positional dimension.
    quality : float, default=0.5
        Search radius selector in [0, 1]; higher is more accurate and slower.
    epsilon : float, default=1e-3
        Convergence threshold on the step length, in transformed space.
    iter_cap : int, default=1024
        Maximum number of mean shift steps per point.
    ident_dist : float, default=0.5
        Radius of each mode, in transformed space. Used by :meth:`predict`.
    merge_range : float, default=0.5
        Distance to a known mode at which a walk is merged into it.
    check_step : int, default=4
        Steps between checks for known modes.
    ignore : int, str or None, default=None
        Column used as exemplar weight instead of a dimension.
    random_seed : int, default=2046
        Philox key for sampling and subsampled diagnostics.

    Attributes
    ----------
    labels_ : np.ndarray (n,)
        Mode index of each exemplar.
    modes_ : np.ndarray (n_clusters, dims)
        Modes in original units.
    n_clusters_ : int
        Number of modes found.
    balls_ : Balls
        Modes in transformed space.
    weight_ : float
        Total exemplar weight.
    norm_ : float
        Cached normalising multiplier of the density.

    Examples
    --------
        import numpy as np
        from pymshift.clustering import MeanShift
        rng = np.random.default_rng(42)
        x = np.vstack([rng.normal(0, 1, (50, 2)), rng.normal(10, 1, (50, 2))])
        ms = MeanShift(bandwidth=2.0).fit(x)
        ms.n_clusters_
    """

    def __init__(
        self,
        kernel: Union[str, Kernel] = "gaussian",
        alpha: Optional[float] = None,
        bandwidth: Union[str, float, np.ndarray] = "silverman",
        quality: float = 0.5,
        epsilon: float = 1e-3,
        iter_cap: int = 1024,
        ident_dist: float = 0.5,
        merge_range: float = 0.5,
        check_step: int = 4,
        ignore: Union[int, str, None] = None,
        random_seed: int = 2046,
    ):
        self.kernel = kernel if isinstance(kernel, Kernel) else get_kernel(kernel)
        if not 0 <= quality <= 1:
            raise ValueError("`quality` must be in [0, 1].")
        if epsilon <= 0:
            raise ValueError("`epsilon` must be positive.")
        if iter_cap <= 0:
            raise ValueError("`iter_cap` must be a positive integer.")
        if check_step <= 0:
            raise ValueError("`check_step` must be a positive integer.")
        if ident_dist < 0 or merge_range < 0:
            raise ValueError("`ident_dist` and `merge_range` must be non-negative.")
        if isinstance(bandwidth, str) and bandwidth not in ALLOWED_BANDWIDTH_RULES:
            raise ValueError(f"`bandwidth` must be a number or one of {ALLOWED_BANDWIDTH_RULES}.")

        self.alpha = alpha
        self.bandwidth = bandwidth
        self.quality = quality
        self.epsilon = epsilon
        self.iter_cap = iter_cap
        self.ident_dist = ident_dist
        self.merge_range = merge_range
        self.check_step = check_step
        self.ignore = ignore
        self.random_seed = random_seed
        self.rng = PhiloxRNG(random_seed)

        self.dm: Optional[DataMatrix] = None
        self.spatial: Optional[Spatial] = None
        self.config = None
        self.weight_: Optional[float] = None
        self.norm_: Optional[float] = None
        self.labels_: Optional[np.ndarray] = None
        self.modes_: Optional[np.ndarray] = None
        self.n_clusters_: Optional[int] = None
        self.balls_: Optional[Balls] = None

    def _scale_for(self, dm: DataMatrix, bandwidth) -> np.ndarray:
        if isinstance(bandwidth, str):
            if bandwidth == "silverman":
                return scale_silverman(dm)
            if bandwidth == "scott":
                return scale_scott(dm)
            raise ValueError(f"`bandwidth` must be a number or one of {ALLOWED_BANDWIDTH_RULES}.")
        h = np.asarray(bandwidth, dtype=float)
        if np.any(h <= 0):
            raise ValueError("`bandwidth` must be positive.")
        return 1.0 / h

    def _refresh(self) -> None:
        # the spatial index and norm depend on the scale; rebuild both
        self.spatial = Spatial(self.dm)
        self.weight_ = calc_weight(self.dm)
        self.norm_ = calc_norm(self.dm, self.kernel, self.config, self.weight_)

    def _check_fitted(self) -> None:
        if self.dm is None:
            raise ValueError("Model must be fitted before use. Call fit() first.")

    def _transform(self, X) -> np.ndarray:
        x = self.dm.to_transformed(X)
        return np.array(np.atleast_2d(x), dtype=float)

    def set_data(self, X, w: Optional[np.ndarray] = None) -> "MeanShift":
        """Load exemplars without clustering them, enough for densities and sampling."""
        self.dm = DataMatrix(X, weights=w, ignore=self.ignore)
        if self.dm.n == 0:
            raise ValueError("Input data must contain at least one observation.")
        self.dm.set_scale(self._scale_for(self.dm, self.bandwidth))
        self.config = self.kernel.config(int(self.dm.positional.sum()), self.alpha)
        self._refresh()
        return self

    def set_bandwidth(self, bandwidth) -> "MeanShift":
        """Change the bandwidth of a loaded model, discarding any clustering."""
        self._check_fitted()
        self.bandwidth = bandwidth
        self.dm.set_scale(self._scale_for(self.dm, bandwidth))
        self._refresh()
        self.labels_ = self.modes_ = self.n_clusters_ = self.balls_ = None
        return self

    def fit(self, X, w: Optional[np.ndarray] = None, verbose: Union[bool, int] = 0):
        """
        Find the modes of the density and cluster the exemplars by them.

        Parameters
        ----------
        X : array-like (n, dims) or pd.DataFrame
            Exemplars in original units.
        w : np.ndarray (n,), optional
            Exemplar weights.
        verbose : bool or int, default=0
            If True, print a summary. If an integer, also print progress every
            `verbose` exemplars.

        Returns
        -------
        self : MeanShift
        """
        self.set_data(X, w)

        if verbose:
            print("Exemplar".ljust(10) + "Modes")
        step = 0 if verbose is True else int(verbose)
        balls = Balls(self.dm.dims, ignore=self.dm.ignore)
        labels = cluster(
            self.spatial,
            self.kernel,
            self.config,
            balls,
            quality=self.quality,
            epsilon=self.epsilon,
            iter_cap=self.iter_cap,
            ident_dist=self.ident_dist,
            merge_range=self.merge_range,
            check_step=self.check_step,
            verbose=step,
        )

        self.balls_ = balls
        self.labels_ = labels
        self.n_clusters_ = len(balls)
        self.modes_ = self.dm.to_original(balls.centers)

        if verbose:
            print(f"Found {self.n_clusters_} modes from {self.dm.n} exemplars.\n")
        if self.dm.n > 1 and self.n_clusters_ == self.dm.n:
            warnings.warn(
                "Every exemplar converged to its own mode; the bandwidth is "
                "probably too small.",
                RuntimeWarning,
                stacklevel=2,
            )
        return self

    def predict(self, X) -> np.ndarray:
        """
        Assign new points to the fitted modes.

        Returns
        -------
        labels : np.ndarray of int
            Mode index of each point, -1 where the walk ends outside all modes.
        """
        if self.balls_ is None:
            raise ValueError("Model must be fitted before calling predict().")
        fvs = self._transform(X)
        temp = np.empty(self.dm.dims, dtype=float)
        labels = np.empty(fvs.shape[0], dtype=np.int64)
        for i, fv in enumerate(fvs):
            labels[i] = assign_cluster(
                self.spatial,
                self.kernel,
                self.config,
                self.balls_,
                fv,
                temp,
                quality=self.quality,
                epsilon=self.epsilon,
                iter_cap=self.iter_cap,
                check_step=self.check_step,
            )
        return labels

    def predict_density(self, X) -> np.ndarray:
        """Density at each point, in original units."""
        self._check_fitted()
        fvs = self._transform(X)
        return np.array(
            [
                prob(self.spatial, self.kernel, self.config, fv, self.norm_, self.quality)
                for fv in fvs
            ]
        )

    def score_samples(self, X) -> np.ndarray:
        """Log density at each point (-inf where the density is zero)."""
        with np.errstate(divide="ignore"):
            return np.log(self.predict_density(X))

    def score(self, X) -> float:
        return float(np.mean(self.score_samples(X)))

    def sample(self, n_samples: int = 1, start: int = 0) -> np.ndarray:
        """
        Draw samples from the density, in original units.

        Sample `i` is drawn with rng index ``start + i``, so repeated calls (or
        calls covering disjoint ranges) are reproducible.
        """
        self._check_fitted()
        if n_samples <= 0:
            raise ValueError("`n_samples` must be a positive integer.")
        out = np.empty((n_samples, self.dm.dims), dtype=float)
        for i in range(n_samples):
            draw(self.dm, self.kernel, self.config, self.rng, start + i, out[i])
        return self.dm.to_original(out)

    def converge(self, X) -> np.ndarray:
        """Mode reached from each point, in original units."""
        self._check_fitted()
        fvs = self._transform(X)
        temp = np.empty(self.dm.dims, dtype=float)
        for fv in fvs:
            mode(
                self.spatial,
                self.kernel,
                self.config,
                fv,
                temp,
                quality=self.quality,
                epsilon=self.epsilon,
                iter_cap=self.iter_cap,
            )
        return self.dm.to_original(fvs)

    def project(self, X, degrees: int, always_hessian: bool = True) -> np.ndarray:
        """
        Project each point onto the `degrees`-dimensional ridge of the density.

        Requires the Gaussian kernel.
        """
        self._check_fitted()
        if self.kernel.name != "gaussian":
            raise ValueError("Manifold projection requires the gaussian kernel.")
        fvs = self._transform(X)
        d = self.config.dims
        grad = np.empty(d)
        hess = np.empty((d, d))
        eigen_val = np.empty(d)
        eigen_vec = np.empty((d, d))
        for fv in fvs:
            manifold(
                self.spatial,
                degrees,
                fv,
                grad,
                hess,
                eigen_val,
                eigen_vec,
                quality=self.quality,
                epsilon=self.epsilon,
                iter_cap=self.iter_cap,
                always_hessian=always_hessian,
            )
        return self.dm.to_original(fvs)

    def loo_nll(self, limit: float = 1e-16, sample_clamp: int = 0) -> float:
        """Leave-one-out negative log-likelihood of the exemplars, in nats."""
        self._check_fitted()
        return loo_nll(
            self.spatial,
            self.kernel,
            self.config,
            self.norm_,
            self.quality,
            limit,
            sample_clamp,
            self.rng,
        )

    def entropy(self, sample_clamp: int = 0) -> float:
        """Entropy estimate of the density, in nats."""
        self._check_fitted()
        return entropy(
            self.spatial,
            self.kernel,
            self.config,
            self.norm_,
            self.quality,
            sample_clamp,
            self.rng,
        )

    def kl_divergence(
        self, other: "MeanShift", limit: float = 1e-16, sample_clamp: int = 0
    ) -> float:
        """
        Estimate D(self || other) in nats; may be negative.

        Both models must share the same bandwidth, so that their transformed
        spaces coincide.
        """
        self._check_fitted()
        other._check_fitted()
        if not np.allclose(self.dm.scale, other.dm.scale):
            raise ValueError("Both models must use the same bandwidth.")
        return kl_divergence(
            self.spatial,
            self.kernel,
            self.config,
            self.norm_,
            self.quality,
            other.spatial,
            other.kernel,
            other.config,
            other.norm_,
            other.quality,
            limit,
            sample_clamp,
            self.rng,
        )

    def summary(self) -> pd.DataFrame:
        """
        One row per mode: its coordinates in original units, the number of
        exemplars assigned to it and their total weight.
        """
        if self.balls_ is None:
            raise ValueError("Model must be fitted before calling summary().")
        names = self.dm.names or [f"x{j}" for j in range(self.dm.dims)]
        columns = [name for name, keep in zip(names, self.dm.positional) if keep]
        df = pd.DataFrame(self.modes_[:, self.dm.positional], columns=columns)
        df.index.name = "mode"
        df["size"] = np.bincount(self.labels_, minlength=self.n_clusters_)
        df["weight"] = np.bincount(
            self.labels_, weights=self.dm.weight, minlength=self.n_clusters_
        )
        return df
