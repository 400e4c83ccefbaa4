from typing import List, Optional, Union

import numpy as np
import pandas as pd


class DataMatrix:
    r"""
    Weighted exemplar store.

    Holds the exemplars that define a kernel density estimate, their weights
    and the per-dimension scale that maps raw data into the transformed space
    every mean shift operation works in,

    $$ \mathbf{x}' = \mathbf{s} \odot \mathbf{x}. $$

    Parameters
    ----------
    data : array-like (n, dims) or pd.DataFrame
        Exemplars in original units. A 1-D array is treated as (n, 1).
    weights : array-like (n,) or None, optional
        Non-negative weight of each exemplar. Default is 1 for all.
    scale : float, array-like (dims,) or None, optional
        Strictly positive multipliers taking raw data to transformed space.
        Default is 1 for all dimensions.
    ignore : int, str or None, optional
        Column that is not a positional dimension. Its raw value is used as
        the weight of the exemplar (overriding `weights`) and it takes no
        part in distances or scaling. A column name may be given when `data`
        is a DataFrame.

    Attributes
    ----------
    n : int
        Number of exemplars.
    dims : int
        Number of columns, including the ignored one.
    names : list of str or None
        Column names when built from a DataFrame.
    positional : np.ndarray (dims,)
        Boolean mask of the dimensions used for distances.
    features : np.ndarray (n, dims)
        Exemplars in transformed space; the ignored column is left raw.
    weight : np.ndarray (n,)
        Effective weight of each exemplar.
    """

    def __init__(
        self,
        data: Union[np.ndarray, pd.DataFrame, list],
        weights: Optional[np.ndarray] = None,
        scale: Union[float, np.ndarray, None] = None,
        ignore: Union[int, str, None] = None,
    ):
        self.names: Optional[List[str]] = None
        if isinstance(data, pd.DataFrame):
            self.names = [str(c) for c in data.columns]
            if isinstance(ignore, str):
                if ignore not in self.names:
                    raise ValueError(f"Column `{ignore}` not found in data.")
                ignore = self.names.index(ignore)
            data = data.to_numpy(dtype=float)

        data = np.asarray(data, dtype=float)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        if data.ndim != 2:
            raise ValueError("`data` must be a 2-D array of shape (n, dims).")
        if not np.all(np.isfinite(data)):
            raise ValueError("`data` must not contain NaN or infinite values.")

        n, dims = data.shape
        if ignore is not None:
            if isinstance(ignore, str):
                raise ValueError("Column names for `ignore` require a DataFrame.")
            ignore = int(ignore)
            if not 0 <= ignore < dims:
                raise ValueError(f"`ignore` must index a column in [0, {dims}).")
            if dims < 2:
                raise ValueError("At least one positional column is required.")

        self.data = data
        self.n = n
        self.dims = dims
        self.ignore = ignore

        self.positional = np.ones(dims, dtype=bool)
        if ignore is not None:
            self.positional[ignore] = False

        if weights is None:
            weights = np.ones(n, dtype=float)
        weights = np.asarray(weights, dtype=float).reshape(-1)
        if weights.size != n:
            raise ValueError("`weights` must have one entry per exemplar.")
        self._weights = weights

        if ignore is None:
            weight = weights
        else:
            weight = data[:, ignore].copy()
        if np.any(weight < 0):
            raise ValueError("Exemplar weights must be non-negative.")
        self.weight = weight

        self.scale = np.ones(dims, dtype=float)
        self.features = data.copy()
        self.set_scale(1.0 if scale is None else scale)

    def set_scale(self, scale: Union[float, np.ndarray]) -> None:
        """Replace the scale vector and recompute the transformed exemplars."""
        scale = np.asarray(scale, dtype=float)
        if scale.ndim == 0:
            scale = np.full(self.dims, float(scale))
        else:
            scale = scale.reshape(-1)
            if scale.size == int(self.positional.sum()) and scale.size != self.dims:
                full = np.ones(self.dims, dtype=float)
                full[self.positional] = scale
                scale = full
        if scale.size != self.dims:
            raise ValueError(f"`scale` must have {self.dims} entries.")
        if np.any(scale[self.positional] <= 0) or not np.all(np.isfinite(scale)):
            raise ValueError("`scale` must be strictly positive and finite.")

        scale = scale.copy()
        if self.ignore is not None:
            scale[self.ignore] = 1.0
        self.scale = scale
        self.features = self.data * scale

    def fv(self, index: int) -> np.ndarray:
        """Transformed feature vector of one exemplar (a copy)."""
        return self.features[index].copy()

    def to_transformed(self, x: np.ndarray) -> np.ndarray:
        x = self._coerce(x)
        return x * self.scale

    def to_original(self, x: np.ndarray) -> np.ndarray:
        x = self._coerce(x)
        return x / self.scale

    def _coerce(self, x) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.ndim == 1 and self.dims == 1 and x.size != 1:
            x = x.reshape(-1, 1)
        if x.shape[-1] != self.dims:
            raise ValueError(
                f"Feature vectors must have {self.dims} dimensions, got {x.shape[-1]}."
            )
        return x

    def __len__(self) -> int:
        return self.n

    def __repr__(self) -> str:
        return f"DataMatrix(n={self.n}, dims={self.dims}, ignore={self.ignore})"


def _weighted_std(dm: DataMatrix) -> np.ndarray:
    x = dm.data[:, dm.positional]
    w = dm.weight
    total = w.sum()
    if total <= 0:
        raise ValueError("Total exemplar weight must be positive.")
    mean = (w[:, None] * x).sum(axis=0) / total
    var = (w[:, None] * (x - mean) ** 2).sum(axis=0) / total
    std = np.sqrt(var)
    # constant columns would give an infinite scale
    std[std <= 0] = 1.0
    return std


def _bandwidth_to_scale(dm: DataMatrix, h: np.ndarray) -> np.ndarray:
    scale = np.ones(dm.dims, dtype=float)
    scale[dm.positional] = 1.0 / h
    return scale


def scale_silverman(dm: DataMatrix) -> np.ndarray:
    r"""
    Scale vector from Silverman's rule of thumb.

    $$ h_j = \sigma_j \left(\frac{4}{(d + 2) n}\right)^{1 / (d + 4)} $$

    where $n$ is the total exemplar weight and $d$ the positional
    dimensionality. The returned scale is $1 / h$.

    Parameters
    ----------
    dm : DataMatrix
        Exemplar store; only its raw data and weights are used.

    Returns
    -------
    scale : np.ndarray (dims,)
        Scale vector, 1 for the ignored column.

    Reference
    ---------
    Silverman, B. W. (1986). Density Estimation for Statistics and Data Analysis.
    """
    d = int(dm.positional.sum())
    n = float(dm.weight.sum())
    h = _weighted_std(dm) * (4.0 / ((d + 2.0) * n)) ** (1.0 / (d + 4.0))
    return _bandwidth_to_scale(dm, h)


def scale_scott(dm: DataMatrix) -> np.ndarray:
    r"""
    Scale vector from Scott's rule, $h_j = \sigma_j n^{-1 / (d + 4)}$.
    """
    d = int(dm.positional.sum())
    n = float(dm.weight.sum())
    h = _weighted_std(dm) * n ** (-1.0 / (d + 4.0))
    return _bandwidth_to_scale(dm, h)
