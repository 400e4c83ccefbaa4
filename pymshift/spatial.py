from typing import Tuple

import numpy as np
from scipy.spatial import cKDTree

from .data import DataMatrix


class Spatial:
    """
    Range-query index over the exemplars of a :class:`DataMatrix`.

    A KD-tree is built over the positional columns of the transformed
    exemplars; the ignored column, if any, is only reachable through
    :meth:`get` and :meth:`weights`.

    Parameters
    ----------
    dm : DataMatrix
        Exemplar store. The index is a snapshot: rebuild it after
        :meth:`DataMatrix.set_scale`.
    leafsize : int, default=16
        Passed on to :class:`scipy.spatial.cKDTree`.
    """

    def __init__(self, dm: DataMatrix, leafsize: int = 16):
        if dm.n == 0:
            raise ValueError("Cannot index an empty DataMatrix.")
        self.dm = dm
        self.n = dm.n
        self.dims = dm.dims
        self.ignore = dm.ignore
        self.positional = dm.positional.copy()
        self.features = dm.features.copy()
        self._weight = dm.weight.copy()
        self._points = np.ascontiguousarray(self.features[:, self.positional])
        self._tree = cKDTree(self._points, leafsize=leafsize)

    def check_fv(self, fv: np.ndarray) -> np.ndarray:
        fv = np.asarray(fv)
        if fv.shape != (self.dims,):
            raise ValueError(
                f"Feature vector must have shape ({self.dims},), got {fv.shape}."
            )
        return fv

    def range(self, center: np.ndarray, radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Exemplars within `radius` of `center`.

        Parameters
        ----------
        center : np.ndarray (dims,)
            Query point in transformed space.
        radius : float
            Search radius.

        Returns
        -------
        indices : np.ndarray of int
            Exemplar indices, ascending.
        distances : np.ndarray of float
            Distance from `center` to each exemplar.
        """
        center = self.check_fv(center)
        x = np.asarray(center, dtype=float)[self.positional]
        indices = np.asarray(
            self._tree.query_ball_point(x, r=radius, return_sorted=True), dtype=np.intp
        )
        if indices.size == 0:
            return indices, np.empty(0, dtype=float)
        delta = self._points[indices] - x
        return indices, np.sqrt(np.einsum("ij,ij->i", delta, delta))

    def weights(self, indices: np.ndarray) -> np.ndarray:
        """Effective weights of the given exemplars."""
        return self._weight[indices]

    def get(self, index: int, column: int) -> float:
        """Single attribute of an exemplar in transformed space."""
        return float(self.features[index, column])

    def __len__(self) -> int:
        return self.n

    def __repr__(self) -> str:
        return f"Spatial(n={self.n}, dims={self.dims}, ignore={self.ignore})"
