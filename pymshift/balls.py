from typing import Optional

import numpy as np


class Balls:
    """
    Append-only set of cluster representatives.

    Each representative is a hyper-sphere (center, radius) in transformed
    space and is identified by its insertion order: indices start at 0 and
    are never reused or reordered.

    Parameters
    ----------
    dims : int
        Length of the feature vectors stored.
    ignore : int or None, optional
        Column skipped when measuring distances. Must match the ignore column
        of the Spatial the balls are built against.
    """

    def __init__(self, dims: int, ignore: Optional[int] = None):
        dims = int(dims)
        if dims < 1:
            raise ValueError("`dims` must be a positive integer.")
        if ignore is not None and not 0 <= int(ignore) < dims:
            raise ValueError(f"`ignore` must index a column in [0, {dims}).")

        self.dims = dims
        self.ignore = None if ignore is None else int(ignore)
        self.positional = np.ones(dims, dtype=bool)
        if self.ignore is not None:
            self.positional[self.ignore] = False

        self._centers = np.empty((8, dims), dtype=float)
        self._radii = np.empty(8, dtype=float)
        self._count = 0

    @property
    def centers(self) -> np.ndarray:
        return self._centers[: self._count]

    @property
    def radii(self) -> np.ndarray:
        return self._radii[: self._count]

    def insert(self, center: np.ndarray, radius: float) -> int:
        """Add a representative and return its index."""
        center = np.asarray(center, dtype=float)
        if center.shape != (self.dims,):
            raise ValueError(f"`center` must have shape ({self.dims},).")
        if radius < 0:
            raise ValueError("`radius` must be non-negative.")

        if self._count == self._centers.shape[0]:
            capacity = 2 * self._count
            self._centers = np.resize(self._centers, (capacity, self.dims))
            self._radii = np.resize(self._radii, capacity)

        index = self._count
        self._centers[index] = center
        self._radii[index] = radius
        self._count += 1
        return index

    def within(self, point: np.ndarray, radius: Optional[float] = None) -> Optional[int]:
        """
        Representative containing `point`, if any.

        Parameters
        ----------
        point : np.ndarray (dims,)
            Query point in transformed space.
        radius : float or None, optional
            Containment radius applied to every representative. If None, each
            representative's own radius is used.

        Returns
        -------
        index : int or None
            The containing representative nearest to `point` (lowest index on
            ties), or None.
        """
        if self._count == 0:
            return None
        point = np.asarray(point, dtype=float)
        if point.shape != (self.dims,):
            raise ValueError(f"`point` must have shape ({self.dims},).")

        delta = self.centers[:, self.positional] - point[self.positional]
        dist = np.sqrt(np.einsum("ij,ij->i", delta, delta))
        limit = self.radii if radius is None else radius
        inside = np.flatnonzero(dist <= limit)
        if inside.size == 0:
            return None
        # argmin returns the first occurrence, so ties go to the lower index
        return int(inside[np.argmin(dist[inside])])

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"Balls(count={self._count}, dims={self.dims}, ignore={self.ignore})"
