from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy.special import gammaln
from scipy.stats import chi2, f

__all__ = [
    "Kernel",
    "KernelConfig",
    "uniform",
    "triangular",
    "epanechnikov",
    "gaussian",
    "student_t",
    "KERNELS",
    "get_kernel",
]


@dataclass(frozen=True)
class KernelConfig:
    """Parameters a kernel is evaluated with.

    dims is the positional dimensionality (ignored columns excluded); alpha is
    the kernel's shape parameter, None for kernels without one.
    """

    dims: int
    alpha: Optional[float] = None


@dataclass(frozen=True)
class Kernel:
    """
    A kernel family, expressed as a bundle of plain functions.

    Attributes
    ----------
    name : str
        Identifier used by :func:`get_kernel`.
    weight : callable(dist_sqr, config) -> np.ndarray
        Un-normalised kernel value for squared distances.
    norm : callable(config) -> float
        Constant that turns `weight` into a density integrating to one.
    range : callable(config, quality) -> float
        Search radius. `quality` in [0, 1] trades accuracy for speed.
    offset : callable(config, generator) -> np.ndarray
        Draw a random offset (dims,) from the kernel.
    default_alpha : float or None
        Default shape parameter, None if the kernel takes none.
    """

    name: str
    weight: Callable[[np.ndarray, KernelConfig], np.ndarray]
    norm: Callable[[KernelConfig], float]
    range: Callable[[KernelConfig, float], float]
    offset: Callable[[KernelConfig, np.random.Generator], np.ndarray]
    default_alpha: Optional[float] = None

    def config(self, dims: int, alpha: Optional[float] = None) -> KernelConfig:
        """Build a validated :class:`KernelConfig` for this kernel."""
        dims = int(dims)
        if dims < 1:
            raise ValueError("`dims` must be a positive integer.")
        if self.default_alpha is None:
            if alpha is not None:
                raise ValueError(f"The {self.name} kernel takes no `alpha`.")
        else:
            alpha = self.default_alpha if alpha is None else float(alpha)
            if not np.isfinite(alpha) or alpha <= 0:
                raise ValueError("`alpha` must be positive and finite.")
        return KernelConfig(dims=dims, alpha=alpha)

    def __repr__(self) -> str:
        return f"Kernel({self.name})"


def _check_quality(quality: float) -> float:
    quality = float(quality)
    if not 0.0 <= quality <= 1.0:
        raise ValueError("`quality` must be in [0, 1].")
    return quality


def _log_unit_ball_volume(d: int) -> float:
    return 0.5 * d * np.log(np.pi) - gammaln(0.5 * d + 1.0)


def _direction(config: KernelConfig, generator: np.random.Generator) -> np.ndarray:
    while True:
        v = generator.standard_normal(config.dims)
        length = np.sqrt(v @ v)
        if length > 0:
            return v / length


def _tail_mass(quality: float, low: float, high: float) -> float:
    # tail probability left outside the search radius, log-interpolated
    quality = _check_quality(quality)
    return 10.0 ** -(low + (high - low) * quality)


def _unit_range(config: KernelConfig, quality: float) -> float:
    _check_quality(quality)
    return 1.0


#############
## Uniform ##
#############


def _uniform_weight(dist_sqr, config):
    return (np.asarray(dist_sqr) <= 1.0).astype(float)


def _uniform_norm(config):
    return float(np.exp(-_log_unit_ball_volume(config.dims)))


def _uniform_offset(config, generator):
    r = generator.random() ** (1.0 / config.dims)
    return r * _direction(config, generator)


uniform = Kernel(
    name="uniform",
    weight=_uniform_weight,
    norm=_uniform_norm,
    range=_unit_range,
    offset=_uniform_offset,
)


################
## Triangular ##
################


def _triangular_weight(dist_sqr, config):
    return np.maximum(1.0 - np.sqrt(np.asarray(dist_sqr, dtype=float)), 0.0)


def _triangular_norm(config):
    d = config.dims
    return float((d + 1.0) * np.exp(-_log_unit_ball_volume(d)))


def _triangular_offset(config, generator):
    # radial density r^(d-1) (1 - r)
    r = generator.beta(config.dims, 2.0)
    return r * _direction(config, generator)


triangular = Kernel(
    name="triangular",
    weight=_triangular_weight,
    norm=_triangular_norm,
    range=_unit_range,
    offset=_triangular_offset,
)


##################
## Epanechnikov ##
##################


def _epanechnikov_weight(dist_sqr, config):
    return np.maximum(1.0 - np.asarray(dist_sqr, dtype=float), 0.0)


def _epanechnikov_norm(config):
    d = config.dims
    return float(0.5 * (d + 2.0) * np.exp(-_log_unit_ball_volume(d)))


def _epanechnikov_offset(config, generator):
    # r^2 ~ Beta(d / 2, 2)
    r = np.sqrt(generator.beta(0.5 * config.dims, 2.0))
    return r * _direction(config, generator)


epanechnikov = Kernel(
    name="epanechnikov",
    weight=_epanechnikov_weight,
    norm=_epanechnikov_norm,
    range=_unit_range,
    offset=_epanechnikov_offset,
)


##############
## Gaussian ##
##############


def _gaussian_weight(dist_sqr, config):
    return np.exp(-0.5 * np.asarray(dist_sqr, dtype=float))


def _gaussian_norm(config):
    return float((2.0 * np.pi) ** (-0.5 * config.dims))


def _gaussian_range(config, quality):
    # squared distance of a standard normal is chi-squared with dims dof
    return float(np.sqrt(chi2.isf(_tail_mass(quality, 2.0, 6.0), config.dims)))


def _gaussian_offset(config, generator):
    return generator.standard_normal(config.dims)


gaussian = Kernel(
    name="gaussian",
    weight=_gaussian_weight,
    norm=_gaussian_norm,
    range=_gaussian_range,
    offset=_gaussian_offset,
)


###############
## Student-t ##
###############


def _student_t_weight(dist_sqr, config):
    nu = config.alpha
    return (1.0 + np.asarray(dist_sqr, dtype=float) / nu) ** (-0.5 * (nu + config.dims))


def _student_t_norm(config):
    nu, d = config.alpha, config.dims
    return float(
        np.exp(
            gammaln(0.5 * (nu + d)) - gammaln(0.5 * nu) - 0.5 * d * np.log(nu * np.pi)
        )
    )


def _student_t_range(config, quality):
    # r^2 / d follows an F(d, nu) distribution
    nu, d = config.alpha, config.dims
    return float(np.sqrt(d * f.isf(_tail_mass(quality, 1.0, 3.0), d, nu)))


def _student_t_offset(config, generator):
    nu = config.alpha
    z = generator.standard_normal(config.dims)
    return z / np.sqrt(generator.chisquare(nu) / nu)


student_t = Kernel(
    name="student_t",
    weight=_student_t_weight,
    norm=_student_t_norm,
    range=_student_t_range,
    offset=_student_t_offset,
    default_alpha=1.0,
)


KERNELS = {
    k.name: k for k in (uniform, triangular, epanechnikov, gaussian, student_t)
}


def get_kernel(name: str) -> Kernel:
    """Look up a kernel by name (case-insensitive)."""
    key = str(name).lower()
    if key not in KERNELS:
        raise ValueError(f"Unknown kernel `{name}`. Available kernels: {sorted(KERNELS)}")
    return KERNELS[key]
