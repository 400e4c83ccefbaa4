import matplotlib.pyplot as plt
import numpy as np


def _axes_pair(ms, dims):
    if ms.dm is None:
        raise ValueError("Model must be fitted before plotting.")
    i, j = dims
    positional = np.flatnonzero(ms.dm.positional)
    if i not in positional or j not in positional or i == j:
        raise ValueError(f"`dims` must be two distinct positional columns of {list(positional)}.")
    return i, j


def plot_clusters(ms, ax=None, dims=(0, 1), **kwargs):
    """
    Scatter the exemplars of a fitted MeanShift coloured by cluster, with the
    modes marked.

    Parameters
    ----------
    ms : MeanShift
        Fitted model.
    ax : matplotlib.axes.Axes, optional
        Axes to draw on; a new figure is created if None.
    dims : tuple of int, default=(0, 1)
        Columns used for the x and y axes.
    kwargs
        figsize, cmap, s (marker size), plot_modes, mode_kwargs.

    Returns
    -------
    ax : matplotlib.axes.Axes
    """
    if ms.labels_ is None:
        raise ValueError("Model must be fitted before plotting.")
    i, j = _axes_pair(ms, dims)

    if ax is None:
        figsize = kwargs["figsize"] if "figsize" in kwargs else (6, 6)
        fig = plt.figure(figsize=figsize)
        ax = fig.add_subplot()

    cmap = kwargs["cmap"] if "cmap" in kwargs else "tab10"
    s = kwargs["s"] if "s" in kwargs else 12
    plot_modes = kwargs["plot_modes"] if "plot_modes" in kwargs else True
    mode_kwargs = (
        kwargs["mode_kwargs"]
        if "mode_kwargs" in kwargs
        else {"color": "black", "marker": "x", "s": 80}
    )

    x = ms.dm.data
    ax.scatter(x[:, i], x[:, j], c=ms.labels_, cmap=cmap, s=s)
    if plot_modes:
        ax.scatter(ms.modes_[:, i], ms.modes_[:, j], **mode_kwargs)

    if ms.dm.names is not None:
        ax.set_xlabel(ms.dm.names[i])
        ax.set_ylabel(ms.dm.names[j])

    return ax


def plot_density(ms, ax=None, dims=(0, 1), n_grid=100, **kwargs):
    """
    Contour plot of the density of a fitted 2-D MeanShift.

    The grid spans the exemplars padded by one bandwidth on each side.

    Parameters
    ----------
    ms : MeanShift
        Fitted model with exactly two positional dimensions.
    ax : matplotlib.axes.Axes, optional
        Axes to draw on; a new figure is created if None.
    dims : tuple of int, default=(0, 1)
        Columns used for the x and y axes.
    n_grid : int, default=100
        Grid points per axis.
    kwargs
        figsize, levels, cmap, plot_data.

    Returns
    -------
    ax : matplotlib.axes.Axes
    """
    i, j = _axes_pair(ms, dims)
    if int(ms.dm.positional.sum()) != 2:
        raise ValueError("Density plots require exactly two positional dimensions.")

    if ax is None:
        figsize = kwargs["figsize"] if "figsize" in kwargs else (6, 6)
        fig = plt.figure(figsize=figsize)
        ax = fig.add_subplot()

    levels = kwargs["levels"] if "levels" in kwargs else 10
    cmap = kwargs["cmap"] if "cmap" in kwargs else "viridis"
    plot_data = kwargs["plot_data"] if "plot_data" in kwargs else True

    x = ms.dm.data
    pad = 1.0 / ms.dm.scale
    gx = np.linspace(x[:, i].min() - pad[i], x[:, i].max() + pad[i], n_grid)
    gy = np.linspace(x[:, j].min() - pad[j], x[:, j].max() + pad[j], n_grid)
    xx, yy = np.meshgrid(gx, gy)

    grid = np.zeros((xx.size, ms.dm.dims))
    grid[:, i] = xx.ravel()
    grid[:, j] = yy.ravel()
    density = ms.predict_density(grid).reshape(xx.shape)

    ax.contour(xx, yy, density, levels=levels, cmap=cmap)
    if plot_data:
        ax.scatter(x[:, i], x[:, j], color="black", s=4)

    return ax
