from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Tuple
from warnings import warn

import numpy as np


def plot_fit(
    *,
    ax: Optional[Any] = None,
    x: Any,
    y: Any,
    run: Optional[Any] = None,
    xg: Optional[np.ndarray] = None,
    quantiles: Optional[Sequence[float]] = (0.05, 0.95),
    show_relevance: bool = True,
    band_kwargs: Optional[Mapping[str, Any]] = None,
    data_kwargs: Optional[Mapping[str, Any]] = None,
    line_kwargs: Optional[Mapping[str, Any]] = None,
    relevance_kwargs: Optional[Mapping[str, Any]] = None,
    title: Optional[str] = None,
) -> Tuple[Any, Any]:
    """Plot 1D training data and an optional RVM prediction on a Matplotlib Axes.

    Parameters
    ----------
    ax : matplotlib.axes.Axes, optional
        If None, a new figure/axes is created.
    x, y : array-like
        1D training data.
    run : RVMRun, optional
        Fitted run providing predict(). Required for the prediction line/band.
    xg : ndarray, optional
        Grid for the prediction line. Defaults to 400 points over the x range.
    quantiles : pair of float, optional
        Lower/upper predictive quantiles for the band; None disables the band.
    show_relevance : bool
        Mark the training points whose features survived as relevance vectors.
    band_kwargs, data_kwargs, line_kwargs, relevance_kwargs : dict, optional
        Styling kwargs for fill_between, the data points, the line and the
        relevance markers.
    """
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    data_kwargs = dict(data_kwargs or {})
    line_kwargs = dict(line_kwargs or {})
    band_kwargs = dict(band_kwargs or {})
    relevance_kwargs = dict(relevance_kwargs or {})

    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)
    if x_arr.ndim != 1 or y_arr.ndim != 1:
        raise ValueError("plot_fit requires 1D x and y arrays.")
    if x_arr.shape != y_arr.shape:
        raise ValueError("plot_fit requires x and y to have the same shape.")

    data_kwargs.setdefault("marker", "o")
    data_kwargs.setdefault("linestyle", "none")
    data_kwargs.setdefault("ms", 3)
    data_kwargs.setdefault("label", "data")
    ax.plot(x_arr, y_arr, **data_kwargs)

    if run is not None:
        if xg is None:
            xg = np.linspace(float(np.min(x_arr)), float(np.max(x_arr)), 400)
        xg = np.asarray(xg, dtype=float)

        band = quantiles is not None and len(quantiles) > 0
        if band and len(quantiles) != 2:
            raise ValueError("plot_fit expects exactly two quantiles for the band.")
        pred = run.predict(xg, quantiles=tuple(quantiles) if band else ())

        line_kwargs.setdefault("label", "prediction")
        ax.plot(xg, pred.value, **line_kwargs)

        if band:
            lo, hi = pred.quantile_values[:, 0], pred.quantile_values[:, 1]
            band_kwargs.setdefault("alpha", 0.2)
            band_kwargs.setdefault(
                "label", f"{quantiles[0]:g}-{quantiles[1]:g} quantiles"
            )
            ax.fill_between(xg, lo, hi, **band_kwargs)

        if show_relevance:
            idx = np.asarray(run.results.training_indexes, dtype=int)
            if idx.size == 0:
                warn("plot_fit: no training-row relevance vectors to mark.", UserWarning)
            else:
                relevance_kwargs.setdefault("marker", "o")
                relevance_kwargs.setdefault("facecolors", "none")
                relevance_kwargs.setdefault("edgecolors", "red")
                relevance_kwargs.setdefault("s", 60)
                relevance_kwargs.setdefault("label", f"relevance vectors ({idx.size})")
                ax.scatter(x_arr[idx], y_arr[idx], **relevance_kwargs)

        if title is None:
            title = f"RVM ({run.results.method}), {run.results.rv_count} relevance vectors"

    if title:
        ax.set_title(title)
    ax.legend(loc="best", fontsize=8)
    return fig, ax
