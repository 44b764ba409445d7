# atlantisviz/plots/spatial_ts.py
from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence, Tuple
import math
import numpy as np
import pandas as pd
import matplotlib.dates as mdates
from matplotlib.axes import Axes
from matplotlib.cm import ScalarMappable
from matplotlib.collections import LineCollection, PolyCollection
from matplotlib.colors import Normalize
from matplotlib.figure import Figure, FigureBase
from matplotlib.ticker import FuncFormatter

from ..io import (
    BIOMASS_COLS,
    VOLUME_COLS,
    BGM_COLS,
    check_df_names,
    flip_layers,
    select_species as _select_species,
)
from ..geometry import polygon_outlines, polygon_labels
from ..spatial import STANZA_ORDER, aggregate_density, partition
from ..utils import robust_clims, scientific, check_fraction, check_positive_int


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


# -----------------------------
# Output containers
# -----------------------------

@dataclass(frozen=True)
class LayoutHints:
    """How the composite was laid out: facet columns and relative inset size."""
    columns: int
    inset_scale: float


@dataclass(frozen=True, eq=False)
class StanzaPanel:
    """One faceted density panel (one species, one stanza)."""
    species: str
    stanza: str
    subfigure: FigureBase
    axes: "OrderedDict[object, Axes]"
    data: pd.DataFrame


@dataclass(frozen=True, eq=False)
class SpeciesArtifact:
    """
    Finished composite for one species.

    `figure` holds the stanza panels stacked in one column plus the polygon
    overview inset; `panels` and `inset` give direct access to the parts so a
    caller can restyle or re-lay them out before export.
    """
    species: str
    figure: Figure
    panels: Tuple[StanzaPanel, ...]
    inset: Axes
    layout: LayoutHints

    @property
    def stanzas(self) -> Tuple[str, ...]:
        return tuple(p.stanza for p in self.panels)

    def savefig(self, fname, **kwargs) -> None:
        kwargs.setdefault("bbox_inches", "tight")
        self.figure.savefig(fname, **kwargs)


# -----------------------------
# Internal helpers
# -----------------------------

def _time_axis_values(t: pd.Series) -> Tuple[np.ndarray, bool, Optional[list]]:
    """
    Numeric x values for the time column, whether they are dates, and the tick
    labels for ordinal keys.

    Periods are drawn at their start timestamp. Any other non-numeric key is
    placed at its position among the sorted distinct values.
    """
    if isinstance(t.dtype, pd.PeriodDtype):
        t = t.dt.to_timestamp()
    if pd.api.types.is_datetime64_any_dtype(t):
        return mdates.date2num(t.to_numpy()), True, None
    if pd.api.types.is_numeric_dtype(t) and not pd.api.types.is_bool_dtype(t):
        return t.to_numpy(dtype=float), False, None
    levels = sorted(pd.unique(t))
    codes = pd.Categorical(t, categories=levels).codes.astype(float)
    return codes, False, levels


def _single_label(data: pd.DataFrame, col: str) -> str:
    vals = pd.unique(data[col])
    if len(vals) != 1:
        raise ValueError(f"Panel data must hold exactly one {col!r}, found {list(vals)}.")
    return vals[0]


def _facet_line(ax: Axes, x: np.ndarray, y: np.ndarray, c: np.ndarray, *, cmap, norm) -> None:
    """
    Draw one polygon's series as a line coloured by biomass.

    Each segment takes the colour of its start point. Segments with a missing
    end point are dropped, so NaN density shows as a break in the line.
    """
    finite = np.isfinite(x) & np.isfinite(y)
    if x.size >= 2:
        pts = np.column_stack([x, y])
        segs = np.stack([pts[:-1], pts[1:]], axis=1)
        keep = finite[:-1] & finite[1:]
        if keep.any():
            lc = LineCollection(segs[keep], cmap=cmap, norm=norm, linewidths=1.2)
            lc.set_array(c[:-1][keep])
            ax.add_collection(lc)
    # isolated points (between gaps or single time steps) stay visible
    if finite.any():
        ax.scatter(x[finite], y[finite], c=c[finite], cmap=cmap, norm=norm, s=4, zorder=3)
    ax.autoscale_view()


# -----------------------------
# Panel renderer
# -----------------------------

def plot_stanza_panel(
    fig: FigureBase,
    data: pd.DataFrame,
    *,
    ncol: int = 7,
    cmap: str = "rainbow",
    norm: Optional[Normalize] = None,
    xlabel: str = "Time [years]",
    ylabel: str = "Biomass density [t/m^3]",
) -> StanzaPanel:
    """
    Facet grid of density over time, one facet per polygon, for one species/stanza.

    Parameters
    ----------
    fig : Figure or SubFigure
        Canvas to draw into (typically one sub-figure of the species composite).
    data : pd.DataFrame
        Rows of a single (species, species_stanza) with columns
        ``time, polygon, atoutput, density``.
    ncol : int, default 7
        Number of facet columns; rows are added as needed.
    cmap : str, default "rainbow"
        Colormap encoding raw biomass (``atoutput``) along each line.
    norm : Normalize, optional
        Biomass colour scale; defaults to the range of ``atoutput`` in `data`.

    Returns
    -------
    StanzaPanel
        Facet axes keyed by polygon (in polygon order) and the data drawn.

    Notes
    -----
    - Missing density values are never interpolated; they split the line.
    - A high-density/low-biomass polygon (small box) and a low-density/high-biomass
      polygon (large box) are told apart by the line colour.
    """
    check_df_names(data, ["time", "species", "species_stanza", "polygon", "atoutput", "density"], name="panel")
    ncol = check_positive_int(ncol, "ncol")
    species = _single_label(data, "species")
    stanza = _single_label(data, "species_stanza")

    polygons = sorted(pd.unique(data["polygon"]))
    n = len(polygons)
    ncols = min(ncol, n)
    nrows = math.ceil(n / ncol)

    if norm is None:
        norm = Normalize(*robust_clims(data["atoutput"]))

    # x positions come from the whole panel so ordinal keys line up across facets
    x_all, is_dates, levels = _time_axis_values(data["time"])
    drawn = data.assign(_x=x_all)

    grid = fig.subplots(nrows, ncols, sharex=True, squeeze=False)
    axes: "OrderedDict[object, Axes]" = OrderedDict()
    for k, pid in enumerate(polygons):
        ax = grid[k // ncols, k % ncols]
        sub = drawn[drawn["polygon"] == pid].sort_values("_x", kind="mergesort")
        _facet_line(
            ax, sub["_x"].to_numpy(dtype=float),
            sub["density"].to_numpy(dtype=float),
            sub["atoutput"].to_numpy(dtype=float),
            cmap=cmap, norm=norm,
        )
        ax.set_title(str(pid), fontsize=8)
        ax.tick_params(labelsize=6)
        ax.yaxis.set_major_formatter(FuncFormatter(lambda v, _pos: scientific(v, 1)))
        axes[pid] = ax

    for ax in grid.ravel()[n:]:
        ax.remove()
    if is_dates:
        for ax in axes.values():
            ax.xaxis_date()
    elif levels is not None:
        for ax in axes.values():
            ax.set_xticks(np.arange(len(levels)), [str(v) for v in levels])

    cbar = fig.colorbar(
        ScalarMappable(norm=norm, cmap=cmap),
        ax=list(axes.values()),
        format=FuncFormatter(lambda v, _pos: scientific(v, 2)),
    )
    cbar.set_label("Biomass [t]")
    fig.suptitle(f"Species: {species} with stanza: {stanza}")
    fig.supxlabel(xlabel)
    fig.supylabel(ylabel)

    return StanzaPanel(species=species, stanza=stanza, subfigure=fig, axes=axes, data=data)


# -----------------------------
# Composite builder
# -----------------------------

def stack_panels(
    species: str,
    stanza_data: Mapping[str, pd.DataFrame],
    *,
    ncol: int = 7,
    cmap: str = "rainbow",
    figsize_per_panel: Tuple[float, float] = (14, 5),
) -> Tuple[Figure, Tuple[StanzaPanel, ...]]:
    """
    Stack one panel per stanza in a single column with equal heights.

    `stanza_data` is an ordered mapping stanza -> sub-table; the mapping order is the
    top-to-bottom order. Any number of stanzas >= 1 is supported.
    """
    n = len(stanza_data)
    if n < 1:
        raise ValueError(f"Species {species!r} has no stanza data to plot.")

    w, h = figsize_per_panel
    fig = Figure(figsize=(w, h * n), layout="constrained")
    subfigs = fig.subfigures(n, 1, squeeze=False, height_ratios=[1.0] * n)[:, 0]

    panels = []
    for sf, (stanza, df) in zip(subfigs, stanza_data.items()):
        panels.append(plot_stanza_panel(sf, df, ncol=ncol, cmap=cmap))
    return fig, tuple(panels)


# -----------------------------
# Overview inset
# -----------------------------

def add_polygon_overview(
    fig: Figure,
    outlines: Mapping[object, np.ndarray],
    labels: Optional[pd.DataFrame] = None,
    *,
    polygon_overview: float = 0.2,
) -> Axes:
    """
    Attach an outline-only map of all polygons to the upper right of `fig`.

    `outlines` maps polygon -> (N, 2) array of (long, lat) vertices (see
    `geometry.polygon_outlines`); `labels` optionally gives the interior point
    where each polygon id is written. `polygon_overview` is the inset's side as a
    fraction of the figure and must lie in (0, 1].
    """
    s = check_fraction(polygon_overview, "polygon_overview")
    ax = fig.add_axes((1.0 - s, 1.0 - s, s, s))
    ax.set_in_layout(False)

    pc = PolyCollection(
        list(outlines.values()),
        closed=True,
        facecolors="none",
        edgecolors="black",
        linewidths=0.4,
    )
    ax.add_collection(pc)
    ax.autoscale_view()
    ax.set_aspect("equal", adjustable="datalim")

    if labels is not None:
        for row in labels.itertuples(index=False):
            ax.text(row.inside_long, row.inside_lat, str(row.polygon),
                    fontsize=4, ha="center", va="center")

    ax.set_xticks([])
    ax.set_yticks([])
    ax.patch.set_alpha(0.85)
    return ax


# -----------------------------
# Pipeline driver
# -----------------------------

def plot_spatial_ts(
    bio_spatial: pd.DataFrame,
    bgm_as_df: pd.DataFrame,
    vol: pd.DataFrame,
    select_species: Optional[Iterable[str]] = None,
    ncol: int = 7,
    polygon_overview: float = 0.2,
    *,
    cmap: str = "rainbow",
    figsize_per_panel: Tuple[float, float] = (14, 5),
    stanza_order: Sequence[str] = STANZA_ORDER,
    verbose: bool = False,
) -> "OrderedDict[str, SpeciesArtifact]":
    """
    Spatial biomass-density time series per species and stanza.

    Workflow
    --------
    1) Check columns of all three tables (SchemaError before any work).
    2) Tag the 'all layers' marker in the layer column (`flip_layers`).
    3) Restrict to `select_species` (SelectionError if any is absent); without a
       selection all species are used in sorted order.
    4) Aggregate biomass over layers, join volume, compute density
       (`aggregate_density`; missing volume -> NaN + JoinGapWarning).
    5) Partition species -> stanza (`partition`).
    6) Per species: one faceted panel per stanza stacked in a column
       (`stack_panels`), plus the polygon overview inset (`add_polygon_overview`).

    Parameters
    ----------
    bio_spatial : pd.DataFrame
        Biomass in tonnes with columns 'species', 'species_stanza', 'polygon',
        'layer', 'time', 'atoutput'. Not modified.
    bgm_as_df : pd.DataFrame
        Polygon vertices with 'polygon', 'lat', 'long', 'inside_lat', 'inside_long'.
    vol : pd.DataFrame
        Volume per 'time' and 'polygon' in column 'volume'.
    select_species : iterable of str, optional
        Species to plot, in output order (a set is plotted in sorted order).
        None (default) plots every species.
    ncol : int, default 7
        Facet columns per stanza panel.
    polygon_overview : float, default 0.2
        Inset size as a fraction of the figure, in (0, 1].
    cmap : str, default "rainbow"
        Colormap for biomass.
    figsize_per_panel : (float, float), default (14, 5)
        Width and height of one stanza panel in inches.
    stanza_order : Sequence[str]
        Known stanza order (top to bottom); unknown stanzas follow lexically.
    verbose : bool, default False
        Print progress.

    Returns
    -------
    OrderedDict[str, SpeciesArtifact]
        One composite per species, keyed and ordered by the effective selection.
        Nothing is written to disk; see `atlantisviz.plot.save_artifacts`.
    """
    ncol = check_positive_int(ncol, "ncol")
    inset_scale = check_fraction(polygon_overview, "polygon_overview")

    check_df_names(bio_spatial, BIOMASS_COLS, name="bio_spatial")
    check_df_names(bgm_as_df, BGM_COLS, name="bgm_as_df")
    check_df_names(vol, VOLUME_COLS, name="vol")

    bio = flip_layers(bio_spatial)
    bio, species = _select_species(bio, select_species, verbose=verbose)

    ts_bio = aggregate_density(bio, vol, verbose=verbose)
    parts = partition(ts_bio, species, stanza_order=stanza_order)

    # geometry is the same for every species; build it once
    outlines = polygon_outlines(bgm_as_df)
    labels = polygon_labels(bgm_as_df)

    hints = LayoutHints(columns=ncol, inset_scale=inset_scale)
    artifacts: "OrderedDict[str, SpeciesArtifact]" = OrderedDict()
    for sp, stanza_data in parts.items():
        _vprint(verbose, f"[spatial_ts] {sp}: stanzas {list(stanza_data)}")
        fig, panels = stack_panels(
            sp, stanza_data, ncol=ncol, cmap=cmap, figsize_per_panel=figsize_per_panel,
        )
        inset = add_polygon_overview(fig, outlines, labels, polygon_overview=inset_scale)
        artifacts[sp] = SpeciesArtifact(
            species=sp, figure=fig, panels=panels, inset=inset, layout=hints,
        )

    _vprint(verbose, f"[spatial_ts] Built {len(artifacts)} species composite(s).")
    return artifacts


__all__ = [
    "LayoutHints",
    "StanzaPanel",
    "SpeciesArtifact",
    "plot_stanza_panel",
    "stack_panels",
    "add_polygon_overview",
    "plot_spatial_ts",
]
