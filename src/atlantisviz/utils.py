from __future__ import annotations
"""
Utilities.
"""

from collections import OrderedDict
from pathlib import Path
import inspect
import numbers
import os
from typing import Iterable, Tuple, Sequence, Union, Callable
import numpy as np
import pandas as pd


def agg_data(
    df: pd.DataFrame,
    groups: Sequence[str],
    *,
    col: str = "atoutput",
    fun: Union[str, Callable] = "sum",
    out: str | None = None,
    **kwargs,
) -> pd.DataFrame:
    """
    Aggregate `col` of a long-form table over `groups` and return a flat frame.

    Parameters
    ----------
    df : pd.DataFrame
        Long-form table holding `groups` and `col`.
    groups : Sequence[str]
        Grouping columns; all other columns are dropped.
    col : str, default "atoutput"
        Column to aggregate.
    fun : str or callable, default "sum"
        Any reducer accepted by ``GroupBy.agg``.
    out : str, optional
        Name of the aggregated column in the result (defaults to `col`).
    **kwargs
        Passed on to the reducer, e.g. ``min_count=1`` for ``"sum"``.

    Returns
    -------
    pd.DataFrame
        One row per distinct key in `groups`, with a fresh RangeIndex.

    Notes
    -----
    - Keys with NaN are kept (``dropna=False``) so a missing label never makes
      a group silently disappear.
    """
    groups = list(groups)
    res = (
        df.groupby(groups, sort=True, dropna=False, observed=True)[col]
        .agg(fun, **kwargs)
        .reset_index()
    )
    if out is not None and out != col:
        res = res.rename(columns={col: out})
    return res


def split_dfs(df: pd.DataFrame, col: str) -> "OrderedDict[object, pd.DataFrame]":
    """Split `df` by the values of `col` into an ordered mapping (value order sorted)."""
    parts: "OrderedDict[object, pd.DataFrame]" = OrderedDict()
    for key, sub in df.groupby(col, sort=True, observed=True):
        parts[key] = sub.reset_index(drop=True)
    return parts


def robust_clims(a: Iterable[float], q: Tuple[float, float] = (0, 100)) -> tuple[float, float]:
    """
    Color limits from percentiles; handles NaNs and constant arrays.
    """
    arr = np.asarray(a, dtype=float).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return 0.0, 1.0
    lo, hi = np.nanpercentile(arr, q)
    if lo == hi:
        hi = lo + (abs(lo) if lo != 0 else 1.0)
    return float(lo), float(hi)


def scientific(x: float, digits: int = 2) -> str:
    """Scientific tick label, e.g. 12345 -> '1.23e+04'. NaN renders as ''."""
    if x is None or not np.isfinite(x):
        return ""
    return f"{x:.{digits}e}"


def check_positive_int(value, name: str) -> int:
    """Return `value` as int; raise ValueError unless it is an integer >= 1."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}.")
    return int(value)


def check_fraction(value, name: str) -> float:
    """Return `value` as float; raise ValueError unless 0 < value <= 1."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError(f"{name} must be a number in (0, 1], got {value!r}.")
    v = float(value)
    if not (0.0 < v <= 1.0):
        raise ValueError(f"{name} must lie in (0, 1], got {value!r}.")
    return v


def file_prefix(base_dir: str) -> str:
    return os.path.basename(os.path.normpath(base_dir))


def _caller_plot_module_stem(default: str | None = None) -> str | None:
    """
    Walk the call stack and return the module filename stem if the caller is inside
    atlantisviz.plots.* (e.g., 'spatial_ts'). Otherwise return default.
    """
    for frame_info in inspect.stack():
        mod = inspect.getmodule(frame_info.frame)
        if not mod:
            continue
        name = getattr(mod, "__name__", "")
        file = getattr(mod, "__file__", None)
        if name.startswith("atlantisviz.plots.") and file:
            return Path(file).stem
    return default


def out_dir(base_dir: str, figures_root: str, *, sub: str | None = None) -> str:
    """
    Return an output directory and ensure it exists.

    Base path:
        FIG_DIR/<basename(BASE_DIR)>/

    A subfolder is appended when one is known, in this order:
      1) ATLANTIS_PLOT_SUBDIR environment variable
         - non-empty -> use that subfolder name
         - empty     -> disable subfoldering (use base)
      2) the explicit `sub` argument
      3) the module stem when called from atlantisviz.plots.* (e.g., 'spatial_ts')
    """
    base = os.path.join(figures_root, file_prefix(base_dir))
    os.makedirs(base, exist_ok=True)

    env = os.environ.get("ATLANTIS_PLOT_SUBDIR", None)
    if env is not None:
        name = env.strip()
        if not name:
            return base
    else:
        name = sub or _caller_plot_module_stem(default=None)

    if name:
        d = os.path.join(base, name)
        os.makedirs(d, exist_ok=True)
        return d
    return base
