# atlantisviz/plot.py

"""
Console + export helpers for runners.

This module centralizes:
- pretty printing (hr, info, bullet, kv)
- table summaries (rows/columns/time span/species)
- plotting wrapper (passes verbose=True when supported)
- writing species composites to PNG

Keep these functions generic so any example script can reuse them.
"""

from __future__ import annotations
from typing import Any, List, Mapping
import os
import re
import textwrap
import inspect
import contextlib
import pandas as pd

from .utils import out_dir, file_prefix


# ---------------------------
# Pretty printing utilities
# ---------------------------
def hr(char: str = "=", width: int = 78) -> str:
    """Horizontal rule."""
    return char * width


def info(title: str) -> None:
    """Section header."""
    print()
    print(hr("="))
    print(title)
    print(hr("-"))


def bullet(msg: str, indent: int = 2) -> None:
    """Indented, wrapped bullet text."""
    pad = " " * indent
    for line in textwrap.dedent(str(msg)).rstrip().splitlines():
        print(pad + line)


def kv(label: str, value: Any) -> None:
    """Key: Value printing with basic alignment."""
    print(f"  - {label:<18} {value}")


# ---------------------------
# Table summary
# ---------------------------
def print_table_summary(df: pd.DataFrame, name: str) -> None:
    """Print rows/columns and, where present, time span, species and polygons."""
    kv(f"{name} rows", len(df))
    kv("Columns", list(df.columns))
    if "time" in df and len(df):
        kv("Time span", f"{df['time'].min()} .. {df['time'].max()} ({df['time'].nunique()} steps)")
    if "species" in df:
        kv("Species", sorted(pd.unique(df["species"])))
    if "polygon" in df:
        kv("Polygons", df["polygon"].nunique())


# ---------------------------
# plotting wrapper
# ---------------------------
def plot_call(fn, *, verbose: bool = False, **kwargs):
    """
    Call a plotting function.

    Behavior:
      - `verbose` controls whether print() output from the function is shown.
        • verbose=False -> suppress stdout during the call
        • verbose=True  -> show stdout
      - If the target function has a `verbose` kwarg, we pass this same value.
        If it doesn't, we just silence/allow prints as requested.
    Warnings (e.g. JoinGapWarning) are not affected.
    """
    has_verbose = "verbose" in inspect.signature(fn).parameters
    if has_verbose:
        kwargs["verbose"] = verbose
    else:
        kwargs.pop("verbose", None)

    if verbose:
        return fn(**kwargs)

    with open(os.devnull, "w") as devnull, contextlib.redirect_stdout(devnull):
        return fn(**kwargs)


# ---------------------------
# Export
# ---------------------------
def _safe_name(s: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", str(s)).strip("_") or "unnamed"


def save_artifacts(
    artifacts: Mapping[str, Any],
    *,
    base_dir: str,
    figures_root: str,
    dpi: int = 150,
    verbose: bool = False,
) -> List[str]:
    """
    Write each species composite to
    ``FIG_DIR/<basename(BASE_DIR)>/spatial_ts/<prefix>__SpatialTS__<species>.png``.

    Returns the written paths in the order of `artifacts`.
    """
    outdir = out_dir(base_dir, figures_root, sub="spatial_ts")
    prefix = file_prefix(base_dir)
    paths: List[str] = []
    for species, art in artifacts.items():
        path = os.path.join(outdir, f"{prefix}__SpatialTS__{_safe_name(species)}.png")
        art.savefig(path, dpi=dpi)
        paths.append(path)
        if verbose:
            print(f"[plot] saved {path}")
    return paths


__all__ = [
    "hr",
    "info",
    "bullet",
    "kv",
    "print_table_summary",
    "plot_call",
    "save_artifacts",
]
