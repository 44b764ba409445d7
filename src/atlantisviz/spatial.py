from __future__ import annotations
"""
Biomass-density aggregation and partitioning.

    biomass (time, species, stanza, polygon, layer)  --sum over layer-->
    (time, species, stanza, polygon)  --left join volume on (time, polygon)-->
    density = biomass / volume  --split-->  species -> stanza -> table
"""

from collections import OrderedDict
from typing import Iterable, List, Sequence
import warnings
import numpy as np
import pandas as pd

from .errors import SchemaError, JoinGapWarning
from .io import check_df_names, VOLUME_COLS
from .utils import agg_data, split_dfs


GROUP_COLS: List[str] = ["time", "species", "species_stanza", "polygon"]

# Canonical life-stage order; stanzas not listed here follow in lexical order.
STANZA_ORDER: tuple = ("juvenile", "adult")


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


def aggregate_density(
    bio: pd.DataFrame,
    vol: pd.DataFrame,
    *,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Biomass and biomass density per (time, species, stanza, polygon).

    Workflow
    --------
    1) Sum ``atoutput`` over every row sharing (time, species, species_stanza, polygon);
       the layer dimension disappears and each input row is counted once. A group
       whose biomass is missing on every row stays missing (NaN), never 0 t.
    2) Left-join ``volume`` on (time, polygon). Every biomass group keeps its row.
    3) ``density = atoutput / volume``. Where the volume is missing, zero, negative or
       not finite the density is NaN and a single JoinGapWarning reports the gaps.

    Returns
    -------
    pd.DataFrame
        Columns ``time, species, species_stanza, polygon, atoutput, volume, density``,
        sorted by (species, species_stanza, polygon, time).

    Raises
    ------
    SchemaError
        If a column is missing, or the volume table has more than one row for a
        (time, polygon) key.
    """
    check_df_names(bio, GROUP_COLS + ["atoutput"], name="biomass")
    check_df_names(vol, VOLUME_COLS, name="volume")

    dup = vol.duplicated(["time", "polygon"], keep=False)
    if dup.any():
        keys = vol.loc[dup, ["time", "polygon"]].drop_duplicates().head(5)
        raise SchemaError(
            f"Volume table has {int(dup.sum())} rows with duplicate (time, polygon) keys, "
            f"e.g. {list(keys.itertuples(index=False, name=None))}. "
            "Sum per-layer volumes first (see aggregate_volume).",
            missing=[],
        )

    ts = agg_data(bio, GROUP_COLS, col="atoutput", fun="sum", min_count=1)
    _vprint(verbose, f"[spatial] {len(bio)} biomass rows -> {len(ts)} (time, species, stanza, polygon) groups")

    ts = ts.merge(
        vol[list(VOLUME_COLS)],
        on=["time", "polygon"],
        how="left",
        validate="many_to_one",
    )

    volume = ts["volume"].astype(float)
    usable = np.isfinite(volume) & (volume > 0)
    ts["density"] = ts["atoutput"].astype(float) / volume.where(usable)

    n_gap = int((~usable).sum())
    if n_gap:
        gaps = ts.loc[~usable, ["time", "polygon"]].drop_duplicates()
        sample = list(gaps.head(5).itertuples(index=False, name=None))
        warnings.warn(
            f"{n_gap} biomass group(s) have no usable volume; density left as NaN "
            f"for {len(gaps)} (time, polygon) key(s), e.g. {sample}.",
            JoinGapWarning,
            stacklevel=2,
        )

    ts = ts.sort_values(
        ["species", "species_stanza", "polygon", "time"], kind="mergesort"
    ).reset_index(drop=True)
    return ts[GROUP_COLS + ["atoutput", "volume", "density"]]


def order_stanzas(stanzas: Iterable[str], *, order: Sequence[str] = STANZA_ORDER) -> List[str]:
    """Known stanzas in `order`, then any others sorted lexically."""
    have = list(dict.fromkeys(stanzas))
    known = [s for s in order if s in have]
    rest = sorted((s for s in have if s not in known), key=str)
    return known + rest


def partition(
    ts: pd.DataFrame,
    species: Sequence[str],
    *,
    stanza_order: Sequence[str] = STANZA_ORDER,
) -> "OrderedDict[str, OrderedDict[str, pd.DataFrame]]":
    """
    Split the density table into species -> stanza -> sub-table.

    Species follow `species` exactly (every entry gets a key, even one with a single
    stanza); stanzas follow `order_stanzas`. Sub-tables keep the (polygon, time) order
    of `ts` and have a fresh index.
    """
    check_df_names(ts, ["species", "species_stanza"], name="density")
    by_species = split_dfs(ts, "species")

    out: "OrderedDict[str, OrderedDict[str, pd.DataFrame]]" = OrderedDict()
    for sp in species:
        sub = by_species.get(sp, ts.iloc[0:0])
        by_stanza = split_dfs(sub, "species_stanza")
        out[sp] = OrderedDict(
            (st, by_stanza[st]) for st in order_stanzas(by_stanza, order=stanza_order)
        )
    return out
