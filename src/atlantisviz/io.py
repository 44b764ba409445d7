"""I/O and input-table helpers.

Implement:
 - check_df_names(df, expect, name=...)           # column presence check
 - flip_layers(df)                                 # 'all layers' sentinel -> tagged aggregate layer
 - select_species(df, species=None)                # species subset + effective ordering
 - combine_ages(df, agemat)                        # age classes -> juvenile/adult stanzas
 - aggregate_volume(vol)                           # per-layer volume -> (time, polygon)
 - biomass_from_dataset / volume_from_dataset      # xarray output -> long-form tables
 - load_table(path), load_from_base(base_dir, file_pattern), discover_paths(...)
"""

from __future__ import annotations
from pathlib import Path
from collections.abc import Set
from typing import Iterable, List, Optional, Dict, Tuple, Sequence
import warnings
import numpy as np
import pandas as pd
import xarray as xr

from .errors import SchemaError, SelectionError


# Column sets expected by the spatial time-series pipeline
BIOMASS_COLS: Tuple[str, ...] = ("species", "polygon", "layer", "time", "species_stanza", "atoutput")
VOLUME_COLS: Tuple[str, ...] = ("time", "polygon", "volume")
BGM_COLS: Tuple[str, ...] = ("lat", "long", "inside_lat", "inside_long", "polygon")

# Layer labels that mean "no vertical structure / summed over all layers"
LAYER_SENTINELS: Tuple[object, ...] = ("all", "ALL", "aggregate", None)


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


# --------------------------
# Validation
# --------------------------
def check_df_names(df: pd.DataFrame, expect: Iterable[str], *, name: str = "data") -> None:
    """Raise SchemaError if any column in `expect` is missing from `df` (order irrelevant)."""
    missing = [c for c in expect if c not in df.columns]
    if missing:
        raise SchemaError(
            f"Table '{name}' is missing required column(s) {missing}; "
            f"available columns: {list(df.columns)}.",
            missing=missing,
        )


# --------------------------
# Layer handling
# --------------------------
def flip_layers(
    df: pd.DataFrame,
    *,
    sentinels: Sequence[object] = LAYER_SENTINELS,
) -> pd.DataFrame:
    """
    Return a copy of `df` where the 'all layers' marker is a tagged value.

    Rows whose `layer` equals one of `sentinels` (None also matches NaN) are
    tagged with ``all_layers=True`` and get ``layer=<NA>``. Real layer indices
    stay untouched as a nullable integer column, so they can never collide with
    the aggregate marker. Row count is unchanged.
    """
    check_df_names(df, ["layer"], name="biomass")
    out = df.copy()
    raw = out["layer"].astype(object)

    is_all = pd.Series(False, index=out.index)
    for s in sentinels:
        is_all |= raw.isna() if s is None else (raw == s)

    try:
        layer = pd.to_numeric(raw.where(~is_all), errors="raise").astype("Int64")
    except (ValueError, TypeError) as e:
        raise ValueError(
            f"Layer values must be integer indices or one of {list(sentinels)}: {e}"
        ) from e

    out["layer"] = layer
    out["all_layers"] = is_all.to_numpy()
    return out


# --------------------------
# Species selection
# --------------------------
def select_species(
    df: pd.DataFrame,
    species: Optional[Iterable[str]] = None,
    *,
    verbose: bool = False,
) -> Tuple[pd.DataFrame, List[str]]:
    """
    Restrict `df` to `species` and return ``(filtered, effective_species)``.

    - With a selection, every name must be present in ``df['species']`` or a
      SelectionError naming the absent ones is raised. The effective order is
      the caller's order (duplicates dropped). A set has no order of its own,
      so its names are used sorted.
    - Without a selection, all rows are kept and the effective order is the
      sorted set of species present.
    """
    present = pd.unique(df["species"])
    if species is None:
        effective = sorted(present)
        _vprint(verbose, f"[io] No species selection; using all {len(effective)} species.")
        return df.copy(), effective

    if isinstance(species, str):
        species = [species]
    elif isinstance(species, Set):
        species = sorted(species)
    effective = list(dict.fromkeys(species))
    have = set(present)
    missing = [s for s in effective if s not in have]
    if missing:
        raise SelectionError(
            f"Not all selected species are present in the biomass data; missing: {missing}.",
            missing=missing,
        )
    out = df[df["species"].isin(effective)].reset_index(drop=True)
    _vprint(verbose, f"[io] Selected {len(effective)} species ({len(out)} rows).")
    return out, effective


# --------------------------
# Age classes -> stanzas
# --------------------------
def combine_ages(
    df: pd.DataFrame,
    agemat: pd.DataFrame,
    *,
    grp_col: str = "species",
    age_col: str = "agecl",
    value_col: str = "atoutput",
) -> pd.DataFrame:
    """
    Collapse age classes into 'juvenile' / 'adult' stanzas.

    `agemat` maps each group (``grp_col``) to its first mature age class
    (``age_mat``). Age classes below ``age_mat`` are juvenile, the rest adult.
    Values are summed over the remaining columns, so the total is conserved.
    """
    check_df_names(df, [grp_col, age_col, value_col], name="age-based data")
    check_df_names(agemat, [grp_col, "age_mat"], name="agemat")

    lookup = agemat.drop_duplicates(grp_col).set_index(grp_col)["age_mat"]
    missing = sorted(set(df[grp_col]) - set(lookup.index))
    if missing:
        raise SelectionError(f"No age at maturity for {grp_col} {missing}.", missing=missing)

    age_mat = df[grp_col].map(lookup)
    out = df.drop(columns=[age_col]).copy()
    out["species_stanza"] = np.where(df[age_col] < age_mat, "juvenile", "adult")

    keys = [c for c in out.columns if c != value_col]
    return (
        out.groupby(keys, sort=True, dropna=False)[value_col]
        .sum()
        .reset_index()
    )


def aggregate_volume(vol: pd.DataFrame) -> pd.DataFrame:
    """Sum per-layer volumes to one row per (time, polygon)."""
    check_df_names(vol, VOLUME_COLS, name="volume")
    return (
        vol.groupby(["time", "polygon"], sort=True)["volume"]
        .sum()
        .reset_index()
    )


# --------------------------
# xarray model output -> long-form tables
# --------------------------
def _da_to_long(
    da: xr.DataArray,
    *,
    value_name: str,
    time_var: str,
    polygon_dim: str,
    layer_dim: str,
) -> pd.DataFrame:
    if time_var not in da.dims or polygon_dim not in da.dims:
        raise SchemaError(
            f"Variable '{da.name}' needs dims ('{time_var}', '{polygon_dim}'[, '{layer_dim}']); "
            f"found {list(da.dims)}.",
            missing=[d for d in (time_var, polygon_dim) if d not in da.dims],
        )
    extra = [d for d in da.dims if d not in (time_var, polygon_dim, layer_dim)]
    if extra:
        raise SchemaError(f"Variable '{da.name}' has unexpected dims {extra}.", missing=[])

    df = da.to_dataframe(name=value_name).reset_index()
    df = df.rename(columns={time_var: "time", polygon_dim: "polygon", layer_dim: "layer"})
    if "layer" not in df.columns:
        df["layer"] = "all"
    return df[["time", "polygon", "layer", value_name]]


def biomass_from_dataset(
    ds: xr.Dataset,
    groups: Dict[str, Tuple[str, str]],
    *,
    time_var: str = "t",
    polygon_dim: str = "b",
    layer_dim: str = "z",
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Build a long-form biomass table from model output.

    `groups` maps a data variable (tonnes per time/polygon[/layer]) to its
    ``(species, stanza)``. Variables without a layer dimension are labelled
    with the 'all' layer marker and are normalised later by `flip_layers`.
    """
    missing = [v for v in groups if v not in ds]
    if missing:
        raise SchemaError(f"Variables {missing} not found in dataset.", missing=missing)

    parts = []
    for var, (species, stanza) in groups.items():
        _vprint(verbose, f"[io] '{var}' -> species={species!r}, stanza={stanza!r}")
        df = _da_to_long(
            ds[var], value_name="atoutput",
            time_var=time_var, polygon_dim=polygon_dim, layer_dim=layer_dim,
        )
        df.insert(0, "species", species)
        df.insert(1, "species_stanza", stanza)
        parts.append(df)

    if not parts:
        return pd.DataFrame(columns=list(BIOMASS_COLS))
    return pd.concat(parts, ignore_index=True)


def volume_from_dataset(
    ds: xr.Dataset,
    var: str = "volume",
    *,
    time_var: str = "t",
    polygon_dim: str = "b",
    layer_dim: str = "z",
) -> pd.DataFrame:
    """Per-(time, polygon) volume from model output, summed over layers."""
    if var not in ds:
        raise SchemaError(f"Variable '{var}' not found in dataset.", missing=[var])
    df = _da_to_long(
        ds[var], value_name="volume",
        time_var=time_var, polygon_dim=polygon_dim, layer_dim=layer_dim,
    )
    return aggregate_volume(df)


# --------------------------
# Files
# --------------------------
def discover_paths(base_dir: str, file_pattern: str) -> List[str]:
    files = sorted(str(p) for p in Path(base_dir).glob(file_pattern))
    if not files:
        warnings.warn(f"No files matched {file_pattern!r} in {base_dir!r}")
    return files


def load_table(
    path: str,
    *,
    required: Optional[Iterable[str]] = None,
    name: Optional[str] = None,
) -> pd.DataFrame:
    """Read a table (csv / tsv / txt / parquet) and optionally check its columns."""
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(p)
    elif suffix in (".tsv", ".txt"):
        df = pd.read_csv(p, sep=r"\s+")
    elif suffix == ".csv":
        df = pd.read_csv(p)
    else:
        raise ValueError(f"Unsupported table format {suffix!r} for {path!r}.")
    if required is not None:
        check_df_names(df, required, name=name or p.name)
    return df


def load_from_base(base_dir: str, file_pattern: str, *, time_var: str = "t") -> xr.Dataset:
    """Open all model output files under `base_dir` matching `file_pattern`, concatenated on time."""
    paths = discover_paths(base_dir, file_pattern)
    if not paths:
        raise FileNotFoundError(f"No files matched {file_pattern!r} in {base_dir!r}")

    def _open(engine: str) -> xr.Dataset:
        print(f"[io] Trying engine='{engine}' for open_mfdataset …")
        return xr.open_mfdataset(
            paths,
            combine="nested",
            concat_dim=time_var,
            decode_times=False,
            engine=engine,
            data_vars="minimal",
            coords="minimal",
            compat="override",
            combine_attrs="override",
        )

    errors = []
    for engine in ("netcdf4", "scipy", "h5netcdf"):
        try:
            ds = _open(engine)
            print(f"[io] Using engine='{engine}'.")
            return ds
        except (OSError, ValueError, ImportError) as e:
            print(f"[io] Engine '{engine}' failed: {e}")
            errors.append(f"{engine}: {e}")
    raise OSError("Could not open model output with any engine: " + "; ".join(errors))
