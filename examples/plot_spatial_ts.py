#!/usr/bin/env python3
# examples/plot_spatial_ts.py
"""
Examples: spatial biomass-density time series per species and stanza
--------------------------------------------------------------------

This runner demonstrates the spatial time-series API:

  1) all species      -> one composite per species (stanza panels + polygon overview)
  2) selected species -> caller order, larger overview inset, 5 facet columns

Inputs:
  • model output netCDF (per-group biomass in tonnes by time/box/layer)
  • polygon geometry (any vector file geopandas can read)
  • volume per time/box/layer (from the physics output)

Edit BASE_DIR / FILE_PATTERN / FIG_DIR / GEOMETRY below before running.

Run:
    pip install -e .
    python examples/plot_spatial_ts.py
"""

from __future__ import annotations
import os
import sys
import warnings
import matplotlib
matplotlib.use("Agg", force=True)  # headless backend for batch runs

from atlantisviz.io import (
    load_from_base,
    biomass_from_dataset,
    volume_from_dataset,
    discover_paths,
)
from atlantisviz.geometry import read_polygons
from atlantisviz.plot import hr, info, kv, bullet, print_table_summary, plot_call, save_artifacts
from atlantisviz.plots.spatial_ts import plot_spatial_ts


# -----------------------------------------------------------------------------
# Project paths (EDIT THESE)
# -----------------------------------------------------------------------------
BASE_DIR     = "/data/atlantis/setas/output"
FILE_PATTERN = "outputSETAS.nc"
GEOMETRY     = "/data/atlantis/setas/geometry/VMPA_setas_boxes.shp"
FIG_DIR      = "/data/atlantis/setas/figures/"

# -----------------------------------------------------------------------------
# Biomass variables -> (species, stanza); defined HERE (not inside the module)
# -----------------------------------------------------------------------------
GROUPS = {
    "Shallow_piscivorous_fish_juv_Biomass": ("Shallow piscivorous fish", "juvenile"),
    "Shallow_piscivorous_fish_adu_Biomass": ("Shallow piscivorous fish", "adult"),
    "Cephalopod_juv_Biomass":               ("Cephalopod", "juvenile"),
    "Cephalopod_adu_Biomass":               ("Cephalopod", "adult"),
}
SELECTED = ["Cephalopod"]


def main():
    if not os.environ.get("PYTHONWARNINGS"):
        warnings.filterwarnings("default")

    print(hr("=")); print("Spatial Biomass-Density Time Series Examples"); print(hr("="))

    info(" Discovering files")
    files = discover_paths(BASE_DIR, FILE_PATTERN)
    kv("Matched files", len(files))
    if not files:
        print("No files found; abort.")
        sys.exit(2)

    info(" Loading tables")
    ds = load_from_base(BASE_DIR, FILE_PATTERN)
    bio = biomass_from_dataset(ds, GROUPS)
    vol = volume_from_dataset(ds, "volume")
    bgm = read_polygons(GEOMETRY)
    print_table_summary(bio, "Biomass")
    print_table_summary(vol, "Volume")
    kv("Geometry polygons", bgm["polygon"].nunique())

    # =========================================================================
    # 1) All species • default layout
    # =========================================================================
    info(" Example 1: all species • 7 facet columns • overview 0.2")
    arts = plot_call(plot_spatial_ts, bio_spatial=bio, bgm_as_df=bgm, vol=vol)
    for p in save_artifacts(arts, base_dir=BASE_DIR, figures_root=FIG_DIR):
        bullet(f"• {p}")

    # =========================================================================
    # 2) Selected species • custom layout
    # =========================================================================
    info(" Example 2: selected species • 5 facet columns • overview 0.3")
    arts = plot_call(
        plot_spatial_ts,
        bio_spatial=bio, bgm_as_df=bgm, vol=vol,
        select_species=SELECTED, ncol=5, polygon_overview=0.3,
        verbose=True,
    )
    for species, art in arts.items():
        kv(species, f"stanzas={list(art.stanzas)}")
    for p in save_artifacts(arts, base_dir=BASE_DIR, figures_root=FIG_DIR, dpi=200):
        bullet(f"• {p}")

    print(); print(hr("=")); print("Done"); print(hr("="))


if __name__ == "__main__":
    main()
