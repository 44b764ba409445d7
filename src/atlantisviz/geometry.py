from __future__ import annotations
"""
Polygon geometry helpers.

The polygon table used by the overview inset has one row per boundary vertex:

    polygon | lat | long | inside_lat | inside_long

`inside_lat`/`inside_long` is a point guaranteed to lie inside the polygon and
is where the polygon id is drawn. Geometry is never used for aggregation.
"""

from collections import OrderedDict
from typing import Optional
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import Polygon, MultiPolygon

from .io import check_df_names, BGM_COLS


def _outer_ring(geom) -> Polygon:
    """Return the polygon to outline; for MultiPolygons the largest part."""
    if isinstance(geom, Polygon):
        return geom
    if isinstance(geom, MultiPolygon):
        return max(geom.geoms, key=lambda g: g.area)
    raise ValueError(f"Expected Polygon/MultiPolygon geometry, got {geom.geom_type}.")


def geometry_from_geodataframe(
    gdf: gpd.GeoDataFrame,
    *,
    polygon_col: Optional[str] = "polygon",
) -> pd.DataFrame:
    """
    Convert a polygon GeoDataFrame to the vertex table used by the overview inset.

    Parameters
    ----------
    gdf : gpd.GeoDataFrame
        Polygon layer in geographic coordinates (x = longitude, y = latitude).
    polygon_col : str, optional
        Column holding the polygon id. If absent (or None) the row position is used,
        which matches the 0-based box numbering of Atlantis geometry files.

    Returns
    -------
    pd.DataFrame
        Columns ``polygon, lat, long, inside_lat, inside_long``; the closing vertex
        of each ring is not repeated.
    """
    if gdf.empty:
        raise ValueError("No geometries found.")
    if polygon_col is not None and polygon_col in gdf.columns:
        ids = gdf[polygon_col].to_numpy()
    else:
        ids = np.arange(len(gdf))

    rows = []
    for pid, geom in zip(ids, gdf.geometry.values):
        if geom is None or geom.is_empty:
            continue
        poly = _outer_ring(geom)
        inside = poly.representative_point()
        coords = np.asarray(poly.exterior.coords)[:-1]
        for x, y in coords:
            rows.append((pid, float(y), float(x), float(inside.y), float(inside.x)))

    return pd.DataFrame(rows, columns=["polygon", "lat", "long", "inside_lat", "inside_long"])


def read_polygons(path: str, *, polygon_col: Optional[str] = "polygon") -> pd.DataFrame:
    """Read any vector file geopandas understands and return the vertex table."""
    gdf = gpd.read_file(path)
    if gdf.crs is not None and not gdf.crs.is_geographic:
        gdf = gdf.to_crs(epsg=4326)
    return geometry_from_geodataframe(gdf, polygon_col=polygon_col)


def polygon_outlines(bgm: pd.DataFrame) -> "OrderedDict[object, np.ndarray]":
    """Ordered mapping polygon -> (N, 2) array of (long, lat) boundary vertices."""
    check_df_names(bgm, BGM_COLS, name="bgm_as_df")
    out: "OrderedDict[object, np.ndarray]" = OrderedDict()
    for pid, sub in bgm.groupby("polygon", sort=True):
        out[pid] = sub[["long", "lat"]].to_numpy(dtype=float)
    return out


def polygon_labels(bgm: pd.DataFrame) -> pd.DataFrame:
    """One row per polygon with the interior label position."""
    check_df_names(bgm, BGM_COLS, name="bgm_as_df")
    return (
        bgm.drop_duplicates("polygon")[["polygon", "inside_long", "inside_lat"]]
        .sort_values("polygon")
        .reset_index(drop=True)
    )
