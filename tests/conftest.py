"""Shared pytest fixtures for the atlantisviz test suite.

Small hand-made tables: two species (Cod with juvenile/adult stanzas, Sprat
with a single adult stanza stored on the 'all layers' marker), two polygons,
three time steps.
"""

import matplotlib

matplotlib.use("Agg", force=True)

import pandas as pd
import pytest


BIOMASS_COLUMNS = ["species", "species_stanza", "polygon", "layer", "time", "atoutput"]


@pytest.fixture
def bio_spatial():
    """Biomass in tonnes per species/stanza/polygon/layer/time."""
    rows = []
    for t in (0, 1, 2):
        for pol in (1, 2):
            rows.append(("Cod", "juvenile", pol, 0, t, 10.0 + t))
            rows.append(("Cod", "juvenile", pol, 1, t, 5.0))
            rows.append(("Cod", "adult", pol, 0, t, 20.0))
            rows.append(("Sprat", "adult", pol, "all", t, 3.0))
    return pd.DataFrame(rows, columns=BIOMASS_COLUMNS)


@pytest.fixture
def vol():
    """One volume per (time, polygon); polygon 2 is twice as large as polygon 1."""
    rows = [(t, pol, 100.0 * pol) for t in (0, 1, 2) for pol in (1, 2)]
    return pd.DataFrame(rows, columns=["time", "polygon", "volume"])


@pytest.fixture
def bgm_as_df():
    """Two unit squares side by side, one row per vertex."""
    rows = []
    for pol, x0 in ((1, 0.0), (2, 1.0)):
        for lon, lat in ((x0, 0.0), (x0, 1.0), (x0 + 1.0, 1.0), (x0 + 1.0, 0.0)):
            rows.append((pol, lat, lon, 0.5, x0 + 0.5))
    return pd.DataFrame(rows, columns=["polygon", "lat", "long", "inside_lat", "inside_long"])


@pytest.fixture
def make_bio():
    """Factory for ad-hoc biomass tables from (species, stanza, polygon, layer, time, t) tuples."""
    def _make(rows):
        return pd.DataFrame(rows, columns=BIOMASS_COLUMNS)
    return _make
