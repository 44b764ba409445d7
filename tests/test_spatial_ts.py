"""Tests for the stanza panels, stacked composites, overview inset and pipeline driver."""

import numpy as np
import pandas as pd
import pytest
import matplotlib.dates as mdates
from matplotlib.collections import LineCollection, PolyCollection
from matplotlib.figure import Figure

from atlantisviz.errors import JoinGapWarning, SchemaError, SelectionError
from atlantisviz.geometry import polygon_outlines, polygon_labels
from atlantisviz.plots import spatial_ts
from atlantisviz.plots.spatial_ts import (
    LayoutHints,
    SpeciesArtifact,
    add_polygon_overview,
    plot_spatial_ts,
    plot_stanza_panel,
    stack_panels,
)

pytestmark = pytest.mark.render


def _line_segments(ax):
    return [seg for c in ax.collections if isinstance(c, LineCollection) for seg in c.get_segments()]


class TestDriver:

    def test_one_artifact_per_species_sorted(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol)
        assert list(arts) == ["Cod", "Sprat"]
        for sp, art in arts.items():
            assert isinstance(art, SpeciesArtifact)
            assert art.species == sp
            assert isinstance(art.figure, Figure)

    def test_selection_order_is_output_order(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol, select_species=["Sprat", "Cod"])
        assert list(arts) == ["Sprat", "Cod"]

    def test_set_selection_output_is_sorted(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol, select_species={"Sprat", "Cod"})
        assert list(arts) == ["Cod", "Sprat"]

    def test_subset_only(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol, select_species=["Sprat"])
        assert set(arts) == {"Sprat"}

    def test_stanza_panels_in_canonical_order(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol)
        assert arts["Cod"].stanzas == ("juvenile", "adult")
        assert arts["Sprat"].stanzas == ("adult",)

    def test_panel_titles_and_facets(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol)
        juv = arts["Cod"].panels[0]
        assert juv.subfigure.get_suptitle() == "Species: Cod with stanza: juvenile"
        assert list(juv.axes) == [1, 2]
        assert [ax.get_title() for ax in juv.axes.values()] == ["1", "2"]

    def test_layout_hints_and_inset(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol, ncol=3, polygon_overview=0.25)
        art = arts["Cod"]
        assert art.layout == LayoutHints(columns=3, inset_scale=0.25)
        assert art.inset in art.figure.axes
        np.testing.assert_allclose(art.inset.get_position().bounds, (0.75, 0.75, 0.25, 0.25))

    def test_same_inset_on_every_species(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol)
        counts = {sp: len(art.inset.collections[0].get_paths()) for sp, art in arts.items()}
        assert counts == {"Cod": 2, "Sprat": 2}

    def test_absent_species_raises_before_rendering(self, bio_spatial, bgm_as_df, vol, monkeypatch):
        def _no_render(*a, **k):
            raise AssertionError("nothing may be rendered")

        monkeypatch.setattr(spatial_ts, "stack_panels", _no_render)
        with pytest.raises(SelectionError, match="Herring"):
            plot_spatial_ts(bio_spatial, bgm_as_df, vol, select_species={"Cod", "Herring"})

    @pytest.mark.parametrize("table, column", [
        ("bio", "atoutput"),
        ("bio", "layer"),
        ("bgm", "inside_long"),
        ("vol", "volume"),
    ])
    def test_missing_column_raises_before_aggregation(
        self, bio_spatial, bgm_as_df, vol, monkeypatch, table, column
    ):
        def _no_aggregation(*a, **k):
            raise AssertionError("aggregation must not run")

        monkeypatch.setattr(spatial_ts, "aggregate_density", _no_aggregation)
        tables = {"bio": bio_spatial, "bgm": bgm_as_df, "vol": vol}
        tables[table] = tables[table].drop(columns=column)
        with pytest.raises(SchemaError, match=column):
            plot_spatial_ts(tables["bio"], tables["bgm"], tables["vol"])

    @pytest.mark.parametrize("kwargs", [
        {"ncol": 0},
        {"ncol": 2.5},
        {"polygon_overview": 0.0},
        {"polygon_overview": 1.5},
    ])
    def test_invalid_options(self, bio_spatial, bgm_as_df, vol, kwargs):
        with pytest.raises(ValueError):
            plot_spatial_ts(bio_spatial, bgm_as_df, vol, **kwargs)

    def test_full_size_inset_allowed(self, bio_spatial, bgm_as_df, vol):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol, polygon_overview=1)
        assert arts["Cod"].layout.inset_scale == 1.0

    def test_inputs_not_mutated(self, bio_spatial, bgm_as_df, vol):
        before = [df.copy() for df in (bio_spatial, bgm_as_df, vol)]
        plot_spatial_ts(bio_spatial, bgm_as_df, vol, select_species=["Cod"])
        for df, ref in zip((bio_spatial, bgm_as_df, vol), before):
            pd.testing.assert_frame_equal(df, ref)

    def test_missing_volume_renders_gap(self, bio_spatial, bgm_as_df, vol):
        gappy = vol[~((vol["time"] == 0) & (vol["polygon"] == 1))]
        with pytest.warns(JoinGapWarning):
            arts = plot_spatial_ts(bio_spatial, bgm_as_df, gappy, select_species=["Cod"])
        juv = arts["Cod"].panels[0]
        data = juv.data[juv.data["polygon"] == 1].sort_values("time")
        assert np.isnan(data["density"].iloc[0])
        assert data["atoutput"].iloc[0] == pytest.approx(15.0)
        # three time steps -> two segments, the one touching the gap is dropped
        assert len(_line_segments(juv.axes[1])) == 1
        assert len(_line_segments(juv.axes[2])) == 2

    def test_deterministic(self, bio_spatial, bgm_as_df, vol):
        a = plot_spatial_ts(bio_spatial, bgm_as_df, vol)
        b = plot_spatial_ts(bio_spatial, bgm_as_df, vol)
        assert [(sp, art.stanzas) for sp, art in a.items()] == [(sp, art.stanzas) for sp, art in b.items()]
        for sp in a:
            for pa, pb in zip(a[sp].panels, b[sp].panels):
                assert list(pa.axes) == list(pb.axes)
                pd.testing.assert_frame_equal(pa.data, pb.data)

    def test_datetime_time_axis(self, bio_spatial, bgm_as_df, vol):
        to_dt = {0: "2000-01-01", 1: "2001-01-01", 2: "2002-01-01"}
        bio = bio_spatial.assign(time=pd.to_datetime(bio_spatial["time"].map(to_dt)))
        v = vol.assign(time=pd.to_datetime(vol["time"].map(to_dt)))
        arts = plot_spatial_ts(bio, bgm_as_df, v, select_species=["Cod"])
        assert len(_line_segments(arts["Cod"].panels[0].axes[1])) == 2

    def test_period_time_axis(self, bio_spatial, bgm_as_df, vol):
        to_period = {0: "2000", 1: "2001", 2: "2002"}
        bio = bio_spatial.assign(time=pd.PeriodIndex(bio_spatial["time"].map(to_period), freq="Y"))
        v = vol.assign(time=pd.PeriodIndex(vol["time"].map(to_period), freq="Y"))
        arts = plot_spatial_ts(bio, bgm_as_df, v, select_species=["Cod"])
        ax = arts["Cod"].panels[0].axes[1]
        segs = _line_segments(ax)
        assert len(segs) == 2
        assert segs[0][0][0] == pytest.approx(mdates.date2num(pd.Timestamp("2000-01-01")))
        assert isinstance(ax.xaxis.get_major_formatter(), mdates.AutoDateFormatter)

    def test_savefig(self, bio_spatial, bgm_as_df, vol, tmp_path):
        arts = plot_spatial_ts(bio_spatial, bgm_as_df, vol, select_species=["Sprat"])
        path = tmp_path / "sprat.png"
        arts["Sprat"].savefig(path, dpi=50)
        assert path.stat().st_size > 0


class TestBuildingBlocks:

    @pytest.fixture
    def panel_data(self):
        rows = [
            ("Cod", "adult", pol, t, 10.0 * pol, 0.1 * pol if t != 2 else np.nan)
            for pol in range(1, 6)
            for t in range(4)
        ]
        return pd.DataFrame(rows, columns=["species", "species_stanza", "polygon", "time", "atoutput", "density"])

    def test_facet_grid_wraps_columns(self, panel_data):
        fig = Figure()
        panel = plot_stanza_panel(fig, panel_data, ncol=2)
        assert list(panel.axes) == [1, 2, 3, 4, 5]
        # 5 facets + 1 colour bar; the unused sixth grid cell is removed
        assert len(fig.axes) == 6
        rows = {ax.get_subplotspec().rowspan.start for ax in panel.axes.values()}
        assert rows == {0, 1, 2}

    def test_gap_splits_every_facet(self, panel_data):
        panel = plot_stanza_panel(Figure(), panel_data, ncol=7)
        for ax in panel.axes.values():
            # 0-1 kept, 1-2 and 2-3 touch the NaN at t=2
            assert len(_line_segments(ax)) == 1

    def test_colour_encodes_biomass(self, panel_data):
        panel = plot_stanza_panel(Figure(), panel_data)
        lc = [c for c in panel.axes[3].collections if isinstance(c, LineCollection)][0]
        np.testing.assert_allclose(lc.get_array(), [30.0])

    def test_ordinal_time_keys_use_sorted_positions(self, panel_data):
        seasons = {0: "y1-spring", 1: "y1-summer", 2: "y2-spring", 3: "y2-summer"}
        # rows shuffled so positions cannot come from input order
        data = panel_data.assign(time=panel_data["time"].map(seasons)).iloc[::-1]
        panel = plot_stanza_panel(Figure(), data)
        ax = panel.axes[1]
        assert len(_line_segments(ax)) == 1
        np.testing.assert_allclose(_line_segments(ax)[0][:, 0], [0.0, 1.0])
        assert [t.get_text() for t in ax.get_xticklabels()] == list(seasons.values())

    def test_panel_rejects_mixed_stanzas(self, panel_data):
        mixed = panel_data.copy()
        mixed.loc[0, "species_stanza"] = "juvenile"
        with pytest.raises(ValueError, match="species_stanza"):
            plot_stanza_panel(Figure(), mixed)

    @pytest.mark.parametrize("n", [1, 2, 3])
    def test_stack_any_number_of_stanzas(self, panel_data, n):
        stanzas = {f"s{i}": panel_data.assign(species_stanza=f"s{i}") for i in range(n)}
        fig, panels = stack_panels("Cod", stanzas, figsize_per_panel=(6, 2))
        assert [p.stanza for p in panels] == list(stanzas)
        assert len(fig.subfigs) == n
        assert tuple(fig.get_size_inches()) == pytest.approx((6, 2 * n))

    def test_stack_needs_a_stanza(self):
        with pytest.raises(ValueError, match="no stanza"):
            stack_panels("Cod", {})

    def test_overview_outlines_only(self, bgm_as_df):
        fig = Figure()
        ax = add_polygon_overview(
            fig, polygon_outlines(bgm_as_df), polygon_labels(bgm_as_df), polygon_overview=0.3,
        )
        pcs = [c for c in ax.collections if isinstance(c, PolyCollection)]
        assert len(pcs) == 1
        assert len(pcs[0].get_paths()) == 2
        assert pcs[0].get_facecolor().size == 0 or (pcs[0].get_facecolor()[:, 3] == 0).all()
        assert sorted(t.get_text() for t in ax.texts) == ["1", "2"]
        np.testing.assert_allclose(ax.get_position().bounds, (0.7, 0.7, 0.3, 0.3))
