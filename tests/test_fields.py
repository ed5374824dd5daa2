"""
Tests for FieldGrid.

Covers coordinate mapping and clamping, localized modification with
falloff, diffusion (corner behaviour and interior mass conservation),
evaporation threshold, food regrowth, snapshots and construction errors.
"""

import numpy as np
import pytest

from townsfolk.core.config import ConfigurationError, SimulationConfig
from townsfolk.core.fields import FieldDelta, FieldGrid, FieldLayer, LayerRates
from townsfolk.core.locations import DEFAULT_LOCATIONS, regrowth_anchors


def _small_grid(width=7, height=7, **kwargs):
    return FieldGrid(width=width, height=height, cell_size=10.0, **kwargs)


# ===================================================================
# Coordinates & sampling
# ===================================================================

class TestCoordinates:
    def test_world_to_cell(self):
        g = FieldGrid()
        assert g.world_to_cell(0, 0) == (0, 0)
        assert g.world_to_cell(45, 75) == (1, 2)

    def test_out_of_bounds_clamps_to_edge(self):
        g = FieldGrid()
        assert g.world_to_cell(-100, -5) == (0, 0)
        assert g.world_to_cell(5000, 5000) == (29, 16)

    def test_non_finite_maps_to_origin(self):
        assert FieldGrid().world_to_cell(float("nan"), 10) == (0, 0)

    def test_sample_out_of_bounds_reads_edge_cell(self):
        g = _small_grid()
        g.layers[FieldLayer.HEAT][0, 6] = 0.4
        assert g.sample(1000.0, -50.0, FieldLayer.HEAT) == 0.4

    def test_sample_unknown_layer_is_zero(self):
        assert FieldGrid().sample(10, 10, "smell") == 0.0

    def test_cell_center(self):
        assert FieldGrid().cell_center(2, 1) == (75.0, 45.0)


# ===================================================================
# Modify
# ===================================================================

class TestModify:
    def test_centre_gets_full_delta(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.HEAT, 0.5, radius=30)
        assert g.layers[FieldLayer.HEAT][3, 3] == pytest.approx(0.5)

    def test_linear_falloff(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.HEAT, 0.6, radius=30)
        heat = g.layers[FieldLayer.HEAT]
        # cell radius 3: one cell away gets 2/3, three cells away gets nothing
        assert heat[3, 4] == pytest.approx(0.4)
        assert heat[3, 6] == 0.0

    def test_radius_rounds_up_to_cells(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.HEAT, 1.0, radius=11)
        # ceil(11 / 10) = 2 cells, so the neighbour gets half
        assert g.layers[FieldLayer.HEAT][3, 4] == pytest.approx(0.5)

    def test_clamped_at_one_and_zero(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.FOOD, 5.0)
        assert g.values(FieldLayer.FOOD).max() == 1.0
        g.modify(35, 35, FieldLayer.FOOD, -9.0)
        assert g.values(FieldLayer.FOOD).min() == 0.0

    def test_non_positive_radius_is_noop(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.HEAT, 0.5, radius=0)
        g.modify(35, 35, FieldLayer.HEAT, 0.5, radius=-10)
        assert g.total(FieldLayer.HEAT) == 0.0

    def test_nan_delta_is_noop(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.HEAT, float("nan"))
        assert g.total(FieldLayer.HEAT) == 0.0

    def test_unknown_layer_is_noop(self):
        g = _small_grid()
        g.modify(35, 35, "smell", 0.5)
        assert all(g.total(layer) == 0.0 for layer in FieldLayer)

    def test_apply_deltas_in_order(self):
        g = _small_grid()
        g.apply_deltas([
            FieldDelta(FieldLayer.TRAUMA, 35, 35, 0.7, 10),
            FieldDelta(FieldLayer.TRAUMA, 35, 35, -0.2, 10),
        ])
        assert g.sample(35, 35, FieldLayer.TRAUMA) == pytest.approx(0.5)


# ===================================================================
# Diffusion
# ===================================================================

class TestDiffuse:
    def test_corner_with_two_hot_neighbours(self):
        rates = {FieldLayer.HEAT: LayerRates(diffusion=0.1, evaporation=0.02)}
        g = _small_grid(rates=rates)
        heat = g.layers[FieldLayer.HEAT]
        heat[0, 1] = 1.0
        heat[1, 0] = 1.0
        g.diffuse(FieldLayer.HEAT)
        assert g.layers[FieldLayer.HEAT][0, 0] == pytest.approx(0.1)

    def test_interior_mass_conserved(self):
        g = _small_grid()
        g.layers[FieldLayer.HEAT][3, 3] = 0.8
        before = g.total(FieldLayer.HEAT)
        g.diffuse(FieldLayer.HEAT)
        assert g.total(FieldLayer.HEAT) == pytest.approx(before, abs=1e-12)

    def test_spreads_to_neighbours(self):
        g = _small_grid()
        g.layers[FieldLayer.HEAT][3, 3] = 0.8
        g.diffuse(FieldLayer.HEAT)
        heat = g.layers[FieldLayer.HEAT]
        assert heat[3, 3] == pytest.approx(0.8 * (1 - 0.12))
        assert heat[2, 3] == pytest.approx(0.8 / 4 * 0.12)
        assert heat[2, 2] == 0.0

    def test_single_cell_grid_unchanged(self):
        g = FieldGrid(width=1, height=1)
        g.layers[FieldLayer.HEAT][0, 0] = 0.6
        g.diffuse(FieldLayer.HEAT)
        assert g.layers[FieldLayer.HEAT][0, 0] == pytest.approx(0.6)

    def test_uniform_field_is_fixed_point(self):
        g = _small_grid()
        g.layers[FieldLayer.FOOD][:] = 0.3
        g.diffuse(FieldLayer.FOOD)
        np.testing.assert_allclose(g.layers[FieldLayer.FOOD], 0.3)


# ===================================================================
# Evaporation & regrowth
# ===================================================================

class TestEvaporate:
    def test_proportional_decay(self):
        g = _small_grid()
        g.layers[FieldLayer.HEAT][2, 2] = 0.5
        g.evaporate(FieldLayer.HEAT)
        assert g.layers[FieldLayer.HEAT][2, 2] == pytest.approx(0.5 * 0.98)

    def test_small_values_snap_to_zero(self):
        g = _small_grid()
        g.layers[FieldLayer.HEAT][2, 2] = 0.01
        g.layers[FieldLayer.HEAT][2, 3] = 0.005
        g.evaporate(FieldLayer.HEAT)
        assert g.layers[FieldLayer.HEAT][2, 2] == 0.0
        assert g.layers[FieldLayer.HEAT][2, 3] == 0.0


class TestRegrow:
    def test_regrows_near_anchor(self):
        g = _small_grid()
        g.regrow(FieldLayer.FOOD, [(35.0, 35.0, 15.0)])
        assert g.layers[FieldLayer.FOOD][3, 3] == pytest.approx(0.002)
        assert g.layers[FieldLayer.FOOD][0, 0] == 0.0

    def test_never_exceeds_cap(self):
        g = _small_grid()
        g.layers[FieldLayer.FOOD][3, 3] = 0.799
        g.regrow(FieldLayer.FOOD, [(35.0, 35.0, 15.0)])
        assert g.layers[FieldLayer.FOOD][3, 3] == pytest.approx(0.8)

    def test_above_cap_left_alone(self):
        g = _small_grid()
        g.layers[FieldLayer.FOOD][3, 3] = 0.95
        g.regrow(FieldLayer.FOOD, [(35.0, 35.0, 15.0)])
        assert g.layers[FieldLayer.FOOD][3, 3] == pytest.approx(0.95)

    def test_other_layers_do_not_regrow(self):
        g = _small_grid()
        g.regrow(FieldLayer.HEAT, [(35.0, 35.0, 15.0)])
        assert g.total(FieldLayer.HEAT) == 0.0


# ===================================================================
# Invariants over sequences of operations
# ===================================================================

class TestClampingInvariant:
    def test_random_operation_sequence_stays_in_unit_range(self):
        rng = np.random.default_rng(42)
        g = FieldGrid()
        anchors = regrowth_anchors(DEFAULT_LOCATIONS)
        for _ in range(300):
            op = rng.integers(4)
            layer = list(FieldLayer)[rng.integers(3)]
            if op == 0:
                g.modify(
                    rng.uniform(-100, 1000), rng.uniform(-100, 600), layer,
                    rng.uniform(-2, 2), rng.uniform(1, 200),
                )
            elif op == 1:
                g.diffuse(layer)
            elif op == 2:
                g.evaporate(layer)
            else:
                g.regrow(layer, anchors)
            for values in g.layers.values():
                assert values.min() >= 0.0
                assert values.max() <= 1.0


# ===================================================================
# Baseline, snapshots & construction
# ===================================================================

class TestBaseline:
    def test_seed_baseline(self):
        g = FieldGrid()
        g.seed_baseline(DEFAULT_LOCATIONS, base_food=0.2)
        assert g.sample(640, 305, FieldLayer.FOOD) == pytest.approx(0.8)
        assert g.sample(890, 510, FieldLayer.FOOD) == pytest.approx(0.2)
        assert g.total(FieldLayer.HEAT) == 0.0
        assert g.total(FieldLayer.TRAUMA) == 0.0

    def test_step_runs_every_layer(self):
        g = _small_grid()
        g.layers[FieldLayer.TRAUMA][3, 3] = 0.5
        g.step([(35.0, 35.0, 15.0)])
        assert g.layers[FieldLayer.TRAUMA][3, 3] < 0.5
        assert g.layers[FieldLayer.FOOD][3, 3] > 0.0


class TestSnapshot:
    def test_snapshot_is_independent(self):
        g = _small_grid()
        snap = g.snapshot()
        g.modify(35, 35, FieldLayer.HEAT, 0.5)
        assert snap.total(FieldLayer.HEAT) == 0.0
        snap.modify(5, 5, FieldLayer.FOOD, 0.5)
        assert g.total(FieldLayer.FOOD) == 0.0

    def test_to_dict_and_load_layers(self):
        g = _small_grid()
        g.modify(35, 35, FieldLayer.HEAT, 0.5)
        other = _small_grid()
        other.load_layers(g.to_dict()["layers"])
        np.testing.assert_allclose(
            other.values(FieldLayer.HEAT), g.values(FieldLayer.HEAT), atol=1e-6,
        )

    def test_load_layers_shape_mismatch(self):
        with pytest.raises(ValueError, match="shape"):
            _small_grid().load_layers({"heat": [[0.0]]})


class TestConstruction:
    def test_from_config(self):
        g = FieldGrid.from_config(SimulationConfig())
        assert (g.width, g.height) == (30, 17)
        assert g.rates[FieldLayer.TRAUMA] == LayerRates(0.08, 0.005)

    def test_zero_sized_grid(self):
        with pytest.raises(ConfigurationError, match="1x1"):
            FieldGrid(width=0, height=5)

    def test_bad_rate(self):
        with pytest.raises(ConfigurationError, match="heat"):
            FieldGrid(rates={"heat": LayerRates(diffusion=1.5, evaporation=0.1)})

    def test_unknown_layer_rate(self):
        with pytest.raises(ConfigurationError, match="Unknown field layer"):
            FieldGrid(rates={"smell": LayerRates(0.1, 0.1)})

    def test_non_positive_cell_size(self):
        with pytest.raises(ConfigurationError, match="cell_size"):
            FieldGrid(cell_size=0)
