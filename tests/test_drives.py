"""Tests for DriveSystem."""

import pytest

from townsfolk.core.config import SimulationConfig
from townsfolk.core.drives import DriveSystem
from townsfolk.core.entity import Entity


def _make_entity(**overrides):
    return Entity(id="e1", name="Ada", **overrides)


def _update(ds, entity, **kwargs):
    args = dict(seeking_food=False, local_food=0.0, danger=0.0, nearby_count=0, despair=0.0)
    args.update(kwargs)
    return ds.update(entity, **args)


class TestEnergy:
    def test_decays_without_food(self):
        ds = DriveSystem(SimulationConfig().drive_config)
        state = _update(ds, _make_entity(energy=0.5))
        assert state.energy == pytest.approx(0.49)
        assert not state.ate

    def test_eats_when_seeking_rich_food(self):
        ds = DriveSystem(SimulationConfig().drive_config)
        state = _update(ds, _make_entity(energy=0.5), seeking_food=True, local_food=0.6)
        assert state.ate
        assert state.energy == pytest.approx(0.5 - 0.01 + 0.08)

    def test_no_eating_on_scarce_food(self):
        ds = DriveSystem()
        state = _update(ds, _make_entity(energy=0.5), seeking_food=True, local_food=0.2)
        assert not state.ate

    def test_no_eating_unless_seeking(self):
        ds = DriveSystem()
        assert not _update(ds, _make_entity(), local_food=0.9).ate

    def test_floors_at_zero(self):
        ds = DriveSystem()
        assert _update(ds, _make_entity(energy=0.0)).energy == 0.0


class TestSocial:
    def test_decays_alone(self):
        ds = DriveSystem()
        assert _update(ds, _make_entity(social=0.5)).social == pytest.approx(0.49)

    def test_gain_capped(self):
        ds = DriveSystem()
        one = _update(ds, _make_entity(social=0.5), nearby_count=1).social
        many = _update(ds, _make_entity(social=0.5), nearby_count=10).social
        assert one == pytest.approx(0.52)
        assert many == pytest.approx(0.56)


class TestSafetyAndStress:
    def test_safety_blends_toward_danger(self):
        ds = DriveSystem()
        state = _update(ds, _make_entity(safety=1.0), danger=1.0)
        assert state.safety == pytest.approx(0.8)

    def test_stress_follows_despair(self):
        ds = DriveSystem()
        state = _update(ds, _make_entity(stress=0.0), despair=1.0)
        assert state.stress == pytest.approx(0.05)

    def test_stress_follows_danger(self):
        ds = DriveSystem()
        state = _update(ds, _make_entity(stress=0.0), danger=0.8, despair=0.2)
        assert state.stress == pytest.approx(0.08)

    def test_values_stay_in_range(self):
        ds = DriveSystem({"eat_energy_gain": 5.0, "social_gain_cap": 5.0,
                          "social_gain_per_neighbor": 5.0})
        state = _update(ds, _make_entity(energy=0.9, social=0.9),
                        seeking_food=True, local_food=1.0, nearby_count=3, danger=2.0)
        assert state.energy == 1.0
        assert state.social == 1.0
        assert 0.0 <= state.safety <= 1.0
