"""Tests for Entity, Personality, TraumaMemory and value coercion."""

import logging
import math

from townsfolk.core.entity import (
    DEFAULT_ENERGY,
    Entity,
    Personality,
    TraumaMemory,
    unit_value,
)


def _make_entity(**overrides):
    return Entity(id="e1", name="Ada", x=100.0, y=200.0, **overrides)


class TestUnitValue:
    def test_none_uses_default(self):
        assert unit_value(None, 0.7) == 0.7

    def test_nan_uses_default(self):
        assert unit_value(float("nan"), 0.5) == 0.5

    def test_clamps_out_of_range(self):
        assert unit_value(1.7, 0.5) == 1.0
        assert unit_value(-0.2, 0.5) == 0.0

    def test_non_numeric_uses_default(self):
        assert unit_value("high", 0.3) == 0.3

    def test_passes_valid_values(self):
        assert unit_value(0.42, 0.0) == 0.42

    def test_hot_path_clamp_logs_debug_only(self, caplog):
        caplog.set_level(logging.DEBUG, logger="townsfolk.core.entity")
        Personality(empathy=1.3).clamped()
        assert caplog.records
        assert all(r.levelno == logging.DEBUG for r in caplog.records)

    def test_ingestion_clamp_warns(self, caplog):
        caplog.set_level(logging.DEBUG, logger="townsfolk.core.entity")
        Personality.from_dict({"empathy": 1.3})
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1


class TestPersonality:
    def test_defaults_are_neutral(self):
        p = Personality()
        assert all(v == 0.5 for v in p.to_dict().values())

    def test_clamped(self):
        p = Personality(curiosity=1.4, mood=float("nan")).clamped()
        assert p.curiosity == 1.0
        assert p.mood == 0.5

    def test_from_dict_fills_missing(self):
        p = Personality.from_dict({"empathy": 0.9})
        assert p.empathy == 0.9
        assert p.boldness == 0.5

    def test_from_none(self):
        assert Personality.from_dict(None) == Personality()


class TestEntity:
    def test_defaults(self):
        e = _make_entity()
        assert e.energy == DEFAULT_ENERGY
        assert e.is_alive
        assert e.trauma_memories == []

    def test_distance(self):
        a = _make_entity()
        b = Entity(id="e2", name="Bea", x=103.0, y=204.0)
        assert math.isclose(a.distance_to_entity(b), 5.0)

    def test_copy_has_own_memory_list(self):
        e = _make_entity(trauma_memories=[TraumaMemory("was_attacked", 0.0, 0.9)])
        c = e.copy()
        c.trauma_memories.append(TraumaMemory("witnessed_murder", 1.0, 0.8))
        assert len(e.trauma_memories) == 1

    def test_dict_roundtrip(self):
        e = _make_entity(
            energy=0.3,
            personality=Personality(weirdness=0.9),
            trauma_memories=[TraumaMemory("was_attacked", 12.0, 0.9)],
            target=(10.0, 20.0),
        )
        e2 = Entity.from_dict(e.to_dict())
        assert e2 == e

    def test_from_dict_defaults_missing_fields(self):
        e = Entity.from_dict({"id": "x", "social": None, "energy": float("nan")})
        assert e.name == "x"
        assert e.social == 0.5
        assert e.energy == DEFAULT_ENERGY
        assert e.personality == Personality()
