"""Tests for SimulationEngine."""

import math

import numpy as np
import pytest

from townsfolk.core.config import SimulationConfig
from townsfolk.core.engine import SimulationEngine, move_toward
from townsfolk.core.entity import Entity, Personality, TraumaMemory
from townsfolk.core.fields import FieldLayer


def _make_entity(entity_id, x=450.0, y=260.0, **overrides):
    return Entity(id=entity_id, name=f"Entity_{entity_id}", x=x, y=y, **overrides)


class TestMoveToward:
    def test_reaches_close_target(self):
        assert move_toward(0.0, 0.0, (3.0, 4.0), 30.0) == (3.0, 4.0)

    def test_caps_step_length(self):
        x, y = move_toward(0.0, 0.0, (300.0, 400.0), 30.0)
        assert math.isclose(math.hypot(x, y), 30.0)
        assert math.isclose(x / y, 0.75)

    def test_no_target_stays(self):
        assert move_toward(5.0, 6.0, None, 30.0) == (5.0, 6.0)


class TestPopulation:
    def test_spawn_population(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        spawned = engine.spawn_population(10)
        assert len(spawned) == 10
        assert len({e.id for e in spawned}) == 10
        for e in spawned:
            assert 50.0 <= e.x <= 850.0
            assert 50.0 <= e.y <= 470.0
            assert all(0.0 <= v <= 1.0 for v in e.personality.to_dict().values())

    def test_spawn_uses_config_default(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42, initial_population=5))
        engine.spawn_population()
        assert len(engine.entities) == 5

    def test_names_cycle(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        spawned = engine.spawn_population(41)
        assert spawned[0].name == "Ada"
        assert spawned[40].name == "Ada 2"

    def test_duplicate_id_rejected(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        engine.add_entity(_make_entity("x"))
        with pytest.raises(ValueError, match="Duplicate"):
            engine.add_entity(_make_entity("x"))

    def test_fields_seeded(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        assert engine.fields.sample(640, 305, FieldLayer.FOOD) == pytest.approx(0.8)


class TestStepping:
    def test_step_advances_clock(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        engine.spawn_population(4)
        snap = engine.step()
        assert engine.world_time == 1.0
        assert engine.tick_count == 1
        assert snap.tick == 1
        assert engine.last_result is not None

    def test_run_spawns_and_records(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42, initial_population=6))
        history = engine.run(5)
        assert len(history) == 5
        assert history is engine.metrics.metrics_history
        assert len(engine.entities) == 6
        assert all(e.current_action is not None for e in engine.living)

    def test_movement_bounded_by_speed(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        engine.spawn_population(8)
        before = {e.id: (e.x, e.y) for e in engine.entities}
        engine.step()
        for e in engine.entities:
            bx, by = before[e.id]
            assert math.hypot(e.x - bx, e.y - by) <= 30.0 + 1e-9

    def test_same_seed_same_world(self):
        runs = []
        for _ in range(2):
            engine = SimulationEngine(SimulationConfig(random_seed=7, initial_population=8))
            engine.run(15)
            runs.append(([e.to_dict() for e in engine.entities], engine.fields.to_dict()))
        assert runs[0] == runs[1]

    def test_fields_replaced_each_tick(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        engine.spawn_population(3)
        old = engine.fields
        engine.step()
        assert engine.fields is not old
        assert engine.fields is engine.last_result.fields


class TestAtomicity:
    def test_reentrant_step_rejected(self):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        engine._in_tick = True
        with pytest.raises(RuntimeError, match="already in progress"):
            engine.step()

    def test_failed_tick_changes_nothing(self, monkeypatch):
        engine = SimulationEngine(SimulationConfig(random_seed=42))
        engine.spawn_population(4)
        entities = list(engine.entities)
        fields = engine.fields

        def boom(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(engine.orchestrator, "run_tick", boom)
        with pytest.raises(RuntimeError, match="store unavailable"):
            engine.step()

        assert engine.entities == entities
        assert engine.fields is fields
        assert engine.world_time == 0.0
        assert engine.history == []
        assert engine._in_tick is False


class TestDeaths:
    def test_murder_victim_stays_dead_and_still(self):
        config = SimulationConfig(random_seed=1)
        config.psychology_config["murder_base_rate"] = 10.0
        config.dark_action_config["murder_success_rate"] = 1.0
        engine = SimulationEngine(config)
        engine.add_entity(_make_entity(
            "a", x=400.0, safety=0.0, stress=1.0, energy=0.1, social=1.0,
            personality=Personality(empathy=0.0, boldness=1.0),
        ))
        engine.add_entity(_make_entity("b", x=430.0))

        engine.step()
        victim = engine.get_entity("b")
        assert not victim.is_alive
        assert victim.killed_by == "a"
        position = (victim.x, victim.y)

        engine.step()
        victim = engine.get_entity("b")
        assert (victim.x, victim.y) == position
        assert engine.history[-1].population == 1
        assert engine.get_entity("a").has_killed
        assert engine.get_entity("a").trauma_memories[0].type == "attacked_someone"

    def test_metrics_track_population(self):
        engine = SimulationEngine(SimulationConfig(random_seed=3))
        engine.spawn_population(5)
        engine.run(3)
        series = engine.metrics.get_time_series("population")
        assert len(series) == 3
        assert all(isinstance(v, int) for v in series)
        assert np.all(np.diff(series) <= 0)


class TestBreakdown:
    def test_scar_lands_once_across_ticks(self):
        engine = SimulationEngine(SimulationConfig(random_seed=1))
        memories = [TraumaMemory("witnessed_murder", 0.0, 1.0) for _ in range(4)]
        engine.add_entity(_make_entity(
            "e", trauma_memories=memories, energy=0.9, social=0.9,
        ))
        scars = 0
        for _ in range(10):
            engine.step()
            if engine.last_result.update_for("e").personality_deltas is not None:
                scars += 1

        assert scars == 1
        p = engine.get_entity("e").personality
        assert p.empathy == pytest.approx(0.38)
        assert p.mood == pytest.approx(0.25)
        assert p.weirdness == pytest.approx(0.68)
