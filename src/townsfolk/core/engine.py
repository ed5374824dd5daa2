"""
Simulation engine.

Owns the mutable world: the entity list, the field grid, the world clock
and a seeded generator. Each ``step()`` hands a snapshot to the
``TickOrchestrator`` and commits the returned batch in one swap, so a
failed tick leaves the world exactly as it was.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Sequence

import numpy as np

from townsfolk.core.config import SimulationConfig
from townsfolk.core.entity import Entity, Personality
from townsfolk.core.fields import FieldGrid
from townsfolk.core.locations import DEFAULT_LOCATIONS, Location
from townsfolk.core.tick import TickOrchestrator, TickResult
from townsfolk.metrics.collector import MetricsCollector, TickMetrics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Name generation (simple deterministic names for townsfolk)
# ---------------------------------------------------------------------------
_FIRST_NAMES = [
    "Ada", "Alan", "Alice", "Anya", "Atlas", "Bea", "Blake", "Cleo",
    "Cole", "Dana", "Eli", "Elara", "Eve", "Finn", "Grace", "Hugo",
    "Iris", "Jade", "Kael", "Kai", "Leo", "Luna", "Mae", "Max",
    "Nia", "Noah", "Ora", "Owen", "Pia", "Quinn", "Reed", "Rena",
    "Sage", "Sol", "Tara", "Troy", "Uma", "Vale", "Wren", "Zara",
]


def _generate_name(index: int) -> str:
    name = _FIRST_NAMES[index % len(_FIRST_NAMES)]
    cycle = index // len(_FIRST_NAMES)
    return name if cycle == 0 else f"{name} {cycle + 1}"


def move_toward(
    x: float, y: float, target: tuple[float, float] | None, speed: float,
) -> tuple[float, float]:
    """Step at most *speed* world units from (x, y) toward *target*."""
    if target is None:
        return (x, y)
    dx, dy = target[0] - x, target[1] - y
    dist = math.hypot(dx, dy)
    if dist <= speed or dist == 0:
        return (float(target[0]), float(target[1]))
    return (x + dx / dist * speed, y + dy / dist * speed)


# ---------------------------------------------------------------------------
# Simulation Engine
# ---------------------------------------------------------------------------
class SimulationEngine:
    """
    Main simulation loop.

    Per step:
    1. Run one tick against the current entities and grid
    2. Merge entity updates and move entities toward their targets
    3. Swap in the new entity list and grid
    4. Advance the clock and record metrics
    """

    def __init__(
        self,
        config: SimulationConfig,
        locations: Sequence[Location] | None = None,
    ):
        self.config = config
        self.locations = tuple(locations) if locations is not None else DEFAULT_LOCATIONS
        self.rng = np.random.default_rng(config.random_seed)

        self.orchestrator = TickOrchestrator(config, self.locations)
        self.metrics = MetricsCollector(config)

        self.fields = FieldGrid.from_config(config)
        self.fields.seed_baseline(self.locations, config.food_baseline)

        self.entities: list[Entity] = []
        self.world_time: float = 0.0
        self.tick_count: int = 0
        self.last_result: TickResult | None = None
        self._next_entity_id = 0
        self._in_tick = False

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def spawn_population(self, n: int | None = None) -> list[Entity]:
        """Add *n* entities with seeded personalities at random positions."""
        n = self.config.initial_population if n is None else n
        margin = self.config.world_margin
        spawned: list[Entity] = []
        for _ in range(n):
            traits = self.rng.random(6)
            personality = Personality(*(float(v) for v in traits))
            x = float(self.rng.uniform(margin, self.config.world_width - margin))
            y = float(self.rng.uniform(margin, self.config.world_height - margin))
            index = self._next_entity_id
            self._next_entity_id += 1
            spawned.append(Entity(
                id=f"entity_{index:04d}",
                name=_generate_name(index),
                x=x,
                y=y,
                personality=personality,
            ))
        self.entities.extend(spawned)
        logger.info("Spawned %d entities (population %d)", n, len(self.entities))
        return spawned

    def add_entity(self, entity: Entity) -> None:
        if any(e.id == entity.id for e in self.entities):
            raise ValueError(f"Duplicate entity id {entity.id!r}")
        self.entities.append(entity)

    def get_entity(self, entity_id: str) -> Entity | None:
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None

    @property
    def living(self) -> list[Entity]:
        return [e for e in self.entities if e.is_alive]

    @property
    def history(self) -> list[TickMetrics]:
        """Per-tick metrics, as kept by the collector."""
        return self.metrics.metrics_history

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def step(self) -> TickMetrics:
        """Run one tick and commit it atomically."""
        if self._in_tick:
            raise RuntimeError("A tick is already in progress")
        self._in_tick = True
        try:
            result = self.orchestrator.run_tick(
                self.entities, self.fields, self.world_time, self.rng,
            )
            new_entities = self._merge(result)
        finally:
            self._in_tick = False

        # Commit
        self.entities = new_entities
        self.fields = result.fields
        self.last_result = result
        self.tick_count += 1
        self.world_time += self.config.minutes_per_tick

        return self.metrics.collect(self.tick_count, result, self.entities)

    def run(self, ticks: int) -> list[TickMetrics]:
        """Run *ticks* steps, spawning the initial population if empty."""
        if not self.entities:
            self.spawn_population()
        for _ in range(ticks):
            self.step()
        return self.history

    def _merge(self, result: TickResult) -> list[Entity]:
        speed = self.config.movement_speed
        merged: list[Entity] = []
        for entity in self.entities:
            update = result.update_for(entity.id)
            if update is None:
                merged.append(entity)
                continue
            moved = update.apply_to(entity)
            if moved.is_alive:
                x, y = move_toward(moved.x, moved.y, moved.target, speed)
                moved = replace(moved, x=x, y=y)
            merged.append(moved)
        return merged
