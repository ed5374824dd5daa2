"""
Drive system for the Townsfolk simulation.

Entities carry three survival drives (energy, social, safety; 1 = fully
satisfied) plus stress. Each tick energy decays unless the entity eats,
social rises with company and decays alone, and safety and stress move
toward what the local fields say about danger.

All rates come from a config dict, never hardcoded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from townsfolk.core.entity import (
    DEFAULT_ENERGY,
    DEFAULT_SAFETY,
    DEFAULT_SOCIAL,
    unit_value,
)

if TYPE_CHECKING:
    from townsfolk.core.entity import Entity


@dataclass(frozen=True)
class DriveState:
    """Drive levels after one tick."""

    energy: float
    social: float
    safety: float
    stress: float
    ate: bool = False


class DriveSystem:
    """Per-tick evolution of energy, social, safety and stress."""

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        config = config or {}
        self._config = config

        self.energy_decay: float = config.get("energy_decay", 0.01)
        self.eat_food_threshold: float = config.get("eat_food_threshold", 0.3)
        self.eat_energy_gain: float = config.get("eat_energy_gain", 0.08)
        self.eat_food_consumed: float = config.get("eat_food_consumed", 0.04)
        self.eat_radius: float = config.get("eat_radius", 30.0)

        self.social_gain_per_neighbor: float = config.get("social_gain_per_neighbor", 0.02)
        self.social_gain_cap: float = config.get("social_gain_cap", 0.06)
        self.social_decay: float = config.get("social_decay", 0.01)

        self.safety_blend: float = config.get("safety_blend", 0.2)
        self.stress_blend: float = config.get("stress_blend", 0.1)
        self.stress_despair_weight: float = config.get("stress_despair_weight", 0.5)

    def can_eat(self, seeking_food: bool, local_food: float) -> bool:
        """Eating happens when seeking food where there is enough of it."""
        return seeking_food and local_food >= self.eat_food_threshold

    def update(
        self,
        entity: Entity,
        *,
        seeking_food: bool,
        local_food: float,
        danger: float,
        nearby_count: int,
        despair: float,
    ) -> DriveState:
        """
        Apply one tick of drive dynamics to a snapshot of *entity*.

        energy -= decay, += gain when eating
        social += gain per neighbour (capped), -= decay when alone
        safety  -> blends toward 1 - danger
        stress  -> blends toward max(danger, despair * weight)
        """
        energy = unit_value(entity.energy, DEFAULT_ENERGY)
        social = unit_value(entity.social, DEFAULT_SOCIAL)
        safety = unit_value(entity.safety, DEFAULT_SAFETY)
        stress = unit_value(entity.stress, 0.0)
        danger = unit_value(danger, 0.0)
        despair = unit_value(despair, 0.0)

        ate = self.can_eat(seeking_food, unit_value(local_food, 0.0))
        energy -= self.energy_decay
        if ate:
            energy += self.eat_energy_gain

        if nearby_count > 0:
            social += min(self.social_gain_cap, nearby_count * self.social_gain_per_neighbor)
        else:
            social -= self.social_decay

        safety += (1.0 - danger - safety) * self.safety_blend
        stress_target = max(danger, despair * self.stress_despair_weight)
        stress += (stress_target - stress) * self.stress_blend

        return DriveState(
            energy=float(np.clip(energy, 0.0, 1.0)),
            social=float(np.clip(social, 0.0, 1.0)),
            safety=float(np.clip(safety, 0.0, 1.0)),
            stress=float(np.clip(stress, 0.0, 1.0)),
            ate=ate,
        )
