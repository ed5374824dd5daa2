"""
Psychological model for the Townsfolk simulation.

Derives despair and aggression from drives, stress, trauma load and
personality; evolves the mental breakpoint from trauma memories; decides
whether a breakdown scars the personality; and gates the rare dark
actions behind thresholds plus a single uniform draw.

Despair has an empathy buffer. Aggression deliberately has no calming
counterpart.

Every function is pure. Randomness comes only from the generator the
caller passes in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from townsfolk.core.entity import (
    DEFAULT_ENERGY,
    DEFAULT_SAFETY,
    DEFAULT_SOCIAL,
    Personality,
    TraumaMemory,
    unit_value,
)

if TYPE_CHECKING:
    from townsfolk.core.entity import Entity

logger = logging.getLogger(__name__)


def _clip01(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


@dataclass(frozen=True)
class BreakdownDeltas:
    """Permanent personality shift after a mental breakdown."""

    empathy_delta: float
    weirdness_delta: float
    mood_delta: float

    def apply_to(self, personality: Personality) -> Personality:
        p = personality.clamped()
        return Personality(
            curiosity=p.curiosity,
            empathy=_clip01(p.empathy + self.empathy_delta),
            boldness=p.boldness,
            order=p.order,
            mood=_clip01(p.mood + self.mood_delta),
            weirdness=_clip01(p.weirdness + self.weirdness_delta),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "empathy_delta": self.empathy_delta,
            "weirdness_delta": self.weirdness_delta,
            "mood_delta": self.mood_delta,
        }


class PsychologicalModel:
    """
    Despair, aggression, trauma and breakdown computations.

    All weights and thresholds come from a config dict (normally
    ``SimulationConfig.psychology_config``); missing keys use the tuned
    defaults.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        config = config or {}
        self._config = config

        # Despair
        self.isolation_weight: float = config.get("isolation_weight", 0.35)
        self.starvation_weight: float = config.get("starvation_weight", 0.30)
        self.chronic_stress_threshold: float = config.get("chronic_stress_threshold", 0.6)
        self.chronic_stress_penalty: float = config.get("chronic_stress_penalty", 0.3)
        self.trauma_to_despair: float = config.get("trauma_to_despair", 0.25)
        self.hopelessness_weight: float = config.get("hopelessness_weight", 0.25)
        self.empathy_buffer: float = config.get("empathy_buffer", 0.20)

        # Aggression
        self.cornered_weight: float = config.get("cornered_weight", 0.35)
        self.frustrated_weight: float = config.get("frustrated_weight", 0.25)
        self.trauma_to_aggression: float = config.get("trauma_to_aggression", 0.20)
        self.low_empathy_weight: float = config.get("low_empathy_weight", 0.25)
        self.boldness_weight: float = config.get("boldness_weight", 0.15)
        self.desperation_threshold: float = config.get("desperation_threshold", 0.7)
        self.desperation_penalty: float = config.get("desperation_penalty", 0.25)

        # Trauma processing
        self.recovery_step: float = config.get("recovery_step", 0.01)
        self.trauma_window_minutes: float = config.get("trauma_window_minutes", 100.0)
        self.trauma_amplification: float = config.get("trauma_amplification", 0.008)
        self.trauma_divisor: float = config.get("trauma_divisor", 4.0)

        # Breakdown
        self.breakdown_threshold: float = config.get("breakdown_threshold", 0.7)
        self.breakdown_deltas = BreakdownDeltas(
            empathy_delta=config.get("breakdown_empathy_delta", -0.12),
            weirdness_delta=config.get("breakdown_weirdness_delta", 0.18),
            mood_delta=config.get("breakdown_mood_delta", -0.25),
        )

        # Dark triggers
        self.suicide_threshold: float = config.get("suicide_threshold", 0.75)
        self.suicide_base_rate: float = config.get("suicide_base_rate", 0.0008)
        self.murder_threshold: float = config.get("murder_threshold", 0.65)
        self.murder_base_rate: float = config.get("murder_base_rate", 0.0004)

        self.contagion_rate: float = config.get("contagion_rate", 0.3)

    # ------------------------------------------------------------------
    # Derived signals
    # ------------------------------------------------------------------

    def despair(self, entity: Entity) -> float:
        """
        Suicidal-ideation level in [0, 1].

        Isolation and starvation are squared so despair accelerates as
        needs go unmet; empathy subtracts a protective buffer.
        """
        social = unit_value(entity.social, DEFAULT_SOCIAL)
        energy = unit_value(entity.energy, DEFAULT_ENERGY)
        stress = unit_value(entity.stress, 0.0)
        breakpoint_ = unit_value(entity.mental_breakpoint, 0.0)
        p = entity.personality.clamped()

        isolation = (1.0 - social) ** 2 * self.isolation_weight
        starvation = (1.0 - energy) ** 2 * self.starvation_weight
        chronic = self.chronic_stress_penalty if stress > self.chronic_stress_threshold else 0.0
        trauma_load = breakpoint_ * self.trauma_to_despair
        hopelessness = (1.0 - p.mood) * self.hopelessness_weight
        buffer = p.empathy * self.empathy_buffer

        return _clip01(isolation + starvation + chronic + trauma_load + hopelessness - buffer)

    def aggression(self, entity: Entity) -> float:
        """Violent-tendency level in [0, 1]; purely additive."""
        safety = unit_value(entity.safety, DEFAULT_SAFETY)
        energy = unit_value(entity.energy, DEFAULT_ENERGY)
        stress = unit_value(entity.stress, 0.0)
        breakpoint_ = unit_value(entity.mental_breakpoint, 0.0)
        p = entity.personality.clamped()

        cornered = (1.0 - safety) * self.cornered_weight
        frustrated = stress * self.frustrated_weight
        traumatized = breakpoint_ * self.trauma_to_aggression
        dark_personality = (1.0 - p.empathy) * self.low_empathy_weight
        willing = p.boldness * self.boldness_weight
        desperation = self.desperation_penalty if energy < self.desperation_threshold else 0.0

        return _clip01(
            cornered + frustrated + traumatized + dark_personality + willing + desperation
        )

    def hope(self, entity: Entity, recent_positive: int = 0) -> float:
        """Counterweight to despair from met needs and recent good contact."""
        energy = unit_value(entity.energy, DEFAULT_ENERGY)
        social = unit_value(entity.social, DEFAULT_SOCIAL)
        safety = unit_value(entity.safety, DEFAULT_SAFETY)
        p = entity.personality.clamped()

        well_fed = 0.2 if energy > 0.7 else 0.0
        support = 0.3 if social > 0.6 else 0.0
        secure = 0.2 if safety > 0.5 else 0.0
        resilience = p.empathy * 0.2
        positive = max(0, recent_positive) * 0.1
        return _clip01(well_fed + support + secure + resilience + positive)

    # ------------------------------------------------------------------
    # Trauma
    # ------------------------------------------------------------------

    def process_trauma(self, entity: Entity, world_time: float) -> float:
        """
        New mental breakpoint for *entity* at *world_time*.

        With no memories the breakpoint recovers by a small step. Otherwise
        each memory inside the recency window weighs
        ``severity * (1 + minutes_since * amplification)``; the weights are
        summed and divided by ``trauma_divisor``. Memories get heavier as
        they age inside the window (intrusive recall), then drop out.
        """
        memories = entity.trauma_memories or []
        if not memories:
            current = unit_value(entity.mental_breakpoint, 0.0)
            return max(0.0, current - self.recovery_step)

        load = 0.0
        for memory in memories:
            since = world_time - memory.timestamp
            if since >= self.trauma_window_minutes:
                continue
            since = max(0.0, since)
            severity = unit_value(memory.severity, 0.0)
            load += severity * (1.0 + since * self.trauma_amplification)

        return _clip01(load / self.trauma_divisor)

    def check_mental_breakdown(
        self, entity: Entity, previous_breakpoint: float | None = None,
    ) -> BreakdownDeltas | None:
        """
        Personality scar deltas once the breakpoint passes the threshold.

        With *previous_breakpoint* given, the scar is returned only on the
        tick the threshold is crossed; a breakpoint that stays high does
        not scar again.
        """
        if unit_value(entity.mental_breakpoint, 0.0) <= self.breakdown_threshold:
            return None
        if (
            previous_breakpoint is not None
            and unit_value(previous_breakpoint, 0.0) > self.breakdown_threshold
        ):
            return None
        return self.breakdown_deltas

    @staticmethod
    def add_trauma_memory(
        entity: Entity, memory: TraumaMemory,
    ) -> list[TraumaMemory]:
        """New memory list with *memory* appended; the entity is untouched."""
        return [*(entity.trauma_memories or []), memory]

    # ------------------------------------------------------------------
    # Dark triggers
    # ------------------------------------------------------------------

    def should_attempt_suicide(self, despair: float, rng: np.random.Generator) -> bool:
        """False below the threshold; else one draw against ``despair * rate``."""
        despair = unit_value(despair, 0.0)
        if despair < self.suicide_threshold:
            return False
        return bool(rng.random() < despair * self.suicide_base_rate)

    def should_attempt_murder(
        self,
        aggression: float,
        has_nearby_victim: bool,
        rng: np.random.Generator,
    ) -> bool:
        """Needs a victim in reach and aggression at or above the threshold."""
        if not has_nearby_victim:
            return False
        aggression = unit_value(aggression, 0.0)
        if aggression < self.murder_threshold:
            return False
        return bool(rng.random() < aggression * self.murder_base_rate)

    # ------------------------------------------------------------------
    # Social contagion
    # ------------------------------------------------------------------

    def emotional_contagion(self, a: Entity, b: Entity) -> tuple[float, float]:
        """
        New moods for two entities after an interaction.

        Each mood is pulled toward the pair's mean in proportion to the
        entity's empathy. Only upward pulls take effect: a shift is clamped
        at zero, so meeting a gloomier person never lowers mood here.
        """
        pa = a.personality.clamped()
        pb = b.personality.clamped()
        mean = (pa.mood + pb.mood) / 2.0
        shift_a = _clip01((mean - pa.mood) * self.contagion_rate * pa.empathy)
        shift_b = _clip01((mean - pb.mood) * self.contagion_rate * pb.empathy)
        return (_clip01(pa.mood + shift_a), _clip01(pb.mood + shift_b))
