"""
Utility-based decision engine.

Every tick each entity scores a closed set of seven actions:

  U(action) = sum_t W_action[t] * term_t            (base table)
            + sum_t P_action[t] * term_t            (personality pass)
            + jitter(entity, action, time bucket)

Terms are drives, local field samples, crowding and personality traits,
all in [0, 1] (see ``TERM_NAMES``). The weight tables are plain data in
``SimulationConfig``. Selection is argmax with first-seen tie-break in the
fixed ``UtilityAction`` order, so equal scores always resolve the same way.

The chosen action is then turned into a concrete movement target, and a
SEEK_FOOD decision in a crowd reports a small heat increase for the caller
to apply.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import numpy as np

from townsfolk.core.config import ConfigurationError, SimulationConfig
from townsfolk.core.entity import (
    DEFAULT_ENERGY,
    DEFAULT_SAFETY,
    DEFAULT_SOCIAL,
    unit_value,
)
from townsfolk.core.fields import FieldLayer
from townsfolk.core.jitter import keyed_uniform, signed_jitter, time_bucket
from townsfolk.core.locations import DEFAULT_LOCATIONS, Location, validate_locations

if TYPE_CHECKING:
    from townsfolk.core.entity import Entity
    from townsfolk.core.fields import FieldGrid


class UtilityAction(str, Enum):
    """Closed action set. Declaration order is the tie-break order."""

    SEEK_FOOD = "SEEK_FOOD"
    SOCIALIZE = "SOCIALIZE"
    EXPLORE = "EXPLORE"
    AVOID_HEAT = "AVOID_HEAT"
    LOITER = "LOITER"
    SEEK_SAFETY = "SEEK_SAFETY"
    SEEK_FAITH = "SEEK_FAITH"


ACTION_ORDER: tuple[UtilityAction, ...] = tuple(UtilityAction)
FALLBACK_ACTION = UtilityAction.LOITER

TERM_NAMES: frozenset[str] = frozenset({
    # drives
    "hunger", "loneliness", "energy", "social", "stress", "insecurity",
    # fields
    "heat", "comfort", "food_scarcity", "local_trauma", "danger",
    # crowding
    "crowd", "crowded", "herd_alarm",
    # personality
    "curiosity", "incuriosity", "empathy", "boldness", "timidity",
    "order", "gloom", "weirdness",
    # psychology
    "despair", "trauma_count",
})

# AVOID_HEAT probes, in probe order.
COMPASS: tuple[tuple[int, int], ...] = (
    (1, 0), (-1, 0), (0, 1), (0, -1),
    (1, 1), (-1, 1), (1, -1), (-1, -1),
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Perception:
    """What an entity senses at its own position this tick."""

    heat: float
    food: float
    trauma: float
    nearby_count: int
    despair: float = 0.0


@dataclass
class UtilityScoreSet:
    """Seven scores in ``ACTION_ORDER``; ephemeral, one per entity per tick."""

    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.shape != (len(ACTION_ORDER),):
            raise ValueError(
                f"Expected {len(ACTION_ORDER)} scores, got shape {self.values.shape}"
            )

    def __getitem__(self, action: UtilityAction | str) -> float:
        return float(self.values[ACTION_ORDER.index(UtilityAction(action))])

    def best(self) -> UtilityAction:
        """Argmax; the first action in enum order wins ties.

        Falls back to LOITER when no score is finite.
        """
        finite = np.isfinite(self.values)
        if not finite.any():
            return FALLBACK_ACTION
        masked = np.where(finite, self.values, -np.inf)
        return ACTION_ORDER[int(np.argmax(masked))]

    def as_dict(self) -> dict[str, float]:
        return {a.value: float(v) for a, v in zip(ACTION_ORDER, self.values)}

    @classmethod
    def from_mapping(cls, scores: Mapping[UtilityAction | str, float]) -> UtilityScoreSet:
        """Build from a mapping; missing actions score -inf."""
        values = np.full(len(ACTION_ORDER), -np.inf)
        for key, value in scores.items():
            values[ACTION_ORDER.index(UtilityAction(key))] = float(value)
        return cls(values)


@dataclass
class DecisionResult:
    """Outcome of one decision, with the inputs needed to explain it."""

    action: UtilityAction
    scores: UtilityScoreSet
    target: tuple[float, float]
    heat_delta: float
    perception: Perception
    contributions: dict[str, dict[str, float]] = field(default_factory=dict)

    def explain(self, threshold: float = 0.01) -> dict[str, float]:
        """Term -> weighted contribution to the chosen action's score."""
        return {
            term: value
            for term, value in self.contributions.get(self.action.value, {}).items()
            if abs(value) > threshold
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "scores": self.scores.as_dict(),
            "target": [self.target[0], self.target[1]],
            "heat_delta": self.heat_delta,
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class UtilityDecisionEngine:
    """
    Scores actions, picks one, and turns it into a movement target.

    Raises ``ConfigurationError`` at construction if the weight tables name
    unknown actions or terms, or the location table lacks a faith or social
    landmark.
    """

    def __init__(
        self,
        config: SimulationConfig,
        locations: Sequence[Location] = DEFAULT_LOCATIONS,
    ) -> None:
        validate_locations(locations)
        self.config = config
        self.locations: tuple[Location, ...] = tuple(locations)

        self.utility_weights = self._checked_table(config.utility_weights, "utility_weights")
        self.personality_weights = self._checked_table(
            config.personality_weights, "personality_weights",
        )

        dc = config.decision_config
        self.crowd_radius: float = dc.get("crowd_radius", 80.0)
        self.crowd_normalizer: float = dc.get("crowd_normalizer", 5.0)
        self.crowded_threshold: int = dc.get("crowded_threshold", 3)
        self.herd_alarm: float = dc.get("herd_alarm", 0.3)
        self.trauma_count_normalizer: float = dc.get("trauma_count_normalizer", 5.0)
        self.danger_trauma_weight: float = dc.get("danger_trauma_weight", 0.5)

        self.jitter_config = config.jitter_config
        self.target_config = config.target_config

        self.world_width = config.world_width
        self.world_height = config.world_height
        self.margin = config.world_margin

        self.food_spots = tuple(loc for loc in self.locations if loc.provides_food)
        self.social_spots = tuple(loc for loc in self.locations if loc.is_social)
        self.faith_spot = next(loc for loc in self.locations if loc.provides_faith)

    @staticmethod
    def _checked_table(
        table: dict[str, dict[str, float]], name: str,
    ) -> dict[UtilityAction, dict[str, float]]:
        checked: dict[UtilityAction, dict[str, float]] = {a: {} for a in ACTION_ORDER}
        for action_name, weights in table.items():
            try:
                action = UtilityAction(action_name)
            except ValueError:
                raise ConfigurationError(f"{name}: unknown action {action_name!r}") from None
            unknown = set(weights) - TERM_NAMES
            if unknown:
                raise ConfigurationError(f"{name}[{action_name}]: unknown terms {sorted(unknown)}")
            checked[action] = {k: float(v) for k, v in weights.items()}
        return checked

    # ------------------------------------------------------------------
    # Perception
    # ------------------------------------------------------------------

    def perceive(
        self,
        entity: Entity,
        others: Sequence[Entity],
        fields: FieldGrid,
        despair: float | None = None,
    ) -> Perception:
        """Sample the frozen fields and count company at the entity's spot."""
        return Perception(
            heat=fields.sample(entity.x, entity.y, FieldLayer.HEAT),
            food=fields.sample(entity.x, entity.y, FieldLayer.FOOD),
            trauma=fields.sample(entity.x, entity.y, FieldLayer.TRAUMA),
            nearby_count=self.count_nearby(entity, others, self.crowd_radius),
            despair=unit_value(entity.despair if despair is None else despair, 0.0),
        )

    @staticmethod
    def count_nearby(entity: Entity, others: Sequence[Entity], radius: float) -> int:
        return sum(
            1 for o in others
            if o.id != entity.id and o.is_alive and entity.distance_to_entity(o) < radius
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def terms(self, entity: Entity, perception: Perception) -> dict[str, float]:
        """Named inputs to the weight tables, each defaulted and clamped."""
        energy = unit_value(entity.energy, DEFAULT_ENERGY)
        social = unit_value(entity.social, DEFAULT_SOCIAL)
        safety = unit_value(entity.safety, DEFAULT_SAFETY)
        stress = unit_value(entity.stress, 0.0)
        p = entity.personality.clamped()

        heat = unit_value(perception.heat, 0.0)
        food = unit_value(perception.food, 0.0)
        trauma = unit_value(perception.trauma, 0.0)
        n = max(0, int(perception.nearby_count))
        traumas = len(entity.trauma_memories or [])

        return {
            "hunger": 1.0 - energy,
            "loneliness": 1.0 - social,
            "energy": energy,
            "social": social,
            "stress": stress,
            "insecurity": 1.0 - safety,
            "heat": heat,
            "comfort": 1.0 - heat,
            "food_scarcity": 1.0 - food,
            "local_trauma": trauma,
            "danger": min(1.0, heat + trauma * self.danger_trauma_weight),
            "crowd": n / self.crowd_normalizer,
            "crowded": 1.0 if n > self.crowded_threshold else 0.0,
            "herd_alarm": self.herd_alarm if n > 0 else 0.0,
            "curiosity": p.curiosity,
            "incuriosity": 1.0 - p.curiosity,
            "empathy": p.empathy,
            "boldness": p.boldness,
            "timidity": 1.0 - p.boldness,
            "order": p.order,
            "gloom": 1.0 - p.mood,
            "weirdness": p.weirdness,
            "despair": unit_value(perception.despair, 0.0),
            "trauma_count": min(1.0, traumas / self.trauma_count_normalizer),
        }

    def contributions(self, terms: Mapping[str, float]) -> dict[str, dict[str, float]]:
        """Per action: term -> weighted contribution (base plus personality pass)."""
        out: dict[str, dict[str, float]] = {}
        for action in ACTION_ORDER:
            combined: dict[str, float] = {}
            for table in (self.utility_weights, self.personality_weights):
                for term, weight in table[action].items():
                    combined[term] = combined.get(term, 0.0) + weight * terms[term]
            out[action.value] = combined
        return out

    def jitter(self, entity: Entity, action: UtilityAction, world_time: float) -> float:
        """
        Deterministic per-entity perturbation for *action*.

        A static bias keyed on ``(id, action, "static")`` plus a slow sine
        whose phase is keyed on ``(id, action, "phase")`` and whose argument
        advances once per time bucket. Weird entities wobble more, orderly
        ones less.
        """
        jc = self.jitter_config
        if not jc.get("enabled", True):
            return 0.0
        p = entity.personality.clamped()
        seed = int(jc.get("seed", 0) or 0)
        amplitude = max(
            jc.get("min_amplitude", 0.015),
            jc.get("base_amplitude", 0.02)
            + p.weirdness * jc.get("weirdness_gain", 0.08)
            - p.order * jc.get("order_damping", 0.04),
        )
        wave_amplitude = amplitude * jc.get("wave_fraction", 0.6)
        bucket = time_bucket(world_time, jc.get("bucket_minutes", 5.0))

        static_bias = signed_jitter(entity.id, action.value, "static", amplitude, 0, seed)
        phase = keyed_uniform(entity.id, action.value, "phase", 0, seed) * 2.0 * math.pi
        wave = math.sin(bucket * jc.get("wave_frequency", 0.8) + phase) * wave_amplitude
        return static_bias + wave

    def score(
        self,
        entity: Entity,
        perception: Perception,
        world_time: float,
        terms: Mapping[str, float] | None = None,
    ) -> UtilityScoreSet:
        """Base table + personality pass + jitter for all seven actions."""
        terms = terms if terms is not None else self.terms(entity, perception)
        values = np.zeros(len(ACTION_ORDER), dtype=np.float64)
        for i, action in enumerate(ACTION_ORDER):
            base = sum(w * terms[t] for t, w in self.utility_weights[action].items())
            bonus = sum(w * terms[t] for t, w in self.personality_weights[action].items())
            values[i] = base + bonus + self.jitter(entity, action, world_time)
        return UtilityScoreSet(np.nan_to_num(values, nan=-np.inf))

    @staticmethod
    def select(scores: UtilityScoreSet) -> UtilityAction:
        return scores.best()

    def decide(
        self,
        entity: Entity,
        others: Sequence[Entity],
        fields: FieldGrid,
        world_time: float,
        rng: np.random.Generator,
        despair: float | None = None,
    ) -> DecisionResult:
        """Perceive, score, select, and generate a target for one entity."""
        perception = self.perceive(entity, others, fields, despair)
        terms = self.terms(entity, perception)
        scores = self.score(entity, perception, world_time, terms)
        action = self.select(scores)
        target = self.generate_target(action, entity, others, fields, rng)
        return DecisionResult(
            action=action,
            scores=scores,
            target=target,
            heat_delta=self.food_competition_heat(entity, others, action),
            perception=perception,
            contributions=self.contributions(terms),
        )

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def _clamp_to_world(self, x: float, y: float) -> tuple[float, float]:
        m = self.margin
        return (
            float(min(self.world_width - m, max(m, x))),
            float(min(self.world_height - m, max(m, y))),
        )

    @staticmethod
    def _scatter(rng: np.random.Generator, spread: float) -> float:
        return (float(rng.random()) - 0.5) * spread

    def generate_target(
        self,
        action: UtilityAction,
        entity: Entity,
        others: Sequence[Entity],
        fields: FieldGrid,
        rng: np.random.Generator,
    ) -> tuple[float, float]:
        """Concrete world position for *action*; each action has its own rule."""
        others = [o for o in others if o.id != entity.id and o.is_alive]
        if action is UtilityAction.SEEK_FOOD:
            return self._food_target(entity, others, fields, rng)
        if action is UtilityAction.SOCIALIZE:
            return self._social_target(entity, others, rng)
        if action is UtilityAction.EXPLORE:
            return self._explore_target(entity, rng)
        if action is UtilityAction.AVOID_HEAT:
            return self._cooler_target(entity, fields)
        if action is UtilityAction.SEEK_SAFETY:
            return self._safety_target(fields, rng)
        if action is UtilityAction.SEEK_FAITH:
            spread = self.target_config.get("faith_scatter", 50.0)
            return (
                self.faith_spot.x + self._scatter(rng, spread),
                self.faith_spot.y + self._scatter(rng, spread),
            )
        spread = self.target_config.get("loiter_scatter", 80.0)
        return self._clamp_to_world(
            entity.x + self._scatter(rng, spread), entity.y + self._scatter(rng, spread),
        )

    def rank_food_spots(
        self,
        entity: Entity,
        others: Sequence[Entity],
        fields: FieldGrid,
    ) -> list[tuple[Location, float]]:
        """Food candidates with their scores, in table order."""
        tc = self.target_config
        p = entity.personality.clamped()
        bonuses: dict[str, dict[str, float]] = tc.get("food_spot_bonuses", {})
        trait_values = p.to_dict()
        seed = int(self.jitter_config.get("seed", 0) or 0)
        noise_amplitude = tc.get("food_noise_amplitude", 0.1) * (
            tc.get("food_noise_weirdness_offset", 0.4) + p.weirdness
        )

        ranked: list[tuple[Location, float]] = []
        for loc in self.food_spots or self.locations:
            food = fields.sample(loc.x, loc.y, FieldLayer.FOOD)
            heat = fields.sample(loc.x, loc.y, FieldLayer.HEAT)
            distance = min(1.0, entity.distance_to(loc.x, loc.y) / tc.get(
                "food_distance_normalizer", 500.0,
            ))
            crowd = sum(1 for o in others if o.distance_to(loc.x, loc.y) <= loc.radius)
            crowd_pressure = min(1.0, crowd / tc.get("food_crowd_normalizer", 6.0))
            bonus = sum(
                w * trait_values.get(trait, 0.0)
                for trait, w in bonuses.get(loc.type, {}).items()
            )
            noise = signed_jitter(entity.id, loc.name, "food", noise_amplitude, 0, seed)
            score = (
                food * 0.6
                + (1.0 - distance) * 0.2
                + (1.0 - heat) * 0.1
                + (1.0 - crowd_pressure) * 0.1
                + bonus
                + noise
            )
            ranked.append((loc, score))
        return ranked

    def _food_target(
        self,
        entity: Entity,
        others: Sequence[Entity],
        fields: FieldGrid,
        rng: np.random.Generator,
    ) -> tuple[float, float]:
        ranked = self.rank_food_spots(entity, others, fields)
        best, best_score = ranked[0]
        for loc, score in ranked[1:]:
            if score > best_score:
                best, best_score = loc, score
        tc = self.target_config
        spread = max(
            tc.get("food_scatter_min", 30.0), min(tc.get("food_scatter_max", 80.0), best.radius),
        )
        return (best.x + self._scatter(rng, spread), best.y + self._scatter(rng, spread))

    def _social_target(
        self,
        entity: Entity,
        others: Sequence[Entity],
        rng: np.random.Generator,
    ) -> tuple[float, float]:
        if not others:
            spot = self.social_spots[int(rng.integers(len(self.social_spots)))]
            return (spot.x, spot.y)
        nearest = others[0]
        best = math.inf
        for other in others:
            d = entity.distance_to_entity(other)
            if d < best:
                best, nearest = d, other
        spread = self.target_config.get("socialize_scatter", 40.0)
        return (nearest.x + self._scatter(rng, spread), nearest.y + self._scatter(rng, spread))

    def _explore_target(self, entity: Entity, rng: np.random.Generator) -> tuple[float, float]:
        tc = self.target_config
        curiosity = entity.personality.clamped().curiosity
        if (
            curiosity > tc.get("explore_edge_curiosity", 0.7)
            and rng.random() < tc.get("explore_edge_probability", 0.5)
        ):
            band = tc.get("explore_edge_band", 100.0)
            x = rng.random() * band if rng.random() < 0.5 else self.world_width - rng.random() * band
            y = rng.random() * band if rng.random() < 0.5 else self.world_height - rng.random() * band
            return (float(x), float(y))
        return (float(rng.random() * self.world_width), float(rng.random() * self.world_height))

    def _cooler_target(self, entity: Entity, fields: FieldGrid) -> tuple[float, float]:
        reach = self.target_config.get("avoid_heat_distance", 120.0)
        lowest = fields.sample(entity.x, entity.y, FieldLayer.HEAT)
        safest = COMPASS[0]
        for dx, dy in COMPASS:
            px, py = self._clamp_to_world(entity.x + dx * reach, entity.y + dy * reach)
            heat = fields.sample(px, py, FieldLayer.HEAT)
            if heat < lowest:
                lowest, safest = heat, (dx, dy)
        return self._clamp_to_world(entity.x + safest[0] * reach, entity.y + safest[1] * reach)

    def _safety_target(
        self, fields: FieldGrid, rng: np.random.Generator,
    ) -> tuple[float, float]:
        safest = self.locations[0]
        lowest = math.inf
        for loc in self.locations:
            heat = fields.sample(loc.x, loc.y, FieldLayer.HEAT)
            if heat < lowest:
                lowest, safest = heat, loc
        spread = self.target_config.get("safety_scatter", 60.0)
        return (safest.x + self._scatter(rng, spread), safest.y + self._scatter(rng, spread))

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def food_competition_heat(
        self,
        entity: Entity,
        others: Sequence[Entity],
        action: UtilityAction,
    ) -> float:
        """Heat raised by rivals at the same food source; 0 unless seeking food."""
        if action is not UtilityAction.SEEK_FOOD:
            return 0.0
        tc = self.target_config
        rivals = self.count_nearby(entity, others, tc.get("competition_radius", 50.0))
        if rivals >= 2:
            return tc.get("competition_heat_multiple", 0.03)
        if rivals >= 1:
            return tc.get("competition_heat_single", 0.01)
        return 0.0
