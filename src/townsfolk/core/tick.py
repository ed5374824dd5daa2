"""
Per-tick orchestration.

One tick is a pure function of ``(entities, fields, world_time, rng)``:

1. Freeze a copy of the field grid; every entity reads only that copy.
2. For each live entity, in id order: trauma processing, despair and
   aggression, breakdown scarring, dark-action checks, utility decision,
   drive update. Side effects are collected as ``FieldDelta`` records and
   ``SimEvent`` records, never written in place.
3. Apply the collected deltas to a second copy and run one
   diffuse -> evaporate -> regrow pass per layer.

Neither the input entities nor the input grid are touched. The caller
commits the returned ``TickResult`` as a whole or discards it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Sequence

import numpy as np

from townsfolk.core.config import SimulationConfig
from townsfolk.core.decision import UtilityAction, UtilityDecisionEngine
from townsfolk.core.drives import DriveSystem
from townsfolk.core.entity import Entity, Personality, TraumaMemory
from townsfolk.core.fields import FieldDelta, FieldGrid, FieldLayer
from townsfolk.core.locations import (
    DEFAULT_LOCATIONS,
    Location,
    find_location_at_point,
    regrowth_anchors,
)
from townsfolk.core.psychology import BreakdownDeltas, PsychologicalModel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Output records
# ---------------------------------------------------------------------------

class EventKind(str, Enum):
    TRAUMA_INFLICTED = "trauma_inflicted"
    SUICIDE_ATTEMPT = "suicide_attempt"
    MURDER_ATTEMPT = "murder_attempt"


class TraumaType(str, Enum):
    WAS_ATTACKED = "was_attacked"
    ATTACKED_SOMEONE = "attacked_someone"
    WITNESSED_MURDER = "witnessed_murder"
    WITNESSED_SUICIDE = "witnessed_suicide"


@dataclass(frozen=True)
class SimEvent:
    """A discrete event emitted during a tick."""

    kind: EventKind
    entity_id: str
    severity: float
    timestamp: float
    x: float
    y: float
    victim_id: str | None = None
    succeeded: bool | None = None
    trauma_type: str | None = None
    location: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "entity_id": self.entity_id,
            "victim_id": self.victim_id,
            "severity": round(float(self.severity), 6),
            "timestamp": self.timestamp,
            "succeeded": self.succeeded,
            "trauma_type": self.trauma_type,
            "location": self.location,
            "x": round(float(self.x), 6),
            "y": round(float(self.y), 6),
        }


@dataclass
class EntityUpdate:
    """Everything a tick changed about one entity."""

    entity_id: str
    action: str | None
    target: tuple[float, float] | None
    despair: float
    aggression: float
    mental_breakpoint: float
    hope: float
    personality: Personality
    energy: float
    social: float
    safety: float
    stress: float
    personality_deltas: BreakdownDeltas | None = None
    new_trauma_memories: list[TraumaMemory] = field(default_factory=list)
    is_alive: bool = True
    cause_of_death: str | None = None
    killed_by: str | None = None
    has_killed: bool = False
    has_attempted_suicide: bool = False
    scores: dict[str, float] = field(default_factory=dict)

    def apply_to(self, entity: Entity) -> Entity:
        """New entity with this update merged in; position is left as is."""
        return replace(
            entity,
            personality=self.personality,
            energy=self.energy,
            social=self.social,
            safety=self.safety,
            stress=self.stress,
            despair=self.despair,
            aggression=self.aggression,
            mental_breakpoint=self.mental_breakpoint,
            trauma_memories=[*entity.trauma_memories, *self.new_trauma_memories],
            is_alive=self.is_alive,
            cause_of_death=self.cause_of_death,
            killed_by=self.killed_by,
            current_action=self.action,
            target=self.target,
            has_killed=self.has_killed,
            has_attempted_suicide=self.has_attempted_suicide,
        )

    def to_dict(self) -> dict[str, Any]:
        def r(v: float) -> float:
            return round(float(v), 6)

        return {
            "entity_id": self.entity_id,
            "action": self.action,
            "target": [r(self.target[0]), r(self.target[1])] if self.target else None,
            "despair": r(self.despair),
            "aggression": r(self.aggression),
            "mental_breakpoint": r(self.mental_breakpoint),
            "hope": r(self.hope),
            "personality": {k: r(v) for k, v in self.personality.to_dict().items()},
            "personality_deltas": (
                self.personality_deltas.to_dict() if self.personality_deltas else None
            ),
            "energy": r(self.energy),
            "social": r(self.social),
            "safety": r(self.safety),
            "stress": r(self.stress),
            "new_trauma_memories": [m.to_dict() for m in self.new_trauma_memories],
            "is_alive": self.is_alive,
            "cause_of_death": self.cause_of_death,
            "killed_by": self.killed_by,
            "has_killed": self.has_killed,
            "has_attempted_suicide": self.has_attempted_suicide,
            "scores": {k: r(v) for k, v in self.scores.items()},
        }


@dataclass
class TickResult:
    """The batch a tick hands back to its caller."""

    world_time: float
    entity_updates: list[EntityUpdate]
    field_deltas: list[FieldDelta]
    events: list[SimEvent]
    fields: FieldGrid

    def update_for(self, entity_id: str) -> EntityUpdate | None:
        for update in self.entity_updates:
            if update.entity_id == entity_id:
                return update
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "world_time": self.world_time,
            "entity_updates": [u.to_dict() for u in self.entity_updates],
            "field_deltas": [d.to_dict() for d in self.field_deltas],
            "events": [e.to_dict() for e in self.events],
            "fields": self.fields.to_dict(),
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TickOrchestrator:
    """Runs one tick over a snapshot of entities and fields."""

    def __init__(
        self,
        config: SimulationConfig,
        locations: Sequence[Location] = DEFAULT_LOCATIONS,
    ) -> None:
        self.config = config
        self.locations = tuple(locations)
        self.psychology = PsychologicalModel(config.psychology_config)
        self.decision = UtilityDecisionEngine(config, self.locations)
        self.drives = DriveSystem(config.drive_config)
        self.anchors = regrowth_anchors(self.locations)

        dac = config.dark_action_config
        self.victim_radius: float = dac.get("victim_radius", 60.0)
        self.witness_radius: float = dac.get("witness_radius", 120.0)
        self.suicide_success_rate: float = dac.get("suicide_success_rate", 0.6)
        self.murder_success_rate: float = dac.get("murder_success_rate", 0.7)
        self.victim_trauma_severity: float = dac.get("victim_trauma_severity", 0.9)
        self.attacker_trauma_severity: float = dac.get("attacker_trauma_severity", 0.6)
        self.witness_murder_severity: float = dac.get("witness_murder_severity", 0.8)
        self.witness_suicide_severity: float = dac.get("witness_suicide_severity", 0.7)
        self.murder_trauma_delta: float = dac.get("murder_trauma_delta", 0.5)
        self.murder_heat_delta: float = dac.get("murder_heat_delta", 0.4)
        self.suicide_trauma_delta: float = dac.get("suicide_trauma_delta", 0.4)
        self.event_field_radius: float = dac.get("event_field_radius", 90.0)

        self.competition_heat_radius: float = config.target_config.get(
            "competition_heat_radius", 40.0,
        )
        self.danger_trauma_weight: float = config.decision_config.get(
            "danger_trauma_weight", 0.5,
        )

    def run_tick(
        self,
        entities: Sequence[Entity],
        fields: FieldGrid,
        world_time: float,
        rng: np.random.Generator | None = None,
    ) -> TickResult:
        """Compute one tick. Inputs are read, never written."""
        if rng is None:
            rng = np.random.default_rng(self.config.random_seed)
        frozen = fields.snapshot()

        live = sorted((e for e in entities if e.is_alive), key=lambda e: e.id)
        updates: dict[str, EntityUpdate] = {}
        memories: dict[str, list[TraumaMemory]] = defaultdict(list)
        deaths: dict[str, tuple[str, str | None]] = {}
        deltas: list[FieldDelta] = []
        events: list[SimEvent] = []

        for entity in live:
            if entity.id in deaths:
                continue

            # --- Psychology ---
            breakpoint_ = self.psychology.process_trauma(entity, world_time)
            working = replace(entity, mental_breakpoint=breakpoint_)
            despair = self.psychology.despair(working)
            aggression = self.psychology.aggression(working)
            working = replace(working, despair=despair, aggression=aggression)

            scar = self.psychology.check_mental_breakdown(
                working, previous_breakpoint=entity.mental_breakpoint,
            )
            if scar is not None:
                working = replace(working, personality=scar.apply_to(working.personality))
                logger.info(
                    "Breakdown: %s (breakpoint %.3f) at t=%.1f",
                    entity.id, breakpoint_, world_time,
                )

            update = EntityUpdate(
                entity_id=entity.id,
                action=None,
                target=None,
                despair=despair,
                aggression=aggression,
                mental_breakpoint=breakpoint_,
                hope=self.psychology.hope(working),
                personality=working.personality,
                energy=working.energy,
                social=working.social,
                safety=working.safety,
                stress=working.stress,
                personality_deltas=scar,
                has_killed=entity.has_killed,
                has_attempted_suicide=entity.has_attempted_suicide,
            )
            updates[entity.id] = update

            # --- Dark actions ---
            bystanders = [o for o in live if o.id != entity.id and o.id not in deaths]

            if self.psychology.should_attempt_suicide(despair, rng):
                succeeded = bool(rng.random() < self.suicide_success_rate)
                update.has_attempted_suicide = True
                self._record_suicide(
                    entity, despair, succeeded, bystanders, world_time,
                    events, deltas, memories,
                )
                if succeeded:
                    deaths[entity.id] = ("suicide", None)
                    continue

            victim = self.nearest_victim(entity, bystanders)
            if self.psychology.should_attempt_murder(aggression, victim is not None, rng):
                succeeded = bool(rng.random() < self.murder_success_rate)
                self._record_murder(
                    entity, victim, aggression, succeeded,
                    [o for o in bystanders if o.id != victim.id], world_time,
                    events, deltas, memories,
                )
                if succeeded:
                    update.has_killed = True
                    deaths[victim.id] = ("murder", entity.id)
                    bystanders = [o for o in bystanders if o.id != victim.id]

            # --- Decision ---
            result = self.decision.decide(
                working, bystanders, frozen, world_time, rng, despair=despair,
            )
            update.action = result.action.value
            update.target = result.target
            update.scores = result.scores.as_dict()
            if result.heat_delta > 0:
                deltas.append(FieldDelta(
                    FieldLayer.HEAT, entity.x, entity.y,
                    result.heat_delta, self.competition_heat_radius,
                ))

            # --- Drives ---
            perception = result.perception
            danger = min(1.0, perception.heat + perception.trauma * self.danger_trauma_weight)
            drives = self.drives.update(
                working,
                seeking_food=result.action is UtilityAction.SEEK_FOOD,
                local_food=perception.food,
                danger=danger,
                nearby_count=perception.nearby_count,
                despair=despair,
            )
            update.energy = drives.energy
            update.social = drives.social
            update.safety = drives.safety
            update.stress = drives.stress
            if drives.ate:
                deltas.append(FieldDelta(
                    FieldLayer.FOOD, entity.x, entity.y,
                    -self.drives.eat_food_consumed, self.drives.eat_radius,
                ))

        # Victims processed earlier in the order still need their death recorded.
        for entity in live:
            update = updates.get(entity.id)
            if entity.id in deaths:
                cause, killer = deaths[entity.id]
                if update is None:
                    update = self._frozen_update(entity)
                    updates[entity.id] = update
                update.is_alive = False
                update.cause_of_death = cause
                update.killed_by = killer
                update.action = None
                update.target = None
            if update is not None:
                update.new_trauma_memories = list(memories.get(entity.id, ()))

        post = frozen.snapshot()
        post.apply_deltas(deltas)
        post.step(self.anchors)

        logger.debug(
            "Tick t=%.1f: %d entities, %d events, %d field deltas, %d deaths",
            world_time, len(updates), len(events), len(deltas), len(deaths),
        )
        return TickResult(
            world_time=world_time,
            entity_updates=[updates[k] for k in sorted(updates)],
            field_deltas=deltas,
            events=events,
            fields=post,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def nearest_victim(self, entity: Entity, candidates: Sequence[Entity]) -> Entity | None:
        """Closest candidate within ``victim_radius``; ties go to the lower id."""
        best: Entity | None = None
        best_key: tuple[float, str] | None = None
        for other in candidates:
            if other.id == entity.id or not other.is_alive:
                continue
            d = entity.distance_to_entity(other)
            if d > self.victim_radius:
                continue
            key = (d, other.id)
            if best_key is None or key < best_key:
                best, best_key = other, key
        return best

    def landmark_at(self, x: float, y: float) -> str | None:
        """Name of the landmark containing (x, y), for event records."""
        location = find_location_at_point(self.locations, x, y)
        return location.name if location is not None else None

    def witnesses(
        self, x: float, y: float, candidates: Sequence[Entity],
    ) -> list[Entity]:
        return [o for o in candidates if o.distance_to(x, y) <= self.witness_radius]

    def _frozen_update(self, entity: Entity) -> EntityUpdate:
        """Update for an entity that died before its own turn came."""
        return EntityUpdate(
            entity_id=entity.id,
            action=None,
            target=None,
            despair=entity.despair,
            aggression=entity.aggression,
            mental_breakpoint=entity.mental_breakpoint,
            hope=self.psychology.hope(entity),
            personality=entity.personality,
            energy=entity.energy,
            social=entity.social,
            safety=entity.safety,
            stress=entity.stress,
            has_killed=entity.has_killed,
            has_attempted_suicide=entity.has_attempted_suicide,
        )

    def _inflict(
        self,
        target: Entity,
        trauma_type: TraumaType,
        severity: float,
        world_time: float,
        events: list[SimEvent],
        memories: dict[str, list[TraumaMemory]],
    ) -> None:
        memories[target.id].append(TraumaMemory(trauma_type.value, world_time, severity))
        events.append(SimEvent(
            kind=EventKind.TRAUMA_INFLICTED,
            entity_id=target.id,
            severity=severity,
            timestamp=world_time,
            x=target.x,
            y=target.y,
            trauma_type=trauma_type.value,
            location=self.landmark_at(target.x, target.y),
        ))

    def _record_suicide(
        self,
        entity: Entity,
        despair: float,
        succeeded: bool,
        bystanders: Sequence[Entity],
        world_time: float,
        events: list[SimEvent],
        deltas: list[FieldDelta],
        memories: dict[str, list[TraumaMemory]],
    ) -> None:
        events.append(SimEvent(
            kind=EventKind.SUICIDE_ATTEMPT,
            entity_id=entity.id,
            severity=despair,
            timestamp=world_time,
            x=entity.x,
            y=entity.y,
            succeeded=succeeded,
            location=self.landmark_at(entity.x, entity.y),
        ))
        logger.info(
            "Suicide attempt by %s at t=%.1f (despair %.3f, %s)",
            entity.id, world_time, despair, "fatal" if succeeded else "survived",
        )
        deltas.append(FieldDelta(
            FieldLayer.TRAUMA, entity.x, entity.y,
            self.suicide_trauma_delta, self.event_field_radius,
        ))
        for witness in self.witnesses(entity.x, entity.y, bystanders):
            self._inflict(
                witness, TraumaType.WITNESSED_SUICIDE, self.witness_suicide_severity,
                world_time, events, memories,
            )

    def _record_murder(
        self,
        attacker: Entity,
        victim: Entity,
        aggression: float,
        succeeded: bool,
        bystanders: Sequence[Entity],
        world_time: float,
        events: list[SimEvent],
        deltas: list[FieldDelta],
        memories: dict[str, list[TraumaMemory]],
    ) -> None:
        events.append(SimEvent(
            kind=EventKind.MURDER_ATTEMPT,
            entity_id=attacker.id,
            victim_id=victim.id,
            severity=aggression,
            timestamp=world_time,
            x=victim.x,
            y=victim.y,
            succeeded=succeeded,
            location=self.landmark_at(victim.x, victim.y),
        ))
        logger.info(
            "Murder attempt by %s on %s at t=%.1f (aggression %.3f, %s)",
            attacker.id, victim.id, world_time, aggression,
            "fatal" if succeeded else "survived",
        )
        deltas.append(FieldDelta(
            FieldLayer.TRAUMA, victim.x, victim.y,
            self.murder_trauma_delta, self.event_field_radius,
        ))
        deltas.append(FieldDelta(
            FieldLayer.HEAT, victim.x, victim.y,
            self.murder_heat_delta, self.event_field_radius,
        ))
        self._inflict(
            victim, TraumaType.WAS_ATTACKED, self.victim_trauma_severity,
            world_time, events, memories,
        )
        self._inflict(
            attacker, TraumaType.ATTACKED_SOMEONE, self.attacker_trauma_severity,
            world_time, events, memories,
        )
        for witness in self.witnesses(victim.x, victim.y, bystanders):
            self._inflict(
                witness, TraumaType.WITNESSED_MURDER, self.witness_murder_severity,
                world_time, events, memories,
            )
