"""
Core entity dataclasses for the Townsfolk simulation.

An entity is one simulated townsperson: a position, six personality
traits, three survival drives, stress, and a psychological state built
from trauma memories. Missing values fall back to neutral defaults so the
models downstream never see ``None`` or NaN.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any

logger = logging.getLogger(__name__)

TRAIT_NAMES: tuple[str, ...] = (
    "curiosity", "empathy", "boldness", "order", "mood", "weirdness",
)

# Drive defaults when a snapshot omits them.
DEFAULT_ENERGY = 0.7
DEFAULT_SOCIAL = 0.5
DEFAULT_SAFETY = 0.6
NEUTRAL_TRAIT = 0.5


def unit_value(value: Any, default: float, warn: bool = False) -> float:
    """
    Coerce *value* into [0, 1]; ``None`` and NaN become *default*.

    Clamps are logged at DEBUG on the hot path. Pass ``warn=True`` where
    records enter the system so a bad value is reported once, at WARNING.
    """
    if value is None:
        return default
    try:
        v = float(value)
    except (TypeError, ValueError):
        logger.warning("Non-numeric value %r replaced by default %.2f", value, default)
        return default
    if math.isnan(v):
        return default
    if v < 0.0 or v > 1.0:
        logger.log(
            logging.WARNING if warn else logging.DEBUG,
            "Value %.4f outside [0, 1]; clamping", v,
        )
        return min(1.0, max(0.0, v))
    return v


@dataclass(frozen=True)
class Personality:
    """Six personality traits, each in [0, 1]."""

    curiosity: float = NEUTRAL_TRAIT
    empathy: float = NEUTRAL_TRAIT
    boldness: float = NEUTRAL_TRAIT
    order: float = NEUTRAL_TRAIT
    mood: float = NEUTRAL_TRAIT
    weirdness: float = NEUTRAL_TRAIT

    def clamped(self) -> Personality:
        """Return a copy with every trait coerced into [0, 1]."""
        return Personality(**{
            name: unit_value(getattr(self, name), NEUTRAL_TRAIT)
            for name in TRAIT_NAMES
        })

    def to_dict(self) -> dict[str, float]:
        return {name: float(getattr(self, name)) for name in TRAIT_NAMES}

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> Personality:
        d = d or {}
        return cls(**{
            name: unit_value(d.get(name), NEUTRAL_TRAIT, warn=True)
            for name in TRAIT_NAMES
        })


@dataclass(frozen=True)
class TraumaMemory:
    """A single traumatic event remembered by an entity."""

    type: str
    timestamp: float
    severity: float

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "timestamp": self.timestamp, "severity": self.severity}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TraumaMemory:
        return cls(
            type=str(d.get("type", "unknown")),
            timestamp=float(d.get("timestamp", 0.0)),
            severity=unit_value(d.get("severity"), 0.0, warn=True),
        )


@dataclass
class Entity:
    """A simulated townsperson."""

    # === Identity ===
    id: str
    name: str

    # === Position (world units) ===
    x: float = 0.0
    y: float = 0.0

    # === Personality ===
    personality: Personality = field(default_factory=Personality)

    # === Survival drives (1 = satisfied) ===
    energy: float = DEFAULT_ENERGY
    social: float = DEFAULT_SOCIAL
    safety: float = DEFAULT_SAFETY
    stress: float = 0.0

    # === Psychological state ===
    despair: float = 0.0
    aggression: float = 0.0
    mental_breakpoint: float = 0.0
    trauma_memories: list[TraumaMemory] = field(default_factory=list)

    # === Liveness ===
    is_alive: bool = True
    cause_of_death: str | None = None
    killed_by: str | None = None

    # === Behaviour ===
    current_action: str | None = None
    target: tuple[float, float] | None = None

    # === Dark action tracking ===
    has_killed: bool = False
    has_attempted_suicide: bool = False

    def distance_to(self, x: float, y: float) -> float:
        return math.hypot(self.x - x, self.y - y)

    def distance_to_entity(self, other: Entity) -> float:
        return self.distance_to(other.x, other.y)

    def copy(self) -> Entity:
        """Shallow copy with its own trauma list."""
        return replace(self, trauma_memories=list(self.trauma_memories))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "personality": self.personality.to_dict(),
            "energy": self.energy,
            "social": self.social,
            "safety": self.safety,
            "stress": self.stress,
            "despair": self.despair,
            "aggression": self.aggression,
            "mental_breakpoint": self.mental_breakpoint,
            "trauma_memories": [t.to_dict() for t in self.trauma_memories],
            "is_alive": self.is_alive,
            "cause_of_death": self.cause_of_death,
            "killed_by": self.killed_by,
            "current_action": self.current_action,
            "target": list(self.target) if self.target is not None else None,
            "has_killed": self.has_killed,
            "has_attempted_suicide": self.has_attempted_suicide,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Entity:
        """Build an entity from a persisted record, defaulting missing fields."""
        target = d.get("target")
        return cls(
            id=str(d["id"]),
            name=str(d.get("name", d["id"])),
            x=float(d.get("x", 0.0)),
            y=float(d.get("y", 0.0)),
            personality=Personality.from_dict(d.get("personality")),
            energy=unit_value(d.get("energy"), DEFAULT_ENERGY, warn=True),
            social=unit_value(d.get("social"), DEFAULT_SOCIAL, warn=True),
            safety=unit_value(d.get("safety"), DEFAULT_SAFETY, warn=True),
            stress=unit_value(d.get("stress"), 0.0, warn=True),
            despair=unit_value(d.get("despair"), 0.0, warn=True),
            aggression=unit_value(d.get("aggression"), 0.0, warn=True),
            mental_breakpoint=unit_value(d.get("mental_breakpoint"), 0.0, warn=True),
            trauma_memories=[
                TraumaMemory.from_dict(t) for t in d.get("trauma_memories") or []
            ],
            is_alive=bool(d.get("is_alive", True)),
            cause_of_death=d.get("cause_of_death"),
            killed_by=d.get("killed_by"),
            current_action=d.get("current_action"),
            target=(float(target[0]), float(target[1])) if target else None,
            has_killed=bool(d.get("has_killed", False)),
            has_attempted_suicide=bool(d.get("has_attempted_suicide", False)),
        )

    def __repr__(self) -> str:
        status = "alive" if self.is_alive else "dead"
        return (
            f"Entity(id={self.id!r}, name={self.name!r}, "
            f"pos=({self.x:.0f}, {self.y:.0f}), action={self.current_action}, {status})"
        )
