"""
Landmark locations for the town.

Landmarks are static reference data: the decision engine reads them to pick
targets, the field grid uses them to seed and regrow food. Each landmark
carries a table of event-category multipliers consumed by event generators
outside the core.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from townsfolk.core.config import ConfigurationError


@dataclass(frozen=True)
class Location:
    """A landmark with an area of influence.

    Attributes:
        name: Display name, unique within a table.
        type: Type tag, e.g. ``"cafe"`` or ``"church"``.
        x, y: Centre in world units.
        radius: Area of influence in world units.
        event_modifiers: Category label -> probability multiplier.
        description: Free text for narrative collaborators.
        provides_food: Candidate for SEEK_FOOD targets.
        provides_faith: The SEEK_FAITH destination.
        is_social: Fallback meeting place for SOCIALIZE.
        food_rings: ``(radius, value)`` pairs used to seed baseline food.
        regrowth_radius: Food regrows within this distance; ``None`` = never.
    """

    name: str
    type: str
    x: float
    y: float
    radius: float
    event_modifiers: dict[str, float] = field(default_factory=dict)
    description: str = ""
    provides_food: bool = False
    provides_faith: bool = False
    is_social: bool = False
    food_rings: tuple[tuple[float, float], ...] = ()
    regrowth_radius: float | None = None

    def distance_to(self, x: float, y: float) -> float:
        return math.hypot(self.x - x, self.y - y)

    def contains(self, x: float, y: float) -> bool:
        return self.distance_to(x, y) <= self.radius


DEFAULT_LOCATIONS: tuple[Location, ...] = (
    Location(
        name="Café",
        type="cafe",
        x=640.0,
        y=305.0,
        radius=60.0,
        event_modifiers={
            "social_gathering": 2.0,
            "gossip": 3.0,
            "celebration": 1.5,
            "accident": 1.2,
            "romance": 2.5,
            "argument": 1.8,
        },
        description="A cozy café where people meet, chat, and socialize. Hub of gossip.",
        provides_food=True,
        is_social=True,
        food_rings=((60.0, 0.8), (100.0, 0.5)),
        regrowth_radius=100.0,
    ),
    Location(
        name="Park",
        type="park",
        x=250.0,
        y=180.0,
        radius=90.0,
        event_modifiers={
            "festival": 2.5,
            "gathering": 2.0,
            "crime": 0.8,
            "nature_event": 2.0,
            "exercise": 1.5,
            "meditation": 1.5,
        },
        description="An open green space for recreation, festivals, and outdoor activities.",
        provides_food=True,
        is_social=True,
        food_rings=((90.0, 0.4),),
        regrowth_radius=90.0,
    ),
    Location(
        name="School",
        type="school",
        x=730.0,
        y=115.0,
        radius=80.0,
        event_modifiers={
            "education": 3.0,
            "gathering": 1.5,
            "protest": 1.8,
            "achievement": 2.0,
            "bullying": 1.5,
            "innovation": 1.8,
        },
        description="A school where learning, gatherings, and youth culture happen.",
        provides_food=True,
        food_rings=((80.0, 0.35),),
    ),
    Location(
        name="Church",
        type="church",
        x=150.0,
        y=380.0,
        radius=70.0,
        event_modifiers={
            # spiritual
            "cult": 3.5,
            "religious": 3.0,
            "miracle": 2.5,
            "prophecy": 2.8,
            "devotion": 3.2,
            # dark
            "scandal": 2.0,
            "conspiracy": 2.2,
            "fanaticism": 2.7,
            "heresy": 2.3,
            "inquisition": 2.0,
            # social
            "gathering": 2.0,
            "confession": 2.5,
            "charity": 2.2,
            "pilgrimage": 1.8,
            "conversion": 2.4,
            # psychological
            "salvation": 2.6,
            "guilt": 2.3,
            "enlightenment": 2.0,
            "possession": 1.5,
        },
        description=(
            "A place of worship where faith and devotion converge. Stressed "
            "townsfolk may find solace here or spiral into extremism."
        ),
        provides_faith=True,
        food_rings=((70.0, 0.3),),
    ),
)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def find_location_at_point(
    locations: Iterable[Location], x: float, y: float,
) -> Location | None:
    """First landmark whose area contains (x, y), or None."""
    for loc in locations:
        if loc.contains(x, y):
            return loc
    return None


def regrowth_anchors(locations: Iterable[Location]) -> list[tuple[float, float, float]]:
    """``(x, y, radius)`` anchors for food regrowth."""
    return [
        (loc.x, loc.y, loc.regrowth_radius)
        for loc in locations
        if loc.regrowth_radius is not None and loc.regrowth_radius > 0
    ]


def validate_locations(locations: Sequence[Location]) -> None:
    """Reject a table the decision engine cannot work with."""
    if not locations:
        raise ConfigurationError("Location table is empty")
    for loc in locations:
        if loc.radius <= 0:
            raise ConfigurationError(f"Location {loc.name!r} has non-positive radius")
    if not any(loc.provides_faith for loc in locations):
        raise ConfigurationError("Location table has no faith-providing landmark")
    if not any(loc.is_social for loc in locations):
        raise ConfigurationError("Location table has no social landmark")
