"""
Per-tick metrics collection.

Summarises each committed tick: population, psychological means, action
mix, event counts and field totals. Provides time series extraction and
a JSON-friendly export.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np

from townsfolk.core.config import SimulationConfig
from townsfolk.core.decision import ACTION_ORDER
from townsfolk.core.fields import FieldLayer

if TYPE_CHECKING:
    from townsfolk.core.entity import Entity
    from townsfolk.core.tick import TickResult


@dataclass
class TickMetrics:
    """Metrics for a single tick."""

    tick: int
    world_time: float
    population: int
    deaths: int

    # Psychological means over the living
    mean_despair: float
    mean_aggression: float
    mean_breakpoint: float
    mean_energy: float

    # Behaviour
    action_counts: dict[str, int] = field(default_factory=dict)
    event_counts: dict[str, int] = field(default_factory=dict)

    # Field layer sums
    field_totals: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick": self.tick,
            "world_time": self.world_time,
            "population": self.population,
            "deaths": self.deaths,
            "mean_despair": self.mean_despair,
            "mean_aggression": self.mean_aggression,
            "mean_breakpoint": self.mean_breakpoint,
            "mean_energy": self.mean_energy,
            "action_counts": dict(self.action_counts),
            "event_counts": dict(self.event_counts),
            "field_totals": dict(self.field_totals),
        }


class MetricsCollector:
    """
    Collects and aggregates metrics across ticks.

    Works alongside the simulation engine; one ``collect`` call per
    committed tick.
    """

    def __init__(self, config: SimulationConfig):
        self.config = config
        self.metrics_history: list[TickMetrics] = []

    def collect(
        self,
        tick: int,
        result: TickResult,
        entities: Sequence[Entity],
    ) -> TickMetrics:
        """Collect metrics for a committed tick."""
        living = [e for e in entities if e.is_alive]

        def mean_of(attr: str) -> float:
            if not living:
                return 0.0
            return float(np.mean([getattr(e, attr) for e in living]))

        # Action mix, every action present even when unused
        action_counts = {a.value: 0 for a in ACTION_ORDER}
        for update in result.entity_updates:
            if update.action is not None:
                action_counts[update.action] = action_counts.get(update.action, 0) + 1

        event_counts: dict[str, int] = {}
        for event in result.events:
            event_counts[event.kind.value] = event_counts.get(event.kind.value, 0) + 1

        metrics = TickMetrics(
            tick=tick,
            world_time=result.world_time,
            population=len(living),
            deaths=sum(1 for u in result.entity_updates if not u.is_alive),
            mean_despair=mean_of("despair"),
            mean_aggression=mean_of("aggression"),
            mean_breakpoint=mean_of("mental_breakpoint"),
            mean_energy=mean_of("energy"),
            action_counts=action_counts,
            event_counts=event_counts,
            field_totals={
                layer.value: result.fields.total(layer) for layer in FieldLayer
            },
        )
        self.metrics_history.append(metrics)
        return metrics

    def get_time_series(self, field_name: str) -> list[Any]:
        """Extract a time series for a specific metric field."""
        return [getattr(m, field_name) for m in self.metrics_history]

    def to_dict(self) -> list[dict[str, Any]]:
        """Export all metrics as a list of JSON-serializable dicts."""
        return [m.to_dict() for m in self.metrics_history]
