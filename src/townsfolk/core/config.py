"""
Master configuration for the Townsfolk simulation core.

ALL tunable parameters live here. The weight tables below are plain data
and none of them is a hard invariant; change them freely per experiment.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any


class ConfigurationError(ValueError):
    """Raised at construction time when a configuration value is degenerate."""


# ---------------------------------------------------------------------------
# Utility weight tables (data, not literals inside scoring expressions)
# ---------------------------------------------------------------------------
# Each action maps a term name to its weight. Term names are defined in
# ``townsfolk.core.decision.UtilityDecisionEngine.terms``.

DEFAULT_UTILITY_WEIGHTS: dict[str, dict[str, float]] = {
    "SEEK_FOOD": {"hunger": 0.7, "food_scarcity": 0.2, "crowd": 0.1},
    "SOCIALIZE": {
        "loneliness": 0.8, "crowd": 0.3, "empathy": 0.2,
        "heat": -0.4, "crowded": -0.2,
    },
    "EXPLORE": {
        "curiosity": 0.7, "energy": 0.2, "heat": -0.3,
        "hunger": -0.2, "loneliness": -0.1,
    },
    "AVOID_HEAT": {
        "danger": 0.8, "stress": 0.3, "timidity": 0.2, "herd_alarm": 0.1,
    },
    "LOITER": {
        "comfort": 0.4, "energy": 0.3, "social": 0.2, "incuriosity": 0.1,
        "hunger": -0.3, "loneliness": -0.2,
    },
    "SEEK_SAFETY": {"stress": 0.6, "danger": 0.4, "hunger": 0.2, "order": 0.1},
    "SEEK_FAITH": {
        "despair": 0.4, "gloom": 0.3, "order": 0.3, "stress": 0.5,
        "trauma_count": 0.4, "local_trauma": 0.3, "boldness": -0.3,
        "hunger": 0.2,
    },
}

# Secondary bonuses applied after the base scores to keep similar
# personalities apart.
DEFAULT_PERSONALITY_WEIGHTS: dict[str, dict[str, float]] = {
    "SEEK_FOOD": {"timidity": 0.07, "order": 0.05},
    "SOCIALIZE": {"empathy": 0.15, "curiosity": 0.05, "order": -0.03},
    "EXPLORE": {"curiosity": 0.18, "weirdness": 0.08, "order": -0.1},
    "AVOID_HEAT": {"timidity": 0.08, "stress": 0.02},
    "LOITER": {"order": 0.12, "curiosity": -0.06},
    "SEEK_SAFETY": {"order": 0.1, "timidity": 0.05, "insecurity": 0.04},
    "SEEK_FAITH": {"timidity": 0.04, "gloom": 0.05, "weirdness": 0.02},
}

# Per-landmark-type bonuses when ranking food sources.
DEFAULT_FOOD_SPOT_BONUSES: dict[str, dict[str, float]] = {
    "cafe": {"empathy": 0.12, "order": 0.05},
    "park": {"curiosity": 0.1, "weirdness": 0.1},
    "school": {"order": 0.08, "curiosity": 0.04},
}


@dataclass
class SimulationConfig:
    """
    Master configuration: every parameter is a tunable slider.

    Every threshold, weight, rate, and radius is configurable.
    Use ``to_dict()`` / ``from_dict()`` for serialization and comparison.
    Degenerate values raise :class:`ConfigurationError` on construction.
    """

    # === Experiment identity ===
    experiment_name: str = "default"
    random_seed: int | None = None

    # === World extent (world units) ===
    world_width: float = 900.0
    world_height: float = 520.0
    world_margin: float = 50.0
    minutes_per_tick: float = 1.0
    movement_speed: float = 30.0  # world units an entity covers per tick
    initial_population: int = 12

    # === Field grid ===
    grid_width: int = 30
    grid_height: int = 17
    cell_size: float = 30.0
    field_rates: dict[str, dict[str, float]] = field(default_factory=lambda: {
        "heat": {"diffusion": 0.12, "evaporation": 0.02},
        "food": {"diffusion": 0.05, "evaporation": 0.01},
        "trauma": {"diffusion": 0.08, "evaporation": 0.005},
    })
    evaporation_threshold: float = 0.01
    food_regrowth_rate: float = 0.002
    food_regrowth_cap: float = 0.8
    food_baseline: float = 0.2
    default_modify_radius: float = 60.0

    # === Psychological model ===
    psychology_config: dict[str, float] = field(default_factory=lambda: {
        # despair
        "isolation_weight": 0.35,
        "starvation_weight": 0.30,
        "chronic_stress_threshold": 0.6,
        "chronic_stress_penalty": 0.3,
        "trauma_to_despair": 0.25,
        "hopelessness_weight": 0.25,
        "empathy_buffer": 0.20,
        # aggression (no calming counterpart)
        "cornered_weight": 0.35,
        "frustrated_weight": 0.25,
        "trauma_to_aggression": 0.20,
        "low_empathy_weight": 0.25,
        "boldness_weight": 0.15,
        "desperation_threshold": 0.7,
        "desperation_penalty": 0.25,
        # trauma processing
        "recovery_step": 0.01,
        "trauma_window_minutes": 100.0,
        "trauma_amplification": 0.008,
        "trauma_divisor": 4.0,
        # breakdown scarring
        "breakdown_threshold": 0.7,
        "breakdown_empathy_delta": -0.12,
        "breakdown_weirdness_delta": 0.18,
        "breakdown_mood_delta": -0.25,
        # dark triggers (per tick)
        "suicide_threshold": 0.75,
        "suicide_base_rate": 0.0008,
        "murder_threshold": 0.65,
        "murder_base_rate": 0.0004,
        # mood contagion
        "contagion_rate": 0.3,
    })

    # === Utility decision engine ===
    utility_weights: dict[str, dict[str, float]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_UTILITY_WEIGHTS.items()},
    )
    personality_weights: dict[str, dict[str, float]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_PERSONALITY_WEIGHTS.items()},
    )
    decision_config: dict[str, float] = field(default_factory=lambda: {
        "crowd_radius": 80.0,
        "crowd_normalizer": 5.0,
        "crowded_threshold": 3,
        "herd_alarm": 0.3,
        "trauma_count_normalizer": 5.0,
        "danger_trauma_weight": 0.5,
    })
    jitter_config: dict[str, Any] = field(default_factory=lambda: {
        "enabled": True,
        "seed": 0,
        "bucket_minutes": 5.0,
        "min_amplitude": 0.015,
        "base_amplitude": 0.02,
        "weirdness_gain": 0.08,
        "order_damping": 0.04,
        "wave_fraction": 0.6,
        "wave_frequency": 0.8,
    })
    target_config: dict[str, Any] = field(default_factory=lambda: {
        "food_distance_normalizer": 500.0,
        "food_crowd_normalizer": 6.0,
        "food_noise_amplitude": 0.1,
        "food_noise_weirdness_offset": 0.4,
        "food_scatter_min": 30.0,
        "food_scatter_max": 80.0,
        "food_spot_bonuses": {k: dict(v) for k, v in DEFAULT_FOOD_SPOT_BONUSES.items()},
        "socialize_scatter": 40.0,
        "explore_edge_curiosity": 0.7,
        "explore_edge_probability": 0.5,
        "explore_edge_band": 100.0,
        "avoid_heat_distance": 120.0,
        "loiter_scatter": 80.0,
        "safety_scatter": 60.0,
        "faith_scatter": 50.0,
        "competition_radius": 50.0,
        "competition_heat_single": 0.01,
        "competition_heat_multiple": 0.03,
        "competition_heat_radius": 40.0,
    })

    # === Drives (energy / social / safety / stress evolution) ===
    drive_config: dict[str, float] = field(default_factory=lambda: {
        "energy_decay": 0.01,
        "eat_food_threshold": 0.3,
        "eat_energy_gain": 0.08,
        "eat_food_consumed": 0.04,
        "eat_radius": 30.0,
        "social_gain_per_neighbor": 0.02,
        "social_gain_cap": 0.06,
        "social_decay": 0.01,
        "safety_blend": 0.2,
        "stress_blend": 0.1,
        "stress_despair_weight": 0.5,
    })

    # === Dark actions and their consequences ===
    dark_action_config: dict[str, float] = field(default_factory=lambda: {
        "victim_radius": 60.0,
        "witness_radius": 120.0,
        "suicide_success_rate": 0.6,
        "murder_success_rate": 0.7,
        "victim_trauma_severity": 0.9,
        "attacker_trauma_severity": 0.6,
        "witness_murder_severity": 0.8,
        "witness_suicide_severity": 0.7,
        "murder_trauma_delta": 0.5,
        "murder_heat_delta": 0.4,
        "suicide_trauma_delta": 0.4,
        "event_field_radius": 90.0,
    })

    def __post_init__(self) -> None:
        self.validate()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self) -> None:
        """Fail fast on degenerate values; never degrade silently."""
        positive = {
            "world_width": self.world_width,
            "world_height": self.world_height,
            "minutes_per_tick": self.minutes_per_tick,
            "cell_size": self.cell_size,
            "food_regrowth_rate": self.food_regrowth_rate,
            "default_modify_radius": self.default_modify_radius,
            "evaporation_threshold": self.evaporation_threshold,
        }
        for name, value in positive.items():
            if not _is_positive(value):
                raise ConfigurationError(f"{name} must be > 0, got {value!r}")

        if self.grid_width < 1 or self.grid_height < 1:
            raise ConfigurationError(
                f"Grid must be at least 1x1, got {self.grid_width}x{self.grid_height}"
            )
        if not 0.0 < self.food_regrowth_cap <= 1.0:
            raise ConfigurationError(
                f"food_regrowth_cap must be in (0, 1], got {self.food_regrowth_cap!r}"
            )
        if self.world_margin < 0 or 2 * self.world_margin >= min(
            self.world_width, self.world_height,
        ):
            raise ConfigurationError(
                f"world_margin {self.world_margin!r} does not fit the world extent"
            )

        for layer, rates in self.field_rates.items():
            for key in ("diffusion", "evaporation"):
                if not _is_positive(rates.get(key)):
                    raise ConfigurationError(
                        f"field_rates[{layer!r}][{key!r}] must be > 0, got {rates.get(key)!r}"
                    )

        if self.jitter_config.get("bucket_minutes", 5.0) <= 0:
            raise ConfigurationError("jitter_config['bucket_minutes'] must be > 0")

        for section, keys in (
            ("decision_config", ("crowd_radius",)),
            ("target_config", ("competition_radius", "avoid_heat_distance")),
            ("drive_config", ("eat_radius",)),
            ("dark_action_config", (
                "victim_radius", "witness_radius", "event_field_radius",
            )),
        ):
            table = getattr(self, section)
            for key in keys:
                if key in table and not _is_positive(table[key]):
                    raise ConfigurationError(
                        f"{section}[{key!r}] must be > 0, got {table[key]!r}"
                    )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SimulationConfig:
        """Deserialize from a dict."""
        return cls(**{k: v for k, v in d.items() if not k.startswith("_")})

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_json(cls, s: str) -> SimulationConfig:
        return cls.from_dict(json.loads(s))

    def diff(self, other: SimulationConfig) -> dict[str, tuple[Any, Any]]:
        """Return parameters that differ between two configs."""
        diffs: dict[str, tuple[Any, Any]] = {}
        for k in self.to_dict():
            v1 = getattr(self, k)
            v2 = getattr(other, k)
            if v1 != v2:
                diffs[k] = (v1, v2)
        return diffs


def _is_positive(value: Any) -> bool:
    try:
        return value is not None and math.isfinite(value) and value > 0
    except TypeError:
        return False
