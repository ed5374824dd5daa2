"""
Scalar field grid for the Townsfolk simulation.

A fixed-size 2D grid per named layer (heat, food, trauma) over the world's
spatial extent. Layers act as spatial memory: violence leaves heat and
trauma that spread and fade, food clusters around landmarks and regrows
there.

Grid coordinates: column ``col`` in [0, width), row ``row`` in [0, height).
Arrays are indexed ``[row, col]``. Every cell value stays in [0, 1] after
every operation.

Per-tick order is fixed: diffuse -> evaporate -> regrow, once per layer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

import numpy as np

from townsfolk.core.config import ConfigurationError, SimulationConfig


class FieldLayer(str, Enum):
    """Named scalar layers."""

    HEAT = "heat"
    FOOD = "food"
    TRAUMA = "trauma"


@dataclass(frozen=True)
class LayerRates:
    """Per-layer diffusion and evaporation rates, both in (0, 1]."""

    diffusion: float
    evaporation: float


DEFAULT_LAYER_RATES: dict[FieldLayer, LayerRates] = {
    FieldLayer.HEAT: LayerRates(diffusion=0.12, evaporation=0.02),
    FieldLayer.FOOD: LayerRates(diffusion=0.05, evaporation=0.01),
    FieldLayer.TRAUMA: LayerRates(diffusion=0.08, evaporation=0.005),
}


@dataclass(frozen=True)
class FieldDelta:
    """A localized write: add ``delta`` with linear falloff out to ``radius``."""

    layer: FieldLayer
    x: float
    y: float
    delta: float
    radius: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "layer": self.layer.value,
            "x": self.x,
            "y": self.y,
            "delta": self.delta,
            "radius": self.radius,
        }


def _as_layer(layer: FieldLayer | str) -> FieldLayer | None:
    try:
        return FieldLayer(layer)
    except ValueError:
        return None


def _clamp01(values: np.ndarray) -> np.ndarray:
    """Clamp to [0, 1], mapping NaN to 0 so it cannot spread."""
    return np.clip(np.nan_to_num(values, nan=0.0, posinf=1.0, neginf=0.0), 0.0, 1.0)


class FieldGrid:
    """Layered scalar field over the world.

    Args:
        width: Number of columns.
        height: Number of rows.
        cell_size: Side of one square cell in world units.
        rates: Layer -> :class:`LayerRates`. Missing layers use defaults.
        evaporation_threshold: Cells at or below this are zeroed by
            :meth:`evaporate`.
        regrowth_rate: Food added per regrowth pass near anchors.
        regrowth_cap: Regrowth never lifts food above this value.
        default_radius: Radius used by :meth:`modify` when none is given.

    Raises:
        ConfigurationError: On a zero-sized grid or non-positive
            size, rate, threshold or radius.
    """

    def __init__(
        self,
        width: int = 30,
        height: int = 17,
        cell_size: float = 30.0,
        rates: dict[FieldLayer | str, LayerRates] | None = None,
        evaporation_threshold: float = 0.01,
        regrowth_rate: float = 0.002,
        regrowth_cap: float = 0.8,
        default_radius: float = 60.0,
    ) -> None:
        if width < 1 or height < 1:
            raise ConfigurationError(f"Grid must be at least 1x1, got {width}x{height}")
        if cell_size <= 0:
            raise ConfigurationError(f"cell_size must be > 0, got {cell_size!r}")
        if evaporation_threshold <= 0:
            raise ConfigurationError("evaporation_threshold must be > 0")
        if regrowth_rate <= 0:
            raise ConfigurationError("regrowth_rate must be > 0")
        if not 0.0 < regrowth_cap <= 1.0:
            raise ConfigurationError("regrowth_cap must be in (0, 1]")
        if default_radius <= 0:
            raise ConfigurationError("default_radius must be > 0")

        merged = dict(DEFAULT_LAYER_RATES)
        for key, value in (rates or {}).items():
            layer = _as_layer(key)
            if layer is None:
                raise ConfigurationError(f"Unknown field layer {key!r}")
            merged[layer] = value
        for layer, r in merged.items():
            if not (0.0 < r.diffusion <= 1.0 and 0.0 < r.evaporation <= 1.0):
                raise ConfigurationError(
                    f"Rates for layer '{layer.value}' must be in (0, 1], got {r}"
                )

        self.width = int(width)
        self.height = int(height)
        self.cell_size = float(cell_size)
        self.rates = merged
        self.evaporation_threshold = float(evaporation_threshold)
        self.regrowth_rate = float(regrowth_rate)
        self.regrowth_cap = float(regrowth_cap)
        self.default_radius = float(default_radius)

        self.layers: dict[FieldLayer, np.ndarray] = {
            layer: np.zeros((self.height, self.width), dtype=np.float64)
            for layer in FieldLayer
        }

        # Static geometry shared by every pass.
        ones = np.pad(np.ones((self.height, self.width)), 1)
        self._neighbor_counts = (
            ones[:-2, 1:-1] + ones[2:, 1:-1] + ones[1:-1, :-2] + ones[1:-1, 2:]
        )
        rows, cols = np.indices((self.height, self.width))
        self._rows = rows
        self._cols = cols
        self._center_x = cols * self.cell_size + self.cell_size / 2
        self._center_y = rows * self.cell_size + self.cell_size / 2

    @classmethod
    def from_config(cls, config: SimulationConfig) -> FieldGrid:
        """Build an empty grid from the master configuration."""
        rates = {
            name: LayerRates(
                diffusion=float(r["diffusion"]), evaporation=float(r["evaporation"]),
            )
            for name, r in config.field_rates.items()
        }
        return cls(
            width=config.grid_width,
            height=config.grid_height,
            cell_size=config.cell_size,
            rates=rates,
            evaporation_threshold=config.evaporation_threshold,
            regrowth_rate=config.food_regrowth_rate,
            regrowth_cap=config.food_regrowth_cap,
            default_radius=config.default_modify_radius,
        )

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def world_to_cell(self, x: float, y: float) -> tuple[int, int]:
        """Map world coordinates to a (col, row) cell, clamped to the grid.

        Non-finite coordinates map to cell (0, 0).
        """
        if not (math.isfinite(x) and math.isfinite(y)):
            return (0, 0)
        col = int(math.floor(x / self.cell_size))
        row = int(math.floor(y / self.cell_size))
        col = max(0, min(self.width - 1, col))
        row = max(0, min(self.height - 1, row))
        return (col, row)

    def cell_center(self, col: int, row: int) -> tuple[float, float]:
        """World coordinates of a cell's centre."""
        return (
            col * self.cell_size + self.cell_size / 2,
            row * self.cell_size + self.cell_size / 2,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def sample(self, x: float, y: float, layer: FieldLayer | str) -> float:
        """Value of the cell containing (x, y); 0.0 for an unknown layer.

        Out-of-bounds coordinates clamp to the nearest edge cell.
        """
        key = _as_layer(layer)
        values = self.layers.get(key) if key is not None else None
        if values is None:
            return 0.0
        col, row = self.world_to_cell(x, y)
        return float(values[row, col])

    def values(self, layer: FieldLayer | str) -> np.ndarray:
        """Copy of a layer's array, shape (height, width)."""
        return self.layers[FieldLayer(layer)].copy()

    def total(self, layer: FieldLayer | str) -> float:
        return float(self.layers[FieldLayer(layer)].sum())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def modify(
        self,
        x: float,
        y: float,
        layer: FieldLayer | str,
        delta: float,
        radius: float | None = None,
    ) -> None:
        """Add *delta* around (x, y) with linear falloff.

        The radius is given in world units and converted to a whole number
        of cells. Falloff is 1 at the centre cell and 0 at the cell radius,
        measured between cell indices. A non-positive radius or non-finite
        delta changes nothing.
        """
        key = _as_layer(layer)
        if key is None or key not in self.layers:
            return
        radius = self.default_radius if radius is None else radius
        if not (math.isfinite(delta) and math.isfinite(radius)) or radius <= 0:
            return

        cell_radius = math.ceil(radius / self.cell_size)
        center_col, center_row = self.world_to_cell(x, y)
        distance = np.hypot(self._cols - center_col, self._rows - center_row)
        falloff = np.maximum(0.0, 1.0 - distance / cell_radius)

        values = self.layers[key]
        self.layers[key] = _clamp01(values + delta * falloff)

    def apply_deltas(self, deltas: Iterable[FieldDelta]) -> None:
        """Replay a batch of deltas in order."""
        for d in deltas:
            self.modify(d.x, d.y, d.layer, d.delta, d.radius)

    def reset(self) -> None:
        """Zero every layer."""
        for layer in self.layers:
            self.layers[layer] = np.zeros((self.height, self.width), dtype=np.float64)

    def seed_baseline(self, locations: Iterable[Any], base_food: float = 0.2) -> None:
        """Seed the world-initialization state.

        Food starts at *base_food* everywhere and is raised to each
        landmark's ring value inside that ring. Heat and trauma start at 0.
        """
        food = np.full((self.height, self.width), base_food, dtype=np.float64)
        for loc in locations:
            dist = np.hypot(self._center_x - loc.x, self._center_y - loc.y)
            for ring_radius, value in loc.food_rings:
                food = np.where(dist < ring_radius, np.maximum(food, value), food)
        self.layers[FieldLayer.FOOD] = _clamp01(food)
        self.layers[FieldLayer.HEAT] = np.zeros_like(food)
        self.layers[FieldLayer.TRAUMA] = np.zeros_like(food)

    # ------------------------------------------------------------------
    # Dynamics
    # ------------------------------------------------------------------

    def diffuse(self, layer: FieldLayer | str) -> None:
        """Blend each cell with the mean of its in-bounds 4-neighbours.

        ``new = old * (1 - r) + mean_neighbours * r``. A 1x1 grid has no
        neighbours and is left unchanged.
        """
        key = FieldLayer(layer)
        rate = self.rates[key].diffusion
        values = self.layers[key]

        padded = np.pad(values, 1)
        neighbor_sum = (
            padded[:-2, 1:-1] + padded[2:, 1:-1] + padded[1:-1, :-2] + padded[1:-1, 2:]
        )
        mean = np.divide(
            neighbor_sum, self._neighbor_counts,
            out=values.copy(), where=self._neighbor_counts > 0,
        )
        self.layers[key] = _clamp01(values * (1.0 - rate) + mean * rate)

    def evaporate(self, layer: FieldLayer | str) -> None:
        """Decay cells above the threshold; zero the ones at or below it."""
        key = FieldLayer(layer)
        rate = self.rates[key].evaporation
        values = self.layers[key]
        decayed = np.where(
            values > self.evaporation_threshold, values * (1.0 - rate), 0.0,
        )
        self.layers[key] = _clamp01(decayed)

    def regrow(
        self,
        layer: FieldLayer | str,
        anchors: Iterable[tuple[float, float, float]],
    ) -> None:
        """Regrow food within each ``(x, y, radius)`` anchor, up to the cap.

        Only the food layer regrows; other layers are left untouched.
        """
        key = FieldLayer(layer)
        if key is not FieldLayer.FOOD:
            return
        near = np.zeros((self.height, self.width), dtype=bool)
        for ax, ay, radius in anchors:
            near |= np.hypot(self._center_x - ax, self._center_y - ay) < radius

        values = self.layers[key]
        grow = near & (values < self.regrowth_cap)
        grown = np.where(
            grow, np.minimum(self.regrowth_cap, values + self.regrowth_rate), values,
        )
        self.layers[key] = _clamp01(grown)

    def step(self, anchors: Iterable[tuple[float, float, float]] = ()) -> None:
        """One per-tick pass: diffuse, then evaporate, then regrow, per layer."""
        anchors = list(anchors)
        for layer in FieldLayer:
            self.diffuse(layer)
            self.evaporate(layer)
            self.regrow(layer, anchors)

    # ------------------------------------------------------------------
    # Snapshots & serialization
    # ------------------------------------------------------------------

    def snapshot(self) -> FieldGrid:
        """Independent deep copy; later writes to either side stay separate."""
        clone = FieldGrid.__new__(FieldGrid)
        clone.__dict__.update(self.__dict__)
        clone.rates = dict(self.rates)
        clone.layers = {layer: values.copy() for layer, values in self.layers.items()}
        return clone

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "cell_size": self.cell_size,
            "layers": {
                layer.value: values.round(6).tolist()
                for layer, values in self.layers.items()
            },
        }

    def load_layers(self, layers: dict[str, Any]) -> None:
        """Replace layer contents from nested lists (e.g. a persisted snapshot)."""
        for name, rows in layers.items():
            key = _as_layer(name)
            if key is None:
                continue
            arr = np.asarray(rows, dtype=np.float64)
            if arr.shape != (self.height, self.width):
                raise ValueError(
                    f"Layer '{name}' has shape {arr.shape}, expected "
                    f"{(self.height, self.width)}"
                )
            self.layers[key] = _clamp01(arr)

    def __repr__(self) -> str:
        return (
            f"FieldGrid({self.width}x{self.height}, cell={self.cell_size:g}, "
            + ", ".join(f"{k.value}={v.sum():.2f}" for k, v in self.layers.items())
            + ")"
        )
