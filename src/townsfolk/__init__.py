"""Townsfolk: an emergent-behaviour town simulation core."""

from townsfolk.core.config import ConfigurationError, SimulationConfig
from townsfolk.core.engine import SimulationEngine
from townsfolk.core.entity import Entity, Personality, TraumaMemory
from townsfolk.core.fields import FieldGrid, FieldLayer
from townsfolk.core.tick import TickOrchestrator, TickResult

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "SimulationConfig",
    "SimulationEngine",
    "Entity",
    "Personality",
    "TraumaMemory",
    "FieldGrid",
    "FieldLayer",
    "TickOrchestrator",
    "TickResult",
]
