"""
Shared test configuration.

Provides a seeded config, a seeded field grid and a generator shared
across the test modules.
"""

import numpy as np
import pytest

from townsfolk.core.config import SimulationConfig
from townsfolk.core.fields import FieldGrid
from townsfolk.core.locations import DEFAULT_LOCATIONS


@pytest.fixture
def config():
    return SimulationConfig(random_seed=42)


@pytest.fixture
def quiet_config():
    """Config with jitter switched off so scores are exact."""
    cfg = SimulationConfig(random_seed=42)
    cfg.jitter_config["enabled"] = False
    return cfg


@pytest.fixture
def grid(config):
    g = FieldGrid.from_config(config)
    g.seed_baseline(DEFAULT_LOCATIONS, config.food_baseline)
    return g


@pytest.fixture
def rng():
    return np.random.default_rng(42)

