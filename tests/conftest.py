"""Shared fixtures for the terrastock test suite."""

from __future__ import annotations

import numpy as np
import pytest
from numpy.random import Generator

from terrastock.resources.engine import ResourceEngine
from terrastock.settlement.balancer import EconomyBalancer
from terrastock.settlement.settlement import Settlement
from terrastock.simulation.config import EconomyConfig, SimulationConfig
from terrastock.world.cell import ResourceKind, TerrainKind
from terrastock.world.world import WorldMap


@pytest.fixture
def rng() -> Generator:
    """A deterministic random generator for reproducible tests."""
    return np.random.default_rng(seed=12345)


@pytest.fixture
def small_world() -> WorldMap:
    """A small 8x8 map of barren land tiles."""
    return WorldMap(width=8, height=8)


@pytest.fixture
def stocked_world() -> WorldMap:
    """An 8x8 map with food-rich land around (4, 4) and a forest at (5, 4)."""
    world = WorldMap(width=8, height=8)
    for tile in world.catchment(4, 4, 1):
        world.set_terrain(tile.x, tile.y, TerrainKind.LAND, {ResourceKind.FOOD: 10.0})
    world.set_terrain(
        5,
        4,
        TerrainKind.FOREST,
        {ResourceKind.FOOD: 4.0, ResourceKind.WOOD: 20.0},
    )
    return world


@pytest.fixture
def default_config() -> SimulationConfig:
    """Default simulation config (no YAML file needed)."""
    return SimulationConfig()


@pytest.fixture
def economy_config() -> EconomyConfig:
    """Plain economy config with neutral multipliers."""
    return EconomyConfig(
        recovery_rate=0.1,
        recovery_delay_ticks=10,
        terrain_multipliers={},
    )


@pytest.fixture
def engine(economy_config: EconomyConfig) -> ResourceEngine:
    """A resource engine using ``economy_config``."""
    return ResourceEngine(economy_config)


@pytest.fixture
def balancer() -> EconomyBalancer:
    """A balancer with default tuning."""
    return EconomyBalancer()


@pytest.fixture
def settlement() -> Settlement:
    """A settlement of 10 at (4, 4) with empty storage."""
    return Settlement(settlement_id=1, x=4, y=4)
