"""Config — simulation parameters, difficulty presets, and YAML loading.

All tunable constants (regrowth rates, recovery delays, settlement economy
thresholds, tick cadence) live in frozen dataclasses here.  Values read
from YAML are validated and sanitized before they reach the engine, so an
invalid field falls back to its default instead of aborting startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from terrastock.world.cell import ResourceKind, TerrainKind

log = logging.getLogger(__name__)

MultiplierTable = dict[TerrainKind, dict[ResourceKind, float]]


def make_multipliers(
    rows: dict[str, tuple[float, float, float]],
) -> MultiplierTable:
    """Build an exhaustive terrain x resource table from compact rows.

    Args:
        rows: ``terrain name -> (food, wood, ore)``; missing terrains get
            a neutral multiplier of 1.0.
    """
    table: MultiplierTable = {}
    for terrain in TerrainKind:
        food, wood, ore = rows.get(terrain.value, (1.0, 1.0, 1.0))
        table[terrain] = {
            ResourceKind.FOOD: food,
            ResourceKind.WOOD: wood,
            ResourceKind.ORE: ore,
        }
    return table


_NORMAL_MULTIPLIERS = {
    "water": (0.0, 0.0, 0.0),
    "land": (1.5, 0.5, 0.3),
    "forest": (0.8, 2.0, 0.2),
    "mountain": (0.3, 0.5, 2.5),
    "road": (0.1, 0.1, 0.1),
}


@dataclass(frozen=True)
class EconomyConfig:
    """Resource depletion and regrowth parameters.

    Attributes:
        depletion_rate: Fraction harvested per tick (0.0-1.0).
        recovery_rate: Fraction of capacity regrown per tick (0.0-1.0).
        recovery_delay_ticks: Ticks an emptied cell waits before regrowth.
        min_recovery_threshold: Depletion fraction at or below which a
            cell counts as recovering from scarcity (0.0-1.0).
        terrain_multipliers: Regrowth multiplier per terrain and resource.
    """

    depletion_rate: float = 0.1
    recovery_rate: float = 0.02
    recovery_delay_ticks: int = 5
    min_recovery_threshold: float = 0.1
    terrain_multipliers: MultiplierTable = field(
        default_factory=lambda: make_multipliers(_NORMAL_MULTIPLIERS),
    )

    def multiplier(self, terrain: TerrainKind, kind: ResourceKind) -> float:
        """Return the regrowth multiplier, 1.0 when the table has no entry."""
        return self.terrain_multipliers.get(terrain, {}).get(kind, 1.0)


@dataclass(frozen=True)
class SupplyDemandConfig:
    """Settlement economy tuning.

    Attributes:
        food_per_person: Food consumed per inhabitant per tick.
        population_growth_rate: Growth probability, read by the external
            population subsystem.
        population_decline_rate: Decline probability, read by the external
            population subsystem.
        buildings_per_population: Target buildings per inhabitant.
        building_wood_cost: Wood consumed per queued building.
        building_ore_cost: Ore consumed per queued building.
        surplus_threshold: Production/consumption ratio for surplus.
        shortage_threshold: Ratio below which stock may run short.
        critical_threshold: Ratio below which supply is critical.
        base_storage_capacity: Stock capacity with no buildings.
        storage_per_building: Extra stock capacity per building.
    """

    food_per_person: float = 0.2
    population_growth_rate: float = 0.02
    population_decline_rate: float = 0.05
    buildings_per_population: float = 0.1
    building_wood_cost: float = 10.0
    building_ore_cost: float = 5.0
    surplus_threshold: float = 1.5
    shortage_threshold: float = 0.8
    critical_threshold: float = 0.3
    base_storage_capacity: float = 100.0
    storage_per_building: float = 20.0


@dataclass(frozen=True)
class TimeConfig:
    """Tick cadence.

    Attributes:
        ticks_per_second: Simulation ticks per wall-clock second at 1x.
        speed: Initial speed multiplier.
        min_speed: Lowest non-paused speed multiplier.
        max_speed: Highest speed multiplier.
        resource_interval: Ticks between regrowth passes.
        settlement_interval: Ticks between settlement economy passes.
    """

    ticks_per_second: float = 1.0
    speed: float = 1.0
    min_speed: float = 0.1
    max_speed: float = 10.0
    resource_interval: int = 1
    settlement_interval: int = 1


@dataclass(frozen=True)
class ResourcePreset:
    """A named, selectable EconomyConfig."""

    name: str
    description: str
    config: EconomyConfig


RESOURCE_PRESETS: dict[str, ResourcePreset] = {
    "easy": ResourcePreset(
        name="easy",
        description="Abundant resources that regrow quickly",
        config=EconomyConfig(
            depletion_rate=0.05,
            recovery_rate=0.04,
            recovery_delay_ticks=3,
            min_recovery_threshold=0.2,
            terrain_multipliers=make_multipliers(
                {
                    "water": (0.0, 0.0, 0.0),
                    "land": (2.0, 0.8, 0.5),
                    "forest": (1.2, 2.5, 0.3),
                    "mountain": (0.5, 0.8, 3.0),
                    "road": (0.1, 0.1, 0.1),
                },
            ),
        ),
    ),
    "normal": ResourcePreset(
        name="normal",
        description="Standard balance",
        config=EconomyConfig(),
    ),
    "hard": ResourcePreset(
        name="hard",
        description="Scarce resources; stock management matters",
        config=EconomyConfig(
            depletion_rate=0.15,
            recovery_rate=0.01,
            recovery_delay_ticks=10,
            min_recovery_threshold=0.05,
            terrain_multipliers=make_multipliers(
                {
                    "water": (0.0, 0.0, 0.0),
                    "land": (1.2, 0.3, 0.2),
                    "forest": (0.5, 1.5, 0.1),
                    "mountain": (0.2, 0.3, 2.0),
                    "road": (0.05, 0.05, 0.05),
                },
            ),
        ),
    ),
    "extreme": ResourcePreset(
        name="extreme",
        description="Very slow regrowth and long recovery delays",
        config=EconomyConfig(
            depletion_rate=0.25,
            recovery_rate=0.005,
            recovery_delay_ticks=15,
            min_recovery_threshold=0.02,
            terrain_multipliers=make_multipliers(
                {
                    "water": (0.0, 0.0, 0.0),
                    "land": (1.0, 0.2, 0.1),
                    "forest": (0.3, 1.2, 0.05),
                    "mountain": (0.1, 0.2, 1.5),
                    "road": (0.02, 0.02, 0.02),
                },
            ),
        ),
    ),
}


def get_preset(name: str) -> EconomyConfig | None:
    """Return the EconomyConfig for a preset name, or None if unknown."""
    preset = RESOURCE_PRESETS.get(name)
    return preset.config if preset is not None else None


@dataclass
class SimulationConfig:
    """Top-level simulation configuration.

    Attributes:
        seed: RNG seed for deterministic replay.
        world_width: Number of grid columns.
        world_height: Number of grid rows.
        settlement_count: Settlements placed by the demo setup.
        preset: Name of the resource preset the economy started from.
        economy: Resource depletion/regrowth parameters.
        supply_demand: Settlement economy tuning.
        time: Tick cadence.
    """

    seed: int = 42
    world_width: int = 32
    world_height: int = 32
    settlement_count: int = 5
    preset: str = "normal"
    economy: EconomyConfig = field(default_factory=EconomyConfig)
    supply_demand: SupplyDemandConfig = field(default_factory=SupplyDemandConfig)
    time: TimeConfig = field(default_factory=TimeConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> SimulationConfig:
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML config file.

        Returns:
            A populated SimulationConfig; invalid fields are replaced by
            defaults and reported through the log.

        Raises:
            FileNotFoundError: If the config file does not exist.
        """
        path = Path(path)
        with path.open("r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            log.warning("%s: top level is not a mapping; using defaults", path)
            data = {}
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> SimulationConfig:
        """Build a config from plain data, validating each section."""
        from terrastock.simulation.validation import (
            ValidationResult,
            sanitize_economy_config,
            sanitize_supply_demand_config,
            sanitize_time_config,
            validate_economy_config,
            validate_supply_demand_config,
            validate_time_config,
            world_settings,
        )

        preset = str(data.get("preset", cls.preset))
        base = get_preset(preset)
        if base is None:
            log.warning("unknown preset %r; falling back to 'normal'", preset)
            preset, base = "normal", EconomyConfig()

        top = ValidationResult()
        settings = world_settings(data, top)
        for issue in top.errors:
            log.warning("config: %s (using default)", issue)

        sections = (
            ("economy", validate_economy_config),
            ("supply_demand", validate_supply_demand_config),
            ("time", validate_time_config),
        )
        for name, validate in sections:
            result = validate(data.get(name) or {})
            for issue in result.errors:
                log.warning("config %s: %s", name, issue)
            for issue in result.warnings:
                log.info("config %s: %s", name, issue)

        return cls(
            **settings,
            preset=preset,
            economy=sanitize_economy_config(data.get("economy") or {}, base=base),
            supply_demand=sanitize_supply_demand_config(
                data.get("supply_demand") or {},
            ),
            time=sanitize_time_config(data.get("time") or {}),
        )
