"""SimulationEngine — wires the clock, the map, and settlement economies.

Owns all top-level simulation state.  Subsystems run as recurring
scheduler callbacks, in registration order within each tick:

1. Resources: regrow every cell on the map
2. Settlements: harvest every catchment (mutation pass), then rebalance
   every settlement economy (read pass)

The scheduler is the only driver: ``advance`` feeds it wall time,
``step``/``run`` emit ticks directly for headless runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

import numpy as np
from numpy.random import Generator

from terrastock.resources.engine import ResourceEngine, VisualState
from terrastock.settlement.balancer import EconomyBalancer
from terrastock.settlement.collection import collect
from terrastock.settlement.settlement import Settlement
from terrastock.simulation.config import SimulationConfig, get_preset
from terrastock.simulation.scheduler import TickScheduler
from terrastock.world.cell import ResourceKind
from terrastock.world.world import WorldMap

log = logging.getLogger(__name__)

RESOURCE_PASS = "resources"
SETTLEMENT_PASS = "settlements"


@dataclass
class SimulationEngine:
    """Drives the simulation forward tick by tick.

    Attributes:
        config: Loaded simulation configuration.
        world: The tile grid and its resource cells.
        settlements: All settlements, in registration order.
        scheduler: Tick clock running the subsystem passes.
        resources: Depletion/recovery engine.
        balancer: Settlement economy balancer.
        rng: Master seeded random generator.
    """

    config: SimulationConfig
    world: WorldMap = field(init=False)
    settlements: list[Settlement] = field(init=False, default_factory=list)
    scheduler: TickScheduler = field(init=False)
    resources: ResourceEngine = field(init=False)
    balancer: EconomyBalancer = field(init=False)
    rng: Generator = field(init=False)

    def __post_init__(self) -> None:
        """Build world, clock, and subsystems from config."""
        self.rng = np.random.default_rng(self.config.seed)
        self.world = WorldMap(
            width=self.config.world_width,
            height=self.config.world_height,
        )
        self.world.populate(self.rng)

        time_cfg = self.config.time
        self.scheduler = TickScheduler(
            ticks_per_second=time_cfg.ticks_per_second,
            speed=time_cfg.speed,
            min_speed=time_cfg.min_speed,
            max_speed=time_cfg.max_speed,
        )
        self.resources = ResourceEngine(self.config.economy)
        self.balancer = EconomyBalancer(self.config.supply_demand)

        self.scheduler.schedule_recurring(
            RESOURCE_PASS,
            time_cfg.resource_interval,
            self._resource_pass,
        )
        self.scheduler.schedule_recurring(
            SETTLEMENT_PASS,
            time_cfg.settlement_interval,
            self._settlement_pass,
        )

    @property
    def tick(self) -> int:
        """Current tick count."""
        return self.scheduler.current_tick

    def add_settlement(self, settlement: Settlement) -> None:
        """Register a settlement founded by an external system.

        Args:
            settlement: The settlement to add.

        Raises:
            IndexError: If the settlement lies off the map.
        """
        self.world.tile_at(settlement.x, settlement.y)
        self.settlements.append(settlement)
        log.info("registered %s", settlement.label)

    def step(self) -> None:
        """Advance the simulation by exactly one tick."""
        self.scheduler.step()

    def run(self, ticks: int) -> None:
        """Run the simulation for a fixed number of ticks.

        Args:
            ticks: Number of ticks to advance.
        """
        for _ in range(ticks):
            self.step()

    def advance(self, elapsed_ms: float) -> int:
        """Feed wall-clock time to the scheduler.

        Returns:
            Number of ticks emitted.
        """
        return self.scheduler.advance(elapsed_ms)

    def visual_state(self, x: int, y: int) -> VisualState:
        """Return the rendering hints for the tile at ``(x, y)``."""
        return self.resources.derive_visual_state(self.world.tile_at(x, y), self.tick)

    def divine_adjust(self, x: int, y: int, kind: ResourceKind, amount: float) -> None:
        """Set one cell's amount directly, bypassing recovery delays."""
        cell = self.world.tile_at(x, y).cells[kind]
        self.resources.set_direct(cell, amount, self.tick)
        log.info("divine adjustment at (%d,%d) %s -> %.2f", x, y, kind.value, cell.current)

    def apply_preset(self, name: str) -> bool:
        """Switch the resource economy to a named preset.

        ``config.economy`` and ``config.preset`` are updated to match.

        Returns:
            False if no preset has that name.
        """
        economy = get_preset(name)
        if economy is None:
            log.warning("unknown preset %r", name)
            return False
        self.config = replace(self.config, preset=name, economy=economy)
        self.resources.apply_config(economy)
        log.info("applied resource preset %r", name)
        return True

    def shortage_settlements(self) -> list[Settlement]:
        """Settlements short of at least one resource."""
        return self.balancer.shortage_settlements(self.settlements)

    def surplus_settlements(self) -> list[Settlement]:
        """Settlements with a surplus of at least one resource."""
        return self.balancer.surplus_settlements(self.settlements)

    def _resource_pass(self) -> None:
        self.resources.recover_world(self.world, self.tick)

    def _settlement_pass(self) -> None:
        tick = self.tick
        for settlement in self.settlements:
            self.balancer.guard.correct(settlement)
            collect(settlement, self.world, self.resources, tick)
        for settlement in self.settlements:
            self.balancer.update(settlement, self.world, tick)
        log.debug("tick %d: %d settlements balanced", tick, len(self.settlements))
