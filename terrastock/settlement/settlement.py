"""Settlement — the economic agent harvesting from nearby tiles.

A Settlement is created and placed by external systems.  Its ``storage``
counters are the source of truth for what it holds; the ``economy`` block
mirrors them and carries the snapshot the balancer recomputes every
settlement tick.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from terrastock.world.cell import ResourceKind


class SupplyDemandLevel(Enum):
    """Four-way supply/demand classification for one resource."""

    SURPLUS = "surplus"
    BALANCED = "balanced"
    SHORTAGE = "shortage"
    CRITICAL = "critical"


def zero_amounts() -> dict[ResourceKind, float]:
    """Return ``{kind: 0.0}`` for every resource kind."""
    return {kind: 0.0 for kind in ResourceKind}


def balanced_status() -> dict[ResourceKind, SupplyDemandLevel]:
    """Return ``{kind: BALANCED}`` for every resource kind."""
    return {kind: SupplyDemandLevel.BALANCED for kind in ResourceKind}


@dataclass
class Economy:
    """Per-settlement economic snapshot.

    Attributes:
        production: Production capacity per kind, recomputed each update.
        consumption: Consumption per kind, recomputed each update.
        stock: Mirror of the settlement's storage counters.
        stock_capacity: Storage target, grows with building count.
        status: Last committed classification per kind.
        building_count: Finished buildings (written by the building system).
        construction_queue: Buildings waiting for materials.
        target_building_count: Desired buildings for the population.
    """

    production: dict[ResourceKind, float] = field(default_factory=zero_amounts)
    consumption: dict[ResourceKind, float] = field(default_factory=zero_amounts)
    stock: dict[ResourceKind, float] = field(default_factory=zero_amounts)
    stock_capacity: float = 100.0
    status: dict[ResourceKind, SupplyDemandLevel] = field(
        default_factory=balanced_status,
    )
    building_count: int = 0
    construction_queue: int = 0
    target_building_count: int = 0


@dataclass
class Settlement:
    """A settlement and its economy.

    Attributes:
        settlement_id: Unique identifier.
        x: Column of the settlement centre.
        y: Row of the settlement centre.
        population: Inhabitants.
        collection_radius: Chebyshev radius of the harvesting catchment.
        storage: Resources held; the single source of truth for stock.
        economy: Economic snapshot; None only if corrupted externally.
        last_update_tick: Tick of the last committed economy update.
    """

    settlement_id: int
    x: int
    y: int
    population: int = 10
    collection_radius: int = 1
    storage: dict[ResourceKind, float] = field(default_factory=zero_amounts)
    economy: Economy | None = field(default_factory=Economy)
    last_update_tick: int = 0

    @property
    def label(self) -> str:
        """Short identifier used in log messages."""
        return f"settlement {self.settlement_id} ({self.x},{self.y})"

    def levels(self) -> dict[ResourceKind, SupplyDemandLevel]:
        """Return the last committed classification (balanced if unknown)."""
        if self.economy is None:
            return balanced_status()
        return dict(self.economy.status)

    def has_level(self, *levels: SupplyDemandLevel) -> bool:
        """Return True if any resource is classified as one of ``levels``."""
        return any(level in levels for level in self.levels().values())
