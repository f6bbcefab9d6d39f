"""Collection — settlements harvesting their catchment into storage.

Each cell is asked for ``depletion_rate`` of its capacity, scaled by
how full the catchment still is: a well stocked catchment is worked at
full efficiency, a nearly exhausted one at 10%.  Resource kinds are
worked in order of availability, each later kind at a lower effort.
All cell mutation goes through ``ResourceEngine``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from terrastock.settlement.settlement import zero_amounts
from terrastock.world.cell import ResourceKind

if TYPE_CHECKING:
    from terrastock.resources.engine import ResourceEngine
    from terrastock.settlement.settlement import Settlement
    from terrastock.world.world import WorldMap

_FULL_EFFICIENCY_RATIO = 0.8
_MIN_EFFICIENCY_RATIO = 0.3
_MIN_EFFICIENCY = 0.1
_PRIORITY_STEP = 0.25
_MIN_HARVEST = 0.1


def collection_efficiency(
    available: dict[ResourceKind, float],
    maximum: dict[ResourceKind, float],
) -> float:
    """Return harvesting efficiency (0.1-1.0) from catchment fullness.

    Args:
        available: Amount currently present per kind.
        maximum: Capacity per kind.
    """
    total_max = sum(maximum.values())
    if total_max <= 0:
        return 1.0
    ratio = sum(available.values()) / total_max
    if ratio >= _FULL_EFFICIENCY_RATIO:
        return 1.0
    if ratio <= _MIN_EFFICIENCY_RATIO:
        return _MIN_EFFICIENCY
    span = _FULL_EFFICIENCY_RATIO - _MIN_EFFICIENCY_RATIO
    return _MIN_EFFICIENCY + (ratio - _MIN_EFFICIENCY_RATIO) / span * (1 - _MIN_EFFICIENCY)


def prioritize(available: dict[ResourceKind, float]) -> list[ResourceKind]:
    """Order resource kinds from most to least available."""
    return sorted(ResourceKind, key=lambda kind: available.get(kind, 0.0), reverse=True)


def collect(
    settlement: Settlement,
    world: WorldMap,
    engine: ResourceEngine,
    tick: int,
) -> dict[ResourceKind, float]:
    """Harvest the settlement's catchment into its storage.

    Args:
        settlement: Settlement doing the harvesting.
        world: Map holding the catchment.
        engine: Engine performing each harvest.
        tick: Current tick.

    Returns:
        Amount collected per kind this tick.
    """
    radius = max(1, int(settlement.collection_radius))
    catchment = world.catchment(settlement.x, settlement.y, radius)

    available = zero_amounts()
    maximum = zero_amounts()
    for tile in catchment:
        for kind, cell in tile.cells.items():
            available[kind] += cell.current
            maximum[kind] += cell.capacity

    efficiency = collection_efficiency(available, maximum)
    order = prioritize(available)
    collected = zero_amounts()

    for tile in catchment:
        for rank, kind in enumerate(order):
            cell = tile.cells[kind]
            if cell.current <= 0:
                continue
            share = cell.capacity * engine.config.depletion_rate
            effort = share * efficiency * (1.0 - rank * _PRIORITY_STEP)
            harvested = engine.harvest(cell, max(_MIN_HARVEST, effort), tick)
            collected[kind] += harvested

    for kind, amount in collected.items():
        settlement.storage[kind] = settlement.storage.get(kind, 0.0) + amount
    return collected
