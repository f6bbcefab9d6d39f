"""Cell — per-resource state for one tile of the world grid.

Each tile carries one ``ResourceCell`` per resource kind.  Cells are plain
records owned by the map; only ``ResourceEngine`` is expected to mutate
``current`` after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResourceKind(Enum):
    """Harvestable resources carried by tiles."""

    FOOD = "food"
    WOOD = "wood"
    ORE = "ore"


class TerrainKind(Enum):
    """Terrain classes, each with its own regrowth multipliers."""

    WATER = "water"
    LAND = "land"
    FOREST = "forest"
    MOUNTAIN = "mountain"
    ROAD = "road"


def depletion_of(current: float, capacity: float) -> float:
    """Return ``current / capacity``, or ``0.0`` for a non-bearing cell."""
    if capacity > 0:
        return current / capacity
    return 0.0


@dataclass
class ResourceCell:
    """Amount of one resource held by one tile.

    Attributes:
        current: Amount presently available (0 <= current <= capacity).
        capacity: Maximum the cell can hold; 0 means the tile never
            carries this resource.
        recovery_ready_at_tick: Tick at which regrowth may resume after
            the cell was emptied; 0 when no timer is running.
        last_touched_tick: Tick of the last harvest or adjustment.
        depletion_fraction: Derived ``current / capacity`` projection.
    """

    current: float = 0.0
    capacity: float = 0.0
    recovery_ready_at_tick: int = 0
    last_touched_tick: int = 0
    depletion_fraction: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        """Derive the depletion fraction from the initial amounts."""
        self.depletion_fraction = depletion_of(self.current, self.capacity)

    @classmethod
    def full(cls, capacity: float) -> ResourceCell:
        """Create a cell filled to ``capacity``."""
        capacity = max(0.0, float(capacity))
        return cls(current=capacity, capacity=capacity)

    @classmethod
    def barren(cls) -> ResourceCell:
        """Create a cell that never carries this resource."""
        return cls()

    @property
    def is_bearing(self) -> bool:
        """Return True if the tile can ever hold this resource."""
        return self.capacity > 0


@dataclass
class Tile:
    """One square of the world grid.

    Attributes:
        x: Column position.
        y: Row position.
        terrain: Terrain class used for regrowth multipliers.
        cells: One ResourceCell per ResourceKind.
    """

    x: int
    y: int
    terrain: TerrainKind = TerrainKind.LAND
    cells: dict[ResourceKind, ResourceCell] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Fill in a barren cell for every kind not supplied."""
        for kind in ResourceKind:
            if kind not in self.cells:
                self.cells[kind] = ResourceCell.barren()

    def cell(self, kind: ResourceKind) -> ResourceCell:
        """Return the cell holding ``kind``."""
        return self.cells[kind]

    def amount(self, kind: ResourceKind) -> float:
        """Return the amount of ``kind`` currently available."""
        return self.cells[kind].current
