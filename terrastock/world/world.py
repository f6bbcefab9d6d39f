"""World map — the spatial container for tiles and their resource cells.

The map owns every ``Tile`` and its cells.  Other components read cells
through the map (never copies) and mutate them only via ``ResourceEngine``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from numpy.random import Generator

from terrastock.world.cell import ResourceCell, ResourceKind, TerrainKind, Tile

# Relative terrain frequencies used by ``populate``
_TERRAIN_WEIGHTS: dict[TerrainKind, float] = {
    TerrainKind.WATER: 0.15,
    TerrainKind.LAND: 0.45,
    TerrainKind.FOREST: 0.25,
    TerrainKind.MOUNTAIN: 0.15,
}

# (min, max) capacity ranges per terrain and resource
_CAPACITY_RANGES: dict[TerrainKind, dict[ResourceKind, tuple[float, float]]] = {
    TerrainKind.WATER: {},
    TerrainKind.LAND: {
        ResourceKind.FOOD: (8.0, 16.0),
        ResourceKind.WOOD: (1.0, 4.0),
    },
    TerrainKind.FOREST: {
        ResourceKind.FOOD: (2.0, 6.0),
        ResourceKind.WOOD: (10.0, 20.0),
    },
    TerrainKind.MOUNTAIN: {
        ResourceKind.WOOD: (0.0, 2.0),
        ResourceKind.ORE: (8.0, 18.0),
    },
    TerrainKind.ROAD: {},
}


@dataclass
class WorldMap:
    """A 2D grid of tiles.

    Attributes:
        width: Number of columns in the grid.
        height: Number of rows in the grid.
        grid: 2D list of Tile objects indexed as ``grid[y][x]``.
    """

    width: int
    height: int
    grid: list[list[Tile]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialise the grid with barren land tiles."""
        self.grid = [
            [Tile(x=x, y=y) for x in range(self.width)] for y in range(self.height)
        ]

    def in_bounds(self, x: int, y: int) -> bool:
        """Return True if ``(x, y)`` lies on the grid."""
        return 0 <= x < self.width and 0 <= y < self.height

    def tile_at(self, x: int, y: int) -> Tile:
        """Return the tile at grid coordinates ``(x, y)``.

        Args:
            x: Column index.
            y: Row index.

        Raises:
            IndexError: If coordinates are out of bounds.
        """
        if not self.in_bounds(x, y):
            msg = f"({x}, {y}) out of bounds for {self.width}x{self.height}"
            raise IndexError(msg)
        return self.grid[y][x]

    def tiles(self) -> Iterator[Tile]:
        """Iterate over every tile in row-major order."""
        for row in self.grid:
            yield from row

    def catchment(self, x: int, y: int, radius: int) -> list[Tile]:
        """Return tiles within a square (Chebyshev) radius of ``(x, y)``.

        The centre tile is included.  Neighbours that fall off the grid
        are skipped rather than padded.

        Args:
            x: Centre column.
            y: Centre row.
            radius: Chebyshev distance; values below 0 yield no tiles.
        """
        result: list[Tile] = []
        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                nx, ny = x + dx, y + dy
                if self.in_bounds(nx, ny):
                    result.append(self.grid[ny][nx])
        return result

    def set_terrain(
        self,
        x: int,
        y: int,
        terrain: TerrainKind,
        capacities: dict[ResourceKind, float] | None = None,
    ) -> Tile:
        """Replace the terrain and (optionally) fill cells of one tile.

        Args:
            x: Column index.
            y: Row index.
            terrain: New terrain class.
            capacities: Capacity per resource; listed kinds start full,
                unlisted kinds become barren.

        Returns:
            The updated tile.
        """
        tile = self.tile_at(x, y)
        tile.terrain = terrain
        if capacities is not None:
            tile.cells = {
                kind: ResourceCell.full(capacities.get(kind, 0.0))
                for kind in ResourceKind
            }
        return tile

    def populate(
        self,
        rng: Generator,
        *,
        road_density: float = 0.02,
    ) -> None:
        """Scatter terrain and resource capacities across the grid.

        A simple seeded stand-in for world generation: each tile draws a
        terrain class by weight, then a full capacity per resource from
        that terrain's range.  Roads carry no resources.

        Args:
            rng: Seeded random generator.
            road_density: Probability that a tile becomes road.
        """
        kinds = list(_TERRAIN_WEIGHTS)
        weights = np.array([_TERRAIN_WEIGHTS[k] for k in kinds], dtype=np.float64)
        weights /= weights.sum()

        for tile in self.tiles():
            if rng.random() < road_density:
                terrain = TerrainKind.ROAD
            else:
                terrain = kinds[int(rng.choice(len(kinds), p=weights))]
            ranges = _CAPACITY_RANGES[terrain]
            capacities = {
                kind: float(rng.uniform(lo, hi)) for kind, (lo, hi) in ranges.items()
            }
            self.set_terrain(tile.x, tile.y, terrain, capacities)

    def depletion_grid(self, kind: ResourceKind) -> NDArray[np.float64]:
        """Return a ``(height, width)`` snapshot of depletion fractions.

        Args:
            kind: Which resource to sample.

        Returns:
            A fresh array; writing to it does not touch the map.
        """
        snap = np.zeros((self.height, self.width), dtype=np.float64)
        for tile in self.tiles():
            snap[tile.y, tile.x] = tile.cells[kind].depletion_fraction
        return snap

    def total(self, kind: ResourceKind) -> float:
        """Return the amount of ``kind`` currently held across the map."""
        return sum(tile.cells[kind].current for tile in self.tiles())
