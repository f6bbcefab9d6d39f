"""ResourceEngine — harvest, regrowth, and divine adjustment of cells.

This is the only code path that changes ``ResourceCell.current``.  The
engine keeps no per-cell state of its own: cells live on the world map and
every operation takes the cell plus the tick it happens on.  After every
mutation the cell's ``depletion_fraction`` is re-derived so it never drifts
from ``current / capacity``.

Runtime inputs are clamped rather than rejected.  NaN may still pass
through plain arithmetic where nothing guards it; that is left visible so
upstream bugs are not masked.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from terrastock.world.cell import (
    ResourceCell,
    ResourceKind,
    TerrainKind,
    Tile,
    depletion_of,
)

if TYPE_CHECKING:
    from terrastock.simulation.config import EconomyConfig
    from terrastock.world.world import WorldMap

# Visual feedback constants
_MIN_OPACITY = 0.3
_TINT_THRESHOLD = 0.3
_MAX_RED_SHIFT = 100
_WHITE = (255, 255, 255)


@dataclass(frozen=True)
class VisualState:
    """Read-only rendering hints for one tile.

    Attributes:
        opacity: 0.3-1.0, scaled by the average depletion fraction.
        tint: RGB colour; white when healthy, shifting toward red as the
            tile empties.
        is_depleted: True if every resource-bearing cell is empty.
        recovery_progress: 0-1; progress through the recovery delay while
            depleted, otherwise the average depletion fraction.
    """

    opacity: float
    tint: tuple[int, int, int]
    is_depleted: bool
    recovery_progress: float


def _refresh(cell: ResourceCell) -> None:
    cell.depletion_fraction = depletion_of(cell.current, cell.capacity)


class ResourceEngine:
    """Applies the depletion/recovery state machine to resource cells.

    Attributes:
        config: Validated economy configuration.
    """

    def __init__(self, config: EconomyConfig) -> None:
        self.config = config

    def apply_config(self, config: EconomyConfig) -> None:
        """Swap in a new (already validated) configuration."""
        self.config = config

    def harvest(self, cell: ResourceCell, requested: float, at_tick: int) -> float:
        """Remove up to ``requested`` from the cell.

        An already empty cell is touched but its recovery timer is left
        running.

        Args:
            cell: Cell to harvest from.
            requested: Amount wanted; negative or non-finite requests
                harvest nothing and leave the cell untouched.
            at_tick: Tick on which the harvest happens.

        Returns:
            The amount actually removed, between 0 and ``requested``.
        """
        if not math.isfinite(requested) or requested < 0:
            return 0.0
        cell.last_touched_tick = at_tick
        harvested = min(requested, cell.current)
        if not harvested > 0:
            return 0.0

        if harvested >= cell.current:
            cell.current = 0.0
        else:
            cell.current -= harvested
        _refresh(cell)

        if cell.current == 0:
            cell.recovery_ready_at_tick = at_tick + self.config.recovery_delay_ticks
        return harvested

    def recovery_rate(
        self,
        terrain: TerrainKind,
        kind: ResourceKind,
        *,
        scarce: bool,
    ) -> float:
        """Return the fraction of capacity regrown per tick.

        ``scarce`` marks a cell at or below ``min_recovery_threshold``.
        Both cases currently share one rate; the flag is the hook for
        tuning them apart.
        """
        del scarce
        return self.config.recovery_rate * self.config.multiplier(terrain, kind)

    def recover(
        self,
        cell: ResourceCell,
        terrain: TerrainKind,
        kind: ResourceKind,
        at_tick: int,
    ) -> None:
        """Regrow one cell by one tick's worth.

        A full cell is clamped to capacity.  An emptied cell stays empty
        until ``recovery_ready_at_tick``.

        Args:
            cell: Cell to regrow.
            terrain: Terrain of the tile holding the cell.
            kind: Resource held by the cell.
            at_tick: Current tick.
        """
        capacity = cell.capacity
        if not capacity > 0:
            return
        if not cell.current >= 0:  # negative or NaN
            cell.current = 0.0
            _refresh(cell)
        if cell.current >= capacity:
            cell.current = capacity
            cell.depletion_fraction = 1.0
            return
        if cell.current == 0 and at_tick < cell.recovery_ready_at_tick:
            return

        scarce = not cell.depletion_fraction > self.config.min_recovery_threshold
        rate = self.recovery_rate(terrain, kind, scarce=scarce)
        cell.current = min(capacity, cell.current + capacity * rate)
        _refresh(cell)

        if cell.current >= capacity:
            cell.recovery_ready_at_tick = 0

    def recover_tile(self, tile: Tile, at_tick: int) -> None:
        """Regrow every cell on ``tile``."""
        for kind, cell in tile.cells.items():
            self.recover(cell, tile.terrain, kind, at_tick)

    def recover_world(self, world: WorldMap, at_tick: int) -> None:
        """Regrow every cell on the map.

        Tiles are independent of each other, so the order does not matter.
        """
        for tile in world.tiles():
            self.recover_tile(tile, at_tick)

    def set_direct(self, cell: ResourceCell, amount: float, at_tick: int) -> None:
        """Overwrite the amount held by a cell (divine adjustment).

        Bypasses the recovery delay: any positive result clears the timer.

        Args:
            cell: Cell to adjust.
            amount: New amount, clamped to ``[0, capacity]``; non-finite
                values become 0.
            at_tick: Tick on which the adjustment happens.
        """
        if not math.isfinite(amount):
            amount = 0.0
        clamped = max(0.0, min(cell.capacity, amount))
        cell.current = clamped
        _refresh(cell)
        if clamped > 0:
            cell.recovery_ready_at_tick = 0
        cell.last_touched_tick = at_tick

    def derive_visual_state(
        self,
        cells: Tile | Mapping[ResourceKind, ResourceCell],
        at_tick: int,
    ) -> VisualState:
        """Summarise a tile's cells for rendering.

        Only cells with a positive capacity count.  A tile with no such
        cell is drawn fully opaque and is never depleted.

        Args:
            cells: A tile, or its cells keyed by resource kind.
            at_tick: Current tick, used for recovery progress.
        """
        if isinstance(cells, Tile):
            cells = cells.cells
        counted = [cell for cell in cells.values() if cell.capacity > 0]
        if not counted:
            return VisualState(
                opacity=1.0,
                tint=_WHITE,
                is_depleted=False,
                recovery_progress=0.0,
            )

        average = sum(_unit(c.depletion_fraction) for c in counted) / len(counted)
        opacity = _MIN_OPACITY + (1.0 - _MIN_OPACITY) * average
        is_depleted = all(c.current == 0 for c in counted)

        if is_depleted:
            progress = self._delay_progress(counted, at_tick)
        else:
            progress = average

        return VisualState(
            opacity=opacity,
            tint=_tint_for(average),
            is_depleted=is_depleted,
            recovery_progress=progress,
        )

    def _delay_progress(self, counted: list[ResourceCell], at_tick: int) -> float:
        timers = [c.recovery_ready_at_tick for c in counted if c.recovery_ready_at_tick > 0]
        if not timers:
            return 0.0
        delay = self.config.recovery_delay_ticks
        if delay <= 0:
            return 1.0
        depleted_at = min(timers) - delay
        return max(0.0, min(1.0, (at_tick - depleted_at) / delay))


def _unit(value: float) -> float:
    """Clamp to ``[0, 1]``; NaN counts as empty."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _tint_for(average: float) -> tuple[int, int, int]:
    """Shift from white toward red as the average fraction drops below 0.3."""
    if not average < _TINT_THRESHOLD:
        return _WHITE
    shift = int((1.0 - average / _TINT_THRESHOLD) * _MAX_RED_SHIFT)
    shift = max(0, min(_MAX_RED_SHIFT, shift))
    return (255, 255 - shift, 255 - shift)
