"""EconomyBalancer — per-settlement production, consumption, and supply.

Once per settlement tick the balancer recomputes a settlement's economic
snapshot in a fixed order:

1. Gather resources within the collection radius (cells are read in
   place, never copied)
2. Produce: scale gathered amounts by population/building/radius bonuses
3. Consume: food by population, wood/ore by construction backlog
4. Reconcile stock from the external storage counters
5. Classify each resource as surplus / balanced / shortage / critical
6. Commit and stamp the tick

Each numeric step falls back to a safe value through ``EconomyGuard``
instead of raising, so one bad field never aborts the whole update.
Nothing is cached between runs: values written by other systems since
the last tick are re-read every time.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from terrastock.settlement.guard import EconomyGuard
from terrastock.settlement.settlement import (
    Settlement,
    SupplyDemandLevel,
    balanced_status,
    zero_amounts,
)
from terrastock.simulation.config import SupplyDemandConfig
from terrastock.world.cell import ResourceKind

if TYPE_CHECKING:
    from terrastock.world.world import WorldMap

log = logging.getLogger(__name__)

# Classification when nothing is consumed: stock thresholds
_IDLE_SURPLUS_STOCK = 50.0
_IDLE_BALANCED_STOCK = 20.0
_IDLE_SHORTAGE_STOCK = 5.0

# Stock runway (in ticks of consumption) used by the classifier
_CRITICAL_STOCK_DAYS = 1.0
_SURPLUS_STOCK_DAYS = 10.0
_SHORTAGE_STOCK_DAYS = 3.0


@dataclass(frozen=True)
class ProductionTuning:
    """Fixed production constants (not exposed as user configuration).

    Attributes:
        reference_population: Population at which the bonus is neutral.
        population_k: Bonus per inhabitant above the reference.
        max_population_bonus: Upper clamp for the population bonus.
        building_k: Bonus per finished building.
        max_building_bonus: Upper clamp for the building bonus.
        base_rates: Fraction of gathered amount produced per kind.
    """

    reference_population: float = 10.0
    population_k: float = 0.02
    max_population_bonus: float = 2.0
    building_k: float = 0.1
    max_building_bonus: float = 1.5
    base_rates: dict[ResourceKind, float] = field(
        default_factory=lambda: {
            ResourceKind.FOOD: 0.1,
            ResourceKind.WOOD: 0.08,
            ResourceKind.ORE: 0.05,
        },
    )


@dataclass(frozen=True)
class ResourceBalance:
    """One settlement's position for one resource."""

    settlement: Settlement
    kind: ResourceKind
    level: SupplyDemandLevel
    production: float
    consumption: float
    stock: float
    net_balance: float
    stock_days: float


@dataclass
class BalanceReport:
    """Settlements grouped by their level for one resource."""

    kind: ResourceKind
    surplus: list[ResourceBalance] = field(default_factory=list)
    balanced: list[ResourceBalance] = field(default_factory=list)
    shortage: list[ResourceBalance] = field(default_factory=list)
    critical: list[ResourceBalance] = field(default_factory=list)


@dataclass(frozen=True)
class SupplyOffer:
    """A nearby settlement able to ship a resource to one in need."""

    supplier: Settlement
    distance: float
    available: float
    capacity: float


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _non_negative(value: float) -> float:
    """Clamp to >= 0, mapping NaN to 0."""
    return value if value > 0 else 0.0


class EconomyBalancer:
    """Recomputes settlement economies and answers supply/demand queries.

    Attributes:
        config: Settlement economy tuning.
        tuning: Fixed production constants.
        guard: Integrity checker used for fallbacks and repairs.
    """

    def __init__(
        self,
        config: SupplyDemandConfig | None = None,
        tuning: ProductionTuning | None = None,
        guard: EconomyGuard | None = None,
    ) -> None:
        self.config = config or SupplyDemandConfig()
        self.tuning = tuning or ProductionTuning()
        self.guard = guard or EconomyGuard(self.config)

    def update(self, settlement: Settlement, world: WorldMap, tick: int) -> None:
        """Recompute and commit one settlement's economic snapshot.

        Args:
            settlement: Settlement to update (written in place).
            world: Map holding the catchment cells (read only).
            tick: Current tick, stamped on the settlement.
        """
        sid = settlement.label
        guard = self.guard
        try:
            if settlement.economy is None:
                guard.reset_to_defaults(settlement)
            if not guard.validate(settlement).is_valid:
                guard.correct(settlement)
            economy = settlement.economy

            gathered = guard.safe_calc(
                lambda: self.gather(settlement, world),
                zero_amounts(),
                "gather",
                sid,
            )
            economy.production = guard.safe_calc(
                lambda: self.compute_production(settlement, gathered),
                zero_amounts(),
                "production",
                sid,
            )
            economy.consumption = guard.safe_calc(
                lambda: self.compute_consumption(settlement),
                zero_amounts(),
                "consumption",
                sid,
            )
            self.reconcile_stock(settlement)
            economy.status = guard.safe_calc(
                lambda: self.classify_settlement(settlement),
                balanced_status(),
                "classification",
                sid,
            )
            settlement.last_update_tick = tick
            guard.correct(settlement)
        except Exception:
            log.exception("%s: economy update failed; resetting", sid)
            guard.reset_to_defaults(settlement)

    # -- Steps -----------------------------------------------------------

    def gather(self, settlement: Settlement, world: WorldMap) -> dict[ResourceKind, float]:
        """Sum resources available within the collection radius."""
        radius = max(1, int(settlement.collection_radius))
        gathered = zero_amounts()
        for tile in world.catchment(settlement.x, settlement.y, radius):
            for kind in ResourceKind:
                gathered[kind] += tile.cells[kind].current
        return gathered

    def population_bonus(self, population: float) -> float:
        """Production multiplier from population, clamped to [1, max]."""
        t = self.tuning
        bonus = 1.0 + (population - t.reference_population) * t.population_k
        if math.isnan(bonus):
            return 1.0
        return _clamp(bonus, 1.0, t.max_population_bonus)

    def building_bonus(self, building_count: float) -> float:
        """Production multiplier from finished buildings, clamped to [1, max]."""
        t = self.tuning
        bonus = 1.0 + building_count * t.building_k
        if math.isnan(bonus):
            return 1.0
        return _clamp(bonus, 1.0, t.max_building_bonus)

    def compute_production(
        self,
        settlement: Settlement,
        gathered: dict[ResourceKind, float],
    ) -> dict[ResourceKind, float]:
        """Turn gathered amounts into per-kind production capacity."""
        radius = max(1, int(settlement.collection_radius))
        buildings = settlement.economy.building_count if settlement.economy else 0
        multiplier = (
            self.population_bonus(_non_negative(settlement.population))
            * self.building_bonus(_non_negative(buildings))
            * radius
            * radius
        )
        production = zero_amounts()
        for kind in ResourceKind:
            rate = self.tuning.base_rates.get(kind, 0.0)
            value = _non_negative(gathered.get(kind, 0.0)) * rate * multiplier
            production[kind] = value if math.isfinite(value) else 0.0
        return production

    def compute_consumption(self, settlement: Settlement) -> dict[ResourceKind, float]:
        """Food eaten by the population, wood/ore used by construction."""
        population = _non_negative(settlement.population)
        queue = _non_negative(
            settlement.economy.construction_queue if settlement.economy else 0,
        )
        consumption = {
            ResourceKind.FOOD: population * self.config.food_per_person,
            ResourceKind.WOOD: queue * self.config.building_wood_cost,
            ResourceKind.ORE: queue * self.config.building_ore_cost,
        }
        for kind, value in consumption.items():
            consumption[kind] = _non_negative(value) if math.isfinite(value) else 0.0
        return consumption

    def reconcile_stock(self, settlement: Settlement) -> None:
        """Mirror storage into the stock and recompute stock capacity.

        Stock above capacity is tolerated; capacity is a target only.
        """
        economy = settlement.economy
        storage = settlement.storage
        economy.stock = {
            kind: _non_negative(storage.get(kind, 0.0)) for kind in ResourceKind
        }
        economy.stock_capacity = (
            self.config.base_storage_capacity
            + _non_negative(economy.building_count) * self.config.storage_per_building
        )

    def classify(
        self,
        production: float,
        consumption: float,
        stock: float,
    ) -> SupplyDemandLevel:
        """Classify one resource from production, consumption, and stock.

        Critical is checked first and wins whenever the stock would last
        less than one tick of consumption.
        """
        production = _non_negative(production)
        consumption = _non_negative(consumption)
        stock = _non_negative(stock)

        if consumption <= 0:
            if stock > _IDLE_SURPLUS_STOCK:
                return SupplyDemandLevel.SURPLUS
            if stock > _IDLE_BALANCED_STOCK:
                return SupplyDemandLevel.BALANCED
            if stock > _IDLE_SHORTAGE_STOCK:
                return SupplyDemandLevel.SHORTAGE
            return SupplyDemandLevel.CRITICAL

        ratio = production / consumption
        stock_days = stock / consumption
        if ratio < self.config.critical_threshold or stock_days < _CRITICAL_STOCK_DAYS:
            return SupplyDemandLevel.CRITICAL
        if ratio >= self.config.surplus_threshold and stock_days > _SURPLUS_STOCK_DAYS:
            return SupplyDemandLevel.SURPLUS
        if ratio < self.config.shortage_threshold and stock_days < _SHORTAGE_STOCK_DAYS:
            return SupplyDemandLevel.SHORTAGE
        return SupplyDemandLevel.BALANCED

    def classify_settlement(
        self,
        settlement: Settlement,
    ) -> dict[ResourceKind, SupplyDemandLevel]:
        """Classify every resource from the settlement's committed numbers."""
        economy = settlement.economy
        return {
            kind: self.classify(
                economy.production.get(kind, 0.0),
                economy.consumption.get(kind, 0.0),
                economy.stock.get(kind, 0.0),
            )
            for kind in ResourceKind
        }

    # -- Queries ---------------------------------------------------------

    def shortage_settlements(self, settlements: Iterable[Settlement]) -> list[Settlement]:
        """Settlements short of (or critical on) at least one resource."""
        return [
            s
            for s in settlements
            if s.has_level(SupplyDemandLevel.SHORTAGE, SupplyDemandLevel.CRITICAL)
        ]

    def surplus_settlements(self, settlements: Iterable[Settlement]) -> list[Settlement]:
        """Settlements with a surplus of at least one resource."""
        return [s for s in settlements if s.has_level(SupplyDemandLevel.SURPLUS)]

    def balance_report(
        self,
        settlements: Iterable[Settlement],
        kind: ResourceKind,
    ) -> BalanceReport:
        """Group settlements by their committed level for ``kind``."""
        report = BalanceReport(kind=kind)
        groups = {
            SupplyDemandLevel.SURPLUS: report.surplus,
            SupplyDemandLevel.BALANCED: report.balanced,
            SupplyDemandLevel.SHORTAGE: report.shortage,
            SupplyDemandLevel.CRITICAL: report.critical,
        }
        for settlement in settlements:
            economy = settlement.economy
            if economy is None:
                continue
            production = economy.production.get(kind, 0.0)
            consumption = economy.consumption.get(kind, 0.0)
            stock = economy.stock.get(kind, 0.0)
            if consumption > 0:
                stock_days = stock / consumption
            else:
                stock_days = math.inf if stock > 0 else 0.0
            level = economy.status.get(kind, SupplyDemandLevel.BALANCED)
            groups[level].append(
                ResourceBalance(
                    settlement=settlement,
                    kind=kind,
                    level=level,
                    production=production,
                    consumption=consumption,
                    stock=stock,
                    net_balance=production - consumption,
                    stock_days=stock_days,
                ),
            )
        return report

    def supply_offers(
        self,
        needy: Settlement,
        candidates: Iterable[Settlement],
        kind: ResourceKind,
        max_distance: float = 10.0,
    ) -> list[SupplyOffer]:
        """Rank nearby surplus settlements that could supply ``needy``.

        A supplier offers its net production plus a tenth of the stock it
        holds beyond three ticks of its own consumption.  The offer decays
        with distance, never below 10%.

        Args:
            needy: Settlement short of ``kind``.
            candidates: Possible suppliers (``needy`` itself is skipped).
            kind: Resource needed.
            max_distance: Euclidean distance limit.

        Returns:
            Offers with positive capacity, largest first.
        """
        offers: list[SupplyOffer] = []
        for supplier in candidates:
            if supplier is needy or supplier.economy is None:
                continue
            if supplier.economy.status.get(kind) is not SupplyDemandLevel.SURPLUS:
                continue
            distance = math.hypot(needy.x - supplier.x, needy.y - supplier.y)
            if distance > max_distance:
                continue

            economy = supplier.economy
            production = economy.production.get(kind, 0.0)
            consumption = economy.consumption.get(kind, 0.0)
            stock = economy.stock.get(kind, 0.0)
            net = max(0.0, production - consumption)
            excess = max(0.0, stock - consumption * 3)
            available = net + excess * 0.1
            decay = max(0.1, 1.0 - distance / max_distance) if max_distance > 0 else 0.1
            capacity = available * decay
            if capacity > 0:
                offers.append(SupplyOffer(supplier, distance, available, capacity))

        offers.sort(key=lambda offer: offer.capacity, reverse=True)
        return offers
