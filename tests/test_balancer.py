"""Tests for terrastock.settlement.balancer."""

import logging
import math

import pytest

from terrastock.settlement.balancer import EconomyBalancer
from terrastock.settlement.guard import IssueKind
from terrastock.settlement.settlement import Economy, Settlement, SupplyDemandLevel
from terrastock.simulation.config import SupplyDemandConfig
from terrastock.world.cell import ResourceKind
from terrastock.world.world import WorldMap

FOOD = ResourceKind.FOOD
WOOD = ResourceKind.WOOD
ORE = ResourceKind.ORE


def _with_status(settlement_id: int, x: int, y: int, **levels: str) -> Settlement:
    s = Settlement(settlement_id=settlement_id, x=x, y=y)
    for kind, level in levels.items():
        s.economy.status[ResourceKind(kind)] = SupplyDemandLevel(level)
    return s


class TestClassify:
    """Four-way supply/demand classification."""

    @pytest.mark.parametrize(
        ("stock", "expected"),
        [
            (60.0, SupplyDemandLevel.SURPLUS),
            (30.0, SupplyDemandLevel.BALANCED),
            (10.0, SupplyDemandLevel.SHORTAGE),
            (3.0, SupplyDemandLevel.CRITICAL),
        ],
    )
    def test_idle_resource_by_stock(
        self,
        balancer: EconomyBalancer,
        stock: float,
        expected: SupplyDemandLevel,
    ) -> None:
        assert balancer.classify(0.0, 0.0, stock) == expected

    def test_low_runway_is_critical_despite_production(
        self,
        balancer: EconomyBalancer,
    ) -> None:
        # 50 stock against 100 consumption lasts half a tick
        assert balancer.classify(10.0, 100.0, 50.0) == SupplyDemandLevel.CRITICAL

    def test_low_ratio_is_critical(self, balancer: EconomyBalancer) -> None:
        assert balancer.classify(1.0, 10.0, 1000.0) == SupplyDemandLevel.CRITICAL

    def test_surplus(self, balancer: EconomyBalancer) -> None:
        assert balancer.classify(20.0, 10.0, 200.0) == SupplyDemandLevel.SURPLUS

    def test_high_ratio_without_runway_is_balanced(self, balancer: EconomyBalancer) -> None:
        assert balancer.classify(20.0, 10.0, 50.0) == SupplyDemandLevel.BALANCED

    def test_shortage(self, balancer: EconomyBalancer) -> None:
        assert balancer.classify(5.0, 10.0, 20.0) == SupplyDemandLevel.SHORTAGE

    def test_balanced(self, balancer: EconomyBalancer) -> None:
        assert balancer.classify(10.0, 10.0, 50.0) == SupplyDemandLevel.BALANCED

    def test_nan_inputs_do_not_raise(self, balancer: EconomyBalancer) -> None:
        level = balancer.classify(math.nan, math.nan, math.nan)
        assert level == SupplyDemandLevel.CRITICAL

    def test_thresholds_come_from_config(self) -> None:
        strict = EconomyBalancer(SupplyDemandConfig(critical_threshold=0.6))
        assert strict.classify(5.0, 10.0, 100.0) == SupplyDemandLevel.CRITICAL


class TestProduction:
    """Production and consumption formulas."""

    def test_population_bonus(self, balancer: EconomyBalancer) -> None:
        assert balancer.population_bonus(10) == 1.0
        assert balancer.population_bonus(35) == pytest.approx(1.5)
        assert balancer.population_bonus(500) == 2.0
        assert balancer.population_bonus(0) == 1.0

    def test_building_bonus(self, balancer: EconomyBalancer) -> None:
        assert balancer.building_bonus(0) == 1.0
        assert balancer.building_bonus(3) == pytest.approx(1.3)
        assert balancer.building_bonus(50) == 1.5

    def test_compute_production(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
    ) -> None:
        gathered = {FOOD: 100.0, WOOD: 50.0, ORE: 0.0}
        production = balancer.compute_production(settlement, gathered)
        assert production[FOOD] == pytest.approx(10.0)
        assert production[WOOD] == pytest.approx(4.0)
        assert production[ORE] == 0.0

    def test_radius_scales_production(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
    ) -> None:
        settlement.collection_radius = 2
        production = balancer.compute_production(settlement, {FOOD: 100.0})
        assert production[FOOD] == pytest.approx(40.0)

    def test_compute_consumption(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
    ) -> None:
        settlement.population = 25
        settlement.economy.construction_queue = 2
        consumption = balancer.compute_consumption(settlement)
        assert consumption[FOOD] == pytest.approx(5.0)
        assert consumption[WOOD] == pytest.approx(20.0)
        assert consumption[ORE] == pytest.approx(10.0)

    def test_gather_at_map_corner(self, balancer: EconomyBalancer) -> None:
        world = WorldMap(width=4, height=4)
        corner = Settlement(settlement_id=2, x=0, y=0, collection_radius=3)
        gathered = balancer.gather(corner, world)
        assert gathered == {FOOD: 0.0, WOOD: 0.0, ORE: 0.0}

    def test_gather_reads_catchment(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        stocked_world: WorldMap,
    ) -> None:
        gathered = balancer.gather(settlement, stocked_world)
        assert gathered[FOOD] == pytest.approx(84.0)
        assert gathered[WOOD] == pytest.approx(20.0)


class TestUpdate:
    """Full per-settlement update."""

    def test_update_commits_snapshot(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        stocked_world: WorldMap,
    ) -> None:
        settlement.storage.update({FOOD: 100.0, WOOD: 30.0})
        balancer.update(settlement, stocked_world, tick=7)

        economy = settlement.economy
        assert settlement.last_update_tick == 7
        assert economy.production[FOOD] == pytest.approx(8.4)
        assert economy.consumption[FOOD] == pytest.approx(2.0)
        assert economy.stock == {FOOD: 100.0, WOOD: 30.0, ORE: 0.0}
        assert economy.stock_capacity == 100.0
        assert economy.status[FOOD] == SupplyDemandLevel.SURPLUS
        assert economy.status[WOOD] == SupplyDemandLevel.BALANCED
        assert economy.status[ORE] == SupplyDemandLevel.CRITICAL

    def test_update_does_not_touch_cells(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        stocked_world: WorldMap,
    ) -> None:
        before = stocked_world.total(FOOD)
        balancer.update(settlement, stocked_world, tick=1)
        assert stocked_world.total(FOOD) == before

    def test_stock_capacity_grows_with_buildings(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        small_world: WorldMap,
    ) -> None:
        settlement.economy.building_count = 3
        balancer.update(settlement, small_world, tick=1)
        assert settlement.economy.stock_capacity == pytest.approx(160.0)

    def test_stock_over_capacity_is_tolerated(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        small_world: WorldMap,
    ) -> None:
        settlement.storage[WOOD] = 5000.0
        balancer.update(settlement, small_world, tick=1)
        assert settlement.economy.stock[WOOD] == 5000.0

    def test_missing_economy_is_rebuilt(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        small_world: WorldMap,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        settlement.economy = None
        with caplog.at_level(logging.WARNING):
            balancer.update(settlement, small_world, tick=3)
        assert isinstance(settlement.economy, Economy)
        assert settlement.last_update_tick == 3
        assert "economy block missing" in caplog.text

    def test_corrupted_fields_are_corrected(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        small_world: WorldMap,
    ) -> None:
        settlement.population = -5
        settlement.storage[FOOD] = math.nan
        settlement.economy.building_count = 10_000
        balancer.update(settlement, small_world, tick=2)
        assert settlement.population == 0
        assert settlement.storage[FOOD] == 0.0
        assert settlement.economy.building_count == 500
        kinds = {issue.kind for issue in balancer.guard.issues()}
        assert IssueKind.DATA_INTEGRITY in kinds

    def test_unreadable_world_falls_back(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
    ) -> None:
        balancer.update(settlement, None, tick=4)
        assert settlement.economy.production == {FOOD: 0.0, WOOD: 0.0, ORE: 0.0}
        assert settlement.last_update_tick == 4
        kinds = [issue.kind for issue in balancer.guard.issues()]
        assert IssueKind.CALCULATION in kinds

    def test_rereads_external_changes(
        self,
        balancer: EconomyBalancer,
        settlement: Settlement,
        small_world: WorldMap,
    ) -> None:
        balancer.update(settlement, small_world, tick=1)
        assert settlement.economy.status[WOOD] == SupplyDemandLevel.CRITICAL
        settlement.storage[WOOD] = 80.0
        balancer.update(settlement, small_world, tick=2)
        assert settlement.economy.status[WOOD] == SupplyDemandLevel.SURPLUS


class TestQueries:
    """Read-only queries over committed classifications."""

    def test_shortage_and_surplus_lists(self, balancer: EconomyBalancer) -> None:
        short = _with_status(1, 0, 0, food="shortage")
        critical = _with_status(2, 1, 0, ore="critical")
        rich = _with_status(3, 2, 0, wood="surplus")
        calm = _with_status(4, 3, 0)
        everyone = [short, critical, rich, calm]
        assert balancer.shortage_settlements(everyone) == [short, critical]
        assert balancer.surplus_settlements(everyone) == [rich]

    def test_missing_economy_counts_as_balanced(self, balancer: EconomyBalancer) -> None:
        broken = Settlement(settlement_id=9, x=0, y=0, economy=None)
        assert balancer.shortage_settlements([broken]) == []

    def test_balance_report_groups(self, balancer: EconomyBalancer) -> None:
        rich = _with_status(1, 0, 0, food="surplus")
        rich.economy.production[FOOD] = 12.0
        rich.economy.consumption[FOOD] = 2.0
        rich.economy.stock[FOOD] = 40.0
        poor = _with_status(2, 1, 0, food="critical")
        report = balancer.balance_report([rich, poor], FOOD)
        assert [b.settlement for b in report.surplus] == [rich]
        assert [b.settlement for b in report.critical] == [poor]
        assert report.balanced == []
        entry = report.surplus[0]
        assert entry.net_balance == pytest.approx(10.0)
        assert entry.stock_days == pytest.approx(20.0)

    def test_supply_offers(self, balancer: EconomyBalancer) -> None:
        needy = _with_status(1, 0, 0, food="critical")
        supplier = _with_status(2, 3, 4, food="surplus")
        supplier.economy.production[FOOD] = 10.0
        supplier.economy.consumption[FOOD] = 2.0
        supplier.economy.stock[FOOD] = 100.0
        far = _with_status(3, 30, 30, food="surplus")
        far.economy.production[FOOD] = 50.0
        not_surplus = _with_status(4, 1, 1, food="balanced")
        not_surplus.economy.production[FOOD] = 50.0

        offers = balancer.supply_offers(
            needy, [needy, supplier, far, not_surplus], FOOD,
        )
        assert [o.supplier for o in offers] == [supplier]
        offer = offers[0]
        assert offer.distance == pytest.approx(5.0)
        assert offer.available == pytest.approx(17.4)
        assert offer.capacity == pytest.approx(8.7)

    def test_supply_offers_sorted_by_capacity(self, balancer: EconomyBalancer) -> None:
        needy = _with_status(1, 0, 0)
        small = _with_status(2, 1, 0, ore="surplus")
        small.economy.production[ORE] = 1.0
        large = _with_status(3, 2, 0, ore="surplus")
        large.economy.production[ORE] = 9.0
        offers = balancer.supply_offers(needy, [small, large], ORE)
        assert [o.supplier for o in offers] == [large, small]
