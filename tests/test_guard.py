"""Tests for terrastock.settlement.guard."""

import logging
import math

import pytest

from terrastock.settlement.guard import (
    POPULATION,
    EconomyGuard,
    IssueKind,
    NumericRange,
)
from terrastock.settlement.settlement import Settlement, SupplyDemandLevel
from terrastock.world.cell import ResourceKind


@pytest.fixture
def guard() -> EconomyGuard:
    return EconomyGuard()


class TestNumericRange:
    """Clamp helper."""

    def test_clamp(self) -> None:
        bounds = NumericRange(0, 10, 5)
        assert bounds.clamp(-1) == 0
        assert bounds.clamp(11) == 10
        assert bounds.clamp(math.nan) == 5
        assert bounds.clamp("x") == 5
        assert bounds.clamp(True) == 5

    def test_contains(self) -> None:
        assert POPULATION.contains(10)
        assert not POPULATION.contains(-1)
        assert not POPULATION.contains(math.inf)


class TestValidate:
    """Read-only integrity checks."""

    def test_fresh_settlement_is_valid(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        report = guard.validate(settlement)
        assert report.is_valid
        assert report.warnings == []

    def test_out_of_range_population(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        settlement.population = 5000
        report = guard.validate(settlement)
        assert not report.is_valid
        assert "population out of range" in [i.message for i in report.issues]
        issue = report.issues[0]
        assert issue.original == 5000
        assert issue.timestamp != 5000

    def test_missing_economy(self, guard: EconomyGuard, settlement: Settlement) -> None:
        settlement.economy = None
        assert not guard.validate(settlement).is_valid

    def test_stock_over_capacity_is_a_warning(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        settlement.economy.stock[ResourceKind.WOOD] = 250.0
        report = guard.validate(settlement)
        assert report.is_valid
        assert len(report.warnings) == 1

    def test_validate_does_not_mutate(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        settlement.population = -3
        guard.validate(settlement)
        assert settlement.population == -3
        assert guard.issues() == []


class TestCorrect:
    """In-place repair of out-of-range fields."""

    def test_valid_settlement_unchanged(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        assert guard.correct(settlement) is False
        assert guard.issues() == []

    def test_clamps_and_logs(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        settlement.storage[ResourceKind.ORE] = 1e9
        settlement.collection_radius = 0
        settlement.economy.production[ResourceKind.FOOD] = -2.0
        with caplog.at_level(logging.WARNING):
            assert guard.correct(settlement) is True
        assert settlement.storage[ResourceKind.ORE] == 100_000
        assert settlement.collection_radius == 1
        assert settlement.economy.production[ResourceKind.FOOD] == 0
        assert "corrected storage.ore" in caplog.text
        assert all(i.kind == IssueKind.DATA_INTEGRITY for i in guard.issues())

    def test_fills_missing_keys(self, guard: EconomyGuard, settlement: Settlement) -> None:
        settlement.storage = {ResourceKind.FOOD: 3.0}
        guard.correct(settlement)
        assert settlement.storage == {
            ResourceKind.FOOD: 3.0,
            ResourceKind.WOOD: 0,
            ResourceKind.ORE: 0,
        }

    def test_bad_status_becomes_balanced(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        settlement.economy.status[ResourceKind.FOOD] = "starving"
        assert guard.correct(settlement) is True
        assert settlement.economy.status[ResourceKind.FOOD] == SupplyDemandLevel.BALANCED

    def test_rebuilds_missing_economy(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        settlement.economy = None
        assert guard.correct(settlement) is True
        assert settlement.economy is not None
        assert settlement.economy.stock_capacity == 100.0


class TestReset:
    """Fallback to defaults."""

    def test_reset_keeps_storage_and_buildings(
        self,
        guard: EconomyGuard,
        settlement: Settlement,
    ) -> None:
        settlement.storage[ResourceKind.FOOD] = 40.0
        economy = settlement.economy
        economy.building_count = 4
        economy.construction_queue = 3
        economy.production[ResourceKind.FOOD] = 99.0
        economy.status[ResourceKind.FOOD] = SupplyDemandLevel.CRITICAL
        guard.reset_to_defaults(settlement)
        assert economy.production[ResourceKind.FOOD] == 0.0
        assert economy.status[ResourceKind.FOOD] == SupplyDemandLevel.BALANCED
        assert economy.building_count == 4
        assert economy.construction_queue == 0
        assert economy.stock[ResourceKind.FOOD] == 40.0
        (issue,) = guard.issues()
        assert issue.kind == IssueKind.STATE_INCONSISTENCY


class TestSafeCalc:
    """Fallbacks for failing arithmetic."""

    def test_passes_good_values(self, guard: EconomyGuard) -> None:
        assert guard.safe_calc(lambda: 3.5, 0.0, "ok") == 3.5
        assert guard.issues() == []

    def test_exception_uses_fallback(self, guard: EconomyGuard) -> None:
        assert guard.safe_calc(lambda: 1 / 0, -1.0, "divide", "s1") == -1.0
        (issue,) = guard.issues()
        assert issue.kind == IssueKind.CALCULATION
        assert issue.settlement_id == "s1"
        assert "divide failed" in issue.message

    @pytest.mark.parametrize("bad", [None, math.nan, math.inf])
    def test_bad_result_uses_fallback(self, guard: EconomyGuard, bad: object) -> None:
        assert guard.safe_calc(lambda: bad, 7.0, "bad") == 7.0

    def test_unexpected_errors_propagate(self, guard: EconomyGuard) -> None:
        def explode() -> float:
            raise RuntimeError("not arithmetic")

        with pytest.raises(RuntimeError):
            guard.safe_calc(explode, 0.0, "explode")


class TestIssueLog:
    """Bounded issue history."""

    def test_log_is_bounded(self) -> None:
        guard = EconomyGuard(max_log_size=3)
        for n in range(5):
            guard.safe_calc(lambda: None, 0, f"calc {n}")
        messages = [i.message for i in guard.issues()]
        assert len(messages) == 3
        assert messages[0].startswith("calc 2")

    def test_issues_for_and_statistics(self, guard: EconomyGuard) -> None:
        guard.safe_calc(lambda: None, 0, "a", "north")
        guard.safe_calc(lambda: None, 0, "b", "south")
        guard.safe_calc(lambda: None, 0, "c", "north")
        assert len(guard.issues_for("north")) == 2
        stats = guard.statistics()
        assert stats["total"] == 3
        assert stats["by_kind"][IssueKind.CALCULATION] == 3
        assert stats["by_kind"][IssueKind.VALIDATION] == 0
        assert stats["by_settlement"] == {"north": 2, "south": 1}
        assert stats["recent"] == 3

    def test_clear(self, guard: EconomyGuard) -> None:
        guard.safe_calc(lambda: None, 0, "a")
        guard.clear()
        assert guard.issues() == []
