"""EconomyGuard — integrity checks and repair for settlement economies.

External systems may write arbitrary values into a settlement between
economy ticks.  The guard validates those values, clamps them back into
range where it can, and rebuilds the economy block from defaults when it
cannot.  Every correction is logged and kept in a bounded issue log.
"""

from __future__ import annotations

import logging
import math
import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from terrastock.settlement.settlement import (
    Economy,
    Settlement,
    SupplyDemandLevel,
    balanced_status,
    zero_amounts,
)
from terrastock.simulation.config import SupplyDemandConfig
from terrastock.world.cell import ResourceKind

log = logging.getLogger(__name__)

T = TypeVar("T")


class IssueKind(Enum):
    """Categories of economy problems."""

    CALCULATION = "calculation"
    DATA_INTEGRITY = "data_integrity"
    STATE_INCONSISTENCY = "state_inconsistency"
    VALIDATION = "validation"


@dataclass(frozen=True)
class EconomyIssue:
    """One logged problem and what was done about it."""

    settlement_id: str
    kind: IssueKind
    message: str
    recovery_action: str
    timestamp: float = field(default_factory=time.time)
    original: Any = None
    corrected: Any = None


@dataclass
class GuardReport:
    """Result of validating one settlement."""

    issues: list[EconomyIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues


@dataclass(frozen=True)
class NumericRange:
    """Accepted interval and fallback for one settlement field."""

    lo: float
    hi: float
    default: float

    def contains(self, value: Any) -> bool:
        return _is_number(value) and math.isfinite(value) and self.lo <= value <= self.hi

    def clamp(self, value: Any) -> float:
        if not _is_number(value) or not math.isfinite(value):
            return self.default
        return max(self.lo, min(self.hi, value))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


POPULATION = NumericRange(0, 1000, 1)
RESOURCES = NumericRange(0, 100_000, 0)
PRODUCTION = NumericRange(0, 10_000, 0)
CONSUMPTION = NumericRange(0, 10_000, 0)
BUILDINGS = NumericRange(0, 500, 0)
COLLECTION_RADIUS = NumericRange(1, 10, 1)
CONSTRUCTION_QUEUE = NumericRange(0, 10, 0)


class EconomyGuard:
    """Validates, repairs, and resets settlement economy data.

    Attributes:
        config: Settlement economy tuning (for default capacities).
        max_log_size: Number of issues retained.
    """

    def __init__(
        self,
        config: SupplyDemandConfig | None = None,
        max_log_size: int = 1000,
    ) -> None:
        self.config = config or SupplyDemandConfig()
        self.max_log_size = max_log_size
        self._log: deque[EconomyIssue] = deque(maxlen=max_log_size)

    # -- Validation ------------------------------------------------------

    def validate(self, settlement: Settlement) -> GuardReport:
        """Check a settlement without changing it.

        Args:
            settlement: Settlement to inspect.

        Returns:
            A report listing every out-of-range or missing field.
        """
        report = GuardReport()
        sid = settlement.label

        def bad(message: str, value: Any = None) -> None:
            report.issues.append(
                EconomyIssue(
                    sid,
                    IssueKind.VALIDATION,
                    message,
                    "correct on next update",
                    original=value,
                ),
            )

        if not POPULATION.contains(settlement.population):
            bad("population out of range", settlement.population)
        if not COLLECTION_RADIUS.contains(settlement.collection_radius):
            bad("collection_radius out of range", settlement.collection_radius)

        if not isinstance(settlement.storage, dict):
            bad("storage missing", settlement.storage)
        else:
            for kind in ResourceKind:
                if not RESOURCES.contains(settlement.storage.get(kind)):
                    bad(f"storage.{kind.value} out of range", settlement.storage.get(kind))

        economy = settlement.economy
        if economy is None:
            bad("economy block missing")
            return report

        for name, amounts, bounds in (
            ("production", economy.production, PRODUCTION),
            ("consumption", economy.consumption, CONSUMPTION),
        ):
            if not isinstance(amounts, dict):
                bad(f"{name} missing", amounts)
                continue
            for kind in ResourceKind:
                if not bounds.contains(amounts.get(kind)):
                    bad(f"{name}.{kind.value} out of range", amounts.get(kind))

        if not BUILDINGS.contains(economy.building_count):
            bad("building_count out of range", economy.building_count)
        if not CONSTRUCTION_QUEUE.contains(economy.construction_queue):
            bad("construction_queue out of range", economy.construction_queue)

        if isinstance(economy.stock, dict):
            for kind in ResourceKind:
                stock = economy.stock.get(kind, 0.0)
                if _is_number(stock) and stock > economy.stock_capacity:
                    report.warnings.append(
                        f"stock.{kind.value} {stock} exceeds capacity "
                        f"{economy.stock_capacity}",
                    )
        return report

    # -- Repair ----------------------------------------------------------

    def correct(self, settlement: Settlement) -> bool:
        """Clamp every out-of-range field back into range.

        A missing economy block is rebuilt from defaults.

        Returns:
            True if anything was changed.
        """
        sid = settlement.label
        changed = False

        population = int(POPULATION.clamp(settlement.population))
        if population != settlement.population:
            self._correction(sid, "population", settlement.population, population)
            settlement.population = population
            changed = True

        radius = int(COLLECTION_RADIUS.clamp(settlement.collection_radius))
        if radius != settlement.collection_radius:
            self._correction(sid, "collection_radius", settlement.collection_radius, radius)
            settlement.collection_radius = radius
            changed = True

        if not isinstance(settlement.storage, dict):
            self._correction(sid, "storage", settlement.storage, "zeros")
            settlement.storage = zero_amounts()
            changed = True
        changed = self._clamp_amounts(sid, "storage", settlement.storage, RESOURCES) or changed

        if settlement.economy is None:
            self.reset_to_defaults(settlement)
            return True
        return self._correct_economy(sid, settlement.economy) or changed

    def _correct_economy(self, sid: str, economy: Economy) -> bool:
        changed = False
        for name in ("production", "consumption", "stock"):
            if not isinstance(getattr(economy, name), dict):
                self._correction(sid, name, getattr(economy, name), "zeros")
                setattr(economy, name, zero_amounts())
                changed = True
        for name, amounts, bounds in (
            ("production", economy.production, PRODUCTION),
            ("consumption", economy.consumption, CONSUMPTION),
            ("stock", economy.stock, RESOURCES),
        ):
            changed = self._clamp_amounts(sid, name, amounts, bounds) or changed

        count = int(BUILDINGS.clamp(economy.building_count))
        if count != economy.building_count:
            self._correction(sid, "building_count", economy.building_count, count)
            economy.building_count = count
            changed = True

        queue = int(CONSTRUCTION_QUEUE.clamp(economy.construction_queue))
        if queue != economy.construction_queue:
            self._correction(sid, "construction_queue", economy.construction_queue, queue)
            economy.construction_queue = queue
            changed = True

        if not _is_number(economy.stock_capacity) or not economy.stock_capacity >= 0:
            self._correction(sid, "stock_capacity", economy.stock_capacity, "base")
            economy.stock_capacity = self.config.base_storage_capacity
            changed = True

        if not isinstance(economy.status, dict):
            economy.status = balanced_status()
            changed = True
        for kind in ResourceKind:
            if not isinstance(economy.status.get(kind), SupplyDemandLevel):
                self._correction(sid, f"status.{kind.value}", economy.status.get(kind), "balanced")
                economy.status[kind] = SupplyDemandLevel.BALANCED
                changed = True
        return changed

    def _clamp_amounts(
        self,
        sid: str,
        name: str,
        amounts: dict[ResourceKind, float],
        bounds: NumericRange,
    ) -> bool:
        changed = False
        for kind in ResourceKind:
            original = amounts.get(kind)
            value = bounds.clamp(original)
            if value != original:
                self._correction(sid, f"{name}.{kind.value}", original, value)
                amounts[kind] = value
                changed = True
        return changed

    def reset_to_defaults(self, settlement: Settlement) -> None:
        """Rebuild the economy block from safe defaults.

        Building count and storage are kept (clamped); everything derived
        is zeroed and every classification becomes balanced.
        """
        sid = settlement.label
        economy = settlement.economy
        if economy is None:
            settlement.economy = self._default_economy()
            self._record(
                sid,
                IssueKind.STATE_INCONSISTENCY,
                "economy block missing; created from defaults",
                "default economy",
            )
            return

        storage = settlement.storage if isinstance(settlement.storage, dict) else {}
        economy.production = zero_amounts()
        economy.consumption = zero_amounts()
        economy.status = balanced_status()
        economy.building_count = int(BUILDINGS.clamp(economy.building_count))
        economy.construction_queue = 0
        economy.target_building_count = 0
        economy.stock = {kind: RESOURCES.clamp(storage.get(kind, 0.0)) for kind in ResourceKind}
        economy.stock_capacity = self.config.base_storage_capacity
        self._record(
            sid,
            IssueKind.STATE_INCONSISTENCY,
            "economy reset to defaults",
            "recoverable; resumes next tick",
        )

    # -- Safe arithmetic -------------------------------------------------

    def safe_calc(
        self,
        calculation: Callable[[], T],
        fallback: T,
        context: str,
        settlement_id: str = "unknown",
    ) -> T:
        """Run ``calculation`` and substitute ``fallback`` for bad results.

        A result is bad if the calculation raises, returns None, or
        returns a non-finite number.

        Args:
            calculation: Zero-argument function computing the value.
            fallback: Value returned instead of a bad result.
            context: Description used in the issue log.
            settlement_id: Settlement the calculation belongs to.
        """
        try:
            result = calculation()
        except (ArithmeticError, TypeError, ValueError, KeyError, AttributeError) as exc:
            self._record(
                settlement_id,
                IssueKind.CALCULATION,
                f"{context} failed: {exc!r}",
                f"fallback {fallback!r}",
            )
            return fallback
        if result is None or (_is_number(result) and not math.isfinite(result)):
            self._record(
                settlement_id,
                IssueKind.CALCULATION,
                f"{context} produced {result!r}",
                f"fallback {fallback!r}",
            )
            return fallback
        return result

    # -- Issue log -------------------------------------------------------

    def issues(self, limit: int = 50) -> list[EconomyIssue]:
        """Return the most recent issues, oldest first."""
        return list(self._log)[-limit:]

    def issues_for(self, settlement_id: str, limit: int = 20) -> list[EconomyIssue]:
        """Return the most recent issues for one settlement label."""
        return [i for i in self._log if i.settlement_id == settlement_id][-limit:]

    def clear(self) -> None:
        """Forget every logged issue."""
        self._log.clear()

    def statistics(self, window_seconds: float = 3600.0) -> dict[str, Any]:
        """Summarise the issue log.

        Returns:
            Totals by kind and by settlement, plus the count within the
            last ``window_seconds``.
        """
        cutoff = time.time() - window_seconds
        by_kind = Counter({kind: 0 for kind in IssueKind})
        by_kind.update(issue.kind for issue in self._log)
        return {
            "total": len(self._log),
            "by_kind": dict(by_kind),
            "by_settlement": dict(Counter(i.settlement_id for i in self._log)),
            "recent": sum(1 for i in self._log if i.timestamp >= cutoff),
        }

    def _default_economy(self) -> Economy:
        return Economy(stock_capacity=self.config.base_storage_capacity)

    def _correction(self, sid: str, name: str, original: Any, corrected: Any) -> None:
        self._record(
            sid,
            IssueKind.DATA_INTEGRITY,
            f"corrected {name}: {original!r} -> {corrected!r}",
            "clamped",
            original,
            corrected,
        )

    def _record(
        self,
        sid: str,
        kind: IssueKind,
        message: str,
        action: str,
        original: Any = None,
        corrected: Any = None,
    ) -> None:
        issue = EconomyIssue(sid, kind, message, action, original=original, corrected=corrected)
        self._log.append(issue)
        log.warning("%s: %s (%s)", sid, message, action)
