"""Validation and sanitization of configuration sections.

Nothing here raises on bad input.  ``validate_*`` functions report
structured errors and warnings; ``sanitize_*`` functions build a usable
config that keeps every valid field and substitutes the default for each
invalid one.  Input is a plain mapping (as loaded from YAML) and may be
partial: only the keys present are checked.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from terrastock.simulation.config import (
    EconomyConfig,
    MultiplierTable,
    SupplyDemandConfig,
    TimeConfig,
)
from terrastock.world.cell import ResourceKind, TerrainKind


@dataclass(frozen=True)
class ConfigIssue:
    """One validation finding.

    Attributes:
        field: Dotted name of the offending field.
        message: Human-readable description.
        value: The value as supplied.
        suggested: A value that would pass, when one is obvious.
    """

    field: str
    message: str
    value: Any = None
    suggested: Any = None

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass
class ValidationResult:
    """Outcome of validating one configuration section."""

    errors: list[ConfigIssue] = field(default_factory=list)
    warnings: list[ConfigIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Return True if no errors were found (warnings are allowed)."""
        return not self.errors

    def error_fields(self) -> set[str]:
        """Return the names of all fields with errors."""
        return {issue.field for issue in self.errors}


@dataclass(frozen=True)
class _Range:
    lo: float
    hi: float
    rec_lo: float | None = None
    rec_hi: float | None = None


def _as_number(value: Any) -> float | None:
    """Return ``value`` as a float, or None if it is not numeric."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _check(
    result: ValidationResult,
    name: str,
    raw: Any,
    bounds: _Range,
) -> float | None:
    """Check one numeric field against hard and recommended bounds.

    Returns:
        The value when it passes the hard bounds, otherwise None.
    """
    value = _as_number(raw)
    if value is None:
        result.errors.append(ConfigIssue(name, "must be a number", raw))
        return None
    if not math.isfinite(value):
        result.errors.append(
            ConfigIssue(name, "must be a finite number", raw, bounds.lo),
        )
        return None
    if value < bounds.lo or value > bounds.hi:
        result.errors.append(
            ConfigIssue(
                name,
                f"must be between {bounds.lo} and {bounds.hi}",
                raw,
                min(bounds.hi, max(bounds.lo, value)),
            ),
        )
        return None
    if bounds.rec_lo is not None and bounds.rec_hi is not None:
        if value < bounds.rec_lo or value > bounds.rec_hi:
            result.warnings.append(
                ConfigIssue(
                    name,
                    f"recommended range is {bounds.rec_lo} to {bounds.rec_hi}",
                    raw,
                    min(bounds.rec_hi, max(bounds.rec_lo, value)),
                ),
            )
    return value


def _unknown_keys(
    result: ValidationResult,
    data: Mapping[str, Any],
    known: set[str],
) -> None:
    for key in data:
        if key not in known:
            result.warnings.append(ConfigIssue(str(key), "unknown field ignored"))


def _shape_error(result: ValidationResult, name: str, data: Any) -> bool:
    if isinstance(data, Mapping):
        return False
    result.errors.append(ConfigIssue(name, "must be a mapping", data))
    return True


# -- Resource economy ----------------------------------------------------

_ECONOMY_RANGES: dict[str, _Range] = {
    "depletion_rate": _Range(0.0, 1.0, 0.0, 0.5),
    "recovery_rate": _Range(0.0, 1.0, 0.0, 0.1),
    "recovery_delay_ticks": _Range(0.0, math.inf, 0.0, 60.0),
    "min_recovery_threshold": _Range(0.0, 1.0),
}

_MAX_RECOMMENDED_MULTIPLIER = 10.0


def _validate_multipliers(
    result: ValidationResult,
    table: Any,
) -> MultiplierTable:
    """Validate a ``terrain -> resource -> multiplier`` mapping.

    Returns:
        The subset of entries that passed, keyed by enum.
    """
    accepted: MultiplierTable = {}
    if _shape_error(result, "terrain_multipliers", table):
        return accepted

    terrains = {t.value: t for t in TerrainKind}
    resources = {r.value: r for r in ResourceKind}
    for terrain_name, row in table.items():
        terrain = terrains.get(str(terrain_name))
        prefix = f"terrain_multipliers.{terrain_name}"
        if terrain is None:
            result.warnings.append(ConfigIssue(prefix, "unknown terrain ignored"))
            continue
        if _shape_error(result, prefix, row):
            continue
        for resource_name, raw in row.items():
            kind = resources.get(str(resource_name))
            name = f"{prefix}.{resource_name}"
            if kind is None:
                result.warnings.append(ConfigIssue(name, "unknown resource ignored"))
                continue
            value = _check(
                result,
                name,
                raw,
                _Range(0.0, math.inf, 0.0, _MAX_RECOMMENDED_MULTIPLIER),
            )
            if value is not None:
                accepted.setdefault(terrain, {})[kind] = value
    return accepted


def validate_economy_config(data: Any) -> ValidationResult:
    """Validate resource depletion/regrowth settings.

    Args:
        data: Mapping of EconomyConfig field names to raw values.

    Returns:
        Errors for out-of-range, non-finite, or mis-shaped fields;
        warnings for risky but usable values.
    """
    result = ValidationResult()
    if _shape_error(result, "economy", data):
        return result

    _unknown_keys(result, data, {*_ECONOMY_RANGES, "terrain_multipliers"})
    accepted = {
        name: _check(result, name, data[name], bounds)
        for name, bounds in _ECONOMY_RANGES.items()
        if name in data
    }
    if "terrain_multipliers" in data:
        _validate_multipliers(result, data["terrain_multipliers"])

    depletion = accepted.get("depletion_rate")
    recovery = accepted.get("recovery_rate")
    if depletion is not None and recovery is not None and depletion > recovery * 10:
        result.warnings.append(
            ConfigIssue(
                "depletion_rate",
                "much higher than recovery_rate; cells may stay depleted",
                depletion,
            ),
        )
    return result


def sanitize_economy_config(
    data: Any,
    *,
    base: EconomyConfig | None = None,
) -> EconomyConfig:
    """Return an EconomyConfig keeping only the valid fields of ``data``.

    Args:
        data: Mapping of EconomyConfig field names to raw values.
        base: Config supplying values for missing or invalid fields;
            defaults to ``EconomyConfig()``.
    """
    base = base or EconomyConfig()
    if not isinstance(data, Mapping):
        return base

    result = ValidationResult()
    updates: dict[str, Any] = {}
    for name, bounds in _ECONOMY_RANGES.items():
        if name in data:
            value = _check(result, name, data[name], bounds)
            if value is not None:
                updates[name] = value
    if "recovery_delay_ticks" in updates:
        updates["recovery_delay_ticks"] = int(updates["recovery_delay_ticks"])

    if "terrain_multipliers" in data:
        accepted = _validate_multipliers(result, data["terrain_multipliers"])
        table = {terrain: dict(row) for terrain, row in base.terrain_multipliers.items()}
        for terrain, row in accepted.items():
            table.setdefault(terrain, {}).update(row)
        updates["terrain_multipliers"] = table

    return replace(base, **updates)


# -- Settlement supply/demand --------------------------------------------

_SUPPLY_DEMAND_RANGES: dict[str, _Range] = {
    "food_per_person": _Range(0.1, 2.0, 0.1, 1.0),
    "population_growth_rate": _Range(0.001, 0.1, 0.01, 0.05),
    "population_decline_rate": _Range(0.001, 0.2, 0.02, 0.1),
    "buildings_per_population": _Range(0.05, 1.0, 0.08, 0.2),
    "building_wood_cost": _Range(1.0, 100.0, 5.0, 20.0),
    "building_ore_cost": _Range(1.0, 50.0, 2.0, 15.0),
    "surplus_threshold": _Range(1.1, 3.0, 1.2, 2.0),
    "shortage_threshold": _Range(0.3, 0.95, 0.6, 0.9),
    "critical_threshold": _Range(0.1, 0.6, 0.2, 0.5),
    "base_storage_capacity": _Range(50.0, 500.0, 80.0, 200.0),
    "storage_per_building": _Range(5.0, 100.0, 10.0, 50.0),
}


def validate_supply_demand_config(data: Any) -> ValidationResult:
    """Validate settlement economy tuning.

    Threshold ordering (``surplus > shortage > critical``) and the
    wood/ore cost ratio are reported as warnings; the balancer does not
    depend on them.

    Args:
        data: Mapping of SupplyDemandConfig field names to raw values.
    """
    result = ValidationResult()
    if _shape_error(result, "supply_demand", data):
        return result

    _unknown_keys(result, data, set(_SUPPLY_DEMAND_RANGES))
    for name, bounds in _SUPPLY_DEMAND_RANGES.items():
        if name in data:
            _check(result, name, data[name], bounds)

    if not any(name in data for name in _SUPPLY_DEMAND_RANGES):
        return result

    cfg = sanitize_supply_demand_config(data)
    if cfg.critical_threshold > cfg.shortage_threshold:
        result.warnings.append(
            ConfigIssue(
                "critical_threshold",
                "should not exceed shortage_threshold",
                cfg.critical_threshold,
                cfg.shortage_threshold * 0.9,
            ),
        )
    if cfg.shortage_threshold > cfg.surplus_threshold:
        result.warnings.append(
            ConfigIssue(
                "shortage_threshold",
                "should not exceed surplus_threshold",
                cfg.shortage_threshold,
                cfg.surplus_threshold * 0.9,
            ),
        )
    if cfg.population_decline_rate <= cfg.population_growth_rate:
        result.warnings.append(
            ConfigIssue(
                "population_decline_rate",
                "usually set higher than population_growth_rate",
                cfg.population_decline_rate,
                cfg.population_growth_rate * 2,
            ),
        )
    ratio = cfg.building_wood_cost / cfg.building_ore_cost
    if ratio < 1.5 or ratio > 4.0:
        result.warnings.append(
            ConfigIssue(
                "building_wood_cost",
                "usually 1.5 to 4 times building_ore_cost",
                cfg.building_wood_cost,
                cfg.building_ore_cost * 2.5,
            ),
        )
    return result


def sanitize_supply_demand_config(data: Any) -> SupplyDemandConfig:
    """Return a SupplyDemandConfig keeping only the valid fields of ``data``."""
    if not isinstance(data, Mapping):
        return SupplyDemandConfig()
    scratch = ValidationResult()
    updates = {}
    for name, bounds in _SUPPLY_DEMAND_RANGES.items():
        if name in data:
            value = _check(scratch, name, data[name], bounds)
            if value is not None:
                updates[name] = value
    return SupplyDemandConfig(**updates)


# -- Time ----------------------------------------------------------------

_TIME_RANGES: dict[str, _Range] = {
    "ticks_per_second": _Range(0.01, 1000.0),
    "speed": _Range(0.0, 100.0),
    "min_speed": _Range(0.01, 100.0),
    "max_speed": _Range(0.01, 100.0),
    "resource_interval": _Range(1.0, 1_000_000.0),
    "settlement_interval": _Range(1.0, 1_000_000.0),
}

_INT_FIELDS = {"resource_interval", "settlement_interval"}


def _time_updates(data: Mapping[str, Any], result: ValidationResult) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    for name, bounds in _TIME_RANGES.items():
        if name in data:
            value = _check(result, name, data[name], bounds)
            if value is not None:
                updates[name] = int(value) if name in _INT_FIELDS else value
    lo = updates.get("min_speed", TimeConfig.min_speed)
    hi = updates.get("max_speed", TimeConfig.max_speed)
    if lo > hi:
        result.errors.append(
            ConfigIssue("min_speed", "must not exceed max_speed", lo, hi),
        )
        updates.pop("min_speed", None)
        updates.pop("max_speed", None)
    return updates


def validate_time_config(data: Any) -> ValidationResult:
    """Validate tick cadence settings."""
    result = ValidationResult()
    if _shape_error(result, "time", data):
        return result
    _unknown_keys(result, data, {f.name for f in fields(TimeConfig)})
    _time_updates(data, result)
    return result


def sanitize_time_config(data: Any) -> TimeConfig:
    """Return a TimeConfig keeping only the valid fields of ``data``."""
    if not isinstance(data, Mapping):
        return TimeConfig()
    return TimeConfig(**_time_updates(data, ValidationResult()))


# -- World ---------------------------------------------------------------

_WORLD_RANGES: dict[str, _Range] = {
    "seed": _Range(0.0, 2.0**63 - 1),
    "world_width": _Range(1.0, 4096.0),
    "world_height": _Range(1.0, 4096.0),
    "settlement_count": _Range(0.0, 10_000.0),
}


def world_settings(data: Mapping[str, Any], result: ValidationResult) -> dict[str, int]:
    """Return the valid top-level integer settings in ``data``.

    Invalid entries are recorded in ``result`` and left out, so the
    caller's defaults apply to them.
    """
    updates: dict[str, int] = {}
    for name, bounds in _WORLD_RANGES.items():
        if name in data:
            raw = data[name]
            value = _check(result, name, raw, bounds)
            if value is not None:
                # Keep large integer seeds exact.
                updates[name] = raw if isinstance(raw, int) else int(value)
    return updates
