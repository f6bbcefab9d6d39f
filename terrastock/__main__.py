"""Entry point for ``python -m terrastock``.

Loads the YAML config, builds a simulation engine, founds a handful of
settlements on resource-bearing tiles, runs a fixed number of ticks
headless, and logs each settlement's economy.
"""

from __future__ import annotations

import argparse
import logging
import pathlib

from terrastock.settlement.settlement import Settlement
from terrastock.simulation.config import RESOURCE_PRESETS, SimulationConfig
from terrastock.simulation.engine import SimulationEngine
from terrastock.world.cell import ResourceKind, TerrainKind

log = logging.getLogger("terrastock")

_DEFAULT_CONFIG = (
    pathlib.Path(__file__).resolve().parent.parent / "config" / "default.yaml"
)


def found_settlements(engine: SimulationEngine, count: int) -> list[Settlement]:
    """Place up to ``count`` settlements on random dry tiles.

    Stand-in for the external placement system.
    """
    world = engine.world
    founded: list[Settlement] = []
    attempts = 0
    while len(founded) < count and attempts < count * 50:
        attempts += 1
        x = int(engine.rng.integers(0, world.width))
        y = int(engine.rng.integers(0, world.height))
        if world.tile_at(x, y).terrain is TerrainKind.WATER:
            continue
        if any(s.x == x and s.y == y for s in founded):
            continue
        settlement = Settlement(
            settlement_id=len(founded),
            x=x,
            y=y,
            storage={
                ResourceKind.FOOD: 5.0,
                ResourceKind.WOOD: 5.0,
                ResourceKind.ORE: 2.0,
            },
        )
        engine.add_settlement(settlement)
        founded.append(settlement)
    return founded


def report(engine: SimulationEngine) -> None:
    """Log every settlement's stock and classification."""
    log.info("tick %d (%s)", engine.tick, engine.scheduler.clock_string())
    for s in engine.settlements:
        levels = " ".join(
            f"{kind.value}={level.value}" for kind, level in s.levels().items()
        )
        stock = " ".join(f"{kind.value}={amount:.1f}" for kind, amount in s.storage.items())
        log.info("  %s pop=%d stock[%s] %s", s.label, s.population, stock, levels)
    log.info(
        "  shortage: %s",
        [s.settlement_id for s in engine.shortage_settlements()],
    )
    log.info(
        "  surplus:  %s",
        [s.settlement_id for s in engine.surplus_settlements()],
    )


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args, create engine, run headless."""
    parser = argparse.ArgumentParser(
        prog="terrastock",
        description="terrastock - resource depletion and settlement economy simulator",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=pathlib.Path,
        default=_DEFAULT_CONFIG,
        help="Path to YAML config file (default: config/default.yaml)",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=100,
        help="Number of ticks to simulate (default: 100)",
    )
    parser.add_argument(
        "--preset",
        choices=sorted(RESOURCE_PRESETS),
        default=None,
        help="Override the resource preset from the config file",
    )
    parser.add_argument(
        "--settlements",
        type=int,
        default=None,
        help="Override the number of settlements to found",
    )
    parser.add_argument(
        "--report-every",
        type=int,
        default=0,
        help="Log a report every N ticks (default: only at the end)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    if args.config.exists():
        config = SimulationConfig.from_yaml(args.config)
    else:
        log.warning("config %s not found; using defaults", args.config)
        config = SimulationConfig()

    engine = SimulationEngine(config=config)
    if args.preset is not None:
        engine.apply_preset(args.preset)

    count = args.settlements if args.settlements is not None else config.settlement_count
    found_settlements(engine, count)

    if args.report_every > 0:
        engine.scheduler.schedule_recurring(
            "report",
            args.report_every,
            lambda: report(engine),
        )

    engine.run(args.ticks)
    report(engine)

    failures = engine.scheduler.drain_failures()
    if failures:
        log.warning("%d callback failures during the run", len(failures))


if __name__ == "__main__":
    main()
