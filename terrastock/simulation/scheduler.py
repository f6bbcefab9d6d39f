"""TickScheduler — frame-rate independent simulation clock.

Wall-clock deltas are accumulated and converted into whole ticks.  Each
emitted tick runs the one-shot callbacks due on it, then every recurring
callback whose interval has elapsed.  A failing callback is logged and
recorded; it never stops the remaining callbacks or later ticks.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass

log = logging.getLogger(__name__)

Callback = Callable[[], None]


@dataclass(frozen=True)
class CallbackFailure:
    """A callback that raised while a tick was being processed.

    Attributes:
        tick: Tick on which the callback ran.
        key: Recurring key, or None for a one-shot callback.
        error: The exception raised.
    """

    tick: int
    key: str | None
    error: Exception


@dataclass
class _Recurring:
    callback: Callback
    interval: int
    last_tick: int


class TickScheduler:
    """Converts elapsed wall time into discrete ticks and runs callbacks.

    Attributes:
        ticks_per_second: Ticks per wall-clock second at 1x speed.
        min_speed: Lowest accepted non-zero speed multiplier.
        max_speed: Highest accepted speed multiplier.
        on_error: Optional hook receiving every CallbackFailure.
    """

    def __init__(
        self,
        ticks_per_second: float = 1.0,
        speed: float = 1.0,
        *,
        min_speed: float = 0.1,
        max_speed: float = 10.0,
        on_error: Callable[[CallbackFailure], None] | None = None,
    ) -> None:
        """Initialise the clock at tick 0.

        Args:
            ticks_per_second: Ticks per wall-clock second at 1x speed.
                Zero, negative, or non-finite rates fall back to 1.
            speed: Initial speed multiplier (clamped like ``set_speed``).
            min_speed: Lowest accepted non-zero speed multiplier.
            max_speed: Highest accepted speed multiplier.
            on_error: Hook called with each callback failure.
        """
        if not math.isfinite(ticks_per_second) or ticks_per_second <= 0:
            log.warning("invalid ticks_per_second %r; using 1.0", ticks_per_second)
            ticks_per_second = 1.0
        self.ticks_per_second = ticks_per_second
        self.min_speed = min_speed
        self.max_speed = max_speed
        self.on_error = on_error
        self._speed = 1.0
        self._tick = 0
        self._accumulated_ms = 0.0
        self._once: dict[int, list[Callback]] = defaultdict(list)
        self._recurring: dict[str, _Recurring] = {}
        self._failures: list[CallbackFailure] = []
        self.set_speed(speed)

    @property
    def current_tick(self) -> int:
        """Number of ticks emitted so far."""
        return self._tick

    @property
    def speed(self) -> float:
        """Current speed multiplier; 0 while paused."""
        return self._speed

    @property
    def is_paused(self) -> bool:
        """Return True if ``advance`` currently emits no ticks."""
        return self._speed == 0

    @property
    def tick_interval_ms(self) -> float:
        """Accumulated milliseconds needed per tick (inf while paused)."""
        if self._speed == 0:
            return math.inf
        return 1000.0 / self.ticks_per_second / self._speed

    @property
    def accumulated_ms(self) -> float:
        """Fractional progress toward the next tick."""
        return self._accumulated_ms

    def set_speed(self, multiplier: float) -> None:
        """Change the speed multiplier.

        Zero or negative values pause the clock without discarding the
        accumulated progress.  Other values are clamped to
        ``[min_speed, max_speed]``.

        Args:
            multiplier: Requested speed multiplier.
        """
        if not math.isfinite(multiplier):
            log.warning("ignoring non-finite speed %r", multiplier)
            return
        if multiplier <= 0:
            self._speed = 0.0
            return
        self._speed = max(self.min_speed, min(self.max_speed, multiplier))

    def pause(self) -> None:
        """Stop emitting ticks from ``advance``."""
        self.set_speed(0.0)

    def resume(self, speed: float = 1.0) -> None:
        """Resume ticking at ``speed``."""
        self.set_speed(speed)

    def advance(self, elapsed_ms: float) -> int:
        """Accumulate wall time and emit every whole tick it covers.

        Args:
            elapsed_ms: Wall-clock milliseconds since the previous call.
                Negative or non-finite values are ignored.

        Returns:
            Number of ticks emitted by this call.
        """
        if self._speed == 0:
            return 0
        if not math.isfinite(elapsed_ms) or elapsed_ms <= 0:
            return 0

        self._accumulated_ms += elapsed_ms * self._speed
        interval = self.tick_interval_ms
        emitted = 0
        while self._accumulated_ms >= interval:
            self._accumulated_ms -= interval
            self._emit()
            emitted += 1
        return emitted

    def step(self) -> int:
        """Emit exactly one tick, ignoring speed and pause state.

        Returns:
            The tick just emitted.
        """
        self._emit()
        return self._tick

    def schedule_once(self, ticks_from_now: int, callback: Callback) -> int:
        """Run ``callback`` once on tick ``current_tick + ticks_from_now``.

        A target at or before the current tick is moved to the next tick,
        since the current tick has already been processed.

        Returns:
            The tick on which the callback will fire.
        """
        target = max(self._tick + int(ticks_from_now), self._tick + 1)
        self._once[target].append(callback)
        return target

    def schedule_recurring(
        self,
        key: str,
        interval_ticks: int,
        callback: Callback,
    ) -> None:
        """Run ``callback`` every ``interval_ticks`` ticks.

        Registering an existing key replaces its callback and restarts its
        interval from the current tick.

        Args:
            key: Identifier used to replace or cancel the callback.
            interval_ticks: Ticks between runs (at least 1).
            callback: Zero-argument callable.
        """
        self._recurring[key] = _Recurring(
            callback=callback,
            interval=max(1, int(interval_ticks)),
            last_tick=self._tick,
        )

    def cancel_recurring(self, key: str) -> bool:
        """Remove a recurring callback.

        Returns:
            True if a callback was registered under ``key``.
        """
        return self._recurring.pop(key, None) is not None

    @property
    def recurring_keys(self) -> list[str]:
        """Keys of all registered recurring callbacks."""
        return list(self._recurring)

    @property
    def pending_once(self) -> int:
        """Number of one-shot callbacks not yet fired."""
        return sum(len(callbacks) for callbacks in self._once.values())

    def drain_failures(self) -> list[CallbackFailure]:
        """Return and clear the callback failures recorded so far."""
        failures, self._failures = self._failures, []
        return failures

    def stats(self) -> dict[str, float]:
        """Return a snapshot of clock settings and pending work."""
        return {
            "ticks_per_second": self.ticks_per_second,
            "effective_tps": self.ticks_per_second * self._speed * self._speed,
            "speed": self._speed,
            "current_tick": self._tick,
            "pending_once": self.pending_once,
            "recurring": len(self._recurring),
        }

    def clock_string(self) -> str:
        """Render elapsed simulated time as ``MM:SS.t`` (debugging aid)."""
        tps = max(1, int(self.ticks_per_second))
        seconds, sub_tick = divmod(self._tick, tps)
        minutes, seconds = divmod(seconds, 60)
        return f"{minutes:02d}:{seconds:02d}.{sub_tick}"

    def reset(self) -> None:
        """Return to tick 0 and drop every callback."""
        self._tick = 0
        self._accumulated_ms = 0.0
        self._once.clear()
        self._recurring.clear()
        self._failures.clear()

    def _emit(self) -> None:
        self._tick += 1
        tick = self._tick

        # Snapshot the due callbacks; registrations made while they run
        # land on later ticks.
        for callback in self._once.pop(tick, []):
            self._run(callback, tick, None)

        for key, entry in list(self._recurring.items()):
            if self._recurring.get(key) is not entry:
                continue  # cancelled or replaced by an earlier callback
            # A failed run leaves last_tick alone, so it is retried next tick.
            if tick - entry.last_tick >= entry.interval and self._run(
                entry.callback, tick, key,
            ):
                entry.last_tick = tick

    def _run(self, callback: Callback, tick: int, key: str | None) -> bool:
        try:
            callback()
        except Exception as exc:
            label = key if key is not None else "one-shot"
            log.exception("tick %d: %s callback failed", tick, label)
            failure = CallbackFailure(tick=tick, key=key, error=exc)
            self._failures.append(failure)
            if self.on_error is not None:
                try:
                    self.on_error(failure)
                except Exception:
                    log.exception("tick %d: on_error hook failed", tick)
            return False
        return True
