"""Per-question countdown driven by an injected scheduler."""

from __future__ import annotations

from typing import Callable, Literal, Optional, Protocol

__all__ = [
    "TimerHandle",
    "Scheduler",
    "SessionClock",
    "Urgency",
]

Urgency = Literal["calm", "warning", "critical"]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of periodic and one-shot callbacks.

    The Textual front-end maps these onto ``set_interval``/``set_timer``;
    tests use a virtual-time implementation.
    """

    def every(
        self, interval: float, callback: Callable[[], None]
    ) -> TimerHandle: ...

    def after(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle: ...


class SessionClock:
    """Countdown for the active question.

    ``remaining`` counts whole ticks. Expiry fires ``on_expire`` exactly once
    per :meth:`start`. Each scheduled tick is bound to a generation number so
    ticks delivered after :meth:`stop` or :meth:`pause` are dropped.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        duration: int = 60,
        tick_seconds: float = 1.0,
        on_expire: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        if duration <= 0:
            raise ValueError("duration must be positive")
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._scheduler = scheduler
        self.duration = duration
        self.tick_seconds = tick_seconds
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.remaining = duration
        self._handle: Optional[TimerHandle] = None
        self._generation = 0
        self._running = False
        self._paused = False
        self._expired = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def fraction_remaining(self) -> float:
        return self.remaining / self.duration

    @property
    def urgency(self) -> Urgency:
        fraction = self.fraction_remaining
        if fraction > 0.5:
            return "calm"
        if fraction > 1 / 6:
            return "warning"
        return "critical"

    def start(self) -> None:
        """Reset to the full duration and begin ticking."""

        self._cancel()
        self.remaining = self.duration
        self._expired = False
        self._paused = False
        self._running = True
        self._schedule()

    def stop(self) -> None:
        self._cancel()
        self._running = False
        self._paused = False

    def pause(self) -> None:
        if not self._running or self._paused:
            return
        self._cancel()
        self._paused = True

    def resume(self) -> None:
        if not self._running or not self._paused:
            return
        self._paused = False
        self._schedule()

    def _schedule(self) -> None:
        generation = self._generation
        self._handle = self._scheduler.every(
            self.tick_seconds, lambda: self._tick(generation)
        )

    def _cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self, generation: int) -> None:
        if generation != self._generation:
            return
        if not self._running or self._paused:
            return
        self.remaining = max(0, self.remaining - 1)
        if self.remaining > 0:
            if self.on_tick is not None:
                self.on_tick(self.remaining)
            return
        self.stop()
        self._expired = True
        if self.on_tick is not None:
            self.on_tick(0)
        if self.on_expire is not None:
            self.on_expire()
