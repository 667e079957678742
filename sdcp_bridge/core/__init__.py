"""Core primitives for sdcp-bridge."""

from .protocols import Cancellable, Scheduler, StateStore, TimerCallback, Transport
from .timers import AsyncioScheduler, TimerGroup, TimerHandle

__all__ = [
    "AsyncioScheduler",
    "Cancellable",
    "Scheduler",
    "StateStore",
    "TimerCallback",
    "TimerGroup",
    "TimerHandle",
    "Transport",
]
