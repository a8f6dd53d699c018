"""
Audible alert output.

Alert logic only knows the Toner protocol; the terminal bell and the silent
toner are the two shipped implementations. Tests inject a recording toner.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Protocol

from rich.console import Console

from kitchen_feed.components.core.constants import KitchenConstants


class NotificationType(str, Enum):
    NEW_ORDER = "new_order"
    STATUS_UPDATE = "status_update"
    URGENT = "urgent"
    SUCCESS = "success"
    ERROR = "error"


# Hz; distinct per type so staff can tell alerts apart without looking
TONE_FREQUENCIES: Final[dict[NotificationType, int]] = {
    NotificationType.NEW_ORDER: 800,
    NotificationType.URGENT: 1000,
    NotificationType.SUCCESS: 600,
    NotificationType.ERROR: 400,
    NotificationType.STATUS_UPDATE: 700,
}


@dataclass(frozen=True, slots=True)
class Tone:
    """One short sine tone."""

    frequency: int
    duration: float
    volume: float

    @classmethod
    def for_type(cls, notification_type: NotificationType, volume: float) -> Tone:
        return cls(
            frequency=TONE_FREQUENCIES[notification_type],
            duration=KitchenConstants.TONE_DURATION_SECONDS,
            volume=volume,
        )


class Toner(Protocol):
    """Audio output capability."""

    def play(self, tone: Tone) -> None: ...

    def close(self) -> None: ...


class NullToner:
    """Plays nothing."""

    def play(self, tone: Tone) -> None:
        return None

    def close(self) -> None:
        return None


class TerminalBellToner:
    """
    Rings the terminal bell.

    A terminal bell has no pitch or level, so frequency and duration are
    ignored; a zero-volume tone stays silent.
    """

    def __init__(self, console: Console | None = None):
        self._console = console or Console(stderr=True)
        self._closed = False

    def play(self, tone: Tone) -> None:
        if self._closed or tone.volume <= 0:
            return
        self._console.bell()

    def close(self) -> None:
        self._closed = True
