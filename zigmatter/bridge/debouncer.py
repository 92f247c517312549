"""
Outbound command debouncer and echo suppression.

Command handlers merge their deltas into a per-entity cache. Each merge
restarts a short debounce timer; when it fires the cache is published as
one gateway "set" message and the entity enters a suppression window in
which inbound state messages are ignored, since they are the device's
echo of what was just published.

States: IDLE -> DEBOUNCING -> PUBLISHING -> SUPPRESSING -> IDLE
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


DEBOUNCE_SECONDS = 0.1
SUPPRESS_SECONDS = 2.0
SETPOINT_GUARD_SECONDS = 5.0

Payload = Dict[str, Any]
PublishFn = Callable[[str, str, Payload], None]


class PublishState(str, Enum):
    """State of an entity's outbound pipeline."""
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    PUBLISHING = "publishing"
    SUPPRESSING = "suppressing"


def _split_color_key(key: str) -> Optional[Tuple[str, str]]:
    """Return ("color_temp" | "color", suffix) for color keys, None otherwise."""
    if key == "color_temp" or key.startswith("color_temp_"):
        return ("color_temp", key[len("color_temp"):])
    if key == "color" or (key.startswith("color_") and not key.startswith("color_mode")):
        return ("color", key[len("color"):])
    return None


class CommandCache:
    """
    Pending outbound fields of one entity.

    A color temperature and a color for the same endpoint never coexist:
    the later write removes the earlier one.
    """

    def __init__(self):
        self.payload: Payload = {}

    def __bool__(self) -> bool:
        return bool(self.payload)

    def merge(self, delta: Payload) -> None:
        for key, value in delta.items():
            split = _split_color_key(key)
            if split is not None:
                kind, suffix = split
                other = ("color" if kind == "color_temp" else "color_temp") + suffix
                self.payload.pop(other, None)
            self.payload[key] = value

    def seed(self, values: Payload) -> None:
        """Add fields not already pending; a pending color choice is kept."""
        for key, value in values.items():
            if key in self.payload:
                continue
            split = _split_color_key(key)
            if split is not None:
                kind, suffix = split
                other = ("color" if kind == "color_temp" else "color_temp") + suffix
                if other in self.payload:
                    continue
            self.payload[key] = value

    def clear(self) -> None:
        self.payload = {}


class OutboundDebouncer:
    """
    Coalesces an entity's commands into single publishes.

    `publish(command, entity_name, payload)` is called once per burst.
    """

    def __init__(
        self,
        entity_name: str,
        publish: PublishFn,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        suppress_seconds: float = SUPPRESS_SECONDS,
    ):
        self.entity_name = entity_name
        self.debounce_seconds = debounce_seconds
        self.suppress_seconds = suppress_seconds
        self.cache = CommandCache()
        self.state = PublishState.IDLE
        self.publish_count = 0
        self._publish = publish
        self._command: Optional[str] = None
        self._pending_suppress: Optional[float] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._suppress_handle: Optional[asyncio.TimerHandle] = None

    @property
    def suppressed(self) -> bool:
        """True while inbound state messages must be ignored."""
        return self._suppress_handle is not None or self.state == PublishState.PUBLISHING

    def _transition(self, state: PublishState) -> None:
        if state != self.state:
            logger.debug(f"{self.entity_name}: outbound {self.state.value} -> {state.value}")
            self.state = state

    def queue(self, command: str, delta: Payload, suppress_seconds: Optional[float] = None) -> None:
        """Merge a command delta and restart the debounce timer."""
        self.cache.merge(delta)
        self._command = command
        if suppress_seconds is not None:
            self._pending_suppress = max(self._pending_suppress or 0, suppress_seconds)

        loop = asyncio.get_running_loop()
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = loop.call_later(self.debounce_seconds, self._flush)
        self._transition(PublishState.DEBOUNCING)

    def _flush(self) -> None:
        self._debounce_handle = None
        payload = dict(self.cache.payload)
        command = self._command or "set"
        window = self._pending_suppress or self.suppress_seconds
        self.cache.clear()
        self._command = None
        self._pending_suppress = None

        if not payload:
            self._transition(PublishState.IDLE)
            return

        self._transition(PublishState.PUBLISHING)
        try:
            self._publish(command, self.entity_name, payload)
        except Exception as e:
            logger.error(f"{self.entity_name}: publish of {payload} failed: {e}")
            self._transition(PublishState.IDLE)
            return
        self.publish_count += 1
        self.suppress(window)

    def suppress(self, seconds: Optional[float] = None) -> None:
        """Enter (or extend) the suppression window."""
        seconds = self.suppress_seconds if seconds is None else seconds
        if self._suppress_handle is not None:
            self._suppress_handle.cancel()
        loop = asyncio.get_running_loop()
        self._suppress_handle = loop.call_later(seconds, self._end_suppression)
        logger.debug(f"No update for {seconds:g} seconds to allow the device {self.entity_name} to update its state")
        if self.state != PublishState.DEBOUNCING:
            self._transition(PublishState.SUPPRESSING)

    def _end_suppression(self) -> None:
        self._suppress_handle = None
        if self.state == PublishState.SUPPRESSING:
            self._transition(PublishState.IDLE)

    def clear_suppression(self) -> None:
        if self._suppress_handle is not None:
            self._suppress_handle.cancel()
        self._end_suppression()

    def cancel(self) -> None:
        """Drop pending commands and cancel both timers."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._suppress_handle is not None:
            self._suppress_handle.cancel()
            self._suppress_handle = None
        self.cache.clear()
        self._command = None
        self._pending_suppress = None
        self._transition(PublishState.IDLE)
