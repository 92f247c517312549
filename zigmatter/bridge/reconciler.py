"""
Inbound state reconciler.

Applies gateway state payloads to an entity's device graph. Duplicate
and unchanged payloads are dropped, payloads arriving while the entity
suppresses its own echo are skipped, and every remaining key is converted
through the translation rule table and written only when the attribute
value actually changes.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional

from ..matter.clusters import BatChargeLevel, ClusterId, ColorMode, MovementStatus
from ..matter.endpoint import Endpoint
from .colors import degrees_to_matter_hue, percent_to_matter_saturation, xy_to_matter_hs
from .compiler import COOLING_SETPOINTS, HEATING_SETPOINTS
from .rules import ConversionError, SYSTEM_MODE_LOOKUP, TranslationRule, find_rule, lift
from .schema import PressKind, PropertyDescriptor, PropertyMap

logger = logging.getLogger(__name__)


Payload = Dict[str, Any]

DUPLICATE_WINDOW_SECONDS = 60.0
IGNORED_KEYS = ("linkquality", "last_seen")
COLOR_KEYS = ("color", "color_temp", "color_mode")

BATTERY_WARNING_PERCENT = 20
BATTERY_CRITICAL_PERCENT = 10

MOVEMENT = {"UP": MovementStatus.OPENING, "DOWN": MovementStatus.CLOSING}


def comparison_key(payload: Payload, ignore: Iterable[str]) -> Payload:
    """
    Payload reduced to the keys that matter for change detection.

    Pure: the input payload is not modified.
    """
    ignored = set(ignore)
    return {key: value for key, value in payload.items() if key not in ignored}


def battery_charge_level(percent: float) -> BatChargeLevel:
    if percent < BATTERY_CRITICAL_PERCENT:
        return BatChargeLevel.CRITICAL
    if percent < BATTERY_WARNING_PERCENT:
        return BatChargeLevel.WARNING
    return BatChargeLevel.OK


class InboundReconciler:
    """Applies state, online and offline notifications for one entity."""

    def __init__(
        self,
        entity_name: str,
        property_map: PropertyMap,
        graph: Optional[Endpoint],
        ignored_features: Iterable[str] = (),
        is_suppressed: Callable[[], bool] = lambda: False,
        duplicate_window: float = DUPLICATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.entity_name = entity_name
        self.property_map = property_map
        self.graph = graph
        self.ignore = set(IGNORED_KEYS) | set(ignored_features)
        self.duplicate_window = duplicate_window
        self._is_suppressed = is_suppressed
        self._clock = clock
        self._last_message: Optional[Payload] = None
        self._last_time = 0.0
        self.snapshot: Payload = {}

    # ==================== Availability ====================

    def _set_reachable(self, reachable: bool) -> None:
        if self.graph is None:
            return
        self.graph.set_attribute(ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION, "reachable", reachable)
        self.graph.trigger_event(
            ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION, "reachableChanged", {"reachableNewValue": reachable}
        )

    def handle_online(self) -> None:
        logger.info(f"{self.entity_name}: ONLINE")
        self._set_reachable(True)

    def handle_offline(self) -> None:
        logger.warning(f"{self.entity_name}: OFFLINE")
        self._set_reachable(False)

    # ==================== State ====================

    def handle_state(self, payload: Payload) -> int:
        """Reconcile one state payload. Returns the number of attributes changed."""
        now = self._clock()
        previous, previous_time = self._last_message, self._last_time
        self._last_message, self._last_time = dict(payload), now

        filtered = comparison_key(payload, self.ignore)
        if (
            previous is not None
            and now - previous_time < self.duplicate_window
            and "action" not in previous
            and comparison_key(previous, self.ignore) == filtered
        ):
            logger.debug(f"{self.entity_name}: skipped duplicate message")
            return 0

        if filtered == self.snapshot:
            logger.debug(f"{self.entity_name}: skipped unchanged message")
            return 0
        self.snapshot = {key: value for key, value in filtered.items() if key != "action"}

        if self.graph is None:
            logger.debug(f"{self.entity_name}: no device graph, message ignored")
            return 0
        if self._is_suppressed():
            logger.debug(f"{self.entity_name}: message ignored while waiting for the device echo")
            return 0

        working = dict(filtered)
        if working.get("state") == "OFF":
            for key in COLOR_KEYS:
                working.pop(key, None)

        writes = 0
        for key, value in working.items():
            writes += self._apply(key, value, working)
        writes += self._synthesize_battery_level(working)
        return writes

    def _endpoint(self, key: str) -> Optional[Endpoint]:
        if self.graph is None:
            return None
        if not key:
            return self.graph
        return self.graph.get_child_endpoint_by_name(key)

    def _apply(self, key: str, value: Any, payload: Payload) -> int:
        if key == "color_mode":
            return 0
        if key == "action":
            return self._apply_action(value)
        if key == "moving":
            return self._apply_moving(value)

        descriptor = self.property_map.get(key)
        if descriptor is None:
            logger.debug(f"{self.entity_name}: no descriptor for {key}")
            return 0
        rule = find_rule(descriptor.type, descriptor.name)
        if rule is None:
            logger.debug(f"{self.entity_name}: no rule for {descriptor.type or 'generic'} {descriptor.name}")
            return 0
        endpoint = self._endpoint(descriptor.endpoint)
        if endpoint is None:
            logger.debug(f"{self.entity_name}: endpoint {descriptor.endpoint} not found for {key}")
            return 0

        name = descriptor.name
        if name == "position":
            return self._apply_position(endpoint, value, payload.get("moving"))
        if descriptor.type == "cover" and name == "state":
            return 0
        if name == "color_temp":
            if payload.get("color_mode") != "color_temp":
                return 0
            return self._apply_rule(endpoint, rule, key, value) + self._write(
                endpoint, ClusterId.COLOR_CONTROL, "colorMode", ColorMode.COLOR_TEMPERATURE_MIREDS)
        if name in ("color_xy", "color_hs"):
            return self._apply_color(endpoint, value, payload.get("color_mode"))
        if name in HEATING_SETPOINTS and not self._mode_allows(endpoint, payload, ("heat", "auto")):
            return 0
        if name in COOLING_SETPOINTS and not self._mode_allows(endpoint, payload, ("cool", "auto")):
            return 0
        return self._apply_rule(endpoint, rule, key, value)

    def _apply_rule(self, endpoint: Endpoint, rule: TranslationRule, key: str, value: Any) -> int:
        try:
            converted = rule.convert(value)
        except ConversionError as e:
            logger.debug(f"{self.entity_name}: dropped {key}={value!r}: {e}")
            return 0
        return self._write(endpoint, rule.cluster, rule.attribute, converted)

    def _write(self, endpoint: Endpoint, cluster: ClusterId, attribute: str, value: Any) -> int:
        if not endpoint.has_attribute(cluster, attribute):
            logger.debug(f"{self.entity_name}: {endpoint.name} has no attribute {cluster.name}.{attribute}")
            return 0
        if endpoint.get_attribute(cluster, attribute) == value:
            logger.debug(f"{self.entity_name}: {cluster.name}.{attribute} already {value!r}")
            return 0
        endpoint.set_attribute(cluster, attribute, value)
        logger.info(f"{self.entity_name}: set {endpoint.name} {cluster.name}.{attribute} to {value!r}")
        return 1

    # ==================== Special keys ====================

    def _apply_action(self, value: Any) -> int:
        if not value:
            return 0
        descriptor: Optional[PropertyDescriptor] = self.property_map.get(f"action_{value}")
        if descriptor is None:
            logger.debug(f"{self.entity_name}: action {value} not mapped")
            return 0
        endpoint = self._endpoint(descriptor.endpoint)
        if endpoint is None or not endpoint.has_cluster_server(ClusterId.SWITCH):
            logger.debug(f"{self.entity_name}: no switch endpoint for action {value}")
            return 0
        logger.info(f"{self.entity_name}: action {value} -> {descriptor.action.value} press on {endpoint.name}")
        self._press(endpoint, descriptor.action)
        return 1

    @staticmethod
    def _press(endpoint: Endpoint, kind: PressKind) -> None:
        switch = ClusterId.SWITCH
        endpoint.set_attribute(switch, "currentPosition", 1)
        endpoint.trigger_event(switch, "initialPress", {"newPosition": 1})
        if kind == PressKind.LONG:
            endpoint.trigger_event(switch, "longPress", {"newPosition": 1})
            endpoint.set_attribute(switch, "currentPosition", 0)
            endpoint.trigger_event(switch, "longRelease", {"previousPosition": 1})
            return

        endpoint.set_attribute(switch, "currentPosition", 0)
        endpoint.trigger_event(switch, "shortRelease", {"previousPosition": 1})
        presses = 1
        if kind == PressKind.DOUBLE:
            presses = 2
            endpoint.set_attribute(switch, "currentPosition", 1)
            endpoint.trigger_event(switch, "multiPressOngoing", {"newPosition": 1, "currentNumberOfPressesCounted": 2})
            endpoint.set_attribute(switch, "currentPosition", 0)
            endpoint.trigger_event(switch, "shortRelease", {"previousPosition": 1})
        endpoint.trigger_event(
            switch, "multiPressComplete", {"previousPosition": 1, "totalNumberOfPressesCounted": presses}
        )

    def _cover_endpoint(self) -> Optional[Endpoint]:
        key = self.property_map.find("position")
        endpoint = self._endpoint(self.property_map[key].endpoint if key else "")
        if endpoint is None or not endpoint.has_cluster_server(ClusterId.WINDOW_COVERING):
            return None
        return endpoint

    def _apply_position(self, endpoint: Endpoint, value: Any, moving: Any) -> int:
        try:
            position = lift(value)
        except ConversionError as e:
            logger.debug(f"{self.entity_name}: dropped position {value!r}: {e}")
            return 0
        writes = self._write(endpoint, ClusterId.WINDOW_COVERING, "currentPositionLiftPercent100ths", position)
        if moving in (None, "STOP"):
            writes += self._write(endpoint, ClusterId.WINDOW_COVERING, "targetPositionLiftPercent100ths", position)
        return writes

    def _apply_moving(self, value: Any) -> int:
        endpoint = self._cover_endpoint()
        if endpoint is None:
            logger.debug(f"{self.entity_name}: moving reported without a window covering")
            return 0
        status = MOVEMENT.get(value, MovementStatus.STOPPED)
        writes = self._write(endpoint, ClusterId.WINDOW_COVERING, "operationalStatus",
                             {"global": status, "lift": status, "tilt": MovementStatus.STOPPED})
        if value == "STOP":
            current = endpoint.get_attribute(ClusterId.WINDOW_COVERING, "currentPositionLiftPercent100ths")
            writes += self._write(endpoint, ClusterId.WINDOW_COVERING, "targetPositionLiftPercent100ths", current)
        return writes

    def _apply_color(self, endpoint: Endpoint, value: Any, color_mode: Any) -> int:
        if not isinstance(value, dict):
            return 0
        if color_mode == "hs" and "hue" in value and "saturation" in value:
            hue = degrees_to_matter_hue(value["hue"])
            saturation = percent_to_matter_saturation(value["saturation"])
        elif color_mode == "xy" and "x" in value and "y" in value:
            hue, saturation = xy_to_matter_hs(value["x"], value["y"])
        else:
            logger.debug(f"{self.entity_name}: color ignored in color_mode {color_mode}")
            return 0
        cluster = ClusterId.COLOR_CONTROL
        return (
            self._write(endpoint, cluster, "currentHue", hue)
            + self._write(endpoint, cluster, "currentSaturation", saturation)
            + self._write(endpoint, cluster, "colorMode", ColorMode.CURRENT_HUE_AND_SATURATION)
        )

    @staticmethod
    def _mode_allows(endpoint: Endpoint, payload: Payload, modes: tuple) -> bool:
        mode = payload.get("system_mode")
        if mode is None and endpoint.has_cluster_server(ClusterId.THERMOSTAT):
            current = endpoint.get_attribute(ClusterId.THERMOSTAT, "systemMode")
            if current is not None and 0 <= current < len(SYSTEM_MODE_LOOKUP):
                mode = SYSTEM_MODE_LOOKUP[current]
        return mode is None or mode in modes

    def _synthesize_battery_level(self, payload: Payload) -> int:
        percent = payload.get("battery")
        if "battery_low" in payload or not isinstance(percent, (int, float)) or isinstance(percent, bool):
            return 0
        if self.graph is None or not self.graph.has_attribute(ClusterId.POWER_SOURCE, "batChargeLevel"):
            return 0
        return self._write(self.graph, ClusterId.POWER_SOURCE, "batChargeLevel", battery_charge_level(percent))
