"""
Outbound command policies.

Registers command and attribute-write handlers on every endpoint of an
entity's device graph. Each handler turns a controller command into a
gateway payload delta and hands it to the entity's debouncer. Handlers
run before the command's local effect, so the attributes they read are
the state the controller acted on.
"""

import logging
from typing import Any, Dict, Optional

from ..matter.clusters import ClusterId, ColorMode, SetpointMode
from ..matter.endpoint import Endpoint
from .colors import (
    matter_hue_to_degrees,
    matter_saturation_to_percent,
    matter_xy_to_float,
)
from .compiler import COOLING_SETPOINTS, HEATING_SETPOINTS
from .debouncer import OutboundDebouncer
from .rules import FAN_MODE_LOOKUP, SYSTEM_MODE_LOOKUP
from .schema import PropertyMap

logger = logging.getLogger(__name__)


Request = Dict[str, Any]

LEVEL_COMMANDS = ("moveToLevel", "moveToLevelWithOnOff")
COLOR_COMMANDS = ("moveToColorTemperature", "moveToHue", "moveToSaturation", "moveToHueAndSaturation", "moveToColor")


def transition_seconds(request: Request) -> Optional[float]:
    """Controller transition time (tenths of a second) in seconds."""
    value = request.get("transitionTime")
    if not value:
        return None
    return round(value / 10, 1)


class CommandHandlers:
    """
    Command policies of one entity.

    `entity` provides name, property_map, debouncer, supports_transition,
    is_group and setpoint_guard_seconds.
    """

    def __init__(self, entity):
        self.entity = entity
        self._last_hue: Dict[str, int] = {}
        self._last_saturation: Dict[str, int] = {}

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def property_map(self) -> PropertyMap:
        return self.entity.property_map

    @property
    def debouncer(self) -> OutboundDebouncer:
        return self.entity.debouncer

    def attach(self, graph: Endpoint) -> None:
        """Register handlers on the root endpoint and every child."""
        for endpoint in graph.walk():
            self._attach_endpoint(endpoint, "" if endpoint is graph else endpoint.name)

    def _attach_endpoint(self, endpoint: Endpoint, key: str) -> None:
        def bind(command: str, method) -> None:
            async def handler(request: Request, target: Endpoint) -> None:
                method(key, target, request)
            endpoint.add_command_handler(command, handler)

        if endpoint.has_cluster_server(ClusterId.IDENTIFY):
            bind("identify", self.identify)
        if endpoint.has_cluster_server(ClusterId.ON_OFF):
            bind("on", self.on)
            bind("off", self.off)
            bind("toggle", self.toggle)
        if endpoint.has_cluster_server(ClusterId.LEVEL_CONTROL):
            bind("moveToLevel", self.move_to_level)
            bind("moveToLevelWithOnOff", self.move_to_level_with_on_off)
        if endpoint.has_cluster_server(ClusterId.COLOR_CONTROL):
            bind("moveToColorTemperature", self.move_to_color_temperature)
            bind("moveToHue", self.move_to_hue)
            bind("moveToSaturation", self.move_to_saturation)
            bind("moveToHueAndSaturation", self.move_to_hue_and_saturation)
            bind("moveToColor", self.move_to_color)
        if endpoint.has_cluster_server(ClusterId.WINDOW_COVERING):
            bind("upOrOpen", self.up_or_open)
            bind("downOrClose", self.down_or_close)
            bind("stopMotion", self.stop_motion)
            bind("goToLiftPercentage", self.go_to_lift_percentage)
        if endpoint.has_cluster_server(ClusterId.DOOR_LOCK):
            bind("lockDoor", self.lock_door)
            bind("unlockDoor", self.unlock_door)
        if endpoint.has_cluster_server(ClusterId.THERMOSTAT):
            bind("setpointRaiseLower", self.setpoint_raise_lower)
            self._attach_thermostat_writes(endpoint, key)
        if endpoint.has_cluster_server(ClusterId.FAN_CONTROL):
            endpoint.on_attribute_write(
                ClusterId.FAN_CONTROL, "fanMode", lambda value, old: self.write_fan_mode(key, value))

    def _attach_thermostat_writes(self, endpoint: Endpoint, key: str) -> None:
        endpoint.on_attribute_write(
            ClusterId.THERMOSTAT, "systemMode", lambda value, old: self.write_system_mode(key, value))
        endpoint.on_attribute_write(
            ClusterId.THERMOSTAT, "occupiedHeatingSetpoint",
            lambda value, old: self.write_setpoint(key, HEATING_SETPOINTS, value))
        endpoint.on_attribute_write(
            ClusterId.THERMOSTAT, "occupiedCoolingSetpoint",
            lambda value, old: self.write_setpoint(key, COOLING_SETPOINTS, value))

    # ==================== Helpers ====================

    def _key(self, name: str, endpoint: str) -> str:
        return self.property_map.key_for(name, endpoint)

    def _color_key(self, endpoint: str) -> str:
        key = self.property_map.find("color_xy", endpoint) or self.property_map.find("color_hs", endpoint)
        if key is not None:
            return key
        return f"color_{endpoint}" if endpoint else "color"

    def _queue(self, command: str, delta: Dict[str, Any], request: Optional[Request] = None,
               suppress_seconds: Optional[float] = None) -> None:
        if request is not None and self.entity.supports_transition:
            transition = transition_seconds(request)
            if transition is not None:
                delta["transition"] = transition
        if suppress_seconds is None and self.entity.is_group:
            suppress_seconds = self.entity.setpoint_guard_seconds
        logger.debug(f"{self.name}: {command} -> {delta}")
        self.debouncer.queue(command, delta, suppress_seconds)

    def _ignored(self, command: str, reason: str) -> None:
        logger.debug(f"{self.name}: {command} ignored, {reason}")

    def _current_color(self, endpoint: Endpoint, key: str) -> Dict[str, Any]:
        if not endpoint.has_cluster_server(ClusterId.COLOR_CONTROL):
            return {}
        mode = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "colorMode")
        if mode == ColorMode.COLOR_TEMPERATURE_MIREDS:
            return {self._key("color_temp", key):
                    endpoint.get_attribute(ClusterId.COLOR_CONTROL, "colorTemperatureMireds")}
        if mode == ColorMode.CURRENT_X_AND_Y:
            x = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "currentX")
            y = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "currentY")
            if x is None or y is None:
                return {}
            return {self._color_key(key): {"x": matter_xy_to_float(x), "y": matter_xy_to_float(y)}}
        hue = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "currentHue")
        saturation = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "currentSaturation")
        if hue is None or saturation is None:
            return {}
        return {self._color_key(key): {"hue": matter_hue_to_degrees(hue),
                                       "saturation": matter_saturation_to_percent(saturation)}}

    # ==================== On/Off ====================

    def identify(self, key: str, endpoint: Endpoint, request: Request) -> None:
        logger.info(f"{self.name}: identify {endpoint.name} for {request.get('identifyTime', 0)} seconds")

    def on(self, key: str, endpoint: Endpoint, request: Request) -> None:
        if endpoint.get_attribute(ClusterId.ON_OFF, "onOff"):
            self._ignored("on", "already on")
            return
        delta: Dict[str, Any] = {self._key("state", key): "ON"}
        if endpoint.has_cluster_server(ClusterId.COLOR_CONTROL):
            # Restore the last level and color the controller knows about
            seed = {}
            if endpoint.has_cluster_server(ClusterId.LEVEL_CONTROL):
                seed[self._key("brightness", key)] = endpoint.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel")
            seed.update(self._current_color(endpoint, key))
            self.debouncer.cache.seed({k: v for k, v in seed.items() if v is not None})
        self._queue("on", delta)

    def off(self, key: str, endpoint: Endpoint, request: Request) -> None:
        if not endpoint.get_attribute(ClusterId.ON_OFF, "onOff"):
            self._ignored("off", "already off")
            return
        self._queue("off", {self._key("state", key): "OFF"})

    def toggle(self, key: str, endpoint: Endpoint, request: Request) -> None:
        if endpoint.get_attribute(ClusterId.ON_OFF, "onOff"):
            self.off(key, endpoint, request)
        else:
            self.on(key, endpoint, request)

    # ==================== Level ====================

    def move_to_level(self, key: str, endpoint: Endpoint, request: Request) -> None:
        level = request["level"]
        if level == endpoint.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel"):
            self._ignored("moveToLevel", f"level already {level}")
            return
        self._queue("moveToLevel", {self._key("brightness", key): level}, request)

    def move_to_level_with_on_off(self, key: str, endpoint: Endpoint, request: Request) -> None:
        level = request["level"]
        min_level = endpoint.get_attribute(ClusterId.LEVEL_CONTROL, "minLevel") or 1
        is_on = endpoint.has_cluster_server(ClusterId.ON_OFF) and endpoint.get_attribute(ClusterId.ON_OFF, "onOff")
        if level < min_level:
            if not is_on:
                self._ignored("moveToLevelWithOnOff", "already off")
                return
            self._queue("moveToLevelWithOnOff", {self._key("state", key): "OFF"})
            return
        if is_on and level == endpoint.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel"):
            self._ignored("moveToLevelWithOnOff", f"level already {level}")
            return
        delta = {self._key("state", key): "ON", self._key("brightness", key): level}
        self._queue("moveToLevelWithOnOff", delta, request)

    # ==================== Color ====================

    def move_to_color_temperature(self, key: str, endpoint: Endpoint, request: Request) -> None:
        value = request["colorTemperatureMireds"]
        same_mode = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "colorMode") == ColorMode.COLOR_TEMPERATURE_MIREDS
        if same_mode and value == endpoint.get_attribute(ClusterId.COLOR_CONTROL, "colorTemperatureMireds"):
            self._ignored("moveToColorTemperature", f"already {value} mireds")
            return
        self._queue("moveToColorTemperature", {self._key("color_temp", key): value}, request)

    def _queue_hue_saturation(self, command: str, key: str, endpoint: Endpoint, request: Request) -> None:
        hue = self._last_hue.get(key)
        if hue is None:
            hue = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "currentHue") or 0
        saturation = self._last_saturation.get(key)
        if saturation is None:
            saturation = endpoint.get_attribute(ClusterId.COLOR_CONTROL, "currentSaturation") or 0
        color = {"hue": matter_hue_to_degrees(hue), "saturation": matter_saturation_to_percent(saturation)}
        self._queue(command, {self._color_key(key): color}, request)

    def move_to_hue(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._last_hue[key] = request["hue"]
        self._queue_hue_saturation("moveToHue", key, endpoint, request)

    def move_to_saturation(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._last_saturation[key] = request["saturation"]
        self._queue_hue_saturation("moveToSaturation", key, endpoint, request)

    def move_to_hue_and_saturation(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._last_hue[key] = request["hue"]
        self._last_saturation[key] = request["saturation"]
        self._queue_hue_saturation("moveToHueAndSaturation", key, endpoint, request)

    def move_to_color(self, key: str, endpoint: Endpoint, request: Request) -> None:
        color = {"x": matter_xy_to_float(request["colorX"]), "y": matter_xy_to_float(request["colorY"])}
        self._queue("moveToColor", {self._color_key(key): color}, request)

    # ==================== Window covering ====================

    def up_or_open(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._queue("upOrOpen", {self._key("state", key): "OPEN"})

    def down_or_close(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._queue("downOrClose", {self._key("state", key): "CLOSE"})

    def stop_motion(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._queue("stopMotion", {self._key("state", key): "STOP"})

    def go_to_lift_percentage(self, key: str, endpoint: Endpoint, request: Request) -> None:
        position = round(100 - request["liftPercent100thsValue"] / 100)
        self._queue("goToLiftPercentage", {self._key("position", key): position})

    # ==================== Door lock ====================

    def lock_door(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._queue("lockDoor", {self._key("state", key): "LOCK"})

    def unlock_door(self, key: str, endpoint: Endpoint, request: Request) -> None:
        self._queue("unlockDoor", {self._key("state", key): "UNLOCK"})

    # ==================== Thermostat and fan ====================

    def _setpoint_key(self, key: str, names: tuple) -> Optional[str]:
        for name in names:
            found = self.property_map.find(name, key)
            if found is not None:
                return found
        return None

    def setpoint_raise_lower(self, key: str, endpoint: Endpoint, request: Request) -> None:
        mode = request.get("mode", SetpointMode.BOTH)
        step = request.get("amount", 0) * 10
        delta: Dict[str, Any] = {}
        targets = []
        if mode in (SetpointMode.HEAT, SetpointMode.BOTH):
            targets.append((HEATING_SETPOINTS, "occupiedHeatingSetpoint"))
        if mode in (SetpointMode.COOL, SetpointMode.BOTH):
            targets.append((COOLING_SETPOINTS, "occupiedCoolingSetpoint"))
        for names, attribute in targets:
            prop = self._setpoint_key(key, names)
            current = endpoint.get_attribute(ClusterId.THERMOSTAT, attribute)
            if prop is None or current is None:
                continue
            delta[prop] = (current + step) / 100
        if not delta:
            self._ignored("setpointRaiseLower", "no matching setpoint")
            return
        self._queue("setpointRaiseLower", delta, suppress_seconds=self.entity.setpoint_guard_seconds)

    def write_system_mode(self, key: str, value: int) -> None:
        if not 0 <= value < len(SYSTEM_MODE_LOOKUP) or not SYSTEM_MODE_LOOKUP[value]:
            self._ignored("systemMode", f"unsupported mode {value}")
            return
        self._queue("systemMode", {self._key("system_mode", key): SYSTEM_MODE_LOOKUP[value]})

    def write_setpoint(self, key: str, names: tuple, value: int) -> None:
        prop = self._setpoint_key(key, names)
        if prop is None:
            self._ignored("setpoint", f"no {names[0]} exposed")
            return
        self._queue("setpoint", {prop: value / 100}, suppress_seconds=self.entity.setpoint_guard_seconds)

    def write_fan_mode(self, key: str, value: int) -> None:
        mode_key = self.property_map.find("mode", key)
        if mode_key is not None and 0 <= value < len(FAN_MODE_LOOKUP):
            self._queue("fanMode", {mode_key: FAN_MODE_LOOKUP[value]})
            return
        self._queue("fanMode", {self._key("state", key): "OFF" if value == 0 else "ON"})
