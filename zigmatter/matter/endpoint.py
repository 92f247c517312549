"""
In-memory Matter endpoint runtime.

Provides the read/write/subscribe contract the bridge uses against a
device-model runtime: cluster servers with attribute storage, attribute
subscriptions, controller writes, command handlers, events, semantic
tags, fixed labels and child endpoints looked up by name.

Invoking a standard command runs the registered handlers first and then
applies the command's local attribute effect, so handlers always see the
state the controller acted on.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from .clusters import (
    CLUSTER_DEFAULTS,
    ClusterId,
    ColorMode,
    LIFT_CLOSED,
    LIFT_OPEN,
    LockState,
    SemanticTag,
    SetpointMode,
    cluster_name,
)
from .device_types import DeviceTypeDefinition

logger = logging.getLogger(__name__)


AttributeListener = Callable[[Any, Any], None]
CommandHandler = Callable[[Dict[str, Any], "Endpoint"], Awaitable[None]]
EventListener = Callable[["EndpointEvent"], None]


class UnknownClusterError(KeyError):
    """Raised when an attribute is accessed on a cluster the endpoint does not host."""

    def __init__(self, endpoint: str, cluster_id: int):
        self.endpoint = endpoint
        self.cluster_id = cluster_id
        super().__init__(f"Endpoint {endpoint} has no {cluster_name(cluster_id)} cluster server")


class UnknownEndpointError(KeyError):
    """Raised when a child endpoint is looked up by a name it does not have."""

    def __init__(self, parent: str, name: str):
        self.parent = parent
        self.name = name
        super().__init__(f"Endpoint {parent} has no child endpoint {name}")


class UnknownCommandError(Exception):
    """Raised when a command has neither a handler nor a local effect."""


@dataclass
class ClusterServer:
    """A server cluster hosted on an endpoint."""
    cluster_id: ClusterId
    attributes: Dict[str, Any] = field(default_factory=dict)
    features: Dict[str, bool] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return cluster_name(self.cluster_id)


@dataclass
class EndpointEvent:
    """An event emitted by a cluster server."""
    endpoint: str
    cluster_id: ClusterId
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)


class Endpoint:
    """
    A Matter endpoint with device types, cluster servers and children.

    The root endpoint of a bridged device carries the bridged node device
    type; multi-channel devices and button devices add named children.
    """

    def __init__(
        self,
        name: str,
        device_types: Optional[List[DeviceTypeDefinition]] = None,
        endpoint_id: Optional[int] = None,
    ):
        self.name = name
        self.endpoint_id = endpoint_id
        self.device_types: List[DeviceTypeDefinition] = list(device_types or [])
        self.clusters: Dict[ClusterId, ClusterServer] = {}
        self.client_clusters: List[ClusterId] = []
        self.children: List["Endpoint"] = []
        self.parent: Optional["Endpoint"] = None
        self.tags: List[SemanticTag] = []
        self.fixed_labels: List[Tuple[str, str]] = []
        self.events: List[EndpointEvent] = []

        self._subscribers: Dict[Tuple[ClusterId, str], List[AttributeListener]] = {}
        self._write_handlers: Dict[Tuple[ClusterId, str], List[AttributeListener]] = {}
        self._event_listeners: List[EventListener] = []
        self._command_handlers: Dict[str, List[CommandHandler]] = {}

    def __repr__(self) -> str:
        return f"<Endpoint {self.name!r} types={[dt.name for dt in self.device_types]}>"

    # ==================== Clusters ====================

    def add_cluster_server(
        self,
        cluster_id: ClusterId,
        attributes: Optional[Dict[str, Any]] = None,
        features: Optional[Dict[str, bool]] = None,
    ) -> ClusterServer:
        """Create (or extend) a cluster server seeded with default attribute values."""
        server = self.clusters.get(cluster_id)
        if server is None:
            server = ClusterServer(cluster_id, dict(CLUSTER_DEFAULTS.get(cluster_id, {})))
            self.clusters[cluster_id] = server
        if attributes:
            server.attributes.update(attributes)
        if features:
            server.features.update(features)
        return server

    def has_cluster_server(self, cluster_id: ClusterId) -> bool:
        return cluster_id in self.clusters

    def get_cluster_server(self, cluster_id: ClusterId) -> ClusterServer:
        server = self.clusters.get(cluster_id)
        if server is None:
            raise UnknownClusterError(self.name, cluster_id)
        return server

    def has_attribute(self, cluster_id: ClusterId, attribute: str) -> bool:
        server = self.clusters.get(cluster_id)
        return server is not None and attribute in server.attributes

    def get_all_cluster_server_names(self) -> List[str]:
        return [server.name for server in self.clusters.values()]

    # ==================== Attributes ====================

    def get_attribute(self, cluster_id: ClusterId, attribute: str) -> Any:
        return self.get_cluster_server(cluster_id).attributes.get(attribute)

    def set_attribute(self, cluster_id: ClusterId, attribute: str, value: Any) -> bool:
        """
        Local write of an attribute value.

        Returns True when the stored value changed. Subscribers are only
        notified on change.
        """
        server = self.get_cluster_server(cluster_id)
        old = server.attributes.get(attribute)
        if attribute in server.attributes and old == value:
            return False
        server.attributes[attribute] = value
        for listener in list(self._subscribers.get((cluster_id, attribute), [])):
            listener(value, old)
        return True

    def subscribe_attribute(
        self, cluster_id: ClusterId, attribute: str, listener: AttributeListener
    ) -> Callable[[], None]:
        """Subscribe to changes of an attribute. Returns an unsubscribe callable."""
        listeners = self._subscribers.setdefault((cluster_id, attribute), [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def write_attribute(self, cluster_id: ClusterId, attribute: str, value: Any) -> None:
        """Attribute write issued by a controller."""
        old = self.get_attribute(cluster_id, attribute)
        self.set_attribute(cluster_id, attribute, value)
        for handler in list(self._write_handlers.get((cluster_id, attribute), [])):
            handler(value, old)

    def on_attribute_write(
        self, cluster_id: ClusterId, attribute: str, handler: AttributeListener
    ) -> Callable[[], None]:
        """Register a handler for controller writes of an attribute."""
        handlers = self._write_handlers.setdefault((cluster_id, attribute), [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    # ==================== Events ====================

    def trigger_event(self, cluster_id: ClusterId, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        record = EndpointEvent(self.name, cluster_id, event, dict(payload or {}))
        self.events.append(record)
        for listener in list(self._event_listeners):
            listener(record)

    def subscribe_events(self, listener: EventListener) -> Callable[[], None]:
        self._event_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._event_listeners:
                self._event_listeners.remove(listener)

        return unsubscribe

    # ==================== Commands ====================

    def add_command_handler(self, command: str, handler: CommandHandler) -> None:
        self._command_handlers.setdefault(command, []).append(handler)

    def has_command_handler(self, command: str) -> bool:
        return bool(self._command_handlers.get(command))

    async def invoke_command(self, command: str, request: Optional[Dict[str, Any]] = None) -> None:
        """Invoke a command as a controller would."""
        request = dict(request or {})
        handlers = list(self._command_handlers.get(command, []))
        effect = COMMAND_EFFECTS.get(command)
        if not handlers and effect is None:
            raise UnknownCommandError(f"Endpoint {self.name} does not handle command {command}")

        for handler in handlers:
            await handler(request, self)
        if effect is not None:
            effect(self, request)

    def clear_handlers(self) -> None:
        """Drop every handler and subscription registered on this endpoint and its children."""
        for endpoint in self.walk():
            endpoint._subscribers.clear()
            endpoint._write_handlers.clear()
            endpoint._event_listeners.clear()
            endpoint._command_handlers.clear()

    # ==================== Structure ====================

    def add_fixed_label(self, label: str, value: str) -> None:
        self.add_cluster_server(ClusterId.FIXED_LABEL)
        self.fixed_labels.append((label, value))
        self.clusters[ClusterId.FIXED_LABEL].attributes["labelList"] = [
            {"label": lbl, "value": val} for lbl, val in self.fixed_labels
        ]

    def add_tag(self, tag: SemanticTag) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def add_child_endpoint(self, child: "Endpoint") -> "Endpoint":
        child.parent = self
        self.children.append(child)
        return child

    def get_child_endpoint_by_name(self, name: str) -> Optional["Endpoint"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def get_child_endpoint(self, name: str) -> "Endpoint":
        child = self.get_child_endpoint_by_name(name)
        if child is None:
            raise UnknownEndpointError(self.name, name)
        return child

    def walk(self) -> Iterator["Endpoint"]:
        """Yield this endpoint and then every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "endpoint_id": self.endpoint_id,
            "device_types": [{"name": dt.name, "code": dt.code} for dt in self.device_types],
            "clusters": [
                {
                    "cluster_id": server.cluster_id.value,
                    "name": server.name,
                    "features": server.features,
                    "attributes": server.attributes,
                }
                for server in self.clusters.values()
            ],
            "tags": [tag.to_dict() for tag in self.tags],
            "children": [child.to_dict() for child in self.children],
        }


# =============================================================================
# Local attribute effects of standard commands
# =============================================================================

def _set_if_hosted(endpoint: Endpoint, cluster_id: ClusterId, attribute: str, value: Any) -> None:
    if endpoint.has_cluster_server(cluster_id):
        endpoint.set_attribute(cluster_id, attribute, value)


def _on(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_if_hosted(endpoint, ClusterId.ON_OFF, "onOff", True)


def _off(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_if_hosted(endpoint, ClusterId.ON_OFF, "onOff", False)


def _toggle(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    if endpoint.has_cluster_server(ClusterId.ON_OFF):
        endpoint.set_attribute(ClusterId.ON_OFF, "onOff", not endpoint.get_attribute(ClusterId.ON_OFF, "onOff"))


def _move_to_level(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_if_hosted(endpoint, ClusterId.LEVEL_CONTROL, "currentLevel", request["level"])


def _move_to_level_with_on_off(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    if not endpoint.has_cluster_server(ClusterId.LEVEL_CONTROL):
        return
    level = request["level"]
    min_level = endpoint.get_attribute(ClusterId.LEVEL_CONTROL, "minLevel") or 1
    if level < min_level:
        _off(endpoint, request)
        return
    endpoint.set_attribute(ClusterId.LEVEL_CONTROL, "currentLevel", level)
    _on(endpoint, request)


def _set_color(endpoint: Endpoint, mode: ColorMode, values: Dict[str, Any]) -> None:
    if not endpoint.has_cluster_server(ClusterId.COLOR_CONTROL):
        return
    for attribute, value in values.items():
        endpoint.set_attribute(ClusterId.COLOR_CONTROL, attribute, value)
    endpoint.set_attribute(ClusterId.COLOR_CONTROL, "colorMode", mode)


def _move_to_color_temperature(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_color(endpoint, ColorMode.COLOR_TEMPERATURE_MIREDS,
               {"colorTemperatureMireds": request["colorTemperatureMireds"]})


def _move_to_hue(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_color(endpoint, ColorMode.CURRENT_HUE_AND_SATURATION, {"currentHue": request["hue"]})


def _move_to_saturation(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_color(endpoint, ColorMode.CURRENT_HUE_AND_SATURATION, {"currentSaturation": request["saturation"]})


def _move_to_hue_and_saturation(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_color(endpoint, ColorMode.CURRENT_HUE_AND_SATURATION,
               {"currentHue": request["hue"], "currentSaturation": request["saturation"]})


def _move_to_color(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_color(endpoint, ColorMode.CURRENT_X_AND_Y,
               {"currentX": request["colorX"], "currentY": request["colorY"]})


def _set_lift_target(endpoint: Endpoint, target: int) -> None:
    _set_if_hosted(endpoint, ClusterId.WINDOW_COVERING, "targetPositionLiftPercent100ths", target)


def _up_or_open(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_lift_target(endpoint, LIFT_OPEN)


def _down_or_close(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_lift_target(endpoint, LIFT_CLOSED)


def _stop_motion(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    if endpoint.has_cluster_server(ClusterId.WINDOW_COVERING):
        current = endpoint.get_attribute(ClusterId.WINDOW_COVERING, "currentPositionLiftPercent100ths")
        _set_lift_target(endpoint, current)


def _go_to_lift_percentage(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_lift_target(endpoint, request["liftPercent100thsValue"])


def _lock_door(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_if_hosted(endpoint, ClusterId.DOOR_LOCK, "lockState", LockState.LOCKED)


def _unlock_door(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_if_hosted(endpoint, ClusterId.DOOR_LOCK, "lockState", LockState.UNLOCKED)


def _setpoint_raise_lower(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    if not endpoint.has_cluster_server(ClusterId.THERMOSTAT):
        return
    mode = request.get("mode", SetpointMode.BOTH)
    delta = request.get("amount", 0) * 10
    if mode in (SetpointMode.HEAT, SetpointMode.BOTH):
        current = endpoint.get_attribute(ClusterId.THERMOSTAT, "occupiedHeatingSetpoint")
        endpoint.set_attribute(ClusterId.THERMOSTAT, "occupiedHeatingSetpoint", current + delta)
    if mode in (SetpointMode.COOL, SetpointMode.BOTH):
        current = endpoint.get_attribute(ClusterId.THERMOSTAT, "occupiedCoolingSetpoint")
        endpoint.set_attribute(ClusterId.THERMOSTAT, "occupiedCoolingSetpoint", current + delta)


def _identify(endpoint: Endpoint, request: Dict[str, Any]) -> None:
    _set_if_hosted(endpoint, ClusterId.IDENTIFY, "identifyTime", request.get("identifyTime", 0))


COMMAND_EFFECTS: Dict[str, Callable[[Endpoint, Dict[str, Any]], None]] = {
    "identify": _identify,
    "on": _on,
    "off": _off,
    "toggle": _toggle,
    "moveToLevel": _move_to_level,
    "moveToLevelWithOnOff": _move_to_level_with_on_off,
    "moveToColorTemperature": _move_to_color_temperature,
    "moveToHue": _move_to_hue,
    "moveToSaturation": _move_to_saturation,
    "moveToHueAndSaturation": _move_to_hue_and_saturation,
    "moveToColor": _move_to_color,
    "upOrOpen": _up_or_open,
    "downOrClose": _down_or_close,
    "stopMotion": _stop_motion,
    "goToLiftPercentage": _go_to_lift_percentage,
    "lockDoor": _lock_door,
    "unlockDoor": _unlock_door,
    "setpointRaiseLower": _setpoint_raise_lower,
}
