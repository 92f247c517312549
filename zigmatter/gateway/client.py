"""
Zigbee2MQTT gateway client.

Dispatches messages received on the gateway base topic and publishes
outbound requests through an injected transport. The MQTT connection
itself is owned by the host; it hands every received message to
`handle_message` and supplies a `transport(topic, message)` callable.

Handles:
- bridge/state, bridge/info, bridge/devices, bridge/groups
- bridge/event and the bridge/response messages for permit join,
  device/group rename and removal
- per-entity state messages and availability
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from .models import BridgeDevice, BridgeGroup, BridgeInfo, parse_devices, parse_groups

logger = logging.getLogger(__name__)


Payload = Dict[str, Any]
Transport = Callable[[str, str], None]
StateHandler = Callable[[Payload], None]
AvailabilityHandler = Callable[[], None]


class GatewayState(str, Enum):
    """Availability of the gateway process."""
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


class GatewayError(Exception):
    """Malformed gateway payload or missing transport."""


def decode_text(raw: Union[bytes, str]) -> str:
    if not isinstance(raw, bytes):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise GatewayError(f"Payload is not UTF-8: {e}") from e


def parse_payload(raw: Union[bytes, str]) -> Optional[Payload]:
    """
    Decode a state payload.

    JSON objects are returned as dicts; any other non-empty text becomes
    ``{"state": text}``. Empty payloads return None.
    """
    text = decode_text(raw).strip()
    if not text:
        return None
    if text.startswith("{") and text.endswith("}"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise GatewayError(f"Invalid JSON payload: {e}") from e
        return data
    return {"state": text}


def payload_stringify(payload: Payload) -> str:
    return json.dumps(payload, separators=(",", ":"))


class _EntitySubscriptions:
    def __init__(self):
        self.state: List[StateHandler] = []
        self.online: List[AvailabilityHandler] = []
        self.offline: List[AvailabilityHandler] = []

    def empty(self) -> bool:
        return not (self.state or self.online or self.offline)


class GatewayClient:
    """
    Client side of a Zigbee2MQTT gateway.

    Entities register per-entity handlers through `on_state_message`,
    `on_online` and `on_offline`; each registration returns a callable
    that removes it again.
    """

    def __init__(self, base_topic: str = "zigbee2mqtt", transport: Optional[Transport] = None):
        self.base_topic = base_topic.rstrip("/")
        self.transport = transport
        self.state = GatewayState.UNKNOWN
        self.info: Optional[BridgeInfo] = None
        self.devices: List[BridgeDevice] = []
        self.groups: List[BridgeGroup] = []
        self.permit_join = False
        self._subscriptions: Dict[str, _EntitySubscriptions] = {}

        # Callbacks
        self.on_bridge_state: Optional[Callable[[GatewayState], None]] = None
        self.on_bridge_info: Optional[Callable[[BridgeInfo], None]] = None
        self.on_devices: Optional[Callable[[List[BridgeDevice]], None]] = None
        self.on_groups: Optional[Callable[[List[BridgeGroup]], None]] = None
        self.on_event: Optional[Callable[[str, Payload], None]] = None
        self.on_permit_join: Optional[Callable[[Optional[str], Optional[int], bool], None]] = None
        self.on_device_remove: Optional[Callable[[str], None]] = None
        self.on_device_rename: Optional[Callable[[str, str], None]] = None
        self.on_group_remove: Optional[Callable[[str], None]] = None
        self.on_group_rename: Optional[Callable[[str, str], None]] = None

    # ==================== Subscriptions ====================

    def _subscribe(self, entity: str, kind: str, handler: Callable) -> Callable[[], None]:
        subscriptions = self._subscriptions.setdefault(entity, _EntitySubscriptions())
        handlers = getattr(subscriptions, kind)
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)
            if subscriptions.empty() and self._subscriptions.get(entity) is subscriptions:
                del self._subscriptions[entity]

        return unsubscribe

    def on_state_message(self, entity: str, handler: StateHandler) -> Callable[[], None]:
        return self._subscribe(entity, "state", handler)

    def on_online(self, entity: str, handler: AvailabilityHandler) -> Callable[[], None]:
        return self._subscribe(entity, "online", handler)

    def on_offline(self, entity: str, handler: AvailabilityHandler) -> Callable[[], None]:
        return self._subscribe(entity, "offline", handler)

    def subscriber_count(self, entity: str) -> int:
        subscriptions = self._subscriptions.get(entity)
        if subscriptions is None:
            return 0
        return len(subscriptions.state) + len(subscriptions.online) + len(subscriptions.offline)

    # ==================== Outbound ====================

    def publish(self, topic: str, sub_topic: str, message: str) -> None:
        """Publish through the transport; an empty sub topic addresses `topic` itself."""
        if self.transport is None:
            raise GatewayError("No transport configured")
        full_topic = f"{topic}/{sub_topic}" if sub_topic else topic
        logger.debug(f"Publish {full_topic} {message}")
        self.transport(full_topic, message)

    def entity_topic(self, entity: str) -> str:
        return f"{self.base_topic}/{entity}"

    def bridge_request_topic(self, request: str) -> str:
        return f"{self.base_topic}/bridge/request/{request}"

    def request_state(self, entity: str, payload: Payload) -> None:
        """Ask the gateway to read and report the listed properties."""
        self.publish(self.entity_topic(entity), "get", payload_stringify(payload))

    def request_permit_join(self, value: bool, time: int = 254, device: Optional[str] = None) -> None:
        payload: Payload = {"value": value}
        if value:
            payload["time"] = time
        if device:
            payload["device"] = device
        self.publish(self.bridge_request_topic("permit_join"), "", payload_stringify(payload))

    # ==================== Inbound ====================

    def handle_message(self, topic: str, raw: Union[bytes, str]) -> None:
        """Dispatch one message received on the gateway base topic."""
        prefix = self.base_topic + "/"
        if not topic.startswith(prefix):
            logger.debug(f"Ignoring message on foreign topic {topic}")
            return
        path = topic[len(prefix):]

        try:
            if path.startswith("bridge/"):
                self._handle_bridge(path[len("bridge/"):], raw)
            else:
                self._handle_entity(path, raw)
        except (GatewayError, ValidationError) as e:
            logger.error(f"Discarding malformed message on {topic}: {e}")

    def _handle_bridge(self, path: str, raw: Union[bytes, str]) -> None:
        if path == "state":
            data = parse_payload(raw) or {}
            value = data.get("state")
            self.state = GatewayState.ONLINE if value == "online" else GatewayState.OFFLINE
            if self.state == GatewayState.ONLINE:
                logger.info("Zigbee2MQTT is online")
            else:
                logger.warning("Zigbee2MQTT is offline")
            if self.on_bridge_state:
                self.on_bridge_state(self.state)
        elif path == "info":
            self.info = BridgeInfo.model_validate(self._json(raw))
            self.permit_join = self.info.permit_join
            logger.debug(f"Bridge info version {self.info.version} permit_join {self.permit_join}")
            if self.info.output_format == "attribute":
                logger.error("Zigbee2MQTT advanced.output must be 'json' or 'attribute_and_json'")
            if self.on_bridge_info:
                self.on_bridge_info(self.info)
        elif path == "devices":
            self.devices = parse_devices(self._json(raw))
            logger.debug(f"Bridge sent {len(self.devices)} devices")
            if self.on_devices:
                self.on_devices(self.devices)
        elif path == "groups":
            self.groups = parse_groups(self._json(raw))
            logger.debug(f"Bridge sent {len(self.groups)} groups")
            if self.on_groups:
                self.on_groups(self.groups)
        elif path == "event":
            data = self._object(raw)
            event_type = data.get("type", "")
            logger.debug(f"Bridge event {event_type} {data.get('data')}")
            if self.on_event:
                self.on_event(event_type, data.get("data") or {})
        elif path.startswith("response/"):
            self._handle_response(path[len("response/"):], self._object(raw))
        else:
            logger.debug(f"Unhandled bridge message bridge/{path}")

    def _handle_response(self, path: str, data: Payload) -> None:
        if data.get("status") != "ok":
            logger.warning(f"Bridge request {path} failed: {data.get('error', 'unknown error')}")
            return
        body = data.get("data") or {}
        if not isinstance(body, dict):
            raise GatewayError(f"Bridge response {path} carries no data object")
        if path == "permit_join":
            self.permit_join = bool(body.get("value", body.get("time", 0)))
            if self.on_permit_join:
                self.on_permit_join(body.get("device"), body.get("time"), self.permit_join)
        elif path == "device/remove":
            identifier = self._field(body, "id")
            if self.on_device_remove:
                self.on_device_remove(identifier)
        elif path == "device/rename":
            old, new = self._field(body, "from"), self._field(body, "to")
            if self.on_device_rename:
                self.on_device_rename(old, new)
        elif path == "group/remove":
            identifier = str(self._field(body, "id"))
            if self.on_group_remove:
                self.on_group_remove(identifier)
        elif path == "group/rename":
            old, new = self._field(body, "from"), self._field(body, "to")
            if self.on_group_rename:
                self.on_group_rename(old, new)
        else:
            logger.debug(f"Unhandled bridge response {path}")

    def _handle_entity(self, path: str, raw: Union[bytes, str]) -> None:
        entity, _, service = path.partition("/")
        if service in ("set", "get"):
            return

        device = self._find_device(entity)
        group = None if device else self._find_group(entity)
        if device is None and group is None:
            logger.debug(f"Message for unknown entity {entity} service {service!r}")
            return
        name = device.friendly_name if device else group.friendly_name

        data = parse_payload(raw)
        if data is None:
            return
        subscriptions = self._subscriptions.get(name)

        if service == "availability":
            online = data.get("state") == "online"
            logger.debug(f"Availability of {name}: {'online' if online else 'offline'}")
            if subscriptions:
                for handler in list(subscriptions.online if online else subscriptions.offline):
                    handler()
            return
        if service:
            logger.debug(f"Unhandled service {service} for {name}")
            return

        if group is not None:
            data["last_seen"] = datetime.now(timezone.utc).isoformat()
        if subscriptions:
            for handler in list(subscriptions.state):
                handler(data)

    def _find_device(self, entity: str) -> Optional[BridgeDevice]:
        for device in self.devices:
            if device.friendly_name == entity or device.ieee_address == entity:
                return device
        return None

    def _find_group(self, entity: str) -> Optional[BridgeGroup]:
        for group in self.groups:
            if group.friendly_name == entity:
                return group
        return None

    @staticmethod
    def _json(raw: Union[bytes, str]) -> Any:
        try:
            return json.loads(decode_text(raw))
        except json.JSONDecodeError as e:
            raise GatewayError(f"Invalid JSON payload: {e}") from e

    @classmethod
    def _object(cls, raw: Union[bytes, str]) -> Payload:
        data = cls._json(raw)
        if not isinstance(data, dict):
            raise GatewayError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    @staticmethod
    def _field(body: Payload, key: str) -> Any:
        if key not in body:
            raise GatewayError(f"Bridge response is missing '{key}'")
        return body[key]
