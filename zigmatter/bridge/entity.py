"""
Bridged entities.

An entity owns the bridge state of one gateway device or group: its
resolved schema, compiled device graph, command handlers, debouncer and
inbound reconciler, plus the gateway subscriptions that feed them.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import BridgeConfig
from ..gateway.client import GatewayClient, payload_stringify
from ..gateway.models import ACCESS_GET, BridgeDevice, BridgeGroup
from ..matter.clusters import ClusterId, LockState
from ..matter.endpoint import Endpoint
from .commands import CommandHandlers
from .compiler import BridgedInfo, DeviceGraphError, compile_graph
from .debouncer import OutboundDebouncer
from .reconciler import InboundReconciler
from .schema import PropertyDescriptor, PropertyMap, ResolvedSchema, ResolverOptions, resolve_device, resolve_group

logger = logging.getLogger(__name__)


class ZigbeeEntity:
    """Base class of bridged devices, groups and the coordinator."""

    kind = "entity"
    is_group = False

    def __init__(self, gateway: GatewayClient, config: BridgeConfig, name: str,
                 schema: ResolvedSchema, info: BridgedInfo):
        self.gateway = gateway
        self.config = config
        self.name = name
        self.info = info
        self.property_map: PropertyMap = schema.property_map
        self.action_endpoints = list(schema.action_endpoints)
        self.diagnostics = list(schema.diagnostics)
        self.supports_transition = schema.supports_transition
        self.ignored_features = ResolverOptions.from_config(config).ignored_features(name)
        self.setpoint_guard_seconds = config.timing.setpoint_guard_seconds

        self.debouncer = OutboundDebouncer(
            name,
            self.publish_command,
            debounce_seconds=config.timing.debounce_seconds,
            suppress_seconds=config.timing.suppress_seconds,
        )
        self.graph: Optional[Endpoint] = None
        self.commands: Optional[CommandHandlers] = None
        self._unsubscribes: List[Callable[[], None]] = []
        self.destroyed = False

        self._compile()
        self.reconciler = InboundReconciler(
            name,
            self.property_map,
            self.graph,
            ignored_features=self.ignored_features,
            is_suppressed=lambda: self.debouncer.suppressed,
            duplicate_window=config.timing.duplicate_window_seconds,
        )
        if self.graph is not None:
            self._subscribe()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @property
    def registered(self) -> bool:
        return self.graph is not None and not self.destroyed

    def _compile(self) -> None:
        try:
            graph = compile_graph(self.info, self.property_map, self.action_endpoints)
        except DeviceGraphError as e:
            logger.error(f"{self.name}: {e}")
            return
        if graph is None:
            logger.warning(f"{self.name}: no supported features, not bridged")
            return
        self.graph = graph
        self._attach_handlers()

    def _attach_handlers(self) -> None:
        self.commands = CommandHandlers(self)
        self.commands.attach(self.graph)

    def _subscribe(self) -> None:
        self._unsubscribes = [
            self.gateway.on_state_message(self.name, self.on_state_message),
            self.gateway.on_online(self.name, self.reconciler.handle_online),
            self.gateway.on_offline(self.name, self.reconciler.handle_offline),
        ]

    def on_state_message(self, payload: Dict[str, Any]) -> int:
        return self.reconciler.handle_state(payload)

    def publish_command(self, command: str, entity_name: str, payload: Dict[str, Any]) -> None:
        """Publish a coalesced command payload to the entity's set topic."""
        logger.info(f"{self.name}: publish {command} {payload}")
        self.gateway.publish(self.gateway.entity_topic(entity_name), "set", payload_stringify(payload))

    def state_request(self) -> Dict[str, str]:
        """Properties to ask the gateway to read when the bridge starts."""
        return {
            descriptor.property: ""
            for descriptor in self.property_map.values()
            if descriptor.access & ACCESS_GET and descriptor.action is None
        }

    def request_state(self) -> None:
        payload = self.state_request()
        if not payload or not self.registered:
            return
        logger.debug(f"{self.name}: requesting state {list(payload)}")
        self.gateway.request_state(self.name, payload)

    def destroy(self) -> None:
        """Release timers, subscriptions and graph handlers."""
        if self.destroyed:
            return
        self.debouncer.cancel()
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []
        if self.graph is not None:
            self.graph.clear_handlers()
        self.reconciler.graph = None
        self.destroyed = True
        logger.debug(f"{self.name}: destroyed")


class ZigbeeDevice(ZigbeeEntity):
    """A gateway device."""

    kind = "device"

    def __init__(self, gateway: GatewayClient, config: BridgeConfig, device: BridgeDevice):
        self.device = device
        options = ResolverOptions.from_config(config)
        definition = device.definition
        info = BridgedInfo(
            node_label=device.friendly_name,
            serial_number=f"{device.ieee_address}{config.postfix}",
            vendor_name=(definition.vendor if definition and definition.vendor else device.manufacturer)
            or "zigbee2MQTT",
            product_name=(definition.model if definition and definition.model else device.model_id) or "",
            battery=device.is_battery_powered,
            unique_id=device.ieee_address,
        )
        super().__init__(gateway, config, device.friendly_name, resolve_device(device, options), info)

    @property
    def ieee_address(self) -> str:
        return self.device.ieee_address


class ZigbeeGroup(ZigbeeEntity):
    """A gateway group; members' echoes arrive slowly, so commands use the long guard."""

    kind = "group"
    is_group = True

    def __init__(self, gateway: GatewayClient, config: BridgeConfig, group: BridgeGroup,
                 devices: Iterable[BridgeDevice]):
        self.group = group
        options = ResolverOptions.from_config(config)
        info = BridgedInfo(
            node_label=group.friendly_name,
            serial_number=f"group-{group.id}{config.postfix}",
            product_name="Group",
        )
        super().__init__(gateway, config, group.friendly_name, resolve_group(group, devices, options), info)

    def state_request(self) -> Dict[str, str]:
        return {"state": ""}


class ZigbeeCoordinator(ZigbeeEntity):
    """
    The gateway coordinator, bridged as a door lock.

    Locked means joining is disabled; unlocking permits new devices to join.
    """

    kind = "coordinator"

    def __init__(self, gateway: GatewayClient, config: BridgeConfig, device: BridgeDevice):
        self.device = device
        property_map = PropertyMap()
        property_map.add("permit_join", PropertyDescriptor(name="state", property="permit_join", type="lock"))
        info = BridgedInfo(
            node_label=device.friendly_name,
            serial_number=f"{device.ieee_address}{config.postfix}",
            product_name="Coordinator",
            unique_id=device.ieee_address,
        )
        super().__init__(gateway, config, device.friendly_name, ResolvedSchema(property_map=property_map), info)
        self.update_permit_join(gateway.permit_join)

    def _attach_handlers(self) -> None:
        async def lock(request: Dict[str, Any], endpoint: Endpoint) -> None:
            self.permit_join(False)

        async def unlock(request: Dict[str, Any], endpoint: Endpoint) -> None:
            self.permit_join(True)

        self.graph.add_command_handler("lockDoor", lock)
        self.graph.add_command_handler("unlockDoor", unlock)

    def _subscribe(self) -> None:
        # The coordinator reports no state of its own
        self._unsubscribes = []

    def state_request(self) -> Dict[str, str]:
        return {}

    def permit_join(self, value: bool) -> None:
        logger.info(f"{self.name}: {'permit' if value else 'disable'} join")
        try:
            self.gateway.request_permit_join(value)
        except Exception as e:
            logger.error(f"{self.name}: permit join request failed: {e}")

    def update_permit_join(self, value: bool) -> None:
        if self.graph is None:
            return
        state = LockState.UNLOCKED if value else LockState.LOCKED
        if self.graph.set_attribute(ClusterId.DOOR_LOCK, "lockState", state):
            logger.info(f"{self.name}: permit join {'enabled' if value else 'disabled'}")
