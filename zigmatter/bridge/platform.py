"""
Bridge platform.

Keeps the registry of bridged entities in step with the gateway roster:
creates entities for new devices and groups, applies the white and black
lists, asks the gateway for fresh state once configured, and destroys or
re-creates entities when the gateway reports removals and renames.
"""

import logging
from typing import Callable, Dict, List, Optional

from ..config import BridgeConfig
from ..gateway.client import GatewayClient
from ..gateway.models import BridgeDevice, BridgeGroup, BridgeInfo
from .entity import ZigbeeCoordinator, ZigbeeDevice, ZigbeeEntity, ZigbeeGroup

logger = logging.getLogger(__name__)


EntityCallback = Callable[[ZigbeeEntity], None]


class BridgePlatform:
    """
    Registry of bridged entities keyed by friendly name.

    Hosts are notified through `on_entity_added` / `on_entity_removed` so
    they can add the entity's graph to (or remove it from) their runtime.
    """

    def __init__(self, gateway: GatewayClient, config: BridgeConfig):
        self.gateway = gateway
        self.config = config
        self.entities: Dict[str, ZigbeeEntity] = {}
        self.coordinator: Optional[ZigbeeCoordinator] = None
        self.configured = False

        # Callbacks
        self.on_entity_added: Optional[EntityCallback] = None
        self.on_entity_removed: Optional[EntityCallback] = None

        gateway.on_devices = self.on_devices
        gateway.on_groups = self.on_groups
        gateway.on_bridge_info = self.on_bridge_info
        gateway.on_permit_join = self.on_permit_join
        gateway.on_device_remove = self.on_device_remove
        gateway.on_device_rename = self.on_device_rename
        gateway.on_group_remove = self.on_group_remove
        gateway.on_group_rename = self.on_group_rename

    # ==================== Registry ====================

    @property
    def devices(self) -> List[ZigbeeEntity]:
        return [e for e in self.entities.values() if e.kind in ("device", "coordinator")]

    @property
    def groups(self) -> List[ZigbeeGroup]:
        return [e for e in self.entities.values() if isinstance(e, ZigbeeGroup)]

    def get_entity(self, name: str) -> Optional[ZigbeeEntity]:
        return self.entities.get(name)

    def _find(self, identifier: str) -> Optional[ZigbeeEntity]:
        entity = self.entities.get(identifier)
        if entity is not None:
            return entity
        for candidate in self.entities.values():
            if getattr(candidate, "ieee_address", None) == identifier:
                return candidate
            if isinstance(candidate, ZigbeeGroup) and str(candidate.group.id) == identifier:
                return candidate
        return None

    def _register(self, name: str, factory: Callable[[], ZigbeeEntity]) -> Optional[ZigbeeEntity]:
        try:
            entity = factory()
        except Exception as e:
            logger.error(f"Failed to create {name}: {e}")
            return None
        if not entity.registered:
            entity.destroy()
            return None

        self.entities[name] = entity
        logger.info(f"Registered {entity.kind} {name}")
        if self.on_entity_added:
            self.on_entity_added(entity)
        if self.configured:
            self._request_state(entity)
        return entity

    def remove_entity(self, name: str) -> bool:
        entity = self.entities.pop(name, None)
        if entity is None:
            return False
        entity.destroy()
        if entity is self.coordinator:
            self.coordinator = None
        logger.info(f"Removed {entity.kind} {name}")
        if self.on_entity_removed:
            self.on_entity_removed(entity)
        return True

    # ==================== Roster ====================

    def add_device(self, device: BridgeDevice) -> Optional[ZigbeeEntity]:
        name = device.friendly_name
        if name in self.entities:
            return self.entities[name]
        if device.is_coordinator:
            entity = self._register(name, lambda: ZigbeeCoordinator(self.gateway, self.config, device))
            if entity is not None:
                self.coordinator = entity
            return entity
        if device.definition is None or not device.supported or not device.interview_completed:
            logger.debug(f"Skipping {name}: not supported or interview incomplete")
            return None
        if device.disabled:
            logger.debug(f"Skipping {name}: disabled in the gateway")
            return None
        if not self.config.is_entity_allowed(name, device.ieee_address):
            return None
        return self._register(name, lambda: ZigbeeDevice(self.gateway, self.config, device))

    def add_group(self, group: BridgeGroup) -> Optional[ZigbeeEntity]:
        name = group.friendly_name
        if name in self.entities:
            return self.entities[name]
        if not self.config.is_entity_allowed(name):
            return None
        devices = list(self.gateway.devices)
        return self._register(name, lambda: ZigbeeGroup(self.gateway, self.config, group, devices))

    def on_devices(self, devices: List[BridgeDevice]) -> None:
        names = {device.friendly_name for device in devices}
        for entity in self.devices:
            if entity.name not in names:
                self.remove_entity(entity.name)
        for device in devices:
            self.add_device(device)
        logger.info(f"{len(self.devices)} of {len(devices)} devices bridged")

    def on_groups(self, groups: List[BridgeGroup]) -> None:
        names = {group.friendly_name for group in groups}
        for entity in self.groups:
            if entity.name not in names:
                self.remove_entity(entity.name)
        for group in groups:
            self.add_group(group)
        logger.info(f"{len(self.groups)} of {len(groups)} groups bridged")

    def on_device_remove(self, identifier: str) -> None:
        entity = self._find(identifier)
        if entity is None:
            logger.debug(f"Removed device {identifier} was not bridged")
            return
        self.remove_entity(entity.name)

    def on_device_rename(self, old: str, new: str) -> None:
        entity = self.entities.get(old)
        if not isinstance(entity, (ZigbeeDevice, ZigbeeCoordinator)):
            logger.debug(f"Renamed device {old} was not bridged")
            return
        device = entity.device.model_copy(update={"friendly_name": new})
        self.remove_entity(old)
        self.add_device(device)

    def on_group_remove(self, identifier: str) -> None:
        entity = self._find(identifier)
        if entity is None:
            logger.debug(f"Removed group {identifier} was not bridged")
            return
        self.remove_entity(entity.name)

    def on_group_rename(self, old: str, new: str) -> None:
        entity = self.entities.get(old)
        if not isinstance(entity, ZigbeeGroup):
            logger.debug(f"Renamed group {old} was not bridged")
            return
        group = entity.group.model_copy(update={"friendly_name": new})
        self.remove_entity(old)
        self.add_group(group)

    # ==================== Bridge ====================

    def on_bridge_info(self, info: BridgeInfo) -> None:
        if self.coordinator is not None:
            self.coordinator.update_permit_join(info.permit_join)

    def on_permit_join(self, device: Optional[str], time: Optional[int], value: bool) -> None:
        target = f" for {device}" if device else ""
        logger.info(f"Permit join {'enabled' if value else 'disabled'}{target}")
        if self.coordinator is not None:
            self.coordinator.update_permit_join(value)

    def _request_state(self, entity: ZigbeeEntity) -> None:
        try:
            entity.request_state()
        except Exception as e:
            logger.error(f"{entity.name}: state request failed: {e}")

    def configure(self) -> None:
        """Ask the gateway for the current state of every bridged entity."""
        self.configured = True
        for entity in list(self.entities.values()):
            self._request_state(entity)

    def shutdown(self) -> None:
        """Destroy every entity, releasing timers and subscriptions."""
        for name in list(self.entities):
            entity = self.entities[name]
            entity.destroy()
            if self.config.unregister_on_shutdown:
                self.remove_entity(name)
        logger.info("Bridge platform shut down")
