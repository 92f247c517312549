"""
Zigbee2MQTT side of the bridge: roster models and the gateway client.
"""

from .client import GatewayClient, GatewayError, GatewayState, parse_payload, payload_stringify
from .models import BridgeDevice, BridgeGroup, BridgeInfo, DeviceDefinition, ExposeFeature, GroupMember

__all__ = [
    "GatewayClient",
    "GatewayError",
    "GatewayState",
    "parse_payload",
    "payload_stringify",
    "BridgeDevice",
    "BridgeGroup",
    "BridgeInfo",
    "DeviceDefinition",
    "ExposeFeature",
    "GroupMember",
]
