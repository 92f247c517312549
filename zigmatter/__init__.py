"""
zigmatter - Zigbee2MQTT to Matter translation

Resolves the capabilities a Zigbee2MQTT gateway advertises for its
devices and groups, compiles them into Matter device graphs, and keeps
both sides in step: gateway state flows into Matter attributes, Matter
commands flow back as debounced gateway messages.

Example:
    >>> from zigmatter import BridgeConfig, BridgePlatform, GatewayClient
    >>> gateway = GatewayClient("zigbee2mqtt", transport=mqtt_publish)
    >>> platform = BridgePlatform(gateway, BridgeConfig())
    >>> gateway.handle_message(topic, payload)
"""

__version__ = "1.0.0"

from .config import BridgeConfig, get_config
from .gateway.client import GatewayClient
from .bridge.platform import BridgePlatform

__all__ = [
    "__version__",
    "BridgeConfig",
    "get_config",
    "GatewayClient",
    "BridgePlatform",
]
