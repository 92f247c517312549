"""
Translation and reconciliation between gateway entities and Matter devices.
"""

from .compiler import BridgedInfo, DeviceGraphError, compile_graph
from .debouncer import OutboundDebouncer, PublishState
from .entity import ZigbeeCoordinator, ZigbeeDevice, ZigbeeEntity, ZigbeeGroup
from .platform import BridgePlatform
from .reconciler import InboundReconciler, comparison_key
from .rules import ConversionError, TranslationRule, find_rule
from .schema import PropertyDescriptor, PropertyMap, ResolvedSchema, ResolverOptions, resolve_device, resolve_group

__all__ = [
    "BridgedInfo",
    "DeviceGraphError",
    "compile_graph",
    "OutboundDebouncer",
    "PublishState",
    "ZigbeeCoordinator",
    "ZigbeeDevice",
    "ZigbeeEntity",
    "ZigbeeGroup",
    "BridgePlatform",
    "InboundReconciler",
    "comparison_key",
    "ConversionError",
    "TranslationRule",
    "find_rule",
    "PropertyDescriptor",
    "PropertyMap",
    "ResolvedSchema",
    "ResolverOptions",
    "resolve_device",
    "resolve_group",
]
