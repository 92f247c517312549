"""
Matter device model used by the bridge.

Cluster ids, device type catalog and the in-memory endpoint runtime.
"""

from .clusters import ClusterId, ColorMode, MovementStatus, BatChargeLevel, SemanticTag
from .device_types import DeviceTypeDefinition, remove_subsets
from .endpoint import (
    ClusterServer,
    Endpoint,
    EndpointEvent,
    UnknownClusterError,
    UnknownCommandError,
    UnknownEndpointError,
)

__all__ = [
    "ClusterId",
    "ColorMode",
    "MovementStatus",
    "BatChargeLevel",
    "SemanticTag",
    "DeviceTypeDefinition",
    "remove_subsets",
    "ClusterServer",
    "Endpoint",
    "EndpointEvent",
    "UnknownClusterError",
    "UnknownCommandError",
    "UnknownEndpointError",
]
