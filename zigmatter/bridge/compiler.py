"""
Device graph compiler.

Turns an entity's property map into a composed Matter device: a root
endpoint carrying the bridged node and power source device types plus
one child endpoint per gateway endpoint label or action button group.

Compilation runs on a throwaway DeviceDraft:
1. accumulate rule device types and clusters per endpoint
2. tag child endpoints so controllers can tell them apart
3. drop device types covered by a more capable one
4. configure clusters whose setup depends on the exposed features
5. verify every device type's required clusters are present
The draft is then built into Endpoint objects and discarded.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..matter import device_types as dt
from ..matter.clusters import (
    AlarmState,
    BatChargeLevel,
    ClusterId,
    ColorMode,
    ControlSequence,
    LEVEL_MAX,
    LEVEL_MIN,
    PositionTag,
    SemanticTag,
    SystemMode,
    TagNamespace,
    cluster_name,
)
from ..matter.device_types import AUTOMATIC_CLUSTERS, DeviceTypeDefinition, remove_subsets
from ..matter.endpoint import Endpoint
from .rules import centi, find_rule, mireds
from .schema import PropertyDescriptor, PropertyMap

logger = logging.getLogger(__name__)


DEFAULT_SETPOINT_MIN = 0
DEFAULT_SETPOINT_MAX = 50

HEATING_SETPOINTS = ("current_heating_setpoint", "occupied_heating_setpoint")
COOLING_SETPOINTS = ("current_cooling_setpoint", "occupied_cooling_setpoint")

# Raw gateway value of a boolean sensor at rest; the rule converter gives
# the attribute polarity
BOOLEAN_IDLE_RAW = {"contact": True}

POSITION_WORDS = {
    "left": PositionTag.LEFT,
    "right": PositionTag.RIGHT,
    "top": PositionTag.TOP,
    "bottom": PositionTag.BOTTOM,
    "middle": PositionTag.MIDDLE,
    "center": PositionTag.MIDDLE,
    "centre": PositionTag.MIDDLE,
}

SWITCH_FAMILY = (dt.ON_OFF_SWITCH, dt.DIMMER_SWITCH, dt.COLOR_DIMMER_SWITCH)


class DeviceGraphError(Exception):
    """A device type is missing one of its required clusters."""

    def __init__(self, entity: str, missing: List[Tuple[str, DeviceTypeDefinition, ClusterId]]):
        self.entity = entity
        self.missing = missing
        details = ", ".join(
            f"{device_type.name} on {endpoint or 'root'} needs {cluster_name(cluster)}"
            for endpoint, device_type, cluster in missing
        )
        super().__init__(f"Device graph of {entity} is invalid: {details}")


@dataclass
class BridgedInfo:
    """Basic information published on the root endpoint."""
    node_label: str
    serial_number: str
    vendor_name: str = "zigbee2MQTT"
    product_name: str = ""
    battery: bool = False
    unique_id: Optional[str] = None


@dataclass
class EndpointDraft:
    """Working state for one endpoint while compiling."""
    name: str
    device_types: List[DeviceTypeDefinition] = field(default_factory=list)
    clusters: List[ClusterId] = field(default_factory=list)
    client_clusters: List[ClusterId] = field(default_factory=list)
    tags: List[SemanticTag] = field(default_factory=list)
    labels: List[Tuple[str, str]] = field(default_factory=list)
    attributes: Dict[ClusterId, Dict[str, Any]] = field(default_factory=dict)
    features: Dict[ClusterId, Dict[str, bool]] = field(default_factory=dict)

    def add_device_type(self, device_type: DeviceTypeDefinition) -> None:
        if device_type not in self.device_types:
            self.device_types.append(device_type)
        for cluster in device_type.required_server_clusters:
            if cluster in AUTOMATIC_CLUSTERS:
                self.add_cluster(cluster)

    def add_cluster(self, cluster: ClusterId) -> None:
        if cluster not in self.clusters:
            self.clusters.append(cluster)

    def configure(self, cluster: ClusterId, attributes: Optional[Dict[str, Any]] = None,
                  features: Optional[Dict[str, bool]] = None) -> None:
        if attributes:
            self.attributes.setdefault(cluster, {}).update(attributes)
        if features:
            self.features.setdefault(cluster, {}).update(features)


class DeviceDraft:
    """Mutable builder consumed once by `build`."""

    def __init__(self, name: str):
        self.name = name
        self.endpoints: Dict[str, EndpointDraft] = {"": EndpointDraft("")}

    @property
    def root(self) -> EndpointDraft:
        return self.endpoints[""]

    @property
    def children(self) -> List[EndpointDraft]:
        return [ep for key, ep in self.endpoints.items() if key]

    def endpoint(self, key: str) -> EndpointDraft:
        if key not in self.endpoints:
            self.endpoints[key] = EndpointDraft(key)
        return self.endpoints[key]

    def build(self) -> Endpoint:
        root = self._build_endpoint(self.root, self.name)
        for child in self.children:
            root.add_child_endpoint(self._build_endpoint(child, child.name))
        return root

    @staticmethod
    def _build_endpoint(draft: EndpointDraft, name: str) -> Endpoint:
        endpoint = Endpoint(name, draft.device_types)
        for cluster in draft.clusters:
            endpoint.add_cluster_server(cluster, draft.attributes.get(cluster), draft.features.get(cluster))
        endpoint.client_clusters = list(draft.client_clusters)
        for tag in draft.tags:
            endpoint.add_tag(tag)
        for label, value in draft.labels:
            endpoint.add_fixed_label(label, value)
        return endpoint


# =============================================================================
# Steps
# =============================================================================

def _accumulate(draft: DeviceDraft, property_map: PropertyMap, action_endpoints: List[str]) -> None:
    for endpoint in action_endpoints:
        draft.endpoint(endpoint)
    for key, descriptor in property_map.items():
        rule = find_rule(descriptor.type, descriptor.name)
        if rule is None:
            continue
        endpoint = draft.endpoint(descriptor.endpoint)
        endpoint.add_device_type(rule.device_type)
        endpoint.add_cluster(rule.cluster)


def _assign_tags(draft: DeviceDraft) -> None:
    for index, endpoint in enumerate(draft.children):
        word = endpoint.name.lower()
        number = re.search(r"(\d+)$", endpoint.name)
        if word in POSITION_WORDS:
            tag = SemanticTag(TagNamespace.COMMON_POSITION, POSITION_WORDS[word], endpoint.name)
        elif number:
            tag = SemanticTag(TagNamespace.COMMON_NUMBER, int(number.group(1)), endpoint.name)
        else:
            tag = SemanticTag(TagNamespace.COMMON_NUMBER, index + 1, endpoint.name)
        endpoint.tags.append(tag)
        endpoint.labels.append(("endpointName", endpoint.name))


def _deduplicate(draft: DeviceDraft) -> None:
    for endpoint in draft.endpoints.values():
        before = list(endpoint.device_types)
        endpoint.device_types = remove_subsets(endpoint.device_types)
        dropped = [d.name for d in before if d not in endpoint.device_types]
        if dropped:
            logger.debug(f"{draft.name}: {endpoint.name or 'root'} drops covered device types {dropped}")


def _descriptor(property_map: PropertyMap, endpoint: str, names: Tuple[str, ...]) -> Optional[PropertyDescriptor]:
    for descriptor in property_map.for_endpoint(endpoint):
        if descriptor.name in names:
            return descriptor
    return None


def _configure_color(endpoint: EndpointDraft, property_map: PropertyMap) -> None:
    names = property_map.names(endpoint.name)
    full = "color_xy" in names or "color_hs" in names
    temperature = _descriptor(property_map, endpoint.name, ("color_temp",))
    low = mireds(temperature.value_min) if temperature and temperature.value_min else 147
    high = mireds(temperature.value_max) if temperature and temperature.value_max else 500
    endpoint.configure(
        ClusterId.COLOR_CONTROL,
        attributes={
            "colorMode": ColorMode.CURRENT_HUE_AND_SATURATION if full else ColorMode.COLOR_TEMPERATURE_MIREDS,
            "colorTempPhysicalMinMireds": low,
            "colorTempPhysicalMaxMireds": high,
            "colorTemperatureMireds": high,
        },
        features={"hueSaturation": full, "xy": full, "colorTemperature": temperature is not None or not full},
    )


def _setpoint_limits(descriptor: Optional[PropertyDescriptor]) -> Tuple[int, int]:
    low = descriptor.value_min if descriptor and descriptor.value_min is not None else DEFAULT_SETPOINT_MIN
    high = descriptor.value_max if descriptor and descriptor.value_max is not None else DEFAULT_SETPOINT_MAX
    return centi(low), centi(high)


def _configure_thermostat(endpoint: EndpointDraft, property_map: PropertyMap) -> None:
    heating = _descriptor(property_map, endpoint.name, HEATING_SETPOINTS)
    cooling = _descriptor(property_map, endpoint.name, COOLING_SETPOINTS)
    attributes: Dict[str, Any] = {}

    if heating and cooling:
        features = {"heating": True, "cooling": True, "autoMode": True}
        attributes["controlSequenceOfOperation"] = ControlSequence.COOLING_AND_HEATING
        attributes["systemMode"] = SystemMode.AUTO
    elif cooling:
        features = {"heating": False, "cooling": True, "autoMode": False}
        attributes["controlSequenceOfOperation"] = ControlSequence.COOLING_ONLY
        attributes["systemMode"] = SystemMode.COOL
    else:
        features = {"heating": True, "cooling": False, "autoMode": False}
        attributes["controlSequenceOfOperation"] = ControlSequence.HEATING_ONLY
        attributes["systemMode"] = SystemMode.HEAT

    if features["heating"]:
        low, high = _setpoint_limits(heating)
        attributes.update({
            "absMinHeatSetpointLimit": low, "minHeatSetpointLimit": low,
            "absMaxHeatSetpointLimit": high, "maxHeatSetpointLimit": high,
            "occupiedHeatingSetpoint": max(low, min(high, 2000)),
        })
    if features["cooling"]:
        low, high = _setpoint_limits(cooling)
        attributes.update({
            "absMinCoolSetpointLimit": low, "minCoolSetpointLimit": low,
            "absMaxCoolSetpointLimit": high, "maxCoolSetpointLimit": high,
            "occupiedCoolingSetpoint": max(low, min(high, 2400)),
        })
    endpoint.configure(ClusterId.THERMOSTAT, attributes, features)


def _configure_boolean_state(endpoint: EndpointDraft, property_map: PropertyMap) -> None:
    for descriptor in property_map.for_endpoint(endpoint.name):
        rule = find_rule(descriptor.type, descriptor.name)
        if rule is not None and rule.cluster == ClusterId.BOOLEAN_STATE:
            idle = BOOLEAN_IDLE_RAW.get(descriptor.name, False)
            endpoint.configure(ClusterId.BOOLEAN_STATE, {"stateValue": rule.convert(idle)})
            return


def _configure_smoke_alarm(endpoint: EndpointDraft, property_map: PropertyMap) -> None:
    smoke = "smoke" in property_map.names(endpoint.name)
    endpoint.configure(
        ClusterId.SMOKE_CO_ALARM,
        attributes={"smokeState": AlarmState.NORMAL, "expressedState": 0},
        features={"smokeAlarm": smoke, "coAlarm": False},
    )


def _configure_level(endpoint: EndpointDraft, property_map: PropertyMap) -> None:
    brightness = _descriptor(property_map, endpoint.name, ("brightness",))
    low = LEVEL_MIN
    high = LEVEL_MAX
    if brightness is not None:
        if brightness.value_min is not None:
            low = max(LEVEL_MIN, int(brightness.value_min))
        if brightness.value_max is not None:
            high = min(LEVEL_MAX, int(brightness.value_max))
    endpoint.configure(ClusterId.LEVEL_CONTROL, {"minLevel": low, "maxLevel": high, "currentLevel": high},
                       {"onOff": True, "lighting": True})


def _configure_power_source(endpoint: EndpointDraft, info: BridgedInfo) -> None:
    if info.battery:
        endpoint.configure(
            ClusterId.POWER_SOURCE,
            attributes={"batPercentRemaining": 200, "batChargeLevel": BatChargeLevel.OK, "batVoltage": None,
                        "batReplaceability": 1, "description": "Primary battery"},
            features={"battery": True, "replaceable": True, "wired": False},
        )
    else:
        endpoint.configure(
            ClusterId.POWER_SOURCE,
            attributes={"wiredCurrentType": 0, "description": "Mains power"},
            features={"wired": True, "battery": False},
        )


CLUSTER_FEATURES: Dict[ClusterId, Dict[str, bool]] = {
    ClusterId.WINDOW_COVERING: {"lift": True, "positionAwareLift": True},
    ClusterId.SWITCH: {
        "momentarySwitch": True,
        "momentarySwitchRelease": True,
        "momentarySwitchLongPress": True,
        "momentarySwitchMultiPress": True,
    },
    ClusterId.OCCUPANCY_SENSING: {"passiveInfrared": True},
    ClusterId.AIR_QUALITY: {"fair": True, "moderate": True, "veryPoor": True, "extremelyPoor": True},
    ClusterId.ELECTRICAL_POWER_MEASUREMENT: {"alternatingCurrent": True},
    ClusterId.ELECTRICAL_ENERGY_MEASUREMENT: {"importedEnergy": True, "cumulativeEnergy": True},
    ClusterId.FAN_CONTROL: {"multiSpeed": False, "auto": True},
}


def _configure(draft: DeviceDraft, property_map: PropertyMap, info: BridgedInfo) -> None:
    draft.root.configure(ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION, {
        "vendorName": info.vendor_name[:32],
        "productName": info.product_name[:32],
        "nodeLabel": info.node_label[:32],
        "serialNumber": info.serial_number[:32],
        "uniqueId": info.unique_id or info.serial_number,
        "reachable": True,
    })
    _configure_power_source(draft.root, info)

    for endpoint in draft.endpoints.values():
        clusters = endpoint.clusters
        if ClusterId.COLOR_CONTROL in clusters:
            _configure_color(endpoint, property_map)
        if ClusterId.LEVEL_CONTROL in clusters:
            _configure_level(endpoint, property_map)
        if ClusterId.THERMOSTAT in clusters:
            _configure_thermostat(endpoint, property_map)
        if ClusterId.BOOLEAN_STATE in clusters:
            _configure_boolean_state(endpoint, property_map)
        if ClusterId.SMOKE_CO_ALARM in clusters:
            _configure_smoke_alarm(endpoint, property_map)
        for cluster, features in CLUSTER_FEATURES.items():
            if cluster in clusters:
                endpoint.configure(cluster, features=features)
        for device_type in endpoint.device_types:
            if device_type in SWITCH_FAMILY:
                for cluster in (ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL, ClusterId.COLOR_CONTROL):
                    if cluster in clusters and cluster not in endpoint.client_clusters:
                        endpoint.client_clusters.append(cluster)


def _verify(draft: DeviceDraft) -> None:
    missing = []
    for key, endpoint in draft.endpoints.items():
        for device_type in endpoint.device_types:
            for cluster in device_type.required_server_clusters:
                if cluster not in endpoint.clusters:
                    missing.append((key, device_type, cluster))
    if missing:
        raise DeviceGraphError(draft.name, missing)


def compile_graph(
    info: BridgedInfo,
    property_map: PropertyMap,
    action_endpoints: Optional[List[str]] = None,
) -> Optional[Endpoint]:
    """
    Compile a property map into a device graph.

    Returns None when no feature translates to a device type, so there is
    nothing to bridge. Raises DeviceGraphError when a device type ends up
    without one of its required clusters.
    """
    draft = DeviceDraft(info.node_label)
    root = draft.root
    root.add_device_type(dt.BRIDGED_NODE)
    root.add_cluster(ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION)
    root.add_device_type(dt.POWER_SOURCE)
    root.add_cluster(ClusterId.POWER_SOURCE)

    _accumulate(draft, property_map, action_endpoints or [])

    utility = (dt.BRIDGED_NODE, dt.POWER_SOURCE)
    if not draft.children and all(d in utility for d in root.device_types):
        logger.debug(f"{info.node_label}: no translatable features")
        return None

    _assign_tags(draft)
    _deduplicate(draft)
    _configure(draft, property_map, info)
    _verify(draft)

    graph = draft.build()
    logger.debug(
        f"{info.node_label}: compiled {len(graph.children)} child endpoints, "
        f"root types {[d.name for d in graph.device_types]}"
    )
    return graph
