"""
Schema resolver.

Walks the exposes of a gateway device or group and produces the
entity's property map: one capability descriptor per gateway property,
keyed by the property name used in state payloads.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from ..gateway.models import BridgeDevice, BridgeGroup, ExposeFeature
from .rules import find_rule

logger = logging.getLogger(__name__)


# Exposes whose features are addressed as top level payload keys
TYPED_EXPOSES = ("light", "switch", "outlet", "cover", "lock", "climate", "fan")

# Capability types a group can take, most capable first
GROUP_TYPES = ("light", "outlet", "switch")

ACTION_ENDPOINT_PREFIX = "switch_"


class PressKind(str, Enum):
    """Switch press reported for a discrete action value."""
    SINGLE = "Single"
    DOUBLE = "Double"
    LONG = "Long"


PRESS_KINDS = (PressKind.SINGLE, PressKind.DOUBLE, PressKind.LONG)


@dataclass(frozen=True)
class PropertyDescriptor:
    """One advertised feature of an entity."""
    name: str
    property: str
    type: str = ""
    endpoint: str = ""
    unit: Optional[str] = None
    value_min: Optional[float] = None
    value_max: Optional[float] = None
    values: Tuple[str, ...] = ()
    category: str = "generic"
    access: int = 0
    action: Optional[PressKind] = None


class PropertyMap(Mapping):
    """
    Descriptors keyed by gateway property name.

    Synthetic keys of the form ``action_<value>`` map discrete action
    values to their button endpoint.
    """

    def __init__(self, entries: Optional[Dict[str, PropertyDescriptor]] = None):
        self._entries: Dict[str, PropertyDescriptor] = dict(entries or {})

    def __getitem__(self, key: str) -> PropertyDescriptor:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"PropertyMap({list(self._entries)})"

    def add(self, key: str, descriptor: PropertyDescriptor) -> None:
        if key in self._entries:
            logger.debug(f"Property {key} declared twice, keeping the first declaration")
            return
        self._entries[key] = descriptor

    def find(self, name: str, endpoint: str = "") -> Optional[str]:
        """Gateway key of feature `name` on `endpoint`."""
        for key, descriptor in self._entries.items():
            if descriptor.name == name and descriptor.endpoint == endpoint and descriptor.action is None:
                return key
        return None

    def key_for(self, name: str, endpoint: str = "") -> str:
        """Gateway key of a feature, falling back to the gateway naming convention."""
        key = self.find(name, endpoint)
        if key is not None:
            return key
        return f"{name}_{endpoint}" if endpoint else name

    def endpoints(self) -> List[str]:
        """Endpoint identifiers in declaration order, root first."""
        result = [""]
        for descriptor in self._entries.values():
            if descriptor.endpoint not in result:
                result.append(descriptor.endpoint)
        return result

    def for_endpoint(self, endpoint: str) -> List[PropertyDescriptor]:
        return [d for d in self._entries.values() if d.endpoint == endpoint]

    def names(self, endpoint: Optional[str] = None) -> Set[str]:
        return {d.name for d in self._entries.values() if endpoint is None or d.endpoint == endpoint}


@dataclass
class ResolvedSchema:
    """Output of the resolver for one entity."""
    property_map: PropertyMap
    action_endpoints: List[str] = field(default_factory=list)
    diagnostics: List[PropertyDescriptor] = field(default_factory=list)
    supports_transition: bool = False


@dataclass
class ResolverOptions:
    """Configuration inputs of the resolver."""
    switch_list: List[str] = field(default_factory=list)
    light_list: List[str] = field(default_factory=list)
    outlet_list: List[str] = field(default_factory=list)
    feature_black_list: List[str] = field(default_factory=list)
    device_feature_black_list: Dict[str, List[str]] = field(default_factory=dict)
    scenes_type: str = "outlet"

    @classmethod
    def from_config(cls, config) -> "ResolverOptions":
        return cls(
            switch_list=list(config.switch_list),
            light_list=list(config.light_list),
            outlet_list=list(config.outlet_list),
            feature_black_list=list(config.feature_black_list),
            device_feature_black_list={k: list(v) for k, v in config.device_feature_black_list.items()},
            scenes_type=config.scenes_type,
        )

    def ignored_features(self, entity_name: str) -> Set[str]:
        return set(self.feature_black_list) | set(self.device_feature_black_list.get(entity_name, []))

    def override_type(self, entity_name: str, capability_type: str) -> str:
        """Apply the per-entity switch/light/outlet overrides."""
        if capability_type not in GROUP_TYPES:
            return capability_type
        if entity_name in self.switch_list:
            return "switch"
        if entity_name in self.light_list:
            return "light"
        if entity_name in self.outlet_list:
            return "outlet"
        return capability_type


def _descriptor(capability_type: str, endpoint: str, feature: ExposeFeature,
                name: Optional[str] = None, prop: Optional[str] = None) -> PropertyDescriptor:
    return PropertyDescriptor(
        name=name or feature.name,
        property=prop or feature.property or feature.name,
        type=capability_type,
        endpoint=endpoint,
        unit=feature.unit,
        value_min=feature.value_min,
        value_max=feature.value_max,
        values=tuple(feature.values),
        category=feature.category or "generic",
        access=feature.access,
    )


def flatten_exposes(exposes: Iterable[ExposeFeature]) -> Tuple[List[PropertyDescriptor], List[PropertyDescriptor]]:
    """
    Flatten typed exposes into one descriptor per payload property.

    Returns the flattened descriptors and the generic composites that
    cannot be addressed as flat payload keys.
    """
    flat: List[PropertyDescriptor] = []
    skipped: List[PropertyDescriptor] = []
    for expose in exposes:
        if expose.type in TYPED_EXPOSES:
            for feature in expose.features:
                endpoint = feature.endpoint or expose.endpoint or ""
                flat.append(_descriptor(expose.type, endpoint, feature))
        elif expose.features:
            skipped.append(_descriptor("", expose.endpoint or "", expose))
        else:
            flat.append(_descriptor("", expose.endpoint or "", expose))
    return flat, skipped


def _apply_quirks(descriptors: List[PropertyDescriptor], battery_powered: bool) -> List[PropertyDescriptor]:
    result = []
    names = {d.name for d in descriptors}
    for descriptor in descriptors:
        if descriptor.name == "voltage" and battery_powered:
            descriptor = replace(descriptor, name="battery_voltage")
        elif descriptor.name == "illuminance" and "illuminance_lux" in names:
            continue
        result.append(descriptor)
    return result


def _record(descriptors: Iterable[PropertyDescriptor], schema: ResolvedSchema, entity_name: str,
            options: ResolverOptions) -> None:
    ignored = options.ignored_features(entity_name)
    action_index = 0
    for descriptor in descriptors:
        if descriptor.name in ignored or descriptor.property in ignored:
            logger.debug(f"{entity_name}: ignoring feature {descriptor.property}")
            continue
        if descriptor.type:
            overridden = options.override_type(entity_name, descriptor.type)
            if overridden != descriptor.type:
                descriptor = replace(descriptor, type=overridden)

        if find_rule(descriptor.type, descriptor.name) is None:
            schema.diagnostics.append(descriptor)
            continue

        if descriptor.name == "action" and descriptor.values:
            for value in descriptor.values:
                key = f"action_{value}"
                if not value or key in schema.property_map:
                    continue
                endpoint = f"{ACTION_ENDPOINT_PREFIX}{action_index // len(PRESS_KINDS) + 1}"
                if endpoint not in schema.action_endpoints:
                    schema.action_endpoints.append(endpoint)
                schema.property_map.add(key, PropertyDescriptor(
                    name="action",
                    property="action",
                    type="",
                    endpoint=endpoint,
                    values=(value,),
                    category=descriptor.category,
                    action=PRESS_KINDS[action_index % len(PRESS_KINDS)],
                ))
                action_index += 1
            continue

        schema.property_map.add(descriptor.property, descriptor)


def resolve_device(device: BridgeDevice, options: Optional[ResolverOptions] = None) -> ResolvedSchema:
    """Resolve the property map of a gateway device."""
    options = options or ResolverOptions()
    flat, skipped = flatten_exposes(device.exposes)
    flat = _apply_quirks(flat, device.is_battery_powered)

    schema = ResolvedSchema(
        property_map=PropertyMap(),
        diagnostics=list(skipped),
        supports_transition=any(option.name == "transition" for option in device.options),
    )
    _record(flat, schema, device.friendly_name, options)
    for descriptor in schema.diagnostics:
        logger.debug(f"{device.friendly_name}: no translation for {descriptor.type or 'generic'} "
                     f"feature {descriptor.name} ({descriptor.property})")
    return schema


def _strip_endpoint(prop: str, endpoint: Optional[str]) -> str:
    suffix = f"_{endpoint}" if endpoint else ""
    if suffix and prop.endswith(suffix):
        return prop[: -len(suffix)]
    return prop


def resolve_group(group: BridgeGroup, devices: Iterable[BridgeDevice],
                  options: Optional[ResolverOptions] = None) -> ResolvedSchema:
    """
    Resolve the property map of a gateway group.

    The group exposes the union of its members' light, switch and outlet
    features under the plain property names used in group payloads. A
    group without such members becomes a single on/off entity.
    """
    options = options or ResolverOptions()
    by_address = {device.ieee_address: device for device in devices}
    member_types: Set[str] = set()
    features: Dict[str, ExposeFeature] = {}
    transition = False

    for member in group.members:
        device = by_address.get(member.ieee_address)
        if device is None:
            logger.debug(f"{group.friendly_name}: member {member.ieee_address} not in roster")
            continue
        transition = transition or any(option.name == "transition" for option in device.options)
        for expose in device.exposes:
            if expose.type not in GROUP_TYPES:
                continue
            member_types.add(expose.type)
            for feature in expose.features:
                endpoint = feature.endpoint or expose.endpoint
                prop = _strip_endpoint(feature.property or feature.name, endpoint)
                if feature.name not in features:
                    features[feature.name] = feature.model_copy(update={"property": prop, "endpoint": None})

    capability_type = next((t for t in GROUP_TYPES if t in member_types), options.scenes_type)
    if not features:
        features["state"] = ExposeFeature(type="binary", name="state", property="state", access=0b111)

    schema = ResolvedSchema(property_map=PropertyMap(), supports_transition=transition)
    descriptors = [_descriptor(capability_type, "", feature) for feature in features.values()]
    _record(descriptors, schema, group.friendly_name, options)
    return schema
