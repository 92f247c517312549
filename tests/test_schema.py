"""
Tests for the schema resolver.
"""

import pytest

from zigmatter.bridge.schema import (
    PressKind,
    PropertyDescriptor,
    PropertyMap,
    ResolverOptions,
    flatten_exposes,
    resolve_device,
    resolve_group,
)
from zigmatter.gateway.models import BridgeGroup, ExposeFeature


class TestFlatten:
    """Tests for flattening exposes."""

    def test_typed_expose(self, color_light):
        """Typed exposes contribute one descriptor per feature."""
        flat, skipped = flatten_exposes(color_light.exposes)
        names = [d.name for d in flat]
        assert names == ["state", "brightness", "color_temp", "color_xy", "linkquality"]
        assert flat[0].type == "light"
        assert flat[3].property == "color"
        assert flat[4].type == ""
        assert skipped == []

    def test_endpoint_features(self, dual_light):
        """Features keep their endpoint label."""
        flat, _ = flatten_exposes(dual_light.exposes)
        assert [(d.property, d.endpoint) for d in flat] == [
            ("state_l1", "l1"), ("brightness_l1", "l1"), ("state_l2", "l2"), ("brightness_l2", "l2"),
        ]

    def test_generic_composite_skipped(self):
        """Generic composites cannot be flat payload keys."""
        exposes = [ExposeFeature.model_validate({
            "type": "composite", "name": "schedule", "property": "schedule",
            "features": [{"type": "numeric", "name": "hour", "property": "hour"}],
        })]
        flat, skipped = flatten_exposes(exposes)
        assert flat == []
        assert skipped[0].name == "schedule"


class TestResolveDevice:
    """Tests for resolving devices."""

    def test_property_map(self, color_light):
        """Features with a rule land in the property map keyed by property."""
        schema = resolve_device(color_light)
        assert set(schema.property_map) == {"state", "brightness", "color_temp", "color"}
        assert schema.property_map["color"].name == "color_xy"
        assert schema.supports_transition is True

    def test_diagnostics(self, color_light):
        """Features without a rule are kept as diagnostics only."""
        schema = resolve_device(color_light)
        assert [d.name for d in schema.diagnostics] == ["linkquality"]

    def test_battery_voltage_quirk(self, light_sensor):
        """Battery devices report their battery voltage as voltage."""
        schema = resolve_device(light_sensor)
        assert schema.property_map["voltage"].name == "battery_voltage"

    def test_mains_voltage(self, make_device):
        """Mains devices keep voltage as an electrical reading."""
        device = make_device("Plug", [{"type": "numeric", "name": "voltage", "property": "voltage", "access": 5}])
        schema = resolve_device(device)
        assert schema.property_map["voltage"].name == "voltage"

    def test_illuminance_lux_preferred(self, make_device):
        """A raw illuminance is dropped when illuminance_lux exists."""
        device = make_device("Lux2", [
            {"type": "numeric", "name": "illuminance", "property": "illuminance", "access": 5},
            {"type": "numeric", "name": "illuminance_lux", "property": "illuminance_lux", "access": 5},
        ])
        schema = resolve_device(device)
        assert list(schema.property_map) == ["illuminance_lux"]

    def test_action_synthesis(self, button_device):
        """Action values become press descriptors, three per button endpoint."""
        schema = resolve_device(button_device)
        pm = schema.property_map
        assert schema.action_endpoints == ["switch_1", "switch_2"]
        assert pm["action_single"].action == PressKind.SINGLE
        assert pm["action_double"].action == PressKind.DOUBLE
        assert pm["action_hold"].action == PressKind.LONG
        assert pm["action_hold"].endpoint == "switch_1"
        assert pm["action_release"].endpoint == "switch_2"
        assert pm["action_release"].action == PressKind.SINGLE
        assert "action" not in pm

    def test_type_override(self, switch_device):
        """Configured lists force the capability type."""
        options = ResolverOptions(light_list=["Switch"])
        schema = resolve_device(switch_device, options)
        assert schema.property_map["state"].type == "light"

    def test_ignored_features(self, light_sensor):
        """Globally and per-entity ignored features are not resolved."""
        options = ResolverOptions(feature_black_list=["battery"],
                                  device_feature_black_list={"Lux": ["voltage"]})
        schema = resolve_device(light_sensor, options)
        assert list(schema.property_map) == ["illuminance"]


class TestResolveGroup:
    """Tests for resolving groups."""

    def test_union_of_members(self, light_group, dual_light, color_light):
        """A group exposes its members' light features without endpoint suffixes."""
        schema = resolve_group(light_group, [dual_light, color_light])
        pm = schema.property_map
        assert set(pm) == {"state", "brightness", "color_temp", "color"}
        assert all(d.endpoint == "" for d in pm.values())
        assert pm["state"].type == "light"

    def test_empty_group(self):
        """A group without members becomes a single on/off entity."""
        group = BridgeGroup(id=9, friendly_name="Scene")
        schema = resolve_group(group, [], ResolverOptions(scenes_type="switch"))
        assert list(schema.property_map) == ["state"]
        assert schema.property_map["state"].type == "switch"


class TestPropertyMap:
    """Tests for property map lookups."""

    def test_key_for(self, dual_light):
        """Feature names resolve back to gateway keys per endpoint."""
        pm = resolve_device(dual_light).property_map
        assert pm.key_for("state", "l1") == "state_l1"
        assert pm.key_for("brightness", "l2") == "brightness_l2"
        assert pm.key_for("color_temp", "l1") == "color_temp_l1"
        assert pm.endpoints() == ["", "l1", "l2"]

    def test_first_declaration_wins(self):
        pm = PropertyMap()
        pm.add("state", PropertyDescriptor(name="state", property="state", type="light"))
        pm.add("state", PropertyDescriptor(name="state", property="state", type="switch"))
        assert pm["state"].type == "light"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
