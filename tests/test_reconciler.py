"""
Tests for the inbound state reconciler.
"""

import logging

import pytest

from zigmatter.bridge.compiler import BridgedInfo, compile_graph
from zigmatter.bridge.reconciler import InboundReconciler, battery_charge_level, comparison_key
from zigmatter.bridge.schema import resolve_device
from zigmatter.matter.clusters import BatChargeLevel, ClusterId, ColorMode, MovementStatus, SystemMode


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reconcile(clock):
    """Build a reconciler over a freshly compiled graph."""
    def factory(device, **kwargs):
        schema = resolve_device(device)
        info = BridgedInfo(node_label=device.friendly_name, serial_number=device.ieee_address,
                           battery=device.is_battery_powered)
        graph = compile_graph(info, schema.property_map, schema.action_endpoints)
        return InboundReconciler(device.friendly_name, schema.property_map, graph, clock=clock, **kwargs)
    return factory


class TestComparisonKey:
    """Tests for the comparison key."""

    def test_drops_ignored_keys(self):
        payload = {"state": "ON", "linkquality": 80}
        assert comparison_key(payload, ["linkquality"]) == {"state": "ON"}
        assert payload == {"state": "ON", "linkquality": 80}

    def test_battery_charge_level(self):
        assert battery_charge_level(9) == BatChargeLevel.CRITICAL
        assert battery_charge_level(10) == BatChargeLevel.WARNING
        assert battery_charge_level(19.5) == BatChargeLevel.WARNING
        assert battery_charge_level(20) == BatChargeLevel.OK


class TestDeduplication:
    """Tests for duplicate and unchanged payloads."""

    def test_state_applied(self, reconcile, switch_device):
        """An ON state sets the on/off attribute."""
        reconciler = reconcile(switch_device)
        assert reconciler.handle_state({"state": "ON"}) == 1
        assert reconciler.graph.get_attribute(ClusterId.ON_OFF, "onOff") is True

    def test_duplicate_skipped(self, reconcile, switch_device):
        reconciler = reconcile(switch_device)
        reconciler.handle_state({"state": "ON"})
        reconciler.graph.set_attribute(ClusterId.ON_OFF, "onOff", False)

        assert reconciler.handle_state({"state": "ON"}) == 0
        assert reconciler.graph.get_attribute(ClusterId.ON_OFF, "onOff") is False

    def test_ignored_keys_do_not_count(self, reconcile, switch_device):
        """Messages differing only in link quality are duplicates."""
        reconciler = reconcile(switch_device)
        reconciler.handle_state({"state": "ON", "linkquality": 10})
        assert reconciler.handle_state({"state": "ON", "linkquality": 90}) == 0

    def test_unchanged_after_window(self, reconcile, switch_device, clock):
        """Outside the window, a payload equal to the snapshot is still skipped."""
        reconciler = reconcile(switch_device)
        reconciler.handle_state({"state": "ON"})
        clock.now += 61
        reconciler.graph.set_attribute(ClusterId.ON_OFF, "onOff", False)

        assert reconciler.handle_state({"state": "ON"}) == 0

    def test_alternating_states(self, reconcile, switch_device):
        reconciler = reconcile(switch_device)
        assert [reconciler.handle_state({"state": s}) for s in ("ON", "OFF", "ON")] == [1, 1, 1]

    def test_action_never_deduplicated(self, reconcile, button_device):
        """Repeated presses of the same button are all delivered."""
        reconciler = reconcile(button_device)
        assert reconciler.handle_state({"action": "single"}) == 1
        assert reconciler.handle_state({"action": "single"}) == 1

        switch = reconciler.graph.get_child_endpoint("switch_1")
        assert [e.event for e in switch.events].count("initialPress") == 2
        assert "action" not in reconciler.snapshot

    def test_suppressed(self, reconcile, switch_device):
        """State arriving while the entity waits for its echo is ignored."""
        reconciler = reconcile(switch_device, is_suppressed=lambda: True)
        assert reconciler.handle_state({"state": "ON"}) == 0
        assert reconciler.graph.get_attribute(ClusterId.ON_OFF, "onOff") is False

    def test_no_graph(self, switch_device):
        reconciler = InboundReconciler("Switch", resolve_device(switch_device).property_map, None)
        assert reconciler.handle_state({"state": "ON"}) == 0
        reconciler.handle_offline()

    def test_idempotent_write(self, reconcile, switch_device, caplog):
        """Attributes already holding the value are not written."""
        caplog.set_level(logging.INFO, logger="zigmatter.bridge.reconciler")
        reconciler = reconcile(switch_device)
        reconciler.graph.set_attribute(ClusterId.ON_OFF, "onOff", True)

        assert reconciler.handle_state({"state": "ON"}) == 0
        assert not [r for r in caplog.records if "set" in r.getMessage()]

    def test_unknown_and_invalid_values(self, reconcile, light_sensor):
        reconciler = reconcile(light_sensor)
        assert reconciler.handle_state({"illuminance": "bright", "unknown": 1}) == 0

    def test_ignored_features(self, reconcile, light_sensor):
        reconciler = reconcile(light_sensor, ignored_features=["battery"])
        assert reconciler.handle_state({"battery": 50}) == 0


class TestConversion:
    """Tests for values that need conversion."""

    def test_illuminance(self, reconcile, light_sensor):
        """539 lux is 27316 on the logarithmic scale."""
        reconciler = reconcile(light_sensor)
        reconciler.handle_state({"illuminance": 539})
        assert reconciler.graph.get_attribute(ClusterId.ILLUMINANCE_MEASUREMENT, "measuredValue") == 27316

    def test_xy_color(self, reconcile, color_light):
        """An xy color is stored as hue and saturation."""
        reconciler = reconcile(color_light)
        writes = reconciler.handle_state({"color_mode": "xy", "color": {"x": 0.56, "y": 0.92}})

        color = reconciler.graph.get_cluster_server(ClusterId.COLOR_CONTROL).attributes
        assert abs(color["currentHue"] - 49) <= 1
        assert color["currentSaturation"] == 254
        assert color["colorMode"] == ColorMode.CURRENT_HUE_AND_SATURATION
        assert writes == 2

    def test_hs_color(self, reconcile, color_light):
        reconciler = reconcile(color_light)
        reconciler.handle_state({"color_mode": "hs", "color": {"hue": 180, "saturation": 50}})
        color = reconciler.graph.get_cluster_server(ClusterId.COLOR_CONTROL).attributes
        assert color["currentHue"] == 127
        assert color["currentSaturation"] == 127

    def test_off_drops_color(self, reconcile, color_light):
        """Color reported with an OFF state is not applied."""
        reconciler = reconcile(color_light)
        reconciler.handle_state({"state": "OFF", "color_mode": "xy", "color": {"x": 0.56, "y": 0.92}})
        assert reconciler.graph.get_attribute(ClusterId.COLOR_CONTROL, "currentHue") == 0

    def test_color_temp_needs_mode(self, reconcile, color_light):
        """color_temp is only applied while the light is in color temperature mode."""
        reconciler = reconcile(color_light)
        reconciler.handle_state({"state": "ON", "color_mode": "xy", "color_temp": 300})
        assert reconciler.graph.get_attribute(ClusterId.COLOR_CONTROL, "colorTemperatureMireds") == 500

        reconciler.handle_state({"state": "ON", "color_mode": "color_temp", "color_temp": 300})
        color = reconciler.graph.get_cluster_server(ClusterId.COLOR_CONTROL).attributes
        assert color["colorTemperatureMireds"] == 300
        assert color["colorMode"] == ColorMode.COLOR_TEMPERATURE_MIREDS

    def test_brightness_on_child(self, reconcile, dual_light):
        reconciler = reconcile(dual_light)
        reconciler.handle_state({"state_l2": "ON", "brightness_l2": 100})
        l1 = reconciler.graph.get_child_endpoint("l1")
        l2 = reconciler.graph.get_child_endpoint("l2")
        assert l2.get_attribute(ClusterId.ON_OFF, "onOff") is True
        assert l2.get_attribute(ClusterId.LEVEL_CONTROL, "currentLevel") == 100
        assert l1.get_attribute(ClusterId.ON_OFF, "onOff") is False


class TestActions:
    """Tests for button actions."""

    @pytest.mark.parametrize("action, endpoint, events", [
        ("single", "switch_1", ["initialPress", "shortRelease", "multiPressComplete"]),
        ("double", "switch_1", ["initialPress", "shortRelease", "multiPressOngoing", "shortRelease",
                                "multiPressComplete"]),
        ("hold", "switch_1", ["initialPress", "longPress", "longRelease"]),
        ("release", "switch_2", ["initialPress", "shortRelease", "multiPressComplete"]),
    ])
    def test_press_events(self, reconcile, button_device, action, endpoint, events):
        reconciler = reconcile(button_device)
        reconciler.handle_state({"action": action})
        switch = reconciler.graph.get_child_endpoint(endpoint)
        assert [e.event for e in switch.events] == events
        assert switch.get_attribute(ClusterId.SWITCH, "currentPosition") == 0

    def test_double_press_count(self, reconcile, button_device):
        reconciler = reconcile(button_device)
        reconciler.handle_state({"action": "double"})
        complete = reconciler.graph.get_child_endpoint("switch_1").events[-1]
        assert complete.payload["totalNumberOfPressesCounted"] == 2

    def test_unmapped_action(self, reconcile, button_device):
        reconciler = reconcile(button_device)
        assert reconciler.handle_state({"action": "triple"}) == 0
        assert reconciler.handle_state({"action": ""}) == 0


class TestCover:
    """Tests for cover position and movement."""

    def test_position(self, reconcile, cover_device):
        """A stationary cover moves its target along with its position."""
        reconciler = reconcile(cover_device)
        reconciler.handle_state({"position": 25, "state": "OPEN"})
        covering = reconciler.graph.get_cluster_server(ClusterId.WINDOW_COVERING).attributes
        assert covering["currentPositionLiftPercent100ths"] == 7500
        assert covering["targetPositionLiftPercent100ths"] == 7500

    def test_moving(self, reconcile, cover_device):
        reconciler = reconcile(cover_device)
        reconciler.handle_state({"position": 25})
        reconciler.handle_state({"position": 40, "moving": "DOWN"})
        covering = reconciler.graph.get_cluster_server(ClusterId.WINDOW_COVERING).attributes
        assert covering["currentPositionLiftPercent100ths"] == 6000
        assert covering["targetPositionLiftPercent100ths"] == 7500
        assert covering["operationalStatus"]["global"] == MovementStatus.CLOSING

        reconciler.handle_state({"position": 40, "moving": "STOP"})
        assert covering["operationalStatus"]["global"] == MovementStatus.STOPPED
        assert covering["targetPositionLiftPercent100ths"] == 6000


class TestThermostat:
    """Tests for setpoints gated by the system mode."""

    def test_setpoint_in_heat_mode(self, reconcile, thermostat_device):
        reconciler = reconcile(thermostat_device)
        reconciler.handle_state({"current_heating_setpoint": 21.5, "local_temperature": 19})
        assert reconciler.graph.get_attribute(ClusterId.THERMOSTAT, "occupiedHeatingSetpoint") == 2150
        assert reconciler.graph.get_attribute(ClusterId.THERMOSTAT, "localTemperature") == 1900

    def test_setpoint_ignored_when_off(self, reconcile, thermostat_device):
        """A heating setpoint reported while the thermostat is off is not applied."""
        reconciler = reconcile(thermostat_device)
        reconciler.handle_state({"system_mode": "off", "current_heating_setpoint": 22})
        assert reconciler.graph.get_attribute(ClusterId.THERMOSTAT, "systemMode") == SystemMode.OFF
        assert reconciler.graph.get_attribute(ClusterId.THERMOSTAT, "occupiedHeatingSetpoint") == 2000

        reconciler.handle_state({"system_mode": "heat", "current_heating_setpoint": 22})
        assert reconciler.graph.get_attribute(ClusterId.THERMOSTAT, "occupiedHeatingSetpoint") == 2200


class TestPowerSource:
    """Tests for battery and reachability."""

    def test_battery_level_synthesized(self, reconcile, light_sensor):
        reconciler = reconcile(light_sensor)
        reconciler.handle_state({"battery": 15})
        power = reconciler.graph.get_cluster_server(ClusterId.POWER_SOURCE).attributes
        assert power["batPercentRemaining"] == 30
        assert power["batChargeLevel"] == BatChargeLevel.WARNING

        reconciler.handle_state({"battery": 5})
        assert power["batChargeLevel"] == BatChargeLevel.CRITICAL

    def test_explicit_battery_low_wins(self, reconcile, light_sensor):
        reconciler = reconcile(light_sensor)
        reconciler.handle_state({"battery": 5, "battery_low": False})
        assert reconciler.graph.get_attribute(ClusterId.POWER_SOURCE, "batChargeLevel") == BatChargeLevel.OK

    def test_online_offline(self, reconcile, switch_device):
        reconciler = reconcile(switch_device)
        reconciler.handle_offline()
        graph = reconciler.graph
        assert graph.get_attribute(ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION, "reachable") is False
        assert graph.events[-1].event == "reachableChanged"
        assert graph.events[-1].payload == {"reachableNewValue": False}

        reconciler.handle_online()
        assert graph.get_attribute(ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION, "reachable") is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
