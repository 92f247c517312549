"""
Shared roster fixtures.
"""

import json

import pytest

from zigmatter.config import BridgeConfig, TimingConfig, reset_config
from zigmatter.gateway.client import GatewayClient
from zigmatter.gateway.models import BridgeDevice, BridgeGroup


def binary(name, prop=None, endpoint=None, access=7):
    feature = {"type": "binary", "name": name, "property": prop or name, "access": access,
               "value_on": "ON", "value_off": "OFF"}
    if endpoint:
        feature["endpoint"] = endpoint
    return feature


def numeric(name, prop=None, endpoint=None, access=5, unit=None, value_min=None, value_max=None):
    feature = {"type": "numeric", "name": name, "property": prop or name, "access": access}
    if endpoint:
        feature["endpoint"] = endpoint
    if unit:
        feature["unit"] = unit
    if value_min is not None:
        feature["value_min"] = value_min
    if value_max is not None:
        feature["value_max"] = value_max
    return feature


def enum(name, values, prop=None, access=1):
    return {"type": "enum", "name": name, "property": prop or name, "access": access, "values": values}


def color_xy():
    return {"type": "composite", "name": "color_xy", "property": "color", "access": 7,
            "features": [numeric("x", access=7), numeric("y", access=7)]}


def device_data(name, exposes, ieee=None, power_source="Mains (single phase)", options=None,
                model="TEST-1", vendor="Acme"):
    return {
        "ieee_address": ieee or f"0x{sum(map(ord, name)):016x}",
        "friendly_name": name,
        "type": "EndDevice" if power_source == "Battery" else "Router",
        "supported": True,
        "interview_completed": True,
        "power_source": power_source,
        "definition": {
            "model": model,
            "vendor": vendor,
            "description": f"{vendor} {model}",
            "exposes": exposes,
            "options": options or [],
        },
    }


SWITCH_EXPOSES = [{"type": "switch", "features": [binary("state")]}]

DUAL_LIGHT_EXPOSES = [
    {"type": "light", "endpoint": "l1", "features": [
        binary("state", "state_l1", "l1"), numeric("brightness", "brightness_l1", "l1", access=7, value_max=254)]},
    {"type": "light", "endpoint": "l2", "features": [
        binary("state", "state_l2", "l2"), numeric("brightness", "brightness_l2", "l2", access=7, value_max=254)]},
]

COLOR_LIGHT_EXPOSES = [
    {"type": "light", "features": [
        binary("state"),
        numeric("brightness", access=7, value_min=0, value_max=254),
        numeric("color_temp", access=7, unit="mired", value_min=153, value_max=500),
        color_xy(),
    ]},
    numeric("linkquality", access=1, unit="lqi"),
]

LIGHT_SENSOR_EXPOSES = [
    numeric("illuminance", access=5, unit="lx"),
    numeric("battery", access=1, unit="%"),
    numeric("voltage", access=1, unit="mV"),
    numeric("linkquality", access=1, unit="lqi"),
]

BUTTON_EXPOSES = [
    enum("action", ["single", "double", "hold", "release"]),
    numeric("battery", access=1, unit="%"),
]

COVER_EXPOSES = [
    {"type": "cover", "features": [
        {"type": "enum", "name": "state", "property": "state", "access": 3, "values": ["OPEN", "CLOSE", "STOP"]},
        numeric("position", access=7, unit="%", value_min=0, value_max=100),
    ]},
]

THERMOSTAT_EXPOSES = [
    {"type": "climate", "features": [
        numeric("local_temperature", access=5, unit="°C"),
        numeric("current_heating_setpoint", access=7, unit="°C", value_min=5, value_max=30),
        {"type": "enum", "name": "system_mode", "property": "system_mode", "access": 7, "values": ["off", "heat"]},
    ]},
]

CONTACT_EXPOSES = [
    binary("contact", access=1),
    numeric("battery", access=1, unit="%"),
]


@pytest.fixture(autouse=True)
def clean_config():
    """Keep the global configuration out of every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def make_device():
    def factory(name, exposes, **kwargs):
        return BridgeDevice.model_validate(device_data(name, exposes, **kwargs))
    return factory


@pytest.fixture
def switch_device(make_device):
    return make_device("Switch", SWITCH_EXPOSES, ieee="0x0000000000000001")


@pytest.fixture
def dual_light(make_device):
    return make_device("Dual", DUAL_LIGHT_EXPOSES, ieee="0x0000000000000002")


@pytest.fixture
def color_light(make_device):
    options = [numeric("transition", access=2, unit="s")]
    return make_device("Bulb", COLOR_LIGHT_EXPOSES, ieee="0x0000000000000003", options=options)


@pytest.fixture
def light_sensor(make_device):
    return make_device("Lux", LIGHT_SENSOR_EXPOSES, ieee="0x0000000000000004", power_source="Battery")


@pytest.fixture
def button_device(make_device):
    return make_device("Button", BUTTON_EXPOSES, ieee="0x0000000000000005", power_source="Battery")


@pytest.fixture
def cover_device(make_device):
    return make_device("Blind", COVER_EXPOSES, ieee="0x0000000000000006")


@pytest.fixture
def thermostat_device(make_device):
    return make_device("Radiator", THERMOSTAT_EXPOSES, ieee="0x0000000000000007", power_source="Battery")


@pytest.fixture
def contact_sensor(make_device):
    return make_device("Door", CONTACT_EXPOSES, ieee="0x0000000000000008", power_source="Battery")


@pytest.fixture
def coordinator_device():
    return BridgeDevice.model_validate({
        "ieee_address": "0x00124b0000000000",
        "friendly_name": "Coordinator",
        "type": "Coordinator",
        "definition": None,
    })


@pytest.fixture
def light_group():
    return BridgeGroup.model_validate({
        "id": 1,
        "friendly_name": "Living",
        "members": [{"ieee_address": "0x0000000000000002", "endpoint": 11},
                    {"ieee_address": "0x0000000000000003", "endpoint": 11}],
    })


@pytest.fixture
def fast_config(tmp_path):
    """Configuration with timers short enough to await in tests."""
    return BridgeConfig(
        data_dir=tmp_path,
        timing=TimingConfig(debounce_seconds=0.02, suppress_seconds=0.1, setpoint_guard_seconds=0.2),
    )


@pytest.fixture
def published():
    """Messages sent through the gateway transport as (topic, decoded payload)."""
    return []


@pytest.fixture
def gateway(published):
    return GatewayClient(
        "zigbee2mqtt",
        transport=lambda topic, message: published.append((topic, json.loads(message) if message else None)),
    )


@pytest.fixture
def roster_file(tmp_path):
    """A saved bridge/devices + bridge/groups dump."""
    data = {
        "devices": [
            device_data("Switch", SWITCH_EXPOSES, ieee="0x0000000000000001"),
            device_data("Bulb", COLOR_LIGHT_EXPOSES, ieee="0x0000000000000003"),
            device_data("Lux", LIGHT_SENSOR_EXPOSES, ieee="0x0000000000000004", power_source="Battery"),
        ],
        "groups": [
            {"id": 3, "friendly_name": "Everything", "members": [{"ieee_address": "0x0000000000000003"}]},
        ],
    }
    path = tmp_path / "roster.json"
    path.write_text(json.dumps(data))
    return path
