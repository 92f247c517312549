"""
Matter device type catalog.

Each definition carries the protocol device type code and the server
clusters an endpoint must host for the device type to be valid.
"""

from dataclasses import dataclass
from typing import List, Tuple

from .clusters import ClusterId


@dataclass(frozen=True)
class DeviceTypeDefinition:
    """A Matter device type and the clusters it requires."""
    name: str
    code: int
    required_server_clusters: Tuple[ClusterId, ...] = ()
    optional_server_clusters: Tuple[ClusterId, ...] = ()
    revision: int = 1

    def __str__(self) -> str:
        return f"{self.name} (0x{self.code:04x})"


# =============================================================================
# Utility
# =============================================================================

BRIDGED_NODE = DeviceTypeDefinition(
    "MA-bridgedNode", 0x0013,
    (ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION,),
)
POWER_SOURCE = DeviceTypeDefinition(
    "MA-powerSource", 0x0011,
    (ClusterId.POWER_SOURCE,),
)
ELECTRICAL_SENSOR = DeviceTypeDefinition(
    "MA-electricalSensor", 0x0510,
    (ClusterId.POWER_TOPOLOGY,),
    (ClusterId.ELECTRICAL_POWER_MEASUREMENT, ClusterId.ELECTRICAL_ENERGY_MEASUREMENT),
)

# =============================================================================
# Lighting
# =============================================================================

ON_OFF_LIGHT = DeviceTypeDefinition(
    "MA-onofflight", 0x0100,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.ON_OFF),
    (ClusterId.SCENES, ClusterId.LEVEL_CONTROL),
)
DIMMABLE_LIGHT = DeviceTypeDefinition(
    "MA-dimmablelight", 0x0101,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL),
    (ClusterId.SCENES,),
)
COLOR_TEMPERATURE_LIGHT = DeviceTypeDefinition(
    "MA-colortemperaturelight", 0x010C,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL, ClusterId.COLOR_CONTROL),
    (ClusterId.SCENES,),
)
EXTENDED_COLOR_LIGHT = DeviceTypeDefinition(
    "MA-extendedcolorlight", 0x010D,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL, ClusterId.COLOR_CONTROL),
    (ClusterId.SCENES,),
)

# =============================================================================
# Plugs & Switches
# =============================================================================

ON_OFF_PLUG = DeviceTypeDefinition(
    "MA-onoffpluginunit", 0x010A,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.ON_OFF),
    (ClusterId.SCENES, ClusterId.LEVEL_CONTROL),
)
DIMMABLE_PLUG = DeviceTypeDefinition(
    "MA-dimmablepluginunit", 0x010B,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL),
    (ClusterId.SCENES,),
)
ON_OFF_SWITCH = DeviceTypeDefinition(
    "MA-onoffswitch", 0x0103,
    (ClusterId.IDENTIFY, ClusterId.ON_OFF),
    (ClusterId.GROUPS, ClusterId.SCENES),
)
DIMMER_SWITCH = DeviceTypeDefinition(
    "MA-dimmerswitch", 0x0104,
    (ClusterId.IDENTIFY, ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL),
    (ClusterId.GROUPS, ClusterId.SCENES),
)
COLOR_DIMMER_SWITCH = DeviceTypeDefinition(
    "MA-colordimmerswitch", 0x0105,
    (ClusterId.IDENTIFY, ClusterId.ON_OFF, ClusterId.LEVEL_CONTROL, ClusterId.COLOR_CONTROL),
    (ClusterId.GROUPS, ClusterId.SCENES),
)
GENERIC_SWITCH = DeviceTypeDefinition(
    "MA-genericswitch", 0x000F,
    (ClusterId.IDENTIFY, ClusterId.SWITCH),
)

# =============================================================================
# Sensors
# =============================================================================

CONTACT_SENSOR = DeviceTypeDefinition(
    "MA-contactsensor", 0x0015,
    (ClusterId.IDENTIFY, ClusterId.BOOLEAN_STATE),
)
WATER_LEAK_DETECTOR = DeviceTypeDefinition(
    "MA-waterLeakDetector", 0x0043,
    (ClusterId.IDENTIFY, ClusterId.BOOLEAN_STATE),
)
RAIN_SENSOR = DeviceTypeDefinition(
    "MA-rainSensor", 0x0044,
    (ClusterId.IDENTIFY, ClusterId.BOOLEAN_STATE),
)
OCCUPANCY_SENSOR = DeviceTypeDefinition(
    "MA-occupancysensor", 0x0107,
    (ClusterId.IDENTIFY, ClusterId.OCCUPANCY_SENSING),
)
LIGHT_SENSOR = DeviceTypeDefinition(
    "MA-lightsensor", 0x0106,
    (ClusterId.IDENTIFY, ClusterId.ILLUMINANCE_MEASUREMENT),
)
TEMPERATURE_SENSOR = DeviceTypeDefinition(
    "MA-tempsensor", 0x0302,
    (ClusterId.IDENTIFY, ClusterId.TEMPERATURE_MEASUREMENT),
)
HUMIDITY_SENSOR = DeviceTypeDefinition(
    "MA-humiditysensor", 0x0307,
    (ClusterId.IDENTIFY, ClusterId.RELATIVE_HUMIDITY_MEASUREMENT),
)
PRESSURE_SENSOR = DeviceTypeDefinition(
    "MA-pressuresensor", 0x0305,
    (ClusterId.IDENTIFY, ClusterId.PRESSURE_MEASUREMENT),
)
AIR_QUALITY_SENSOR = DeviceTypeDefinition(
    "MA-airQualitySensor", 0x002C,
    (ClusterId.IDENTIFY, ClusterId.AIR_QUALITY),
    (
        ClusterId.TEMPERATURE_MEASUREMENT,
        ClusterId.RELATIVE_HUMIDITY_MEASUREMENT,
        ClusterId.CARBON_DIOXIDE_CONCENTRATION_MEASUREMENT,
        ClusterId.PM25_CONCENTRATION_MEASUREMENT,
        ClusterId.TVOC_CONCENTRATION_MEASUREMENT,
    ),
)
SMOKE_CO_ALARM = DeviceTypeDefinition(
    "MA-smokeCoAlarm", 0x0076,
    (ClusterId.IDENTIFY, ClusterId.SMOKE_CO_ALARM),
)

# =============================================================================
# Closures & HVAC
# =============================================================================

DOOR_LOCK = DeviceTypeDefinition(
    "MA-doorLock", 0x000A,
    (ClusterId.IDENTIFY, ClusterId.DOOR_LOCK),
)
WINDOW_COVERING = DeviceTypeDefinition(
    "MA-windowCovering", 0x0202,
    (ClusterId.IDENTIFY, ClusterId.WINDOW_COVERING),
    (ClusterId.GROUPS, ClusterId.SCENES),
)
THERMOSTAT = DeviceTypeDefinition(
    "MA-thermostat", 0x0301,
    (ClusterId.IDENTIFY, ClusterId.THERMOSTAT),
    (ClusterId.GROUPS, ClusterId.SCENES),
)
FAN = DeviceTypeDefinition(
    "MA-fan", 0x002B,
    (ClusterId.IDENTIFY, ClusterId.GROUPS, ClusterId.FAN_CONTROL),
)


# Clusters added automatically when a device type requiring them is placed
# on an endpoint. Everything else must come from a translation rule.
AUTOMATIC_CLUSTERS: Tuple[ClusterId, ...] = (
    ClusterId.IDENTIFY,
    ClusterId.GROUPS,
    ClusterId.SCENES,
    ClusterId.POWER_TOPOLOGY,
    ClusterId.AIR_QUALITY,
)


# Families ordered from least to most capable. Only the most capable member
# present on an endpoint survives.
SUPERSET_FAMILIES: List[Tuple[DeviceTypeDefinition, ...]] = [
    (ON_OFF_LIGHT, DIMMABLE_LIGHT, COLOR_TEMPERATURE_LIGHT, EXTENDED_COLOR_LIGHT),
    (ON_OFF_SWITCH, DIMMER_SWITCH, COLOR_DIMMER_SWITCH),
    (ON_OFF_PLUG, DIMMABLE_PLUG),
]


def remove_subsets(device_types: List[DeviceTypeDefinition]) -> List[DeviceTypeDefinition]:
    """
    Drop device types that a more capable member of the same family covers.

    Order of the surviving entries is preserved, duplicates are removed.
    """
    result: List[DeviceTypeDefinition] = []
    for device_type in device_types:
        if device_type not in result:
            result.append(device_type)

    for family in SUPERSET_FAMILIES:
        present = [dt for dt in family if dt in result]
        for weaker in present[:-1]:
            result.remove(weaker)
    return result
