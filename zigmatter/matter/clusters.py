"""
Matter cluster identifiers and attribute enumerations.

Defines the clusters the bridge exposes, the enumerated attribute values
it writes, and the initial attribute values a freshly created cluster
server starts with.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional


class ClusterId(IntEnum):
    """
    Matter cluster IDs.

    See: Matter Application Cluster Specification
    """
    # General
    IDENTIFY = 0x0003
    GROUPS = 0x0004
    SCENES = 0x0005
    ON_OFF = 0x0006
    LEVEL_CONTROL = 0x0008
    DESCRIPTOR = 0x001D
    BRIDGED_DEVICE_BASIC_INFORMATION = 0x0039
    SWITCH = 0x003B
    FIXED_LABEL = 0x0040
    POWER_SOURCE = 0x002F
    BOOLEAN_STATE = 0x0045

    # Energy
    ELECTRICAL_POWER_MEASUREMENT = 0x0090
    ELECTRICAL_ENERGY_MEASUREMENT = 0x0091
    POWER_TOPOLOGY = 0x009C

    # Safety and air
    AIR_QUALITY = 0x005B
    SMOKE_CO_ALARM = 0x005C

    # Closures and HVAC
    DOOR_LOCK = 0x0101
    WINDOW_COVERING = 0x0102
    THERMOSTAT = 0x0201
    FAN_CONTROL = 0x0202

    # Lighting
    COLOR_CONTROL = 0x0300

    # Measurement
    ILLUMINANCE_MEASUREMENT = 0x0400
    TEMPERATURE_MEASUREMENT = 0x0402
    PRESSURE_MEASUREMENT = 0x0403
    RELATIVE_HUMIDITY_MEASUREMENT = 0x0405
    OCCUPANCY_SENSING = 0x0406
    CARBON_DIOXIDE_CONCENTRATION_MEASUREMENT = 0x040D
    PM25_CONCENTRATION_MEASUREMENT = 0x042A
    TVOC_CONCENTRATION_MEASUREMENT = 0x042E


class ColorMode(IntEnum):
    CURRENT_HUE_AND_SATURATION = 0
    CURRENT_X_AND_Y = 1
    COLOR_TEMPERATURE_MIREDS = 2


class MovementStatus(IntEnum):
    STOPPED = 0
    OPENING = 1
    CLOSING = 2


class BatChargeLevel(IntEnum):
    OK = 0
    WARNING = 1
    CRITICAL = 2


class AirQualityType(IntEnum):
    UNKNOWN = 0
    GOOD = 1
    FAIR = 2
    MODERATE = 3
    POOR = 4
    VERY_POOR = 5
    EXTREMELY_POOR = 6


class SystemMode(IntEnum):
    OFF = 0
    AUTO = 1
    COOL = 3
    HEAT = 4
    EMERGENCY_HEAT = 5
    PRECOOLING = 6
    FAN_ONLY = 7
    DRY = 8
    SLEEP = 9


class ControlSequence(IntEnum):
    COOLING_ONLY = 0
    HEATING_ONLY = 2
    COOLING_AND_HEATING = 4


class SetpointMode(IntEnum):
    """Mode argument of the setpointRaiseLower command."""
    HEAT = 0
    COOL = 1
    BOTH = 2


class LockState(IntEnum):
    NOT_FULLY_LOCKED = 0
    LOCKED = 1
    UNLOCKED = 2


class AlarmState(IntEnum):
    NORMAL = 0
    WARNING = 1
    CRITICAL = 2


class FanMode(IntEnum):
    OFF = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    ON = 4
    AUTO = 5
    SMART = 6


class PowerSourceStatus(IntEnum):
    UNSPECIFIED = 0
    ACTIVE = 1
    STANDBY = 2
    UNAVAILABLE = 3


class TagNamespace(IntEnum):
    """Semantic tag namespaces used to tell sibling endpoints apart."""
    COMMON_NUMBER = 0x07
    COMMON_POSITION = 0x08


class PositionTag(IntEnum):
    LEFT = 0
    RIGHT = 1
    TOP = 2
    BOTTOM = 3
    MIDDLE = 4
    ROW = 5
    COLUMN = 6


@dataclass(frozen=True)
class SemanticTag:
    """A semantic tag attached to an endpoint descriptor."""
    namespace_id: int
    tag: int
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"mfgCode": None, "namespaceId": self.namespace_id, "tag": self.tag, "label": self.label}


# Lowest and highest mireds reported when a light does not declare bounds
COLOR_TEMP_PHYSICAL_MIN = 147
COLOR_TEMP_PHYSICAL_MAX = 500

# Level control range
LEVEL_MIN = 1
LEVEL_MAX = 254

# Lift is expressed in hundredths of a percent, 0 = fully open
LIFT_OPEN = 0
LIFT_CLOSED = 10000


# Attribute values a cluster server starts with before configuration
CLUSTER_DEFAULTS: Dict[ClusterId, Dict[str, Any]] = {
    ClusterId.IDENTIFY: {"identifyTime": 0, "identifyType": 0},
    ClusterId.GROUPS: {"nameSupport": 0},
    ClusterId.SCENES: {"sceneCount": 0, "currentScene": 0},
    ClusterId.ON_OFF: {"onOff": False},
    ClusterId.LEVEL_CONTROL: {
        "currentLevel": LEVEL_MAX,
        "minLevel": LEVEL_MIN,
        "maxLevel": LEVEL_MAX,
        "onLevel": None,
    },
    ClusterId.COLOR_CONTROL: {
        "colorMode": ColorMode.COLOR_TEMPERATURE_MIREDS,
        "currentHue": 0,
        "currentSaturation": 0,
        "currentX": 0,
        "currentY": 0,
        "colorTemperatureMireds": COLOR_TEMP_PHYSICAL_MAX,
        "colorTempPhysicalMinMireds": COLOR_TEMP_PHYSICAL_MIN,
        "colorTempPhysicalMaxMireds": COLOR_TEMP_PHYSICAL_MAX,
    },
    ClusterId.BRIDGED_DEVICE_BASIC_INFORMATION: {
        "vendorName": "",
        "productName": "",
        "nodeLabel": "",
        "serialNumber": "",
        "reachable": True,
    },
    ClusterId.POWER_SOURCE: {
        "status": PowerSourceStatus.ACTIVE,
        "order": 0,
        "description": "Primary power",
    },
    ClusterId.SWITCH: {"numberOfPositions": 2, "currentPosition": 0, "multiPressMax": 2},
    ClusterId.BOOLEAN_STATE: {"stateValue": False},
    ClusterId.OCCUPANCY_SENSING: {"occupancy": {"occupied": False}, "occupancySensorType": 0},
    ClusterId.ILLUMINANCE_MEASUREMENT: {"measuredValue": 0, "minMeasuredValue": None, "maxMeasuredValue": None},
    ClusterId.TEMPERATURE_MEASUREMENT: {"measuredValue": 0, "minMeasuredValue": None, "maxMeasuredValue": None},
    ClusterId.RELATIVE_HUMIDITY_MEASUREMENT: {"measuredValue": 0, "minMeasuredValue": 0, "maxMeasuredValue": 10000},
    ClusterId.PRESSURE_MEASUREMENT: {"measuredValue": 0, "minMeasuredValue": None, "maxMeasuredValue": None},
    ClusterId.CARBON_DIOXIDE_CONCENTRATION_MEASUREMENT: {"measuredValue": None, "measurementUnit": 0},
    ClusterId.PM25_CONCENTRATION_MEASUREMENT: {"measuredValue": None, "measurementUnit": 4},
    ClusterId.TVOC_CONCENTRATION_MEASUREMENT: {"measuredValue": None, "measurementUnit": 0},
    ClusterId.AIR_QUALITY: {"airQuality": AirQualityType.UNKNOWN},
    ClusterId.SMOKE_CO_ALARM: {"expressedState": 0, "smokeState": AlarmState.NORMAL, "batteryAlert": AlarmState.NORMAL},
    ClusterId.DOOR_LOCK: {"lockState": LockState.LOCKED, "lockType": 2, "actuatorEnabled": True, "operatingMode": 0},
    ClusterId.WINDOW_COVERING: {
        "type": 0,
        "currentPositionLiftPercent100ths": LIFT_OPEN,
        "targetPositionLiftPercent100ths": LIFT_OPEN,
        "operationalStatus": {"global": MovementStatus.STOPPED, "lift": MovementStatus.STOPPED, "tilt": MovementStatus.STOPPED},
        "endProductType": 0,
        "mode": {"motorDirectionReversed": False, "calibrationMode": False, "maintenanceMode": False, "ledFeedback": False},
    },
    ClusterId.THERMOSTAT: {
        "localTemperature": None,
        "occupiedHeatingSetpoint": 2000,
        "occupiedCoolingSetpoint": 2400,
        "systemMode": SystemMode.AUTO,
        "controlSequenceOfOperation": ControlSequence.COOLING_AND_HEATING,
        "minSetpointDeadBand": 0,
    },
    ClusterId.FAN_CONTROL: {"fanMode": FanMode.OFF, "fanModeSequence": 2, "percentSetting": 0, "percentCurrent": 0},
    ClusterId.ELECTRICAL_POWER_MEASUREMENT: {
        "powerMode": 2,
        "numberOfMeasurementTypes": 3,
        "voltage": None,
        "activeCurrent": None,
        "activePower": None,
    },
    ClusterId.ELECTRICAL_ENERGY_MEASUREMENT: {"cumulativeEnergyImported": None},
    ClusterId.POWER_TOPOLOGY: {},
    ClusterId.FIXED_LABEL: {"labelList": []},
}


def cluster_name(cluster_id: int) -> str:
    """Readable name for a cluster id, used in log lines."""
    try:
        return ClusterId(cluster_id).name
    except ValueError:
        return f"0x{cluster_id:04x}"
