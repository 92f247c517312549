"""
Translation rule table.

Static mapping from a gateway feature (capability type + feature name)
to the Matter device type, cluster and attribute that represents it,
with an optional named converter and an optional enum lookup.

Converters are pure functions picked from the closed set in CONVERTERS,
so every rule can be exercised directly in tests.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..matter import device_types as dt
from ..matter.clusters import (
    AlarmState,
    BatChargeLevel,
    ClusterId,
    FanMode,
    LEVEL_MAX,
    LEVEL_MIN,
    LIFT_CLOSED,
    LockState,
)


class ConversionError(ValueError):
    """A value could not be converted; the write is dropped."""


# =============================================================================
# Converters
# =============================================================================

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConversionError(f"Expected a number, got {value!r}")
    return value


def on_off(value: Any) -> bool:
    return value is True or value == "ON"


def boolean(value: Any) -> bool:
    return bool(value)


def invert(value: Any) -> bool:
    return not bool(value)


def level(value: Any) -> int:
    return int(_clamp(round(_number(value)), LEVEL_MIN, LEVEL_MAX))


def mireds(value: Any) -> int:
    return int(_clamp(round(_number(value)), 1, 0xFEFF))


def centi(value: Any) -> int:
    """Degrees to hundredths of a degree (int16)."""
    return int(_clamp(round(_number(value) * 100), -27315, 32767))


def percent100ths(value: Any) -> int:
    return int(_clamp(round(_number(value) * 100), 0, 10000))


def half_percent(value: Any) -> int:
    """Battery percentage to the half-percent units of batPercentRemaining."""
    return int(_clamp(round(_number(value) * 2), 0, 200))


def battery_low(value: Any) -> BatChargeLevel:
    return BatChargeLevel.CRITICAL if value else BatChargeLevel.OK


def alarm(value: Any) -> AlarmState:
    return AlarmState.CRITICAL if value else AlarmState.NORMAL


def occupancy(value: Any) -> Dict[str, bool]:
    return {"occupied": bool(value)}


def illuminance(value: Any) -> int:
    """Lux to the logarithmic illuminance scale, 10000 * log10(lux)."""
    lux = _number(value)
    if lux <= 0:
        return 0
    return int(round(_clamp(10000 * math.log10(lux), 0, 0xFFFE)))


def pressure(value: Any) -> int:
    return int(round(_number(value)))


def uint16(value: Any) -> int:
    return int(_clamp(round(_number(value)), 0, 0xFFFF))


def decimal(value: Any) -> float:
    return float(_number(value))


def milli(value: Any) -> int:
    return int(round(_number(value) * 1000))


def energy(value: Any) -> Dict[str, int]:
    """kWh to the mWh energy measurement struct."""
    return {"energy": int(round(_number(value) * 1_000_000))}


def lift(value: Any) -> int:
    """Open percentage (100 = open) to lift in hundredths of a percent (0 = open)."""
    return int(_clamp(LIFT_CLOSED - round(_number(value) * 100), 0, LIFT_CLOSED))


def lock_state(value: Any) -> LockState:
    if value == "LOCK":
        return LockState.LOCKED
    if value == "UNLOCK":
        return LockState.UNLOCKED
    return LockState.NOT_FULLY_LOCKED


def fan_state(value: Any) -> FanMode:
    return FanMode.ON if on_off(value) else FanMode.OFF


CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "on_off": on_off,
    "boolean": boolean,
    "invert": invert,
    "level": level,
    "mireds": mireds,
    "centi": centi,
    "percent100ths": percent100ths,
    "half_percent": half_percent,
    "battery_low": battery_low,
    "alarm": alarm,
    "occupancy": occupancy,
    "illuminance": illuminance,
    "pressure": pressure,
    "uint16": uint16,
    "decimal": decimal,
    "milli": milli,
    "energy": energy,
    "lift": lift,
    "lock_state": lock_state,
    "fan_state": fan_state,
}


# =============================================================================
# Enum lookups (index = protocol value)
# =============================================================================

AIR_QUALITY_LOOKUP = ("unknown", "excellent", "good", "moderate", "poor", "unhealthy", "out_of_range")
SYSTEM_MODE_LOOKUP = ("off", "auto", "", "cool", "heat", "emergency_heating", "precooling", "fan_only", "dry", "sleep")
FAN_MODE_LOOKUP = ("off", "low", "medium", "high", "on", "auto", "smart")


# =============================================================================
# Rules
# =============================================================================

@dataclass(frozen=True)
class TranslationRule:
    """One row of the translation table."""
    type: str
    name: str
    device_type: dt.DeviceTypeDefinition
    cluster: ClusterId
    attribute: str
    converter: Optional[str] = None
    lookup: Optional[Tuple[str, ...]] = None

    def convert(self, value: Any) -> Any:
        """
        Convert a gateway value to the attribute value.

        Raises ConversionError when the value is absent from the lookup or
        the converter rejects it.
        """
        if self.lookup is not None:
            if value not in self.lookup or value == "":
                raise ConversionError(f"{value!r} is not one of {list(self.lookup)}")
            value = self.lookup.index(value)
        if self.converter is not None:
            value = CONVERTERS[self.converter](value)
        return value

    def reverse_lookup(self, index: int) -> Optional[str]:
        """Gateway enum string for a protocol enum value."""
        if self.lookup is None or not 0 <= index < len(self.lookup):
            return None
        return self.lookup[index] or None


def _rule(type_: str, name: str, device_type: dt.DeviceTypeDefinition, cluster: ClusterId,
          attribute: str, converter: Optional[str] = None,
          lookup: Optional[Tuple[str, ...]] = None) -> TranslationRule:
    if converter is not None and converter not in CONVERTERS:
        raise KeyError(f"Unknown converter {converter}")
    return TranslationRule(type_, name, device_type, cluster, attribute, converter, lookup)


TRANSLATION_RULES: List[TranslationRule] = [
    # Switches
    _rule("switch", "state", dt.ON_OFF_SWITCH, ClusterId.ON_OFF, "onOff", "on_off"),
    _rule("switch", "brightness", dt.DIMMER_SWITCH, ClusterId.LEVEL_CONTROL, "currentLevel", "level"),
    _rule("switch", "color_temp", dt.COLOR_DIMMER_SWITCH, ClusterId.COLOR_CONTROL, "colorTemperatureMireds", "mireds"),
    _rule("switch", "color_xy", dt.COLOR_DIMMER_SWITCH, ClusterId.COLOR_CONTROL, "currentX"),
    _rule("switch", "color_hs", dt.COLOR_DIMMER_SWITCH, ClusterId.COLOR_CONTROL, "currentHue"),

    # Outlets
    _rule("outlet", "state", dt.ON_OFF_PLUG, ClusterId.ON_OFF, "onOff", "on_off"),
    _rule("outlet", "brightness", dt.DIMMABLE_PLUG, ClusterId.LEVEL_CONTROL, "currentLevel", "level"),

    # Lights
    _rule("light", "state", dt.ON_OFF_LIGHT, ClusterId.ON_OFF, "onOff", "on_off"),
    _rule("light", "brightness", dt.DIMMABLE_LIGHT, ClusterId.LEVEL_CONTROL, "currentLevel", "level"),
    _rule("light", "color_temp", dt.COLOR_TEMPERATURE_LIGHT, ClusterId.COLOR_CONTROL, "colorTemperatureMireds", "mireds"),
    _rule("light", "color_xy", dt.EXTENDED_COLOR_LIGHT, ClusterId.COLOR_CONTROL, "currentX"),
    _rule("light", "color_hs", dt.EXTENDED_COLOR_LIGHT, ClusterId.COLOR_CONTROL, "currentHue"),

    # Covers
    _rule("cover", "state", dt.WINDOW_COVERING, ClusterId.WINDOW_COVERING, "targetPositionLiftPercent100ths"),
    _rule("cover", "position", dt.WINDOW_COVERING, ClusterId.WINDOW_COVERING, "currentPositionLiftPercent100ths", "lift"),

    # Locks
    _rule("lock", "state", dt.DOOR_LOCK, ClusterId.DOOR_LOCK, "lockState", "lock_state"),

    # Climate
    _rule("climate", "local_temperature", dt.THERMOSTAT, ClusterId.THERMOSTAT, "localTemperature", "centi"),
    _rule("climate", "current_heating_setpoint", dt.THERMOSTAT, ClusterId.THERMOSTAT, "occupiedHeatingSetpoint", "centi"),
    _rule("climate", "occupied_heating_setpoint", dt.THERMOSTAT, ClusterId.THERMOSTAT, "occupiedHeatingSetpoint", "centi"),
    _rule("climate", "current_cooling_setpoint", dt.THERMOSTAT, ClusterId.THERMOSTAT, "occupiedCoolingSetpoint", "centi"),
    _rule("climate", "occupied_cooling_setpoint", dt.THERMOSTAT, ClusterId.THERMOSTAT, "occupiedCoolingSetpoint", "centi"),
    _rule("climate", "system_mode", dt.THERMOSTAT, ClusterId.THERMOSTAT, "systemMode", lookup=SYSTEM_MODE_LOOKUP),

    # Fans
    _rule("fan", "state", dt.FAN, ClusterId.FAN_CONTROL, "fanMode", "fan_state"),
    _rule("fan", "mode", dt.FAN, ClusterId.FAN_CONTROL, "fanMode", lookup=FAN_MODE_LOOKUP),

    # Generic features
    _rule("", "occupancy", dt.OCCUPANCY_SENSOR, ClusterId.OCCUPANCY_SENSING, "occupancy", "occupancy"),
    _rule("", "presence", dt.OCCUPANCY_SENSOR, ClusterId.OCCUPANCY_SENSING, "occupancy", "occupancy"),
    _rule("", "illuminance", dt.LIGHT_SENSOR, ClusterId.ILLUMINANCE_MEASUREMENT, "measuredValue", "illuminance"),
    _rule("", "illuminance_lux", dt.LIGHT_SENSOR, ClusterId.ILLUMINANCE_MEASUREMENT, "measuredValue", "illuminance"),
    _rule("", "contact", dt.CONTACT_SENSOR, ClusterId.BOOLEAN_STATE, "stateValue", "boolean"),
    _rule("", "water_leak", dt.WATER_LEAK_DETECTOR, ClusterId.BOOLEAN_STATE, "stateValue", "boolean"),
    _rule("", "rain", dt.RAIN_SENSOR, ClusterId.BOOLEAN_STATE, "stateValue", "boolean"),
    _rule("", "vibration", dt.CONTACT_SENSOR, ClusterId.BOOLEAN_STATE, "stateValue", "invert"),
    _rule("", "carbon_monoxide", dt.CONTACT_SENSOR, ClusterId.BOOLEAN_STATE, "stateValue", "invert"),
    _rule("", "smoke", dt.SMOKE_CO_ALARM, ClusterId.SMOKE_CO_ALARM, "smokeState", "alarm"),
    _rule("", "temperature", dt.TEMPERATURE_SENSOR, ClusterId.TEMPERATURE_MEASUREMENT, "measuredValue", "centi"),
    _rule("", "humidity", dt.HUMIDITY_SENSOR, ClusterId.RELATIVE_HUMIDITY_MEASUREMENT, "measuredValue", "percent100ths"),
    _rule("", "pressure", dt.PRESSURE_SENSOR, ClusterId.PRESSURE_MEASUREMENT, "measuredValue", "pressure"),
    _rule("", "air_quality", dt.AIR_QUALITY_SENSOR, ClusterId.AIR_QUALITY, "airQuality", lookup=AIR_QUALITY_LOOKUP),
    _rule("", "voc", dt.AIR_QUALITY_SENSOR, ClusterId.TVOC_CONCENTRATION_MEASUREMENT, "measuredValue", "uint16"),
    _rule("", "co2", dt.AIR_QUALITY_SENSOR, ClusterId.CARBON_DIOXIDE_CONCENTRATION_MEASUREMENT, "measuredValue", "uint16"),
    _rule("", "pm25", dt.AIR_QUALITY_SENSOR, ClusterId.PM25_CONCENTRATION_MEASUREMENT, "measuredValue", "decimal"),
    _rule("", "action", dt.GENERIC_SWITCH, ClusterId.SWITCH, "currentPosition"),
    _rule("", "battery", dt.POWER_SOURCE, ClusterId.POWER_SOURCE, "batPercentRemaining", "half_percent"),
    _rule("", "battery_low", dt.POWER_SOURCE, ClusterId.POWER_SOURCE, "batChargeLevel", "battery_low"),
    _rule("", "battery_voltage", dt.POWER_SOURCE, ClusterId.POWER_SOURCE, "batVoltage", "uint16"),
    _rule("", "voltage", dt.ELECTRICAL_SENSOR, ClusterId.ELECTRICAL_POWER_MEASUREMENT, "voltage", "milli"),
    _rule("", "current", dt.ELECTRICAL_SENSOR, ClusterId.ELECTRICAL_POWER_MEASUREMENT, "activeCurrent", "milli"),
    _rule("", "power", dt.ELECTRICAL_SENSOR, ClusterId.ELECTRICAL_POWER_MEASUREMENT, "activePower", "milli"),
    _rule("", "energy", dt.ELECTRICAL_SENSOR, ClusterId.ELECTRICAL_ENERGY_MEASUREMENT, "cumulativeEnergyImported", "energy"),
]


_RULE_INDEX: Dict[Tuple[str, str], TranslationRule] = {}
for _entry in TRANSLATION_RULES:
    _RULE_INDEX.setdefault((_entry.type, _entry.name), _entry)


def find_rule(capability_type: str, name: str) -> Optional[TranslationRule]:
    """
    Return the rule for a feature.

    An exact (type, name) match wins; otherwise the generic rule for the
    feature name applies.
    """
    rule = _RULE_INDEX.get((capability_type, name))
    if rule is None and capability_type:
        rule = _RULE_INDEX.get(("", name))
    return rule


def rules_for_cluster(cluster: ClusterId) -> List[TranslationRule]:
    return [rule for rule in TRANSLATION_RULES if rule.cluster == cluster]
