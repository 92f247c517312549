"""
Zigbee2MQTT roster models.

Pydantic models for the payloads the gateway publishes on
bridge/devices, bridge/groups and bridge/info. Unknown keys are ignored
so newer gateway releases still validate.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Access bits of an exposed feature
ACCESS_STATE = 0b001
ACCESS_SET = 0b010
ACCESS_GET = 0b100


class ExposeFeature(BaseModel):
    """One exposed feature; composite features nest further features."""
    model_config = ConfigDict(extra="ignore")

    type: str = Field(default="", description="binary, numeric, enum, composite, light, switch, ...")
    name: str = ""
    property: str = ""
    label: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, description="config or diagnostic")
    endpoint: Optional[str] = None
    access: int = 0
    unit: Optional[str] = None
    value_min: Optional[float] = None
    value_max: Optional[float] = None
    value_step: Optional[float] = None
    value_on: Optional[Any] = None
    value_off: Optional[Any] = None
    values: List[str] = Field(default_factory=list)
    features: List["ExposeFeature"] = Field(default_factory=list)


ExposeFeature.model_rebuild()


class DeviceDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str = ""
    vendor: str = ""
    description: str = ""
    exposes: List[ExposeFeature] = Field(default_factory=list)
    options: List[ExposeFeature] = Field(default_factory=list)
    supports_ota: bool = False


class BridgeDevice(BaseModel):
    """A device entry of bridge/devices."""
    model_config = ConfigDict(extra="ignore")

    ieee_address: str
    friendly_name: str
    type: str = "EndDevice"
    network_address: Optional[int] = None
    supported: bool = True
    disabled: bool = False
    description: Optional[str] = None
    definition: Optional[DeviceDefinition] = None
    power_source: Optional[str] = None
    software_build_id: Optional[str] = None
    date_code: Optional[str] = None
    model_id: Optional[str] = None
    manufacturer: Optional[str] = None
    interview_completed: bool = True

    @property
    def is_coordinator(self) -> bool:
        return self.type == "Coordinator"

    @property
    def is_battery_powered(self) -> bool:
        return self.power_source == "Battery"

    @property
    def exposes(self) -> List[ExposeFeature]:
        return self.definition.exposes if self.definition else []

    @property
    def options(self) -> List[ExposeFeature]:
        return self.definition.options if self.definition else []


class GroupMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ieee_address: str
    endpoint: int = 1


class GroupScene(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""


class BridgeGroup(BaseModel):
    """A group entry of bridge/groups."""
    model_config = ConfigDict(extra="ignore")

    id: int
    friendly_name: str
    description: Optional[str] = None
    members: List[GroupMember] = Field(default_factory=list)
    scenes: List[GroupScene] = Field(default_factory=list)


class BridgeInfo(BaseModel):
    """The subset of bridge/info the bridge consumes."""
    model_config = ConfigDict(extra="ignore")

    version: str = ""
    commit: Optional[str] = None
    permit_join: bool = False
    permit_join_timeout: Optional[int] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def availability_enabled(self) -> bool:
        return self.config.get("availability") is not None

    @property
    def output_format(self) -> str:
        return self.config.get("advanced", {}).get("output", "json")


def parse_devices(data: List[Dict[str, Any]]) -> List[BridgeDevice]:
    return [BridgeDevice.model_validate(item) for item in data]


def parse_groups(data: List[Dict[str, Any]]) -> List[BridgeGroup]:
    return [BridgeGroup.model_validate(item) for item in data]
