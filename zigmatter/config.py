"""
Configuration management for zigmatter.

Handles:
- Gateway connection settings
- Entity allow/deny lists and capability overrides
- Ignored features
- Debounce and echo suppression timing
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".zigmatter"

DEFAULT_MQTT_PORT = 1883
DEFAULT_BASE_TOPIC = "zigbee2mqtt"


@dataclass
class TimingConfig:
    """Timers of the outbound and inbound pipelines, in seconds."""
    debounce_seconds: float = 0.1
    suppress_seconds: float = 2.0
    setpoint_guard_seconds: float = 5.0  # Thermostat setpoints and groups echo slowly
    duplicate_window_seconds: float = 60.0

    def to_dict(self) -> dict:
        return {
            "debounce_seconds": self.debounce_seconds,
            "suppress_seconds": self.suppress_seconds,
            "setpoint_guard_seconds": self.setpoint_guard_seconds,
            "duplicate_window_seconds": self.duplicate_window_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimingConfig":
        known_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)


@dataclass
class BridgeConfig:
    """
    Main zigmatter configuration.

    Stored at ~/.zigmatter/config.json
    """
    name: str = "zigbee2mqtt"

    # Gateway (MQTT broker the gateway publishes to)
    host: str = "localhost"
    port: int = DEFAULT_MQTT_PORT
    topic: str = DEFAULT_BASE_TOPIC
    username: Optional[str] = None
    password: Optional[str] = None

    # Entity selection (friendly names)
    white_list: List[str] = field(default_factory=list)
    black_list: List[str] = field(default_factory=list)

    # Capability type overrides for switch/light/outlet exposes
    switch_list: List[str] = field(default_factory=list)
    light_list: List[str] = field(default_factory=list)
    outlet_list: List[str] = field(default_factory=list)

    # Ignored features
    feature_black_list: List[str] = field(default_factory=list)
    device_feature_black_list: Dict[str, List[str]] = field(default_factory=dict)

    scenes_type: str = "outlet"  # Type of groups without light/switch/outlet members
    postfix: str = ""  # Appended to serial numbers
    debug: bool = False
    unregister_on_shutdown: bool = False

    timing: TimingConfig = field(default_factory=TimingConfig)

    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "topic": self.topic,
            "username": self.username,
            "password": self.password,
            "white_list": self.white_list,
            "black_list": self.black_list,
            "switch_list": self.switch_list,
            "light_list": self.light_list,
            "outlet_list": self.outlet_list,
            "feature_black_list": self.feature_black_list,
            "device_feature_black_list": self.device_feature_black_list,
            "scenes_type": self.scenes_type,
            "postfix": self.postfix,
            "debug": self.debug,
            "unregister_on_shutdown": self.unregister_on_shutdown,
            "timing": self.timing.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], data_dir: Optional[Path] = None) -> "BridgeConfig":
        # Filter to only known fields to handle config evolution
        known_fields = {f.name for f in fields(cls)} - {"timing", "data_dir"}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        config = cls(data_dir=data_dir or DEFAULT_DATA_DIR, **filtered)
        if "timing" in data:
            config.timing = TimingConfig.from_dict(data["timing"])
        return config

    def is_entity_allowed(self, name: str, ieee_address: Optional[str] = None) -> bool:
        """Check an entity's name or address against the white and black lists."""
        keys = {name, ieee_address} - {None}
        if self.white_list and not keys & set(self.white_list):
            logger.warning(f"Skipping {name}: not in the white list")
            return False
        if keys & set(self.black_list):
            logger.warning(f"Skipping {name}: in the black list")
            return False
        return True

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        with open(self.config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "BridgeConfig":
        """Load configuration from disk."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir)

        with open(config_path, 'r') as f:
            data = json.load(f)

        return cls.from_dict(data, data_dir=data_dir)

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        return (data_dir / "config.json").exists()


# Global config instance
_config: Optional[BridgeConfig] = None


def get_config(data_dir: Optional[Path] = None) -> BridgeConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = BridgeConfig.load(data_dir)
    return _config


def set_config(config: BridgeConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
