"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional
import json

from dotenv import load_dotenv

# Environment variable behind each Config field
ENV_VARS = {
    'host': 'LANPEERS_HOST',
    'broadcast_ip': 'LANPEERS_BROADCAST_IP',
    'broadcast_port': 'LANPEERS_BROADCAST_PORT',
    'response_port': 'LANPEERS_RESPONSE_PORT',
    'api_port': 'LANPEERS_API_PORT',
    'discovery_interval': 'LANPEERS_DISCOVERY_INTERVAL',
    'stale_timeout': 'LANPEERS_STALE_TIMEOUT',
    'sweep_interval': 'LANPEERS_SWEEP_INTERVAL',
    'max_peers': 'LANPEERS_MAX_PEERS',
    'display_name': 'LANPEERS_DISPLAY_NAME',
    'status_interval': 'LANPEERS_STATUS_INTERVAL',
    'log_level': 'LANPEERS_LOG_LEVEL',
}


@dataclass
class Config:
    """
    LAN peer discovery configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (LANPEERS_*)
    2. Config file (config.json)
    3. Default values
    """
    # Network
    host: str = ''
    broadcast_ip: str = '255.255.255.255'
    broadcast_port: int = 9005
    response_port: int = 9006
    api_port: int = 8080

    # Discovery timing (seconds)
    discovery_interval: float = 5.0
    stale_timeout: float = 15.0
    sweep_interval: float = 5.0

    # Peer table capacity (0 = unbounded)
    max_peers: int = 256

    # Identity
    display_name: Optional[str] = None

    # Console
    status_interval: float = 5.0

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('LANPEERS_HOST', config.host)
        config.broadcast_ip = os.getenv('LANPEERS_BROADCAST_IP', config.broadcast_ip)
        config.broadcast_port = int(os.getenv('LANPEERS_BROADCAST_PORT', config.broadcast_port))
        config.response_port = int(os.getenv('LANPEERS_RESPONSE_PORT', config.response_port))
        config.api_port = int(os.getenv('LANPEERS_API_PORT', config.api_port))

        # Discovery timing
        config.discovery_interval = float(
            os.getenv('LANPEERS_DISCOVERY_INTERVAL', config.discovery_interval)
        )
        config.stale_timeout = float(os.getenv('LANPEERS_STALE_TIMEOUT', config.stale_timeout))
        config.sweep_interval = float(os.getenv('LANPEERS_SWEEP_INTERVAL', config.sweep_interval))

        config.max_peers = int(os.getenv('LANPEERS_MAX_PEERS', config.max_peers))

        # Identity
        config.display_name = os.getenv('LANPEERS_DISPLAY_NAME') or None

        config.status_interval = float(
            os.getenv('LANPEERS_STATUS_INTERVAL', config.status_interval)
        )

        # Logging
        config.log_level = os.getenv('LANPEERS_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()
        for item in fields(cls):
            if item.name in data:
                setattr(config, item.name, data[item.name])

        return config

    def validate(self):
        """
        Check values that would make discovery misbehave.

        Raises:
            ValueError: on the first invalid setting
        """
        for name in ('broadcast_port', 'response_port', 'api_port'):
            port = getattr(self, name)
            if not 0 < port < 65536:
                raise ValueError(f"{name} out of range: {port}")
        if self.broadcast_port == self.response_port:
            raise ValueError("broadcast_port and response_port must differ")
        for name in ('discovery_interval', 'stale_timeout', 'sweep_interval', 'status_interval'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_peers < 0:
            raise ValueError("max_peers must be >= 0")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {item.name: getattr(self, item.name) for item in fields(self)}

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence wherever the variable is set)
    for name, env_var in ENV_VARS.items():
        if os.getenv(env_var) is not None:
            setattr(config, name, getattr(env_config, name))

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "",
  "broadcast_ip": "255.255.255.255",
  "broadcast_port": 9005,
  "response_port": 9006,
  "api_port": 8080,
  "discovery_interval": 5.0,
  "stale_timeout": 15.0,
  "sweep_interval": 5.0,
  "max_peers": 256,
  "display_name": null,
  "status_interval": 5.0,
  "log_level": "INFO"
}
"""


if __name__ == "__main__":
    # Print example config
    print("Example configuration file (config.json):")
    print(EXAMPLE_CONFIG)
