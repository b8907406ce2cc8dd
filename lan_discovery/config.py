"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .discovery.advertiser import DEFAULT_DISCOVERY_PORT
from .discovery.prober import DEFAULT_DISCOVERY_INTERVAL
from .transport import BROADCAST_ADDRESS
from .wire import AppIdentity, parse_handshake, validate_handshake

ENV_PREFIX = 'LAN_DISCOVERY_'


@dataclass
class Config:
    """
    LAN discovery configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (LAN_DISCOVERY_*)
    2. Config file (JSON)
    3. Default values
    """
    # Network
    host: str = ''
    port: int = DEFAULT_DISCOVERY_PORT
    broadcast_address: str = BROADCAST_ADDRESS
    discovery_interval: float = DEFAULT_DISCOVERY_INTERVAL

    # Identity (handshake wins over the derived value when set)
    handshake: Optional[int] = None
    app_name: str = 'lan-discovery'
    app_company: str = ''
    app_version: str = '0.1.0'

    # Advertised endpoints (defaults to this host's LAN address)
    uris: List[str] = field(default_factory=list)

    # Advertise on startup (headless servers)
    auto_advertise: bool = False

    # Logging
    log_level: str = 'INFO'

    @property
    def identity(self) -> AppIdentity:
        return AppIdentity(
            name=self.app_name,
            company=self.app_company,
            version=self.app_version,
            handshake_override=self.handshake,
        )

    def resolve_handshake(self) -> int:
        """Handshake to put on the wire."""
        return self.identity.handshake

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv(f'{ENV_PREFIX}HOST', config.host)
        config.port = int(os.getenv(f'{ENV_PREFIX}PORT', config.port))
        config.broadcast_address = os.getenv(
            f'{ENV_PREFIX}BROADCAST_ADDRESS', config.broadcast_address
        )
        config.discovery_interval = float(
            os.getenv(f'{ENV_PREFIX}INTERVAL', config.discovery_interval)
        )

        # Identity
        handshake = os.getenv(f'{ENV_PREFIX}HANDSHAKE')
        if handshake:
            config.handshake = parse_handshake(handshake)
        config.app_name = os.getenv(f'{ENV_PREFIX}APP_NAME', config.app_name)
        config.app_company = os.getenv(f'{ENV_PREFIX}APP_COMPANY', config.app_company)
        config.app_version = os.getenv(f'{ENV_PREFIX}APP_VERSION', config.app_version)

        uris = os.getenv(f'{ENV_PREFIX}URIS', '')
        if uris:
            config.uris = [u.strip() for u in uris.split(',') if u.strip()]

        config.auto_advertise = os.getenv(f'{ENV_PREFIX}AUTO_ADVERTISE', 'false').lower() == 'true'

        # Logging
        config.log_level = os.getenv(f'{ENV_PREFIX}LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)
        config.broadcast_address = data.get('broadcast_address', config.broadcast_address)
        config.discovery_interval = data.get('discovery_interval', config.discovery_interval)

        # Identity
        handshake = data.get('handshake')
        if isinstance(handshake, str):
            config.handshake = parse_handshake(handshake)
        elif handshake is not None:
            config.handshake = validate_handshake(handshake)
        config.app_name = data.get('app_name', config.app_name)
        config.app_company = data.get('app_company', config.app_company)
        config.app_version = data.get('app_version', config.app_version)

        config.uris = list(data.get('uris', config.uris))
        config.auto_advertise = data.get('auto_advertise', config.auto_advertise)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'broadcast_address': self.broadcast_address,
            'discovery_interval': self.discovery_interval,
            'handshake': self.handshake,
            'app_name': self.app_name,
            'app_company': self.app_company,
            'app_version': self.app_version,
            'uris': list(self.uris),
            'auto_advertise': self.auto_advertise,
            'log_level': self.log_level,
        }

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

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['host', 'port', 'broadcast_address', 'discovery_interval', 'handshake',
                'app_name', 'app_company', 'app_version', 'uris', 'auto_advertise',
                'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "",
  "port": 47777,
  "broadcast_address": "255.255.255.255",
  "discovery_interval": 3.0,
  "handshake": null,
  "app_name": "my-game",
  "app_company": "Example Studio",
  "app_version": "1.2.0",
  "uris": ["udp://0.0.0.0:7777"],
  "auto_advertise": false,
  "log_level": "INFO"
}
"""
