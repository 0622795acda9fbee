"""
Monitor Settings

Loop timings and logging options from the `monitor:` / `logging:` sections of
monitor_config.yaml, and signing credentials from the environment.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import load_dotenv
from eth_account import Account
from loguru import logger

from .errors import ConfigurationFault


@dataclass(frozen=True)
class MonitorSettings:
    """Timing knobs for the watcher loop (seconds)"""
    poll_interval: float = 5.0
    backoff_interval: float = 10.0
    receipt_timeout: float = 120.0
    shutdown_timeout: float = 15.0
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_rotation: str = "10 MB"


@dataclass(frozen=True)
class Credentials:
    """Keys loaded from the environment"""
    account_key: str
    relayer_key: str

    @property
    def account_address(self) -> str:
        """Address of the logical account (deployed identically on every chain)"""
        return Account.from_key(self.account_key).address

    @property
    def relayer_address(self) -> str:
        return Account.from_key(self.relayer_key).address

    def __repr__(self):
        # Never print key material
        return f"Credentials(account={self.account_address}, relayer={self.relayer_address})"


def _seconds(section: Dict, key: str, default: float) -> float:
    value = section.get(key, default)
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationFault(f"monitor.{key} must be a number, got {value!r}") from e
    if seconds < 0:
        raise ConfigurationFault(f"monitor.{key} must be >= 0")
    return seconds


def _log_level(section: Dict, default: str) -> str:
    level = str(section.get('level', default)).upper()
    try:
        logger.level(level)
    except ValueError as e:
        raise ConfigurationFault(f"logging.level {level!r} is not a known log level") from e
    return level


def load_settings(config: Dict) -> MonitorSettings:
    """
    Build MonitorSettings from a parsed config dict

    Args:
        config: Parsed monitor_config.yaml (may be empty)

    Returns:
        MonitorSettings with defaults for anything not configured
    """
    monitor = config.get('monitor') or {}
    log_section = config.get('logging') or {}
    if not isinstance(monitor, dict) or not isinstance(log_section, dict):
        raise ConfigurationFault("'monitor' and 'logging' sections must be mappings")

    defaults = MonitorSettings()
    settings = MonitorSettings(
        poll_interval=_seconds(monitor, 'poll_interval_seconds', defaults.poll_interval),
        backoff_interval=_seconds(monitor, 'backoff_interval_seconds', defaults.backoff_interval),
        receipt_timeout=_seconds(monitor, 'receipt_timeout_seconds', defaults.receipt_timeout),
        shutdown_timeout=_seconds(monitor, 'shutdown_timeout_seconds', defaults.shutdown_timeout),
        log_level=_log_level(log_section, defaults.log_level),
        log_file=log_section.get('file'),
        log_rotation=str(log_section.get('rotation', defaults.log_rotation)),
    )
    logger.debug(f"Monitor settings: {settings}")
    return settings


def load_credentials(env_file: Optional[str] = None) -> Credentials:
    """
    Load PRIVATE_KEY_EOA and PRIVATE_KEY_RELAYER

    Args:
        env_file: Optional .env path (python-dotenv default lookup otherwise)

    Raises:
        ConfigurationFault: When a key is missing, not 0x-prefixed or unusable
    """
    load_dotenv(env_file)

    keys = {}
    for var in ('PRIVATE_KEY_EOA', 'PRIVATE_KEY_RELAYER'):
        value = (os.getenv(var) or '').strip()
        if not value or not value.startswith('0x'):
            raise ConfigurationFault(f"{var} environment variable is missing or invalid")
        try:
            Account.from_key(value)
        except Exception as e:
            raise ConfigurationFault(f"{var} is not a valid private key") from e
        keys[var] = value

    return Credentials(account_key=keys['PRIVATE_KEY_EOA'], relayer_key=keys['PRIVATE_KEY_RELAYER'])
