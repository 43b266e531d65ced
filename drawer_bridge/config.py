"""
Drawer configuration management.

A single device record is stored as a flat JSON document in the user's
app data directory (or wherever the host points ``DRAWER_BRIDGE_CONFIG``).
"""

import json
import logging
import os
import platform
import tempfile
import threading
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger('drawer_bridge.config')


# Default WebSocket port for the local bridge
DEFAULT_BRIDGE_PORT = 12321

# Default ESC/POS raw network port
DEFAULT_PRINTER_PORT = 9100

# Config filename
CONFIG_FILENAME = 'drawer_config.json'

# Environment override for the storage location
CONFIG_ENV_VAR = 'DRAWER_BRIDGE_CONFIG'

SIMULATE_ADDRESS = 'simulate'

# Fields a settings surface may change. PIN hashes are written only by the
# PIN flows in auth.py.
DEVICE_FIELDS = frozenset({
    'printer_address', 'printer_port', 'drawer_channel', 'pulse_on', 'pulse_off',
})
CREDENTIAL_FIELDS = frozenset({'staff_pin_hash', 'admin_pin_hash'})


class ConfigError(ValueError):
    """A device record that violates one of its invariants."""


def device_settings(partial: dict) -> dict:
    """
    Check a settings update before it is merged.

    Raises:
        ConfigError: The update touches a PIN hash.
    """
    blocked = CREDENTIAL_FIELDS.intersection(partial)
    if blocked:
        raise ConfigError(f"PINs cannot be changed from settings: {', '.join(sorted(blocked))}")
    return dict(partial)


def get_config_dir() -> Path:
    """Get the platform-specific config directory for Drawer Bridge."""
    system = platform.system()

    if system == 'Darwin':
        base = Path.home() / 'Library' / 'Application Support'
    elif system == 'Windows':
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
    else:
        # Linux / other
        base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))

    return base / 'DrawerBridge'


def get_config_path() -> Path:
    """Get the full path to the config file."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / CONFIG_FILENAME


def get_log_dir(config_path: Path | None = None) -> Path:
    """Get the log directory, next to the config file."""
    base = config_path.parent if config_path else get_config_dir()
    log_dir = base / 'logs'
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


@dataclass
class DeviceConfig:
    """The one persisted device/credential record."""

    printer_address: str = ''
    printer_port: int = DEFAULT_PRINTER_PORT
    drawer_channel: int = 0
    pulse_on: int = 50
    pulse_off: int = 200
    staff_pin_hash: str | None = None
    admin_pin_hash: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.printer_address)

    @property
    def is_simulated(self) -> bool:
        return self.printer_address.strip().lower() == SIMULATE_ADDRESS

    @classmethod
    def from_dict(cls, data: dict) -> 'DeviceConfig':
        """
        Build a record from stored data, defaulting anything missing or ill-typed.

        Loading never fails: a damaged field falls back to its default
        rather than discarding the whole record.
        """
        defaults = cls()

        def _int(key: str, lo: int, hi: int) -> int:
            value = data.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and lo <= value <= hi:
                return value
            return getattr(defaults, key)

        def _hash(key: str) -> str | None:
            value = data.get(key)
            return value if isinstance(value, str) and value else None

        address = data.get('printer_address')
        return cls(
            printer_address=address if isinstance(address, str) else '',
            printer_port=_int('printer_port', 1, 65535),
            drawer_channel=1 if data.get('drawer_channel') == 1 else 0,
            pulse_on=_int('pulse_on', 0, 255),
            pulse_off=_int('pulse_off', 0, 255),
            staff_pin_hash=_hash('staff_pin_hash'),
            admin_pin_hash=_hash('admin_pin_hash'),
        )

    def merged(self, partial: dict) -> 'DeviceConfig':
        """Return a copy with the known keys of ``partial`` overwritten."""
        known = {f.name for f in fields(self)}
        updates = {}
        for key, value in partial.items():
            if key in known:
                updates[key] = value
            else:
                logger.debug(f"Ignoring unknown config key: {key}")
        return replace(self, **updates)

    def validate(self):
        """Raise ConfigError if the record breaks an invariant."""
        if not isinstance(self.printer_address, str):
            raise ConfigError("printer_address must be a string")
        _check_int('printer_port', self.printer_port, 1, 65535)
        _check_int('drawer_channel', self.drawer_channel, 0, 1)
        _check_int('pulse_on', self.pulse_on, 0, 255)
        _check_int('pulse_off', self.pulse_off, 0, 255)
        for key in ('staff_pin_hash', 'admin_pin_hash'):
            value = getattr(self, key)
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"{key} must be a string")

    def to_dict(self) -> dict:
        return asdict(self)

    def public_dict(self) -> dict:
        """The record as shown outside the core: hashes replaced by flags."""
        data = self.to_dict()
        data['staff_pin_set'] = data.pop('staff_pin_hash') is not None
        data['admin_pin_set'] = data.pop('admin_pin_hash') is not None
        return data


def _check_int(name: str, value: Any, lo: int, hi: int):
    if not isinstance(value, int) or isinstance(value, bool) or not lo <= value <= hi:
        raise ConfigError(f"{name} must be an integer between {lo} and {hi}")


class ConfigStore:
    """Device config with JSON file persistence and merge-on-save."""

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path is not None else get_config_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> DeviceConfig:
        """Load the record from file, falling back to defaults on any error."""
        if not self._path.exists():
            return DeviceConfig()

        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                saved = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Unreadable config at {self._path}, using defaults: {e}")
            return DeviceConfig()

        if not isinstance(saved, dict):
            logger.warning(f"Config at {self._path} is not an object, using defaults")
            return DeviceConfig()

        return DeviceConfig.from_dict(saved)

    def save(self, partial: dict) -> DeviceConfig:
        """
        Merge ``partial`` over the persisted record and write the result.

        Args:
            partial: Field name -> new value; absent fields keep their
                persisted value.

        Returns:
            The full record as written.

        Raises:
            ConfigError: The merged record is invalid; nothing is written.
            OSError: The file could not be written.
        """
        with self._lock:
            merged = self.load().merged(partial)
            merged.validate()
            self._write(merged)
        return merged

    def _write(self, cfg: DeviceConfig):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix='.drawer_config-', suffix='.tmp', dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(cfg.to_dict(), f, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def __repr__(self):
        return f"ConfigStore({self._path})"
