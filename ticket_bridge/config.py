"""
Ticket Bridge configuration management.

Config is stored in a JSON file in the user's app data directory.
"""

import json
import os
import platform
from pathlib import Path

from .models import PAPER_SIZES, DEFAULT_PAPER_SIZE, PaperSize


# Default HTTP port for the print endpoint
DEFAULT_PORT = 12480

# Config filename
CONFIG_FILENAME = 'bridge_config.json'


def get_config_dir() -> Path:
    """Get the platform-specific config directory for Ticket Bridge."""
    system = platform.system()

    if system == 'Darwin':
        base = Path.home() / 'Library' / 'Application Support'
    elif system == 'Windows':
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
    else:
        # Linux / other
        base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))

    config_dir = base / 'TicketBridge'
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Get the full path to the config file."""
    return get_config_dir() / CONFIG_FILENAME


def get_log_dir() -> Path:
    """Get the log directory (print-attempt log lives here)."""
    log_dir = get_config_dir() / 'logs'
    log_dir.mkdir(exist_ok=True)
    return log_dir


# Default configuration
DEFAULT_CONFIG = {
    'port': DEFAULT_PORT,
    'host': '127.0.0.1',
    'log_level': 'info',
    # PostgREST-style backend holding printer settings and the print log
    'backend_url': '',
    'backend_api_key': '',
    # Extra bearer tokens accepted by the print endpoint (kiosks, scripts)
    'api_tokens': [],
    'settings_ttl_seconds': 60,
    # Direct network delivery
    'network_timeout_seconds': 5,
    'network_overall_timeout_seconds': 30,
    'raw_socket_enabled': True,
    # Local print bridge (alternate pipeline)
    'bridge_enabled': False,
    'bridge_url': 'ws://localhost:8182',
    # Browser fallback
    'browser_stagger_ms': 1500,
    'receipt_copies': 2,
    'paper_size': '80mm',
    'currency_symbol': 'R',
    # 'backend', 'file' or 'memory'
    'print_log': 'file',
}


class BridgeConfig:
    """Ticket Bridge configuration with file persistence."""

    def __init__(self, path: Path | None = None):
        self._path = Path(path) if path else get_config_path()
        self._data = dict(DEFAULT_CONFIG)
        self.load()

    def load(self):
        """Load config from file, creating defaults if not exists."""
        if self._path.exists():
            try:
                with open(self._path, 'r') as f:
                    saved = json.load(f)
                self._data.update(saved)
            except (json.JSONDecodeError, OSError):
                pass  # Use defaults on error
        else:
            self.save()

    def save(self):
        """Persist config to file."""
        with open(self._path, 'w') as f:
            json.dump(self._data, f, indent=2)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def port(self) -> int:
        return self._data.get('port', DEFAULT_PORT)

    @port.setter
    def port(self, value: int):
        self._data['port'] = value
        self.save()

    @property
    def host(self) -> str:
        return self._data.get('host', '127.0.0.1')

    @property
    def log_level(self) -> str:
        return self._data.get('log_level', 'info')

    @property
    def backend_url(self) -> str:
        return (self._data.get('backend_url') or '').rstrip('/')

    @property
    def backend_api_key(self) -> str:
        return self._data.get('backend_api_key') or ''

    @property
    def api_tokens(self) -> list[str]:
        return list(self._data.get('api_tokens') or [])

    @property
    def settings_ttl(self) -> float:
        return float(self._data.get('settings_ttl_seconds', 60))

    @property
    def network_timeout(self) -> float:
        return float(self._data.get('network_timeout_seconds', 5))

    @property
    def network_overall_timeout(self) -> float | None:
        value = self._data.get('network_overall_timeout_seconds')
        return float(value) if value else None

    @property
    def raw_socket_enabled(self) -> bool:
        return self._data.get('raw_socket_enabled', True)

    @property
    def bridge_enabled(self) -> bool:
        return self._data.get('bridge_enabled', False)

    @property
    def bridge_url(self) -> str:
        return self._data.get('bridge_url', 'ws://localhost:8182')

    @property
    def browser_stagger(self) -> float:
        return self._data.get('browser_stagger_ms', 1500) / 1000.0

    @property
    def receipt_copies(self) -> int:
        return int(self._data.get('receipt_copies', 2))

    @property
    def paper_size(self) -> PaperSize:
        return PAPER_SIZES.get(self._data.get('paper_size'), DEFAULT_PAPER_SIZE)

    @property
    def currency_symbol(self) -> str:
        return self._data.get('currency_symbol', 'R')

    @property
    def print_log(self) -> str:
        return self._data.get('print_log', 'file')

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        self._data[key] = value
        self.save()

    def __repr__(self):
        # Never echo the backend key into logs
        shown = {k: ('***' if k in ('backend_api_key', 'api_tokens') and v else v) for k, v in self._data.items()}
        return f"BridgeConfig({shown})"
