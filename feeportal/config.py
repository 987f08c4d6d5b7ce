"""
Configuration loading for the Fee Portal.

Configuration is a plain dict. Values come from ``DEFAULT_CONFIG``, then an
optional JSON file, then ``FEEPORTAL_*`` environment variables.
"""

import json
import logging
import os
from typing import Any, Dict, Mapping, Optional

from .core.enums import StoreType, SyncType
from .core.exceptions import ConfigurationError

DEFAULT_CONFIG: Dict[str, Any] = {
    'store_type': 'file',
    'store_config': {},
    'sync_type': 'memory',
    'sync_config': {},
    'payment_delay': 2.0,
    'context_id': None,
    'log_level': 'INFO',
    'rest_host': '127.0.0.1',
    'rest_port': 8000,
}

_ENV_OVERRIDES = {
    'FEEPORTAL_STORE_TYPE': ('store_type', str),
    'FEEPORTAL_SYNC_TYPE': ('sync_type', str),
    'FEEPORTAL_PAYMENT_DELAY': ('payment_delay', float),
    'FEEPORTAL_LOG_LEVEL': ('log_level', str),
    'FEEPORTAL_CONTEXT_ID': ('context_id', str),
}


def load_config(path: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None,
                environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build a validated configuration dict."""
    config = {key: (dict(value) if isinstance(value, dict) else value)
              for key, value in DEFAULT_CONFIG.items()}
    
    if path:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {str(e)}")
        if not isinstance(file_config, dict):
            raise ConfigurationError("Configuration file must contain a JSON object")
        config.update(file_config)
    
    env = os.environ if environ is None else environ
    for variable, (key, cast) in _ENV_OVERRIDES.items():
        if variable in env:
            try:
                config[key] = cast(env[variable])
            except ValueError:
                raise ConfigurationError(f"Invalid value for {variable}: {env[variable]!r}")
    
    if overrides:
        config.update(overrides)
    
    validate_config(config)
    return config


def validate_config(config: Mapping[str, Any]) -> None:
    store_types = {kind.value for kind in StoreType}
    if str(config.get('store_type', '')).lower() not in store_types:
        raise ConfigurationError(f"Unsupported store type: {config.get('store_type')}")
    
    sync_types = {kind.value for kind in SyncType}
    if str(config.get('sync_type', '')).lower() not in sync_types:
        raise ConfigurationError(f"Unsupported sync type: {config.get('sync_type')}")
    
    for key in ('store_config', 'sync_config'):
        if not isinstance(config.get(key, {}), dict):
            raise ConfigurationError(f"{key} must be an object")
    
    delay = config.get('payment_delay')
    if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
        raise ConfigurationError(f"payment_delay must be a non-negative number, got {delay!r}")
    
    if not isinstance(logging.getLevelName(str(config.get('log_level', '')).upper()), int):
        raise ConfigurationError(f"Unknown log level: {config.get('log_level')}")
    
    port = config.get('rest_port')
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ConfigurationError(f"rest_port must be a TCP port, got {port!r}")
