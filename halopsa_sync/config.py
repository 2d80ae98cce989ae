"""Configuration for the HaloPSA sync engine.

Values come from three places, later ones winning:
- built-in defaults
- an optional YAML file (config/halopsa_sync.yaml or $HALOPSA_SYNC_CONFIG)
- environment variables (a .env file at the project root is loaded first)
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

# Load .env from project root
PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / '.env')

DEFAULT_CONFIG_PATH = PROJECT_ROOT / 'config' / 'halopsa_sync.yaml'


def _load_yaml(path: Optional[Union[str, Path]]) -> Dict[str, Any]:
    """Load a YAML settings file, returning {} when it is absent."""
    if path is None:
        path = os.getenv('HALOPSA_SYNC_CONFIG', DEFAULT_CONFIG_PATH)
    path = Path(path)
    if not path.exists():
        return {}
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


class Config:
    """Configuration settings for HaloPSA sync."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        file_values = _load_yaml(config_path)
        halo = file_values.get('halopsa', {}) or {}
        api = file_values.get('api', {}) or {}
        logging_cfg = file_values.get('logging', {}) or {}

        def setting(env_var: str, section: dict, key: str, default: Any) -> Any:
            value = os.getenv(env_var)
            if value is not None and value != '':
                return value
            return section.get(key, default)

        # Environment
        self.ENV = os.getenv('HALOPSA_SYNC_ENV', file_values.get('env', 'dev'))

        # HaloPSA credentials (URLs live in the IntegrationSettings record)
        self.HALOPSA_CLIENT_ID = os.getenv('HALOPSA_CLIENT_ID', '')
        self.HALOPSA_CLIENT_SECRET = os.getenv('HALOPSA_CLIENT_SECRET', '')
        self.HALOPSA_TENANT = os.getenv('HALOPSA_TENANT', '')

        # HTTP and token handling
        self.HTTP_TIMEOUT = float(setting('HALOPSA_HTTP_TIMEOUT', halo, 'http_timeout', 30))
        self.TOKEN_TTL = int(setting('HALOPSA_TOKEN_TTL', halo, 'token_ttl', 3600))
        self.TOKEN_SKEW = int(setting('HALOPSA_TOKEN_SKEW', halo, 'token_skew', 60))
        self.TICKET_TYPE = setting('HALOPSA_TICKET_TYPE', halo, 'ticket_type', 'Gamma Default')

        # Audit
        self.AUDIT_QUEUE_SIZE = int(setting('HALOPSA_AUDIT_QUEUE_SIZE', halo, 'audit_queue_size', 1000))

        # Database
        self.DB_PATH = Path(setting(
            'HALOPSA_SYNC_DB_PATH', file_values.get('database', {}) or {}, 'path',
            PROJECT_ROOT / 'data' / 'halopsa_sync.db',
        ))

        # API server
        self.API_HOST = setting('HALOPSA_SYNC_API_HOST', api, 'host', '127.0.0.1')
        self.API_PORT = int(setting('HALOPSA_SYNC_API_PORT', api, 'port', 8300))
        self.API_KEY = setting('HALOPSA_SYNC_API_KEY', api, 'key', '')
        origins = setting('CORS_ALLOWED_ORIGINS', api, 'cors_origins', 'http://localhost:5173')
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(',') if o.strip()]
        self.CORS_ALLOWED_ORIGINS = origins

        # Logging
        self.LOG_LEVEL = str(setting('HALOPSA_SYNC_LOG_LEVEL', logging_cfg, 'level', 'INFO')).upper()
        self.LOG_FILE = setting('HALOPSA_SYNC_LOG_FILE', logging_cfg, 'file', None)

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.HALOPSA_CLIENT_SECRET:
            errors.append('HALOPSA_CLIENT_SECRET not set')

        if not self.HALOPSA_CLIENT_ID:
            errors.append('HALOPSA_CLIENT_ID not set (may also come from IntegrationSettings)')

        if self.TOKEN_SKEW >= self.TOKEN_TTL:
            errors.append('HALOPSA_TOKEN_SKEW must be smaller than HALOPSA_TOKEN_TTL')

        if self.ENV == 'prd' and not self.API_KEY:
            errors.append('HALOPSA_SYNC_API_KEY not set in production')

        return errors

    def is_configured(self) -> bool:
        """Check if basic configuration is present."""
        return bool(self.HALOPSA_CLIENT_SECRET)


# Module-level singleton
config = Config()
