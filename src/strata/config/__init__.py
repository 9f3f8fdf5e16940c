"""
Strata Configuration System

Application, server and logging settings. Defaults are read from the
environment when this module is imported, so a process sees one consistent
configuration for its whole lifetime.
"""

import os
from typing import List, Optional
from dataclasses import dataclass, field

from strata.exceptions import ConfigurationError


def _env_bool(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


def _env_list(name: str) -> Optional[List[str]]:
    value = os.getenv(name, '')
    items = [item.strip() for item in value.split(',') if item.strip()]
    return items or None


@dataclass
class ServerConfig:
    """Server configuration"""
    host: str = os.getenv('HOST', '127.0.0.1')
    port: int = int(os.getenv('PORT', '3000'))
    backlog: int = int(os.getenv('BACKLOG', '2048'))
    keep_alive_timeout: int = int(os.getenv('KEEP_ALIVE_TIMEOUT', '5'))
    ssl_certfile: Optional[str] = os.getenv('SSL_CERTFILE')
    ssl_keyfile: Optional[str] = os.getenv('SSL_KEYFILE')
    access_log: bool = _env_bool('ACCESS_LOG', 'True')
    use_uvloop: bool = _env_bool('USE_UVLOOP')
    debug: bool = _env_bool('DEBUG')

    @property
    def bind(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = os.getenv('LOG_LEVEL', 'INFO')
    format: str = os.getenv('LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')


@dataclass
class AppConfig:
    """Main application configuration"""
    # Environment name, exposed as app.env
    env: str = os.getenv('STRATA_ENV', 'development')

    # Trust X-Forwarded-* headers
    proxy: bool = _env_bool('STRATA_PROXY')
    subdomain_offset: int = int(os.getenv('STRATA_SUBDOMAIN_OFFSET', '2'))
    proxy_ip_header: str = os.getenv('STRATA_PROXY_IP_HEADER', 'X-Forwarded-For')
    # 0 keeps every forwarded address
    max_ips_count: int = int(os.getenv('STRATA_MAX_IPS_COUNT', '0'))

    # Signed cookie keys, newest first
    keys: Optional[List[str]] = field(default_factory=lambda: _env_list('STRATA_KEYS'))

    # Suppress the default error sink output
    silent: bool = _env_bool('STRATA_SILENT')

    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate configuration after initialization"""
        if not self.env:
            raise ConfigurationError("env must be a non-empty string")
        if self.subdomain_offset < 0:
            raise ConfigurationError("subdomain_offset must be >= 0")
        if self.max_ips_count < 0:
            raise ConfigurationError("max_ips_count must be >= 0")
        if not self.proxy_ip_header:
            raise ConfigurationError("proxy_ip_header must be a header name")
        if self.keys is not None:
            if isinstance(self.keys, str) or not all(isinstance(key, str) and key for key in self.keys):
                raise ConfigurationError("keys must be a list of non-empty strings")
            self.keys = list(self.keys)


# Configuration presets for different environments
class ConfigPresets:
    """Configuration presets for different environments"""

    @staticmethod
    def development() -> AppConfig:
        """Development configuration"""
        return AppConfig(
            env='development',
            server=ServerConfig(host='127.0.0.1', port=3000, debug=True),
            logging=LoggingConfig(level='DEBUG'),
        )

    @staticmethod
    def production() -> AppConfig:
        """Production configuration"""
        return AppConfig(
            env='production',
            server=ServerConfig(host='0.0.0.0', port=3000, debug=False),
            logging=LoggingConfig(level='WARNING'),
        )

    @staticmethod
    def testing() -> AppConfig:
        """Testing configuration"""
        return AppConfig(
            env='test',
            keys=['test-key'],
            silent=True,
            server=ServerConfig(host='127.0.0.1', port=0, debug=True),
            logging=LoggingConfig(level='ERROR'),
        )


def get_config_from_environment() -> AppConfig:
    """Get configuration based on STRATA_ENV"""
    env = os.getenv('STRATA_ENV', 'development').lower()

    if env == 'production':
        return ConfigPresets.production()
    elif env in ('test', 'testing'):
        return ConfigPresets.testing()
    else:
        return ConfigPresets.development()


__all__ = [
    'AppConfig', 'ServerConfig', 'LoggingConfig',
    'ConfigPresets', 'get_config_from_environment',
]
