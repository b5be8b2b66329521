"""
Static file servers and reverse proxies driven by a JSON configuration.
"""

from .server import Server
from .handler import RequestHandler
from .router import StaticRouter
from .proxy import UpstreamProxy
from .models import HTTPRequest, HTTPResponse
from .config import (
    ServerConfig,
    StaticMode,
    ProxyMode,
    ConfigurationError,
    ConfigurationBatchError,
    normalize_path,
    validate_server_config,
    validate_servers,
    load_config,
)

__all__ = [
    'Server', 'RequestHandler', 'StaticRouter', 'UpstreamProxy',
    'HTTPRequest', 'HTTPResponse', 'ServerConfig', 'StaticMode', 'ProxyMode',
    'ConfigurationError', 'ConfigurationBatchError', 'normalize_path',
    'validate_server_config', 'validate_servers', 'load_config',
]
