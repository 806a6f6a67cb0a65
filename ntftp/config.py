"""
Configuration Management

Builds the client configuration from environment variables and command
line options. The configuration is created once at startup and never
changes afterwards.

Priority (highest to lowest):
1. Command line options
2. Environment variables (NTFTP_*, optionally from a .env file)
3. Default values

Values are not range-checked here. The endpoint decides what to do with
an out-of-range block size or window size (the TFTP endpoint silently
falls back to its defaults).
"""

import os
import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PORT = 69
DEFAULT_BLOCK_SIZE = 1468  # Largest payload before IP fragmentation on Ethernet
DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT_MS = 3000
DEFAULT_WINDOW_SIZE = 64


@dataclass(frozen=True)
class ClientConfig:
    """Remote endpoint settings."""
    # Network
    address: str = 'localhost'
    port: int = DEFAULT_PORT

    # Option extensions
    block_size: int = DEFAULT_BLOCK_SIZE
    retries: int = DEFAULT_RETRIES
    timeout: int = DEFAULT_TIMEOUT_MS  # milliseconds
    window_size: int = DEFAULT_WINDOW_SIZE

    # Logging
    log_level: str = 'WARNING'

    @property
    def server(self) -> str:
        """The server as typed on the command line."""
        return f"{self.address}:{self.port}"

    @classmethod
    def from_env(cls) -> 'ClientConfig':
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        defaults = cls()
        return cls(
            address=os.getenv('NTFTP_HOST', defaults.address),
            port=_int_env('NTFTP_PORT', defaults.port),
            block_size=_int_env('NTFTP_BLKSIZE', defaults.block_size),
            retries=_int_env('NTFTP_RETRIES', defaults.retries),
            timeout=_int_env('NTFTP_TIMEOUT', defaults.timeout),
            window_size=_int_env('NTFTP_WINDOWSIZE', defaults.window_size),
            log_level=os.getenv('NTFTP_LOG_LEVEL', defaults.log_level).upper(),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'address': self.address,
            'port': self.port,
            'block_size': self.block_size,
            'retries': self.retries,
            'timeout': self.timeout,
            'window_size': self.window_size,
            'log_level': self.log_level,
        }


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not an integer")
        return default


def parse_server(server: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """
    Split a "<host>[:<port>]" argument.

    Returns:
        (host, port) tuple

    Raises:
        ValueError: empty host, non-numeric port or port out of range
    """
    host, sep, port_str = server.partition(':')
    if not host:
        raise ValueError(f"Missing server address in {server!r}")

    if not sep:
        return host, default_port

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port: {port_str!r}") from None

    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")

    return host, port


def load_config(server: Optional[str] = None, **overrides) -> ClientConfig:
    """
    Load configuration from the environment and apply command line values.

    Args:
        server: "<host>[:<port>]" as given on the command line
        overrides: field values; None means "not given"

    Returns:
        Immutable ClientConfig
    """
    config = ClientConfig.from_env()

    if server:
        host, port = parse_server(server, default_port=config.port)
        config = replace(config, address=host, port=port)

    given = {key: value for key, value in overrides.items() if value is not None}
    if given:
        config = replace(config, **given)

    logger.debug(f"Configuration: {config.to_dict()}")
    return config
