"""
Client Configuration

Startup settings for the conference client. Values come from defaults,
then environment variables, then command-line flags (applied by main).

Environment variables:
    ANONCONF_SERVER_ADDRESS: host:port of the rendezvous server
    ANONCONF_REQUEST_TIMEOUT: seconds to wait for create/join replies
    ANONCONF_LOG_LEVEL: logging level name (e.g. DEBUG, INFO)
    ANONCONF_LOG_FILE: path of the client log file
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .credentials import KdfParams
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 7667
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_LOG_FILE = "anonconf.log"
FRONTENDS = ("tui", "cli")


@dataclass(frozen=True)
class ServerAddress:
    """
    Host and port of the rendezvous server.

    Attributes:
        host: Hostname or IP address
        port: TCP port
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def parse(cls, value: str) -> "ServerAddress":
        """
        Parse a "host:port" string.

        IPv6 literals must be bracketed ("[::1]:7667"). A missing port
        falls back to DEFAULT_PORT.

        Raises:
            ConfigError: If the host is empty or the port is invalid
        """
        text = value.strip()
        if "://" in text:
            text = text.split("://", 1)[1]
        text = text.rstrip("/")

        if text.startswith("["):
            host, sep, rest = text[1:].partition("]")
            if not sep:
                raise ConfigError(f"Invalid server address: {value!r}")
            port_text = rest[1:] if rest.startswith(":") else ""
        elif text.count(":") == 1:
            host, _, port_text = text.partition(":")
        else:
            host, port_text = text, ""

        if not host:
            raise ConfigError(f"Invalid server address: {value!r}")

        if not port_text:
            return cls(host, DEFAULT_PORT)
        try:
            port = int(port_text)
        except ValueError:
            raise ConfigError(f"Invalid port in server address: {value!r}")
        if not 0 < port < 65536:
            raise ConfigError(f"Port out of range: {port}")
        return cls(host, port)

    @property
    def url(self) -> str:
        """WebSocket URL of the server."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"ws://{host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class ClientConfig:
    """
    All settings needed to start a client session.

    Attributes:
        server_address: Rendezvous server
        request_timeout: Deadline in seconds for create/join requests
        connect_timeout: Deadline in seconds for one connection attempt
        retry_base_delay: First reconnect delay in seconds
        retry_max_delay: Upper bound on reconnect delay in seconds
        retry_multiplier: Growth factor between reconnect attempts
        retry_jitter: Fraction by which a delay may be shortened at random
        kdf: Argon2id cost parameters for password proofs
        frontend: "tui" (Textual) or "cli" (line based)
        log_level: Logging level name
        log_file: Path of the log file
    """

    server_address: ServerAddress = field(default_factory=ServerAddress)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    retry_base_delay: float = 0.5
    retry_max_delay: float = 30.0
    retry_multiplier: float = 2.0
    retry_jitter: float = 0.2
    kdf: KdfParams = field(default_factory=KdfParams)
    frontend: str = "tui"
    log_level: str = "WARNING"
    log_file: Optional[str] = DEFAULT_LOG_FILE

    def __post_init__(self):
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout must be positive")
        if self.frontend not in FRONTENDS:
            raise ConfigError(f"Unknown frontend: {self.frontend!r}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level!r}")

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (for tests)

        Raises:
            ConfigError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        address = env.get("ANONCONF_SERVER_ADDRESS")
        if address:
            kwargs["server_address"] = ServerAddress.parse(address)

        timeout = env.get("ANONCONF_REQUEST_TIMEOUT")
        if timeout:
            try:
                kwargs["request_timeout"] = float(timeout)
            except ValueError:
                raise ConfigError(
                    f"Invalid ANONCONF_REQUEST_TIMEOUT: {timeout!r}"
                )

        level = env.get("ANONCONF_LOG_LEVEL")
        if level:
            kwargs["log_level"] = level.upper()

        log_file = env.get("ANONCONF_LOG_FILE")
        if log_file:
            kwargs["log_file"] = log_file

        return cls(**kwargs)
