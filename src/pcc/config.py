"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the PCC server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── pcc-server 5000 --max-payload 1048576                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── PCC_LOG_LEVEL=DEBUG pcc-server 5000                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY A PAYLOAD LIMIT?
=============================================================================

The client announces the payload size in a 4-byte prefix, so a single
connection may ask the server to buffer up to 4 GiB. The server sizes its
buffer from that untrusted number. max_payload_size caps it; a larger
announcement is treated like a dropped connection.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_MAX_PAYLOAD = 64 * 1024 * 1024  # 64 MiB

# Largest size a 4-byte length prefix can announce
MAX_PAYLOAD_LIMIT = 2 ** 32 - 1


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class ServerConfig:
    """
    Configuration for the PCC server.

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    PROTOCOL SETTINGS
    - max_payload_size

    LOGGING
    - log_level

    Example:
        ServerConfig(port=5000)                         # what pcc-server runs
        ServerConfig(host="127.0.0.1", port=0)          # tests, OS picks a port
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """IP address to bind to. All interfaces by default."""

    port: int = 0
    """
    Port to listen on.
    0 asks the OS for a free port (only useful in tests).
    """

    backlog: int = 10
    """Maximum number of queued connections."""

    buffer_size: int = 8192
    """Largest single recv_into() chunk while reading a payload."""

    timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = block until the peer sends or closes.
    A timeout abandons the connection, it never stops the server.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_payload_size: int = DEFAULT_MAX_PAYLOAD
    """Largest payload the server agrees to buffer, in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        PCC_HOST         Bind address (default: 0.0.0.0)
        PCC_PORT         Listening port (default: 0)
        PCC_BACKLOG      Listen backlog (default: 10)
        PCC_TIMEOUT      Per-connection timeout in seconds (default: none)
        PCC_MAX_PAYLOAD  Largest accepted payload in bytes (default: 64 MiB)
        PCC_LOG_LEVEL    Logging level (default: INFO)

        =====================================================================

        Args:
            **overrides: Values that win over the environment (the CLI
                         passes its arguments here). None values are ignored.
        """
        config = cls(
            host=os.getenv("PCC_HOST", "0.0.0.0"),
            port=int(os.getenv("PCC_PORT", "0")),
            backlog=int(os.getenv("PCC_BACKLOG", "10")),
            timeout=_env_float("PCC_TIMEOUT"),
            max_payload_size=int(os.getenv("PCC_MAX_PAYLOAD", str(DEFAULT_MAX_PAYLOAD))),
            log_level=os.getenv("PCC_LOG_LEVEL", "INFO"),
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(config, name, value)
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not 0 < self.max_payload_size <= MAX_PAYLOAD_LIMIT:
            raise ValueError(f"max_payload_size must be between 1 and {MAX_PAYLOAD_LIMIT}")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.log_level}")
