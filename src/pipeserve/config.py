"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every knob of the server and of the application it hosts, in one
dataclass.

=============================================================================
SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m pipeserve --port 3000                            │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── PIPESERVE_PORT=3000 python -m pipeserve                    │
    │                                                                     │
    │   3. Default values (in this dataclass)                             │
    └─────────────────────────────────────────────────────────────────────┘

The CLI builds its config with ``ServerConfig.from_env()`` and then
overwrites the fields for which a flag was given.

=============================================================================
"""

import os
from dataclasses import dataclass, field, fields
from typing import List, Optional


ENV_PREFIX = "PIPESERVE_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ServerConfig:
    """
    Configuration for the transport and the application.

    =========================================================================
    GROUPS
    =========================================================================

    NETWORK         host, port, backlog, buffer_size, timeout
    HTTP            keep_alive, keep_alive_timeout, max_request_size
    THREADING       min_workers, max_workers
    APPLICATION     api_prefix, static_dir, index_file
    PERSISTENCE     database_url, seed_data
    POLICY          auth_token, rate_limit*, cors_origins, pretty_json
    LOGGING         log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind; "0.0.0.0" for all interfaces."""

    port: int = 3000
    """TCP port to listen on; 0 lets the OS pick one."""

    backlog: int = 128
    """Length of the kernel accept queue."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout for the first request on a connection, in seconds."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve several requests per connection."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a keep-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024
    """Upper bound on headers plus body, in bytes. Larger requests get 413."""

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started with the server."""

    max_workers: int = 16
    """Ceiling the pool may grow to under load."""

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION
    # ─────────────────────────────────────────────────────────────────────

    api_prefix: str = "/api"
    """Paths under this prefix never fall back to the SPA index."""

    static_dir: Optional[str] = None
    """SPA build directory. None disables the static fallback."""

    index_file: str = "index.html"
    """Entry document inside static_dir."""

    # ─────────────────────────────────────────────────────────────────────
    # PERSISTENCE
    # ─────────────────────────────────────────────────────────────────────

    database_url: Optional[str] = None
    """
    SQLAlchemy URL for the user store, e.g. "sqlite:///users.db".
    None keeps users in memory.
    """

    seed_data: bool = True
    """Start with the three demo users (an SQL table is seeded only when empty)."""

    # ─────────────────────────────────────────────────────────────────────
    # POLICY
    # ─────────────────────────────────────────────────────────────────────

    auth_token: str = "test-token"
    """Bearer token accepted on /protected routes."""

    rate_limit: int = 5
    """Requests per window on /limited."""

    rate_limit_window_ms: int = 60000
    """Sliding window length for /limited."""

    rate_limit_max_identifiers: Optional[int] = None
    """
    Most client identifiers the limiter remembers; the least recently seen
    is forgotten beyond that. None means unbounded.
    """

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    """Allowed origins; ["*"] allows any."""

    pretty_json: bool = True
    """Honour ?pretty on JSON responses."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: "text" or "json"."""

    server_name: str = "pipeserve/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Build a config from ``PIPESERVE_<FIELD>`` environment variables.

        =====================================================================
        EXAMPLES
        =====================================================================

            PIPESERVE_PORT=8000
            PIPESERVE_DATABASE_URL=sqlite:///users.db
            PIPESERVE_CORS_ORIGINS=http://localhost:5173,https://app.example
            PIPESERVE_SEED_DATA=false
            PIPESERVE_TIMEOUT=none

        Unset variables keep the dataclass default. Optional fields accept
        "none" or an empty string for None.

        Raises:
            ValueError: When a value cannot be converted.
        =====================================================================
        """
        env = os.environ if environ is None else environ
        values = {}

        for f in fields(cls):
            name = ENV_PREFIX + f.name.upper()
            raw = env.get(name)
            if raw is None:
                continue
            values[f.name] = cls._convert(f.name, name, raw)

        return cls(**values)

    @classmethod
    def _convert(cls, field_name: str, env_name: str, raw: str):
        default = cls.__dataclass_fields__[field_name]
        optional = field_name in ("timeout", "static_dir", "database_url", "rate_limit_max_identifiers")

        if optional and raw.strip().lower() in ("", "none"):
            return None

        if field_name == "cors_origins":
            return _parse_list(raw)

        kind = type(default.default) if default.default is not None else None
        if field_name == "rate_limit_max_identifiers":
            kind = int
        elif field_name == "timeout":
            kind = float

        try:
            if kind is bool:
                return _parse_bool(env_name, raw)
            if kind is int:
                return int(raw)
            if kind is float:
                return float(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from e

        return raw

    def validate(self) -> None:
        """
        Check values at startup.

        Raises:
            ValueError: Naming the first bad setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.api_prefix and not self.api_prefix.startswith("/"):
            raise ValueError(f"api_prefix must start with '/': {self.api_prefix!r}")

        if self.static_dir is not None and not os.path.isdir(self.static_dir):
            raise ValueError(f"static_dir is not a directory: {self.static_dir}")

        if self.rate_limit < 1:
            raise ValueError("rate_limit must be >= 1")

        if self.rate_limit_window_ms <= 0:
            raise ValueError("rate_limit_window_ms must be > 0")

        if self.rate_limit_max_identifiers is not None and self.rate_limit_max_identifiers < 1:
            raise ValueError("rate_limit_max_identifiers must be >= 1")

        if not self.auth_token:
            raise ValueError("auth_token must not be empty")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Unknown log format: {self.log_format}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# ServerConfig              one dataclass, attribute docstrings per field
# ServerConfig.from_env()   PIPESERVE_<FIELD> overrides
# ServerConfig.validate()   ValueError on the first bad setting
# =============================================================================
