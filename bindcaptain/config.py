"""Configuration module for BindCaptain.

Reads configuration from environment variables with validation.
"""
import os
from dataclasses import dataclass
from typing import Optional

from bindcaptain import BindCaptainError


CONTAINER_MARKERS = ("/.dockerenv", "/run/.containerenv")

MODES = ("auto", "local", "container")
CONFLICT_POLICIES = ("abort", "overwrite", "fail")


class ConfigurationError(BindCaptainError):
    """Raised when required configuration is missing or invalid."""
    pass


def running_in_container() -> bool:
    """Check whether this process runs inside the BIND container."""
    return any(os.path.exists(marker) for marker in CONTAINER_MARKERS)


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables.

    Built once at startup and never mutated; command line overrides are
    applied with ``dataclasses.replace`` before services are created.
    """

    # Paths
    bind_dir: str
    named_conf: str
    backup_dir: str
    log_file: str
    lock_dir: Optional[str] = None

    # Execution mode: "local" runs BIND tools directly, "container" goes
    # through the container runtime
    mode: str = "container"
    container_name: str = "bindcaptain"
    container_runtime: str = "podman"
    container_bind_dir: str = "/var/named"
    container_named_conf: str = "/etc/named.conf"

    # Record management
    default_ttl: int = 86400
    conflict_policy: str = "fail"
    command_timeout: int = 30
    lock_timeout: int = 30
    reverse_command: Optional[str] = None

    # Web server
    port: int = 8080
    debug: bool = False

    # Scheduler settings
    refresh_enabled: bool = False
    refresh_cron_hour: str = "*"
    refresh_cron_minute: str = "0"

    @property
    def effective_lock_dir(self) -> str:
        """Directory holding per-zone lock files."""
        return self.lock_dir or self.backup_dir

    @property
    def is_container_mode(self) -> bool:
        return self.mode == "container"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Optional environment variables:
        - BINDCAPTAIN_MODE: auto, local or container (default: auto)
        - BINDCAPTAIN_DATA_DIR: Host data directory (default: /opt/bindcaptain)
        - BINDCAPTAIN_BIND_DIR: Zone file root
        - BINDCAPTAIN_NAMED_CONF: Main BIND configuration file
        - BINDCAPTAIN_BACKUP_DIR: Zone backup directory
        - BINDCAPTAIN_LOG_FILE: Action log file
        - BINDCAPTAIN_LOCK_DIR: Lock file directory (default: backup dir)
        - BINDCAPTAIN_CONTAINER_NAME: BIND container name (default: bindcaptain)
        - BINDCAPTAIN_CONTAINER_RUNTIME: Container runtime (default: podman)
        - BINDCAPTAIN_CONTAINER_BIND_DIR: Zone root inside the container
        - BINDCAPTAIN_CONTAINER_NAMED_CONF: named.conf inside the container
        - BINDCAPTAIN_DEFAULT_TTL: Advertised default TTL (default: 86400)
        - BINDCAPTAIN_CONFLICT_POLICY: abort, overwrite or fail (default: fail)
        - BINDCAPTAIN_COMMAND_TIMEOUT: Seconds per external command (default: 30)
        - BINDCAPTAIN_LOCK_TIMEOUT: Seconds to wait for a zone lock (default: 30)
        - BINDCAPTAIN_REVERSE_COMMAND: Reverse zone generator, e.g. mkrdns
        - PORT: Web server port (default: 8080)
        - DEBUG: Enable debug mode (default: false)
        - REFRESH_ENABLED: Schedule the refresh job (default: false)
        - REFRESH_CRON_HOUR: Cron hour field (default: *)
        - REFRESH_CRON_MINUTE: Cron minute field (default: 0)

        Path defaults depend on the resolved mode: inside the container the
        standard BIND locations are used, on the host everything lives under
        the data directory.

        Returns:
            Config: Configuration object

        Raises:
            ConfigurationError: If a value is invalid
        """
        mode = os.environ.get("BINDCAPTAIN_MODE", "auto").lower()
        if mode not in MODES:
            raise ConfigurationError(
                f"Invalid BINDCAPTAIN_MODE: {mode} (expected one of {', '.join(MODES)})"
            )
        if mode == "auto":
            mode = "local" if running_in_container() else "container"

        conflict_policy = os.environ.get("BINDCAPTAIN_CONFLICT_POLICY", "fail").lower()
        if conflict_policy not in CONFLICT_POLICIES:
            raise ConfigurationError(
                f"Invalid BINDCAPTAIN_CONFLICT_POLICY: {conflict_policy} "
                f"(expected one of {', '.join(CONFLICT_POLICIES)})"
            )

        if mode == "local":
            defaults = {
                "bind_dir": "/var/named",
                "named_conf": "/etc/named.conf",
                "backup_dir": "/var/backups/bind",
                "log_file": "/var/log/bind_manager.log",
            }
        else:
            data_dir = os.environ.get("BINDCAPTAIN_DATA_DIR", "/opt/bindcaptain")
            defaults = {
                "bind_dir": os.path.join(data_dir, "config"),
                "named_conf": os.path.join(data_dir, "config", "named.conf"),
                "backup_dir": os.path.join(data_dir, "backups"),
                "log_file": os.path.join(data_dir, "logs", "bind_manager.log"),
            }

        return cls(
            bind_dir=os.environ.get("BINDCAPTAIN_BIND_DIR", defaults["bind_dir"]),
            named_conf=os.environ.get("BINDCAPTAIN_NAMED_CONF", defaults["named_conf"]),
            backup_dir=os.environ.get("BINDCAPTAIN_BACKUP_DIR", defaults["backup_dir"]),
            log_file=os.environ.get("BINDCAPTAIN_LOG_FILE", defaults["log_file"]),
            lock_dir=os.environ.get("BINDCAPTAIN_LOCK_DIR") or None,
            mode=mode,
            container_name=os.environ.get("BINDCAPTAIN_CONTAINER_NAME", "bindcaptain"),
            container_runtime=os.environ.get("BINDCAPTAIN_CONTAINER_RUNTIME", "podman"),
            container_bind_dir=os.environ.get("BINDCAPTAIN_CONTAINER_BIND_DIR", "/var/named"),
            container_named_conf=os.environ.get(
                "BINDCAPTAIN_CONTAINER_NAMED_CONF", "/etc/named.conf"
            ),
            default_ttl=_int_env("BINDCAPTAIN_DEFAULT_TTL", 86400),
            conflict_policy=conflict_policy,
            command_timeout=_int_env("BINDCAPTAIN_COMMAND_TIMEOUT", 30),
            lock_timeout=_int_env("BINDCAPTAIN_LOCK_TIMEOUT", 30),
            reverse_command=os.environ.get("BINDCAPTAIN_REVERSE_COMMAND") or None,
            port=_int_env("PORT", 8080),
            debug=_bool_env("DEBUG"),
            refresh_enabled=_bool_env("REFRESH_ENABLED"),
            refresh_cron_hour=os.environ.get("REFRESH_CRON_HOUR", "*"),
            refresh_cron_minute=os.environ.get("REFRESH_CRON_MINUTE", "0"),
        )


def _int_env(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{key} must not be negative, got {value}")
    return value


def _bool_env(key: str) -> bool:
    return os.environ.get(key, "").lower() in ("true", "1", "yes")
