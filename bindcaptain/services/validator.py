"""Bridge to BIND's checking and control tools."""
import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from bindcaptain import BindCaptainError
from bindcaptain.config import Config
from bindcaptain.models import CheckResult


logger = logging.getLogger(__name__)


class DependencyUnavailableError(BindCaptainError):
    """Raised when BIND tools or the container runtime cannot be reached."""
    pass


class Validator(ABC):
    """Checks configuration and zones, and reloads the running server.

    Every check reports a plain pass/fail with diagnostic text. No retries
    are made by implementations.
    """

    @abstractmethod
    def ensure_available(self) -> None:
        """Raise DependencyUnavailableError if the tools cannot be run."""

    @abstractmethod
    def check_config(self, path: str) -> CheckResult:
        """Validate the main configuration file."""

    @abstractmethod
    def check_zone(self, name: str, path: str) -> CheckResult:
        """Validate one zone file."""

    @abstractmethod
    def reload(self) -> CheckResult:
        """Ask the running server to reload configuration and zones."""

    @abstractmethod
    def execute(self, args: List[str]) -> CheckResult:
        """Run an arbitrary command where the BIND tools live."""


class BindValidator(Validator):
    """Validator running named-checkconf, named-checkzone and rndc.

    In ``local`` mode (inside the BIND container) the tools run directly.
    In ``container`` mode (on the host) each command runs through
    ``<runtime> exec <container>`` and host paths below the zone root are
    translated to their location inside the container.
    """

    CHECKCONF = "named-checkconf"
    CHECKZONE = "named-checkzone"
    RNDC = "rndc"

    def __init__(
        self,
        mode: str = "local",
        bind_dir: str = "/var/named",
        named_conf: str = "/etc/named.conf",
        container_name: str = "bindcaptain",
        container_runtime: str = "podman",
        container_bind_dir: str = "/var/named",
        container_named_conf: str = "/etc/named.conf",
        timeout: Optional[float] = 30,
    ):
        """Initialize validator.

        Args:
            mode: "local" or "container"
            bind_dir: Zone root as seen by this process
            named_conf: named.conf as seen by this process
            container_name: Name of the BIND container
            container_runtime: Container runtime binary (podman, docker)
            container_bind_dir: Zone root inside the container
            container_named_conf: named.conf inside the container
            timeout: Seconds before an external command is abandoned
        """
        self.mode = mode
        self.bind_dir = bind_dir
        self.named_conf = named_conf
        self.container_name = container_name
        self.container_runtime = container_runtime
        self.container_bind_dir = container_bind_dir
        self.container_named_conf = container_named_conf
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Config) -> "BindValidator":
        return cls(
            mode=config.mode,
            bind_dir=config.bind_dir,
            named_conf=config.named_conf,
            container_name=config.container_name,
            container_runtime=config.container_runtime,
            container_bind_dir=config.container_bind_dir,
            container_named_conf=config.container_named_conf,
            timeout=config.command_timeout or None,
        )

    @property
    def via_container(self) -> bool:
        return self.mode == "container"

    def ensure_available(self) -> None:
        if self.via_container:
            if shutil.which(self.container_runtime) is None:
                raise DependencyUnavailableError(
                    f"Cannot reach BIND: not in container and {self.container_runtime} not available"
                )
            return

        missing = [
            tool for tool in (self.CHECKCONF, self.CHECKZONE, self.RNDC)
            if shutil.which(tool) is None
        ]
        if missing:
            raise DependencyUnavailableError(
                f"BIND tools not found: {', '.join(missing)}"
            )

    def translate_path(self, path: str) -> str:
        """Map a local path to the path the BIND tools will see."""
        if not self.via_container:
            return path
        if os.path.abspath(path) == os.path.abspath(self.named_conf):
            return self.container_named_conf
        relative = os.path.relpath(os.path.abspath(path), os.path.abspath(self.bind_dir))
        if relative.startswith(os.pardir):
            return path
        return os.path.join(self.container_bind_dir, relative)

    def build_command(self, args: List[str]) -> List[str]:
        if self.via_container:
            return [self.container_runtime, "exec", self.container_name] + list(args)
        return list(args)

    def execute(self, args: List[str]) -> CheckResult:
        """Run a command and capture its exit status and output.

        Raises:
            DependencyUnavailableError: If the executable does not exist
        """
        command = self.build_command(args)
        command_line = " ".join(command)
        logger.debug(f"Running: {command_line}")
        try:
            reply = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise DependencyUnavailableError(f"Command not found: {command[0]}") from e
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {self.timeout}s: {command_line}")
            return CheckResult(
                success=False,
                output=f"Timed out after {self.timeout} seconds",
                command=command_line,
            )

        if reply.returncode != 0:
            logger.debug(f"Command failed ({reply.returncode}): {reply.stdout}")
        return CheckResult(
            success=reply.returncode == 0,
            output=reply.stdout or "",
            command=command_line,
        )

    def check_config(self, path: str) -> CheckResult:
        return self.execute([self.CHECKCONF, self.translate_path(path)])

    def check_zone(self, name: str, path: str) -> CheckResult:
        return self.execute([self.CHECKZONE, name, self.translate_path(path)])

    def reload(self) -> CheckResult:
        return self.execute([self.RNDC, "reload"])
