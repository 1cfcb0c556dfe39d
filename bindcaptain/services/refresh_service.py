"""Refresh Service: periodic validation and reload of the BIND server."""
import glob
import logging
import os
import shlex
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from bindcaptain.services.domain_discovery import discover_zones
from bindcaptain.services.logger_service import LoggerService
from bindcaptain.services.validator import DependencyUnavailableError, Validator
from bindcaptain.services.zone_repository import ZoneFileNotFoundError, ZoneRepository


logger = logging.getLogger(__name__)


@dataclass
class RefreshSummary:
    """Summary of a refresh run."""
    started_at: datetime
    completed_at: Optional[datetime] = None
    config_valid: bool = False
    zones_checked: List[str] = field(default_factory=list)
    zone_errors: List[str] = field(default_factory=list)
    missing_zones: List[str] = field(default_factory=list)
    changes_detected: bool = False
    reloaded: bool = False
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "config_valid": self.config_valid,
            "zones_checked": self.zones_checked,
            "zone_errors": self.zone_errors,
            "missing_zones": self.missing_zones,
            "changes_detected": self.changes_detected,
            "reloaded": self.reloaded,
            "error_message": self.error_message,
        }

    @property
    def is_valid(self) -> bool:
        return self.config_valid and not self.zone_errors and self.error_message is None


class RefreshService:
    """Validates all zones and reloads BIND when something changed.

    A run fixes zone file permissions, optionally regenerates reverse zones
    with an external tool, checks named.conf and every managed zone, and
    reloads only if everything is valid and either the reverse generator
    reported changes or a reload was forced.
    """

    CHANGE_MARKER = "Updating"
    ZONE_FILE_MODE = 0o644

    def __init__(
        self,
        repository: ZoneRepository,
        validator: Validator,
        logger_service: LoggerService,
        named_conf: str,
        bind_dir: str,
        reverse_command: Optional[str] = None,
    ):
        """Initialize with dependencies.

        Args:
            repository: Zone file storage
            validator: BIND check/reload bridge
            logger_service: Logger service
            named_conf: Main configuration file
            bind_dir: Zone root whose files get their permissions fixed
            reverse_command: Reverse zone generator command line (e.g. mkrdns)
        """
        self.repository = repository
        self.validator = validator
        self.logger_service = logger_service
        self.named_conf = named_conf
        self.bind_dir = bind_dir
        self.reverse_command = reverse_command

        self._lock = threading.Lock()
        self._last_summary: Optional[RefreshSummary] = None

    def run(self, force_reload: bool = False) -> Optional[RefreshSummary]:
        """Execute one refresh.

        Args:
            force_reload: Reload even if no changes were detected

        Returns:
            Summary, or None if a refresh is already running
        """
        if not self._lock.acquire(blocking=False):
            self.logger_service.log(
                "WARNING", "Refresh already in progress", operation_type="refresh"
            )
            return None

        try:
            summary = RefreshSummary(started_at=datetime.now())
            self.logger_service.log(
                "INFO", "Starting DNS refresh process", operation_type="refresh",
                status="in_progress",
            )
            try:
                self._run(summary, force_reload)
            except DependencyUnavailableError as e:
                summary.error_message = str(e)
                self.logger_service.log_error(
                    f"Refresh aborted: {e}", operation_type="refresh"
                )
            summary.completed_at = datetime.now()
            self._last_summary = summary
            self.logger_service.log_action(
                f"DNS refresh completed (valid={summary.is_valid}, reloaded={summary.reloaded})"
            )
            self.logger_service.log(
                "INFO" if summary.is_valid else "ERROR",
                "DNS refresh process completed",
                operation_type="refresh",
                status="success" if summary.is_valid else "failed",
                context=summary.to_dict(),
            )
            return summary
        finally:
            self._lock.release()

    def _run(self, summary: RefreshSummary, force_reload: bool) -> None:
        self.validator.ensure_available()
        self.fix_permissions()

        summary.changes_detected = self.generate_reverse()

        config_check = self.validator.check_config(self.named_conf)
        summary.config_valid = config_check.success
        if config_check.success:
            self.logger_service.log(
                "INFO", "Named configuration is valid", operation_type="refresh"
            )
        else:
            self.logger_service.log(
                "ERROR", "Named configuration is invalid", operation_type="refresh",
                status="failed", error_message=config_check.output.strip() or None,
            )

        for declaration in discover_zones(self.named_conf):
            try:
                zone_path = self.repository.locate(declaration.name, declaration.file)
            except ZoneFileNotFoundError:
                summary.missing_zones.append(declaration.name)
                self.logger_service.log(
                    "WARNING", f"Zone file for {declaration.name} not found",
                    operation_type="refresh", domain=declaration.name,
                )
                continue

            check = self.validator.check_zone(declaration.name, zone_path)
            summary.zones_checked.append(declaration.name)
            if not check.success:
                summary.zone_errors.append(declaration.name)
            self.logger_service.log_validation(declaration.name, check.success, check.output)

        if not summary.is_valid:
            self.logger_service.log(
                "ERROR", "Configuration or zone validation failed, not reloading BIND",
                operation_type="refresh", status="failed",
            )
            return

        if not (summary.changes_detected or force_reload):
            self.logger_service.log(
                "INFO", "No changes detected, BIND not reloaded", operation_type="refresh"
            )
            return

        reload = self.validator.reload()
        summary.reloaded = reload.success
        self.logger_service.log_reload(reload.success, reload.output)

    def fix_permissions(self) -> None:
        """Make zone files readable by named.

        Best effort: files that cannot be changed are skipped silently,
        the check that follows reports anything BIND cannot read.
        """
        patterns = (
            os.path.join(self.bind_dir, "*.db"),
            os.path.join(self.bind_dir, "*", "*.db"),
        )
        for pattern in patterns:
            for path in glob.glob(pattern):
                try:
                    os.chmod(path, self.ZONE_FILE_MODE)
                except OSError:
                    logger.debug(f"Could not change mode of {path}")

    def generate_reverse(self) -> bool:
        """Run the reverse zone generator if configured.

        Returns:
            True if the generator reported updated zones
        """
        if not self.reverse_command:
            logger.debug("No reverse generator configured, skipping")
            return False

        self.logger_service.log(
            "INFO", f"Running {self.reverse_command} to generate reverse DNS entries",
            operation_type="refresh",
        )
        result = self.validator.execute(shlex.split(self.reverse_command))
        if not result.success:
            self.logger_service.log(
                "WARNING", "Reverse generator failed", operation_type="refresh",
                error_message=result.output.strip() or None,
            )
            return False
        if self.CHANGE_MARKER in result.output:
            self.logger_service.log("INFO", "Reverse generator detected changes", operation_type="refresh")
            return True
        self.logger_service.log("INFO", "Reverse generator: no changes detected", operation_type="refresh")
        return False

    def get_last_summary(self) -> Optional[RefreshSummary]:
        return self._last_summary

    def is_running(self) -> bool:
        return self._lock.locked()
