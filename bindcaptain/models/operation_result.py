"""Operation Result data model."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class OperationResult:
    """Result of a zone mutation.

    Attributes:
        action: Operation performed (create, delete)
        domain: Zone the operation targeted
        name: Record owner name
        record_type: Record type created or deleted (None for all types)
        status: success, aborted, validation_failed or reload_failed
        message: Human readable summary
        lines: Record lines added or removed (or matched, for aborted runs)
        old_serial: SOA serial before the change
        new_serial: SOA serial after the change
        backup_path: Backup taken before the change
        diagnostics: Output of the failed external check, if any
    """
    action: str
    domain: str
    name: str
    record_type: Optional[str] = None
    status: str = "success"
    message: str = ""
    lines: List[str] = field(default_factory=list)
    old_serial: Optional[int] = None
    new_serial: Optional[int] = None
    backup_path: Optional[str] = None
    diagnostics: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "action": self.action,
            "domain": self.domain,
            "name": self.name,
            "record_type": self.record_type,
            "status": self.status,
            "message": self.message,
            "lines": self.lines,
            "old_serial": self.old_serial,
            "new_serial": self.new_serial,
            "backup_path": self.backup_path,
            "diagnostics": self.diagnostics,
        }

    @property
    def is_success(self) -> bool:
        """Check if the change was committed and BIND reloaded."""
        return self.status == "success"

    @property
    def is_aborted(self) -> bool:
        """Check if the operation stopped before touching the zone."""
        return self.status == "aborted"

    @property
    def is_failed(self) -> bool:
        """Check if validation or reload failed."""
        return self.status in ("validation_failed", "reload_failed")
