"""Operation logging for BindCaptain.

Every step of a record change or refresh becomes a LogEntry that is kept in
a bounded in-memory buffer, forwarded to the module logger and pushed to
Socket.IO clients. Committed changes additionally get one timestamped line
in the action log file, the audit trail administrators read with tail.
"""
import logging
import os
import traceback
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, List, Optional

from bindcaptain.models import OperationResult


logger = logging.getLogger(__name__)


@dataclass
class LogEntry:
    timestamp: datetime
    level: str
    message: str
    operation_type: Optional[str] = None
    domain: Optional[str] = None
    status: Optional[str] = None
    record_name: Optional[str] = None
    record_type: Optional[str] = None
    serial: Optional[int] = None
    error_message: Optional[str] = None
    context: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


# OperationResult.status -> log level; anything else is an error
RESULT_LEVELS = {
    "success": "INFO",
    "aborted": "INFO",
    "reload_failed": "WARNING",
}


class LoggerService:
    """Collects log entries and writes the action log."""

    ACTION_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(
        self,
        socketio: Optional[Any] = None,
        max_entries: int = 100,
        action_log_path: Optional[str] = None,
    ):
        """
        Args:
            socketio: Flask-SocketIO server; attached later by create_app
            max_entries: Size of the in-memory buffer served by /api/logs
            action_log_path: Action log file, None disables it
        """
        self.socketio = socketio
        self.max_entries = max_entries
        self.action_log_path = action_log_path
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)

    def log(self, level: str, message: str, **fields) -> LogEntry:
        """Record an entry, mirror it to the module logger and broadcast it.

        Keyword arguments are LogEntry fields (operation_type, domain,
        status, record_name, record_type, serial, error_message, context).
        """
        entry = LogEntry(
            timestamp=datetime.now(),
            level=level.upper(),
            message=message,
            **fields
        )
        if entry.context is None:
            entry.context = {}
        self._entries.append(entry)

        emit = getattr(logger, entry.level.lower(), logger.info)
        tag = entry.operation_type or "system"
        if entry.domain:
            tag = f"{tag}:{entry.domain}"
        emit(f"[{tag}] {message}")

        self._broadcast(entry)
        return entry

    def _broadcast(self, entry: LogEntry) -> None:
        if self.socketio is None:
            return
        try:
            self.socketio.emit('log', entry.to_dict(), namespace='/')
        except Exception as e:
            # A dropped websocket must not fail the zone change being logged
            logger.warning(f"Could not push log entry to clients: {e}")

    def log_action(self, message: str) -> None:
        """Append "<timestamp> - <message>" to the action log file."""
        if not self.action_log_path:
            return
        parent = os.path.dirname(self.action_log_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        stamp = datetime.now().strftime(self.ACTION_TIME_FORMAT)
        with open(self.action_log_path, 'a', encoding='utf-8') as f:
            f.write(f"{stamp} - {message}\n")

    def log_backup(self, domain: str, backup_path: str) -> LogEntry:
        self.log_action(f"Backed up zone {domain}")
        return self.log(
            "INFO", f"Backed up {domain} to {backup_path}",
            operation_type="backup", domain=domain, status="success",
            context={"backup_path": backup_path},
        )

    def log_serial(self, domain: str, old_serial: Optional[int], new_serial: int) -> LogEntry:
        return self.log(
            "INFO", f"Updated serial number of {domain} from {old_serial} to {new_serial}",
            operation_type="serial", domain=domain, status="success", serial=new_serial,
        )

    def log_validation(self, domain: str, success: bool, output: str = "") -> LogEntry:
        if success:
            return self.log(
                "INFO", f"Zone {domain} validation passed",
                operation_type="validate", domain=domain, status="success",
            )
        return self.log(
            "ERROR", f"Zone {domain} validation failed",
            operation_type="validate", domain=domain, status="failed",
            error_message=output.strip() or None,
        )

    def log_rollback(self, domain: str, backup_path: str) -> LogEntry:
        self.log_action(f"Restored zone {domain} from {backup_path}")
        return self.log(
            "WARNING", f"Zone validation failed, restored {domain} from {backup_path}",
            operation_type="rollback", domain=domain, status="success",
            context={"backup_path": backup_path},
        )

    def log_reload(self, success: bool, output: str = "") -> LogEntry:
        if not success:
            return self.log(
                "ERROR", "Failed to reload BIND",
                operation_type="reload", status="failed",
                error_message=output.strip() or None,
            )
        self.log_action("BIND reloaded")
        return self.log("INFO", "BIND reloaded successfully", operation_type="reload", status="success")

    def log_operation(self, result: OperationResult) -> LogEntry:
        """Log the outcome of a create or delete.

        A change that reached the zone file (success or reload_failed) is
        also written to the action log.
        """
        if result.status in ("success", "reload_failed"):
            self.log_action(result.message)

        return self.log(
            RESULT_LEVELS.get(result.status, "ERROR"),
            result.message,
            operation_type=result.action,
            domain=result.domain,
            status=result.status,
            record_name=result.name,
            record_type=result.record_type,
            serial=result.new_serial,
            error_message=result.diagnostics,
        )

    def log_error(self, message: str, error: Optional[Exception] = None, **fields) -> LogEntry:
        """Log a failure; with an exception its text and traceback are kept."""
        context = dict(fields.pop("context", None) or {})
        if error is not None:
            context["stack_trace"] = traceback.format_exc()
            fields["error_message"] = str(error)
        fields.setdefault("status", "failed")
        return self.log("ERROR", message, context=context, **fields)

    def get_recent_logs(self, limit: int = 100) -> List[LogEntry]:
        entries = list(self._entries)
        return entries[-limit:] if limit > 0 else []

    def get_logs_as_dicts(self, limit: int = 100) -> List[dict]:
        return [entry.to_dict() for entry in self.get_recent_logs(limit)]

    def clear_logs(self) -> None:
        self._entries.clear()
