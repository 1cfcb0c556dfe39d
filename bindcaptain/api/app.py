"""HTTP and Socket.IO front end for BindCaptain.

Routes are thin wrappers over the record manager and refresh services;
domain errors are turned into JSON bodies with a status matching their kind.
"""
import logging
import threading
from datetime import datetime
from functools import wraps
from typing import Optional

from flask import Flask, current_app, jsonify, request
from flask_socketio import SocketIO, emit

from bindcaptain import BindCaptainError
from bindcaptain.config import Config
from bindcaptain.services.logger_service import LoggerService
from bindcaptain.services.record_manager import (
    RecordManager,
    ValidationError,
    RecordConflictError,
    RecordNotFoundError,
)
from bindcaptain.services.refresh_service import RefreshService
from bindcaptain.services.scheduler_service import SchedulerService
from bindcaptain.services.validator import DependencyUnavailableError
from bindcaptain.services.zone_repository import ZoneFileNotFoundError, ZoneLockedError


logger = logging.getLogger(__name__)


ERROR_STATUS = (
    (ValidationError, 400),
    (ZoneFileNotFoundError, 404),
    (RecordNotFoundError, 404),
    (RecordConflictError, 409),
    (ZoneLockedError, 423),
    (DependencyUnavailableError, 503),
)

RESULT_STATUS = {
    "success": 200,
    "aborted": 200,
    "validation_failed": 422,
    "reload_failed": 502,
}

MAX_LOG_LIMIT = 500


def error_status(error: Exception) -> int:
    """Map a domain error to an HTTP status code."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def requires(*names):
    """Answer 503 unless every named attribute was wired onto the app."""
    def wrap(view):
        @wraps(view)
        def guarded(*args, **kwargs):
            missing = [name for name in names if getattr(current_app, name, None) is None]
            if missing:
                return jsonify({"error": f"Service {missing[0]} not available"}), 503
            return view(*args, **kwargs)
        return guarded
    return wrap


def create_app(
    config: Optional[Config] = None,
    record_manager: Optional[RecordManager] = None,
    refresh_service: Optional[RefreshService] = None,
    scheduler_service: Optional[SchedulerService] = None,
    logger_service: Optional[LoggerService] = None,
) -> tuple:
    """Build the Flask app and its SocketIO server.

    Any service may be left out; routes depending on it then answer 503.
    The logger service is attached to the SocketIO server so log entries
    reach connected clients.

    Returns:
        (app, socketio)
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = 'bindcaptain-secret'
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

    app.config_obj = config
    app.record_manager = record_manager
    app.refresh_service = refresh_service
    app.scheduler_service = scheduler_service
    app.logger_service = logger_service
    if logger_service is not None:
        logger_service.socketio = socketio

    @app.errorhandler(BindCaptainError)
    def handle_domain_error(e):
        status = error_status(e)
        if status == 500:
            logger.error(f"Request failed: {e}")
        return jsonify({"error": str(e), "type": type(e).__name__}), status

    def result_response(result):
        return jsonify(result.to_dict()), RESULT_STATUS.get(result.status, 500)

    @app.route('/health')
    def health():
        return jsonify({"status": "healthy", "timestamp": datetime.now().isoformat()})

    @app.route('/api/environment')
    @requires('config_obj')
    def get_environment():
        """Get the resolved environment."""
        cfg = app.config_obj
        return jsonify({
            "mode": cfg.mode,
            "bind_dir": cfg.bind_dir,
            "named_conf": cfg.named_conf,
            "backup_dir": cfg.backup_dir,
            "log_file": cfg.log_file,
            "container_name": cfg.container_name if cfg.is_container_mode else None,
            "conflict_policy": cfg.conflict_policy,
            "default_ttl": cfg.default_ttl,
        })

    @app.route('/api/domains')
    @requires('record_manager')
    def get_domains():
        """Get managed domains."""
        domains = app.record_manager.domains()
        return jsonify({"domains": domains, "count": len(domains)})

    @app.route('/api/records')
    @requires('record_manager')
    def get_records():
        """List records, optionally filtered by domain and type."""
        domain = request.args.get('domain') or None
        record_type = request.args.get('type') or None

        listing = app.record_manager.list_records(domain, record_type)
        return jsonify({
            "records": {
                name: [record.to_dict() for record in records]
                for name, records in listing.items()
            },
            "count": sum(len(records) for records in listing.values()),
        })

    @app.route('/api/records/<record_type>', methods=['POST'])
    @requires('record_manager')
    def create_record(record_type):
        """Create an A, CNAME or TXT record."""
        data = request.get_json(silent=True) or {}
        record_type = record_type.upper()
        on_conflict = data.get('on_conflict')
        if data.get('force'):
            on_conflict = "overwrite"

        def require(*keys):
            missing = [key for key in keys if not data.get(key)]
            if missing:
                raise ValidationError(f"Missing field(s): {', '.join(missing)}")

        manager = app.record_manager
        if record_type == "A":
            require('name', 'domain', 'ip')
            result = manager.create_a_record(
                data['name'], data['domain'], data['ip'],
                ttl=data.get('ttl'), on_conflict=on_conflict,
            )
        elif record_type == "CNAME":
            require('name', 'domain', 'target')
            result = manager.create_cname(
                data['name'], data['domain'], data['target'], on_conflict=on_conflict,
            )
        elif record_type == "TXT":
            require('name', 'domain')
            if 'text' not in data:
                raise ValidationError("Missing field(s): text")
            result = manager.create_txt(
                data['name'], data['domain'], data['text'], on_conflict=on_conflict,
            )
        else:
            return jsonify({"error": f"Unsupported record type: {record_type}"}), 400

        if result.is_success:
            return jsonify(result.to_dict()), 201
        return result_response(result)

    @app.route('/api/records/<domain>/<name>', methods=['DELETE'])
    @requires('record_manager')
    def delete_record(domain, name):
        """Delete records of a name; without confirm=true only a preview is returned."""
        record_type = request.args.get('type') or None
        confirm = request.args.get('confirm', '').lower() in ('true', '1', 'yes')

        result = app.record_manager.delete_record(
            name, domain, record_type=record_type, confirm=confirm,
        )
        return result_response(result)

    @app.route('/api/backups/<domain>')
    @requires('record_manager')
    def get_backups(domain):
        """List backups of a domain, oldest first."""
        backups = app.record_manager.list_backups(domain)
        return jsonify({"domain": domain, "backups": backups, "count": len(backups)})

    @app.route('/api/refresh', methods=['POST'])
    @requires('refresh_service')
    def trigger_refresh():
        """Start a refresh cycle on a worker thread and return at once."""
        service = app.refresh_service
        if service.is_running():
            return jsonify({"error": "Refresh already in progress", "status": "rejected"}), 409

        force_reload = bool((request.get_json(silent=True) or {}).get('force_reload'))

        def worker():
            try:
                service.run(force_reload=force_reload)
            except Exception as e:
                logger.exception(f"Background refresh crashed: {e}")

        threading.Thread(target=worker, name="bindcaptain-refresh", daemon=True).start()
        return jsonify({"status": "started", "force_reload": force_reload}), 202

    @app.route('/api/refresh')
    @requires('refresh_service')
    def refresh_status():
        summary = app.refresh_service.get_last_summary()
        return jsonify({
            "running": app.refresh_service.is_running(),
            "last_summary": summary.to_dict() if summary else None,
        })

    @app.route('/api/scheduler')
    @requires('scheduler_service')
    def scheduler_status():
        return jsonify(app.scheduler_service.get_status())

    @app.route('/api/scheduler', methods=['POST'])
    @requires('scheduler_service')
    def set_scheduler():
        """Switch auto-refresh on or off; without "enabled" the state flips."""
        scheduler = app.scheduler_service
        wanted = (request.get_json(silent=True) or {}).get('enabled')
        if wanted is None:
            wanted = not scheduler.is_enabled()

        if wanted:
            scheduler.enable_auto_refresh()
        else:
            scheduler.disable_auto_refresh()
        return jsonify(scheduler.get_status())

    @app.route('/api/logs')
    def recent_logs():
        limit = min(request.args.get('limit', 100, type=int), MAX_LOG_LIMIT)
        entries = app.logger_service.get_logs_as_dicts(limit) if app.logger_service else []
        return jsonify({"logs": entries, "count": len(entries)})

    @socketio.on('connect')
    def on_connect():
        logger.debug("Socket.IO client connected")

    @socketio.on('disconnect')
    def on_disconnect():
        logger.debug("Socket.IO client disconnected")

    @socketio.on('subscribe_logs')
    def on_subscribe_logs():
        # Backlog goes to the subscriber only; new entries are broadcast by LoggerService
        backlog = app.logger_service.get_logs_as_dicts(50) if app.logger_service else []
        emit('initial_logs', {'logs': backlog})

    return app, socketio
