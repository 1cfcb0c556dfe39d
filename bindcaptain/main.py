"""Console entry point: builds the services and runs a command or the API server."""
import sys
import logging
from typing import List, Optional


logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False, level: int = logging.WARNING) -> None:
    """Send log records to stdout; --verbose lowers the threshold to DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_services(config) -> dict:
    """Wire repository, BIND bridge, logging and the record/refresh services.

    Returns a dict keyed by service name, shared by the CLI and the API.
    """
    from bindcaptain.services.zone_repository import ZoneRepository
    from bindcaptain.services.validator import BindValidator
    from bindcaptain.services.logger_service import LoggerService
    from bindcaptain.services.record_manager import RecordManager, ConflictPolicy
    from bindcaptain.services.refresh_service import RefreshService
    from bindcaptain.services.scheduler_service import SchedulerService

    services = {
        'repository': ZoneRepository(
            bind_dir=config.bind_dir,
            backup_dir=config.backup_dir,
            lock_dir=config.effective_lock_dir,
            container_bind_dir=config.container_bind_dir,
            lock_timeout=config.lock_timeout,
        ),
        'validator': BindValidator.from_config(config),
        # create_app attaches the SocketIO server when serving
        'logger_service': LoggerService(action_log_path=config.log_file),
    }
    shared = {name: services[name] for name in ('repository', 'validator', 'logger_service')}

    services['record_manager'] = RecordManager(
        named_conf=config.named_conf,
        conflict_policy=ConflictPolicy(config.conflict_policy),
        **shared
    )
    services['refresh_service'] = RefreshService(
        named_conf=config.named_conf,
        bind_dir=config.bind_dir,
        reverse_command=config.reverse_command,
        **shared
    )
    services['scheduler_service'] = SchedulerService(
        refresh_callback=services['refresh_service'].run,
        cron_hour=config.refresh_cron_hour,
        cron_minute=config.refresh_cron_minute,
        enabled=config.refresh_enabled,
    )
    return services


def serve(config, services) -> int:
    """Run the HTTP/Socket.IO API until interrupted, with the refresh scheduler alongside."""
    from bindcaptain.api.app import create_app

    app, socketio = create_app(
        config=config,
        **{name: services[name] for name in (
            'record_manager', 'refresh_service', 'scheduler_service', 'logger_service',
        )}
    )
    scheduler = services['scheduler_service']
    scheduler.start()
    services['logger_service'].log(
        "INFO",
        f"BindCaptain API listening on port {config.port} ({config.mode} mode)",
        operation_type="startup",
    )

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=config.port,
            debug=config.debug,
            allow_unsafe_werkzeug=True,
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        scheduler.stop()
        logger.info("BindCaptain API stopped")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    from bindcaptain.config import Config, ConfigurationError
    from bindcaptain import cli

    args = cli.build_parser().parse_args(argv)
    configure_logging(
        verbose=args.verbose,
        level=logging.INFO if args.command == "serve" else logging.WARNING,
    )

    try:
        config = cli.apply_overrides(Config.from_env(), args)
    except ConfigurationError as e:
        cli.print_status("error", f"Configuration error: {e}")
        return 1

    services = create_services(config)
    if args.command == "serve":
        return serve(config, services)
    return cli.dispatch(args, config, services)


if __name__ == '__main__':
    sys.exit(main())
