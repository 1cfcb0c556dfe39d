# Services Package
from bindcaptain.services.zone_parser import ZoneParser
from bindcaptain.services.zone_repository import ZoneRepository
from bindcaptain.services.validator import Validator, BindValidator
from bindcaptain.services.logger_service import LoggerService
from bindcaptain.services.record_manager import RecordManager, ConflictPolicy
from bindcaptain.services.refresh_service import RefreshService
from bindcaptain.services.scheduler_service import SchedulerService

__all__ = [
    'ZoneParser',
    'ZoneRepository',
    'Validator',
    'BindValidator',
    'LoggerService',
    'RecordManager',
    'ConflictPolicy',
    'RefreshService',
    'SchedulerService',
]
