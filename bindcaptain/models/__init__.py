# Data Models Package
from .zone_record import ResourceRecord
from .zone_file import ZoneEntry, ZoneFile
from .operation_result import OperationResult
from .check_result import CheckResult

__all__ = ['ResourceRecord', 'ZoneEntry', 'ZoneFile', 'OperationResult', 'CheckResult']
