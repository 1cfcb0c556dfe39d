"""Record Manager: safe create/delete of records in BIND zone files."""
import logging
import re
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Union

from bindcaptain import BindCaptainError
from bindcaptain.models import OperationResult, ResourceRecord, ZoneEntry, ZoneFile
from bindcaptain.services.domain_discovery import ZoneDeclaration, discover_zones
from bindcaptain.services.logger_service import LoggerService
from bindcaptain.services.serial import next_serial
from bindcaptain.services.validator import Validator
from bindcaptain.services.zone_parser import ZoneFormatError, ZoneParser
from bindcaptain.services.zone_repository import ZoneFileNotFoundError, ZoneRepository


logger = logging.getLogger(__name__)


HOSTNAME_PATTERN = re.compile(
    r'[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*'
)
# Owner names of TXT records may use underscore labels (_dmarc, _acme-challenge)
OWNER_PATTERN = re.compile(
    r'_?[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\._?[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*'
)
IPV4_PATTERN =re.compile(r'[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}')

RECORD_TYPES = ('A', 'AAAA', 'CNAME', 'TXT', 'PTR', 'MX', 'NS', 'SRV', 'CAA')
MAX_TTL = 2147483647

A_RECORDS_MARKER = r';\s*A Records'
CNAME_RECORDS_MARKER = r';\s*CNAME Records'


class ValidationError(BindCaptainError):
    """Raised for malformed operator input; nothing has been changed."""
    pass


class UnknownDomainError(ValidationError):
    """Raised when a domain is not a managed zone in named.conf."""
    pass


class RecordConflictError(BindCaptainError):
    """Raised when a record already exists and the policy is FAIL."""
    pass


class RecordNotFoundError(BindCaptainError):
    """Raised when no record matches a delete request."""
    pass


class ConflictPolicy(Enum):
    """What to do when a record with the same name already exists."""
    ABORT = "abort"
    OVERWRITE = "overwrite"
    FAIL = "fail"


def validate_hostname(hostname: str) -> bool:
    """Check hostname label grammar (alphanumerics and inner hyphens, <= 63 per label)."""
    return bool(hostname) and HOSTNAME_PATTERN.fullmatch(hostname) is not None


def validate_owner(name: str) -> bool:
    """Like validate_hostname, but labels may start with an underscore."""
    return bool(name) and OWNER_PATTERN.fullmatch(name) is not None


def validate_ip(ip_address: str) -> bool:
    """Check a dotted-quad IPv4 literal with every octet <= 255."""
    if not ip_address or IPV4_PATTERN.fullmatch(ip_address) is None:
        return False
    return all(int(octet) <= 255 for octet in ip_address.split('.'))


class RecordManager:
    """Applies single-record changes to zone files.

    Every change runs under the zone's writer lock and follows the same
    sequence: parse, apply in memory, bump the SOA serial, back up, write,
    check with named-checkzone, then reload BIND. When the check fails the
    backup is copied back over the zone so the file is byte-identical to
    what it was before the operation.
    """

    def __init__(
        self,
        repository: ZoneRepository,
        validator: Validator,
        logger_service: LoggerService,
        named_conf: str,
        conflict_policy: ConflictPolicy = ConflictPolicy.FAIL,
        today: Callable[[], date] = date.today,
    ):
        """Initialize with dependencies.

        Args:
            repository: Zone file storage
            validator: BIND check/reload bridge
            logger_service: Logger service
            named_conf: Main configuration file listing the zones
            conflict_policy: Default policy for existing records
            today: Date source for serial numbers
        """
        self.repository = repository
        self.validator = validator
        self.logger_service = logger_service
        self.named_conf = named_conf
        self.conflict_policy = conflict_policy
        self.today = today

    # Domain registry

    def zones(self) -> List[ZoneDeclaration]:
        """Managed zones, re-read from named.conf on every call."""
        return discover_zones(self.named_conf)

    def domains(self) -> List[str]:
        return [zone.name for zone in self.zones()]

    def _resolve_domain(self, domain: str) -> ZoneDeclaration:
        zones = self.zones()
        for zone in zones:
            if zone.name == domain:
                return zone
        available = " ".join(zone.name for zone in zones) or "none"
        raise UnknownDomainError(f"Invalid domain: {domain} (available: {available})")

    def zone_path(self, domain: str) -> str:
        """Locate the zone file of a managed domain.

        Raises:
            UnknownDomainError: If the domain is not managed
            ZoneFileNotFoundError: If the zone file does not exist
        """
        declaration = self._resolve_domain(domain)
        return self.repository.locate(domain, declaration.file)

    def _load(self, domain: str, zone_path: str) -> ZoneFile:
        try:
            text = self.repository.read(zone_path)
        except (IOError, UnicodeDecodeError) as e:
            raise ZoneFormatError(f"Cannot read zone file {zone_path}: {e}") from e
        return ZoneParser(origin=domain).parse(text)

    # Input checks

    def _policy(self, on_conflict: Union[ConflictPolicy, str, None]) -> ConflictPolicy:
        if on_conflict is None:
            return self.conflict_policy
        if isinstance(on_conflict, ConflictPolicy):
            return on_conflict
        try:
            return ConflictPolicy(str(on_conflict).lower())
        except ValueError as e:
            raise ValidationError(f"Invalid conflict policy: {on_conflict}") from e

    @staticmethod
    def _check_name(name: str, label: str = "name", allow_apex: bool = False) -> None:
        if allow_apex:
            if name == "@" or validate_owner(name):
                return
        elif validate_hostname(name):
            return
        raise ValidationError(f"Invalid {label}: {name}")

    @staticmethod
    def _check_ttl(ttl: Optional[int]) -> Optional[int]:
        if ttl is None:
            return None
        try:
            value = int(ttl)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid TTL: {ttl}") from e
        if value < 0 or value > MAX_TTL:
            raise ValidationError(f"Invalid TTL: {ttl}")
        return value

    @staticmethod
    def _check_record_type(record_type: Optional[str]) -> Optional[str]:
        if record_type is None or record_type == "":
            return None
        normalized = record_type.upper()
        if normalized not in RECORD_TYPES:
            raise ValidationError(
                f"Invalid record type: {record_type} (supported: {', '.join(RECORD_TYPES)})"
            )
        return normalized

    # Operations

    def create_a_record(
        self,
        hostname: str,
        domain: str,
        ip_address: str,
        ttl: Optional[int] = None,
        on_conflict: Union[ConflictPolicy, str, None] = None,
    ) -> OperationResult:
        """Create (or replace) an A record.

        Args:
            hostname: Host name relative to the domain
            domain: Managed zone
            ip_address: IPv4 address
            ttl: Explicit TTL; the zone default applies when omitted
            on_conflict: Policy when the name already has an A or CNAME record

        Returns:
            OperationResult describing the outcome

        Raises:
            ValidationError: On malformed input or unknown domain
            RecordConflictError: If the record exists and the policy is FAIL
        """
        self._check_name(hostname, "hostname")
        if not validate_ip(ip_address):
            raise ValidationError(f"Invalid IP address: {ip_address}")
        ttl = self._check_ttl(ttl)

        return self._create(
            domain=domain,
            name=hostname,
            record_type="A",
            line=ResourceRecord.render(hostname, "A", ip_address, ttl),
            conflict_types=("A", "CNAME"),
            position=self._a_record_position,
            on_conflict=on_conflict,
            message=f"Created A record: {hostname}.{domain} -> {ip_address}",
        )

    def create_cname(
        self,
        alias: str,
        domain: str,
        target: str,
        on_conflict: Union[ConflictPolicy, str, None] = None,
    ) -> OperationResult:
        """Create (or replace) a CNAME record.

        A CNAME cannot coexist with other data, so any record of the alias
        counts as a conflict. The target is written as given: a relative
        name is completed with the zone origin by BIND, a name ending in a
        dot is absolute.
        """
        self._check_name(alias, "alias")
        if not target or len(target.split()) != 1:
            raise ValidationError(f"Invalid target: {target}")

        return self._create(
            domain=domain,
            name=alias,
            record_type="CNAME",
            line=ResourceRecord.render(alias, "CNAME", target),
            conflict_types=None,
            position=self._cname_position,
            on_conflict=on_conflict,
            message=f"Created CNAME record: {alias}.{domain} -> {target}",
        )

    def create_txt(
        self,
        name: str,
        domain: str,
        text: str,
        on_conflict: Union[ConflictPolicy, str, None] = None,
    ) -> OperationResult:
        """Append a TXT record (``@`` names the zone apex).

        Several TXT records may share a name, so TXT never conflicts with
        existing data; the policy argument is accepted for a uniform API.
        """
        self._check_name(name, "name", allow_apex=True)
        if text is None or "\n" in text or "\r" in text:
            raise ValidationError("Invalid text value: must be a single line")
        self._policy(on_conflict)

        return self._create(
            domain=domain,
            name=name,
            record_type="TXT",
            line=ResourceRecord.render(name, "TXT", ResourceRecord.quote_txt(text)),
            conflict_types=(),
            position=lambda zone: len(zone.entries),
            on_conflict=on_conflict,
            message=f'Created TXT record: {name}.{domain} -> "{text}"',
        )

    def delete_record(
        self,
        name: str,
        domain: str,
        record_type: Optional[str] = None,
        confirm: bool = False,
    ) -> OperationResult:
        """Delete every record of ``name``, optionally only of one type.

        Without ``confirm`` nothing is changed: the matching lines are
        returned in an ``aborted`` result so the caller can show them.

        Raises:
            ValidationError: On malformed input or unknown domain
            RecordNotFoundError: If nothing matches
        """
        self._check_name(name, "name", allow_apex=True)
        record_type = self._check_record_type(record_type)
        zone_path = self.zone_path(domain)
        if confirm:
            self.validator.ensure_available()

        with self.repository.lock(domain):
            zone = self._load(domain, zone_path)
            matches = [
                entry for entry in zone.find(name, [record_type] if record_type else None)
                if entry.record.record_type != "SOA"
            ]
            if not matches:
                raise RecordNotFoundError(f"Record {name} not found in {domain}")

            result = OperationResult(
                action="delete",
                domain=domain,
                name=name,
                record_type=record_type,
                lines=[entry.text.rstrip("\r\n") for entry in matches],
                message=f"Deleted record: {name} from {domain}",
            )
            if not confirm:
                result.status = "aborted"
                result.message = f"Confirmation required to delete {len(matches)} record(s) of {name} from {domain}"
                self.logger_service.log_operation(result)
                return result

            zone.remove(matches)
            return self._commit(zone, zone_path, result)

    def list_records(
        self,
        domain: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> Dict[str, List[ResourceRecord]]:
        """List records per domain.

        Args:
            domain: Only this domain (all managed domains when None)
            record_type: Only records of this type

        Returns:
            Mapping of domain to its records in file order. When listing all
            domains, zones whose file is missing are logged and skipped.
        """
        record_type = self._check_record_type(record_type)
        if domain:
            declarations = [self._resolve_domain(domain)]
        else:
            declarations = self.zones()

        listing = {}
        for declaration in declarations:
            try:
                zone_path = self.repository.locate(declaration.name, declaration.file)
            except ZoneFileNotFoundError:
                if domain:
                    raise
                self.logger_service.log(
                    "WARNING",
                    f"Zone file not found for {declaration.name}",
                    operation_type="list",
                    domain=declaration.name,
                )
                continue
            zone = self._load(declaration.name, zone_path)
            listing[declaration.name] = zone.records(record_type)
        return listing

    def list_backups(self, domain: str) -> List[str]:
        self._resolve_domain(domain)
        return self.repository.list_backups(domain)

    # Workflow

    def _create(
        self,
        domain: str,
        name: str,
        record_type: str,
        line: str,
        conflict_types: Optional[Iterable[str]],
        position: Callable[[ZoneFile], int],
        on_conflict: Union[ConflictPolicy, str, None],
        message: str,
    ) -> OperationResult:
        policy = self._policy(on_conflict)
        zone_path = self.zone_path(domain)
        self.validator.ensure_available()

        with self.repository.lock(domain):
            zone = self._load(domain, zone_path)
            result = OperationResult(
                action="create",
                domain=domain,
                name=name,
                record_type=record_type,
                lines=[line.rstrip("\n")],
                message=message,
            )

            conflicts = []
            if conflict_types is None or conflict_types:
                conflicts = zone.find(name, conflict_types)
            if conflicts:
                existing = [entry.text.rstrip("\r\n") for entry in conflicts]
                if policy is ConflictPolicy.FAIL:
                    raise RecordConflictError(f"Record {name} already exists in {domain}")
                if policy is ConflictPolicy.ABORT:
                    result.status = "aborted"
                    result.lines = existing
                    result.message = f"Record {name} already exists in {domain}, operation cancelled"
                    self.logger_service.log_operation(result)
                    return result
                self.logger_service.log(
                    "WARNING",
                    f"Replacing existing record(s) of {name} in {domain}",
                    operation_type="create",
                    domain=domain,
                    record_name=name,
                    context={"replaced": existing},
                )
                zone.remove(conflicts)

            entry = ZoneParser(origin=domain).parse(line).entries[0]
            zone.insert(position(zone), entry)
            return self._commit(zone, zone_path, result)

    def _commit(self, zone: ZoneFile, zone_path: str, result: OperationResult) -> OperationResult:
        """Bump the serial, write, validate and reload, or roll back.

        Must be called with the zone lock held.
        """
        domain = result.domain
        old_serial = zone.serial
        if old_serial is None:
            raise ZoneFormatError(f"Zone {domain} has no SOA serial")
        new_serial = next_serial(old_serial, self.today())
        zone.set_serial(new_serial)
        result.old_serial = old_serial
        result.new_serial = new_serial

        backup_path = self.repository.backup(domain, zone_path)
        result.backup_path = backup_path
        self.logger_service.log_backup(domain, backup_path)

        try:
            self.repository.write(zone_path, zone.to_text())
            self.logger_service.log_serial(domain, old_serial, new_serial)
            check = self.validator.check_zone(domain, zone_path)
        except Exception:
            self.repository.restore(zone_path, backup_path)
            self.logger_service.log_rollback(domain, backup_path)
            raise

        self.logger_service.log_validation(domain, check.success, check.output)
        if not check.success:
            self.repository.restore(zone_path, backup_path)
            self.logger_service.log_rollback(domain, backup_path)
            result.status = "validation_failed"
            result.diagnostics = check.output
            result.message = f"Zone validation failed for {domain}, backup restored"
            self.logger_service.log_operation(result)
            return result

        reload = self.validator.reload()
        self.logger_service.log_reload(reload.success, reload.output)
        if not reload.success:
            result.status = "reload_failed"
            result.diagnostics = reload.output
            result.message = f"{result.message} (BIND reload failed)"

        self.logger_service.log_operation(result)
        return result

    # Placement

    @staticmethod
    def _a_record_position(zone: ZoneFile) -> int:
        """Before the CNAME section, else after the A section marker, else at the end."""
        cname_marker = zone.find_marker(CNAME_RECORDS_MARKER)
        if cname_marker is not None:
            return cname_marker
        a_marker = zone.find_marker(A_RECORDS_MARKER)
        if a_marker is not None:
            return a_marker + 1
        return len(zone.entries)

    @staticmethod
    def _cname_position(zone: ZoneFile) -> int:
        """After the CNAME marker, else at the end of the A section, else at the end."""
        cname_marker = zone.find_marker(CNAME_RECORDS_MARKER)
        if cname_marker is not None:
            return cname_marker + 1
        a_marker = zone.find_marker(A_RECORDS_MARKER)
        if a_marker is not None:
            blank = zone.find_blank(a_marker + 1)
            return blank if blank is not None else len(zone.entries)
        return len(zone.entries)
