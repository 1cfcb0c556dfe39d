"""Zone file parser for BIND master files."""
import logging
import re
from typing import List, Optional, Tuple

from bindcaptain import BindCaptainError
from bindcaptain.models import ResourceRecord, ZoneEntry, ZoneFile


logger = logging.getLogger(__name__)


class ZoneFormatError(BindCaptainError):
    """Raised when a zone file cannot be parsed or lacks an SOA serial."""
    pass


class ZoneParser:
    """Parser for BIND zone files.

    Only the owner, TTL, class and type of each record are interpreted;
    record data is kept verbatim. Every line that is not a record is kept
    as passthrough text so that serializing an unmodified zone reproduces
    the input byte-for-byte.
    """

    # Record types recognised on a record line
    KNOWN_RECORD_TYPES = {
        'A', 'AAAA', 'CAA', 'CNAME', 'DNAME', 'DNSKEY', 'DS', 'HINFO', 'HTTPS',
        'LOC', 'MX', 'NAPTR', 'NS', 'PTR', 'RP', 'SOA', 'SPF', 'SRV', 'SSHFP',
        'SVCB', 'TLSA', 'TXT', 'URI',
    }

    # Format: [owner] [ttl] [class] type rdata (ttl and class in either order)
    RECORD_LINE_PATTERN = re.compile(
        r'^(?P<owner>[^\s;]+)?\s+'
        r'(?:(?P<ttl>\d[0-9smhdwSMHDW]*)\s+)?'
        r'(?:(?P<rclass>IN|CH|HS)\s+)?'
        r'(?:(?P<ttl2>\d[0-9smhdwSMHDW]*)\s+)?'
        r'(?P<type>[A-Za-z][A-Za-z0-9]*)\s+'
        r'(?P<rdata>.+?)\s*$',
        re.IGNORECASE
    )

    TOKEN_PATTERN = re.compile(r'[^\s()]+')

    def __init__(self, origin: str):
        """Initialize parser.

        Args:
            origin: Zone name the file belongs to
        """
        self.origin = origin

    def parse(self, text: str) -> ZoneFile:
        """Parse zone file text into a ZoneFile.

        Args:
            text: Full zone file contents

        Returns:
            ZoneFile with one entry per record or passthrough line

        Raises:
            ZoneFormatError: If a parenthesized record is never closed
        """
        lines = text.splitlines(keepends=True)
        zone = ZoneFile(origin=self.origin)
        owner = self.origin + "."
        index = 0

        while index < len(lines):
            line = lines[index]
            code = self._strip_comment(line)

            if not code.strip() or line.lstrip().startswith('$'):
                zone.entries.append(ZoneEntry(text=line))
                index += 1
                continue

            # Gather continuation lines of a parenthesized record
            block = [line]
            depth = self._paren_balance(code)
            while depth > 0:
                index += 1
                if index >= len(lines):
                    raise ZoneFormatError(
                        f"Unbalanced parentheses in zone {self.origin}"
                    )
                block.append(lines[index])
                continuation = self._strip_comment(lines[index])
                depth += self._paren_balance(continuation)
            index += 1

            entry_text = "".join(block)
            record = self._parse_record(block, owner)
            if record is None:
                logger.debug(f"Zone {self.origin}: keeping unparsed line: {line.strip()[:100]}")
                zone.entries.append(ZoneEntry(text=entry_text))
                continue

            owner = record.owner
            entry = ZoneEntry(text=entry_text, record=record)
            if record.record_type == 'SOA':
                entry.serial_span = self._locate_serial(block)
            zone.entries.append(entry)

        return zone

    def _parse_record(self, block: List[str], previous_owner: str) -> Optional[ResourceRecord]:
        """Parse a (possibly multi-line) record.

        Args:
            block: Physical lines making up the record
            previous_owner: Owner inherited when the line has none

        Returns:
            ResourceRecord or None if the text is not a record line
        """
        code = " ".join(self._strip_comment(line).strip() for line in block)
        # Owner-less lines start with whitespace
        if block[0][:1] in (' ', '\t'):
            code = " " + code

        match = self.RECORD_LINE_PATTERN.match(code)
        if not match:
            return None

        record_type = match.group('type').upper()
        if record_type not in self.KNOWN_RECORD_TYPES:
            return None

        name = match.group('owner')
        rdata = " ".join(match.group('rdata').replace('(', ' ').replace(')', ' ').split())
        return ResourceRecord(
            name=name,
            owner=name if name is not None else previous_owner,
            record_type=record_type,
            value=rdata if record_type != 'TXT' else match.group('rdata'),
            ttl=match.group('ttl') or match.group('ttl2'),
            rclass=match.group('rclass').upper() if match.group('rclass') else None,
        )

    def _locate_serial(self, block: List[str]) -> Tuple[int, int]:
        """Find the offsets of the SOA serial within the joined block.

        The serial is the third token after the SOA keyword (after the
        primary name server and the responsible mailbox).

        Raises:
            ZoneFormatError: If the serial is missing or not numeric
        """
        tokens = []
        offset = 0
        for line in block:
            code = self._strip_comment(line)
            for match in self.TOKEN_PATTERN.finditer(code):
                tokens.append((match.group(0), offset + match.start(), offset + match.end()))
            offset += len(line)

        for position, (token, _, _) in enumerate(tokens):
            if token.upper() == 'SOA':
                if position + 3 < len(tokens):
                    value, start, end = tokens[position + 3]
                    if value.isdigit():
                        return start, end
                break

        raise ZoneFormatError(f"Cannot find SOA serial in zone {self.origin}")

    @staticmethod
    def _strip_comment(line: str) -> str:
        """Remove a trailing ``;`` comment, ignoring semicolons inside quotes."""
        in_quotes = False
        escaped = False
        for position, char in enumerate(line):
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_quotes = not in_quotes
            elif char == ';' and not in_quotes:
                return line[:position]
        return line.rstrip('\r\n')

    @staticmethod
    def _paren_balance(code: str) -> int:
        """Count open minus close parentheses outside quoted strings."""
        balance = 0
        in_quotes = False
        escaped = False
        for char in code:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_quotes = not in_quotes
            elif not in_quotes and char == '(':
                balance += 1
            elif not in_quotes and char == ')':
                balance -= 1
        return balance
