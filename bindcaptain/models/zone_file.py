"""Structured zone file model."""
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from bindcaptain.models.zone_record import ResourceRecord


@dataclass
class ZoneEntry:
    """One logical entry of a zone file.

    Record entries may span several physical lines (parenthesized records);
    everything else (comments, directives, blank lines) is kept as opaque
    passthrough text.

    Attributes:
        text: Exact text of the entry including line terminators
        record: Parsed record, None for passthrough entries
        serial_span: (start, end) offsets of the SOA serial within ``text``
    """
    text: str
    record: Optional[ResourceRecord] = None
    serial_span: Optional[Tuple[int, int]] = None

    @property
    def is_record(self) -> bool:
        return self.record is not None

    @property
    def is_blank(self) -> bool:
        return self.record is None and not self.text.strip()


@dataclass
class ZoneFile:
    """Ordered entries of a zone file plus its SOA serial location."""
    origin: str
    entries: List[ZoneEntry] = field(default_factory=list)

    def to_text(self) -> str:
        """Serialize back to zone file text."""
        return "".join(entry.text for entry in self.entries)

    def records(self, record_type: Optional[str] = None) -> List[ResourceRecord]:
        """Get parsed records, optionally filtered by type."""
        wanted = record_type.upper() if record_type else None
        return [
            entry.record for entry in self.entries
            if entry.record and (wanted is None or entry.record.record_type == wanted)
        ]

    # SOA serial

    def _soa_entry(self) -> Optional[ZoneEntry]:
        for entry in self.entries:
            if entry.serial_span is not None:
                return entry
        return None

    @property
    def serial(self) -> Optional[int]:
        """Current SOA serial, None when the zone has no SOA record."""
        entry = self._soa_entry()
        if entry is None:
            return None
        start, end = entry.serial_span
        return int(entry.text[start:end])

    def set_serial(self, serial: int) -> None:
        """Rewrite the SOA serial in place, leaving the rest of the line alone."""
        entry = self._soa_entry()
        if entry is None:
            raise ValueError(f"Zone {self.origin} has no SOA serial")
        start, end = entry.serial_span
        new_value = str(serial)
        entry.text = entry.text[:start] + new_value + entry.text[end:]
        entry.serial_span = (start, start + len(new_value))

    # Lookups

    def find(
        self,
        name: str,
        record_types: Optional[Iterable[str]] = None,
    ) -> List[ZoneEntry]:
        """Find record entries owned by ``name``.

        Args:
            name: Relative owner name, or ``@`` for the zone apex
            record_types: Restrict to these types (None matches every type)

        Returns:
            Matching entries in file order
        """
        types = {t.upper() for t in record_types} if record_types else None
        return [
            entry for entry in self.entries
            if entry.record
            and entry.record.matches_name(name, self.origin)
            and (types is None or entry.record.record_type in types)
        ]

    def find_marker(self, pattern: str, start: int = 0) -> Optional[int]:
        """Index of the first comment entry matching ``pattern``."""
        regex = re.compile(pattern, re.IGNORECASE)
        for index in range(start, len(self.entries)):
            entry = self.entries[index]
            if not entry.is_record and regex.search(entry.text):
                return index
        return None

    def find_blank(self, start: int = 0) -> Optional[int]:
        """Index of the first blank line at or after ``start``."""
        for index in range(start, len(self.entries)):
            if self.entries[index].is_blank:
                return index
        return None

    # Mutation

    def insert(self, index: int, entry: ZoneEntry) -> None:
        """Insert an entry before ``index`` (``len(entries)`` appends)."""
        self._pin_owner_at(index)
        if index >= len(self.entries):
            self._terminate_last_line()
            self.entries.append(entry)
        else:
            self.entries.insert(index, entry)

    def append(self, entry: ZoneEntry) -> None:
        self.insert(len(self.entries), entry)

    def remove(self, entries: List[ZoneEntry]) -> None:
        """Remove entries, keeping the owner of records that inherited it."""
        doomed = {id(entry) for entry in entries}
        for index, entry in enumerate(self.entries):
            if id(entry) in doomed:
                self._pin_owner_at(index + 1, skip=doomed)
        self.entries = [entry for entry in self.entries if id(entry) not in doomed]

    def _pin_owner_at(self, index: int, skip: Optional[set] = None) -> None:
        """Make the next record's owner explicit if it is inherited.

        Records written without an owner take the owner of the record before
        them, so inserting or removing a line in front of one would silently
        rename it.
        """
        for entry in self.entries[index:]:
            if skip and id(entry) in skip:
                continue
            if entry.record is None:
                continue
            if entry.record.name is None:
                owner = entry.record.owner
                entry.text = owner + entry.text
                entry.record.name = owner
                if entry.serial_span is not None:
                    start, end = entry.serial_span
                    entry.serial_span = (start + len(owner), end + len(owner))
            return

    def _terminate_last_line(self) -> None:
        if self.entries and not self.entries[-1].text.endswith("\n"):
            last = self.entries[-1]
            last.text += "\n"
