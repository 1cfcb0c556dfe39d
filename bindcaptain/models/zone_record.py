"""Resource record data model."""
from dataclasses import dataclass
from typing import Optional


# Longest character-string BIND accepts inside a TXT record
TXT_CHUNK_SIZE = 255


@dataclass
class ResourceRecord:
    """A resource record parsed from (or rendered for) a zone file.

    Attributes:
        name: Owner name as written on the line, None when inherited
        owner: Effective owner name (inherited from the previous record if blank)
        record_type: DNS record type (A, CNAME, TXT, SOA, ...)
        value: Record data as written, parentheses and comments removed
        ttl: Explicit TTL token, if any
        rclass: Explicit class token, if any
    """
    name: Optional[str]
    owner: str
    record_type: str
    value: str
    ttl: Optional[str] = None
    rclass: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "name": self.owner,
            "type": self.record_type,
            "value": self.value,
            "ttl": self.ttl,
            "class": self.rclass,
        }

    def matches_name(self, name: str, origin: str) -> bool:
        """Check whether the record is owned by ``name`` within ``origin``.

        Names are compared case-insensitively, in relative form or as a
        fully qualified name.
        """
        owner = self.owner.lower()
        origin = origin.lower().rstrip(".")
        name = name.lower()
        if name == "@":
            return owner in ("@", f"{origin}.")
        return owner in (name, f"{name}.{origin}.")

    @staticmethod
    def render(name: str, record_type: str, value: str, ttl: Optional[int] = None) -> str:
        """Format a single zone file line for a new record."""
        if ttl is None:
            return f"{name:<24} IN      {record_type:<7} {value}\n"
        return f"{name:<16} {ttl:<7} IN      {record_type:<7} {value}\n"

    @staticmethod
    def quote_txt(text: str) -> str:
        """Quote TXT data, splitting it into 255 byte character-strings."""
        escaped = []
        chunk = ""
        size = 0
        for char in text:
            width = len(char.encode("utf-8"))
            if size + width > TXT_CHUNK_SIZE:
                escaped.append(chunk)
                chunk, size = "", 0
            chunk += '\\' + char if char in ('"', '\\') else char
            size += width
        escaped.append(chunk)
        return " ".join(f'"{part}"' for part in escaped)
