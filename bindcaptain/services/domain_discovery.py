"""Zone discovery from the main BIND configuration file."""
import logging
import os
import re
from dataclasses import dataclass
from typing import List, Optional


logger = logging.getLogger(__name__)


ZONE_LINE_PATTERN = re.compile(r'^\s*zone\s+"([^"]*)"')
FILE_DIRECTIVE_PATTERN = re.compile(r'(?:^|[\s{;])file\s+"([^"]+)"')

RESERVED_ZONES = {".", "localhost"}


@dataclass
class ZoneDeclaration:
    """A zone statement found in named.conf.

    Attributes:
        name: Zone name as quoted in the configuration
        file: Zone file path from the ``file`` directive, if present
    """
    name: str
    file: Optional[str] = None


def is_reserved_zone(name: str) -> bool:
    """Check whether a zone is excluded from record management."""
    return name in RESERVED_ZONES or name.endswith(".arpa")


def parse_zone_declarations(text: str) -> List[ZoneDeclaration]:
    """Extract managed zone declarations from named.conf text.

    Lines starting with the ``zone`` keyword introduce a zone; the first
    ``file`` directive seen before the next zone statement is its file.
    The root zone, ``localhost`` and reverse (``.arpa``) zones are skipped.
    Duplicates (for example the same zone in several views) are reported
    once, in declaration order.
    """
    declarations = []
    seen = {}
    current = None
    depth = 0
    opened = False

    for line in text.splitlines():
        zone_match = ZONE_LINE_PATTERN.match(line)
        if zone_match:
            name = zone_match.group(1)
            depth, opened = 0, False
            if is_reserved_zone(name):
                current = None
            elif name in seen:
                current = seen[name]
            else:
                current = ZoneDeclaration(name=name)
                seen[name] = current
                declarations.append(current)
            line = line[zone_match.end():]

        if current is None:
            continue

        if current.file is None:
            file_match = FILE_DIRECTIVE_PATTERN.search(line)
            if file_match:
                current.file = file_match.group(1)

        # The zone block ends when its braces balance again
        depth += line.count("{") - line.count("}")
        opened = opened or "{" in line
        if opened and depth <= 0:
            current = None

    return declarations


def discover_zones(named_conf: str) -> List[ZoneDeclaration]:
    """Read named.conf and return the managed zone declarations.

    The file is re-read on every call. A missing file yields no zones.
    """
    if not os.path.isfile(named_conf):
        logger.warning(f"Configuration file {named_conf} not found, no domains discovered")
        return []
    with open(named_conf, 'r', encoding='utf-8', errors='replace') as f:
        return parse_zone_declarations(f.read())


def discover_domains(named_conf: str) -> List[str]:
    """Names of the managed zones declared in named.conf."""
    return [declaration.name for declaration in discover_zones(named_conf)]
