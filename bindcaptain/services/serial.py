"""SOA serial numbering (YYYYMMDDnn)."""
from datetime import date
from typing import Optional


def next_serial(current: Optional[int], today: date) -> int:
    """Compute the serial to write after a change.

    If the leading eight digits of the current serial are today's date the
    serial is incremented by one; otherwise it restarts at ``<today>01``.
    The comparison is a plain string prefix check, so a serial dated in the
    future is also reset to today.

    Args:
        current: Serial currently in the zone, None if it has none
        today: Date of the change

    Returns:
        New serial number
    """
    stamp = today.strftime("%Y%m%d")
    if current is not None and str(current)[:8] == stamp:
        return current + 1
    return int(stamp + "01")
