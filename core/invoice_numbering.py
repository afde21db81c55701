"""
Invoice number format: INV-<year>-<sequence>, sequence zero-padded to 4 digits.

The next sequence follows the most recently created invoice's number: the
digits after "INV-<year>-", or after "INV-" for legacy numbers without a year.
A number in neither form restarts the sequence at 1.
"""

import re

# Optional 4-digit year, then the sequence
_SEQUENCE_PATTERN = re.compile(r"INV-(?:\d{4}-)?(\d+)")


def next_sequence(last_number: str | None) -> int:
    """
    Sequence to use after last_number.

    Examples:
        next_sequence(None) == 1
        next_sequence("INV-0005") == 6
        next_sequence("CUSTOM-001") == 1
    """
    if not last_number:
        return 1

    match = _SEQUENCE_PATTERN.search(last_number)
    if match is None:
        return 1
    return int(match.group(1)) + 1


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:04d}"
