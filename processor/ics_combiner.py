"""Build a merged iCalendar document from cached raw payloads."""
import re
from typing import Iterable, List

from processor.models import CacheSnapshot

CRLF = '\r\n'
PRODUCT_ID = '-//ICS Aggregator//EN'
DEFAULT_CALENDAR_NAME = 'All calendars'

EVENT_BEGIN = 'BEGIN:VEVENT'
EVENT_END = 'END:VEVENT'

_LINE_BREAK = re.compile(r'\r\n|\n|\r')


def extract_event_blocks(ics_text: str) -> List[List[str]]:
    """
    Extract VEVENT blocks line by line, markers included.

    Everything outside a BEGIN:VEVENT / END:VEVENT pair is dropped, as is
    a block still open when the payload ends.

    Args:
        ics_text: Raw iCalendar text

    Returns:
        List of blocks, each a list of lines without terminators
    """
    blocks = []
    current = None

    for line in _LINE_BREAK.split(ics_text):
        if line == EVENT_BEGIN:
            current = [line]
            continue
        if current is None:
            continue
        current.append(line)
        if line == EVENT_END:
            blocks.append(current)
            current = None

    return blocks


def build_combined_calendar(
    snapshot: CacheSnapshot,
    calendar_name: str = DEFAULT_CALENDAR_NAME
) -> str:
    """
    Concatenate the VEVENT blocks of every cached payload into one calendar.

    This is a textual copy: events are not re-parsed, so quirky feeds
    survive byte for byte apart from line endings, which become CRLF.

    Args:
        snapshot: Snapshot whose raw payloads are merged
        calendar_name: Value for X-WR-CALNAME

    Returns:
        Combined iCalendar document
    """
    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f'PRODID:{PRODUCT_ID}',
        'CALSCALE:GREGORIAN',
        f'X-WR-CALNAME:{calendar_name}',
    ]

    for ics_text in snapshot.raw_payloads.values():
        for block in extract_event_blocks(ics_text):
            lines.extend(block)

    lines.append('END:VCALENDAR')
    return _join_lines(lines)


def _join_lines(lines: Iterable[str]) -> str:
    return ''.join(line + CRLF for line in lines)
