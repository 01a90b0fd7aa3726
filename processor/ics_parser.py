"""iCalendar parser producing normalized events."""
import logging
import secrets
import time
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import List, Optional, Tuple

from icalendar import Calendar

from processor.models import NormalizedEvent

logger = logging.getLogger(__name__)


class IcsParser:
    """Parser turning one raw VCALENDAR document into NormalizedEvent objects."""

    DEFAULT_TITLE = "Untitled"

    def parse_events(
        self,
        ics_text: str,
        source_id: str,
        source_name: str,
        color: str
    ) -> List[NormalizedEvent]:
        """
        Parse VEVENT components from a calendar document.

        Components other than VEVENT are ignored and events without a
        DTSTART are dropped. A document that cannot be parsed at all yields
        no events; an event that fails on its own is skipped.

        Args:
            ics_text: Raw iCalendar text
            source_id: Id of the owning source
            source_name: Display name of the owning source
            color: Display color of the owning source

        Returns:
            List of NormalizedEvent objects in document order (possibly empty)
        """
        try:
            # A stream may hold several VCALENDAR objects
            calendars = Calendar.from_ical(ics_text.lstrip('\ufeff'), multiple=True)
        except Exception as e:
            logger.error(f"Error parsing ICS for {source_name}: {e}")
            return []

        events = []
        skipped = 0

        for calendar in calendars:
            for component in calendar.walk('VEVENT'):
                try:
                    event = self._parse_single_event(
                        component, source_id, source_name, color
                    )
                except Exception as e:
                    logger.warning(
                        f"Failed to parse event '{component.get('UID')}' "
                        f"in {source_name}: {e}"
                    )
                    skipped += 1
                    continue
                if event is None:
                    skipped += 1
                    continue
                events.append(event)

        if skipped:
            logger.debug(
                f"Skipped {skipped} unusable events in {source_name}"
            )
        return events

    def _parse_single_event(
        self,
        component,
        source_id: str,
        source_name: str,
        color: str
    ) -> Optional[NormalizedEvent]:
        """
        Normalize a single VEVENT component.

        Args:
            component: icalendar Event component
            source_id: Id of the owning source
            source_name: Display name of the owning source
            color: Display color of the owning source

        Returns:
            NormalizedEvent or None if the event has no start
        """
        start_value = self._decoded_date(component, 'DTSTART')
        if start_value is None:
            return None

        start, all_day = self._to_instant(start_value)
        end = self._resolve_end(component, start)

        return NormalizedEvent(
            id=self._event_id(component, source_id),
            title=self._text(component, 'SUMMARY') or self.DEFAULT_TITLE,
            description=self._text(component, 'DESCRIPTION'),
            location=self._text(component, 'LOCATION'),
            start=start,
            end=end,
            all_day=all_day,
            source_id=source_id,
            source_name=source_name,
            color=color
        )

    def _resolve_end(self, component, start: datetime) -> Optional[datetime]:
        """Use DTEND when present, else derive it from DURATION."""
        end_value = self._decoded_date(component, 'DTEND')
        if end_value is not None:
            return self._to_instant(end_value)[0]

        duration = component.get('DURATION')
        if duration is not None and isinstance(duration.dt, timedelta):
            return start + duration.dt

        return None

    @staticmethod
    def _decoded_date(component, name: str) -> Optional[date]:
        """
        Get a date or date-time property value.

        Args:
            component: icalendar component
            name: Property name (DTSTART, DTEND)

        Returns:
            date or datetime, or None if missing or of another value type
        """
        prop = component.get(name)
        if prop is None:
            return None

        value = getattr(prop, 'dt', None)
        if isinstance(value, date):
            return value
        return None

    @staticmethod
    def _to_instant(value: date) -> Tuple[datetime, bool]:
        """
        Convert a parsed date or date-time to a UTC instant.

        Args:
            value: date (all-day) or datetime

        Returns:
            Tuple of (UTC datetime, all_day flag)
        """
        # datetime is a subclass of date, so check it first
        if isinstance(value, datetime):
            if value.tzinfo is None:
                # Floating time
                return value.replace(tzinfo=timezone.utc), False
            return value.astimezone(timezone.utc), False

        return datetime.combine(value, dt_time.min, tzinfo=timezone.utc), True

    @staticmethod
    def _text(component, name: str) -> str:
        value = component.get(name)
        # Repeated properties come back as a list
        if isinstance(value, list):
            value = value[0] if value else None
        if value is None:
            return ''
        return str(value)

    @staticmethod
    def _event_id(component, source_id: str) -> str:
        """
        Use the feed UID when present, else synthesize a process-unique id.

        Args:
            component: icalendar Event component
            source_id: Id of the owning source

        Returns:
            Event identifier
        """
        uid = component.get('UID')
        if uid is not None and str(uid):
            return str(uid)
        return f"{source_id}-{time.time_ns()}-{secrets.token_hex(4)}"
