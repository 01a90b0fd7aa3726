"""HTTP fetcher for iCalendar source feeds."""
import logging
from typing import Optional

import requests
from bs4 import BeautifulSoup

from fetcher.errors import HtmlResponseError
from processor.ics_parser import IcsParser
from processor.models import FetchResult, Source

logger = logging.getLogger(__name__)


class IcsFetcher:
    """Fetcher retrieving and parsing one calendar source at a time."""

    USER_AGENT = "ICS-Aggregator/1.0"

    def __init__(self, timeout: int = 30, parser: Optional[IcsParser] = None):
        """
        Initialize the fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            parser: Parser for calendar payloads (default: new IcsParser)
        """
        self.timeout = timeout
        self.parser = parser or IcsParser()

    def fetch_source(self, source: Source) -> FetchResult:
        """
        Fetch a source and parse its events.

        Failures never propagate: they are logged and reported as an
        empty result without a raw payload.

        Args:
            source: Source to fetch

        Returns:
            FetchResult with parsed events and the raw payload on success
        """
        logger.info(f"Fetching: {source.name}...")

        try:
            ics_text = self._fetch_ics_text(source.url)
            events = self.parser.parse_events(
                ics_text, source.id, source.name, source.color
            )
        except Exception as e:
            logger.error(
                f"Error fetching {source.name}: {e}",
                extra={'source_id': source.id, 'error_type': type(e).__name__}
            )
            return FetchResult(events=[], raw_payload=None)

        logger.info(f"{len(events)} events from {source.name}")
        return FetchResult(events=events, raw_payload=ics_text)

    def _fetch_ics_text(self, url: str) -> str:
        """
        Download a feed and check that it is not an HTML page.

        Args:
            url: Feed URL

        Returns:
            Response body as text

        Raises:
            requests.RequestException: On network errors or non-success status
            HtmlResponseError: If the body is an HTML page
        """
        response = requests.get(
            url,
            timeout=self.timeout,
            headers={
                'User-Agent': self.USER_AGENT,
                'Accept': 'text/calendar'
            }
        )
        response.raise_for_status()

        response.encoding = 'utf-8-sig'
        body = response.text

        if self._looks_like_html(body):
            raise HtmlResponseError(self._html_title(body))

        return body

    @staticmethod
    def _looks_like_html(body: str) -> bool:
        """
        Detect an HTML page (typically a login redirect) in place of a feed.

        Args:
            body: Response body

        Returns:
            True if the trimmed body starts with a markup declaration or <html
        """
        stripped = body.lstrip('\ufeff').strip()
        return stripped.startswith('<!') or stripped[:5].lower() == '<html'

    @staticmethod
    def _html_title(body: str) -> Optional[str]:
        soup = BeautifulSoup(body, 'html.parser')
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return None
