"""Unit tests for IcsFetcher."""
import logging

import pytest
import responses
from requests.exceptions import ConnectionError, Timeout

from fetcher.errors import HtmlResponseError
from fetcher.ics_fetcher import IcsFetcher
from processor.models import Source

FEED_URL = "https://calendar.example.com/feed.ics"

SAMPLE_ICS = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "PRODID:-//Test//EN\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:one@example.com\r\n"
    "SUMMARY:Board meeting\r\n"
    "DTSTART:20240115T100000Z\r\n"
    "END:VEVENT\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:two@example.com\r\n"
    "SUMMARY:Open day\r\n"
    "DTSTART;VALUE=DATE:20240120\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


@pytest.fixture
def source():
    return Source(id="club", name="Chess Club", url=FEED_URL, color="#00ff00")


class TestIcsFetcher:
    """Test cases for IcsFetcher class."""

    @responses.activate
    def test_fetch_source_success(self, source):
        """Test successful fetching and parsing of a feed."""
        responses.add(
            responses.GET,
            FEED_URL,
            body=SAMPLE_ICS,
            status=200,
            content_type="text/calendar"
        )

        fetcher = IcsFetcher(timeout=10)
        result = fetcher.fetch_source(source)

        assert result.succeeded
        assert result.raw_payload == SAMPLE_ICS
        assert [e.title for e in result.events] == ["Board meeting", "Open day"]
        assert all(e.source_id == "club" for e in result.events)
        assert all(e.source_name == "Chess Club" for e in result.events)
        assert all(e.color == "#00ff00" for e in result.events)
        assert responses.calls[0].request.headers["Accept"] == "text/calendar"

    @responses.activate
    def test_fetch_source_decodes_utf8(self, source):
        """Test that the body is decoded as UTF-8 without a charset header."""
        ics = SAMPLE_ICS.replace("Board meeting", "Réunion")
        responses.add(
            responses.GET,
            FEED_URL,
            body=ics.encode("utf-8"),
            status=200,
            content_type="text/calendar"
        )

        result = IcsFetcher().fetch_source(source)

        assert result.events[0].title == "Réunion"
        assert result.raw_payload == ics

    @responses.activate
    def test_fetch_source_bad_status(self, source, caplog):
        """Test that a non-success status is a failure."""
        responses.add(responses.GET, FEED_URL, body="Not found", status=404)

        with caplog.at_level(logging.ERROR):
            result = IcsFetcher().fetch_source(source)

        assert result.events == []
        assert result.raw_payload is None
        assert not result.succeeded
        assert any("Chess Club" in r.message and "404" in r.message for r in caplog.records)

    @pytest.mark.parametrize("body", [
        "<html><head><title>Sign in</title></head><body>Login</body></html>",
        "  \n<!DOCTYPE html>\n<html><body>Login</body></html>",
        "<HTML><body>Login</body></HTML>",
    ])
    @responses.activate
    def test_fetch_source_html_is_failure(self, source, caplog, body):
        """Test that an HTML page is a failure, not an empty calendar."""
        responses.add(responses.GET, FEED_URL, body=body, status=200)

        with caplog.at_level(logging.ERROR):
            result = IcsFetcher().fetch_source(source)

        assert result.events == []
        assert result.raw_payload is None
        assert any("HTML instead of ICS" in r.message for r in caplog.records)

    @responses.activate
    def test_fetch_source_timeout(self, source):
        """Test that a timeout is reported as a failure."""
        responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        result = IcsFetcher(timeout=1).fetch_source(source)

        assert result.events == []
        assert result.raw_payload is None
        # No retries within a cycle
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_source_connection_error(self, source):
        """Test that a network error is reported as a failure."""
        responses.add(responses.GET, FEED_URL, body=ConnectionError("refused"))

        result = IcsFetcher().fetch_source(source)

        assert not result.succeeded

    @responses.activate
    def test_fetch_source_malformed_payload_kept(self, source):
        """Test that a non-HTML body that fails to parse still counts as fetched."""
        responses.add(responses.GET, FEED_URL, body="garbage", status=200)

        result = IcsFetcher().fetch_source(source)

        assert result.events == []
        assert result.raw_payload == "garbage"

    @responses.activate
    def test_fetch_source_with_byte_order_mark(self, source):
        """Test that a feed starting with a UTF-8 BOM still yields its events."""
        responses.add(
            responses.GET,
            FEED_URL,
            body=("\ufeff" + SAMPLE_ICS).encode("utf-8"),
            status=200,
            content_type="text/calendar"
        )

        result = IcsFetcher().fetch_source(source)

        assert [e.title for e in result.events] == ["Board meeting", "Open day"]
        assert result.raw_payload == SAMPLE_ICS

    @responses.activate
    def test_fetch_source_html_with_byte_order_mark(self, source, caplog):
        """Test that an HTML page behind a BOM is still a failure."""
        responses.add(
            responses.GET,
            FEED_URL,
            body="\ufeff<!DOCTYPE html><html><body>Login</body></html>".encode("utf-8"),
            status=200
        )

        with caplog.at_level(logging.ERROR):
            result = IcsFetcher().fetch_source(source)

        assert result.events == []
        assert result.raw_payload is None
        assert any("HTML instead of ICS" in r.message for r in caplog.records)

    def test_looks_like_html_after_decoded_bom(self):
        assert IcsFetcher._looks_like_html("\ufeff <html><body></body></html>")

    def test_html_title_in_error(self):
        """Test that the login page title is included in the error."""
        error = HtmlResponseError(
            IcsFetcher._html_title("<html><title> Sign in </title></html>")
        )

        assert "Sign in" in str(error)
        assert error.page_title == "Sign in"

    def test_looks_like_html(self):
        """Test HTML detection on calendar and markup bodies."""
        assert IcsFetcher._looks_like_html("<!doctype html>")
        assert IcsFetcher._looks_like_html("  <html lang='en'>")
        assert not IcsFetcher._looks_like_html(SAMPLE_ICS)
        assert not IcsFetcher._looks_like_html("")
