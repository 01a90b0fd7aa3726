"""Exceptions raised while fetching calendar sources."""


class SourceFetchError(Exception):
    """A source could not be fetched as calendar data."""


class HtmlResponseError(SourceFetchError):
    """The source answered with an HTML page instead of iCalendar data."""

    def __init__(self, page_title=None):
        message = "Received HTML instead of ICS - calendar may be private. Use the secret iCal URL."
        if page_title:
            message = f"{message} (page title: {page_title!r})"
        super().__init__(message)
        self.page_title = page_title
