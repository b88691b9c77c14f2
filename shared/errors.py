"""Error types shared by the API and the scraper."""


class BadRequestError(Exception):
    """A precondition of an extraction operation was violated.

    The message is meant to be shown to the caller as-is.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ScraperError(Exception):
    """The scrape pipeline could not continue (navigation or list load failed)."""
