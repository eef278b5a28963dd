"""Exception hierarchy for the receipt ingestion pipeline.

Every failure the dispatcher can record on a processing job derives from
ReceiptPipelineError. Only NetworkTimeoutError is retryable; the rest describe
problems with the event, the receipt site or the database that a redelivery
would not fix.
"""


class ReceiptPipelineError(Exception):
    """Base class for ingestion pipeline errors."""

    retryable = False


class ValidationError(ReceiptPipelineError):
    """The scan event is malformed or references data that does not exist."""


class AuthorizationError(ReceiptPipelineError):
    """The ingestion entry point was called without the shared secret."""


class DuplicateJobError(ReceiptPipelineError):
    """A processing job already exists for the scanned URL."""

    def __init__(self, scanned_url_id: int, job_id: int | None = None) -> None:
        self.scanned_url_id = scanned_url_id
        self.job_id = job_id
        super().__init__(f"Job for scanned_url_id {scanned_url_id} already exists or is processing")


class NoParserError(ReceiptPipelineError):
    """No parser is registered for the URL's hostname."""

    def __init__(self, url: str, hostname: str | None = None) -> None:
        self.url = url
        self.hostname = hostname
        super().__init__(f"No suitable parser found for URL host: {hostname or url}")


class ExtractionError(ReceiptPipelineError):
    """The receipt page could not be fetched or its markup could not be parsed."""

    missing_rendered_content = False


class MissingRenderedContentError(ExtractionError):
    """The site only works with an HTML snapshot rendered on the device."""

    missing_rendered_content = True

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(
            f"HTML content rendered on the device is required for {url} but was not provided"
        )


class PersistenceError(ReceiptPipelineError):
    """Writing the parsed receipt to the database failed."""


class PartialPersistenceError(PersistenceError):
    """The receipt header was written but its items were not.

    The orphan receipt is kept so an operator can reconcile it by hand.
    """

    def __init__(self, receipt_id: int, cause: str) -> None:
        self.receipt_id = receipt_id
        super().__init__(
            f"Failed to insert receipt items after header insertion "
            f"(Receipt ID: {receipt_id}): {cause}"
        )


class NetworkTimeoutError(ReceiptPipelineError):
    """A fetch or render step exceeded its timeout."""

    retryable = True
