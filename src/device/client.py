"""HTTP client for submitting scans to the server."""

import logging
from dataclasses import dataclass

import httpx

from src.device.config import DeviceSettings, get_device_settings

logger = logging.getLogger(__name__)

SCANS_PATH = "/api/v1/scans"


class SubmissionError(Exception):
    """The server could not be reached or did not accept the scan.

    Always retryable: the entry stays queued.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SubmissionResult:
    """Server acceptance of a scan: newly created or already known."""

    scan_id: int
    created: bool


class IngestionClient:
    """Submits scans to POST /api/v1/scans with the user's bearer token."""

    def __init__(
        self,
        settings: DeviceSettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_device_settings()
        self._client = httpx.Client(
            base_url=self.settings.api_base_url,
            timeout=self.settings.submit_timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> "IngestionClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def is_reachable(self) -> bool:
        """Check if the server answers its health endpoint."""
        try:
            response = self._client.get("/health")
        except httpx.HTTPError as e:
            logger.info(f"Server not reachable: {e}")
            return False
        return response.is_success

    def submit(
        self,
        url: str,
        access_token: str,
        html_snapshot: str | None = None,
    ) -> SubmissionResult:
        """Submit a scan.

        Raises:
            SubmissionError: on any network failure or non-2xx answer
        """
        body = {"url": url}
        if html_snapshot:
            body["html_snapshot"] = html_snapshot

        try:
            response = self._client.post(
                SCANS_PATH,
                json=body,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise SubmissionError(f"Could not reach server: {e}") from e

        if not response.is_success:
            raise SubmissionError(
                f"Server answered HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            result = SubmissionResult(scan_id=data["scan"]["id"], created=data["created"])
        except (ValueError, KeyError, TypeError) as e:
            raise SubmissionError(f"Unexpected response from server: {e}") from e

        logger.info(
            f"Server {'accepted' if result.created else 'already had'} scan {result.scan_id} for {url}"
        )
        return result
