"""
Upstream events client for Events Service.
"""

from typing import List, Optional

import httpx
from pydantic import ValidationError

from shared.logging import get_logger
from shared.errors import DecodeError, FetchError
from shared.retry import RetryConfig, RetryError, retry_on_exception
from ..models import Record, RecordList


class UpstreamFetcher:
    """Fetches the upstream JSON array of records from a fixed endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("events.ingestion.fetcher")

        self.retry_config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=1.0,
            max_delay=30.0,
            exponential_base=2.0,
            jitter=True
        )

    async def fetch(self) -> List[Record]:
        """Fetch and decode the upstream records.

        Raises FetchError once transport failures or non-success statuses
        exhaust the retry budget, and DecodeError on a malformed body.
        """
        request = retry_on_exception((FetchError,), config=self.retry_config)(self._request)
        try:
            body = await request()
        except RetryError as e:
            raise FetchError(
                str(e.last_exception),
                details={"url": self.url, "attempts": e.attempts}
            ) from e.last_exception

        return self.decode(body)

    async def _request(self) -> bytes:
        self.logger.info("api_fetch_flight", url=self.url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            self.logger.error("api_fetch_error", url=self.url, error=str(e))
            raise FetchError(f"request failed: {e}", details={"url": self.url}) from e

        self.logger.info(
            "api_fetch_done",
            url=self.url,
            status=response.status_code,
            content_length=len(response.content)
        )

        if not response.is_success:
            raise FetchError(
                f"unexpected status {response.status_code}",
                details={"url": self.url, "status_code": response.status_code}
            )

        return response.content

    def decode(self, body: bytes) -> List[Record]:
        """Decode a response body into records."""
        try:
            return RecordList.validate_json(body)
        except ValidationError as e:
            self.logger.error("api_decode_error", url=self.url, error=str(e))
            raise DecodeError(
                "upstream body is not an array of records",
                details={"url": self.url, "errors": e.error_count()}
            ) from e
