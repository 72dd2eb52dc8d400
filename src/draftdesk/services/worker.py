"""
Extraction Worker Client

Hands extraction jobs to the external worker. The worker acknowledges
the request and later reports the outcome through the callback
endpoint; nothing here waits for the extraction itself.

Design:
    - Async HTTP calls via httpx (non-blocking).
    - Any connection, timeout or HTTP status failure becomes
      ``WorkerDispatchFailed``; the caller decides whether to log it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx

from draftdesk.core.config import settings
from draftdesk.core.errors import WorkerDispatchFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchRequest:
    """
    Payload sent to the worker.

    Attributes:
        job_id: Extraction job the callback must reference.
        source_locator: Storage path or URL to extract from.
        job_kind: ``file_parse`` or ``url_parse``.
    """

    job_id: uuid.UUID
    source_locator: str
    job_kind: str

    def to_json(self) -> dict[str, str]:
        return {
            "job_id": str(self.job_id),
            "source_locator": self.source_locator,
            "job_kind": self.job_kind,
        }


class ExtractionWorker(Protocol):
    async def dispatch(self, request: DispatchRequest) -> None: ...


class HttpExtractionWorker:
    """
    Worker client posting jobs as JSON to ``WORKER_URL``.

    Usage::

        worker = HttpExtractionWorker()
        await worker.dispatch(DispatchRequest(job.id, ref.source_locator, job.job_kind))
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the worker client.

        Args:
            url: Worker job endpoint (default from config).
            timeout: Request timeout in seconds (default from config).
            transport: Optional httpx transport, used by tests.
        """
        self._url = url or settings.WORKER_URL
        self._timeout = timeout or settings.WORKER_TIMEOUT
        self._transport = transport

    async def dispatch(self, request: DispatchRequest) -> None:
        """
        Submit one job.

        Raises:
            WorkerDispatchFailed: Worker unreachable, timed out or
                answered with an error status.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._url, json=request.to_json())
                response.raise_for_status()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise WorkerDispatchFailed(
                f"Extraction worker unreachable ({type(e).__name__})"
            ) from e
        except httpx.HTTPStatusError as e:
            raise WorkerDispatchFailed(
                f"Extraction worker rejected job ({e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            raise WorkerDispatchFailed(f"Extraction worker error: {e}") from e

        logger.info("Dispatched job %s (%s)", request.job_id, request.job_kind)
