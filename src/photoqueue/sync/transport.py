"""Upload transport contract and async HTTP implementation."""

import json
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from photoqueue import __version__
from photoqueue.sync.artifact import QueuedArtifact


@dataclass
class UploadResult:
    """Result of a single delivery attempt."""

    success: bool
    remote_id: str | None = None
    error: str | None = None
    status_code: int | None = None


class UploadTransport(Protocol):
    """Protocol for delivering one artifact to the remote service.

    send() makes exactly one attempt; retrying is the queue's job. A resend
    of the same artifact id must not create a second server-side record,
    since the queue delivers at least once.
    """

    async def send(self, artifact: QueuedArtifact) -> UploadResult:
        """Deliver one artifact and report the outcome."""
        ...


class HttpUploadTransport:
    """Async HTTP transport posting artifacts as multipart uploads.

    Uses httpx.AsyncClient for connection pooling. Every request carries an
    Idempotency-Key header equal to the artifact id, and a 409 Conflict
    (server already holds that id) counts as delivered.
    """

    UPLOAD_PATH = "/api/photos/"
    HEALTH_PATH = "/health/ready"

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            server_url: Base URL of the upload server (e.g., http://localhost:8000)
            timeout: Request timeout in seconds
            client: Optional preconfigured client; the caller keeps ownership
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": f"photoqueue-agent/{__version__}",
            },
        )

    async def send(self, artifact: QueuedArtifact) -> UploadResult:
        """Upload one artifact.

        Args:
            artifact: Queued artifact to deliver

        Returns:
            UploadResult with success status and remote ID or error
        """
        payload = artifact.payload
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        files = {"file": (artifact.id, payload, "application/octet-stream")}
        data = {
            "metadata": json.dumps(
                {
                    "id": artifact.id,
                    "enqueued_at": artifact.enqueued_at.isoformat(),
                    "retry_count": artifact.retry_count,
                    "attributes": artifact.attributes,
                }
            )
        }

        try:
            response = await self._client.post(
                f"{self.server_url}{self.UPLOAD_PATH}",
                files=files,
                data=data,
                headers={"Idempotency-Key": artifact.id},
            )
        except httpx.ConnectError as e:
            return UploadResult(success=False, error=f"Connection error: {e}")
        except httpx.TimeoutException as e:
            return UploadResult(success=False, error=f"Timeout: {e}")
        except httpx.HTTPError as e:
            return UploadResult(success=False, error=f"HTTP error: {e}")

        if 200 <= response.status_code < 300:
            try:
                result = response.json() if response.content else None
            except json.JSONDecodeError:
                result = None
            remote_id = result.get("id") if isinstance(result, dict) else None
            return UploadResult(
                success=True,
                remote_id=str(remote_id) if remote_id is not None else None,
                status_code=response.status_code,
            )

        # Already stored by an earlier attempt whose response was lost
        if response.status_code == 409:
            return UploadResult(success=True, status_code=response.status_code)

        if 400 <= response.status_code < 500:
            return UploadResult(
                success=False,
                error=f"Client error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        return UploadResult(
            success=False,
            error=f"Server error: {response.status_code}",
            status_code=response.status_code,
        )

    async def check_server(self) -> bool:
        """Check if the server is available.

        Returns:
            True if server responds to health check, False otherwise
        """
        try:
            response = await self._client.get(
                f"{self.server_url}{self.HEALTH_PATH}",
                timeout=httpx.Timeout(5.0),
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpUploadTransport":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
