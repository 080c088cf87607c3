"""Tests for the HTTP upload transport."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from photoqueue.sync import HttpUploadTransport, QueuedArtifact


def make_artifact(payload=b"\xff\xd8jpeg", retry_count=0) -> QueuedArtifact:
    return QueuedArtifact(
        id="7d6f0f8e-1111-4c2a-9d0e-5b9c2d3e4f50",
        payload=payload,
        enqueued_at=datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc),
        attributes={"user_id": "u1", "store_id": "s9"},
        retry_count=retry_count,
    )


def make_transport(handler) -> HttpUploadTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpUploadTransport("http://photos.test/", client=client)


class TestSend:
    """Test status code handling for uploads."""

    @pytest.mark.asyncio
    async def test_created_returns_remote_id(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": 42, "status": "stored"})

        transport = make_transport(handler)
        result = await transport.send(make_artifact())

        assert result.success is True
        assert result.remote_id == "42"
        assert result.status_code == 201
        assert requests[0].method == "POST"
        assert str(requests[0].url) == "http://photos.test/api/photos/"

    @pytest.mark.asyncio
    async def test_request_carries_idempotency_key_and_metadata(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={})

        artifact = make_artifact(retry_count=2)
        transport = make_transport(handler)
        await transport.send(artifact)

        request = requests[0]
        assert request.headers["Idempotency-Key"] == artifact.id
        assert request.headers["Content-Type"].startswith("multipart/form-data")

        body = request.content
        assert b"\xff\xd8jpeg" in body
        metadata_start = body.index(b'name="metadata"')
        metadata_part = body[metadata_start:].split(b"\r\n\r\n", 1)[1].split(b"\r\n--", 1)[0]
        metadata = json.loads(metadata_part)
        assert metadata == {
            "id": artifact.id,
            "enqueued_at": "2026-01-24T12:00:00+00:00",
            "retry_count": 2,
            "attributes": {"user_id": "u1", "store_id": "s9"},
        }

    @pytest.mark.asyncio
    async def test_text_payload_sent_as_utf8(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(201, json={"id": "r1"})

        transport = make_transport(handler)
        result = await transport.send(make_artifact(payload="data:image/jpeg;base64,AAAA"))

        assert result.success is True
        assert b"data:image/jpeg;base64,AAAA" in bodies[0]

    @pytest.mark.asyncio
    async def test_success_without_json_body(self):
        transport = make_transport(lambda request: httpx.Response(200, text="ok"))

        result = await transport.send(make_artifact())

        assert result.success is True
        assert result.remote_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [202, 204])
    async def test_any_2xx_counts_as_delivered(self, status_code):
        """Accepted and No Content responses mean the server has the artifact."""
        transport = make_transport(lambda request: httpx.Response(status_code))

        result = await transport.send(make_artifact())

        assert result.success is True
        assert result.remote_id is None
        assert result.status_code == status_code

    @pytest.mark.asyncio
    async def test_conflict_counts_as_delivered(self):
        """The server already holds this id from an earlier attempt."""
        transport = make_transport(lambda request: httpx.Response(409))

        result = await transport.send(make_artifact())

        assert result.success is True
        assert result.status_code == 409

    @pytest.mark.asyncio
    async def test_server_error(self):
        transport = make_transport(lambda request: httpx.Response(503))

        result = await transport.send(make_artifact())

        assert result.success is False
        assert result.error == "Server error: 503"
        assert result.status_code == 503

    @pytest.mark.asyncio
    async def test_client_error(self):
        transport = make_transport(lambda request: httpx.Response(400, text="bad metadata"))

        result = await transport.send(make_artifact())

        assert result.success is False
        assert result.error == "Client error: 400 - bad metadata"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)
        result = await transport.send(make_artifact())

        assert result.success is False
        assert result.error.startswith("Connection error:")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        transport = make_transport(handler)
        result = await transport.send(make_artifact())

        assert result.success is False
        assert result.error.startswith("Timeout:")


class TestHealthAndLifecycle:
    """Test health checks and client ownership."""

    @pytest.mark.asyncio
    async def test_check_server(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/health/ready"
            return httpx.Response(200)

        transport = make_transport(handler)
        assert await transport.check_server() is True

    @pytest.mark.asyncio
    async def test_check_server_unhealthy(self):
        transport = make_transport(lambda request: httpx.Response(503))
        assert await transport.check_server() is False

    @pytest.mark.asyncio
    async def test_check_server_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        transport = make_transport(handler)
        assert await transport.check_server() is False

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport = HttpUploadTransport("http://photos.test", client=client)

        await transport.close()

        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_closes_own_client(self):
        async with HttpUploadTransport("http://photos.test") as transport:
            client = transport._client
        assert client.is_closed is True
