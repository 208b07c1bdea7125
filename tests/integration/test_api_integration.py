"""Integration tests for the ClawBar Gateway Agent API endpoints."""

from functools import partial
from typing import AsyncGenerator, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import create_app
from models import GatewayEventType, SessionState
from services import GatewayConnection, GatewayStateTracker


class TrackingSink(GatewayStateTracker):
    """Tracker that also lets tests wait for events."""

    def __init__(self, recording_sink) -> None:
        super().__init__()
        self.recording = recording_sink

    async def handle(self, event) -> None:
        await super().handle(event)
        await self.recording.handle(event)


ApiFixture = Tuple[AsyncClient, GatewayStateTracker, GatewayConnection]


class TestAPIIntegration:
    """Integration tests for API endpoints against a fake gateway."""

    @pytest_asyncio.fixture
    async def api(self, test_config, fake_connector, recording_sink) -> AsyncGenerator[ApiFixture, None]:
        """App with a running connection injected into its state, without the lifespan."""
        app = create_app(test_config)
        tracker = TrackingSink(recording_sink)
        connection = GatewayConnection(test_config, tracker, connector=fake_connector)
        app.state.config = test_config
        app.state.tracker = tracker
        app.state.connection = connection

        tracker.mark_connecting()
        await connection.start()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client, tracker, connection
        await connection.stop()

    @pytest.mark.asyncio
    async def test_health_degraded_until_connected(self, test_config) -> None:
        """Test health before the connection is up."""
        app = create_app(test_config)
        app.state.config = test_config
        app.state.tracker = GatewayStateTracker()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["gateway_connected"] is False
        assert data["gateway_status"] == "Disconnected"
        assert data["version"] == test_config.app_version

    @pytest.mark.asyncio
    async def test_health_when_connected(self, api: ApiFixture, recording_sink) -> None:
        """Test health once the gateway session is authenticated."""
        client, _, _ = api
        await recording_sink.wait_for(GatewayEventType.CONNECTED)

        response = await client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Correlation-ID" in response.headers

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, api: ApiFixture) -> None:
        """Test that a caller's correlation id is returned."""
        client, _, _ = api

        response = await client.get("/health/", headers={"X-Correlation-ID": "req-42"})

        assert response.headers["X-Correlation-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_detailed_health(self, api: ApiFixture, recording_sink) -> None:
        """Test the detailed health payload."""
        client, _, _ = api
        await recording_sink.wait_for(GatewayEventType.CONNECTED)

        data = (await client.get("/health/detailed")).json()

        assert data["connection"]["state"] == "authenticated"
        assert data["connection"]["url"] == "ws://localhost:18789/ws"
        assert data["metrics"]["status"] == "connected"

    @pytest.mark.asyncio
    async def test_sessions_and_usage(self, api: ApiFixture, recording_sink) -> None:
        """Test the polled data endpoints."""
        client, _, _ = api
        await recording_sink.wait_for(GatewayEventType.SESSIONS_UPDATE)
        await recording_sink.wait_for(GatewayEventType.TOKEN_USAGE_UPDATE)

        sessions = (await client.get("/gateway/sessions")).json()
        usage = (await client.get("/gateway/usage")).json()

        assert [s["session_name"] for s in sessions["sessions"]] == ["main"]
        assert sessions["sessions"][0]["percent_used"] == 50.0
        assert sessions["highest_percent_used"] == 50.0
        assert usage["available"] is True
        assert usage["daily"][0]["total_tokens"] == 7300

    @pytest.mark.asyncio
    async def test_usage_before_first_poll(self, test_config) -> None:
        """Test the usage endpoint with no data yet."""
        app = create_app(test_config)
        app.state.tracker = GatewayStateTracker()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            data = (await client.get("/gateway/usage")).json()

        assert data == {"available": False, "daily": []}

    @pytest.mark.asyncio
    async def test_status(self, api: ApiFixture, recording_sink) -> None:
        """Test the status endpoint."""
        client, _, _ = api
        await recording_sink.wait_for(GatewayEventType.CONNECTED)

        data = (await client.get("/gateway/status")).json()

        assert data["status_text"] == "Connected"
        assert data["connection"]["running"] is True

    @pytest.mark.asyncio
    async def test_config_update_reconnects(self, api: ApiFixture, recording_sink, fake_connector) -> None:
        """Test changing the gateway port through the API."""
        client, tracker, connection = api
        await recording_sink.wait_for(GatewayEventType.CONNECTED)

        response = await client.put("/gateway/config", json={"port": 18800, "gatewayToken": "secret"})

        assert response.status_code == 200
        body = response.json()
        assert body["changed"] is True
        assert body["port"] == 18800
        assert body["has_token"] is True
        assert tracker.status_text in ("Connecting...", "Connected")

        await recording_sink.wait_for(GatewayEventType.CONNECTED, count=2)
        assert fake_connector.calls[-1][0] == "ws://localhost:18800/ws"
        assert fake_connector.sockets[-1].sent[0]["params"]["auth"] == {"token": "secret"}

    @pytest.mark.asyncio
    async def test_config_update_rejects_invalid_port(self, api: ApiFixture) -> None:
        """Test request validation of the config body."""
        client, _, connection = api

        response = await client.put("/gateway/config", json={"port": 0})

        assert response.status_code == 422
        assert connection.connection_config.port == 18789

    @pytest.mark.asyncio
    async def test_identity_reset(self, api: ApiFixture, recording_sink) -> None:
        """Test resetting the device identity through the API."""
        client, _, connection = api
        await recording_sink.wait_for(GatewayEventType.CONNECTED)
        old_device = connection.device_id

        response = await client.post("/gateway/identity/reset")

        assert response.json()["reset"] is True
        await recording_sink.wait_for(GatewayEventType.CONNECTED, count=2)
        assert connection.device_id != old_device

    @pytest.mark.asyncio
    async def test_prometheus_metrics(self, api: ApiFixture, recording_sink) -> None:
        """Test the Prometheus endpoint."""
        client, _, _ = api
        await recording_sink.wait_for(GatewayEventType.CONNECTED)

        response = await client.get("/metrics/")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "gateway_connected 1.0" in response.text
        assert "gateway_events_total" in response.text

    @pytest.mark.asyncio
    async def test_json_metrics(self, api: ApiFixture, recording_sink) -> None:
        """Test the JSON metrics endpoint."""
        client, _, _ = api
        await recording_sink.wait_for(GatewayEventType.SESSIONS_UPDATE)

        data = (await client.get("/metrics/json")).json()

        assert data["status"] == "connected"
        assert data["session_count"] == 1
        assert data["poll_ticks"] >= 1


class TestLifespan:
    """Integration tests for the application lifespan."""

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_stops_connection(self, test_config, fake_connector, wait_until) -> None:
        """Test that the lifespan owns the connection."""
        factory = partial(GatewayConnection, connector=fake_connector)
        app = create_app(test_config, connection_factory=factory)

        async with app.router.lifespan_context(app):
            connection = app.state.connection
            assert connection.is_running
            await wait_until(lambda: connection.state == SessionState.AUTHENTICATED)
            assert app.state.tracker.status_text == "Connected"

        assert not connection.is_running
        assert connection.state == SessionState.IDLE
        assert fake_connector.sockets[0].closed
