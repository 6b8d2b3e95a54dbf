"""
Tests for Output Channels - notification transports
"""

import pytest
import asyncio
import json
import tempfile
from pathlib import Path
from datetime import datetime, timezone
from unittest.mock import Mock, AsyncMock, patch

import aiohttp

from homeguard.domain.enums import IncidentKind, IncidentState, SensorKind
from homeguard.domain.models import Incident, NotificationMessage, SensorEvent
from homeguard.services.output_channels import (
    SimulatedChannel,
    FileOutputChannel,
    WebhookOutputChannel,
)


# =============================================================================
# Test Fixtures
# =============================================================================

def _incident(incident_id: str = "inc_test_001") -> Incident:
    now = datetime(2025, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
    return Incident(
        incident_id=incident_id,
        correlation_key="inc-fire-202501151030",
        kind=IncidentKind.FIRE,
        confidence=1.0,
        state=IncidentState.CONFIRMED,
        evidence=[SensorEvent(
            event_id="s1",
            device_id="smoke_kitchen",
            kind=SensorKind.SMOKE,
            value=95,
            timestamp=now,
        )],
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def sample_message():
    return NotificationMessage.for_incident(_incident())


@pytest.fixture
def temp_output_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


# =============================================================================
# NotificationMessage
# =============================================================================

class TestNotificationMessage:

    def test_for_incident(self, sample_message):
        assert sample_message.incident_id == "inc_test_001"
        assert sample_message.kind == IncidentKind.FIRE
        assert sample_message.title == "Fire detected"
        assert sample_message.evidence_ids == ["s1"]
        assert sample_message.correlation_key == "inc-fire-202501151030"

    def test_break_in_title(self):
        incident = _incident()
        incident.kind = IncidentKind.BREAK_IN
        assert NotificationMessage.for_incident(incident).title == "Break In detected"


# =============================================================================
# SimulatedChannel Tests
# =============================================================================

class TestSimulatedChannel:

    @pytest.mark.asyncio
    async def test_sms_preset_fails(self, sample_message):
        channel = SimulatedChannel.preset("sms")
        outcome = await channel.send(sample_message, timeout=5.0)

        assert outcome.success is False
        assert outcome.channel == "sms"
        assert outcome.detail == "SMS gateway timeout"
        assert channel.failure_count == 1
        assert channel.last_error == "SMS gateway timeout"

    @pytest.mark.asyncio
    async def test_push_preset_succeeds(self, sample_message):
        channel = SimulatedChannel.preset("push")
        outcome = await channel.send(sample_message, timeout=5.0)

        assert outcome.success is True
        assert outcome.detail == "Push sent successfully"
        assert channel.success_count == 1
        assert channel.sent_messages == [sample_message]

    @pytest.mark.asyncio
    async def test_email_preset_succeeds(self, sample_message):
        outcome = await SimulatedChannel.preset("email").send(sample_message, timeout=5.0)
        assert outcome.success is True
        assert outcome.elapsed_sec >= 0.04

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            SimulatedChannel.preset("pager")

    @pytest.mark.asyncio
    async def test_disabled_channel(self, sample_message):
        channel = SimulatedChannel("push", enabled=False)
        outcome = await channel.send(sample_message, timeout=5.0)

        assert outcome.success is False
        assert outcome.detail == "Channel disabled"
        assert channel.sent_messages == []

    def test_get_status(self):
        status = SimulatedChannel("push").get_status()
        assert status["name"] == "push"
        assert status["enabled"] is True
        assert status["success_count"] == 0
        assert status["last_send_time"] is None


# =============================================================================
# FileOutputChannel Tests
# =============================================================================

class TestFileOutputChannel:

    @pytest.mark.asyncio
    async def test_create_channel(self, temp_output_dir):
        channel = FileOutputChannel(name="test_outbox", output_dir=temp_output_dir, max_files=10)

        assert channel.name == "test_outbox"
        assert channel.enabled is True
        assert channel.success_count == 0
        assert Path(temp_output_dir).exists()

    @pytest.mark.asyncio
    async def test_send_creates_file(self, temp_output_dir, sample_message):
        channel = FileOutputChannel(output_dir=temp_output_dir)

        outcome = await channel.send(sample_message, timeout=5.0)

        assert outcome.success is True
        assert channel.success_count == 1

        files = list(Path(temp_output_dir).glob("notification_*.json"))
        assert len(files) == 1

        with open(files[0], 'r') as f:
            data = json.load(f)

        assert data["incident_id"] == "inc_test_001"
        assert data["kind"] == "fire"
        assert data["state"] == "confirmed"
        assert data["evidence_ids"] == ["s1"]

    @pytest.mark.asyncio
    async def test_file_rotation(self, temp_output_dir):
        channel = FileOutputChannel(output_dir=temp_output_dir, max_files=3)

        for i in range(5):
            message = NotificationMessage.for_incident(_incident(f"inc_{i:03d}"))
            await channel.send(message, timeout=5.0)

        files = list(Path(temp_output_dir).glob("notification_*.json"))
        assert len(files) == 3
        assert channel.get_status()["file_count"] == 3

    @pytest.mark.asyncio
    async def test_write_failure(self, temp_output_dir, sample_message):
        channel = FileOutputChannel(output_dir=temp_output_dir)

        with patch('builtins.open', side_effect=OSError("disk full")):
            outcome = await channel.send(sample_message, timeout=5.0)

        assert outcome.success is False
        assert "disk full" in outcome.detail
        assert channel.failure_count == 1


# =============================================================================
# WebhookOutputChannel Tests
# =============================================================================

class TestWebhookOutputChannel:

    @pytest.mark.asyncio
    async def test_send_success(self, sample_message):
        channel = WebhookOutputChannel(endpoint_url="https://hooks.example.com/notify", api_key="k123")

        mock_response = Mock()
        mock_response.status = 200
        mock_response.text = AsyncMock(return_value="OK")

        with patch('aiohttp.ClientSession.post') as mock_post:
            mock_post.return_value.__aenter__.return_value = mock_response

            outcome = await channel.send(sample_message, timeout=2.0)

        assert outcome.success is True
        assert outcome.detail == "HTTP 200"
        assert channel.success_count == 1

        kwargs = mock_post.call_args.kwargs
        assert kwargs["json"]["incident_id"] == "inc_test_001"
        assert kwargs["headers"]["Authorization"] == "Bearer k123"
        assert kwargs["headers"]["User-Agent"] == "HomeGuard-Core/1.0"

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self, sample_message):
        channel = WebhookOutputChannel(endpoint_url="https://hooks.example.com/notify")

        mock_response = Mock(status=204, text=AsyncMock(return_value=""))
        with patch('aiohttp.ClientSession.post') as mock_post:
            mock_post.return_value.__aenter__.return_value = mock_response
            outcome = await channel.send(sample_message, timeout=2.0)

        assert outcome.success is True
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_send_http_error(self, sample_message):
        channel = WebhookOutputChannel(endpoint_url="https://hooks.example.com/notify")

        mock_response = Mock()
        mock_response.status = 500
        mock_response.text = AsyncMock(return_value="Internal Server Error")

        with patch('aiohttp.ClientSession.post') as mock_post:
            mock_post.return_value.__aenter__.return_value = mock_response

            outcome = await channel.send(sample_message, timeout=2.0)

        assert outcome.success is False
        assert channel.failure_count == 1
        assert "HTTP 500" in channel.last_error
        assert mock_post.call_count == 1

    @pytest.mark.asyncio
    async def test_send_timeout(self, sample_message):
        channel = WebhookOutputChannel(endpoint_url="https://hooks.example.com/notify")

        with patch('aiohttp.ClientSession.post') as mock_post:
            mock_post.side_effect = asyncio.TimeoutError()

            outcome = await channel.send(sample_message, timeout=2.0)

        assert outcome.success is False
        assert outcome.detail == "Timeout after 2.0s"

    @pytest.mark.asyncio
    async def test_send_client_error(self, sample_message):
        channel = WebhookOutputChannel(endpoint_url="https://hooks.example.com/notify")

        with patch('aiohttp.ClientSession.post') as mock_post:
            mock_post.side_effect = aiohttp.ClientConnectionError("connection refused")

            outcome = await channel.send(sample_message, timeout=2.0)

        assert outcome.success is False
        assert outcome.detail.startswith("Webhook error:")

    @pytest.mark.asyncio
    async def test_retry_mechanism(self, sample_message):
        channel = WebhookOutputChannel(
            endpoint_url="https://hooks.example.com/notify",
            max_retries=3,
            retry_delay_sec=0,
        )

        mock_responses = [
            Mock(status=500, text=AsyncMock(return_value="Error 1")),
            Mock(status=500, text=AsyncMock(return_value="Error 2")),
            Mock(status=200, text=AsyncMock(return_value="OK")),
        ]

        with patch('aiohttp.ClientSession.post') as mock_post:
            mock_post.return_value.__aenter__.side_effect = mock_responses

            outcome = await channel.send(sample_message, timeout=2.0)

        assert outcome.success is True
        assert channel.success_count == 1
        assert mock_post.call_count == 3
