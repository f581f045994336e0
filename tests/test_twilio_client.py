# dialtone - Discord Voice Reminder Bot
# Copyright (c) 2025-2026 Slash Daemon slashdaemon@protonmail.com
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, version 3 of the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#
# Commercial licensing: [slashdaemon@protonmail.com]

"""Tests for the Twilio voice client."""

import sys
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from calls.twilio_client import (
    TwilioVoiceClient,
    build_audio_twiml,
    build_tts_twiml,
    format_phone_number,
    validate_phone_number,
)
from calls.types import CallOptions
from reminders.executor import is_retryable


def make_client(handler) -> TwilioVoiceClient:
    return TwilioVoiceClient(
        "AC123",
        "secret",
        "+15550001111",
        transport=httpx.MockTransport(handler),
    )


class TestPhoneNumbers:
    """Test E.164 validation and formatting."""

    def test_valid_numbers(self):
        assert validate_phone_number("+15551234567") is True
        assert validate_phone_number("+447911123456") is True

    def test_invalid_numbers(self):
        assert validate_phone_number("5551234567") is False
        assert validate_phone_number("+1555") is False
        assert validate_phone_number("+1 555 123 4567") is False

    def test_format_us_ten_digit(self):
        assert format_phone_number("(555) 123-4567") == "+15551234567"

    def test_format_with_country_code(self):
        assert format_phone_number("1-555-123-4567") == "+15551234567"

    def test_format_keeps_e164(self):
        assert format_phone_number("+447911123456") == "+447911123456"


class TestTwiml:
    """Test TwiML generation."""

    def test_tts_escapes_message(self):
        twiml = build_tts_twiml('Buy milk & "eggs" <now>', CallOptions(voice="alice"))
        assert "Buy milk &amp; &quot;eggs&quot; &lt;now&gt;" in twiml
        assert '<Say voice="alice" language="en-US">' in twiml
        assert "Goodbye" in twiml

    def test_audio_plays_url(self):
        twiml = build_audio_twiml("https://example.com/a.mp3?x=1&y=2", CallOptions())
        assert '<Play loop="2">https://example.com/a.mp3?x=1&amp;y=2</Play>' in twiml


class TestInvoke:
    """Test placing calls against a mocked Twilio API."""

    @pytest.mark.asyncio
    async def test_successful_call(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization", "")
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "CA123", "status": "queued"})

        client = make_client(handler)
        result = await client.invoke("Attend meeting!", "5551234567", CallOptions())
        await client.close()

        assert result.success is True
        assert result.correlation_id == "CA123"
        assert result.status == "queued"
        assert seen["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Calls.json"
        assert seen["auth"].startswith("Basic ")
        assert seen["form"]["To"] == ["+15551234567"]
        assert seen["form"]["From"] == ["+15550001111"]
        assert "Attend meeting!" in seen["form"]["Twiml"][0]
        assert "StatusCallback" not in seen["form"]

    @pytest.mark.asyncio
    async def test_status_callback_sent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "CA1", "status": "queued"})

        client = TwilioVoiceClient(
            "AC123",
            "secret",
            "+15550001111",
            status_callback_url="https://example.com/status",
            transport=httpx.MockTransport(handler),
        )
        await client.invoke("hi", "+15551234567", CallOptions())
        await client.close()

        assert seen["form"]["StatusCallback"] == ["https://example.com/status"]

    @pytest.mark.asyncio
    async def test_audio_call_uses_play(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "CA1"})

        client = make_client(handler)
        await client.invoke("ignored", "+15551234567", CallOptions(audio_url="https://example.com/a.mp3"))
        await client.close()

        assert "<Play" in seen["form"]["Twiml"][0]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"message": "Too Many Requests"})

        client = make_client(handler)
        result = await client.invoke("hi", "+15551234567", CallOptions())
        await client.close()

        assert result.success is False
        assert "rate limit" in result.error
        assert is_retryable(result.error) is True

    @pytest.mark.asyncio
    async def test_bad_request_is_terminal(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Invalid 'To' Phone Number"})

        client = make_client(handler)
        result = await client.invoke("hi", "+15551234567", CallOptions())
        await client.close()

        assert result.success is False
        assert result.error == "Twilio API error (HTTP 400): Invalid 'To' Phone Number"
        assert is_retryable(result.error) is False

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client = make_client(handler)
        result = await client.invoke("hi", "+15551234567", CallOptions())
        await client.close()

        assert result.success is False
        assert "ETIMEDOUT" in result.error
        assert is_retryable(result.error) is True

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        result = await client.invoke("hi", "+15551234567", CallOptions())
        await client.close()

        assert result.error.startswith("Network Error")
        assert is_retryable(result.error) is True


class TestConnection:
    """Test the credential check."""

    @pytest.mark.asyncio
    async def test_connection_ok(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url).endswith("/Accounts/AC123.json")
            return httpx.Response(200, json={"friendly_name": "My Account"})

        client = make_client(handler)
        assert await client.test_connection() is True
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_unauthorized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Authenticate"})

        client = make_client(handler)
        assert await client.test_connection() is False
        await client.close()
