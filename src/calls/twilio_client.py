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

"""
Twilio Voice Client

Places outbound reminder calls through the Twilio REST API. The call reads the
reminder with text-to-speech (or plays an audio file) and then hangs up.

Failures are returned as CallResult(success=False) with an error string that
keeps the transport's wording ("timeout", "Network Error", "rate limit"), which
is what the executor's retry classification keys on.
"""

import logging
import re
from html import escape
from typing import Optional

import httpx

from .types import CallOptions, CallResult

logger = logging.getLogger("dialtone.calls.twilio")

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"

# Seconds Twilio lets the phone ring before giving up
RING_TIMEOUT_SECONDS = 30

SIGN_OFF = "This was your scheduled reminder. Goodbye!"

E164_RE = re.compile(r"^\+\d{1,3}\d{6,14}$")


def validate_phone_number(phone_number: str) -> bool:
    """Check that a number is in E.164 format (+ and 7-17 digits)."""
    return bool(E164_RE.match(phone_number))


def format_phone_number(phone_number: str) -> str:
    """
    Normalize a phone number to E.164.

    10-digit numbers and 11-digit numbers starting with 1 are assumed to be US.
    """
    if phone_number.startswith("+"):
        return phone_number

    digits = re.sub(r"\D", "", phone_number)
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def build_tts_twiml(message: str, options: CallOptions) -> str:
    """TwiML that speaks the reminder, pauses, then signs off."""
    text = escape(message, quote=True)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<Response>"
        f'<Say voice="{options.voice}" language="{options.language}">{text}</Say>'
        '<Pause length="1"/>'
        f'<Say voice="{options.voice}" language="{options.language}">{SIGN_OFF}</Say>'
        "</Response>"
    )


def build_audio_twiml(audio_url: str, options: CallOptions) -> str:
    """TwiML that plays an audio file, then signs off."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<Response>"
        f'<Play loop="{options.loop}">{escape(audio_url, quote=True)}</Play>'
        '<Pause length="1"/>'
        f'<Say voice="{options.voice}">{SIGN_OFF}</Say>'
        "</Response>"
    )


class TwilioVoiceClient:
    """Outbound voice calls via the Twilio Calls API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        status_callback_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self.status_callback_url = status_callback_url

        self._client = httpx.AsyncClient(
            base_url=f"{TWILIO_API_URL}/Accounts",
            auth=(account_sid, auth_token),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client"""
        await self._client.aclose()

    async def invoke(self, message: str, target: str, options: CallOptions) -> CallResult:
        """Place a reminder call to `target`."""
        if options.audio_url:
            twiml = build_audio_twiml(options.audio_url, options)
            logger.info(f"Placing audio call to {target} with {options.audio_url}")
        else:
            twiml = build_tts_twiml(message, options)
            logger.info(f"Placing TTS call to {target}: \"{message[:80]}\"")

        form = {
            "To": format_phone_number(target),
            "From": self.from_number,
            "Twiml": twiml,
            "Timeout": str(RING_TIMEOUT_SECONDS),
        }
        if self.status_callback_url:
            form["StatusCallback"] = self.status_callback_url

        try:
            response = await self._client.post(f"/{self.account_sid}/Calls.json", data=form)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Twilio call request timed out: {e}")
            return CallResult(success=False, error=f"Request timeout (ETIMEDOUT): {e}")
        except httpx.HTTPStatusError as e:
            return CallResult(success=False, error=self._describe_status_error(e.response))
        except httpx.TransportError as e:
            logger.error(f"Twilio call request failed: {e}")
            return CallResult(success=False, error=f"Network Error: {type(e).__name__}: {e}")
        except httpx.HTTPError as e:
            logger.error(f"Twilio call request failed: {e}")
            return CallResult(success=False, error=str(e))

        call_sid = data.get("sid")
        logger.info(f"Call initiated. Call SID: {call_sid}")
        return CallResult(success=True, correlation_id=call_sid, status=data.get("status"))

    @staticmethod
    def _describe_status_error(response: httpx.Response) -> str:
        try:
            detail = response.json().get("message", "")
        except ValueError:
            detail = response.text[:200]

        if response.status_code == 429:
            error = f"Twilio rate limit exceeded (HTTP 429): {detail}"
        else:
            error = f"Twilio API error (HTTP {response.status_code}): {detail}"
        logger.error(error)
        return error

    async def test_connection(self) -> bool:
        """Fetch the account record to confirm the credentials work."""
        try:
            response = await self._client.get(f"/{self.account_sid}.json")
            response.raise_for_status()
            name = response.json().get("friendly_name", self.account_sid)
            logger.info(f"Twilio connection test successful. Account: {name}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"Twilio connection test failed: {e}")
            return False
