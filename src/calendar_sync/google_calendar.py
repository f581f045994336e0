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
Google Calendar API Client

Read-only access to upcoming events through the Calendar v3 REST API.
Authenticates with an API key (public calendars) or an OAuth bearer token.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import httpx
import pytz

logger = logging.getLogger("dialtone.calendar_sync.google_calendar")

CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"


@dataclass
class CalendarEvent:
    """A timed calendar event"""

    id: str
    summary: str
    start: datetime
    end: Optional[datetime] = None
    description: str = ""
    location: str = ""
    attendees: list[str] = field(default_factory=list)
    calendar_id: str = ""


def _parse_datetime(value: str) -> datetime:
    # RFC 3339 from the API; "Z" suffix is not accepted by older fromisoformat
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def event_from_item(item: dict, calendar_id: str) -> Optional[CalendarEvent]:
    """Convert an API event resource. All-day events (no dateTime) are skipped."""
    start = item.get("start") or {}
    if not start.get("dateTime"):
        return None

    end = (item.get("end") or {}).get("dateTime")
    return CalendarEvent(
        id=item.get("id", ""),
        summary=item.get("summary") or "No Title",
        start=_parse_datetime(start["dateTime"]),
        end=_parse_datetime(end) if end else None,
        description=item.get("description") or "",
        location=item.get("location") or "",
        attendees=[a.get("email", "") for a in item.get("attendees") or [] if a.get("email")],
        calendar_id=(item.get("organizer") or {}).get("email") or calendar_id,
    )


class GoogleCalendarClient:
    """Client for the Google Calendar v3 events endpoint"""

    def __init__(
        self,
        calendar_id: str = "primary",
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.calendar_id = calendar_id
        self.api_key = api_key

        if not api_key and not access_token:
            logger.warning(
                "No Google Calendar credentials set - event fetches will fail authentication"
            )

        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self._client = httpx.AsyncClient(
            base_url=CALENDAR_API_URL,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client"""
        await self._client.aclose()

    def _params(self, **params) -> dict:
        if self.api_key:
            params["key"] = self.api_key
        return params

    async def list_upcoming(
        self,
        hours: int = 24,
        max_results: int = 50,
        now: Optional[datetime] = None,
    ) -> list[CalendarEvent]:
        """
        Fetch timed events starting within the next `hours`.

        Args:
            hours: Lookahead window
            max_results: Maximum events to request
            now: Window start (defaults to the current time)

        Returns:
            Events ordered by start time

        Raises:
            httpx.HTTPError: If the request fails
        """
        now = now or datetime.now(pytz.UTC)
        params = self._params(
            timeMin=now.isoformat(),
            timeMax=(now + timedelta(hours=hours)).isoformat(),
            singleEvents="true",
            orderBy="startTime",
            maxResults=str(max_results),
        )

        response = await self._client.get(f"/calendars/{self.calendar_id}/events", params=params)
        response.raise_for_status()
        data = response.json()

        events = []
        for item in data.get("items", []):
            event = event_from_item(item, self.calendar_id)
            if event is not None:
                events.append(event)
        return events

    async def test_connection(self) -> bool:
        """Fetch the calendar resource to confirm access."""
        try:
            response = await self._client.get(
                f"/calendars/{self.calendar_id}", params=self._params()
            )
            response.raise_for_status()
            name = response.json().get("summary", self.calendar_id)
            logger.info(f"Google Calendar connection successful. Calendar: {name}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"Google Calendar connection failed: {e}")
            return False
