"""
Google Calendar sync for the studio's booking calendar.

Token refresh and the OAuth consent flow belong to the admin front end; this
adapter receives a ready access token from configuration.
"""

from typing import Optional

import httpx

from studio_booking.core.logging import get_logger
from studio_booking.services.formatting import format_huf
from studio_booking.services.interfaces.calendar import CalendarAction, CalendarEvent, CalendarResult, CalendarSync

logger = get_logger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
DEFAULT_START = "09:00"
DEFAULT_END = "17:00"

_STATUS_LABELS = {
    "pending": "Függőben",
    "confirmed": "Visszaigazolva",
    "paid": "Fizetve",
    "completed": "Teljesítve",
    "cancelled": "Lemondva",
    "no_show": "Nem jelent meg",
}


def _event_body(event: CalendarEvent, timezone: str) -> dict:
    title = f"{event.client_name} - {event.time_slot_name}" if event.time_slot_name else event.client_name
    description = [
        f"Státusz: {_STATUS_LABELS.get(event.status, event.status)}",
        f"Összeg: {format_huf(event.total_price)}",
        f"Foglalás ID: {event.booking_id}",
    ]
    if event.user_notes:
        description.append(f"Ügyfél megjegyzés: {event.user_notes}")
    if event.admin_notes:
        description.append(f"Admin megjegyzés: {event.admin_notes}")

    start = event.start_time or DEFAULT_START
    end = event.end_time or DEFAULT_END
    return {
        "summary": title,
        "description": "\n".join(description),
        "start": {"dateTime": f"{event.booking_date}T{start}:00", "timeZone": timezone},
        "end": {"dateTime": f"{event.booking_date}T{end}:00", "timeZone": timezone},
    }


class GoogleCalendarSync(CalendarSync):

    def __init__(
        self,
        calendar_id: str,
        access_token: str,
        timezone: str = "Europe/Budapest",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.calendar_id = calendar_id
        self.access_token = access_token
        self.timezone = timezone
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}",
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.access_token}"},
            transport=self._transport,
        )

    async def sync(self, event: CalendarEvent, action: CalendarAction) -> CalendarResult:
        if action == "delete" and not event.event_id:
            return CalendarResult(success=True, skipped=True)

        body = _event_body(event, self.timezone)
        try:
            async with self._client() as client:
                if action == "delete":
                    response = await client.delete(f"/events/{event.event_id}")
                    # Already gone on the calendar side counts as deleted
                    if response.status_code not in (404, 410):
                        response.raise_for_status()
                    return CalendarResult(success=True)

                if action == "update" and event.event_id:
                    response = await client.patch(f"/events/{event.event_id}", json=body)
                else:
                    response = await client.post("/events", json=body)
                response.raise_for_status()
                event_id = response.json().get("id", event.event_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("calendar_sync_failed", booking_id=event.booking_id, action=action, error=str(e))
            return CalendarResult(success=False, error=str(e))

        logger.info("calendar_synced", booking_id=event.booking_id, action=action, event_id=event_id)
        return CalendarResult(success=True, event_id=event_id)
