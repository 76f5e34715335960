"""
Studio calendar synchronisation interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, Optional

CalendarAction = Literal["create", "update", "delete"]


@dataclass(frozen=True)
class CalendarEvent:
    """What the calendar needs to know about a booking."""

    booking_id: str
    client_name: str
    booking_date: str  # YYYY-MM-DD
    start_time: str
    end_time: str
    status: str
    total_price: int
    event_id: Optional[str] = None
    time_slot_name: Optional[str] = None
    user_notes: Optional[str] = None
    admin_notes: Optional[str] = None


@dataclass(frozen=True)
class CalendarResult:
    success: bool
    skipped: bool = False
    event_id: Optional[str] = None
    error: Optional[str] = None


class CalendarSync(ABC):
    """
    Interface for calendar back ends.

    Implementations:
    - GoogleCalendarSync: Google Calendar REST API
    - DisabledCalendarSync: calendar not connected; every call is skipped

    Calendar failures never block a booking transition.
    """

    @abstractmethod
    async def sync(self, event: CalendarEvent, action: CalendarAction) -> CalendarResult:
        """
        Create, update or delete the calendar entry for a booking.

        `update` without an existing event id creates one; `delete` without
        one is skipped. Returns the event id after create/update.
        """
