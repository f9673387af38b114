from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time
from typing import List, Optional

from astra.errors import AuthorizationGap, RemoteFailure, ValidationError
from astra.models import Event
from storage.remote_store import Filter, Order, RemoteStore, owner_filter

logger = logging.getLogger(__name__)

TABLE = "events"


def month_bounds(month: date) -> tuple[datetime, datetime]:
    """First and last instant of the month containing `month`."""
    last_day = calendar.monthrange(month.year, month.month)[1]
    start = datetime(month.year, month.month, 1)
    end = datetime.combine(date(month.year, month.month, last_day), time.max)
    return start, end


class EventRepository:
    def __init__(self, store: RemoteStore):
        self.store = store

    async def list_month(self, user: Optional[str], month: date) -> List[Event]:
        """Events of the month, ordered by date. Empty when signed out or on failure."""
        if not user:
            return []

        start, end = month_bounds(month)
        try:
            rows = await self.store.select(
                TABLE,
                [
                    owner_filter(user),
                    Filter("date", start, op="gte"),
                    Filter("date", end, op="lte"),
                ],
                order=[Order("date"), Order("created_at")],
            )
        except RemoteFailure as e:
            logger.error(f"Error fetching events for user {user}: {e}")
            return []

        return [Event.from_row(r) for r in rows]

    async def add(self, user: Optional[str], title: str, when: datetime) -> Event:
        if not title or not title.strip():
            raise ValidationError("Event title must not be empty.")
        if not user:
            raise AuthorizationGap()

        row = await self.store.insert(
            TABLE, {"title": title, "date": when, "user_id": user}
        )
        event = Event.from_row(row)
        logger.info(f"Scheduled event {event.id} on {when:%Y-%m-%d} for user {user}")
        return event

    async def delete(self, user: Optional[str], event_id: str) -> bool:
        if not user:
            raise AuthorizationGap()

        removed = await self.store.delete(TABLE, event_id, [owner_filter(user)])
        if removed:
            logger.info(f"Deleted event {event_id} for user {user}")
        return bool(removed)
