import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.dependencies import get_current_user, get_event_repository
from chat.interpreter import parse_event_date
from scheduling.event_repository import EventRepository

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateEventIn(BaseModel):
    title: str
    date: str  # YYYY-MM-DD


@router.get("/events")
async def list_events(
    month: Optional[str] = None,
    user: str = Depends(get_current_user),
    events: EventRepository = Depends(get_event_repository),
) -> dict:
    """Events of a month (YYYY-MM). Defaults to the current month."""
    if not month:
        month = datetime.now().strftime("%Y-%m")

    try:
        month_start = datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid month format. Use YYYY-MM")

    items = await events.list_month(user, month_start)
    return {
        "month": month,
        "events": [e.model_dump(mode="json") for e in items],
    }


@router.post("/events", status_code=201)
async def create_event(
    payload: CreateEventIn,
    user: str = Depends(get_current_user),
    events: EventRepository = Depends(get_event_repository),
) -> dict:
    # Same date rule as the chat command: strict day, pinned to midday.
    when = parse_event_date(payload.date.strip())
    event = await events.add(user, payload.title, when)
    return {"status": "created", "event": event.model_dump(mode="json")}


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    user: str = Depends(get_current_user),
    events: EventRepository = Depends(get_event_repository),
) -> dict:
    removed = await events.delete(user, event_id)
    return {"status": "deleted" if removed else "ignored"}
