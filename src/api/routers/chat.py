import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_chat_orchestrator, get_optional_user
from api.metrics import CHAT_MESSAGES_TOTAL, observe
from chat.orchestrator import ChatOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatIn(BaseModel):
    message: str


@router.get("/chat/history")
async def chat_history(
    user: Optional[str] = Depends(get_optional_user),
    chat: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> dict:
    messages = await chat.load_history(user)
    return {"messages": [m.model_dump(mode="json") for m in messages]}


@router.post("/chat")
async def submit_message(
    payload: ChatIn,
    user: Optional[str] = Depends(get_optional_user),
    chat: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> dict:
    start = time.time()
    logger.info(f"Received chat message: {payload.message[:50]}...")

    reply = await chat.submit(user, payload.message)

    try:
        CHAT_MESSAGES_TOTAL.labels(route=reply.route.value).inc()
    except Exception:
        pass
    observe("/chat", reply.route.value, start, time.time())

    return {
        "reply": reply.text,
        "route": reply.route.value,
        "persisted": reply.reply_message is not None,
    }
