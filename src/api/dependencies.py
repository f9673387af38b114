from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from api.state import AppServices, BoardRegistry
from astra.errors import AuthorizationGap
from chat.orchestrator import ChatOrchestrator, SIGN_IN_MESSAGE
from scheduling.event_repository import EventRepository


def get_services(request: Request) -> AppServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


def get_optional_user(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def get_current_user(user: Optional[str] = Depends(get_optional_user)) -> str:
    if not user:
        raise AuthorizationGap(SIGN_IN_MESSAGE)
    return user


def get_board_registry(services: AppServices = Depends(get_services)) -> BoardRegistry:
    return services.boards


def get_event_repository(services: AppServices = Depends(get_services)) -> EventRepository:
    return services.events


def get_chat_orchestrator(services: AppServices = Depends(get_services)) -> ChatOrchestrator:
    return services.chat
