from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

SessionCallback = Callable[[Optional[str]], None]


class SessionProvider(Protocol):
    def current_user(self) -> Optional[str]: ...

    def on_change(self, callback: SessionCallback) -> Callable[[], None]: ...


class LocalSession:
    """
    In-process session: holds the signed-in user id and notifies listeners
    on sign-in/sign-out. Credential checks belong to the identity provider in
    front of this service; here a user id is simply trusted.
    """

    def __init__(self, user_id: Optional[str] = None):
        self._user = user_id
        self._callbacks: List[SessionCallback] = []

    def current_user(self) -> Optional[str]:
        return self._user

    def on_change(self, callback: SessionCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        self._set(user_id)

    def sign_out(self) -> None:
        self._set(None)

    def _set(self, user_id: Optional[str]) -> None:
        if user_id == self._user:
            return
        logger.info(f"Session changed: {self._user!r} -> {user_id!r}")
        self._user = user_id
        for callback in list(self._callbacks):
            try:
                callback(user_id)
            except Exception:
                logger.exception("Session change callback failed")
