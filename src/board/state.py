from __future__ import annotations

import logging
from typing import Callable, List

from astra.models import Board
from board.transitions import BoardEvent, empty_board, reduce

logger = logging.getLogger(__name__)

Listener = Callable[[Board], None]


class BoardState:
    """
    Observable holder of the current board snapshot.

    Snapshots are immutable and always replaced as a whole, so a reader never
    sees a half-applied move. `epoch` identifies the lifetime of the view the
    state belongs to; work started under an older epoch must not write here.
    """

    def __init__(self, board: Board | None = None):
        self._board = board if board is not None else empty_board()
        self._listeners: List[Listener] = []
        self.epoch = 0
        self.closed = False

    @property
    def board(self) -> Board:
        return self._board

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def replace(self, board: Board) -> None:
        if self.closed or board is self._board:
            return
        self._board = board
        for listener in list(self._listeners):
            try:
                listener(board)
            except Exception:
                logger.exception("Board listener failed")

    def dispatch(self, event: BoardEvent) -> Board:
        self.replace(reduce(self._board, event))
        return self._board

    def new_epoch(self) -> int:
        self.epoch += 1
        return self.epoch

    def close(self) -> None:
        self.new_epoch()
        self.closed = True
        self._listeners.clear()
