"""Game record and the waiting -> active -> finished state machine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .game import (
    Cell,
    Player,
    Result,
    apply_move,
    can_make_move,
    check_game_result,
    create_empty_board,
    generate_join_code,
    switch_turn,
)

WAITING = "waiting"
ACTIVE = "active"
FINISHED = "finished"


class GameError(ValueError):
    """A request that the current game state does not allow."""

    status_code = 400
    message = "Invalid request"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class GameFull(GameError):
    message = "Game is full"


class GameEnded(GameError):
    message = "Game has ended"


class GameNotActive(GameError):
    message = "Game is not active"


class InvalidPlayer(GameError):
    status_code = 403
    message = "Invalid player"


class InvalidMove(GameError):
    message = "Invalid move"


@dataclass
class Game:
    join_code: str
    board: List[Cell] = field(default_factory=create_empty_board)
    current_turn: Player = "X"
    status: str = WAITING
    winner: Result = None
    player_x_id: Optional[str] = None
    player_o_id: Optional[str] = None
    # Assigned by the store
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_full(self) -> bool:
        return self.player_x_id is not None and self.player_o_id is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "joinCode": self.join_code,
            "board": list(self.board),
            "currentTurn": self.current_turn,
            "status": self.status,
            "winner": self.winner,
            "playerXId": self.player_x_id,
            "playerOId": self.player_o_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


def new_game(join_code: Optional[str] = None) -> Game:
    return Game(join_code=join_code or generate_join_code())


def join_game(game: Game) -> Tuple[Player, str]:
    """
    Assign the caller to the first free slot and return ``(symbol, player_id)``.

    X is handed out before O; taking the O slot starts the game.
    """
    if game.is_full:
        raise GameFull()
    if game.status == FINISHED:
        raise GameEnded()

    player_id = str(uuid.uuid4())
    if game.player_x_id is None:
        game.player_x_id = player_id
        return "X", player_id

    game.player_o_id = player_id
    game.status = ACTIVE
    return "O", player_id


def symbol_for_player(game: Game, player_id: Optional[str]) -> Optional[Player]:
    if not player_id:
        return None
    if player_id == game.player_x_id:
        return "X"
    if player_id == game.player_o_id:
        return "O"
    return None


def play_move(game: Game, player_id: str, position: int) -> Result:
    """Apply a move for ``player_id`` and return the resulting game result."""
    if game.status != ACTIVE:
        raise GameNotActive()

    symbol = symbol_for_player(game, player_id)
    if symbol is None:
        raise InvalidPlayer()

    if not can_make_move(game.board, position, game.current_turn, symbol):
        raise InvalidMove()

    game.board = apply_move(game.board, position, symbol)
    game.current_turn = switch_turn(game.current_turn)

    result = check_game_result(game.board)
    if result is not None:
        game.status = FINISHED
        game.winner = result
    return result
