"""Board helpers and pure rules for a classic 3x3 tic-tac-toe game."""

from __future__ import annotations

import random
import re
import string
from typing import List, Optional, Sequence, Tuple

Player = str  # "X" or "O"
Cell = str  # "", "X" or "O"
Result = Optional[str]  # "X", "O", "draw" or None while the game continues

EMPTY: Cell = ""
DRAW = "draw"
BOARD_SIZE = 9

JOIN_CODE_LENGTH = 6
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
_JOIN_CODE_RE = re.compile(r"[A-Z0-9]{6}")

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


# ---------- Board ----------


def create_empty_board() -> List[Cell]:
    return [EMPTY] * BOARD_SIZE


def is_valid_position(board: Sequence[Cell], position: int) -> bool:
    """True when ``position`` is on the board and the cell there is empty."""
    return 0 <= position < BOARD_SIZE and board[position] == EMPTY


def apply_move(board: Sequence[Cell], position: int, symbol: Player) -> List[Cell]:
    """Return a copy of ``board`` with ``symbol`` placed at ``position``."""
    new_board = list(board)
    new_board[position] = symbol
    return new_board


def get_available_positions(board: Sequence[Cell]) -> List[int]:
    return [i for i, cell in enumerate(board) if cell == EMPTY]


# ---------- Rules ----------


def can_make_move(
    board: Sequence[Cell], position: int, current_turn: Player, player_symbol: Player
) -> bool:
    return is_valid_position(board, position) and current_turn == player_symbol


def check_game_result(board: Sequence[Cell]) -> Result:
    """
    Returns the owner of the first completed line, ``"draw"`` when the board
    is full without one, and ``None`` while moves remain.
    """
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v != EMPTY and v == board[b] == board[c]:
            return v
    if all(cell != EMPTY for cell in board):
        return DRAW
    return None


def is_game_over(board: Sequence[Cell]) -> bool:
    return check_game_result(board) is not None


def switch_turn(symbol: Player) -> Player:
    return "O" if symbol == "X" else "X"


def get_result_message(result: Result) -> str:
    if result == DRAW:
        return "It's a draw!"
    if result:
        return f"Player {result} wins!"
    return "Game in progress"


# ---------- Join codes ----------


def generate_join_code() -> str:
    return "".join(random.choices(JOIN_CODE_ALPHABET, k=JOIN_CODE_LENGTH))


def is_valid_join_code(code: str) -> bool:
    return bool(_JOIN_CODE_RE.fullmatch(code))
