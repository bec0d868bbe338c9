"""Two-player tic-tac-toe over shareable join codes: rules, game lifecycle, and the web application."""

from .game import check_game_result, generate_join_code, is_valid_join_code
from .lifecycle import Game, join_game, new_game, play_move
from .ui import app

__all__ = [
    "Game",
    "app",
    "check_game_result",
    "generate_join_code",
    "is_valid_join_code",
    "join_game",
    "new_game",
    "play_move",
]
