"""FastAPI handlers and browser client for two-player tic-tac-toe."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .game import BOARD_SIZE, get_result_message, is_valid_join_code
from .lifecycle import Game, GameError, join_game, new_game, play_move
from .store import DuplicateJoinCode, GameStore, StaleGame, create_store

logger = logging.getLogger(__name__)

app = FastAPI(title="Tic-Tac-Toe Online", description="Two-player tic-tac-toe over join codes")

JOIN_CODE_ATTEMPTS = 10


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_store() -> GameStore:
    return create_store(get_settings().database_url)


class MoveRequest(BaseModel):
    """Request payload for placing a symbol on an active game."""

    model_config = ConfigDict(populate_by_name=True)

    # Any JSON number; range and integrality are checked in make_move.
    position: Any = None
    player_id: str = Field(alias="playerId", min_length=1)


def _load_game(store: GameStore, join_code: str) -> Game:
    if not is_valid_join_code(join_code):
        raise HTTPException(status_code=404, detail="Game not found")
    try:
        game = store.get_by_join_code(join_code)
    except SQLAlchemyError as exc:
        logger.exception("Failed to load game %s", join_code)
        raise HTTPException(status_code=500, detail="Failed to fetch game") from exc
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


def _board_position(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    position = int(value)
    return position if 0 <= position < BOARD_SIZE else None


def _save_game(store: GameStore, game: Game, failure_detail: str) -> Game:
    try:
        return store.update(game)
    except StaleGame as exc:
        raise HTTPException(
            status_code=409, detail="Game was updated by another request"
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("Failed to update game %s", game.join_code)
        raise HTTPException(status_code=500, detail=failure_detail) from exc


def _resolve_base_url(request: Request, settings: Settings) -> str:
    """Determine the best base URL for shareable game links."""

    if settings.public_url:
        return settings.public_url

    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")

    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_host:
        scheme = request.headers.get("x-forwarded-proto") or request.url.scheme
        return f"{scheme}://{forwarded_host}".rstrip("/")

    host = request.headers.get("host")
    if host:
        return f"{request.url.scheme}://{host}".rstrip("/")

    return str(request.base_url).rstrip("/")


@app.post("/games")
def create_game(
    request: Request,
    store: GameStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, object]:
    for _ in range(JOIN_CODE_ATTEMPTS):
        try:
            game = store.insert(new_game())
            break
        except DuplicateJoinCode as exc:
            logger.warning("Join code %s already in use, generating another", exc)
        except SQLAlchemyError as exc:
            logger.exception("Failed to create game")
            raise HTTPException(
                status_code=500, detail="Failed to create game in database"
            ) from exc
    else:
        raise HTTPException(status_code=500, detail="Unable to allocate join code")

    game_url = f"{_resolve_base_url(request, settings)}/game/{game.join_code}"
    logger.info("Created game %s with code %s", game.id, game.join_code)
    return {
        "message": f"Game created! Share this code: {game.join_code} or link: {game_url}",
        "gameId": game.id,
        "joinCode": game.join_code,
        "gameUrl": game_url,
        "game": game.to_dict(),
    }


@app.get("/games/{join_code}")
def get_game(join_code: str, store: GameStore = Depends(get_store)) -> Dict[str, object]:
    game = _load_game(store, join_code)
    return {"game": game.to_dict()}


@app.post("/games/{join_code}/join")
def join(join_code: str, store: GameStore = Depends(get_store)) -> Dict[str, object]:
    game = _load_game(store, join_code)
    try:
        symbol, player_id = join_game(game)
    except GameError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    game = _save_game(store, game, "Failed to join game")
    logger.info("Player %s joined game %s (status %s)", symbol, game.join_code, game.status)
    return {
        "message": f"You joined as Player {symbol}",
        "playerSymbol": symbol,
        "playerId": player_id,
        "game": game.to_dict(),
    }


@app.post("/games/{join_code}/move")
def make_move(
    join_code: str, request: MoveRequest, store: GameStore = Depends(get_store)
) -> Dict[str, object]:
    position = _board_position(request.position)
    if position is None:
        raise HTTPException(status_code=400, detail="Invalid position")

    game = _load_game(store, join_code)
    try:
        result = play_move(game, request.player_id, position)
    except GameError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    game = _save_game(store, game, "Failed to update game")
    if result is not None:
        logger.info("Game %s finished with result %s", game.join_code, result)
    return {
        "message": "Move successful",
        "game": game.to_dict(),
        "result": result,
        "resultMessage": get_result_message(result),
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def index(settings: Settings = Depends(get_settings)) -> str:
    return _render_page(settings)


@app.get("/game/{join_code}", response_class=HTMLResponse)
def game_page(join_code: str, settings: Settings = Depends(get_settings)) -> str:
    return _render_page(settings)


def _render_page(settings: Settings) -> str:
    return HTML_PAGE.replace("__POLL_INTERVAL_MS__", str(settings.poll_interval_ms))


HTML_PAGE = """<!DOCTYPE html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <title>Tic-Tac-Toe Online</title>
    <style>
      body {
        font-family: system-ui, sans-serif;
        background: #0f172a;
        color: #e2e8f0;
        display: flex;
        flex-direction: column;
        align-items: center;
        margin: 0;
        padding: 2rem 1rem;
      }
      h1 { margin-bottom: 0.5rem; }
      button {
        font: inherit;
        padding: 0.6rem 1.4rem;
        border: none;
        border-radius: 0.5rem;
        background: #2563eb;
        color: white;
        cursor: pointer;
      }
      button:disabled { background: #475569; cursor: not-allowed; }
      #lobby, #match { display: none; flex-direction: column; align-items: center; gap: 1rem; }
      #board {
        display: grid;
        grid-template-columns: repeat(3, 5rem);
        gap: 0.4rem;
      }
      #board button {
        width: 5rem;
        height: 5rem;
        font-size: 2rem;
        font-weight: 700;
        padding: 0;
        background: #1e293b;
      }
      #board button:not(:disabled):hover { background: #334155; }
      #share { font-size: 0.9rem; color: #94a3b8; text-align: center; }
      #error { color: #f87171; min-height: 1.2rem; }
    </style>
  </head>
  <body>
    <h1>Tic-Tac-Toe</h1>
    <div id=\"error\"></div>

    <section id=\"lobby\">
      <button id=\"create\">Create new game</button>
      <div>
        <input id=\"code\" maxlength=\"6\" placeholder=\"JOIN CODE\" />
        <button id=\"go\">Open</button>
      </div>
    </section>

    <section id=\"match\">
      <div id=\"share\"></div>
      <div id=\"status\"></div>
      <div id=\"board\"></div>
      <button id=\"join\">Join game</button>
    </section>

    <script>
      const POLL_INTERVAL_MS = __POLL_INTERVAL_MS__;
      const lobby = document.getElementById('lobby');
      const match = document.getElementById('match');
      const errorEl = document.getElementById('error');
      const statusEl = document.getElementById('status');
      const shareEl = document.getElementById('share');
      const boardEl = document.getElementById('board');
      const joinButton = document.getElementById('join');
      const codeInput = document.getElementById('code');

      const pathMatch = window.location.pathname.match(/^\\/game\\/([A-Za-z0-9]{6})$/);
      const joinCode = pathMatch ? pathMatch[1].toUpperCase() : null;
      const storageKey = joinCode ? `tictactoe:${joinCode}` : null;
      let me = storageKey ? JSON.parse(localStorage.getItem(storageKey) || 'null') : null;
      let game = null;
      let pollTimer = null;

      async function api(path, options = {}) {
        const response = await fetch(path, {
          headers: { 'Content-Type': 'application/json' },
          ...options,
        });
        const payload = await response.json();
        if (!response.ok) {
          const detail = typeof payload.detail === 'string' ? payload.detail : 'Invalid request';
          throw new Error(detail);
        }
        return payload;
      }

      function describe() {
        if (!game) return 'Loading...';
        if (game.status === 'finished') {
          return game.winner === 'draw' ? "It's a draw!" : `Player ${game.winner} wins!`;
        }
        if (game.status === 'waiting') return 'Waiting for a second player...';
        if (!me) return `Player ${game.currentTurn} to move (spectating)`;
        return game.currentTurn === me.symbol ? 'Your turn' : "Opponent's turn";
      }

      function render() {
        statusEl.textContent = (me ? `You are ${me.symbol}. ` : '') + describe();
        const full = game && game.playerXId && game.playerOId;
        joinButton.style.display = me || !game || full || game.status === 'finished' ? 'none' : '';
        boardEl.innerHTML = '';
        const cells = game ? game.board : Array(9).fill('');
        cells.forEach((cell, index) => {
          const button = document.createElement('button');
          button.textContent = cell;
          button.disabled = !game
            || !me
            || game.status !== 'active'
            || game.currentTurn !== me.symbol
            || cell !== '';
          button.addEventListener('click', () => move(index));
          boardEl.appendChild(button);
        });
      }

      async function refresh() {
        try {
          game = (await api(`/games/${joinCode}`)).game;
          errorEl.textContent = '';
        } catch (err) {
          errorEl.textContent = err.message;
        }
        render();
      }

      async function join() {
        try {
          const payload = await api(`/games/${joinCode}/join`, { method: 'POST' });
          me = { symbol: payload.playerSymbol, id: payload.playerId };
          localStorage.setItem(storageKey, JSON.stringify(me));
          game = payload.game;
          errorEl.textContent = '';
        } catch (err) {
          errorEl.textContent = err.message;
        }
        render();
      }

      async function move(position) {
        try {
          const payload = await api(`/games/${joinCode}/move`, {
            method: 'POST',
            body: JSON.stringify({ position, playerId: me.id }),
          });
          game = payload.game;
          errorEl.textContent = '';
        } catch (err) {
          errorEl.textContent = err.message;
        }
        render();
      }

      async function createGame() {
        try {
          const payload = await api('/games', { method: 'POST' });
          window.location.href = `/game/${payload.joinCode}`;
        } catch (err) {
          errorEl.textContent = err.message;
        }
      }

      if (joinCode) {
        match.style.display = 'flex';
        shareEl.textContent = `Join code ${joinCode} | ${window.location.href}`;
        joinButton.addEventListener('click', join);
        render();
        refresh();
        pollTimer = setInterval(refresh, POLL_INTERVAL_MS);
        window.addEventListener('beforeunload', () => clearInterval(pollTimer));
      } else {
        lobby.style.display = 'flex';
        document.getElementById('create').addEventListener('click', createGame);
        codeInput.addEventListener('input', () => {
          codeInput.value = codeInput.value.toUpperCase().replace(/[^A-Z0-9]/g, '');
        });
        document.getElementById('go').addEventListener('click', () => {
          if (/^[A-Z0-9]{6}$/.test(codeInput.value)) {
            window.location.href = `/game/${codeInput.value}`;
          }
        });
      }
    </script>
  </body>
</html>
"""
