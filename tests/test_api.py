"""Tests for the FastAPI tic-tac-toe interface."""

from __future__ import annotations

from sqlalchemy.exc import OperationalError

from tictactoe_online import lifecycle
from tictactoe_online.config import Settings
from tictactoe_online.ui import app, get_settings


def _create(client, **kwargs):
    response = client.post("/games", **kwargs)
    assert response.status_code == 200
    return response.json()


def _start(client):
    """Create a game and seat both players; returns (code, x_id, o_id)."""
    code = _create(client)["joinCode"]
    x_id = client.post(f"/games/{code}/join").json()["playerId"]
    o_id = client.post(f"/games/{code}/join").json()["playerId"]
    return code, x_id, o_id


def test_create_game(client):
    payload = _create(client, headers={"origin": "https://play.example"})
    code = payload["joinCode"]
    assert len(code) == 6
    assert payload["gameUrl"] == f"https://play.example/game/{code}"
    assert payload["message"] == (
        f"Game created! Share this code: {code} or link: https://play.example/game/{code}"
    )

    game = payload["game"]
    assert game["id"] == payload["gameId"]
    assert game["joinCode"] == code
    assert game["status"] == "waiting"
    assert game["board"] == [""] * 9
    assert game["currentTurn"] == "X"
    assert game["winner"] is None
    assert game["playerXId"] is None and game["playerOId"] is None
    assert game["createdAt"]


def test_game_url_respects_forwarded_headers(client):
    payload = _create(
        client,
        headers={"x-forwarded-host": "ttt.example:8443", "x-forwarded-proto": "https"},
    )
    assert payload["gameUrl"].startswith("https://ttt.example:8443/game/")


def test_game_url_prefers_configured_public_url(client):
    app.dependency_overrides[get_settings] = lambda: Settings(
        public_url="https://games.example"
    )
    payload = _create(client, headers={"origin": "https://elsewhere.example"})
    assert payload["gameUrl"] == f"https://games.example/game/{payload['joinCode']}"


def test_fetch_game(client, monkeypatch):
    monkeypatch.setattr(lifecycle, "generate_join_code", lambda: "ABC123")
    code = _create(client)["joinCode"]
    response = client.get(f"/games/{code}")
    assert response.status_code == 200
    assert response.json()["game"]["joinCode"] == code

    # Join codes are matched exactly.
    assert client.get("/games/abc123").status_code == 404
    assert client.post("/games/abc123/join").status_code == 404


def test_fetch_missing_game_returns_404(client):
    assert client.get("/games/ZZZZZZ").status_code == 404
    missing = client.get("/games/INVALID")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Game not found"


def test_full_game_flow(client):
    code = _create(client)["joinCode"]

    first = client.post(f"/games/{code}/join")
    assert first.status_code == 200
    first = first.json()
    assert first["playerSymbol"] == "X"
    assert first["message"] == "You joined as Player X"
    assert first["game"]["status"] == "waiting"
    assert first["game"]["playerXId"] == first["playerId"]

    second = client.post(f"/games/{code}/join").json()
    assert second["playerSymbol"] == "O"
    assert second["game"]["status"] == "active"
    x_id, o_id = first["playerId"], second["playerId"]

    move = client.post(f"/games/{code}/move", json={"position": 4, "playerId": x_id})
    assert move.status_code == 200
    state = move.json()
    assert state["message"] == "Move successful"
    assert state["game"]["board"][4] == "X"
    assert state["game"]["currentTurn"] == "O"
    assert state["game"]["status"] == "active"
    assert state["result"] is None
    assert state["resultMessage"] == "Game in progress"

    for player, position in ((o_id, 3), (x_id, 0), (o_id, 8), (x_id, 1), (o_id, 5)):
        response = client.post(
            f"/games/{code}/move", json={"position": position, "playerId": player}
        )
        assert response.status_code == 200

    final = client.post(f"/games/{code}/move", json={"position": 2, "playerId": x_id})
    assert final.status_code == 200
    final = final.json()
    assert final["result"] == "X"
    assert final["resultMessage"] == "Player X wins!"
    assert final["game"]["status"] == "finished"
    assert final["game"]["winner"] == "X"

    polled = client.get(f"/games/{code}").json()["game"]
    assert polled["board"] == ["X", "X", "X", "O", "X", "O", "", "", "O"]

    late = client.post(f"/games/{code}/move", json={"position": 6, "playerId": o_id})
    assert late.status_code == 400
    assert late.json()["detail"] == "Game is not active"


def test_join_full_game_rejected(client):
    code, _, _ = _start(client)
    before = client.get(f"/games/{code}").json()["game"]

    response = client.post(f"/games/{code}/join")
    assert response.status_code == 400
    assert response.json()["detail"] == "Game is full"
    assert client.get(f"/games/{code}").json()["game"] == before


def test_join_missing_game_returns_404(client):
    assert client.post("/games/ZZZZZZ/join").status_code == 404


def test_move_before_game_starts_rejected(client):
    code = _create(client)["joinCode"]
    x_id = client.post(f"/games/{code}/join").json()["playerId"]
    response = client.post(f"/games/{code}/move", json={"position": 0, "playerId": x_id})
    assert response.status_code == 400
    assert response.json()["detail"] == "Game is not active"


def test_move_with_unknown_player_rejected(client):
    code, _, _ = _start(client)
    before = client.get(f"/games/{code}").json()["game"]

    response = client.post(
        f"/games/{code}/move", json={"position": 4, "playerId": "not-a-player"}
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Invalid player"
    assert client.get(f"/games/{code}").json()["game"] == before


def test_invalid_moves_rejected(client):
    code, x_id, o_id = _start(client)

    out_of_turn = client.post(f"/games/{code}/move", json={"position": 0, "playerId": o_id})
    assert out_of_turn.status_code == 400
    assert out_of_turn.json()["detail"] == "Invalid move"

    assert client.post(
        f"/games/{code}/move", json={"position": 0, "playerId": x_id}
    ).status_code == 200
    occupied = client.post(f"/games/{code}/move", json={"position": 0, "playerId": o_id})
    assert occupied.status_code == 400
    assert occupied.json()["detail"] == "Invalid move"


def test_position_validated_before_lookup(client):
    response = client.post("/games/ZZZZZZ/move", json={"position": 9, "playerId": "p"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid position"

    negative = client.post("/games/ZZZZZZ/move", json={"position": -1, "playerId": "p"})
    assert negative.status_code == 400


def test_malformed_positions_rejected(client):
    code, x_id, _ = _start(client)
    before = client.get(f"/games/{code}").json()["game"]

    for position in ("4", 4.5, None, True, [4]):
        response = client.post(
            f"/games/{code}/move", json={"position": position, "playerId": x_id}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid position"

    missing = client.post(f"/games/{code}/move", json={"playerId": x_id})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Invalid position"
    assert client.get(f"/games/{code}").json()["game"] == before


def test_integral_float_position_accepted(client):
    code, x_id, _ = _start(client)
    response = client.post(f"/games/{code}/move", json={"position": 4.0, "playerId": x_id})
    assert response.status_code == 200
    assert response.json()["game"]["board"][4] == "X"


def test_missing_player_id_rejected(client):
    code, _, _ = _start(client)
    assert client.post(f"/games/{code}/move", json={"position": 4}).status_code == 422


def test_timestamps_keep_utc_offset_across_reads(client):
    created = _create(client)
    code = created["joinCode"]
    fetched = client.get(f"/games/{code}").json()["game"]
    assert fetched["createdAt"] == created["game"]["createdAt"]
    assert fetched["createdAt"].endswith("+00:00")

    joined = client.post(f"/games/{code}/join").json()["game"]
    assert joined["updatedAt"].endswith("+00:00")
    assert client.get(f"/games/{code}").json()["game"]["updatedAt"] == joined["updatedAt"]


def test_create_retries_taken_join_code(client, monkeypatch):
    codes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    monkeypatch.setattr(lifecycle, "generate_join_code", lambda: next(codes))

    assert _create(client)["joinCode"] == "AAAAAA"
    assert _create(client)["joinCode"] == "BBBBBB"


def test_create_gives_up_when_codes_exhausted(client, monkeypatch):
    monkeypatch.setattr(lifecycle, "generate_join_code", lambda: "AAAAAA")
    _create(client)

    response = client.post("/games")
    assert response.status_code == 500
    assert response.json()["detail"] == "Unable to allocate join code"


def test_store_failure_returns_500(client, store, monkeypatch):
    def broken_insert(game):
        raise OperationalError("INSERT", {}, Exception("database is down"))

    monkeypatch.setattr(store, "insert", broken_insert)
    response = client.post("/games")
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to create game in database"


def test_concurrent_write_returns_409(client, store, monkeypatch):
    code = _create(client)["joinCode"]
    stale = store.get_by_join_code(code)
    client.post(f"/games/{code}/join")

    # Serve the pre-join snapshot so the conditional write loses.
    monkeypatch.setattr(store, "get_by_join_code", lambda join_code: stale)
    response = client.post(f"/games/{code}/join")
    assert response.status_code == 409
    assert response.json()["detail"] == "Game was updated by another request"


def test_pages_served(client):
    index = client.get("/")
    assert index.status_code == 200
    assert "Tic-Tac-Toe" in index.text
    assert "const POLL_INTERVAL_MS = 250;" in index.text

    page = client.get("/game/ABC123")
    assert page.status_code == 200
    assert "setInterval(refresh, POLL_INTERVAL_MS)" in page.text


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_settings_from_env():
    settings = Settings.from_env(
        {
            "TICTACTOE_PORT": "9000",
            "TICTACTOE_DATABASE_URL": "sqlite://",
            "TICTACTOE_PUBLIC_URL": "https://games.example/",
            "TICTACTOE_LOG_LEVEL": "debug",
        }
    )
    assert settings.port == 9000
    assert settings.host == "0.0.0.0"
    assert settings.database_url == "sqlite://"
    assert settings.public_url == "https://games.example"
    assert settings.log_level == "DEBUG"
    assert settings.poll_interval_ms == 1000

    assert Settings.from_env({}).public_url is None
