"""Relational persistence for game records."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, String, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .lifecycle import Game

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DuplicateJoinCode(Exception):
    """Another game already uses the join code."""


class StaleGame(Exception):
    """The game changed between the read and the conditional write."""


class Base(DeclarativeBase):
    pass


class GameRow(Base):
    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    join_code: Mapped[str] = mapped_column(String(6), unique=True, index=True)
    board: Mapped[List[str]] = mapped_column(JSON)
    current_turn: Mapped[str] = mapped_column(String(1))
    status: Mapped[str] = mapped_column(String(16))
    winner: Mapped[Optional[str]] = mapped_column(String(8))
    player_x_id: Mapped[Optional[str]] = mapped_column(String(36))
    player_o_id: Mapped[Optional[str]] = mapped_column(String(36))
    version: Mapped[int] = mapped_column(default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_game(row: GameRow) -> Game:
    return Game(
        id=row.id,
        join_code=row.join_code,
        board=list(row.board),
        current_turn=row.current_turn,
        status=row.status,
        winner=row.winner,
        player_x_id=row.player_x_id,
        player_o_id=row.player_o_id,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        version=row.version,
    )


class GameStore:
    """Single-table access to games by id or join code."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    def insert(self, game: Game) -> Game:
        now = utc_now()
        row = GameRow(
            id=str(uuid.uuid4()),
            join_code=game.join_code,
            board=list(game.board),
            current_turn=game.current_turn,
            status=game.status,
            winner=game.winner,
            player_x_id=game.player_x_id,
            player_o_id=game.player_o_id,
            version=1,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._sessions.begin() as session:
                session.add(row)
        except IntegrityError as exc:
            raise DuplicateJoinCode(game.join_code) from exc
        return _to_game(row)

    def get(self, game_id: str) -> Optional[Game]:
        with self._sessions() as session:
            row = session.get(GameRow, game_id)
            return _to_game(row) if row else None

    def get_by_join_code(self, join_code: str) -> Optional[Game]:
        with self._sessions() as session:
            row = session.scalars(
                select(GameRow).where(GameRow.join_code == join_code)
            ).first()
            return _to_game(row) if row else None

    def update(self, game: Game) -> Game:
        """
        Persist the mutable fields of ``game`` if nobody else wrote it since it
        was read, and return the stored record.
        """
        stmt = (
            update(GameRow)
            .where(GameRow.id == game.id, GameRow.version == game.version)
            .values(
                board=list(game.board),
                current_turn=game.current_turn,
                status=game.status,
                winner=game.winner,
                player_x_id=game.player_x_id,
                player_o_id=game.player_o_id,
                version=game.version + 1,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._sessions.begin() as session:
            result = session.execute(stmt)
            if result.rowcount != 1:
                logger.warning(
                    "Lost update on game %s at version %s", game.id, game.version
                )
                raise StaleGame(game.id)
            row = session.get(GameRow, game.id)
            return _to_game(row)


def create_store(url: str) -> GameStore:
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(engine)
    return GameStore(engine)
