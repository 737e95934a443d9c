from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    case,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from backend.scoreboard.ledger import CompletionLedger, LedgerUnavailableError
from backend.scoreboard.models import Completion, Family, Habit, Member

from .configuration import DatabaseConfig

logger = logging.getLogger(__name__)


class DuplicateJoinCodeError(ValueError):
    """The join code is already used by another family."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _engine_kwargs(url: str) -> dict:
    if url in {"sqlite://", "sqlite:///:memory:"}:
        # One shared connection so every session sees the same in-memory database.
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {}


class SQLLedgerStore(CompletionLedger):
    """
    Relational store for families, members, habits and the completion ledger.

    Tables:
      - families(id, name, join_code UNIQUE, created_at)
      - family_members(id, family_id, name, avatar, color, created_at)
      - habits(id, family_id, name, icon, points, unit, *_target, category, created_at)
      - completions(id, family_id, member_id, habit_id, date, count, created_at, updated_at)
        UNIQUE(member_id, habit_id, date)

    Every table carries an integer ``seq`` so rosters come back in insertion
    order. Store failures surface as ``LedgerUnavailableError``.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.metadata = MetaData()
        self.families = Table(
            "families",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), unique=True, nullable=False),
            Column("name", String(255), nullable=False),
            Column("join_code", String(32), unique=True, nullable=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self.members = Table(
            "family_members",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), unique=True, nullable=False),
            Column("family_id", String(64), ForeignKey("families.id"), index=True, nullable=False),
            Column("name", String(255), nullable=False),
            Column("avatar", String(32), nullable=False, default=""),
            Column("color", String(32), nullable=False, default=""),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self.habits = Table(
            "habits",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), unique=True, nullable=False),
            Column("family_id", String(64), ForeignKey("families.id"), index=True, nullable=False),
            Column("name", String(255), nullable=False),
            Column("icon", String(32), nullable=False, default=""),
            Column("points", Integer, nullable=False),
            Column("unit", String(64), nullable=False, default="times"),
            Column("daily_target", Integer, nullable=False, default=1),
            Column("weekly_target", Integer, nullable=False, default=7),
            Column("monthly_target", Integer, nullable=False, default=30),
            Column("category", String(128), nullable=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self.completions = Table(
            "completions",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), unique=True, nullable=False),
            Column("family_id", String(64), ForeignKey("families.id"), index=True, nullable=False),
            Column("member_id", String(64), ForeignKey("family_members.id"), nullable=False),
            Column("habit_id", String(64), ForeignKey("habits.id"), nullable=False),
            Column("date", Date, index=True, nullable=False),
            Column("count", Integer, nullable=False, default=0),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("updated_at", DateTime(timezone=True), nullable=False),
            UniqueConstraint("member_id", "habit_id", "date", name="uq_completion_member_habit_date"),
        )
        self.metadata.create_all(self.engine, checkfirst=True)

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "SQLLedgerStore":
        engine = create_engine(config.url, echo=config.echo, future=True, **_engine_kwargs(config.url))
        return cls(engine)

    # ----- ledger reads -----

    def fetch_completions(self, family_id: str, since: Optional[date] = None) -> Sequence[Completion]:
        query = select(self.completions).where(self.completions.c.family_id == family_id)
        if since is not None:
            query = query.where(self.completions.c.date >= since)
        rows = self._read(query.order_by(self.completions.c.seq))
        return tuple(self._row_to_completion(row) for row in rows)

    def fetch_members(self, family_id: str) -> Sequence[Member]:
        query = select(self.members).where(self.members.c.family_id == family_id).order_by(self.members.c.seq)
        return tuple(self._row_to_member(row) for row in self._read(query))

    def fetch_habits(self, family_id: str) -> Sequence[Habit]:
        query = select(self.habits).where(self.habits.c.family_id == family_id).order_by(self.habits.c.seq)
        return tuple(self._row_to_habit(row) for row in self._read(query))

    def fetch_day_completions(self, family_id: str, member_id: str, on: date) -> Sequence[Completion]:
        query = (
            select(self.completions)
            .where(self.completions.c.family_id == family_id)
            .where(self.completions.c.member_id == member_id)
            .where(self.completions.c.date == on)
        )
        return tuple(self._row_to_completion(row) for row in self._read(query))

    def get_family(self, family_id: str) -> Optional[Family]:
        rows = self._read(select(self.families).where(self.families.c.id == family_id))
        return self._row_to_family(rows[0]) if rows else None

    def find_family_by_code(self, join_code: str) -> Optional[Family]:
        rows = self._read(select(self.families).where(self.families.c.join_code == join_code))
        return self._row_to_family(rows[0]) if rows else None

    def get_member(self, member_id: str) -> Optional[Member]:
        rows = self._read(select(self.members).where(self.members.c.id == member_id))
        return self._row_to_member(rows[0]) if rows else None

    def get_habit(self, habit_id: str) -> Optional[Habit]:
        rows = self._read(select(self.habits).where(self.habits.c.id == habit_id))
        return self._row_to_habit(rows[0]) if rows else None

    # ----- writes -----

    def create_family(self, name: str, join_code: str) -> Family:
        values = {"id": _new_id(), "name": name, "join_code": join_code, "created_at": _utcnow()}
        try:
            with self.engine.begin() as connection:
                connection.execute(insert(self.families).values(**values))
        except IntegrityError as exc:
            raise DuplicateJoinCodeError(f"Join code {join_code!r} is already taken") from exc
        except SQLAlchemyError as exc:
            raise LedgerUnavailableError(f"Could not create family: {exc}") from exc
        return Family(**values)

    def add_member(self, family_id: str, name: str, avatar: str, color: str) -> Member:
        values = {
            "id": _new_id(),
            "family_id": family_id,
            "name": name,
            "avatar": avatar,
            "color": color,
            "created_at": _utcnow(),
        }
        self._write(lambda connection: connection.execute(insert(self.members).values(**values)))
        return Member(**values)

    def add_habit(self, family_id: str, **fields: Any) -> Habit:
        values = {"id": _new_id(), "family_id": family_id, "created_at": _utcnow(), **fields}
        self._write(lambda connection: connection.execute(insert(self.habits).values(**values)))
        return Habit(**values)

    def delete_member(self, member_id: str) -> bool:
        """Delete a member together with all of their completions."""

        def _delete(connection: Connection) -> int:
            connection.execute(delete(self.completions).where(self.completions.c.member_id == member_id))
            return connection.execute(delete(self.members).where(self.members.c.id == member_id)).rowcount

        return bool(self._write(_delete))

    def delete_habit(self, habit_id: str) -> bool:
        """Delete a habit together with every completion that references it."""

        def _delete(connection: Connection) -> int:
            connection.execute(delete(self.completions).where(self.completions.c.habit_id == habit_id))
            return connection.execute(delete(self.habits).where(self.habits.c.id == habit_id)).rowcount

        return bool(self._write(_delete))

    def increment_completion(
        self,
        family_id: str,
        member_id: str,
        habit_id: str,
        on: date,
        delta: int,
    ) -> Completion:
        """
        Add ``delta`` to the (member, habit, date) counter in one statement.

        The stored count never drops below zero.
        """

        new_count = self.completions.c["count"] + delta
        return self._upsert(
            family_id,
            member_id,
            habit_id,
            on,
            update_value=case((new_count < 0, 0), else_=new_count),
            insert_value=max(0, delta),
        )

    def upsert_completion(
        self,
        family_id: str,
        member_id: str,
        habit_id: str,
        on: date,
        count: int,
    ) -> Completion:
        count = max(0, count)
        return self._upsert(family_id, member_id, habit_id, on, update_value=count, insert_value=count)

    def _upsert(
        self,
        family_id: str,
        member_id: str,
        habit_id: str,
        on: date,
        update_value: Any,
        insert_value: int,
    ) -> Completion:
        key = (
            (self.completions.c.member_id == member_id)
            & (self.completions.c.habit_id == habit_id)
            & (self.completions.c.date == on)
        )

        def _apply(connection: Connection) -> Row:
            now = _utcnow()
            updated = connection.execute(
                update(self.completions).where(key).values(count=update_value, updated_at=now)
            ).rowcount
            if not updated:
                connection.execute(
                    insert(self.completions).values(
                        id=_new_id(),
                        family_id=family_id,
                        member_id=member_id,
                        habit_id=habit_id,
                        date=on,
                        count=insert_value,
                        created_at=now,
                        updated_at=now,
                    )
                )
            return connection.execute(select(self.completions).where(key)).one()

        try:
            row = self._write(_apply, reraise_integrity=True)
        except IntegrityError:
            # A concurrent first insert for the same key won; this pass takes the update branch.
            logger.info("Completion insert raced for %s/%s on %s; retrying as update", member_id, habit_id, on)
            row = self._write(_apply)
        return self._row_to_completion(row)

    # ----- helpers -----

    def _read(self, query: Any) -> list:
        try:
            with self.engine.connect() as connection:
                return connection.execute(query).fetchall()
        except SQLAlchemyError as exc:
            raise LedgerUnavailableError(f"Ledger read failed: {exc}") from exc

    def _write(self, operation: Callable[[Connection], Any], reraise_integrity: bool = False) -> Any:
        try:
            with self.engine.begin() as connection:
                return operation(connection)
        except IntegrityError as exc:
            if reraise_integrity:
                raise
            raise LedgerUnavailableError(f"Ledger write violated a constraint: {exc}") from exc
        except SQLAlchemyError as exc:
            raise LedgerUnavailableError(f"Ledger write failed: {exc}") from exc

    @staticmethod
    def _row_to_family(row: Row) -> Family:
        return Family(id=row.id, name=row.name, join_code=row.join_code, created_at=row.created_at)

    @staticmethod
    def _row_to_member(row: Row) -> Member:
        return Member(
            id=row.id,
            family_id=row.family_id,
            name=row.name,
            avatar=row.avatar or "",
            color=row.color or "",
            created_at=row.created_at,
        )

    @staticmethod
    def _row_to_habit(row: Row) -> Habit:
        return Habit(
            id=row.id,
            family_id=row.family_id,
            name=row.name,
            points=int(row.points),
            icon=row.icon or "",
            unit=row.unit or "times",
            daily_target=int(row.daily_target),
            weekly_target=int(row.weekly_target),
            monthly_target=int(row.monthly_target),
            category=row.category,
            created_at=row.created_at,
        )

    @staticmethod
    def _row_to_completion(row: Row) -> Completion:
        return Completion(
            id=row.id,
            family_id=row.family_id,
            member_id=row.member_id,
            habit_id=row.habit_id,
            date=row.date,
            count=int(row._mapping["count"] or 0),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


def build_store(config: DatabaseConfig) -> SQLLedgerStore:
    return SQLLedgerStore.from_config(config)
