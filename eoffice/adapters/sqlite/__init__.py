# eoffice/adapters/sqlite/__init__.py
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
    insert,
    update,
    and_,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from eoffice.core.errors import CounterContentionError, NotFoundError, PreconditionError
from eoffice.models import Letter, LetterType, Profile
from eoffice.models.converters import (
    letter_type_from_record,
    letter_type_to_record,
    profile_from_record,
)

logger = logging.getLogger(__name__)

# ---- Engine (SQLite) with WAL & pragmas -------------------------------------

def _ensure_dir(path: str):
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

def make_engine(db_url: str) -> Engine:
    # Create data dir if sqlite file
    if db_url.startswith("sqlite:///"):
        file_path = db_url.replace("sqlite:///", "", 1)
        _ensure_dir(file_path)

    connect_args: Dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        # Worker threads share the pool; writers wait up to 30s for the lock
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(db_url, future=True, pool_pre_ping=True, connect_args=connect_args)

    # Apply pragmas per-connection
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA temp_store=MEMORY;")
            cursor.execute("PRAGMA busy_timeout=30000;")
            cursor.close()

    return engine

# ---- Schema via SQLAlchemy Core ---------------------------------------------

metadata = MetaData()

counters = Table(
    "counters",
    metadata,
    Column("key", String, primary_key=True),
    Column("last_number", Integer, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

letters = Table(
    "letters",
    metadata,
    Column("letter_id", String, primary_key=True),
    Column("unit_code", String, nullable=False),
    Column("status", String, nullable=False),
    Column("letter_number", String, nullable=True),
    # Full Letter model as JSON; the columns above are for querying only
    Column("payload", Text, nullable=False),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

users = Table(
    "users",
    metadata,
    Column("uid", String, primary_key=True),
    # Raw directory record, normalized on read by models.converters
    Column("record", Text, nullable=False),
)

letter_types = Table(
    "letter_types",
    metadata,
    Column("code", String, primary_key=True),
    Column("name", String, nullable=False, default=""),
    Column("format_code", String, nullable=False, default=""),
    Column("requires_activity_code", Boolean, nullable=False, default=False),
)

Index("idx_letters_unit", letters.c.unit_code)
Index("idx_letters_status", letters.c.status)

# ---- Adapter implementation --------------------------------------------------

@dataclass(frozen=True)
class SqliteAdapter:
    engine: Engine
    counter_max_attempts: int = 8
    counter_retry_backoff_s: float = 0.05

    @classmethod
    def from_url(
        cls,
        db_url: str = "sqlite:///data/eoffice.db",
        *,
        counter_max_attempts: int = 8,
        counter_retry_backoff_s: float = 0.05,
    ) -> "SqliteAdapter":
        eng = make_engine(db_url)
        metadata.create_all(eng)
        return cls(
            engine=eng,
            counter_max_attempts=counter_max_attempts,
            counter_retry_backoff_s=counter_retry_backoff_s,
        )

    # ========== Counters ==========

    def next_value(self, key: str) -> int:
        """
        Compare-and-set increment. A lost race (row changed between read and
        write, concurrent first insert, or a locked database) rolls the
        transaction back and the whole read-increment-write is retried.
        """
        for attempt in range(1, self.counter_max_attempts + 1):
            try:
                with self.engine.begin() as conn:
                    row = conn.execute(
                        select(counters.c.last_number).where(counters.c.key == key)
                    ).first()

                    if row is None:
                        conn.execute(
                            insert(counters).values(key=key, last_number=1, updated_at=_utcnow())
                        )
                        return 1

                    current = int(row.last_number)
                    res = conn.execute(
                        update(counters)
                        .where(and_(counters.c.key == key, counters.c.last_number == current))
                        .values(last_number=current + 1, updated_at=_utcnow())
                    )
                    if res.rowcount == 1:
                        return current + 1
                reason = "compare-and-set lost"
            except IntegrityError:
                reason = "concurrent first insert"
            except OperationalError as e:
                reason = f"database busy ({e.orig})"

            logger.debug(f"Counter {key}: attempt {attempt} retry, {reason}")
            time.sleep(self.counter_retry_backoff_s * attempt)

        logger.error(f"Counter {key}: gave up after {self.counter_max_attempts} attempts")
        raise CounterContentionError(
            f"Could not increment counter '{key}' after {self.counter_max_attempts} attempts"
        )

    def peek_value(self, key: str) -> int:
        with self.engine.begin() as conn:
            row = conn.execute(
                select(counters.c.last_number).where(counters.c.key == key)
            ).first()
            return int(row.last_number) if row else 0

    # ========== Letters ==========

    @staticmethod
    def _payload(letter: Letter) -> str:
        return letter.model_dump_json(exclude={"version"})

    @staticmethod
    def _row_to_letter(row) -> Letter:
        letter = Letter.model_validate_json(row.payload)
        return letter.model_copy(update={"version": int(row.version)})

    def create_letter(self, letter: Letter) -> Letter:
        now = _utcnow()
        letter = letter.model_copy(update={"version": 1, "created_at": letter.created_at or now, "updated_at": now})
        with self.engine.begin() as conn:
            conn.execute(
                insert(letters).values(
                    letter_id=letter.letter_id,
                    unit_code=letter.unit_code,
                    status=letter.status.value,
                    letter_number=letter.letter_number,
                    payload=self._payload(letter),
                    version=1,
                    created_at=now,
                    updated_at=now,
                )
            )
        return letter

    def get_letter(self, letter_id: str) -> Optional[Letter]:
        with self.engine.begin() as conn:
            row = conn.execute(
                select(letters.c.payload, letters.c.version).where(letters.c.letter_id == letter_id)
            ).first()
        return self._row_to_letter(row) if row else None

    def save_letter(self, letter: Letter) -> Letter:
        now = _utcnow()
        saved = letter.model_copy(update={"version": letter.version + 1, "updated_at": now})
        with self.engine.begin() as conn:
            res = conn.execute(
                update(letters)
                .where(and_(letters.c.letter_id == letter.letter_id, letters.c.version == letter.version))
                .values(
                    unit_code=saved.unit_code,
                    status=saved.status.value,
                    letter_number=saved.letter_number,
                    payload=self._payload(saved),
                    version=saved.version,
                    updated_at=now,
                )
            )
            if res.rowcount != 1:
                exists = conn.execute(
                    select(letters.c.letter_id).where(letters.c.letter_id == letter.letter_id)
                ).first()
                if not exists:
                    raise NotFoundError(f"Letter {letter.letter_id} not found", code="LETTER_NOT_FOUND")
                raise PreconditionError(
                    f"Letter {letter.letter_id} was modified concurrently; reload and retry",
                    code="LETTER_MODIFIED",
                )
        return saved

    def list_letters(self, *, unit_code: Optional[str] = None) -> List[Letter]:
        q = select(letters.c.payload, letters.c.version).order_by(letters.c.created_at.desc())
        if unit_code:
            q = q.where(letters.c.unit_code == unit_code)
        with self.engine.begin() as conn:
            rows = conn.execute(q).all()
        return [self._row_to_letter(r) for r in rows]

    # ========== Users ==========

    def get_profile(self, uid: str) -> Optional[Profile]:
        if not uid:
            return None
        with self.engine.begin() as conn:
            row = conn.execute(select(users.c.record).where(users.c.uid == uid)).first()
        if not row:
            return None
        return profile_from_record(uid, json.loads(row.record))

    def upsert_user(self, uid: str, record: Dict[str, Any]) -> None:
        payload = json.dumps(record, default=str)
        with self.engine.begin() as conn:
            res = conn.execute(update(users).where(users.c.uid == uid).values(record=payload))
            if res.rowcount == 0:
                conn.execute(insert(users).values(uid=uid, record=payload))

    # ========== Letter types ==========

    def get_letter_type(self, code: str) -> Optional[LetterType]:
        if not code:
            return None
        with self.engine.begin() as conn:
            row = conn.execute(
                select(letter_types).where(letter_types.c.code == code)
            ).mappings().first()
        return LetterType(**dict(row)) if row else None

    def list_letter_types(self) -> List[LetterType]:
        with self.engine.begin() as conn:
            rows = conn.execute(select(letter_types).order_by(letter_types.c.code)).mappings().all()
        return [LetterType(**dict(r)) for r in rows]

    def upsert_letter_type(self, record: Dict[str, Any]) -> LetterType:
        lt = letter_type_from_record(record)
        values = letter_type_to_record(lt)
        with self.engine.begin() as conn:
            res = conn.execute(
                update(letter_types).where(letter_types.c.code == lt.code).values(**values)
            )
            if res.rowcount == 0:
                conn.execute(insert(letter_types).values(**values))
        return lt
