import sqlite3
import aiosqlite
import datetime
import logging
import uuid
from contextlib import contextmanager, asynccontextmanager
from typing import List, Optional, Sequence, Tuple

from algorithms import CalendarTools
from entities import (
    Exercise,
    TrainingCategory,
    User,
    WorkoutExercise,
    WorkoutSession,
    WorkoutSet,
)

logger = logging.getLogger(__name__)

STORAGE_ENGINE = "sqlite"
SCHEMA_VERSION = 1

# SQLite caps bound parameters per statement; bulk reads are chunked below it.
_MAX_PARAMS = 900


def generate_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return CalendarTools.to_iso(datetime.datetime.now(datetime.timezone.utc))


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "_meta": (
            """CREATE TABLE _meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "users": (
            """CREATE TABLE users (
                    id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    weight_unit TEXT NOT NULL DEFAULT 'kg',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "display_name", "weight_unit", "created_at", "updated_at"],
        ),
        "training_categories": (
            """CREATE TABLE training_categories (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "user_id", "name", "created_at", "updated_at"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    name TEXT NOT NULL,
                    is_built_in INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "user_id", "name", "is_built_in", "created_at", "updated_at"],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    category_id TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "category_id",
                "started_at",
                "ended_at",
                "notes",
                "created_at",
                "updated_at",
            ],
        ),
        "workout_exercises": (
            """CREATE TABLE workout_exercises (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    machine_name TEXT,
                    seat_height TEXT,
                    bench_angle_deg INTEGER,
                    grip TEXT,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "exercise_id",
                "position",
                "machine_name",
                "seat_height",
                "bench_angle_deg",
                "grip",
            ],
        ),
        "workout_sets": (
            """CREATE TABLE workout_sets (
                    id TEXT PRIMARY KEY,
                    workout_exercise_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(workout_exercise_id) REFERENCES workout_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_exercise_id",
                "position",
                "reps",
                "weight",
                "created_at",
                "updated_at",
            ],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_categories_user ON training_categories(user_id);",
        "CREATE INDEX IF NOT EXISTS idx_exercises_user_builtin ON exercises(user_id, is_built_in);",
        "CREATE INDEX IF NOT EXISTS idx_sessions_user_started ON workout_sessions(user_id, started_at);",
        "CREATE INDEX IF NOT EXISTS idx_workout_exercises_session ON workout_exercises(session_id);",
        "CREATE INDEX IF NOT EXISTS idx_workout_sets_exercise ON workout_sets(workout_exercise_id);",
    ]

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_meta()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for sql in self._INDEXES:
                cursor.execute(sql)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        # Child tables reference {table} by name; rebuild beside it and swap.
        logger.info("Migrating table %s to current column layout", table)
        conn.execute(f"DROP TABLE IF EXISTS {table}_new;")
        conn.execute(
            sql.replace(f"CREATE TABLE {table} (", f"CREATE TABLE {table}_new (", 1)
        )

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "weight_unit":
                        return "'kg'"
                    if col in ("position", "is_built_in"):
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table}_new ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table};"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table}_new ({cols}) SELECT {cols} FROM {table};"
                )
        conn.execute(f"DROP TABLE {table};")
        conn.execute(f"ALTER TABLE {table}_new RENAME TO {table};")

    def _init_meta(self) -> None:
        defaults = {
            "storage_engine": STORAGE_ENGINE,
            "schema_version": str(SCHEMA_VERSION),
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO _meta (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def storage_meta(self) -> dict:
        """Return the storage engine name and schema version of this database."""
        with self._connection() as conn:
            rows = conn.execute("SELECT key, value FROM _meta;").fetchall()
        meta = dict(rows)
        return {
            "storage_engine": meta.get("storage_engine", STORAGE_ENGINE),
            "schema_version": int(meta.get("schema_version", SCHEMA_VERSION)),
        }


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous repository helpers using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def execute_many(self, query: str, params: Sequence[Tuple]) -> None:
        async with self._async_connection() as conn:
            await conn.executemany(query, params)
            await conn.commit()

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)

    async def fetch_one(self, query: str, params: Tuple = ()) -> Optional[Tuple]:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None


class UserRepository(AsyncBaseRepository):
    """Repository for users."""

    _SELECT = "SELECT id, display_name, weight_unit, created_at, updated_at FROM users"

    @staticmethod
    def _to_user(row: Tuple) -> User:
        uid, name, unit, created, updated = row
        return User(
            id=uid,
            display_name=name,
            weight_unit=unit,
            created_at=created,
            updated_at=updated,
        )

    async def create(
        self, display_name: str, weight_unit: str = "kg", user_id: str | None = None
    ) -> User:
        uid = user_id or generate_id()
        ts = now_iso()
        await self.execute(
            "INSERT INTO users (id, display_name, weight_unit, created_at, updated_at) VALUES (?, ?, ?, ?, ?);",
            (uid, display_name, weight_unit, ts, ts),
        )
        return User(
            id=uid,
            display_name=display_name,
            weight_unit=weight_unit,
            created_at=ts,
            updated_at=ts,
        )

    async def update(
        self,
        user_id: str,
        display_name: str | None = None,
        weight_unit: str | None = None,
    ) -> User:
        updates = ["updated_at = ?"]
        params: list = [now_iso()]
        if display_name is not None:
            updates.append("display_name = ?")
            params.append(display_name)
        if weight_unit is not None:
            updates.append("weight_unit = ?")
            params.append(weight_unit)
        params.append(user_id)
        await self.execute(
            f"UPDATE users SET {', '.join(updates)} WHERE id = ?;", tuple(params)
        )
        user = await self.get(user_id)
        if user is None:
            raise ValueError("user not found")
        return user

    async def delete(self, user_id: str) -> None:
        await self.execute("DELETE FROM users WHERE id = ?;", (user_id,))

    async def get(self, user_id: str) -> Optional[User]:
        row = await self.fetch_one(self._SELECT + " WHERE id = ?;", (user_id,))
        return self._to_user(row) if row else None

    async def list(self, limit: int = 100, offset: int = 0) -> List[User]:
        rows = await self.fetch_all(
            self._SELECT + " ORDER BY created_at ASC LIMIT ? OFFSET ?;",
            (limit, offset),
        )
        return [self._to_user(r) for r in rows]


class TrainingCategoryRepository(AsyncBaseRepository):
    """Repository for training categories."""

    _SELECT = "SELECT id, user_id, name, created_at, updated_at FROM training_categories"

    @staticmethod
    def _to_category(row: Tuple) -> TrainingCategory:
        cid, uid, name, created, updated = row
        return TrainingCategory(
            id=cid, user_id=uid, name=name, created_at=created, updated_at=updated
        )

    async def create(
        self, user_id: str, name: str, category_id: str | None = None
    ) -> TrainingCategory:
        cid = category_id or generate_id()
        ts = now_iso()
        await self.execute(
            "INSERT INTO training_categories (id, user_id, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?);",
            (cid, user_id, name, ts, ts),
        )
        return TrainingCategory(
            id=cid, user_id=user_id, name=name, created_at=ts, updated_at=ts
        )

    async def rename(self, category_id: str, name: str) -> TrainingCategory:
        await self.execute(
            "UPDATE training_categories SET name = ?, updated_at = ? WHERE id = ?;",
            (name, now_iso(), category_id),
        )
        category = await self.get(category_id)
        if category is None:
            raise ValueError("category not found")
        return category

    async def delete(self, category_id: str) -> None:
        # Sessions keep pointing at the removed id; readers fall back to a placeholder name.
        await self.execute(
            "DELETE FROM training_categories WHERE id = ?;", (category_id,)
        )

    async def get(self, category_id: str) -> Optional[TrainingCategory]:
        row = await self.fetch_one(self._SELECT + " WHERE id = ?;", (category_id,))
        return self._to_category(row) if row else None

    async def list(
        self, user_id: str, limit: int = 100, offset: int = 0
    ) -> List[TrainingCategory]:
        if not user_id:
            return []
        rows = await self.fetch_all(
            self._SELECT + " WHERE user_id = ? ORDER BY name ASC LIMIT ? OFFSET ?;",
            (user_id, limit, offset),
        )
        return [self._to_category(r) for r in rows]


class ExerciseRepository(AsyncBaseRepository):
    """Repository for built-in and user-created exercises."""

    _SELECT = "SELECT id, user_id, name, is_built_in, created_at, updated_at FROM exercises"

    @staticmethod
    def _to_exercise(row: Tuple) -> Exercise:
        eid, uid, name, built_in, created, updated = row
        return Exercise(
            id=eid,
            user_id=uid,
            name=name,
            is_built_in=bool(built_in),
            created_at=created,
            updated_at=updated,
        )

    async def create(
        self,
        name: str,
        user_id: str | None = None,
        is_built_in: bool = False,
        exercise_id: str | None = None,
    ) -> Exercise:
        eid = exercise_id or generate_id()
        ts = now_iso()
        await self.execute(
            "INSERT INTO exercises (id, user_id, name, is_built_in, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?);",
            (eid, user_id, name, 1 if is_built_in else 0, ts, ts),
        )
        return Exercise(
            id=eid,
            user_id=user_id,
            name=name,
            is_built_in=is_built_in,
            created_at=ts,
            updated_at=ts,
        )

    async def rename(self, exercise_id: str, name: str) -> Exercise:
        await self.execute(
            "UPDATE exercises SET name = ?, updated_at = ? WHERE id = ?;",
            (name, now_iso(), exercise_id),
        )
        exercise = await self.get(exercise_id)
        if exercise is None:
            raise ValueError("exercise not found")
        return exercise

    async def delete(self, exercise_id: str) -> None:
        await self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))

    async def get(self, exercise_id: str) -> Optional[Exercise]:
        row = await self.fetch_one(self._SELECT + " WHERE id = ?;", (exercise_id,))
        return self._to_exercise(row) if row else None

    async def list(
        self,
        user_id: Optional[str] = None,
        is_built_in: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Exercise]:
        """List exercises visible to ``user_id``.

        With a user id the result holds that user's exercises plus the shared
        built-ins; ``is_built_in=True`` without a user id lists only built-ins.
        ``search`` is a case-insensitive substring match on the name.
        """
        query = self._SELECT
        params: list = []
        where_clauses: list[str] = []
        if user_id is not None and is_built_in is not None:
            if is_built_in:
                where_clauses.append(
                    "(user_id = ? OR (user_id IS NULL AND is_built_in = 1))"
                )
                params.append(user_id)
            else:
                where_clauses.append("user_id = ? AND is_built_in = 0")
                params.append(user_id)
        elif user_id is not None:
            where_clauses.append("(user_id = ? OR user_id IS NULL)")
            params.append(user_id)
        elif is_built_in is not None:
            where_clauses.append("is_built_in = ?")
            params.append(1 if is_built_in else 0)
        term = (search or "").strip().lower()
        if term:
            where_clauses.append("lower(name) LIKE ?")
            params.append(f"%{term}%")
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        query += " ORDER BY name ASC, id ASC LIMIT ? OFFSET ?;"
        params.extend([limit, offset])
        rows = await self.fetch_all(query, tuple(params))
        return [self._to_exercise(r) for r in rows]

    async def count_built_in(self) -> int:
        row = await self.fetch_one("SELECT COUNT(*) FROM exercises WHERE is_built_in = 1;")
        return int(row[0]) if row else 0


class WorkoutSessionRepository(AsyncBaseRepository):
    """Repository for workout sessions."""

    _SELECT = (
        "SELECT id, user_id, category_id, started_at, ended_at, notes, created_at, updated_at "
        "FROM workout_sessions"
    )

    @staticmethod
    def _to_session(row: Tuple) -> WorkoutSession:
        sid, uid, cid, started, ended, notes, created, updated = row
        return WorkoutSession(
            id=sid,
            user_id=uid,
            category_id=cid,
            started_at=started,
            ended_at=ended,
            notes=notes,
            created_at=created,
            updated_at=updated,
        )

    async def create(
        self,
        user_id: str,
        category_id: str,
        started_at: str | None = None,
        ended_at: str | None = None,
        notes: str | None = None,
        session_id: str | None = None,
    ) -> WorkoutSession:
        sid = session_id or generate_id()
        ts = now_iso()
        started = CalendarTools.normalize(started_at) if started_at else ts
        ended = CalendarTools.normalize(ended_at) if ended_at else None
        await self.execute(
            "INSERT INTO workout_sessions (id, user_id, category_id, started_at, ended_at, notes, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (sid, user_id, category_id, started, ended, notes, ts, ts),
        )
        return WorkoutSession(
            id=sid,
            user_id=user_id,
            category_id=category_id,
            started_at=started,
            ended_at=ended,
            notes=notes,
            created_at=ts,
            updated_at=ts,
        )

    async def _updated(self, session_id: str) -> WorkoutSession:
        session = await self.get(session_id)
        if session is None:
            raise ValueError("session not found")
        return session

    async def set_end_time(self, session_id: str, timestamp: str | None) -> WorkoutSession:
        ended = CalendarTools.normalize(timestamp) if timestamp else None
        await self.execute(
            "UPDATE workout_sessions SET ended_at = ?, updated_at = ? WHERE id = ?;",
            (ended, now_iso(), session_id),
        )
        return await self._updated(session_id)

    async def set_notes(self, session_id: str, notes: str | None) -> WorkoutSession:
        await self.execute(
            "UPDATE workout_sessions SET notes = ?, updated_at = ? WHERE id = ?;",
            (notes, now_iso(), session_id),
        )
        return await self._updated(session_id)

    async def delete(self, session_id: str) -> None:
        """Delete a session together with its exercises and their sets."""
        if await self.get(session_id) is None:
            raise ValueError("session not found")
        await self.execute("DELETE FROM workout_sessions WHERE id = ?;", (session_id,))

    async def get(self, session_id: str) -> Optional[WorkoutSession]:
        row = await self.fetch_one(self._SELECT + " WHERE id = ?;", (session_id,))
        return self._to_session(row) if row else None

    async def list(
        self,
        user_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        descending: bool = True,
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[WorkoutSession]:
        if not user_id:
            return []
        query = self._SELECT + " WHERE user_id = ?"
        params: list = [user_id]
        if start:
            query += " AND started_at >= ?"
            params.append(start)
        if end:
            query += " AND started_at <= ?"
            params.append(end)
        order = "DESC" if descending else "ASC"
        query += f" ORDER BY started_at {order}, id {order}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        if offset is not None:
            if limit is None:
                query += " LIMIT -1"
            query += " OFFSET ?"
            params.append(offset)
        query += ";"
        rows = await self.fetch_all(query, tuple(params))
        return [self._to_session(r) for r in rows]

    async def list_by_date_range(
        self, user_id: str, start: str, end: str
    ) -> List[WorkoutSession]:
        """Sessions with ``started_at`` in ``[start, end]``, oldest first."""
        return await self.list(user_id, start, end, descending=False)

    async def list_open(self, user_id: str) -> List[WorkoutSession]:
        rows = await self.fetch_all(
            self._SELECT
            + " WHERE user_id = ? AND ended_at IS NULL ORDER BY started_at DESC;",
            (user_id,),
        )
        return [self._to_session(r) for r in rows]


class WorkoutExerciseRepository(AsyncBaseRepository):
    """Repository linking sessions to exercises."""

    _COLUMNS = (
        "id, session_id, exercise_id, position, machine_name, seat_height, bench_angle_deg, grip"
    )
    _METADATA = ("machine_name", "seat_height", "bench_angle_deg", "grip")

    @staticmethod
    def _to_workout_exercise(row: Tuple) -> WorkoutExercise:
        weid, sid, eid, pos, machine, seat, angle, grip = row
        return WorkoutExercise(
            id=weid,
            session_id=sid,
            exercise_id=eid,
            order=pos,
            machine_name=machine,
            seat_height=seat,
            bench_angle_deg=angle,
            grip=grip,
        )

    async def next_order(self, session_id: str) -> int:
        row = await self.fetch_one(
            "SELECT COALESCE(MAX(position), 0) FROM workout_exercises WHERE session_id = ?;",
            (session_id,),
        )
        return int(row[0]) + 1

    async def create(
        self,
        session_id: str,
        exercise_id: str,
        order: int,
        machine_name: str | None = None,
        seat_height: str | None = None,
        bench_angle_deg: int | None = None,
        grip: str | None = None,
    ) -> WorkoutExercise:
        weid = generate_id()
        await self.execute(
            f"INSERT INTO workout_exercises ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                weid,
                session_id,
                exercise_id,
                order,
                machine_name,
                seat_height,
                bench_angle_deg,
                grip,
            ),
        )
        return WorkoutExercise(
            id=weid,
            session_id=session_id,
            exercise_id=exercise_id,
            order=order,
            machine_name=machine_name,
            seat_height=seat_height,
            bench_angle_deg=bench_angle_deg,
            grip=grip,
        )

    async def update_metadata(self, workout_exercise_id: str, **fields) -> WorkoutExercise:
        unknown = set(fields) - set(self._METADATA)
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            await self.execute(
                f"UPDATE workout_exercises SET {assignments} WHERE id = ?;",
                tuple(fields.values()) + (workout_exercise_id,),
            )
        record = await self.get(workout_exercise_id)
        if record is None:
            raise ValueError("workout exercise not found")
        return record

    async def delete(self, workout_exercise_id: str) -> None:
        await self.execute(
            "DELETE FROM workout_exercises WHERE id = ?;", (workout_exercise_id,)
        )

    async def renumber(self, session_id: str) -> None:
        """Rewrite positions within a session as 1..n, keeping their order."""
        rows = await self.fetch_all(
            "SELECT id FROM workout_exercises WHERE session_id = ? ORDER BY position, id;",
            (session_id,),
        )
        await self.execute_many(
            "UPDATE workout_exercises SET position = ? WHERE id = ?;",
            [(idx, weid) for idx, (weid,) in enumerate(rows, start=1)],
        )

    async def get(self, workout_exercise_id: str) -> Optional[WorkoutExercise]:
        row = await self.fetch_one(
            f"SELECT {self._COLUMNS} FROM workout_exercises WHERE id = ?;",
            (workout_exercise_id,),
        )
        return self._to_workout_exercise(row) if row else None

    async def list_for_session(self, session_id: str) -> List[WorkoutExercise]:
        if not session_id:
            return []
        rows = await self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_exercises WHERE session_id = ? ORDER BY position ASC, id ASC;",
            (session_id,),
        )
        return [self._to_workout_exercise(r) for r in rows]


class WorkoutSetRepository(AsyncBaseRepository):
    """Repository for performed sets."""

    _COLUMNS = "id, workout_exercise_id, position, reps, weight, created_at, updated_at"

    @staticmethod
    def _to_set(row: Tuple) -> WorkoutSet:
        sid, weid, pos, reps, weight, created, updated = row
        return WorkoutSet(
            id=sid,
            workout_exercise_id=weid,
            order=pos,
            reps=int(reps),
            weight=float(weight),
            created_at=created,
            updated_at=updated,
        )

    async def next_order(self, workout_exercise_id: str) -> int:
        row = await self.fetch_one(
            "SELECT COALESCE(MAX(position), 0) FROM workout_sets WHERE workout_exercise_id = ?;",
            (workout_exercise_id,),
        )
        return int(row[0]) + 1

    async def create(
        self,
        workout_exercise_id: str,
        reps: int,
        weight: float,
        order: int,
        set_id: str | None = None,
    ) -> WorkoutSet:
        sid = set_id or generate_id()
        ts = now_iso()
        await self.execute(
            f"INSERT INTO workout_sets ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (sid, workout_exercise_id, order, reps, weight, ts, ts),
        )
        return WorkoutSet(
            id=sid,
            workout_exercise_id=workout_exercise_id,
            order=order,
            reps=reps,
            weight=weight,
            created_at=ts,
            updated_at=ts,
        )

    async def update(
        self, set_id: str, reps: int | None = None, weight: float | None = None
    ) -> WorkoutSet:
        updates = ["updated_at = ?"]
        params: list = [now_iso()]
        if reps is not None:
            updates.append("reps = ?")
            params.append(reps)
        if weight is not None:
            updates.append("weight = ?")
            params.append(weight)
        params.append(set_id)
        await self.execute(
            f"UPDATE workout_sets SET {', '.join(updates)} WHERE id = ?;", tuple(params)
        )
        record = await self.get(set_id)
        if record is None:
            raise ValueError("set not found")
        return record

    async def delete(self, set_id: str) -> None:
        await self.execute("DELETE FROM workout_sets WHERE id = ?;", (set_id,))

    async def renumber(self, workout_exercise_id: str) -> None:
        rows = await self.fetch_all(
            "SELECT id FROM workout_sets WHERE workout_exercise_id = ? ORDER BY position, id;",
            (workout_exercise_id,),
        )
        await self.execute_many(
            "UPDATE workout_sets SET position = ? WHERE id = ?;",
            [(idx, sid) for idx, (sid,) in enumerate(rows, start=1)],
        )

    async def get(self, set_id: str) -> Optional[WorkoutSet]:
        row = await self.fetch_one(
            f"SELECT {self._COLUMNS} FROM workout_sets WHERE id = ?;", (set_id,)
        )
        return self._to_set(row) if row else None

    async def list_for_workout_exercise(
        self, workout_exercise_id: str
    ) -> List[WorkoutSet]:
        if not workout_exercise_id:
            return []
        rows = await self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_sets WHERE workout_exercise_id = ? ORDER BY position ASC, id ASC;",
            (workout_exercise_id,),
        )
        return [self._to_set(r) for r in rows]

    async def list_for_exercise(
        self,
        user_id: str,
        exercise_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[WorkoutSet]:
        """All sets of ``exercise_id`` logged by ``user_id``, optionally limited
        to sessions started within ``[start, end]``."""
        cols = ", ".join(f"s.{c.strip()}" for c in self._COLUMNS.split(","))
        query = (
            f"SELECT {cols} FROM workout_sets s "
            "JOIN workout_exercises we ON we.id = s.workout_exercise_id "
            "JOIN workout_sessions ws ON ws.id = we.session_id "
            "WHERE ws.user_id = ? AND we.exercise_id = ?"
        )
        params: list = [user_id, exercise_id]
        if start:
            query += " AND ws.started_at >= ?"
            params.append(start)
        if end:
            query += " AND ws.started_at <= ?"
            params.append(end)
        query += " ORDER BY s.created_at ASC, s.id ASC;"
        rows = await self.fetch_all(query, tuple(params))
        return [self._to_set(r) for r in rows]

    async def fetch_for_sessions(
        self, session_ids: Sequence[str]
    ) -> List[Tuple[str, str, WorkoutSet]]:
        """Return ``(session_id, exercise_id, set)`` for every set under the
        given sessions, read in as few queries as the parameter limit allows."""
        cols = ", ".join(f"s.{c.strip()}" for c in self._COLUMNS.split(","))
        ids = list(dict.fromkeys(session_ids))
        result: List[Tuple[str, str, WorkoutSet]] = []
        for i in range(0, len(ids), _MAX_PARAMS):
            chunk = ids[i : i + _MAX_PARAMS]
            marks = ", ".join("?" for _ in chunk)
            rows = await self.fetch_all(
                f"SELECT we.session_id, we.exercise_id, {cols} FROM workout_sets s "
                "JOIN workout_exercises we ON we.id = s.workout_exercise_id "
                f"WHERE we.session_id IN ({marks}) "
                "ORDER BY we.session_id, we.position, s.position, s.id;",
                tuple(chunk),
            )
            for row in rows:
                result.append((row[0], row[1], self._to_set(row[2:])))
        return result


class Repositories:
    """All repositories bound to one database file."""

    def __init__(self, db_path: str = "workout.db") -> None:
        self.db_path = db_path
        self.users = UserRepository(db_path)
        self.categories = TrainingCategoryRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.sessions = WorkoutSessionRepository(db_path)
        self.workout_exercises = WorkoutExerciseRepository(db_path)
        self.sets = WorkoutSetRepository(db_path)
