import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from db_pool import SQLiteConnectionPool
from schemas import ItemStat, LearnerProfile, LearningPath, PracticeSession

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "data.db")

# Sessions kept per user; older entries are evicted on append.
SESSION_LOG_CAP = 1000

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


class StorageError(RuntimeError):
    """Raised when the practice store cannot be read or written."""


def _exec(sql: str, params: Iterable = ()):
    try:
        with _pool.get_connection() as con:
            cur = con.execute(sql, tuple(params))
            con.commit()
            return cur
    except sqlite3.Error as exc:
        raise StorageError(f"write failed: {exc}") from exc


def _exec_many(statements: Sequence[Tuple[str, Iterable]]) -> None:
    """Run several statements in one transaction."""
    try:
        with _pool.get_connection() as con:
            for sql, params in statements:
                con.execute(sql, tuple(params))
            con.commit()
    except sqlite3.Error as exc:
        raise StorageError(f"write failed: {exc}") from exc


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    try:
        with _pool.get_connection() as con:
            cur = con.execute(sql, tuple(params))
            return cur.fetchall()
    except sqlite3.Error as exc:
        raise StorageError(f"read failed: {exc}") from exc


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)


def _decode_json_field(value: Optional[str]) -> Any:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    value = value.strip()
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable JSON field (%d chars)", len(value))
        return None


def _coerce_to_utc(dt: Optional[datetime], fallback: Optional[datetime] = None) -> datetime:
    if dt is None:
        dt = fallback or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _coerce_to_utc(datetime.fromisoformat(text))
    except ValueError:
        try:
            return _coerce_to_utc(datetime.strptime(text, "%Y-%m-%d %H:%M:%S"))
        except ValueError:
            return None


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    try:
        with _pool.get_connection() as con:
            con.executescript(
                """
                PRAGMA foreign_keys = ON;
                PRAGMA journal_mode=WAL;

                CREATE TABLE IF NOT EXISTS item_stats (
                  user_id         TEXT NOT NULL,
                  item_id         TEXT NOT NULL,
                  category        TEXT NOT NULL,
                  correct         INTEGER NOT NULL DEFAULT 0,
                  total           INTEGER NOT NULL DEFAULT 0,
                  last_practiced  TEXT,
                  interval_index  INTEGER NOT NULL DEFAULT 0,
                  position        INTEGER NOT NULL DEFAULT 0,
                  PRIMARY KEY (user_id, item_id),
                  CHECK (correct >= 0 AND correct <= total)
                );

                CREATE INDEX IF NOT EXISTS idx_item_stats_category ON item_stats(user_id, category);

                CREATE TABLE IF NOT EXISTS practice_sessions (
                  seq         INTEGER PRIMARY KEY AUTOINCREMENT,
                  user_id     TEXT NOT NULL,
                  session_id  TEXT NOT NULL,
                  payload     TEXT NOT NULL,
                  created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_user ON practice_sessions(user_id, seq);

                CREATE TABLE IF NOT EXISTS learning_paths (
                  user_id     TEXT PRIMARY KEY,
                  path_json   TEXT NOT NULL,
                  updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS analytics_cache (
                  user_id      TEXT PRIMARY KEY,
                  payload_json TEXT NOT NULL,
                  cached_at    TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS learner_profiles (
                  user_id      TEXT PRIMARY KEY,
                  total_xp     INTEGER NOT NULL DEFAULT 0,
                  level        INTEGER NOT NULL DEFAULT 1,
                  days_played  INTEGER NOT NULL DEFAULT 0,
                  updated_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            con.commit()
    except sqlite3.Error as exc:
        raise StorageError(f"schema initialisation failed: {exc}") from exc


# -------------- item statistics --------------
def load_item_stats(user_id: str, category: Optional[str] = None) -> list[ItemStat]:
    """Return the user's item aggregates in first-reported order."""
    sql = (
        "SELECT item_id, category, correct, total, last_practiced, interval_index "
        "FROM item_stats WHERE user_id = ?"
    )
    params: list[Any] = [user_id]
    if category:
        sql += " AND category = ?"
        params.append(category)
    sql += " ORDER BY position, item_id"
    rows = _query(sql, params)
    return [
        ItemStat(
            item_id=row["item_id"],
            category=row["category"],
            correct=row["correct"],
            total=row["total"],
            last_practiced=_parse_timestamp(row["last_practiced"]),
            interval_index=row["interval_index"],
        )
        for row in rows
    ]


def save_item_stats(user_id: str, stats: Sequence[ItemStat]) -> None:
    """Upsert ``stats``; items not mentioned are left untouched."""
    if not stats:
        return
    existing = _query("SELECT COALESCE(MAX(position), -1) AS pos FROM item_stats WHERE user_id = ?", [user_id])
    next_position = int(existing[0]["pos"]) + 1
    statements = []
    for offset, stat in enumerate(stats):
        last_practiced = (
            _coerce_to_utc(stat.last_practiced).isoformat() if stat.last_practiced else None
        )
        statements.append(
            (
                """
                INSERT INTO item_stats(user_id, item_id, category, correct, total, last_practiced, interval_index, position)
                VALUES (?,?,?,?,?,?,?,?)
                ON CONFLICT(user_id, item_id) DO UPDATE SET
                  category=excluded.category,
                  correct=excluded.correct,
                  total=excluded.total,
                  last_practiced=excluded.last_practiced,
                  interval_index=excluded.interval_index
                """,
                (
                    user_id,
                    stat.item_id,
                    stat.category,
                    stat.correct,
                    stat.total,
                    last_practiced,
                    stat.interval_index,
                    next_position + offset,
                ),
            )
        )
    _exec_many(statements)


# -------------- session log --------------
def append_session(user_id: str, session: PracticeSession) -> None:
    """Append ``session`` and evict entries beyond :data:`SESSION_LOG_CAP`."""
    _exec_many(
        [
            (
                "INSERT INTO practice_sessions(user_id, session_id, payload) VALUES (?,?,?)",
                (user_id, session.id, session.model_dump_json()),
            ),
            (
                """
                DELETE FROM practice_sessions
                WHERE user_id = ? AND seq NOT IN (
                  SELECT seq FROM practice_sessions WHERE user_id = ? ORDER BY seq DESC LIMIT ?
                )
                """,
                (user_id, user_id, SESSION_LOG_CAP),
            ),
        ]
    )


def load_sessions(user_id: str) -> list[PracticeSession]:
    """Return the session log ordered oldest to newest."""
    rows = _query(
        "SELECT payload FROM practice_sessions WHERE user_id = ? ORDER BY seq DESC LIMIT ?",
        (user_id, SESSION_LOG_CAP),
    )
    sessions = [PracticeSession.model_validate_json(row["payload"]) for row in rows]
    sessions.reverse()
    return sessions


def count_sessions(user_id: str) -> int:
    rows = _query("SELECT COUNT(*) AS n FROM practice_sessions WHERE user_id = ?", [user_id])
    return int(rows[0]["n"])


# -------------- learning paths --------------
def load_learning_path(user_id: str) -> Optional[LearningPath]:
    rows = _query("SELECT path_json FROM learning_paths WHERE user_id = ?", [user_id])
    if not rows:
        return None
    return LearningPath.model_validate_json(rows[0]["path_json"])


def save_learning_path(user_id: str, path: LearningPath) -> None:
    _exec(
        """
        INSERT INTO learning_paths(user_id, path_json, updated_at)
        VALUES (?,?,CURRENT_TIMESTAMP)
        ON CONFLICT(user_id) DO UPDATE SET
          path_json=excluded.path_json,
          updated_at=CURRENT_TIMESTAMP
        """,
        (user_id, path.model_dump_json()),
    )


# -------------- analytics cache --------------
def load_cached_analytics(user_id: str) -> Optional[Tuple[Dict[str, Any], datetime]]:
    rows = _query("SELECT payload_json, cached_at FROM analytics_cache WHERE user_id = ?", [user_id])
    if not rows:
        return None
    payload = _decode_json_field(rows[0]["payload_json"])
    cached_at = _parse_timestamp(rows[0]["cached_at"])
    if not isinstance(payload, dict) or cached_at is None:
        return None
    return payload, cached_at


def save_cached_analytics(user_id: str, payload: Dict[str, Any], now: datetime) -> None:
    _exec(
        """
        INSERT INTO analytics_cache(user_id, payload_json, cached_at)
        VALUES (?,?,?)
        ON CONFLICT(user_id) DO UPDATE SET
          payload_json=excluded.payload_json,
          cached_at=excluded.cached_at
        """,
        (user_id, json_dumps(payload), _coerce_to_utc(now).isoformat()),
    )


def clear_cached_analytics(user_id: str) -> None:
    _exec("DELETE FROM analytics_cache WHERE user_id = ?", [user_id])


# -------------- learner profiles --------------
def load_profile(user_id: str) -> LearnerProfile:
    """Return the stored profile, or a fresh zero-XP profile."""
    rows = _query(
        "SELECT total_xp, level, days_played FROM learner_profiles WHERE user_id = ?",
        [user_id],
    )
    if not rows:
        return LearnerProfile(user_id=user_id)
    row = rows[0]
    return LearnerProfile(
        user_id=user_id,
        total_xp=row["total_xp"],
        level=row["level"],
        days_played=row["days_played"],
    )


def save_profile(profile: LearnerProfile) -> None:
    _exec(
        """
        INSERT INTO learner_profiles(user_id, total_xp, level, days_played, updated_at)
        VALUES (?,?,?,?,CURRENT_TIMESTAMP)
        ON CONFLICT(user_id) DO UPDATE SET
          total_xp=excluded.total_xp,
          level=excluded.level,
          days_played=excluded.days_played,
          updated_at=CURRENT_TIMESTAMP
        """,
        (profile.user_id, profile.total_xp, profile.level, profile.days_played),
    )
