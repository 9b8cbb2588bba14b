"""SQLite storage adapter.

Implements the core credential and counter ports using a simple SQLite
database.
"""

from __future__ import annotations

from datetime import datetime, timezone
import sqlite3
from typing import Optional

from core.errors import UnknownTenantError
from core.models import KudosCount, TenantCredentials


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_scopes(scopes: frozenset[str]) -> str:
    return ",".join(sorted(scopes))


def _parse_scopes(raw: str) -> frozenset[str]:
    return frozenset(scope.strip() for scope in raw.split(",") if scope.strip())


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the credential and counter ports."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        # Foreign keys are per-connection in SQLite.
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - workspaces: one credentials row per installed workspace
        - workspace_kudos: per-workspace, per-user kudos counters
        """

        with self._connect() as conn:
            # workspaces holds the whole OAuth record for a workspace and is
            # replaced as a unit on reinstall or token refresh.
            # Fields:
            # - team_id: Slack workspace id (PRIMARY KEY)
            # - team_name: display name at install time
            # - access_token: bot token used for Web API calls
            # - bot_user_id: user id of the installed bot
            # - scopes: comma separated granted scopes
            # - expires_at: token expiry for rotating tokens, NULL otherwise
            # - refresh_token: refresh token for rotating tokens
            # - last_updated: when the row was last written
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workspaces (
                    team_id TEXT NOT NULL PRIMARY KEY,
                    team_name TEXT NOT NULL,
                    access_token TEXT NOT NULL,
                    bot_user_id TEXT NOT NULL,
                    scopes TEXT NOT NULL,
                    expires_at TIMESTAMP,
                    refresh_token TEXT,
                    last_updated TIMESTAMP NOT NULL
                )
                """
            )
            # workspace_kudos cannot reference a workspace that was never
            # installed; the foreign key makes orphan increments fail.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workspace_kudos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    team_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    count INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(team_id, user_id),
                    FOREIGN KEY(team_id) REFERENCES workspaces(team_id)
                )
                """
            )

    def save_credentials(self, credentials: TenantCredentials) -> None:
        """Upsert the full credentials record for a workspace."""

        expires_at = credentials.expires_at.isoformat() if credentials.expires_at else None
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO workspaces (
                    team_id,
                    team_name,
                    access_token,
                    bot_user_id,
                    scopes,
                    expires_at,
                    refresh_token,
                    last_updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(team_id) DO UPDATE SET
                    team_name = excluded.team_name,
                    access_token = excluded.access_token,
                    bot_user_id = excluded.bot_user_id,
                    scopes = excluded.scopes,
                    expires_at = excluded.expires_at,
                    refresh_token = excluded.refresh_token,
                    last_updated = excluded.last_updated
                """,
                (
                    credentials.team_id,
                    credentials.team_name,
                    credentials.access_token,
                    credentials.bot_user_id,
                    _format_scopes(credentials.scopes),
                    expires_at,
                    credentials.refresh_token,
                    credentials.last_updated.isoformat(),
                ),
            )

    @staticmethod
    def _row_to_credentials(row: sqlite3.Row) -> TenantCredentials:
        return TenantCredentials(
            team_id=row["team_id"],
            team_name=row["team_name"],
            access_token=row["access_token"],
            bot_user_id=row["bot_user_id"],
            scopes=_parse_scopes(row["scopes"]),
            last_updated=_parse_timestamp(row["last_updated"]) or datetime.now(timezone.utc),
            expires_at=_parse_timestamp(row["expires_at"]),
            refresh_token=row["refresh_token"] or None,
        )

    def get_credentials(self, team_id: str) -> Optional[TenantCredentials]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM workspaces WHERE team_id = ?",
                (team_id,),
            ).fetchone()
        return self._row_to_credentials(row) if row else None

    def list_credentials(self) -> list[TenantCredentials]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM workspaces ORDER BY team_id").fetchall()
        return [self._row_to_credentials(row) for row in rows]

    def workspace_exists(self, team_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM workspaces WHERE team_id = ?",
                (team_id,),
            ).fetchone()
        return row is not None

    def increment_or_create(self, team_id: str, user_id: str) -> int:
        """Atomically add one kudo for a user and return the new count.

        The upsert and the read-back share one IMMEDIATE transaction, so
        concurrent callers serialize on the SQLite write lock and no update
        is lost.
        """

        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO workspace_kudos (team_id, user_id, count)
                    VALUES (?, ?, 1)
                    ON CONFLICT(team_id, user_id) DO UPDATE SET count = count + 1
                    """,
                    (team_id, user_id),
                )
                row = conn.execute(
                    "SELECT count FROM workspace_kudos WHERE team_id = ? AND user_id = ?",
                    (team_id, user_id),
                ).fetchone()
            except sqlite3.IntegrityError as exc:
                conn.execute("ROLLBACK")
                raise UnknownTenantError(team_id) from exc
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()
        return int(row["count"])

    def top_n(self, team_id: str, limit: int) -> list[KudosCount]:
        """Return the users with the most kudos in a workspace."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT user_id, count
                FROM workspace_kudos
                WHERE team_id = ?
                ORDER BY count DESC, user_id ASC
                LIMIT ?
                """,
                (team_id, limit),
            ).fetchall()
        return [KudosCount(user_id=row["user_id"], count=int(row["count"])) for row in rows]
