"""SQLite persistence adapter for story workspace snapshots."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from story_sync.domain.models import WorkspaceSnapshot

SNAPSHOT_SCHEMA_VERSION = "workspace_snapshot.v1"


@dataclass(frozen=True)
class StoredWorkspace:
    """Persisted workspace metadata."""

    workspace_id: str
    schema_version: str
    scene_count: int
    updated_at_utc: str


class SQLiteWorkspaceStore:
    """Save and load whole workspace snapshots as JSON payloads."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS workspace_snapshots (
                    workspace_id TEXT PRIMARY KEY,
                    schema_version TEXT NOT NULL,
                    scene_count INTEGER NOT NULL,
                    payload_json TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL
                )
                """
            )

    def save(self, *, workspace_id: str, snapshot: WorkspaceSnapshot) -> StoredWorkspace:
        stored = StoredWorkspace(
            workspace_id=workspace_id,
            schema_version=SNAPSHOT_SCHEMA_VERSION,
            scene_count=len(snapshot.scenes),
            updated_at_utc=datetime.now(UTC).isoformat(),
        )
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO workspace_snapshots (
                    workspace_id, schema_version, scene_count, payload_json, updated_at_utc
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(workspace_id) DO UPDATE SET
                    schema_version = excluded.schema_version,
                    scene_count = excluded.scene_count,
                    payload_json = excluded.payload_json,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (
                    stored.workspace_id,
                    stored.schema_version,
                    stored.scene_count,
                    snapshot.model_dump_json(),
                    stored.updated_at_utc,
                ),
            )
        return stored

    def load(self, *, workspace_id: str) -> WorkspaceSnapshot | None:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT schema_version, payload_json
                FROM workspace_snapshots
                WHERE workspace_id = ?
                """,
                (workspace_id,),
            ).fetchone()
        if row is None:
            return None
        schema_version = str(row["schema_version"])
        if schema_version != SNAPSHOT_SCHEMA_VERSION:
            raise RuntimeError(
                "Workspace snapshot schema mismatch: "
                f"database={schema_version}, expected={SNAPSHOT_SCHEMA_VERSION}"
            )
        return WorkspaceSnapshot.model_validate_json(str(row["payload_json"]))

    def list_workspaces(self) -> list[StoredWorkspace]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT workspace_id, schema_version, scene_count, updated_at_utc
                FROM workspace_snapshots
                ORDER BY updated_at_utc DESC, workspace_id ASC
                """
            ).fetchall()
        return [self._workspace_from_row(row) for row in rows]

    def delete(self, *, workspace_id: str) -> bool:
        with self._connect() as connection:
            cursor = connection.execute(
                "DELETE FROM workspace_snapshots WHERE workspace_id = ?",
                (workspace_id,),
            )
        return cursor.rowcount > 0

    @staticmethod
    def _workspace_from_row(row: sqlite3.Row) -> StoredWorkspace:
        return StoredWorkspace(
            workspace_id=str(row["workspace_id"]),
            schema_version=str(row["schema_version"]),
            scene_count=int(row["scene_count"]),
            updated_at_utc=str(row["updated_at_utc"]),
        )
