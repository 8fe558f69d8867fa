from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from .models import Panel, ResultRecord


class StoreError(RuntimeError):
    pass


def _row_to_panel(row: sqlite3.Row) -> Panel:
    logins = json.loads(row["logins_json"])
    if not isinstance(logins, list):
        raise StoreError(f"panel {row['panel_id']}: logins must be a JSON list")
    return Panel(
        storage_name=row["storage_name"],
        storage_id=row["storage_id"],
        storage_code=row["storage_code"],
        url=row["url"],
        logins=tuple(str(login) for login in logins),
        panel_id=int(row["panel_id"]),
    )


class Store:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row

    def close(self) -> None:
        self.conn.close()

    def init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS storage_monitor_list (
                panel_id INTEGER PRIMARY KEY,
                storage_name TEXT NOT NULL,
                storage_id TEXT NOT NULL,
                storage_code TEXT NOT NULL,
                url TEXT NOT NULL,
                logins_json TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS storage_monitor (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                storage_id INTEGER NOT NULL,
                storage_code TEXT NOT NULL,
                query_time TEXT NOT NULL,
                response_bytes BLOB,
                latency INTEGER,
                bucket TEXT NOT NULL,
                result TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_storage_monitor_storage_time
                ON storage_monitor(storage_id, query_time);
            """
        )
        self.conn.commit()

    def add_panel(self, panel: Panel) -> None:
        self.conn.execute(
            """
            INSERT INTO storage_monitor_list(panel_id, storage_name, storage_id, storage_code, url, logins_json)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(panel_id) DO UPDATE SET
                storage_name = excluded.storage_name,
                storage_id = excluded.storage_id,
                storage_code = excluded.storage_code,
                url = excluded.url,
                logins_json = excluded.logins_json
            """,
            (
                panel.panel_id,
                panel.storage_name,
                panel.storage_id,
                panel.storage_code,
                panel.url,
                json.dumps(list(panel.logins)),
            ),
        )
        self.conn.commit()

    def list_panels(self) -> list[Panel]:
        try:
            rows = self.conn.execute("SELECT * FROM storage_monitor_list ORDER BY panel_id").fetchall()
            return [_row_to_panel(row) for row in rows]
        except (sqlite3.Error, json.JSONDecodeError) as exc:
            raise StoreError(f"failed to read panel list: {exc}") from exc

    def insert_result(self, record: ResultRecord, bucket: str) -> None:
        self.conn.execute(
            """
            INSERT INTO storage_monitor(
                storage_id, storage_code, query_time, response_bytes, latency, bucket, result
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.storage_id,
                record.storage_code,
                record.query_time,
                record.response_bytes,
                record.latency_ms,
                bucket,
                json.dumps(record.result, sort_keys=True),
            ),
        )
        self.conn.commit()

    def list_results(self, storage_id: int | None = None) -> list[dict[str, Any]]:
        if storage_id is None:
            rows = self.conn.execute("SELECT * FROM storage_monitor ORDER BY id").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM storage_monitor WHERE storage_id = ? ORDER BY id",
                (storage_id,),
            ).fetchall()
        output: list[dict[str, Any]] = []
        for row in rows:
            output.append(
                {
                    "storage_id": int(row["storage_id"]),
                    "storage_code": row["storage_code"],
                    "query_time": row["query_time"],
                    "response_bytes": row["response_bytes"],
                    "latency": row["latency"],
                    "bucket": row["bucket"],
                    "result": json.loads(row["result"]),
                }
            )
        return output

    def summary_counts(self) -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT bucket, COUNT(*) AS count FROM storage_monitor GROUP BY bucket"
        ).fetchall()
        return {str(row["bucket"]): int(row["count"]) for row in rows}
