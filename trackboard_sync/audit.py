from __future__ import annotations

import atexit
import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

AUDIT_FIELDS = ("ts_ns", "action", "op_kind", "op_id", "attempts", "detail")


def audit_entry(action: str, *, op_kind: str, op_id: str, attempts: int, detail: str = "") -> dict[str, Any]:
    return {
        "ts_ns": time.time_ns(),
        "action": action,
        "op_kind": op_kind,
        "op_id": op_id,
        "attempts": int(attempts),
        "detail": detail,
    }


class JsonlAuditSink:
    """Append-only JSON-lines log of persistence outcomes."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, entry: dict[str, Any]) -> None:
        self.log(entry)

    def log(self, entry: dict[str, Any]) -> None:
        row = {key: entry.get(key) for key in AUDIT_FIELDS}
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(row, separators=(",", ":"), sort_keys=True))
                f.write("\n")

    def rows(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        out: list[dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return out

    def summarize(self) -> dict[str, Any]:
        action_counts: dict[str, int] = {}
        kind_counts: dict[str, int] = {}
        rows = self.rows()
        for row in rows:
            action = str(row.get("action", ""))
            kind = str(row.get("op_kind", ""))
            action_counts[action] = action_counts.get(action, 0) + 1
            kind_counts[kind] = kind_counts.get(kind, 0) + 1
        return {"total": len(rows), "by_action": action_counts, "by_kind": kind_counts}

    def prune(self, *, max_rows: int | None = None) -> int:
        if max_rows is None or max_rows <= 0 or not self.path.exists():
            return 0
        with self._lock:
            lines = [line for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]
            if len(lines) <= max_rows:
                return 0
            kept = lines[-max_rows:]
            with self.path.open("w", encoding="utf-8") as f:
                for line in kept:
                    f.write(line)
                    f.write("\n")
        return len(lines) - len(kept)


class SQLiteAuditSink:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn: sqlite3.Connection | None = conn
        self._init_db(conn)
        atexit.register(self.close)

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sync_audit (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts_ns INTEGER,
                action TEXT,
                op_kind TEXT,
                op_id TEXT,
                attempts INTEGER,
                detail TEXT
            )
            """
        )
        conn.commit()

    def __call__(self, entry: dict[str, Any]) -> None:
        self.log(entry)

    def log(self, entry: dict[str, Any]) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.execute(
                "INSERT INTO sync_audit (ts_ns, action, op_kind, op_id, attempts, detail) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    int(entry.get("ts_ns", 0)),
                    str(entry.get("action", "")),
                    str(entry.get("op_kind", "")),
                    str(entry.get("op_id", "")),
                    int(entry.get("attempts", 0)),
                    str(entry.get("detail", "")),
                ),
            )
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None

    def rows(self) -> list[dict[str, Any]]:
        with self._lock:
            if self._conn is None:
                return []
            cursor = self._conn.execute(
                "SELECT ts_ns, action, op_kind, op_id, attempts, detail FROM sync_audit ORDER BY id ASC"
            )
            return [dict(zip(AUDIT_FIELDS, row)) for row in cursor]

    def summarize(self) -> dict[str, Any]:
        with self._lock:
            if self._conn is None:
                return {"total": 0, "by_action": {}, "by_kind": {}}
            total = int(self._conn.execute("SELECT COUNT(*) FROM sync_audit").fetchone()[0])
            by_action = {
                str(row[0]): int(row[1])
                for row in self._conn.execute("SELECT action, COUNT(*) FROM sync_audit GROUP BY action")
            }
            by_kind = {
                str(row[0]): int(row[1])
                for row in self._conn.execute("SELECT op_kind, COUNT(*) FROM sync_audit GROUP BY op_kind")
            }
            return {"total": total, "by_action": by_action, "by_kind": by_kind}

    def prune(self, *, max_rows: int | None = None) -> int:
        if max_rows is None or max_rows <= 0:
            return 0
        with self._lock:
            if self._conn is None:
                return 0
            total = int(self._conn.execute("SELECT COUNT(*) FROM sync_audit").fetchone()[0])
            overflow = total - max_rows
            if overflow <= 0:
                return 0
            self._conn.execute(
                "DELETE FROM sync_audit WHERE id IN (SELECT id FROM sync_audit ORDER BY id ASC LIMIT ?)",
                (overflow,),
            )
            self._conn.commit()
            return overflow


def open_audit_sink(path: str | Path) -> JsonlAuditSink | SQLiteAuditSink:
    """Pick the sink by suffix: ``.db``/``.sqlite`` use SQLite, anything else JSONL."""
    target = Path(path)
    if target.suffix.lower() in {".db", ".sqlite", ".sqlite3"}:
        return SQLiteAuditSink(target)
    return JsonlAuditSink(target)
