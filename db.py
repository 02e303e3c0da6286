# db.py
import sqlite3
import threading
from pathlib import Path

from utils import now_iso

_db_lock = threading.Lock()


def db_connect(db_path):
    """Return a sqlite3 connection (row factory set)."""
    con = sqlite3.connect(str(db_path))
    con.row_factory = sqlite3.Row
    return con


def db_init(db_path):
    """Create tables (idempotent)."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with _db_lock, db_connect(db_path) as con:
        cur = con.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS uploads (
                file_id TEXT PRIMARY KEY,
                file_name TEXT NOT NULL,
                size INTEGER NOT NULL,
                total_chunks INTEGER NOT NULL,
                is_protected INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                expires_at INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_uploads_created ON uploads (created_at)")
        con.commit()


class UploadHistory:
    """Display index of recent uploads; session metadata stays authoritative."""

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        db_init(self.db_path)

    def record(self, meta):
        with _db_lock, db_connect(self.db_path) as con:
            con.execute(
                """
                INSERT INTO uploads (file_id, file_name, size, total_chunks, is_protected, status, created_at, expires_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(file_id) DO UPDATE SET
                  file_name=excluded.file_name,
                  size=excluded.size,
                  total_chunks=excluded.total_chunks,
                  is_protected=excluded.is_protected,
                  status=excluded.status,
                  created_at=excluded.created_at,
                  expires_at=excluded.expires_at,
                  updated_at=excluded.updated_at
                """,
                (
                    meta.file_id,
                    meta.file_name,
                    meta.original_file_size,
                    meta.total_chunks,
                    int(meta.is_protected),
                    meta.status.value,
                    meta.created_at,
                    meta.expires_at,
                    now_iso(),
                ),
            )
            con.commit()

    def set_status(self, file_ids, status):
        if not file_ids:
            return 0
        with _db_lock, db_connect(self.db_path) as con:
            cur = con.executemany(
                "UPDATE uploads SET status=?, updated_at=? WHERE file_id=?",
                [(status, now_iso(), fid) for fid in file_ids],
            )
            con.commit()
            return cur.rowcount

    def recent(self, limit=20):
        with _db_lock, db_connect(self.db_path) as con:
            cur = con.cursor()
            cur.execute(
                "SELECT * FROM uploads ORDER BY created_at DESC LIMIT ?",
                (int(limit),),
            )
            return [
                {
                    "fileId": r["file_id"],
                    "fileName": r["file_name"],
                    "size": r["size"],
                    "totalChunks": r["total_chunks"],
                    "isProtected": bool(r["is_protected"]),
                    "status": r["status"],
                    "createdAt": r["created_at"],
                    "expiresAt": r["expires_at"],
                    "updatedAt": r["updated_at"],
                }
                for r in cur.fetchall()
            ]
