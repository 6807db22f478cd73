"""SQLite catalog: APIs, tags, and scrape run history."""

import os
import sqlite3
import threading
import uuid
from typing import Dict, List, Optional

from .models import ScrapeRun

API_COLUMNS = (
    "id", "name", "description", "version", "source", "source_url", "github_url",
    "openapi_url", "openapi_path", "collection_path", "docs_path", "stars",
    "repo_owner", "repo_name", "file_path", "provider", "logo_url", "openapi_version",
)

ORDERABLE = {
    "created_at": "created_at DESC",
    "updated_at": "updated_at DESC",
    "stars": "stars DESC",
    "name": "name COLLATE NOCASE ASC",
}

RUN_COLUMNS = {"completed_at", "items_found", "items_processed", "items_failed", "status", "error"}


class Database:
    def __init__(self, db_path: str = "data/catalog.db"):
        self.db_path = db_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._local = threading.local()
        self._init_db()

    @property
    def _conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA foreign_keys=ON")
        return self._local.conn

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _init_db(self):
        conn = self._conn
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS apis (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT DEFAULT '',
                version TEXT,
                source TEXT,
                source_url TEXT,
                github_url TEXT,
                openapi_url TEXT,
                openapi_path TEXT,
                collection_path TEXT,
                docs_path TEXT,
                stars INTEGER DEFAULT 0,
                repo_owner TEXT DEFAULT '',
                repo_name TEXT DEFAULT '',
                file_path TEXT DEFAULT '',
                provider TEXT DEFAULT '',
                logo_url TEXT,
                openapi_version TEXT DEFAULT '',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_apis_name ON apis(name);
            CREATE INDEX IF NOT EXISTS idx_apis_stars ON apis(stars DESC);
            CREATE INDEX IF NOT EXISTS idx_apis_created ON apis(created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_apis_source_file ON apis(repo_owner, repo_name, file_path);

            CREATE TABLE IF NOT EXISTS tags (
                id TEXT PRIMARY KEY,
                name TEXT UNIQUE NOT NULL
            );

            CREATE TABLE IF NOT EXISTS api_tags (
                api_id TEXT,
                tag_id TEXT,
                PRIMARY KEY (api_id, tag_id),
                FOREIGN KEY (api_id) REFERENCES apis(id) ON DELETE CASCADE,
                FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS scrape_runs (
                id TEXT PRIMARY KEY,
                source TEXT DEFAULT '',
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                items_found INTEGER DEFAULT 0,
                items_processed INTEGER DEFAULT 0,
                items_failed INTEGER DEFAULT 0,
                status TEXT DEFAULT 'pending',
                error TEXT
            );
        """)
        conn.commit()

    # -- APIs ---------------------------------------------------------------

    def save_api(self, api: dict) -> str:
        """Insert or update an API record keyed by id."""
        values = {col: api.get(col) for col in API_COLUMNS}
        if values["stars"] is None:
            values["stars"] = 0
        cols = ", ".join(API_COLUMNS)
        placeholders = ", ".join("?" for _ in API_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in API_COLUMNS if c != "id")
        self._conn.execute(
            f"""INSERT INTO apis ({cols}) VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {updates}, updated_at = CURRENT_TIMESTAMP""",
            tuple(values[c] for c in API_COLUMNS),
        )
        self._conn.commit()
        return values["id"]

    def get_api(self, api_id: str) -> Optional[dict]:
        row = self._conn.execute("SELECT * FROM apis WHERE id = ?", (api_id,)).fetchone()
        return dict(row) if row else None

    def list_apis(self, limit: int = 50, offset: int = 0, search: str = "",
                  order_by: str = "created_at") -> List[dict]:
        query = "SELECT * FROM apis"
        params: list = []
        if search:
            query += " WHERE name LIKE ? OR description LIKE ?"
            params.extend([f"%{search}%", f"%{search}%"])
        query += f" ORDER BY {ORDERABLE.get(order_by, ORDERABLE['created_at'])} LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        return [dict(r) for r in self._conn.execute(query, params).fetchall()]

    def count_apis(self, search: str = "") -> int:
        if search:
            row = self._conn.execute(
                "SELECT COUNT(*) AS cnt FROM apis WHERE name LIKE ? OR description LIKE ?",
                (f"%{search}%", f"%{search}%"),
            ).fetchone()
        else:
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM apis").fetchone()
        return row["cnt"]

    def update_docs_path(self, api_id: str, docs_path: str):
        self._conn.execute(
            "UPDATE apis SET docs_path = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (docs_path, api_id),
        )
        self._conn.commit()

    def api_exists(self, name: str, version: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM apis WHERE name = ? AND version = ?", (name, version)
        ).fetchone()
        return row is not None

    def source_file_exists(self, owner: str, repo: str, path: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM apis WHERE repo_owner = ? AND repo_name = ? AND file_path = ?",
            (owner, repo, path),
        ).fetchone()
        return row is not None

    # -- Tags ---------------------------------------------------------------

    def get_or_create_tag(self, name: str) -> dict:
        self._conn.execute(
            "INSERT OR IGNORE INTO tags (id, name) VALUES (?, ?)", (str(uuid.uuid4()), name)
        )
        self._conn.commit()
        row = self._conn.execute("SELECT * FROM tags WHERE name = ?", (name,)).fetchone()
        return dict(row)

    def add_tag_to_api(self, api_id: str, tag_id: str):
        self._conn.execute(
            "INSERT OR IGNORE INTO api_tags (api_id, tag_id) VALUES (?, ?)", (api_id, tag_id)
        )
        self._conn.commit()

    def get_api_tags(self, api_id: str) -> List[str]:
        rows = self._conn.execute(
            """SELECT t.name FROM tags t
               JOIN api_tags at ON t.id = at.tag_id
               WHERE at.api_id = ? ORDER BY t.name""",
            (api_id,),
        ).fetchall()
        return [r["name"] for r in rows]

    def list_tags(self) -> List[dict]:
        rows = self._conn.execute(
            """SELECT t.id, t.name, COUNT(at.api_id) AS api_count
               FROM tags t LEFT JOIN api_tags at ON t.id = at.tag_id
               GROUP BY t.id ORDER BY t.name"""
        ).fetchall()
        return [dict(r) for r in rows]

    def get_apis_by_tag(self, tag_name: str) -> List[dict]:
        rows = self._conn.execute(
            """SELECT a.* FROM apis a
               JOIN api_tags at ON a.id = at.api_id
               JOIN tags t ON at.tag_id = t.id
               WHERE t.name = ? ORDER BY a.stars DESC""",
            (tag_name,),
        ).fetchall()
        return [dict(r) for r in rows]

    # -- Scrape runs --------------------------------------------------------

    def create_scrape_run(self, run: ScrapeRun):
        self._conn.execute(
            """INSERT INTO scrape_runs (id, source, started_at, status)
               VALUES (?, ?, ?, ?)""",
            (run.id, run.source, run.started_at, run.status.value),
        )
        self._conn.commit()

    def update_scrape_run(self, run_id: str, **updates):
        fields = {k: v for k, v in updates.items() if k in RUN_COLUMNS}
        if not fields:
            return
        assignments = ", ".join(f"{k} = ?" for k in fields)
        values = [getattr(v, "value", v) for v in fields.values()]
        self._conn.execute(
            f"UPDATE scrape_runs SET {assignments} WHERE id = ?", (*values, run_id)
        )
        self._conn.commit()

    def get_scrape_run(self, run_id: str) -> Optional[dict]:
        row = self._conn.execute("SELECT * FROM scrape_runs WHERE id = ?", (run_id,)).fetchone()
        return dict(row) if row else None

    def get_latest_scrape_run(self) -> Optional[dict]:
        row = self._conn.execute(
            "SELECT * FROM scrape_runs ORDER BY started_at DESC LIMIT 1"
        ).fetchone()
        return dict(row) if row else None

    # -- Stats --------------------------------------------------------------

    def get_stats(self) -> Dict:
        total_apis = self._conn.execute("SELECT COUNT(*) AS cnt FROM apis").fetchone()["cnt"]
        total_tags = self._conn.execute("SELECT COUNT(*) AS cnt FROM tags").fetchone()["cnt"]
        by_source = self._conn.execute(
            "SELECT source, COUNT(*) AS cnt FROM apis GROUP BY source ORDER BY source"
        ).fetchall()
        return {
            "total_apis": total_apis,
            "total_tags": total_tags,
            "sources": {r["source"] or "unknown": r["cnt"] for r in by_source},
            "latest_scrape_run": self.get_latest_scrape_run(),
        }
