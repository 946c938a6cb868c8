"""Database models and operations for liveblog posts and entries"""

import json
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from typing import Dict, List, Optional

DB_PATH = os.environ.get("DATABASE_PATH", "data/liveblog.db")


def init_db():
    """Initialize database with required tables"""
    db_dir = os.path.dirname(DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    with sqlite3.connect(DB_PATH) as conn:
        conn.executescript("""
        -- Live-coverage posts
        CREATE TABLE IF NOT EXISTS posts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            last_modified INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        -- Timestamped entries within a post
        CREATE TABLE IF NOT EXISTS entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            post_id INTEGER NOT NULL,
            update_id TEXT NOT NULL,
            timestamp INTEGER NOT NULL DEFAULT 0,
            modified INTEGER NOT NULL DEFAULT 0,
            author_id INTEGER NOT NULL DEFAULT 0,
            author TEXT NOT NULL DEFAULT '',
            coauthors TEXT NOT NULL DEFAULT '[]',
            body TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'published',
            is_pinned BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (post_id) REFERENCES posts (id) ON DELETE CASCADE,
            UNIQUE (post_id, update_id)
        );

        -- Indexes for the update feed queries
        CREATE INDEX IF NOT EXISTS idx_entries_post_timestamp ON entries(post_id, timestamp DESC);
        CREATE INDEX IF NOT EXISTS idx_entries_post_modified ON entries(post_id, modified);
        """)


@contextmanager
def get_db():
    """Context manager for database connections"""
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _entry_from_row(row) -> Dict:
    entry = dict(row)
    try:
        entry['coauthors'] = json.loads(entry.get('coauthors') or '[]')
    except ValueError:
        entry['coauthors'] = []
    entry['is_pinned'] = bool(entry.get('is_pinned'))
    return entry


class PostModel:
    @staticmethod
    def create_post(title: str) -> int:
        """Create a live-coverage post"""
        with get_db() as conn:
            cursor = conn.execute("INSERT INTO posts (title) VALUES (?)", (title,))
            return cursor.lastrowid

    @staticmethod
    def get_post(post_id: int) -> Optional[Dict]:
        with get_db() as conn:
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()
            return dict(row) if row else None

    @staticmethod
    def touch(conn, post_id: int, stamp: int):
        """Move the post's last_modified forward (never back) inside an open transaction"""
        conn.execute(
            "UPDATE posts SET last_modified = MAX(last_modified, ?) WHERE id = ?",
            (stamp, post_id)
        )


class EntryModel:
    @staticmethod
    def create_entry(post_id: int, body: str, author: str = '', author_id: int = 0,
                     coauthors: Optional[List[Dict]] = None, status: str = 'published',
                     is_pinned: bool = False, update_id: Optional[str] = None,
                     timestamp: Optional[int] = None) -> Dict:
        """Create entry and bump the post's last_modified"""
        update_id = update_id or str(uuid.uuid4())
        timestamp = int(time.time()) if timestamp is None else int(timestamp)
        with get_db() as conn:
            conn.execute("""
                INSERT INTO entries
                (post_id, update_id, timestamp, modified, author_id, author, coauthors, body, status, is_pinned)
                VALUES (?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
            """, (post_id, update_id, timestamp, author_id, author,
                  json.dumps(coauthors or []), body, status, bool(is_pinned)))
            PostModel.touch(conn, post_id, timestamp)
            row = conn.execute(
                "SELECT * FROM entries WHERE post_id = ? AND update_id = ?", (post_id, update_id)
            ).fetchone()
            return _entry_from_row(row)

    @staticmethod
    def update_entry(post_id: int, update_id: str, body: Optional[str] = None,
                     status: Optional[str] = None, is_pinned: Optional[bool] = None,
                     modified: Optional[int] = None) -> Optional[Dict]:
        """Edit an entry; modified is never earlier than the entry's timestamp"""
        with get_db() as conn:
            row = conn.execute(
                "SELECT * FROM entries WHERE post_id = ? AND update_id = ?", (post_id, update_id)
            ).fetchone()
            if not row:
                return None
            stamp = int(time.time()) if modified is None else int(modified)
            stamp = max(stamp, row['timestamp'])
            conn.execute("""
                UPDATE entries
                SET body = COALESCE(?, body),
                    status = COALESCE(?, status),
                    is_pinned = COALESCE(?, is_pinned),
                    modified = ?
                WHERE id = ?
            """, (body, status, None if is_pinned is None else bool(is_pinned), stamp, row['id']))
            PostModel.touch(conn, post_id, stamp)
            row = conn.execute("SELECT * FROM entries WHERE id = ?", (row['id'],)).fetchone()
            return _entry_from_row(row)

    @staticmethod
    def get_entry(post_id: int, update_id: str) -> Optional[Dict]:
        with get_db() as conn:
            row = conn.execute(
                "SELECT * FROM entries WHERE post_id = ? AND update_id = ?", (post_id, update_id)
            ).fetchone()
            return _entry_from_row(row) if row else None

    @staticmethod
    def get_entries(post_id: int) -> List[Dict]:
        """All entries for a post, newest first"""
        with get_db() as conn:
            return [_entry_from_row(row) for row in conn.execute("""
                SELECT * FROM entries
                WHERE post_id = ?
                ORDER BY timestamp DESC, id DESC
            """, (post_id,)).fetchall()]
