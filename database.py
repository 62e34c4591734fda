import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from config import DATABASE_FILE

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = ("installation", "fault-detection")


class AnalysisStore:
    """sqlite storage for analyses and the chat transcript"""

    def __init__(self, db_path: str = DATABASE_FILE):
        self.db_path = db_path

    @contextmanager
    def get_db(self):
        """Database connection context manager"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self):
        """Initialize database with tables"""
        with self.get_db() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS analyses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    image_path TEXT NOT NULL,
                    results TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    username TEXT NOT NULL,
                    message TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'user',
                    category TEXT DEFAULT 'general',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_analyses_user ON analyses(user_id)')
            conn.commit()
        logger.info("Database schema ready at %s", self.db_path)

    @staticmethod
    def _analysis_from_row(row) -> Dict[str, Any]:
        analysis = dict(row)
        analysis["results"] = json.loads(analysis["results"])
        return analysis

    def create_analysis(self, user_id: int, analysis_type: str, image_path: str,
                        results: Dict[str, Any]) -> Dict[str, Any]:
        if analysis_type not in ANALYSIS_TYPES:
            raise ValueError(f"Unknown analysis type '{analysis_type}'")

        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO analyses (user_id, type, image_path, results)
                VALUES (?, ?, ?, ?)
            ''', (user_id, analysis_type, image_path, json.dumps(results)))
            conn.commit()
            analysis_id = cursor.lastrowid

            cursor.execute("SELECT * FROM analyses WHERE id = ?", (analysis_id,))
            row = cursor.fetchone()

        logger.info("Stored %s analysis", analysis_type,
                    extra={"analysis_id": analysis_id, "analysis_type": analysis_type})
        return self._analysis_from_row(row)

    def get_analysis(self, analysis_id: int) -> Optional[Dict[str, Any]]:
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM analyses WHERE id = ?", (analysis_id,))
            row = cursor.fetchone()
        return self._analysis_from_row(row) if row else None

    def get_analyses_by_user(self, user_id: int) -> List[Dict[str, Any]]:
        """Newest first"""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT * FROM analyses
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
            ''', (user_id,))
            rows = cursor.fetchall()
        return [self._analysis_from_row(row) for row in rows]

    def create_chat_message(self, user_id: int, username: str, message: str,
                            message_type: str = "user", category: str = "general") -> Dict[str, Any]:
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO chat_messages (user_id, username, message, type, category)
                VALUES (?, ?, ?, ?, ?)
            ''', (user_id, username, message, message_type, category))
            conn.commit()

            cursor.execute("SELECT * FROM chat_messages WHERE id = ?", (cursor.lastrowid,))
            return dict(cursor.fetchone())

    def get_chat_messages(self, limit: int = 50) -> List[Dict[str, Any]]:
        """The most recent `limit` messages, oldest first."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT * FROM (
                    SELECT * FROM chat_messages
                    ORDER BY id DESC
                    LIMIT ?
                ) ORDER BY id ASC
            ''', (max(0, int(limit)),))
            return [dict(row) for row in cursor.fetchall()]


if __name__ == "__main__":
    AnalysisStore().init_schema()
    print("[OK] Database initialized successfully!")
