import sqlite3
import logging
import time
import uuid
from typing import List, Dict, Any, Optional

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

MAX_FILENAME_LENGTH = 255
PROCESSING_STATUSES = ("pending", "completed", "failed")

SCREENSHOT_COLUMNS = """
    id, filename, image_url, ocr_text, visual_description,
    uploaded_at, file_size, processing_status
"""


def now_ms() -> int:
    return int(time.time() * 1000)


class DatabaseManager:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or settings.DATABASE_PATH

    def get_connection(self):
        """Get database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable dict-like access
        return conn

    def create_screenshot(self, filename: str, image_url: str, file_size: int,
                          ocr_text: str = "", visual_description: str = "",
                          processing_status: str = "completed",
                          screenshot_id: Optional[str] = None) -> str:
        """Store a screenshot record and return its id."""
        if not filename.strip() or len(filename) > MAX_FILENAME_LENGTH:
            raise ValueError("Filename must be non-empty and max 255 characters")
        if file_size <= 0:
            raise ValueError("File size must be positive")
        if processing_status not in PROCESSING_STATUSES:
            raise ValueError(f"Unknown processing status: {processing_status}")

        screenshot_id = screenshot_id or str(uuid.uuid4())
        conn = self.get_connection()
        try:
            conn.execute(f"""
                INSERT INTO screenshots ({SCREENSHOT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (screenshot_id, filename.strip(), image_url, ocr_text or "",
                  visual_description or "", now_ms(), file_size, processing_status))
            conn.commit()
        finally:
            conn.close()
        return screenshot_id

    def list_screenshots(self) -> List[Dict[str, Any]]:
        """Get all screenshots, newest first."""
        conn = self.get_connection()
        try:
            cursor = conn.execute(f"""
                SELECT {SCREENSHOT_COLUMNS}
                FROM screenshots
                ORDER BY uploaded_at DESC
            """)
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_completed_screenshots(self) -> List[Dict[str, Any]]:
        """Get all screenshots whose processing has completed."""
        conn = self.get_connection()
        try:
            cursor = conn.execute(f"""
                SELECT {SCREENSHOT_COLUMNS}
                FROM screenshots
                WHERE processing_status = 'completed'
                ORDER BY uploaded_at DESC
            """)
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_screenshot_by_id(self, screenshot_id: str) -> Optional[Dict[str, Any]]:
        """Get screenshot by ID."""
        conn = self.get_connection()
        try:
            cursor = conn.execute(f"""
                SELECT {SCREENSHOT_COLUMNS}
                FROM screenshots
                WHERE id = ?
            """, (screenshot_id,))
            row = cursor.fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def update_processing_status(self, screenshot_id: str, status: str,
                                 ocr_text: Optional[str] = None,
                                 visual_description: Optional[str] = None) -> bool:
        """Patch the status and, when given, the extracted text of a screenshot."""
        if status not in PROCESSING_STATUSES:
            raise ValueError(f"Unknown processing status: {status}")

        updates = {"processing_status": status}
        if ocr_text is not None:
            updates["ocr_text"] = ocr_text
        if visual_description is not None:
            updates["visual_description"] = visual_description

        assignments = ", ".join(f"{column} = ?" for column in updates)
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                f"UPDATE screenshots SET {assignments} WHERE id = ?",
                (*updates.values(), screenshot_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete_screenshot(self, screenshot_id: str) -> bool:
        """Delete a screenshot by ID."""
        conn = self.get_connection()
        try:
            cursor = conn.execute("""
                DELETE FROM screenshots WHERE id = ?
            """, (screenshot_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def log_search(self, query: str, results_count: int, response_time: int) -> None:
        """Record a search for analytics."""
        conn = self.get_connection()
        try:
            conn.execute("""
                INSERT INTO searches (query, timestamp, results_count, response_time)
                VALUES (?, ?, ?, ?)
            """, (query, now_ms(), results_count, response_time))
            conn.commit()
        finally:
            conn.close()

    def get_search_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Get the most recent search log entries."""
        conn = self.get_connection()
        try:
            cursor = conn.execute("""
                SELECT query, results_count, response_time, timestamp
                FROM searches
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
            """, (limit,))
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get library and search totals."""
        conn = self.get_connection()
        try:
            screenshots = conn.execute("""
                SELECT COUNT(*) AS total, COALESCE(SUM(file_size), 0) AS storage
                FROM screenshots
            """).fetchone()
            searches = conn.execute("""
                SELECT COUNT(*) AS total, COALESCE(AVG(response_time), 0) AS average
                FROM searches
            """).fetchone()
            return {
                "total_screenshots": screenshots["total"],
                "storage_used": screenshots["storage"],
                "total_searches": searches["total"],
                "average_response_time": float(searches["average"]),
            }
        finally:
            conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    conn = sqlite3.connect(db_path or settings.DATABASE_PATH)

    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS screenshots (
                id TEXT PRIMARY KEY,
                filename TEXT NOT NULL,
                image_url TEXT NOT NULL,
                ocr_text TEXT NOT NULL DEFAULT '',
                visual_description TEXT NOT NULL DEFAULT '',
                uploaded_at INTEGER NOT NULL,
                file_size INTEGER NOT NULL,
                processing_status TEXT NOT NULL DEFAULT 'pending'
                    CHECK(processing_status IN ('pending', 'completed', 'failed'))
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS searches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                query TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                results_count INTEGER NOT NULL,
                response_time INTEGER NOT NULL
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_screenshots_uploaded_at
            ON screenshots(uploaded_at)
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_screenshots_processing_status
            ON screenshots(processing_status)
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_searches_timestamp
            ON searches(timestamp)
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_searches_query
            ON searches(query)
        """)

        conn.commit()
        logger.info("Database initialized successfully")

    finally:
        conn.close()
