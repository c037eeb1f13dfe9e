"""
Database handle for the explorer API gateway
Opened and pinged once at startup; request handling never queries it
"""

import logging
import sqlite3
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class ExplorerDatabase:
    """SQLite connection shared for the process lifetime"""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self.lock = threading.RLock()
        self._connect()

    def _connect(self) -> None:
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            logger.info(f"Database connected: {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Database connection error: {e}")
            raise

    def ping(self) -> None:
        """Raise sqlite3.Error when the connection is unusable"""
        if self.conn is None:
            raise sqlite3.ProgrammingError("database is closed")
        with self.lock:
            self.conn.execute("SELECT 1").fetchone()

    def is_healthy(self) -> bool:
        try:
            self.ping()
            return True
        except sqlite3.Error as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def close(self) -> None:
        with self.lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
