import sqlite3
import os
import datetime
from typing import Dict, Optional


class BestScoreDatabase:
    """
    Class to handle SQLite database operations for storing and retrieving
    best completion times for the Memory Card game.
    Values are plain strings addressed by key (best8, best12, best16).
    """

    def __init__(self, db_file="memory_game.db"):
        """
        Initialize the database connection.

        Args:
            db_file: Path to the SQLite database file
        """
        self.db_file = db_file
        self.conn = None
        self.cursor = None
        self.initialize_db()

    def initialize_db(self) -> None:
        """Create the database and tables if they don't exist."""
        try:
            # Create database directory if it doesn't exist
            db_dir = os.path.dirname(self.db_file)
            if db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir)

            # Connect to database (creates it if it doesn't exist)
            self.conn = sqlite3.connect(self.db_file)
            self.cursor = self.conn.cursor()

            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS best_scores (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            ''')

            self.conn.commit()
            print("Database initialized successfully.")
        except sqlite3.Error as e:
            print(f"Database initialization error: {e}")
            self.conn = None
            self.cursor = None

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            self.cursor = None

    def get(self, key: str) -> Optional[str]:
        """
        Read a stored value.

        Args:
            key: Name of the value (e.g. best8)

        Returns:
            The stored string, or None if missing or unreadable
        """
        try:
            if not self.conn:
                self.initialize_db()

            self.cursor.execute('SELECT value FROM best_scores WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None
        except (sqlite3.Error, AttributeError) as e:
            print(f"Error reading {key}: {e}")
            return None

    def set(self, key: str, value: str) -> bool:
        """
        Write a value, replacing any previous one.

        Args:
            key: Name of the value
            value: String to store

        Returns:
            True if the value was written
        """
        try:
            if not self.conn:
                self.initialize_db()

            self.cursor.execute('''
                INSERT INTO best_scores (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            ''', (key, value, datetime.datetime.now().isoformat(sep=' ')))

            self.conn.commit()
            return True
        except (sqlite3.Error, AttributeError) as e:
            print(f"Error saving {key}: {e}")
            return False

    def delete(self, key: str) -> None:
        """Remove a stored value if present."""
        try:
            if not self.conn:
                self.initialize_db()

            self.cursor.execute('DELETE FROM best_scores WHERE key = ?', (key,))
            self.conn.commit()
        except (sqlite3.Error, AttributeError) as e:
            print(f"Error deleting {key}: {e}")

    def items(self) -> Dict[str, str]:
        """
        Get every stored value.

        Returns:
            Dictionary of key to value
        """
        try:
            if not self.conn:
                self.initialize_db()

            self.cursor.execute('SELECT key, value FROM best_scores ORDER BY key')
            return {key: value for key, value in self.cursor.fetchall()}
        except (sqlite3.Error, AttributeError) as e:
            print(f"Error retrieving best scores: {e}")
            return {}


class MemoryDatabase:
    """In-memory store with the same get/set interface, for sessions that keep nothing."""

    def __init__(self, initial=None):
        self.values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> bool:
        self.values[key] = value
        return True

    def delete(self, key: str) -> None:
        self.values.pop(key, None)

    def items(self) -> Dict[str, str]:
        return dict(sorted(self.values.items()))


# Shared instances, created on first use
_databases: Dict[str, BestScoreDatabase] = {}

def get_database(db_file: str = "memory_game.db") -> BestScoreDatabase:
    """Get the database instance for a file."""
    if db_file not in _databases:
        _databases[db_file] = BestScoreDatabase(db_file)
    return _databases[db_file]
