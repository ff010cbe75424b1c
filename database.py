"""
Database Manager for ShopCalc
Handles SQLite storage for completed calculations and saved calculator states
"""
import logging
import sqlite3
from datetime import datetime

import config

logger = logging.getLogger("shopcalc.db")


class Database:
    def __init__(self, db_path=None):
        self.db_path = db_path or config.DB_PATH
        self.init_database()

    def get_connection(self):
        """Create and return a database connection"""
        return sqlite3.connect(self.db_path)

    def init_database(self):
        """Initialize database tables"""
        conn = self.get_connection()
        cursor = conn.cursor()

        # Completed calculations (one row per "=" result)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS calculations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                expression TEXT NOT NULL,
                result TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        ''')

        # Named snapshots of the calculator state (export_state payloads)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS saved_states (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        ''')

        conn.commit()
        conn.close()
        logger.debug("Database ready at %s", self.db_path)

    def add_calculation(self, expression, result):
        """Add calculation to history"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO calculations (expression, result, timestamp)
            VALUES (?, ?, ?)
        ''', (expression, result, timestamp))
        conn.commit()
        calc_id = cursor.lastrowid
        conn.close()
        return calc_id

    def get_calculations(self, limit=config.MAX_HISTORY_ITEMS):
        """Retrieve calculation history, newest first"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('''
            SELECT expression, result, timestamp FROM calculations
            ORDER BY timestamp DESC, id DESC LIMIT ?
        ''', (limit,))
        calculations = cursor.fetchall()
        conn.close()
        return calculations

    def clear_history(self):
        """Clear calculation history"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('DELETE FROM calculations')
        conn.commit()
        conn.close()
        logger.info("Calculation history cleared")

    def save_state(self, name, payload):
        """Insert or replace a named calculator state"""
        updated_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO saved_states (name, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at
        ''', (name, payload, updated_at))
        conn.commit()
        conn.close()

    def load_state(self, name):
        """Return the stored payload for name, or None"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('SELECT payload FROM saved_states WHERE name = ?', (name,))
        row = cursor.fetchone()
        conn.close()
        return row[0] if row else None

    def list_states(self):
        """Names and update times of saved states"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('SELECT name, updated_at FROM saved_states ORDER BY name')
        states = cursor.fetchall()
        conn.close()
        return states

    def delete_state(self, name):
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('DELETE FROM saved_states WHERE name = ?', (name,))
        conn.commit()
        deleted = cursor.rowcount > 0
        conn.close()
        return deleted
