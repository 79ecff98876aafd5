import sqlite3
import datetime
import logging
from typing import List, Optional, Tuple


class SQLiteDBHandler:
    """
        SQLiteDB Handler class that creates and initializes the contributor's
        local model store, and upserts/reads models and normalization tables.
        One entry per key: the last save wins.
    """

    def __init__(self, db_file):
        self.db_file = db_file

    def initialize_DB(self):
        conn = sqlite3.connect(self.db_file)
        try:
            c = conn.cursor()

            c.execute('''CREATE TABLE IF NOT EXISTS models(
                            model_key TEXT PRIMARY KEY,
                            topology TEXT,
                            weights BLOB,
                            saved_at TEXT)''')

            c.execute('''CREATE TABLE IF NOT EXISTS normalization(
                            norm_key TEXT PRIMARY KEY,
                            params TEXT,
                            saved_at TEXT)''')

            conn.commit()
        finally:
            conn.close()

    def save_model(self, model_key: str, topology: str, weights: bytes):
        """
        Insert or replace the model entry (topology json + raw weights)
        Errors are raised to the caller.
        """
        conn = sqlite3.connect(self.db_file)
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()

        try:
            conn.execute('''
                INSERT INTO models(model_key, topology, weights, saved_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(model_key) DO UPDATE SET
                    topology = excluded.topology,
                    weights = excluded.weights,
                    saved_at = excluded.saved_at;
            ''', (model_key, topology, sqlite3.Binary(weights), now))
            conn.commit()
            logging.info(f"--- Local model saved: {model_key} ---")
        finally:
            conn.close()

    def save_normalization(self, norm_key: str, params: str):
        conn = sqlite3.connect(self.db_file)
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()

        try:
            conn.execute('''INSERT OR REPLACE INTO normalization (norm_key, params, saved_at)
                            VALUES (?, ?, ?)''', (norm_key, params, now))
            conn.commit()
            logging.info(f"--- Normalization parameters saved: {norm_key} ---")
        finally:
            conn.close()

    def load_model(self, model_key: str) -> Optional[Tuple[str, bytes]]:
        """
        :return: (topology, weights) or None if the key was never saved
        """
        conn = sqlite3.connect(self.db_file)
        try:
            c = conn.cursor()
            c.execute('SELECT topology, weights FROM models WHERE model_key = ?', (model_key,))
            row = c.fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return row[0], bytes(row[1])

    def load_normalization(self, norm_key: str) -> Optional[str]:
        conn = sqlite3.connect(self.db_file)
        try:
            c = conn.cursor()
            c.execute('SELECT params FROM normalization WHERE norm_key = ?', (norm_key,))
            row = c.fetchone()
        finally:
            conn.close()

        return row[0] if row else None

    def list_models(self) -> List[Tuple[str, str]]:
        """
        :return: list of (model_key, saved_at), most recent first
        """
        conn = sqlite3.connect(self.db_file)
        try:
            c = conn.cursor()
            c.execute('SELECT model_key, saved_at FROM models ORDER BY saved_at DESC')
            rows = c.fetchall()
        finally:
            conn.close()
        return rows
