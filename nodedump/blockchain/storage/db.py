import sqlite3
import threading
from pathlib import Path
from typing import Optional, Tuple, Iterator

class StorageDB:
    FETCH_BATCH = 500

    def __init__(self, db_path: str, read_only: bool = False):
        self.db_path = db_path
        self.read_only = read_only
        if read_only:
            # Fails instead of creating an empty database
            uri = Path(db_path).resolve().as_uri() + "?mode=ro"
            self.conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        else:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        if not read_only:
            self._init_db()

    def _init_db(self):
        with self._lock:
            # Commits table: app hash committed at each height
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS commits (
                    height INTEGER PRIMARY KEY,
                    hash TEXT
                )
            ''')
            # State table: Key-Value store for account state
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    # --- Commit Methods ---
    def save_commit(self, height: int, commit_hash: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO commits (height, hash) VALUES (?, ?)', (height, commit_hash))
            self.conn.commit()

    def get_last_commit(self) -> Optional[Tuple[int, str]]:
        """Returns (height, hash) of the last commit."""
        with self._lock:
            self.cursor.execute('SELECT height, hash FROM commits ORDER BY height DESC LIMIT 1')
            row = self.cursor.fetchone()
            return row if row else None

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def iter_state_by_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        """Yields (key, value) rows ordered by key, fetched in batches."""
        # substr comparison instead of LIKE: '_' and '%' are literal in keys
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'SELECT key, value FROM state WHERE substr(key, 1, ?) = ? ORDER BY key',
                (len(prefix), prefix),
            )
        try:
            while True:
                with self._lock:
                    rows = cur.fetchmany(self.FETCH_BATCH)
                if not rows:
                    return
                for row in rows:
                    yield row[0], row[1]
        finally:
            cur.close()

    def count_state_by_prefix(self, prefix: str) -> int:
        with self._lock:
            self.cursor.execute('SELECT COUNT(*) FROM state WHERE substr(key, 1, ?) = ?', (len(prefix), prefix))
            return self.cursor.fetchone()[0]
