import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS Contact (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        phoneNumber TEXT,
        email TEXT,
        linkedId INTEGER,
        linkPrecedence TEXT CHECK(linkPrecedence IN ('secondary', 'primary')),
        createdAt DATETIME DEFAULT CURRENT_TIMESTAMP,
        updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP,
        deletedAt DATETIME,
        FOREIGN KEY (linkedId) REFERENCES Contact (id)
    )
'''

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_email ON Contact(email)",
    "CREATE INDEX IF NOT EXISTS idx_phone ON Contact(phoneNumber)",
    "CREATE INDEX IF NOT EXISTS idx_linkedId ON Contact(linkedId)",
)


class Database:
    """A SQLite contact database file and its transaction boundary.

    Connections are opened per unit of work and closed afterwards. Writes go
    through ``transaction()``, which takes the write lock up front so that a
    whole identify call (read, decide, mutate, re-read) is serialized against
    every other one.
    """

    def __init__(self, path: str, timeout: float = 5.0):
        self.path = path
        self.timeout = timeout

    def init_db(self):
        conn = sqlite3.connect(self.path, timeout=self.timeout)
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(SCHEMA)
            for statement in INDEXES:
                cursor.execute(statement)
            conn.commit()
        finally:
            conn.close()
        logger.info("Contact database ready at %s", self.path)

    def get_db_connection(self) -> sqlite3.Connection:
        # autocommit mode: transactions are opened explicitly in transaction().
        # FastAPI may run a request's setup and body on different pool threads.
        conn = sqlite3.connect(
            self.path,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside ``BEGIN IMMEDIATE``.

        Commits on normal exit. Any exception rolls the whole unit back;
        sqlite errors are re-raised as StoreError.
        """
        try:
            conn = self.get_db_connection()
        except sqlite3.Error as e:
            logger.error("Could not open contact database %s: %s", self.path, e)
            raise StoreError("connect") from e

        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                logger.error("Could not start transaction: %s", e)
                raise StoreError("begin") from e

            try:
                yield conn
            except sqlite3.Error as e:
                _rollback(conn)
                logger.error("Contact store query failed, rolled back: %s", e)
                raise StoreError("query") from e
            except BaseException:
                _rollback(conn)
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                _rollback(conn)
                logger.error("Commit failed, rolled back: %s", e)
                raise StoreError("commit") from e
        finally:
            conn.close()


def _rollback(conn: sqlite3.Connection):
    if conn.in_transaction:
        conn.execute("ROLLBACK")
