"""KuzuDB embedded graph database connection."""
import os
import logging
from contextlib import contextmanager
from pathlib import Path

import kuzu

from .errors import ConflictError

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("DB_PATH", Path(__file__).resolve().parent.parent / "graph_data"))
_database = None
_SENTINEL_FILE = ".db_initialized"
_WRITER_BUSY = "Cannot start a new write transaction"


def _sentinel_path():
    return DB_PATH.parent / _SENTINEL_FILE


def write_sentinel():
    """Write a sentinel file indicating the database has been initialized with data.
    Called after the first user registers so we can detect silent DB resets."""
    try:
        path = _sentinel_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("initialized")
        logger.info("Database sentinel written to %s", path)
    except OSError as e:
        logger.warning("Could not write DB sentinel: %s", e)


def check_db_integrity(conn):
    """Refuse to serve if a sentinel exists but the database holds no users."""
    sentinel = _sentinel_path()
    if not sentinel.exists():
        return
    result = conn.execute("MATCH (u:User) RETURN count(*)")
    count = result.get_next()[0] if result.has_next() else 0
    if count == 0:
        logger.critical(
            "DATABASE INTEGRITY CHECK FAILED: Sentinel file exists at %s "
            "but database has 0 users. The persistent disk may not be mounted.",
            sentinel
        )
        raise RuntimeError(
            "Database was previously initialized but now has 0 users. "
            "Check your deployment configuration."
        )
    logger.info("Database integrity check passed: %d users found", count)


def get_database():
    global _database
    if _database is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        database = kuzu.Database(str(DB_PATH))
        init_schema(database)
        check_db_integrity(kuzu.Connection(database))
        _database = database
    return _database


def init_schema(db):
    conn = kuzu.Connection(db)

    # ── Accounts ──
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS User("
        "id STRING, email STRING, display_name STRING, "
        "password_hash STRING, created_at STRING, "
        "PRIMARY KEY(id))"
    )

    # ── People ──
    # deleted_at is '' for live rows; every query filters on it.
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS Person("
        "id STRING, user_id STRING, name STRING, surname STRING, "
        "middle_name STRING, second_last_name STRING, nickname STRING, "
        "notes STRING, relationship_to_user_id STRING, "
        "created_at STRING, updated_at STRING, deleted_at STRING, "
        "PRIMARY KEY(id))"
    )

    # ── Relationship types ──
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS RelationshipType("
        "id STRING, user_id STRING, name STRING, display_label STRING, "
        "color STRING, inverse_id STRING, "
        "created_at STRING, deleted_at STRING, "
        "PRIMARY KEY(id))"
    )

    # ── Contact groups ──
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS ContactGroup("
        "id STRING, user_id STRING, name STRING, color STRING, "
        "created_at STRING, deleted_at STRING, "
        "PRIMARY KEY(id))"
    )

    # ── Edges ──
    conn.execute(
        "CREATE REL TABLE IF NOT EXISTS RELATED_TO("
        "FROM Person TO Person, id STRING, type_id STRING, notes STRING, "
        "created_at STRING, deleted_at STRING)"
    )
    conn.execute(
        "CREATE REL TABLE IF NOT EXISTS IN_GROUP("
        "FROM Person TO ContactGroup, added_at STRING)"
    )


@contextmanager
def transaction(conn):
    """Run a block inside one Kuzu write transaction.

    Kuzu admits a single writer at a time and refuses a second one outright
    instead of queueing it; that refusal is raised as ``ConflictError`` so
    callers can retry. Check-then-insert sequences placed in here cannot
    interleave with another writer.
    """
    try:
        conn.execute("BEGIN TRANSACTION")
    except RuntimeError as e:
        if _WRITER_BUSY in str(e):
            logger.warning("Write refused, another write transaction is open")
            raise ConflictError("Another change is in progress, try again") from e
        raise
    try:
        yield conn
    except BaseException:
        try:
            conn.execute("ROLLBACK")
        except RuntimeError:
            # the engine already rolled back after a failed statement
            logger.debug("No active transaction to roll back")
        raise
    conn.execute("COMMIT")


def get_conn():
    db = get_database()
    conn = kuzu.Connection(db)
    try:
        yield conn
    finally:
        pass
