"""Permanent removal of soft-deleted rows once the restore window has passed."""
import logging
import os
from datetime import datetime, timedelta, timezone

import kuzu

logger = logging.getLogger(__name__)

RETENTION_DAYS = int(os.environ.get("RETENTION_DAYS", "30"))


def _count(conn: kuzu.Connection, query: str, params: dict) -> int:
    result = conn.execute(query, params)
    return result.get_next()[0] if result.has_next() else 0


def purge_deleted(conn: kuzu.Connection, retention_days: int = RETENTION_DAYS,
                  now: datetime | None = None) -> dict:
    """Hard-delete rows tombstoned before ``now - retention_days``.

    Order matters: edges first, then people (with any edges they still
    have), then groups and relationship types.
    """
    cutoff = ((now or datetime.now(timezone.utc)) - timedelta(days=retention_days)).isoformat()
    params = {"cutoff": cutoff}
    purged = {}

    expired_edge = "r.deleted_at <> '' AND r.deleted_at < $cutoff"
    purged["relationships"] = _count(
        conn,
        f"MATCH (:Person)-[r:RELATED_TO]->(:Person) WHERE {expired_edge} RETURN count(*)",
        params,
    )
    conn.execute(
        f"MATCH (:Person)-[r:RELATED_TO]->(:Person) WHERE {expired_edge} DELETE r",
        params,
    )

    for key, table in (("people", "Person"), ("groups", "ContactGroup"),
                       ("relationship_types", "RelationshipType")):
        expired = "n.deleted_at <> '' AND n.deleted_at < $cutoff"
        purged[key] = _count(conn, f"MATCH (n:{table}) WHERE {expired} RETURN count(*)", params)
        conn.execute(f"MATCH (n:{table}) WHERE {expired} DETACH DELETE n", params)

    # people may still point at a type that no longer exists
    result = conn.execute(
        "MATCH (p:Person) WHERE p.relationship_to_user_id <> '' "
        "RETURN p.id, p.relationship_to_user_id"
    )
    references = []
    while result.has_next():
        references.append(result.get_next())
    for person_id, type_id in references:
        exists = _count(conn, "MATCH (t:RelationshipType) WHERE t.id = $id RETURN count(*)",
                        {"id": type_id})
        if not exists:
            conn.execute(
                "MATCH (p:Person) WHERE p.id = $id SET p.relationship_to_user_id = ''",
                {"id": person_id}
            )

    logger.info("Purged soft-deleted rows older than %s: %s", cutoff, purged)
    return purged
