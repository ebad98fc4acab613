"""Storage interface for people, relationship edges and relationship types.

Every read here applies the tombstone check: a row whose ``deleted_at`` is
set is invisible unless the caller asks for deleted rows explicitly. Edge
reads additionally hide edges whose endpoints are tombstoned, so the
relationship core never sees a soft-deleted person through an edge.
"""
import uuid
from datetime import datetime, timezone

import kuzu


PERSON_COLUMNS = (
    "p.id, p.user_id, p.name, p.surname, p.middle_name, p.second_last_name, "
    "p.nickname, p.notes, p.relationship_to_user_id, "
    "p.created_at, p.updated_at, p.deleted_at"
)

EDGE_COLUMNS = (
    "r.id, a.id, b.id, r.type_id, r.notes, r.created_at, r.deleted_at, a.user_id"
)

TYPE_COLUMNS = (
    "t.id, t.user_id, t.name, t.display_label, t.color, t.inverse_id, "
    "t.created_at, t.deleted_at"
)

_LIVE_EDGE = "r.deleted_at = '' AND a.deleted_at = '' AND b.deleted_at = ''"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Row mapping ──

def person_from_row(row) -> dict:
    return {
        "id": row[0],
        "user_id": row[1],
        "name": row[2],
        "surname": row[3] or None,
        "middle_name": row[4] or None,
        "second_last_name": row[5] or None,
        "nickname": row[6] or None,
        "notes": row[7] or None,
        "relationship_to_user_id": row[8] or None,
        "created_at": row[9],
        "updated_at": row[10],
        "deleted_at": row[11] or None,
    }


def edge_from_row(row) -> dict:
    return {
        "id": row[0],
        "person_id": row[1],
        "related_person_id": row[2],
        "relationship_type_id": row[3],
        "notes": row[4] or None,
        "created_at": row[5],
        "deleted_at": row[6] or None,
        "user_id": row[7],
    }


def type_from_row(row) -> dict:
    return {
        "id": row[0],
        "user_id": row[1],
        "name": row[2],
        "label": row[3],
        "color": row[4] or None,
        "inverse_id": row[5] or None,
        "created_at": row[6],
        "deleted_at": row[7] or None,
    }


def _collect(result, mapper) -> list[dict]:
    rows = []
    while result.has_next():
        rows.append(mapper(result.get_next()))
    return rows


# ── People ──

def find_person(conn: kuzu.Connection, person_id: str, user_id: str,
                include_deleted: bool = False) -> dict | None:
    query = "MATCH (p:Person) WHERE p.id = $id AND p.user_id = $uid "
    if not include_deleted:
        query += "AND p.deleted_at = '' "
    result = conn.execute(
        query + f"RETURN {PERSON_COLUMNS}",
        {"id": person_id, "uid": user_id}
    )
    if result.has_next():
        return person_from_row(result.get_next())
    return None


def list_people(conn: kuzu.Connection, user_id: str) -> list[dict]:
    """Live people of a user, ordered by name then surname."""
    result = conn.execute(
        "MATCH (p:Person) WHERE p.user_id = $uid AND p.deleted_at = '' "
        f"RETURN {PERSON_COLUMNS} ORDER BY p.name, p.surname",
        {"uid": user_id}
    )
    return _collect(result, person_from_row)


def soft_delete_many(conn: kuzu.Connection, person_ids, user_id: str) -> list[str]:
    """Tombstone the given live people of ``user_id``; foreign or unknown ids are skipped.

    Returns the ids actually deleted, in input order.
    """
    ts = now_iso()
    deleted = []
    for pid in dict.fromkeys(person_ids):
        if find_person(conn, pid, user_id) is None:
            continue
        conn.execute(
            "MATCH (p:Person) WHERE p.id = $id SET p.deleted_at = $ts, p.updated_at = $ts",
            {"id": pid, "ts": ts}
        )
        deleted.append(pid)
    return deleted


# ── Relationship edges ──

def list_edges_from(conn: kuzu.Connection, person_id: str) -> list[dict]:
    """Live forward edges leaving ``person_id``, oldest first."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        f"WHERE a.id = $pid AND {_LIVE_EDGE} "
        f"RETURN {EDGE_COLUMNS} ORDER BY r.created_at",
        {"pid": person_id}
    )
    return _collect(result, edge_from_row)


def list_edges_to(conn: kuzu.Connection, person_id: str) -> list[dict]:
    """Live edges arriving at ``person_id``, oldest first."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        f"WHERE b.id = $pid AND {_LIVE_EDGE} "
        f"RETURN {EDGE_COLUMNS} ORDER BY r.created_at",
        {"pid": person_id}
    )
    return _collect(result, edge_from_row)


def list_user_edges(conn: kuzu.Connection, user_id: str) -> list[dict]:
    """Every live edge between live people of a user, oldest first."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        f"WHERE a.user_id = $uid AND {_LIVE_EDGE} "
        f"RETURN {EDGE_COLUMNS} ORDER BY r.created_at",
        {"uid": user_id}
    )
    return _collect(result, edge_from_row)


def get_edge(conn: kuzu.Connection, edge_id: str) -> dict | None:
    """A live edge by id, regardless of owner. ``user_id`` in the result is the owner."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        "WHERE r.id = $id AND r.deleted_at = '' "
        f"RETURN {EDGE_COLUMNS}",
        {"id": edge_id}
    )
    if result.has_next():
        return edge_from_row(result.get_next())
    return None


def find_live_edge(conn: kuzu.Connection, person_id: str, related_person_id: str,
                   type_id: str) -> dict | None:
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        "WHERE a.id = $a AND b.id = $b AND r.type_id = $tid AND r.deleted_at = '' "
        f"RETURN {EDGE_COLUMNS} ORDER BY r.created_at LIMIT 1",
        {"a": person_id, "b": related_person_id, "tid": type_id}
    )
    if result.has_next():
        return edge_from_row(result.get_next())
    return None


def find_reverse_edge(conn: kuzu.Connection, edge: dict) -> dict | None:
    """The oldest live edge running the other way between the pair, of any type."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        "WHERE a.id = $a AND b.id = $b AND r.deleted_at = '' "
        f"RETURN {EDGE_COLUMNS} ORDER BY r.created_at LIMIT 1",
        {"a": edge["related_person_id"], "b": edge["person_id"]}
    )
    if result.has_next():
        return edge_from_row(result.get_next())
    return None


def create_edge(conn: kuzu.Connection, person_id: str, related_person_id: str,
                type_id: str, notes: str | None = None) -> dict:
    eid = str(uuid.uuid4())
    ts = now_iso()
    conn.execute(
        "MATCH (a:Person), (b:Person) WHERE a.id = $a AND b.id = $b "
        "CREATE (a)-[:RELATED_TO {id: $id, type_id: $tid, notes: $notes, "
        "created_at: $ts, deleted_at: ''}]->(b)",
        {"a": person_id, "b": related_person_id, "id": eid, "tid": type_id,
         "notes": notes or "", "ts": ts}
    )
    return get_edge(conn, eid)


def list_attached_edges(conn: kuzu.Connection, person_id: str) -> list[dict]:
    """Non-deleted edges leaving or reaching ``person_id``, whatever state the other end is in."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        "WHERE (a.id = $pid OR b.id = $pid) AND r.deleted_at = '' "
        f"RETURN {EDGE_COLUMNS} ORDER BY r.created_at",
        {"pid": person_id}
    )
    return _collect(result, edge_from_row)


def move_edge(conn: kuzu.Connection, edge: dict, person_id: str,
              related_person_id: str) -> dict | None:
    """Re-attach an edge to new endpoints, keeping its id, type, notes and created_at.

    Kuzu cannot repoint a relationship, so the old one is dropped and recreated.
    """
    conn.execute(
        "MATCH (:Person)-[r:RELATED_TO]->(:Person) WHERE r.id = $id DELETE r",
        {"id": edge["id"]}
    )
    conn.execute(
        "MATCH (a:Person), (b:Person) WHERE a.id = $a AND b.id = $b "
        "CREATE (a)-[:RELATED_TO {id: $id, type_id: $tid, notes: $notes, "
        "created_at: $ts, deleted_at: ''}]->(b)",
        {"a": person_id, "b": related_person_id, "id": edge["id"],
         "tid": edge["relationship_type_id"], "notes": edge["notes"] or "",
         "ts": edge["created_at"]}
    )
    return get_edge(conn, edge["id"])


_EDGE_PATCH_COLUMNS = {"relationship_type_id": "type_id", "notes": "notes"}


def update_edge(conn: kuzu.Connection, edge_id: str, **patch) -> dict | None:
    """Apply ``relationship_type_id`` and/or ``notes`` to a live edge."""
    unknown = set(patch) - set(_EDGE_PATCH_COLUMNS)
    if unknown:
        raise TypeError(f"Unknown edge fields: {', '.join(sorted(unknown))}")
    if patch:
        assignments = ", ".join(f"r.{_EDGE_PATCH_COLUMNS[k]} = ${k}" for k in patch)
        params = {k: (v or "") for k, v in patch.items()}
        params["id"] = edge_id
        conn.execute(
            "MATCH (:Person)-[r:RELATED_TO]->(:Person) "
            f"WHERE r.id = $id AND r.deleted_at = '' SET {assignments}",
            params
        )
    return get_edge(conn, edge_id)


def soft_delete_edge(conn: kuzu.Connection, edge_id: str):
    conn.execute(
        "MATCH (:Person)-[r:RELATED_TO]->(:Person) "
        "WHERE r.id = $id AND r.deleted_at = '' SET r.deleted_at = $ts",
        {"id": edge_id, "ts": now_iso()}
    )


# ── Relationship types ──

def find_relationship_type(conn: kuzu.Connection, type_id: str | None,
                           user_id: str) -> dict | None:
    if not type_id:
        return None
    result = conn.execute(
        "MATCH (t:RelationshipType) "
        "WHERE t.id = $id AND t.user_id = $uid AND t.deleted_at = '' "
        f"RETURN {TYPE_COLUMNS}",
        {"id": type_id, "uid": user_id}
    )
    if result.has_next():
        return type_from_row(result.get_next())
    return None


def list_relationship_types(conn: kuzu.Connection, user_id: str) -> list[dict]:
    result = conn.execute(
        "MATCH (t:RelationshipType) WHERE t.user_id = $uid AND t.deleted_at = '' "
        f"RETURN {TYPE_COLUMNS} ORDER BY t.name",
        {"uid": user_id}
    )
    return _collect(result, type_from_row)


def live_types_by_id(conn: kuzu.Connection, user_id: str) -> dict[str, dict]:
    return {t["id"]: t for t in list_relationship_types(conn, user_id)}
