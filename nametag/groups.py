"""Contact group CRUD and person membership."""
import uuid
from datetime import datetime, timezone

import kuzu

from . import store
from .errors import NotFoundError, ValidationError

DEFAULT_GROUP_COLOR = "#3B82F6"


def _group_from_row(row) -> dict:
    return {"id": row[0], "user_id": row[1], "name": row[2],
            "color": row[3] or None, "created_at": row[4]}


def create_group(conn: kuzu.Connection, user_id: str, name: str,
                 color: str | None = None) -> dict:
    if not name or not name.strip():
        raise ValidationError("Group name is required")
    gid = str(uuid.uuid4())
    now = datetime.now(timezone.utc).isoformat()
    conn.execute(
        "CREATE (g:ContactGroup {id: $id, user_id: $uid, name: $name, color: $color, "
        "created_at: $ts, deleted_at: ''})",
        {"id": gid, "uid": user_id, "name": name.strip(), "color": color or "", "ts": now}
    )
    return {"id": gid, "user_id": user_id, "name": name.strip(),
            "color": color or None, "created_at": now}


def get_group(conn: kuzu.Connection, group_id: str, user_id: str) -> dict | None:
    result = conn.execute(
        "MATCH (g:ContactGroup) WHERE g.id = $id AND g.user_id = $uid AND g.deleted_at = '' "
        "RETURN g.id, g.user_id, g.name, g.color, g.created_at",
        {"id": group_id, "uid": user_id}
    )
    if result.has_next():
        return _group_from_row(result.get_next())
    return None


def _require_group(conn, group_id, user_id) -> dict:
    group = get_group(conn, group_id, user_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def list_groups(conn: kuzu.Connection, user_id: str) -> list[dict]:
    result = conn.execute(
        "MATCH (g:ContactGroup) WHERE g.user_id = $uid AND g.deleted_at = '' "
        "RETURN g.id, g.user_id, g.name, g.color, g.created_at ORDER BY g.name",
        {"uid": user_id}
    )
    groups = []
    while result.has_next():
        groups.append(_group_from_row(result.get_next()))
    return groups


def update_group(conn: kuzu.Connection, user_id: str, group_id: str, name: str,
                 color: str | None = None) -> dict:
    _require_group(conn, group_id, user_id)
    if not name or not name.strip():
        raise ValidationError("Group name is required")
    conn.execute(
        "MATCH (g:ContactGroup) WHERE g.id = $id SET g.name = $name, g.color = $color",
        {"id": group_id, "name": name.strip(), "color": color or ""}
    )
    return get_group(conn, group_id, user_id)


def delete_group(conn: kuzu.Connection, user_id: str, group_id: str):
    """Soft delete; memberships stay in place until the group is purged."""
    _require_group(conn, group_id, user_id)
    conn.execute(
        "MATCH (g:ContactGroup) WHERE g.id = $id SET g.deleted_at = $ts",
        {"id": group_id, "ts": datetime.now(timezone.utc).isoformat()}
    )


# ── Membership ──

def add_person(conn: kuzu.Connection, user_id: str, group_id: str, person_id: str):
    """Add a person to a group (idempotent)."""
    _require_group(conn, group_id, user_id)
    if store.find_person(conn, person_id, user_id) is None:
        raise NotFoundError("Person not found")
    result = conn.execute(
        "MATCH (p:Person)-[:IN_GROUP]->(g:ContactGroup) WHERE p.id = $pid AND g.id = $gid "
        "RETURN count(*)",
        {"pid": person_id, "gid": group_id}
    )
    if result.has_next() and result.get_next()[0] > 0:
        return  # already a member
    conn.execute(
        "MATCH (p:Person), (g:ContactGroup) WHERE p.id = $pid AND g.id = $gid "
        "CREATE (p)-[:IN_GROUP {added_at: $ts}]->(g)",
        {"pid": person_id, "gid": group_id, "ts": datetime.now(timezone.utc).isoformat()}
    )


def remove_person(conn: kuzu.Connection, user_id: str, group_id: str, person_id: str):
    _require_group(conn, group_id, user_id)
    conn.execute(
        "MATCH (p:Person)-[m:IN_GROUP]->(g:ContactGroup) WHERE p.id = $pid AND g.id = $gid "
        "DELETE m",
        {"pid": person_id, "gid": group_id}
    )


def list_group_members(conn: kuzu.Connection, user_id: str, group_id: str) -> list[dict]:
    _require_group(conn, group_id, user_id)
    result = conn.execute(
        "MATCH (p:Person)-[:IN_GROUP]->(g:ContactGroup) "
        "WHERE g.id = $gid AND p.deleted_at = '' "
        f"RETURN {store.PERSON_COLUMNS} ORDER BY p.name, p.surname",
        {"gid": group_id}
    )
    members = []
    while result.has_next():
        members.append(store.person_from_row(result.get_next()))
    return members


def list_person_groups(conn: kuzu.Connection, person_id: str) -> list[dict]:
    """Live groups of one person, in the order they were joined."""
    result = conn.execute(
        "MATCH (p:Person)-[m:IN_GROUP]->(g:ContactGroup) "
        "WHERE p.id = $pid AND g.deleted_at = '' "
        "RETURN g.id, g.user_id, g.name, g.color, g.created_at ORDER BY m.added_at",
        {"pid": person_id}
    )
    groups = []
    while result.has_next():
        groups.append(_group_from_row(result.get_next()))
    return groups


def leave_all_groups(conn: kuzu.Connection, person_id: str):
    conn.execute(
        "MATCH (p:Person)-[m:IN_GROUP]->(:ContactGroup) WHERE p.id = $pid DELETE m",
        {"pid": person_id}
    )


def groups_by_person(conn: kuzu.Connection, user_id: str) -> dict[str, list[dict]]:
    """person_id -> live groups, for every person of the user in one query."""
    result = conn.execute(
        "MATCH (p:Person)-[m:IN_GROUP]->(g:ContactGroup) "
        "WHERE p.user_id = $uid AND g.deleted_at = '' "
        "RETURN p.id, g.id, g.user_id, g.name, g.color, g.created_at ORDER BY m.added_at",
        {"uid": user_id}
    )
    by_person: dict[str, list[dict]] = {}
    while result.has_next():
        row = result.get_next()
        by_person.setdefault(row[0], []).append(_group_from_row(row[1:]))
    return by_person
