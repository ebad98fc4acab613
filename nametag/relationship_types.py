"""Relationship type registry: labels, colors and inverse pairing."""
import logging
import re
import uuid

import kuzu

from . import store
from .errors import DuplicateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# (name, label, color, inverse name) seeded for every new account
DEFAULT_TYPES = [
    ("PARENT", "Parent", "#F59E0B", "CHILD"),
    ("CHILD", "Child", "#F59E0B", "PARENT"),
    ("SIBLING", "Sibling", "#8B5CF6", "SIBLING"),
    ("SPOUSE", "Spouse", "#EC4899", "SPOUSE"),
    ("PARTNER", "Partner", "#EC4899", "PARTNER"),
    ("FRIEND", "Friend", "#3B82F6", "FRIEND"),
    ("COLLEAGUE", "Colleague", "#10B981", "COLLEAGUE"),
    ("ACQUAINTANCE", "Acquaintance", "#14B8A6", "ACQUAINTANCE"),
    ("RELATIVE", "Relative", "#6366F1", "RELATIVE"),
    ("OTHER", "Other", "#6B7280", "OTHER"),
]


def normalize_name(name: str) -> str:
    """'best friend' -> 'BEST_FRIEND'."""
    return re.sub(r"\s+", "_", name.strip().upper())


def resolve_inverse_id(conn: kuzu.Connection, rel_type: dict) -> str:
    """The type used for the reverse edge.

    Types without an inverse, or whose inverse has since been deleted, pair
    with themselves.
    """
    inverse_id = rel_type["inverse_id"]
    if inverse_id and store.find_relationship_type(conn, inverse_id, rel_type["user_id"]):
        return inverse_id
    return rel_type["id"]


def _find_by_name(conn: kuzu.Connection, user_id: str, name: str,
                  exclude_id: str | None = None) -> dict | None:
    wanted = normalize_name(name)
    for t in store.list_relationship_types(conn, user_id):
        if t["name"].upper() == wanted and t["id"] != exclude_id:
            return t
    return None


def _insert(conn: kuzu.Connection, user_id: str, name: str, label: str,
            color: str | None, inverse_id: str | None) -> str:
    tid = str(uuid.uuid4())
    conn.execute(
        "CREATE (t:RelationshipType {id: $id, user_id: $uid, name: $name, "
        "display_label: $label, color: $color, inverse_id: $inv, "
        "created_at: $ts, deleted_at: ''})",
        {"id": tid, "uid": user_id, "name": name, "label": label,
         "color": color or "", "inv": inverse_id or "", "ts": store.now_iso()}
    )
    return tid


def _set_inverse(conn: kuzu.Connection, type_id: str, inverse_id: str | None):
    conn.execute(
        "MATCH (t:RelationshipType) WHERE t.id = $id SET t.inverse_id = $inv",
        {"id": type_id, "inv": inverse_id or ""}
    )


def with_inverse(conn: kuzu.Connection, rel_type: dict) -> dict:
    """Attach an ``inverse`` summary ({id, name, label}) or None."""
    inverse = None
    if rel_type["inverse_id"]:
        inv = store.find_relationship_type(conn, rel_type["inverse_id"], rel_type["user_id"])
        if inv:
            inverse = {"id": inv["id"], "name": inv["name"], "label": inv["label"]}
    return {**rel_type, "inverse": inverse}


def _create_inverse_from_label(conn, user_id, inverse_label, color, points_to=None) -> str:
    inverse_name = normalize_name(re.sub(r"[^A-Za-z0-9\s]", "", inverse_label))
    if not inverse_name:
        raise ValidationError("Inverse label must contain letters or digits")
    if _find_by_name(conn, user_id, inverse_name):
        raise DuplicateError(f'The inverse relationship type "{inverse_label}" already exists')
    return _insert(conn, user_id, inverse_name, inverse_label, color, points_to)


def create_relationship_type(conn: kuzu.Connection, user_id: str, name: str, label: str,
                             color: str | None = None, inverse_id: str | None = None,
                             inverse_label: str | None = None,
                             symmetric: bool = False) -> dict:
    normalized = normalize_name(name)
    if not normalized or not label:
        raise ValidationError("Name and label are required")
    if _find_by_name(conn, user_id, normalized):
        raise DuplicateError("A relationship type with this name already exists")

    if symmetric:
        tid = _insert(conn, user_id, normalized, label, color, None)
        _set_inverse(conn, tid, tid)
        return get_relationship_type(conn, tid, user_id)

    if inverse_id:
        if store.find_relationship_type(conn, inverse_id, user_id) is None:
            raise NotFoundError("Inverse relationship type not found")
        return get_relationship_type(
            conn, _insert(conn, user_id, normalized, label, color, inverse_id), user_id)

    created_inverse = None
    if inverse_label:
        created_inverse = _create_inverse_from_label(conn, user_id, inverse_label, color)

    tid = _insert(conn, user_id, normalized, label, color, created_inverse)
    if created_inverse:
        _set_inverse(conn, created_inverse, tid)
    return get_relationship_type(conn, tid, user_id)


def get_relationship_type(conn: kuzu.Connection, type_id: str, user_id: str) -> dict:
    rel_type = store.find_relationship_type(conn, type_id, user_id)
    if rel_type is None:
        raise NotFoundError("Relationship type not found")
    return with_inverse(conn, rel_type)


def list_relationship_types(conn: kuzu.Connection, user_id: str) -> list[dict]:
    return [with_inverse(conn, t) for t in store.list_relationship_types(conn, user_id)]


def update_relationship_type(conn: kuzu.Connection, user_id: str, type_id: str,
                             name: str, label: str, color: str | None = None,
                             inverse_id: str | None = None,
                             inverse_label: str | None = None,
                             symmetric: bool = False) -> dict:
    if store.find_relationship_type(conn, type_id, user_id) is None:
        raise NotFoundError("Relationship type not found")
    normalized = normalize_name(name)
    if not normalized or not label:
        raise ValidationError("Name and label are required")
    if _find_by_name(conn, user_id, normalized, exclude_id=type_id):
        raise DuplicateError("A relationship type with this name already exists")

    if symmetric:
        final_inverse = type_id
    elif inverse_id:
        if store.find_relationship_type(conn, inverse_id, user_id) is None:
            raise NotFoundError("Inverse relationship type not found")
        final_inverse = inverse_id
    elif inverse_label:
        final_inverse = _create_inverse_from_label(
            conn, user_id, inverse_label, color, points_to=type_id)
    else:
        final_inverse = None

    conn.execute(
        "MATCH (t:RelationshipType) WHERE t.id = $id "
        "SET t.name = $name, t.display_label = $label, t.color = $color, t.inverse_id = $inv",
        {"id": type_id, "name": normalized, "label": label,
         "color": color or "", "inv": final_inverse or ""}
    )

    # the partner of a pair shares its color
    if final_inverse and final_inverse != type_id:
        conn.execute(
            "MATCH (t:RelationshipType) WHERE t.id = $id SET t.color = $color",
            {"id": final_inverse, "color": color or ""}
        )
    return get_relationship_type(conn, type_id, user_id)


def count_usage(conn: kuzu.Connection, type_id: str) -> int:
    """Live relationships between live people that use this type."""
    result = conn.execute(
        "MATCH (a:Person)-[r:RELATED_TO]->(b:Person) "
        "WHERE r.type_id = $tid AND r.deleted_at = '' "
        "AND a.deleted_at = '' AND b.deleted_at = '' "
        "RETURN count(*)",
        {"tid": type_id}
    )
    return result.get_next()[0] if result.has_next() else 0


def delete_relationship_type(conn: kuzu.Connection, user_id: str, type_id: str):
    if store.find_relationship_type(conn, type_id, user_id) is None:
        raise NotFoundError("Relationship type not found")
    in_use = count_usage(conn, type_id)
    if in_use > 0:
        raise ValidationError(
            f"Cannot delete relationship type that is in use by {in_use} relationship(s)"
        )
    conn.execute(
        "MATCH (t:RelationshipType) WHERE t.id = $id SET t.deleted_at = $ts",
        {"id": type_id, "ts": store.now_iso()}
    )


def create_default_types(conn: kuzu.Connection, user_id: str) -> dict[str, str]:
    """Seed the default set for a new account. Returns name -> id."""
    created = {}
    for name, label, color, _inverse in DEFAULT_TYPES:
        created[name] = _insert(conn, user_id, name, label, color, None)
    for name, _label, _color, inverse in DEFAULT_TYPES:
        _set_inverse(conn, created[name], created[inverse])
    logger.info("Seeded %d relationship types for user %s", len(created), user_id)
    return created
