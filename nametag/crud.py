"""Person CRUD, soft delete and restore, merging, direct relationship to the account owner."""
import logging
import uuid
from datetime import datetime, timedelta, timezone

import kuzu

from . import groups, store
from .db import transaction
from .errors import NotFoundError, ValidationError
from .retention import RETENTION_DAYS

logger = logging.getLogger(__name__)


def format_full_name(person: dict) -> str:
    parts = [person.get("name"), person.get("middle_name"),
             person.get("surname"), person.get("second_last_name")]
    return " ".join(p for p in parts if p)


def format_graph_name(person: dict) -> str:
    """Short node label: nickname (or first name) and surname."""
    first = person.get("nickname") or person.get("name") or ""
    surname = person.get("surname")
    return f"{first} {surname}" if surname else first


def _check_type(conn: kuzu.Connection, user_id: str, type_id: str | None):
    if type_id and store.find_relationship_type(conn, type_id, user_id) is None:
        raise NotFoundError("Relationship type not found")


def create_person(conn: kuzu.Connection, user_id: str, name: str,
                  surname: str | None = None, middle_name: str | None = None,
                  second_last_name: str | None = None, nickname: str | None = None,
                  notes: str | None = None,
                  relationship_to_user_id: str | None = None) -> dict:
    if not name or not name.strip():
        raise ValidationError("Name is required")
    _check_type(conn, user_id, relationship_to_user_id)
    pid = str(uuid.uuid4())
    now = store.now_iso()
    conn.execute(
        "CREATE (p:Person {id: $id, user_id: $uid, name: $name, surname: $surname, "
        "middle_name: $middle, second_last_name: $second, nickname: $nick, "
        "notes: $notes, relationship_to_user_id: $rtu, "
        "created_at: $ts, updated_at: $ts, deleted_at: ''})",
        {"id": pid, "uid": user_id, "name": name.strip(), "surname": surname or "",
         "middle": middle_name or "", "second": second_last_name or "",
         "nick": nickname or "", "notes": notes or "",
         "rtu": relationship_to_user_id or "", "ts": now}
    )
    return store.find_person(conn, pid, user_id)


def get_person(conn: kuzu.Connection, person_id: str, user_id: str) -> dict | None:
    return store.find_person(conn, person_id, user_id)


def list_people(conn: kuzu.Connection, user_id: str) -> list[dict]:
    return store.list_people(conn, user_id)


def update_person(conn: kuzu.Connection, user_id: str, person_id: str, name: str,
                  surname: str | None = None, middle_name: str | None = None,
                  second_last_name: str | None = None, nickname: str | None = None,
                  notes: str | None = None) -> dict:
    if store.find_person(conn, person_id, user_id) is None:
        raise NotFoundError("Person not found")
    if not name or not name.strip():
        raise ValidationError("Name is required")
    conn.execute(
        "MATCH (p:Person) WHERE p.id = $id "
        "SET p.name = $name, p.surname = $surname, p.middle_name = $middle, "
        "p.second_last_name = $second, p.nickname = $nick, p.notes = $notes, "
        "p.updated_at = $ts",
        {"id": person_id, "name": name.strip(), "surname": surname or "",
         "middle": middle_name or "", "second": second_last_name or "",
         "nick": nickname or "", "notes": notes or "", "ts": store.now_iso()}
    )
    return store.find_person(conn, person_id, user_id)


def set_relationship_to_user(conn: kuzu.Connection, user_id: str, person_id: str,
                             type_id: str | None) -> dict:
    """Record how the account owner knows this person; ``None`` clears it."""
    if store.find_person(conn, person_id, user_id) is None:
        raise NotFoundError("Person not found")
    _check_type(conn, user_id, type_id)
    conn.execute(
        "MATCH (p:Person) WHERE p.id = $id "
        "SET p.relationship_to_user_id = $rtu, p.updated_at = $ts",
        {"id": person_id, "rtu": type_id or "", "ts": store.now_iso()}
    )
    return store.find_person(conn, person_id, user_id)


def list_people_related_to_user(conn: kuzu.Connection, user_id: str,
                                type_id: str | None = None,
                                type_name: str | None = None,
                                limit: int | None = None) -> list[dict]:
    """People with a live direct relationship to the user, most recently updated first."""
    types = store.live_types_by_id(conn, user_id)
    people = [p for p in store.list_people(conn, user_id)
              if p["relationship_to_user_id"] in types]
    if type_id:
        people = [p for p in people if p["relationship_to_user_id"] == type_id]
    if type_name:
        wanted = type_name.strip().lower()
        people = [p for p in people
                  if types[p["relationship_to_user_id"]]["name"].lower() == wanted]
    people.sort(key=lambda p: p["updated_at"], reverse=True)
    if limit is not None:
        people = people[:max(0, int(limit))]

    result = []
    for p in people:
        t = types[p["relationship_to_user_id"]]
        result.append({
            "id": p["id"], "name": p["name"], "surname": p["surname"],
            "nickname": p["nickname"],
            "relationship_to_user": {"id": t["id"], "name": t["name"], "label": t["label"],
                                     "color": t["color"], "inverse_id": t["inverse_id"]},
        })
    return result


def delete_person(conn: kuzu.Connection, user_id: str, person_id: str,
                  orphan_ids=None) -> list[str]:
    """Soft-delete a person, plus any of ``orphan_ids`` the user chose to drop with them."""
    if store.find_person(conn, person_id, user_id) is None:
        raise NotFoundError("Person not found")
    deleted = store.soft_delete_many(conn, [person_id], user_id)
    if orphan_ids:
        deleted += store.soft_delete_many(
            conn, [oid for oid in orphan_ids if oid != person_id], user_id)
    logger.info("Soft-deleted %d people for user %s", len(deleted), user_id)
    return deleted


def bulk_delete_people(conn: kuzu.Connection, user_id: str, person_ids=None,
                       select_all: bool = False, orphan_ids=None) -> int:
    if select_all:
        targets = [p["id"] for p in store.list_people(conn, user_id)]
    else:
        targets = list(person_ids or [])
    if not targets:
        raise ValidationError("No people selected")
    deleted = store.soft_delete_many(conn, targets, user_id)
    if orphan_ids:
        target_set = set(targets)
        deleted += store.soft_delete_many(
            conn, [oid for oid in orphan_ids if oid not in target_set], user_id)
    logger.info("Bulk soft-deleted %d people for user %s", len(deleted), user_id)
    return len(deleted)


def restore_person(conn: kuzu.Connection, user_id: str, person_id: str,
                   now: datetime | None = None) -> dict:
    """Clear the tombstone of a person deleted within the retention window."""
    person = store.find_person(conn, person_id, user_id, include_deleted=True)
    if person is None:
        raise NotFoundError("Person not found")
    if person["deleted_at"] is None:
        return person
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=RETENTION_DAYS)
    if person["deleted_at"] < cutoff.isoformat():
        raise NotFoundError("Person can no longer be restored")
    conn.execute(
        "MATCH (p:Person) WHERE p.id = $id SET p.deleted_at = '', p.updated_at = $ts",
        {"id": person_id, "ts": store.now_iso()}
    )
    return store.find_person(conn, person_id, user_id)


_MERGE_FILL_FIELDS = ("surname", "middle_name", "second_last_name", "nickname",
                      "notes", "relationship_to_user_id")


def merge_people(conn: kuzu.Connection, user_id: str, primary_id: str,
                 secondary_id: str) -> dict:
    """Fold ``secondary`` into ``primary`` and soft-delete the secondary.

    The secondary's edges, in both directions, are moved onto the primary.
    An edge that would join the primary to itself, or that repeats a live
    ``(A, B, T)`` edge the primary already has, is soft-deleted instead. Both
    halves of a pair meet the same fate, so pairs stay whole. Fields left
    empty on the primary are taken from the secondary and so are its group
    memberships. Everything happens in one transaction.
    """
    if not primary_id or not secondary_id:
        raise ValidationError("Both people are required")
    if primary_id == secondary_id:
        raise ValidationError("Cannot merge a person with themselves")

    with transaction(conn):
        primary = store.find_person(conn, primary_id, user_id)
        secondary = store.find_person(conn, secondary_id, user_id)
        if primary is None or secondary is None:
            raise NotFoundError("One or both people not found")

        moved = dropped = 0
        for edge in store.list_attached_edges(conn, secondary_id):
            if edge["person_id"] == secondary_id:
                a, b = primary_id, edge["related_person_id"]
            else:
                a, b = edge["person_id"], primary_id
            if a == b or store.find_live_edge(conn, a, b, edge["relationship_type_id"]):
                store.soft_delete_edge(conn, edge["id"])
                dropped += 1
            else:
                store.move_edge(conn, edge, a, b)
                moved += 1

        fill = {f: secondary[f] for f in _MERGE_FILL_FIELDS
                if not primary[f] and secondary[f]}
        if fill:
            assignments = ", ".join(f"p.{f} = ${f}" for f in fill)
            conn.execute(
                f"MATCH (p:Person) WHERE p.id = $id SET {assignments}, p.updated_at = $ts",
                {**fill, "id": primary_id, "ts": store.now_iso()}
            )

        for group in groups.list_person_groups(conn, secondary_id):
            groups.add_person(conn, user_id, group["id"], primary_id)
        groups.leave_all_groups(conn, secondary_id)

        store.soft_delete_many(conn, [secondary_id], user_id)

    logger.info("Merged person %s into %s: %d edges moved, %d dropped",
                secondary_id, primary_id, moved, dropped)
    return store.find_person(conn, primary_id, user_id)
