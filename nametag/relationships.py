"""Relationship pair manager.

Every live edge (A -> B, T) is paired with a live edge (B -> A, inverse(T)).
The forward write is authoritative; the reverse write is best effort and a
failure there is logged rather than raised, leaving the pair to be healed
by the next update or delete.
"""
import logging

import kuzu

from . import store
from .db import transaction
from .errors import DuplicateError, NotFoundError, UnauthorizedError, ValidationError
from .relationship_types import resolve_inverse_id

logger = logging.getLogger(__name__)


def _person_summary(person: dict) -> dict:
    return {"id": person["id"], "name": person["name"],
            "surname": person["surname"], "nickname": person["nickname"]}


def _type_summary(rel_type: dict | None) -> dict | None:
    if rel_type is None:
        return None
    return {"id": rel_type["id"], "name": rel_type["name"],
            "label": rel_type["label"], "color": rel_type["color"]}


def _owned_edge(conn: kuzu.Connection, user_id: str, relationship_id: str) -> dict:
    edge = store.get_edge(conn, relationship_id)
    if edge is None:
        raise NotFoundError("Relationship not found")
    if edge["user_id"] != user_id:
        raise UnauthorizedError("Relationship belongs to another user")
    return edge


def create_relationship(conn: kuzu.Connection, user_id: str, person_id: str,
                        related_person_id: str, relationship_type_id: str | None,
                        notes: str | None = None) -> dict:
    """Create ``person -> related`` and, unless already present, its inverse edge."""
    if not relationship_type_id:
        raise ValidationError("Relationship type is required")
    if person_id == related_person_id:
        raise ValidationError("Cannot create a relationship with the same person")

    with transaction(conn):
        person = store.find_person(conn, person_id, user_id)
        related = store.find_person(conn, related_person_id, user_id)
        if person is None or related is None:
            raise NotFoundError("One or both people not found")
        rel_type = store.find_relationship_type(conn, relationship_type_id, user_id)
        if rel_type is None:
            raise NotFoundError("Relationship type not found")
        if store.find_live_edge(conn, person_id, related_person_id, relationship_type_id):
            raise DuplicateError("This relationship already exists")
        edge = store.create_edge(conn, person_id, related_person_id,
                                 relationship_type_id, notes)

    inverse_type_id = resolve_inverse_id(conn, rel_type)
    try:
        if store.find_live_edge(conn, related_person_id, person_id, inverse_type_id) is None:
            store.create_edge(conn, related_person_id, person_id, inverse_type_id, notes)
    except Exception:
        logger.exception(
            "Could not create reverse edge %s -> %s (type %s) for relationship %s",
            related_person_id, person_id, inverse_type_id, edge["id"]
        )

    logger.info("Relationship %s created: %s -> %s (%s)",
                edge["id"], person_id, related_person_id, rel_type["name"])
    return edge


def update_relationship(conn: kuzu.Connection, user_id: str, relationship_id: str,
                        relationship_type_id: str | None,
                        notes: str | None = None) -> dict:
    """Retype an edge and bring its counterpart in line with the new inverse."""
    existing = _owned_edge(conn, user_id, relationship_id)
    if not relationship_type_id:
        raise ValidationError("Relationship type is required")
    rel_type = store.find_relationship_type(conn, relationship_type_id, user_id)
    if rel_type is None:
        raise NotFoundError("Relationship type not found")

    edge = store.update_edge(conn, relationship_id,
                             relationship_type_id=relationship_type_id, notes=notes)

    try:
        inverse = store.find_reverse_edge(conn, existing)
        if inverse is not None:
            store.update_edge(conn, inverse["id"],
                              relationship_type_id=resolve_inverse_id(conn, rel_type),
                              notes=notes)
    except Exception:
        logger.exception("Could not update reverse edge of relationship %s", relationship_id)
    return edge


def delete_relationship(conn: kuzu.Connection, user_id: str, relationship_id: str):
    """Soft-delete an edge and whichever live edge runs the other way between the pair."""
    existing = _owned_edge(conn, user_id, relationship_id)
    store.soft_delete_edge(conn, relationship_id)

    try:
        inverse = store.find_reverse_edge(conn, existing)
        if inverse is not None:
            store.soft_delete_edge(conn, inverse["id"])
    except Exception:
        logger.exception("Could not delete reverse edge of relationship %s", relationship_id)

    logger.info("Relationship %s deleted: %s -> %s", relationship_id,
                existing["person_id"], existing["related_person_id"])


def get_relationship(conn: kuzu.Connection, user_id: str, relationship_id: str) -> dict:
    edge = _owned_edge(conn, user_id, relationship_id)
    person = store.find_person(conn, edge["person_id"], user_id)
    related = store.find_person(conn, edge["related_person_id"], user_id)
    if person is None or related is None:
        raise NotFoundError("Relationship not found")
    rel_type = store.find_relationship_type(conn, edge["relationship_type_id"], user_id)
    return {**edge, "person": _person_summary(person),
            "related_person": _person_summary(related),
            "relationship_type": _type_summary(rel_type)}


def list_relationships(conn: kuzu.Connection, user_id: str) -> list[dict]:
    """Live relationships among the user's live people, newest first.

    Edges whose type has been deleted are kept with ``relationship_type`` None.
    """
    people = {p["id"]: p for p in store.list_people(conn, user_id)}
    types = store.live_types_by_id(conn, user_id)
    edges = store.list_user_edges(conn, user_id)
    edges.reverse()
    return [
        {**e, "person": _person_summary(people[e["person_id"]]),
         "related_person": _person_summary(people[e["related_person_id"]]),
         "relationship_type": _type_summary(types.get(e["relationship_type_id"]))}
        for e in edges
        if e["person_id"] in people and e["related_person_id"] in people
    ]
