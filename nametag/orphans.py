"""Orphan detection ahead of person deletes.

A person is orphaned by a delete when, once the deleted people are gone,
nothing links them to the account owner any more: they have no direct
relationship to the user and no relationship left to anyone else.
"""
import kuzu

from . import store
from .crud import format_full_name
from .errors import NotFoundError


def _adjacent_ids(conn: kuzu.Connection, person_id: str) -> list[str]:
    """Far endpoints of every live edge touching the person, one entry per edge."""
    far = [e["related_person_id"] for e in store.list_edges_from(conn, person_id)]
    far += [e["person_id"] for e in store.list_edges_to(conn, person_id)]
    return far


def find_orphans(conn: kuzu.Connection, user_id: str, target_ids, candidates,
                 require_target_edge: bool) -> list[dict]:
    """Return the candidates that the deletion of ``target_ids`` would orphan.

    ``candidates`` are person dicts and are checked in the order given.
    With ``require_target_edge`` a candidate must currently touch a target to
    be reported, so people who were already isolated are left out.
    """
    targets = set(target_ids)
    live_types = store.live_types_by_id(conn, user_id)
    orphans = []
    for person in candidates:
        if person["id"] in targets:
            continue
        if person["relationship_to_user_id"] in live_types:
            continue
        adjacent = _adjacent_ids(conn, person["id"])
        remaining = [pid for pid in adjacent if pid not in targets]
        if remaining:
            continue
        if require_target_edge and len(adjacent) == 0:
            continue
        orphans.append({"id": person["id"], "full_name": format_full_name(person)})
    return orphans


def get_orphans_for_person(conn: kuzu.Connection, user_id: str, person_id: str) -> list[dict]:
    """People left without any connection if ``person_id`` is deleted."""
    person = store.find_person(conn, person_id, user_id)
    if person is None:
        raise NotFoundError("Person not found")

    candidates = []
    for pid in dict.fromkeys(_adjacent_ids(conn, person_id)):
        if pid == person_id:
            continue
        related = store.find_person(conn, pid, user_id)
        if related is not None:
            candidates.append(related)
    return find_orphans(conn, user_id, {person_id}, candidates, require_target_edge=False)


def get_orphans_for_bulk_delete(conn: kuzu.Connection, user_id: str, person_ids=None,
                                select_all: bool = False) -> list[dict]:
    """People left without any connection if all targets are deleted together."""
    people = store.list_people(conn, user_id)
    if select_all:
        target_ids = {p["id"] for p in people}
    else:
        target_ids = set(person_ids or [])
    if not target_ids:
        return []
    return find_orphans(conn, user_id, target_ids, people, require_target_edge=True)
