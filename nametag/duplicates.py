"""Likely-duplicate people, found by edit-distance similarity of their names."""
import kuzu
from rapidfuzz.distance import Levenshtein

from . import store
from .errors import NotFoundError

SIMILARITY_THRESHOLD = 0.75


def comparison_name(name: str, surname: str | None) -> str:
    """'Ann', 'Lee' -> 'ann lee'."""
    parts = [name]
    if surname:
        parts.append(surname)
    return " ".join(parts).lower().strip()


def name_similarity(a: str, b: str) -> float:
    """1 - edit distance / length of the longer string; two empty strings score 1."""
    return Levenshtein.normalized_similarity(a, b)


def find_duplicates(name: str, surname: str | None, people: list[dict],
                    exclude_id: str | None = None) -> list[dict]:
    """People whose name scores at least the threshold against ``name surname``, best first."""
    target = comparison_name(name, surname)
    candidates = []
    for person in people:
        if exclude_id and person["id"] == exclude_id:
            continue
        score = name_similarity(target, comparison_name(person["name"], person["surname"]))
        if score >= SIMILARITY_THRESHOLD:
            candidates.append({"person_id": person["id"], "name": person["name"],
                               "surname": person["surname"], "similarity": score})
    candidates.sort(key=lambda c: c["similarity"], reverse=True)
    return candidates


def _root(parent: dict, pid: str) -> str:
    root = pid
    while parent[root] != root:
        root = parent[root]
    while parent[pid] != root:
        parent[pid], pid = root, parent[pid]
    return root


def find_duplicate_groups(people: list[dict]) -> list[dict]:
    """Cluster people whose names pairwise clear the threshold.

    Matches are transitive, so A~B and B~C put all three in one group even
    when A and C differ more. Only groups of two or more come back, each
    scored by its closest pair, best first.
    """
    names = {p["id"]: comparison_name(p["name"], p["surname"]) for p in people}
    parent = {p["id"]: p["id"] for p in people}
    for i, a in enumerate(people):
        for b in people[i + 1:]:
            if name_similarity(names[a["id"]], names[b["id"]]) >= SIMILARITY_THRESHOLD:
                parent[_root(parent, a["id"])] = _root(parent, b["id"])

    clusters: dict[str, list[dict]] = {}
    for person in people:
        clusters.setdefault(_root(parent, person["id"]), []).append(person)

    result = []
    for members in clusters.values():
        if len(members) < 2:
            continue
        best = max(name_similarity(names[a["id"]], names[b["id"]])
                   for i, a in enumerate(members) for b in members[i + 1:])
        result.append({
            "people": [{"id": m["id"], "name": m["name"], "surname": m["surname"]}
                       for m in members],
            "similarity": max(best, SIMILARITY_THRESHOLD),
        })
    result.sort(key=lambda g: g["similarity"], reverse=True)
    return result


def get_duplicates_for_person(conn: kuzu.Connection, user_id: str,
                              person_id: str) -> list[dict]:
    person = store.find_person(conn, person_id, user_id)
    if person is None:
        raise NotFoundError("Person not found")
    return find_duplicates(person["name"], person["surname"],
                           store.list_people(conn, user_id), exclude_id=person_id)


def get_duplicate_groups(conn: kuzu.Connection, user_id: str) -> list[dict]:
    return find_duplicate_groups(store.list_people(conn, user_id))
