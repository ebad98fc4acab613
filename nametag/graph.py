"""Node/edge projections of the relationship graph for force-directed rendering.

Nothing here writes to the database; both builders are safe to rerun on
every request. Edges between the same ordered pair are deduplicated on a
``source-target`` key and the last one written wins.
"""
import kuzu

from . import store
from .crud import format_graph_name
from .errors import NotFoundError
from .groups import DEFAULT_GROUP_COLOR, groups_by_person

USER_NODE_LABEL = "You"


def user_node_id(user_id: str) -> str:
    return f"user-{user_id}"


def person_node(person: dict, person_groups: list[dict], is_center: bool = False) -> dict:
    return {
        "id": person["id"],
        "label": format_graph_name(person),
        "groups": [g["name"] for g in person_groups],
        "colors": [g["color"] or DEFAULT_GROUP_COLOR for g in person_groups],
        "is_center": is_center,
    }


def user_node(node_id: str, is_center: bool = False) -> dict:
    return {"id": node_id, "label": USER_NODE_LABEL, "groups": [], "colors": [],
            "is_center": is_center}


def user_edges(person: dict, node_id: str, types: dict[str, dict]) -> list[dict]:
    """Edges between a person and the user node from the person's direct relationship."""
    rel_type = types.get(person["relationship_to_user_id"])
    if rel_type is None:
        return []
    edges = [{"source": person["id"], "target": node_id,
              "type": rel_type["label"], "color": rel_type["color"]}]
    inverse = types.get(rel_type["inverse_id"]) if rel_type["inverse_id"] else None
    if inverse is not None:
        edges.append({"source": node_id, "target": person["id"],
                      "type": inverse["label"], "color": inverse["color"]})
    return edges


def edge_to_graph(edge: dict, types: dict[str, dict]) -> dict | None:
    rel_type = types.get(edge["relationship_type_id"])
    if rel_type is None:
        return None
    return {"source": edge["person_id"], "target": edge["related_person_id"],
            "type": rel_type["label"], "color": rel_type["color"]}


def inverse_edge_to_graph(edge: dict, types: dict[str, dict]) -> dict | None:
    """The reverse-direction edge drawn from the type's configured inverse."""
    rel_type = types.get(edge["relationship_type_id"])
    if rel_type is None or not rel_type["inverse_id"]:
        return None
    inverse = types.get(rel_type["inverse_id"])
    if inverse is None:
        return None
    return {"source": edge["related_person_id"], "target": edge["person_id"],
            "type": inverse["label"], "color": inverse["color"]}


def _merge_edges(deduped: dict[str, dict], edges: list[dict], types: dict[str, dict]):
    for convert in (edge_to_graph, inverse_edge_to_graph):
        for edge in edges:
            graph_edge = convert(edge, types)
            if graph_edge is not None:
                deduped[f"{graph_edge['source']}-{graph_edge['target']}"] = graph_edge


def build_person_graph(conn: kuzu.Connection, user_id: str, person_id: str) -> dict:
    """Graph around one person: the person, the user, and everyone they point to.

    Edges among the related people are included only when both ends are
    already nodes, which keeps the view to the center's direct neighborhood.
    """
    center = store.find_person(conn, person_id, user_id)
    if center is None:
        raise NotFoundError("Person not found")

    types = store.live_types_by_id(conn, user_id)
    memberships = groups_by_person(conn, user_id)
    you = user_node_id(user_id)

    nodes = [person_node(center, memberships.get(center["id"], []), is_center=True),
             user_node(you)]
    node_ids = {center["id"], you}
    edges = user_edges(center, you, types)

    center_edges = store.list_edges_from(conn, center["id"])
    related = []
    for edge in center_edges:
        rid = edge["related_person_id"]
        if rid in node_ids:
            continue
        person = store.find_person(conn, rid, user_id)
        if person is None:
            continue
        nodes.append(person_node(person, memberships.get(rid, [])))
        node_ids.add(rid)
        related.append(person)
        edges += user_edges(person, you, types)

    deduped: dict[str, dict] = {}
    _merge_edges(deduped, center_edges, types)
    for person in related:
        among = [e for e in store.list_edges_from(conn, person["id"])
                 if e["related_person_id"] in node_ids]
        _merge_edges(deduped, among, types)

    edges += deduped.values()
    return {"nodes": nodes, "edges": edges}


def build_network_graph(conn: kuzu.Connection, user_id: str, group_ids=None,
                        limit: int | None = None) -> dict:
    """Whole-network graph centered on the user, optionally narrowed to groups."""
    types = store.live_types_by_id(conn, user_id)
    memberships = groups_by_person(conn, user_id)

    people = store.list_people(conn, user_id)
    if group_ids:
        wanted = set(group_ids)
        people = [p for p in people
                  if any(g["id"] in wanted for g in memberships.get(p["id"], []))]
    if limit is not None:
        people = people[:max(0, int(limit))]

    you = user_node_id(user_id)
    nodes = [user_node(you, is_center=True)]
    node_ids = {you}
    edges = []
    for person in people:
        nodes.append(person_node(person, memberships.get(person["id"], [])))
        node_ids.add(person["id"])
        edges += user_edges(person, you, types)

    outgoing: dict[str, list[dict]] = {}
    for edge in store.list_user_edges(conn, user_id):
        outgoing.setdefault(edge["person_id"], []).append(edge)

    deduped: dict[str, dict] = {}
    for person in people:
        among = [e for e in outgoing.get(person["id"], [])
                 if e["related_person_id"] in node_ids]
        _merge_edges(deduped, among, types)

    edges += deduped.values()
    return {"nodes": nodes, "edges": edges}
