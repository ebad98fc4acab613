import hmac
import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from .db import get_conn, write_sentinel
from .errors import NametagError
from . import (auth, crud, duplicates, graph, groups, orphans, relationship_types,
               relationships, retention, schemas)

logger = logging.getLogger(__name__)

CRON_SECRET = os.environ.get("CRON_SECRET", "")

app = FastAPI(title="Nametag")


@app.exception_handler(NametagError)
def nametag_error_handler(request: Request, exc: NametagError):
    return JSONResponse(status_code=exc.status_code,
                        content={"detail": exc.message, "code": exc.code})


@app.get("/health")
def health():
    return {"ok": True}


# ── Auth ──

@app.post("/api/auth/register", response_model=schemas.UserOut)
def register(body: schemas.RegisterIn, response: Response, conn=Depends(get_conn)):
    user = auth.create_user(conn, body.email, body.display_name, body.password)
    write_sentinel()
    auth.start_session(response, user["id"])
    return user


@app.post("/api/auth/login", response_model=schemas.UserOut)
def login(body: schemas.LoginIn, response: Response, conn=Depends(get_conn)):
    user = auth.authenticate_user(conn, body.email, body.password)
    auth.start_session(response, user["id"])
    return user


@app.post("/api/auth/logout")
def logout(response: Response):
    auth.end_session(response)
    return {"ok": True}


# ── People ──

@app.get("/api/people", response_model=list[schemas.PersonOut])
def list_people(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return crud.list_people(conn, user["id"])


@app.post("/api/people", response_model=schemas.PersonOut)
def create_person(body: schemas.PersonCreate, user=Depends(auth.get_current_user),
                  conn=Depends(get_conn)):
    return crud.create_person(conn, user["id"], **body.model_dump())


@app.post("/api/people/bulk/orphans", response_model=schemas.OrphansOut)
def bulk_orphans(body: schemas.BulkSelection, user=Depends(auth.get_current_user),
                 conn=Depends(get_conn)):
    found = orphans.get_orphans_for_bulk_delete(
        conn, user["id"], person_ids=body.person_ids, select_all=body.select_all)
    return {"orphans": found}


@app.post("/api/people/bulk/delete")
def bulk_delete(body: schemas.BulkDelete, user=Depends(auth.get_current_user),
                conn=Depends(get_conn)):
    count = crud.bulk_delete_people(
        conn, user["id"], person_ids=body.person_ids, select_all=body.select_all,
        orphan_ids=body.orphan_ids if body.delete_orphans else None)
    return {"deleted": count}


@app.post("/api/people/merge", response_model=schemas.MergeOut)
def merge_people(body: schemas.MergeIn, user=Depends(auth.get_current_user),
                 conn=Depends(get_conn)):
    crud.merge_people(conn, user["id"], body.primary_id, body.secondary_id)
    return {"merged_into": body.primary_id}


@app.get("/api/people/duplicates", response_model=schemas.DuplicateGroupsOut)
def duplicate_groups(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return {"groups": duplicates.get_duplicate_groups(conn, user["id"])}


@app.get("/api/people/{person_id}", response_model=schemas.PersonOut)
def get_person(person_id: str, user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    person = crud.get_person(conn, person_id, user["id"])
    if not person:
        raise HTTPException(404, "Person not found")
    return person


@app.put("/api/people/{person_id}", response_model=schemas.PersonOut)
def update_person(person_id: str, body: schemas.PersonUpdate,
                  user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return crud.update_person(conn, user["id"], person_id, **body.model_dump())


@app.delete("/api/people/{person_id}")
def delete_person(person_id: str, body: Optional[schemas.PersonDelete] = None,
                  user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    body = body or schemas.PersonDelete()
    deleted = crud.delete_person(
        conn, user["id"], person_id,
        orphan_ids=body.orphan_ids if body.delete_orphans else None)
    return {"deleted": deleted}


@app.post("/api/people/{person_id}/restore", response_model=schemas.PersonOut)
def restore_person(person_id: str, user=Depends(auth.get_current_user),
                   conn=Depends(get_conn)):
    return crud.restore_person(conn, user["id"], person_id)


@app.put("/api/people/{person_id}/relationship-to-user", response_model=schemas.PersonOut)
def set_relationship_to_user(person_id: str, body: schemas.RelationshipToUserIn,
                             user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return crud.set_relationship_to_user(conn, user["id"], person_id,
                                         body.relationship_type_id)


@app.get("/api/people/{person_id}/orphans", response_model=schemas.OrphansOut)
def person_orphans(person_id: str, user=Depends(auth.get_current_user),
                   conn=Depends(get_conn)):
    return {"orphans": orphans.get_orphans_for_person(conn, user["id"], person_id)}


@app.get("/api/people/{person_id}/graph", response_model=schemas.GraphOut)
def person_graph(person_id: str, user=Depends(auth.get_current_user),
                 conn=Depends(get_conn)):
    return graph.build_person_graph(conn, user["id"], person_id)


@app.get("/api/people/{person_id}/duplicates", response_model=schemas.DuplicatesOut)
def person_duplicates(person_id: str, user=Depends(auth.get_current_user),
                      conn=Depends(get_conn)):
    return {"duplicates": duplicates.get_duplicates_for_person(conn, user["id"], person_id)}


@app.get("/api/people/{person_id}/groups", response_model=list[schemas.GroupOut])
def person_groups(person_id: str, user=Depends(auth.get_current_user),
                  conn=Depends(get_conn)):
    if crud.get_person(conn, person_id, user["id"]) is None:
        raise HTTPException(404, "Person not found")
    return groups.list_person_groups(conn, person_id)


@app.get("/api/dashboard/graph", response_model=schemas.GraphOut)
def dashboard_graph(group_ids: list[str] = Query(default=[]),
                    limit: Optional[int] = Query(default=None, ge=0),
                    user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return graph.build_network_graph(conn, user["id"], group_ids=group_ids, limit=limit)


# ── Relationship types ──

@app.get("/api/relationship-types", response_model=list[schemas.RelationshipTypeOut])
def list_relationship_types(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return relationship_types.list_relationship_types(conn, user["id"])


@app.post("/api/relationship-types", response_model=schemas.RelationshipTypeOut)
def create_relationship_type(body: schemas.RelationshipTypeIn,
                             user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return relationship_types.create_relationship_type(conn, user["id"], **body.model_dump())


@app.get("/api/relationship-types/{type_id}", response_model=schemas.RelationshipTypeOut)
def get_relationship_type(type_id: str, user=Depends(auth.get_current_user),
                          conn=Depends(get_conn)):
    return relationship_types.get_relationship_type(conn, type_id, user["id"])


@app.put("/api/relationship-types/{type_id}", response_model=schemas.RelationshipTypeOut)
def update_relationship_type(type_id: str, body: schemas.RelationshipTypeIn,
                             user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return relationship_types.update_relationship_type(
        conn, user["id"], type_id, **body.model_dump())


@app.delete("/api/relationship-types/{type_id}")
def delete_relationship_type(type_id: str, user=Depends(auth.get_current_user),
                             conn=Depends(get_conn)):
    relationship_types.delete_relationship_type(conn, user["id"], type_id)
    return {"ok": True}


# ── Relationships ──

@app.get("/api/relationships", response_model=list[schemas.RelationshipDetailOut])
def list_relationships(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return relationships.list_relationships(conn, user["id"])


@app.post("/api/relationships", response_model=schemas.RelationshipOut, status_code=201)
def create_relationship(body: schemas.RelationshipCreate,
                        user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return relationships.create_relationship(
        conn, user["id"], body.person_id, body.related_person_id,
        body.relationship_type_id, body.notes)


@app.get("/api/relationships/to-user", response_model=list[schemas.PersonRelatedToUserOut])
def relationships_to_user(relationship_type_id: Optional[str] = None,
                          relationship_type_name: Optional[str] = None,
                          limit: Optional[int] = Query(default=None, ge=0),
                          user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return crud.list_people_related_to_user(
        conn, user["id"], type_id=relationship_type_id,
        type_name=relationship_type_name, limit=limit)


@app.get("/api/relationships/{relationship_id}", response_model=schemas.RelationshipDetailOut)
def get_relationship(relationship_id: str, user=Depends(auth.get_current_user),
                     conn=Depends(get_conn)):
    return relationships.get_relationship(conn, user["id"], relationship_id)


@app.put("/api/relationships/{relationship_id}", response_model=schemas.RelationshipOut)
def update_relationship(relationship_id: str, body: schemas.RelationshipUpdate,
                        user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return relationships.update_relationship(
        conn, user["id"], relationship_id, body.relationship_type_id, body.notes)


@app.delete("/api/relationships/{relationship_id}")
def delete_relationship(relationship_id: str, user=Depends(auth.get_current_user),
                        conn=Depends(get_conn)):
    relationships.delete_relationship(conn, user["id"], relationship_id)
    return {"message": "Relationship deleted successfully"}


# ── Groups ──

@app.get("/api/groups", response_model=list[schemas.GroupOut])
def list_groups(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return groups.list_groups(conn, user["id"])


@app.post("/api/groups", response_model=schemas.GroupOut)
def create_group(body: schemas.GroupIn, user=Depends(auth.get_current_user),
                 conn=Depends(get_conn)):
    return groups.create_group(conn, user["id"], body.name, body.color)


@app.put("/api/groups/{group_id}", response_model=schemas.GroupOut)
def update_group(group_id: str, body: schemas.GroupIn, user=Depends(auth.get_current_user),
                 conn=Depends(get_conn)):
    return groups.update_group(conn, user["id"], group_id, body.name, body.color)


@app.delete("/api/groups/{group_id}")
def delete_group(group_id: str, user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    groups.delete_group(conn, user["id"], group_id)
    return {"ok": True}


@app.get("/api/groups/{group_id}/members", response_model=list[schemas.PersonOut])
def group_members(group_id: str, user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return groups.list_group_members(conn, user["id"], group_id)


@app.post("/api/groups/{group_id}/members/{person_id}")
def add_group_member(group_id: str, person_id: str, user=Depends(auth.get_current_user),
                     conn=Depends(get_conn)):
    groups.add_person(conn, user["id"], group_id, person_id)
    return {"ok": True}


@app.delete("/api/groups/{group_id}/members/{person_id}")
def remove_group_member(group_id: str, person_id: str, user=Depends(auth.get_current_user),
                        conn=Depends(get_conn)):
    groups.remove_person(conn, user["id"], group_id, person_id)
    return {"ok": True}


# ── Maintenance ──

@app.post("/api/cron/purge-deleted")
def purge_deleted(authorization: str = Header(default=""), conn=Depends(get_conn)):
    expected = f"Bearer {CRON_SECRET}".encode()
    if not CRON_SECRET or not hmac.compare_digest(authorization.encode(), expected):
        logger.warning("Rejected purge request with invalid cron secret")
        raise HTTPException(401, "Unauthorized")
    return {"purged": retention.purge_deleted(conn)}
