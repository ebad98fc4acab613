import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _check_color(v):
    if v in (None, ""):
        return None
    if not _HEX_COLOR.match(v):
        raise ValueError("color must be a hex value like #3B82F6")
    return v


class CamelOut(BaseModel):
    """Response models serialized with camelCase keys (fullName, isCenter)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Auth ──

class RegisterIn(BaseModel):
    email: str
    display_name: str
    password: str


class LoginIn(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: str
    email: str
    display_name: str


# ── People ──

class PersonCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    surname: Optional[str] = None
    middle_name: Optional[str] = None
    second_last_name: Optional[str] = None
    nickname: Optional[str] = None
    notes: Optional[str] = None
    relationship_to_user_id: Optional[str] = None


class PersonUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    surname: Optional[str] = None
    middle_name: Optional[str] = None
    second_last_name: Optional[str] = None
    nickname: Optional[str] = None
    notes: Optional[str] = None


class PersonOut(BaseModel):
    id: str
    name: str
    surname: Optional[str] = None
    middle_name: Optional[str] = None
    second_last_name: Optional[str] = None
    nickname: Optional[str] = None
    notes: Optional[str] = None
    relationship_to_user_id: Optional[str] = None
    created_at: str
    updated_at: str


class PersonDelete(BaseModel):
    delete_orphans: bool = False
    orphan_ids: list[str] = []


class RelationshipToUserIn(BaseModel):
    relationship_type_id: Optional[str] = None


class BulkSelection(BaseModel):
    person_ids: Optional[list[str]] = None
    select_all: bool = False

    @model_validator(mode="after")
    def require_targets(self):
        if not self.select_all and not self.person_ids:
            raise ValueError("Either person_ids or select_all is required")
        return self


class BulkDelete(BulkSelection):
    delete_orphans: bool = False
    orphan_ids: list[str] = []


class MergeIn(BaseModel):
    primary_id: str = Field(min_length=1)
    secondary_id: str = Field(min_length=1)


class MergeOut(CamelOut):
    merged_into: str


# ── Relationship types ──

class RelationshipTypeIn(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    label: str = Field(min_length=1, max_length=50)
    color: Optional[str] = None
    inverse_id: Optional[str] = None
    inverse_label: Optional[str] = Field(default=None, max_length=50)
    symmetric: bool = False

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return _check_color(v)


class InverseSummary(BaseModel):
    id: str
    name: str
    label: str


class RelationshipTypeOut(BaseModel):
    id: str
    name: str
    label: str
    color: Optional[str] = None
    inverse_id: Optional[str] = None
    inverse: Optional[InverseSummary] = None


# ── Relationships ──

class RelationshipCreate(BaseModel):
    person_id: str = Field(min_length=1)
    related_person_id: str = Field(min_length=1)
    relationship_type_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class RelationshipUpdate(BaseModel):
    relationship_type_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class RelationshipOut(BaseModel):
    id: str
    person_id: str
    related_person_id: str
    relationship_type_id: str
    notes: Optional[str] = None
    created_at: str


class PersonSummary(BaseModel):
    id: str
    name: str
    surname: Optional[str] = None
    nickname: Optional[str] = None


class TypeSummary(BaseModel):
    id: str
    name: str
    label: str
    color: Optional[str] = None


class RelationshipDetailOut(RelationshipOut):
    person: PersonSummary
    related_person: PersonSummary
    relationship_type: Optional[TypeSummary] = None


class RelationshipToUserSummary(TypeSummary):
    inverse_id: Optional[str] = None


class PersonRelatedToUserOut(BaseModel):
    id: str
    name: str
    surname: Optional[str] = None
    nickname: Optional[str] = None
    relationship_to_user: RelationshipToUserSummary


# ── Groups ──

class GroupIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: Optional[str] = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return _check_color(v)


class GroupOut(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    created_at: str


# ── Orphans & graph ──

class OrphanOut(CamelOut):
    id: str
    full_name: str


class OrphansOut(CamelOut):
    orphans: list[OrphanOut]


class GraphNodeOut(CamelOut):
    id: str
    label: str
    groups: list[str]
    colors: list[str]
    is_center: bool


class GraphEdgeOut(CamelOut):
    source: str
    target: str
    type: str
    color: Optional[str] = None


class GraphOut(CamelOut):
    nodes: list[GraphNodeOut]
    edges: list[GraphEdgeOut]


# ── Duplicates ──

class DuplicateCandidateOut(CamelOut):
    person_id: str
    name: str
    surname: Optional[str] = None
    similarity: float


class DuplicatesOut(CamelOut):
    duplicates: list[DuplicateCandidateOut]


class DuplicateMemberOut(CamelOut):
    id: str
    name: str
    surname: Optional[str] = None


class DuplicateGroupOut(CamelOut):
    people: list[DuplicateMemberOut]
    similarity: float


class DuplicateGroupsOut(CamelOut):
    groups: list[DuplicateGroupOut]
