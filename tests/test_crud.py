"""Tests for nametag/crud.py: people, soft delete, restore and merge."""
from datetime import datetime, timedelta, timezone

import pytest

from nametag import crud, relationship_types, store
from nametag.errors import NotFoundError, ValidationError


def test_format_full_name():
    assert crud.format_full_name({"name": "Ana", "middle_name": "Maria",
                                  "surname": "Lopez", "second_last_name": "Diaz"}) == \
        "Ana Maria Lopez Diaz"
    assert crud.format_full_name({"name": "Ana", "middle_name": None,
                                  "surname": None, "second_last_name": None}) == "Ana"


class TestCreate:
    def test_create_and_get(self, conn, user_alice):
        p = crud.create_person(conn, user_alice["id"], " Ann ", surname="Lee", nickname="Annie")
        assert p["name"] == "Ann"
        assert p["surname"] == "Lee"
        assert p["nickname"] == "Annie"
        assert p["middle_name"] is None
        assert p["deleted_at"] is None
        assert crud.get_person(conn, p["id"], user_alice["id"]) == p

    def test_name_required(self, conn, user_alice):
        with pytest.raises(ValidationError):
            crud.create_person(conn, user_alice["id"], "   ")

    def test_unknown_relationship_to_user(self, conn, user_alice):
        with pytest.raises(NotFoundError):
            crud.create_person(conn, user_alice["id"], "Ann", relationship_to_user_id="missing")

    def test_isolated_per_user(self, conn, user_alice, user_bob):
        p = crud.create_person(conn, user_alice["id"], "Ann")
        assert crud.get_person(conn, p["id"], user_bob["id"]) is None
        assert crud.list_people(conn, user_bob["id"]) == []


class TestUpdate:
    def test_update_fields(self, conn, user_alice, make_person):
        p = make_person("Ann", "Lee")
        updated = crud.update_person(conn, user_alice["id"], p["id"], "Anna",
                                     surname=None, notes="likes tea")
        assert updated["name"] == "Anna"
        assert updated["surname"] is None
        assert updated["notes"] == "likes tea"
        assert updated["updated_at"] >= p["updated_at"]

    def test_not_found(self, conn, user_alice):
        with pytest.raises(NotFoundError):
            crud.update_person(conn, user_alice["id"], "missing", "X")

    def test_list_sorted(self, conn, user_alice, make_person):
        make_person("Zoe")
        make_person("Ann", "Young")
        make_person("Ann", "Adams")
        names = [(p["name"], p["surname"]) for p in crud.list_people(conn, user_alice["id"])]
        assert names == [("Ann", "Adams"), ("Ann", "Young"), ("Zoe", None)]


class TestRelationshipToUser:
    def test_set_and_clear(self, conn, user_alice, types, make_person):
        p = make_person("Ann")
        p = crud.set_relationship_to_user(conn, user_alice["id"], p["id"], types["FRIEND"]["id"])
        assert p["relationship_to_user_id"] == types["FRIEND"]["id"]
        p = crud.set_relationship_to_user(conn, user_alice["id"], p["id"], None)
        assert p["relationship_to_user_id"] is None

    def test_foreign_type(self, conn, user_alice, user_bob, make_person):
        p = make_person("Ann")
        bob_type = store.list_relationship_types(conn, user_bob["id"])[0]
        with pytest.raises(NotFoundError):
            crud.set_relationship_to_user(conn, user_alice["id"], p["id"], bob_type["id"])

    def test_list_related_to_user(self, conn, user_alice, types, make_person):
        make_person("Ann", relationship_to_user_id=types["FRIEND"]["id"])
        ben = make_person("Ben", relationship_to_user_id=types["PARENT"]["id"])
        make_person("Cal")
        listed = crud.list_people_related_to_user(conn, user_alice["id"])
        assert {p["name"] for p in listed} == {"Ann", "Ben"}

        parents = crud.list_people_related_to_user(conn, user_alice["id"], type_name="parent")
        assert [p["id"] for p in parents] == [ben["id"]]
        assert parents[0]["relationship_to_user"]["label"] == "Parent"
        assert parents[0]["relationship_to_user"]["inverse_id"] == types["CHILD"]["id"]

        by_id = crud.list_people_related_to_user(conn, user_alice["id"],
                                                 type_id=types["FRIEND"]["id"])
        assert [p["name"] for p in by_id] == ["Ann"]

    def test_list_related_to_user_newest_first_with_limit(self, conn, user_alice, types,
                                                          make_person):
        make_person("Ann", relationship_to_user_id=types["FRIEND"]["id"])
        make_person("Ben", relationship_to_user_id=types["FRIEND"]["id"])
        listed = crud.list_people_related_to_user(conn, user_alice["id"], limit=1)
        assert [p["name"] for p in listed] == ["Ben"]

    def test_deleted_type_not_listed(self, conn, user_alice, make_person):
        t = relationship_types.create_relationship_type(conn, user_alice["id"], "Mentor", "Mentor")
        make_person("Ann", relationship_to_user_id=t["id"])
        relationship_types.delete_relationship_type(conn, user_alice["id"], t["id"])
        assert crud.list_people_related_to_user(conn, user_alice["id"]) == []


class TestDelete:
    def test_soft_delete(self, conn, user_alice, make_person):
        p = make_person("Ann")
        assert crud.delete_person(conn, user_alice["id"], p["id"]) == [p["id"]]
        assert crud.get_person(conn, p["id"], user_alice["id"]) is None
        hidden = store.find_person(conn, p["id"], user_alice["id"], include_deleted=True)
        assert hidden["deleted_at"] is not None

    def test_delete_with_orphans(self, conn, user_alice, make_person, relate):
        a, b, c = make_person("Ann"), make_person("Ben"), make_person("Cal")
        relate(a, b, "FRIEND")
        deleted = crud.delete_person(conn, user_alice["id"], a["id"], orphan_ids=[b["id"]])
        assert deleted == [a["id"], b["id"]]
        assert [p["id"] for p in crud.list_people(conn, user_alice["id"])] == [c["id"]]

    def test_orphan_ids_of_other_user_ignored(self, conn, user_alice, user_bob, make_person):
        a = make_person("Ann")
        theirs = crud.create_person(conn, user_bob["id"], "Zed")
        crud.delete_person(conn, user_alice["id"], a["id"], orphan_ids=[theirs["id"]])
        assert crud.get_person(conn, theirs["id"], user_bob["id"]) is not None

    def test_not_found(self, conn, user_alice, make_person):
        p = make_person("Ann")
        crud.delete_person(conn, user_alice["id"], p["id"])
        with pytest.raises(NotFoundError):
            crud.delete_person(conn, user_alice["id"], p["id"])

    def test_bulk_delete(self, conn, user_alice, make_person, relate):
        a, b, c = make_person("Ann"), make_person("Ben"), make_person("Cal")
        relate(a, b, "FRIEND")
        count = crud.bulk_delete_people(conn, user_alice["id"], person_ids=[a["id"]],
                                        orphan_ids=[b["id"]])
        assert count == 2
        assert [p["id"] for p in crud.list_people(conn, user_alice["id"])] == [c["id"]]

    def test_bulk_delete_all(self, conn, user_alice, make_person):
        make_person("Ann")
        make_person("Ben")
        assert crud.bulk_delete_people(conn, user_alice["id"], select_all=True) == 2
        assert crud.list_people(conn, user_alice["id"]) == []

    def test_bulk_delete_nothing_selected(self, conn, user_alice):
        with pytest.raises(ValidationError):
            crud.bulk_delete_people(conn, user_alice["id"], person_ids=[])


class TestRestore:
    def test_restore_recent(self, conn, user_alice, make_person):
        p = make_person("Ann")
        crud.delete_person(conn, user_alice["id"], p["id"])
        restored = crud.restore_person(conn, user_alice["id"], p["id"])
        assert restored["deleted_at"] is None
        assert crud.get_person(conn, p["id"], user_alice["id"]) is not None

    def test_restore_live_person_is_noop(self, conn, user_alice, make_person):
        p = make_person("Ann")
        assert crud.restore_person(conn, user_alice["id"], p["id"])["id"] == p["id"]

    def test_restore_after_window(self, conn, user_alice, make_person):
        p = make_person("Ann")
        crud.delete_person(conn, user_alice["id"], p["id"])
        later = datetime.now(timezone.utc) + timedelta(days=31)
        with pytest.raises(NotFoundError):
            crud.restore_person(conn, user_alice["id"], p["id"], now=later)

    def test_restore_brings_back_edges(self, conn, user_alice, make_person, relate):
        a, b = make_person("Ann"), make_person("Ben")
        relate(a, b, "FRIEND")
        crud.delete_person(conn, user_alice["id"], b["id"])
        assert store.list_edges_from(conn, a["id"]) == []
        crud.restore_person(conn, user_alice["id"], b["id"])
        assert len(store.list_edges_from(conn, a["id"])) == 1


def _live_triples(conn, user_id):
    return {(e["person_id"], e["related_person_id"], e["relationship_type_id"])
            for e in store.list_user_edges(conn, user_id)}


class TestMerge:
    @pytest.fixture
    def trio(self, make_person):
        return make_person("Ann", "Lee"), make_person("Anne", "Lee"), make_person("Ben")

    def test_moves_edges_onto_primary(self, conn, user_alice, types, trio, relate):
        primary, secondary, ben = trio
        edge = relate(secondary, ben, "PARENT", notes="eldest")
        merged = crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        assert merged["id"] == primary["id"]
        assert _live_triples(conn, user_alice["id"]) == {
            (primary["id"], ben["id"], types["PARENT"]["id"]),
            (ben["id"], primary["id"], types["CHILD"]["id"]),
        }
        moved = store.get_edge(conn, edge["id"])
        assert moved["person_id"] == primary["id"]
        assert moved["notes"] == "eldest"
        assert moved["created_at"] == edge["created_at"]
        assert crud.get_person(conn, secondary["id"], user_alice["id"]) is None

    def test_edges_between_the_two_are_dropped(self, conn, user_alice, trio, relate):
        primary, secondary, _ = trio
        relate(primary, secondary, "SIBLING")
        crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        assert store.list_attached_edges(conn, primary["id"]) == []
        assert all(e["person_id"] != e["related_person_id"]
                   for e in store.list_user_edges(conn, user_alice["id"]))

    def test_duplicate_edges_collapse(self, conn, user_alice, types, trio, relate):
        primary, secondary, ben = trio
        relate(primary, ben, "FRIEND")
        relate(secondary, ben, "FRIEND")
        relate(secondary, ben, "COLLEAGUE")
        crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        edges = store.list_user_edges(conn, user_alice["id"])
        assert len(edges) == 4
        assert _live_triples(conn, user_alice["id"]) == {
            (primary["id"], ben["id"], types["FRIEND"]["id"]),
            (ben["id"], primary["id"], types["FRIEND"]["id"]),
            (primary["id"], ben["id"], types["COLLEAGUE"]["id"]),
            (ben["id"], primary["id"], types["COLLEAGUE"]["id"]),
        }

    def test_pairs_stay_symmetric(self, conn, user_alice, types, trio, make_person, relate):
        primary, secondary, ben = trio
        cal = make_person("Cal")
        relate(secondary, ben, "PARENT")
        relate(cal, secondary, "PARENT")
        relate(primary, ben, "FRIEND")
        relate(secondary, ben, "FRIEND")
        relate(primary, secondary, "SPOUSE")
        crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])

        inverse_of = {t["id"]: t["inverse_id"] for t in types.values()}
        triples = _live_triples(conn, user_alice["id"])
        assert len(triples) == 6
        for a, b, t in triples:
            assert a != b
            assert (b, a, inverse_of[t]) in triples

    def test_fills_empty_fields(self, conn, user_alice, types, make_person):
        primary = make_person("Ann", notes="keep me")
        secondary = make_person("Anne", "Lee", nickname="Annie", notes="drop me",
                                relationship_to_user_id=types["FRIEND"]["id"])
        merged = crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        assert merged["name"] == "Ann"
        assert merged["surname"] == "Lee"
        assert merged["nickname"] == "Annie"
        assert merged["notes"] == "keep me"
        assert merged["relationship_to_user_id"] == types["FRIEND"]["id"]

    def test_keeps_primary_relationship_to_user(self, conn, user_alice, types, make_person):
        primary = make_person("Ann", relationship_to_user_id=types["SIBLING"]["id"])
        secondary = make_person("Anne", relationship_to_user_id=types["FRIEND"]["id"])
        merged = crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        assert merged["relationship_to_user_id"] == types["SIBLING"]["id"]

    def test_carries_group_memberships(self, conn, user_alice, trio):
        from nametag import groups
        primary, secondary, _ = trio
        family = groups.create_group(conn, user_alice["id"], "Family")
        work = groups.create_group(conn, user_alice["id"], "Work")
        groups.add_person(conn, user_alice["id"], family["id"], primary["id"])
        groups.add_person(conn, user_alice["id"], family["id"], secondary["id"])
        groups.add_person(conn, user_alice["id"], work["id"], secondary["id"])
        crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        assert {g["id"] for g in groups.list_person_groups(conn, primary["id"])} == \
            {family["id"], work["id"]}
        assert groups.list_person_groups(conn, secondary["id"]) == []
        assert [m["id"] for m in groups.list_group_members(
            conn, user_alice["id"], family["id"])] == [primary["id"]]

    def test_same_person(self, conn, user_alice, trio):
        primary, _, _ = trio
        with pytest.raises(ValidationError):
            crud.merge_people(conn, user_alice["id"], primary["id"], primary["id"])

    def test_unknown_or_foreign_person(self, conn, user_alice, user_bob, trio):
        primary, _, _ = trio
        stranger = crud.create_person(conn, user_bob["id"], "Ann")
        with pytest.raises(NotFoundError):
            crud.merge_people(conn, user_alice["id"], primary["id"], "missing")
        with pytest.raises(NotFoundError):
            crud.merge_people(conn, user_alice["id"], primary["id"], stranger["id"])

    def test_failure_rolls_everything_back(self, conn, user_alice, types, trio, relate,
                                           monkeypatch):
        primary, secondary, ben = trio
        relate(secondary, ben, "FRIEND")

        def failing_soft_delete(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "soft_delete_many", failing_soft_delete)
        with pytest.raises(RuntimeError):
            crud.merge_people(conn, user_alice["id"], primary["id"], secondary["id"])
        monkeypatch.undo()

        assert crud.get_person(conn, secondary["id"], user_alice["id"]) is not None
        assert _live_triples(conn, user_alice["id"]) == {
            (secondary["id"], ben["id"], types["FRIEND"]["id"]),
            (ben["id"], secondary["id"], types["FRIEND"]["id"]),
        }
