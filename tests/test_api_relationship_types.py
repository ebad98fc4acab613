"""API tests for /api/relationship-types endpoints."""


class TestRelationshipTypesApi:
    def test_defaults_seeded(self, auth_client):
        body = auth_client.get("/api/relationship-types").json()
        by_name = {t["name"]: t for t in body}
        assert len(body) == 10
        assert by_name["PARENT"]["inverse"]["name"] == "CHILD"

    def test_create_with_inverse_label(self, auth_client):
        resp = auth_client.post("/api/relationship-types", json={
            "name": "mentor", "label": "Mentor", "color": "#123456", "inverse_label": "Mentee"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "MENTOR"
        assert body["inverse"]["label"] == "Mentee"

    def test_bad_color(self, auth_client):
        resp = auth_client.post("/api/relationship-types", json={
            "name": "mentor", "label": "Mentor", "color": "red"})
        assert resp.status_code == 422

    def test_duplicate_name(self, auth_client):
        resp = auth_client.post("/api/relationship-types",
                                json={"name": "friend", "label": "Pal"})
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE"

    def test_update(self, auth_client, api_types):
        resp = auth_client.put(f"/api/relationship-types/{api_types['OTHER']['id']}",
                               json={"name": "OTHER", "label": "Misc", "symmetric": True})
        assert resp.status_code == 200
        assert resp.json()["label"] == "Misc"

    def test_delete_in_use(self, auth_client, api_types):
        a = auth_client.post("/api/people", json={"name": "Ann"}).json()
        b = auth_client.post("/api/people", json={"name": "Ben"}).json()
        auth_client.post("/api/relationships", json={
            "person_id": a["id"], "related_person_id": b["id"],
            "relationship_type_id": api_types["FRIEND"]["id"]})
        resp = auth_client.delete(f"/api/relationship-types/{api_types['FRIEND']['id']}")
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_delete_unused(self, auth_client, api_types):
        resp = auth_client.delete(f"/api/relationship-types/{api_types['OTHER']['id']}")
        assert resp.status_code == 200
        assert auth_client.get(
            f"/api/relationship-types/{api_types['OTHER']['id']}").status_code == 404

    def test_other_user_cannot_see(self, auth_client, other_client, api_types):
        resp = other_client.get(f"/api/relationship-types/{api_types['FRIEND']['id']}")
        assert resp.status_code == 404
