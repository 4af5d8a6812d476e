CONTENT = {
    "platform": "Netflix",
    "title": "Delhi Crime",
    "primaryLanguage": "Hindi",
    "year": 2019,
    "assignedGenre": "Crime",
    "dubbing": {"tamil": True},
}


def assert_envelope(body, success=True):
    assert body["success"] is success
    assert "message" in body
    assert "timestamp" in body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert_envelope(body)
    assert body["data"]["database"] == "connected"


def test_content_lifecycle(client, user):
    created = client.post("/content", json=CONTENT, headers={"X-User-Id": str(user)})
    assert created.status_code == 201
    content = created.json()["data"]
    assert content["total_dubbings"] == 1
    assert content["created_by"] == user

    duplicate = client.post("/content", json=CONTENT)
    assert duplicate.status_code == 409
    assert_envelope(duplicate.json(), success=False)

    check = client.post("/content/check-duplicate", json={"platform": "Netflix", "title": "Delhi Crime",
                                                          "year": 2019, "excludeId": content["id"]})
    assert check.json()["data"] == {"is_duplicate": False}

    updated = client.put(f"/content/{content['id']}", json={"seasons": 2})
    assert updated.status_code == 200
    assert updated.json()["data"]["seasons"] == 2

    deleted = client.delete(f"/content/{content['id']}")
    assert deleted.json()["data"] == {"id": content["id"], "is_active": False}
    assert client.get(f"/content/{content['id']}").status_code == 404


def test_validation_errors_are_400(client):
    response = client.post("/content", json={**CONTENT, "year": "next year"})
    assert response.status_code == 400
    body = response.json()
    assert_envelope(body, success=False)
    assert body["error"][0]["field"] == "year"

    assert client.post("/content", json=["not", "an", "object"]).status_code == 400


def test_unknown_user_header(client):
    unknown = {"X-User-Id": "77"}
    assert client.post("/content", json=CONTENT, headers=unknown).status_code == 404

    content_id = client.post("/content", json=CONTENT).json()["data"]["id"]
    assert client.put(f"/content/{content_id}", json={"seasons": 2}, headers=unknown).status_code == 404
    assert client.delete(f"/content/{content_id}", headers=unknown).status_code == 404
    assert client.get("/content/export-csv", headers=unknown).status_code == 404

    assert client.get(f"/content/{content_id}").json()["data"]["seasons"] == 1
    activities = client.get("/activities").json()["data"]["items"]
    assert [(item["action"], item["user_id"]) for item in activities] == [("create", None)]


def test_content_list_and_stats(client):
    client.post("/content", json=CONTENT)
    client.post("/content", json={**CONTENT, "title": "Paatal Lok", "platform": "Prime Video", "year": 2020})

    listing = client.get("/content", params={"platform": "Prime Video"}).json()["data"]
    assert [item["title"] for item in listing["items"]] == ["Paatal Lok"]

    stats = client.get("/content/stats").json()["data"]
    assert stats["total"] == 2


def test_csv_endpoints(client):
    client.post("/content", json=CONTENT)
    export = client.get("/content/export-csv")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "Delhi Crime" in export.text

    template = client.get("/content/csv-template").json()["data"]
    assert template["headers"][0] == "Platform"


def test_analytics_endpoints(client):
    client.post("/content", json=CONTENT)
    client.post("/content", json={**CONTENT, "title": "Sacred Games", "year": 2018, "durationHours": 8})

    distribution = client.get("/analytics/platform-distribution").json()
    assert_envelope(distribution)
    assert distribution["data"]["data"] == [{"platform": "Netflix", "count": 2}]

    repeated = client.get("/analytics/yearly-releases?year=2018&year=2019").json()["data"]
    assert [row["year"] for row in repeated["data"]] == [2018, 2019]

    for path in ["/analytics/genre-trends", "/analytics/language-stats", "/analytics/dubbing-analysis",
                 "/analytics/source-breakdown", "/analytics/duration-analysis",
                 "/analytics/age-rating-distribution", "/analytics/dashboard-summary",
                 "/analytics/monthly-release-trend", "/analytics/platform-growth",
                 "/analytics/genre-platform-heatmap", "/analytics/language-platform-matrix",
                 "/analytics/duration-by-format-genre", "/analytics/dubbing-penetration",
                 "/analytics/top-dubbed-languages", "/analytics/content-freshness",
                 "/analytics/data-quality-score", "/analytics/multi-dimensional",
                 "/analytics/advanced-slicing", "/analytics/comparative",
                 "/public/analytics/monthly-release-trend", "/public/analytics/platform-distribution",
                 "/public/analytics/language-platform-matrix", "/public/analytics/genre-trends"]:
        response = client.get(path)
        assert response.status_code == 200, path
        assert response.json()["success"] is True, path


def test_custom_analytics_merges_query_and_body(client):
    client.post("/content", json=CONTENT)
    response = client.post("/analytics/custom?platform=Netflix", json={"groupBy": "genre"})
    assert response.status_code == 200
    assert response.json()["data"]["data"] == [{"genre": "Crime", "count": 1}]

    invalid = client.post("/analytics/custom", json={"groupBy": "genre", "metric": "median"})
    assert invalid.status_code == 400


def test_users_and_activities(client):
    created = client.post("/users", json={"username": "curator", "email": "curator@example.com"})
    assert created.status_code == 201
    user_id = created.json()["data"]["id"]

    assert client.post("/users", json={"username": "curator", "email": "x@example.com"}).status_code == 400
    assert client.get(f"/users/{user_id}").json()["data"]["username"] == "curator"
    assert client.get("/users/999").status_code == 404
    assert client.get("/users").json()["data"]["total"] == 1

    client.post("/content", json=CONTENT, headers={"X-User-Id": str(user_id)})
    activities = client.get(f"/users/{user_id}/activities").json()["data"]
    assert [item["action"] for item in activities["items"]] == ["create", "register"]

    filtered = client.get("/activities", params={"action": "create"}).json()["data"]
    assert filtered["total"] == 1


def test_user_administration(client):
    admin = client.post("/users", json={"username": "chief", "email": "chief@example.com", "role": "admin"})
    admin_id = admin.json()["data"]["id"]
    member_id = client.post("/users", json={"username": "member", "email": "m@example.com"}).json()["data"]["id"]
    as_admin = {"X-User-Id": str(admin_id)}

    role = client.put(f"/users/{member_id}/role", json={"role": "admin"}, headers=as_admin)
    assert role.status_code == 200
    assert role.json()["data"]["role"] == "admin"
    assert client.put(f"/users/{member_id}/role", json={"role": "root"}, headers=as_admin).status_code == 400

    bulk = client.put("/users/bulk/roles", json={"userIds": [member_id], "role": "user"}, headers=as_admin)
    assert bulk.json()["data"] == {"matched_count": 1, "modified_count": 1}

    toggled = client.put(f"/users/{member_id}/toggle-status", headers=as_admin)
    assert toggled.json()["data"]["is_active"] is False
    assert client.post("/content", json=CONTENT, headers={"X-User-Id": str(member_id)}).status_code == 403

    status = client.put("/users/bulk/status", json={"userIds": [member_id], "setActive": True}, headers=as_admin)
    assert status.json()["data"]["modified_count"] == 1

    assert client.delete(f"/users/{admin_id}", headers=as_admin).status_code == 400
    assert client.delete(f"/users/{member_id}", headers=as_admin).status_code == 200
    assert client.get(f"/users/{member_id}").status_code == 404
    assert client.delete("/users/999", headers=as_admin).status_code == 404

    changes = client.get("/activities", params={"action": "role_change,status_change"}).json()["data"]
    assert changes["total"] == 4
