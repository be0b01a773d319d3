import json


def _session(session_id="s1", name="Maths"):
    return {
        "id": session_id,
        "name": name,
        "knowledgeBase": {"urls": [], "files": [], "rawTexts": []},
        "chatMessages": [],
    }


def test_repository_initialises_missing_file(repo, settings):
    with open(settings.db_path) as fh:
        assert json.load(fh) == {"sessions": []}


def test_list_starts_empty(api):
    resp = api.get("/api/sessions")
    assert resp.status_code == 200
    assert resp.json() == []


def test_create_then_list(api, settings):
    resp = api.post("/api/sessions", json=_session())
    assert resp.status_code == 201
    assert resp.json()["id"] == "s1"
    assert resp.json()["assistantName"] == "PedagoChat"

    listed = api.get("/api/sessions").json()
    assert [s["id"] for s in listed] == ["s1"]
    with open(settings.db_path) as fh:
        assert json.load(fh)["sessions"][0]["name"] == "Maths"


def test_create_duplicate_id_conflicts(api):
    api.post("/api/sessions", json=_session())
    resp = api.post("/api/sessions", json=_session(name="Other"))
    assert resp.status_code == 409
    assert len(api.get("/api/sessions").json()) == 1


def test_create_rejects_invalid_body(api):
    resp = api.post("/api/sessions", json={"name": "no id"})
    assert resp.status_code == 422


def test_update_is_shallow_merge(api):
    api.post("/api/sessions", json=_session())
    resp = api.put("/api/sessions/s1", json={"name": "Physics", "modelName": "gemini-pro"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Physics"
    assert body["modelName"] == "gemini-pro"
    # absent fields are preserved
    assert body["knowledgeBase"] == {"urls": [], "files": [], "rawTexts": []}


def test_update_cannot_change_id(api):
    api.post("/api/sessions", json=_session())
    resp = api.put("/api/sessions/s1", json={"id": "hijack"})
    assert resp.json()["id"] == "s1"


def test_update_unknown_returns_404_and_leaves_file(api, settings):
    api.post("/api/sessions", json=_session())
    with open(settings.db_path, "rb") as fh:
        before = fh.read()

    resp = api.put("/api/sessions/unknown-id", json={"name": "x"})

    assert resp.status_code == 404
    with open(settings.db_path, "rb") as fh:
        assert fh.read() == before


def test_update_rejects_malformed_merge_and_leaves_file(api, settings):
    api.post("/api/sessions", json=_session())
    with open(settings.db_path, "rb") as fh:
        before = fh.read()

    resp = api.put("/api/sessions/s1", json={"chatMessages": "not a list"})

    assert resp.status_code == 422
    with open(settings.db_path, "rb") as fh:
        assert fh.read() == before
    assert api.get("/api/sessions").json()[0]["chatMessages"] == []


def test_delete_is_idempotent(api):
    api.post("/api/sessions", json=_session())
    assert api.delete("/api/sessions/s1").status_code == 204
    assert api.delete("/api/sessions/s1").status_code == 204
    assert api.get("/api/sessions").json() == []


def test_corrupt_database_reads_as_empty(repo, settings):
    with open(settings.db_path, "w") as fh:
        fh.write("{not json")
    assert repo.list_sessions() == []


def test_health(api):
    assert api.get("/health").json() == {"status": "ok"}


def test_frontend_missing_build(api):
    resp = api.get("/embed/anything")
    assert resp.status_code == 404
    assert "not built" in resp.text


def test_frontend_catch_all_serves_index(api, settings, tmp_path):
    dist = tmp_path / "dist"
    dist.mkdir()
    (dist / "index.html").write_text("<html>app</html>")
    (dist / "app.js").write_text("console.log(1)")

    assert api.get("/some/spa/route").text == "<html>app</html>"
    assert api.get("/app.js").text == "console.log(1)"
    assert api.get("/api/unknown").status_code == 404
