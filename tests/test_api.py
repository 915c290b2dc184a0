from tests.conftest import SAMPLE_NOTES, connection_error


def generate(client, **overrides):
    body = {"topic": "Photosynthesis", "subject": "Biology", "content_kind": "all"}
    body.update(overrides)
    return client.post("/content/generate", json=body)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["models"] == ["fast", "balanced", "detailed"]


def test_models(client):
    response = client.get("/content/models")
    assert set(response.json()["models"]) == {"fast", "balanced", "detailed"}


def test_generate_and_fetch(client):
    response = generate(client)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    record = body["data"]
    assert record["notes"] == SAMPLE_NOTES
    assert record["mcqs"]["questions"][0]["correct_answer"] == "B"

    fetched = client.get(f"/topics/{record['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["id"] == record["id"]


def test_generate_validation(client):
    response = generate(client, topic="x")
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"

    response = generate(client, content_kind="poems")
    assert response.status_code == 400

    response = generate(client, mcq_count=100)
    assert response.status_code == 400


def test_generate_upstream_failure(client, completions):
    completions.errors["mcqs"] = connection_error()
    response = generate(client)
    assert response.status_code == 502
    assert response.json()["error"] == "upstream_error"
    assert "sk-test-secret" not in response.text
    assert client.get("/topics").json()["count"] == 0


def test_list_topics_order_and_search(client):
    for topic in ("Alpha", "Beta", "Gamma"):
        assert generate(client, topic=topic, content_kind="notes").status_code == 200

    listing = client.get("/topics").json()
    assert [t["topic"] for t in listing["data"]] == ["Gamma", "Beta", "Alpha"]

    search = client.get("/topics", params={"q": "ETA"}).json()
    assert [t["topic"] for t in search["data"]] == ["Beta"]

    limited = client.get("/topics", params={"limit": 1}).json()
    assert limited["count"] == 1


def test_stats(client):
    generate(client, difficulty="advanced", content_kind="notes")
    stats = client.get("/topics/stats").json()
    assert stats["total_topics"] == 1
    assert stats["difficulty_distribution"]["advanced"] == 1
    assert stats["subjects"] == ["Biology"]


def test_topic_slides(client):
    record = generate(client, content_kind="slides").json()["data"]
    slides = client.get(f"/topics/{record['id']}/slides").json()
    assert [s["title"] for s in slides] == ["Intro", "Next"]


def test_delete(client):
    record = generate(client, content_kind="notes").json()["data"]
    assert client.delete(f"/topics/{record['id']}").status_code == 200
    assert client.get(f"/topics/{record['id']}").status_code == 404
    assert client.delete(f"/topics/{record['id']}").status_code == 404


def test_export_content_and_download(client):
    response = client.post("/content/export", json={"format": "json", "content": '{"a":1}', "filename": "payload"})
    assert response.status_code == 200
    body = response.json()
    assert body["download_url"] == "/exports/payload.json"

    download = client.get(body["download_url"])
    assert download.status_code == 200
    assert download.json() == {"a": 1}


def test_export_sanitizes_filename(client, renderer):
    response = client.post("/content/export", json={"format": "markdown", "content": "hi", "filename": "../../etc/passwd"})
    assert response.status_code == 200
    body = response.json()
    assert "/" not in body["filename"]
    assert body["download_url"] == f"/exports/{body['filename']}"
    assert (renderer.exports_dir / body["filename"]).read_text() == "hi"


def test_export_record(client):
    record = generate(client).json()["data"]
    response = client.post(
        "/content/export",
        json={"format": "markdown", "record_id": record["id"], "kind": "notes", "filename": "notes"},
    )
    assert response.status_code == 200
    assert client.get(response.json()["download_url"]).text == SAMPLE_NOTES


def test_export_errors(client):
    missing = client.post("/content/export", json={"format": "markdown", "record_id": "nope", "filename": "x"})
    assert missing.status_code == 404

    nothing = client.post("/content/export", json={"format": "markdown", "filename": "x"})
    assert nothing.status_code == 400

    bad_json = client.post("/content/export", json={"format": "json", "content": "{", "filename": "x"})
    assert bad_json.status_code == 500
    assert bad_json.json()["error"] == "export_error"


def test_download_missing(client):
    assert client.get("/exports/nothing.md").status_code == 404
