import uuid
from sqlalchemy import exc as sa_exc

import utils.ingestion as ingestion


def _payload(make_thread, make_comment, scraped_data_id="s1", name="Marketing site"):
    return {
        "scrapedDataId": scraped_data_id,
        "projectName": name,
        "markupUrl": "https://app.markup.io/markup/abc",
        "threads": [
            make_thread("Homepage", comments=[
                make_comment(1, attachments=["https://files.example.com/a.png"]),
                make_comment(2, content="Fix spacing", user="bob"),
            ]),
            make_thread("Pricing"),
        ],
    }


class TestIngestEndpoint:
    """POST /api/ingest"""

    def test_ingest_returns_created(self, client, make_thread, make_comment):
        response = client.post("/api/ingest", json=_payload(make_thread, make_comment))

        assert response.status_code == 201
        body = response.json()
        uuid.UUID(body["projectId"])
        assert body["scrapedDataId"] == "s1"
        assert body["totalThreads"] == 2
        assert body["totalComments"] == 3

    def test_reingest_returns_same_project_id(self, client, make_thread, make_comment):
        first = client.post("/api/ingest", json=_payload(make_thread, make_comment)).json()
        second = client.post("/api/ingest", json=_payload(make_thread, make_comment, name="Renamed")).json()

        assert first["projectId"] == second["projectId"]

    def test_malformed_comment_returns_location(self, client, make_thread, make_comment):
        payload = _payload(make_thread, make_comment)
        del payload["threads"][1]["comments"][0]["content"]

        response = client.post("/api/ingest", json=payload)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "PayloadValidationError"
        assert detail["thread_index"] == 1
        assert detail["comment_index"] == 0
        assert detail["field"] == "content"
        assert detail["retryable"] is False
        assert client.get("/api/projects/by-ref/s1").status_code == 404

    def test_duplicate_attachments_rejected(self, client, make_thread, make_comment):
        url = "https://files.example.com/a.png"
        payload = {
            "scrapedDataId": "s1",
            "projectName": "Proj",
            "threads": [make_thread(comments=[make_comment(1, attachments=[url, url])])],
        }

        response = client.post("/api/ingest", json=payload)

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "attachments"

    def test_overlong_thread_name_returns_location(self, client, make_thread, make_comment):
        payload = _payload(make_thread, make_comment)
        payload["threads"][1]["threadName"] = "T" * 300

        response = client.post("/api/ingest", json=payload)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["thread_index"] == 1
        assert detail["field"] == "threadName"

    def test_missing_project_name_rejected_by_request_model(self, client):
        response = client.post("/api/ingest", json={"scrapedDataId": "s1", "threads": []})
        assert response.status_code == 422

    def test_store_outage_returns_retryable_503(self, client, make_thread, make_comment, monkeypatch):
        async def failing_upsert(*args, **kwargs):
            raise sa_exc.OperationalError("INSERT INTO markup_projects", {}, Exception("could not connect to server"))

        monkeypatch.setattr(ingestion, "_upsert_project", failing_upsert)

        response = client.post("/api/ingest", json=_payload(make_thread, make_comment))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        detail = response.json()["detail"]
        assert detail["error"] == "TransientStoreError"
        assert detail["retryable"] is True


class TestProjectEndpoints:
    """Read-side endpoints"""

    def test_get_by_ref_returns_tree(self, client, make_thread, make_comment):
        client.post("/api/ingest", json=_payload(make_thread, make_comment))

        response = client.get("/api/projects/by-ref/s1")

        assert response.status_code == 200
        project = response.json()
        assert project["scrapedDataId"] == "s1"
        assert project["projectName"] == "Marketing site"
        assert project["hasAttachments"] is True
        assert project["totalThreads"] == 2
        assert [t["threadName"] for t in project["threads"]] == ["Homepage", "Pricing"]
        homepage = project["threads"][0]
        assert homepage["hasAttachments"] is True
        assert homepage["imageIndex"] == 1
        assert [c["index"] for c in homepage["comments"]] == [1, 2]
        assert homepage["comments"][0]["attachments"] == ["https://files.example.com/a.png"]
        assert homepage["comments"][1]["attachments"] == []
        assert homepage["comments"][1]["pinNumber"] == 2

    def test_get_by_id(self, client, make_thread, make_comment):
        project_id = client.post("/api/ingest", json=_payload(make_thread, make_comment)).json()["projectId"]

        response = client.get(f"/api/projects/{project_id}")

        assert response.status_code == 200
        assert response.json()["id"] == project_id

    def test_unknown_project_returns_404(self, client):
        assert client.get(f"/api/projects/{uuid.uuid4()}").status_code == 404
        assert client.get("/api/projects/by-ref/missing").status_code == 404
        assert client.get("/api/projects/search", params={"name": "nothing"}).status_code == 404

    def test_search_by_partial_name(self, client, make_thread, make_comment):
        client.post("/api/ingest", json=_payload(make_thread, make_comment, "s1", "Marketing site"))
        client.post("/api/ingest", json=_payload(make_thread, make_comment, "s2", "Billing portal"))

        response = client.get("/api/projects/search", params={"name": "billing"})

        assert response.status_code == 200
        assert response.json()["scrapedDataId"] == "s2"

    def test_get_by_markup_url(self, client, make_thread, make_comment):
        project_id = client.post("/api/ingest", json=_payload(make_thread, make_comment)).json()["projectId"]

        response = client.get("/api/projects/by-url", params={"url": "https://app.markup.io/markup/abc"})

        assert response.status_code == 200
        project = response.json()
        assert project["id"] == project_id
        assert [t["threadName"] for t in project["threads"]] == ["Homepage", "Pricing"]
        assert client.get("/api/projects/by-url", params={"url": "https://app.markup.io/markup/other"}).status_code == 404

    def test_list_projects(self, client, make_thread, make_comment):
        client.post("/api/ingest", json=_payload(make_thread, make_comment, "s1"))
        client.post("/api/ingest", json=_payload(make_thread, make_comment, "s2"))

        response = client.get("/api/projects/")

        assert response.status_code == 200
        projects = response.json()
        assert {p["scrapedDataId"] for p in projects} == {"s1", "s2"}
        assert all("threads" not in p for p in projects)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "ok"
