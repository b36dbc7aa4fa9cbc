import io
import json
import pytest
from run import create_app
from cinelog.models import MovieMetadata
from cinelog.repo import InMemoryRepo
from cinelog.service import CineLogService


class FakeAI:
    def __init__(self, meta=None, review="很好看。"):
        self.meta = meta
        self.review = review
        self.calls = []

    def fetch_metadata(self, title):
        self.calls.append(("metadata", title))
        return self.meta

    def generate_review(self, title, rating, media_type="movie"):
        self.calls.append(("review", title, rating, media_type))
        return self.review


@pytest.fixture
def api_client(tmp_path, monkeypatch):
    """Flask test client configured for API endpoint tests using InMemoryRepo."""
    monkeypatch.chdir(tmp_path)
    app = create_app()
    app.testing = True
    svc = CineLogService(InMemoryRepo(), save_delay=60, ai_client=FakeAI())
    app.config["SERVICE"] = svc
    with app.test_client() as client:
        yield client, svc
    svc.saver.cancel()


def test_api_create_and_list_records(api_client):
    client, svc = api_client
    resp = client.post("/records", json={"title": "ApiMovie", "rating": 4, "genre": "科幻"})
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["title"] == "ApiMovie"
    assert created["mediaType"] == "movie"

    resp2 = client.get("/records")
    assert resp2.status_code == 200
    body = resp2.get_json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == created["id"]


def test_api_list_search_and_paging(api_client):
    client, svc = api_client
    for i in range(5):
        svc.add_record({"title": f"Film {i}", "year": str(2000 + i)})
    svc.add_record({"title": "Other"})

    resp = client.get("/records?q=film&sort=year&dir=asc&per_page=2&page=2")
    body = resp.get_json()
    assert body["total"] == 5
    assert body["total_pages"] == 3
    assert [r["title"] for r in body["items"]] == ["Film 2", "Film 3"]


def test_api_list_rejects_unknown_sort(api_client):
    client, _ = api_client
    resp = client.get("/records?sort=director")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "unsupported sort"


def test_api_create_validation_error(api_client):
    client, svc = api_client
    resp = client.post("/records", json={"title": ""})
    assert resp.status_code == 400
    assert "title required" in resp.get_json()["error"]
    assert svc.records == []


def test_api_create_requires_json_body(api_client):
    client, _ = api_client
    resp = client.post("/records", data="nope", content_type="text/plain")
    assert resp.status_code == 400


def test_api_get_and_update_record(api_client):
    client, svc = api_client
    r = svc.add_record({"title": "Before", "status": "想看"})
    resp = client.put(f"/records/{r.id}", json={"title": "After", "status": "已看", "rating": 5})
    assert resp.status_code == 200
    assert resp.get_json()["title"] == "After"

    detail = client.get(f"/records/{r.id}").get_json()
    assert (detail["status"], detail["rating"]) == ("已看", 5)


def test_api_missing_record_returns_404(api_client):
    client, _ = api_client
    assert client.get("/records/missing").status_code == 404
    assert client.post("/records/missing", json={"title": "x"}).status_code == 404


def test_api_delete_requires_confirmation(api_client):
    client, svc = api_client
    r = svc.add_record({"title": "Doomed"})
    resp = client.post(f"/records/{r.id}/delete")
    assert resp.status_code == 400
    assert len(svc.records) == 1

    resp = client.post(f"/records/{r.id}/delete", json={"confirm": True})
    assert resp.status_code == 200
    assert svc.records == []


def test_api_bulk_delete(api_client):
    client, svc = api_client
    a = svc.add_record({"title": "A"})
    b = svc.add_record({"title": "B"})
    svc.add_record({"title": "C"})
    resp = client.post("/records/bulk-delete", json={"ids": [a.id, b.id], "confirm": True})
    assert resp.get_json()["deleted"] == 2
    assert [r.title for r in svc.records] == ["C"]


def test_api_stats_and_options(api_client):
    client, svc = api_client
    svc.add_record({"title": "S1", "rating": 4, "genre": "剧情", "country": "美国"})
    svc.add_record({"title": "S2", "mediaType": "tv", "currentEpisode": 3, "duration": 20, "country": "日本"})
    stats = client.get("/stats").get_json()
    assert stats["total"] == 2
    assert stats["tvCount"] == 1
    assert stats["totalEpisodesWatched"] == 3

    opts = client.get("/options").get_json()
    assert opts["countries"] == sorted(opts["countries"])
    assert set(opts["countries"]) == {"美国", "日本"}
    assert len(opts["years"]) == 1


def test_api_stats_bad_frame(api_client):
    client, _ = api_client
    assert client.get("/stats?frame=decade").status_code == 400


def test_api_export_json_and_csv(api_client):
    client, svc = api_client
    svc.add_record({"title": "ExpMovie", "rating": 3})
    resp = client.get("/export?format=json")
    assert resp.status_code == 200
    assert resp.mimetype == "application/json"
    assert "cinelog_backup_" in resp.headers["Content-Disposition"]
    data = json.loads(resp.data.decode("utf-8"))
    assert data[0]["title"] == "ExpMovie"

    resp = client.get("/export?format=csv")
    assert resp.mimetype == "text/csv"
    text = resp.data.decode("utf-8")
    assert text.startswith("\ufeffID,标题")
    assert "ExpMovie" in text

    assert client.get("/export?format=xml").status_code == 400


def test_api_import_upload(api_client):
    client, svc = api_client
    payload = json.dumps([{"id": "x1", "title": "Imported"}]).encode("utf-8")
    resp = client.post("/import", data={"file": (io.BytesIO(payload), "backup.json")},
                       content_type="multipart/form-data")
    assert resp.status_code == 200
    body = resp.get_json()
    assert (body["imported"], body["skipped"]) == (1, 0)
    assert [r.id for r in svc.records] == ["x1"]


def test_api_import_rejects_bad_file(api_client):
    client, svc = api_client
    resp = client.post("/import", data={"file": (io.BytesIO(b"{}"), "backup.json")},
                       content_type="multipart/form-data")
    assert resp.status_code == 400
    resp = client.post("/import", data={"file": (io.BytesIO(b"\xff\xfe\x00"), "backup.csv")},
                       content_type="multipart/form-data")
    assert resp.status_code == 400
    assert client.post("/import").status_code == 400
    assert svc.records == []


def test_api_ai_metadata_merges_draft(api_client):
    client, svc = api_client
    svc.ai.meta = MovieMetadata(title="漫长的季节", year="2023", country="中国大陆", genre="悬疑",
                                director="辛爽", summary="一段往事。", suggested_color_hex="#112233",
                                media_type="tv", total_episodes=12, duration=60)
    resp = client.post("/ai/metadata", json={"title": "漫长的季节", "draft": {"status": "已看"}})
    body = resp.get_json()
    assert body["found"] is True
    assert body["duplicate_id"] is None
    assert body["draft"]["currentEpisode"] == 12
    assert body["draft"]["posterColor"] == "#112233"


def test_api_ai_metadata_not_found_keeps_draft(api_client):
    client, _ = api_client
    resp = client.post("/ai/metadata", json={"title": "???", "draft": {"title": "???", "rating": 2}})
    body = resp.get_json()
    assert body["found"] is False
    assert body["draft"] == {"title": "???", "rating": 2}


def test_api_ai_review(api_client):
    client, svc = api_client
    resp = client.post("/ai/review", json={"title": "Heat", "rating": 4, "mediaType": "movie"})
    assert resp.get_json()["review"] == "很好看。"
    assert svc.ai.calls[-1] == ("review", "Heat", 4, "movie")


def test_api_suggest_from_history(api_client):
    client, svc = api_client
    svc.add_record({"title": "Show", "mediaType": "tv", "currentEpisode": 4, "totalEpisodes": 10})
    draft = client.get("/records/suggest?title=show").get_json()["draft"]
    assert draft["currentEpisode"] == 5
    assert client.get("/records/suggest?title=x").get_json()["draft"] is None


@pytest.mark.parametrize("page", [0, 3, 42])
def test_api_list_out_of_range_page_falls_back_to_first(api_client, page):
    client, svc = api_client
    for i in range(3):
        svc.add_record({"title": f"P{i}"})
    body = client.get(f"/records?per_page=2&page={page}").get_json()
    assert body["page"] == 1
    assert body["total_pages"] == 2
    assert len(body["items"]) == 2
