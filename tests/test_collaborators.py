import json
import pytest
import requests

from cinelog.gemini import GeminiClient, MISSING_KEY_REVIEW, FAILED_REVIEW, parse_metadata


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.requests = []

    def post(self, url, params=None, json=None, timeout=None):
        self.requests.append({"url": url, "params": params, "json": json, "timeout": timeout})
        if self.exc:
            raise self.exc
        return self.response


def reply(text):
    return FakeResponse({"candidates": [{"content": {"parts": [{"text": text}]}}]})


META = {
    "title": "星际穿越", "year": "2014", "country": "美国", "genre": "科幻",
    "director": "克里斯托弗·诺兰", "summary": "穿越虫洞。", "suggestedColorHex": "#0b1d3a",
    "mediaType": "movie", "duration": 169,
}


def test_missing_key_skips_network():
    session = FakeSession(reply("{}"))
    client = GeminiClient(None, session=session)
    assert client.fetch_metadata("Interstellar") is None
    assert client.generate_review("Interstellar", 5) == MISSING_KEY_REVIEW
    assert session.requests == []


def test_fetch_metadata_parses_structured_reply():
    session = FakeSession(reply(json.dumps(META)))
    client = GeminiClient("k", model="m1", timeout=5, session=session)
    meta = client.fetch_metadata("Interstellar")
    assert meta.title == "星际穿越"
    assert meta.duration == 169
    assert meta.total_episodes is None
    sent = session.requests[0]
    assert sent["url"].endswith("/m1:generateContent")
    assert sent["params"] == {"key": "k"}
    assert sent["timeout"] == 5
    assert sent["json"]["generationConfig"]["responseMimeType"] == "application/json"


@pytest.mark.parametrize("session", [
    FakeSession(exc=requests.ConnectionError("down")),
    FakeSession(FakeResponse({}, status=500)),
    FakeSession(reply("not json")),
    FakeSession(FakeResponse({"candidates": []})),
    FakeSession(reply(json.dumps(dict(META, mediaType="book")))),
])
def test_fetch_metadata_failures_return_none(session):
    assert GeminiClient("k", session=session).fetch_metadata("X") is None


def test_generate_review_returns_text():
    session = FakeSession(reply("节奏紧凑，很过瘾。"))
    review = GeminiClient("k", session=session).generate_review("Heat", 4, "tv")
    assert review == "节奏紧凑，很过瘾。"
    prompt = session.requests[0]["json"]["contents"][0]["parts"][0]["text"]
    assert "TV series" in prompt and "4/5" in prompt


def test_generate_review_failure_message():
    session = FakeSession(FakeResponse({}, status=503))
    assert GeminiClient("k", session=session).generate_review("Heat", 4) == FAILED_REVIEW


def test_parse_metadata_series_counts():
    meta = parse_metadata(dict(META, mediaType="tv", totalEpisodes="10", duration=""))
    assert meta.total_episodes == 10
    assert meta.duration is None


def test_parse_metadata_missing_field():
    data = dict(META)
    del data["genre"]
    with pytest.raises(KeyError):
        parse_metadata(data)
