import pytest
from fastapi.testclient import TestClient

from voteledger import config
from voteledger.main import create_app
from voteledger.ratelimit import RateLimiter
from voteledger.retry import RetryPolicy
from voteledger.store import InMemoryDocumentStore


async def _nosleep(_seconds):
    return None


@pytest.fixture
def docs():
    return InMemoryDocumentStore(
        {
            config.DATA_PATH: {
                "entries": [
                    {"id": "a1", "votes": 3, "title": "First"},
                    {"id": "b2", "votes": 0, "title": "Second"},
                    {"id": "c3", "votes": 1, "title": "Third"},
                ]
            },
            config.VOTES_PATH: {"votes": {}},
        }
    )


@pytest.fixture
def client(docs):
    app = create_app(
        store=docs,
        limiter=RateLimiter(capacity=2, window=3600),
        policy=RetryPolicy(sleep=_nosleep),
    )
    with TestClient(app) as c:
        yield c


def _as(ip):
    return {"X-Forwarded-For": ip}


def test_vote_then_duplicate(client):
    resp = client.post("/api/vote", json={"blogId": "a1"}, headers=_as("198.51.100.1"))
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "newVoteCount": 4,
        "message": "Vote recorded successfully",
    }

    resp = client.post("/api/vote", json={"blogId": "a1"}, headers=_as("198.51.100.1"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "already_voted"
    assert resp.json()["alreadyVoted"] is True


def test_votes_reports_caller_status(client):
    client.post("/api/vote", json={"blogId": "b2"}, headers=_as("198.51.100.1"))

    mine = client.get("/api/votes", headers=_as("198.51.100.1")).json()
    theirs = client.get("/api/votes", headers=_as("198.51.100.2")).json()

    assert mine["entries"][1] == {"id": "b2", "votes": 1, "userVoted": True}
    assert theirs["entries"][1] == {"id": "b2", "votes": 1, "userVoted": False}


def test_unvote_and_delete(client):
    headers = _as("198.51.100.1")
    client.post("/api/vote", json={"blogId": "a1"}, headers=headers)
    resp = client.post("/api/unvote", json={"blogId": "a1"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["newVoteCount"] == 3
    assert resp.json()["message"] == "Vote removed successfully"

    resp = client.request("DELETE", "/api/vote", json={"blogId": "a1"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["notVoted"] is True


def test_unknown_item_is_404(client):
    resp = client.post("/api/vote", json={"blogId": "nope"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_missing_blog_id_is_400(client):
    resp = client.post("/api/vote", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "blogId is required"

    resp = client.post("/api/unvote")
    assert resp.status_code == 400
    assert resp.json()["error"] == "blogId is required"


def test_wrong_type_reports_the_field(client):
    resp = client.post("/api/vote", json={"blogId": 5})
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "invalid_request"
    assert body["error"].startswith("blogId: ")
    assert body["error"] != "blogId is required"


def test_malformed_json_is_not_reported_as_missing_id(client):
    resp = client.post(
        "/api/vote", content="{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_request"
    assert resp.json()["error"] != "blogId is required"


def test_rate_limit_applies_to_votes_only(client):
    headers = _as("203.0.113.9")
    assert client.post("/api/vote", json={"blogId": "a1"}, headers=headers).status_code == 200
    assert client.post("/api/vote", json={"blogId": "b2"}, headers=headers).status_code == 200

    resp = client.post("/api/vote", json={"blogId": "c3"}, headers=headers)
    assert resp.status_code == 429
    assert resp.json()["code"] == "rate_limited"
    assert int(resp.headers["Retry-After"]) > 0

    # unvote is not throttled
    assert client.post("/api/unvote", json={"blogId": "a1"}, headers=headers).status_code == 200
    # other identities are unaffected
    assert client.post("/api/vote", json={"blogId": "c3"}, headers=_as("203.0.113.10")).status_code == 200


def test_blogs_passthrough_with_cache_header(client):
    resp = client.get("/api/blogs")
    assert resp.status_code == 200
    assert resp.json()["entries"][0] == {"id": "a1", "votes": 3, "title": "First"}
    assert resp.headers["Cache-Control"] == "s-maxage=60, stale-while-revalidate"


def test_store_unavailable_is_503():
    app = create_app(store=InMemoryDocumentStore(), policy=RetryPolicy(sleep=_nosleep))
    with TestClient(app) as c:
        resp = c.get("/api/votes")
    assert resp.status_code == 503
    assert resp.json()["code"] == "store_unavailable"


def test_cors_preflight(client):
    resp = client.options(
        "/api/vote",
        headers={"Origin": "https://blog.example", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_run_serves_the_app_with_uvicorn(monkeypatch):
    import uvicorn

    from voteledger import main

    calls = {}
    monkeypatch.setattr(uvicorn, "run", lambda target, **kw: calls.update(target=target, **kw))
    monkeypatch.setattr(config, "PORT", 9123)

    main.run()

    assert calls["target"] == "voteledger.main:app"
    assert calls["host"] == config.HOST
    assert calls["port"] == 9123
