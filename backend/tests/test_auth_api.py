from tracker import main
from tracker.config import settings
from tracker.tokens import issue_token, verify_token
from tracker.utils.rate_limit import InMemoryRateLimiter


def _log_in(client, username="alice", password=None):
    return client.post("/log-in", json={"username": username, "password": password or settings.APP_PASSWD})


def test_log_in_returns_a_token_for_the_student(client, seeded):
    r = _log_in(client)
    assert r.status_code == 200
    token = r.json()
    assert isinstance(token, str)
    assert verify_token(token, settings.APP_SECRET) == seeded["alice"].id

    me = client.get("/students/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json() == {
        "id": seeded["alice"].id,
        "username": "alice",
        "fullName": "Alice Martin",
        "inGroupEven": True,
    }


def test_log_in_rejects_bad_credentials(client, seeded):
    assert _log_in(client, password="wrong").status_code == 401
    assert _log_in(client, username="mallory").status_code == 401


def test_log_in_rejects_malformed_body(client, seeded):
    r = client.post("/log-in", content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    r = client.post("/log-in", json={"username": "alice"})
    assert r.status_code == 400


def test_log_in_body_is_capped(client, seeded):
    r = client.post("/log-in", json={"username": "alice", "password": "x" * 2000})
    assert r.status_code == 413


def test_repeated_failures_are_throttled(client, seeded, monkeypatch):
    monkeypatch.setattr(main, "_login_limiter", InMemoryRateLimiter(2))
    assert _log_in(client, password="nope").status_code == 401
    assert _log_in(client, password="nope").status_code == 401
    r = _log_in(client)
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1


def test_successful_log_in_clears_failures(client, seeded, monkeypatch):
    monkeypatch.setattr(main, "_login_limiter", InMemoryRateLimiter(2))
    assert _log_in(client, password="nope").status_code == 401
    assert _log_in(client).status_code == 200
    assert _log_in(client, password="nope").status_code == 401
    assert _log_in(client).status_code == 200


def test_token_for_deleted_student_is_unauthorized(client, seeded):
    token = issue_token(9999, settings.APP_SECRET)
    r = client.get("/students/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_endpoints_need_a_bearer_token(client, seeded):
    assert client.get("/students/me").status_code == 401
    assert client.get("/units").status_code == 401
    assert client.get("/units", headers={"Authorization": "Bearer 1.AAAA"}).status_code == 403


def test_units_are_listed_in_camel_case(client, seeded, auth_headers):
    r = client.get("/units", headers=auth_headers())
    assert r.status_code == 200
    assert r.json()[0] == {
        "id": seeded["unit"].id,
        "name": "Derivatives",
        "exerciseCount": 3,
        "deadlineGroupEven": "2026-11-02",
        "deadlineGroupOdd": "2026-11-03",
    }
    assert [u["name"] for u in r.json()] == ["Derivatives", "Integrals"]


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc123"
