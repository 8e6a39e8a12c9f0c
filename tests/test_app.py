from chatlearn.config import settings
from chatlearn.error_handlers import ErrorCode


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_preflight_is_answered_for_any_path(client):
    for path in ("/api/chat-with-ai", "/api/webhook-handler", "/api/does-not-exist"):
        resp = client.options(path)
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "x-webhook-secret" in resp.headers["access-control-allow-headers"]


def test_responses_carry_request_id(client):
    resp = client.get("/api/models")
    assert resp.headers["x-request-id"]
    assert resp.headers["x-content-type-options"] == "nosniff"


def test_unknown_route_uses_error_format(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json()["code"] == ErrorCode.NOT_FOUND
    assert "error" in resp.json()


def test_webhook_secret_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_SECRET", "s3cret")
    resp = client.post("/api/webhook-handler", json={"chat_id": "00000000-0000-0000-0000-000000000000",
                                                     "response_data": "hi"})
    assert resp.status_code == 401
    assert resp.json()["code"] == ErrorCode.UNAUTHORIZED
