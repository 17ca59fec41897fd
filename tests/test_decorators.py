# tests/test_decorators.py
def test_login_required_returns_401(client):
    resp = client.get("/payments/1")
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_admin_required_blocks_non_admin(logged_client_user):
    resp = logged_client_user.post("/payments/manual", json={})
    assert resp.status_code == 403


def test_admin_required_without_session(client):
    resp = client.post("/payments/approve/1")
    assert resp.status_code == 401


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "ok"
    assert data["started_at"].endswith("UTC")
