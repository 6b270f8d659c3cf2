from __future__ import annotations

import json

from account_api.core import config as core_config


def _register(client, mobile="0123456789", password="correct-horse", **extra):
    data = {"mobile": mobile, "email": "alice@example.com", "name": "Alice", "password": password}
    data.update(extra)
    return client.post("/user", data=data)


def _login(client, mobile="0123456789", password="correct-horse"):
    return client.post("/user/login", data={"mobile": mobile, "password": password})


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_healthz_and_security_headers(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_register_and_duplicate(client):
    resp = _register(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["mobile"] == "0123456789"
    assert body["email"] == "alice@example.com"
    assert "password" not in body

    dup = _register(client)
    assert dup.status_code == 400
    assert dup.json()["detail"] == "This mobile already exists"
    assert client.get("/user/count").json() == {"count": 1}


def test_register_validation(client):
    assert _register(client, mobile="abc").status_code == 400
    assert _register(client, password="short").status_code == 400
    assert client.post("/user", data={"mobile": "0123456789"}).status_code == 422


def test_login_me_and_verify_flow(client, sms):
    user = _register(client).json()

    bad = _login(client, password="wrong-pass")
    assert bad.status_code == 401
    assert "token" not in bad.json()

    token = _login(client).json()["token"]
    me = client.get("/me", headers=_auth(token))
    assert me.status_code == 200
    assert me.json()["user"] == user["id"]
    assert me.json()["mobile"] == "0123456789"

    wrong = str((int(sms.last_code) + 1) % 1000000).zfill(6)
    assert client.post("/user/verify", data={"otp": wrong}, headers=_auth(token)).status_code == 400

    ok = client.post("/user/verify", data={"otp": sms.last_code}, headers=_auth(token))
    assert ok.status_code == 200
    assert ok.json()["id"] == user["id"]
    assert ok.json()["mobile_verified_at"] is not None


def test_authenticated_routes_require_bearer_token(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers=_auth("garbage")).status_code == 401
    assert client.post("/user/verify", data={"otp": "123456"}).status_code == 401
    assert client.post("/user/otp/refresh").status_code == 401


def test_refresh_otp_endpoint(client, sms):
    _register(client)
    token = _login(client).json()["token"]

    resp = client.post("/user/otp/refresh", headers=_auth(token))
    assert resp.status_code == 200
    assert resp.json() == {"refresh": True, "sent": True}
    assert len(sms.sent) == 2


def test_forget_and_reset_password(client, mailer):
    user = _register(client).json()

    assert client.get("/user/forget/0000000000").status_code == 401

    resp = client.get("/user/forget/0123456789")
    assert resp.status_code == 200
    body = resp.json()
    assert body["result"] is True
    token = body["token"]
    assert mailer.outbox[-1].to == "alice@example.com"

    done = client.post("/user/forget", data={"token": token, "password": "brand-new-pass"})
    assert done.status_code == 200
    assert done.json() == {"result": True}

    assert _login(client).status_code == 401
    new_token = _login(client, password="brand-new-pass").json()["token"]
    assert client.get("/me", headers=_auth(new_token)).json()["user"] == user["id"]

    reused = client.post("/user/forget", data={"token": token, "password": "third-pass-1"})
    assert reused.status_code == 401


def test_forget_password_hides_token_when_not_exposed(client, monkeypatch):
    _register(client)
    monkeypatch.setenv("EXPOSE_RESET_TOKEN", "off")
    core_config.get_settings.cache_clear()

    body = client.get("/user/forget/0123456789").json()
    assert body == {"result": True}


def test_crud_endpoints(client):
    first = _register(client, mobile="100001", name="carol").json()
    second = _register(client, mobile="100002", name="alice").json()

    listed = client.get("/user", params={"filter": json.dumps({"order": "name ASC"})}).json()
    assert [u["name"] for u in listed] == ["alice", "carol"]

    where = json.dumps({"name": "alice"})
    assert client.get("/user/count", params={"where": where}).json() == {"count": 1}

    assert client.get(f"/user/{first['id']}").json()["mobile"] == "100001"
    assert client.get("/user/missing").status_code == 404

    patched = client.patch("/user", params={"where": where}, json={"email": "team@example.com"})
    assert patched.json() == {"count": 1}

    assert client.patch(f"/user/{first['id']}", json={"name": "carla"}).status_code == 204
    assert client.get(f"/user/{first['id']}").json()["name"] == "carla"
    assert client.patch(f"/user/{first['id']}", json={"mobile": "100002"}).status_code == 400
    assert client.patch(f"/user/{first['id']}", json={"password": "x"}).status_code == 422
    assert client.patch("/user/missing", json={"name": "x"}).status_code == 404

    assert client.put(f"/user/{second['id']}", json={"mobile": "100003"}).status_code == 204
    replaced = client.get(f"/user/{second['id']}").json()
    assert replaced["mobile"] == "100003" and replaced["name"] is None

    assert client.delete(f"/user/{second['id']}").status_code == 204
    assert client.delete(f"/user/{second['id']}").status_code == 404
    assert client.get("/user/count").json() == {"count": 1}


def test_identical_filters_return_identical_results(client):
    for i in range(4):
        _register(client, mobile=f"20000{i}", name="same")
    params = {"filter": json.dumps({"where": {"name": "same"}, "limit": 3})}

    assert client.get("/user", params=params).json() == client.get("/user", params=params).json()


def test_bad_filter_is_rejected(client):
    assert client.get("/user", params={"filter": "{oops"}).status_code == 400
    assert client.get("/user/count", params={"where": json.dumps({"secret": 1})}).status_code == 400


def test_relation_endpoints(client, repo):
    user = _register(client).json()
    uid = user["id"]

    assert client.get(f"/user/{uid}/profile").status_code == 404
    assert client.put(f"/user/{uid}/profile", json={"bio": "hi"}).json() == {"bio": "hi"}
    assert client.get(f"/user/{uid}/profile").json() == {"bio": "hi"}

    repo.assign_role(uid, "member")
    repo.add_track(uid, "Morning run")
    repo.create_journal(uid, "Day 1", "started")
    repo.open_user_session(uid, device="web")

    assert [r["name"] for r in client.get(f"/user/{uid}/roles").json()] == ["member"]
    assert [t["title"] for t in client.get(f"/user/{uid}/tracks").json()] == ["Morning run"]
    assert [j["title"] for j in client.get(f"/user/{uid}/journals").json()] == ["Day 1"]
    assert [s["device"] for s in client.get(f"/user/{uid}/sessions").json()] == ["web"]
    assert client.get("/user/missing/roles").status_code == 404


def test_crud_writes_keep_mobiles_normalised_and_unique(client):
    user = _register(client).json()
    uid = user["id"]

    assert client.patch(f"/user/{uid}", json={"mobile": "012 345-6780"}).status_code == 204
    assert client.get(f"/user/{uid}").json()["mobile"] == "0123456780"
    assert _login(client, mobile="0123456780").status_code == 200
    assert _register(client, mobile="0123456780").status_code == 400

    assert client.patch(f"/user/{uid}", json={"mobile": "not a phone"}).status_code == 400
    assert client.put(f"/user/{uid}", json={"mobile": "not a phone"}).status_code == 400
    assert client.patch("/user", params={"where": json.dumps({"id": uid})}, json={"mobile": "x"}).status_code == 400
    assert client.get(f"/user/{uid}").json()["mobile"] == "0123456780"
    assert client.get("/user/count").json() == {"count": 1}


def test_non_scalar_filter_values_are_rejected(client):
    _register(client)
    resp = client.get("/user", params={"filter": json.dumps({"where": {"mobile": ["a"]}})})
    assert resp.status_code == 400
    assert client.get("/user/count", params={"where": json.dumps({"name": {"gt": {}}})}).status_code == 400


def test_find_by_id_validates_filter(client):
    uid = _register(client).json()["id"]

    ok = client.get(f"/user/{uid}", params={"filter": json.dumps({"order": "name ASC"})})
    assert ok.status_code == 200 and ok.json()["id"] == uid
    assert client.get(f"/user/{uid}", params={"filter": json.dumps({"where": {"name": "x"}})}).status_code == 400
    assert client.get(f"/user/{uid}", params={"filter": "{oops"}).status_code == 400


def test_login_shows_up_in_sessions(client):
    uid = _register(client).json()["id"]
    _login(client)

    sessions = client.get(f"/user/{uid}/sessions").json()
    assert len(sessions) == 1
    assert sessions[0]["device"] == "testclient"
