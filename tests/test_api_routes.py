from __future__ import annotations


def _signup(api_client, account_id: str, *, is_private: bool = False) -> None:
    resp = api_client.post(
        "/api/accounts",
        json={"account_id": account_id, "display_name": account_id, "is_private": is_private},
    )
    assert resp.status_code == 201, resp.text


def test_health_and_request_id(api_client) -> None:
    resp = api_client.get("/api/health", headers={"X-Request-Id": "req_test_1"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-Id") == "req_test_1"

    ready = api_client.get("/api/ready")
    assert ready.status_code == 200
    assert ready.json()["db"]["ok"] is True


def test_auth_requires_known_account(api_client, uid) -> None:
    assert api_client.post("/api/auth/token", json={"account_id": uid("ghost")}).status_code == 401
    assert api_client.get("/api/auth/me").status_code == 401
    bad = api_client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401
    assert bad.headers.get("X-Request-Id")


def test_signup_and_me(api_client, auth_headers, uid) -> None:
    a = uid("a")
    _signup(api_client, a)
    dup = api_client.post("/api/accounts", json={"account_id": a})
    assert dup.status_code == 409

    me = api_client.get("/api/auth/me", headers=auth_headers(a))
    assert me.status_code == 200
    assert me.json()["account_id"] == a
    assert me.json()["is_private"] is False

    out = api_client.post("/api/auth/logout", headers=auth_headers(a))
    assert out.json() == {"ok": True}


def test_follow_request_flow_over_http(api_client, auth_headers, uid) -> None:
    a, b = uid("a"), uid("b")
    _signup(api_client, a)
    _signup(api_client, b, is_private=True)
    ha, hb = auth_headers(a), auth_headers(b)

    r1 = api_client.post(f"/api/follows/{b}", headers=ha)
    assert r1.status_code == 200
    assert r1.json()["state"] == "request_pending"
    request_id = r1.json()["request_id"]

    r2 = api_client.post(f"/api/follows/{b}", headers=ha)
    assert r2.status_code == 200
    assert r2.json()["message"] == "request already pending"
    assert r2.json()["request_id"] == request_id

    inbox = api_client.get("/api/follows/requests", headers=hb).json()["items"]
    assert [it["id"] for it in inbox] == [request_id]

    notes = api_client.get("/api/notifications", headers=hb).json()["items"]
    assert [n["type"] for n in notes] == ["follow_request"]

    wrong = api_client.post(f"/api/follows/requests/{request_id}/accept", headers=ha)
    assert wrong.status_code == 404

    ok = api_client.post(f"/api/follows/requests/{request_id}/accept", headers=hb)
    assert ok.status_code == 200
    assert ok.json()["state"] == "following"

    again = api_client.post(f"/api/follows/requests/{request_id}/decline", headers=hb)
    assert again.status_code == 409

    rel = api_client.get(f"/api/accounts/{b}/relationship", headers=ha).json()
    assert rel["state"] == "following"
    assert rel["can_view"] is True

    followers = api_client.get(f"/api/accounts/{b}/followers").json()["items"]
    assert followers == [a]
    following = api_client.get(f"/api/accounts/{a}/following").json()["items"]
    assert following == [b]

    unfollow = api_client.post(f"/api/follows/{b}", headers=ha)
    assert unfollow.json()["state"] == "not_following"


def test_follow_errors_over_http(api_client, auth_headers, uid) -> None:
    a = uid("a")
    _signup(api_client, a)
    ha = auth_headers(a)

    assert api_client.post(f"/api/follows/{a}", headers=ha).status_code == 400
    assert api_client.post(f"/api/follows/{uid('ghost')}", headers=ha).status_code == 404
    assert api_client.delete(f"/api/follows/{uid('ghost')}/request", headers=ha).status_code == 404
    assert api_client.post("/api/follows/requests/x/maybe", headers=ha).status_code == 422


def test_privacy_and_account_lookup(api_client, auth_headers, uid) -> None:
    a = uid("a")
    _signup(api_client, a)
    resp = api_client.put("/api/accounts/me/privacy", json={"is_private": True}, headers=auth_headers(a))
    assert resp.status_code == 200
    assert resp.json()["is_private"] is True
    assert api_client.get(f"/api/accounts/{a}").json()["is_private"] is True
    assert api_client.get(f"/api/accounts/{uid('ghost')}").status_code == 404


def test_bookmarks_and_boards_over_http(api_client, auth_headers, seed, uid) -> None:
    viewer, author = uid("viewer"), uid("author")
    _signup(api_client, viewer)
    _signup(api_client, author)
    p1, p2 = uid("p1"), uid("p2")
    seed.post(p1, author_id=author)
    seed.post(p2, author_id=author)
    h = auth_headers(viewer)

    assert api_client.put(f"/api/bookmarks/{p1}", headers=h).status_code == 200
    assert api_client.put(f"/api/bookmarks/{uid('nope')}", headers=h).status_code == 404

    created = api_client.post("/api/boards", json={"name": "Fav"}, headers=h)
    assert created.status_code == 201
    board_id = created.json()["id"]
    assert api_client.post("/api/boards", json={"name": ""}, headers=h).status_code == 400
    assert api_client.post("/api/boards", json={"name": "z" * 41}, headers=h).status_code == 400

    added = api_client.post(
        f"/api/boards/{board_id}/posts", json={"post_ids": [p1, p2]}, headers=h
    ).json()
    assert added["post_ids"] == [p1]
    assert added["post_count"] == 1

    saved = api_client.put(f"/api/boards/{board_id}/posts/{p2}", headers=h).json()
    assert saved["post_ids"] == [p1, p2]
    assert saved["post_count"] == 2

    assert api_client.get(f"/api/bookmarks/{p1}", headers=h).json() == {
        "post_id": p1,
        "bookmarked": True,
    }
    assert api_client.delete(f"/api/bookmarks/{p1}", headers=h).status_code == 200
    assert api_client.get(f"/api/bookmarks/{p1}", headers=h).json()["bookmarked"] is False
    board = api_client.get(f"/api/boards/{board_id}", headers=h).json()
    assert board["post_ids"] == [p2]
    assert board["post_count"] == 1

    listed = api_client.get("/api/bookmarks", headers=h).json()["items"]
    assert [b["post_id"] for b in listed] == [p2]

    renamed = api_client.patch(f"/api/boards/{board_id}", json={"name": "Best"}, headers=h)
    assert renamed.json()["name"] == "Best"

    removed = api_client.delete(f"/api/boards/{board_id}/posts/{p2}", headers=h).json()
    assert removed["post_count"] == 0

    boards = api_client.get("/api/boards", headers=h).json()["items"]
    assert [b["id"] for b in boards] == [board_id]

    assert api_client.delete(f"/api/boards/{board_id}", headers=h).json()["ok"] is True
    assert api_client.get(f"/api/boards/{board_id}", headers=h).status_code == 404
