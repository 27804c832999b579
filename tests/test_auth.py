from datetime import timedelta

import jwt
import pytest
from pymongo.errors import DuplicateKeyError

from security import create_access_token, decode_access_token, get_password_hash, verify_password


def test_register_and_login(client):
    res = client.post("/register", json={"username": "alice", "password": "pw123"})
    assert res.status_code == 200
    assert res.json() == {"message": "User registered"}

    res = client.post("/login", json={"username": "alice", "password": "pw123"})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Login successful"
    assert body["user"]["username"] == "alice"
    assert body["token"]


def test_register_existing_username_is_rejected(client):
    client.post("/register", json={"username": "alice", "password": "pw123"})
    res = client.post("/register", json={"username": "alice", "password": "other"})
    assert res.status_code == 400
    assert res.json()["message"] == "User already exists"


def test_usernames_are_unique_in_storage(client, db):
    client.post("/register", json={"username": "alice", "password": "pw123"})
    unique = [i for i in db["user"].index_information().values() if i.get("unique")]
    assert [i["key"] for i in unique] == [[("username", 1)]]
    with pytest.raises(DuplicateKeyError):
        db["user"].insert_one({"username": "alice", "password_hash": "x"})


def test_login_unknown_user(client):
    res = client.post("/login", json={"username": "ghost", "password": "pw"})
    assert res.status_code == 400
    assert res.json()["message"] == "User not found"


def test_login_wrong_password(client):
    client.post("/register", json={"username": "alice", "password": "pw123"})
    res = client.post("/login", json={"username": "alice", "password": "wrong"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"


def test_missing_body_fields_are_400(client):
    res = client.post("/register", json={"username": "alice"})
    assert res.status_code == 400
    assert any("password" in e for e in res.json()["errors"])


def test_protected_route_without_token(client):
    res = client.get("/residents")
    assert res.status_code == 403
    assert res.json()["message"] == "No token provided"


def test_protected_route_with_garbage_token(client):
    res = client.get("/residents", headers={"Authorization": "not-a-token"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid token"


def test_expired_token_is_rejected(client, settings):
    token = create_access_token({"id": "x" * 24, "username": "old"}, settings, expires_delta=timedelta(seconds=-1))
    res = client.get("/residents", headers={"Authorization": token})
    assert res.status_code == 401


def test_token_signed_with_other_secret_is_rejected(client, settings):
    token = jwt.encode({"id": "abc", "username": "mallory"}, "other-secret", algorithm="HS256")
    res = client.get("/residents", headers={"Authorization": token})
    assert res.status_code == 401


def test_bearer_prefix_is_tolerated(client, auth_headers):
    res = client.get("/residents", headers={"Authorization": f"Bearer {auth_headers['Authorization']}"})
    assert res.status_code == 200


def test_token_expires_after_configured_lifetime(settings):
    token = create_access_token({"id": "abc", "username": "bob"}, settings)
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    assert payload["exp"] - payload["iat"] == 60 * 60
    assert decode_access_token(token, settings).username == "bob"


def test_password_hashing():
    hashed = get_password_hash("pw")
    assert hashed != "pw"
    assert verify_password("pw", hashed)
    assert not verify_password("nope", hashed)
    assert not verify_password("pw", "not-a-hash")


def test_users_listing_hides_password_hash(client, auth_headers):
    res = client.get("/users", headers=auth_headers)
    assert res.status_code == 200
    users = res.json()
    assert [u["username"] for u in users] == ["nurse"]
    assert "password_hash" not in users[0]


def test_delete_user(client, auth_headers, db):
    client.post("/register", json={"username": "temp", "password": "pw"})
    temp_id = str(db["user"].find_one({"username": "temp"})["_id"])
    res = client.delete(f"/users/{temp_id}", headers=auth_headers)
    assert res.status_code == 200
    assert db["user"].find_one({"username": "temp"}) is None
    assert client.delete(f"/users/{temp_id}", headers=auth_headers).status_code == 404
