"""
Tests for the public key directory API.
"""

from fastapi.testclient import TestClient

from sealed.codec import encode_public_key


def _register(client, username, password="pw-123"):
    response = client.post("/api/register", json={"username": username, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_register_and_login(directory_app, make_username):
    username = make_username("alice")
    with TestClient(directory_app) as client:
        _register(client, username, "secret")

        duplicate = client.post("/api/register", json={"username": username, "password": "other"})
        assert duplicate.status_code == 400

        login = client.post("/api/login", json={"username": username, "password": "secret"})
        assert login.status_code == 200
        assert login.json()["username"] == username
        assert login.json()["token_type"] == "bearer"

        bad = client.post("/api/login", json={"username": username, "password": "wrong"})
        assert bad.status_code == 401


def test_publish_and_fetch_key(directory_app, make_username, key_pair):
    username = make_username("alice")
    public_key = encode_public_key(key_pair.public_key)
    with TestClient(directory_app) as client:
        headers = _register(client, username)

        assert client.get(f"/api/keys/{username}").status_code == 404

        response = client.put(f"/api/keys/{username}", json={"public_key": public_key}, headers=headers)
        assert response.status_code == 200
        assert response.json()["outcome"] == "stored"

        fetched = client.get(f"/api/keys/{username}")
        assert fetched.status_code == 200
        assert fetched.json() == {"username": username, "public_key": public_key}


def test_published_key_is_write_once(directory_app, make_username, key_pair, other_key_pair):
    username = make_username("alice")
    with TestClient(directory_app) as client:
        headers = _register(client, username)
        first = encode_public_key(key_pair.public_key)
        client.put(f"/api/keys/{username}", json={"public_key": first}, headers=headers)

        same = client.put(f"/api/keys/{username}", json={"public_key": first}, headers=headers)
        assert same.status_code == 200
        assert same.json()["outcome"] == "unchanged"

        different = client.put(
            f"/api/keys/{username}",
            json={"public_key": encode_public_key(other_key_pair.public_key)},
            headers=headers
        )
        assert different.status_code == 409
        assert client.get(f"/api/keys/{username}").json()["public_key"] == first


def test_publish_requires_owner(directory_app, make_username, key_pair):
    alice, mallory = make_username("alice"), make_username("mallory")
    public_key = encode_public_key(key_pair.public_key)
    with TestClient(directory_app) as client:
        _register(client, alice)
        mallory_headers = _register(client, mallory)

        response = client.put(f"/api/keys/{alice}", json={"public_key": public_key}, headers=mallory_headers)
        assert response.status_code == 403

        anonymous = client.put(f"/api/keys/{alice}", json={"public_key": public_key})
        assert anonymous.status_code == 401

        forged = client.put(
            f"/api/keys/{alice}",
            json={"public_key": public_key},
            headers={"Authorization": "Bearer not-a-token"}
        )
        assert forged.status_code == 401


def test_publish_rejects_invalid_key(directory_app, make_username):
    username = make_username("alice")
    with TestClient(directory_app) as client:
        headers = _register(client, username)

        response = client.put(f"/api/keys/{username}", json={"public_key": "bm90IGEga2V5"}, headers=headers)
        assert response.status_code == 422
        assert client.get(f"/api/keys/{username}").status_code == 404


def test_list_users(directory_app, make_username, key_pair):
    with_key, without_key = make_username("alice"), make_username("bob")
    with TestClient(directory_app) as client:
        headers = _register(client, with_key)
        _register(client, without_key)
        client.put(
            f"/api/keys/{with_key}",
            json={"public_key": encode_public_key(key_pair.public_key)},
            headers=headers
        )

        users = {u["username"]: u["has_key"] for u in client.get("/api/users").json()["users"]}
        assert users[with_key] is True
        assert users[without_key] is False
