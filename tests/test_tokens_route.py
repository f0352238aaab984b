import time
from urllib.parse import parse_qs, urlsplit

import pytest


def _check_url(app, body):
    parts = urlsplit(body["url"])
    assert parts.path == f"/stream/{body['file_id']}"
    q = parse_qs(parts.query)
    assert q["e"] == [str(body["expires"])]
    assert app.state.signer.validate(body["file_id"], q["t"][0], int(q["e"][0]))


def test_default_ttl_is_ten_minutes(client, app, api_headers):
    before = int(time.time())
    r = client.get("/token/track", headers=api_headers)
    after = int(time.time())

    assert r.status_code == 200
    body = r.json()
    assert body["file_id"] == "track"
    assert before + 600 <= body["expires"] <= after + 600
    _check_url(app, body)


def test_custom_ttl(client, app, api_headers):
    before = int(time.time())
    body = client.get("/token/track?ttl=2", headers=api_headers).json()
    assert before + 120 <= body["expires"] <= int(time.time()) + 120
    _check_url(app, body)


@pytest.mark.parametrize("ttl", ["0", "-5", "abc", ""])
def test_bad_ttl_falls_back_to_default(client, api_headers, ttl):
    before = int(time.time())
    body = client.get(f"/token/track?ttl={ttl}", headers=api_headers).json()
    assert before + 600 <= body["expires"] <= int(time.time()) + 600


def test_issued_url_opens_the_stream(client, api_headers, add_song, storage):
    storage.files["my-song/master.m3u8"] = b"#EXTM3U\n"
    add_song("song-1", "my-song")
    url = client.get("/token/song-1", headers=api_headers).json()["url"]
    assert client.get(url).status_code == 200


def test_token_requires_api_key(client):
    assert client.get("/token/track").status_code == 401


def test_token_rejects_wrong_api_key(client):
    assert client.get("/token/track", headers={"X-API-Key": "wrong"}).status_code == 401


def test_api_key_is_trimmed(client):
    assert client.get("/token/track", headers={"X-API-Key": "  super-secret  "}).status_code == 200


def test_api_key_in_query_is_ignored(client):
    assert client.get("/token/track?x_api_key=super-secret").status_code == 401


def test_health_is_public(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_url_carries_issued_access_query(client, app, api_headers, monkeypatch):
    issued = []
    original = app.state.signer.issue

    def _issue(subject, ttl):
        access = original(subject, ttl)
        issued.append(access)
        return access

    monkeypatch.setattr(app.state.signer, "issue", _issue)
    body = client.get("/token/my%20song?ttl=1", headers=api_headers).json()

    (access,) = issued
    assert access.subject == "my song"
    assert body["expires"] == access.expires_at
    assert body["url"] == f"/stream/my%20song?{access.query}"
