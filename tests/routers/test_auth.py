from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from app import dependencies
from app.config import settings


def test_expired_token(client, viewer_user, token_for):
    token = token_for(
        viewer_user.sub, exp=datetime.now(timezone.utc) - timedelta(minutes=1)
    )
    response = client.get(
        "/api/users/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


def test_token_signed_with_wrong_secret(client, viewer_user):
    token = jwt.encode({"sub": viewer_user.sub}, "wrong-secret", algorithm="HS256")
    response = client.get(
        "/api/users/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


def test_token_without_subject(client):
    token = jwt.encode({"scope": "read"}, settings.jwt_secret, algorithm="HS256")
    response = client.get(
        "/api/users/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


class _StaticJwks:
    def __init__(self, public_key):
        self.public_key = public_key

    def get_signing_key_from_jwt(self, token):
        return SimpleNamespace(key=self.public_key)


def _identity_provider(monkeypatch):
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    monkeypatch.setattr(settings, "auth_domain", "tenant.example.com")
    monkeypatch.setattr(settings, "auth_audience", "https://network.example.com")
    monkeypatch.setattr(
        dependencies,
        "get_jwks_client",
        lambda uri: _StaticJwks(private_key.public_key()),
    )
    return private_key


def _rs256_token(private_key, **overrides):
    claims = {
        "sub": "auth0|viewer",
        "iss": "https://tenant.example.com/",
        "aud": "https://network.example.com",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        **overrides,
    }
    return jwt.encode(claims, private_key, algorithm="RS256")


def test_identity_provider_token(client, viewer_user, monkeypatch):
    private_key = _identity_provider(monkeypatch)

    response = client.get(
        "/api/users/me",
        headers={"Authorization": f"Bearer {_rs256_token(private_key)}"},
    )
    assert response.status_code == 200
    assert response.json()["id"] == viewer_user.id


def test_identity_provider_wrong_audience(client, viewer_user, monkeypatch):
    private_key = _identity_provider(monkeypatch)
    token = _rs256_token(private_key, aud="https://elsewhere.example.com")

    response = client.get(
        "/api/users/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


def test_identity_provider_wrong_issuer(client, viewer_user, monkeypatch):
    private_key = _identity_provider(monkeypatch)
    token = _rs256_token(private_key, iss="https://evil.example.com/")

    response = client.get(
        "/api/users/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


def test_identity_provider_rejects_shared_secret(client, viewer_user, token_for, monkeypatch):
    _identity_provider(monkeypatch)

    response = client.get(
        "/api/users/me",
        headers={"Authorization": f"Bearer {token_for(viewer_user.sub)}"},
    )
    assert response.status_code == 401
