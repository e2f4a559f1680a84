"""
Pytest fixtures for AppKey ID SDK tests.

This module provides:
1. Settings pointed at a fake backend
2. Backend payload factories
3. A signed-in session helper
"""

from typing import Any

import pytest

from appkeyid.config import Settings, reset_settings
from appkeyid.contracts import SessionResult, User
from appkeyid.session import SessionStore

BACKEND = "https://api.appkey.test"
STORAGE = "https://store.blob.test"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Keep host APPKEYID_* variables and the settings cache out of tests."""
    monkeypatch.delenv("APPKEYID_REST_ADDRESS", raising=False)
    monkeypatch.delenv("APPKEYID_ACCESS_TOKEN", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    """Settings for a fake backend with small upload chunks."""
    return Settings(rest_address=BACKEND, upload_chunk_size=4)


def make_user_payload(**overrides: Any) -> dict[str, Any]:
    """Camel-cased user payload as the backend returns it."""
    payload: dict[str, Any] = {
        "userId": "user-1",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "status": "active",
        "authenticators": [
            {
                "id": "cred-1",
                "publicKey": "pk",
                "counter": 0,
                "deviceType": "multiDevice",
                "credentialBackedUp": True,
                "name": "Laptop",
                "platform": "macOS",
                "createdAt": "2024-01-15T10:30:00Z",
                "updatedAt": "2024-01-15T10:30:00Z",
            }
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def user_payload() -> dict[str, Any]:
    return make_user_payload()


async def sign_in(store: SessionStore, token: str = "tok-1") -> User:
    """Put ``store`` into a signed-in state without a network round trip."""
    user = User.model_validate(make_user_payload())
    async with store.ceremony(user.email) as ticket:
        store.commit(SessionResult(user=user, access_token=token), ticket)
    return user
