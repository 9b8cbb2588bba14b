from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from core.credentials import CredentialStore
from core.errors import CredentialError, UnknownTenantError
from core.models import TenantCredentials

from fakes import make_credentials

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeCredentialStorage:
    def __init__(self) -> None:
        self.rows: dict[str, TenantCredentials] = {}

    def save_credentials(self, credentials: TenantCredentials) -> None:
        self.rows[credentials.team_id] = credentials

    def get_credentials(self, team_id: str) -> Optional[TenantCredentials]:
        return self.rows.get(team_id)

    def list_credentials(self) -> list[TenantCredentials]:
        return list(self.rows.values())


class FakeExchanger:
    def __init__(self, refresh_token: Optional[str] = None) -> None:
        self.refreshed: list[str] = []
        self._refresh_token = refresh_token

    async def exchange_code(self, code: str) -> TenantCredentials:
        return make_credentials()

    async def refresh(self, credentials: TenantCredentials) -> TenantCredentials:
        self.refreshed.append(credentials.team_id)
        return replace(
            credentials,
            access_token="xoxb-refreshed",
            expires_at=NOW + timedelta(hours=12),
            refresh_token=self._refresh_token,
        )


def _store(exchanger: FakeExchanger, credentials: TenantCredentials) -> tuple[CredentialStore, FakeCredentialStorage]:
    storage = FakeCredentialStorage()
    storage.save_credentials(credentials)
    return CredentialStore(storage, exchanger), storage


def test_non_expiring_token_is_left_alone() -> None:
    exchanger = FakeExchanger()
    store, _ = _store(exchanger, make_credentials())

    assert asyncio.run(store.refresh_if_needed("T1", now=NOW)) is False
    assert exchanger.refreshed == []


def test_token_far_from_expiry_is_left_alone() -> None:
    exchanger = FakeExchanger()
    store, _ = _store(
        exchanger,
        make_credentials(expires_at=NOW + timedelta(hours=2), refresh_token="xoxe-1"),
    )

    assert asyncio.run(store.refresh_if_needed("T1", now=NOW)) is False


def test_expiring_token_is_refreshed_and_saved() -> None:
    exchanger = FakeExchanger()
    store, storage = _store(
        exchanger,
        make_credentials(expires_at=NOW + timedelta(minutes=30), refresh_token="xoxe-1"),
    )

    assert asyncio.run(store.refresh_if_needed("T1", now=NOW)) is True

    saved = storage.rows["T1"]
    assert exchanger.refreshed == ["T1"]
    assert saved.access_token == "xoxb-refreshed"
    assert saved.expires_at == NOW + timedelta(hours=12)
    # Slack may omit a new refresh token; the old one stays valid.
    assert saved.refresh_token == "xoxe-1"
    assert saved.last_updated == NOW


def test_expiring_token_without_refresh_token_fails() -> None:
    store, _ = _store(FakeExchanger(), make_credentials(expires_at=NOW - timedelta(minutes=1)))

    with pytest.raises(CredentialError):
        asyncio.run(store.refresh_if_needed("T1", now=NOW))


def test_get_one_for_unknown_workspace() -> None:
    store, _ = _store(FakeExchanger(), make_credentials())

    with pytest.raises(UnknownTenantError):
        store.get_one("T404")
    assert [creds.team_id for creds in store.get_all()] == ["T1"]
