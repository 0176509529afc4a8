# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for the settings feed and revocation list (app.dgc.settings_store)."""

from __future__ import annotations

import json

import httpx
import pytest

from app.dgc.exceptions import ConfigError, RefreshError
from app.dgc.models import PolicySnapshot, SettingsTable
from app.dgc.settings_store import SettingsStore, derive_revocation_set

SETTINGS_URL = "https://authority.test/settings"


def _store(status: int = 200, body=None) -> SettingsStore:
    def handler(request):
        content = body if isinstance(body, str) else json.dumps(body)
        return httpx.Response(status, content=content)

    return SettingsStore(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        settings_url=SETTINGS_URL,
    )


class TestDeriveRevocationSet:

    def test_split_on_delimiter(self):
        table = SettingsTable.from_json([
            {"name": "black_list_uvci", "type": "black_list_uvci", "value": "ABC123;DEF456"},
        ])
        assert derive_revocation_set(table) == frozenset({"ABC123", "DEF456"})

    def test_empty_tokens_and_whitespace_ignored(self):
        table = SettingsTable.from_json([
            {"name": "black_list_uvci", "type": "black_list_uvci", "value": " A ;;B;"},
        ])
        assert derive_revocation_set(table) == frozenset({"A", "B"})

    def test_empty_value_means_nothing_revoked(self):
        table = SettingsTable.from_json([
            {"name": "black_list_uvci", "type": "black_list_uvci", "value": ""},
        ])
        assert derive_revocation_set(table) == frozenset()

    def test_type_must_match(self):
        table = SettingsTable.from_json([
            {"name": "black_list_uvci", "type": "GENERIC", "value": "A"},
        ])
        with pytest.raises(ConfigError):
            derive_revocation_set(table)

    def test_missing_entry_raises(self):
        table = SettingsTable.from_json([
            {"name": "recovery_cert_end_day", "type": "GENERIC", "value": "180"},
        ])
        with pytest.raises(ConfigError) as exc_info:
            derive_revocation_set(table)
        assert "black_list_uvci" in exc_info.value.message


class TestSettingsStoreRefresh:

    @pytest.mark.asyncio
    async def test_refresh_publishes_table_and_revocations(self, settings_records):
        store = _store(body=settings_records)

        snapshot = await store.refresh()

        assert store.current is snapshot
        assert len(snapshot.settings) == len(settings_records)
        assert snapshot.revocation_set == frozenset({"ABC123", "DEF456"})
        assert snapshot.settings.get("recovery_cert_end_day", "GENERIC") == "180"

    @pytest.mark.asyncio
    async def test_missing_revocation_entry_keeps_previous(self):
        store = _store(body=[{"name": "x", "type": "GENERIC", "value": "1"}])
        previous = PolicySnapshot(settings=SettingsTable([]), revocation_set=frozenset({"OLD"}))
        store.publish(previous)

        with pytest.raises(ConfigError):
            await store.refresh()
        assert store.current is previous

    @pytest.mark.asyncio
    async def test_http_error(self):
        with pytest.raises(RefreshError, match="HTTP 503"):
            await _store(status=503, body=[]).refresh()

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        with pytest.raises(RefreshError) as exc_info:
            await _store(body="<html>").refresh()
        assert exc_info.value.code == "FEED_MALFORMED"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        store = SettingsStore(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            settings_url=SETTINGS_URL,
        )
        with pytest.raises(RefreshError) as exc_info:
            await store.refresh()
        assert exc_info.value.code == "FEED_UNREACHABLE"
