# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Policy settings and UVCI revocation list.

The authority publishes a flat list of ``{name, type, value}`` records
holding the policy-rule parameters.  One reserved record, whose name and
type are both ``black_list_uvci``, carries the revoked credential
identifiers as a ``;``-separated string.

A missing revocation record is treated as a broken feed, not as "nothing
revoked": :func:`derive_revocation_set` raises :class:`ConfigError`.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from app.config import REVOCATION_LIST_DELIMITER, REVOCATION_LIST_KEY, SETTINGS_URL
from app.dgc.exceptions import ConfigError, RefreshError
from app.dgc.http_client import get_shared_client
from app.dgc.models import PolicySnapshot, RevocationSet, SettingsTable

logger = logging.getLogger("dgc.settings")

__all__ = ["SettingsStore", "derive_revocation_set"]


def derive_revocation_set(table: SettingsTable) -> RevocationSet:
    """Extract the revoked UVCI set from the settings table.

    Raises
    ------
    ConfigError
        If the table has no ``black_list_uvci`` entry.
    """
    entry = table.find(REVOCATION_LIST_KEY, REVOCATION_LIST_KEY)
    if entry is None:
        raise ConfigError.missing_setting(REVOCATION_LIST_KEY, REVOCATION_LIST_KEY)
    tokens = (token.strip() for token in entry.value.split(REVOCATION_LIST_DELIMITER))
    return frozenset(token for token in tokens if token)


class SettingsStore:
    """Owns the currently published :class:`PolicySnapshot`."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings_url: str = SETTINGS_URL,
    ) -> None:
        self._client = client
        self._settings_url = settings_url
        self._snapshot: Optional[PolicySnapshot] = None

    @property
    def current(self) -> Optional[PolicySnapshot]:
        return self._snapshot

    def publish(self, snapshot: PolicySnapshot) -> None:
        self._snapshot = snapshot

    async def refresh(self) -> PolicySnapshot:
        """Fetch the settings table, derive the revocation set, publish both.

        Raises
        ------
        RefreshError
            If the feed is unreachable or malformed.
        ConfigError
            If the table lacks the revocation entry.
        """
        table = await self.fetch_settings()
        logger.info("Settings feed returned %d entries", len(table))

        revocation_set = derive_revocation_set(table)
        logger.info("UVCI revocation list holds %d identifiers", len(revocation_set))

        snapshot = PolicySnapshot(settings=table, revocation_set=revocation_set)
        self.publish(snapshot)
        return snapshot

    async def fetch_settings(self) -> SettingsTable:
        client = self._client or get_shared_client()
        try:
            response = await client.get(self._settings_url)
        except httpx.HTTPError as exc:
            raise RefreshError.unreachable(
                self._settings_url, f"{type(exc).__name__}: {exc}"
            ) from exc

        if response.status_code != 200:
            raise RefreshError.unreachable(self._settings_url, f"HTTP {response.status_code}")
        try:
            return SettingsTable.from_json(response.json())
        except ValueError as exc:
            raise RefreshError.malformed(self._settings_url, str(exc)) from exc
