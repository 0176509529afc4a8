# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Trusted signer certificate synchronisation.

Downloads the authority's rotating list of signer certificates and
publishes it as an immutable :class:`~app.dgc.models.TrustSnapshot`.

Refresh protocol:

1. ``GET`` the status feed: a JSON array of currently-valid key ids.
2. ``GET`` the update feed repeatedly.  Each response carries one
   certificate body tagged with an ``X-KID`` header and the
   ``X-RESUME-TOKEN`` to send on the next request.  The first request has
   no resume token.  Pagination continues while the status is ``200`` and
   ends at the first other status.
3. Certificates whose key id is not in the valid set are dropped at
   ingestion, so they never reach the signature verifier.
4. Only after pagination completes is the new snapshot built and swapped
   in.  Any failure raises :class:`RefreshError` and leaves the published
   snapshot untouched.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List, Optional

import httpx

from app.config import (
    KID_HEADER,
    MAX_CERTIFICATE_PAGES,
    RESUME_TOKEN_HEADER,
    STATUS_URL,
    UPDATE_URL,
)
from app.dgc.exceptions import RefreshError
from app.dgc.http_client import get_shared_client
from app.dgc.models import SignerCertificate, TrustSnapshot

logger = logging.getLogger("dgc.trust_store")

__all__ = ["TrustStore"]


class TrustStore:
    """Owns the currently published :class:`TrustSnapshot`.

    Parameters
    ----------
    client : httpx.AsyncClient, optional
        Client used for the feeds.  Defaults to the shared client.
    status_url, update_url : str
        Authority feed endpoints.
    max_pages : int
        Upper bound on update-feed requests per refresh.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        status_url: str = STATUS_URL,
        update_url: str = UPDATE_URL,
        max_pages: int = MAX_CERTIFICATE_PAGES,
    ) -> None:
        self._client = client
        self._status_url = status_url
        self._update_url = update_url
        self._max_pages = max_pages
        self._snapshot: Optional[TrustSnapshot] = None

    @property
    def current(self) -> Optional[TrustSnapshot]:
        """The published snapshot, or ``None`` before the first refresh."""
        return self._snapshot

    def publish(self, snapshot: TrustSnapshot) -> None:
        # A single reference assignment: readers see the old or the new
        # snapshot, never a mixture.
        self._snapshot = snapshot

    async def refresh(self) -> TrustSnapshot:
        """Fetch a complete trust set and publish it.

        Raises
        ------
        RefreshError
            If either feed is unreachable or malformed.  The previously
            published snapshot keeps serving.
        """
        valid_key_ids = await self.fetch_valid_key_ids()
        certificates = await self.fetch_certificates(valid_key_ids)
        snapshot = TrustSnapshot.build(valid_key_ids, certificates)
        self.publish(snapshot)
        return snapshot

    async def fetch_valid_key_ids(self) -> FrozenSet[str]:
        response = await self._get(self._status_url)
        if response.status_code != 200:
            raise RefreshError.unreachable(self._status_url, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise RefreshError.malformed(self._status_url, str(exc)) from exc
        if not isinstance(payload, list) or not all(isinstance(k, str) for k in payload):
            raise RefreshError.malformed(self._status_url, "expected a JSON array of key ids")

        logger.info("Status feed lists %d valid key ids", len(payload))
        return frozenset(payload)

    async def fetch_certificates(self, valid_key_ids: FrozenSet[str]) -> List[SignerCertificate]:
        """Walk the paginated update feed, keeping only trusted certificates."""
        candidates: List[SignerCertificate] = []
        headers: dict = {}
        downloaded = 0

        for _ in range(self._max_pages):
            response = await self._get(self._update_url, headers=headers)
            if response.status_code != 200:
                logger.info(
                    "Certificate download complete: %d downloaded, %d added (terminal HTTP %d)",
                    downloaded, len(candidates), response.status_code,
                )
                return candidates

            key_id = response.headers.get(KID_HEADER)
            body = response.text
            if body.strip():
                downloaded += 1
                if key_id in valid_key_ids:
                    candidates.append(SignerCertificate.from_body(key_id, body))
                else:
                    logger.debug("Dropping certificate with untrusted kid=%s", key_id)

            resume_token = response.headers.get(RESUME_TOKEN_HEADER)
            if not resume_token:
                raise RefreshError.malformed(
                    self._update_url, f"HTTP 200 without {RESUME_TOKEN_HEADER} header"
                )
            headers = {RESUME_TOKEN_HEADER: resume_token}

        raise RefreshError.pagination_exceeded(self._update_url, self._max_pages)

    async def _get(self, url: str, headers: Optional[dict] = None) -> httpx.Response:
        client = self._client or get_shared_client()
        try:
            return await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise RefreshError.unreachable(url, f"{type(exc).__name__}: {exc}") from exc
