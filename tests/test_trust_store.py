# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for trusted signer certificate synchronisation (app.dgc.trust_store).

The authority feeds are simulated with ``httpx.MockTransport`` so the full
pagination protocol (``X-KID``/``X-RESUME-TOKEN`` headers, terminal
status) is exercised without network access.
"""

from __future__ import annotations

import json
from typing import Dict, List, Optional

import httpx
import pytest

from app.dgc.exceptions import RefreshError
from app.dgc.models import TrustSnapshot
from app.dgc.trust_store import TrustStore

STATUS_URL = "https://authority.test/status"
UPDATE_URL = "https://authority.test/update"


# =========================================================================
# Helpers
# =========================================================================

class FakeAuthority:
    """Serves a status list and a paginated update feed.

    ``pages`` is a list of ``(kid, body)`` pairs served in order; after the
    last page the feed answers ``terminal_status``.
    """

    def __init__(
        self,
        valid_ids: List[str],
        pages: List[tuple],
        terminal_status: int = 204,
        omit_token_on: Optional[int] = None,
        fail_on: Optional[int] = None,
    ):
        self.valid_ids = valid_ids
        self.pages = pages
        self.terminal_status = terminal_status
        self.omit_token_on = omit_token_on
        self.fail_on = fail_on
        self.update_requests: List[Dict[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == STATUS_URL:
            return httpx.Response(200, content=json.dumps(self.valid_ids))

        token = request.headers.get("X-RESUME-TOKEN")
        self.update_requests.append({"X-RESUME-TOKEN": token} if token else {})
        index = int(token) if token else 0
        if self.fail_on is not None and index == self.fail_on:
            raise httpx.ConnectError("connection reset", request=request)
        if index >= len(self.pages):
            return httpx.Response(self.terminal_status)

        kid, body = self.pages[index]
        headers = {"X-KID": kid}
        if self.omit_token_on != index:
            headers["X-RESUME-TOKEN"] = str(index + 1)
        return httpx.Response(200, headers=headers, content=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _store(authority: FakeAuthority, max_pages: int = 100) -> TrustStore:
    return TrustStore(
        client=authority.client(),
        status_url=STATUS_URL,
        update_url=UPDATE_URL,
        max_pages=max_pages,
    )


# =========================================================================
# Pagination
# =========================================================================

class TestPagination:

    @pytest.mark.asyncio
    async def test_single_certificate_then_terminal(self):
        """One page then a non-200 yields one certificate."""
        authority = FakeAuthority(["KID1"], [("KID1", "CERTDATA")])
        store = _store(authority)

        snapshot = await store.refresh()

        assert [c.key_id for c in snapshot.certificates] == ["KID1"]
        assert "CERTDATA" in snapshot.certificates[0].pem
        assert snapshot.certificates[0].pem.startswith("-----BEGIN CERTIFICATE-----\n")
        assert store.current is snapshot

    @pytest.mark.asyncio
    async def test_resume_token_is_echoed(self):
        """First request has no token; each later request echoes the last token."""
        authority = FakeAuthority(["A", "B"], [("A", "AAAA"), ("B", "BBBB")], terminal_status=404)
        snapshot = await _store(authority).refresh()

        assert authority.update_requests == [
            {},
            {"X-RESUME-TOKEN": "1"},
            {"X-RESUME-TOKEN": "2"},
        ]
        assert [c.key_id for c in snapshot.certificates] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_kid1_certdata_t1(self):
        """Status [KID1]; one page KID1/CERTDATA/T1; then 404 for cursor T1."""
        requests = []

        def handler(request):
            if str(request.url) == STATUS_URL:
                return httpx.Response(200, json=["KID1"])
            requests.append(request.headers.get("X-RESUME-TOKEN"))
            if request.headers.get("X-RESUME-TOKEN") == "T1":
                return httpx.Response(404)
            return httpx.Response(
                200, headers={"X-KID": "KID1", "X-RESUME-TOKEN": "T1"}, content="CERTDATA"
            )

        store = TrustStore(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            status_url=STATUS_URL,
            update_url=UPDATE_URL,
        )
        snapshot = await store.refresh()

        assert requests == [None, "T1"]
        assert len(snapshot.certificates) == 1
        assert snapshot.certificates[0].key_id == "KID1"
        assert store.current is snapshot

    @pytest.mark.asyncio
    async def test_untrusted_certificates_dropped(self):
        authority = FakeAuthority(
            ["A", "C"],
            [("A", "AAAA"), ("B", "BBBB"), ("C", "CCCC")],
        )
        snapshot = await _store(authority).refresh()

        assert [c.key_id for c in snapshot.certificates] == ["A", "C"]
        assert snapshot.valid_key_ids == frozenset({"A", "C"})

    @pytest.mark.asyncio
    async def test_empty_body_is_skipped(self):
        authority = FakeAuthority(["A", "B"], [("A", ""), ("B", "BBBB")])
        snapshot = await _store(authority).refresh()

        assert [c.key_id for c in snapshot.certificates] == ["B"]

    @pytest.mark.asyncio
    async def test_immediate_terminal_yields_empty_snapshot(self):
        authority = FakeAuthority(["A"], [])
        snapshot = await _store(authority).refresh()

        assert len(snapshot) == 0
        assert snapshot.valid_key_ids == frozenset({"A"})

    @pytest.mark.asyncio
    async def test_200_without_resume_token_fails(self):
        authority = FakeAuthority(["A", "B"], [("A", "AAAA"), ("B", "BBBB")], omit_token_on=0)
        store = _store(authority)

        with pytest.raises(RefreshError) as exc_info:
            await store.refresh()
        assert exc_info.value.code == "FEED_MALFORMED"
        assert store.current is None

    @pytest.mark.asyncio
    async def test_page_bound(self):
        pages = [("A", "AAAA")] * 10
        authority = FakeAuthority(["A"], pages)

        with pytest.raises(RefreshError, match="within 3 pages"):
            await _store(authority, max_pages=3).refresh()


# =========================================================================
# Failure handling
# =========================================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_mid_pagination_failure_keeps_previous_snapshot(self):
        authority = FakeAuthority(["A", "B"], [("A", "AAAA"), ("B", "BBBB")], fail_on=1)
        store = _store(authority)
        previous = TrustSnapshot.build(["OLD"], [])
        store.publish(previous)

        with pytest.raises(RefreshError) as exc_info:
            await store.refresh()

        assert exc_info.value.code == "FEED_UNREACHABLE"
        assert store.current is previous

    @pytest.mark.asyncio
    async def test_status_feed_http_error(self):
        def handler(request):
            return httpx.Response(500)

        store = TrustStore(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            status_url=STATUS_URL,
            update_url=UPDATE_URL,
        )
        with pytest.raises(RefreshError, match="HTTP 500"):
            await store.refresh()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["not json", '{"kid": "A"}', "[1, 2]"])
    async def test_status_feed_malformed(self, body):
        def handler(request):
            return httpx.Response(200, content=body)

        store = TrustStore(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            status_url=STATUS_URL,
            update_url=UPDATE_URL,
        )
        with pytest.raises(RefreshError) as exc_info:
            await store.refresh()
        assert exc_info.value.code == "FEED_MALFORMED"
