# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Digital Green Certificate decoding.

A DGC QR payload is layered as::

    "HC1:" + base45( zlib( COSE_Sign1( CBOR claims ) ) )

The CBOR claims map carries the standard CWT claims (``1`` issuer, ``4``
expiry, ``6`` issued-at) and the health certificate under ``-260 / 1``.
The health certificate holds the holder's name (``nam``) and date of
birth (``dob``) and exactly one of the ``v`` (vaccination), ``t`` (test)
or ``r`` (recovery) record lists.

Signature verification is exposed as a capability on the decoded
credential, :meth:`DecodedCredential.check_signature`, so the trust layer
only has to supply key material.
"""

from __future__ import annotations

import base64
import logging
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import cbor2
from base45 import b45decode

from app.dgc.codec import CoseSign1
from app.dgc.exceptions import DecodeError
from app.dgc.models import CredentialKind, KeyMaterial

logger = logging.getLogger("dgc.decoder")

__all__ = ["DecodedCredential", "decode", "PREFIX"]

PREFIX = "HC1:"

CLAIM_ISSUER = 1
CLAIM_EXPIRES = 4
CLAIM_ISSUED_AT = 6
CLAIM_HCERT = -260
HCERT_EU_DGC_V1 = 1


@dataclass
class DecodedCredential:
    """A decoded, not yet verified, health credential.

    Attributes
    ----------
    key_id : str
        Base64 of the COSE ``kid`` header, the same form the authority
        uses in its ``X-KID`` header.
    hcert : dict
        The health certificate claim.
    """

    key_id: Optional[str]
    hcert: Dict[str, Any]
    issuer: Optional[str] = None
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    message: Optional[CoseSign1] = field(default=None, repr=False)

    # ------------------------------------------------------------------
    # Holder identity
    # ------------------------------------------------------------------

    @property
    def surname(self) -> Optional[str]:
        return (self.hcert.get("nam") or {}).get("fn")

    @property
    def forename(self) -> Optional[str]:
        return (self.hcert.get("nam") or {}).get("gn")

    @property
    def date_of_birth(self) -> Optional[str]:
        return self.hcert.get("dob")

    # ------------------------------------------------------------------
    # Record sections
    # ------------------------------------------------------------------

    def present_kinds(self) -> List[CredentialKind]:
        """Record kinds with a non-empty section on this credential."""
        return [kind for kind in CredentialKind if self.hcert.get(kind.value)]

    def record(self, kind: CredentialKind) -> Dict[str, Any]:
        """First entry of the section for ``kind``.

        Raises
        ------
        DecodeError
            If the section is absent or its first entry is not a map.
        """
        entries = self.hcert.get(kind.value)
        if not entries or not isinstance(entries, list) or not isinstance(entries[0], dict):
            raise DecodeError.missing_claim(f"a '{kind.value}' record")
        return entries[0]

    # ------------------------------------------------------------------
    # Signature capability
    # ------------------------------------------------------------------

    def check_signature(self, key_material: KeyMaterial) -> bool:
        """Verify the COSE signature against the given public key material.

        Raises
        ------
        ValueError
            If the key material or the message algorithm is unusable.
        """
        if self.message is None:
            raise ValueError("credential carries no signed message")
        return self.message.verify(key_material)


def decode(raw: str) -> DecodedCredential:
    """Decode an ``HC1:`` credential string.

    Raises
    ------
    DecodeError
        If any layer of the encoding is malformed.
    """
    if not raw or not raw.strip():
        raise DecodeError.malformed("empty credential")
    data = raw.strip()
    if data.startswith(PREFIX):
        data = data[len(PREFIX):]

    try:
        compressed = b45decode(data)
    except ValueError as exc:
        raise DecodeError.malformed(f"invalid base45 encoding: {exc}") from exc

    # zlib streams start with 0x78 ('x'); uncompressed COSE is also allowed.
    if compressed[:1] == b"x":
        try:
            compressed = zlib.decompress(compressed)
        except zlib.error as exc:
            raise DecodeError.malformed(f"invalid zlib stream: {exc}") from exc

    try:
        message = CoseSign1.decode(compressed)
    except ValueError as exc:
        raise DecodeError.malformed(f"invalid COSE message: {exc}") from exc

    try:
        claims = cbor2.loads(message.payload)
    except Exception as exc:
        raise DecodeError.malformed(f"invalid CBOR payload: {exc}") from exc
    if not isinstance(claims, dict):
        raise DecodeError.malformed("CBOR payload is not a map")

    hcert_claim = claims.get(CLAIM_HCERT)
    hcert = hcert_claim.get(HCERT_EU_DGC_V1) if isinstance(hcert_claim, dict) else None
    if not isinstance(hcert, dict):
        raise DecodeError.missing_claim("the health certificate claim")

    kid = message.kid
    key_id = base64.b64encode(kid).decode("ascii") if kid else None

    return DecodedCredential(
        key_id=key_id,
        hcert=hcert,
        issuer=claims.get(CLAIM_ISSUER),
        issued_at=claims.get(CLAIM_ISSUED_AT),
        expires_at=claims.get(CLAIM_EXPIRES),
        message=message,
    )
