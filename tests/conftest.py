# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Shared test fixtures for the DGC validator test suite.

Provides reusable fixtures for generating EC and RSA signer certificates,
signed ``HC1:`` credentials, settings feed payloads, and verifier contexts
with published snapshots.  All credentials carry real COSE_Sign1 signatures
made with cryptography, so signature tests exercise the actual key checks.
"""

from __future__ import annotations

import base64
import copy
import os
import zlib
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import cbor2
import pytest
from base45 import b45encode
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.x509.oid import NameOID

from app.dgc.context import VerifierContext
from app.dgc.models import PolicySnapshot, SettingsTable, SignerCertificate, TrustSnapshot
from app.dgc.settings_store import derive_revocation_set


ALG_ES256 = -7
ALG_PS256 = -37


# =========================================================================
# Signers
# =========================================================================


@dataclass
class Signer:
    """A signing key plus the self-signed certificate the authority serves."""

    kid: str
    kid_bytes: bytes
    algorithm: int
    private_key: Any
    certificate_body: str

    def sign(self, data: bytes) -> bytes:
        if self.algorithm == ALG_ES256:
            r, s = decode_dss_signature(self.private_key.sign(data, ec.ECDSA(hashes.SHA256())))
            return r.to_bytes(32, "big") + s.to_bytes(32, "big")
        return self.private_key.sign(
            data,
            padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=32),
            hashes.SHA256(),
        )

    def signer_certificate(self, key_id: Optional[str] = None) -> SignerCertificate:
        return SignerCertificate.from_body(key_id or self.kid, self.certificate_body)


def _certificate_body(private_key, common_name: str) -> str:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(private_key, hashes.SHA256())
    )
    der = certificate.public_bytes(serialization.Encoding.DER)
    return base64.b64encode(der).decode("ascii")


def _ec_signer() -> Signer:
    private_key = ec.generate_private_key(ec.SECP256R1())
    kid_bytes = os.urandom(8)
    return Signer(
        kid=base64.b64encode(kid_bytes).decode("ascii"),
        kid_bytes=kid_bytes,
        algorithm=ALG_ES256,
        private_key=private_key,
        certificate_body=_certificate_body(private_key, "EC signer"),
    )


def _rsa_signer() -> Signer:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    kid_bytes = os.urandom(8)
    return Signer(
        kid=base64.b64encode(kid_bytes).decode("ascii"),
        kid_bytes=kid_bytes,
        algorithm=ALG_PS256,
        private_key=private_key,
        certificate_body=_certificate_body(private_key, "RSA signer"),
    )


@pytest.fixture
def ec_signer() -> Signer:
    """A fresh P-256 signer."""
    return _ec_signer()


@pytest.fixture
def other_ec_signer() -> Signer:
    """A second, unrelated P-256 signer."""
    return _ec_signer()


@pytest.fixture(scope="session")
def rsa_signer() -> Signer:
    """A 2048-bit RSA signer (session scoped: key generation is slow)."""
    return _rsa_signer()


# =========================================================================
# Health certificate payloads
# =========================================================================


def _today() -> date:
    return datetime.now(timezone.utc).date()


_BASE_HCERT: Dict[str, Any] = {
    "ver": "1.3.0",
    "nam": {"fn": "Rossi", "gn": "Mario", "fnt": "ROSSI", "gnt": "MARIO"},
    "dob": "1980-01-01",
}


@pytest.fixture
def make_hcert() -> Callable[..., Dict[str, Any]]:
    """Factory fixture: build a health certificate claim.

    ``kind`` selects the record section (``"v"``, ``"t"`` or ``"r"``);
    keyword arguments override fields of that record.  Defaults describe
    a certificate that is currently valid under the ``settings_records``
    fixture.
    """

    def _make(kind: str = "v", uvci: str = "URN:UVCI:01:IT:TEST0001", **overrides: Any) -> Dict[str, Any]:
        today = _today()
        if kind == "v":
            record = {
                "tg": "840539006", "vp": "1119349007", "mp": "EU/1/20/1528",
                "ma": "ORG-100030215", "dn": 2, "sd": 2,
                "dt": (today - timedelta(days=30)).isoformat(),
                "co": "IT", "is": "Ministero della Salute",
            }
        elif kind == "t":
            collected = datetime.now(timezone.utc) - timedelta(hours=5)
            record = {
                "tg": "840539006", "tt": "LP217198-3", "ma": "1232",
                "sc": collected.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "tr": "260415000", "tc": "Farmacia", "co": "IT",
                "is": "Ministero della Salute",
            }
        elif kind == "r":
            record = {
                "tg": "840539006",
                "fr": (today - timedelta(days=40)).isoformat(),
                "df": (today - timedelta(days=30)).isoformat(),
                "du": (today + timedelta(days=120)).isoformat(),
                "co": "IT", "is": "Ministero della Salute",
            }
        else:
            raise ValueError(kind)
        record["ci"] = uvci
        record.update(overrides)

        hcert = copy.deepcopy(_BASE_HCERT)
        hcert[kind] = [record]
        return hcert

    return _make


# =========================================================================
# Signed credential factory
# =========================================================================


def encode_credential(
    signer: Signer,
    hcert: Dict[str, Any],
    kid_bytes: Optional[bytes] = None,
    compress: bool = True,
) -> str:
    now = int(datetime.now(timezone.utc).timestamp())
    claims = {1: "IT", 4: now + 86400 * 365, 6: now, -260: {1: hcert}}
    protected = cbor2.dumps({1: signer.algorithm, 4: kid_bytes or signer.kid_bytes})
    payload = cbor2.dumps(claims)
    signature = signer.sign(cbor2.dumps(["Signature1", protected, b"", payload]))
    data = cbor2.dumps(cbor2.CBORTag(18, [protected, {}, payload, signature]))
    if compress:
        data = zlib.compress(data)
    return "HC1:" + b45encode(data).decode("ascii")


@pytest.fixture
def make_dgc(make_hcert) -> Callable[..., str]:
    """Factory fixture: a signed ``HC1:`` credential string.

    ``make_dgc(signer)`` signs a valid vaccination certificate; pass
    ``hcert=`` for other payloads.
    """

    def _make(
        signer: Signer,
        hcert: Optional[Dict[str, Any]] = None,
        kid_bytes: Optional[bytes] = None,
        compress: bool = True,
    ) -> str:
        return encode_credential(signer, hcert or make_hcert("v"), kid_bytes=kid_bytes, compress=compress)

    return _make


# =========================================================================
# Settings feed
# =========================================================================


@pytest.fixture
def settings_records() -> List[Dict[str, str]]:
    """A settings feed payload covering every rule parameter."""
    records = []
    for product in ("EU/1/20/1528", "EU/1/20/1507", "EU/1/21/1529"):
        records += [
            {"name": "vaccine_start_day_not_complete", "type": product, "value": "15"},
            {"name": "vaccine_end_day_not_complete", "type": product, "value": "42"},
            {"name": "vaccine_start_day_complete", "type": product, "value": "0"},
            {"name": "vaccine_end_day_complete", "type": product, "value": "270"},
        ]
    records += [
        {"name": "rapid_test_start_hours", "type": "GENERIC", "value": "0"},
        {"name": "rapid_test_end_hours", "type": "GENERIC", "value": "48"},
        {"name": "molecular_test_start_hours", "type": "GENERIC", "value": "0"},
        {"name": "molecular_test_end_hours", "type": "GENERIC", "value": "72"},
        {"name": "recovery_cert_start_day", "type": "GENERIC", "value": "0"},
        {"name": "recovery_cert_end_day", "type": "GENERIC", "value": "180"},
        {"name": "black_list_uvci", "type": "black_list_uvci", "value": "ABC123;DEF456;"},
    ]
    return records


@pytest.fixture
def settings_table(settings_records) -> SettingsTable:
    return SettingsTable.from_json(settings_records)


# =========================================================================
# Verifier context
# =========================================================================


@pytest.fixture
def make_context(settings_records) -> Callable[..., VerifierContext]:
    """Factory fixture: a VerifierContext with published snapshots.

    ``make_context([signer, ...])`` trusts exactly the given signers.
    """

    def _make(signers: List[Signer], records: Optional[List[Dict[str, str]]] = None) -> VerifierContext:
        context = VerifierContext()
        context.trust_store.publish(
            TrustSnapshot.build(
                [s.kid for s in signers],
                [s.signer_certificate() for s in signers],
            )
        )
        table = SettingsTable.from_json(records if records is not None else settings_records)
        context.settings_store.publish(
            PolicySnapshot(settings=table, revocation_set=derive_revocation_set(table))
        )
        return context

    return _make
