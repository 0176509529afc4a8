# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Immutable data model shared by the trust, settings and validation layers.

Snapshots published by the background refresher are frozen dataclasses:
the only mutable state in the service is *which* snapshot is current (see
:mod:`app.dgc.context`).  Readers can therefore hold a snapshot reference
for the lifetime of a request without locking.
"""

from __future__ import annotations

import textwrap
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Dict, FrozenSet, Iterable, Optional, Tuple, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePublicKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from app.dgc.exceptions import ConfigError

__all__ = [
    "CredentialKind",
    "ECKeyMaterial",
    "KeyAlgorithm",
    "KeyMaterial",
    "PolicySnapshot",
    "RSAKeyMaterial",
    "RevocationSet",
    "SettingEntry",
    "SettingsTable",
    "SignerCertificate",
    "TrustSnapshot",
    "ValidationResult",
    "armor_certificate",
]

PEM_HEADER = "-----BEGIN CERTIFICATE-----"
PEM_FOOTER = "-----END CERTIFICATE-----"


# ======================================================================
# Key material
# ======================================================================


class KeyAlgorithm(str, Enum):
    EC = "EC"
    RSA = "RSA"


@dataclass(frozen=True)
class ECKeyMaterial:
    """Elliptic-curve public point as big-endian coordinates."""

    curve: str
    x: bytes
    y: bytes

    algorithm = KeyAlgorithm.EC


@dataclass(frozen=True)
class RSAKeyMaterial:
    """RSA public modulus and exponent as big-endian integers."""

    n: bytes
    e: bytes

    algorithm = KeyAlgorithm.RSA


KeyMaterial = Union[ECKeyMaterial, RSAKeyMaterial]


def _int_to_bytes(value: int, length: Optional[int] = None) -> bytes:
    if length is None:
        length = max(1, (value.bit_length() + 7) // 8)
    return value.to_bytes(length, byteorder="big")


def armor_certificate(body: str) -> str:
    """Wrap a base64 certificate body in PEM armor."""
    lines = textwrap.wrap("".join(body.split()), 64)
    return "\n".join([PEM_HEADER, *lines, PEM_FOOTER]) + "\n"


@dataclass(frozen=True)
class SignerCertificate:
    """A trusted signer certificate as fetched from the authority.

    Only the key id and the PEM text are fields.  The public key is parsed
    the first time it is needed and the outcome, key material or parse
    error, is kept on the instance, so a malformed entry fails at the
    point of use (and is skipped there) rather than aborting ingestion of
    the whole list, and is never parsed twice.
    """

    key_id: str
    pem: str

    @classmethod
    def from_body(cls, key_id: str, body: str) -> "SignerCertificate":
        return cls(key_id=key_id, pem=armor_certificate(body))

    def load(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.pem.encode("ascii"))

    @cached_property
    def _parsed(self) -> Tuple[Optional[KeyMaterial], Optional[str]]:
        # cached_property writes to __dict__ directly, bypassing frozen.
        try:
            return self._derive_key_material(), None
        except (ValueError, UnsupportedAlgorithm) as exc:
            return None, str(exc)

    def _derive_key_material(self) -> KeyMaterial:
        public_key = self.load().public_key()
        if isinstance(public_key, EllipticCurvePublicKey):
            numbers = public_key.public_numbers()
            size = (public_key.curve.key_size + 7) // 8
            return ECKeyMaterial(
                curve=public_key.curve.name,
                x=_int_to_bytes(numbers.x, size),
                y=_int_to_bytes(numbers.y, size),
            )
        if isinstance(public_key, RSAPublicKey):
            numbers = public_key.public_numbers()
            return RSAKeyMaterial(n=_int_to_bytes(numbers.n), e=_int_to_bytes(numbers.e))
        raise ValueError(f"Unsupported public key type: {type(public_key).__name__}")

    @property
    def key_algorithm(self) -> KeyAlgorithm:
        return self.key_material().algorithm

    def key_material(self) -> KeyMaterial:
        """Verification key material derived from the certificate.

        Raises
        ------
        ValueError
            If the certificate cannot be parsed or carries an unsupported
            key type.
        """
        material, error = self._parsed
        if material is None:
            raise ValueError(error)
        return material


# ======================================================================
# Trust snapshot
# ======================================================================


@dataclass(frozen=True)
class TrustSnapshot:
    """Valid key ids plus the certificates fetched in the same cycle.

    Every certificate's key id must be a member of ``valid_key_ids``;
    construction fails otherwise.
    """

    valid_key_ids: FrozenSet[str]
    certificates: Tuple[SignerCertificate, ...]
    fetched_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        stray = [c.key_id for c in self.certificates if c.key_id not in self.valid_key_ids]
        if stray:
            raise ValueError(f"Certificates with untrusted key ids: {stray}")

    @classmethod
    def build(
        cls,
        valid_key_ids: Iterable[str],
        certificates: Iterable[SignerCertificate],
    ) -> "TrustSnapshot":
        return cls(valid_key_ids=frozenset(valid_key_ids), certificates=tuple(certificates))

    def __len__(self) -> int:
        return len(self.certificates)


# ======================================================================
# Settings
# ======================================================================


@dataclass(frozen=True)
class SettingEntry:
    name: str
    type: str
    value: str


class SettingsTable:
    """Ordered, read-only settings list queried by ``(name, type)``.

    When the feed repeats a key the first occurrence wins, matching a
    linear scan over the published list.
    """

    def __init__(self, entries: Iterable[SettingEntry]):
        self._entries: Tuple[SettingEntry, ...] = tuple(entries)
        index: Dict[Tuple[str, str], SettingEntry] = {}
        for entry in self._entries:
            index.setdefault((entry.name, entry.type), entry)
        self._index = index

    @classmethod
    def from_json(cls, records: list) -> "SettingsTable":
        """Build a table from the settings feed payload.

        Raises
        ------
        ValueError
            If the payload is not a list of objects with string
            ``name``/``type`` fields.
        """
        if not isinstance(records, list):
            raise ValueError("settings payload is not a list")
        entries = []
        for record in records:
            if not isinstance(record, dict):
                raise ValueError(f"settings record is not an object: {record!r}")
            name, type_ = record.get("name"), record.get("type")
            if not isinstance(name, str) or not isinstance(type_, str):
                raise ValueError(f"settings record lacks name/type: {record!r}")
            value = record.get("value")
            entries.append(SettingEntry(name=name, type=type_, value="" if value is None else str(value)))
        return cls(entries)

    def find(self, name: str, type_: str) -> Optional[SettingEntry]:
        return self._index.get((name, type_))

    def get(self, name: str, type_: str) -> Optional[str]:
        entry = self.find(name, type_)
        return entry.value if entry is not None else None

    def require_int(self, name: str, type_: str) -> int:
        """Return an integer setting, raising :class:`ConfigError` if unusable."""
        value = self.get(name, type_)
        if value is None:
            raise ConfigError.missing_setting(name, type_)
        try:
            return int(value.strip())
        except ValueError:
            raise ConfigError.malformed_setting(name, type_, value) from None

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


RevocationSet = FrozenSet[str]


@dataclass(frozen=True)
class PolicySnapshot:
    """Settings table and the revocation set derived from it."""

    settings: SettingsTable
    revocation_set: RevocationSet
    fetched_at: float = field(default_factory=time.time)


# ======================================================================
# Validation
# ======================================================================


class CredentialKind(str, Enum):
    """Record kinds a credential may carry; the HCERT key is the value."""

    VACCINATION = "v"
    TEST = "t"
    RECOVERY = "r"


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool
    message: str

    @classmethod
    def accept(cls, message: str) -> "ValidationResult":
        return cls(accepted=True, message=message)

    @classmethod
    def reject(cls, message: str) -> "ValidationResult":
        return cls(accepted=False, message=message)
