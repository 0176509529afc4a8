# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Credential signature verification against the trust snapshot.

Every certificate in the snapshot is an equally acceptable issuer, so
verification is a logical OR over the trust set: the first certificate
whose key validates the credential's COSE signature wins.  EC keys are
handed to the credential as curve coordinates, RSA keys as modulus and
exponent (see :meth:`SignerCertificate.key_material`).

A certificate that fails to parse, or whose key makes the COSE layer
raise, counts as "does not validate" for that certificate only.  Each
attempt is recorded in a :class:`SignatureReport` for diagnostics.

Verification reads the snapshot and never mutates it, so any number of
requests may verify against the same snapshot concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from app.dgc.models import KeyMaterial, TrustSnapshot

logger = logging.getLogger("dgc.signature")

__all__ = [
    "SignatureAttempt",
    "SignatureReport",
    "SignedCredential",
    "verify",
    "verify_detailed",
]


class SignedCredential(Protocol):
    def check_signature(self, key_material: KeyMaterial) -> bool: ...


@dataclass(frozen=True)
class SignatureAttempt:
    """Outcome of checking the credential against one certificate."""

    key_id: str
    valid: bool
    error: Optional[str] = None


@dataclass
class SignatureReport:
    attempts: List[SignatureAttempt] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return any(a.valid for a in self.attempts)

    @property
    def signer_key_id(self) -> Optional[str]:
        for attempt in self.attempts:
            if attempt.valid:
                return attempt.key_id
        return None

    @property
    def errors(self) -> List[SignatureAttempt]:
        return [a for a in self.attempts if a.error is not None]


def verify_detailed(credential: SignedCredential, snapshot: TrustSnapshot) -> SignatureReport:
    """Scan the snapshot until a certificate validates the signature."""
    report = SignatureReport()
    for certificate in snapshot.certificates:
        try:
            valid = bool(credential.check_signature(certificate.key_material()))
        except Exception as exc:
            logger.debug(
                "Signature check against kid=%s raised %s: %s",
                certificate.key_id, type(exc).__name__, exc,
            )
            report.attempts.append(
                SignatureAttempt(
                    key_id=certificate.key_id,
                    valid=False,
                    error=f"{type(exc).__name__}: {exc}",
                )
            )
            continue

        report.attempts.append(SignatureAttempt(key_id=certificate.key_id, valid=valid))
        if valid:
            logger.debug(
                "Signature validated by kid=%s (%s key)",
                certificate.key_id, certificate.key_algorithm.value,
            )
            break
    return report


def verify(credential: SignedCredential, snapshot: TrustSnapshot) -> bool:
    """Return ``True`` if any trusted certificate validates ``credential``."""
    return verify_detailed(credential, snapshot).verified
