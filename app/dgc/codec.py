# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""COSE_Sign1 (RFC 9052) parsing and verification.

A Sign1 message is a CBOR array::

    [protected: bstr, unprotected: map, payload: bstr, signature: bstr]

optionally wrapped in tag 18 (and, for CWTs, tag 61).  The signature
covers the ``Sig_structure``::

    ["Signature1", protected, external_aad = b"", payload]

ECDSA signatures are the raw ``r || s`` concatenation; RSA signatures are
PSS (``PS*``) or PKCS#1 v1.5 (``RS*``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import cbor2
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from app.dgc.models import ECKeyMaterial, KeyAlgorithm, KeyMaterial, RSAKeyMaterial

__all__ = ["CoseSign1"]

# COSE header labels
HEADER_ALG = 1
HEADER_KID = 4

TAG_COSE_SIGN1 = 18
TAG_CWT = 61

SIG_CONTEXT = "Signature1"

# COSE algorithm id -> (key type, hash, RSA padding scheme)
ALGORITHMS: Dict[int, Tuple[KeyAlgorithm, type, str]] = {
    -7: (KeyAlgorithm.EC, hashes.SHA256, ""),
    -35: (KeyAlgorithm.EC, hashes.SHA384, ""),
    -36: (KeyAlgorithm.EC, hashes.SHA512, ""),
    -37: (KeyAlgorithm.RSA, hashes.SHA256, "pss"),
    -38: (KeyAlgorithm.RSA, hashes.SHA384, "pss"),
    -39: (KeyAlgorithm.RSA, hashes.SHA512, "pss"),
    -257: (KeyAlgorithm.RSA, hashes.SHA256, "pkcs1"),
    -258: (KeyAlgorithm.RSA, hashes.SHA384, "pkcs1"),
    -259: (KeyAlgorithm.RSA, hashes.SHA512, "pkcs1"),
}

CURVES = {
    "secp256r1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "secp521r1": ec.SECP521R1,
}


def _public_key(key_material: KeyMaterial):
    if isinstance(key_material, ECKeyMaterial):
        curve = CURVES.get(key_material.curve)
        if curve is None:
            raise ValueError(f"Unsupported curve: {key_material.curve}")
        return ec.EllipticCurvePublicNumbers(
            int.from_bytes(key_material.x, "big"),
            int.from_bytes(key_material.y, "big"),
            curve(),
        ).public_key()
    if isinstance(key_material, RSAKeyMaterial):
        return rsa.RSAPublicNumbers(
            int.from_bytes(key_material.e, "big"),
            int.from_bytes(key_material.n, "big"),
        ).public_key()
    raise ValueError(f"Unsupported key material: {type(key_material).__name__}")


@dataclass
class CoseSign1:
    """A parsed COSE_Sign1 message.

    ``protected_bytes`` keeps the serialized protected header exactly as
    received; the signature is computed over those bytes, not over a
    re-encoding of ``protected``.
    """

    protected_bytes: bytes
    protected: Dict[Any, Any]
    unprotected: Dict[Any, Any]
    payload: bytes
    signature: bytes = field(repr=False)

    @classmethod
    def decode(cls, data: bytes) -> "CoseSign1":
        """Parse a (possibly tagged) COSE_Sign1 structure.

        Raises
        ------
        ValueError
            If ``data`` is not CBOR or not a four-element Sign1 array.
        """
        try:
            item = cbor2.loads(data)
        except Exception as exc:
            raise ValueError(f"not CBOR: {exc}") from exc

        while isinstance(item, cbor2.CBORTag):
            if item.tag not in (TAG_COSE_SIGN1, TAG_CWT):
                raise ValueError(f"unexpected CBOR tag {item.tag}")
            item = item.value

        if not isinstance(item, list) or len(item) != 4:
            raise ValueError("not a COSE_Sign1 array")
        protected_bytes, unprotected, payload, signature = item
        if not isinstance(protected_bytes, bytes) or not isinstance(signature, bytes):
            raise ValueError("COSE_Sign1 header or signature is not a byte string")
        if not isinstance(payload, bytes):
            raise ValueError("COSE_Sign1 payload is detached or not a byte string")
        if not isinstance(unprotected, dict):
            raise ValueError("COSE_Sign1 unprotected header is not a map")

        protected = cbor2.loads(protected_bytes) if protected_bytes else {}
        if not isinstance(protected, dict):
            raise ValueError("COSE_Sign1 protected header is not a map")

        return cls(
            protected_bytes=protected_bytes,
            protected=protected,
            unprotected=unprotected,
            payload=payload,
            signature=signature,
        )

    def header(self, label: int) -> Any:
        """Header value, protected bucket first."""
        value = self.protected.get(label)
        if value is None:
            value = self.unprotected.get(label)
        return value

    @property
    def kid(self) -> bytes:
        value = self.header(HEADER_KID)
        return value if isinstance(value, bytes) else b""

    @property
    def algorithm(self) -> Any:
        return self.header(HEADER_ALG)

    def to_be_signed(self) -> bytes:
        return cbor2.dumps([SIG_CONTEXT, self.protected_bytes, b"", self.payload])

    def verify(self, key_material: KeyMaterial) -> bool:
        """Check the signature against ``key_material``.

        Returns ``False`` when the signature does not validate or the key
        type does not match the message algorithm.

        Raises
        ------
        ValueError
            If the algorithm is not supported or the key material is
            unusable.
        """
        spec = ALGORITHMS.get(self.algorithm)
        if spec is None:
            raise ValueError(f"Unsupported COSE algorithm: {self.algorithm!r}")
        key_type, hash_cls, scheme = spec
        if key_material.algorithm is not key_type:
            return False

        public_key = _public_key(key_material)
        data = self.to_be_signed()
        try:
            if key_type is KeyAlgorithm.EC:
                size = (public_key.curve.key_size + 7) // 8
                if len(self.signature) != 2 * size:
                    return False
                r = int.from_bytes(self.signature[:size], "big")
                s = int.from_bytes(self.signature[size:], "big")
                public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hash_cls()))
            elif scheme == "pss":
                public_key.verify(
                    self.signature,
                    data,
                    padding.PSS(mgf=padding.MGF1(hash_cls()), salt_length=hash_cls.digest_size),
                    hash_cls(),
                )
            else:
                public_key.verify(self.signature, data, padding.PKCS1v15(), hash_cls())
        except InvalidSignature:
            return False
        return True
