# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Per-request credential validation pipeline.

Phases:

1. **Snapshot**: read the published trust and policy snapshots once.
2. **Decode**: ``HC1:`` string to :class:`DecodedCredential`.
3. **Signature**: some trusted certificate must validate the signature.
4. **Policy**: dispatch to the vaccination, test or recovery rules.

Every rejection becomes a :class:`ValidationOutcome` carrying an HTTP
status and a plain-text message whose prefix names the failure category.
Nothing here touches the network or mutates shared state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.config import ADD_HOLDER_DETAILS
from app.dgc.context import VerifierContext
from app.dgc.decoder import DecodedCredential, decode
from app.dgc.dispatcher import ValidationDispatcher
from app.dgc.exceptions import ConfigError, DecodeError, TrustError, UnsupportedCredentialKind
from app.dgc.signature import verify_detailed

logger = logging.getLogger("dgc.validate")

__all__ = ["ValidationOutcome", "validate_credential"]

PREFIX_VALID = "VALID: "
PREFIX_NOT_VALID = "NOT VALID: "
PREFIX_INVALID = "INVALID: "
PREFIX_ERROR = "ERROR: "
PREFIX_UNAVAILABLE = "UNAVAILABLE: "

_default_dispatcher = ValidationDispatcher()


@dataclass(frozen=True)
class ValidationOutcome:
    status_code: int
    message: str

    @property
    def accepted(self) -> bool:
        return self.status_code == 200


def _holder_details(credential: DecodedCredential) -> str:
    surname = credential.surname or ""
    forename = credential.forename or ""
    birth = credential.date_of_birth or ""
    return f" - {surname} {forename} ({birth})"


def validate_credential(
    raw: str,
    context: VerifierContext,
    *,
    dispatcher: Optional[ValidationDispatcher] = None,
    add_holder_details: bool = ADD_HOLDER_DETAILS,
    now: Optional[datetime] = None,
) -> ValidationOutcome:
    """Validate one encoded credential against the current snapshots."""
    view = context.current()
    if not view.ready:
        return ValidationOutcome(503, PREFIX_UNAVAILABLE + "trust list not loaded")

    try:
        credential = decode(raw)
    except DecodeError as exc:
        return ValidationOutcome(400, PREFIX_INVALID + exc.message)

    report = verify_detailed(credential, view.trust)
    if not report.verified:
        if report.errors:
            logger.debug(
                "No signer validated kid=%s (%d of %d certificates errored)",
                credential.key_id, len(report.errors), len(report.attempts),
            )
        return ValidationOutcome(400, PREFIX_INVALID + TrustError.no_trusted_signer().message)

    logger.debug("Credential kid=%s signed by trusted kid=%s", credential.key_id, report.signer_key_id)

    try:
        result = (dispatcher or _default_dispatcher).evaluate(
            view.policy.settings, view.policy.revocation_set, credential, now=now
        )
    except (DecodeError, UnsupportedCredentialKind) as exc:
        return ValidationOutcome(400, PREFIX_INVALID + exc.message)
    except ConfigError as exc:
        logger.error("Policy settings unusable: %s", exc.message)
        return ValidationOutcome(500, PREFIX_ERROR + exc.message)

    message = result.message
    if add_holder_details:
        message += _holder_details(credential)

    if result.accepted:
        return ValidationOutcome(200, PREFIX_VALID + message)
    return ValidationOutcome(400, PREFIX_NOT_VALID + message)
