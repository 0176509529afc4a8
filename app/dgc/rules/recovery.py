# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Recovery certificate rules.

Valid from ``df`` plus ``recovery_cert_start_day`` until the earlier of
the certificate's own ``du`` and ``fr`` (first positive test) plus
``recovery_cert_end_day``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from app.dgc.exceptions import PolicyError
from app.dgc.models import CredentialKind, RevocationSet, SettingsTable, ValidationResult
from app.dgc.rules.common import GENERIC, check_not_revoked, parse_date, shift, utc_now

START_DAY = "recovery_cert_start_day"
END_DAY = "recovery_cert_end_day"


def validate_recovery(
    settings: SettingsTable,
    credential,
    revocation_set: RevocationSet,
    now: Optional[datetime] = None,
) -> ValidationResult:
    record = credential.record(CredentialKind.RECOVERY)
    try:
        check_not_revoked(record, revocation_set)

        start_days = settings.require_int(START_DAY, GENERIC)
        end_days = settings.require_int(END_DAY, GENERIC)

        valid_from = shift(parse_date(record, "df"), days=start_days)
        valid_until = min(
            parse_date(record, "du"),
            shift(parse_date(record, "fr"), days=end_days),
        )

        today = utc_now(now).date()
        if today < valid_from:
            raise PolicyError.rejected("recovery not yet valid")
        if today > valid_until:
            raise PolicyError.rejected("recovery expired")
    except PolicyError as exc:
        return ValidationResult.reject(exc.message)

    return ValidationResult.accept("recovery")
