# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Test certificate rules.

Only a "not detected" result is acceptable.  The validity window is
measured in hours from the sample collection time ``sc`` and depends on
the test type ``tt``: molecular (NAAT) and rapid antigen tests each have
their own ``GENERIC`` start/end settings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from app.dgc.exceptions import PolicyError
from app.dgc.models import CredentialKind, RevocationSet, SettingsTable, ValidationResult
from app.dgc.rules.common import GENERIC, check_not_revoked, parse_datetime, shift, utc_now

RESULT_DETECTED = "260373001"
RESULT_NOT_DETECTED = "260415000"

TYPE_MOLECULAR = "LP6464-4"
TYPE_RAPID = "LP217198-3"

# test type -> (start hours setting, end hours setting, label)
WINDOWS = {
    TYPE_MOLECULAR: ("molecular_test_start_hours", "molecular_test_end_hours", "molecular"),
    TYPE_RAPID: ("rapid_test_start_hours", "rapid_test_end_hours", "rapid"),
}


def validate_test(
    settings: SettingsTable,
    credential,
    revocation_set: RevocationSet,
    now: Optional[datetime] = None,
) -> ValidationResult:
    record = credential.record(CredentialKind.TEST)
    try:
        check_not_revoked(record, revocation_set)

        result = record.get("tr")
        if result == RESULT_DETECTED:
            raise PolicyError.rejected("test result positive")
        if result != RESULT_NOT_DETECTED:
            raise PolicyError.rejected(f"test result {result!r} not recognised")

        test_type = record.get("tt")
        if test_type not in WINDOWS:
            raise PolicyError.rejected(f"test type {test_type!r} not recognised")
        start_setting, end_setting, label = WINDOWS[test_type]
        start_hours = settings.require_int(start_setting, GENERIC)
        end_hours = settings.require_int(end_setting, GENERIC)

        collected_at = parse_datetime(record, "sc")
        current = utc_now(now)
        if current < shift(collected_at, hours=start_hours):
            raise PolicyError.rejected("test not yet valid")
        if current > shift(collected_at, hours=end_hours):
            raise PolicyError.rejected("test expired")
    except PolicyError as exc:
        return ValidationResult.reject(exc.message)

    return ValidationResult.accept(f"{label} test negative")
