# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Vaccination certificate rules.

Validity windows are published per medicinal product (the settings
``type`` is the product code, e.g. ``EU/1/20/1528``) and measured in days
from the vaccination date ``dt``:

* a complete cycle (``dn >= sd``) uses ``vaccine_start_day_complete`` and
  ``vaccine_end_day_complete``;
* a partial cycle uses ``vaccine_start_day_not_complete`` and
  ``vaccine_end_day_not_complete``.

A product without settings is not recognised and is rejected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from app.dgc.exceptions import PolicyError
from app.dgc.models import CredentialKind, RevocationSet, SettingsTable, ValidationResult
from app.dgc.rules.common import check_not_revoked, parse_date, shift, utc_now

START_DAY_COMPLETE = "vaccine_start_day_complete"
END_DAY_COMPLETE = "vaccine_end_day_complete"
START_DAY_NOT_COMPLETE = "vaccine_start_day_not_complete"
END_DAY_NOT_COMPLETE = "vaccine_end_day_not_complete"


def _dose_number(record: dict, field: str) -> int:
    value = record.get(field)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise PolicyError.rejected(f"malformed {field} {value!r}")
    return value


def validate_vaccination(
    settings: SettingsTable,
    credential,
    revocation_set: RevocationSet,
    now: Optional[datetime] = None,
) -> ValidationResult:
    record = credential.record(CredentialKind.VACCINATION)
    try:
        check_not_revoked(record, revocation_set)

        product = record.get("mp")
        if not isinstance(product, str) or settings.get(END_DAY_COMPLETE, product) is None:
            raise PolicyError.rejected(f"vaccine {product!r} not recognised")

        dose = _dose_number(record, "dn")
        total = _dose_number(record, "sd")
        complete = dose >= total
        if complete:
            start_days = settings.require_int(START_DAY_COMPLETE, product)
            end_days = settings.require_int(END_DAY_COMPLETE, product)
        else:
            start_days = settings.require_int(START_DAY_NOT_COMPLETE, product)
            end_days = settings.require_int(END_DAY_NOT_COMPLETE, product)

        vaccinated_on = parse_date(record, "dt")
        today = utc_now(now).date()
        if today < shift(vaccinated_on, days=start_days):
            raise PolicyError.rejected("vaccination not yet valid")
        if today > shift(vaccinated_on, days=end_days):
            raise PolicyError.rejected("vaccination expired")
    except PolicyError as exc:
        return ValidationResult.reject(exc.message)

    if complete:
        return ValidationResult.accept(f"vaccination complete ({dose}/{total})")
    return ValidationResult.accept(f"vaccination partial ({dose}/{total})")
