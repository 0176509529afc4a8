# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Route a decoded credential to its policy-rule evaluator.

The credential kind is a closed set (:class:`CredentialKind`); the
dispatcher maps each kind to exactly one evaluator and refuses to guess
when a credential carries no section, or more than one, by raising
:class:`UnsupportedCredentialKind`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional

from app.dgc.exceptions import UnsupportedCredentialKind
from app.dgc.models import CredentialKind, RevocationSet, SettingsTable, ValidationResult
from app.dgc.rules import validate_recovery, validate_test, validate_vaccination

__all__ = ["Evaluator", "DEFAULT_EVALUATORS", "ValidationDispatcher", "credential_kind"]

Evaluator = Callable[..., ValidationResult]

DEFAULT_EVALUATORS: Dict[CredentialKind, Evaluator] = {
    CredentialKind.VACCINATION: validate_vaccination,
    CredentialKind.TEST: validate_test,
    CredentialKind.RECOVERY: validate_recovery,
}


def credential_kind(credential) -> CredentialKind:
    """Return the single record kind present on ``credential``."""
    kinds = credential.present_kinds()
    if not kinds:
        raise UnsupportedCredentialKind.none_present()
    if len(kinds) > 1:
        raise UnsupportedCredentialKind.ambiguous(kinds)
    return kinds[0]


class ValidationDispatcher:
    """Select and run the evaluator for a credential's kind."""

    def __init__(self, evaluators: Optional[Dict[CredentialKind, Evaluator]] = None) -> None:
        evaluators = dict(DEFAULT_EVALUATORS if evaluators is None else evaluators)
        missing = [kind for kind in CredentialKind if kind not in evaluators]
        if missing:
            raise ValueError(f"No evaluator registered for {[k.name for k in missing]}")
        self._evaluators = evaluators

    def evaluate(
        self,
        settings: SettingsTable,
        revocation_set: RevocationSet,
        credential,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Evaluate ``credential`` against the current policy.

        Raises
        ------
        UnsupportedCredentialKind
            If the credential does not carry exactly one record kind.
        ConfigError
            If a required policy setting is missing or malformed.
        """
        evaluator = self._evaluators[credential_kind(credential)]
        return evaluator(settings, credential, revocation_set, now=now)
