"""Policy-rule evaluators, one per credential kind.

Each evaluator has the signature
``(settings, credential, revocation_set, now=None) -> ValidationResult``
and is responsible for the UVCI revocation check as well as its own
date and dose predicates.
"""

from .recovery import validate_recovery
from .test import validate_test
from .vaccination import validate_vaccination

__all__ = [
    "validate_recovery",
    "validate_test",
    "validate_vaccination",
]
