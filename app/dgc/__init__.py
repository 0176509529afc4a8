"""Digital Green Certificate validation.

Trust list and policy synchronisation, signature verification, and
policy-rule dispatch for EU DGC health credentials.
"""

from .context import ContextView, VerifierContext, get_verifier_context
from .exceptions import (
    ConfigError,
    DecodeError,
    DGCError,
    PolicyError,
    RefreshError,
    TrustError,
    UnsupportedCredentialKind,
)
from .validate import ValidationOutcome, validate_credential

__all__ = [
    "ConfigError",
    "ContextView",
    "DecodeError",
    "DGCError",
    "PolicyError",
    "RefreshError",
    "TrustError",
    "UnsupportedCredentialKind",
    "ValidationOutcome",
    "VerifierContext",
    "get_verifier_context",
    "validate_credential",
]
