# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Published trust and policy state.

:class:`VerifierContext` is the single object request handling reads
from.  It owns the :class:`TrustStore` and :class:`SettingsStore`, each of
which publishes its snapshot by one reference assignment.  A request
calls :meth:`VerifierContext.current` once and uses the returned
:class:`ContextView` throughout, so a refresh completing mid-request
cannot change what that request sees.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.dgc.models import PolicySnapshot, TrustSnapshot
from app.dgc.settings_store import SettingsStore
from app.dgc.trust_store import TrustStore

__all__ = [
    "ContextView",
    "VerifierContext",
    "get_verifier_context",
    "reset_verifier_context",
]


@dataclass(frozen=True)
class ContextView:
    trust: Optional[TrustSnapshot]
    policy: Optional[PolicySnapshot]

    @property
    def ready(self) -> bool:
        return self.trust is not None and self.policy is not None


class VerifierContext:
    def __init__(
        self,
        trust_store: Optional[TrustStore] = None,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self.trust_store = trust_store or TrustStore()
        self.settings_store = settings_store or SettingsStore()

    def current(self) -> ContextView:
        return ContextView(trust=self.trust_store.current, policy=self.settings_store.current)

    def stats(self) -> Dict[str, Any]:
        view = self.current()
        now = time.time()
        stats: Dict[str, Any] = {"ready": view.ready}
        if view.trust is not None:
            stats["trust"] = {
                "valid_key_ids": len(view.trust.valid_key_ids),
                "certificates": len(view.trust.certificates),
                "age_seconds": round(now - view.trust.fetched_at, 1),
            }
        if view.policy is not None:
            stats["policy"] = {
                "settings": len(view.policy.settings),
                "revoked_uvcis": len(view.policy.revocation_set),
                "age_seconds": round(now - view.policy.fetched_at, 1),
            }
        return stats


# =============================================================================
# Module-level singleton
# =============================================================================

_verifier_context: Optional[VerifierContext] = None


def get_verifier_context() -> VerifierContext:
    """Get the module-level verifier context singleton."""
    global _verifier_context
    if _verifier_context is None:
        _verifier_context = VerifierContext()
    return _verifier_context


def reset_verifier_context() -> None:
    """Reset the module-level verifier context singleton (for testing)."""
    global _verifier_context
    _verifier_context = None
