# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""DGC Validator exceptions mapped to rejection categories."""


class DGCError(Exception):
    """Base exception for DGC validation errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class DecodeError(DGCError):
    """Malformed input credential."""

    @classmethod
    def malformed(cls, reason: str) -> "DecodeError":
        return cls(code="DECODE_FAILED", message=reason)

    @classmethod
    def missing_claim(cls, claim: str) -> "DecodeError":
        return cls(code="DECODE_FAILED", message=f"credential payload lacks {claim}")


class TrustError(DGCError):
    """No trusted certificate validates the credential signature."""

    @classmethod
    def no_trusted_signer(cls) -> "TrustError":
        return cls(code="SIGNATURE_INVALID", message="signature")


class PolicyError(DGCError):
    """Credential fails a vaccination, test or recovery rule."""

    @classmethod
    def rejected(cls, reason: str) -> "PolicyError":
        return cls(code="POLICY_REJECTED", message=reason)


class UnsupportedCredentialKind(DGCError):
    """Credential carries none, or more than one, of the known record kinds."""

    @classmethod
    def none_present(cls) -> "UnsupportedCredentialKind":
        return cls(
            code="UNSUPPORTED_KIND",
            message="unsupported credential kind: no vaccination, test or recovery section",
        )

    @classmethod
    def ambiguous(cls, kinds: list) -> "UnsupportedCredentialKind":
        names = ", ".join(k.name.lower() for k in kinds)
        return cls(
            code="UNSUPPORTED_KIND",
            message=f"unsupported credential kind: multiple sections present ({names})",
        )


class ConfigError(DGCError):
    """Required settings entry missing or malformed."""

    @classmethod
    def missing_setting(cls, name: str, type_: str) -> "ConfigError":
        return cls(
            code="CONFIG_MISSING",
            message=f"settings entry '{name}' (type '{type_}') is missing",
        )

    @classmethod
    def malformed_setting(cls, name: str, type_: str, value: str) -> "ConfigError":
        return cls(
            code="CONFIG_MALFORMED",
            message=f"settings entry '{name}' (type '{type_}') has malformed value {value!r}",
        )


class RefreshError(DGCError):
    """Remote feed unreachable or malformed during background sync."""

    @classmethod
    def unreachable(cls, url: str, reason: str) -> "RefreshError":
        return cls(code="FEED_UNREACHABLE", message=f"feed {url} unreachable: {reason}")

    @classmethod
    def malformed(cls, url: str, reason: str) -> "RefreshError":
        return cls(code="FEED_MALFORMED", message=f"feed {url} returned malformed data: {reason}")

    @classmethod
    def pagination_exceeded(cls, url: str, pages: int) -> "RefreshError":
        return cls(
            code="FEED_MALFORMED",
            message=f"feed {url} did not terminate pagination within {pages} pages",
        )
