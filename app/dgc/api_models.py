"""DGC Validator API models."""

from typing import Optional

from pydantic import BaseModel


class TrustStats(BaseModel):
    valid_key_ids: int
    certificates: int
    age_seconds: float


class PolicyStats(BaseModel):
    settings: int
    revoked_uvcis: int
    age_seconds: float


class HealthResponse(BaseModel):
    status: str
    ready: bool
    trust: Optional[TrustStats] = None
    policy: Optional[PolicyStats] = None
