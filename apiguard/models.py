"""Pydantic models for keys, ledger entries and declared route policies."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApiKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    key: str
    level: int = 0
    ignore_limits: bool = False


class ApiLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key_id: int | None
    route: str
    http_method: str
    params: str = ""
    ip_address: str | None = None
    created_at: float


class LogFilter(BaseModel):
    """Range query against the request ledger. Both bounds are inclusive."""
    model_config = ConfigDict(frozen=True)

    route: str
    http_method: str
    start: float
    end: float
    api_key_id: int | None = None


class LimitConfig(BaseModel):
    # Values are kept raw here; the policy registry decides whether they are usable.
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    limit: Any = None
    window: Any = Field(default=None, validation_alias="increment")


class LimitsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: LimitConfig | None = None
    method: LimitConfig | None = None


class PolicyConfig(BaseModel):
    """A route policy as declared by the host application."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    key_authentication: bool = Field(default=True, alias="keyAuthentication")
    level: int | None = None
    limits: LimitsConfig | None = None
