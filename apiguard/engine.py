"""Per-request guard: authenticate, authorize, throttle, record.

Stages run in a fixed order and the first failing stage raises the terminal
``GuardError``. The only side effect is the ledger append for an admitted,
authenticated request when API logging is enabled.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, TypeVar
from urllib.parse import urlencode

from apiguard.config import Settings
from apiguard.errors import (
    ForbiddenError,
    KeyLimitExceededError,
    MethodLimitExceededError,
    MethodNotAllowedError,
    StoreUnavailableError,
    UnauthorizedError,
)
from apiguard.models import ApiKey, ApiLogEntry, LogFilter
from apiguard.policies import PolicyRegistry
from apiguard.rate_limiter import LimitRule, Reason, Scope, evaluate
from apiguard.stores import KeyStore, RequestLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class GuardRequest:
    http_method: str
    route: str | None
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] = field(default_factory=dict)
    client_ip: str | None = None


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
    return value


def serialize_params(params: Mapping[str, Any], exclude: frozenset[str] = frozenset()) -> str:
    """Encode request parameters as a query string for the audit column."""
    pairs: list[tuple[str, str]] = []
    for name, value in params.items():
        if name in exclude:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for v in values:
            pairs.append((name, v if isinstance(v, str) else json.dumps(v)))
    return urlencode(pairs)


class GuardEngine:
    def __init__(
        self,
        keys: KeyStore,
        ledger: RequestLedger,
        policies: PolicyRegistry,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.keys = keys
        self.ledger = ledger
        self.policies = policies
        self.settings = settings
        self._clock = clock

        if not settings.logging_enabled:
            for (route, method), policy in policies.items():
                if policy.has_limits:
                    logger.warning(
                        "Route %s declares limits but API logging is disabled; "
                        "limits need logging enabled to take effect",
                        route if method is None else f"{route} {method}",
                    )

    async def check(self, request: GuardRequest) -> ApiKey | None:
        """Run every stage for ``request``; return the resolved key on admit."""
        if not request.route:
            raise MethodNotAllowedError()
        policy = self.policies.lookup(request.route, request.http_method)

        api_key: ApiKey | None = None
        if policy.key_authentication:
            api_key = await self._authenticate(request)
            if policy.level is not None and api_key.level < policy.level:
                raise ForbiddenError()

        # A key with ignore_limits bypasses every rate-limit check.
        if api_key is None or not api_key.ignore_limits:
            if api_key is not None:
                await self._check_limit(Scope.KEY, policy.key_limit, request, api_key.id)
            await self._check_limit(Scope.METHOD, policy.method_limit, request, None)

        if self.settings.logging_enabled and api_key is not None:
            entry = ApiLogEntry(
                api_key_id=api_key.id,
                route=request.route,
                http_method=request.http_method,
                params=serialize_params(
                    request.params, exclude=frozenset({self.settings.key_parameter_name})
                ),
                ip_address=request.client_ip,
                created_at=self._clock(),
            )
            await self._call_store(self.ledger.append(entry))
        return api_key

    async def _authenticate(self, request: GuardRequest) -> ApiKey:
        secret = _header(request.headers, self.settings.key_header_name)
        if not secret:
            secret = request.params.get(self.settings.key_parameter_name)
            if isinstance(secret, (list, tuple)):
                secret = secret[0] if secret else None
        if not secret or not isinstance(secret, str):
            raise UnauthorizedError()

        api_key = await self._call_store(self.keys.find_by_key(secret))
        if api_key is None:
            raise UnauthorizedError()
        return api_key

    async def _check_limit(
        self,
        scope: Scope,
        rule: LimitRule | None,
        request: GuardRequest,
        api_key_id: int | None,
    ) -> None:
        if rule is None or rule.misconfigured:
            return
        # Read the clock per check so each scope sees its own sliding window.
        now = self._clock()
        count = await self._call_store(
            self.ledger.count_since(
                LogFilter(
                    route=request.route,
                    http_method=request.http_method,
                    start=now - rule.window.total_seconds(),
                    end=now,
                    api_key_id=api_key_id,
                )
            )
        )
        decision = evaluate(scope, rule, count)
        if decision.admitted:
            return
        if decision.reason is Reason.KEY_LIMIT_EXCEEDED:
            logger.warning(
                "API key #%s has reached the limit of %d on route %s",
                api_key_id, rule.limit, request.route,
            )
            raise KeyLimitExceededError()
        logger.warning(
            "Route %s has reached the method limit of %d", request.route, rule.limit
        )
        raise MethodLimitExceededError()

    async def _call_store(self, call: Awaitable[T]) -> T:
        timeout = self.settings.store_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store call timed out after %ss", timeout)
            raise StoreUnavailableError("Storage backend timed out") from exc
