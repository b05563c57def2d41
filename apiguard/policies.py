"""Route policy registry: ``(route, http_method) -> MethodPolicy``.

Policies are declared by the host, keyed by route name (``"list_books"``)
or by route name and HTTP method (``"list_books POST"``). Limit rules are
validated once here; a misconfigured rule is logged and kept so that the
engine skips it instead of denying traffic.
"""
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Iterator, Mapping

from apiguard.duration import parse_duration
from apiguard.models import LimitConfig, PolicyConfig
from apiguard.rate_limiter import LimitRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodPolicy:
    key_authentication: bool = True
    level: int | None = None
    key_limit: LimitRule | None = None
    method_limit: LimitRule | None = None

    @property
    def has_limits(self) -> bool:
        return self.key_limit is not None or self.method_limit is not None


DEFAULT_POLICY = MethodPolicy()


def build_limit_rule(config: LimitConfig, default_window: timedelta) -> LimitRule:
    limit = config.limit
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        return LimitRule(limit=0, window=None, problem=f"limit must be a positive integer, got {limit!r}")
    if config.window is None:
        return LimitRule(limit=limit, window=default_window)
    try:
        window = parse_duration(config.window)
    except ValueError as exc:
        return LimitRule(limit=limit, window=None, problem=str(exc))
    return LimitRule(limit=limit, window=window)


def _split_name(name: str) -> tuple[str, str | None]:
    route, _, method = name.strip().partition(" ")
    return route, (method.strip().upper() or None)


class PolicyRegistry:
    def __init__(self, policies: Mapping[tuple[str, str | None], MethodPolicy] | None = None) -> None:
        self._policies: dict[tuple[str, str | None], MethodPolicy] = dict(policies or {})

    @classmethod
    def from_mapping(cls, declared: Mapping[str, Any], default_window: timedelta) -> "PolicyRegistry":
        """Build a registry from host declarations (dicts or ``PolicyConfig``)."""
        policies: dict[tuple[str, str | None], MethodPolicy] = {}
        for name, raw in declared.items():
            config = raw if isinstance(raw, PolicyConfig) else PolicyConfig.model_validate(raw)
            key_limit = method_limit = None
            if config.limits is not None:
                if config.limits.key is not None:
                    key_limit = build_limit_rule(config.limits.key, default_window)
                if config.limits.method is not None:
                    method_limit = build_limit_rule(config.limits.method, default_window)

            for scope, rule in (("key", key_limit), ("method", method_limit)):
                if rule is not None and rule.misconfigured:
                    logger.warning(
                        "Route %s declares a %s limit that will not be enforced: %s",
                        name, scope, rule.problem,
                    )
            policy = MethodPolicy(
                key_authentication=config.key_authentication,
                level=config.level,
                key_limit=key_limit,
                method_limit=method_limit,
            )
            if policy.has_limits and not policy.key_authentication:
                logger.warning(
                    "Route %s declares limits but does not require a key; "
                    "unauthenticated requests are never logged so these limits have no effect",
                    name,
                )
            policies[_split_name(name)] = policy
        return cls(policies)

    @classmethod
    def from_file(cls, path: str | Path, default_window: timedelta) -> "PolicyRegistry":
        with open(path, encoding="utf-8") as fh:
            declared = json.load(fh)
        if not isinstance(declared, dict):
            raise ValueError(f"Policy file {path} must contain a JSON object")
        return cls.from_mapping(declared, default_window)

    def lookup(self, route: str, http_method: str) -> MethodPolicy:
        """Return the policy for a route, falling back to the default policy."""
        method = http_method.upper()
        policy = self._policies.get((route, method))
        if policy is None:
            policy = self._policies.get((route, None), DEFAULT_POLICY)
        return policy

    def items(self) -> Iterator[tuple[tuple[str, str | None], MethodPolicy]]:
        return iter(self._policies.items())

    def __len__(self) -> int:
        return len(self._policies)
