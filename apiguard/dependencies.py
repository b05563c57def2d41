"""FastAPI binding: turn a Starlette request into a guard check."""
from typing import Any
from urllib.parse import parse_qsl

from fastapi import Request

from apiguard.engine import GuardEngine, GuardRequest
from apiguard.models import ApiKey


def _client_ip(request: Request) -> str:
    """Extract the client IP from X-Forwarded-For (set by reverse proxy).

    The guard MUST sit behind a proxy that overwrites X-Forwarded-For,
    otherwise callers can choose the address recorded in the ledger.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _add(params: dict[str, Any], name: str, value: Any) -> None:
    if name not in params:
        params[name] = value
    elif isinstance(params[name], list):
        params[name].append(value)
    else:
        params[name] = [params[name], value]


async def _request_params(request: Request) -> dict[str, Any]:
    """Query parameters merged with JSON-object or urlencoded body parameters."""
    params: dict[str, Any] = {}
    for name, value in request.query_params.multi_items():
        _add(params, name, value)

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            params.update(body)
    elif content_type.startswith("application/x-www-form-urlencoded"):
        try:
            raw = (await request.body()).decode("utf-8", errors="replace")
            pairs = parse_qsl(raw, keep_blank_values=True)
        except RuntimeError:
            # Stream already consumed by FastAPI's own form parsing; reuse it.
            pairs = (await request.form()).multi_items()
        for name, value in pairs:
            _add(params, name, value)
    return params


def parse_includes(value: Any) -> list[str]:
    """Split a relation ``include`` parameter ("author,comments") into names."""
    if not value:
        return []
    parts = value if isinstance(value, list) else [value]
    names: list[str] = []
    for part in parts:
        names.extend(p.strip() for p in str(part).split(",") if p.strip())
    return names


async def require_api_key(request: Request) -> ApiKey | None:
    """FastAPI dependency — raises a GuardError unless the guard admits the request.

    The resolved key (``None`` on routes without key authentication) and the
    parsed relation includes are left on ``request.state``.
    """
    engine: GuardEngine = request.app.state.api_guard
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or getattr(request.scope.get("endpoint"), "__name__", None)
    params = await _request_params(request)
    request.state.includes = parse_includes(params.get(engine.settings.include_parameter_name))

    api_key = await engine.check(
        GuardRequest(
            http_method=request.method,
            route=route_name,
            headers=request.headers,
            params=params,
            client_ip=_client_ip(request),
        )
    )
    request.state.api_key = api_key
    return api_key
