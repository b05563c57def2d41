"""Error responses for guard rejections."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from apiguard.errors import GuardError


def error_body(exc: GuardError) -> dict:
    return {
        "error": {
            "code": exc.code,
            "http_code": exc.http_status,
            "message": exc.message,
        }
    }


async def guard_error_handler(request: Request, exc: GuardError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=error_body(exc))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GuardError, guard_error_handler)
