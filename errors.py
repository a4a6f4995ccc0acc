"""
Error taxonomy shared by every service.

Services raise these; ``install_error_handlers`` renders them the same way
FastAPI renders ``HTTPException`` (``{"detail": ...}``).
"""
import traceback
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from logger import get_logger

logger = get_logger("errors")


class ShopError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(ShopError):
    status_code = 404


class Forbidden(ShopError):
    status_code = 403


class InvalidInput(ShopError):
    status_code = 400


class ServerFault(ShopError):
    status_code = 500


def validation_message(errors: List[Dict[str, Any]]) -> str:
    """First validation error as `field: message`, without the `body` prefix."""
    if not errors:
        return "Invalid input"
    err = errors[0]
    loc = [str(p) for p in err.get("loc", ()) if p != "body"]
    field = ".".join(loc)
    msg = err.get("msg", "Invalid input")
    return f"{field}: {msg}" if field else msg


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        detail = validation_message(exc.errors())
        logger.info("Rejected %s %s: %s", request.method, request.url.path, detail)
        return JSONResponse(status_code=400, content={"detail": detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Log unhandled exceptions server-side and return a generic 500."""
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method, request.url.path, exc, traceback.format_exc(),
        )
        return JSONResponse(status_code=500, content={"detail": "Server error"})
