"""
Error kinds raised by the storefront and their translation into responses.

Handlers are registered once on the app: JSON callers receive
``{"error": message}`` with the kind's status code, page callers receive a
flash message and a redirect (or an error page).
"""
import traceback
from typing import Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logger import get_logger

logger = get_logger("errors")


class StoreError(Exception):
    """Base class for errors that map onto a client response."""

    status_code = 500
    public_message = "Server Error"

    def __init__(self, message: Optional[str] = None, redirect_to: Optional[str] = None):
        self.message = message or self.public_message
        self.redirect_to = redirect_to
        super().__init__(self.message)


class ConfigurationError(StoreError):
    public_message = "Invalid configuration"


class ValidationFailed(StoreError):
    status_code = 400
    public_message = "Invalid request"


class NotFound(StoreError):
    status_code = 404
    public_message = "Not found"


class AuthenticationRequired(StoreError):
    status_code = 401
    public_message = "Please log in to access this page"


class PermissionDenied(StoreError):
    status_code = 403
    public_message = "You are not authorized to view this page"


class UpstreamError(StoreError):
    status_code = 502
    public_message = "An external service is unavailable, please try again"


class PaymentSignatureError(StoreError):
    status_code = 400
    public_message = "Invalid payment signature"


class UnresolvedCartItems(ValidationFailed):
    public_message = "Some items in your cart are no longer available"

    def __init__(self, product_ids: Iterable[str], redirect_to: Optional[str] = "/cart"):
        self.product_ids = list(product_ids)
        super().__init__(redirect_to=redirect_to)


def register_exception_handlers(app: FastAPI) -> None:
    from web import flash, redirect, render, wants_json

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if isinstance(exc, UpstreamError):
            logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)

        if wants_json(request):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

        if isinstance(exc, NotFound):
            return render(request, "error/404.html", status_code=404)
        if isinstance(exc, AuthenticationRequired):
            flash(request, "error", exc.message)
            return redirect(exc.redirect_to or "/auth/login")
        if isinstance(exc, PermissionDenied):
            flash(request, "error", exc.message)
            return redirect(exc.redirect_to or "/")

        flash(request, "error", exc.message)
        return redirect(exc.redirect_to or request.headers.get("referer") or "/")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
        message = "Missing or invalid fields: " + ", ".join(f for f in fields if f) if fields else "Invalid request"
        return await store_error_handler(request, ValidationFailed(message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if wants_json(request):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        if exc.status_code == 404:
            return render(request, "error/404.html", status_code=404)
        return render(request, "error/500.html", status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s\n%s",
                     request.method, request.url.path, exc, traceback.format_exc())
        if wants_json(request):
            return JSONResponse(status_code=500, content={"error": "Server Error"})
        return render(request, "error/500.html", status_code=500)
