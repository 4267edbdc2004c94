"""
Page rendering helpers: templates, flash messages, redirects.
"""
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from security import get_csrf_token
from settings import BASE_DIR

FLASH_KEY = "_flashes"

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


def _money(value: Any) -> str:
    try:
        return f"₹{float(value):,.2f}"
    except (TypeError, ValueError):
        return "₹0.00"


templates.env.filters["money"] = _money


def _has_session(request: Request) -> bool:
    return "session" in request.scope


def flash(request: Request, category: str, message: str) -> None:
    if not _has_session(request):
        return
    flashes = list(request.session.get(FLASH_KEY, []))
    flashes.append([category, message])
    request.session[FLASH_KEY] = flashes


def pop_flashes(request: Request) -> List[List[str]]:
    if not _has_session(request):
        return []
    return request.session.pop(FLASH_KEY, [])


# Endpoints answered with JSON even when the client sends no JSON hints.
JSON_PATH_PREFIXES = (
    "/csrf-token",
    "/cart/add",
    "/cart/update/",
    "/cart/remove/",
    "/checkout/place-order",
    "/checkout/verify-payment",
)


def wants_json(request: Request) -> bool:
    """API paths, XHR and JSON-speaking clients get JSON errors instead of pages."""
    path = request.url.path
    if "/api/" in path or path.startswith(JSON_PATH_PREFIXES):
        return True
    if request.headers.get("x-requested-with", "").lower() == "xmlhttprequest":
        return True
    if "application/json" in request.headers.get("content-type", ""):
        return True
    accept = request.headers.get("accept", "")
    return "application/json" in accept and "text/html" not in accept


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def render(request: Request, template: str, context: Optional[Dict[str, Any]] = None, status_code: int = 200):
    ctx: Dict[str, Any] = {
        "flashes": pop_flashes(request),
        "current_user": None,
        "is_admin": False,
        "csrf_token": "",
        "cart_count": 0,
    }
    if _has_session(request):
        session = request.session
        if session.get("user_id"):
            ctx["current_user"] = {"id": session["user_id"], "name": session.get("user_name", "")}
            ctx["is_admin"] = session.get("user_role") == "admin"
        ctx["csrf_token"] = get_csrf_token(request)
        ctx["cart_count"] = sum(int(line.get("quantity", 0)) for line in session.get("cart") or [])
    ctx.update(context or {})
    return templates.TemplateResponse(request, template, ctx, status_code=status_code)
