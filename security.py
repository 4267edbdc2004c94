"""
Authentication helpers: password hashing, reset tokens, session login,
route guards and CSRF protection.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import USERS, get_db, to_object_id
from errors import AuthenticationRequired, PermissionDenied, ValidationFailed
from settings import Settings

ALGORITHM = "HS256"
RESET_PURPOSE = "password_reset"
CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "x-csrf-token"
CSRF_FORM_FIELD = "csrf_token"
SAFE_METHODS = ("GET", "HEAD", "OPTIONS")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def _fingerprint(password_hash: str, secret: str) -> str:
    # Changing the password changes the hash, which invalidates old reset tokens.
    return hmac.new(secret.encode(), password_hash.encode(), hashlib.sha256).hexdigest()[:16]


def create_reset_token(user: Dict[str, Any], settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.password_reset_minutes)
    claims = {
        "sub": str(user["_id"]),
        "purpose": RESET_PURPOSE,
        "pwd": _fingerprint(user.get("password_hash", ""), settings.session_secret),
        "exp": expire,
    }
    return jwt.encode(claims, settings.session_secret, algorithm=ALGORITHM)


def read_reset_token(db: Database, token: str, settings: Settings) -> Dict[str, Any]:
    """Return the user a reset token was issued for, or raise ValidationFailed."""
    invalid = ValidationFailed("Password reset link is invalid or has expired", redirect_to="/auth/forgot-password")
    try:
        claims = jwt.decode(token, settings.session_secret, algorithms=[ALGORITHM])
    except JWTError:
        raise invalid
    if claims.get("purpose") != RESET_PURPOSE:
        raise invalid
    oid = to_object_id(claims.get("sub"))
    user = db[USERS].find_one({"_id": oid}) if oid else None
    if not user or claims.get("pwd") != _fingerprint(user.get("password_hash", ""), settings.session_secret):
        raise invalid
    return user


def login_session(request: Request, user: Dict[str, Any]) -> None:
    cart = request.session.get("cart")
    request.session.clear()
    # The cart survives logging in; everything else starts fresh.
    if cart:
        request.session["cart"] = cart
    request.session["user_id"] = str(user["_id"])
    request.session["user_name"] = user.get("name", "")
    request.session["user_role"] = user.get("role", "customer")
    request.session[CSRF_SESSION_KEY] = secrets.token_urlsafe(32)


def logout_session(request: Request) -> None:
    request.session.clear()


def current_user(request: Request, db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    oid = to_object_id(request.session.get("user_id"))
    if not oid:
        return None
    user = db[USERS].find_one({"_id": oid})
    if not user:
        request.session.pop("user_id", None)
    return user


def require_user(user: Optional[Dict[str, Any]] = Depends(current_user)) -> Dict[str, Any]:
    if not user:
        raise AuthenticationRequired()
    return user


def require_admin(request: Request, user: Optional[Dict[str, Any]] = Depends(current_user)) -> Dict[str, Any]:
    if not user or user.get("role") != "admin":
        raise PermissionDenied()
    return user


def get_csrf_token(request: Request) -> str:
    token = request.session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        request.session[CSRF_SESSION_KEY] = token
    return token


async def csrf_protect(request: Request) -> None:
    """App-wide dependency: state-changing requests must echo the session's CSRF token."""
    if request.method in SAFE_METHODS:
        return
    expected = request.session.get(CSRF_SESSION_KEY)
    supplied = request.headers.get(CSRF_HEADER)
    if not supplied:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            form = await request.form()
            supplied = form.get(CSRF_FORM_FIELD)
    if not expected or not supplied or not secrets.compare_digest(str(expected), str(supplied)):
        raise PermissionDenied("Invalid or missing CSRF token", redirect_to=request.headers.get("referer") or "/")
