from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, get_db, utcnow
from dependencies import get_mailer, get_settings
from errors import ValidationFailed
from logger import get_logger
from mailer import Mailer
from schemas import User as UserSchema
from security import (
    create_reset_token,
    hash_password,
    login_session,
    logout_session,
    read_reset_token,
    verify_password,
)
from settings import Settings
from web import flash, redirect, render

router = APIRouter(prefix="/auth")
logger = get_logger("auth")

MIN_PASSWORD_LENGTH = 6


def _check_new_password(password: str, confirm_password: str, redirect_to: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", redirect_to=redirect_to)
    if password != confirm_password:
        raise ValidationFailed("Passwords do not match", redirect_to=redirect_to)


def _safe_next(next_url: Optional[str]) -> Optional[str]:
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return None


@router.get("/login")
def login_page(request: Request, next: Optional[str] = None):
    return render(request, "auth/login.html", {"next": _safe_next(next) or ""})


@router.post("/login")
def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: Optional[str] = Form(None),
    db: Database = Depends(get_db),
):
    user = db[USERS].find_one({"email": email.strip().lower()})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise ValidationFailed("Invalid email or password", redirect_to="/auth/login")
    login_session(request, user)
    flash(request, "success", f"Welcome back, {user.get('name', '')}")
    default = "/admin" if user.get("role") == "admin" else "/"
    return redirect(_safe_next(next) or default)


@router.get("/register")
def register_page(request: Request):
    return render(request, "auth/register.html")


@router.post("/register")
def register(
    request: Request,
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(..., alias="confirmPassword"),
    db: Database = Depends(get_db),
):
    _check_new_password(password, confirm_password, "/auth/register")
    try:
        user_model = UserSchema(
            name=name.strip(),
            email=email.strip().lower(),
            password_hash=hash_password(password),
        )
    except ValidationError:
        raise ValidationFailed("Please enter a valid name and email", redirect_to="/auth/register")

    if db[USERS].find_one({"email": user_model.email}):
        raise ValidationFailed("Email already registered", redirect_to="/auth/register")
    try:
        user_id = create_document(db, USERS, user_model)
    except DuplicateKeyError:
        raise ValidationFailed("Email already registered", redirect_to="/auth/register")

    logger.info("New customer registered: %s", user_id)
    login_session(request, {**user_model.model_dump(), "_id": user_id})
    flash(request, "success", "Your account has been created")
    return redirect("/")


@router.post("/logout")
def logout(request: Request):
    logout_session(request)
    flash(request, "success", "You are logged out")
    return redirect("/auth/login")


@router.get("/forgot-password")
def forgot_password_page(request: Request):
    return render(request, "auth/forgot_password.html")


@router.post("/forgot-password")
def forgot_password(
    request: Request,
    email: str = Form(...),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_mailer),
):
    user = db[USERS].find_one({"email": email.strip().lower()})
    if user:
        token = create_reset_token(user, settings)
        mailer.send_password_reset(user["email"], token, user.get("name"))
    # Same answer whether or not the address is registered.
    flash(request, "success", "If that email is registered, a reset link is on its way")
    return redirect("/auth/login")


@router.get("/reset-password/{token}")
def reset_password_page(
    request: Request,
    token: str,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    read_reset_token(db, token, settings)
    return render(request, "auth/reset_password.html", {"token": token})


@router.post("/reset-password/{token}")
def reset_password(
    request: Request,
    token: str,
    password: str = Form(...),
    confirm_password: str = Form(..., alias="confirmPassword"),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = read_reset_token(db, token, settings)
    _check_new_password(password, confirm_password, f"/auth/reset-password/{token}")
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(password), "updated_at": utcnow()}},
    )
    logger.info("Password reset for user %s", user["_id"])
    flash(request, "success", "Your password has been updated, please log in")
    return redirect("/auth/login")
