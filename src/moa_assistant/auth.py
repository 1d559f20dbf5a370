"""Account form validation.

There is no account backend: a form that validates produces the ``User``
the session is signed in as. Passwords are checked and then discarded.
"""

from __future__ import annotations

from uuid import uuid4

from moa_assistant.errors import ValidationFailure
from moa_assistant.session.models import User

AUTH_METHODS = ("email", "phone")
MIN_PASSWORD_LENGTH = 6


def _new_user_id() -> str:
    return f"user-{uuid4().hex[:9]}"


def _check_method(method: str) -> str:
    method = (method or "").strip().lower()
    if method not in AUTH_METHODS:
        raise ValidationFailure(f"Unsupported sign-in method: {method!r}", field="method")
    return method


def _check_new_password(password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise ValidationFailure("Passwords do not match", field="confirm_password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )


def sign_in(identifier: str, password: str, *, method: str = "email") -> User:
    method = _check_method(method)
    identifier = (identifier or "").strip()
    if not identifier or not password:
        raise ValidationFailure("Please fill in all fields")
    return User(
        id=_new_user_id(),
        name=identifier.split("@")[0] or "User",
        auth_method=method,
        email=identifier if method == "email" else None,
        phone=identifier if method == "phone" else None,
    )


def sign_up(name: str, identifier: str, password: str, confirm_password: str, *, method: str = "email") -> User:
    method = _check_method(method)
    name = (name or "").strip()
    identifier = (identifier or "").strip()
    if not identifier or not password or not confirm_password or not name:
        raise ValidationFailure("Please fill in all fields")
    _check_new_password(password, confirm_password)
    return User(
        id=_new_user_id(),
        name=name,
        auth_method=method,
        email=identifier if method == "email" else None,
        phone=identifier if method == "phone" else None,
    )


def verify_reset_identifier(identifier: str, *, method: str = "email") -> str:
    method = _check_method(method)
    if not (identifier or "").strip():
        label = "email" if method == "email" else "phone number"
        raise ValidationFailure(f"Please enter your {label}", field="identifier")
    return "Account verified. Please create a new password."


def reset_password(password: str, confirm_password: str) -> str:
    if not password or not confirm_password:
        raise ValidationFailure("Please enter your new password", field="password")
    _check_new_password(password, confirm_password)
    return "Password successfully updated! You can now sign in."


def google_sign_in() -> User:
    return User(id="google-user-123", name="Google User", auth_method="google", email="user@gmail.com")
