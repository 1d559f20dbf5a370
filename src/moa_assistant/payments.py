from __future__ import annotations

import re
from collections.abc import Callable

from loguru import logger

from moa_assistant.constants import PREMIUM_PRICE_KSH, PREMIUM_VALIDITY_MS
from moa_assistant.errors import ValidationFailure
from moa_assistant.session.models import PaymentRecord, UserState, now_ms

PAYMENT_METHODS = ("mpesa", "airtel", "card", "paypal", "stripe")
MOBILE_MONEY_METHODS = ("mpesa", "airtel")

_PHONE_RE = re.compile(r"^\d{9}$")


def validate_payment(method: str, phone: str | None = None) -> str | None:
    """Check a checkout form. Returns the normalised phone number for mobile money."""
    method = (method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationFailure(
            f"Unknown payment method {method!r}. Choose one of: {', '.join(PAYMENT_METHODS)}",
            field="method",
        )
    if method not in MOBILE_MONEY_METHODS:
        return None

    digits = re.sub(r"[\s-]", "", phone or "")
    if not _PHONE_RE.match(digits):
        raise ValidationFailure("Enter the 9-digit phone number after +254 (e.g. 712345678)", field="phone")
    return digits


def status_messages(method: str, phone: str | None = None) -> list[str]:
    if method in MOBILE_MONEY_METHODS:
        return [
            "Initiating STK Push...",
            f"Sending prompt to {phone}...",
            "Please enter your PIN on your phone to complete transaction.",
        ]
    if method == "paypal":
        return ["Redirecting to PayPal secure checkout...", "Verifying merchant (Pochi la Biashara)..."]
    return ["Processing card transaction...", "Contacting gateway..."]


def complete_payment(
    user_state: UserState,
    method: str,
    *,
    phone: str | None = None,
    clock: Callable[[], int] = now_ms,
) -> PaymentRecord:
    """Validate the checkout and unlock premium on ``user_state``."""
    validate_payment(method, phone)
    method = method.strip().lower()

    paid_at = clock()
    record = PaymentRecord(id=f"pay_{paid_at}", date=paid_at, amount=PREMIUM_PRICE_KSH, method=method)
    user_state.payment_history = [*user_state.payment_history, record]
    user_state.is_premium = True
    user_state.has_paid = True
    user_state.premium_expiry_date = paid_at + PREMIUM_VALIDITY_MS
    logger.info(f"Premium unlocked via {method}, expires at {user_state.premium_expiry_date}")
    return record
