"""
Stripe payment intents over the REST API.
"""
import os
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com")
REQUEST_TIMEOUT = 15


class PaymentGatewayError(Exception):
    pass


def _auth():
    if not STRIPE_SECRET_KEY:
        raise PaymentGatewayError("Stripe configuration is incomplete")
    return (STRIPE_SECRET_KEY, "")


def _handle(response: requests.Response) -> Dict[str, Any]:
    if response.status_code != 200:
        try:
            message = response.json().get("error", {}).get("message")
        except ValueError:
            message = None
        logger.error("Stripe request failed (%s): %s", response.status_code, response.text[:200])
        raise PaymentGatewayError(message or f"Stripe returned HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        logger.error("Stripe sent a non-JSON reply: %s", response.text[:200])
        raise PaymentGatewayError("Payment provider returned an unreadable response") from exc


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def create_payment_intent(amount: float, currency: str = "usd",
                          metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Create a payment intent for `amount` given in major units (dollars)."""
    payload = {
        "amount": to_minor_units(amount),
        "currency": currency.lower(),
        "automatic_payment_methods[enabled]": "true",
    }
    for key, value in (metadata or {}).items():
        payload[f"metadata[{key}]"] = str(value)

    try:
        response = requests.post(f"{STRIPE_API_BASE}/v1/payment_intents", data=payload,
                                 auth=_auth(), timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        logger.error("Stripe create intent error: %s", exc)
        raise PaymentGatewayError("Failed to reach payment provider") from exc
    intent = _handle(response)
    logger.info("Created payment intent %s for %s %s", intent.get("id"), payload["amount"], payload["currency"])
    return intent


def retrieve_payment_intent(payment_intent_id: str) -> Dict[str, Any]:
    try:
        response = requests.get(f"{STRIPE_API_BASE}/v1/payment_intents/{quote(payment_intent_id, safe='')}",
                                auth=_auth(), timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        logger.error("Stripe retrieve intent error: %s", exc)
        raise PaymentGatewayError("Failed to reach payment provider") from exc
    return _handle(response)
