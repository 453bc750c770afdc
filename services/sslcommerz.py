import hashlib
import hmac
import secrets
from typing import Any, Dict, Mapping

import requests

from core.config import settings


SANDBOX_BASE_URL = "https://sandbox.sslcommerz.com"
LIVE_BASE_URL = "https://securepay.sslcommerz.com"

VALID_STATUSES = ("VALID", "VALIDATED")


def _base_url() -> str:
    return LIVE_BASE_URL if settings.SSLCOMMERZ_IS_LIVE else SANDBOX_BASE_URL


def generate_tran_id(order_id: int) -> str:
    return f"PN{order_id}-{secrets.token_hex(4)}"


def _callback_urls() -> Dict[str, str]:
    base = settings.API_BASE_URL.rstrip("/")
    return {
        "success_url": f"{base}/payments/success",
        "fail_url": f"{base}/payments/fail",
        "cancel_url": f"{base}/payments/cancel",
        "ipn_url": f"{base}/payments/ipn",
    }


def init_session(tran_id: str, amount: float, customer: Dict[str, str], product_name: str, order_id: int) -> Dict[str, Any]:
    """Open a hosted checkout session. The response carries GatewayPageURL and sessionkey."""
    payload = {
        "store_id": settings.SSLCOMMERZ_STORE_ID,
        "store_passwd": settings.SSLCOMMERZ_STORE_PASSWORD,
        "total_amount": f"{amount:.2f}",
        "currency": "BDT",
        "tran_id": tran_id,
        "cus_name": customer.get("name", ""),
        "cus_email": customer.get("email", ""),
        "cus_phone": customer.get("phone", ""),
        "cus_add1": customer.get("address", ""),
        "cus_city": customer.get("city", ""),
        "cus_postcode": customer.get("postcode") or "1000",
        "cus_country": "Bangladesh",
        "shipping_method": "Courier",
        "ship_name": customer.get("name", ""),
        "ship_add1": customer.get("address", ""),
        "ship_city": customer.get("city", ""),
        "ship_postcode": customer.get("postcode") or "1000",
        "ship_country": "Bangladesh",
        "product_name": product_name[:255] or "Water",
        "product_category": "Beverages",
        "product_profile": "physical-goods",
        "value_a": str(order_id),
        **_callback_urls(),
    }
    resp = requests.post(f"{_base_url()}/gwprocess/v4/api.php", data=payload, timeout=20)
    resp.raise_for_status()
    return resp.json()


def validate_transaction(val_id: str) -> Dict[str, Any]:
    params = {
        "val_id": val_id,
        "store_id": settings.SSLCOMMERZ_STORE_ID,
        "store_passwd": settings.SSLCOMMERZ_STORE_PASSWORD,
        "format": "json",
    }
    resp = requests.get(f"{_base_url()}/validator/api/validationserverAPI.php", params=params, timeout=20)
    resp.raise_for_status()
    return resp.json()


def is_validated(validation: Mapping[str, Any]) -> bool:
    return validation.get("status") in VALID_STATUSES


def compute_signature(payload: Mapping[str, str], store_password: str) -> str:
    keys = [k for k in payload.get("verify_key", "").split(",") if k]
    fields = {k: payload.get(k, "") for k in keys}
    fields["store_passwd"] = hashlib.md5(store_password.encode()).hexdigest()
    hash_string = "&".join(f"{k}={fields[k]}" for k in sorted(fields))
    return hashlib.md5(hash_string.encode()).hexdigest()


def verify_ipn_signature(payload: Mapping[str, str]) -> bool:
    if not payload.get("verify_sign") or not payload.get("verify_key"):
        return False
    expected = compute_signature(payload, settings.SSLCOMMERZ_STORE_PASSWORD)
    return hmac.compare_digest(expected, payload["verify_sign"])
