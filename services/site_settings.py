"""
Runtime platform settings backed by the ``site_settings`` table.

Every known key has a code default; rows in the table override it. Values are
stored as strings and converted by the typed accessors below.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from email_validator import validate_email, EmailNotValidError
from sqlalchemy.orm import Session

from core.sanitize import clean_text
from models.setting import SiteSetting
from services.exceptions import ValidationFailed

logger = logging.getLogger(__name__)


SETTING_DEFAULTS: Dict[str, str] = {
    # platform
    "platform.name": "Paaniyo",
    "platform.tagline": "Pure water, delivered",
    "platform.supportEmail": "support@paaniyo.com",
    "platform.supportPhone": "+8801700000000",
    "platform.currency": "BDT",
    "platform.maintenanceMode": "false",
    # commission
    "commission.defaultRate": "10",
    "commission.minimumPayout": "1000",
    # shipping
    "shipping.defaultRate": "60",
    "shipping.freeShippingThreshold": "1000",
    "shipping.enableCOD": "true",
    "shipping.codFee": "20",
    # order
    "order.minOrderValue": "100",
    "order.maxOrderItems": "50",
    "order.autoCancelHours": "72",
    "order.vatRate": "15",
    # email
    "email.fromName": "Paaniyo",
    "email.fromEmail": "no-reply@paaniyo.com",
    "email.orderConfirmation": "true",
    "email.shippingUpdates": "true",
    # notifications
    "notifications.newOrderAlert": "true",
    "notifications.lowStockAlert": "true",
    "notifications.lowStockThreshold": "10",
    # security
    "security.maxLoginAttempts": "5",
    "security.lockoutMinutes": "15",
    "security.sessionTimeout": "60",
    # features
    "features.enableReviews": "true",
    "features.enableWishlist": "true",
    "features.enableSubscriptions": "true",
    "features.enableTracker": "true",
}

NUMERIC_KEYS = {
    "commission.defaultRate",
    "commission.minimumPayout",
    "shipping.defaultRate",
    "shipping.freeShippingThreshold",
    "shipping.codFee",
    "order.minOrderValue",
    "order.maxOrderItems",
    "order.autoCancelHours",
    "order.vatRate",
    "notifications.lowStockThreshold",
    "security.maxLoginAttempts",
    "security.lockoutMinutes",
    "security.sessionTimeout",
}
PERCENT_KEYS = {"commission.defaultRate", "order.vatRate"}
BOOLEAN_KEYS = {k for k, v in SETTING_DEFAULTS.items() if v in ("true", "false")}
EMAIL_KEYS = {"platform.supportEmail", "email.fromEmail"}

CATEGORIES = tuple(sorted({k.split(".", 1)[0] for k in SETTING_DEFAULTS}))


def category_of(key: str) -> str:
    return key.split(".", 1)[0]


def get_setting(db: Session, key: str) -> str:
    row = db.get(SiteSetting, key)
    if row is not None:
        return row.value
    if key not in SETTING_DEFAULTS:
        raise KeyError(key)
    return SETTING_DEFAULTS[key]


def get_decimal(db: Session, key: str) -> Decimal:
    try:
        return Decimal(get_setting(db, key))
    except InvalidOperation:
        logger.warning("Setting %s holds a non-numeric value, using default", key)
        return Decimal(SETTING_DEFAULTS[key])


def get_int(db: Session, key: str) -> int:
    return int(get_decimal(db, key))


def get_bool(db: Session, key: str) -> bool:
    return get_setting(db, key).lower() == "true"


def list_settings(db: Session, category: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """Settings grouped by category, stored values merged over defaults."""
    stored = {row.key: row for row in db.query(SiteSetting).all()}
    grouped: Dict[str, Dict[str, Any]] = {}
    for key, default in SETTING_DEFAULTS.items():
        cat = category_of(key)
        if category and cat != category:
            continue
        row = stored.get(key)
        grouped.setdefault(cat, {})[key] = {
            "value": row.value if row else default,
            "default": default,
            "is_default": row is None,
            "updated_at": row.updated_at if row else None,
        }
    return grouped


def validate_setting(key: str, value: Any) -> str:
    if key not in SETTING_DEFAULTS:
        raise ValidationFailed(f"Unknown setting: {key}")

    if isinstance(value, bool):
        value = "true" if value else "false"
    text = clean_text(str(value)) or ""

    if key in NUMERIC_KEYS:
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValidationFailed(f"{key} must be a number")
        if not number.is_finite() or number < 0:
            raise ValidationFailed(f"{key} must be a non-negative number")
        if key in PERCENT_KEYS and number > 100:
            raise ValidationFailed(f"{key} cannot exceed 100")
    elif key in BOOLEAN_KEYS:
        text = text.lower()
        if text not in ("true", "false"):
            raise ValidationFailed(f"{key} must be true or false")
    elif key in EMAIL_KEYS:
        try:
            validate_email(text, check_deliverability=False)
        except EmailNotValidError:
            raise ValidationFailed(f"{key} must be a valid email address")
    return text


def update_settings(db: Session, values: Dict[str, Any], updated_by: Optional[int] = None) -> list[str]:
    """Validate every value first, then upsert. Returns the updated keys."""
    cleaned = {key: validate_setting(key, value) for key, value in values.items()}
    now = datetime.utcnow()
    for key, value in cleaned.items():
        row = db.get(SiteSetting, key)
        if row is None:
            db.add(SiteSetting(key=key, value=value, category=category_of(key), updated_by=updated_by, updated_at=now))
        else:
            row.value = value
            row.updated_by = updated_by
            row.updated_at = now
    db.flush()
    logger.info("Settings updated by user %s: %s", updated_by, ", ".join(sorted(cleaned)))
    return sorted(cleaned)


def reset_settings(db: Session, keys: Optional[Iterable[str]] = None, category: Optional[str] = None) -> int:
    """Delete overrides by key list, by category, or all of them."""
    query = db.query(SiteSetting)
    if keys:
        keys = list(keys)
        unknown = [k for k in keys if k not in SETTING_DEFAULTS]
        if unknown:
            raise ValidationFailed(f"Unknown setting: {unknown[0]}")
        query = query.filter(SiteSetting.key.in_(keys))
    elif category:
        if category not in CATEGORIES:
            raise ValidationFailed(f"Unknown category: {category}")
        query = query.filter(SiteSetting.category == category)
    rows = query.all()
    for row in rows:
        db.delete(row)
    db.flush()
    count = len(rows)
    logger.info("Reset %s setting override(s)", count)
    return count
