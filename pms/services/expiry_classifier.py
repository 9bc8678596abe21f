"""Expiry and discount decisions for stock batches.

Everything here is pure: callers supply "today" and persist whatever they
derive. Both dates are reduced to calendar dates in one timezone before they
are compared, so the time of day never shifts a batch into another tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal

from pms.models import AlertType, BatchStatus

EXPIRING_SOON_DAYS = 3
ALERT_HORIZON_DAYS = 2
DEFAULT_COST_RATIO = Decimal('0.60')

# days until expiry -> suggested discount percentage; anything else gets 0.
DISCOUNT_TIERS: dict[int, int] = {0: 40, 1: 25, 2: 10}

CENT = Decimal('0.01')


@dataclass(frozen=True)
class ExpiryClassification:
    days_until_expiry: int
    status: BatchStatus
    alert_type: AlertType | None
    discount_percentage: int


def to_local_date(value: date | datetime, tz: tzinfo | None = None) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None and tz is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def days_until_expiry(today: date | datetime, expiry_date: date | datetime, tz: tzinfo | None = None) -> int:
    return (to_local_date(expiry_date, tz) - to_local_date(today, tz)).days


def batch_status_for(days: int) -> BatchStatus:
    if days < 0:
        return BatchStatus.EXPIRED
    if days <= EXPIRING_SOON_DAYS:
        return BatchStatus.EXPIRING_SOON
    return BatchStatus.ACTIVE


def alert_type_for(days: int) -> AlertType | None:
    if days < 0:
        return AlertType.EXPIRED
    if days == 0:
        return AlertType.EXPIRING_TODAY
    if days == 1:
        return AlertType.EXPIRING_1_DAY
    if days == 2:
        return AlertType.EXPIRING_2_DAYS
    return None


def discount_tier_for(days: int) -> int:
    if days < 0:
        return 0
    return DISCOUNT_TIERS.get(days, 0)


def classify(today: date | datetime, expiry_date: date | datetime, tz: tzinfo | None = None) -> ExpiryClassification:
    days = days_until_expiry(today, expiry_date, tz)
    return ExpiryClassification(
        days_until_expiry=days,
        status=batch_status_for(days),
        alert_type=alert_type_for(days),
        discount_percentage=discount_tier_for(days),
    )


def estimated_revenue(quantity: int, base_price: Decimal | int | str, discount_percentage: int) -> Decimal:
    if quantity < 0:
        raise ValueError('Quantity cannot be negative')
    if discount_percentage < 0 or discount_percentage > 100:
        raise ValueError('Discount percentage must be between 0 and 100')
    price = Decimal(str(base_price))
    discounted = price * (Decimal('1') - Decimal(discount_percentage) / Decimal('100'))
    return (discounted * quantity).quantize(CENT, rounding=ROUND_HALF_UP)


def profit_margin(
    base_price: Decimal | int | str,
    discount_percentage: int,
    cost_ratio: Decimal = DEFAULT_COST_RATIO,
) -> Decimal:
    price = Decimal(str(base_price))
    selling_price = price * (Decimal('1') - Decimal(discount_percentage) / Decimal('100'))
    if selling_price <= 0:
        raise ValueError('Selling price must be greater than zero')
    profit = selling_price - price * cost_ratio
    return (profit / selling_price * Decimal('100')).quantize(CENT, rounding=ROUND_HALF_UP)


def alert_message(alert_type: AlertType, product_name: str, sku: str, expiry_date: date) -> str:
    expiry = expiry_date.isoformat()
    if alert_type == AlertType.EXPIRED:
        return f'{product_name} ({sku}) has expired on {expiry}'
    if alert_type == AlertType.EXPIRING_TODAY:
        return f'{product_name} ({sku}) expires today ({expiry})'
    if alert_type == AlertType.EXPIRING_1_DAY:
        return f'{product_name} ({sku}) expires in 1 day ({expiry})'
    return f'{product_name} ({sku}) expires in 2 days ({expiry})'


def urgency_for(days: int) -> tuple[str, str]:
    if days < 0:
        return 'expired', 'EXPIRED'
    if days == 0:
        return 'today', 'EXPIRES TODAY'
    if days == 1:
        return 'soon', '1 DAY LEFT'
    return 'soon', f'{days} DAYS LEFT'
