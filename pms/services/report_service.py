from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pms.config import settings
from pms.models import BatchStatus, Item, StockBatch, WasteLog

SUMMARY_WASTE_WINDOW_DAYS = 30
ZERO = Decimal('0.00')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _percentage(part: int, whole: int) -> Decimal:
    if whole <= 0:
        return Decimal('0.0')
    return (Decimal(part) / Decimal(whole) * Decimal('100')).quantize(Decimal('0.1'))


def _bucket_rows(buckets: dict, total_count: int, key_name: str) -> list[dict]:
    return [
        {
            key_name: key,
            'count': bucket['count'],
            'quantity': bucket['quantity'],
            'loss': bucket['loss'],
            'percentage': _percentage(bucket['count'], total_count),
        }
        for key, bucket in buckets.items()
    ]


def waste_report(db: Session, *, start_date: date, end_date: date, tz: tzinfo | None = None) -> dict:
    if end_date < start_date:
        raise ValueError('End date must be on or after start date')
    tz = tz or settings.tz
    window_start = datetime.combine(start_date, time.min, tzinfo=tz).astimezone(timezone.utc)
    window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)

    rows = db.execute(
        select(WasteLog, Item, StockBatch.expiry_date)
        .join(Item, Item.id == WasteLog.item_id)
        .outerjoin(StockBatch, StockBatch.id == WasteLog.batch_id)
        .where(WasteLog.created_at >= window_start, WasteLog.created_at < window_end)
        .order_by(WasteLog.created_at.desc(), WasteLog.id.desc())
    ).all()

    def _empty() -> dict:
        return {'count': 0, 'quantity': 0, 'loss': ZERO}

    by_reason: dict[str, dict] = defaultdict(_empty)
    by_category: dict[str, dict] = defaultdict(_empty)
    by_day: dict[str, dict] = defaultdict(_empty)
    detailed = []
    total_quantity = 0
    total_loss = ZERO

    for waste, item, expiry_date in rows:
        loss = Decimal(str(waste.estimated_loss))
        reason = waste.reason.value if waste.reason else 'OTHER'
        category = item.category or 'Uncategorized'
        created_at = waste.created_at if waste.created_at.tzinfo else waste.created_at.replace(tzinfo=timezone.utc)
        day = created_at.astimezone(tz).date().isoformat()

        total_quantity += waste.quantity
        total_loss += loss
        for bucket in (by_reason[reason], by_category[category], by_day[day]):
            bucket['count'] += 1
            bucket['quantity'] += waste.quantity
            bucket['loss'] += loss

        detailed.append(
            {
                'id': waste.id,
                'date': waste.created_at,
                'sku': item.sku,
                'name': item.name,
                'category': category,
                'quantity': waste.quantity,
                'reason': reason,
                'loss': loss,
                'notes': waste.notes,
                'batch_id': waste.batch_id,
                'expiry_date': expiry_date,
            }
        )

    total_items = len(detailed)
    trend = [
        {'date': day, 'count': bucket['count'], 'quantity': bucket['quantity'], 'loss': bucket['loss']}
        for day, bucket in sorted(by_day.items())
    ]
    return {
        'date_range': {'start_date': start_date, 'end_date': end_date},
        'summary': {
            'total_items_wasted': total_items,
            'total_quantity': total_quantity,
            'total_estimated_loss': total_loss.quantize(Decimal('0.01')),
        },
        'breakdowns': {
            'by_reason': _bucket_rows(by_reason, total_items, 'reason'),
            'by_category': _bucket_rows(by_category, total_items, 'category'),
            'trend': trend,
        },
        'detailed_items': detailed,
    }


def summary_report(db: Session, *, now: datetime | None = None) -> dict:
    now = (now or _now()).astimezone(timezone.utc)

    inventory_value = db.execute(
        select(func.coalesce(func.sum(StockBatch.quantity * Item.base_price), 0))
        .join(Item, Item.id == StockBatch.item_id)
        .where(StockBatch.quantity > 0, StockBatch.status != BatchStatus.EXPIRED)
    ).scalar_one()

    waste_value = db.execute(
        select(func.coalesce(func.sum(WasteLog.estimated_loss), 0)).where(
            WasteLog.created_at >= now - timedelta(days=SUMMARY_WASTE_WINDOW_DAYS)
        )
    ).scalar_one()

    status_counts = {status.value: 0 for status in BatchStatus}
    for status, count in db.execute(
        select(StockBatch.status, func.count(StockBatch.id)).group_by(StockBatch.status)
    ).all():
        status_counts[BatchStatus(status).value] = count

    return {
        'total_inventory_value': Decimal(str(inventory_value)).quantize(Decimal('0.01')),
        'waste_value_last_30_days': Decimal(str(waste_value)).quantize(Decimal('0.01')),
        'batches_by_status': status_counts,
        'generated_at': now,
    }
