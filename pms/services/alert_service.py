from __future__ import annotations

from datetime import datetime, time, timezone, tzinfo

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pms.config import settings
from pms.models import Alert, Item, StockBatch

EXPIRING_HOURS_HIGH = 24
EXPIRING_HOURS_MEDIUM = 30
EXPIRING_HOURS_LOW = 48
TOP_CRITICAL_LIMIT = 5


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def list_alerts(db: Session, *, unread_only: bool = False, limit: int = 100) -> list[dict]:
    if limit < 1 or limit > 500:
        raise ValueError('Limit must be between 1 and 500')

    query = (
        select(Alert, StockBatch, Item)
        .join(StockBatch, StockBatch.id == Alert.batch_id)
        .join(Item, Item.id == StockBatch.item_id)
        .order_by(Alert.created_at.desc(), Alert.id.desc())
        .limit(limit)
    )
    if unread_only:
        query = query.where(Alert.is_read.is_(False))

    return [
        {
            'id': alert.id,
            'batch_id': alert.batch_id,
            'alert_type': alert.alert_type,
            'message': alert.message,
            'is_read': alert.is_read,
            'created_at': alert.created_at,
            'sku': item.sku,
            'name': item.name,
            'expiry_date': batch.expiry_date,
            'quantity': batch.quantity,
        }
        for alert, batch, item in db.execute(query).all()
    ]


def mark_alert_read(db: Session, *, alert_id: int) -> Alert:
    alert = db.get(Alert, alert_id)
    if not alert:
        raise LookupError('Alert not found')
    alert.is_read = True
    db.flush()
    return alert


def mark_all_alerts_read(db: Session) -> int:
    result = db.execute(update(Alert).where(Alert.is_read.is_(False)).values(is_read=True))
    return result.rowcount or 0


def expiry_summary(db: Session, *, now: datetime | None = None, tz: tzinfo | None = None) -> dict:
    """Bucket in-stock batches by hours left until midnight of their expiry date."""
    now = (now or _now()).astimezone(timezone.utc)
    tz = tz or settings.tz

    rows = db.execute(
        select(StockBatch, Item)
        .join(Item, Item.id == StockBatch.item_id)
        .where(StockBatch.quantity > 0)
        .order_by(StockBatch.expiry_date.asc(), StockBatch.id.asc())
    ).all()

    buckets: dict[str, list[dict]] = {'expired': [], 'high': [], 'medium': [], 'low': []}
    for batch, item in rows:
        expires_at = datetime.combine(batch.expiry_date, time.min, tzinfo=tz)
        hours_left = (expires_at - now).total_seconds() / 3600
        entry = {
            'batch_id': batch.id,
            'sku': item.sku,
            'name': item.name,
            'quantity': batch.quantity,
            'expiry_date': batch.expiry_date,
            'hours_left': round(hours_left, 1),
        }
        if hours_left < 0:
            buckets['expired'].append(entry)
        elif hours_left <= EXPIRING_HOURS_HIGH:
            buckets['high'].append(entry)
        elif hours_left <= EXPIRING_HOURS_MEDIUM:
            buckets['medium'].append(entry)
        elif hours_left <= EXPIRING_HOURS_LOW:
            buckets['low'].append(entry)

    flagged = buckets['expired'] + buckets['high'] + buckets['medium'] + buckets['low']
    top_critical = sorted(flagged, key=lambda entry: (entry['expiry_date'], entry['batch_id']))[:TOP_CRITICAL_LIMIT]
    counts = {name: len(entries) for name, entries in buckets.items()}
    counts['total'] = len(flagged)
    return {'counts': counts, 'top_critical': top_critical, 'timestamp': now}
