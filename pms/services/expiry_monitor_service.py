from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import date, datetime, time as dt_time, timedelta, timezone, tzinfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from pms.config import settings
from pms.models import Alert, AlertType, BatchStatus, Item, StockBatch
from pms.services.expiry_classifier import (
    ALERT_HORIZON_DAYS,
    alert_message,
    alert_type_for,
    batch_status_for,
    days_until_expiry,
    to_local_date,
)

logger = logging.getLogger(__name__)

MONITORED_STATUSES = (BatchStatus.ACTIVE, BatchStatus.EXPIRING_SOON)

ALERT_STAT_FIELDS = {
    AlertType.EXPIRED: 'expired',
    AlertType.EXPIRING_TODAY: 'expiring_today',
    AlertType.EXPIRING_1_DAY: 'expiring_1_day',
    AlertType.EXPIRING_2_DAYS: 'expiring_2_days',
}


@dataclass
class MonitorRunStats:
    total_checked: int = 0
    status_updated: int = 0
    alerts_created: int = 0
    alerts_skipped_duplicate: int = 0
    expired: int = 0
    expiring_today: int = 0
    expiring_1_day: int = 0
    expiring_2_days: int = 0
    errors: int = 0


@dataclass
class MonitorRunResult:
    success: bool
    stats: MonitorRunStats
    duration_seconds: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    start = datetime.combine(day, dt_time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), dt_time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def alert_exists_for_day(
    db: Session,
    *,
    batch_id: int,
    alert_type: AlertType,
    day: date,
    tz: tzinfo,
) -> bool:
    start, end = local_day_bounds(day, tz)
    found = db.execute(
        select(Alert.id).where(
            Alert.batch_id == batch_id,
            Alert.alert_type == alert_type,
            Alert.created_at >= start,
            Alert.created_at < end,
        )
    ).first()
    return found is not None


def _check_batch(
    db: Session,
    batch: StockBatch,
    item: Item,
    *,
    today: date,
    now: datetime,
    tz: tzinfo,
    stats: MonitorRunStats,
) -> AlertType | None:
    days = days_until_expiry(today, batch.expiry_date)

    batch.status = batch_status_for(days)
    batch.updated_at = now
    db.flush()

    if days > ALERT_HORIZON_DAYS:
        return None
    alert_type = alert_type_for(days)
    if alert_type is None:
        return None

    if alert_exists_for_day(db, batch_id=batch.id, alert_type=alert_type, day=today, tz=tz):
        stats.alerts_skipped_duplicate += 1
        return None

    db.add(
        Alert(
            batch_id=batch.id,
            alert_type=alert_type,
            message=alert_message(alert_type, item.name, item.sku, batch.expiry_date),
            is_read=False,
            alert_date=today,
            created_at=now,
        )
    )
    db.flush()
    return alert_type


def monitor_expiring_batches(
    db: Session,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> MonitorRunResult:
    started = time.perf_counter()
    now = (now or _now()).astimezone(timezone.utc)
    tz = tz or settings.tz
    today = to_local_date(now, tz)
    stats = MonitorRunStats()
    logger.info('Expiry monitor started for %s', today.isoformat())

    try:
        rows = db.execute(
            select(StockBatch, Item)
            .join(Item, Item.id == StockBatch.item_id)
            .where(StockBatch.quantity > 0, StockBatch.status.in_(MONITORED_STATUSES))
            .order_by(StockBatch.expiry_date.asc(), StockBatch.id.asc())
        ).all()
    except Exception as exc:
        logger.exception('Expiry monitor failed')
        db.rollback()
        return MonitorRunResult(
            success=False,
            stats=stats,
            duration_seconds=round(time.perf_counter() - started, 3),
            error=str(exc),
        )

    stats.total_checked = len(rows)
    for batch, item in rows:
        batch_id = batch.id
        try:
            with db.begin_nested():
                alert_type = _check_batch(db, batch, item, today=today, now=now, tz=tz, stats=stats)
        except Exception:
            logger.exception('Error processing batch %s during expiry monitoring', batch_id)
            stats.errors += 1
            continue

        stats.status_updated += 1
        if alert_type:
            stats.alerts_created += 1
            field_name = ALERT_STAT_FIELDS[alert_type]
            setattr(stats, field_name, getattr(stats, field_name) + 1)
            logger.info('Alert created: %s - %s (%s)', alert_type.value, item.name, item.sku)

    result = MonitorRunResult(
        success=True,
        stats=stats,
        duration_seconds=round(time.perf_counter() - started, 3),
    )
    logger.info(
        'Expiry monitor finished in %.2fs: checked=%d status_updates=%d alerts=%d '
        '(expired=%d today=%d 1_day=%d 2_days=%d) duplicates=%d errors=%d',
        result.duration_seconds,
        stats.total_checked,
        stats.status_updated,
        stats.alerts_created,
        stats.expired,
        stats.expiring_today,
        stats.expiring_1_day,
        stats.expiring_2_days,
        stats.alerts_skipped_duplicate,
        stats.errors,
    )
    return result
