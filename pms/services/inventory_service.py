from __future__ import annotations

import math
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from pms.config import settings
from pms.models import (
    BatchStatus,
    Item,
    StockBatch,
    StockTransaction,
    TransactionReason,
    WasteLog,
    WasteReason,
)
from pms.services.audit_service import log_audit
from pms.services.expiry_classifier import batch_status_for, days_until_expiry, to_local_date
from pms.services.item_service import upsert_item

STATUS_FILTERS = {
    'active': BatchStatus.ACTIVE,
    'expiring-soon': BatchStatus.EXPIRING_SOON,
    'expired': BatchStatus.EXPIRED,
    'depleted': BatchStatus.DEPLETED,
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _today(now: datetime | None = None, tz: tzinfo | None = None) -> date:
    return to_local_date(now or _now(), tz or settings.tz)


def _get_batch(db: Session, batch_id: int) -> StockBatch:
    batch = db.get(StockBatch, batch_id)
    if not batch:
        raise LookupError('Batch not found')
    return batch


def batch_row(batch: StockBatch, item: Item, *, today: date) -> dict:
    return {
        'id': batch.id,
        'item_id': item.id,
        'sku': item.sku,
        'product_name': item.name,
        'category': item.category,
        'unit': item.unit,
        'base_price': item.base_price,
        'quantity': batch.quantity,
        'delivery_date': batch.delivery_date,
        'expiry_date': batch.expiry_date,
        'days_until_expiry': days_until_expiry(today, batch.expiry_date),
        'status': batch.status,
        'current_discount_percentage': batch.current_discount_percentage,
        'supplier_batch_number': batch.supplier_batch_number,
    }


def parse_status_filter(raw: str | None) -> BatchStatus | None:
    if not raw or raw == 'all':
        return None
    value = raw.strip().lower()
    if value in STATUS_FILTERS:
        return STATUS_FILTERS[value]
    try:
        return BatchStatus(raw.strip().upper())
    except ValueError as exc:
        raise ValueError(f'Unknown status filter: {raw}') from exc


def list_inventory(
    db: Session,
    *,
    search: str | None = None,
    status: BatchStatus | None = None,
    expiry_from: date | None = None,
    expiry_to: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    if page < 1:
        raise ValueError('Page must be at least 1')
    if limit < 1 or limit > 200:
        raise ValueError('Limit must be between 1 and 200')

    filters = [StockBatch.quantity > 0]
    if search:
        pattern = f'%{search.strip()}%'
        filters.append(or_(Item.name.ilike(pattern), Item.sku.ilike(pattern)))
    if status is not None:
        filters.append(StockBatch.status == status)
    if expiry_from:
        filters.append(StockBatch.expiry_date >= expiry_from)
    if expiry_to:
        filters.append(StockBatch.expiry_date <= expiry_to)

    total = db.execute(
        select(func.count(StockBatch.id)).join(Item, Item.id == StockBatch.item_id).where(*filters)
    ).scalar_one()
    rows = db.execute(
        select(StockBatch, Item)
        .join(Item, Item.id == StockBatch.item_id)
        .where(*filters)
        .order_by(StockBatch.expiry_date.asc(), StockBatch.id.asc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    today = _today()
    return {
        'data': [batch_row(batch, item, today=today) for batch, item in rows],
        'count': total,
        'total_pages': math.ceil(total / limit) if total else 0,
        'current_page': page,
    }


def add_stock_batch(
    db: Session,
    *,
    sku: str,
    name: str,
    base_price: Decimal,
    quantity: int,
    delivery_date: date,
    expiry_date: date,
    category: str | None = None,
    supplier_batch_number: str | None = None,
    actor_user_id: int | None = None,
    ip: str | None = None,
    now: datetime | None = None,
) -> StockBatch:
    if quantity <= 0:
        raise ValueError('Quantity must be greater than zero')
    if expiry_date <= delivery_date:
        raise ValueError('Expiry date must be after delivery date')

    item = upsert_item(db, sku=sku, name=name, category=category, base_price=base_price)
    status = batch_status_for(days_until_expiry(_today(now), expiry_date))
    batch = StockBatch(
        item_id=item.id,
        quantity=quantity,
        delivery_date=delivery_date,
        expiry_date=expiry_date,
        status=status,
        current_discount_percentage=0,
        supplier_batch_number=(supplier_batch_number or '').strip() or None,
        created_by_user_id=actor_user_id,
    )
    db.add(batch)
    db.flush()

    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='STOCK_ADDED',
        entity_type='stock_batches',
        entity_id=batch.id,
        ip=ip,
        new_values={
            'sku': item.sku,
            'quantity': quantity,
            'delivery_date': delivery_date.isoformat(),
            'expiry_date': expiry_date.isoformat(),
            'status': status.value,
        },
    )
    return batch


def update_batch_quantity(
    db: Session,
    *,
    batch_id: int,
    quantity_change: int,
    reason: TransactionReason,
    notes: str | None = None,
    actor_user_id: int | None = None,
    ip: str | None = None,
) -> tuple[StockBatch, StockTransaction]:
    if quantity_change == 0:
        raise ValueError('Quantity change cannot be zero')

    batch = _get_batch(db, batch_id)
    previous_quantity = batch.quantity
    new_quantity = previous_quantity + quantity_change
    if new_quantity < 0:
        raise ValueError('Quantity cannot be negative')

    batch.quantity = new_quantity
    if new_quantity == 0:
        batch.status = BatchStatus.DEPLETED
    elif batch.status == BatchStatus.DEPLETED:
        batch.status = batch_status_for(days_until_expiry(_today(), batch.expiry_date))
    batch.updated_at = _now()

    transaction = StockTransaction(
        batch_id=batch.id,
        reason=reason,
        quantity_change=quantity_change,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        notes=notes,
        created_by_user_id=actor_user_id,
    )
    db.add(transaction)
    db.flush()

    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='QUANTITY_UPDATED',
        entity_type='stock_batches',
        entity_id=batch.id,
        ip=ip,
        old_values={'quantity': previous_quantity},
        new_values={'quantity': new_quantity, 'reason': reason.value, 'quantity_change': quantity_change},
    )
    return batch, transaction


def mark_batch_as_waste(
    db: Session,
    *,
    batch_id: int,
    quantity: int,
    reason: WasteReason,
    notes: str | None = None,
    actor_user_id: int | None = None,
    ip: str | None = None,
) -> WasteLog:
    if quantity <= 0:
        raise ValueError('Waste quantity must be greater than zero')

    batch = _get_batch(db, batch_id)
    if quantity > batch.quantity:
        raise ValueError('Waste quantity cannot exceed current stock')
    item = db.get(Item, batch.item_id)

    previous_quantity = batch.quantity
    batch.quantity = previous_quantity - quantity
    if batch.quantity == 0:
        batch.status = BatchStatus.DEPLETED
    batch.updated_at = _now()

    estimated_loss = (Decimal(str(item.base_price)) * quantity).quantize(Decimal('0.01'))
    waste_log = WasteLog(
        batch_id=batch.id,
        item_id=item.id,
        quantity=quantity,
        reason=reason,
        estimated_loss=estimated_loss,
        notes=notes,
        created_by_user_id=actor_user_id,
    )
    db.add(waste_log)
    db.add(
        StockTransaction(
            batch_id=batch.id,
            reason=TransactionReason.WASTE,
            quantity_change=-quantity,
            previous_quantity=previous_quantity,
            new_quantity=batch.quantity,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
    )
    db.flush()

    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='STOCK_WASTED',
        entity_type='stock_batches',
        entity_id=batch.id,
        ip=ip,
        old_values={'quantity': previous_quantity},
        new_values={'quantity': batch.quantity, 'reason': reason.value, 'estimated_loss': str(estimated_loss)},
    )
    return waste_log


def delete_batch(db: Session, *, batch_id: int, actor_user_id: int | None = None, ip: str | None = None) -> None:
    batch = _get_batch(db, batch_id)
    item = db.get(Item, batch.item_id)
    snapshot = {'sku': item.sku if item else None, 'quantity': batch.quantity}
    db.delete(batch)
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='STOCK_DELETED',
        entity_type='stock_batches',
        entity_id=batch_id,
        ip=ip,
        old_values=snapshot,
    )
