from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pms.models import Item, StockBatch, WasteLog
from pms.services.audit_service import log_audit

ITEM_FIELDS = ('sku', 'name', 'category', 'base_price', 'unit', 'description')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def normalize_sku(raw: str) -> str:
    sku = (raw or '').strip().upper()
    if not sku:
        raise ValueError('SKU is required')
    return sku


def _validate_price(base_price: Decimal) -> Decimal:
    price = Decimal(str(base_price))
    if price <= 0:
        raise ValueError('Base price must be greater than zero')
    return price


def item_to_dict(item: Item) -> dict:
    return {field: getattr(item, field) for field in ('id', *ITEM_FIELDS, 'created_at', 'updated_at')}


def get_item(db: Session, item_id: int) -> Item:
    item = db.get(Item, item_id)
    if not item:
        raise LookupError('Item not found')
    return item


def get_item_by_sku(db: Session, sku: str) -> Item | None:
    return db.execute(select(Item).where(Item.sku == normalize_sku(sku))).scalar_one_or_none()


def list_items(db: Session) -> list[Item]:
    return db.execute(select(Item).order_by(Item.created_at.desc(), Item.id.desc())).scalars().all()


def create_item(
    db: Session,
    *,
    sku: str,
    name: str,
    base_price: Decimal,
    category: str | None = None,
    unit: str | None = None,
    description: str | None = None,
    actor_user_id: int | None = None,
    ip: str | None = None,
) -> Item:
    sku = normalize_sku(sku)
    name = (name or '').strip()
    if not name:
        raise ValueError('Name is required')
    if get_item_by_sku(db, sku):
        raise ValueError(f'Item with SKU {sku} already exists')

    item = Item(
        sku=sku,
        name=name,
        category=(category or '').strip() or None,
        base_price=_validate_price(base_price),
        unit=(unit or '').strip() or 'kg',
        description=description,
    )
    db.add(item)
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='ITEM_CREATED',
        entity_type='items',
        entity_id=item.id,
        ip=ip,
        new_values={'sku': sku, 'name': name, 'base_price': str(item.base_price)},
    )
    return item


def upsert_item(
    db: Session,
    *,
    sku: str,
    name: str,
    base_price: Decimal,
    category: str | None = None,
) -> Item:
    sku = normalize_sku(sku)
    item = get_item_by_sku(db, sku)
    if not item:
        item = Item(sku=sku, name=name.strip(), category=category, base_price=_validate_price(base_price))
        db.add(item)
        db.flush()
        return item

    item.name = name.strip()
    item.category = category
    item.base_price = _validate_price(base_price)
    item.updated_at = _now()
    db.flush()
    return item


def update_item(
    db: Session,
    *,
    item_id: int,
    changes: dict,
    actor_user_id: int | None = None,
    ip: str | None = None,
) -> Item:
    item = get_item(db, item_id)
    unknown = set(changes) - set(ITEM_FIELDS)
    if unknown:
        raise ValueError(f'Unknown item fields: {", ".join(sorted(unknown))}')

    old_values = {}
    new_values = {}
    for field, value in changes.items():
        if value is None and field in ('sku', 'name', 'base_price', 'unit'):
            continue
        if field == 'sku':
            value = normalize_sku(value)
            existing = get_item_by_sku(db, value)
            if existing and existing.id != item.id:
                raise ValueError(f'Item with SKU {value} already exists')
        elif field == 'base_price':
            value = _validate_price(value)
        old_values[field] = str(getattr(item, field)) if getattr(item, field) is not None else None
        new_values[field] = str(value) if value is not None else None
        setattr(item, field, value)

    item.updated_at = _now()
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='ITEM_UPDATED',
        entity_type='items',
        entity_id=item.id,
        ip=ip,
        old_values=old_values,
        new_values=new_values,
    )
    return item


def delete_item(db: Session, *, item_id: int, actor_user_id: int | None = None, ip: str | None = None) -> None:
    item = get_item(db, item_id)
    if db.execute(select(StockBatch.id).where(StockBatch.item_id == item.id)).first():
        raise ValueError('Item is referenced by stock batches and cannot be deleted')
    if db.execute(select(WasteLog.id).where(WasteLog.item_id == item.id)).first():
        raise ValueError('Item is referenced by waste logs and cannot be deleted')

    snapshot = {'sku': item.sku, 'name': item.name}
    db.delete(item)
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='ITEM_DELETED',
        entity_type='items',
        entity_id=item_id,
        ip=ip,
        old_values=snapshot,
    )
