from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pms.models import DiscountSuggestion, Item, StockBatch, SuggestionStatus
from pms.services.audit_service import log_audit

ALLOWED_TRANSITIONS: dict[SuggestionStatus, frozenset[SuggestionStatus]] = {
    SuggestionStatus.PENDING: frozenset(
        {SuggestionStatus.APPROVED, SuggestionStatus.REJECTED, SuggestionStatus.EXPIRED}
    ),
    SuggestionStatus.APPROVED: frozenset(),
    SuggestionStatus.REJECTED: frozenset(),
    SuggestionStatus.EXPIRED: frozenset(),
}


class DiscountState(str, Enum):
    NONE = 'NONE'
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


@dataclass(frozen=True)
class BatchDiscountState:
    batch_id: int
    state: DiscountState
    suggestion_id: int | None = None
    discount_percentage: int | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def transition_suggestion(suggestion: DiscountSuggestion, target: SuggestionStatus, *, now: datetime | None = None) -> None:
    current = SuggestionStatus(suggestion.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValueError(f'Cannot move suggestion from {current.value} to {target.value}')
    suggestion.status = target
    suggestion.updated_at = now or _now()


def has_pending_suggestion(db: Session, batch_id: int) -> bool:
    found = db.execute(
        select(DiscountSuggestion.id).where(
            DiscountSuggestion.batch_id == batch_id,
            DiscountSuggestion.status == SuggestionStatus.PENDING,
        )
    ).first()
    return found is not None


def _get_suggestion(db: Session, suggestion_id: int) -> DiscountSuggestion:
    suggestion = db.get(DiscountSuggestion, suggestion_id)
    if not suggestion:
        raise LookupError('Discount suggestion not found')
    return suggestion


def _serialize(suggestion: DiscountSuggestion, batch: StockBatch, item: Item) -> dict:
    return {
        'id': suggestion.id,
        'batch_id': suggestion.batch_id,
        'suggested_discount_percentage': suggestion.suggested_discount_percentage,
        'estimated_revenue': suggestion.estimated_revenue,
        'status': suggestion.status,
        'created_at': suggestion.created_at,
        'batch': {
            'id': batch.id,
            'quantity': batch.quantity,
            'expiry_date': batch.expiry_date,
        },
        'item': {
            'sku': item.sku,
            'name': item.name,
            'base_price': item.base_price,
            'category': item.category,
        },
    }


def list_pending_suggestions(db: Session) -> list[dict]:
    rows = db.execute(
        select(DiscountSuggestion, StockBatch, Item)
        .join(StockBatch, StockBatch.id == DiscountSuggestion.batch_id)
        .join(Item, Item.id == StockBatch.item_id)
        .where(DiscountSuggestion.status == SuggestionStatus.PENDING)
        .order_by(DiscountSuggestion.estimated_revenue.desc(), DiscountSuggestion.id.asc())
    ).all()
    return [_serialize(suggestion, batch, item) for suggestion, batch, item in rows]


def approve_suggestion(
    db: Session,
    *,
    suggestion_id: int,
    approved_discount_percentage: int,
    actor_user_id: int | None,
    ip: str | None,
) -> dict:
    if approved_discount_percentage < 0 or approved_discount_percentage > 100:
        raise ValueError('Discount percentage must be between 0 and 100')

    suggestion = _get_suggestion(db, suggestion_id)
    batch = db.get(StockBatch, suggestion.batch_id)
    if not batch:
        raise LookupError('Stock batch not found')

    now = _now()
    transition_suggestion(suggestion, SuggestionStatus.APPROVED, now=now)
    suggestion.approved_discount_percentage = approved_discount_percentage
    suggestion.approved_by_user_id = actor_user_id

    previous_discount = batch.current_discount_percentage
    batch.current_discount_percentage = approved_discount_percentage
    batch.updated_at = now

    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='DISCOUNT_APPROVED',
        entity_type='discount_suggestions',
        entity_id=suggestion.id,
        ip=ip,
        old_values={'status': SuggestionStatus.PENDING.value, 'batch_discount': previous_discount},
        new_values={'status': SuggestionStatus.APPROVED.value, 'batch_discount': approved_discount_percentage},
    )
    db.flush()
    return {
        'suggestion_id': suggestion.id,
        'batch_id': batch.id,
        'approved_discount': approved_discount_percentage,
    }


def reject_suggestion(
    db: Session,
    *,
    suggestion_id: int,
    rejection_reason: str,
    actor_user_id: int | None,
    ip: str | None,
) -> dict:
    reason = (rejection_reason or '').strip()
    if not reason:
        raise ValueError('Rejection reason is required')

    suggestion = _get_suggestion(db, suggestion_id)
    transition_suggestion(suggestion, SuggestionStatus.REJECTED)
    suggestion.rejection_reason = reason
    suggestion.approved_by_user_id = actor_user_id

    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='DISCOUNT_REJECTED',
        entity_type='discount_suggestions',
        entity_id=suggestion.id,
        ip=ip,
        old_values={'status': SuggestionStatus.PENDING.value},
        new_values={'status': SuggestionStatus.REJECTED.value, 'rejection_reason': reason},
    )
    db.flush()
    return {'suggestion_id': suggestion.id, 'rejection_reason': reason}


def suggestion_stats(db: Session) -> dict:
    counts = {status: 0 for status in SuggestionStatus}
    for status, count in db.execute(
        select(DiscountSuggestion.status, func.count(DiscountSuggestion.id)).group_by(DiscountSuggestion.status)
    ).all():
        counts[SuggestionStatus(status)] = count

    potential = db.execute(
        select(func.coalesce(func.sum(DiscountSuggestion.estimated_revenue), 0)).where(
            DiscountSuggestion.status == SuggestionStatus.PENDING
        )
    ).scalar_one()

    return {
        'total': sum(counts.values()),
        'pending': counts[SuggestionStatus.PENDING],
        'approved': counts[SuggestionStatus.APPROVED],
        'rejected': counts[SuggestionStatus.REJECTED],
        'expired': counts[SuggestionStatus.EXPIRED],
        'total_potential_revenue': Decimal(str(potential)).quantize(Decimal('0.01')),
    }


def discount_state_for_batch(db: Session, batch_id: int) -> BatchDiscountState:
    suggestion = db.execute(
        select(DiscountSuggestion)
        .where(
            DiscountSuggestion.batch_id == batch_id,
            DiscountSuggestion.status != SuggestionStatus.EXPIRED,
        )
        .order_by(DiscountSuggestion.created_at.desc(), DiscountSuggestion.id.desc())
    ).scalars().first()
    if not suggestion:
        return BatchDiscountState(batch_id=batch_id, state=DiscountState.NONE)

    status = SuggestionStatus(suggestion.status)
    if status == SuggestionStatus.PENDING:
        return BatchDiscountState(
            batch_id=batch_id,
            state=DiscountState.PENDING,
            suggestion_id=suggestion.id,
            discount_percentage=suggestion.suggested_discount_percentage,
        )
    if status == SuggestionStatus.APPROVED:
        return BatchDiscountState(
            batch_id=batch_id,
            state=DiscountState.APPROVED,
            suggestion_id=suggestion.id,
            discount_percentage=suggestion.approved_discount_percentage,
        )
    return BatchDiscountState(batch_id=batch_id, state=DiscountState.REJECTED, suggestion_id=suggestion.id)
